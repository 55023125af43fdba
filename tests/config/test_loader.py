"""Configuration loading, validation and bootstrap wiring."""

from pathlib import Path
from uuid import UUID

import pytest
import yaml

from inventory_config import (
    CONFIG_PATH_ENV,
    DATABASE_URL_ENV,
    InventoryConfig,
    compute_checksum,
    get_active_config,
)
from inventory_config.loader import merge_documents, parse_config
from inventory_kernel.db.engine import reset_engine
from inventory_kernel.domain.types import CostingStrategy
from inventory_services.bootstrap import build_inventory_service, build_reservation_sweeper


@pytest.fixture(autouse=True)
def _no_config_env(monkeypatch):
    monkeypatch.delenv(CONFIG_PATH_ENV, raising=False)
    monkeypatch.delenv(DATABASE_URL_ENV, raising=False)


def write_yaml(path: Path, data: dict) -> Path:
    path.write_text(yaml.safe_dump(data))
    return path


class TestDefaults:
    def test_defaults_match_schema(self):
        config = get_active_config()

        assert config.database.url == "sqlite:///:memory:"
        assert config.costing.average_cost_places == 4
        assert config.events.signature_header == "X-Webhook-Signature"
        assert config.reservations.sweep_interval_seconds == 60.0
        assert config.query.max_results == 1000
        assert len(config.checksum) == 64

    def test_schema_defaults_need_no_file(self):
        config = InventoryConfig()
        assert config.events.webhooks_enabled
        assert config.checksum == ""

    def test_load_is_logged_with_checksum(self, captured_logs):
        config = get_active_config()
        [record] = [r for r in captured_logs() if r["message"] == "config_loaded"]
        assert record["checksum"] == config.checksum
        assert record["source"] == "defaults"


class TestOverrides:
    def test_file_overrides_individual_keys(self, tmp_path):
        path = write_yaml(tmp_path / "inventory.yaml", {
            "costing": {"average_cost_places": 2},
            "events": {"webhooks_enabled": False},
        })
        config = get_active_config(path)

        assert config.costing.average_cost_places == 2
        assert not config.events.webhooks_enabled
        # Untouched keys keep their defaults
        assert config.events.webhook_timeout_seconds == 10.0

    def test_file_named_by_environment(self, tmp_path, monkeypatch):
        path = write_yaml(tmp_path / "env.yaml", {"query": {"max_results": 50}})
        monkeypatch.setenv(CONFIG_PATH_ENV, str(path))
        assert get_active_config().query.max_results == 50

    def test_database_url_from_environment_wins(self, tmp_path, monkeypatch):
        path = write_yaml(tmp_path / "db.yaml", {"database": {"url": "sqlite:///from-file.db"}})
        monkeypatch.setenv(DATABASE_URL_ENV, "postgresql+psycopg://inv@localhost/inventory")
        assert get_active_config(path).database.url == "postgresql+psycopg://inv@localhost/inventory"

    def test_missing_file(self, tmp_path):
        with pytest.raises(FileNotFoundError):
            get_active_config(tmp_path / "absent.yaml")

    def test_integer_accepted_for_float(self):
        config = parse_config({"events": {"webhook_timeout_seconds": 3}})
        assert config.events.webhook_timeout_seconds == 3.0
        assert isinstance(config.events.webhook_timeout_seconds, float)

    def test_merge_is_one_section_deep(self):
        merged = merge_documents({"a": {"x": 1, "y": 2}}, {"a": {"y": 3}, "b": None})
        assert merged == {"a": {"x": 1, "y": 3}}


class TestValidation:
    @pytest.mark.parametrize(
        "document",
        [
            {"costing": {"average_cost_places": -1}},
            {"query": {"max_results": 0}},
            {"events": {"webhook_timeout_seconds": 0}},
            {"reservations": {"sweep_interval_seconds": -5}},
            {"reservations": {"sweeper_actor_id": "not-a-uuid"}},
            {"logging": {"level": "CHATTY"}},
        ],
    )
    def test_bad_values(self, document):
        with pytest.raises(ValueError):
            parse_config(document)

    @pytest.mark.parametrize(
        "document",
        [
            {"costing": {"average_cost_places": True}},
            {"costing": {"average_cost_places": 2.5}},
            {"events": {"webhooks_enabled": "yes"}},
            {"database": {"url": 5}},
        ],
    )
    def test_wrong_types(self, document):
        with pytest.raises(ValueError):
            parse_config(document)

    def test_unknown_keys_and_sections(self):
        with pytest.raises(ValueError, match="Unknown keys"):
            parse_config({"costing": {"strategy": "FIFO"}})
        with pytest.raises(ValueError, match="Unknown configuration sections"):
            parse_config({"metrics": {}})

    def test_section_must_be_a_mapping(self, tmp_path):
        path = write_yaml(tmp_path / "bad.yaml", {"costing": [1, 2]})
        with pytest.raises(ValueError):
            get_active_config(path)


class TestChecksum:
    def test_deterministic_and_order_independent(self):
        assert compute_checksum({"a": 1, "b": 2}) == compute_checksum({"b": 2, "a": 1})

    def test_changes_with_content(self):
        assert compute_checksum({"a": 1}) != compute_checksum({"a": 2})


class TestBootstrap:
    @pytest.fixture
    def config(self):
        return parse_config({
            "events": {"webhooks_enabled": False},
            "reservations": {
                "sweep_interval_seconds": 5,
                "sweeper_actor_id": "11111111-1111-1111-1111-111111111111",
            },
        })

    @pytest.fixture(autouse=True)
    def _reset_engine(self):
        yield
        reset_engine()

    def test_service_is_ready_to_use(self, config, clock, tenant_id, actor_id, captured_logs):
        service = build_inventory_service(config, clock=clock)

        product = service.create_product(
            tenant_id, "SKU-B", "Bootstrapped", actor_id, inventory_strategy=CostingStrategy.LIFO,
        ).value
        assert service.get_product(tenant_id, product.product_id).inventory_strategy == CostingStrategy.LIFO
        [ready] = [r for r in captured_logs() if r["message"] == "inventory_service_ready"]
        assert ready["webhooks_enabled"] is False
        assert ready["config_checksum"] == config.checksum

    def test_sweeper_takes_actor_and_interval_from_config(self, config, clock):
        service = build_inventory_service(config, clock=clock)
        sweeper = build_reservation_sweeper(service, config)

        assert sweeper.tick() == 0
        assert sweeper._actor_id == UUID("11111111-1111-1111-1111-111111111111")
        assert sweeper._interval == 5.0
