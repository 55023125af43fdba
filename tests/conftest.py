"""
Pytest fixtures for the inventory ledger test suite.

Provides:
- In-memory SQLite engines (one per test) with all tables created
- Flush-only service fixtures bound to one session
- An InventoryService facade wired to a recording webhook transport
- Catalog factories (products, locations, channels)

Two styles of test exist and must not be mixed in one test:
- Service tests use the ``session`` fixture and the flush-only services.
- Facade tests use ``inventory`` and let it open its own sessions.
The in-memory database runs on one shared connection, so a facade call made
while the ``session`` fixture holds a transaction would collide with it.
"""

import json
import logging
from io import StringIO
from itertools import count
from uuid import uuid4

import pytest
from sqlalchemy.orm import sessionmaker

from inventory_kernel.db.engine import build_engine, create_tables
from inventory_kernel.db.immutability import (
    register_immutability_listeners,
    unregister_immutability_listeners,
)
from inventory_kernel.domain.clock import DeterministicClock
from inventory_kernel.domain.types import ChannelType, CostingStrategy
from inventory_kernel.exceptions import WebhookDeliveryError
from inventory_kernel.logging_config import (
    LogContext,
    StructuredFormatter,
    configure_logging,
    reset_logging,
)
from inventory_kernel.services.audit_recorder import AuditRecorder
from inventory_services.catalog_service import CatalogService
from inventory_services.event_publisher import EventPublisher
from inventory_services.inventory_service import InventoryService
from inventory_services.reservation_manager import ReservationManager
from inventory_services.stock_ledger import StockLedger
from inventory_services.transfer_coordinator import TransferCoordinator


def pytest_configure(config):
    """Register custom markers."""
    config.addinivalue_line(
        "markers", "postgres: mark test as requiring PostgreSQL"
    )
    config.addinivalue_line(
        "markers", "slow_locks: mark test as potentially waiting for DB locks"
    )


# =============================================================================
# Logging fixtures
# =============================================================================


@pytest.fixture(autouse=True, scope="session")
def _configure_test_logging():
    """Configure structured logging for the test suite."""
    reset_logging()
    configure_logging(level=logging.DEBUG)
    yield
    reset_logging()


@pytest.fixture(autouse=True)
def _clear_log_context():
    """Clear LogContext between tests to prevent cross-test contamination."""
    LogContext.clear()
    yield
    LogContext.clear()


@pytest.fixture
def captured_logs():
    """
    Capture inventory_kernel logs as parsed JSON dicts.

    Usage::

        def test_something(captured_logs, ledger):
            ledger.receive(...)
            assert any(r["message"] == "stock_received" for r in captured_logs())
    """
    stream = StringIO()
    handler = logging.StreamHandler(stream)
    handler.setFormatter(StructuredFormatter())
    root = logging.getLogger("inventory_kernel")
    root.addHandler(handler)

    def _get_records() -> list[dict]:
        lines = stream.getvalue().strip().split("\n")
        return [json.loads(line) for line in lines if line]

    yield _get_records

    root.removeHandler(handler)


# =============================================================================
# Database
# =============================================================================


@pytest.fixture(autouse=True, scope="session")
def _immutability_listeners():
    register_immutability_listeners()
    yield
    unregister_immutability_listeners()


@pytest.fixture
def engine():
    engine = build_engine("sqlite:///:memory:")
    create_tables(engine)
    yield engine
    engine.dispose()


@pytest.fixture
def session_factory(engine):
    return sessionmaker(bind=engine, expire_on_commit=False)


@pytest.fixture
def session(session_factory):
    session = session_factory()
    yield session
    session.rollback()
    session.close()


# =============================================================================
# Identity and time
# =============================================================================


@pytest.fixture
def clock():
    return DeterministicClock()


@pytest.fixture
def tenant_id():
    return uuid4()


@pytest.fixture
def actor_id():
    return uuid4()


# =============================================================================
# Flush-only services (share one session)
# =============================================================================


@pytest.fixture
def auditor(session, clock):
    return AuditRecorder(session, clock)


@pytest.fixture
def publisher(session, clock):
    return EventPublisher(session, clock)


@pytest.fixture
def ledger(session, clock, auditor, publisher):
    return StockLedger(session, clock, auditor=auditor, publisher=publisher)


@pytest.fixture
def transfers(session, clock, ledger):
    return TransferCoordinator(session, clock, ledger)


@pytest.fixture
def reservations(session, clock, ledger):
    return ReservationManager(session, clock, ledger)


@pytest.fixture
def catalog(session, clock, auditor, publisher):
    return CatalogService(session, clock, auditor, publisher)


_codes = count(1)


@pytest.fixture
def make_product(catalog, tenant_id, actor_id):
    """Create a product in the test tenant; keyword arguments go to create_product."""

    def _make(strategy=CostingStrategy.FIFO, **kwargs):
        n = next(_codes)
        return catalog.create_product(
            tenant_id,
            sku=kwargs.pop("sku", f"SKU-{n:05d}"),
            name=kwargs.pop("name", f"Product {n}"),
            performed_by=actor_id,
            inventory_strategy=strategy,
            **kwargs,
        )

    return _make


@pytest.fixture
def make_location(catalog, tenant_id, actor_id):
    def _make(**kwargs):
        n = next(_codes)
        return catalog.create_location(
            tenant_id,
            code=kwargs.pop("code", f"LOC-{n:05d}"),
            name=kwargs.pop("name", f"Location {n}"),
            performed_by=actor_id,
            **kwargs,
        )

    return _make


@pytest.fixture
def make_channel(catalog, tenant_id, actor_id):
    def _make(**kwargs):
        n = next(_codes)
        return catalog.create_channel(
            tenant_id,
            code=kwargs.pop("code", f"CH-{n:05d}"),
            name=kwargs.pop("name", f"Channel {n}"),
            channel_type=kwargs.pop("channel_type", ChannelType.ECOMMERCE),
            performed_by=actor_id,
            **kwargs,
        )

    return _make


# =============================================================================
# Facade
# =============================================================================


class RecordingTransport:
    """Webhook transport that records requests and fails for chosen URLs."""

    def __init__(self):
        self.requests = []
        self.failing_urls: set[str] = set()

    def send(self, request):
        self.requests.append(request)
        if request.url in self.failing_urls:
            raise WebhookDeliveryError(request.url, "HTTP 503", status_code=503)
        return 200


@pytest.fixture
def transport():
    return RecordingTransport()


@pytest.fixture
def inventory(session_factory, clock, transport):
    return InventoryService(session_factory, clock=clock, transport=transport)
