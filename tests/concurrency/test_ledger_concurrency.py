"""
Concurrency tests against a file-backed SQLite database.

Threads share one database file, each unit of work on its own connection.
In-process aggregate locks serialize one service's callers; BEGIN IMMEDIATE
serializes writers across services that do not share locks.
"""

from concurrent.futures import ThreadPoolExecutor
from decimal import Decimal
from threading import Barrier
from uuid import uuid4

import pytest
from sqlalchemy.orm import sessionmaker

from inventory_kernel.db.engine import build_engine, create_tables
from inventory_kernel.domain.dtos import MovementFilter
from inventory_kernel.domain.types import ChannelType, MovementType, TransferStatus
from inventory_kernel.exceptions import InsufficientStockError
from inventory_services.inventory_service import InventoryService

pytestmark = [pytest.mark.slow_locks]


@pytest.fixture
def file_session_factory(tmp_path):
    engine = build_engine(f"sqlite:///{tmp_path / 'ledger.db'}")
    create_tables(engine)
    yield sessionmaker(bind=engine, expire_on_commit=False)
    engine.dispose()


@pytest.fixture
def service(file_session_factory, clock):
    return InventoryService(file_session_factory, clock=clock)


@pytest.fixture
def stocked(service, tenant_id, actor_id):
    """20 units at WH-A, 20 units at WH-B."""
    product = service.create_product(tenant_id, "SKU-C", "Contended", actor_id).value
    a = service.create_location(tenant_id, "WH-A", "A", actor_id).value
    b = service.create_location(tenant_id, "WH-B", "B", actor_id).value
    service.receive_stock(tenant_id, product.product_id, a.location_id, 20, 1, actor_id)
    service.receive_stock(tenant_id, product.product_id, b.location_id, 20, 1, actor_id)
    return product, a, b


def race(n, fn):
    """Run ``fn(i)`` on ``n`` threads released together; return results or exceptions."""
    barrier = Barrier(n, timeout=30)

    def attempt(i):
        barrier.wait()
        try:
            return fn(i)
        except InsufficientStockError as exc:
            return exc

    with ThreadPoolExecutor(max_workers=n) as executor:
        return list(executor.map(attempt, range(n)))


class TestNoOversell:
    def test_concurrent_sales_never_oversell(self, service, stocked, tenant_id, actor_id):
        product, a, _ = stocked

        results = race(8, lambda i: service.sell_stock(
            tenant_id, product.product_id, a.location_id, None, 5, actor_id,
        ))

        sold = [r for r in results if not isinstance(r, Exception)]
        rejected = [r for r in results if isinstance(r, InsufficientStockError)]
        assert len(sold) == 4
        assert len(rejected) == 4
        level = service.get_stock_level(tenant_id, product.product_id, a.location_id)
        assert level.quantity_on_hand == 0

    def test_services_without_shared_locks_still_serialize(
        self, file_session_factory, clock, service, stocked, tenant_id, actor_id,
    ):
        product, a, _ = stocked
        services = [InventoryService(file_session_factory, clock=clock) for _ in range(6)]

        results = race(6, lambda i: services[i].sell_stock(
            tenant_id, product.product_id, a.location_id, None, 6, actor_id,
        ))

        sold = [r for r in results if not isinstance(r, Exception)]
        assert len(sold) == 3
        level = service.get_stock_level(tenant_id, product.product_id, a.location_id)
        assert level.quantity_on_hand == Decimal("2")

    def test_reservations_and_sales_share_one_pool(self, service, stocked, tenant_id, actor_id):
        product, a, _ = stocked
        channel = service.create_channel(tenant_id, "WEB", "Web", ChannelType.ECOMMERCE, actor_id).value

        def act(i):
            if i % 2:
                return service.create_reservation(
                    tenant_id, product.product_id, a.location_id, channel.channel_id, 3, actor_id,
                )
            return service.sell_stock(tenant_id, product.product_id, a.location_id, None, 3, actor_id)

        race(10, act)

        level = service.get_stock_level(tenant_id, product.product_id, a.location_id)
        assert level.quantity_available >= 0
        assert level.quantity_reserved + (Decimal("20") - level.quantity_on_hand) == Decimal("18")


class TestSequences:
    def test_concurrent_receipts_get_distinct_sequence_numbers(self, service, stocked, tenant_id, actor_id):
        product, a, _ = stocked

        race(10, lambda i: service.receive_stock(
            tenant_id, product.product_id, a.location_id, 1, 1, actor_id,
        ))

        receipts = service.get_movements(
            tenant_id, MovementFilter(movement_type=MovementType.RECEIPT, ascending=True),
        )
        seqs = [m.seq for m in receipts]
        assert len(receipts) == 12
        assert len(set(seqs)) == 12
        assert seqs == list(range(seqs[0], seqs[0] + 12))
        assert service.validate_audit_chain(tenant_id)


class TestLockOrdering:
    def test_opposite_transfers_do_not_deadlock(self, service, stocked, tenant_id, actor_id):
        product, a, b = stocked

        def move(i):
            source, destination = (a, b) if i % 2 else (b, a)
            return service.create_transfer(
                tenant_id, product.product_id, source.location_id, destination.location_id, 1, actor_id,
            )

        results = race(10, move)

        assert not any(isinstance(r, Exception) for r in results)
        for result in results:
            assert result.value.transfer.status == TransferStatus.IN_TRANSIT

    def test_other_tenants_are_unaffected(self, service, stocked, tenant_id, actor_id):
        product, a, _ = stocked
        other_tenant = uuid4()
        other_product = service.create_product(other_tenant, "SKU-C", "Contended", actor_id).value
        other_location = service.create_location(other_tenant, "WH-A", "A", actor_id).value
        service.receive_stock(other_tenant, other_product.product_id, other_location.location_id, 5, 1, actor_id)

        def act(i):
            if i % 2:
                return service.sell_stock(tenant_id, product.product_id, a.location_id, None, 1, actor_id)
            return service.sell_stock(
                other_tenant, other_product.product_id, other_location.location_id, None, 1, actor_id,
            )

        race(8, act)

        assert service.get_stock_level(tenant_id, product.product_id, a.location_id).quantity_on_hand == 16
        assert service.get_stock_level(
            other_tenant, other_product.product_id, other_location.location_id,
        ).quantity_on_hand == 1
        assert service.validate_audit_chain(tenant_id)
        assert service.validate_audit_chain(other_tenant)
