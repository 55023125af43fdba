"""
InventoryService facade: transaction boundaries, error mapping, stats and
the reservation expiry sweeper.

Every test here goes through the facade only; see conftest for why the
``session`` fixture is never mixed in.
"""

from datetime import timedelta
from decimal import Decimal
from uuid import uuid4

import pytest
from sqlalchemy.orm import sessionmaker

from inventory_kernel.db.engine import build_engine
from inventory_kernel.domain.dtos import (
    AuditSearchFilter,
    MovementFilter,
    ReservationFilter,
    StockLevelFilter,
    TransferFilter,
)
from inventory_kernel.domain.types import (
    AuditAction,
    ChannelType,
    CostingStrategy,
    EventType,
    MovementType,
    ReservationStatus,
    TransferStatus,
)
from inventory_kernel.exceptions import (
    InsufficientStockError,
    ProductNotFoundError,
    StorageError,
)
from inventory_services.inventory_service import InventoryService
from inventory_services.reservation_sweeper import ReservationExpirySweeper


@pytest.fixture
def store(inventory, tenant_id, actor_id, clock):
    """A FIFO product with 10 @ 4 then 10 @ 5 at one location, plus a channel."""
    product = inventory.create_product(
        tenant_id, "SKU-F", "Facade widget", actor_id, reorder_point=Decimal("5"),
    ).value
    location = inventory.create_location(tenant_id, "MAIN", "Main", actor_id).value
    channel = inventory.create_channel(tenant_id, "POS", "Till", ChannelType.POS, actor_id).value
    inventory.receive_stock(tenant_id, product.product_id, location.location_id, 10, 4, actor_id)
    clock.advance(60)
    inventory.receive_stock(tenant_id, product.product_id, location.location_id, 10, 5, actor_id)
    return product, location, channel


class TestCommittedResults:
    def test_result_carries_value_and_events(self, inventory, store, tenant_id, actor_id):
        product, location, channel = store
        result = inventory.sell_stock(
            tenant_id, product.product_id, location.location_id, channel.channel_id, 16, actor_id,
        )

        assert result.value.total_cost == Decimal("70")
        assert result.value.level.quantity_on_hand == Decimal("4")
        assert [e.event_type for e in result.events] == [
            EventType.STOCK_UPDATED, EventType.STOCK_LOW,
        ]
        assert result.deliveries == ()

    def test_reads_see_committed_state(self, inventory, store, tenant_id, actor_id):
        product, location, channel = store
        inventory.sell_stock(tenant_id, product.product_id, location.location_id, channel.channel_id, 3, actor_id)

        level = inventory.get_stock_level(tenant_id, product.product_id, location.location_id)
        assert level.quantity_on_hand == Decimal("17")

        movements = inventory.get_movements(
            tenant_id, MovementFilter(product_id=product.product_id, ascending=True),
        )
        assert [m.movement_type for m in movements] == [
            MovementType.RECEIPT, MovementType.RECEIPT, MovementType.SALE,
        ]
        assert [m.seq for m in movements] == sorted(m.seq for m in movements)

        batches = inventory.get_batches(tenant_id, product.product_id, location.location_id)
        assert [b.remaining_quantity for b in batches] == [Decimal("7"), Decimal("10")]

    def test_unknown_aggregate_reads_as_zero(self, inventory, tenant_id):
        level = inventory.get_stock_level(tenant_id, uuid4(), uuid4())
        assert level.quantity_on_hand == 0
        assert level.quantity_available == 0


class TestRollback:
    def test_rejected_sale_changes_nothing(self, inventory, store, tenant_id, actor_id):
        product, location, channel = store
        audit_before = inventory.search_audit_log(tenant_id)

        with pytest.raises(InsufficientStockError):
            inventory.sell_stock(
                tenant_id, product.product_id, location.location_id, channel.channel_id, 21, actor_id,
            )

        level = inventory.get_stock_level(tenant_id, product.product_id, location.location_id)
        assert level.quantity_on_hand == Decimal("20")
        assert len(inventory.search_audit_log(tenant_id)) == len(audit_before)
        sales = inventory.get_movements(tenant_id, MovementFilter(movement_type=MovementType.SALE))
        assert sales == []

    def test_rejection_is_logged_and_counted(self, inventory, store, tenant_id, actor_id, captured_logs):
        product, location, channel = store

        with pytest.raises(InsufficientStockError):
            inventory.sell_stock(
                tenant_id, product.product_id, location.location_id, channel.channel_id, 99, actor_id,
            )

        [record] = [r for r in captured_logs() if r["message"] == "operation_rejected"]
        assert record["error_code"] == "INSUFFICIENT_STOCK"
        assert record["operation"] == "sell_stock"
        assert record["tenant_id"] == str(tenant_id)
        assert inventory.snapshot().failures == {"INSUFFICIENT_STOCK": 1}

    def test_failed_transfer_leaves_both_ends_untouched(
        self, inventory, store, tenant_id, actor_id,
    ):
        product, location, _ = store
        other = inventory.create_location(tenant_id, "SIDE", "Side", actor_id).value

        with pytest.raises(InsufficientStockError):
            inventory.create_transfer(
                tenant_id, product.product_id, location.location_id, other.location_id, 50, actor_id,
            )

        assert inventory.get_transfers(tenant_id, TransferFilter(product_id=product.product_id)) == []
        source = inventory.get_stock_level(tenant_id, product.product_id, location.location_id)
        assert source.quantity_in_transit == 0


class TestStorageFailures:
    def test_database_errors_become_storage_errors(self, clock, tenant_id, actor_id):
        # No tables: every statement fails inside SQLAlchemy
        engine = build_engine("sqlite:///:memory:")
        try:
            service = InventoryService(sessionmaker(bind=engine, expire_on_commit=False), clock=clock)

            with pytest.raises(StorageError) as exc_info:
                service.receive_stock(tenant_id, uuid4(), uuid4(), 1, 1, actor_id)
            assert exc_info.value.code == "STORAGE_ERROR"
            assert service.snapshot().failures == {"STORAGE_ERROR": 1}

            with pytest.raises(StorageError):
                service.get_stock_level(tenant_id, uuid4(), uuid4())
        finally:
            engine.dispose()


class TestStats:
    def test_counts_operations_and_events(self, inventory, store, tenant_id, actor_id):
        snapshot = inventory.snapshot()

        assert snapshot.operations["receive_stock"] == 2
        assert snapshot.operations["create_product"] == 1
        assert snapshot.total_failures == 0
        # product_created + two stock_updated
        assert snapshot.events_derived == 3

        inventory.stats.reset()
        assert inventory.snapshot().total_operations == 0


class TestFacadeWorkflows:
    def test_transfer_round_trip(self, inventory, store, tenant_id, actor_id):
        product, location, _ = store
        other = inventory.create_location(tenant_id, "SIDE", "Side", actor_id).value

        started = inventory.create_transfer(
            tenant_id, product.product_id, location.location_id, other.location_id, 12, actor_id,
        ).value
        done = inventory.complete_transfer(tenant_id, started.transfer.transfer_id, actor_id).value

        assert done.transfer.status == TransferStatus.COMPLETED
        assert inventory.get_transfer(tenant_id, started.transfer.transfer_id).status == TransferStatus.COMPLETED
        arrived = inventory.get_batches(tenant_id, product.product_id, other.location_id)
        assert sorted((b.remaining_quantity, b.cost_per_unit) for b in arrived) == [
            (Decimal("2"), Decimal("5")),
            (Decimal("10"), Decimal("4")),
        ]

    def test_reservation_round_trip(self, inventory, store, tenant_id, actor_id):
        product, location, channel = store
        held = inventory.create_reservation(
            tenant_id, product.product_id, location.location_id, channel.channel_id, 5, actor_id,
            reference_type="order", reference_id="SO-9",
        ).value
        inventory.fulfill_reservation(tenant_id, held.reservation.reservation_id, actor_id)

        info = inventory.get_reservation(tenant_id, held.reservation.reservation_id)
        assert info.status == ReservationStatus.FULFILLED
        history = inventory.get_entity_history(tenant_id, "Reservation", held.reservation.reservation_id)
        assert history.actions == (AuditAction.RESERVATION_CREATED, AuditAction.RESERVATION_FULFILLED)

    def test_audit_chain_validates_after_mixed_work(self, inventory, store, tenant_id, actor_id):
        product, location, channel = store
        inventory.adjust_stock(tenant_id, product.product_id, location.location_id, -2, "count", actor_id)
        inventory.return_stock(tenant_id, product.product_id, location.location_id, 1, actor_id)
        inventory.write_off_stock(tenant_id, product.product_id, location.location_id, 1, "damaged", actor_id)

        assert inventory.validate_audit_chain(tenant_id)
        write_offs = inventory.search_audit_log(
            tenant_id, AuditSearchFilter(action=AuditAction.STOCK_WRITTEN_OFF),
        )
        assert len(write_offs) == 1

    def test_strategy_flows_into_costing(self, inventory, tenant_id, actor_id, clock):
        product = inventory.create_product(
            tenant_id, "SKU-AVG", "Average widget", actor_id, inventory_strategy=CostingStrategy.AVERAGE,
        ).value
        location = inventory.create_location(tenant_id, "AVG", "Avg", actor_id).value
        inventory.receive_stock(tenant_id, product.product_id, location.location_id, 1, 10, actor_id)
        clock.advance(60)
        inventory.receive_stock(tenant_id, product.product_id, location.location_id, 3, 20, actor_id)

        sale = inventory.sell_stock(tenant_id, product.product_id, location.location_id, None, 2, actor_id)
        assert sale.value.total_cost == Decimal("35")

    def test_unknown_product_rejected(self, inventory, tenant_id, actor_id):
        location = inventory.create_location(tenant_id, "X", "X", actor_id).value
        with pytest.raises(ProductNotFoundError):
            inventory.receive_stock(tenant_id, uuid4(), location.location_id, 1, 1, actor_id)


class TestFacadeReads:
    def test_stock_level_listing(self, inventory, store, tenant_id, actor_id):
        product, main, _ = store
        side = inventory.create_location(tenant_id, "SIDE", "Side", actor_id).value
        inventory.receive_stock(tenant_id, product.product_id, side.location_id, 1, 4, actor_id)
        inventory.sell_stock(tenant_id, product.product_id, side.location_id, None, 1, actor_id)

        assert len(inventory.list_stock_levels(tenant_id)) == 2
        [stocked] = inventory.list_stock_levels(tenant_id, StockLevelFilter(include_zero=False))
        assert stocked.location_id == main.location_id
        assert inventory.list_stock_levels(uuid4()) == []

    def test_catalog_listing(self, inventory, store, tenant_id, actor_id):
        product, main, channel = store
        side = inventory.create_location(tenant_id, "SIDE", "Side", actor_id).value
        inventory.update_location(tenant_id, side.location_id, actor_id, is_active=False)

        assert [loc.code for loc in inventory.list_locations(tenant_id)] == ["MAIN", "SIDE"]
        assert [loc.code for loc in inventory.list_locations(tenant_id, active_only=True)] == ["MAIN"]
        assert inventory.get_location(tenant_id, main.location_id).name == "Main"
        assert [c.code for c in inventory.list_channels(tenant_id)] == ["POS"]
        assert inventory.get_channel(tenant_id, channel.channel_id).channel_type == ChannelType.POS
        assert inventory.get_product_by_sku(tenant_id, "SKU-F").product_id == product.product_id
        assert inventory.get_location_by_code(tenant_id, "SIDE").location_id == side.location_id
        assert inventory.get_channel_by_code(tenant_id, "POS").channel_id == channel.channel_id
        assert [p.sku for p in inventory.list_products(tenant_id)] == ["SKU-F"]

    def test_repeated_reads_are_stable_and_write_nothing(self, inventory, store, tenant_id):
        product, location, _ = store
        criteria = MovementFilter(product_id=product.product_id)

        def observed():
            return (
                len(inventory.get_movements(tenant_id)),
                len(inventory.search_audit_log(tenant_id)),
                len(inventory.get_events(tenant_id)),
                inventory.snapshot().events_derived,
            )

        before = observed()
        first_level = inventory.get_stock_level(tenant_id, product.product_id, location.location_id)
        first_moves = inventory.get_movements(tenant_id, criteria)
        second_level = inventory.get_stock_level(tenant_id, product.product_id, location.location_id)
        second_moves = inventory.get_movements(tenant_id, criteria)

        assert first_level == second_level
        assert first_level.quantity_on_hand == Decimal("20")
        assert first_moves == second_moves
        assert len(first_moves) == 2
        assert observed() == before

    def test_reservation_listing(self, inventory, store, tenant_id, actor_id):
        product, location, channel = store
        kept = inventory.create_reservation(
            tenant_id, product.product_id, location.location_id, channel.channel_id, 2, actor_id,
        ).value
        dropped = inventory.create_reservation(
            tenant_id, product.product_id, location.location_id, channel.channel_id, 1, actor_id,
        ).value
        inventory.cancel_reservation(tenant_id, dropped.reservation.reservation_id, actor_id)

        [active] = inventory.get_reservations(
            tenant_id, ReservationFilter(status=ReservationStatus.ACTIVE),
        )
        assert active.reservation_id == kept.reservation.reservation_id
        assert len(inventory.get_reservations(tenant_id)) == 2


class TestReservationSweeper:
    def test_tick_expires_due_holds_across_tenants(self, inventory, store, tenant_id, actor_id, clock):
        product, location, channel = store
        due = inventory.create_reservation(
            tenant_id, product.product_id, location.location_id, channel.channel_id, 2, actor_id,
            expires_at=clock.now() + timedelta(minutes=5),
        ).value
        inventory.create_reservation(
            tenant_id, product.product_id, location.location_id, channel.channel_id, 2, actor_id,
            expires_at=clock.now() + timedelta(hours=5),
        )
        sweeper = ReservationExpirySweeper(inventory, actor_id=actor_id)

        assert sweeper.tick() == 0
        clock.advance(minutes=10)
        assert inventory.tenants_with_due_reservations() == [tenant_id]
        assert sweeper.tick() == 1
        assert sweeper.tick() == 0

        assert inventory.get_reservation(tenant_id, due.reservation.reservation_id).status == (
            ReservationStatus.EXPIRED
        )
        level = inventory.get_stock_level(tenant_id, product.product_id, location.location_id)
        assert level.quantity_reserved == Decimal("2")

    def test_failure_for_one_tenant_is_logged(self, captured_logs, actor_id):
        class BrokenService:
            def tenants_with_due_reservations(self):
                return [uuid4()]

            def expire_reservations(self, tenant_id, performed_by):
                raise RuntimeError("database went away")

        sweeper = ReservationExpirySweeper(BrokenService(), actor_id=actor_id)

        assert sweeper.tick() == 0
        assert any(r["message"] == "reservation_sweep_failed" for r in captured_logs())

    def test_start_and_stop(self, inventory, actor_id):
        sweeper = ReservationExpirySweeper(inventory, actor_id=actor_id, interval_seconds=0.01)
        sweeper.start()
        try:
            assert sweeper.is_running
        finally:
            sweeper.stop(timeout=5)
        assert not sweeper.is_running
