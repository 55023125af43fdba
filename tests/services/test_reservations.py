"""ReservationManager tests: holds, fulfilment, release and the expiry sweep."""

from datetime import timedelta
from decimal import Decimal
from uuid import uuid4

import pytest

from inventory_kernel.domain.dtos import ReservationFilter
from inventory_kernel.domain.types import (
    AuditAction,
    CostingStrategy,
    EventType,
    MovementType,
    ReservationStatus,
)
from inventory_kernel.exceptions import (
    InsufficientStockError,
    InvalidStateTransitionError,
    ReservationNotFoundError,
    TenantMismatchError,
    ValidationError,
)
from inventory_kernel.selectors.stock_selector import StockSelector


@pytest.fixture
def selector(session):
    return StockSelector(session)


@pytest.fixture
def shelf(ledger, make_product, make_location, make_channel, tenant_id, actor_id, clock):
    """20 units of a FIFO product (10 @ 5, 10 @ 6) and a channel to reserve for."""
    product = make_product()
    location = make_location()
    channel = make_channel()
    ledger.receive(tenant_id, product.product_id, location.location_id, 10, 5, actor_id)
    clock.advance(60)
    ledger.receive(tenant_id, product.product_id, location.location_id, 10, 6, actor_id)
    return product, location, channel


def reserve(reservations, shelf, tenant_id, actor_id, quantity, **kwargs):
    product, location, channel = shelf
    return reservations.create(
        tenant_id, product.product_id, location.location_id, channel.channel_id,
        Decimal(quantity), actor_id, **kwargs,
    )


class TestCreate:
    def test_hold_reduces_available_not_on_hand(self, reservations, shelf, tenant_id, actor_id):
        outcome = reserve(reservations, shelf, tenant_id, actor_id, "8", reference_type="order", reference_id="SO-1")

        assert outcome.reservation.status == ReservationStatus.ACTIVE
        assert outcome.reservation.reference_id == "SO-1"
        assert outcome.level.quantity_on_hand == Decimal("20")
        assert outcome.level.quantity_reserved == Decimal("8")
        assert outcome.level.quantity_available == Decimal("12")
        [movement] = outcome.movements
        assert movement.movement_type == MovementType.RESERVATION
        assert movement.cost_per_unit is None

    def test_cannot_reserve_beyond_available(self, reservations, shelf, tenant_id, actor_id):
        reserve(reservations, shelf, tenant_id, actor_id, "15")
        with pytest.raises(InsufficientStockError) as exc_info:
            reserve(reservations, shelf, tenant_id, actor_id, "6")
        assert exc_info.value.available == Decimal("5")

    def test_reserved_stock_cannot_be_sold(self, reservations, ledger, shelf, tenant_id, actor_id):
        product, location, _ = shelf
        reserve(reservations, shelf, tenant_id, actor_id, "15")
        with pytest.raises(InsufficientStockError):
            ledger.sell(tenant_id, product.product_id, location.location_id, None, 6, actor_id)

    def test_expiry_must_be_in_the_future(self, reservations, shelf, tenant_id, actor_id, clock):
        with pytest.raises(ValidationError):
            reserve(reservations, shelf, tenant_id, actor_id, "1", expires_at=clock.now())

    def test_expiry_must_be_timezone_aware(self, reservations, shelf, tenant_id, actor_id, clock):
        naive = (clock.now() + timedelta(hours=1)).replace(tzinfo=None)
        with pytest.raises(ValidationError):
            reserve(reservations, shelf, tenant_id, actor_id, "1", expires_at=naive)

    def test_specific_hold_respects_other_holds_on_the_batch(
        self, reservations, ledger, make_product, make_location, make_channel, tenant_id, actor_id,
    ):
        product = make_product(CostingStrategy.SPECIFIC)
        location, channel = make_location(), make_channel()
        small = ledger.receive(tenant_id, product.product_id, location.location_id, 5, 1, actor_id)
        ledger.receive(tenant_id, product.product_id, location.location_id, 50, 1, actor_id)

        reservations.create(
            tenant_id, product.product_id, location.location_id, channel.channel_id, 4, actor_id,
            batch_id=small.batch.batch_id,
        )
        with pytest.raises(InsufficientStockError) as exc_info:
            reservations.create(
                tenant_id, product.product_id, location.location_id, channel.channel_id, 2, actor_id,
                batch_id=small.batch.batch_id,
            )
        assert exc_info.value.batch_id == str(small.batch.batch_id)



@pytest.fixture
def held_batch(reservations, ledger, make_product, make_location, make_channel, tenant_id, actor_id):
    """SPECIFIC product: batches of 5 and 50, with 4 of the 5 on hold."""
    product = make_product(CostingStrategy.SPECIFIC)
    location, channel = make_location(), make_channel()
    small = ledger.receive(tenant_id, product.product_id, location.location_id, 5, 2, actor_id).batch
    large = ledger.receive(tenant_id, product.product_id, location.location_id, 50, 3, actor_id).batch
    hold = reservations.create(
        tenant_id, product.product_id, location.location_id, channel.channel_id, 4, actor_id,
        batch_id=small.batch_id,
    ).reservation
    return product, location, small, large, hold


class TestSpecificBatchHolds:
    def test_sale_cannot_take_held_units(self, ledger, reservations, held_batch, tenant_id, actor_id):
        product, location, small, _, hold = held_batch

        with pytest.raises(InsufficientStockError) as exc_info:
            ledger.sell(tenant_id, product.product_id, location.location_id, None, 5, actor_id, batch_id=small.batch_id)
        assert exc_info.value.batch_id == str(small.batch_id)
        assert exc_info.value.available == Decimal("1")

        # The one free unit may still go, and the hold stays fulfillable
        ledger.sell(tenant_id, product.product_id, location.location_id, None, 1, actor_id, batch_id=small.batch_id)
        fulfilled = reservations.fulfill(tenant_id, hold.reservation_id, actor_id)
        assert fulfilled.reservation.status == ReservationStatus.FULFILLED
        assert fulfilled.level.quantity_on_hand == Decimal("50")

    def test_write_off_and_adjustment_respect_holds(self, ledger, held_batch, tenant_id, actor_id):
        product, location, small, _, _ = held_batch

        with pytest.raises(InsufficientStockError):
            ledger.write_off(
                tenant_id, product.product_id, location.location_id, 2, "damaged", actor_id,
                batch_id=small.batch_id,
            )
        with pytest.raises(InsufficientStockError):
            ledger.adjust(
                tenant_id, product.product_id, location.location_id, -2, "count", actor_id,
                batch_id=small.batch_id,
            )

    def test_transfer_cannot_ship_held_units(
        self, transfers, held_batch, make_location, tenant_id, actor_id,
    ):
        product, location, small, large, _ = held_batch
        destination = make_location()

        with pytest.raises(InsufficientStockError):
            transfers.initiate(
                tenant_id, product.product_id, location.location_id, destination.location_id, 2, actor_id,
                batch_id=small.batch_id,
            )
        shipped = transfers.initiate(
            tenant_id, product.product_id, location.location_id, destination.location_id, 10, actor_id,
            batch_id=large.batch_id,
        )
        assert shipped.source.quantity_on_hand == Decimal("45")

    def test_released_hold_frees_the_batch(self, ledger, reservations, held_batch, tenant_id, actor_id):
        product, location, small, _, hold = held_batch
        reservations.cancel(tenant_id, hold.reservation_id, actor_id)

        sale = ledger.sell(
            tenant_id, product.product_id, location.location_id, None, 5, actor_id, batch_id=small.batch_id,
        )
        assert sale.total_cost == Decimal("10")

class TestFulfill:
    def test_converts_hold_into_costed_sale(self, reservations, shelf, tenant_id, actor_id):
        held = reserve(reservations, shelf, tenant_id, actor_id, "12")
        outcome = reservations.fulfill(tenant_id, held.reservation.reservation_id, actor_id)

        assert outcome.reservation.status == ReservationStatus.FULFILLED
        assert outcome.reservation.resolved_at is not None
        assert outcome.level.quantity_on_hand == Decimal("8")
        assert outcome.level.quantity_reserved == 0
        assert [(m.quantity, m.cost_per_unit) for m in outcome.movements] == [
            (Decimal("10"), Decimal("5")),
            (Decimal("2"), Decimal("6")),
        ]
        assert all(m.movement_type == MovementType.SALE for m in outcome.movements)

    def test_fulfilled_is_terminal(self, reservations, shelf, tenant_id, actor_id):
        held = reserve(reservations, shelf, tenant_id, actor_id, "1")
        reservations.fulfill(tenant_id, held.reservation.reservation_id, actor_id)
        with pytest.raises(InvalidStateTransitionError):
            reservations.cancel(tenant_id, held.reservation.reservation_id, actor_id)


class TestCancel:
    def test_releases_the_hold(self, reservations, shelf, tenant_id, actor_id):
        held = reserve(reservations, shelf, tenant_id, actor_id, "7")
        outcome = reservations.cancel(
            tenant_id, held.reservation.reservation_id, actor_id, reason="order cancelled",
        )

        assert outcome.reservation.status == ReservationStatus.CANCELLED
        assert outcome.level.quantity_reserved == 0
        assert outcome.level.quantity_on_hand == Decimal("20")
        assert outcome.movements[0].movement_type == MovementType.RESERVATION_RELEASE
        assert outcome.movements[0].reason == "order cancelled"

    def test_unknown_reservation(self, reservations, tenant_id, actor_id):
        with pytest.raises(ReservationNotFoundError):
            reservations.cancel(tenant_id, uuid4(), actor_id)

    def test_other_tenant_cannot_cancel(self, reservations, shelf, tenant_id, actor_id):
        held = reserve(reservations, shelf, tenant_id, actor_id, "1")
        with pytest.raises(TenantMismatchError):
            reservations.cancel(uuid4(), held.reservation.reservation_id, actor_id)


class TestExpiry:
    def test_not_yet_due_cannot_expire(self, reservations, shelf, tenant_id, actor_id, clock):
        held = reserve(
            reservations, shelf, tenant_id, actor_id, "3", expires_at=clock.now() + timedelta(minutes=30),
        )
        with pytest.raises(InvalidStateTransitionError):
            reservations.expire(tenant_id, held.reservation.reservation_id, actor_id)

    def test_without_deadline_never_expires(self, reservations, shelf, tenant_id, actor_id, clock):
        held = reserve(reservations, shelf, tenant_id, actor_id, "3")
        clock.advance(days=365)
        with pytest.raises(InvalidStateTransitionError):
            reservations.expire(tenant_id, held.reservation.reservation_id, actor_id)

    def test_due_reservation_expires(self, reservations, shelf, tenant_id, actor_id, clock):
        held = reserve(
            reservations, shelf, tenant_id, actor_id, "3", expires_at=clock.now() + timedelta(minutes=30),
        )
        clock.advance(minutes=30)
        outcome = reservations.expire(tenant_id, held.reservation.reservation_id, actor_id)

        assert outcome.reservation.status == ReservationStatus.EXPIRED
        assert outcome.level.quantity_reserved == 0

    def test_sweep_expires_only_due_holds(self, reservations, shelf, tenant_id, actor_id, clock):
        soon = reserve(
            reservations, shelf, tenant_id, actor_id, "2", expires_at=clock.now() + timedelta(minutes=5),
        )
        later = reserve(
            reservations, shelf, tenant_id, actor_id, "2", expires_at=clock.now() + timedelta(hours=5),
        )
        forever = reserve(reservations, shelf, tenant_id, actor_id, "2")
        clock.advance(minutes=10)

        outcomes = reservations.expire_due(tenant_id, actor_id)

        assert [o.reservation.reservation_id for o in outcomes] == [soon.reservation.reservation_id]
        still_active = {r.id for r in reservations.due_reservations(tenant_id, clock.now() + timedelta(days=1))}
        assert later.reservation.reservation_id in still_active
        assert forever.reservation.reservation_id not in still_active

    def test_sweep_respects_only_filter(self, reservations, shelf, tenant_id, actor_id, clock):
        first = reserve(
            reservations, shelf, tenant_id, actor_id, "1", expires_at=clock.now() + timedelta(minutes=1),
        )
        reserve(reservations, shelf, tenant_id, actor_id, "1", expires_at=clock.now() + timedelta(minutes=1))
        clock.advance(minutes=2)

        outcomes = reservations.expire_due(tenant_id, actor_id, only={first.reservation.reservation_id})
        assert len(outcomes) == 1

    def test_expired_hold_cannot_be_fulfilled(self, reservations, shelf, tenant_id, actor_id, clock):
        held = reserve(
            reservations, shelf, tenant_id, actor_id, "1", expires_at=clock.now() + timedelta(seconds=1),
        )
        clock.advance(5)
        reservations.expire_due(tenant_id, actor_id)
        with pytest.raises(InvalidStateTransitionError):
            reservations.fulfill(tenant_id, held.reservation.reservation_id, actor_id)


class TestReservationAudit:
    def test_lifecycle_audit_and_events(self, reservations, shelf, tenant_id, actor_id, auditor, publisher):
        held = reserve(reservations, shelf, tenant_id, actor_id, "4")
        reservations.fulfill(tenant_id, held.reservation.reservation_id, actor_id)

        trace = auditor.get_entity_history(tenant_id, "Reservation", held.reservation.reservation_id)
        assert trace.actions == (AuditAction.RESERVATION_CREATED, AuditAction.RESERVATION_FULFILLED)

        kinds = [r.event_type for r in publisher.recorded]
        assert EventType.RESERVATION_CREATED.value in kinds
        assert EventType.RESERVATION_FULFILLED.value in kinds
        created = next(r for r in publisher.recorded if r.event_type == EventType.RESERVATION_CREATED.value)
        assert created.payload["quantity"] == "4"
        assert created.payload["channel_id"] == str(held.reservation.channel_id)

    def test_reads_filter_by_status(self, reservations, shelf, tenant_id, actor_id, selector):
        a = reserve(reservations, shelf, tenant_id, actor_id, "1")
        reserve(reservations, shelf, tenant_id, actor_id, "1")
        reservations.cancel(tenant_id, a.reservation.reservation_id, actor_id)

        active = selector.get_reservations(tenant_id, ReservationFilter(status=ReservationStatus.ACTIVE))
        cancelled = selector.get_reservations(tenant_id, ReservationFilter(status=ReservationStatus.CANCELLED))
        assert len(active) == 1
        assert [r.reservation_id for r in cancelled] == [a.reservation.reservation_id]
