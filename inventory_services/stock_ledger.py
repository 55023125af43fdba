"""
StockLedger -- the sole writer of stock quantities.

Responsibility:
    Receives, sells, adjusts, returns and writes off stock for one
    (tenant, product, location) aggregate.  Each operation locks the
    StockLevel row, validates, applies the quantity change, maintains the
    batch cost layers through the CostingEngine, appends movements, records
    one audit entry and derives events -- all in the caller's transaction.

    TransferCoordinator and ReservationManager are built on the primitives
    exposed here (``lock_level``, ``consume``, ``create_batch``,
    ``append_movement``, ``record_level_change``); nothing else touches
    StockLevel quantities.

Architecture position:
    Services -- flush-only.  The InventoryService facade owns the
    transaction and the process-level aggregate locks.

Invariants enforced:
    - available = on_hand - reserved; reserved <= on_hand and on_hand >= 0
      unless the product allows negative stock.
    - Every quantity change appends at least one StockMovement whose seq is
      allocated from the tenant's movement counter.
    - Business errors are raised before any row is modified.
    - Lock order inside a unit of work: StockLevel rows (sorted), then the
      movement counter, then the audit counter.

Failure modes:
    - ProductNotFoundError / LocationNotFoundError / ChannelNotFoundError /
      BatchNotFoundError / TenantMismatchError on identity problems.
    - InvalidQuantityError on non-positive quantities, negative costs or a
      zero adjustment.
    - InsufficientStockError when available stock (or the named batch)
      cannot cover a consuming operation.
    - InvalidStrategyConfigurationError when a SPECIFIC product is consumed
      without a batch of the aggregate.
"""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass
from datetime import date, datetime
from decimal import Decimal, InvalidOperation
from typing import Any
from uuid import UUID, uuid4

from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from inventory_engines.costing import BatchCandidate, CostingEngine, CostingResult
from inventory_kernel.domain.clock import Clock
from inventory_kernel.domain.dtos import BatchInfo, MovementRecord, StockLevelSnapshot
from inventory_kernel.domain.types import (
    AuditAction,
    BatchSource,
    CostingStrategy,
    MovementType,
    ReservationStatus,
)
from inventory_kernel.exceptions import (
    BatchNotFoundError,
    ChannelNotFoundError,
    InsufficientStockError,
    InvalidQuantityError,
    InvalidStrategyConfigurationError,
    LocationNotFoundError,
    ProductNotFoundError,
)
from inventory_kernel.logging_config import get_logger
from inventory_kernel.models import (
    Channel,
    Location,
    Product,
    Reservation,
    StockBatch,
    StockLevel,
    StockMovement,
)
from inventory_kernel.selectors.base import load_owned
from inventory_kernel.services.audit_recorder import AuditRecorder
from inventory_kernel.services.base import BaseService
from inventory_kernel.services.sequence_service import SequenceService
from inventory_services.event_publisher import EventPublisher

logger = get_logger("services.stock_ledger")

ZERO = Decimal("0")

STOCK_LEVEL_ENTITY = "StockLevel"


def to_decimal(value: Any, field: str) -> Decimal:
    """Coerce an int/str/Decimal input to a finite Decimal."""
    if isinstance(value, bool):
        raise InvalidQuantityError(field, value, "must be a number")
    try:
        result = value if isinstance(value, Decimal) else Decimal(str(value))
    except (InvalidOperation, ValueError, TypeError):
        raise InvalidQuantityError(field, value, "must be a number") from None
    if not result.is_finite():
        raise InvalidQuantityError(field, result, "must be finite")
    return result


def require_positive(value: Any, field: str = "quantity") -> Decimal:
    result = to_decimal(value, field)
    if result <= 0:
        raise InvalidQuantityError(field, result, "must be positive")
    return result


def require_non_negative(value: Any, field: str) -> Decimal:
    result = to_decimal(value, field)
    if result < 0:
        raise InvalidQuantityError(field, result, "must not be negative")
    return result


def level_state(level: StockLevel) -> dict[str, Decimal]:
    return {
        "quantity_on_hand": level.quantity_on_hand,
        "quantity_reserved": level.quantity_reserved,
        "quantity_in_transit": level.quantity_in_transit,
    }


@dataclass(frozen=True)
class StockChange:
    """Outcome of one ledger operation on one aggregate."""

    level: StockLevelSnapshot
    movements: tuple[MovementRecord, ...]
    batch: BatchInfo | None = None

    @property
    def total_cost(self) -> Decimal:
        return sum(
            (m.total_cost for m in self.movements if m.total_cost is not None),
            ZERO,
        )


class StockLedger(BaseService):
    """
    Quantity mutations for stock aggregates.

    Contract:
        Every public operation either flushes a complete, consistent change
        (level, batches, movements, audit, events) or raises before touching
        anything.

    Non-goals:
        - Does NOT call ``session.commit()``.
        - Does NOT acquire process-level locks (the facade does).
    """

    def __init__(
        self,
        session: Session,
        clock: Clock | None = None,
        costing_engine: CostingEngine | None = None,
        auditor: AuditRecorder | None = None,
        publisher: EventPublisher | None = None,
    ):
        super().__init__(session, clock)
        self.costing = costing_engine or CostingEngine()
        self.auditor = auditor or AuditRecorder(session, self.clock)
        self.publisher = publisher or EventPublisher(session, self.clock)
        self._sequence_service = SequenceService(session)

    # =========================================================================
    # Public operations
    # =========================================================================

    def receive(
        self,
        tenant_id: UUID,
        product_id: UUID,
        location_id: UUID,
        quantity: Decimal,
        cost_per_unit: Decimal,
        performed_by: UUID,
        batch_number: str | None = None,
        expiry_date: date | None = None,
        received_at: datetime | None = None,
        reference_type: str | None = None,
        reference_id: str | None = None,
    ) -> StockChange:
        """Book a receipt: new cost layer, on-hand up, one ``receipt`` movement."""
        quantity = require_positive(quantity)
        cost_per_unit = require_non_negative(cost_per_unit, "cost_per_unit")
        return self._increase(
            tenant_id, product_id, location_id, quantity, performed_by,
            movement_type=MovementType.RECEIPT,
            action=AuditAction.STOCK_RECEIVED,
            source=BatchSource.RECEIPT,
            cost_per_unit=cost_per_unit,
            batch_number=batch_number,
            expiry_date=expiry_date,
            received_at=received_at,
            reference_type=reference_type,
            reference_id=reference_id,
        )

    def sell(
        self,
        tenant_id: UUID,
        product_id: UUID,
        location_id: UUID,
        channel_id: UUID | None,
        quantity: Decimal,
        performed_by: UUID,
        batch_id: UUID | None = None,
        reference_type: str | None = None,
        reference_id: str | None = None,
    ) -> StockChange:
        """Book a sale: cost layers consumed per strategy, one ``sale`` movement per segment."""
        quantity = require_positive(quantity)
        return self._decrease(
            tenant_id, product_id, location_id, quantity, performed_by,
            movement_type=MovementType.SALE,
            action=AuditAction.STOCK_SOLD,
            batch_id=batch_id,
            channel_id=channel_id,
            reference_type=reference_type,
            reference_id=reference_id,
        )

    def adjust(
        self,
        tenant_id: UUID,
        product_id: UUID,
        location_id: UUID,
        delta: Decimal,
        reason: str,
        performed_by: UUID,
        cost_per_unit: Decimal | None = None,
        batch_id: UUID | None = None,
        reference_type: str | None = None,
        reference_id: str | None = None,
    ) -> StockChange:
        """
        Apply a signed correction to on-hand.

        A positive delta creates an ``adjustment``-sourced batch so later
        layered costing accounts for it; a negative delta consumes batches
        exactly like a sale.
        """
        delta = to_decimal(delta, "delta")
        if delta == 0:
            raise InvalidQuantityError("delta", delta, "must not be zero")

        if delta > 0:
            if cost_per_unit is not None:
                cost_per_unit = require_non_negative(cost_per_unit, "cost_per_unit")
            return self._increase(
                tenant_id, product_id, location_id, delta, performed_by,
                movement_type=MovementType.ADJUSTMENT_INCREASE,
                action=AuditAction.STOCK_ADJUSTED,
                source=BatchSource.ADJUSTMENT,
                cost_per_unit=cost_per_unit,
                reason=reason,
                reference_type=reference_type,
                reference_id=reference_id,
            )

        return self._decrease(
            tenant_id, product_id, location_id, -delta, performed_by,
            movement_type=MovementType.ADJUSTMENT_DECREASE,
            action=AuditAction.STOCK_ADJUSTED,
            batch_id=batch_id,
            reason=reason,
            reference_type=reference_type,
            reference_id=reference_id,
        )

    def return_stock(
        self,
        tenant_id: UUID,
        product_id: UUID,
        location_id: UUID,
        quantity: Decimal,
        performed_by: UUID,
        cost_per_unit: Decimal | None = None,
        channel_id: UUID | None = None,
        reason: str | None = None,
        reference_type: str | None = None,
        reference_id: str | None = None,
    ) -> StockChange:
        """Book a customer return as a new ``return``-sourced cost layer."""
        quantity = require_positive(quantity)
        if cost_per_unit is not None:
            cost_per_unit = require_non_negative(cost_per_unit, "cost_per_unit")
        return self._increase(
            tenant_id, product_id, location_id, quantity, performed_by,
            movement_type=MovementType.RETURN,
            action=AuditAction.STOCK_RETURNED,
            source=BatchSource.RETURN,
            cost_per_unit=cost_per_unit,
            channel_id=channel_id,
            reason=reason,
            reference_type=reference_type,
            reference_id=reference_id,
        )

    def write_off(
        self,
        tenant_id: UUID,
        product_id: UUID,
        location_id: UUID,
        quantity: Decimal,
        reason: str,
        performed_by: UUID,
        batch_id: UUID | None = None,
        reference_type: str | None = None,
        reference_id: str | None = None,
    ) -> StockChange:
        """Remove damaged or expired stock; costed like a sale."""
        quantity = require_positive(quantity)
        return self._decrease(
            tenant_id, product_id, location_id, quantity, performed_by,
            movement_type=MovementType.WRITE_OFF,
            action=AuditAction.STOCK_WRITTEN_OFF,
            batch_id=batch_id,
            reason=reason,
            reference_type=reference_type,
            reference_id=reference_id,
        )

    # =========================================================================
    # Identity
    # =========================================================================

    def load_product(self, tenant_id: UUID, product_id: UUID) -> Product:
        return load_owned(self.session, Product, tenant_id, product_id, ProductNotFoundError)

    def load_location(self, tenant_id: UUID, location_id: UUID) -> Location:
        return load_owned(self.session, Location, tenant_id, location_id, LocationNotFoundError)

    def load_channel(self, tenant_id: UUID, channel_id: UUID) -> Channel:
        return load_owned(self.session, Channel, tenant_id, channel_id, ChannelNotFoundError)

    def check_batch_selection(
        self, product: Product, location_id: UUID, batch_id: UUID | None,
    ) -> StockBatch | None:
        """
        Validate the batch named for a consuming operation.

        SPECIFIC products must name a batch of this aggregate; other
        strategies ignore ``batch_id`` beyond its identity check.
        """
        strategy = CostingStrategy(product.inventory_strategy)
        if batch_id is None:
            if strategy.requires_batch:
                raise InvalidStrategyConfigurationError(strategy.value, "a batch id is required")
            return None

        batch = load_owned(self.session, StockBatch, product.tenant_id, batch_id, BatchNotFoundError)
        if strategy.requires_batch and (
            batch.product_id != product.id or batch.location_id != location_id
        ):
            raise InvalidStrategyConfigurationError(
                strategy.value,
                f"batch {batch_id} does not belong to this product and location",
            )
        return batch

    # =========================================================================
    # Aggregate primitives
    # =========================================================================

    def _select_level(self, tenant_id: UUID, product_id: UUID, location_id: UUID) -> StockLevel | None:
        return self.session.execute(
            select(StockLevel)
            .where(
                StockLevel.tenant_id == tenant_id,
                StockLevel.product_id == product_id,
                StockLevel.location_id == location_id,
            )
            .with_for_update()
            .execution_options(populate_existing=True)
        ).scalar_one_or_none()

    def lock_level(self, tenant_id: UUID, product_id: UUID, location_id: UUID) -> StockLevel:
        """
        Lock the aggregate's StockLevel row, creating it on first movement.

        Postconditions:
            - The row stays locked until the transaction ends.
        """
        level = self._select_level(tenant_id, product_id, location_id)
        if level is not None:
            return level

        savepoint = self.session.begin_nested()
        try:
            level = StockLevel(
                tenant_id=tenant_id,
                product_id=product_id,
                location_id=location_id,
                quantity_on_hand=ZERO,
                quantity_reserved=ZERO,
                quantity_in_transit=ZERO,
                updated_at=self.clock.now(),
            )
            self.session.add(level)
            self.session.flush()
            savepoint.commit()
            logger.debug(
                "stock_level_created",
                extra={"product_id": str(product_id), "location_id": str(location_id)},
            )
            return level
        except IntegrityError:
            logger.debug(
                "stock_level_create_race_retry",
                extra={"product_id": str(product_id), "location_id": str(location_id)},
            )
            savepoint.rollback()
            level = self._select_level(tenant_id, product_id, location_id)
            if level is None:
                raise
            return level

    def lock_levels(
        self, tenant_id: UUID, product_id: UUID, location_ids: Iterable[UUID],
    ) -> dict[UUID, StockLevel]:
        """Lock several aggregates of one product in deterministic order."""
        ordered = sorted(set(location_ids), key=str)
        return {loc: self.lock_level(tenant_id, product_id, loc) for loc in ordered}

    def ensure_available(self, product: Product, level: StockLevel, quantity: Decimal) -> None:
        if product.allow_negative_stock:
            return
        if level.quantity_available < quantity:
            logger.warning(
                "insufficient_stock",
                extra={
                    "product_id": str(level.product_id),
                    "location_id": str(level.location_id),
                    "requested": str(quantity),
                    "available": str(level.quantity_available),
                },
            )
            raise InsufficientStockError(
                product_id=str(level.product_id),
                location_id=str(level.location_id),
                requested=quantity,
                available=level.quantity_available,
            )

    def ensure_batch_unreserved(self, product: Product, batch: StockBatch | None, quantity: Decimal) -> None:
        """
        SPECIFIC batches: units held by active reservations on ``batch`` are
        not free for any other consumer.
        """
        if batch is None or not CostingStrategy(product.inventory_strategy).requires_batch:
            return
        held = self.session.execute(
            select(func.coalesce(func.sum(Reservation.quantity), 0)).where(
                Reservation.tenant_id == batch.tenant_id,
                Reservation.batch_id == batch.id,
                Reservation.status == ReservationStatus.ACTIVE.value,
            )
        ).scalar_one()
        free = batch.remaining_quantity - Decimal(str(held))
        if free < quantity:
            logger.warning(
                "batch_held_by_reservations",
                extra={
                    "batch_id": str(batch.id),
                    "requested": str(quantity),
                    "free": str(free),
                },
            )
            raise InsufficientStockError(
                product_id=str(batch.product_id),
                location_id=str(batch.location_id),
                requested=quantity,
                available=free,
                batch_id=str(batch.id),
            )

    def batches(self, tenant_id: UUID, product_id: UUID, location_id: UUID) -> list[StockBatch]:
        """Every cost layer of the aggregate, depleted ones included, locked."""
        return list(self.session.execute(
            select(StockBatch)
            .where(
                StockBatch.tenant_id == tenant_id,
                StockBatch.product_id == product_id,
                StockBatch.location_id == location_id,
            )
            .order_by(StockBatch.received_at, StockBatch.id)
            .with_for_update()
        ).scalars().all())

    @staticmethod
    def latest_cost(batches: list[StockBatch]) -> Decimal | None:
        if not batches:
            return None
        latest = max(batches, key=lambda b: (b.received_at, str(b.id)))
        return latest.cost_per_unit

    def consume(
        self, product: Product, location_id: UUID, quantity: Decimal, batch_id: UUID | None = None,
    ) -> CostingResult:
        """
        Cost ``quantity`` units through the CostingEngine and deplete the
        consumed batches (AVERAGE leaves batches untouched).
        """
        rows = self.batches(product.tenant_id, product.id, location_id)
        candidates = [
            BatchCandidate(b.id, b.remaining_quantity, b.cost_per_unit, b.received_at)
            for b in rows
        ]
        result = self.costing.compute(
            candidates,
            quantity,
            CostingStrategy(product.inventory_strategy),
            target_batch_id=batch_id,
            allow_shortfall=product.allow_negative_stock,
            shortfall_cost=self.latest_cost(rows),
            product_id=product.id,
            location_id=location_id,
        )

        if result.depletes_batches:
            by_id = {b.id: b for b in rows}
            for segment in result.batch_segments:
                by_id[segment.batch_id].remaining_quantity -= segment.quantity
            self.session.flush()
        return result

    def create_batch(
        self,
        tenant_id: UUID,
        product_id: UUID,
        location_id: UUID,
        quantity: Decimal,
        cost_per_unit: Decimal,
        source: BatchSource,
        batch_number: str | None = None,
        received_at: datetime | None = None,
        expiry_date: date | None = None,
    ) -> StockBatch:
        now = self.clock.now()
        batch = StockBatch(
            tenant_id=tenant_id,
            product_id=product_id,
            location_id=location_id,
            batch_number=batch_number or self._generate_batch_number(source, now),
            quantity=quantity,
            remaining_quantity=quantity,
            cost_per_unit=cost_per_unit,
            received_at=received_at or now,
            expiry_date=expiry_date,
            source=source.value,
        )
        self.session.add(batch)
        self.session.flush()
        return batch

    @staticmethod
    def _generate_batch_number(source: BatchSource, now: datetime) -> str:
        prefix = {
            BatchSource.RECEIPT: "RCV",
            BatchSource.ADJUSTMENT: "ADJ",
            BatchSource.TRANSFER: "TRF",
            BatchSource.RETURN: "RET",
        }[source]
        return f"{prefix}-{now:%Y%m%d}-{uuid4().hex[:8].upper()}"

    def append_movement(
        self,
        level: StockLevel,
        movement_type: MovementType,
        quantity: Decimal,
        performed_by: UUID,
        cost_per_unit: Decimal | None = None,
        batch_id: UUID | None = None,
        channel_id: UUID | None = None,
        reason: str | None = None,
        reference_type: str | None = None,
        reference_id: str | None = None,
    ) -> StockMovement:
        seq = self._sequence_service.next_value(
            SequenceService.tenant_sequence(SequenceService.STOCK_MOVEMENT, level.tenant_id)
        )
        movement = StockMovement(
            tenant_id=level.tenant_id,
            seq=seq,
            product_id=level.product_id,
            location_id=level.location_id,
            movement_type=movement_type.value,
            quantity=quantity,
            cost_per_unit=cost_per_unit,
            batch_id=batch_id,
            reference_type=reference_type,
            reference_id=reference_id,
            channel_id=channel_id,
            reason=reason,
            performed_by=performed_by,
            created_at=self.clock.now(),
        )
        self.session.add(movement)
        self.session.flush()
        return movement

    def record_level_change(
        self,
        product: Product,
        level: StockLevel,
        previous_state: dict[str, Decimal],
        movement_type: MovementType,
        action: AuditAction,
        performed_by: UUID,
        reason: str | None = None,
        details: dict[str, Any] | None = None,
    ) -> None:
        """Audit one StockLevel write and derive its events."""
        level.updated_at = self.clock.now()
        self.session.flush()

        new_state: dict[str, Any] = {**level_state(level), "movement_type": movement_type.value}
        if details:
            new_state.update(details)
        self.auditor.record(
            tenant_id=level.tenant_id,
            entity_type=STOCK_LEVEL_ENTITY,
            entity_id=level.id,
            action=action,
            performed_by=performed_by,
            previous_state=dict(previous_state),
            new_state=new_state,
            reason=reason,
        )

        available_before = (
            previous_state["quantity_on_hand"] - previous_state["quantity_reserved"]
        )
        self.publisher.stock_level_changed(product, level, available_before, movement_type)

    # =========================================================================
    # Shared increase / decrease paths
    # =========================================================================

    def _increase(
        self,
        tenant_id: UUID,
        product_id: UUID,
        location_id: UUID,
        quantity: Decimal,
        performed_by: UUID,
        *,
        movement_type: MovementType,
        action: AuditAction,
        source: BatchSource,
        cost_per_unit: Decimal | None,
        batch_number: str | None = None,
        expiry_date: date | None = None,
        received_at: datetime | None = None,
        channel_id: UUID | None = None,
        reason: str | None = None,
        reference_type: str | None = None,
        reference_id: str | None = None,
    ) -> StockChange:
        product = self.load_product(tenant_id, product_id)
        self.load_location(tenant_id, location_id)
        if channel_id is not None:
            self.load_channel(tenant_id, channel_id)

        level = self.lock_level(tenant_id, product_id, location_id)
        previous = level_state(level)

        if cost_per_unit is None:
            cost_per_unit = self.latest_cost(self.batches(tenant_id, product_id, location_id)) or ZERO

        batch = self.create_batch(
            tenant_id, product_id, location_id, quantity, cost_per_unit, source,
            batch_number=batch_number,
            received_at=received_at,
            expiry_date=expiry_date,
        )
        level.quantity_on_hand += quantity

        movement = self.append_movement(
            level, movement_type, quantity, performed_by,
            cost_per_unit=cost_per_unit,
            batch_id=batch.id,
            channel_id=channel_id,
            reason=reason,
            reference_type=reference_type,
            reference_id=reference_id,
        )
        self.record_level_change(
            product, level, previous, movement_type, action, performed_by,
            reason=reason,
            details={
                "quantity": quantity,
                "cost_per_unit": cost_per_unit,
                "batch_id": batch.id,
                "reference_type": reference_type,
                "reference_id": reference_id,
            },
        )

        logger.info(
            action.value,
            extra={
                "movement_type": movement_type.value,
                "product_id": str(product_id),
                "location_id": str(location_id),
                "quantity": str(quantity),
                "cost_per_unit": str(cost_per_unit),
                "batch_id": str(batch.id),
                "on_hand": str(level.quantity_on_hand),
            },
        )
        return StockChange(
            level=level.to_dto(),
            movements=(movement.to_dto(),),
            batch=batch.to_dto(),
        )

    def _decrease(
        self,
        tenant_id: UUID,
        product_id: UUID,
        location_id: UUID,
        quantity: Decimal,
        performed_by: UUID,
        *,
        movement_type: MovementType,
        action: AuditAction,
        batch_id: UUID | None = None,
        channel_id: UUID | None = None,
        reason: str | None = None,
        reference_type: str | None = None,
        reference_id: str | None = None,
    ) -> StockChange:
        product = self.load_product(tenant_id, product_id)
        self.load_location(tenant_id, location_id)
        if channel_id is not None:
            self.load_channel(tenant_id, channel_id)
        batch = self.check_batch_selection(product, location_id, batch_id)

        level = self.lock_level(tenant_id, product_id, location_id)
        self.ensure_available(product, level, quantity)
        self.ensure_batch_unreserved(product, batch, quantity)
        previous = level_state(level)

        costing = self.consume(product, location_id, quantity, batch_id)
        level.quantity_on_hand -= quantity

        movements = [
            self.append_movement(
                level, movement_type, segment.quantity, performed_by,
                cost_per_unit=segment.cost_per_unit,
                batch_id=segment.batch_id,
                channel_id=channel_id,
                reason=reason,
                reference_type=reference_type,
                reference_id=reference_id,
            )
            for segment in costing.segments
        ]
        self.record_level_change(
            product, level, previous, movement_type, action, performed_by,
            reason=reason,
            details={
                "quantity": quantity,
                "strategy": costing.strategy.value,
                "total_cost": costing.total_cost,
                "channel_id": channel_id,
                "reference_type": reference_type,
                "reference_id": reference_id,
            },
        )

        logger.info(
            action.value,
            extra={
                "movement_type": movement_type.value,
                "product_id": str(product_id),
                "location_id": str(location_id),
                "quantity": str(quantity),
                "strategy": costing.strategy.value,
                "segment_count": len(costing.segments),
                "total_cost": str(costing.total_cost),
                "on_hand": str(level.quantity_on_hand),
            },
        )
        return StockChange(
            level=level.to_dto(),
            movements=tuple(m.to_dto() for m in movements),
        )
