"""
ReservationManager -- channel holds on available stock.

Responsibility:
    Drives the Reservation state machine (RESERVATION_WORKFLOW) on one
    aggregate, using StockLedger primitives for every quantity change.

    create:   reserved += q                  (``reservation`` movement)
    fulfill:  on_hand -= q, reserved -= q    (``sale`` movements, costed)
    cancel:   reserved -= q                  (``reservation_release``)
    expire:   reserved -= q                  (``reservation_release``)

Invariants enforced:
    - A reservation never exceeds available stock at creation, so
      reserved <= on_hand holds regardless of the negative-stock flag.
    - fulfilled, cancelled and expired are terminal.
    - Expiry only happens through ``expire``/``expire_due``; no other
      operation expires reservations as a side effect.

Failure modes:
    - InsufficientStockError if available (or the named SPECIFIC batch, net
      of its other active holds) cannot cover the quantity.
    - InvalidStateTransitionError on any action from a terminal state, or
      on expiring a reservation that is not yet due.
    - ValidationError if ``expires_at`` is not in the future.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.orm import Session

from inventory_kernel.domain.clock import Clock
from inventory_kernel.domain.dtos import MovementRecord, ReservationInfo, StockLevelSnapshot
from inventory_kernel.domain.events import (
    ReservationCancelled,
    ReservationCreated,
    ReservationExpired,
    ReservationFulfilled,
)
from inventory_kernel.domain.types import AuditAction, MovementType, ReservationStatus
from inventory_kernel.domain.workflows import RESERVATION_WORKFLOW, require_transition
from inventory_kernel.exceptions import (
    InsufficientStockError,
    InvalidStateTransitionError,
    ReservationNotFoundError,
    ValidationError,
)
from inventory_kernel.logging_config import get_logger
from inventory_kernel.models import Reservation, StockLevel, StockMovement
from inventory_kernel.selectors.base import load_owned
from inventory_kernel.services.base import BaseService
from inventory_services.stock_ledger import StockLedger, level_state, require_positive

logger = get_logger("services.reservations")

RESERVATION_ENTITY = "Reservation"
RESERVATION_REFERENCE = "reservation"

_PAYLOAD_BY_ACTION = {
    "fulfill": ReservationFulfilled,
    "cancel": ReservationCancelled,
    "expire": ReservationExpired,
}

_AUDIT_BY_ACTION = {
    "fulfill": AuditAction.RESERVATION_FULFILLED,
    "cancel": AuditAction.RESERVATION_CANCELLED,
    "expire": AuditAction.RESERVATION_EXPIRED,
}


@dataclass(frozen=True)
class ReservationOutcome:
    reservation: ReservationInfo
    level: StockLevelSnapshot
    movements: tuple[MovementRecord, ...]


class ReservationManager(BaseService):
    """
    Reservation lifecycle built on StockLedger primitives.

    Non-goals:
        - Does NOT call ``session.commit()``.
        - Does NOT run the expiry sweep on a schedule
          (see ReservationExpirySweeper).
    """

    def __init__(
        self,
        session: Session,
        clock: Clock | None = None,
        ledger: StockLedger | None = None,
    ):
        super().__init__(session, clock)
        self._ledger = ledger or StockLedger(session, self.clock)

    def load(self, tenant_id: UUID, reservation_id: UUID) -> Reservation:
        return load_owned(self.session, Reservation, tenant_id, reservation_id, ReservationNotFoundError)

    # -------------------------------------------------------------------------
    # create
    # -------------------------------------------------------------------------

    def create(
        self,
        tenant_id: UUID,
        product_id: UUID,
        location_id: UUID,
        channel_id: UUID,
        quantity: Decimal,
        performed_by: UUID,
        expires_at: datetime | None = None,
        reference_type: str | None = None,
        reference_id: str | None = None,
        batch_id: UUID | None = None,
    ) -> ReservationOutcome:
        quantity = require_positive(quantity)
        ledger = self._ledger

        product = ledger.load_product(tenant_id, product_id)
        ledger.load_location(tenant_id, location_id)
        ledger.load_channel(tenant_id, channel_id)

        now = self.clock.now()
        if expires_at is not None and expires_at.tzinfo is None:
            raise ValidationError("expires_at must be timezone-aware")
        if expires_at is not None and expires_at <= now:
            raise ValidationError(f"expires_at must be in the future, got {expires_at.isoformat()}")

        batch = ledger.check_batch_selection(product, location_id, batch_id)

        level = ledger.lock_level(tenant_id, product_id, location_id)
        if level.quantity_available < quantity:
            logger.warning(
                "reservation_insufficient_stock",
                extra={"requested": str(quantity), "available": str(level.quantity_available)},
            )
            raise InsufficientStockError(
                product_id=str(product_id),
                location_id=str(location_id),
                requested=quantity,
                available=level.quantity_available,
            )
        ledger.ensure_batch_unreserved(product, batch, quantity)

        before = level_state(level)
        reservation = Reservation(
            tenant_id=tenant_id,
            product_id=product_id,
            location_id=location_id,
            channel_id=channel_id,
            quantity=quantity,
            status=RESERVATION_WORKFLOW.initial_state,
            reference_type=reference_type,
            reference_id=reference_id,
            expires_at=expires_at,
            batch_id=batch_id,
            created_by=performed_by,
            created_at=now,
        )
        self.session.add(reservation)
        self.session.flush()

        level.quantity_reserved += quantity
        movement = ledger.append_movement(
            level, MovementType.RESERVATION, quantity, performed_by,
            channel_id=channel_id,
            reference_type=RESERVATION_REFERENCE,
            reference_id=str(reservation.id),
        )

        self._record(
            reservation, level, before, MovementType.RESERVATION,
            AuditAction.RESERVATION_CREATED, performed_by, previous_state=None,
        )
        ledger.publisher.publish(tenant_id, self._payload(ReservationCreated, reservation))

        logger.info(
            "reservation_created",
            extra={
                "reservation_id": str(reservation.id),
                "channel_id": str(channel_id),
                "quantity": str(quantity),
                "expires_at": expires_at.isoformat() if expires_at else None,
            },
        )
        return ReservationOutcome(reservation.to_dto(), level.to_dto(), (movement.to_dto(),))

    # -------------------------------------------------------------------------
    # fulfill / cancel / expire
    # -------------------------------------------------------------------------

    def fulfill(self, tenant_id: UUID, reservation_id: UUID, performed_by: UUID) -> ReservationOutcome:
        """Convert the hold into a sale; cost is attributed like ``sell``."""
        ledger = self._ledger
        reservation = self.load(tenant_id, reservation_id)
        require_transition(RESERVATION_WORKFLOW, reservation.id, reservation.status, "fulfill")

        product = ledger.load_product(tenant_id, reservation.product_id)
        level = ledger.lock_level(tenant_id, reservation.product_id, reservation.location_id)
        before = level_state(level)
        previous_state = reservation.state()

        costing = ledger.consume(product, reservation.location_id, reservation.quantity, reservation.batch_id)
        level.quantity_on_hand -= reservation.quantity
        level.quantity_reserved -= reservation.quantity

        movements = [
            ledger.append_movement(
                level, MovementType.SALE, segment.quantity, performed_by,
                cost_per_unit=segment.cost_per_unit,
                batch_id=segment.batch_id,
                channel_id=reservation.channel_id,
                reference_type=RESERVATION_REFERENCE,
                reference_id=str(reservation.id),
            )
            for segment in costing.segments
        ]
        return self._resolve(
            reservation, level, before, previous_state, "fulfill",
            MovementType.SALE, performed_by, movements,
        )

    def cancel(
        self,
        tenant_id: UUID,
        reservation_id: UUID,
        performed_by: UUID,
        reason: str | None = None,
    ) -> ReservationOutcome:
        reservation = self.load(tenant_id, reservation_id)
        require_transition(RESERVATION_WORKFLOW, reservation.id, reservation.status, "cancel")
        return self._release(reservation, "cancel", performed_by, reason)

    def expire(self, tenant_id: UUID, reservation_id: UUID, performed_by: UUID) -> ReservationOutcome:
        """Expire one reservation whose ``expires_at`` has passed."""
        reservation = self.load(tenant_id, reservation_id)
        require_transition(RESERVATION_WORKFLOW, reservation.id, reservation.status, "expire")
        if reservation.expires_at is None or reservation.expires_at > self.clock.now():
            raise InvalidStateTransitionError(
                entity_type=RESERVATION_ENTITY,
                entity_id=str(reservation.id),
                current_state=reservation.status,
                action="expire",
            )
        return self._release(reservation, "expire", performed_by, "reservation expired")

    def due_reservations(self, tenant_id: UUID, now: datetime | None = None) -> list[Reservation]:
        """Active reservations with ``expires_at <= now``, oldest deadline first."""
        now = now or self.clock.now()
        return list(self.session.execute(
            select(Reservation)
            .where(
                Reservation.tenant_id == tenant_id,
                Reservation.status == ReservationStatus.ACTIVE.value,
                Reservation.expires_at.is_not(None),
                Reservation.expires_at <= now,
            )
            .order_by(Reservation.expires_at, Reservation.id)
        ).scalars().all())

    def expire_due(
        self,
        tenant_id: UUID,
        performed_by: UUID,
        now: datetime | None = None,
        only: set[UUID] | None = None,
    ) -> list[ReservationOutcome]:
        """
        Sweep: expire every due reservation of the tenant.

        ``only`` restricts the sweep to reservations whose aggregates the
        caller has locked.
        """
        now = now or self.clock.now()
        outcomes = []
        for reservation in self.due_reservations(tenant_id, now):
            if only is not None and reservation.id not in only:
                continue
            outcomes.append(self._release(reservation, "expire", performed_by, "reservation expired"))

        logger.info(
            "reservations_expired",
            extra={"count": len(outcomes), "as_of": now.isoformat()},
        )
        return outcomes

    # -------------------------------------------------------------------------
    # Helpers
    # -------------------------------------------------------------------------

    def _release(
        self,
        reservation: Reservation,
        action: str,
        performed_by: UUID,
        reason: str | None,
    ) -> ReservationOutcome:
        ledger = self._ledger
        level = ledger.lock_level(reservation.tenant_id, reservation.product_id, reservation.location_id)
        before = level_state(level)
        previous_state = reservation.state()

        level.quantity_reserved -= reservation.quantity
        movement = ledger.append_movement(
            level, MovementType.RESERVATION_RELEASE, reservation.quantity, performed_by,
            channel_id=reservation.channel_id,
            reason=reason,
            reference_type=RESERVATION_REFERENCE,
            reference_id=str(reservation.id),
        )
        return self._resolve(
            reservation, level, before, previous_state, action,
            MovementType.RESERVATION_RELEASE, performed_by, [movement], reason,
        )

    def _resolve(
        self,
        reservation: Reservation,
        level: StockLevel,
        before: dict[str, Decimal],
        previous_state: dict,
        action: str,
        movement_type: MovementType,
        performed_by: UUID,
        movements: list[StockMovement],
        reason: str | None = None,
    ) -> ReservationOutcome:
        transition = require_transition(RESERVATION_WORKFLOW, reservation.id, reservation.status, action)
        reservation.status = transition.to_state
        reservation.resolved_at = self.clock.now()

        self._record(
            reservation, level, before, movement_type, _AUDIT_BY_ACTION[action],
            performed_by, previous_state=previous_state, reason=reason,
        )
        self._ledger.publisher.publish(
            reservation.tenant_id, self._payload(_PAYLOAD_BY_ACTION[action], reservation),
        )

        logger.info(
            f"reservation_{transition.to_state}",
            extra={"reservation_id": str(reservation.id), "quantity": str(reservation.quantity)},
        )
        return ReservationOutcome(
            reservation.to_dto(), level.to_dto(), tuple(m.to_dto() for m in movements),
        )

    def _record(
        self,
        reservation: Reservation,
        level: StockLevel,
        before: dict[str, Decimal],
        movement_type: MovementType,
        action: AuditAction,
        performed_by: UUID,
        previous_state: dict | None,
        reason: str | None = None,
    ) -> None:
        product = self._ledger.load_product(reservation.tenant_id, reservation.product_id)
        self._ledger.record_level_change(
            product, level, before, movement_type, action, performed_by,
            reason=reason,
            details={"reference_type": RESERVATION_REFERENCE, "reference_id": str(reservation.id)},
        )
        self.session.flush()
        self._ledger.auditor.record(
            tenant_id=reservation.tenant_id,
            entity_type=RESERVATION_ENTITY,
            entity_id=reservation.id,
            action=action,
            performed_by=performed_by,
            previous_state=previous_state,
            new_state=reservation.state(),
            reason=reason,
        )

    @staticmethod
    def _payload(payload_type, reservation: Reservation):
        return payload_type(
            reservation_id=reservation.id,
            product_id=reservation.product_id,
            location_id=reservation.location_id,
            channel_id=reservation.channel_id,
            quantity=reservation.quantity,
            reference_type=reservation.reference_type,
            reference_id=reservation.reference_id,
        )
