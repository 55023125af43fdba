"""
TransferCoordinator -- moves stock between two locations of one tenant.

Responsibility:
    Drives the StockTransfer state machine (TRANSFER_WORKFLOW) over two
    aggregates, using only StockLedger primitives for quantity changes.

    initiate:  source on_hand -> destination in_transit
    complete:  destination in_transit -> destination on_hand
    cancel:    destination in_transit -> source on_hand

    The cost layers consumed at the source travel with the stock: they are
    stored on the transfer row, rebuilt as ``transfer``-sourced batches at
    the destination on completion, and restored onto the original source
    batches on cancellation.

Invariants enforced:
    - Conservation: source on_hand + destination in_transit + destination
      on_hand is constant across every step.
    - At most one open transfer per (product, source, destination).
    - Both aggregates are locked in sorted order before either is mutated.
    - completed and cancelled are terminal.

Failure modes:
    - ValidationError if source and destination are the same location.
    - DuplicateTransferError if the route already has an open transfer.
    - InsufficientStockError if the source cannot supply the quantity.
    - InvalidStateTransitionError on complete/cancel from a terminal state.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date, datetime
from decimal import Decimal
from typing import Any
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.orm import Session

from inventory_engines.costing import CostingResult
from inventory_kernel.domain.clock import Clock
from inventory_kernel.domain.dtos import MovementRecord, StockLevelSnapshot, TransferInfo
from inventory_kernel.domain.events import TransferCancelled, TransferCompleted, TransferInitiated
from inventory_kernel.domain.types import AuditAction, BatchSource, MovementType, TransferStatus
from inventory_kernel.domain.workflows import TRANSFER_WORKFLOW, require_transition
from inventory_kernel.exceptions import (
    DuplicateTransferError,
    InsufficientStockError,
    TransferNotFoundError,
    ValidationError,
)
from inventory_kernel.logging_config import get_logger
from inventory_kernel.models import StockBatch, StockLevel, StockTransfer
from inventory_kernel.selectors.base import load_owned
from inventory_kernel.services.base import BaseService
from inventory_kernel.utils.hashing import decimal_to_str
from inventory_services.stock_ledger import StockLedger, level_state, require_positive

logger = get_logger("services.transfers")

TRANSFER_ENTITY = "StockTransfer"
TRANSFER_REFERENCE = "transfer"

_OPEN_STATUSES = tuple(s.value for s in TransferStatus if s.is_open)


@dataclass(frozen=True)
class TransferOutcome:
    transfer: TransferInfo
    source: StockLevelSnapshot | None
    destination: StockLevelSnapshot | None
    movements: tuple[MovementRecord, ...]


@dataclass(frozen=True)
class _Layer:
    """One carried cost layer, decoded from ``StockTransfer.cost_segments``."""

    batch_id: UUID | None
    quantity: Decimal
    cost_per_unit: Decimal
    received_at: datetime
    batch_number: str | None
    expiry_date: date | None

    @classmethod
    def decode(cls, raw: dict[str, Any]) -> _Layer:
        return cls(
            batch_id=UUID(raw["batch_id"]) if raw.get("batch_id") else None,
            quantity=Decimal(raw["quantity"]),
            cost_per_unit=Decimal(raw["cost_per_unit"]),
            received_at=datetime.fromisoformat(raw["received_at"]),
            batch_number=raw.get("batch_number"),
            expiry_date=date.fromisoformat(raw["expiry_date"]) if raw.get("expiry_date") else None,
        )


class TransferCoordinator(BaseService):
    """
    Inter-location transfers built on StockLedger primitives.

    Non-goals:
        - Does NOT call ``session.commit()``.
        - No approval gate: ``pending`` is validated in memory and the
          transfer is persisted directly as ``in_transit``.
    """

    def __init__(
        self,
        session: Session,
        clock: Clock | None = None,
        ledger: StockLedger | None = None,
    ):
        super().__init__(session, clock)
        self._ledger = ledger or StockLedger(session, self.clock)

    def load(self, tenant_id: UUID, transfer_id: UUID) -> StockTransfer:
        return load_owned(self.session, StockTransfer, tenant_id, transfer_id, TransferNotFoundError)

    def _open_transfer_on_route(
        self, tenant_id: UUID, product_id: UUID, from_location_id: UUID, to_location_id: UUID,
    ) -> StockTransfer | None:
        return self.session.execute(
            select(StockTransfer)
            .where(
                StockTransfer.tenant_id == tenant_id,
                StockTransfer.product_id == product_id,
                StockTransfer.from_location_id == from_location_id,
                StockTransfer.to_location_id == to_location_id,
                StockTransfer.status.in_(_OPEN_STATUSES),
            )
            .limit(1)
        ).scalar_one_or_none()

    # -------------------------------------------------------------------------
    # initiate
    # -------------------------------------------------------------------------

    def initiate(
        self,
        tenant_id: UUID,
        product_id: UUID,
        from_location_id: UUID,
        to_location_id: UUID,
        quantity: Decimal,
        performed_by: UUID,
        batch_id: UUID | None = None,
        notes: str | None = None,
    ) -> TransferOutcome:
        quantity = require_positive(quantity)
        ledger = self._ledger

        product = ledger.load_product(tenant_id, product_id)
        ledger.load_location(tenant_id, from_location_id)
        ledger.load_location(tenant_id, to_location_id)
        if from_location_id == to_location_id:
            raise ValidationError("Transfer source and destination must differ")

        existing = self._open_transfer_on_route(tenant_id, product_id, from_location_id, to_location_id)
        if existing is not None:
            logger.warning(
                "transfer_duplicate_rejected",
                extra={"existing_transfer_id": str(existing.id)},
            )
            raise DuplicateTransferError(str(existing.id))

        batch = ledger.check_batch_selection(product, from_location_id, batch_id)
        require_transition(TRANSFER_WORKFLOW, "new", TRANSFER_WORKFLOW.initial_state, "ship")

        levels = ledger.lock_levels(tenant_id, product_id, (from_location_id, to_location_id))
        source, destination = levels[from_location_id], levels[to_location_id]

        # Transfers never drive the source negative, whatever the product allows
        if source.quantity_available < quantity:
            logger.warning(
                "transfer_insufficient_stock",
                extra={
                    "requested": str(quantity),
                    "available": str(source.quantity_available),
                },
            )
            raise InsufficientStockError(
                product_id=str(product_id),
                location_id=str(from_location_id),
                requested=quantity,
                available=source.quantity_available,
            )
        ledger.ensure_batch_unreserved(product, batch, quantity)

        source_before, destination_before = level_state(source), level_state(destination)
        costing = ledger.consume(product, from_location_id, quantity, batch_id)

        now = self.clock.now()
        transfer = StockTransfer(
            tenant_id=tenant_id,
            product_id=product_id,
            from_location_id=from_location_id,
            to_location_id=to_location_id,
            quantity=quantity,
            status=TransferStatus.IN_TRANSIT.value,
            cost_segments=self._encode_layers(costing, now),
            notes=notes,
            initiated_by=performed_by,
            initiated_at=now,
        )
        self.session.add(transfer)
        self.session.flush()

        source.quantity_on_hand -= quantity
        destination.quantity_in_transit += quantity

        movements = [
            ledger.append_movement(
                source, MovementType.TRANSFER_OUT, segment.quantity, performed_by,
                cost_per_unit=segment.cost_per_unit,
                batch_id=segment.batch_id,
                reference_type=TRANSFER_REFERENCE,
                reference_id=str(transfer.id),
            )
            for segment in costing.segments
        ]

        self._record(
            transfer, AuditAction.TRANSFER_INITIATED, performed_by,
            previous_state=None,
            levels=((source, source_before), (destination, destination_before)),
            movement_type=MovementType.TRANSFER_OUT,
        )
        ledger.publisher.publish(tenant_id, TransferInitiated(**self._payload_fields(transfer)))

        logger.info(
            "transfer_initiated",
            extra={
                "transfer_id": str(transfer.id),
                "from_location_id": str(from_location_id),
                "to_location_id": str(to_location_id),
                "quantity": str(quantity),
                "layer_count": len(costing.segments),
            },
        )
        return TransferOutcome(
            transfer=transfer.to_dto(),
            source=source.to_dto(),
            destination=destination.to_dto(),
            movements=tuple(m.to_dto() for m in movements),
        )

    # -------------------------------------------------------------------------
    # complete
    # -------------------------------------------------------------------------

    def complete(self, tenant_id: UUID, transfer_id: UUID, performed_by: UUID) -> TransferOutcome:
        ledger = self._ledger
        transfer = self.load(tenant_id, transfer_id)
        require_transition(TRANSFER_WORKFLOW, transfer.id, transfer.status, "complete")

        destination = ledger.lock_level(tenant_id, transfer.product_id, transfer.to_location_id)
        destination_before = level_state(destination)
        previous_state = transfer.state()

        destination.quantity_in_transit -= transfer.quantity
        destination.quantity_on_hand += transfer.quantity

        movements = []
        for layer in self._decode_layers(transfer):
            batch = ledger.create_batch(
                tenant_id, transfer.product_id, transfer.to_location_id,
                layer.quantity, layer.cost_per_unit, BatchSource.TRANSFER,
                batch_number=layer.batch_number,
                received_at=layer.received_at,
                expiry_date=layer.expiry_date,
            )
            movements.append(ledger.append_movement(
                destination, MovementType.TRANSFER_IN, layer.quantity, performed_by,
                cost_per_unit=layer.cost_per_unit,
                batch_id=batch.id,
                reference_type=TRANSFER_REFERENCE,
                reference_id=str(transfer.id),
            ))

        transfer.status = TransferStatus.COMPLETED.value
        transfer.completed_at = self.clock.now()

        self._record(
            transfer, AuditAction.TRANSFER_COMPLETED, performed_by,
            previous_state=previous_state,
            levels=((destination, destination_before),),
            movement_type=MovementType.TRANSFER_IN,
        )
        ledger.publisher.publish(tenant_id, TransferCompleted(**self._payload_fields(transfer)))

        logger.info(
            "transfer_completed",
            extra={"transfer_id": str(transfer.id), "quantity": str(transfer.quantity)},
        )
        return TransferOutcome(
            transfer=transfer.to_dto(),
            source=None,
            destination=destination.to_dto(),
            movements=tuple(m.to_dto() for m in movements),
        )

    # -------------------------------------------------------------------------
    # cancel
    # -------------------------------------------------------------------------

    def cancel(
        self,
        tenant_id: UUID,
        transfer_id: UUID,
        performed_by: UUID,
        reason: str | None = None,
    ) -> TransferOutcome:
        ledger = self._ledger
        transfer = self.load(tenant_id, transfer_id)
        require_transition(TRANSFER_WORKFLOW, transfer.id, transfer.status, "cancel")
        previous_state = transfer.state()

        source = destination = None
        movements = []
        touched: tuple[tuple[StockLevel, dict[str, Decimal]], ...] = ()

        if transfer.status == TransferStatus.IN_TRANSIT.value:
            levels = ledger.lock_levels(
                tenant_id, transfer.product_id, (transfer.from_location_id, transfer.to_location_id),
            )
            source = levels[transfer.from_location_id]
            destination = levels[transfer.to_location_id]
            touched = ((source, level_state(source)), (destination, level_state(destination)))

            destination.quantity_in_transit -= transfer.quantity
            source.quantity_on_hand += transfer.quantity

            for layer in self._decode_layers(transfer):
                if layer.batch_id is not None:
                    batch = self.session.get(StockBatch, layer.batch_id)
                    batch.remaining_quantity += layer.quantity
                movements.append(ledger.append_movement(
                    source, MovementType.ADJUSTMENT_INCREASE, layer.quantity, performed_by,
                    cost_per_unit=layer.cost_per_unit,
                    batch_id=layer.batch_id,
                    reason=reason or "transfer cancelled",
                    reference_type=TRANSFER_REFERENCE,
                    reference_id=str(transfer.id),
                ))

        transfer.status = TransferStatus.CANCELLED.value
        transfer.cancelled_at = self.clock.now()

        self._record(
            transfer, AuditAction.TRANSFER_CANCELLED, performed_by,
            previous_state=previous_state,
            levels=touched,
            movement_type=MovementType.ADJUSTMENT_INCREASE,
            reason=reason,
        )
        ledger.publisher.publish(tenant_id, TransferCancelled(**self._payload_fields(transfer)))

        logger.info(
            "transfer_cancelled",
            extra={"transfer_id": str(transfer.id), "previous_status": previous_state["status"]},
        )
        return TransferOutcome(
            transfer=transfer.to_dto(),
            source=source.to_dto() if source is not None else None,
            destination=destination.to_dto() if destination is not None else None,
            movements=tuple(m.to_dto() for m in movements),
        )

    # -------------------------------------------------------------------------
    # Helpers
    # -------------------------------------------------------------------------

    def _record(
        self,
        transfer: StockTransfer,
        action: AuditAction,
        performed_by: UUID,
        previous_state: dict[str, Any] | None,
        levels: tuple[tuple[StockLevel, dict[str, Decimal]], ...],
        movement_type: MovementType,
        reason: str | None = None,
    ) -> None:
        """Audit each touched level and the transfer itself, then derive level events."""
        product = self._ledger.load_product(transfer.tenant_id, transfer.product_id)
        for level, before in levels:
            self._ledger.record_level_change(
                product, level, before, movement_type, action, performed_by,
                reason=reason,
                details={"reference_type": TRANSFER_REFERENCE, "reference_id": str(transfer.id)},
            )
        self.session.flush()
        self._ledger.auditor.record(
            tenant_id=transfer.tenant_id,
            entity_type=TRANSFER_ENTITY,
            entity_id=transfer.id,
            action=action,
            performed_by=performed_by,
            previous_state=previous_state,
            new_state=transfer.state(),
            reason=reason,
        )

    def _encode_layers(self, costing: CostingResult, now: datetime) -> list[dict[str, Any]]:
        layers = []
        for segment in costing.segments:
            batch = self.session.get(StockBatch, segment.batch_id) if segment.batch_id else None
            layers.append({
                "batch_id": str(segment.batch_id) if segment.batch_id else None,
                "quantity": decimal_to_str(segment.quantity),
                "cost_per_unit": decimal_to_str(segment.cost_per_unit),
                "received_at": (batch.received_at if batch else now).isoformat(),
                "batch_number": batch.batch_number if batch else None,
                "expiry_date": batch.expiry_date.isoformat() if batch and batch.expiry_date else None,
            })
        return layers

    @staticmethod
    def _decode_layers(transfer: StockTransfer) -> list[_Layer]:
        return [_Layer.decode(raw) for raw in transfer.cost_segments]

    @staticmethod
    def _payload_fields(transfer: StockTransfer) -> dict[str, Any]:
        return {
            "transfer_id": transfer.id,
            "product_id": transfer.product_id,
            "from_location_id": transfer.from_location_id,
            "to_location_id": transfer.to_location_id,
            "quantity": transfer.quantity,
        }
