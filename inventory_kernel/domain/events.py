"""
Event payloads -- one frozen dataclass per event type.

Every payload variant declares its ``event_type`` and renders to a plain
JSON-compatible dict via ``to_payload()``.  ``EventPayload`` is the closed
union the publisher accepts; adding an event type means adding a variant
here and a member to ``EventType``.
"""

from __future__ import annotations

from dataclasses import asdict, dataclass
from decimal import Decimal
from typing import Any, ClassVar, Union
from uuid import UUID

from inventory_kernel.domain.types import EventType, MovementType
from inventory_kernel.utils.hashing import decimal_to_str


def _jsonable(value: Any) -> Any:
    if isinstance(value, UUID):
        return str(value)
    if isinstance(value, Decimal):
        return decimal_to_str(value)
    if isinstance(value, (MovementType, EventType)):
        return value.value
    if isinstance(value, dict):
        return {k: _jsonable(v) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return [_jsonable(v) for v in value]
    return value


@dataclass(frozen=True)
class _Payload:
    event_type: ClassVar[EventType]

    def to_payload(self) -> dict[str, Any]:
        return {k: _jsonable(v) for k, v in asdict(self).items()}


# ---------------------------------------------------------------------------
# Stock level
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class StockUpdated(_Payload):
    event_type: ClassVar[EventType] = EventType.STOCK_UPDATED

    product_id: UUID
    location_id: UUID
    movement_type: MovementType
    quantity_on_hand: Decimal
    quantity_reserved: Decimal
    quantity_in_transit: Decimal
    quantity_available: Decimal
    previous_quantity_available: Decimal


@dataclass(frozen=True)
class StockLow(_Payload):
    event_type: ClassVar[EventType] = EventType.STOCK_LOW

    product_id: UUID
    location_id: UUID
    quantity_available: Decimal
    reorder_point: Decimal
    reorder_quantity: Decimal | None


@dataclass(frozen=True)
class StockOut(_Payload):
    event_type: ClassVar[EventType] = EventType.STOCK_OUT

    product_id: UUID
    location_id: UUID
    quantity_available: Decimal


# ---------------------------------------------------------------------------
# Reservations
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class _ReservationPayload(_Payload):
    reservation_id: UUID
    product_id: UUID
    location_id: UUID
    channel_id: UUID
    quantity: Decimal
    reference_type: str | None
    reference_id: str | None


@dataclass(frozen=True)
class ReservationCreated(_ReservationPayload):
    event_type: ClassVar[EventType] = EventType.RESERVATION_CREATED


@dataclass(frozen=True)
class ReservationFulfilled(_ReservationPayload):
    event_type: ClassVar[EventType] = EventType.RESERVATION_FULFILLED


@dataclass(frozen=True)
class ReservationCancelled(_ReservationPayload):
    event_type: ClassVar[EventType] = EventType.RESERVATION_CANCELLED


@dataclass(frozen=True)
class ReservationExpired(_ReservationPayload):
    event_type: ClassVar[EventType] = EventType.RESERVATION_EXPIRED


# ---------------------------------------------------------------------------
# Transfers
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class _TransferPayload(_Payload):
    transfer_id: UUID
    product_id: UUID
    from_location_id: UUID
    to_location_id: UUID
    quantity: Decimal


@dataclass(frozen=True)
class TransferInitiated(_TransferPayload):
    event_type: ClassVar[EventType] = EventType.TRANSFER_INITIATED


@dataclass(frozen=True)
class TransferCompleted(_TransferPayload):
    event_type: ClassVar[EventType] = EventType.TRANSFER_COMPLETED


@dataclass(frozen=True)
class TransferCancelled(_TransferPayload):
    event_type: ClassVar[EventType] = EventType.TRANSFER_CANCELLED


# ---------------------------------------------------------------------------
# Catalog
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class ProductCreated(_Payload):
    event_type: ClassVar[EventType] = EventType.PRODUCT_CREATED

    product_id: UUID
    sku: str
    name: str
    inventory_strategy: str


@dataclass(frozen=True)
class ProductUpdated(_Payload):
    event_type: ClassVar[EventType] = EventType.PRODUCT_UPDATED

    product_id: UUID
    sku: str
    changed_fields: tuple[str, ...]


EventPayload = Union[
    StockUpdated,
    StockLow,
    StockOut,
    ReservationCreated,
    ReservationFulfilled,
    ReservationCancelled,
    ReservationExpired,
    TransferInitiated,
    TransferCompleted,
    TransferCancelled,
    ProductCreated,
    ProductUpdated,
]


def locations_of(payload: EventPayload) -> tuple[UUID, ...]:
    """Every location an event concerns; transfers concern both ends."""
    if isinstance(payload, _TransferPayload):
        return (payload.from_location_id, payload.to_location_id)
    loc = getattr(payload, "location_id", None)
    return (loc,) if loc is not None else ()


def channel_of(payload: EventPayload) -> UUID | None:
    return getattr(payload, "channel_id", None)
