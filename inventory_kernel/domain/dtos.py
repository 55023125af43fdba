"""
Read-side data transfer objects and query filters.

Every DTO is a frozen dataclass produced by a model's ``to_dto()``.  Services
and selectors hand these out instead of live ORM rows, so callers can hold
them after the session closes and cannot mutate persisted state through them.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date, datetime
from decimal import Decimal
from typing import Any
from uuid import UUID

from inventory_kernel.domain.types import (
    AuditAction,
    BatchSource,
    ChannelType,
    CostingStrategy,
    EventType,
    LocationType,
    MovementType,
    ReservationStatus,
    SubscriptionStatus,
    TransferStatus,
)


# -----------------------------------------------------------------------------
# Catalog
# -----------------------------------------------------------------------------


@dataclass(frozen=True)
class ProductInfo:
    product_id: UUID
    tenant_id: UUID
    sku: str
    name: str
    description: str | None
    category: str | None
    unit_of_measure: str
    track_inventory: bool
    allow_negative_stock: bool
    inventory_strategy: CostingStrategy
    reorder_point: Decimal | None
    reorder_quantity: Decimal | None
    is_active: bool
    metadata: dict[str, Any] | None
    created_at: datetime
    updated_at: datetime


@dataclass(frozen=True)
class LocationInfo:
    location_id: UUID
    tenant_id: UUID
    code: str
    name: str
    location_type: LocationType
    address: dict[str, Any] | None
    parent_location_id: UUID | None
    is_active: bool
    created_at: datetime


@dataclass(frozen=True)
class ChannelInfo:
    """Channel view; the webhook secret is never exposed."""

    channel_id: UUID
    tenant_id: UUID
    code: str
    name: str
    channel_type: ChannelType
    webhook_url: str | None
    has_webhook_secret: bool
    is_active: bool
    created_at: datetime


@dataclass(frozen=True)
class SubscriptionInfo:
    subscription_id: UUID
    tenant_id: UUID
    channel_id: UUID
    product_id: UUID | None
    location_id: UUID | None
    event_types: tuple[EventType, ...]
    status: SubscriptionStatus


# -----------------------------------------------------------------------------
# Stock
# -----------------------------------------------------------------------------


@dataclass(frozen=True)
class StockLevelSnapshot:
    tenant_id: UUID
    product_id: UUID
    location_id: UUID
    quantity_on_hand: Decimal
    quantity_reserved: Decimal
    quantity_in_transit: Decimal
    updated_at: datetime | None = None

    @property
    def quantity_available(self) -> Decimal:
        return self.quantity_on_hand - self.quantity_reserved

    @classmethod
    def empty(cls, tenant_id: UUID, product_id: UUID, location_id: UUID) -> StockLevelSnapshot:
        """Snapshot for an aggregate that has never moved."""
        zero = Decimal("0")
        return cls(tenant_id, product_id, location_id, zero, zero, zero)


@dataclass(frozen=True)
class BatchInfo:
    batch_id: UUID
    tenant_id: UUID
    product_id: UUID
    location_id: UUID
    batch_number: str
    quantity: Decimal
    remaining_quantity: Decimal
    cost_per_unit: Decimal
    received_at: datetime
    expiry_date: date | None
    source: BatchSource


@dataclass(frozen=True)
class MovementRecord:
    movement_id: UUID
    seq: int
    tenant_id: UUID
    product_id: UUID
    location_id: UUID
    movement_type: MovementType
    quantity: Decimal
    cost_per_unit: Decimal | None
    batch_id: UUID | None
    reference_type: str | None
    reference_id: str | None
    channel_id: UUID | None
    reason: str | None
    performed_by: UUID
    created_at: datetime

    @property
    def total_cost(self) -> Decimal | None:
        if self.cost_per_unit is None:
            return None
        return self.quantity * self.cost_per_unit


@dataclass(frozen=True)
class TransferInfo:
    transfer_id: UUID
    tenant_id: UUID
    product_id: UUID
    from_location_id: UUID
    to_location_id: UUID
    quantity: Decimal
    status: TransferStatus
    initiated_by: UUID
    initiated_at: datetime
    completed_at: datetime | None
    cancelled_at: datetime | None
    notes: str | None


@dataclass(frozen=True)
class ReservationInfo:
    reservation_id: UUID
    tenant_id: UUID
    product_id: UUID
    location_id: UUID
    channel_id: UUID
    quantity: Decimal
    status: ReservationStatus
    reference_type: str | None
    reference_id: str | None
    expires_at: datetime | None
    batch_id: UUID | None
    created_by: UUID
    created_at: datetime
    resolved_at: datetime | None


# -----------------------------------------------------------------------------
# Audit and events
# -----------------------------------------------------------------------------


@dataclass(frozen=True)
class AuditEntry:
    audit_id: UUID
    seq: int
    tenant_id: UUID
    entity_type: str
    entity_id: UUID
    action: AuditAction
    previous_state: dict[str, Any] | None
    new_state: dict[str, Any] | None
    performed_by: UUID
    reason: str | None
    created_at: datetime
    hash: str


@dataclass(frozen=True)
class EventRecord:
    event_id: UUID
    tenant_id: UUID
    event_type: EventType
    product_id: UUID | None
    location_id: UUID | None
    channel_id: UUID | None
    payload: dict[str, Any]
    created_at: datetime
    processed_at: datetime | None


# -----------------------------------------------------------------------------
# Filters
# -----------------------------------------------------------------------------


@dataclass(frozen=True)
class StockLevelFilter:
    product_id: UUID | None = None
    location_id: UUID | None = None
    include_zero: bool = True


@dataclass(frozen=True)
class MovementFilter:
    product_id: UUID | None = None
    location_id: UUID | None = None
    movement_type: MovementType | None = None
    reference_type: str | None = None
    reference_id: str | None = None
    from_date: datetime | None = None
    to_date: datetime | None = None
    limit: int | None = None
    ascending: bool = False


@dataclass(frozen=True)
class AuditSearchFilter:
    entity_type: str | None = None
    entity_id: UUID | None = None
    action: AuditAction | None = None
    performed_by: UUID | None = None
    from_date: datetime | None = None
    to_date: datetime | None = None
    limit: int | None = None


@dataclass(frozen=True)
class TransferFilter:
    product_id: UUID | None = None
    location_id: UUID | None = None
    status: TransferStatus | None = None


@dataclass(frozen=True)
class ReservationFilter:
    product_id: UUID | None = None
    location_id: UUID | None = None
    channel_id: UUID | None = None
    status: ReservationStatus | None = None


@dataclass(frozen=True)
class EventFilter:
    event_type: EventType | None = None
    product_id: UUID | None = None
    location_id: UUID | None = None
    unprocessed_only: bool = False
    limit: int | None = None


@dataclass(frozen=True)
class CatalogFilter:
    active_only: bool = False
    category: str | None = None
    search: str | None = None
