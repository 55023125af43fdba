"""ORM model for derived inventory events (the outbound event outbox)."""

from __future__ import annotations

from datetime import datetime
from typing import TYPE_CHECKING
from uuid import UUID

from sqlalchemy import JSON, Index, String
from sqlalchemy.orm import Mapped, mapped_column

from inventory_kernel.db.base import Base, TenantScoped, UUIDString

if TYPE_CHECKING:
    from inventory_kernel.domain.dtos import EventRecord


class InventoryEvent(TenantScoped, Base):
    """
    An event derived inside a ledger unit of work.

    Contract:
        Inserted in the same transaction as the mutation that caused it,
        so an event exists if and only if its mutation committed.
        processed_at is the only column that may change afterwards.
    """

    __tablename__ = "inventory_events"

    __table_args__ = (
        Index("ix_inventory_events_type", "tenant_id", "event_type"),
        Index("ix_inventory_events_unprocessed", "processed_at"),
    )

    event_type: Mapped[str] = mapped_column(String(50), nullable=False)
    product_id: Mapped[UUID | None] = mapped_column(UUIDString(), nullable=True)
    location_id: Mapped[UUID | None] = mapped_column(UUIDString(), nullable=True)
    channel_id: Mapped[UUID | None] = mapped_column(UUIDString(), nullable=True)
    payload: Mapped[dict] = mapped_column(JSON, nullable=False)
    created_at: Mapped[datetime] = mapped_column(nullable=False)
    processed_at: Mapped[datetime | None] = mapped_column(nullable=True)

    def __repr__(self) -> str:
        return f"<InventoryEvent {self.event_type} {self.id}>"

    def to_dto(self) -> EventRecord:
        from inventory_kernel.domain.dtos import EventRecord
        from inventory_kernel.domain.types import EventType

        return EventRecord(
            event_id=self.id,
            tenant_id=self.tenant_id,
            event_type=EventType(self.event_type),
            product_id=self.product_id,
            location_id=self.location_id,
            channel_id=self.channel_id,
            payload=dict(self.payload),
            created_at=self.created_at,
            processed_at=self.processed_at,
        )
