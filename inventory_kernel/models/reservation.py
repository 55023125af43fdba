"""ORM model for channel reservations against available stock."""

from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from typing import TYPE_CHECKING, Any
from uuid import UUID

from sqlalchemy import ForeignKey, Index, String
from sqlalchemy.orm import Mapped, mapped_column

from inventory_kernel.db.base import Base, TenantScoped, UUIDString

if TYPE_CHECKING:
    from inventory_kernel.domain.dtos import ReservationInfo


class Reservation(TenantScoped, Base):
    __tablename__ = "reservations"

    __table_args__ = (
        Index("ix_reservations_aggregate", "tenant_id", "product_id", "location_id"),
        Index("ix_reservations_expiry", "status", "expires_at"),
    )

    product_id: Mapped[UUID] = mapped_column(
        UUIDString(), ForeignKey("products.id"), nullable=False,
    )
    location_id: Mapped[UUID] = mapped_column(
        UUIDString(), ForeignKey("locations.id"), nullable=False,
    )
    channel_id: Mapped[UUID] = mapped_column(
        UUIDString(), ForeignKey("channels.id"), nullable=False,
    )
    quantity: Mapped[Decimal] = mapped_column(nullable=False)
    status: Mapped[str] = mapped_column(String(20), nullable=False, default="active")
    reference_type: Mapped[str | None] = mapped_column(String(50), nullable=True)
    reference_id: Mapped[str | None] = mapped_column(String(100), nullable=True)
    expires_at: Mapped[datetime | None] = mapped_column(nullable=True)
    # SPECIFIC-costed products fulfil from this batch
    batch_id: Mapped[UUID | None] = mapped_column(
        UUIDString(), ForeignKey("stock_batches.id"), nullable=True,
    )
    created_by: Mapped[UUID] = mapped_column(UUIDString(), nullable=False)
    created_at: Mapped[datetime] = mapped_column(nullable=False)
    resolved_at: Mapped[datetime | None] = mapped_column(nullable=True)

    def __repr__(self) -> str:
        return f"<Reservation {self.id} {self.quantity} {self.status}>"

    def to_dto(self) -> ReservationInfo:
        from inventory_kernel.domain.dtos import ReservationInfo
        from inventory_kernel.domain.types import ReservationStatus

        return ReservationInfo(
            reservation_id=self.id,
            tenant_id=self.tenant_id,
            product_id=self.product_id,
            location_id=self.location_id,
            channel_id=self.channel_id,
            quantity=self.quantity,
            status=ReservationStatus(self.status),
            reference_type=self.reference_type,
            reference_id=self.reference_id,
            expires_at=self.expires_at,
            batch_id=self.batch_id,
            created_by=self.created_by,
            created_at=self.created_at,
            resolved_at=self.resolved_at,
        )

    def state(self) -> dict[str, Any]:
        return {
            "product_id": self.product_id,
            "location_id": self.location_id,
            "channel_id": self.channel_id,
            "quantity": self.quantity,
            "status": self.status,
            "expires_at": self.expires_at,
        }
