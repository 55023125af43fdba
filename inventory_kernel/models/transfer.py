"""
ORM model for inter-location stock transfers.

The transfer row carries the cost layers consumed at the source
(``cost_segments``), so completion can rebuild them at the destination and
cancellation can restore them at the source.
"""

from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from typing import TYPE_CHECKING, Any
from uuid import UUID

from sqlalchemy import JSON, ForeignKey, Index, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from inventory_kernel.db.base import Base, TenantScoped, UUIDString

if TYPE_CHECKING:
    from inventory_kernel.domain.dtos import TransferInfo


class StockTransfer(TenantScoped, Base):
    __tablename__ = "stock_transfers"

    __table_args__ = (
        Index(
            "ix_stock_transfers_route",
            "tenant_id", "product_id", "from_location_id", "to_location_id",
        ),
        Index("ix_stock_transfers_status", "status"),
    )

    product_id: Mapped[UUID] = mapped_column(
        UUIDString(), ForeignKey("products.id"), nullable=False,
    )
    from_location_id: Mapped[UUID] = mapped_column(
        UUIDString(), ForeignKey("locations.id"), nullable=False,
    )
    to_location_id: Mapped[UUID] = mapped_column(
        UUIDString(), ForeignKey("locations.id"), nullable=False,
    )
    quantity: Mapped[Decimal] = mapped_column(nullable=False)
    status: Mapped[str] = mapped_column(String(20), nullable=False)
    # [{"batch_id", "quantity", "cost_per_unit", "received_at", "batch_number",
    #   "expiry_date"}, ...] in consumption order
    cost_segments: Mapped[list] = mapped_column(JSON, nullable=False, default=list)
    notes: Mapped[str | None] = mapped_column(Text, nullable=True)
    initiated_by: Mapped[UUID] = mapped_column(UUIDString(), nullable=False)
    initiated_at: Mapped[datetime] = mapped_column(nullable=False)
    completed_at: Mapped[datetime | None] = mapped_column(nullable=True)
    cancelled_at: Mapped[datetime | None] = mapped_column(nullable=True)

    def __repr__(self) -> str:
        return (
            f"<StockTransfer {self.id} {self.quantity} "
            f"{self.from_location_id}->{self.to_location_id} {self.status}>"
        )

    def to_dto(self) -> TransferInfo:
        from inventory_kernel.domain.dtos import TransferInfo
        from inventory_kernel.domain.types import TransferStatus

        return TransferInfo(
            transfer_id=self.id,
            tenant_id=self.tenant_id,
            product_id=self.product_id,
            from_location_id=self.from_location_id,
            to_location_id=self.to_location_id,
            quantity=self.quantity,
            status=TransferStatus(self.status),
            initiated_by=self.initiated_by,
            initiated_at=self.initiated_at,
            completed_at=self.completed_at,
            cancelled_at=self.cancelled_at,
            notes=self.notes,
        )

    def state(self) -> dict[str, Any]:
        return {
            "product_id": self.product_id,
            "from_location_id": self.from_location_id,
            "to_location_id": self.to_location_id,
            "quantity": self.quantity,
            "status": self.status,
        }
