"""
ORM models for stock state: the per-aggregate StockLevel, the StockBatch
cost layers beneath it, and the append-only StockMovement trail.

Invariants enforced:
    - (tenant_id, product_id, location_id) is UNIQUE on stock_levels.
    - quantity_available is derived (on_hand - reserved), never stored.
    - StockBatch.quantity and cost_per_unit never change after insert; only
      remaining_quantity moves (ORM listener in db/immutability.py).
    - (tenant_id, seq) is UNIQUE on stock_movements; seq is allocated from a
      per-tenant locked counter, never max+1.
    - StockMovement rows are never updated or deleted.
"""

from __future__ import annotations

from datetime import date, datetime
from decimal import Decimal
from typing import TYPE_CHECKING
from uuid import UUID

from sqlalchemy import Date, ForeignKey, Index, String, Text, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from inventory_kernel.db.base import Base, TenantScoped, UUIDString

if TYPE_CHECKING:
    from inventory_kernel.domain.dtos import BatchInfo, MovementRecord, StockLevelSnapshot


class StockLevel(TenantScoped, Base):
    """Quantities of one product at one location: the unit of serializability."""

    __tablename__ = "stock_levels"

    __table_args__ = (
        UniqueConstraint(
            "tenant_id", "product_id", "location_id",
            name="uq_stock_levels_aggregate",
        ),
    )

    product_id: Mapped[UUID] = mapped_column(
        UUIDString(), ForeignKey("products.id"), nullable=False,
    )
    location_id: Mapped[UUID] = mapped_column(
        UUIDString(), ForeignKey("locations.id"), nullable=False,
    )
    quantity_on_hand: Mapped[Decimal] = mapped_column(nullable=False, default=Decimal("0"))
    quantity_reserved: Mapped[Decimal] = mapped_column(nullable=False, default=Decimal("0"))
    quantity_in_transit: Mapped[Decimal] = mapped_column(nullable=False, default=Decimal("0"))
    updated_at: Mapped[datetime] = mapped_column(nullable=False)

    @property
    def quantity_available(self) -> Decimal:
        return self.quantity_on_hand - self.quantity_reserved

    def __repr__(self) -> str:
        return (
            f"<StockLevel {self.product_id}@{self.location_id} "
            f"on_hand={self.quantity_on_hand} reserved={self.quantity_reserved}>"
        )

    def to_dto(self) -> StockLevelSnapshot:
        from inventory_kernel.domain.dtos import StockLevelSnapshot

        return StockLevelSnapshot(
            tenant_id=self.tenant_id,
            product_id=self.product_id,
            location_id=self.location_id,
            quantity_on_hand=self.quantity_on_hand,
            quantity_reserved=self.quantity_reserved,
            quantity_in_transit=self.quantity_in_transit,
            updated_at=self.updated_at,
        )


class StockBatch(TenantScoped, Base):
    """A cost layer: a lot of identical units received at one unit cost."""

    __tablename__ = "stock_batches"

    __table_args__ = (
        Index("ix_stock_batches_aggregate", "tenant_id", "product_id", "location_id"),
    )

    product_id: Mapped[UUID] = mapped_column(
        UUIDString(), ForeignKey("products.id"), nullable=False,
    )
    location_id: Mapped[UUID] = mapped_column(
        UUIDString(), ForeignKey("locations.id"), nullable=False,
    )
    batch_number: Mapped[str] = mapped_column(String(100), nullable=False)
    quantity: Mapped[Decimal] = mapped_column(nullable=False)
    remaining_quantity: Mapped[Decimal] = mapped_column(nullable=False)
    cost_per_unit: Mapped[Decimal] = mapped_column(nullable=False)
    received_at: Mapped[datetime] = mapped_column(nullable=False)
    expiry_date: Mapped[date | None] = mapped_column(Date, nullable=True)
    source: Mapped[str] = mapped_column(String(20), nullable=False, default="receipt")

    def __repr__(self) -> str:
        return (
            f"<StockBatch {self.batch_number} "
            f"{self.remaining_quantity}/{self.quantity} @ {self.cost_per_unit}>"
        )

    def to_dto(self) -> BatchInfo:
        from inventory_kernel.domain.dtos import BatchInfo
        from inventory_kernel.domain.types import BatchSource

        return BatchInfo(
            batch_id=self.id,
            tenant_id=self.tenant_id,
            product_id=self.product_id,
            location_id=self.location_id,
            batch_number=self.batch_number,
            quantity=self.quantity,
            remaining_quantity=self.remaining_quantity,
            cost_per_unit=self.cost_per_unit,
            received_at=self.received_at,
            expiry_date=self.expiry_date,
            source=BatchSource(self.source),
        )


class StockMovement(TenantScoped, Base):
    """One immutable record of a quantity change on an aggregate."""

    __tablename__ = "stock_movements"

    __table_args__ = (
        UniqueConstraint("tenant_id", "seq", name="uq_stock_movements_tenant_seq"),
        Index("ix_stock_movements_aggregate", "tenant_id", "product_id", "location_id"),
        Index("ix_stock_movements_created", "tenant_id", "created_at"),
        Index("ix_stock_movements_reference", "reference_type", "reference_id"),
    )

    seq: Mapped[int] = mapped_column(nullable=False)
    product_id: Mapped[UUID] = mapped_column(
        UUIDString(), ForeignKey("products.id"), nullable=False,
    )
    location_id: Mapped[UUID] = mapped_column(
        UUIDString(), ForeignKey("locations.id"), nullable=False,
    )
    movement_type: Mapped[str] = mapped_column(String(30), nullable=False)
    # Always a positive magnitude; direction comes from movement_type
    quantity: Mapped[Decimal] = mapped_column(nullable=False)
    cost_per_unit: Mapped[Decimal | None] = mapped_column(nullable=True)
    batch_id: Mapped[UUID | None] = mapped_column(
        UUIDString(), ForeignKey("stock_batches.id"), nullable=True,
    )
    reference_type: Mapped[str | None] = mapped_column(String(50), nullable=True)
    reference_id: Mapped[str | None] = mapped_column(String(100), nullable=True)
    channel_id: Mapped[UUID | None] = mapped_column(UUIDString(), nullable=True)
    reason: Mapped[str | None] = mapped_column(Text, nullable=True)
    performed_by: Mapped[UUID] = mapped_column(UUIDString(), nullable=False)
    created_at: Mapped[datetime] = mapped_column(nullable=False)

    def __repr__(self) -> str:
        return f"<StockMovement #{self.seq} {self.movement_type} {self.quantity}>"

    def to_dto(self) -> MovementRecord:
        from inventory_kernel.domain.dtos import MovementRecord
        from inventory_kernel.domain.types import MovementType

        return MovementRecord(
            movement_id=self.id,
            seq=self.seq,
            tenant_id=self.tenant_id,
            product_id=self.product_id,
            location_id=self.location_id,
            movement_type=MovementType(self.movement_type),
            quantity=self.quantity,
            cost_per_unit=self.cost_per_unit,
            batch_id=self.batch_id,
            reference_type=self.reference_type,
            reference_id=self.reference_id,
            channel_id=self.channel_id,
            reason=self.reason,
            performed_by=self.performed_by,
            created_at=self.created_at,
        )
