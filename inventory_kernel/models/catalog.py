"""
ORM models for the tenant catalog: products, locations, sales channels and
channel event subscriptions.

Invariants enforced:
    - (tenant_id, sku) is UNIQUE on products.
    - (tenant_id, code) is UNIQUE on locations and on channels.
    - Product identity (tenant_id, sku) and inventory_strategy are frozen
      after creation (ORM listener in db/immutability.py).
"""

from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from typing import TYPE_CHECKING, Any
from uuid import UUID

from sqlalchemy import JSON, Boolean, ForeignKey, String, Text, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from inventory_kernel.db.base import Base, TenantScoped, UUIDString

if TYPE_CHECKING:
    from inventory_kernel.domain.dtos import (
        ChannelInfo,
        LocationInfo,
        ProductInfo,
        SubscriptionInfo,
    )


class Product(TenantScoped, Base):
    """A stock-keeping unit and the costing strategy applied to it."""

    __tablename__ = "products"

    __table_args__ = (
        UniqueConstraint("tenant_id", "sku", name="uq_products_tenant_sku"),
    )

    sku: Mapped[str] = mapped_column(String(100), nullable=False)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    category: Mapped[str | None] = mapped_column(String(100), nullable=True)
    unit_of_measure: Mapped[str] = mapped_column(String(50), nullable=False, default="each")
    track_inventory: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    allow_negative_stock: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    inventory_strategy: Mapped[str] = mapped_column(String(20), nullable=False, default="FIFO")
    reorder_point: Mapped[Decimal | None] = mapped_column(nullable=True)
    reorder_quantity: Mapped[Decimal | None] = mapped_column(nullable=True)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    # "metadata" is reserved on declarative classes
    attributes: Mapped[dict | None] = mapped_column("metadata", JSON, nullable=True)
    created_by: Mapped[UUID] = mapped_column(UUIDString(), nullable=False)
    created_at: Mapped[datetime] = mapped_column(nullable=False)
    updated_at: Mapped[datetime] = mapped_column(nullable=False)

    def __repr__(self) -> str:
        return f"<Product {self.sku} ({self.inventory_strategy})>"

    def to_dto(self) -> ProductInfo:
        from inventory_kernel.domain.dtos import ProductInfo
        from inventory_kernel.domain.types import CostingStrategy

        return ProductInfo(
            product_id=self.id,
            tenant_id=self.tenant_id,
            sku=self.sku,
            name=self.name,
            description=self.description,
            category=self.category,
            unit_of_measure=self.unit_of_measure,
            track_inventory=self.track_inventory,
            allow_negative_stock=self.allow_negative_stock,
            inventory_strategy=CostingStrategy(self.inventory_strategy),
            reorder_point=self.reorder_point,
            reorder_quantity=self.reorder_quantity,
            is_active=self.is_active,
            metadata=dict(self.attributes) if self.attributes is not None else None,
            created_at=self.created_at,
            updated_at=self.updated_at,
        )

    def state(self) -> dict[str, Any]:
        """Audit snapshot of the mutable and identity fields."""
        return {
            "sku": self.sku,
            "name": self.name,
            "description": self.description,
            "category": self.category,
            "unit_of_measure": self.unit_of_measure,
            "track_inventory": self.track_inventory,
            "allow_negative_stock": self.allow_negative_stock,
            "inventory_strategy": self.inventory_strategy,
            "reorder_point": self.reorder_point,
            "reorder_quantity": self.reorder_quantity,
            "is_active": self.is_active,
            "metadata": self.attributes,
        }


class Location(TenantScoped, Base):
    """A place stock can sit: warehouse, store, distribution center or virtual bin."""

    __tablename__ = "locations"

    __table_args__ = (
        UniqueConstraint("tenant_id", "code", name="uq_locations_tenant_code"),
    )

    code: Mapped[str] = mapped_column(String(50), nullable=False)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    location_type: Mapped[str] = mapped_column(String(30), nullable=False, default="warehouse")
    address: Mapped[dict | None] = mapped_column(JSON, nullable=True)
    parent_location_id: Mapped[UUID | None] = mapped_column(
        UUIDString(), ForeignKey("locations.id"), nullable=True,
    )
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    created_by: Mapped[UUID] = mapped_column(UUIDString(), nullable=False)
    created_at: Mapped[datetime] = mapped_column(nullable=False)
    updated_at: Mapped[datetime] = mapped_column(nullable=False)

    def __repr__(self) -> str:
        return f"<Location {self.code}>"

    def to_dto(self) -> LocationInfo:
        from inventory_kernel.domain.dtos import LocationInfo
        from inventory_kernel.domain.types import LocationType

        return LocationInfo(
            location_id=self.id,
            tenant_id=self.tenant_id,
            code=self.code,
            name=self.name,
            location_type=LocationType(self.location_type),
            address=dict(self.address) if self.address is not None else None,
            parent_location_id=self.parent_location_id,
            is_active=self.is_active,
            created_at=self.created_at,
        )

    def state(self) -> dict[str, Any]:
        return {
            "code": self.code,
            "name": self.name,
            "location_type": self.location_type,
            "address": self.address,
            "parent_location_id": self.parent_location_id,
            "is_active": self.is_active,
        }


class Channel(TenantScoped, Base):
    """A sales channel, optionally reachable by signed webhook."""

    __tablename__ = "channels"

    __table_args__ = (
        UniqueConstraint("tenant_id", "code", name="uq_channels_tenant_code"),
    )

    code: Mapped[str] = mapped_column(String(50), nullable=False)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    channel_type: Mapped[str] = mapped_column(String(30), nullable=False)
    webhook_url: Mapped[str | None] = mapped_column(String(2048), nullable=True)
    webhook_secret: Mapped[str | None] = mapped_column(String(255), nullable=True)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    created_by: Mapped[UUID] = mapped_column(UUIDString(), nullable=False)
    created_at: Mapped[datetime] = mapped_column(nullable=False)
    updated_at: Mapped[datetime] = mapped_column(nullable=False)

    def __repr__(self) -> str:
        return f"<Channel {self.code} ({self.channel_type})>"

    def to_dto(self) -> ChannelInfo:
        from inventory_kernel.domain.dtos import ChannelInfo
        from inventory_kernel.domain.types import ChannelType

        return ChannelInfo(
            channel_id=self.id,
            tenant_id=self.tenant_id,
            code=self.code,
            name=self.name,
            channel_type=ChannelType(self.channel_type),
            webhook_url=self.webhook_url,
            has_webhook_secret=bool(self.webhook_secret),
            is_active=self.is_active,
            created_at=self.created_at,
        )

    def state(self) -> dict[str, Any]:
        # The secret itself never enters the audit trail
        return {
            "code": self.code,
            "name": self.name,
            "channel_type": self.channel_type,
            "webhook_url": self.webhook_url,
            "has_webhook_secret": bool(self.webhook_secret),
            "is_active": self.is_active,
        }


class ChannelSubscription(TenantScoped, Base):
    """Which events a channel wants; null product/location means any."""

    __tablename__ = "channel_subscriptions"

    channel_id: Mapped[UUID] = mapped_column(
        UUIDString(), ForeignKey("channels.id"), nullable=False, index=True,
    )
    product_id: Mapped[UUID | None] = mapped_column(
        UUIDString(), ForeignKey("products.id"), nullable=True,
    )
    location_id: Mapped[UUID | None] = mapped_column(
        UUIDString(), ForeignKey("locations.id"), nullable=True,
    )
    event_types: Mapped[list] = mapped_column(JSON, nullable=False)
    status: Mapped[str] = mapped_column(String(20), nullable=False, default="active")
    created_by: Mapped[UUID] = mapped_column(UUIDString(), nullable=False)
    created_at: Mapped[datetime] = mapped_column(nullable=False)
    updated_at: Mapped[datetime] = mapped_column(nullable=False)

    def matches(self, event_type: str, product_id: UUID | None, location_ids: tuple[UUID, ...]) -> bool:
        if event_type not in self.event_types:
            return False
        if self.product_id is not None and self.product_id != product_id:
            return False
        if self.location_id is not None and self.location_id not in location_ids:
            return False
        return True

    def to_dto(self) -> SubscriptionInfo:
        from inventory_kernel.domain.dtos import SubscriptionInfo
        from inventory_kernel.domain.types import EventType, SubscriptionStatus

        return SubscriptionInfo(
            subscription_id=self.id,
            tenant_id=self.tenant_id,
            channel_id=self.channel_id,
            product_id=self.product_id,
            location_id=self.location_id,
            event_types=tuple(EventType(t) for t in self.event_types),
            status=SubscriptionStatus(self.status),
        )

    def state(self) -> dict[str, Any]:
        return {
            "channel_id": self.channel_id,
            "product_id": self.product_id,
            "location_id": self.location_id,
            "event_types": list(self.event_types),
            "status": self.status,
        }
