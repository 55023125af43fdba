"""CatalogSelector -- tenant-scoped reads of products, locations, channels and subscriptions."""

from uuid import UUID

from sqlalchemy import or_, select

from inventory_kernel.domain.dtos import (
    CatalogFilter,
    ChannelInfo,
    LocationInfo,
    ProductInfo,
    SubscriptionInfo,
)
from inventory_kernel.exceptions import (
    ChannelNotFoundError,
    LocationNotFoundError,
    ProductNotFoundError,
)
from inventory_kernel.models import Channel, ChannelSubscription, Location, Product
from inventory_kernel.selectors.base import BaseSelector, load_owned


class CatalogSelector(BaseSelector):

    def get_product(self, tenant_id: UUID, product_id: UUID) -> ProductInfo:
        return load_owned(self.session, Product, tenant_id, product_id, ProductNotFoundError).to_dto()

    def get_product_by_sku(self, tenant_id: UUID, sku: str) -> ProductInfo:
        product = self.session.execute(
            select(Product).where(Product.tenant_id == tenant_id, Product.sku == sku)
        ).scalar_one_or_none()
        if product is None:
            raise ProductNotFoundError(sku)
        return product.to_dto()

    def list_products(self, tenant_id: UUID, criteria: CatalogFilter | None = None) -> list[ProductInfo]:
        criteria = criteria or CatalogFilter()
        stmt = select(Product).where(Product.tenant_id == tenant_id)
        if criteria.active_only:
            stmt = stmt.where(Product.is_active.is_(True))
        if criteria.category is not None:
            stmt = stmt.where(Product.category == criteria.category)
        if criteria.search:
            pattern = f"%{criteria.search}%"
            stmt = stmt.where(or_(Product.sku.ilike(pattern), Product.name.ilike(pattern)))
        rows = self.session.execute(stmt.order_by(Product.sku).limit(self.max_results)).scalars().all()
        return [row.to_dto() for row in rows]

    def get_location(self, tenant_id: UUID, location_id: UUID) -> LocationInfo:
        return load_owned(self.session, Location, tenant_id, location_id, LocationNotFoundError).to_dto()

    def get_location_by_code(self, tenant_id: UUID, code: str) -> LocationInfo:
        location = self.session.execute(
            select(Location).where(Location.tenant_id == tenant_id, Location.code == code)
        ).scalar_one_or_none()
        if location is None:
            raise LocationNotFoundError(code)
        return location.to_dto()

    def list_locations(self, tenant_id: UUID, active_only: bool = False) -> list[LocationInfo]:
        stmt = select(Location).where(Location.tenant_id == tenant_id)
        if active_only:
            stmt = stmt.where(Location.is_active.is_(True))
        rows = self.session.execute(stmt.order_by(Location.code).limit(self.max_results)).scalars().all()
        return [row.to_dto() for row in rows]

    def get_channel(self, tenant_id: UUID, channel_id: UUID) -> ChannelInfo:
        return load_owned(self.session, Channel, tenant_id, channel_id, ChannelNotFoundError).to_dto()

    def get_channel_by_code(self, tenant_id: UUID, code: str) -> ChannelInfo:
        channel = self.session.execute(
            select(Channel).where(Channel.tenant_id == tenant_id, Channel.code == code)
        ).scalar_one_or_none()
        if channel is None:
            raise ChannelNotFoundError(code)
        return channel.to_dto()

    def list_channels(self, tenant_id: UUID, active_only: bool = False) -> list[ChannelInfo]:
        stmt = select(Channel).where(Channel.tenant_id == tenant_id)
        if active_only:
            stmt = stmt.where(Channel.is_active.is_(True))
        rows = self.session.execute(stmt.order_by(Channel.code).limit(self.max_results)).scalars().all()
        return [row.to_dto() for row in rows]

    def list_subscriptions(self, tenant_id: UUID, channel_id: UUID | None = None) -> list[SubscriptionInfo]:
        stmt = select(ChannelSubscription).where(ChannelSubscription.tenant_id == tenant_id)
        if channel_id is not None:
            stmt = stmt.where(ChannelSubscription.channel_id == channel_id)
        rows = self.session.execute(
            stmt.order_by(ChannelSubscription.created_at, ChannelSubscription.id).limit(self.max_results)
        ).scalars().all()
        return [row.to_dto() for row in rows]
