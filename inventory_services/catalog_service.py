"""
CatalogService -- products, locations, sales channels and their event subscriptions.

Responsibility:
    Tenant-scoped create/update of the reference data the stock ledger runs
    against.  Every change is audited; product changes also derive
    ``product_created`` / ``product_updated`` events.

Invariants enforced:
    - SKU unique per tenant; location and channel codes unique per tenant.
    - Product sku and inventory_strategy never change after creation.
    - A location's parent belongs to the same tenant and the parent chain
      never loops.
    - Subscription event types are known EventType values; subscription
      status changes follow SUBSCRIPTION_WORKFLOW.
"""

from __future__ import annotations

from decimal import Decimal
from typing import Any
from uuid import UUID

import httpx
from sqlalchemy import select
from sqlalchemy.orm import Session

from inventory_kernel.domain.clock import Clock
from inventory_kernel.domain.dtos import ChannelInfo, LocationInfo, ProductInfo, SubscriptionInfo
from inventory_kernel.domain.events import ProductCreated, ProductUpdated
from inventory_kernel.domain.types import (
    AuditAction,
    ChannelType,
    CostingStrategy,
    EventType,
    LocationType,
    SubscriptionStatus,
)
from inventory_kernel.domain.workflows import SUBSCRIPTION_WORKFLOW, require_transition
from inventory_kernel.exceptions import (
    ChannelNotFoundError,
    DuplicateCodeError,
    DuplicateSkuError,
    InvalidEventTypeError,
    InvalidStrategyConfigurationError,
    LocationCycleError,
    LocationNotFoundError,
    ProductNotFoundError,
    SubscriptionNotFoundError,
    ValidationError,
)
from inventory_kernel.logging_config import get_logger
from inventory_kernel.models import Channel, ChannelSubscription, Location, Product
from inventory_kernel.selectors.base import load_owned
from inventory_kernel.services.audit_recorder import AuditRecorder
from inventory_kernel.services.base import BaseService
from inventory_services.event_publisher import EventPublisher
from inventory_services.stock_ledger import require_non_negative

logger = get_logger("services.catalog")

_STATUS_ACTIONS = {
    SubscriptionStatus.ACTIVE: "resume",
    SubscriptionStatus.PAUSED: "pause",
    SubscriptionStatus.CANCELLED: "cancel",
}


class CatalogService(BaseService):
    """
    Write side of the tenant catalog.

    Non-goals:
        - Does NOT call ``session.commit()``.
        - Never deletes anything; deactivate instead.
    """

    def __init__(
        self,
        session: Session,
        clock: Clock | None = None,
        auditor: AuditRecorder | None = None,
        publisher: EventPublisher | None = None,
    ):
        super().__init__(session, clock)
        self._auditor = auditor or AuditRecorder(session, self.clock)
        self._publisher = publisher or EventPublisher(session, self.clock)

    # =========================================================================
    # Products
    # =========================================================================

    def create_product(
        self,
        tenant_id: UUID,
        sku: str,
        name: str,
        performed_by: UUID,
        inventory_strategy: CostingStrategy = CostingStrategy.FIFO,
        unit_of_measure: str = "each",
        description: str | None = None,
        category: str | None = None,
        track_inventory: bool = True,
        allow_negative_stock: bool = False,
        reorder_point: Decimal | None = None,
        reorder_quantity: Decimal | None = None,
        metadata: dict[str, Any] | None = None,
    ) -> ProductInfo:
        """
        Create a product.

        Args:
            tenant_id: Owning tenant.
            sku: Stock-keeping unit, unique within the tenant.
            name: Display name.
            performed_by: Actor creating the product.
            inventory_strategy: Costing strategy; fixed for the product's life.
            reorder_point: Available quantity at or below which stock_low fires.

        Raises:
            DuplicateSkuError: the tenant already has a product with this SKU.
        """
        if not sku or not sku.strip():
            raise ValidationError("sku must not be empty")
        existing = self.session.execute(
            select(Product.id).where(Product.tenant_id == tenant_id, Product.sku == sku)
        ).scalar_one_or_none()
        if existing is not None:
            raise DuplicateSkuError(sku)

        strategy = CostingStrategy(inventory_strategy)
        now = self.clock.now()
        product = Product(
            tenant_id=tenant_id,
            sku=sku,
            name=name,
            description=description,
            category=category,
            unit_of_measure=unit_of_measure,
            track_inventory=track_inventory,
            allow_negative_stock=allow_negative_stock,
            inventory_strategy=strategy.value,
            reorder_point=self._optional_quantity(reorder_point, "reorder_point"),
            reorder_quantity=self._optional_quantity(reorder_quantity, "reorder_quantity"),
            is_active=True,
            attributes=metadata,
            created_by=performed_by,
            created_at=now,
            updated_at=now,
        )
        self.session.add(product)
        self.session.flush()

        self._audit(product, "Product", AuditAction.CREATED, performed_by, None, product.state())
        self._publisher.publish(tenant_id, ProductCreated(
            product_id=product.id,
            sku=product.sku,
            name=product.name,
            inventory_strategy=product.inventory_strategy,
        ))
        logger.info("product_created", extra={"product_id": str(product.id), "sku": sku})
        return product.to_dto()

    def update_product(
        self,
        tenant_id: UUID,
        product_id: UUID,
        performed_by: UUID,
        name: str | None = None,
        description: str | None = None,
        category: str | None = None,
        unit_of_measure: str | None = None,
        track_inventory: bool | None = None,
        allow_negative_stock: bool | None = None,
        reorder_point: Decimal | None = None,
        reorder_quantity: Decimal | None = None,
        is_active: bool | None = None,
        metadata: dict[str, Any] | None = None,
        inventory_strategy: CostingStrategy | None = None,
    ) -> ProductInfo:
        """
        Update descriptive product fields.  Only arguments that are not None
        are applied.

        Note: sku and inventory_strategy cannot be changed.  Passing the
        current strategy is accepted; passing a different one raises
        InvalidStrategyConfigurationError.
        """
        product = load_owned(self.session, Product, tenant_id, product_id, ProductNotFoundError)

        if inventory_strategy is not None and CostingStrategy(inventory_strategy).value != product.inventory_strategy:
            raise InvalidStrategyConfigurationError(
                product.inventory_strategy,
                "the costing strategy of an existing product cannot change; create a new product",
            )

        changes = {
            "name": name,
            "description": description,
            "category": category,
            "unit_of_measure": unit_of_measure,
            "track_inventory": track_inventory,
            "allow_negative_stock": allow_negative_stock,
            "reorder_point": self._optional_quantity(reorder_point, "reorder_point"),
            "reorder_quantity": self._optional_quantity(reorder_quantity, "reorder_quantity"),
            "is_active": is_active,
        }
        previous = product.state()
        changed = []
        for field, value in changes.items():
            if value is not None and getattr(product, field) != value:
                setattr(product, field, value)
                changed.append(field)
        if metadata is not None and product.attributes != metadata:
            product.attributes = metadata
            changed.append("metadata")

        if not changed:
            return product.to_dto()

        product.updated_at = self.clock.now()
        self.session.flush()

        action = AuditAction.STATUS_CHANGE if changed == ["is_active"] else AuditAction.UPDATED
        self._audit(product, "Product", action, performed_by, previous, product.state())
        self._publisher.publish(tenant_id, ProductUpdated(
            product_id=product.id,
            sku=product.sku,
            changed_fields=tuple(changed),
        ))
        logger.info(
            "product_updated",
            extra={"product_id": str(product.id), "changed_fields": changed},
        )
        return product.to_dto()

    # =========================================================================
    # Locations
    # =========================================================================

    def create_location(
        self,
        tenant_id: UUID,
        code: str,
        name: str,
        performed_by: UUID,
        location_type: LocationType = LocationType.WAREHOUSE,
        address: dict[str, Any] | None = None,
        parent_location_id: UUID | None = None,
    ) -> LocationInfo:
        self._ensure_code_free(Location, "Location", tenant_id, code)
        if parent_location_id is not None:
            load_owned(self.session, Location, tenant_id, parent_location_id, LocationNotFoundError)

        now = self.clock.now()
        location = Location(
            tenant_id=tenant_id,
            code=code,
            name=name,
            location_type=LocationType(location_type).value,
            address=address,
            parent_location_id=parent_location_id,
            is_active=True,
            created_by=performed_by,
            created_at=now,
            updated_at=now,
        )
        self.session.add(location)
        self.session.flush()

        self._audit(location, "Location", AuditAction.CREATED, performed_by, None, location.state())
        logger.info("location_created", extra={"location_id": str(location.id), "code": code})
        return location.to_dto()

    def update_location(
        self,
        tenant_id: UUID,
        location_id: UUID,
        performed_by: UUID,
        name: str | None = None,
        location_type: LocationType | None = None,
        address: dict[str, Any] | None = None,
        parent_location_id: UUID | None = None,
        is_active: bool | None = None,
    ) -> LocationInfo:
        location = load_owned(self.session, Location, tenant_id, location_id, LocationNotFoundError)
        previous = location.state()

        if parent_location_id is not None and parent_location_id != location.parent_location_id:
            self._ensure_acyclic(tenant_id, location.id, parent_location_id)
            location.parent_location_id = parent_location_id
        if name is not None:
            location.name = name
        if location_type is not None:
            location.location_type = LocationType(location_type).value
        if address is not None:
            location.address = address
        if is_active is not None:
            location.is_active = is_active

        if location.state() == previous:
            return location.to_dto()

        location.updated_at = self.clock.now()
        self.session.flush()
        self._audit(location, "Location", AuditAction.UPDATED, performed_by, previous, location.state())
        logger.info("location_updated", extra={"location_id": str(location.id)})
        return location.to_dto()

    def _ensure_acyclic(self, tenant_id: UUID, location_id: UUID, parent_location_id: UUID) -> None:
        """Walk up from the proposed parent; meeting ``location_id`` means a cycle."""
        seen: set[UUID] = set()
        current: UUID | None = parent_location_id
        while current is not None:
            if current == location_id or current in seen:
                raise LocationCycleError(str(location_id), str(parent_location_id))
            seen.add(current)
            parent = load_owned(self.session, Location, tenant_id, current, LocationNotFoundError)
            current = parent.parent_location_id

    # =========================================================================
    # Channels
    # =========================================================================

    def create_channel(
        self,
        tenant_id: UUID,
        code: str,
        name: str,
        channel_type: ChannelType,
        performed_by: UUID,
        webhook_url: str | None = None,
        webhook_secret: str | None = None,
    ) -> ChannelInfo:
        self._ensure_code_free(Channel, "Channel", tenant_id, code)
        self._check_webhook_url(webhook_url)

        now = self.clock.now()
        channel = Channel(
            tenant_id=tenant_id,
            code=code,
            name=name,
            channel_type=ChannelType(channel_type).value,
            webhook_url=webhook_url,
            webhook_secret=webhook_secret,
            is_active=True,
            created_by=performed_by,
            created_at=now,
            updated_at=now,
        )
        self.session.add(channel)
        self.session.flush()

        self._audit(channel, "Channel", AuditAction.CREATED, performed_by, None, channel.state())
        logger.info("channel_created", extra={"channel_id": str(channel.id), "code": code})
        return channel.to_dto()

    def update_channel(
        self,
        tenant_id: UUID,
        channel_id: UUID,
        performed_by: UUID,
        name: str | None = None,
        webhook_url: str | None = None,
        webhook_secret: str | None = None,
        is_active: bool | None = None,
    ) -> ChannelInfo:
        channel = load_owned(self.session, Channel, tenant_id, channel_id, ChannelNotFoundError)
        previous = channel.state()
        secret_rotated = webhook_secret is not None and webhook_secret != channel.webhook_secret

        if name is not None:
            channel.name = name
        if webhook_url is not None:
            channel.webhook_url = self._check_webhook_url(webhook_url)
        if secret_rotated:
            channel.webhook_secret = webhook_secret
        if is_active is not None:
            channel.is_active = is_active

        if channel.state() == previous and not secret_rotated:
            return channel.to_dto()

        channel.updated_at = self.clock.now()
        self.session.flush()
        self._audit(
            channel, "Channel", AuditAction.UPDATED, performed_by, previous, channel.state(),
            reason="webhook secret rotated" if secret_rotated else None,
        )
        logger.info("channel_updated", extra={"channel_id": str(channel.id)})
        return channel.to_dto()

    # =========================================================================
    # Subscriptions
    # =========================================================================

    def create_subscription(
        self,
        tenant_id: UUID,
        channel_id: UUID,
        event_types: list[str] | tuple[str, ...],
        performed_by: UUID,
        product_id: UUID | None = None,
        location_id: UUID | None = None,
    ) -> SubscriptionInfo:
        """
        Subscribe a channel to event types, optionally narrowed to one
        product and/or one location (None means any).
        """
        load_owned(self.session, Channel, tenant_id, channel_id, ChannelNotFoundError)
        if product_id is not None:
            load_owned(self.session, Product, tenant_id, product_id, ProductNotFoundError)
        if location_id is not None:
            load_owned(self.session, Location, tenant_id, location_id, LocationNotFoundError)
        types = self._validate_event_types(event_types)

        now = self.clock.now()
        subscription = ChannelSubscription(
            tenant_id=tenant_id,
            channel_id=channel_id,
            product_id=product_id,
            location_id=location_id,
            event_types=types,
            status=SUBSCRIPTION_WORKFLOW.initial_state,
            created_by=performed_by,
            created_at=now,
            updated_at=now,
        )
        self.session.add(subscription)
        self.session.flush()

        self._audit(
            subscription, "ChannelSubscription", AuditAction.CREATED, performed_by,
            None, subscription.state(),
        )
        logger.info(
            "subscription_created",
            extra={"subscription_id": str(subscription.id), "event_types": types},
        )
        return subscription.to_dto()

    def set_subscription_status(
        self,
        tenant_id: UUID,
        subscription_id: UUID,
        status: SubscriptionStatus,
        performed_by: UUID,
    ) -> SubscriptionInfo:
        subscription = load_owned(
            self.session, ChannelSubscription, tenant_id, subscription_id, SubscriptionNotFoundError,
        )
        target = SubscriptionStatus(status)
        transition = require_transition(
            SUBSCRIPTION_WORKFLOW, subscription.id, subscription.status, _STATUS_ACTIONS[target],
        )

        previous = subscription.state()
        subscription.status = transition.to_state
        subscription.updated_at = self.clock.now()
        self.session.flush()

        self._audit(
            subscription, "ChannelSubscription", AuditAction.STATUS_CHANGE, performed_by,
            previous, subscription.state(),
        )
        logger.info(
            "subscription_status_changed",
            extra={
                "subscription_id": str(subscription.id),
                "from_status": previous["status"],
                "to_status": subscription.status,
            },
        )
        return subscription.to_dto()

    @staticmethod
    def _validate_event_types(event_types: list[str] | tuple[str, ...]) -> list[str]:
        if not event_types:
            raise ValidationError("a subscription needs at least one event type")
        valid = {e.value for e in EventType}
        result = []
        for event_type in event_types:
            value = event_type.value if isinstance(event_type, EventType) else str(event_type)
            if value not in valid:
                raise InvalidEventTypeError(value)
            if value not in result:
                result.append(value)
        return result

    # =========================================================================
    # Helpers
    # =========================================================================

    def _ensure_code_free(self, model, entity_type: str, tenant_id: UUID, code: str) -> None:
        if not code or not code.strip():
            raise ValidationError(f"{entity_type} code must not be empty")
        existing = self.session.execute(
            select(model.id).where(model.tenant_id == tenant_id, model.code == code)
        ).scalar_one_or_none()
        if existing is not None:
            raise DuplicateCodeError(entity_type, code)

    @staticmethod
    def _check_webhook_url(url: str | None) -> str | None:
        if url is None:
            return None
        try:
            parsed = httpx.URL(url)
        except (httpx.InvalidURL, ValueError) as exc:
            raise ValidationError(f"Invalid webhook URL {url!r}: {exc}") from exc
        if parsed.scheme not in ("http", "https") or not parsed.host:
            raise ValidationError(f"Webhook URL must be an absolute http(s) URL: {url!r}")
        return url

    @staticmethod
    def _optional_quantity(value: Decimal | None, field: str) -> Decimal | None:
        return None if value is None else require_non_negative(value, field)

    def _audit(
        self,
        row,
        entity_type: str,
        action: AuditAction,
        performed_by: UUID,
        previous_state: dict[str, Any] | None,
        new_state: dict[str, Any] | None,
        reason: str | None = None,
    ) -> None:
        self._auditor.record(
            tenant_id=row.tenant_id,
            entity_type=entity_type,
            entity_id=row.id,
            action=action,
            performed_by=performed_by,
            previous_state=previous_state,
            new_state=new_state,
            reason=reason,
        )
