"""
EventPublisher -- derive inventory events in the unit of work, deliver after commit.

Responsibility:
    Two halves of one pipeline:

    ``EventPublisher`` runs inside a ledger unit of work.  It turns stock
    level writes and lifecycle transitions into typed event payloads and
    persists them as InventoryEvent rows in the same transaction, so an
    event exists if and only if its mutation committed.

    ``EventDispatcher`` runs after commit, outside every aggregate lock.  It
    matches committed events to active channel subscriptions, serializes a
    canonical JSON envelope, signs those exact bytes with the channel's
    secret (HMAC-SHA256) and hands them to the WebhookTransport.

Invariants enforced:
    - stock_updated on every StockLevel write.
    - stock_low / stock_out once per downward crossing (see
      inventory_engines.thresholds).
    - Delivery failures are reported, logged and never raised: a committed
      ledger change is never undone by a webhook.
    - processed_at is stamped once every matching delivery for the event
      was attempted.

Failure modes:
    - WebhookDeliveryError is captured per subscription in a DeliveryReport.
"""

from __future__ import annotations

from collections.abc import Callable, Sequence
from dataclasses import dataclass
from decimal import Decimal
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.orm import Session

from inventory_engines.thresholds import detect_crossings
from inventory_kernel.db.engine import session_scope
from inventory_kernel.domain.clock import Clock, SystemClock
from inventory_kernel.domain.dtos import EventRecord
from inventory_kernel.domain.events import (
    EventPayload,
    StockLow,
    StockOut,
    StockUpdated,
    channel_of,
    locations_of,
)
from inventory_kernel.domain.types import MovementType
from inventory_kernel.exceptions import EventDeliveryError
from inventory_kernel.logging_config import get_logger
from inventory_kernel.models import Channel, ChannelSubscription, InventoryEvent, Product, StockLevel
from inventory_kernel.services.base import BaseService
from inventory_kernel.utils.hashing import canonicalize_json, sign_body
from inventory_services.webhook import WebhookRequest, WebhookTransport

logger = get_logger("services.events")

DEFAULT_EVENT_HEADER = "X-Webhook-Event"
DEFAULT_SIGNATURE_HEADER = "X-Webhook-Signature"


# -----------------------------------------------------------------------------
# In-transaction derivation
# -----------------------------------------------------------------------------


class EventPublisher(BaseService):
    """
    Derives and persists events for one unit of work.

    Non-goals:
        - Does NOT deliver anything.  ``recorded`` lists this unit's events
          for the caller to dispatch once the transaction commits.
    """

    def __init__(self, session: Session, clock: Clock | None = None):
        super().__init__(session, clock)
        self._recorded: list[InventoryEvent] = []

    @property
    def recorded(self) -> tuple[InventoryEvent, ...]:
        return tuple(self._recorded)

    def publish(self, tenant_id: UUID, payload: EventPayload) -> InventoryEvent:
        locations = locations_of(payload)
        row = InventoryEvent(
            tenant_id=tenant_id,
            event_type=payload.event_type.value,
            product_id=getattr(payload, "product_id", None),
            location_id=locations[0] if locations else None,
            channel_id=channel_of(payload),
            payload=payload.to_payload(),
            created_at=self.clock.now(),
        )
        self.session.add(row)
        self.session.flush()
        self._recorded.append(row)

        logger.debug(
            "event_recorded",
            extra={"event_type": row.event_type, "event_id": str(row.id)},
        )
        return row

    def stock_level_changed(
        self,
        product: Product,
        level: StockLevel,
        available_before: Decimal,
        movement_type: MovementType,
    ) -> list[InventoryEvent]:
        """Emit stock_updated, plus stock_low / stock_out on a downward crossing."""
        available_after = level.quantity_available
        events = [
            self.publish(
                level.tenant_id,
                StockUpdated(
                    product_id=level.product_id,
                    location_id=level.location_id,
                    movement_type=movement_type,
                    quantity_on_hand=level.quantity_on_hand,
                    quantity_reserved=level.quantity_reserved,
                    quantity_in_transit=level.quantity_in_transit,
                    quantity_available=available_after,
                    previous_quantity_available=available_before,
                ),
            )
        ]

        crossings = detect_crossings(available_before, available_after, product.reorder_point)
        if crossings.stock_low:
            events.append(self.publish(
                level.tenant_id,
                StockLow(
                    product_id=level.product_id,
                    location_id=level.location_id,
                    quantity_available=available_after,
                    reorder_point=product.reorder_point,
                    reorder_quantity=product.reorder_quantity,
                ),
            ))
        if crossings.stock_out:
            events.append(self.publish(
                level.tenant_id,
                StockOut(
                    product_id=level.product_id,
                    location_id=level.location_id,
                    quantity_available=available_after,
                ),
            ))
        if crossings.any:
            logger.info(
                "stock_threshold_crossed",
                extra={
                    "product_id": str(level.product_id),
                    "location_id": str(level.location_id),
                    "stock_low": crossings.stock_low,
                    "stock_out": crossings.stock_out,
                    "available": str(available_after),
                },
            )
        return events


# -----------------------------------------------------------------------------
# Post-commit delivery
# -----------------------------------------------------------------------------


@dataclass(frozen=True)
class DeliveryReport:
    event_id: UUID
    event_type: str
    subscription_id: UUID
    channel_id: UUID
    url: str
    success: bool
    status_code: int | None = None
    error: str | None = None


@dataclass(frozen=True)
class _Route:
    """A matched delivery target, detached from the session."""

    subscription_id: UUID
    channel_id: UUID
    url: str
    secret: str | None


def _event_locations(event: EventRecord) -> tuple[UUID, ...]:
    payload = event.payload
    if "from_location_id" in payload:
        return (UUID(payload["from_location_id"]), UUID(payload["to_location_id"]))
    return (event.location_id,) if event.location_id is not None else ()


def build_envelope(event: EventRecord) -> dict:
    return {
        "eventId": str(event.event_id),
        "eventType": event.event_type.value,
        "tenantId": str(event.tenant_id),
        "payload": event.payload,
        "timestamp": event.created_at.isoformat(),
    }


class EventDispatcher:
    """
    Delivers committed events to subscribed channels.

    Contract:
        ``dispatch()`` is called with events whose transaction already
        committed.  It never raises for a delivery failure; each attempt is
        returned as a DeliveryReport.

    Non-goals:
        - Retry/backoff.  Failed deliveries stay visible in their report and
          in the logs.
    """

    def __init__(
        self,
        session_factory: Callable[[], Session],
        transport: WebhookTransport | None,
        clock: Clock | None = None,
        event_header: str = DEFAULT_EVENT_HEADER,
        signature_header: str = DEFAULT_SIGNATURE_HEADER,
    ):
        self._session_factory = session_factory
        self._transport = transport
        self._clock = clock or SystemClock()
        self._event_header = event_header
        self._signature_header = signature_header

    def build_request(self, event: EventRecord, url: str, secret: str | None) -> WebhookRequest:
        """Serialize the envelope once; sign exactly the bytes that are sent."""
        body = canonicalize_json(build_envelope(event)).encode("utf-8")
        headers = {
            "Content-Type": "application/json",
            self._event_header: event.event_type.value,
        }
        if secret:
            headers[self._signature_header] = sign_body(body, secret)
        return WebhookRequest(url=url, body=body, headers=headers)

    def _subscriptions(self, session: Session, tenant_id: UUID) -> list[tuple[ChannelSubscription, Channel]]:
        return list(session.execute(
            select(ChannelSubscription, Channel)
            .join(Channel, Channel.id == ChannelSubscription.channel_id)
            .where(
                ChannelSubscription.tenant_id == tenant_id,
                ChannelSubscription.status == "active",
                Channel.is_active.is_(True),
                Channel.webhook_url.is_not(None),
            )
            .order_by(ChannelSubscription.created_at, ChannelSubscription.id)
        ).tuples())

    def _plan(self, events: Sequence[EventRecord]) -> list[tuple[EventRecord, _Route]]:
        """Resolve (event, target) pairs in one short read session."""
        plan: list[tuple[EventRecord, _Route]] = []
        with session_scope(self._session_factory) as session:
            by_tenant: dict[UUID, list[tuple[ChannelSubscription, Channel]]] = {}
            for event in events:
                if event.tenant_id not in by_tenant:
                    by_tenant[event.tenant_id] = self._subscriptions(session, event.tenant_id)
                for sub, channel in by_tenant[event.tenant_id]:
                    if sub.matches(event.event_type.value, event.product_id, _event_locations(event)):
                        plan.append((event, _Route(
                            subscription_id=sub.id,
                            channel_id=channel.id,
                            url=channel.webhook_url,
                            secret=channel.webhook_secret,
                        )))
        return plan

    def dispatch(self, events: Sequence[EventRecord]) -> list[DeliveryReport]:
        if not events:
            return []
        if self._transport is None:
            logger.debug("event_dispatch_skipped_no_transport", extra={"event_count": len(events)})
            return []

        # Network I/O happens with no session open
        reports = [self._deliver(event, route) for event, route in self._plan(events)]

        self._mark_processed([e.event_id for e in events])
        if reports:
            logger.info(
                "events_dispatched",
                extra={
                    "event_count": len(events),
                    "delivery_count": len(reports),
                    "failed_count": sum(1 for r in reports if not r.success),
                },
            )
        return reports

    def dispatch_pending(self, tenant_id: UUID, limit: int = 1000) -> list[DeliveryReport]:
        """Deliver committed events that were never dispatched (outbox drain)."""
        with session_scope(self._session_factory) as session:
            rows = session.execute(
                select(InventoryEvent)
                .where(
                    InventoryEvent.tenant_id == tenant_id,
                    InventoryEvent.processed_at.is_(None),
                )
                .order_by(InventoryEvent.created_at, InventoryEvent.id)
                .limit(limit)
            ).scalars().all()
            pending = [row.to_dto() for row in rows]
        return self.dispatch(pending)

    def _deliver(self, event: EventRecord, route: _Route) -> DeliveryReport:
        request = self.build_request(event, route.url, route.secret)
        try:
            status_code = self._transport.send(request)
        except EventDeliveryError as exc:
            logger.warning(
                "webhook_delivery_failed",
                extra={
                    "event_id": str(event.event_id),
                    "event_type": event.event_type.value,
                    "channel_id": str(route.channel_id),
                    "url": route.url,
                    "reason": str(exc),
                },
            )
            return self._failed(event, route, exc)
        except Exception as exc:
            # A misbehaving transport fails this delivery only
            logger.exception(
                "webhook_transport_error",
                extra={
                    "event_id": str(event.event_id),
                    "channel_id": str(route.channel_id),
                    "url": route.url,
                },
            )
            return self._failed(event, route, exc)

        logger.info(
            "webhook_delivered",
            extra={
                "event_id": str(event.event_id),
                "event_type": event.event_type.value,
                "channel_id": str(route.channel_id),
                "status_code": status_code,
            },
        )
        return DeliveryReport(
            event_id=event.event_id,
            event_type=event.event_type.value,
            subscription_id=route.subscription_id,
            channel_id=route.channel_id,
            url=route.url,
            success=True,
            status_code=status_code,
        )

    @staticmethod
    def _failed(event: EventRecord, route: _Route, exc: Exception) -> DeliveryReport:
        return DeliveryReport(
            event_id=event.event_id,
            event_type=event.event_type.value,
            subscription_id=route.subscription_id,
            channel_id=route.channel_id,
            url=route.url,
            success=False,
            status_code=getattr(exc, "status_code", None),
            error=str(exc),
        )

    def _mark_processed(self, event_ids: list[UUID]) -> None:
        now = self._clock.now()
        with session_scope(self._session_factory) as session:
            rows = session.execute(
                select(InventoryEvent).where(InventoryEvent.id.in_(event_ids))
            ).scalars().all()
            for row in rows:
                if row.processed_at is None:
                    row.processed_at = now
