"""
Bootstrap -- wire configuration into a running InventoryService.

The one place where ``InventoryConfig`` is translated into engine, logging,
transport and facade constructor arguments.
"""

from __future__ import annotations

from uuid import UUID

from inventory_config import get_active_config
from inventory_config.schema import InventoryConfig
from inventory_kernel.db.engine import create_tables, get_session_factory, init_engine_from_url
from inventory_kernel.db.immutability import register_immutability_listeners
from inventory_kernel.domain.clock import Clock
from inventory_kernel.logging_config import configure_logging, get_logger
from inventory_services.inventory_service import InventoryService
from inventory_services.reservation_sweeper import ReservationExpirySweeper
from inventory_services.webhook import HttpxWebhookTransport, WebhookTransport

logger = get_logger("services.bootstrap")


def build_inventory_service(
    config: InventoryConfig | None = None,
    clock: Clock | None = None,
    transport: WebhookTransport | None = None,
) -> InventoryService:
    """
    Build a ready-to-use InventoryService.

    Steps: configure logging, initialize the engine, create missing tables,
    register the immutability listeners, choose the webhook transport.

    Args:
        config: Configuration; ``get_active_config()`` when omitted.
        clock: Time source; SystemClock when omitted.
        transport: Webhook transport.  When omitted, an
            HttpxWebhookTransport is created if webhooks are enabled.
    """
    config = config or get_active_config()
    configure_logging(level=config.logging.level)

    db = config.database
    engine = init_engine_from_url(
        db.url,
        echo=db.echo,
        pool_size=db.pool_size,
        max_overflow=db.max_overflow,
        pool_timeout=db.pool_timeout,
        pool_recycle=db.pool_recycle,
        sqlite_timeout=db.sqlite_timeout,
    )
    create_tables(engine)
    register_immutability_listeners()

    if transport is None and config.events.webhooks_enabled:
        transport = HttpxWebhookTransport(timeout_seconds=config.events.webhook_timeout_seconds)

    logger.info(
        "inventory_service_ready",
        extra={
            "dialect": engine.dialect.name,
            "webhooks_enabled": transport is not None,
            "config_checksum": config.checksum,
        },
    )
    return InventoryService(
        get_session_factory(),
        clock=clock,
        transport=transport,
        config=config,
    )


def build_reservation_sweeper(
    service: InventoryService,
    config: InventoryConfig | None = None,
) -> ReservationExpirySweeper:
    config = config or get_active_config()
    return ReservationExpirySweeper(
        service,
        actor_id=UUID(config.reservations.sweeper_actor_id),
        interval_seconds=config.reservations.sweep_interval_seconds,
    )
