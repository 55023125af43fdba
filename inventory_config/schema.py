"""
InventoryConfig schema.

Typed, frozen view of the service configuration.  YAML documents are
parsed into these dataclasses by ``inventory_config.loader``; nothing at
runtime reads raw YAML or environment variables.
"""

from __future__ import annotations

from dataclasses import dataclass, field


@dataclass(frozen=True)
class DatabaseConfig:
    url: str = "sqlite:///:memory:"
    echo: bool = False
    pool_size: int = 20
    max_overflow: int = 10
    pool_timeout: int = 30
    pool_recycle: int = 3600
    sqlite_timeout: float = 30.0


@dataclass(frozen=True)
class CostingConfig:
    # Decimal places for the AVERAGE unit cost (ROUND_HALF_UP)
    average_cost_places: int = 4


@dataclass(frozen=True)
class EventsConfig:
    webhooks_enabled: bool = True
    webhook_timeout_seconds: float = 10.0
    event_header: str = "X-Webhook-Event"
    signature_header: str = "X-Webhook-Signature"


@dataclass(frozen=True)
class ReservationsConfig:
    sweep_interval_seconds: float = 60.0
    sweeper_actor_id: str = "00000000-0000-0000-0000-000000000000"


@dataclass(frozen=True)
class QueryConfig:
    max_results: int = 1000


@dataclass(frozen=True)
class LoggingConfig:
    level: str = "INFO"


@dataclass(frozen=True)
class InventoryConfig:
    """Root configuration artifact."""

    database: DatabaseConfig = field(default_factory=DatabaseConfig)
    costing: CostingConfig = field(default_factory=CostingConfig)
    events: EventsConfig = field(default_factory=EventsConfig)
    reservations: ReservationsConfig = field(default_factory=ReservationsConfig)
    query: QueryConfig = field(default_factory=QueryConfig)
    logging: LoggingConfig = field(default_factory=LoggingConfig)
    checksum: str = ""
