"""
Pure domain layer.

Enums, DTOs, event payloads, lifecycle workflows and the clock.  Nothing
here touches the ORM or the database.
"""

from inventory_kernel.domain.clock import Clock, DeterministicClock, SystemClock
from inventory_kernel.domain.types import (
    AuditAction,
    BatchSource,
    ChannelType,
    CostingStrategy,
    EventType,
    LocationType,
    MovementType,
    ReservationStatus,
    SubscriptionStatus,
    TransferStatus,
)

__all__ = [
    "AuditAction",
    "BatchSource",
    "ChannelType",
    "Clock",
    "CostingStrategy",
    "DeterministicClock",
    "EventType",
    "LocationType",
    "MovementType",
    "ReservationStatus",
    "SubscriptionStatus",
    "SystemClock",
    "TransferStatus",
]
