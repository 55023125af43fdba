"""Database layer - engine, base classes, locking and immutability."""

from inventory_kernel.db.base import UUID, Base, TenantScoped, UTCDateTime, UUIDString
from inventory_kernel.db.engine import create_tables, get_engine, get_session, session_scope
from inventory_kernel.db.locking import AggregateKey, AggregateLocks

__all__ = [
    "AggregateKey",
    "AggregateLocks",
    "Base",
    "TenantScoped",
    "UTCDateTime",
    "UUID",
    "UUIDString",
    "create_tables",
    "get_engine",
    "get_session",
    "session_scope",
]
