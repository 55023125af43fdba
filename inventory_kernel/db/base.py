"""
Module: inventory_kernel.db.base
Responsibility: Declarative base classes for all SQLAlchemy ORM models.  Provides
    the UUID primary key convention, the type annotation map for consistent column
    types, and the TenantScoped mixin carried by every inventory entity.
Architecture position: Kernel > DB.  Lowest-level import target within the kernel.
    ALL model files import from here.  MUST NOT import from models/, services/,
    selectors/, domain/, or outer layers.

Invariants enforced:
    - UUID primary keys: every model inherits a uuid4-generated primary key.
    - Decimal precision: Python Decimal maps to Numeric(38, 9).  Quantities and
      unit costs are NEVER floats.
    - Timezone-aware timestamps: datetime maps to UTCDateTime, which always
      returns aware UTC values, including on SQLite where the driver drops the
      offset.
    - Tenant scoping: TenantScoped adds a non-null, indexed tenant_id.

Failure modes:
    - IntegrityError if a duplicate UUID is inserted (PK constraint).
    - ValueError if a naive datetime is bound to a UTCDateTime column.
"""

from datetime import datetime, timezone
from decimal import Decimal
from typing import ClassVar
from uuid import UUID as PyUUID, uuid4

from sqlalchemy import BigInteger, DateTime, Numeric, String
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column
from sqlalchemy.types import TypeDecorator


class UUIDString(TypeDecorator):
    """
    UUID type stored as String(36) for cross-database portability.

    Guarantees:
        - process_bind_param: UUID -> str on INSERT/UPDATE.
        - process_result_value: str -> UUID on SELECT.
    """

    impl = String(36)
    cache_ok = True

    def process_bind_param(self, value, dialect):
        if value is not None:
            return str(value)
        return None

    def process_result_value(self, value, dialect):
        if value is not None:
            return PyUUID(value)
        return None


class UTCDateTime(TypeDecorator):
    """
    Timezone-aware datetime that round-trips as UTC on every backend.

    Contract:
        Only aware datetimes may be bound.  Values are normalized to UTC on
        the way in and re-tagged as UTC on the way out (SQLite stores them
        without an offset).
    """

    impl = DateTime(timezone=True)
    cache_ok = True

    def process_bind_param(self, value, dialect):
        if value is None:
            return None
        if value.tzinfo is None:
            raise ValueError("naive datetime bound to a timezone-aware column")
        value = value.astimezone(timezone.utc)
        if dialect.name == "sqlite":
            return value.replace(tzinfo=None)
        return value

    def process_result_value(self, value, dialect):
        if value is None:
            return None
        if value.tzinfo is None:
            return value.replace(tzinfo=timezone.utc)
        return value.astimezone(timezone.utc)


class Base(DeclarativeBase):
    """
    Declarative base for all SQLAlchemy models.

    Guarantees:
        - id is always a uuid4-generated UUID stored as String(36).
        - Decimal maps to Numeric(38, 9).
        - datetime maps to UTCDateTime -- always timezone-aware.
        - int maps to BigInteger -- safe for monotonic sequences.
    """

    type_annotation_map: ClassVar[dict] = {
        Decimal: Numeric(38, 9),
        datetime: UTCDateTime(),
        PyUUID: UUIDString(),
        int: BigInteger,
    }

    id: Mapped[PyUUID] = mapped_column(
        UUIDString(),
        primary_key=True,
        default=uuid4,
    )


class TenantScoped:
    """Mixin: every inventory entity is owned by exactly one tenant."""

    tenant_id: Mapped[PyUUID] = mapped_column(
        UUIDString(),
        nullable=False,
        index=True,
    )


# Re-export UUID for convenience
UUID = PyUUID
