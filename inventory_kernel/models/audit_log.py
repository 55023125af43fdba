"""ORM model for the per-tenant, hash-chained inventory audit log."""

from __future__ import annotations

from datetime import datetime
from typing import TYPE_CHECKING
from uuid import UUID

from sqlalchemy import JSON, Index, String, Text, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from inventory_kernel.db.base import Base, TenantScoped, UUIDString

if TYPE_CHECKING:
    from inventory_kernel.domain.dtos import AuditEntry


class InventoryAuditLog(TenantScoped, Base):
    """
    Audit record with hash chain for tamper evidence.

    Contract:
        Append-only, never updated or deleted.  Each row's hash covers the
        previous row's hash within the same tenant.

    Guarantees:
        - (tenant_id, seq) is unique and seq increases monotonically.
        - hash = H(entity_type | entity_id | action | payload_hash | prev_hash).
        - prev_hash is None only for a tenant's first record.
    """

    __tablename__ = "inventory_audit_log"

    __table_args__ = (
        UniqueConstraint("tenant_id", "seq", name="uq_inventory_audit_tenant_seq"),
        Index("ix_inventory_audit_entity", "tenant_id", "entity_type", "entity_id"),
        Index("ix_inventory_audit_created", "tenant_id", "created_at"),
    )

    seq: Mapped[int] = mapped_column(nullable=False)
    entity_type: Mapped[str] = mapped_column(String(50), nullable=False)
    entity_id: Mapped[UUID] = mapped_column(UUIDString(), nullable=False)
    action: Mapped[str] = mapped_column(String(50), nullable=False)
    previous_state: Mapped[dict | None] = mapped_column(JSON, nullable=True)
    new_state: Mapped[dict | None] = mapped_column(JSON, nullable=True)
    performed_by: Mapped[UUID] = mapped_column(UUIDString(), nullable=False)
    reason: Mapped[str | None] = mapped_column(Text, nullable=True)
    created_at: Mapped[datetime] = mapped_column(nullable=False)
    payload_hash: Mapped[str] = mapped_column(String(64), nullable=False)
    prev_hash: Mapped[str | None] = mapped_column(String(64), nullable=True)
    hash: Mapped[str] = mapped_column(String(64), nullable=False)

    def __repr__(self) -> str:
        return f"<InventoryAuditLog #{self.seq} {self.action} on {self.entity_type}:{self.entity_id}>"

    @property
    def is_genesis(self) -> bool:
        return self.prev_hash is None

    def to_dto(self) -> AuditEntry:
        from inventory_kernel.domain.dtos import AuditEntry
        from inventory_kernel.domain.types import AuditAction

        return AuditEntry(
            audit_id=self.id,
            seq=self.seq,
            tenant_id=self.tenant_id,
            entity_type=self.entity_type,
            entity_id=self.entity_id,
            action=AuditAction(self.action),
            previous_state=self.previous_state,
            new_state=self.new_state,
            performed_by=self.performed_by,
            reason=self.reason,
            created_at=self.created_at,
            hash=self.hash,
        )
