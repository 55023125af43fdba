"""
AuditRecorder -- tamper-evident audit trail for every inventory mutation.

Responsibility:
    Appends one immutable, hash-chained InventoryAuditLog row per recorded
    action (stock mutation, lifecycle transition, catalog change), and
    answers search, entity-history and chain-validation queries.

Architecture position:
    Kernel > Services.  Called by StockLedger, TransferCoordinator,
    ReservationManager and CatalogService inside their unit of work.

Invariants enforced:
    - Per-tenant sequence: seq comes from SequenceService
      (``audit_log:<tenant>``), never from max(seq)+1.
    - Hash chain: hash = H(entity_type | entity_id | action | payload_hash |
      prev_hash), with prev_hash the tenant's previous record.
    - Append-only: rows are protected by ORM listeners.

Failure modes:
    - AuditChainBrokenError from validate_chain() when a stored hash does not
      match its recomputation or does not link to its predecessor.
"""

from dataclasses import dataclass
from typing import Any
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.orm import Session

from inventory_kernel.domain.clock import Clock
from inventory_kernel.domain.dtos import AuditEntry, AuditSearchFilter
from inventory_kernel.domain.types import AuditAction
from inventory_kernel.exceptions import AuditChainBrokenError
from inventory_kernel.logging_config import get_logger
from inventory_kernel.models.audit_log import InventoryAuditLog
from inventory_kernel.services.base import BaseService
from inventory_kernel.services.sequence_service import SequenceService
from inventory_kernel.utils.hashing import hash_audit_event, hash_payload, to_json_compatible

logger = get_logger("services.audit")

DEFAULT_SEARCH_LIMIT = 1000


@dataclass(frozen=True)
class AuditTrace:
    """Every audit record for one entity, oldest first."""

    entity_type: str
    entity_id: UUID
    entries: tuple[AuditEntry, ...]

    @property
    def is_empty(self) -> bool:
        return len(self.entries) == 0

    @property
    def actions(self) -> tuple[AuditAction, ...]:
        return tuple(e.action for e in self.entries)


class AuditRecorder(BaseService):
    """
    Service for creating and querying tamper-evident audit records.

    Contract:
        ``record()`` flushes one InventoryAuditLog row linked into the
        tenant's hash chain.  States are stored as canonical JSON values.

    Non-goals:
        - Does NOT call ``session.commit()``.
        - Does NOT interpret audit records.
    """

    def __init__(
        self,
        session: Session,
        clock: Clock | None = None,
        search_limit: int = DEFAULT_SEARCH_LIMIT,
    ):
        super().__init__(session, clock)
        self._sequence_service = SequenceService(session)
        self._search_limit = search_limit

    def _get_last_hash(self, tenant_id: UUID) -> str | None:
        last = self.session.execute(
            select(InventoryAuditLog.hash)
            .where(InventoryAuditLog.tenant_id == tenant_id)
            .order_by(InventoryAuditLog.seq.desc())
            .limit(1)
        ).scalar_one_or_none()
        return last

    def record(
        self,
        tenant_id: UUID,
        entity_type: str,
        entity_id: UUID,
        action: AuditAction,
        performed_by: UUID,
        previous_state: dict[str, Any] | None = None,
        new_state: dict[str, Any] | None = None,
        reason: str | None = None,
    ) -> InventoryAuditLog:
        """
        Append one audit record to the tenant's chain.

        Postconditions:
            - The new row's seq is greater than every earlier seq for the
              tenant, and its prev_hash equals the previous row's hash.
        """
        seq = self._sequence_service.next_value(
            SequenceService.tenant_sequence(SequenceService.AUDIT_LOG, tenant_id)
        )
        prev_hash = self._get_last_hash(tenant_id)

        previous_json = to_json_compatible(previous_state)
        new_json = to_json_compatible(new_state)
        payload_hash = hash_payload({
            "previous_state": previous_json,
            "new_state": new_json,
            "performed_by": str(performed_by),
            "reason": reason,
        })
        record_hash = hash_audit_event(
            entity_type=entity_type,
            entity_id=str(entity_id),
            action=action.value,
            payload_hash=payload_hash,
            prev_hash=prev_hash,
        )

        row = InventoryAuditLog(
            tenant_id=tenant_id,
            seq=seq,
            entity_type=entity_type,
            entity_id=entity_id,
            action=action.value,
            previous_state=previous_json,
            new_state=new_json,
            performed_by=performed_by,
            reason=reason,
            created_at=self.clock.now(),
            payload_hash=payload_hash,
            prev_hash=prev_hash,
            hash=record_hash,
        )
        self.session.add(row)
        self.session.flush()

        logger.info(
            "audit_record_created",
            extra={
                "entity_type": entity_type,
                "entity_id": str(entity_id),
                "action": action.value,
                "seq": seq,
            },
        )
        return row

    # Queries

    def search(self, tenant_id: UUID, criteria: AuditSearchFilter | None = None) -> list[AuditEntry]:
        """Matching records, newest first, bounded by the filter or search limit."""
        criteria = criteria or AuditSearchFilter()
        stmt = select(InventoryAuditLog).where(InventoryAuditLog.tenant_id == tenant_id)
        if criteria.entity_type is not None:
            stmt = stmt.where(InventoryAuditLog.entity_type == criteria.entity_type)
        if criteria.entity_id is not None:
            stmt = stmt.where(InventoryAuditLog.entity_id == criteria.entity_id)
        if criteria.action is not None:
            stmt = stmt.where(InventoryAuditLog.action == AuditAction(criteria.action).value)
        if criteria.performed_by is not None:
            stmt = stmt.where(InventoryAuditLog.performed_by == criteria.performed_by)
        if criteria.from_date is not None:
            stmt = stmt.where(InventoryAuditLog.created_at >= criteria.from_date)
        if criteria.to_date is not None:
            stmt = stmt.where(InventoryAuditLog.created_at <= criteria.to_date)

        limit = min(criteria.limit or self._search_limit, self._search_limit)
        rows = self.session.execute(
            stmt.order_by(InventoryAuditLog.seq.desc()).limit(limit)
        ).scalars().all()
        return [row.to_dto() for row in rows]

    def get_entity_history(self, tenant_id: UUID, entity_type: str, entity_id: UUID) -> AuditTrace:
        rows = self.session.execute(
            select(InventoryAuditLog)
            .where(
                InventoryAuditLog.tenant_id == tenant_id,
                InventoryAuditLog.entity_type == entity_type,
                InventoryAuditLog.entity_id == entity_id,
            )
            .order_by(InventoryAuditLog.seq)
        ).scalars().all()
        return AuditTrace(
            entity_type=entity_type,
            entity_id=entity_id,
            entries=tuple(row.to_dto() for row in rows),
        )

    # Chain validation

    def validate_chain(self, tenant_id: UUID) -> bool:
        """
        Recompute every hash in the tenant's chain.

        Raises:
            AuditChainBrokenError: at the first record whose hash or link
                does not verify.
        """
        rows = self.session.execute(
            select(InventoryAuditLog)
            .where(InventoryAuditLog.tenant_id == tenant_id)
            .order_by(InventoryAuditLog.seq)
        ).scalars().all()

        expected_prev: str | None = None
        for row in rows:
            if row.prev_hash != expected_prev:
                logger.critical(
                    "audit_chain_broken",
                    extra={"audit_id": str(row.id), "seq": row.seq, "check": "link"},
                )
                raise AuditChainBrokenError(
                    str(row.id), expected_prev or "None", row.prev_hash or "None",
                )

            payload_hash = hash_payload({
                "previous_state": row.previous_state,
                "new_state": row.new_state,
                "performed_by": str(row.performed_by),
                "reason": row.reason,
            })
            expected_hash = hash_audit_event(
                entity_type=row.entity_type,
                entity_id=str(row.entity_id),
                action=row.action,
                payload_hash=payload_hash,
                prev_hash=row.prev_hash,
            )
            if row.payload_hash != payload_hash or row.hash != expected_hash:
                logger.critical(
                    "audit_chain_broken",
                    extra={"audit_id": str(row.id), "seq": row.seq, "check": "hash"},
                )
                raise AuditChainBrokenError(str(row.id), expected_hash, row.hash)

            expected_prev = row.hash

        logger.info(
            "audit_chain_valid",
            extra={"tenant_id": str(tenant_id), "record_count": len(rows)},
        )
        return True
