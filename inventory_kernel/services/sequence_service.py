"""
SequenceService -- monotonic sequence allocation via locked counter rows.

Responsibility:
    Hands out strictly increasing integers per named sequence.  Movements
    and audit records are ordered by per-tenant sequences
    (``stock_movement:<tenant>``, ``audit_log:<tenant>``), so concurrent
    tenants never contend on one counter.

Invariants enforced:
    - Monotonicity: the locked counter row is the only source of the next
      value.  max(seq)+1 is never used.
    - Transactional: an increment is visible only once the caller commits;
      a rollback returns the value.

Failure modes:
    - IntegrityError on a concurrent first-use race, handled by rolling back
      a savepoint and re-reading the counter with a lock.
"""

from uuid import UUID

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from inventory_kernel.logging_config import get_logger
from inventory_kernel.models.sequence import SequenceCounter

logger = get_logger("services.sequence")


class SequenceService:
    """
    Service for transactional sequence numbers.

    Non-goals:
        - Does NOT call ``session.commit()``.
    """

    STOCK_MOVEMENT = "stock_movement"
    AUDIT_LOG = "audit_log"

    def __init__(self, session: Session):
        self._session = session

    @staticmethod
    def tenant_sequence(prefix: str, tenant_id: UUID) -> str:
        return f"{prefix}:{tenant_id}"

    def _locked_counter(self, sequence_name: str) -> SequenceCounter | None:
        return self._session.execute(
            select(SequenceCounter)
            .where(SequenceCounter.name == sequence_name)
            .with_for_update()
            .execution_options(populate_existing=True)
        ).scalar_one_or_none()

    def next_value(self, sequence_name: str) -> int:
        """
        Lock the named counter (creating it on first use), increment it and
        return the new value.

        Postconditions:
            - Returns an integer > 0 strictly greater than any value
              previously returned for this name.
            - The counter row stays locked until the transaction ends.
        """
        counter = self._locked_counter(sequence_name)

        if counter is None:
            savepoint = self._session.begin_nested()
            try:
                counter = SequenceCounter(name=sequence_name, current_value=1)
                self._session.add(counter)
                self._session.flush()
                savepoint.commit()
                logger.debug(
                    "sequence_allocated",
                    extra={"sequence_name": sequence_name, "value": 1},
                )
                return 1
            except IntegrityError:
                logger.debug(
                    "sequence_counter_race_retry",
                    extra={"sequence_name": sequence_name},
                )
                savepoint.rollback()
                counter = self._locked_counter(sequence_name)
                if counter is None:
                    raise

        counter.current_value += 1
        self._session.flush()
        logger.debug(
            "sequence_allocated",
            extra={"sequence_name": sequence_name, "value": counter.current_value},
        )
        return counter.current_value

