"""Named monotonic counters backing movement and audit ordering."""

from sqlalchemy import BigInteger, String
from sqlalchemy.orm import Mapped, mapped_column

from inventory_kernel.db.base import Base


class SequenceCounter(Base):
    """
    Sequence counter table.

    Each row is a named sequence with its current value.  Row-level locking
    in SequenceService keeps values monotonic under concurrency.
    """

    __tablename__ = "sequence_counters"

    # e.g. "stock_movement:<tenant_id>", "audit_log:<tenant_id>"
    name: Mapped[str] = mapped_column(String(100), nullable=False, unique=True)
    current_value: Mapped[int] = mapped_column(BigInteger, nullable=False, default=0)
