"""
BaseService -- abstract base for session-bound write services.

Services receive a SQLAlchemy ``Session`` and persist with ``flush()``;
they never commit or roll back.  The caller (``InventoryService`` or a test)
owns the transaction, which is what lets one public operation span stock
levels, batches, movements, audit records and events atomically.
"""

from abc import ABC

from sqlalchemy.orm import Session

from inventory_kernel.domain.clock import Clock, SystemClock


class BaseService(ABC):
    """
    Abstract base class for write services.

    Guarantees:
        The service never calls ``session.commit()`` or
        ``session.rollback()``.
    """

    def __init__(self, session: Session, clock: Clock | None = None):
        self.session = session
        self.clock = clock or SystemClock()
