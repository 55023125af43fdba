"""
Module: inventory_kernel.selectors.base
Responsibility: Base class for read-only selectors, and the tenant-scoped
    identity lookup shared by readers and writers.
Architecture position: Kernel > Selectors.  May import from db/ and models/.

Invariants enforced:
    - Read-only: selectors never add, delete, flush or commit.
    - DTO return convention: selectors return frozen dataclasses, not live
      ORM rows.
    - Tenant isolation: an id that exists under another tenant is reported
      as TenantMismatchError, never returned.
"""

from typing import TypeVar
from uuid import UUID

from sqlalchemy.orm import Session

from inventory_kernel.db.base import Base
from inventory_kernel.exceptions import NotFoundError, TenantMismatchError

ModelType = TypeVar("ModelType", bound=Base)


def load_owned(
    session: Session,
    model: type[ModelType],
    tenant_id: UUID,
    entity_id: UUID,
    not_found: type[NotFoundError],
) -> ModelType:
    """
    Load ``model`` by primary key and check it belongs to ``tenant_id``.

    Raises:
        not_found: no row with that id exists for any tenant.
        TenantMismatchError: the row exists under a different tenant.
    """
    row = session.get(model, entity_id)
    if row is None:
        raise not_found(str(entity_id))
    if row.tenant_id != tenant_id:
        raise TenantMismatchError(not_found.entity_type, str(entity_id), str(tenant_id))
    return row


class BaseSelector:
    """
    Base class for all selectors.

    Contract:
        Accepts a Session from the caller, performs read-only queries and
        returns DTOs.  The caller owns the session and its transaction.
    """

    def __init__(self, session: Session, max_results: int = 1000):
        self.session = session
        self.max_results = max_results

    def _limit(self, requested: int | None) -> int:
        if requested is None or requested <= 0:
            return self.max_results
        return min(requested, self.max_results)
