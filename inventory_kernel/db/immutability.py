"""
ORM-Level Immutability Enforcement.

===============================================================================
WHY THIS EXISTS
===============================================================================

The movement trail and the audit log are the ledger's history; a quantity or
cost that can be edited after the fact is not history.  These listeners fire
before SQLAlchemy sends UPDATE/DELETE statements and abort the flush when a
protected record would change.

    session.flush()
         |
         v
    [before_update] --> _check_*() --> ImmutabilityViolationError
    [before_delete] --> _check_*() ------------^
         |
         v
    SQL sent to database (only if checks pass)

===============================================================================
PROTECTED ENTITIES
===============================================================================

Entity              | Rule
--------------------|---------------------------------------------------------
StockMovement       | Never updated, never deleted
InventoryAuditLog   | Never updated, never deleted
InventoryEvent      | Only processed_at may change; never deleted
StockBatch          | Only remaining_quantity may change; never deleted
StockLevel          | Never deleted (zeroed instead)
Product             | tenant_id, sku and inventory_strategy frozen
StockTransfer       | Frozen once completed or cancelled
Reservation         | Frozen once fulfilled, cancelled or expired

===============================================================================
USAGE
===============================================================================

    from inventory_kernel.db.immutability import register_immutability_listeners
    register_immutability_listeners()  # once at startup

    unregister_immutability_listeners()  # TESTS ONLY
"""

from sqlalchemy import event, inspect
from sqlalchemy.orm.attributes import get_history

from inventory_kernel.exceptions import ImmutabilityViolationError
from inventory_kernel.logging_config import get_logger

logger = get_logger("db.immutability")


def _changed_columns(target) -> set[str]:
    """Names of column attributes with pending changes on ``target``."""
    state = inspect(target)
    changed = set()
    for attr in state.mapper.column_attrs:
        if get_history(target, attr.key).has_changes():
            changed.add(attr.key)
    return changed


def _block(target, operation: str, reason: str):
    entity_type = type(target).__name__
    logger.error(
        "immutability_violation_blocked",
        extra={
            "entity_type": entity_type,
            "entity_id": str(target.id),
            "operation": operation,
            "reason": reason,
        },
    )
    raise ImmutabilityViolationError(
        entity_type=entity_type,
        entity_id=str(target.id),
        reason=reason,
    )


def _previous_value(target, key: str):
    history = get_history(target, key)
    if history.deleted:
        return history.deleted[0]
    if history.unchanged:
        return history.unchanged[0]
    return getattr(target, key)


# -----------------------------------------------------------------------------
# Append-only records
# -----------------------------------------------------------------------------


def _check_movement_update(mapper, connection, target):
    _block(target, "UPDATE", "Stock movements are append-only")


def _check_movement_delete(mapper, connection, target):
    _block(target, "DELETE", "Stock movements are append-only")


def _check_audit_log_update(mapper, connection, target):
    _block(target, "UPDATE", "Audit records are immutable and cannot be modified")


def _check_audit_log_delete(mapper, connection, target):
    _block(target, "DELETE", "Audit records cannot be deleted")


def _check_event_update(mapper, connection, target):
    forbidden = _changed_columns(target) - {"processed_at"}
    if forbidden:
        _block(target, "UPDATE", f"Only processed_at may change, not {sorted(forbidden)}")


def _check_event_delete(mapper, connection, target):
    _block(target, "DELETE", "Inventory events cannot be deleted")


# -----------------------------------------------------------------------------
# Stock state
# -----------------------------------------------------------------------------


def _check_batch_update(mapper, connection, target):
    forbidden = _changed_columns(target) - {"remaining_quantity"}
    if forbidden:
        _block(target, "UPDATE", f"Batch fields {sorted(forbidden)} are immutable")


def _check_batch_delete(mapper, connection, target):
    _block(target, "DELETE", "Stock batches are never deleted")


def _check_stock_level_delete(mapper, connection, target):
    _block(target, "DELETE", "Stock levels are zeroed, never deleted")


def _check_product_update(mapper, connection, target):
    frozen = _changed_columns(target) & {"tenant_id", "sku", "inventory_strategy"}
    if frozen:
        _block(target, "UPDATE", f"Product fields {sorted(frozen)} are immutable")


# -----------------------------------------------------------------------------
# Terminal lifecycle states
# -----------------------------------------------------------------------------

_TRANSFER_TERMINAL = frozenset({"completed", "cancelled"})
_RESERVATION_TERMINAL = frozenset({"fulfilled", "cancelled", "expired"})


def _check_transfer_update(mapper, connection, target):
    if _previous_value(target, "status") in _TRANSFER_TERMINAL and _changed_columns(target):
        _block(target, "UPDATE", "Completed or cancelled transfers are final")


def _check_reservation_update(mapper, connection, target):
    if _previous_value(target, "status") in _RESERVATION_TERMINAL and _changed_columns(target):
        _block(target, "UPDATE", "Resolved reservations are final")


def _listeners():
    from inventory_kernel.models import (
        InventoryAuditLog,
        InventoryEvent,
        Product,
        Reservation,
        StockBatch,
        StockLevel,
        StockMovement,
        StockTransfer,
    )

    return (
        (StockMovement, "before_update", _check_movement_update),
        (StockMovement, "before_delete", _check_movement_delete),
        (InventoryAuditLog, "before_update", _check_audit_log_update),
        (InventoryAuditLog, "before_delete", _check_audit_log_delete),
        (InventoryEvent, "before_update", _check_event_update),
        (InventoryEvent, "before_delete", _check_event_delete),
        (StockBatch, "before_update", _check_batch_update),
        (StockBatch, "before_delete", _check_batch_delete),
        (StockLevel, "before_delete", _check_stock_level_delete),
        (Product, "before_update", _check_product_update),
        (StockTransfer, "before_update", _check_transfer_update),
        (Reservation, "before_update", _check_reservation_update),
    )


def register_immutability_listeners():
    """
    Register all immutability enforcement event listeners.

    Safe to call more than once; already-registered listeners are skipped.
    """
    for target, event_name, listener_fn in _listeners():
        if not event.contains(target, event_name, listener_fn):
            event.listen(target, event_name, listener_fn)


def _safe_remove_listener(target, event_name, listener_fn):
    """Remove an event listener, ignoring if not registered."""
    if event.contains(target, event_name, listener_fn):
        event.remove(target, event_name, listener_fn)


def unregister_immutability_listeners():
    """
    Remove immutability enforcement event listeners.

    WARNING: Only use this in tests that must violate immutability rules to
    verify detection (e.g. tampering with the audit chain).
    """
    for target, event_name, listener_fn in _listeners():
        _safe_remove_listener(target, event_name, listener_fn)
