"""
Typed Exception Hierarchy for the Inventory Kernel.

===============================================================================
WHY TYPED EXCEPTIONS
===============================================================================

Callers of the stock ledger must be able to tell "not enough stock" from
"wrong tenant" from "the database went away" without parsing message text.
Every error therefore:
  1. Has its own exception class (catch by type, not message)
  2. Carries a CODE class attribute (machine-readable, API-safe)
  3. Carries structured DATA as instance attributes

Example:
    try:
        service.sell_stock(...)
    except InsufficientStockError as e:
        api_response(code=e.code, available=str(e.available))

Business errors are always raised BEFORE any state is mutated, so the
unit of work that raised them rolls back to exactly the prior state.

===============================================================================
EXCEPTION HIERARCHY
===============================================================================

    InventoryKernelError (base)
    |
    +-- NotFoundError
    |   +-- ProductNotFoundError
    |   +-- LocationNotFoundError
    |   +-- BatchNotFoundError
    |   +-- TransferNotFoundError
    |   +-- ReservationNotFoundError
    |   +-- ChannelNotFoundError
    |   +-- SubscriptionNotFoundError
    |
    +-- TenantMismatchError
    +-- InsufficientStockError
    +-- InvalidStateTransitionError
    +-- InvalidStrategyConfigurationError
    |
    +-- ValidationError
    |   +-- InvalidQuantityError
    |   +-- DuplicateSkuError
    |   +-- DuplicateCodeError
    |   +-- DuplicateTransferError
    |   +-- LocationCycleError
    |   +-- InvalidEventTypeError
    |
    +-- AuditError
    |   +-- AuditChainBrokenError
    |
    +-- ImmutabilityError
    |   +-- ImmutabilityViolationError
    |
    +-- StorageError
    |
    +-- EventDeliveryError
        +-- WebhookDeliveryError

===============================================================================
ERROR CODES - QUICK REFERENCE
===============================================================================

Category        | Code                            | When Raised
----------------|---------------------------------|-------------------------------------
Identity        | PRODUCT_NOT_FOUND (etc.)        | Id unknown for any tenant
                | TENANT_MISMATCH                 | Id exists under a different tenant
----------------|---------------------------------|-------------------------------------
Stock           | INSUFFICIENT_STOCK              | Request exceeds available/batch qty
                | INVALID_STRATEGY_CONFIGURATION  | SPECIFIC without/with foreign batch
----------------|---------------------------------|-------------------------------------
Lifecycle       | INVALID_STATE_TRANSITION        | Transfer/reservation wrong state
----------------|---------------------------------|-------------------------------------
Validation      | INVALID_QUANTITY                | Quantity not positive / delta zero
                | DUPLICATE_SKU                   | SKU already used by tenant
                | DUPLICATE_CODE                  | Location/channel code reused
                | DUPLICATE_TRANSFER              | Open transfer on the same route
                | LOCATION_CYCLE                  | Parent chain would loop
                | INVALID_EVENT_TYPE              | Unknown subscription event type
----------------|---------------------------------|-------------------------------------
Integrity       | AUDIT_CHAIN_BROKEN              | Hash chain validation failed
                | IMMUTABILITY_VIOLATION          | Update/delete of protected row
----------------|---------------------------------|-------------------------------------
Infrastructure  | STORAGE_ERROR                   | Database failure inside a unit of work
                | WEBHOOK_DELIVERY_FAILED         | Webhook POST failed (never propagated
                |                                 | out of a ledger operation)
"""

from decimal import Decimal


class InventoryKernelError(Exception):
    """
    Base exception for all inventory kernel errors.

    All subclasses must have a `code` class attribute
    for machine-readable error identification.
    """

    code: str = "INVENTORY_KERNEL_ERROR"


# Identity exceptions


class NotFoundError(InventoryKernelError):
    """Base exception for unknown identifiers."""

    code: str = "NOT_FOUND"
    entity_type: str = "Entity"

    def __init__(self, entity_id: str):
        self.entity_id = entity_id
        super().__init__(f"{self.entity_type} not found: {entity_id}")


class ProductNotFoundError(NotFoundError):
    code: str = "PRODUCT_NOT_FOUND"
    entity_type = "Product"


class LocationNotFoundError(NotFoundError):
    code: str = "LOCATION_NOT_FOUND"
    entity_type = "Location"


class BatchNotFoundError(NotFoundError):
    code: str = "BATCH_NOT_FOUND"
    entity_type = "StockBatch"


class TransferNotFoundError(NotFoundError):
    code: str = "TRANSFER_NOT_FOUND"
    entity_type = "StockTransfer"


class ReservationNotFoundError(NotFoundError):
    code: str = "RESERVATION_NOT_FOUND"
    entity_type = "Reservation"


class ChannelNotFoundError(NotFoundError):
    code: str = "CHANNEL_NOT_FOUND"
    entity_type = "Channel"


class SubscriptionNotFoundError(NotFoundError):
    code: str = "SUBSCRIPTION_NOT_FOUND"
    entity_type = "ChannelSubscription"


class TenantMismatchError(InventoryKernelError):
    """The referenced entity exists but belongs to another tenant."""

    code: str = "TENANT_MISMATCH"

    def __init__(self, entity_type: str, entity_id: str, tenant_id: str):
        self.entity_type = entity_type
        self.entity_id = entity_id
        self.tenant_id = tenant_id
        super().__init__(
            f"{entity_type} {entity_id} does not belong to tenant {tenant_id}"
        )


# Stock exceptions


class InsufficientStockError(InventoryKernelError):
    """Requested quantity exceeds what the aggregate or batch can supply."""

    code: str = "INSUFFICIENT_STOCK"

    def __init__(
        self,
        product_id: str,
        location_id: str,
        requested: Decimal,
        available: Decimal,
        batch_id: str | None = None,
    ):
        self.product_id = product_id
        self.location_id = location_id
        self.requested = requested
        self.available = available
        self.batch_id = batch_id
        where = f"batch {batch_id}" if batch_id else f"location {location_id}"
        super().__init__(
            f"Insufficient stock for product {product_id} at {where}: "
            f"requested {requested}, available {available}"
        )


class InvalidStrategyConfigurationError(InventoryKernelError):
    """The costing strategy cannot be applied as requested."""

    code: str = "INVALID_STRATEGY_CONFIGURATION"

    def __init__(self, strategy: str, reason: str):
        self.strategy = strategy
        self.reason = reason
        super().__init__(f"Invalid use of {strategy} costing: {reason}")


class InvalidStateTransitionError(InventoryKernelError):
    """A lifecycle action was requested from a state that does not allow it."""

    code: str = "INVALID_STATE_TRANSITION"

    def __init__(self, entity_type: str, entity_id: str, current_state: str, action: str):
        self.entity_type = entity_type
        self.entity_id = entity_id
        self.current_state = current_state
        self.action = action
        super().__init__(
            f"Cannot {action} {entity_type} {entity_id} in state '{current_state}'"
        )


# Validation exceptions


class ValidationError(InventoryKernelError):
    """Base exception for rejected input."""

    code: str = "VALIDATION_ERROR"


class InvalidQuantityError(ValidationError):
    code: str = "INVALID_QUANTITY"

    def __init__(self, field: str, value: Decimal, reason: str):
        self.field = field
        self.value = value
        self.reason = reason
        super().__init__(f"Invalid {field} {value}: {reason}")


class DuplicateSkuError(ValidationError):
    code: str = "DUPLICATE_SKU"

    def __init__(self, sku: str):
        self.sku = sku
        super().__init__(f"SKU already exists: {sku}")


class DuplicateCodeError(ValidationError):
    code: str = "DUPLICATE_CODE"

    def __init__(self, entity_type: str, code_value: str):
        self.entity_type = entity_type
        self.code_value = code_value
        super().__init__(f"{entity_type} code already exists: {code_value}")


class DuplicateTransferError(ValidationError):
    code: str = "DUPLICATE_TRANSFER"

    def __init__(self, existing_transfer_id: str):
        self.existing_transfer_id = existing_transfer_id
        super().__init__(
            f"An open transfer already exists on this route: {existing_transfer_id}"
        )


class LocationCycleError(ValidationError):
    code: str = "LOCATION_CYCLE"

    def __init__(self, location_id: str, parent_location_id: str):
        self.location_id = location_id
        self.parent_location_id = parent_location_id
        super().__init__(
            f"Setting parent {parent_location_id} on location {location_id} "
            "would create a cycle"
        )


class InvalidEventTypeError(ValidationError):
    code: str = "INVALID_EVENT_TYPE"

    def __init__(self, event_type: str):
        self.event_type = event_type
        super().__init__(f"Unknown event type: {event_type}")


# Audit exceptions


class AuditError(InventoryKernelError):
    """Base exception for audit-related errors."""

    code: str = "AUDIT_ERROR"


class AuditChainBrokenError(AuditError):
    """Audit hash chain validation failed."""

    code: str = "AUDIT_CHAIN_BROKEN"

    def __init__(self, audit_log_id: str, expected_hash: str, actual_hash: str):
        self.audit_log_id = audit_log_id
        self.expected_hash = expected_hash
        self.actual_hash = actual_hash
        super().__init__(
            f"Audit chain broken at {audit_log_id}: "
            f"expected {expected_hash}, found {actual_hash}"
        )


# Immutability exceptions


class ImmutabilityError(InventoryKernelError):
    """Base exception for immutability violations."""

    code: str = "IMMUTABILITY_ERROR"


class ImmutabilityViolationError(ImmutabilityError):
    """Attempted to modify or delete a protected record."""

    code: str = "IMMUTABILITY_VIOLATION"

    def __init__(self, entity_type: str, entity_id: str, reason: str):
        self.entity_type = entity_type
        self.entity_id = entity_id
        self.reason = reason
        super().__init__(
            f"Immutability violation on {entity_type} {entity_id}: {reason}"
        )


# Infrastructure exceptions


class StorageError(InventoryKernelError):
    """The database failed underneath an otherwise valid operation."""

    code: str = "STORAGE_ERROR"

    def __init__(self, operation: str, detail: str):
        self.operation = operation
        self.detail = detail
        super().__init__(f"Storage failure during {operation}: {detail}")


class EventDeliveryError(InventoryKernelError):
    """Base exception for outbound event delivery failures."""

    code: str = "EVENT_DELIVERY_ERROR"


class WebhookDeliveryError(EventDeliveryError):
    code: str = "WEBHOOK_DELIVERY_FAILED"

    def __init__(self, url: str, reason: str, status_code: int | None = None):
        self.url = url
        self.reason = reason
        self.status_code = status_code
        super().__init__(f"Webhook delivery to {url} failed: {reason}")
