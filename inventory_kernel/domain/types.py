"""
Enumerations shared by every inventory layer.

All enums are ``str`` subclasses so they persist as plain strings and
serialize into JSON payloads without conversion.
"""

from enum import Enum


class CostingStrategy(str, Enum):
    """How unit cost is attributed to consumed stock."""

    FIFO = "FIFO"
    LIFO = "LIFO"
    AVERAGE = "AVERAGE"
    SPECIFIC = "SPECIFIC"

    @property
    def depletes_batches(self) -> bool:
        """AVERAGE prices from the pool without touching batch quantities."""
        return self is not CostingStrategy.AVERAGE

    @property
    def requires_batch(self) -> bool:
        return self is CostingStrategy.SPECIFIC


class MovementType(str, Enum):
    RECEIPT = "receipt"
    SALE = "sale"
    TRANSFER_OUT = "transfer_out"
    TRANSFER_IN = "transfer_in"
    ADJUSTMENT_INCREASE = "adjustment_increase"
    ADJUSTMENT_DECREASE = "adjustment_decrease"
    RESERVATION = "reservation"
    RESERVATION_RELEASE = "reservation_release"
    RETURN = "return"
    WRITE_OFF = "write_off"


class BatchSource(str, Enum):
    """Why a cost layer exists."""

    RECEIPT = "receipt"
    ADJUSTMENT = "adjustment"
    TRANSFER = "transfer"
    RETURN = "return"


class TransferStatus(str, Enum):
    PENDING = "pending"
    IN_TRANSIT = "in_transit"
    COMPLETED = "completed"
    CANCELLED = "cancelled"

    @property
    def is_open(self) -> bool:
        return self in (TransferStatus.PENDING, TransferStatus.IN_TRANSIT)


class ReservationStatus(str, Enum):
    ACTIVE = "active"
    FULFILLED = "fulfilled"
    CANCELLED = "cancelled"
    EXPIRED = "expired"


class LocationType(str, Enum):
    WAREHOUSE = "warehouse"
    STORE = "store"
    DISTRIBUTION_CENTER = "distribution_center"
    VIRTUAL = "virtual"


class ChannelType(str, Enum):
    ECOMMERCE = "ecommerce"
    POS = "pos"
    MARKETPLACE = "marketplace"
    WHOLESALE = "wholesale"
    API = "api"


class SubscriptionStatus(str, Enum):
    ACTIVE = "active"
    PAUSED = "paused"
    CANCELLED = "cancelled"


class EventType(str, Enum):
    STOCK_UPDATED = "stock_updated"
    STOCK_LOW = "stock_low"
    STOCK_OUT = "stock_out"
    RESERVATION_CREATED = "reservation_created"
    RESERVATION_FULFILLED = "reservation_fulfilled"
    RESERVATION_CANCELLED = "reservation_cancelled"
    RESERVATION_EXPIRED = "reservation_expired"
    TRANSFER_INITIATED = "transfer_initiated"
    TRANSFER_COMPLETED = "transfer_completed"
    TRANSFER_CANCELLED = "transfer_cancelled"
    PRODUCT_CREATED = "product_created"
    PRODUCT_UPDATED = "product_updated"


class AuditAction(str, Enum):
    """Types of auditable actions."""

    # Catalog lifecycle
    CREATED = "created"
    UPDATED = "updated"
    STATUS_CHANGE = "status_change"

    # Stock mutations
    STOCK_RECEIVED = "stock_received"
    STOCK_SOLD = "stock_sold"
    STOCK_ADJUSTED = "stock_adjusted"
    STOCK_RETURNED = "stock_returned"
    STOCK_WRITTEN_OFF = "stock_written_off"

    # Transfer lifecycle
    TRANSFER_INITIATED = "transfer_initiated"
    TRANSFER_COMPLETED = "transfer_completed"
    TRANSFER_CANCELLED = "transfer_cancelled"

    # Reservation lifecycle
    RESERVATION_CREATED = "reservation_created"
    RESERVATION_FULFILLED = "reservation_fulfilled"
    RESERVATION_CANCELLED = "reservation_cancelled"
    RESERVATION_EXPIRED = "reservation_expired"
