"""ORM models. Importing this package registers every table on Base.metadata."""

from inventory_kernel.models.audit_log import InventoryAuditLog
from inventory_kernel.models.catalog import Channel, ChannelSubscription, Location, Product
from inventory_kernel.models.event import InventoryEvent
from inventory_kernel.models.reservation import Reservation
from inventory_kernel.models.sequence import SequenceCounter
from inventory_kernel.models.stock import StockBatch, StockLevel, StockMovement
from inventory_kernel.models.transfer import StockTransfer

__all__ = [
    "Channel",
    "ChannelSubscription",
    "InventoryAuditLog",
    "InventoryEvent",
    "Location",
    "Product",
    "Reservation",
    "SequenceCounter",
    "StockBatch",
    "StockLevel",
    "StockMovement",
    "StockTransfer",
]
