"""
inventory_services -- stateful services over the inventory kernel.

``InventoryService`` is the public surface; everything else here is flush-only
and runs inside the unit of work it opens.
"""

from inventory_services.bootstrap import build_inventory_service, build_reservation_sweeper
from inventory_services.catalog_service import CatalogService
from inventory_services.event_publisher import DeliveryReport, EventDispatcher, EventPublisher
from inventory_services.inventory_service import InventoryService, LedgerResult
from inventory_services.reservation_manager import ReservationManager, ReservationOutcome
from inventory_services.reservation_sweeper import ReservationExpirySweeper
from inventory_services.stats import LedgerStats, StatsSnapshot
from inventory_services.stock_ledger import StockChange, StockLedger
from inventory_services.transfer_coordinator import TransferCoordinator, TransferOutcome
from inventory_services.webhook import HttpxWebhookTransport, WebhookRequest, WebhookTransport

__all__ = [
    "CatalogService",
    "DeliveryReport",
    "EventDispatcher",
    "EventPublisher",
    "HttpxWebhookTransport",
    "InventoryService",
    "LedgerResult",
    "LedgerStats",
    "ReservationExpirySweeper",
    "ReservationManager",
    "ReservationOutcome",
    "StatsSnapshot",
    "StockChange",
    "StockLedger",
    "TransferCoordinator",
    "TransferOutcome",
    "WebhookRequest",
    "WebhookTransport",
    "build_inventory_service",
    "build_reservation_sweeper",
]
