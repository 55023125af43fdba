"""Selectors for the inventory kernel (read side)."""

from inventory_kernel.selectors.catalog_selector import CatalogSelector
from inventory_kernel.selectors.stock_selector import StockSelector

__all__ = [
    "CatalogSelector",
    "StockSelector",
]
