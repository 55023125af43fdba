"""
inventory_engines.thresholds -- Stock alert crossing detection.

Alerts fire on crossings, not on levels: a ``stock_low`` fires when
available quantity moves from above the reorder point to at-or-below it,
and a ``stock_out`` when it moves from above zero to at-or-below zero.
Remaining below a threshold across further writes fires nothing.
"""

from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal

ZERO = Decimal("0")


@dataclass(frozen=True, slots=True)
class ThresholdCrossings:
    stock_low: bool = False
    stock_out: bool = False

    @property
    def any(self) -> bool:
        return self.stock_low or self.stock_out


def detect_crossings(
    available_before: Decimal,
    available_after: Decimal,
    reorder_point: Decimal | None,
) -> ThresholdCrossings:
    """Which alerts a single write from ``available_before`` to ``available_after`` triggers."""
    stock_low = (
        reorder_point is not None
        and available_before > reorder_point
        and available_after <= reorder_point
    )
    stock_out = available_before > ZERO and available_after <= ZERO
    return ThresholdCrossings(stock_low=stock_low, stock_out=stock_out)
