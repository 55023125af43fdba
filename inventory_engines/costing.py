"""
inventory_engines.costing -- Cost attribution for consumed stock.

Responsibility:
    Given the cost layers (batches) of one stock aggregate, a requested
    quantity and a costing strategy, decide which layers are consumed, in
    what amounts and at what unit cost.

Architecture position:
    Engines -- pure calculation layer, zero I/O.  Receives plain candidate
    values, returns an immutable CostingResult.  The StockLedger applies the
    result to persisted batches.

Invariants enforced:
    - Coverage: the segments of a result sum to exactly the requested
      quantity.
    - No partial effect: insufficiency is detected before a result is
      produced; nothing is ever half-consumed.
    - Ordering: FIFO consumes ascending (received_at, batch_id), LIFO
      descending by the same key.  Ties on received_at break on batch id.
    - AVERAGE never depletes batches; its unit cost is the weighted mean of
      remaining quantity, quantized to ``average_cost_places`` (ROUND_HALF_UP).
    - SPECIFIC consumes only the named batch, with no spillover.
    - Determinism: identical inputs always produce identical outputs.

Failure modes:
    - InvalidQuantityError if the requested quantity is not positive.
    - InsufficientStockError if the layers cannot cover the request (and
      shortfall is not allowed).
    - InvalidStrategyConfigurationError if SPECIFIC is used without a batch
      or with a batch not among the candidates.
"""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass
from datetime import datetime
from decimal import ROUND_HALF_UP, Decimal
from uuid import UUID

from inventory_kernel.domain.types import CostingStrategy
from inventory_kernel.exceptions import (
    InsufficientStockError,
    InvalidQuantityError,
    InvalidStrategyConfigurationError,
)
from inventory_kernel.logging_config import get_logger

logger = get_logger("engines.costing")

ZERO = Decimal("0")


@dataclass(frozen=True, slots=True)
class BatchCandidate:
    """The costing-relevant view of one batch."""

    batch_id: UUID
    remaining_quantity: Decimal
    cost_per_unit: Decimal
    received_at: datetime

    def order_key(self) -> tuple[datetime, str]:
        return (self.received_at, str(self.batch_id))


@dataclass(frozen=True, slots=True)
class CostSegment:
    """
    A slice of the requested quantity priced at one unit cost.

    ``batch_id`` is None for the AVERAGE pseudo-segment and for a shortfall
    segment (stock sold beyond what batches hold).
    """

    batch_id: UUID | None
    quantity: Decimal
    cost_per_unit: Decimal

    @property
    def total_cost(self) -> Decimal:
        return self.quantity * self.cost_per_unit


@dataclass(frozen=True, slots=True)
class CostingResult:
    strategy: CostingStrategy
    requested_quantity: Decimal
    segments: tuple[CostSegment, ...]
    depletes_batches: bool

    @property
    def total_cost(self) -> Decimal:
        return sum((s.total_cost for s in self.segments), ZERO)

    @property
    def shortfall_quantity(self) -> Decimal:
        if not self.depletes_batches:
            return ZERO
        return sum((s.quantity for s in self.segments if s.batch_id is None), ZERO)

    @property
    def batch_segments(self) -> tuple[CostSegment, ...]:
        """Segments that draw on a real batch."""
        return tuple(s for s in self.segments if s.batch_id is not None)

    @property
    def unit_cost(self) -> Decimal:
        """Weighted unit cost across all segments."""
        if self.requested_quantity == 0:
            return ZERO
        return self.total_cost / self.requested_quantity


class CostingEngine:
    """
    Pure cost attribution.

    Contract:
        ``compute()`` returns a CostingResult covering exactly ``quantity``
        or raises before producing anything.

    Non-goals:
        - Does NOT check aggregate availability (reserved stock); the
          ledger does that against the StockLevel.
        - Does NOT mutate batches.
    """

    def __init__(self, average_cost_places: int = 4):
        if average_cost_places < 0:
            raise ValueError("average_cost_places must be >= 0")
        self._average_quantum = Decimal(1).scaleb(-average_cost_places)

    def compute(
        self,
        candidates: Sequence[BatchCandidate],
        quantity: Decimal,
        strategy: CostingStrategy,
        *,
        target_batch_id: UUID | None = None,
        allow_shortfall: bool = False,
        shortfall_cost: Decimal | None = None,
        product_id: UUID | None = None,
        location_id: UUID | None = None,
    ) -> CostingResult:
        """
        Attribute cost to ``quantity`` units drawn from ``candidates``.

        Args:
            candidates: Batches of one aggregate.  Depleted ones are ignored.
            quantity: Units to cost; must be > 0.
            strategy: Costing strategy of the product.
            target_batch_id: Required for SPECIFIC, ignored otherwise.
            allow_shortfall: FIFO/LIFO only.  Units beyond what batches hold
                become a batch-less segment instead of an error.
            shortfall_cost: Unit cost for a shortfall segment when no batch
                was consumed.  Defaults to zero.
            product_id, location_id: Error context only.
        """
        if quantity <= 0:
            raise InvalidQuantityError("quantity", quantity, "must be positive")

        strategy = CostingStrategy(strategy)
        available = [c for c in candidates if c.remaining_quantity > 0]

        if strategy is CostingStrategy.AVERAGE:
            result = self._average(available, quantity)
        elif strategy is CostingStrategy.SPECIFIC:
            result = self._specific(available, candidates, quantity, target_batch_id, product_id, location_id)
        else:
            ordered = sorted(
                available,
                key=BatchCandidate.order_key,
                reverse=strategy is CostingStrategy.LIFO,
            )
            result = self._layered(
                strategy, ordered, quantity, allow_shortfall, shortfall_cost, product_id, location_id,
            )

        logger.debug(
            "costing_computed",
            extra={
                "strategy": strategy.value,
                "quantity": str(quantity),
                "segment_count": len(result.segments),
                "total_cost": str(result.total_cost),
            },
        )
        return result

    def average_cost(self, candidates: Sequence[BatchCandidate]) -> Decimal:
        """Weighted average unit cost of the remaining pool (0 when empty)."""
        pool = [c for c in candidates if c.remaining_quantity > 0]
        total_quantity = sum((c.remaining_quantity for c in pool), ZERO)
        if total_quantity == 0:
            return ZERO
        total_value = sum((c.remaining_quantity * c.cost_per_unit for c in pool), ZERO)
        return (total_value / total_quantity).quantize(self._average_quantum, rounding=ROUND_HALF_UP)

    # -------------------------------------------------------------------------
    # Strategies
    # -------------------------------------------------------------------------

    def _average(self, pool: list[BatchCandidate], quantity: Decimal) -> CostingResult:
        return CostingResult(
            strategy=CostingStrategy.AVERAGE,
            requested_quantity=quantity,
            segments=(CostSegment(None, quantity, self.average_cost(pool)),),
            depletes_batches=False,
        )

    def _specific(
        self,
        available: list[BatchCandidate],
        candidates: Sequence[BatchCandidate],
        quantity: Decimal,
        target_batch_id: UUID | None,
        product_id: UUID | None,
        location_id: UUID | None,
    ) -> CostingResult:
        if target_batch_id is None:
            raise InvalidStrategyConfigurationError(
                CostingStrategy.SPECIFIC.value, "a batch id is required",
            )
        target = next((c for c in candidates if c.batch_id == target_batch_id), None)
        if target is None:
            raise InvalidStrategyConfigurationError(
                CostingStrategy.SPECIFIC.value,
                f"batch {target_batch_id} does not belong to this product and location",
            )
        if target not in available or target.remaining_quantity < quantity:
            logger.warning(
                "costing_batch_insufficient",
                extra={"batch_id": str(target_batch_id), "requested": str(quantity)},
            )
            raise InsufficientStockError(
                product_id=str(product_id),
                location_id=str(location_id),
                requested=quantity,
                available=target.remaining_quantity,
                batch_id=str(target_batch_id),
            )
        return CostingResult(
            strategy=CostingStrategy.SPECIFIC,
            requested_quantity=quantity,
            segments=(CostSegment(target.batch_id, quantity, target.cost_per_unit),),
            depletes_batches=True,
        )

    def _layered(
        self,
        strategy: CostingStrategy,
        ordered: list[BatchCandidate],
        quantity: Decimal,
        allow_shortfall: bool,
        shortfall_cost: Decimal | None,
        product_id: UUID | None,
        location_id: UUID | None,
    ) -> CostingResult:
        held = sum((c.remaining_quantity for c in ordered), ZERO)
        if held < quantity and not allow_shortfall:
            logger.warning(
                "costing_layers_insufficient",
                extra={"strategy": strategy.value, "requested": str(quantity), "held": str(held)},
            )
            raise InsufficientStockError(
                product_id=str(product_id),
                location_id=str(location_id),
                requested=quantity,
                available=held,
            )

        segments: list[CostSegment] = []
        still_needed = quantity
        for candidate in ordered:
            if still_needed <= 0:
                break
            take = min(candidate.remaining_quantity, still_needed)
            segments.append(CostSegment(candidate.batch_id, take, candidate.cost_per_unit))
            still_needed -= take

        if still_needed > 0:
            cost = segments[-1].cost_per_unit if segments else (shortfall_cost or ZERO)
            segments.append(CostSegment(None, still_needed, cost))

        return CostingResult(
            strategy=strategy,
            requested_quantity=quantity,
            segments=tuple(segments),
            depletes_batches=True,
        )
