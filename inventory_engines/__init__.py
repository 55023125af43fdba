"""
Module: inventory_engines
Responsibility:
    Pure calculation layer: cost attribution and alert threshold crossings.

Architecture position:
    Engines -- zero I/O.  May import inventory_kernel.domain, exceptions and
    logging only.  MUST NOT import inventory_services or touch a Session.

Invariants enforced:
    - Decimal-only arithmetic; floats are never used for quantity or cost.
    - Determinism: identical inputs always produce identical outputs.
"""

from inventory_engines.costing import (
    BatchCandidate,
    CostingEngine,
    CostingResult,
    CostSegment,
)
from inventory_engines.thresholds import ThresholdCrossings, detect_crossings

__all__ = [
    "BatchCandidate",
    "CostingEngine",
    "CostingResult",
    "CostSegment",
    "ThresholdCrossings",
    "detect_crossings",
]
