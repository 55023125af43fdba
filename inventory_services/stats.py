"""
LedgerStats -- explicit operation counters owned by one InventoryService.

Counters live on an instance, never at module level, and are guarded by a
lock so concurrent units of work can record into the same object.
``snapshot()`` returns a frozen copy; ``reset()`` zeros everything.
"""

from __future__ import annotations

import threading
from collections import Counter
from collections.abc import Iterable
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Mapping

from inventory_services.event_publisher import DeliveryReport


@dataclass(frozen=True)
class StatsSnapshot:
    operations: Mapping[str, int] = field(default_factory=dict)
    failures: Mapping[str, int] = field(default_factory=dict)
    events_derived: int = 0
    deliveries_attempted: int = 0
    deliveries_failed: int = 0

    @property
    def total_operations(self) -> int:
        return sum(self.operations.values())

    @property
    def total_failures(self) -> int:
        return sum(self.failures.values())


class LedgerStats:
    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._operations: Counter[str] = Counter()
        self._failures: Counter[str] = Counter()
        self._events_derived = 0
        self._deliveries_attempted = 0
        self._deliveries_failed = 0

    def record_success(self, operation: str, events_derived: int = 0) -> None:
        with self._lock:
            self._operations[operation] += 1
            self._events_derived += events_derived

    def record_failure(self, operation: str, code: str) -> None:
        with self._lock:
            self._operations[operation] += 1
            self._failures[code] += 1

    def record_deliveries(self, reports: Iterable[DeliveryReport]) -> None:
        reports = list(reports)
        with self._lock:
            self._deliveries_attempted += len(reports)
            self._deliveries_failed += sum(1 for r in reports if not r.success)

    def snapshot(self) -> StatsSnapshot:
        with self._lock:
            return StatsSnapshot(
                operations=MappingProxyType(dict(self._operations)),
                failures=MappingProxyType(dict(self._failures)),
                events_derived=self._events_derived,
                deliveries_attempted=self._deliveries_attempted,
                deliveries_failed=self._deliveries_failed,
            )

    def reset(self) -> None:
        with self._lock:
            self._operations.clear()
            self._failures.clear()
            self._events_derived = 0
            self._deliveries_attempted = 0
            self._deliveries_failed = 0
