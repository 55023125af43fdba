"""
Module: inventory_kernel.db.locking
Responsibility: Exclusive access to stock aggregates within one process.
Architecture position: Kernel > DB.  Pure threading, no SQL.  Row-level
    database locks (SELECT ... FOR UPDATE) are taken separately by the
    ledger in the same key order.

Invariants enforced:
    - Mutual exclusion: at most one unit of work mutates a given
      (tenant, product, location) aggregate at a time within the process.
    - Deadlock freedom: multi-aggregate operations acquire their locks in
      ascending AggregateKey order, so two transfers running in opposite
      directions between the same locations can never wait on each other.
    - Locks for different aggregates never block each other.

Failure modes:
    - None raised here.  A lock is held until the surrounding ``hold()``
      block exits, including on exception.
"""

from __future__ import annotations

import threading
from contextlib import contextmanager
from dataclasses import dataclass
from typing import Iterable, Iterator
from uuid import UUID

from inventory_kernel.logging_config import get_logger

logger = get_logger("db.locking")


@dataclass(frozen=True, order=True)
class AggregateKey:
    """Identity of one stock aggregate; the unit of serializability."""

    tenant_id: UUID
    product_id: UUID
    location_id: UUID

    def sort_key(self) -> tuple[str, str, str]:
        return (str(self.tenant_id), str(self.product_id), str(self.location_id))

    def __str__(self) -> str:
        return f"{self.tenant_id}:{self.product_id}@{self.location_id}"


class _Entry:
    __slots__ = ("lock", "users")

    def __init__(self, lock: threading.RLock) -> None:
        self.lock = lock
        self.users = 0


class AggregateLocks:
    """
    Registry of per-aggregate locks.

    Contract:
        ``hold(keys)`` blocks until every key is exclusively held by the
        calling thread, then yields.  Keys are de-duplicated and acquired in
        sorted order.  Locks are re-entrant for the holding thread.

    Non-goals:
        - Cross-process exclusion (that is the database row lock's job).
        - Fairness between waiters.

    A key stays registered only while some thread holds or waits on it;
    the last one out evicts it.
    """

    def __init__(self) -> None:
        self._registry_lock = threading.Lock()
        self._locks: dict[AggregateKey, _Entry] = {}

    def _checkout(self, key: AggregateKey) -> threading.RLock:
        with self._registry_lock:
            entry = self._locks.get(key)
            if entry is None:
                entry = self._locks[key] = _Entry(threading.RLock())
            entry.users += 1
            return entry.lock

    def _checkin(self, key: AggregateKey) -> None:
        with self._registry_lock:
            entry = self._locks[key]
            entry.users -= 1
            if entry.users == 0:
                del self._locks[key]

    @staticmethod
    def ordered(keys: Iterable[AggregateKey]) -> list[AggregateKey]:
        """De-duplicate keys and return them in lock-acquisition order."""
        return sorted(set(keys), key=AggregateKey.sort_key)

    @contextmanager
    def hold(self, keys: Iterable[AggregateKey]) -> Iterator[list[AggregateKey]]:
        ordered = self.ordered(keys)
        acquired: list[tuple[AggregateKey, threading.RLock]] = []
        try:
            for key in ordered:
                lock = self._checkout(key)
                try:
                    lock.acquire()
                except BaseException:
                    self._checkin(key)
                    raise
                acquired.append((key, lock))
            logger.debug(
                "aggregate_locks_acquired",
                extra={"aggregates": [str(k) for k in ordered]},
            )
            yield ordered
        finally:
            for key, lock in reversed(acquired):
                lock.release()
                self._checkin(key)

    def __len__(self) -> int:
        with self._registry_lock:
            return len(self._locks)
