"""
Clock -- injectable time source.

Services never call ``datetime.now()`` directly; they receive a Clock.
Movement timestamps, audit timestamps, transfer completion times and the
reservation expiry sweep all read the same injected instance, which is what
makes the ledger reproducible under test.
"""

from abc import ABC, abstractmethod
from datetime import datetime, timedelta, timezone


class Clock(ABC):
    """
    Abstract clock interface.

    Guarantees:
        ``now()`` returns a timezone-aware UTC ``datetime``.
    """

    @abstractmethod
    def now(self) -> datetime:
        ...


class SystemClock(Clock):
    """Production clock backed by the system time."""

    def now(self) -> datetime:
        return datetime.now(timezone.utc)


class DeterministicClock(Clock):
    """
    Test clock with controlled time.

    ``now()`` returns the same value until ``advance()`` or ``set_time()``
    is called.
    """

    def __init__(self, fixed_time: datetime | None = None):
        self._time = fixed_time or datetime(2026, 1, 1, 12, 0, 0, tzinfo=timezone.utc)

    def now(self) -> datetime:
        return self._time

    def set_time(self, time: datetime) -> None:
        self._time = time

    def advance(self, seconds: float = 1, **kwargs: float) -> datetime:
        """Move forward by ``seconds`` plus any ``timedelta`` keyword units."""
        self._time = self._time + timedelta(seconds=seconds, **kwargs)
        return self._time
