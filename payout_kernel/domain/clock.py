"""
Clock -- injectable time source.

Responsibility:
    Schedulers, aggregators and the payout orchestrator receive a Clock
    through their constructors.  Due-time math and statement periods are
    computed from ``clock.now()`` so tests can pin time exactly instead of
    waiting on the wall clock.

Architecture position:
    Kernel > Domain.  SystemClock is the only place that reads real time.

Failure modes:
    - SequentialClock raises ValueError when built from an empty list.
"""

from abc import ABC, abstractmethod
from datetime import date, datetime, timedelta, timezone
from typing import Iterator


class Clock(ABC):
    """
    Abstract clock interface.

    Contract:
        Services never call ``datetime.now()`` or ``date.today()``
        themselves; they ask the injected clock.
    """

    @abstractmethod
    def now(self) -> datetime:
        """Get the current time."""
        ...

    def now_utc(self) -> datetime:
        """Get the current time normalized to UTC."""
        current = self.now()
        if current.tzinfo is None:
            return current
        return current.astimezone(timezone.utc)

    def today(self) -> date:
        """Calendar date of ``now()``."""
        return self.now().date()


class SystemClock(Clock):
    """Production clock returning timezone-aware UTC wall time."""

    def now(self) -> datetime:
        return datetime.now(timezone.utc)


class DeterministicClock(Clock):
    """
    Test clock with controlled time.

    Guarantees:
        - ``now()`` returns the same value until ``advance()``,
          ``advance_days()`` or ``set_time()`` is called.
        - Naive datetimes stay naive, which keeps SQLite round-trips equal.
    """

    def __init__(self, fixed_time: datetime | None = None):
        self._fixed_time = fixed_time or datetime(2026, 1, 5, 9, 0, 0)
        self._offset = timedelta(0)

    def now(self) -> datetime:
        return self._fixed_time + self._offset

    def set_time(self, time: datetime) -> None:
        self._fixed_time = time
        self._offset = timedelta(0)

    def advance(self, seconds: int | float = 1) -> None:
        self._offset += timedelta(seconds=seconds)

    def advance_days(self, days: int) -> None:
        self._offset += timedelta(days=days)

    def tick(self) -> datetime:
        """Advance by 1 second and return new time."""
        self.advance(1)
        return self.now()


class SequentialClock(Clock):
    """
    Clock that returns times from a predefined list, in order.

    After exhaustion the last value repeats.

    Raises:
        ValueError: If initialized with an empty list.
    """

    def __init__(self, times: list[datetime]):
        if not times:
            raise ValueError("SequentialClock requires at least one time")
        self._times: Iterator[datetime] = iter(times)
        self._last_time: datetime = times[0]

    def now(self) -> datetime:
        try:
            self._last_time = next(self._times)
        except StopIteration:
            pass
        return self._last_time
