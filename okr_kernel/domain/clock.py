"""
Clock -- injectable time source.

Lifecycle, snapshot and progress code never call ``datetime.now()``; they
ask a Clock.  closed_at, force_closed_at, captured_at and every close log
timestamp therefore come from one injected instance, which is what makes
lifecycle tests and replays deterministic.
"""

from abc import ABC, abstractmethod
from datetime import datetime, timedelta, timezone


class Clock(ABC):
    """Returns timezone-aware UTC datetimes."""

    @abstractmethod
    def now(self) -> datetime:
        ...


class SystemClock(Clock):
    """Wall-clock time in UTC."""

    def now(self) -> datetime:
        return datetime.now(timezone.utc)


class DeterministicClock(Clock):
    """
    Frozen clock for tests.

    ``now()`` keeps returning the same instant until ``advance()`` moves it.
    Naive datetimes are rejected so a test cannot smuggle local time in.
    """

    def __init__(self, current: datetime | None = None):
        current = current or datetime(2025, 1, 15, 9, 0, 0, tzinfo=timezone.utc)
        if current.tzinfo is None:
            raise ValueError("DeterministicClock needs a timezone-aware datetime")
        self._current = current.astimezone(timezone.utc)

    def now(self) -> datetime:
        return self._current

    def advance(self, **delta: float) -> datetime:
        """Move forward by timedelta keywords (``days=30``, ``seconds=1``) and return the new time."""
        step = timedelta(**delta)
        if step < timedelta(0):
            raise ValueError("DeterministicClock only moves forward")
        self._current += step
        return self._current
