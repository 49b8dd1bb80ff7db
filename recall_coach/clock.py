"""
Time sources.

Every "now" in the scheduler, store and aggregator comes from a single
injected clock so that tests can pin time deterministically.
"""

from __future__ import annotations

from collections.abc import Callable
from datetime import UTC, datetime, timedelta

Clock = Callable[[], datetime]


def system_clock() -> datetime:
    """Current wall-clock time in UTC."""
    return datetime.now(UTC)


def ensure_utc(value: datetime) -> datetime:
    """Treat naive datetimes as UTC and convert aware ones to UTC."""
    if value.tzinfo is None:
        return value.replace(tzinfo=UTC)
    return value.astimezone(UTC)


class FixedClock:
    """
    A settable clock for tests and simulations.

    Usage:
        clock = FixedClock(datetime(2026, 1, 5, 8, 0, tzinfo=UTC))
        clock.advance(days=1)
    """

    def __init__(self, start: datetime):
        self._now = ensure_utc(start)

    def __call__(self) -> datetime:
        return self._now

    def set(self, value: datetime) -> None:
        self._now = ensure_utc(value)

    def advance(self, **delta: float) -> datetime:
        """Move the clock forward by a timedelta expressed as keyword args."""
        self._now = self._now + timedelta(**delta)
        return self._now
