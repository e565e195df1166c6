# src/blobsink/engine/clock.py
"""Clock abstraction for the wall-clock `timestamp` template variable.

Production code uses SystemClock (the default).
Tests inject MockClock to control which hour/day a record is grouped into.
"""

from __future__ import annotations

from datetime import UTC, datetime, timedelta
from typing import Protocol


class Clock(Protocol):
    """Abstract wall clock used when timestamp_source is 'wallclock'."""

    def now(self) -> datetime:
        """Return the current time as a timezone-aware datetime (UTC)."""
        ...


class SystemClock:
    """Production clock backed by datetime.now(UTC)."""

    def now(self) -> datetime:
        return datetime.now(tz=UTC)


class MockClock:
    """Controllable clock for deterministic testing.

    Example:
        clock = MockClock(datetime(2024, 1, 1, 23, 59, tzinfo=UTC))
        grouper = RecordGrouper(template, clock=clock)

        grouper.put(record_a)  # grouped under 2024/01/01
        clock.advance(120)
        grouper.put(record_b)  # grouped under 2024/01/02
    """

    def __init__(self, start: datetime | None = None) -> None:
        """Initialize mock clock.

        Args:
            start: Initial time (default 2024-01-01T00:00:00Z). Must be timezone-aware.

        Raises:
            ValueError: If start is naive.
        """
        if start is None:
            start = datetime(2024, 1, 1, tzinfo=UTC)
        if start.tzinfo is None:
            raise ValueError("MockClock requires a timezone-aware start time")
        self._current = start

    def now(self) -> datetime:
        return self._current

    def advance(self, seconds: float) -> None:
        """Advance mock time by specified seconds.

        Raises:
            ValueError: If seconds is negative.
        """
        if seconds < 0:
            raise ValueError(f"Cannot advance time by negative amount: {seconds}")
        self._current += timedelta(seconds=seconds)

    def set(self, value: datetime) -> None:
        """Set mock time to an absolute value (may go backwards)."""
        if value.tzinfo is None:
            raise ValueError("MockClock requires a timezone-aware time")
        self._current = value


DEFAULT_CLOCK: Clock = SystemClock()
