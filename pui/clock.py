"""Injectable clocks and the refresh interval timer.

Time is always passed in explicitly so the event loop and the duration
column can be tested without sleeping:

    clock = FrozenClock(frozen_monotonic=10.0)
    timer = IntervalTimer(0.25, clock)
    assert timer.remaining() == 0.25

    clock.advance(1.0)
    assert timer.expired()
"""

import time as _time
from datetime import datetime
from datetime import timedelta
from datetime import timezone
from typing import Protocol


class Clock(Protocol):
    """Protocol for injectable time sources."""

    def now(self) -> datetime:
        """Return the current wall-clock time as an aware datetime."""
        ...

    def monotonic(self) -> float:
        """Return a monotonic clock value for measuring intervals."""
        ...


class SystemClock:
    """Clock backed by the system time."""

    def now(self) -> datetime:
        return datetime.now(timezone.utc)

    def monotonic(self) -> float:
        return _time.monotonic()


class FrozenClock:
    """Clock that only moves when told to.

    Attributes:
        frozen_time: The frozen wall-clock time.
        frozen_monotonic: The frozen monotonic value.
    """

    def __init__(
        self,
        frozen_time: datetime | None = None,
        frozen_monotonic: float = 0.0,
    ) -> None:
        """Initialize with specific frozen times.

        Args:
            frozen_time: Wall-clock time to freeze at. Defaults to now (UTC).
            frozen_monotonic: Monotonic value to freeze at.
        """
        self._time = frozen_time if frozen_time is not None else datetime.now(timezone.utc)
        self._monotonic = frozen_monotonic

    def now(self) -> datetime:
        return self._time

    def monotonic(self) -> float:
        return self._monotonic

    def advance(self, seconds: float) -> None:
        """Advance both wall-clock and monotonic time.

        Args:
            seconds: Number of seconds to advance (can be negative).
        """
        self._time += timedelta(seconds=seconds)
        self._monotonic += seconds


class IntervalTimer:
    """
    Fixed-period timer with delay semantics.

    Firings that were missed while the loop was busy are skipped, not queued:
    after ``reset()`` the next deadline is one full period from *now*.

    Attributes:
        period: Seconds between firings.
    """

    def __init__(self, period: float, clock: Clock | None = None) -> None:
        self.period = period
        self._clock: Clock = clock if clock is not None else SystemClock()
        self._deadline = self._clock.monotonic() + period

    def remaining(self) -> float:
        """Seconds until the timer fires (0.0 if it is due)."""
        return max(0.0, self._deadline - self._clock.monotonic())

    def expired(self) -> bool:
        return self.remaining() <= 0.0

    def reset(self) -> None:
        """Acknowledge a firing and schedule the next one a period from now."""
        self._deadline = self._clock.monotonic() + self.period
