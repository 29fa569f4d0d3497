"""Clock abstraction for testable throttle, backoff and timeout logic.

Production code uses SystemClock (the default).
Tests inject MockClock so sleeping advances virtual time instantly.

Both clocks accept a ``stop`` event. Once it is set every sleep returns at
once and ``interrupted()`` reports True, so backoff, throttle and pacing
waits end as soon as the worker is asked to shut down.
"""

from __future__ import annotations

import threading
import time
from typing import Protocol


class Clock(Protocol):
    """Abstract clock for throttling and deadlines.

    Implementations:
    - SystemClock: time.monotonic() / Event.wait() (production)
    - MockClock: controllable time, sleep() advances it (testing)
    """

    def monotonic(self) -> float:
        """Return monotonic time in seconds."""
        ...

    def sleep(self, seconds: float) -> None:
        """Block for the given number of seconds, or until interrupted."""
        ...

    def interrupted(self) -> bool:
        """True once a shutdown has been requested."""
        ...


class SystemClock:
    """Production clock using the process monotonic clock."""

    def __init__(self, stop: threading.Event | None = None) -> None:
        self._stop = stop or threading.Event()

    def monotonic(self) -> float:
        return time.monotonic()

    def sleep(self, seconds: float) -> None:
        if seconds > 0:
            self._stop.wait(seconds)

    def interrupted(self) -> bool:
        return self._stop.is_set()


class MockClock:
    """Controllable clock for deterministic testing.

    ``sleep()`` does not block; it advances the clock and records the
    requested duration so tests can assert on backoff and throttle delays.
    An interrupted clock still records sleeps but no longer advances.

    Example:
        clock = MockClock(start=0.0)
        throttle = Throttle(min_interval=2.5, clock=clock, jitter=lambda: 0.0)

        throttle.wait()  # first call never sleeps
        throttle.wait()  # sleeps ~2.5s of virtual time
        assert len(clock.sleeps) == 1
    """

    def __init__(self, start: float = 0.0, *, stop: threading.Event | None = None) -> None:
        self._current = start
        self._stop = stop or threading.Event()
        self.sleeps: list[float] = []

    def monotonic(self) -> float:
        return self._current

    def sleep(self, seconds: float) -> None:
        self.sleeps.append(seconds)
        if seconds > 0 and not self._stop.is_set():
            self._current += seconds

    def interrupted(self) -> bool:
        return self._stop.is_set()

    def advance(self, seconds: float) -> None:
        """Advance mock time by specified seconds.

        Raises:
            ValueError: If seconds is negative.
        """
        if seconds < 0:
            raise ValueError(f"Cannot advance time by negative amount: {seconds}")
        self._current += seconds


# Default clock for production use
DEFAULT_CLOCK: Clock = SystemClock()
