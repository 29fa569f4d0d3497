# src/certshare/core/retry.py
"""Rate-limited retry executor: throttle plus tenacity backoff.

Every remote call a worker makes goes through two gates:

- Throttle: consecutive calls are spaced by at least ``throttle_ms`` plus
  0-400ms of jitter so workers started together drift apart. The spacing
  itself is a one-slot pyrate-limiter bucket.
- RetryManager: rate-limit errors are retried with exponential backoff
  (base 1s, doubling, capped) plus 0-500ms of jitter. Anything else
  propagates on the first failure.

When the ceiling is hit the last error propagates unchanged. A shutdown
request (see ``Clock.interrupted``) also ends the retries.
"""

from __future__ import annotations

import random
from collections.abc import Callable
from dataclasses import dataclass
from typing import TypeVar

from pyrate_limiter import AbstractClock, InMemoryBucket, Limiter, Rate, RateItem
from tenacity import (
    RetryCallState,
    Retrying,
    retry_if_exception,
    stop_after_attempt,
    stop_any,
    wait_exponential,
    wait_random,
)

from certshare.core.clock import DEFAULT_CLOCK, Clock

T = TypeVar("T")

THROTTLE_JITTER_SECONDS = 0.4
THROTTLE_BUCKET_NAME = "drive"
# The bucket still counts a call made exactly one interval ago.
THROTTLE_BOUNDARY_MS = 1


@dataclass(frozen=True)
class RetryPolicy:
    """Backoff shape for one family of remote operations.

    max_attempts is the TOTAL number of tries, not the number of retries.
    So max_attempts=3 means: try, retry, retry (3 total).
    """

    max_attempts: int = 3
    base_delay: float = 1.0  # seconds
    max_delay: float = 30.0  # seconds
    jitter: float = 0.5  # seconds

    def __post_init__(self) -> None:
        if self.max_attempts < 1:
            raise ValueError("max_attempts must be >= 1")

    def backoff_ceiling(self) -> float:
        """Upper bound on total sleep across all retries of one call."""
        total = 0.0
        for attempt in range(1, self.max_attempts):
            total += min(self.max_delay, self.base_delay * 2 ** (attempt - 1)) + self.jitter
        return total


# Folder searches give up early; a miss just means another variation is tried.
SEARCH_POLICY = RetryPolicy(max_attempts=3, max_delay=30.0)
# Permission listing.
CHECK_POLICY = RetryPolicy(max_attempts=5, max_delay=60.0)
# Permission creation and other mutations.
MUTATION_POLICY = RetryPolicy(max_attempts=6, max_delay=60.0)


class RetryManager:
    """Runs operations under a RetryPolicy using tenacity.

    Example:
        manager = RetryManager(SEARCH_POLICY, clock=clock)

        files = manager.execute_with_retry(
            lambda: service.files().list(q=query).execute(),
            is_retryable=is_retryable_rate_limit,
        )
    """

    def __init__(self, policy: RetryPolicy, *, clock: Clock = DEFAULT_CLOCK) -> None:
        self._policy = policy
        self._clock = clock

    @property
    def policy(self) -> RetryPolicy:
        return self._policy

    def execute_with_retry(
        self,
        operation: Callable[[], T],
        *,
        is_retryable: Callable[[BaseException], bool],
        on_retry: Callable[[int, BaseException], None] | None = None,
    ) -> T:
        """Execute operation with retry logic.

        Args:
            operation: Operation to execute
            is_retryable: Function to check if error is retryable
            on_retry: Optional callback before each backoff sleep (attempt, error)

        Returns:
            Result of operation

        Raises:
            Exception: The last error once attempts are exhausted, or the
                first non-retryable error.
        """

        def before_sleep(state: RetryCallState) -> None:
            if on_retry is not None and state.outcome is not None:
                error = state.outcome.exception()
                if error is not None:
                    on_retry(state.attempt_number, error)

        retrying = Retrying(
            stop=stop_any(
                stop_after_attempt(self._policy.max_attempts),
                lambda state: self._clock.interrupted(),
            ),
            wait=wait_exponential(multiplier=self._policy.base_delay, max=self._policy.max_delay)
            + wait_random(0, self._policy.jitter),
            retry=retry_if_exception(is_retryable),
            reraise=True,
            sleep=self._clock.sleep,
            before_sleep=before_sleep,
        )
        return retrying(operation)


class _ClockAdapter(AbstractClock):
    """Feeds a certshare Clock to pyrate-limiter in integer milliseconds."""

    def __init__(self, clock: Clock) -> None:
        self._clock = clock

    def now(self) -> int:
        return round(self._clock.monotonic() * 1000)


class Throttle:
    """Minimum spacing between consecutive remote calls of one worker.

    Wraps a pyrate-limiter bucket holding one call per ``min_interval``.
    The first call never waits. A later call that finds the bucket full
    sleeps out the rest of the interval plus a random jitter, then takes
    its slot.

    Example:
        throttle = Throttle(2.5)

        throttle.wait()  # returns immediately
        throttle.wait()  # blocks ~2.5-2.9s
    """

    def __init__(
        self,
        min_interval: float,
        *,
        clock: Clock = DEFAULT_CLOCK,
        jitter: Callable[[], float] | None = None,
    ) -> None:
        if min_interval < 0:
            raise ValueError(f"min_interval must be non-negative, got {min_interval}")
        self._clock = clock
        self._jitter = jitter or (lambda: random.uniform(0, THROTTLE_JITTER_SECONDS))
        self._pyrate_clock = _ClockAdapter(clock)
        self._bucket: InMemoryBucket | None = None
        self._limiter: Limiter | None = None
        interval_ms = round(min_interval * 1000)
        if interval_ms > 0:
            self._bucket = InMemoryBucket(rates=[Rate(1, interval_ms)])
            self._limiter = Limiter(self._bucket, clock=self._pyrate_clock, raise_when_fail=False)

    def wait(self) -> None:
        if self._limiter is None or self._bucket is None:
            return
        if self._limiter.try_acquire(THROTTLE_BUCKET_NAME):
            return
        waiting_ms = self._bucket.waiting(RateItem(THROTTLE_BUCKET_NAME, self._pyrate_clock.now()))
        assert isinstance(waiting_ms, int)
        self._clock.sleep((max(waiting_ms, 0) + THROTTLE_BOUNDARY_MS) / 1000 + self._jitter())
        # An interrupted sleep lets the call through unspaced.
        self._limiter.try_acquire(THROTTLE_BUCKET_NAME)
