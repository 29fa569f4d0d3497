# src/certshare/clients/base.py
"""Base class for throttled, retrying Google API clients."""

from __future__ import annotations

from collections.abc import Callable
from typing import Any, TypeVar

import structlog

from certshare.contracts.errors import describe_error, is_retryable_rate_limit, tag_error
from certshare.core.clock import DEFAULT_CLOCK, Clock
from certshare.core.retry import RetryManager, RetryPolicy, Throttle

logger = structlog.get_logger(__name__)

T = TypeVar("T")


class GoogleClientBase:
    """Base class for clients wrapping a ``googleapiclient`` service object.

    Provides common infrastructure for remote calls:
    - Optional throttle shared by every client of one worker, so Drive
      searches and permission calls are spaced as a single stream
    - Rate-limit retries under a per-operation RetryPolicy
    - Operation name and inputs attached to the error that finally escapes

    Subclasses build the request and call ``_call()``; they never sleep or
    retry on their own.
    """

    def __init__(
        self,
        service: Any,
        *,
        throttle: Throttle | None = None,
        clock: Clock = DEFAULT_CLOCK,
    ) -> None:
        """Initialize client.

        Args:
            service: Discovery service object (``build("drive", "v3", ...)``)
            throttle: Spacing gate applied before every attempt; None disables it
            clock: Clock used for backoff sleeps
        """
        self._service = service
        self._throttle = throttle
        self._clock = clock

    def _acquire_throttle(self) -> None:
        if self._throttle is not None:
            self._throttle.wait()

    def _call(
        self,
        operation: str,
        context: dict[str, Any],
        request: Callable[[], T],
        policy: RetryPolicy,
    ) -> T:
        """Run one remote request under throttle and retry.

        Raises:
            Exception: The remote error, tagged with ``operation``/``context``.
        """

        def attempt() -> T:
            self._acquire_throttle()
            return request()

        def on_retry(attempt_number: int, error: BaseException) -> None:
            logger.debug(
                "Rate limited, backing off",
                operation=operation,
                attempt=attempt_number,
                error=describe_error(error).summary(),
            )

        manager = RetryManager(policy, clock=self._clock)
        try:
            return manager.execute_with_retry(attempt, is_retryable=is_retryable_rate_limit, on_retry=on_retry)
        except Exception as e:
            tag_error(e, operation, context)
            raise
