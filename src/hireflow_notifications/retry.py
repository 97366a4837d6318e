"""Fixed-schedule retry policy with cancellable backoff waits."""

from __future__ import annotations

import asyncio
from collections.abc import Sequence

from .exceptions import ConfigurationError

DEFAULT_BACKOFF: tuple[float, ...] = (1.0, 3.0)


class RetryPolicy:
    """In-process retry envelope for a single delivery.

    The schedule is an explicit ordered sequence of waits rather than a
    formula: ``backoff[n - 1]`` is the wait after failed attempt ``n``, so
    ``len(backoff)`` must equal ``max_attempts - 1``.
    """

    def __init__(
        self,
        *,
        max_attempts: int = 3,
        backoff: Sequence[float] = DEFAULT_BACKOFF,
    ) -> None:
        """Configure retry behavior.

        Args:
            max_attempts: Maximum number of handler attempts (including first).
            backoff: Seconds to wait after each failed attempt but the last.
        """
        if max_attempts < 1:
            raise ConfigurationError("max_attempts must be >= 1")
        if len(backoff) != max_attempts - 1:
            raise ConfigurationError(
                f"backoff schedule needs {max_attempts - 1} entries "
                f"for max_attempts={max_attempts}, got {len(backoff)}"
            )
        if any(d < 0 for d in backoff):
            raise ConfigurationError("backoff delays must be >= 0")
        self.max_attempts = max_attempts
        self.backoff: tuple[float, ...] = tuple(float(d) for d in backoff)

    def should_retry(self, attempt: int) -> bool:
        """Return True if another attempt is allowed (attempt is 1-based)."""
        return 1 <= attempt < self.max_attempts

    def delay_for_attempt(self, attempt: int) -> float:
        """Return the wait in seconds following failed 1-based *attempt*."""
        if not self.should_retry(attempt):
            return 0.0
        return self.backoff[attempt - 1]

    async def wait_before_retry(self, attempt: int, cancelled: asyncio.Event) -> bool:
        """Sleep the backoff for *attempt*, racing the cancellation signal.

        Returns True when the full wait elapsed, False if *cancelled* fired
        first (or was already set).
        """
        if cancelled.is_set():
            return False
        delay = self.delay_for_attempt(attempt)
        try:
            await asyncio.wait_for(cancelled.wait(), timeout=delay)
        except asyncio.TimeoutError:
            return True
        return False
