"""Retry with exponential backoff and jitter for transient service errors."""

import random
from typing import Callable, Optional, TypeVar
from ..config.settings import RetrySettings
from ..utils.context import Context
from ..utils.errors import ExecutionError, RateLimitError
from ..utils.logging import get_logger

logger = get_logger("execution.retry")

T = TypeVar("T")


class RetryPolicy:
    """
    Retries errors flagged `retryable` (TransientError, RateLimitError).

    Validation, conflict, not-found and auth errors are raised immediately.
    Rate limits start from a longer base delay.
    """

    def __init__(self, settings: Optional[RetrySettings] = None, rng: Callable[[], float] = random.random):
        self.settings = settings or RetrySettings()
        self._rng = rng

    def delay(self, attempt: int, error: Exception) -> float:
        """Backoff before retry number `attempt` (1-based)."""
        s = self.settings
        base = s.rate_limit_initial_delay if isinstance(error, RateLimitError) else s.initial_delay
        delay = min(base * (s.backoff_multiplier ** (attempt - 1)), s.max_delay)
        if s.jitter:
            delay += delay * s.jitter * (2 * self._rng() - 1)
        return max(0.0, delay)

    def call(self, ctx: Context, fn: Callable[[], T],
             on_retry: Optional[Callable[[int, ExecutionError, float], None]] = None) -> T:
        """
        Run `fn`, retrying retryable errors up to max_retries times.

        Raises:
            ExecutionError: The last error once retries are exhausted, or any
                non-retryable error
            OperationCancelledError: If ctx is cancelled while backing off
        """
        attempt = 0
        while True:
            ctx.check()
            try:
                return fn()
            except ExecutionError as e:
                if not e.retryable or attempt >= self.settings.max_retries:
                    raise
                attempt += 1
                wait = self.delay(attempt, e)
                logger.warning(f"Retrying after {type(e).__name__} ({attempt}/{self.settings.max_retries}) "
                               f"in {wait:.1f}s: {e.message}")
                if on_retry is not None:
                    on_retry(attempt, e, wait)
                if not ctx.sleep(wait):
                    ctx.check()
