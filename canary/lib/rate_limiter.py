"""Rate limiting for remote writes.

Provides a token-bucket rate limiter shared by all metric profiles of a
test run, so catching up on missed write intervals after downtime cannot
exceed the configured series-per-second budget.
"""

from __future__ import annotations

import logging
import threading
import time
from canary.lib.context import RunContext

logger = logging.getLogger(__name__)

__all__ = ["RateLimiter"]


class RateLimiter:
    """Token-bucket rate limiter.

    Limits the rate of operations to a specified number per second.
    Thread-safe for concurrent usage.

    Example:
        limiter = RateLimiter(requests_per_second=num_series, burst_size=num_series)

        for timestamp in pending_writes:
            limiter.acquire(num_series, ctx=ctx)  # Blocks until allowed
            write(timestamp)
    """

    def __init__(
        self,
        requests_per_second: float,
        *,
        burst_size: int | None = None,
    ) -> None:
        """Initialize rate limiter.

        Args:
            requests_per_second: Maximum sustained rate
            burst_size: Maximum burst capacity (defaults to 1)
        """
        if requests_per_second <= 0:
            raise ValueError("requests_per_second must be positive")
        self.rate = float(requests_per_second)
        self.burst_size = burst_size or 1
        self.tokens = float(self.burst_size)
        self.last_update = time.monotonic()
        self._lock = threading.Lock()

    def acquire(
        self,
        tokens: int = 1,
        *,
        ctx: RunContext | None = None,
    ) -> None:
        """Acquire ``tokens`` tokens, blocking until available.

        Args:
            tokens: Number of tokens to take at once (at most burst_size)
            ctx: Optional run context; cancellation aborts the wait

        Raises:
            ValueError: If tokens exceeds the burst size
            Cancelled: If ctx is cancelled before tokens are available
        """
        if tokens > self.burst_size:
            raise ValueError(
                f"cannot acquire {tokens} tokens, exceeds burst size {self.burst_size}"
            )

        while True:
            if ctx is not None:
                ctx.check()

            with self._lock:
                self._refill_tokens()

                if self.tokens >= tokens:
                    self.tokens -= tokens
                    return

                wait_time = (tokens - self.tokens) / self.rate

            # Cap wait at 100ms increments so cancellation is observed promptly
            sleep_for = min(wait_time, 0.1)
            if ctx is not None:
                ctx.wait(sleep_for)
            else:
                time.sleep(sleep_for)

    def _refill_tokens(self) -> None:
        """Refill tokens based on elapsed time."""
        now = time.monotonic()
        elapsed = now - self.last_update
        self.tokens = min(
            self.burst_size,
            self.tokens + elapsed * self.rate,
        )
        self.last_update = now
