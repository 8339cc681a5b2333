"""Retry middleware for client requests.

Any failure except a client-side API error or a cancellation is treated
as transient and retried: 5xx responses, connection errors, timeouts and
undecodable responses. Client errors (4xx) are returned immediately,
since retrying the same request is not expected to succeed.

Implementation: Uses tenacity for the retry loop.
"""

from __future__ import annotations

import logging
from typing import Callable, TypeVar

import tenacity

from canary.lib.context import RunContext
from canary.lib.errors import APIError, Cancelled, QueryError, WriteError
from canary.lib.metrics import RetryMetrics

logger = logging.getLogger(__name__)

__all__ = ["RetryMiddleware", "is_retryable"]

T = TypeVar("T")


def _status_code(exc: BaseException) -> int | None:
    if isinstance(exc, QueryError):
        return exc.status_code
    if isinstance(exc, WriteError):
        return exc.status_code or None
    return None


def is_retryable(exc: BaseException) -> bool:
    """Return True if a failed request should be tried again."""
    if isinstance(exc, (APIError, Cancelled)):
        return False
    status_code = _status_code(exc)
    if status_code is None:
        return True
    return status_code // 100 == 5


class RetryMiddleware:
    """Retries a request callable up to ``max_retries`` times.

    The number of failed tries (0 when the first attempt succeeds) is
    observed into RetryMetrics after every call.

    Example:
        retry = RetryMiddleware(max_retries=5, metrics=RetryMetrics(registry))
        matrix = retry.do(ctx, lambda: client.query_range_once(...))
    """

    def __init__(
        self,
        max_retries: int,
        metrics: RetryMetrics | None = None,
        *,
        wait_seconds: float = 0.0,
    ) -> None:
        self.max_retries = max(1, max_retries)
        self.metrics = metrics if metrics is not None else RetryMetrics()
        self.wait_seconds = wait_seconds

    def do(self, ctx: RunContext, request: Callable[[], T]) -> T:
        tries = 0

        def attempt() -> T:
            nonlocal tries
            ctx.check()
            try:
                return request()
            except Exception as exc:
                if is_retryable(exc):
                    tries += 1
                raise

        def before_sleep(retry_state: tenacity.RetryCallState) -> None:
            exception = retry_state.outcome.exception() if retry_state.outcome else None
            logger.warning(
                "Error processing request (try %d/%d): %s",
                retry_state.attempt_number,
                self.max_retries,
                exception,
            )

        retryer = tenacity.Retrying(
            stop=tenacity.stop_after_attempt(self.max_retries),
            wait=tenacity.wait_fixed(self.wait_seconds),
            retry=tenacity.retry_if_exception(is_retryable),
            before_sleep=before_sleep,
            reraise=True,
        )

        try:
            return retryer(attempt)
        finally:
            self.metrics.observe(tries)
