"""Cancellable run context.

A RunContext is handed to every blocking operation (rate limiter waits,
remote writes, queries, the manager's sleep between runs). Cancelling it
makes each of those raise Cancelled at its next check.
"""

from __future__ import annotations

import threading

from canary.lib.errors import Cancelled

__all__ = ["RunContext"]


class RunContext:
    """Thread-safe cancellation signal.

    Example:
        ctx = RunContext()
        signal.signal(signal.SIGTERM, lambda *_: ctx.cancel())

        ctx.check()            # raises Cancelled once cancelled
        if ctx.wait(5.0):      # sleeps, returns True early on cancel
            return
    """

    def __init__(self) -> None:
        self._event = threading.Event()

    def cancel(self) -> None:
        self._event.set()

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    def check(self) -> None:
        """Raise Cancelled if the context has been cancelled."""
        if self._event.is_set():
            raise Cancelled()

    def wait(self, timeout: float) -> bool:
        """Block up to ``timeout`` seconds; return True if cancelled."""
        if timeout <= 0:
            return self._event.is_set()
        return self._event.wait(timeout)
