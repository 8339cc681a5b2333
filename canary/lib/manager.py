"""Test manager: initializes the registered tests and runs them periodically."""

from __future__ import annotations

import logging
import time
from datetime import datetime, timedelta
from typing import Callable, Dict, List, Protocol

from canary.lib.context import RunContext
from canary.lib.errors import Cancelled, CanaryError, MultiError
from canary.lib.timeutil import utcnow

logger = logging.getLogger(__name__)

__all__ = ["ContinuousTest", "Manager"]


class ContinuousTest(Protocol):
    name: str

    def init(self, ctx: RunContext, now: datetime) -> None:
        ...

    def run(self, ctx: RunContext, now: datetime) -> None:
        ...


class Manager:
    """Runs every test once at startup, then every ``run_interval``.

    In smoke-test mode each test runs once and ``run`` returns the
    aggregated error instead of looping.

    Example:
        manager = Manager(run_interval=timedelta(minutes=5))
        manager.add_test(WriteReadSeriesTest(cfg, client))
        err = manager.run(ctx)     # returns when ctx is cancelled
    """

    def __init__(
        self,
        run_interval: timedelta = timedelta(minutes=5),
        *,
        smoke_test: bool = False,
        now_fn: Callable[[], datetime] = utcnow,
    ) -> None:
        self.run_interval = run_interval
        self.smoke_test = smoke_test
        self.now_fn = now_fn
        self.tests: List[ContinuousTest] = []
        self.last_run_ok: Dict[str, bool] = {}

    def add_test(self, test: ContinuousTest) -> None:
        self.tests.append(test)

    def run(self, ctx: RunContext) -> BaseException | None:
        """Initialize and run all tests until ctx is cancelled.

        Returns:
            The init error (fatal), the smoke-test run error, or None
        """
        for test in self.tests:
            try:
                test.init(ctx, self.now_fn())
            except Cancelled:
                return None
            except CanaryError as e:
                logger.error(
                    "Failed to initialize test %s: %s",
                    test.name,
                    e,
                    extra={"error": e.to_dict()},
                )
                return e

        while True:
            started = time.monotonic()
            errs = self._run_once(ctx)
            if errs is None:
                return None

            if self.smoke_test:
                return errs.err()

            elapsed = time.monotonic() - started
            wait_for = max(0.0, self.run_interval.total_seconds() - elapsed)
            if ctx.wait(wait_for):
                return None

    def _run_once(self, ctx: RunContext) -> MultiError | None:
        """Run every test once; None means the context was cancelled."""
        errs = MultiError()
        for test in self.tests:
            try:
                test.run(ctx, self.now_fn())
            except Cancelled:
                return None
            except CanaryError as e:
                self.last_run_ok[test.name] = False
                logger.warning(
                    "Test %s failed: %s", test.name, e, extra={"error": e.to_dict()}
                )
                errs.add(e)
            else:
                self.last_run_ok[test.name] = True
                logger.info("Test %s succeeded", test.name)
        return errs
