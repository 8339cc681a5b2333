"""The write-read series test.

Every run, for each enabled metric profile:

1. Writes one batch of ``num_series`` series for every write interval
   between the last written timestamp and now (catching up after
   downtime, throttled by a limiter shared across profiles).
2. Picks query windows from the range known to hold correct data.
3. Runs each range and instant query twice, with the results cache
   enabled and disabled, and verifies the results.

Profiles run concurrently, each owning its own MetricHistory.
"""

from __future__ import annotations

import random
from concurrent.futures import ThreadPoolExecutor
from datetime import datetime, timedelta
from typing import Dict, List, Sequence

from prometheus_client import CollectorRegistry

from canary.lib.client import SeriesClient
from canary.lib.config import WriteReadSeriesTestConfig
from canary.lib.context import RunContext
from canary.lib.errors import (
    Cancelled,
    CanaryError,
    ConfigurationError,
    MultiError,
    QueryError,
    WriteError,
)
from canary.lib.generators import WRITE_INTERVAL, MetricProfile, ProfileRegistry
from canary.lib.history import MetricHistory
from canary.lib.logging import CanaryLogger
from canary.lib.metrics import ContinuousTestMetrics
from canary.lib.model import TimeSeries
from canary.lib.planner import get_query_time_ranges
from canary.lib.rate_limiter import RateLimiter
from canary.lib.recovery import recover_past
from canary.lib.timeutil import (
    align_timestamp_to_interval,
    get_query_step,
    max_time,
    min_time,
    to_millis,
)
from canary.lib.verify import vector_to_matrix, verify_samples_sum

__all__ = ["WriteReadSeriesTest"]

TEST_NAME = "write-read-series"


class WriteReadSeriesTest:
    """Continuously writes synthetic series and verifies them by querying back.

    Example:
        test = WriteReadSeriesTest(cfg, client, registry=registry)
        test.init(ctx, utcnow())
        test.run(ctx, utcnow())   # raises on any write/query/check failure
    """

    name = TEST_NAME

    def __init__(
        self,
        cfg: WriteReadSeriesTestConfig,
        client: SeriesClient,
        *,
        registry: CollectorRegistry | None = None,
        profiles: ProfileRegistry | None = None,
        rng: random.Random | None = None,
        rate_limiter: RateLimiter | None = None,
    ) -> None:
        self.cfg = cfg
        self.client = client
        self.metrics = ContinuousTestMetrics(self.name, registry)
        self.logger = CanaryLogger(__name__).with_context(test=self.name)
        self.rng = rng or random.Random()
        if rate_limiter is not None and rate_limiter.burst_size < cfg.num_series:
            raise ConfigurationError(
                f"rate limiter burst size {rate_limiter.burst_size} is smaller than "
                f"num_series {cfg.num_series}: a write interval could never be admitted",
                field="num_series",
                value=cfg.num_series,
            )
        self.rate_limiter = rate_limiter

        registry_profiles = profiles or ProfileRegistry.default()
        self.profiles: List[MetricProfile] = registry_profiles.enabled(
            with_floats=cfg.with_floats, with_histograms=cfg.with_histograms
        )
        self.histories: Dict[str, MetricHistory] = {
            profile.metric_name: MetricHistory() for profile in self.profiles
        }

    def init(self, ctx: RunContext, now: datetime) -> None:
        """Recover writes and reads from data left by a previous run."""
        self.logger.info(
            "Finding previously written samples time range to recover writes and reads "
            "from previous run"
        )
        for profile in self.profiles:
            recover_past(
                ctx,
                self.client,
                now,
                profile,
                self.histories[profile.metric_name],
                self.cfg.num_series,
                self.cfg.max_query_age,
                self.logger,
            )

    def run(self, ctx: RunContext, now: datetime) -> None:
        """Write missing intervals and verify queries for every profile.

        Raises:
            Cancelled: If ctx was cancelled
            CanaryError: The single failure of this run, or a MultiError
        """
        if not self.profiles:
            return

        # One sample per series per second, so catching up after downtime
        # doesn't hit ingestion limits.
        limiter = self.rate_limiter or RateLimiter(
            self.cfg.num_series, burst_size=self.cfg.num_series
        )

        with ThreadPoolExecutor(
            max_workers=len(self.profiles), thread_name_prefix="write-read"
        ) as executor:
            futures = [
                executor.submit(self._run_profile, ctx, now, limiter, profile)
                for profile in self.profiles
            ]
            results = [future.result() for future in futures]

        errs = MultiError()
        for profile_errs in results:
            errs.extend(profile_errs)
        errs.raise_if_any()

    def _run_profile(
        self,
        ctx: RunContext,
        now: datetime,
        limiter: RateLimiter,
        profile: MetricProfile,
    ) -> MultiError:
        errs = MultiError()
        history = self.histories[profile.metric_name]
        logger = self.logger.with_context(
            metric_name=profile.metric_name, type_label=profile.type_label
        )

        # Write series for each expected timestamp until now.
        timestamp = history.next_write_timestamp(now, WRITE_INTERVAL)
        while timestamp <= now:
            limiter.acquire(self.cfg.num_series, ctx=ctx)

            series = profile.series(profile.metric_name, timestamp, self.cfg.num_series)
            err = self._write_samples(ctx, profile, timestamp, series, history, logger)
            if err is not None:
                errs.add(err)
                break
            timestamp = history.next_write_timestamp(now, WRITE_INTERVAL)

        try:
            plan = get_query_time_ranges(now, history, self.cfg.max_query_age, self.rng)
        except CanaryError as e:
            errs.add(e)
            return errs

        for start, end in plan.ranges:
            for cache_enabled in (True, False):
                errs.add(
                    self._run_range_query_and_verify(
                        ctx, start, end, cache_enabled, profile, history, logger
                    )
                )
        for ts in plan.instants:
            for cache_enabled in (True, False):
                errs.add(
                    self._run_instant_query_and_verify(
                        ctx, ts, cache_enabled, profile, history, logger
                    )
                )
        return errs

    def _write_samples(
        self,
        ctx: RunContext,
        profile: MetricProfile,
        timestamp: datetime,
        series: Sequence[TimeSeries],
        history: MetricHistory,
        logger: CanaryLogger,
    ) -> WriteError | None:
        """Write one interval and update ``history`` from the outcome.

        Returns the error that should stop this run's writes, if any.
        """
        write_logger = logger.with_context(
            timestamp=timestamp.isoformat(), num_series=self.cfg.num_series
        )

        error: WriteError | None = None
        try:
            status_code = self.client.write_series(ctx, series)
        except WriteError as e:
            error = e
            status_code = e.status_code

        self.metrics.inc_write(profile.type_label)
        if status_code // 100 != 2:
            self.metrics.inc_write_failed(profile.type_label, status_code)
            write_logger.warning(
                "Failed to remote write series (status_code=%d): %s", status_code, error
            )
        else:
            write_logger.debug("Remote write series succeeded")

        # A 4xx won't succeed on retry and the series may be partially written:
        # keep writing the next interval, but results can't be asserted across
        # the possible gap.
        if status_code // 100 == 4:
            history.record_write_rejected(timestamp)
            return None

        # Network or 5xx errors are retried on the next run.
        if error is not None:
            return error
        if status_code // 100 != 2:
            return WriteError(
                f"remote write series failed with status code {status_code}",
                status_code=status_code,
                metric_name=profile.metric_name,
            )

        history.record_write_success(timestamp)
        return None

    def _run_range_query_and_verify(
        self,
        ctx: RunContext,
        start: datetime,
        end: datetime,
        results_cache_enabled: bool,
        profile: MetricProfile,
        history: MetricHistory,
        logger: CanaryLogger,
    ) -> CanaryError | None:
        if history.query_min_time is None or history.query_max_time is None:
            return None

        # Align start, end and step to the write interval so results can be
        # compared exactly. The min/max query time is always aligned.
        start = max_time(
            history.query_min_time, align_timestamp_to_interval(start, WRITE_INTERVAL)
        )
        end = min_time(history.query_max_time, align_timestamp_to_interval(end, WRITE_INTERVAL))
        if end < start:
            return None

        step = get_query_step(start, end, WRITE_INTERVAL)
        query = profile.query_sum()
        query_logger = logger.with_context(
            query=query,
            start=to_millis(start),
            end=to_millis(end),
            step=str(step),
            results_cache=str(results_cache_enabled).lower(),
        )
        query_logger.debug("Running range query")

        self.metrics.inc_query(profile.type_label)
        try:
            matrix = self.client.query_range(
                ctx, query, start, end, step, results_cache_enabled=results_cache_enabled
            )
        except Cancelled:
            raise
        except CanaryError as e:
            self.metrics.inc_query_failed(profile.type_label)
            query_logger.warning("Failed to execute range query: %s", e)
            return _as_query_error("failed to execute range query", e, profile)

        self.metrics.inc_check(profile.type_label)
        result = verify_samples_sum(matrix, self.cfg.num_series, step, profile.value)
        if result.error is not None:
            self.metrics.inc_check_failed(profile.type_label)
            query_logger.warning("Range query result check failed: %s", result.error)
            return result.error.for_metric(profile.metric_name)
        return None

    def _run_instant_query_and_verify(
        self,
        ctx: RunContext,
        ts: datetime,
        results_cache_enabled: bool,
        profile: MetricProfile,
        history: MetricHistory,
        logger: CanaryLogger,
    ) -> CanaryError | None:
        if history.query_min_time is None or history.query_max_time is None:
            return None

        ts = max_time(history.query_min_time, align_timestamp_to_interval(ts, WRITE_INTERVAL))
        if history.query_max_time < ts:
            return None

        query = profile.query_sum()
        query_logger = logger.with_context(
            query=query,
            ts=to_millis(ts),
            results_cache=str(results_cache_enabled).lower(),
        )
        query_logger.debug("Running instant query")

        self.metrics.inc_query(profile.type_label)
        try:
            vector = self.client.query(
                ctx, query, ts, results_cache_enabled=results_cache_enabled
            )
        except Cancelled:
            raise
        except CanaryError as e:
            self.metrics.inc_query_failed(profile.type_label)
            query_logger.warning("Failed to execute instant query: %s", e)
            return _as_query_error("failed to execute instant query", e, profile)

        self.metrics.inc_check(profile.type_label)
        result = verify_samples_sum(
            vector_to_matrix(vector), self.cfg.num_series, timedelta(0), profile.value
        )
        if result.error is not None:
            self.metrics.inc_check_failed(profile.type_label)
            query_logger.warning("Instant query result check failed: %s", result.error)
            return result.error.for_metric(profile.metric_name)
        return None


def _as_query_error(message: str, cause: CanaryError, profile: MetricProfile) -> CanaryError:
    if isinstance(cause, QueryError):
        return cause.for_metric(profile.metric_name)
    return QueryError(message, cause=cause, metric_name=profile.metric_name)
