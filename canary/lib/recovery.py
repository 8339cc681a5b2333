"""Recovery of previously written data after a restart.

On startup the test scans backward from now, one 24h window at a time,
looking for the longest run of correct, gap-free points ending at the
newest one. If found (and recent enough), writing resumes right after it
and queries may cover the whole recovered range.
"""

from __future__ import annotations

from datetime import datetime, timedelta
from typing import List, Tuple

from canary.lib.client import SeriesClient
from canary.lib.context import RunContext
from canary.lib.errors import Cancelled, CanaryError
from canary.lib.generators import WRITE_INTERVAL, WRITE_MAX_AGE, MetricProfile
from canary.lib.history import MetricHistory
from canary.lib.logging import CanaryLogger
from canary.lib.model import SampleHistogramPair, SamplePair, SampleStream
from canary.lib.timeutil import align_timestamp_to_interval, from_millis, max_time
from canary.lib.verify import verify_samples_sum

__all__ = ["find_previously_written_time_range", "recover_past"]

SCAN_WINDOW = timedelta(hours=24)

TimeRange = Tuple[datetime | None, datetime | None]


def find_previously_written_time_range(
    ctx: RunContext,
    client: SeriesClient,
    now: datetime,
    profile: MetricProfile,
    num_series: int,
    max_query_age: timedelta,
    logger: CanaryLogger,
) -> TimeRange:
    """Return ``(from, to)`` of the newest verified run of points.

    Both are None when nothing usable was found. Query failures end the
    scan and keep whatever range was found so far.

    Raises:
        Cancelled: If ctx is cancelled during a query
    """
    step = WRITE_INTERVAL
    end = align_timestamp_to_interval(now, step)
    query = profile.query_sum()

    samples: List[SamplePair] = []
    histograms: List[SampleHistogramPair] = []
    found_from: datetime | None = None
    found_to: datetime | None = None

    while True:
        start = align_timestamp_to_interval(
            max_time(now - max_query_age, end - SCAN_WINDOW + step), step
        )
        if start >= end:
            # Hit the max query age.
            return found_from, found_to

        window_logger = logger.with_context(
            query=query, start=start.isoformat(), end=end.isoformat(), step=str(step)
        )
        window_logger.debug(
            "Executing query to find previously written samples",
            extra={"metric_name": profile.metric_name},
        )

        try:
            matrix = client.query_range(ctx, query, start, end, step, results_cache_enabled=False)
        except Cancelled:
            raise
        except CanaryError as e:
            window_logger.warning(
                "Failed to execute range query used to find previously written samples: %s", e
            )
            return found_from, found_to

        if not matrix:
            return found_from, found_to

        if len(matrix) != 1:
            window_logger.error(
                "The range query used to find previously written samples returned an "
                "unexpected number of series (expected 1, returned %d)",
                len(matrix),
            )
            return found_from, found_to

        samples = list(matrix[0].values) + samples
        histograms = list(matrix[0].histograms) + histograms
        end = start - step

        use_histograms = False
        if samples and not histograms:
            full = SampleStream(values=samples)
        elif histograms and not samples:
            full = SampleStream(histograms=histograms)
            use_histograms = True
        else:
            window_logger.error(
                "The range query used to find previously written samples returned either "
                "both floats and histograms or neither"
            )
            return found_from, found_to

        result = verify_samples_sum([full], num_series, step, profile.value)
        idx = result.last_matching_index
        if idx == -1:
            return found_from, found_to

        points = histograms if use_histograms else samples
        found_from = from_millis(points[idx].timestamp)
        found_to = from_millis(points[-1].timestamp)

        # The oldest written point was found if the match stopped short of
        # the window start.
        if idx != 0 or from_millis(points[0].timestamp) != start:
            return found_from, found_to


def recover_past(
    ctx: RunContext,
    client: SeriesClient,
    now: datetime,
    profile: MetricProfile,
    history: MetricHistory,
    num_series: int,
    max_query_age: timedelta,
    logger: CanaryLogger,
) -> None:
    """Restore ``history`` from data written by a previous run, if any."""
    profile_logger = logger.with_context(metric_name=profile.metric_name)
    found_from, found_to = find_previously_written_time_range(
        ctx, client, now, profile, num_series, max_query_age, profile_logger
    )
    if found_from is None or found_to is None:
        profile_logger.info(
            "No valid previously written samples time range found, will continue writing "
            "from the nearest interval-aligned timestamp"
        )
        return

    if found_to < now - WRITE_MAX_AGE:
        profile_logger.info(
            "Previously written samples time range found but latest written sample is too "
            "old to recover (last_sample_timestamp=%s)",
            found_to.isoformat(),
        )
        return

    history.restore(found_from, found_to)
    profile_logger.info(
        "Successfully found previously written samples time range and recovered writes "
        "and reads from there (last_written_timestamp=%s, query_min_time=%s, query_max_time=%s)",
        found_to.isoformat(),
        found_from.isoformat(),
        found_to.isoformat(),
    )
