"""Time helpers shared by the generators, planner and recovery scanner.

All datetimes handled here are timezone-aware UTC.
"""

from __future__ import annotations

import random
from datetime import datetime, timedelta, timezone

__all__ = [
    "EPOCH",
    "utcnow",
    "to_millis",
    "to_nanos",
    "from_millis",
    "align_timestamp_to_interval",
    "get_query_step",
    "min_time",
    "max_time",
    "rand_time",
]

EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)

_MICROSECOND = timedelta(microseconds=1)

# Upper bound on the number of points a test range query returns.
MAX_QUERY_POINTS = 1000


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _micros(ts: datetime) -> int:
    return (ts - EPOCH) // _MICROSECOND


def to_millis(ts: datetime) -> int:
    return _micros(ts) // 1000


def to_nanos(ts: datetime) -> int:
    return _micros(ts) * 1000


def from_millis(ms: int) -> datetime:
    return EPOCH + timedelta(milliseconds=ms)


def align_timestamp_to_interval(ts: datetime, interval: timedelta) -> datetime:
    """Round ``ts`` down to a multiple of ``interval`` since the Unix epoch."""
    step = interval // _MICROSECOND
    us = _micros(ts)
    return EPOCH + timedelta(microseconds=us - us % step)


def get_query_step(start: datetime, end: datetime, align_interval: timedelta) -> timedelta:
    """Return the step for a range query over [start, end].

    The step is always a multiple of ``align_interval`` and keeps the
    number of returned points at or below MAX_QUERY_POINTS.
    """
    actual_points = (end - start) // align_interval
    if actual_points <= MAX_QUERY_POINTS:
        return align_interval

    step = (end - start) / MAX_QUERY_POINTS
    return ((step // align_interval) + 1) * align_interval


def min_time(first: datetime, second: datetime) -> datetime:
    return second if first > second else first


def max_time(first: datetime, second: datetime) -> datetime:
    return first if first > second else second


def rand_time(
    lower: datetime,
    upper: datetime,
    rng: random.Random | None = None,
) -> datetime:
    """Return a whole-second timestamp in [lower, upper), or ``lower`` if empty."""
    rng = rng or random
    lower_sec = to_millis(lower) // 1000
    delta = to_millis(upper) // 1000 - lower_sec
    if delta <= 0:
        return lower
    return EPOCH + timedelta(seconds=rng.randrange(delta) + lower_sec)
