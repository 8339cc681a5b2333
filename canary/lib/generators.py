"""Deterministic synthetic series generation.

Every generated value is a pure function of the timestamp, so the value
expected back from a query can be re-derived at verification time
without remembering what was written.

Profiles:
    sine wave        float samples, sin(2*pi*t/10m)
    histogram x 4    native histograms with int or float counts, used as
                     a counter (always positive) or as a gauge (sign flips
                     on even minutes to exercise resets)

Example:
    registry = ProfileRegistry.default()
    for profile in registry.enabled(with_floats=True, with_histograms=True):
        series = profile.series(profile.metric_name, now, num_series=10)
        expected_sum = profile.value(now) * 10
"""

from __future__ import annotations

import math
from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import List, Tuple

from canary.lib.model import BucketSpan, Histogram, Label, ResetHint, Sample, TimeSeries
from canary.lib.timeutil import to_millis, to_nanos

__all__ = [
    "WRITE_INTERVAL",
    "WRITE_MAX_AGE",
    "FLOAT_METRIC_NAME",
    "FLOAT_TYPE_LABEL",
    "MetricProfile",
    "FloatProfile",
    "HistogramProfile",
    "ProfileRegistry",
    "generate_sine_wave_value",
    "generate_histogram_int_value",
    "generate_histogram_float_value",
    "generate_int_histogram",
    "generate_float_histogram",
    "query_sum_sample",
    "query_sum_hist",
]

WRITE_INTERVAL = timedelta(seconds=20)

# Recovered history whose newest point is older than this is not resumed.
WRITE_MAX_AGE = timedelta(minutes=50)

SINE_WAVE_PERIOD = timedelta(minutes=10)

FLOAT_METRIC_NAME = "canary_continuous_test_sine_wave"
FLOAT_TYPE_LABEL = "float"

HISTOGRAM_SCHEMA = 2
HISTOGRAM_ZERO_THRESHOLD = 0.001
HISTOGRAM_SPANS = (
    BucketSpan(offset=0, length=1),
    BucketSpan(offset=3, length=1),
    BucketSpan(offset=2, length=2),
)


def query_sum_sample(metric_name: str) -> str:
    # max_over_time() with a 1s range selects exactly the samples written at
    # each step, so the PromQL lookback period can't leak stale samples into
    # the result (or a different number of series after a restart).
    return f"sum(max_over_time({metric_name}[1s]))"


def query_sum_hist(metric_name: str) -> str:
    return f"sum({metric_name})"


def generate_sine_wave_value(t: datetime) -> float:
    period_nanos = (SINE_WAVE_PERIOD // timedelta(microseconds=1)) * 1000
    radians = 2 * math.pi * float(to_nanos(t)) / float(period_nanos)
    return math.sin(radians)


def _flip_sign(t: datetime, gauge: bool) -> bool:
    return gauge and t.astimezone(timezone.utc).minute % 2 == 0


def generate_histogram_int_value(t: datetime, gauge: bool) -> int:
    value = to_millis(t) // 1000
    return -value if _flip_sign(t, gauge) else value


def generate_histogram_float_value(t: datetime, gauge: bool) -> float:
    value = float(to_millis(t) // 1000) / 500000
    return -value if _flip_sign(t, gauge) else value


def histogram_sum(value: int | float) -> float:
    """Sum field of a generated histogram for base value ``value``.

    This is also the per-series expected value of ``sum(<metric>)``; keep
    the two in lockstep.
    """
    return float(value) * 10


def generate_int_histogram(value: int, gauge: bool, timestamp: int = 0) -> Histogram:
    magnitude = abs(value)
    populated = (magnitude, 0, 0, 0)
    empty = (0, 0, 0, 0)
    return Histogram(
        count=magnitude * 4,
        sum=histogram_sum(value),
        schema=HISTOGRAM_SCHEMA,
        zero_threshold=HISTOGRAM_ZERO_THRESHOLD,
        positive_spans=HISTOGRAM_SPANS,
        negative_spans=HISTOGRAM_SPANS,
        positive_buckets=populated if value >= 0 else empty,
        negative_buckets=empty if value >= 0 else populated,
        float_counts=False,
        reset_hint=ResetHint.GAUGE if gauge else ResetHint.UNKNOWN,
        timestamp=timestamp,
    )


def generate_float_histogram(value: float, gauge: bool, timestamp: int = 0) -> Histogram:
    magnitude = abs(value)
    populated = (magnitude, magnitude, magnitude, magnitude)
    empty = (0.0, 0.0, 0.0, 0.0)
    return Histogram(
        count=magnitude * 4,
        sum=histogram_sum(value),
        schema=HISTOGRAM_SCHEMA,
        zero_threshold=HISTOGRAM_ZERO_THRESHOLD,
        positive_spans=HISTOGRAM_SPANS,
        negative_spans=HISTOGRAM_SPANS,
        positive_buckets=populated if value >= 0 else empty,
        negative_buckets=empty if value >= 0 else populated,
        zero_count=0.0,
        float_counts=True,
        reset_hint=ResetHint.GAUGE if gauge else ResetHint.UNKNOWN,
        timestamp=timestamp,
    )


def _series_labels(name: str, series_id: int) -> Tuple[Label, ...]:
    return (Label("__name__", name), Label("series_id", str(series_id)))


class MetricProfile(ABC):
    """A named synthetic metric family and its generators."""

    metric_name: str
    type_label: str

    @abstractmethod
    def value(self, t: datetime) -> float:
        """Expected per-series value of the aggregate query at ``t``."""

    @abstractmethod
    def series(self, name: str, t: datetime, num_series: int) -> List[TimeSeries]:
        """Build the batch written at ``t``: one point per series id."""

    @abstractmethod
    def query_sum(self) -> str:
        """Aggregate query summing all series of this profile."""

    def __repr__(self) -> str:
        return f"{type(self).__name__}({self.metric_name!r})"


@dataclass(frozen=True, repr=False)
class FloatProfile(MetricProfile):
    metric_name: str = FLOAT_METRIC_NAME
    type_label: str = FLOAT_TYPE_LABEL

    def value(self, t: datetime) -> float:
        return generate_sine_wave_value(t)

    def series(self, name: str, t: datetime, num_series: int) -> List[TimeSeries]:
        sample = Sample(value=generate_sine_wave_value(t), timestamp=to_millis(t))
        return [
            TimeSeries(labels=_series_labels(name, i), samples=(sample,))
            for i in range(num_series)
        ]

    def query_sum(self) -> str:
        return query_sum_sample(self.metric_name)


@dataclass(frozen=True, repr=False)
class HistogramProfile(MetricProfile):
    metric_name: str
    type_label: str
    float_counts: bool
    gauge: bool

    def base_value(self, t: datetime) -> int | float:
        if self.float_counts:
            return generate_histogram_float_value(t, self.gauge)
        return generate_histogram_int_value(t, self.gauge)

    def histogram(self, t: datetime) -> Histogram:
        value = self.base_value(t)
        if self.float_counts:
            return generate_float_histogram(float(value), self.gauge, to_millis(t))
        return generate_int_histogram(int(value), self.gauge, to_millis(t))

    def value(self, t: datetime) -> float:
        return histogram_sum(self.base_value(t))

    def series(self, name: str, t: datetime, num_series: int) -> List[TimeSeries]:
        histogram = self.histogram(t)
        return [
            TimeSeries(labels=_series_labels(name, i), histograms=(histogram,))
            for i in range(num_series)
        ]

    def query_sum(self) -> str:
        return query_sum_hist(self.metric_name)


@dataclass(frozen=True)
class ProfileRegistry:
    """Immutable set of metric profiles, built once at startup."""

    float_profiles: Tuple[FloatProfile, ...]
    histogram_profiles: Tuple[HistogramProfile, ...]

    @classmethod
    def default(cls) -> "ProfileRegistry":
        return cls(
            float_profiles=(FloatProfile(),),
            histogram_profiles=(
                HistogramProfile(
                    metric_name="canary_continuous_test_histogram_int_counter",
                    type_label="histogram_int_counter",
                    float_counts=False,
                    gauge=False,
                ),
                HistogramProfile(
                    metric_name="canary_continuous_test_histogram_float_counter",
                    type_label="histogram_float_counter",
                    float_counts=True,
                    gauge=False,
                ),
                HistogramProfile(
                    metric_name="canary_continuous_test_histogram_int_gauge",
                    type_label="histogram_int_gauge",
                    float_counts=False,
                    gauge=True,
                ),
                HistogramProfile(
                    metric_name="canary_continuous_test_histogram_float_gauge",
                    type_label="histogram_float_gauge",
                    float_counts=True,
                    gauge=True,
                ),
            ),
        )

    def enabled(self, *, with_floats: bool, with_histograms: bool) -> List[MetricProfile]:
        profiles: List[MetricProfile] = []
        if with_floats:
            profiles.extend(self.float_profiles)
        if with_histograms:
            profiles.extend(self.histogram_profiles)
        return profiles

