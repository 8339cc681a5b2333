"""Data models for written series and query results.

Write-side types (TimeSeries, Sample, Histogram) mirror the remote-write
protocol. Read-side types (SampleStream, VectorSample, SampleHistogram)
mirror the JSON returned by the Prometheus HTTP query API. Timestamps are
integer milliseconds since the Unix epoch on both sides.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import IntEnum
from typing import Any, Dict, List, Sequence, Tuple

__all__ = [
    "ResetHint",
    "Label",
    "Sample",
    "BucketSpan",
    "Histogram",
    "TimeSeries",
    "SamplePair",
    "HistogramBucket",
    "SampleHistogram",
    "SampleHistogramPair",
    "SampleStream",
    "VectorSample",
    "Matrix",
    "Vector",
    "parse_timestamp",
]


class ResetHint(IntEnum):
    """Counter reset hint carried by a native histogram."""

    UNKNOWN = 0
    YES = 1
    NO = 2
    GAUGE = 3


@dataclass(frozen=True)
class Label:
    name: str
    value: str


@dataclass(frozen=True)
class Sample:
    value: float
    timestamp: int


@dataclass(frozen=True)
class BucketSpan:
    offset: int
    length: int


@dataclass(frozen=True)
class Histogram:
    """A native (exponential bucket) histogram observation.

    With integer counts, bucket values are delta-encoded (the first bucket
    is absolute, the rest are deltas to the previous one). With float
    counts, bucket values are absolute.
    """

    count: int | float
    sum: float
    schema: int
    zero_threshold: float
    positive_spans: Tuple[BucketSpan, ...]
    negative_spans: Tuple[BucketSpan, ...]
    positive_buckets: Tuple[int | float, ...]
    negative_buckets: Tuple[int | float, ...]
    zero_count: int | float = 0
    float_counts: bool = False
    reset_hint: ResetHint = ResetHint.UNKNOWN
    timestamp: int = 0


@dataclass(frozen=True)
class TimeSeries:
    labels: Tuple[Label, ...]
    samples: Tuple[Sample, ...] = ()
    histograms: Tuple[Histogram, ...] = ()

    def label_value(self, name: str) -> str | None:
        for label in self.labels:
            if label.name == name:
                return label.value
        return None


def parse_timestamp(value: Any) -> int:
    """Convert an API timestamp (float seconds) to integer milliseconds."""
    return int(round(float(value) * 1000))


@dataclass(frozen=True)
class SamplePair:
    timestamp: int
    value: float


@dataclass(frozen=True)
class HistogramBucket:
    boundaries: int
    lower: float
    upper: float
    count: float

    @classmethod
    def from_json(cls, data: Sequence[Any]) -> "HistogramBucket":
        boundaries, lower, upper, count = data
        return cls(int(boundaries), float(lower), float(upper), float(count))


@dataclass(frozen=True)
class SampleHistogram:
    count: float
    sum: float
    buckets: Tuple[HistogramBucket, ...] = ()

    @classmethod
    def from_json(cls, data: Dict[str, Any]) -> "SampleHistogram":
        return cls(
            count=float(data.get("count", 0)),
            sum=float(data.get("sum", 0)),
            buckets=tuple(HistogramBucket.from_json(b) for b in data.get("buckets") or ()),
        )


@dataclass(frozen=True)
class SampleHistogramPair:
    timestamp: int
    histogram: SampleHistogram | None


@dataclass
class SampleStream:
    """One series of a range query result."""

    metric: Dict[str, str] = field(default_factory=dict)
    values: List[SamplePair] = field(default_factory=list)
    histograms: List[SampleHistogramPair] = field(default_factory=list)

    @classmethod
    def from_json(cls, data: Dict[str, Any]) -> "SampleStream":
        values = [
            SamplePair(parse_timestamp(ts), float(value))
            for ts, value in data.get("values") or ()
        ]
        histograms = [
            SampleHistogramPair(
                parse_timestamp(ts),
                SampleHistogram.from_json(h) if h is not None else None,
            )
            for ts, h in data.get("histograms") or ()
        ]
        return cls(metric=dict(data.get("metric") or {}), values=values, histograms=histograms)


@dataclass
class VectorSample:
    """One series of an instant query result: a float or a histogram."""

    metric: Dict[str, str]
    timestamp: int
    value: float | None = None
    histogram: SampleHistogram | None = None

    @classmethod
    def from_json(cls, data: Dict[str, Any]) -> "VectorSample":
        metric = dict(data.get("metric") or {})
        if "histogram" in data:
            ts, h = data["histogram"]
            return cls(
                metric=metric,
                timestamp=parse_timestamp(ts),
                histogram=SampleHistogram.from_json(h),
            )
        ts, value = data["value"]
        return cls(metric=metric, timestamp=parse_timestamp(ts), value=float(value))


Matrix = List[SampleStream]
Vector = List[VectorSample]
