"""Verification of aggregate query results against expected values.

A result is checked newest to oldest: every point must equal
``value_fn(ts) * expected_series`` within tolerance, and adjacent points
must be exactly ``expected_step`` apart. The index of the oldest point
that still passes both checks is reported even on failure, which is what
the recovery scanner uses to locate the oldest recoverable sample.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Callable, List, Sequence, Tuple

from canary.lib.errors import (
    CanaryError,
    QueryShapeError,
    SampleGapError,
    SampleValueMismatchError,
)
from canary.lib.model import Matrix, SampleStream, SamplePair, SampleHistogramPair, Vector
from canary.lib.timeutil import from_millis

__all__ = [
    "MAX_COMPARISON_DELTA",
    "VerifyResult",
    "compare_sample_values",
    "verify_samples_sum",
    "vector_to_matrix",
]

MAX_COMPARISON_DELTA = 0.001

ValueFunc = Callable[[datetime], float]


@dataclass(frozen=True)
class VerifyResult:
    """Outcome of verify_samples_sum.

    ``last_matching_index`` is the index of the oldest point that matched
    (-1 if none did). ``error`` is None when every point matched.
    """

    last_matching_index: int
    error: CanaryError | None = None


def compare_sample_values(actual: float, expected: float) -> bool:
    # Width-relative: |actual - expected| / delta must stay below delta.
    delta = abs((actual - expected) / MAX_COMPARISON_DELTA)
    return delta < MAX_COMPARISON_DELTA


def vector_to_matrix(vector: Vector) -> Matrix:
    """Turn an instant query result into a matrix so it can be verified."""
    matrix: Matrix = []
    for entry in vector:
        stream = SampleStream(metric=dict(entry.metric))
        if entry.histogram is None:
            stream.values = [SamplePair(entry.timestamp, float(entry.value or 0.0))]
        else:
            stream.histograms = [SampleHistogramPair(entry.timestamp, entry.histogram)]
        matrix.append(stream)
    return matrix


def _check_points(
    points: Sequence[Tuple[int, float]],
    kind: str,
    expected_series: int,
    expected_step: timedelta,
    value_fn: ValueFunc,
) -> VerifyResult:
    step_ms = expected_step // timedelta(milliseconds=1)
    last_matching_idx = -1

    for idx in range(len(points) - 1, -1, -1):
        ts_ms, actual = points[idx]
        ts = from_millis(ts_ms)

        expected = value_fn(ts) * expected_series
        if not compare_sample_values(actual, expected):
            return VerifyResult(
                last_matching_idx,
                SampleValueMismatchError(
                    f"{kind} at timestamp {ts_ms} ({ts.isoformat()}) has value {actual:f} "
                    f"while was expecting {expected:f}",
                    timestamp=ts_ms,
                    index=idx,
                    expected=expected,
                    actual=actual,
                ),
            )

        # No gaps allowed between adjacent points.
        if idx < len(points) - 1:
            next_ts_ms = points[idx + 1][0]
            expected_ts_ms = next_ts_ms - step_ms
            if ts_ms != expected_ts_ms:
                return VerifyResult(
                    last_matching_idx,
                    SampleGapError(
                        f"{kind} at timestamp {ts_ms} ({ts.isoformat()}) was expected to have "
                        f"timestamp {expected_ts_ms} ({from_millis(expected_ts_ms).isoformat()}) "
                        f"because next {kind} has timestamp {next_ts_ms} "
                        f"({from_millis(next_ts_ms).isoformat()})",
                        timestamp=ts_ms,
                        index=idx,
                        expected_timestamp=expected_ts_ms,
                        next_timestamp=next_ts_ms,
                    ),
                )

        last_matching_idx = idx

    return VerifyResult(last_matching_idx)


def verify_samples_sum(
    matrix: Matrix,
    expected_series: int,
    expected_step: timedelta,
    value_fn: ValueFunc,
) -> VerifyResult:
    """Check a ``sum(...)`` query result over ``expected_series`` series.

    Args:
        matrix: Query result; must hold exactly one series
        expected_series: Number of synthetic series summed by the query
        expected_step: Spacing expected between adjacent points
        value_fn: Per-series expected value at a timestamp

    Returns:
        VerifyResult with the oldest matching index and the first failure
    """
    if len(matrix) != 1:
        return VerifyResult(
            -1,
            QueryShapeError(f"expected 1 series in the result but got {len(matrix)}"),
        )

    samples = matrix[0].values
    histograms = matrix[0].histograms
    if samples and histograms:
        return VerifyResult(
            -1,
            QueryShapeError("expected only floats or histograms in the result but got both"),
        )
    if not samples and not histograms:
        return VerifyResult(
            -1,
            QueryShapeError("expected either floats or histograms in the result but got neither"),
        )

    if histograms:
        points: List[Tuple[int, float]] = []
        for pair in histograms:
            if pair.histogram is None:
                return VerifyResult(-1, QueryShapeError("found null histogram in the result"))
            points.append((pair.timestamp, pair.histogram.sum))
        return _check_points(points, "histogram", expected_series, expected_step, value_fn)

    return _check_points(
        [(s.timestamp, s.value) for s in samples],
        "sample",
        expected_series,
        expected_step,
        value_fn,
    )
