"""Tests for canary.lib.write_read module."""

from datetime import timedelta

import pytest

from canary.lib.config import WriteReadSeriesTestConfig
from canary.lib.errors import (
    Cancelled,
    ConfigurationError,
    MultiError,
    NoQueryableRangeError,
    QueryError,
    QueryShapeError,
    SampleValueMismatchError,
    WriteError,
)
from canary.lib.generators import FLOAT_METRIC_NAME, WRITE_INTERVAL
from canary.lib.history import MetricHistory
from canary.lib.rate_limiter import RateLimiter
from canary.lib.timeutil import align_timestamp_to_interval, to_millis
from canary.lib.write_read import WriteReadSeriesTest
from tests.fake_store import FakeStore

ALL_TYPES = [
    "float",
    "histogram_int_counter",
    "histogram_float_counter",
    "histogram_int_gauge",
    "histogram_float_gauge",
]


@pytest.fixture
def floats_only():
    return WriteReadSeriesTestConfig(num_series=10, with_floats=True)


def make_test(cfg, client, registry, rng, limiter):
    return WriteReadSeriesTest(cfg, client, registry=registry, rng=rng, rate_limiter=limiter)


def counter(registry, name, type_label="float", **labels):
    value = registry.get_sample_value(
        f"canary_continuous_test_{name}_total",
        {"test": "write-read-series", "type": type_label, **labels},
    )
    return value or 0.0


class FailingQueryStore(FakeStore):
    """Store whose range queries fail with a server error."""

    def query_range(self, ctx, query, start, end, step, *, results_cache_enabled=True):
        super().query_range(
            ctx, query, start, end, step, results_cache_enabled=results_cache_enabled
        )
        raise QueryError("query failed with status code 500", status_code=500)


class MalformedResultStore(FakeStore):
    """Store whose query responses cannot be parsed."""

    def query(self, ctx, query, ts, *, results_cache_enabled=True):
        raise QueryShapeError("malformed query result: KeyError('value')")

    def query_range(self, ctx, query, start, end, step, *, results_cache_enabled=True):
        raise QueryShapeError("malformed query result: ValueError()")


# =============================================================================
# Setup
# =============================================================================


class TestSetup:
    def test_enabled_profiles(self, series_config, store, registry):
        test = WriteReadSeriesTest(series_config, store, registry=registry)
        assert [p.type_label for p in test.profiles] == ALL_TYPES
        assert all(h == MetricHistory() for h in test.histories.values())

    def test_nothing_enabled(self, ctx, store, registry, now):
        cfg = WriteReadSeriesTestConfig(num_series=10)
        test = WriteReadSeriesTest(cfg, store, registry=registry)

        test.init(ctx, now)
        test.run(ctx, now)

        assert test.profiles == []
        assert store.write_calls == []

    def test_rate_limiter_smaller_than_series_count(self, store, registry):
        cfg = WriteReadSeriesTestConfig(num_series=2000, with_floats=True)
        with pytest.raises(ConfigurationError, match="burst size"):
            WriteReadSeriesTest(
                cfg, store, registry=registry, rate_limiter=RateLimiter(100, burst_size=10)
            )


# =============================================================================
# Writes
# =============================================================================


class TestWrites:
    """Tests for the write loop and the status code policy."""

    def test_first_run_writes_and_verifies(
        self, ctx, store, registry, rng, fast_limiter, series_config, now
    ):
        test = make_test(series_config, store, registry, rng, fast_limiter)
        test.init(ctx, now)
        test.run(ctx, now)

        aligned = align_timestamp_to_interval(now, WRITE_INTERVAL)
        assert len(store.write_calls) == 5
        assert {ts for _, ts in store.write_calls} == {to_millis(aligned)}
        for history in test.histories.values():
            assert history == MetricHistory(aligned, aligned, aligned)
        for type_label in ALL_TYPES:
            assert counter(registry, "writes", type_label) == 1
            assert counter(registry, "query_result_checks", type_label) > 0
            assert counter(registry, "query_result_checks_failed", type_label) == 0

    def test_catches_up_missed_intervals(
        self, ctx, store, registry, rng, fast_limiter, floats_only, now
    ):
        test = make_test(floats_only, store, registry, rng, fast_limiter)
        test.run(ctx, now)
        test.run(ctx, now + timedelta(minutes=2))

        aligned = align_timestamp_to_interval(now, WRITE_INTERVAL)
        written = [ts for _, ts in store.write_calls]
        assert written == [
            to_millis(aligned + i * WRITE_INTERVAL) for i in range(7)
        ]
        history = test.histories[FLOAT_METRIC_NAME]
        assert history.query_min_time == aligned
        assert history.query_max_time == aligned + 6 * WRITE_INTERVAL

    def test_client_error_resets_query_range(
        self, ctx, store, registry, rng, fast_limiter, floats_only, now
    ):
        test = make_test(floats_only, store, registry, rng, fast_limiter)
        test.run(ctx, now)

        store.fail_writes(400)
        test.run(ctx, now + timedelta(seconds=40))

        # The rejected interval is skipped and the next one still written.
        history = test.histories[FLOAT_METRIC_NAME]
        aligned = align_timestamp_to_interval(now, WRITE_INTERVAL)
        assert len(store.write_calls) == 3
        assert history.last_written_timestamp == aligned + 2 * WRITE_INTERVAL
        assert history.query_min_time == aligned + 2 * WRITE_INTERVAL
        assert counter(registry, "writes_failed", status_code="400") == 1

    def test_client_error_on_last_interval(
        self, ctx, store, registry, rng, fast_limiter, floats_only, now
    ):
        test = make_test(floats_only, store, registry, rng, fast_limiter)
        store.fail_writes(400)

        with pytest.raises(NoQueryableRangeError):
            test.run(ctx, now)

        aligned = align_timestamp_to_interval(now, WRITE_INTERVAL)
        assert test.histories[FLOAT_METRIC_NAME] == MetricHistory(aligned, None, None)
        assert store.query_calls == []

    def test_server_error_stops_writes(
        self, ctx, store, registry, rng, fast_limiter, floats_only, now
    ):
        test = make_test(floats_only, store, registry, rng, fast_limiter)
        test.run(ctx, now)
        before = MetricHistory(**vars(test.histories[FLOAT_METRIC_NAME]))
        queries_before = len(store.query_calls)

        store.fail_writes(503)
        with pytest.raises(WriteError) as exc_info:
            test.run(ctx, now + timedelta(minutes=1))

        assert exc_info.value.status_code == 503
        assert len(store.write_calls) == 2
        assert test.histories[FLOAT_METRIC_NAME] == before
        # Queries still run over the previously written range.
        assert len(store.query_calls) > queries_before
        assert counter(registry, "writes_failed", status_code="503") == 1

        # The failed intervals are written by the next run.
        test.run(ctx, now + timedelta(minutes=1))
        assert len(store.write_calls) == 5

    def test_network_error(self, ctx, store, registry, rng, fast_limiter, floats_only, now):
        test = make_test(floats_only, store, registry, rng, fast_limiter)
        test.run(ctx, now)
        store.fail_writes(0)

        with pytest.raises(WriteError) as exc_info:
            test.run(ctx, now + timedelta(seconds=20))

        assert exc_info.value.status_code == 0
        assert counter(registry, "writes_failed", status_code="0") == 1

    def test_errors_from_several_profiles(
        self, ctx, store, registry, rng, fast_limiter, now
    ):
        cfg = WriteReadSeriesTestConfig(num_series=10, with_histograms=True)
        test = make_test(cfg, store, registry, rng, fast_limiter)
        store.fail_writes(0, 0, 0, 0)

        with pytest.raises(MultiError) as exc_info:
            test.run(ctx, now)

        errors = list(exc_info.value)
        assert sum(isinstance(e, WriteError) for e in errors) == 4
        assert all(isinstance(e, (WriteError, NoQueryableRangeError)) for e in errors)

    def test_cancelled(self, ctx, store, registry, rng, fast_limiter, floats_only, now):
        test = make_test(floats_only, store, registry, rng, fast_limiter)
        ctx.cancel()

        with pytest.raises(Cancelled):
            test.run(ctx, now)
        assert store.write_calls == []


# =============================================================================
# Queries
# =============================================================================


class TestQueries:
    """Tests for query execution and result checks."""

    def test_every_query_runs_with_and_without_cache(
        self, ctx, store, registry, rng, fast_limiter, floats_only, now
    ):
        test = make_test(floats_only, store, registry, rng, fast_limiter)
        test.run(ctx, now)

        cached = [q for q, enabled in store.query_calls if enabled]
        uncached = [q for q, enabled in store.query_calls if not enabled]
        assert cached == uncached
        assert cached
        assert counter(registry, "queries") == len(store.query_calls)

    def test_wrong_value_fails_checks(
        self, ctx, store, registry, rng, fast_limiter, floats_only, now
    ):
        test = make_test(floats_only, store, registry, rng, fast_limiter)
        test.run(ctx, now)
        checks_before = counter(registry, "query_result_checks")

        aligned = align_timestamp_to_interval(now, WRITE_INTERVAL)
        store.samples[(FLOAT_METRIC_NAME, "3")][to_millis(aligned)] += 1.0
        with pytest.raises(MultiError) as exc_info:
            test.run(ctx, now)

        errors = list(exc_info.value)
        assert all(isinstance(e, SampleValueMismatchError) for e in errors)
        assert all(e.metric_name == FLOAT_METRIC_NAME for e in errors)
        failed = counter(registry, "query_result_checks_failed")
        assert failed == len(errors)
        assert counter(registry, "query_result_checks") - checks_before == failed

    def test_query_failure(self, ctx, registry, rng, fast_limiter, floats_only, now):
        store = FailingQueryStore()
        test = make_test(floats_only, store, registry, rng, fast_limiter)

        with pytest.raises(MultiError) as exc_info:
            test.run(ctx, now)

        errors = list(exc_info.value)
        assert all(isinstance(e, QueryError) for e in errors)
        assert all(e.metric_name == FLOAT_METRIC_NAME for e in errors)
        assert counter(registry, "queries_failed") == len(errors)

    def test_malformed_results_are_collected_per_profile(
        self, ctx, registry, rng, fast_limiter, series_config, now
    ):
        store = MalformedResultStore()
        test = make_test(series_config, store, registry, rng, fast_limiter)

        with pytest.raises(MultiError) as exc_info:
            test.run(ctx, now)

        errors = list(exc_info.value)
        assert all(isinstance(e, QueryError) for e in errors)
        assert all(isinstance(e.cause, QueryShapeError) for e in errors)
        assert {e.metric_name for e in errors} == {p.metric_name for p in test.profiles}
        assert len(store.write_calls) == len(ALL_TYPES)

    def test_max_query_age_skips_old_data(
        self, ctx, store, registry, rng, fast_limiter, now
    ):
        cfg = WriteReadSeriesTestConfig(
            num_series=10, with_floats=True, max_query_age=timedelta(minutes=1)
        )
        test = make_test(cfg, store, registry, rng, fast_limiter)
        history = test.histories[FLOAT_METRIC_NAME]
        aligned = align_timestamp_to_interval(now, WRITE_INTERVAL)
        history.restore(aligned - timedelta(hours=2), aligned - timedelta(hours=1))
        history.last_written_timestamp = aligned

        with pytest.raises(NoQueryableRangeError):
            test.run(ctx, now)
        assert store.query_calls == []


# =============================================================================
# Recovery
# =============================================================================


class TestInit:
    def test_restart_resumes_from_store(
        self, ctx, store, registry, rng, fast_limiter, series_config, now
    ):
        later = now + timedelta(minutes=1)
        first = make_test(series_config, store, registry, rng, fast_limiter)
        first.run(ctx, now)
        first.run(ctx, later)
        writes = len(store.write_calls)

        second = WriteReadSeriesTest(
            series_config, store, rng=rng, rate_limiter=fast_limiter
        )
        second.init(ctx, later)

        aligned = align_timestamp_to_interval(now, WRITE_INTERVAL)
        for history in second.histories.values():
            assert history.query_min_time == aligned
            assert history.query_max_time == aligned + 3 * WRITE_INTERVAL
            assert history.last_written_timestamp == aligned + 3 * WRITE_INTERVAL

        second.run(ctx, later)
        assert len(store.write_calls) == writes
