"""Pytest configuration and fixtures."""

from datetime import datetime, timezone
import random

import pytest
from prometheus_client import CollectorRegistry

from canary.lib.config import WriteReadSeriesTestConfig
from canary.lib.context import RunContext
from canary.lib.rate_limiter import RateLimiter
from tests.fake_store import FakeStore


# An odd UTC minute, so gauge histograms are not sign-flipped at this instant.
NOW = datetime(2024, 3, 5, 12, 1, 5, tzinfo=timezone.utc)


@pytest.fixture
def now() -> datetime:
    return NOW


@pytest.fixture
def ctx() -> RunContext:
    return RunContext()


@pytest.fixture
def store() -> FakeStore:
    return FakeStore()


@pytest.fixture
def registry() -> CollectorRegistry:
    return CollectorRegistry()


@pytest.fixture
def rng() -> random.Random:
    return random.Random(42)


@pytest.fixture
def fast_limiter() -> RateLimiter:
    """Limiter that never throttles test-sized batches."""
    return RateLimiter(1_000_000, burst_size=1_000)


@pytest.fixture
def series_config() -> WriteReadSeriesTestConfig:
    return WriteReadSeriesTestConfig(num_series=10, with_floats=True, with_histograms=True)
