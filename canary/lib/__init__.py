"""Canary library modules.

Series generation, history tracking, query planning, verification and
the HTTP client used by the write-read series test.
"""

from canary.lib.client import HttpClient, SeriesClient
from canary.lib.config import (
    CanaryConfig,
    ClientConfig,
    WriteReadSeriesTestConfig,
    load_config,
    parse_duration,
)
from canary.lib.context import RunContext
from canary.lib.errors import (
    APIError,
    Cancelled,
    CanaryError,
    ConfigurationError,
    MultiError,
    NoQueryableRangeError,
    QueryError,
    QueryShapeError,
    SampleGapError,
    SampleValueMismatchError,
    VerificationError,
    WriteError,
)
from canary.lib.generators import (
    WRITE_INTERVAL,
    WRITE_MAX_AGE,
    FloatProfile,
    HistogramProfile,
    MetricProfile,
    ProfileRegistry,
)
from canary.lib.history import MetricHistory
from canary.lib.manager import Manager
from canary.lib.planner import QueryPlan, get_query_time_ranges
from canary.lib.rate_limiter import RateLimiter
from canary.lib.resilience import RetryMiddleware
from canary.lib.verify import VerifyResult, verify_samples_sum
from canary.lib.write_read import WriteReadSeriesTest

__all__ = [
    # Client
    "HttpClient",
    "SeriesClient",
    # Config
    "CanaryConfig",
    "ClientConfig",
    "WriteReadSeriesTestConfig",
    "load_config",
    "parse_duration",
    # Context
    "RunContext",
    # Errors
    "APIError",
    "Cancelled",
    "CanaryError",
    "ConfigurationError",
    "MultiError",
    "NoQueryableRangeError",
    "QueryError",
    "QueryShapeError",
    "SampleGapError",
    "SampleValueMismatchError",
    "VerificationError",
    "WriteError",
    # Generators
    "WRITE_INTERVAL",
    "WRITE_MAX_AGE",
    "FloatProfile",
    "HistogramProfile",
    "MetricProfile",
    "ProfileRegistry",
    # Engine
    "MetricHistory",
    "Manager",
    "QueryPlan",
    "get_query_time_ranges",
    "RateLimiter",
    "RetryMiddleware",
    "VerifyResult",
    "verify_samples_sum",
    "WriteReadSeriesTest",
]
