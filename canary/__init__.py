"""Continuous write/read canary for Prometheus-compatible time-series backends.

Writes deterministic synthetic series (a sine wave and native histograms)
at a fixed interval and verifies aggregate query results against the
values they must produce.

Usage:
    python -m canary --config canary.yaml
"""

from canary.lib.config import CanaryConfig, load_config
from canary.lib.manager import Manager
from canary.lib.write_read import WriteReadSeriesTest

__all__ = [
    "CanaryConfig",
    "load_config",
    "Manager",
    "WriteReadSeriesTest",
]
