"""CLI entry point for running the canary.

Usage:
    python -m canary --config canary.yaml
    python -m canary --write-endpoint http://mimir:8080 \\
        --read-endpoint http://mimir:8080/prometheus --with-floats --with-histograms
    python -m canary --config canary.yaml --smoke-test
"""

from __future__ import annotations

import argparse
import logging
import signal
import sys
from typing import List

from prometheus_client import CollectorRegistry, start_http_server
from pydantic import ValidationError

from canary.lib.client import HttpClient
from canary.lib.config import CanaryConfig, configuration_error, load_config
from canary.lib.context import RunContext
from canary.lib.errors import CanaryError
from canary.lib.logging import setup_logging
from canary.lib.manager import Manager
from canary.lib.metrics import RetryMetrics
from canary.lib.write_read import WriteReadSeriesTest

logger = logging.getLogger(__name__)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="series-canary",
        description="Continuously write synthetic series and verify them by querying back",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
    # Run with a config file
    python -m canary --config canary.yaml

    # Run a single write/verify cycle and exit non-zero on failure
    python -m canary --config canary.yaml --smoke-test

    # Override the tenant and series count from the command line
    python -m canary --config canary.yaml --tenant-id team-a --num-series 100
        """,
    )
    parser.add_argument("--config", "-c", help="Path to a YAML config file")
    parser.add_argument("--env-file", help="Path to a .env file (default: search for .env)")
    parser.add_argument("--num-series", type=int, help="Number of series used for the test")
    parser.add_argument(
        "--max-query-age",
        help="How far back in the past series can be queried at most (e.g. 168h)",
    )
    parser.add_argument(
        "--with-floats",
        action="store_true",
        default=None,
        help="Include float sample series in the test",
    )
    parser.add_argument(
        "--with-histograms",
        action="store_true",
        default=None,
        help="Include native histogram series in the test",
    )
    parser.add_argument("--run-interval", help="Interval between test runs (e.g. 5m)")
    parser.add_argument(
        "--smoke-test",
        action="store_true",
        default=None,
        help="Run the tests once and exit (non-zero exit code on failure)",
    )
    parser.add_argument("--write-endpoint", help="Base URL for remote writes")
    parser.add_argument("--read-endpoint", help="Base URL for queries")
    parser.add_argument("--tenant-id", help="Tenant sent as X-Scope-OrgID")
    parser.add_argument(
        "--metrics-port",
        type=int,
        help="Port to expose Prometheus metrics on (0 disables it)",
    )
    parser.add_argument("-v", "--verbose", action="store_true", help="Enable verbose logging")
    parser.add_argument(
        "--json-logs",
        action="store_true",
        default=None,
        help="Output logs in JSON format (for log aggregation systems)",
    )
    parser.add_argument("--log-file", help="Write logs to a file in addition to console")
    return parser


def apply_overrides(config: CanaryConfig, args: argparse.Namespace) -> CanaryConfig:
    """Apply command-line flags on top of file-based configuration.

    Raises:
        ConfigurationError: If a flag value is invalid for its field
    """
    try:
        _apply_flags(config, args)
    except ValidationError as e:
        raise configuration_error(e, "Invalid command-line flag") from e
    return config


def _apply_flags(config: CanaryConfig, args: argparse.Namespace) -> None:
    wrs = config.write_read_series
    client = config.client

    if args.num_series is not None:
        wrs.num_series = args.num_series
    if args.max_query_age is not None:
        wrs.max_query_age = args.max_query_age
    if args.with_floats is not None:
        wrs.with_floats = args.with_floats
    if args.with_histograms is not None:
        wrs.with_histograms = args.with_histograms
    if args.run_interval is not None:
        config.run_interval = args.run_interval
    if args.smoke_test is not None:
        config.smoke_test = args.smoke_test
    if args.write_endpoint is not None:
        client.write_base_endpoint = args.write_endpoint
    if args.read_endpoint is not None:
        client.read_base_endpoint = args.read_endpoint
    if args.tenant_id is not None:
        client.tenant_id = args.tenant_id
    if args.metrics_port is not None:
        config.metrics_port = args.metrics_port
    if args.verbose:
        config.log_level = "DEBUG"
    if args.json_logs is not None:
        config.log_json = args.json_logs
    if args.log_file is not None:
        config.log_file = args.log_file


def main(argv: List[str] | None = None) -> int:
    """Main entry point for the CLI."""
    args = build_parser().parse_args(argv)

    try:
        config = apply_overrides(load_config(args.config, env_file=args.env_file), args)
        config.check()
    except CanaryError as e:
        print(f"Configuration error: {e}", file=sys.stderr)
        return 2

    setup_logging(
        verbose=config.log_level.upper() == "DEBUG",
        json_format=config.log_json,
        log_file=config.log_file,
    )
    logging.getLogger().setLevel(config.log_level.upper())

    registry = CollectorRegistry()
    if config.metrics_port:
        start_http_server(config.metrics_port, registry=registry)
        logger.info("Serving metrics on port %d", config.metrics_port)

    client = HttpClient(config.client, retry_metrics=RetryMetrics(registry))
    manager = Manager(config.run_interval, smoke_test=config.smoke_test)
    manager.add_test(WriteReadSeriesTest(config.write_read_series, client, registry=registry))

    ctx = RunContext()

    def handle_signal(signum: int, _frame: object) -> None:
        logger.info("Received signal %d, shutting down", signum)
        ctx.cancel()

    signal.signal(signal.SIGINT, handle_signal)
    signal.signal(signal.SIGTERM, handle_signal)

    err = manager.run(ctx)
    if err is not None:
        logger.error("Canary failed: %s", err)
        return 1
    return 0


if __name__ == "__main__":
    sys.exit(main())
