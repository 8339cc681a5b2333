"""Prometheus metrics for the continuous test.

Counters are registered on an explicit CollectorRegistry. Without one, a
private registry is used, so building several tests in one process (or
in unit tests) never collides on the global registry.
"""

from __future__ import annotations


from prometheus_client import CollectorRegistry, Counter, Histogram

__all__ = ["ContinuousTestMetrics", "RetryMetrics"]

NAMESPACE = "canary_continuous_test"


class ContinuousTestMetrics:
    """Per-test write, query and result-check counters, labeled by series type.

    Example:
        metrics = ContinuousTestMetrics("write-read-series", registry)
        metrics.writes_total.labels(test=metrics.test_name, type="float").inc()
    """

    def __init__(self, test_name: str, registry: CollectorRegistry | None = None):
        self.test_name = test_name
        self.registry = registry if registry is not None else CollectorRegistry()

        self.writes_total = Counter(
            "writes_total",
            "Total number of attempted write requests.",
            ["test", "type"],
            namespace=NAMESPACE,
            registry=self.registry,
        )
        self.writes_failed_total = Counter(
            "writes_failed_total",
            "Total number of failed write requests.",
            ["test", "status_code", "type"],
            namespace=NAMESPACE,
            registry=self.registry,
        )
        self.queries_total = Counter(
            "queries_total",
            "Total number of attempted query requests.",
            ["test", "type"],
            namespace=NAMESPACE,
            registry=self.registry,
        )
        self.queries_failed_total = Counter(
            "queries_failed_total",
            "Total number of failed query requests.",
            ["test", "type"],
            namespace=NAMESPACE,
            registry=self.registry,
        )
        self.query_result_checks_total = Counter(
            "query_result_checks_total",
            "Total number of query results checked for correctness.",
            ["test", "type"],
            namespace=NAMESPACE,
            registry=self.registry,
        )
        self.query_result_checks_failed_total = Counter(
            "query_result_checks_failed_total",
            "Total number of query results failed when checking for correctness.",
            ["test", "type"],
            namespace=NAMESPACE,
            registry=self.registry,
        )

    def inc_write(self, type_label: str) -> None:
        self.writes_total.labels(test=self.test_name, type=type_label).inc()

    def inc_write_failed(self, type_label: str, status_code: int) -> None:
        self.writes_failed_total.labels(
            test=self.test_name, status_code=str(status_code), type=type_label
        ).inc()

    def inc_query(self, type_label: str) -> None:
        self.queries_total.labels(test=self.test_name, type=type_label).inc()

    def inc_query_failed(self, type_label: str) -> None:
        self.queries_failed_total.labels(test=self.test_name, type=type_label).inc()

    def inc_check(self, type_label: str) -> None:
        self.query_result_checks_total.labels(test=self.test_name, type=type_label).inc()

    def inc_check_failed(self, type_label: str) -> None:
        self.query_result_checks_failed_total.labels(
            test=self.test_name, type=type_label
        ).inc()


class RetryMetrics:
    """Histogram of how many times a client request was retried."""

    def __init__(self, registry: CollectorRegistry | None = None):
        self.registry = registry if registry is not None else CollectorRegistry()
        self.retries = Histogram(
            "client_request_retries",
            "Number of times a request is retried.",
            buckets=[0, 1, 2, 3, 4, 5],
            namespace="canary",
            registry=self.registry,
        )

    def observe(self, tries: int) -> None:
        self.retries.observe(float(tries))
