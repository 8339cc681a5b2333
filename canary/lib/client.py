"""Client for the backend under test.

``SeriesClient`` is the capability the write/read test depends on:
remote-write a batch of series, and run instant and range queries. The
``HttpClient`` implementation talks Prometheus remote write (protobuf +
snappy) and the Prometheus HTTP query API (JSON) using requests.

Example:
    client = HttpClient(config.client, retry_metrics=RetryMetrics(registry))
    status = client.write_series(ctx, series)
    matrix = client.query_range(ctx, "sum(up)", start, end, step)
"""

from __future__ import annotations

import logging
from datetime import datetime, timedelta
from typing import Any, Callable, Dict, List, Protocol, Sequence, TypeVar

import requests

from canary.lib.auth import build_auth_headers
from canary.lib.config import ClientConfig
from canary.lib.context import RunContext
from canary.lib.errors import APIError, QueryError, QueryShapeError, WriteError
from canary.lib.metrics import RetryMetrics
from canary.lib.model import Matrix, SampleStream, TimeSeries, Vector, VectorSample
from canary.lib.remote_write import CONTENT_TYPE, REMOTE_WRITE_VERSION, encode_write_request
from canary.lib.resilience import RetryMiddleware
from canary.lib.timeutil import to_millis

logger = logging.getLogger(__name__)

__all__ = ["SeriesClient", "HttpClient"]

USER_AGENT = "series-canary"

T = TypeVar("T")


class SeriesClient(Protocol):
    def write_series(self, ctx: RunContext, series: Sequence[TimeSeries]) -> int:
        """Remote-write ``series``; return the HTTP status code.

        Raises:
            WriteError: On a network error or a non-2xx response
        """
        ...

    def query(
        self,
        ctx: RunContext,
        query: str,
        ts: datetime,
        *,
        results_cache_enabled: bool = True,
    ) -> Vector:
        ...

    def query_range(
        self,
        ctx: RunContext,
        query: str,
        start: datetime,
        end: datetime,
        step: timedelta,
        *,
        results_cache_enabled: bool = True,
    ) -> Matrix:
        ...


def _format_time(ts: datetime) -> str:
    ms = to_millis(ts)
    return f"{ms // 1000}.{ms % 1000:03d}"


def _format_step(step: timedelta) -> str:
    return f"{step.total_seconds():g}"


class HttpClient:
    """Remote-write and query client over HTTP."""

    def __init__(
        self,
        config: ClientConfig,
        *,
        session: requests.Session | None = None,
        retry_metrics: RetryMetrics | None = None,
    ) -> None:
        self.config = config
        self.session = session or requests.Session()
        self.retry = RetryMiddleware(config.request_max_retries, retry_metrics)

        headers, auth_tuple = build_auth_headers(config.auth())
        self.session.headers.update(headers)
        self.session.headers["User-Agent"] = USER_AGENT
        if auth_tuple is not None:
            self.session.auth = auth_tuple

        self.write_url = config.write_base_endpoint.rstrip("/") + "/api/v1/push"
        self.query_url = config.read_base_endpoint.rstrip("/") + "/api/v1/query"
        self.query_range_url = config.read_base_endpoint.rstrip("/") + "/api/v1/query_range"

    # Writes

    def write_series(self, ctx: RunContext, series: Sequence[TimeSeries]) -> int:
        """Remote-write ``series`` in batches of at most ``write_batch_size``.

        The first failing batch stops the write.

        Returns:
            HTTP status code of the last request (2xx)

        Raises:
            WriteError: On a network error (status_code 0) or non-2xx status
            Cancelled: If ctx is cancelled between batches
        """
        batch_size = self.config.write_batch_size
        status_code = 200
        for offset in range(0, len(series), batch_size):
            ctx.check()
            status_code = self._send_batch(series[offset : offset + batch_size])
        return status_code

    def _send_batch(self, batch: Sequence[TimeSeries]) -> int:
        body = encode_write_request(batch)
        headers = {
            "Content-Encoding": "snappy",
            "Content-Type": CONTENT_TYPE,
            "X-Prometheus-Remote-Write-Version": REMOTE_WRITE_VERSION,
        }
        try:
            response = self.session.post(
                self.write_url,
                data=body,
                headers=headers,
                timeout=self.config.write_timeout.total_seconds(),
            )
        except requests.RequestException as e:
            raise WriteError("failed to remote write series", cause=e) from e

        if response.status_code // 100 != 2:
            raise WriteError(
                f"remote write series failed with status code {response.status_code}: "
                f"{response.text[:256].strip()}",
                status_code=response.status_code,
            )
        return response.status_code

    # Queries

    def query(
        self,
        ctx: RunContext,
        query: str,
        ts: datetime,
        *,
        results_cache_enabled: bool = True,
    ) -> Vector:
        params = {"query": query, "time": _format_time(ts)}
        data = self.retry.do(
            ctx, lambda: self._get(self.query_url, params, results_cache_enabled)
        )
        return _parse_entries(self._result(data, "vector"), VectorSample.from_json)

    def query_range(
        self,
        ctx: RunContext,
        query: str,
        start: datetime,
        end: datetime,
        step: timedelta,
        *,
        results_cache_enabled: bool = True,
    ) -> Matrix:
        params = {
            "query": query,
            "start": _format_time(start),
            "end": _format_time(end),
            "step": _format_step(step),
        }
        data = self.retry.do(
            ctx, lambda: self._get(self.query_range_url, params, results_cache_enabled)
        )
        return _parse_entries(self._result(data, "matrix"), SampleStream.from_json)

    def _get(
        self, url: str, params: Dict[str, str], results_cache_enabled: bool
    ) -> Dict[str, Any]:
        headers = {"Accept": "application/json"}
        if not results_cache_enabled:
            headers["Cache-Control"] = "no-store"

        try:
            response = self.session.get(
                url,
                params=params,
                headers=headers,
                timeout=self.config.read_timeout.total_seconds(),
            )
        except requests.RequestException as e:
            raise QueryError("query request failed", cause=e) from e

        try:
            payload = response.json()
        except ValueError:
            payload = None

        if isinstance(payload, dict) and payload.get("status") == "error":
            error_type = str(payload.get("errorType", ""))
            message = str(payload.get("error", ""))
            if response.status_code // 100 == 5:
                raise QueryError(
                    f"{error_type}: {message}", status_code=response.status_code
                )
            raise APIError(message, error_type=error_type, status_code=response.status_code)

        if response.status_code // 100 == 4:
            raise APIError(
                response.text[:256].strip() or response.reason or "client error",
                status_code=response.status_code,
            )
        if response.status_code // 100 != 2:
            raise QueryError(
                f"query failed with status code {response.status_code}",
                status_code=response.status_code,
            )
        if not isinstance(payload, dict):
            raise QueryError(
                "query response is not a JSON object", status_code=response.status_code
            )
        return payload

    @staticmethod
    def _result(payload: Dict[str, Any], expected_type: str) -> List[Dict[str, Any]]:
        data = payload.get("data") or {}
        if not isinstance(data, dict):
            raise QueryShapeError("query response data is not a JSON object")
        result_type = data.get("resultType")
        if result_type != expected_type:
            raise QueryShapeError(
                f"expected a {expected_type} query result but got {result_type!r}"
            )
        result = data.get("result") or []
        if not isinstance(result, list):
            raise QueryShapeError(f"{expected_type} query result is not a list")
        return result


def _parse_entries(entries: List[Any], parse: Callable[[Any], T]) -> List[T]:
    """Parse result entries, reporting malformed ones as QueryShapeError."""
    try:
        return [parse(entry) for entry in entries]
    except (AttributeError, KeyError, TypeError, ValueError) as e:
        raise QueryShapeError(f"malformed query result: {e!r}") from e
