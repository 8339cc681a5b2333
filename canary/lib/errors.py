"""Structured exception hierarchy for the canary.

Every failure the write/read test can report is a CanaryError carrying
enough context (metric, offending timestamp, expected vs. actual value)
to be logged and counted without re-deriving anything.
"""

from __future__ import annotations

from typing import Any, Dict, Iterable, Iterator, List

__all__ = [
    "CanaryError",
    "ConfigurationError",
    "WriteError",
    "QueryError",
    "APIError",
    "QueryShapeError",
    "VerificationError",
    "SampleValueMismatchError",
    "SampleGapError",
    "NoQueryableRangeError",
    "MultiError",
    "Cancelled",
]


class Cancelled(Exception):
    """Raised when the run context has been cancelled.

    Deliberately not a CanaryError: handlers catching CanaryError must
    never swallow a cancellation.
    """

    def __init__(self, message: str = "context canceled") -> None:
        super().__init__(message)


class CanaryError(Exception):
    """Base exception for all canary errors."""

    def __init__(
        self,
        message: str,
        *,
        metric_name: str | None = None,
        details: Dict[str, Any] | None = None,
        suggestion: str | None = None,
    ) -> None:
        self.message = message
        self.metric_name = metric_name
        self.details = details or {}
        self.suggestion = suggestion
        super().__init__(self._render())

    def _render(self) -> str:
        parts = [self.message]

        if self.metric_name:
            parts.insert(0, f"[{self.metric_name}]")

        if self.suggestion:
            parts.append(f"(suggestion: {self.suggestion})")

        return " ".join(parts)

    def for_metric(self, metric_name: str) -> "CanaryError":
        """Attach the metric this error concerns and return self."""
        self.metric_name = metric_name
        self.args = (self._render(),)
        return self

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for structured logging."""
        return {
            "error_type": self.__class__.__name__,
            "message": self.message,
            "metric_name": self.metric_name,
            "details": self.details,
            "suggestion": self.suggestion,
        }


class ConfigurationError(CanaryError):
    """Invalid or incomplete configuration."""

    def __init__(
        self,
        message: str,
        *,
        field: str | None = None,
        value: Any = None,
        issues: List[str] | None = None,
        **kwargs: Any,
    ) -> None:
        self.field = field
        self.value = value
        self.issues = issues or []

        details = kwargs.pop("details", {})
        if field:
            details["field"] = field
        if value is not None:
            details["value"] = str(value)
        if issues:
            details["issue_count"] = len(issues)
            issue_lines = "\n".join(f"  - {issue}" for issue in issues)
            message = f"{message}\n{issue_lines}"

        super().__init__(message, details=details, **kwargs)


class WriteError(CanaryError):
    """A remote write did not succeed.

    ``status_code`` is the HTTP status of the failed request, or 0 when
    the request never got a response (network error, timeout).
    """

    def __init__(
        self,
        message: str,
        *,
        status_code: int = 0,
        cause: BaseException | None = None,
        **kwargs: Any,
    ) -> None:
        self.status_code = status_code
        self.cause = cause

        details = kwargs.pop("details", {})
        details["status_code"] = status_code
        if cause is not None:
            details["cause"] = str(cause)
            details["cause_type"] = type(cause).__name__
            message = f"{message}: {cause}"

        super().__init__(message, details=details, **kwargs)


class QueryError(CanaryError):
    """A query could not be executed.

    ``status_code`` is None when no HTTP response was received.
    """

    def __init__(
        self,
        message: str,
        *,
        status_code: int | None = None,
        cause: BaseException | None = None,
        **kwargs: Any,
    ) -> None:
        self.status_code = status_code
        self.cause = cause

        details = kwargs.pop("details", {})
        if status_code is not None:
            details["status_code"] = status_code
        if cause is not None:
            details["cause"] = str(cause)
            details["cause_type"] = type(cause).__name__
            message = f"{message}: {cause}"

        super().__init__(message, details=details, **kwargs)


class APIError(QueryError):
    """The query API rejected the request (client-side error, never retried)."""

    def __init__(
        self,
        message: str,
        *,
        error_type: str = "",
        status_code: int | None = None,
        **kwargs: Any,
    ) -> None:
        self.error_type = error_type
        details = kwargs.pop("details", {})
        if error_type:
            details["error_type"] = error_type
            message = f"{error_type}: {message}"
        super().__init__(message, status_code=status_code, details=details, **kwargs)


class QueryShapeError(CanaryError):
    """The query result cannot be verified (wrong series count, mixed types)."""


class VerificationError(CanaryError):
    """A query result does not match the expected synthetic data."""

    def __init__(
        self,
        message: str,
        *,
        timestamp: int,
        index: int,
        **kwargs: Any,
    ) -> None:
        self.timestamp = timestamp
        self.index = index

        details = kwargs.pop("details", {})
        details.update({"timestamp": timestamp, "index": index})
        super().__init__(message, details=details, **kwargs)


class SampleValueMismatchError(VerificationError):
    """A returned value differs from the expected sum."""

    def __init__(
        self,
        message: str,
        *,
        expected: float,
        actual: float,
        **kwargs: Any,
    ) -> None:
        self.expected = expected
        self.actual = actual

        details = kwargs.pop("details", {})
        details.update({"expected": expected, "actual": actual})
        super().__init__(message, details=details, **kwargs)


class SampleGapError(VerificationError):
    """Two adjacent returned points are not exactly one step apart."""

    def __init__(
        self,
        message: str,
        *,
        expected_timestamp: int,
        next_timestamp: int,
        **kwargs: Any,
    ) -> None:
        self.expected_timestamp = expected_timestamp
        self.next_timestamp = next_timestamp

        details = kwargs.pop("details", {})
        details.update(
            {"expected_timestamp": expected_timestamp, "next_timestamp": next_timestamp}
        )
        super().__init__(message, details=details, **kwargs)


class NoQueryableRangeError(CanaryError):
    """There is no verified time range to run queries against."""


class MultiError(CanaryError):
    """Accumulates independent failures of one test run.

    Example:
        errs = MultiError()
        errs.add(None)            # no-op
        errs.add(some_error)
        errs.raise_if_any()
    """

    def __init__(self, errors: Iterable[BaseException] | None = None) -> None:
        self.errors: List[BaseException] = []
        for err in errors or ():
            self.add(err)
        super().__init__(self._summary())

    def _summary(self) -> str:
        if not self.errors:
            return "no errors"
        if len(self.errors) == 1:
            return str(self.errors[0])
        joined = "; ".join(str(err) for err in self.errors)
        return f"{len(self.errors)} errors: {joined}"

    def add(self, err: BaseException | None) -> None:
        if err is None:
            return
        if isinstance(err, MultiError):
            self.errors.extend(err.errors)
        else:
            self.errors.append(err)
        self.message = self._summary()
        self.args = (self.message,)

    def extend(self, errors: Iterable[BaseException | None]) -> None:
        for err in errors:
            self.add(err)

    def err(self) -> BaseException | None:
        """Return None, the single error, or this MultiError."""
        if not self.errors:
            return None
        if len(self.errors) == 1:
            return self.errors[0]
        return self

    def raise_if_any(self) -> None:
        err = self.err()
        if err is not None:
            raise err

    def __len__(self) -> int:
        return len(self.errors)

    def __iter__(self) -> Iterator[BaseException]:
        return iter(self.errors)

    def __bool__(self) -> bool:
        return bool(self.errors)
