"""Canary configuration.

Configuration is a small tree of pydantic models, loadable from YAML:

    client:
      write_base_endpoint: http://mimir:8080
      read_base_endpoint: http://mimir:8080/prometheus
      tenant_id: ${CANARY_TENANT}
      write_batch_size: 1000
    write_read_series:
      num_series: 10000
      max_query_age: 168h
      with_floats: true
      with_histograms: true
    run_interval: 5m
    metrics_port: 9900

Durations accept Go-style strings ("500ms", "20s", "5m", "1h30m", "7d")
or plain numbers of seconds. Every ``${VAR}`` is expanded from the
environment after loading an optional .env file, so values arrive as
strings and are coerced to each field's type ("100" -> 100,
"false" -> False). Assignments are validated too, which covers values
applied from command-line flags.
"""

from __future__ import annotations

import logging
import re
from datetime import timedelta
from pathlib import Path
from typing import Any, Dict, List

import yaml
from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from canary.lib.auth import AuthConfig
from canary.lib.env import expand_config_values, load_env_file
from canary.lib.errors import ConfigurationError

logger = logging.getLogger(__name__)

__all__ = [
    "WriteReadSeriesTestConfig",
    "ClientConfig",
    "CanaryConfig",
    "load_config",
    "config_from_dict",
    "configuration_error",
    "parse_duration",
]

_DURATION_PART = re.compile(r"(\d+(?:\.\d*)?|\.\d+)(ms|us|µs|s|m|h|d|w)")

_DURATION_UNITS = {
    "us": timedelta(microseconds=1),
    "µs": timedelta(microseconds=1),
    "ms": timedelta(milliseconds=1),
    "s": timedelta(seconds=1),
    "m": timedelta(minutes=1),
    "h": timedelta(hours=1),
    "d": timedelta(days=1),
    "w": timedelta(weeks=1),
}

DurationLike = str | int | float | timedelta

_LOG_LEVELS = ["DEBUG", "INFO", "WARNING", "ERROR"]


def parse_duration(value: DurationLike) -> timedelta:
    """Parse a duration.

    Raises:
        ValueError: If the value is not a valid duration
    """
    if isinstance(value, timedelta):
        return value
    if isinstance(value, bool):
        raise ValueError(f"invalid duration: {value!r}")
    if isinstance(value, (int, float)):
        return timedelta(seconds=value)

    text = str(value).strip()
    if text == "0":
        return timedelta(0)

    pos = 0
    total = timedelta(0)
    for match in _DURATION_PART.finditer(text):
        if match.start() != pos:
            break
        total += float(match.group(1)) * _DURATION_UNITS[match.group(2)]
        pos = match.end()

    if pos == 0 or pos != len(text):
        raise ValueError(f"invalid duration: {value!r}")
    return total


def _positive_duration(value: Any) -> timedelta:
    duration = parse_duration(value)
    if duration <= timedelta(0):
        raise ValueError(f"duration must be positive, got {value!r}")
    return duration


class WriteReadSeriesTestConfig(BaseModel):
    """Settings of the write-read series test."""

    model_config = ConfigDict(extra="forbid", validate_assignment=True)

    num_series: int = Field(default=10000, gt=0, description="Number of series used for the test")
    max_query_age: timedelta = Field(
        default=timedelta(days=7), description="How far back in the past series can be queried"
    )
    with_floats: bool = Field(default=False, description="Include float sample series")
    with_histograms: bool = Field(default=False, description="Include native histogram series")

    @field_validator("max_query_age", mode="before")
    @classmethod
    def validate_max_query_age(cls, v: Any) -> timedelta:
        return _positive_duration(v)


class ClientConfig(BaseModel):
    """Endpoints, credentials and request settings of the backend client."""

    model_config = ConfigDict(extra="forbid", validate_assignment=True)

    write_base_endpoint: str = Field(default="", description="Base URL for remote writes")
    read_base_endpoint: str = Field(default="", description="Base URL for queries")
    tenant_id: str = Field(default="anonymous", description="Sent as X-Scope-OrgID")
    basic_auth_user: str | None = None
    basic_auth_password: str | None = None
    bearer_token: str | None = None
    write_timeout: timedelta = timedelta(seconds=5)
    write_batch_size: int = Field(default=1000, gt=0, description="Max series per write request")
    read_timeout: timedelta = timedelta(seconds=60)
    request_max_retries: int = Field(default=5, gt=0, description="Attempts per query")

    @field_validator("write_timeout", "read_timeout", mode="before")
    @classmethod
    def validate_timeouts(cls, v: Any) -> timedelta:
        return _positive_duration(v)

    def validate_endpoints(self) -> List[str]:
        """Check the settings that may come from flags after loading."""
        issues: List[str] = []
        for name in ("write_base_endpoint", "read_base_endpoint"):
            endpoint = getattr(self, name)
            if not endpoint:
                issues.append(f"client.{name} is required")
            elif not endpoint.startswith(("http://", "https://")):
                issues.append(f"client.{name} must be an http(s) URL, got '{endpoint}'")
        try:
            self.auth()
        except ValueError as e:
            issues.append(f"client auth: {e}")
        return issues

    def auth(self) -> AuthConfig:
        return AuthConfig(
            tenant_id=self.tenant_id,
            basic_auth_user=self.basic_auth_user,
            basic_auth_password=self.basic_auth_password,
            bearer_token=self.bearer_token,
        )


class CanaryConfig(BaseModel):
    """Root of the canary configuration."""

    model_config = ConfigDict(extra="forbid", validate_assignment=True)

    client: ClientConfig = Field(default_factory=ClientConfig)
    write_read_series: WriteReadSeriesTestConfig = Field(
        default_factory=WriteReadSeriesTestConfig
    )
    run_interval: timedelta = timedelta(minutes=5)
    smoke_test: bool = False
    metrics_port: int = Field(default=9900, ge=0, le=65535, description="0 disables the server")
    log_level: str = "INFO"
    log_json: bool = False
    log_file: str | None = None

    @field_validator("run_interval", mode="before")
    @classmethod
    def validate_run_interval(cls, v: Any) -> timedelta:
        return _positive_duration(v)

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        """Validate log level is a known value."""
        if v.upper() not in _LOG_LEVELS:
            raise ValueError(f"log_level must be one of: {_LOG_LEVELS}")
        return v.upper()

    def check(self) -> None:
        """Check the settings every run needs, once flags are applied.

        Field types and ranges are enforced on construction and
        assignment; this adds the endpoint and credential checks.

        Raises:
            ConfigurationError: Listing every problem found
        """
        issues = self.client.validate_endpoints()
        if issues:
            raise ConfigurationError("Invalid canary configuration", issues=issues)

        wrs = self.write_read_series
        if not wrs.with_floats and not wrs.with_histograms:
            logger.warning(
                "Neither float nor histogram series are enabled: the write-read series test "
                "will not write or query anything"
            )


def configuration_error(exc: ValidationError, message: str) -> ConfigurationError:
    """Turn a pydantic ValidationError into a ConfigurationError."""
    issues = []
    for err in exc.errors():
        loc = ".".join(str(part) for part in err["loc"])
        issues.append(f"{loc}: {err['msg']}" if loc else err["msg"])
    first = exc.errors()[0] if exc.errors() else {}
    field = ".".join(str(part) for part in first.get("loc", ())) or None
    return ConfigurationError(message, field=field, value=first.get("input"), issues=issues)


def config_from_dict(data: Dict[str, Any] | None) -> CanaryConfig:
    """Build a CanaryConfig from a parsed (and env-expanded) mapping.

    Raises:
        ConfigurationError: If a key is unknown or a value has the wrong type
    """
    try:
        return CanaryConfig.model_validate(data or {})
    except ValidationError as e:
        raise configuration_error(e, "Invalid canary configuration") from e


def load_config(
    path: str | Path | None = None,
    *,
    env_file: str | Path | None = None,
) -> CanaryConfig:
    """Load configuration from a YAML file.

    Without a path, returns the defaults (to be completed by CLI flags).
    Endpoints and credentials are not checked; call ``check()`` once
    overrides are applied.

    Raises:
        ConfigurationError: If the file is missing, unparsable, has
            unknown keys or values of the wrong type
    """
    load_env_file(env_file)

    if path is None:
        return CanaryConfig()

    config_path = Path(path)
    if not config_path.exists():
        raise ConfigurationError(f"Config file not found: {config_path}", field="config")

    try:
        with open(config_path, encoding="utf-8") as f:
            raw = yaml.safe_load(f)
    except yaml.YAMLError as e:
        raise ConfigurationError(f"Invalid YAML in {config_path}: {e}", field="config") from e

    if raw is not None and not isinstance(raw, dict):
        raise ConfigurationError(
            f"Config file {config_path} must contain a mapping", field="config"
        )

    logger.debug("Loaded canary config from %s", config_path)
    return config_from_dict(expand_config_values(raw or {}))
