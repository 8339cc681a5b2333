"""Tests for canary.lib.config and canary.lib.env modules."""

import os
from datetime import timedelta
from pathlib import Path
from unittest.mock import patch

import pytest
from pydantic import ValidationError

from canary.lib.config import (
    CanaryConfig,
    ClientConfig,
    WriteReadSeriesTestConfig,
    config_from_dict,
    load_config,
    parse_duration,
)
from canary.lib.env import expand_config_values, expand_env_vars
from canary.lib.errors import ConfigurationError


def valid_config(**overrides):
    config = CanaryConfig(
        client=ClientConfig(
            write_base_endpoint="http://localhost:8080",
            read_base_endpoint="http://localhost:8080/prometheus",
        ),
        write_read_series=WriteReadSeriesTestConfig(with_floats=True),
    )
    for key, value in overrides.items():
        setattr(config, key, value)
    return config


class TestParseDuration:
    """Tests for Go-style duration parsing."""

    @pytest.mark.parametrize(
        "text, expected",
        [
            ("20s", timedelta(seconds=20)),
            ("5m", timedelta(minutes=5)),
            ("168h", timedelta(days=7)),
            ("7d", timedelta(days=7)),
            ("1h30m", timedelta(hours=1, minutes=30)),
            ("500ms", timedelta(milliseconds=500)),
            ("1.5h", timedelta(minutes=90)),
            ("0", timedelta(0)),
        ],
    )
    def test_strings(self, text, expected):
        assert parse_duration(text) == expected

    def test_numbers_are_seconds(self):
        assert parse_duration(30) == timedelta(seconds=30)
        assert parse_duration(2.5) == timedelta(seconds=2.5)

    def test_timedelta_passthrough(self):
        assert parse_duration(timedelta(minutes=1)) == timedelta(minutes=1)

    @pytest.mark.parametrize("text", ["", "abc", "5", "5x", "m5", "1h 30m", True])
    def test_invalid(self, text):
        with pytest.raises(ValueError):
            parse_duration(text)


class TestCheck:
    """Tests for CanaryConfig.check()."""

    def test_valid(self):
        valid_config().check()

    def test_missing_endpoints(self):
        with pytest.raises(ConfigurationError) as exc_info:
            CanaryConfig().check()

        issues = exc_info.value.issues
        assert "client.write_base_endpoint is required" in issues
        assert "client.read_base_endpoint is required" in issues

    def test_rejects_non_http_endpoint(self):
        config = valid_config()
        config.client.write_base_endpoint = "localhost:8080"
        with pytest.raises(ConfigurationError, match="http"):
            config.check()

    def test_rejects_conflicting_auth(self):
        config = valid_config()
        config.client.bearer_token = "token"
        config.client.basic_auth_user = "user"
        config.client.basic_auth_password = "pass"
        with pytest.raises(ConfigurationError, match="auth"):
            config.check()

    def test_warns_when_nothing_enabled(self, caplog):
        config = valid_config()
        config.write_read_series.with_floats = False
        config.check()
        assert "Neither float nor histogram" in caplog.text


class TestFieldValidation:
    """Types and ranges are enforced on construction and assignment."""

    def test_collects_all_issues(self):
        with pytest.raises(ConfigurationError) as exc_info:
            config_from_dict({"write_read_series": {"num_series": 0}, "metrics_port": 70000})

        issues = exc_info.value.issues
        assert len(issues) == 2
        assert any(issue.startswith("write_read_series.num_series") for issue in issues)
        assert any(issue.startswith("metrics_port") for issue in issues)

    def test_numeric_strings_are_coerced(self):
        config = config_from_dict(
            {"write_read_series": {"num_series": "100"}, "metrics_port": "0"}
        )
        assert config.write_read_series.num_series == 100
        assert config.metrics_port == 0

    @pytest.mark.parametrize(
        "text, expected",
        [("false", False), ("true", True), ("0", False), ("1", True), ("no", False)],
    )
    def test_boolean_strings_are_coerced(self, text, expected):
        config = config_from_dict({"write_read_series": {"with_histograms": text}})
        assert config.write_read_series.with_histograms is expected

    @pytest.mark.parametrize(
        "section, key, value",
        [
            ("write_read_series", "num_series", "many"),
            ("write_read_series", "with_floats", "sometimes"),
            ("write_read_series", "num_series", [1, 2]),
            ("client", "write_batch_size", 1.5),
            ("client", "tenant_id", {"name": "a"}),
        ],
    )
    def test_wrong_types(self, section, key, value):
        with pytest.raises(ConfigurationError) as exc_info:
            config_from_dict({section: {key: value}})
        assert exc_info.value.field == f"{section}.{key}"

    def test_section_must_be_mapping(self):
        with pytest.raises(ConfigurationError) as exc_info:
            config_from_dict({"client": "http://mimir:8080"})
        assert exc_info.value.field == "client"

    def test_log_level_is_normalized(self):
        assert config_from_dict({"log_level": "debug"}).log_level == "DEBUG"
        with pytest.raises(ConfigurationError, match="log_level"):
            config_from_dict({"log_level": "chatty"})

    def test_assignment_is_validated(self):
        config = CanaryConfig()
        config.write_read_series.max_query_age = "24h"
        assert config.write_read_series.max_query_age == timedelta(hours=24)

        with pytest.raises(ValidationError):
            config.write_read_series.num_series = -1
        with pytest.raises(ValidationError):
            config.run_interval = "0s"


class TestConfigFromDict:
    def test_sections_and_durations(self):
        config = config_from_dict(
            {
                "client": {
                    "write_base_endpoint": "http://w",
                    "read_base_endpoint": "http://r",
                    "write_timeout": "10s",
                },
                "write_read_series": {"num_series": 100, "max_query_age": "24h"},
                "run_interval": "1m",
                "smoke_test": True,
            }
        )

        assert config.client.write_timeout == timedelta(seconds=10)
        assert config.write_read_series.num_series == 100
        assert config.write_read_series.max_query_age == timedelta(hours=24)
        assert config.run_interval == timedelta(minutes=1)
        assert config.smoke_test is True

    def test_defaults(self):
        config = config_from_dict({})
        assert config.write_read_series.num_series == 10000
        assert config.write_read_series.max_query_age == timedelta(days=7)
        assert config.client.write_batch_size == 1000
        assert config.client.request_max_retries == 5
        assert config.run_interval == timedelta(minutes=5)

    def test_unknown_keys(self):
        with pytest.raises(ConfigurationError, match="num_seriess"):
            config_from_dict({"write_read_series": {"num_seriess": 1}})

    def test_invalid_duration(self):
        with pytest.raises(ConfigurationError) as exc_info:
            config_from_dict({"run_interval": "soon"})
        assert exc_info.value.field == "run_interval"
        assert "invalid duration" in str(exc_info.value)


class TestLoadConfig:
    """Tests for YAML loading with env expansion."""

    def test_load_yaml_with_env(self, tmp_path):
        path = tmp_path / "canary.yaml"
        path.write_text(
            "client:\n"
            "  write_base_endpoint: ${CANARY_TEST_ENDPOINT}\n"
            "  read_base_endpoint: ${CANARY_TEST_ENDPOINT}/prometheus\n"
            "  tenant_id: team-a\n"
            "write_read_series:\n"
            "  num_series: 50\n"
            "  with_histograms: true\n"
            "metrics_port: 0\n"
        )

        with patch.dict(os.environ, {"CANARY_TEST_ENDPOINT": "http://mimir:8080"}):
            config = load_config(path, env_file=tmp_path / "missing.env")

        assert config.client.write_base_endpoint == "http://mimir:8080"
        assert config.client.read_base_endpoint == "http://mimir:8080/prometheus"
        assert config.client.tenant_id == "team-a"
        assert config.write_read_series.num_series == 50
        assert config.write_read_series.with_histograms is True
        assert config.metrics_port == 0

    def test_env_file_is_loaded(self, tmp_path):
        env_file = tmp_path / ".env"
        env_file.write_text("CANARY_TEST_TENANT=from-dotenv\n")
        path = tmp_path / "canary.yaml"
        path.write_text("client:\n  tenant_id: ${CANARY_TEST_TENANT}\n")

        with patch.dict(os.environ, {}, clear=False):
            os.environ.pop("CANARY_TEST_TENANT", None)
            config = load_config(path, env_file=env_file)

        assert config.client.tenant_id == "from-dotenv"

    def test_env_values_are_coerced(self, tmp_path):
        path = tmp_path / "canary.yaml"
        path.write_text(
            "client:\n"
            "  write_batch_size: ${CANARY_TEST_BATCH}\n"
            "write_read_series:\n"
            "  num_series: ${CANARY_TEST_NUM_SERIES}\n"
            "  with_floats: ${CANARY_TEST_FLOATS}\n"
            "  with_histograms: ${CANARY_TEST_HISTOGRAMS}\n"
            "  max_query_age: ${CANARY_TEST_MAX_AGE}\n"
        )
        env = {
            "CANARY_TEST_BATCH": "200",
            "CANARY_TEST_NUM_SERIES": "100",
            "CANARY_TEST_FLOATS": "true",
            "CANARY_TEST_HISTOGRAMS": "false",
            "CANARY_TEST_MAX_AGE": "24h",
        }

        with patch.dict(os.environ, env):
            config = load_config(path, env_file=tmp_path / "missing.env")

        assert config.client.write_batch_size == 200
        assert config.write_read_series.num_series == 100
        assert config.write_read_series.with_floats is True
        assert config.write_read_series.with_histograms is False
        assert config.write_read_series.max_query_age == timedelta(hours=24)

    def test_invalid_env_value(self, tmp_path):
        path = tmp_path / "canary.yaml"
        path.write_text("write_read_series:\n  num_series: ${CANARY_TEST_NUM_SERIES}\n")

        with patch.dict(os.environ, {"CANARY_TEST_NUM_SERIES": "lots"}):
            with pytest.raises(ConfigurationError) as exc_info:
                load_config(path, env_file=tmp_path / "missing.env")
        assert exc_info.value.field == "write_read_series.num_series"

    def test_unset_env_var_in_typed_field(self, tmp_path):
        os.environ.pop("CANARY_TEST_UNSET", None)
        path = tmp_path / "canary.yaml"
        path.write_text("write_read_series:\n  with_histograms: ${CANARY_TEST_UNSET}\n")

        with pytest.raises(ConfigurationError, match="with_histograms"):
            load_config(path, env_file=tmp_path / "missing.env")

    def test_missing_file(self, tmp_path):
        with pytest.raises(ConfigurationError, match="not found"):
            load_config(tmp_path / "missing.yaml", env_file=tmp_path / "missing.env")

    def test_invalid_yaml(self, tmp_path):
        path = tmp_path / "bad.yaml"
        path.write_text("client: [unclosed\n")
        with pytest.raises(ConfigurationError, match="Invalid YAML"):
            load_config(path, env_file=tmp_path / "missing.env")

    def test_no_path_returns_defaults(self, tmp_path):
        assert load_config(None, env_file=tmp_path / "missing.env") == CanaryConfig()


class TestEnvExpansion:
    def test_expand_env_vars(self):
        with patch.dict(os.environ, {"CANARY_X": "1"}):
            assert expand_env_vars("a-${CANARY_X}-$CANARY_X") == "a-1-1"

    def test_missing_vars_left_alone(self):
        os.environ.pop("CANARY_MISSING", None)
        assert expand_env_vars("${CANARY_MISSING}") == "${CANARY_MISSING}"

    def test_strict_missing_raises(self):
        os.environ.pop("CANARY_MISSING", None)
        with pytest.raises(KeyError):
            expand_env_vars("${CANARY_MISSING}", strict=True)

    def test_expand_nested(self):
        with patch.dict(os.environ, {"CANARY_X": "v"}):
            assert expand_config_values({"a": ["${CANARY_X}", 1], "b": {"c": "$CANARY_X"}}) == {
                "a": ["v", 1],
                "b": {"c": "v"},
            }


class TestExampleConfig:
    def test_example_config_is_valid(self, tmp_path):
        path = Path(__file__).resolve().parents[2] / "docs" / "examples" / "canary.yaml"
        env = {
            "CANARY_WRITE_ENDPOINT": "http://mimir:8080",
            "CANARY_READ_ENDPOINT": "http://mimir:8080/prometheus",
        }
        with patch.dict(os.environ, env):
            config = load_config(path, env_file=tmp_path / "missing.env")

        config.check()
        assert config.write_read_series.max_query_age == timedelta(days=7)
        assert config.write_read_series.with_histograms is True
