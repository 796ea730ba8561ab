"""Tests for configuration loading: defaults, TOML file and environment overrides."""

import pytest

from marketdata_mcp.config import (
    CacheConfig,
    FetchConfig,
    GovernorConfig,
    MetricsLogConfig,
    ServerConfig,
)

_ENV_VARS = [
    "MARKETDATA_MCP_CONFIG_FILE",
    "MARKETDATA_MCP_LOG_LEVEL",
    "MARKETDATA_MCP_STRUCTURED_LOGGING",
    "MARKETDATA_MCP_GOVERNOR_ENABLED",
    "DEDUCT_DATA",
    "MARKETDATA_MCP_TOTAL_CAPACITY",
    "MARKETDATA_MCP_EMERGENCY_FLOOR",
    "MARKETDATA_MCP_LOW_FLOOR",
    "MARKETDATA_MCP_SWITCH_THRESHOLD",
    "MARKETDATA_MCP_MIN_CONTENT_LEN",
    "MARKETDATA_MCP_CHARS_PER_UNIT",
    "MARKETDATA_MCP_PER_CALL_CAP",
    "BRIGHTDATA_API_TOKEN",
    "API_TOKEN",
    "BRIGHTDATA_BASE_URL",
    "WEB_UNLOCKER_ZONE",
    "BRIGHTDATA_PROXY_HOST",
    "BRIGHTDATA_PROXY_PORT",
    "BRIGHTDATA_PROXY_USERNAME",
    "BRIGHTDATA_PROXY_PASSWORD",
    "MARKETDATA_MCP_FETCH_METHOD",
    "REQUEST_TIMEOUT",
    "MAX_RETRIES",
    "MARKETDATA_MCP_CACHE_ENABLED",
    "MARKETDATA_MCP_CACHE_TTL",
    "MARKETDATA_MCP_METRICS_LOG_ENABLED",
    "MARKETDATA_MCP_METRICS_LOG_PATH",
]

SAMPLE_TOML = """
[logging]
level = "debug"
structured = false

[governor]
enabled = true
total_capacity = 2000
low_floor = 400

[fetch]
zone = "unlocker_custom"
method = "PROXY"
max_retries = 3

[cache]
enabled = false

[metrics_log]
enabled = true
storage_path = "~/calls.jsonl"
"""


@pytest.fixture
def clean_env(monkeypatch, tmp_path):
    """Run from an empty directory with no configuration variables set."""
    for name in _ENV_VARS:
        monkeypatch.delenv(name, raising=False)
    monkeypatch.chdir(tmp_path)
    return monkeypatch


@pytest.fixture
def toml_file(tmp_path):
    path = tmp_path / "custom.toml"
    path.write_text(SAMPLE_TOML)
    return path


class TestGovernorConfig:
    """Tests for GovernorConfig defaults and validation."""

    def test_defaults(self):
        config = GovernorConfig()
        assert config.enabled is False
        assert config.total_capacity == 4500
        assert (config.emergency_floor, config.low_floor) == (100, 300)
        assert config.switch_threshold == 500
        assert config.min_content_len == 10
        assert config.chars_per_unit == 3.5

    def test_negative_capacity(self):
        with pytest.raises(ValueError, match="total_capacity"):
            GovernorConfig(total_capacity=-1)

    def test_floors_ordered(self):
        """Test the emergency floor may not exceed the low floor."""
        with pytest.raises(ValueError, match="emergency_floor"):
            GovernorConfig(emergency_floor=400, low_floor=300)

    def test_chars_per_unit_positive(self):
        with pytest.raises(ValueError, match="chars_per_unit"):
            GovernorConfig(chars_per_unit=0)

    def test_from_toml_dict_partial(self):
        """Test missing keys keep their defaults."""
        config = GovernorConfig.from_toml_dict({"enabled": "yes", "per_call_cap": 80})
        assert config.enabled is True
        assert config.per_call_cap == 80
        assert config.total_capacity == 4500


class TestSectionConfigs:
    def test_fetch_proxy_url(self):
        config = FetchConfig(
            proxy_host="brd.example", proxy_port=33335, proxy_username="u", proxy_password="p"
        )
        assert config.proxy_configured
        assert config.proxy_url() == "http://u:p@brd.example:33335"

    def test_fetch_proxy_incomplete(self):
        assert not FetchConfig(proxy_host="brd.example").proxy_configured

    def test_cache_from_toml(self):
        assert CacheConfig.from_toml_dict({"ttl_seconds": 60}).ttl_seconds == 60

    def test_metrics_log_default_path(self):
        assert MetricsLogConfig().get_storage_path().name == "calls.jsonl"


class TestServerConfigLoading:
    """Tests for ServerConfig.from_env()."""

    def test_defaults_without_file(self, clean_env):
        config = ServerConfig.from_env()
        assert config.server_name == "marketdata-mcp"
        assert config.governor.enabled is False
        assert config.fetch.method == "direct"
        assert config.cache.enabled is True

    def test_toml_file(self, clean_env, toml_file):
        config = ServerConfig.from_env(str(toml_file))
        assert config.log_level == "DEBUG"
        assert config.structured_logging is False
        assert config.governor.enabled is True
        assert config.governor.total_capacity == 2000
        assert config.governor.low_floor == 400
        assert config.fetch.zone == "unlocker_custom"
        assert config.fetch.method == "proxy"
        assert config.fetch.max_retries == 3
        assert config.cache.enabled is False
        assert config.metrics_log.enabled is True

    def test_default_file_location(self, clean_env, tmp_path):
        """Test marketdata-mcp.toml in the working directory is picked up."""
        (tmp_path / "marketdata-mcp.toml").write_text("[governor]\ntotal_capacity = 1234\n")
        assert ServerConfig.from_env().governor.total_capacity == 1234

    def test_missing_file_keeps_defaults(self, clean_env, tmp_path):
        config = ServerConfig.from_env(str(tmp_path / "absent.toml"))
        assert config.governor.total_capacity == 4500

    def test_invalid_toml_keeps_defaults(self, clean_env, tmp_path):
        path = tmp_path / "broken.toml"
        path.write_text("[governor\n")
        assert ServerConfig.from_env(str(path)).governor.total_capacity == 4500

    def test_env_overrides_file(self, clean_env, toml_file):
        clean_env.setenv("MARKETDATA_MCP_TOTAL_CAPACITY", "3000")
        clean_env.setenv("MARKETDATA_MCP_GOVERNOR_ENABLED", "false")
        config = ServerConfig.from_env(str(toml_file))
        assert config.governor.total_capacity == 3000
        assert config.governor.enabled is False

    def test_legacy_toggle(self, clean_env):
        """Test DEDUCT_DATA enables the governor."""
        clean_env.setenv("DEDUCT_DATA", "true")
        assert ServerConfig.from_env().governor.enabled is True

    def test_new_toggle_wins_over_legacy(self, clean_env):
        clean_env.setenv("DEDUCT_DATA", "true")
        clean_env.setenv("MARKETDATA_MCP_GOVERNOR_ENABLED", "0")
        assert ServerConfig.from_env().governor.enabled is False

    def test_non_integer_ignored(self, clean_env):
        clean_env.setenv("MARKETDATA_MCP_PER_CALL_CAP", "lots")
        assert ServerConfig.from_env().governor.per_call_cap == 120

    def test_invalid_floors_rejected(self, clean_env):
        """Test env overrides are validated like constructor arguments."""
        clean_env.setenv("MARKETDATA_MCP_EMERGENCY_FLOOR", "900")
        with pytest.raises(ValueError, match="emergency_floor"):
            ServerConfig.from_env()

    def test_fetch_env(self, clean_env):
        clean_env.setenv("API_TOKEN", "legacy-token")
        clean_env.setenv("WEB_UNLOCKER_ZONE", "zone_x")
        clean_env.setenv("BRIGHTDATA_BASE_URL", "https://unlocker.example/")
        clean_env.setenv("REQUEST_TIMEOUT", "30")
        clean_env.setenv("MAX_RETRIES", "2")
        config = ServerConfig.from_env()
        assert config.fetch.api_token == "legacy-token"
        assert config.fetch.zone == "zone_x"
        assert config.fetch.base_url == "https://unlocker.example"
        assert config.fetch.timeout == 30.0
        assert config.fetch.max_retries == 2

    def test_primary_token_wins(self, clean_env):
        clean_env.setenv("API_TOKEN", "legacy-token")
        clean_env.setenv("BRIGHTDATA_API_TOKEN", "primary-token")
        assert ServerConfig.from_env().fetch.api_token == "primary-token"


class TestToDict:
    def test_secrets_redacted(self):
        config = ServerConfig()
        config.fetch.api_token = "secret"
        config.fetch.proxy_password = "hunter2"
        data = config.to_dict()
        assert data["fetch"]["api_token"] == "***"
        assert data["fetch"]["proxy_password"] == "***"

    def test_secrets_shown(self):
        config = ServerConfig()
        config.fetch.api_token = "secret"
        assert config.to_dict(redact_secrets=False)["fetch"]["api_token"] == "secret"

    def test_empty_secret_not_masked(self):
        assert ServerConfig().to_dict()["fetch"]["api_token"] == ""
