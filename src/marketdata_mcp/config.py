"""
Server configuration for marketdata-mcp.

Supports configuration via:
1. Environment variables (highest priority)
2. TOML config file (marketdata-mcp.toml)
3. Default values (lowest priority)

Environment variables:
- MARKETDATA_MCP_CONFIG_FILE: Path to TOML config file
- MARKETDATA_MCP_LOG_LEVEL: Logging level (DEBUG, INFO, WARNING, ERROR)
- MARKETDATA_MCP_STRUCTURED_LOGGING: JSON log lines on stderr (true/false)
- MARKETDATA_MCP_GOVERNOR_ENABLED: Enable the response governor (true/false)
- DEDUCT_DATA: Legacy alias for MARKETDATA_MCP_GOVERNOR_ENABLED
- MARKETDATA_MCP_TOTAL_CAPACITY: Shared output budget in units (default 4500)
- MARKETDATA_MCP_EMERGENCY_FLOOR / MARKETDATA_MCP_LOW_FLOOR: Degradation floors
- MARKETDATA_MCP_SWITCH_THRESHOLD: Fallback continuation headroom gate
- MARKETDATA_MCP_MIN_CONTENT_LEN: Minimum acceptable fetched length
- MARKETDATA_MCP_CHARS_PER_UNIT: Characters per budget unit (default 3.5)
- MARKETDATA_MCP_PER_CALL_CAP: Units a Critical request may spend (default 120)
- BRIGHTDATA_API_TOKEN (or API_TOKEN): Web unlocker API token
- BRIGHTDATA_BASE_URL: Web unlocker API base URL
- WEB_UNLOCKER_ZONE: Web unlocker zone name
- BRIGHTDATA_PROXY_HOST / _PORT / _USERNAME / _PASSWORD: Proxy credentials
- MARKETDATA_MCP_FETCH_METHOD: "direct" (API) or "proxy"
- REQUEST_TIMEOUT: Per-fetch timeout in seconds
- MAX_RETRIES: Retries for 502/503/504 responses
- MARKETDATA_MCP_CACHE_ENABLED / MARKETDATA_MCP_CACHE_TTL: Result cache
- MARKETDATA_MCP_METRICS_LOG_ENABLED / MARKETDATA_MCP_METRICS_LOG_PATH: Call log
"""

import os
import logging
from dataclasses import dataclass, field
from importlib.metadata import version as get_package_version, PackageNotFoundError
from pathlib import Path
from typing import Optional, Dict, Any

try:
    import tomllib
except ImportError:
    import tomli as tomllib  # Python < 3.11 fallback


logger = logging.getLogger(__name__)


def _get_version() -> str:
    """Get package version from metadata (single source of truth: pyproject.toml)."""
    try:
        return get_package_version("marketdata-mcp")
    except PackageNotFoundError:
        return "0.3.0"  # Fallback for dev without install


_PACKAGE_VERSION = _get_version()


def _parse_bool(value: Any) -> bool:
    if isinstance(value, bool):
        return value
    return str(value).strip().lower() in {"true", "1", "yes", "on"}


@dataclass
class GovernorConfig:
    """Configuration for the budgeted response governor.

    All thresholds are in budget units unless the name says otherwise.
    A unit approximates one output token via ``chars_per_unit``.

    Attributes:
        enabled: When False the governor runs in pass-through mode
            (raw content, no decision, no ledger charge)
        total_capacity: Fixed ceiling of the shared quota ledger
        emergency_floor: Below this remaining capacity only Skip/Emergency
        low_floor: Below this remaining capacity only Skip/KeyMetrics
        switch_threshold: Headroom above which a fallback chain keeps
            looking for content with a domain signal
        min_content_len: Minimum acceptable fetched length in characters
        chars_per_unit: Characters per budget unit
        per_call_cap: Units a Critical request may spend in one reply
        efficient_min_chars: Lower bound of the rewarded content length window
        efficient_max_chars: Upper bound of the rewarded content length window
        max_content_length: Raw content longer than this is always summarized
        domain_signal_min: Signal occurrences needed for ``has_domain_signal``
        boilerplate_ratio: Navigation-word ratio that flags boilerplate
        emergency_max_chars: Character cap for Emergency renders
        key_metrics_max_chars: Character cap for KeyMetrics renders
        summary_max_chars: Character cap for Summary renders
        minimal_max_chars: Character cap for Minimal renders
        filtered_max_chars: Character cap for Filtered renders
        hard_cap_max_chars: Ceiling of the post-render hard cap
        hard_cap_min_chars: Floor of the post-render hard cap
        hard_cap_fraction: Share of remaining capacity one reply may use
    """

    enabled: bool = False
    total_capacity: int = 4500
    emergency_floor: int = 100
    low_floor: int = 300
    switch_threshold: int = 500
    min_content_len: int = 10
    chars_per_unit: float = 3.5
    per_call_cap: int = 120
    efficient_min_chars: int = 20
    efficient_max_chars: int = 1000
    max_content_length: int = 5000
    domain_signal_min: int = 2
    boilerplate_ratio: float = 0.25
    emergency_max_chars: int = 50
    key_metrics_max_chars: int = 150
    summary_max_chars: int = 210
    minimal_max_chars: int = 280
    filtered_max_chars: int = 400
    hard_cap_max_chars: int = 2000
    hard_cap_min_chars: int = 60
    hard_cap_fraction: float = 0.1

    def __post_init__(self) -> None:
        if self.total_capacity < 0:
            raise ValueError(
                f"total_capacity must be non-negative, got {self.total_capacity}"
            )
        if not 0 < self.emergency_floor <= self.low_floor:
            raise ValueError(
                "emergency_floor must be positive and not exceed low_floor "
                f"(got {self.emergency_floor} / {self.low_floor})"
            )
        if self.chars_per_unit <= 0:
            raise ValueError(
                f"chars_per_unit must be positive, got {self.chars_per_unit}"
            )
        if self.efficient_min_chars > self.efficient_max_chars:
            raise ValueError(
                "efficient_min_chars must not exceed efficient_max_chars"
            )

    @classmethod
    def from_toml_dict(cls, data: Dict[str, Any]) -> "GovernorConfig":
        """Create config from TOML dict (typically [governor] section).

        Args:
            data: Dict from TOML parsing

        Returns:
            GovernorConfig instance
        """
        defaults = cls()
        return cls(
            enabled=_parse_bool(data.get("enabled", defaults.enabled)),
            total_capacity=int(data.get("total_capacity", defaults.total_capacity)),
            emergency_floor=int(data.get("emergency_floor", defaults.emergency_floor)),
            low_floor=int(data.get("low_floor", defaults.low_floor)),
            switch_threshold=int(
                data.get("switch_threshold", defaults.switch_threshold)
            ),
            min_content_len=int(data.get("min_content_len", defaults.min_content_len)),
            chars_per_unit=float(data.get("chars_per_unit", defaults.chars_per_unit)),
            per_call_cap=int(data.get("per_call_cap", defaults.per_call_cap)),
            efficient_min_chars=int(
                data.get("efficient_min_chars", defaults.efficient_min_chars)
            ),
            efficient_max_chars=int(
                data.get("efficient_max_chars", defaults.efficient_max_chars)
            ),
            max_content_length=int(
                data.get("max_content_length", defaults.max_content_length)
            ),
            domain_signal_min=int(
                data.get("domain_signal_min", defaults.domain_signal_min)
            ),
            boilerplate_ratio=float(
                data.get("boilerplate_ratio", defaults.boilerplate_ratio)
            ),
            emergency_max_chars=int(
                data.get("emergency_max_chars", defaults.emergency_max_chars)
            ),
            key_metrics_max_chars=int(
                data.get("key_metrics_max_chars", defaults.key_metrics_max_chars)
            ),
            summary_max_chars=int(
                data.get("summary_max_chars", defaults.summary_max_chars)
            ),
            minimal_max_chars=int(
                data.get("minimal_max_chars", defaults.minimal_max_chars)
            ),
            filtered_max_chars=int(
                data.get("filtered_max_chars", defaults.filtered_max_chars)
            ),
            hard_cap_max_chars=int(
                data.get("hard_cap_max_chars", defaults.hard_cap_max_chars)
            ),
            hard_cap_min_chars=int(
                data.get("hard_cap_min_chars", defaults.hard_cap_min_chars)
            ),
            hard_cap_fraction=float(
                data.get("hard_cap_fraction", defaults.hard_cap_fraction)
            ),
        )


@dataclass
class FetchConfig:
    """Configuration for the web unlocker content fetcher.

    Attributes:
        api_token: Bearer token for the direct API
        base_url: API base URL (requests go to ``{base_url}/request``)
        zone: Web unlocker zone name
        method: "direct" for the REST API, "proxy" for the HTTP proxy
        proxy_host: Proxy hostname (proxy method only)
        proxy_port: Proxy port (proxy method only)
        proxy_username: Proxy username (proxy method only)
        proxy_password: Proxy password (proxy method only)
        timeout: Per-fetch timeout in seconds
        max_retries: Retries for 502/503/504 responses
        circuit_failure_threshold: Consecutive failures before the circuit opens
        circuit_recovery_timeout: Seconds before an open circuit admits a trial call
    """

    api_token: str = ""
    base_url: str = "https://api.brightdata.com"
    zone: str = "web_unlocker1"
    method: str = "direct"
    proxy_host: str = ""
    proxy_port: int = 0
    proxy_username: str = ""
    proxy_password: str = ""
    timeout: float = 90.0
    max_retries: int = 1
    circuit_failure_threshold: int = 5
    circuit_recovery_timeout: float = 30.0

    @classmethod
    def from_toml_dict(cls, data: Dict[str, Any]) -> "FetchConfig":
        """Create config from TOML dict (typically [fetch] section).

        Args:
            data: Dict from TOML parsing

        Returns:
            FetchConfig instance
        """
        return cls(
            api_token=str(data.get("api_token", "")),
            base_url=str(data.get("base_url", "https://api.brightdata.com")),
            zone=str(data.get("zone", "web_unlocker1")),
            method=str(data.get("method", "direct")).lower(),
            proxy_host=str(data.get("proxy_host", "")),
            proxy_port=int(data.get("proxy_port", 0)),
            proxy_username=str(data.get("proxy_username", "")),
            proxy_password=str(data.get("proxy_password", "")),
            timeout=float(data.get("timeout", 90.0)),
            max_retries=int(data.get("max_retries", 1)),
            circuit_failure_threshold=int(data.get("circuit_failure_threshold", 5)),
            circuit_recovery_timeout=float(data.get("circuit_recovery_timeout", 30.0)),
        )

    @property
    def proxy_configured(self) -> bool:
        return bool(self.proxy_host and self.proxy_port and self.proxy_username)

    def proxy_url(self) -> str:
        """Build the authenticated proxy URL."""
        return (
            f"http://{self.proxy_username}:{self.proxy_password}"
            f"@{self.proxy_host}:{self.proxy_port}"
        )


@dataclass
class CacheConfig:
    """Configuration for the session-scoped result cache.

    Attributes:
        enabled: Whether fetched samples are cached
        ttl_seconds: Entry lifetime in seconds
        max_entries: Maximum cached samples before oldest-first eviction
    """

    enabled: bool = True
    ttl_seconds: int = 300
    max_entries: int = 512

    @classmethod
    def from_toml_dict(cls, data: Dict[str, Any]) -> "CacheConfig":
        """Create config from TOML dict (typically [cache] section)."""
        return cls(
            enabled=_parse_bool(data.get("enabled", True)),
            ttl_seconds=int(data.get("ttl_seconds", 300)),
            max_entries=int(data.get("max_entries", 512)),
        )


@dataclass
class MetricsLogConfig:
    """Configuration for the append-only call metrics log.

    Attributes:
        enabled: Whether call records are written to disk
        storage_path: JSONL file path (default: ~/.marketdata-mcp/calls.jsonl)
    """

    enabled: bool = False
    storage_path: str = ""  # Empty string means use default

    @classmethod
    def from_toml_dict(cls, data: Dict[str, Any]) -> "MetricsLogConfig":
        """Create config from TOML dict (typically [metrics_log] section)."""
        return cls(
            enabled=_parse_bool(data.get("enabled", False)),
            storage_path=str(data.get("storage_path", "")),
        )

    def get_storage_path(self) -> Path:
        """Get the resolved storage path.

        Returns:
            Path to the JSONL call log
        """
        if self.storage_path:
            return Path(self.storage_path).expanduser()
        return Path.home() / ".marketdata-mcp" / "calls.jsonl"


@dataclass
class ServerConfig:
    """Server configuration with support for env vars and TOML overrides."""

    # Logging configuration
    log_level: str = "INFO"
    structured_logging: bool = True

    # Server configuration
    server_name: str = "marketdata-mcp"
    server_version: str = field(default_factory=lambda: _PACKAGE_VERSION)

    # Governor configuration
    governor: GovernorConfig = field(default_factory=GovernorConfig)

    # Content fetcher configuration
    fetch: FetchConfig = field(default_factory=FetchConfig)

    # Result cache configuration
    cache: CacheConfig = field(default_factory=CacheConfig)

    # Call metrics log configuration
    metrics_log: MetricsLogConfig = field(default_factory=MetricsLogConfig)

    @classmethod
    def from_env(cls, config_file: Optional[str] = None) -> "ServerConfig":
        """
        Create configuration from environment variables and optional TOML file.

        Priority (highest to lowest):
        1. Environment variables
        2. TOML config file
        3. Default values
        """
        config = cls()

        # Load TOML config if available
        toml_path = config_file or os.environ.get("MARKETDATA_MCP_CONFIG_FILE")
        if toml_path:
            config._load_toml(Path(toml_path))
        else:
            # Try default locations
            for default_path in ["marketdata-mcp.toml", ".marketdata-mcp.toml"]:
                if Path(default_path).exists():
                    config._load_toml(Path(default_path))
                    break

        # Override with environment variables
        config._load_env()

        return config

    def _load_toml(self, path: Path) -> None:
        """Load configuration from TOML file."""
        if not path.exists():
            logger.warning(f"Config file not found: {path}")
            return

        try:
            with open(path, "rb") as f:
                data = tomllib.load(f)

            # Logging settings
            if "logging" in data:
                log = data["logging"]
                if "level" in log:
                    self.log_level = log["level"].upper()
                if "structured" in log:
                    self.structured_logging = _parse_bool(log["structured"])

            # Server settings
            if "server" in data:
                srv = data["server"]
                if "name" in srv:
                    self.server_name = srv["name"]
                if "version" in srv:
                    self.server_version = srv["version"]

            if "governor" in data:
                self.governor = GovernorConfig.from_toml_dict(data["governor"])

            if "fetch" in data:
                self.fetch = FetchConfig.from_toml_dict(data["fetch"])

            if "cache" in data:
                self.cache = CacheConfig.from_toml_dict(data["cache"])

            if "metrics_log" in data:
                self.metrics_log = MetricsLogConfig.from_toml_dict(data["metrics_log"])

        except (OSError, tomllib.TOMLDecodeError, ValueError, TypeError) as e:
            logger.error(f"Error loading config file {path}: {e}")

    def _load_env(self) -> None:
        """Load configuration from environment variables."""
        # Log level
        if level := os.environ.get("MARKETDATA_MCP_LOG_LEVEL"):
            self.log_level = level.upper()
        if structured := os.environ.get("MARKETDATA_MCP_STRUCTURED_LOGGING"):
            self.structured_logging = _parse_bool(structured)

        # Governor toggle (DEDUCT_DATA is the legacy name)
        if deduct := os.environ.get("DEDUCT_DATA"):
            self.governor.enabled = _parse_bool(deduct)
        if enabled := os.environ.get("MARKETDATA_MCP_GOVERNOR_ENABLED"):
            self.governor.enabled = _parse_bool(enabled)

        # Governor thresholds
        int_overrides = {
            "MARKETDATA_MCP_TOTAL_CAPACITY": "total_capacity",
            "MARKETDATA_MCP_EMERGENCY_FLOOR": "emergency_floor",
            "MARKETDATA_MCP_LOW_FLOOR": "low_floor",
            "MARKETDATA_MCP_SWITCH_THRESHOLD": "switch_threshold",
            "MARKETDATA_MCP_MIN_CONTENT_LEN": "min_content_len",
            "MARKETDATA_MCP_PER_CALL_CAP": "per_call_cap",
        }
        for env_name, attr in int_overrides.items():
            if raw := os.environ.get(env_name):
                try:
                    setattr(self.governor, attr, int(raw))
                except ValueError:
                    logger.warning("Ignoring non-integer %s=%r", env_name, raw)
        if cpu := os.environ.get("MARKETDATA_MCP_CHARS_PER_UNIT"):
            try:
                self.governor.chars_per_unit = float(cpu)
            except ValueError:
                logger.warning("Ignoring non-numeric MARKETDATA_MCP_CHARS_PER_UNIT=%r", cpu)
        # Re-run validation after field-level overrides
        self.governor.__post_init__()

        # Fetcher settings
        if token := os.environ.get("BRIGHTDATA_API_TOKEN") or os.environ.get("API_TOKEN"):
            self.fetch.api_token = token
        if base_url := os.environ.get("BRIGHTDATA_BASE_URL"):
            self.fetch.base_url = base_url.rstrip("/")
        if zone := os.environ.get("WEB_UNLOCKER_ZONE"):
            self.fetch.zone = zone
        if method := os.environ.get("MARKETDATA_MCP_FETCH_METHOD"):
            self.fetch.method = method.strip().lower()
        if proxy_host := os.environ.get("BRIGHTDATA_PROXY_HOST"):
            self.fetch.proxy_host = proxy_host
        if proxy_port := os.environ.get("BRIGHTDATA_PROXY_PORT"):
            try:
                self.fetch.proxy_port = int(proxy_port)
            except ValueError:
                pass
        if proxy_user := os.environ.get("BRIGHTDATA_PROXY_USERNAME"):
            self.fetch.proxy_username = proxy_user
        if proxy_pass := os.environ.get("BRIGHTDATA_PROXY_PASSWORD"):
            self.fetch.proxy_password = proxy_pass
        if timeout := os.environ.get("REQUEST_TIMEOUT"):
            try:
                self.fetch.timeout = float(timeout)
            except ValueError:
                pass
        if retries := os.environ.get("MAX_RETRIES"):
            try:
                self.fetch.max_retries = int(retries)
            except ValueError:
                pass

        # Cache settings
        if cache_enabled := os.environ.get("MARKETDATA_MCP_CACHE_ENABLED"):
            self.cache.enabled = _parse_bool(cache_enabled)
        if cache_ttl := os.environ.get("MARKETDATA_MCP_CACHE_TTL"):
            try:
                self.cache.ttl_seconds = int(cache_ttl)
            except ValueError:
                pass

        # Call metrics log settings
        if log_enabled := os.environ.get("MARKETDATA_MCP_METRICS_LOG_ENABLED"):
            self.metrics_log.enabled = _parse_bool(log_enabled)
        if log_path := os.environ.get("MARKETDATA_MCP_METRICS_LOG_PATH"):
            self.metrics_log.storage_path = log_path

    def to_dict(self, *, redact_secrets: bool = True) -> Dict[str, Any]:
        """Serialize the effective configuration.

        Args:
            redact_secrets: Replace tokens and passwords with "***"

        Returns:
            Nested dict of all settings
        """
        from dataclasses import asdict

        data = asdict(self)
        if redact_secrets:
            for key in ("api_token", "proxy_password"):
                if data["fetch"].get(key):
                    data["fetch"][key] = "***"
        return data

    def setup_logging(self) -> None:
        """Configure logging based on settings."""
        from marketdata_mcp.core.logging_config import configure_logging

        level = getattr(logging, self.log_level, logging.INFO)
        configure_logging(
            level=level,
            format="structured" if self.structured_logging else "human",
        )


# Global configuration instance
_config: Optional[ServerConfig] = None


def get_config() -> ServerConfig:
    """Get the global configuration instance."""
    global _config
    if _config is None:
        _config = ServerConfig.from_env()
    return _config


def set_config(config: ServerConfig) -> None:
    """Set the global configuration instance."""
    global _config
    _config = config
