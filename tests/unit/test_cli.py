"""Tests for the marketdata CLI commands."""

import json
import logging
import os
from unittest.mock import patch

import pytest
from click.testing import CliRunner

from marketdata_mcp.cli.main import cli
from marketdata_mcp.core.governor.models import ContentSample
from marketdata_mcp.core.providers.base import FetchError

QUOTE = "price: $123.45, market cap: $10B"

_LEGACY_VARS = (
    "DEDUCT_DATA",
    "API_TOKEN",
    "WEB_UNLOCKER_ZONE",
    "REQUEST_TIMEOUT",
    "MAX_RETRIES",
)


def fixed(text):
    async def _fetch(locator):
        return ContentSample("fixed", text)

    return _fetch


def failing(error):
    async def _fetch(locator):
        raise error

    return _fetch


def last_json(output):
    """Parse the last JSON line printed by a command."""
    lines = [line for line in output.splitlines() if line.strip()]
    return json.loads(lines[-1])


@pytest.fixture
def cli_runner(monkeypatch, tmp_path):
    """CliRunner in an empty directory with only quiet logging configured."""
    for name in list(os.environ):
        if name.startswith(("MARKETDATA_MCP_", "BRIGHTDATA_")) or name in _LEGACY_VARS:
            monkeypatch.delenv(name, raising=False)
    monkeypatch.chdir(tmp_path)
    monkeypatch.setenv("MARKETDATA_MCP_LOG_LEVEL", "ERROR")
    yield CliRunner()
    root = logging.getLogger("marketdata_mcp")
    root.handlers.clear()
    root.setLevel(logging.NOTSET)


class TestConfigCommand:
    """Tests for the config command."""

    def test_secrets_redacted(self, cli_runner):
        result = cli_runner.invoke(cli, ["config"], env={"BRIGHTDATA_API_TOKEN": "secret"})

        assert result.exit_code == 0
        data = last_json(result.output)
        assert data["success"] is True
        assert data["data"]["fetch"]["api_token"] == "***"
        assert data["meta"]["version"] == "response-v2"

    def test_show_secrets(self, cli_runner):
        result = cli_runner.invoke(
            cli, ["config", "--show-secrets"], env={"BRIGHTDATA_API_TOKEN": "secret"}
        )
        assert last_json(result.output)["data"]["fetch"]["api_token"] == "secret"

    def test_config_file_option(self, cli_runner, tmp_path):
        path = tmp_path / "alt.toml"
        path.write_text("[governor]\nenabled = true\ntotal_capacity = 900\n")

        result = cli_runner.invoke(cli, ["--config-file", str(path), "config"])

        governor = last_json(result.output)["data"]["governor"]
        assert governor["enabled"] is True
        assert governor["total_capacity"] == 900

    def test_invalid_configuration(self, cli_runner):
        """Test out-of-order floors fail with a validation envelope."""
        result = cli_runner.invoke(
            cli, ["config"], env={"MARKETDATA_MCP_EMERGENCY_FLOOR": "900"}
        )

        assert result.exit_code == 1
        data = last_json(result.output)
        assert data["success"] is False
        assert data["data"]["error_code"] == "VALIDATION_ERROR"
        assert "emergency_floor" in data["error"]


class TestFetchCommand:
    """Tests for the fetch command."""

    def test_governed_fetch(self, cli_runner):
        with patch("marketdata_mcp.cli.main.BrightDataFetcher", return_value=fixed(QUOTE)):
            result = cli_runner.invoke(
                cli, ["fetch", "stock", "XYZ current price", "--governor"]
            )

        assert result.exit_code == 0
        data = last_json(result.output)
        assert data["success"] is True
        assert data["data"]["text"] == "Price: $123.45 | Market Cap: $10B"
        assert data["data"]["decision"] == "filtered"
        assert data["data"]["budget"]["remaining"] == 4490

    def test_no_governor_passthrough(self, cli_runner):
        """Test --no-governor returns the fetched text untouched."""
        with patch("marketdata_mcp.cli.main.BrightDataFetcher", return_value=fixed(QUOTE)):
            result = cli_runner.invoke(
                cli, ["fetch", "stock", "AAPL price", "--no-governor"]
            )

        data = last_json(result.output)
        assert data["data"]["text"] == QUOTE
        assert data["data"]["decision"] is None

    def test_zones(self, cli_runner):
        with patch("marketdata_mcp.cli.main.BrightDataFetcher", return_value=fixed(QUOTE)):
            result = cli_runner.invoke(
                cli,
                ["fetch", "stock", "AAPL price", "--governor", "--zone", "us", "--zone", "india"],
            )

        assert result.exit_code == 0
        data = last_json(result.output)["data"]
        assert set(data["zones"]) == {"us", "india"}
        assert data["text"].splitlines()[0].startswith("[us] ")

    def test_mutual_fund_category_name(self, cli_runner):
        """Test the hyphenated category maps to the mutual_fund profile."""
        with patch(
            "marketdata_mcp.cli.main.BrightDataFetcher",
            return_value=fixed("NAV: ₹85.32, AUM ₹45,000 crore"),
        ):
            result = cli_runner.invoke(
                cli, ["fetch", "mutual-fund", "sbi bluechip nav", "--market", "indian"]
            )
        assert last_json(result.output)["data"]["category"] == "mutual_fund"

    def test_failure_exit_code(self, cli_runner):
        """Test an exhausted source chain exits with code 1."""
        error = FetchError("Provider error HTTP 503", status_code=503, retryable=True)
        with patch("marketdata_mcp.cli.main.BrightDataFetcher", return_value=failing(error)):
            result = cli_runner.invoke(cli, ["fetch", "stock", "AAPL price", "--governor"])

        assert result.exit_code == 1
        data = last_json(result.output)
        assert data["success"] is False
        assert data["data"]["error_code"] == "SOURCES_EXHAUSTED"

    def test_unknown_category(self, cli_runner):
        result = cli_runner.invoke(cli, ["fetch", "forex", "EURUSD"])
        assert result.exit_code == 2
