"""
Root pytest configuration and shared fixtures.

Provides the response-envelope helper used by tool tests plus fixtures for
building governors against scripted (in-memory) fetchers.
"""

import json
from typing import Any, Awaitable, Callable, Dict, List, Union
from unittest.mock import MagicMock

import pytest
from mcp.types import TextContent

from marketdata_mcp.config import GovernorConfig
from marketdata_mcp.core.governor.engine import Governor, set_governor
from marketdata_mcp.core.governor.ledger import QuotaLedger, reset_ledger_instance
from marketdata_mcp.core.governor.models import ContentSample
from marketdata_mcp.core.metrics_store import InMemoryCallMetricsLog
from marketdata_mcp.core.providers.base import FetchError

# Response contract version from responses.py
RESPONSE_CONTRACT_VERSION = "response-v2"

FetchFn = Callable[[str], Awaitable[ContentSample]]


def extract_response_dict(result: Union[Dict[str, Any], TextContent]) -> Dict[str, Any]:
    """Extract dict from tool result, handling both dict and TextContent.

    Tools wrapped with the canonical_tool decorator return TextContent with
    minified JSON. This helper extracts the dict for test assertions.

    Raises:
        TypeError: If result is neither dict nor TextContent
    """
    if isinstance(result, dict):
        return result
    if isinstance(result, TextContent):
        return json.loads(result.text)
    raise TypeError(f"Expected dict or TextContent, got {type(result).__name__}")


class ScriptedFetcher:
    """Async fetch callable that replays scripted responses in call order.

    Each script entry is either a string (returned as content) or an
    exception instance (raised). Calls past the end of the script raise
    ``FetchError``. Every locator requested is kept in ``calls``.
    """

    def __init__(self, script: List[Union[str, BaseException]]):
        self.script = list(script)
        self.calls: List[str] = []

    async def __call__(self, locator: str) -> ContentSample:
        index = len(self.calls)
        self.calls.append(locator)
        if index >= len(self.script):
            raise FetchError("script exhausted", locator=locator)
        entry = self.script[index]
        if isinstance(entry, BaseException):
            raise entry
        return ContentSample(source_label="scripted", raw_text=entry)


@pytest.fixture
def scripted_fetcher() -> Callable[..., ScriptedFetcher]:
    """Factory: ``scripted_fetcher("content", FetchError(...), ...)``."""

    def _make(*script: Union[str, BaseException]) -> ScriptedFetcher:
        return ScriptedFetcher(list(script))

    return _make


@pytest.fixture
def governor_config() -> GovernorConfig:
    """Governor config with the governor switched on."""
    return GovernorConfig(enabled=True)


@pytest.fixture
def metrics_log() -> InMemoryCallMetricsLog:
    return InMemoryCallMetricsLog()


@pytest.fixture
def ledger(governor_config) -> QuotaLedger:
    return QuotaLedger(governor_config.total_capacity)


@pytest.fixture
def governor(governor_config, ledger, metrics_log) -> Governor:
    """Enabled governor with a private ledger and in-memory call log."""
    return Governor(governor_config, ledger=ledger, metrics_log=metrics_log)


@pytest.fixture
def response_dict() -> Callable[[Union[Dict[str, Any], TextContent]], Dict[str, Any]]:
    """The ``extract_response_dict`` helper as a fixture."""
    return extract_response_dict


@pytest.fixture
def mock_mcp():
    """Mock FastMCP server that keeps registered tool functions in ``_tools``."""
    mcp = MagicMock()
    mcp._tools = {}

    def mock_tool(*args, **kwargs):
        def decorator(func):
            mcp._tools[kwargs.get("name", func.__name__)] = func
            return func

        return decorator

    mcp.tool = mock_tool
    return mcp


@pytest.fixture(autouse=True)
def _reset_singletons():
    """Keep the process-wide ledger/governor from leaking between tests."""
    yield
    reset_ledger_instance()
    set_governor(None)
