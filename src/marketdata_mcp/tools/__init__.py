"""Action-based MCP tools."""

from __future__ import annotations

from typing import TYPE_CHECKING, Optional

from .budget import register_budget_tool
from .market_data import register_market_data_tool


if TYPE_CHECKING:  # pragma: no cover - import-time typing only
    from mcp.server.fastmcp import FastMCP
    from marketdata_mcp.config import ServerConfig
    from marketdata_mcp.core.governor.engine import Governor
    from marketdata_mcp.tools.market_data import FetchFn


def register_tools(
    mcp: "FastMCP",
    config: "ServerConfig",
    *,
    governor: Optional["Governor"] = None,
    fetch_fn: Optional["FetchFn"] = None,
) -> None:
    """Register all tool routers against one shared governor."""
    register_market_data_tool(mcp, config, governor=governor, fetch_fn=fetch_fn)
    register_budget_tool(mcp, config, governor=governor)


__all__ = [
    "register_tools",
    "register_budget_tool",
    "register_market_data_tool",
]
