"""FastMCP server for marketdata-mcp.

Exposes two action-routed tools over stdio:

- ``market-data``: governed fetches per resource category, plus multi-zone fan-out
- ``budget``: ledger status and session reset
"""

from __future__ import annotations

import logging
import sys
from typing import Optional

from mcp.server.fastmcp import FastMCP

from marketdata_mcp.config import ServerConfig, get_config
from marketdata_mcp.core.governor.engine import Governor, create_governor, set_governor
from marketdata_mcp.tools import register_tools

logger = logging.getLogger(__name__)


def _init_governor(config: ServerConfig) -> Governor:
    """Build the shared governor and log its operating mode."""

    governor = create_governor(config)
    set_governor(governor)

    if config.governor.enabled:
        logger.info(
            "Governor enabled: capacity=%d units, per-call cap=%d",
            config.governor.total_capacity,
            config.governor.per_call_cap,
        )
    else:
        logger.info("Governor disabled: replies pass through unmodified")

    if config.fetch.method == "proxy":
        if not config.fetch.proxy_configured:
            logger.warning("Proxy fetch method selected but proxy settings are incomplete")
    elif not config.fetch.api_token:
        logger.warning("BRIGHTDATA_API_TOKEN not set; fetches will fail until it is configured")

    return governor


def create_server(config: Optional[ServerConfig] = None) -> FastMCP:
    """Create and configure the FastMCP server instance."""

    if config is None:
        config = get_config()

    config.setup_logging()

    governor = _init_governor(config)

    mcp = FastMCP(name=config.server_name)
    register_tools(mcp, config, governor=governor)

    logger.info("Server created: %s v%s", config.server_name, config.server_version)
    return mcp


def main() -> None:
    """Main entry point for the marketdata-mcp server."""

    try:
        config = get_config()
        server = create_server(config)

        logger.info("Starting %s v%s", config.server_name, config.server_version)
        server.run()

    except KeyboardInterrupt:
        logger.info("Server shutdown requested")
        sys.exit(0)
    except Exception as exc:
        logger.error("Server error: %s: %s", type(exc).__name__, exc)
        sys.exit(1)


if __name__ == "__main__":
    main()
