"""MarketData MCP - MCP server for budget-governed financial market content."""

from importlib.metadata import version, PackageNotFoundError

try:
    __version__ = version("marketdata-mcp")
except PackageNotFoundError:
    # Package not installed (development mode without editable install)
    __version__ = "0.3.0"

from marketdata_mcp.server import create_server, main

__all__ = ["__version__", "create_server", "main"]
