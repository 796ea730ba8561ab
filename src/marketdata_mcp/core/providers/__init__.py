"""Content fetchers used by the governed tools."""

from marketdata_mcp.core.providers.base import ContentFetcher, FetchError
from marketdata_mcp.core.providers.brightdata import BrightDataFetcher

__all__ = ["BrightDataFetcher", "ContentFetcher", "FetchError"]
