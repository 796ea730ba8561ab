"""Unified market-data tool with action routing.

Every action is a governed fetch: the request is classified, sources are
tried in order and the reply is sized against the shared output budget
before it is returned. Web searches and single-page scrapes go through the
same pipeline and are held to the same financial-signal checks.
"""

from __future__ import annotations

import logging
import time
from dataclasses import asdict
from typing import Any, Awaitable, Callable, Dict, List, Optional
from urllib.parse import urlsplit

from mcp.server.fastmcp import FastMCP

from marketdata_mcp.config import ServerConfig
from marketdata_mcp.core.context import sync_request_context
from marketdata_mcp.core.governor.categories import SEARCH_ENGINES, get_profile
from marketdata_mcp.core.governor.engine import Governor, GovernedResult, get_governor
from marketdata_mcp.core.governor.models import ChainExhaustedError, ContentSample
from marketdata_mcp.core.naming import canonical_tool
from marketdata_mcp.core.providers import BrightDataFetcher, FetchError
from marketdata_mcp.core.responses import (
    ErrorCode,
    ErrorType,
    error_response,
    success_response,
    unavailable_error,
    validation_error,
)
from marketdata_mcp.tools.router import (
    ActionDefinition,
    ActionRouter,
    ActionRouterError,
)

logger = logging.getLogger(__name__)

FetchFn = Callable[[str], Awaitable[ContentSample]]

MAX_ZONES = 8

_ACTION_SUMMARY = {
    "stock": "Stock quote and key metrics",
    "crypto": "Cryptocurrency price and market data",
    "bond": "Bond yields and rates",
    "commodity": "Commodity spot/futures prices",
    "etf": "ETF price, NAV and expense ratio",
    "mutual-fund": "Mutual fund NAV, AUM and returns",
    "multi-zone": "Same query governed once per region zone",
    "search": "Web search results page, falling back across engines",
    "scrape": "One caller-supplied page as markdown",
}

_CREDENTIAL_REMEDIATION = (
    "Set BRIGHTDATA_API_TOKEN and WEB_UNLOCKER_ZONE (or the BRIGHTDATA_PROXY_* "
    "settings with MARKETDATA_MCP_FETCH_METHOD=proxy)."
)


def _budget_payload(governor: Governor, result_remaining: int) -> Dict[str, Any]:
    return {
        "remaining": result_remaining,
        "capacity": governor.ledger.capacity,
        "enabled": governor.enabled,
    }


def _exhausted_response(exc: ChainExhaustedError, *, query: str, category: str) -> dict:
    remediation = None
    last = exc.last_error
    if isinstance(last, FetchError) and (
        last.status_code in (401, 403) or (last.status_code is None and not last.retryable)
    ):
        remediation = _CREDENTIAL_REMEDIATION
    details = exc.to_dict()
    details.update({"query": query, "category": category})
    return asdict(
        unavailable_error(
            f"No usable {category} data for '{query}': {exc}",
            details=details,
            remediation=remediation,
        )
    )


def _governed_response(
    result: GovernedResult,
    governor: Governor,
    *,
    category: str,
    start: float,
    **extra: Any,
) -> dict:
    return asdict(
        success_response(
            text=result.text,
            decision=result.decision.value if result.decision else None,
            priority=result.priority.value,
            source=result.source_label,
            estimated_units=result.record.estimated_units,
            category=category,
            **extra,
            budget=_budget_payload(governor, result.remaining_after),
            telemetry={"duration_ms": round((time.perf_counter() - start) * 1000, 2)},
        )
    )


async def perform_category_fetch(
    category: str,
    *,
    query: Optional[str],
    market: str = "us",
    governor: Governor,
    fetch_fn: FetchFn,
) -> dict:
    """Run one governed fetch for ``category`` and return a response envelope."""
    if query is None or not str(query).strip():
        return asdict(
            validation_error(
                "query is required",
                field="query",
                remediation="Provide an entity name or ticker, e.g. 'AAPL price'.",
            )
        )

    start = time.perf_counter()
    try:
        result = await governor.govern(query, category, fetch_fn, region=market)
    except ChainExhaustedError as exc:
        return _exhausted_response(exc, query=query, category=category)
    return _governed_response(result, governor, category=category, start=start, market=market)


async def perform_multi_zone(
    *,
    query: Optional[str],
    zones: Optional[List[str]],
    category: str = "stock",
    governor: Governor,
    fetch_fn: FetchFn,
) -> dict:
    """Govern ``query`` once per zone and combine the replies."""
    if query is None or not str(query).strip():
        return asdict(validation_error("query is required", field="query"))
    if not zones or not isinstance(zones, list):
        return asdict(
            validation_error(
                "zones must be a non-empty list of region names",
                field="zones",
                remediation="Pass e.g. zones=['us', 'indian'].",
            )
        )
    if len(zones) > MAX_ZONES:
        return asdict(
            validation_error(
                f"At most {MAX_ZONES} zones are allowed (got {len(zones)})",
                field="zones",
            )
        )
    if not all(isinstance(z, str) and z.strip() for z in zones):
        return asdict(validation_error("zones must contain non-empty strings", field="zones"))
    try:
        profile = get_profile(category)
    except ValueError as exc:
        return asdict(validation_error(str(exc), field="category"))

    start = time.perf_counter()
    fanout = await governor.govern_fanout(query, profile, fetch_fn, zones)
    per_zone = fanout.to_dict()["zones"]
    return asdict(
        success_response(
            text=fanout.text,
            estimated_units=fanout.estimated_units,
            category=profile.name,
            zones=per_zone,
            budget=_budget_payload(governor, governor.ledger.remaining().remaining),
            telemetry={"duration_ms": round((time.perf_counter() - start) * 1000, 2)},
        )
    )


async def perform_search(
    *,
    query: Optional[str],
    engine: str = "google",
    governor: Governor,
    fetch_fn: FetchFn,
) -> dict:
    """Govern a web search for ``query``, starting with ``engine``."""
    if query is None or not str(query).strip():
        return asdict(
            validation_error(
                "query is required",
                field="query",
                remediation="Provide search terms, e.g. 'nifty 50 close'.",
            )
        )
    engine_name = (engine or "").strip().lower()
    if engine_name not in SEARCH_ENGINES:
        allowed = ", ".join(SEARCH_ENGINES)
        return asdict(
            validation_error(
                f"Unknown search engine '{engine}'",
                field="engine",
                remediation=f"Use one of: {allowed}",
            )
        )

    start = time.perf_counter()
    try:
        result = await governor.govern_search(query, fetch_fn, engine=engine_name)
    except ChainExhaustedError as exc:
        return _exhausted_response(exc, query=query, category="web")
    return _governed_response(result, governor, category="web", start=start, engine=engine_name)


def _is_http_url(url: str) -> bool:
    parts = urlsplit(url)
    return parts.scheme in ("http", "https") and bool(parts.netloc)


async def perform_scrape(
    *,
    url: Optional[str],
    query: Optional[str] = None,
    governor: Governor,
    fetch_fn: FetchFn,
) -> dict:
    """Govern one page at ``url``; ``query`` says what the caller wants from it."""
    if url is None or not _is_http_url(str(url).strip()):
        return asdict(
            validation_error(
                "url must be an absolute http(s) URL",
                field="url",
                remediation="Pass e.g. url='https://finance.yahoo.com/quote/AAPL/'.",
            )
        )
    url = str(url).strip()

    start = time.perf_counter()
    try:
        result = await governor.govern_scrape(url, fetch_fn, query=query)
    except ChainExhaustedError as exc:
        return _exhausted_response(exc, query=query or url, category="web")
    return _governed_response(result, governor, category="web", start=start, url=url)


def _category_handler(category: str) -> Callable[..., Awaitable[dict]]:
    async def handler(
        *,
        query: Optional[str],
        market: str,
        zones: Optional[List[str]] = None,
        category_override: Optional[str] = None,
        governor: Governor,
        fetch_fn: FetchFn,
        **_: Any,
    ) -> dict:
        return await perform_category_fetch(
            category,
            query=query,
            market=market,
            governor=governor,
            fetch_fn=fetch_fn,
        )

    return handler


async def _handle_multi_zone(
    *,
    query: Optional[str],
    market: str,
    zones: Optional[List[str]] = None,
    category_override: Optional[str] = None,
    governor: Governor,
    fetch_fn: FetchFn,
    **_: Any,
) -> dict:
    return await perform_multi_zone(
        query=query,
        zones=zones,
        category=category_override or "stock",
        governor=governor,
        fetch_fn=fetch_fn,
    )


async def _handle_search(
    *,
    query: Optional[str],
    engine: str = "google",
    governor: Governor,
    fetch_fn: FetchFn,
    **_: Any,
) -> dict:
    return await perform_search(query=query, engine=engine, governor=governor, fetch_fn=fetch_fn)


async def _handle_scrape(
    *,
    url: Optional[str] = None,
    query: Optional[str] = None,
    governor: Governor,
    fetch_fn: FetchFn,
    **_: Any,
) -> dict:
    return await perform_scrape(url=url, query=query, governor=governor, fetch_fn=fetch_fn)


def _build_router() -> ActionRouter:
    definitions = [
        ActionDefinition(
            name=name,
            handler=_category_handler(name.replace("-", "_")),
            summary=_ACTION_SUMMARY[name],
        )
        for name in ("stock", "crypto", "bond", "commodity", "etf", "mutual-fund")
    ]
    definitions.extend(
        [
            ActionDefinition(
                name="multi-zone",
                handler=_handle_multi_zone,
                summary=_ACTION_SUMMARY["multi-zone"],
            ),
            ActionDefinition(
                name="search",
                handler=_handle_search,
                summary=_ACTION_SUMMARY["search"],
            ),
            ActionDefinition(
                name="scrape",
                handler=_handle_scrape,
                summary=_ACTION_SUMMARY["scrape"],
            ),
        ]
    )
    return ActionRouter(tool_name="market-data", actions=definitions)


_MARKET_DATA_ROUTER = _build_router()


async def _dispatch_market_data_action(
    action: str,
    *,
    query: Optional[str],
    market: str,
    zones: Optional[List[str]],
    category: str,
    governor: Governor,
    fetch_fn: FetchFn,
    engine: str = "google",
    url: Optional[str] = None,
) -> dict:
    try:
        handler_result = _MARKET_DATA_ROUTER.dispatch(
            action=action,
            query=query,
            market=market,
            zones=zones,
            category_override=category,
            engine=engine,
            url=url,
            governor=governor,
            fetch_fn=fetch_fn,
        )
    except ActionRouterError as exc:
        allowed = ", ".join(exc.allowed_actions)
        return asdict(
            error_response(
                f"Unsupported market-data action '{action}'. Allowed actions: {allowed}",
                error_code=ErrorCode.VALIDATION_ERROR,
                error_type=ErrorType.VALIDATION,
                remediation=f"Use one of: {allowed}",
                details={"action": action, "allowed_actions": exc.allowed_actions},
            )
        )

    try:
        return await handler_result
    except Exception as exc:
        logger.exception("market-data action %s failed", action)
        return asdict(
            error_response(
                f"market-data {action} failed: {exc}",
                error_code=ErrorCode.INTERNAL_ERROR,
                error_type=ErrorType.INTERNAL,
                remediation="Check server logs and retry.",
                details={"action": action},
            )
        )


def register_market_data_tool(
    mcp: FastMCP,
    config: ServerConfig,
    *,
    governor: Optional[Governor] = None,
    fetch_fn: Optional[FetchFn] = None,
) -> None:
    """Register the consolidated market-data tool."""
    active_governor = governor or get_governor(config)
    active_fetch = fetch_fn or BrightDataFetcher(config.fetch)

    @canonical_tool(
        mcp,
        canonical_name="market-data",
    )
    async def market_data(
        action: str,
        query: Optional[str] = None,
        market: str = "us",
        zones: Optional[List[str]] = None,
        category: str = "stock",
        engine: str = "google",
        url: Optional[str] = None,
    ) -> dict:
        """Fetch budgeted financial data via `action` parameter.

        Actions:
        - stock, crypto, bond, commodity, etf, mutual-fund: one governed fetch
        - multi-zone: the same query governed once per entry in `zones`
        - search: a web search, starting with `engine`
        - scrape: the page at `url`

        Args:
            action: Resource category, "multi-zone", "search" or "scrape".
            query: Entity name or ticker, optionally with qualifiers ("AAPL price now").
                For "scrape", what to look for on the page.
            market: Region for source selection ("us", "indian", "global", ...).
            zones: Region names for "multi-zone" (1-8 entries).
            category: Resource category used by "multi-zone".
            engine: Search engine for "search" (google, bing, yandex, duckduckgo).
            url: Page to fetch for "scrape".
        """
        with sync_request_context():
            return await _dispatch_market_data_action(
                action,
                query=query,
                market=market,
                zones=zones,
                category=category,
                engine=engine,
                url=url,
                governor=active_governor,
                fetch_fn=active_fetch,
            )

    logger.debug("Registered market-data tool")


__all__ = [
    "perform_category_fetch",
    "perform_multi_zone",
    "perform_scrape",
    "perform_search",
    "register_market_data_tool",
]
