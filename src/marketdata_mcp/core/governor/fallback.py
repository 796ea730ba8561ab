"""Fallback chain construction and execution.

``build`` turns a request into an ordered, priority-capped list of source
candidates; ``run`` walks that list until one candidate returns content worth
keeping. Fetch failures and timeouts only advance the chain. Cancellation is
never caught here.
"""

import asyncio
import logging
from dataclasses import replace
from typing import Awaitable, Callable, Dict, List, NamedTuple, Optional, Sequence
from urllib.parse import urlsplit

from marketdata_mcp.config import GovernorConfig
from marketdata_mcp.core.governor.categories import (
    SEARCH_ENGINES,
    CategoryProfile,
    search_url,
)
from marketdata_mcp.core.governor.models import (
    ChainExhaustedError,
    ContentSample,
    FallbackChain,
    FetchAttempt,
    Priority,
    Request,
    SourceCandidate,
    SourceKind,
)
from marketdata_mcp.core.governor.priority import matches_any
from marketdata_mcp.core.governor.quality import count_domain_signals, is_error_page
from marketdata_mcp.core.providers.base import FetchError
from marketdata_mcp.core.resilience import TimeoutException

logger = logging.getLogger(__name__)

_DEFAULTS = GovernorConfig()

#: Words that ask for one specific value; direct pages answer these best
VALUE_KEYWORDS = (
    "price",
    "quote",
    "nav",
    "rate",
    "value",
    "current",
    "live",
    "now",
    "yield",
)

PRIORITY_QUALIFIERS: Dict[Priority, str] = {
    Priority.CRITICAL: "live today latest",
    Priority.HIGH: "today",
    Priority.MEDIUM: "",
    Priority.LOW: "",
}

#: Maximum candidates per tier; None means the whole chain
CHAIN_CAPS: Dict[Priority, Optional[int]] = {
    Priority.CRITICAL: None,
    Priority.HIGH: 3,
    Priority.MEDIUM: 2,
    Priority.LOW: 1,
}

FetchFn = Callable[[str], Awaitable[ContentSample]]


class FallbackResult(NamedTuple):
    """The accepted sample and the label of the candidate that produced it."""

    sample: ContentSample
    source_label: str


def _search_query(request: Request, profile: CategoryProfile, region: str, priority: Priority) -> str:
    parts = [
        request.text.strip(),
        profile.search_terms_for(region),
        PRIORITY_QUALIFIERS[priority],
    ]
    return " ".join(p for p in parts if p)


def build(
    request: Request,
    profile: CategoryProfile,
    region: str,
    priority: Priority,
) -> FallbackChain:
    """Ordered candidate sources for ``request``.

    Direct pages go first when the request asks for a specific value,
    search queries first otherwise. The result is capped by ``priority``.
    """
    direct: List[SourceCandidate] = []
    symbol = profile.resolve_symbol(request.text)
    if symbol:
        direct = [
            SourceCandidate(SourceKind.DIRECT, url, label)
            for label, url in profile.direct(symbol, region, request.text)
        ]

    query = _search_query(request, profile, region, priority)
    search: List[SourceCandidate] = []
    if profile.search_site:
        search.append(
            SourceCandidate(
                SourceKind.SEARCH_QUERY,
                search_url(f"{query} site:{profile.search_site}"),
                f"Search ({profile.search_site})",
            )
        )
    search.append(SourceCandidate(SourceKind.SEARCH_QUERY, search_url(query), "Search"))

    if matches_any(request.text, VALUE_KEYWORDS):
        ordered = direct + search
    else:
        ordered = search + direct
    return cap_chain(ordered, priority)


def cap_chain(candidates: Sequence[SourceCandidate], priority: Priority) -> FallbackChain:
    """Drop duplicate locators and cut ``candidates`` to the tier's chain length."""
    unique: List[SourceCandidate] = []
    seen = set()
    for candidate in candidates:
        if candidate.locator in seen:
            continue
        seen.add(candidate.locator)
        unique.append(candidate)

    cap = CHAIN_CAPS[priority]
    if cap is not None:
        unique = unique[:cap]
    return FallbackChain(tuple(unique), priority)


def build_search(request: Request, engine: str, priority: Priority) -> FallbackChain:
    """Web search candidates: ``engine`` first, then the other engines.

    Raises:
        ValueError: for an unknown engine
    """
    first = engine.strip().lower()
    query = " ".join(p for p in (request.text.strip(), PRIORITY_QUALIFIERS[priority]) if p)
    engines = [first] + [name for name in SEARCH_ENGINES if name != first]
    candidates = [
        SourceCandidate(SourceKind.SEARCH_QUERY, search_url(query, name), f"Search ({name})")
        for name in engines
    ]
    return cap_chain(candidates, priority)


def build_scrape(url: str, priority: Priority) -> FallbackChain:
    """A one-page chain for a caller-supplied URL."""
    host = urlsplit(url).netloc or url
    return FallbackChain((SourceCandidate(SourceKind.DIRECT, url, host),), priority)


def should_try_next(
    content: str,
    remaining_capacity: int,
    config: Optional[GovernorConfig] = None,
) -> bool:
    """True when ``content`` is not worth keeping and the next source should be tried.

    Missing domain signal only triggers a switch while there is budget left
    to spend on another fetch.
    """
    cfg = config or _DEFAULTS
    if len(content) < cfg.min_content_len:
        return True
    if is_error_page(content):
        return True
    has_signal = count_domain_signals(content) >= cfg.domain_signal_min
    return not has_signal and remaining_capacity > cfg.switch_threshold


async def run(
    chain: FallbackChain,
    fetch_fn: FetchFn,
    *,
    remaining_fn: Callable[[], int],
    config: Optional[GovernorConfig] = None,
    attempts: Optional[List[FetchAttempt]] = None,
) -> FallbackResult:
    """Try each candidate in order and return the first acceptable sample.

    Args:
        chain: Candidates from ``build``
        fetch_fn: Async callable ``locator -> ContentSample``
        remaining_fn: Reads the ledger's current remaining capacity
        config: Thresholds for ``should_try_next``
        attempts: If given, one ``FetchAttempt`` is appended per candidate

    Raises:
        ChainExhaustedError: every candidate failed or was rejected
    """
    record = attempts if attempts is not None else []
    last_error: Optional[BaseException] = None

    for candidate in chain:
        try:
            sample = await fetch_fn(candidate.locator)
        except (FetchError, TimeoutException, asyncio.TimeoutError) as e:
            logger.info("Source %s failed: %s", candidate.label, e)
            record.append(FetchAttempt(candidate.label, candidate.locator, "failed", str(e)))
            last_error = e
            continue

        content = sample.raw_text or ""
        if should_try_next(content, remaining_fn(), config):
            logger.debug(
                "Source %s rejected (%d chars), trying next", candidate.label, len(content)
            )
            record.append(
                FetchAttempt(candidate.label, candidate.locator, "rejected", f"{len(content)} chars")
            )
            # last_error always describes the last candidate tried
            last_error = None
            continue

        record.append(FetchAttempt(candidate.label, candidate.locator, "accepted"))
        return FallbackResult(replace(sample, source_label=candidate.label), candidate.label)

    if not len(chain):
        message = "No sources available for request"
    else:
        message = f"All {len(chain)} sources failed or returned unusable content"
    raise ChainExhaustedError(message, last_error=last_error, attempts=record)
