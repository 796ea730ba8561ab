"""The budgeted response governor.

One generic pipeline serves every resource category; the category only
contributes a ``CategoryProfile``. For each governed call:

    classify -> build chain -> run chain (fetch) -> snapshot ledger
      -> assess -> decide -> recommended units -> render -> hard cap
      -> commit -> telemetry

The ledger is read exactly once per call, after the fetch, and charged once
at the end. The only suspension point is the fetch itself; a call cancelled
there commits nothing.

Web searches and single-page scrapes reuse the pipeline with the ``WEB``
profile and a chain of caller-chosen sources.
"""

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Dict, List, Optional, Sequence, Union

from marketdata_mcp.config import GovernorConfig, ServerConfig, get_config
from marketdata_mcp.core.cache import ResultCache, cached_fetch
from marketdata_mcp.core.context import generate_correlation_id, get_correlation_id
from marketdata_mcp.core.governor import fallback
from marketdata_mcp.core.governor.categories import (
    CategoryProfile,
    WEB,
    get_profile,
    normalize_region,
)
from marketdata_mcp.core.governor.decision import decide
from marketdata_mcp.core.governor.ledger import QuotaLedger, get_ledger
from marketdata_mcp.core.governor.models import (
    ChainExhaustedError,
    ContentSample,
    Decision,
    EmissionRecord,
    FallbackChain,
    FetchAttempt,
    Priority,
    QualityAssessment,
    Request,
)
from marketdata_mcp.core.governor.priority import classify, recommended_units
from marketdata_mcp.core.governor.quality import assess, estimate_units
from marketdata_mcp.core.governor.renderer import hard_cap, hard_cap_limit, render
from marketdata_mcp.core.metrics_store import (
    CallMetricsLog,
    CallRecord,
    InMemoryCallMetricsLog,
    create_call_metrics_log,
)

logger = logging.getLogger(__name__)

FetchFn = Callable[[str], Awaitable[ContentSample]]

PASSTHROUGH = "passthrough"


@dataclass
class GovernedResult:
    """Outcome of one governed call.

    Attributes:
        record: Emitted text, decision and the units charged for it
        priority: Urgency tier of the request
        source_label: Label of the accepted source, None if none was fetched
        assessment: Quality of the accepted content (None in pass-through)
        remaining_after: Ledger remaining capacity right after the commit
        attempts: Per-candidate outcomes in the order they were tried
    """

    record: EmissionRecord
    priority: Priority
    source_label: Optional[str] = None
    assessment: Optional[QualityAssessment] = None
    remaining_after: int = 0
    attempts: List[FetchAttempt] = field(default_factory=list)

    @property
    def text(self) -> str:
        return self.record.text

    @property
    def decision(self) -> Optional[Decision]:
        return self.record.decision

    def to_dict(self) -> Dict[str, Any]:
        return {
            **self.record.to_dict(),
            "priority": self.priority.value,
            "source": self.source_label,
            "assessment": self.assessment.to_dict() if self.assessment else None,
            "remaining_after": self.remaining_after,
            "attempts": [a.to_dict() for a in self.attempts],
        }


@dataclass
class FanoutResult:
    """Combined outcome of one request governed once per zone."""

    zones: List[str]
    results: List[GovernedResult]

    @property
    def text(self) -> str:
        lines = []
        for zone, result in zip(self.zones, self.results):
            lines.append(f"[{zone}] {result.text}".rstrip())
        return "\n".join(lines)

    @property
    def estimated_units(self) -> int:
        return sum(r.record.estimated_units for r in self.results)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "text": self.text,
            "estimated_units": self.estimated_units,
            "zones": {
                zone: result.to_dict() for zone, result in zip(self.zones, self.results)
            },
        }


class Governor:
    """Sizes, degrades and charges every reply against one shared ledger.

    Args:
        config: Thresholds and the enabled toggle
        ledger: Shared quota ledger (a private one is created if omitted)
        metrics_log: Telemetry sink for one record per governed call
        cache: Optional session-scoped cache of fetched samples
    """

    def __init__(
        self,
        config: Optional[GovernorConfig] = None,
        *,
        ledger: Optional[QuotaLedger] = None,
        metrics_log: Optional[CallMetricsLog] = None,
        cache: Optional[ResultCache] = None,
    ):
        self.config = config or GovernorConfig()
        self.ledger = ledger if ledger is not None else QuotaLedger(self.config.total_capacity)
        self.metrics_log = metrics_log if metrics_log is not None else InMemoryCallMetricsLog()
        self.cache = cache
        self._session_id = generate_correlation_id("session")

    @property
    def enabled(self) -> bool:
        return self.config.enabled

    @property
    def session_id(self) -> str:
        return self._session_id

    def _remaining(self) -> int:
        return self.ledger.remaining().remaining

    def _record(
        self,
        request: Request,
        profile: CategoryProfile,
        decision: Optional[str],
        source_label: Optional[str],
        units: int,
        success: bool,
    ) -> None:
        self.metrics_log.append(
            CallRecord(
                request=request.text,
                decision=decision,
                source_label=source_label,
                estimated_units=units,
                success=success,
                category=profile.name,
                correlation_id=get_correlation_id(),
            )
        )

    def _fetcher_for(self, profile: CategoryProfile, fetch_fn: FetchFn) -> FetchFn:
        if self.cache is None:
            return fetch_fn
        return cached_fetch(
            self.cache, fetch_fn, session_id=self._session_id, category=profile.name
        )

    async def govern(
        self,
        request: Union[Request, str],
        category: Union[CategoryProfile, str],
        fetch_fn: FetchFn,
        *,
        region: Optional[str] = None,
        echo_on_failure: bool = False,
    ) -> GovernedResult:
        """Run one governed call.

        Args:
            request: Request text or ``Request`` (its tag is the fan-out zone)
            category: Category name or profile
            fetch_fn: Async ``locator -> ContentSample``
            region: Market region for source selection; defaults to the
                request tag, then the category's default region
            echo_on_failure: Return an ErrorEcho record instead of raising
                when every source fails

        Returns:
            GovernedResult for the emitted reply

        Raises:
            ChainExhaustedError: every source failed and ``echo_on_failure``
                is not set
        """
        if isinstance(request, str):
            request = Request(request)
        profile = category if isinstance(category, CategoryProfile) else get_profile(category)
        if request.is_empty:
            return self._empty_result(request, profile)

        region_key = normalize_region(region or request.tag or profile.default_region)
        priority = classify(request.text, profile.keywords)
        chain = fallback.build(request, profile, region_key, priority)
        logger.debug(
            "Governing %s request (%s, %s): %d candidates",
            profile.name,
            priority.value,
            region_key,
            len(chain),
        )
        return await self._govern_chain(
            request, profile, chain, fetch_fn, echo_on_failure=echo_on_failure
        )

    async def govern_search(
        self,
        request: Union[Request, str],
        fetch_fn: FetchFn,
        *,
        engine: str = "google",
    ) -> GovernedResult:
        """Govern a web search: results pages from ``engine``, then the other engines.

        Raises:
            ValueError: unknown engine
            ChainExhaustedError: every engine failed or returned unusable content
        """
        if isinstance(request, str):
            request = Request(request)
        if request.is_empty:
            return self._empty_result(request, WEB)
        priority = classify(request.text)
        chain = fallback.build_search(request, engine, priority)
        return await self._govern_chain(request, WEB, chain, fetch_fn)

    async def govern_scrape(
        self,
        url: str,
        fetch_fn: FetchFn,
        *,
        query: Optional[str] = None,
    ) -> GovernedResult:
        """Govern one caller-supplied page.

        ``query`` (what the caller wants from the page) drives priority and
        the reply's abbreviation; without it the URL itself is the request.

        Raises:
            ChainExhaustedError: the page failed or returned unusable content
        """
        request = Request((query or "").strip() or url.strip())
        if request.is_empty:
            return self._empty_result(request, WEB)
        priority = classify(request.text)
        chain = fallback.build_scrape(url.strip(), priority)
        return await self._govern_chain(request, WEB, chain, fetch_fn)

    def _empty_result(self, request: Request, profile: CategoryProfile) -> GovernedResult:
        cfg = self.config
        text = render(Decision.EMPTY, request, "", 0, profile=profile, config=cfg)
        if cfg.enabled:
            remaining = self.ledger.commit(0).remaining
        else:
            remaining = self._remaining()
        self._record(request, profile, Decision.EMPTY.value, None, 0, True)
        return GovernedResult(
            record=EmissionRecord(Decision.EMPTY, text, 0),
            priority=Priority.LOW,
            remaining_after=remaining,
        )

    def _error_echo_result(
        self,
        request: Request,
        profile: CategoryProfile,
        priority: Priority,
        attempts: List[FetchAttempt],
    ) -> GovernedResult:
        cfg = self.config
        text = render(Decision.ERROR_ECHO, request, "", 0, profile=profile, config=cfg)
        if cfg.enabled:
            remaining = self.ledger.commit(0).remaining
        else:
            remaining = self._remaining()
        return GovernedResult(
            record=EmissionRecord(Decision.ERROR_ECHO, text, 0),
            priority=priority,
            remaining_after=remaining,
            attempts=attempts,
        )

    async def _govern_chain(
        self,
        request: Request,
        profile: CategoryProfile,
        chain: FallbackChain,
        fetch_fn: FetchFn,
        *,
        echo_on_failure: bool = False,
    ) -> GovernedResult:
        cfg = self.config
        priority = chain.priority
        attempts: List[FetchAttempt] = []
        try:
            found = await fallback.run(
                chain,
                self._fetcher_for(profile, fetch_fn),
                remaining_fn=self._remaining,
                config=cfg,
                attempts=attempts,
            )
        except ChainExhaustedError as e:
            logger.warning("All sources failed for %s request %r: %s", profile.name, request.text, e)
            self._record(request, profile, None, None, 0, False)
            if not echo_on_failure:
                raise
            return self._error_echo_result(request, profile, priority, attempts)

        content = found.sample.raw_text

        if not cfg.enabled:
            self._record(request, profile, PASSTHROUGH, found.source_label, 0, True)
            return GovernedResult(
                record=EmissionRecord(None, content, 0),
                priority=priority,
                source_label=found.source_label,
                remaining_after=self._remaining(),
                attempts=attempts,
            )

        snapshot = self.ledger.remaining()
        assessment = assess(content, cfg)
        decision = decide(request, content, assessment, snapshot.remaining, cfg)
        units = recommended_units(request.text, priority, snapshot.remaining, cfg.per_call_cap)
        text = render(decision, request, content, units, profile=profile, config=cfg)
        text = hard_cap(text, hard_cap_limit(snapshot.remaining, cfg))
        charged = 0 if decision.zero_cost else estimate_units(text, cfg.chars_per_unit)

        after = self.ledger.commit(charged)
        self._record(request, profile, decision.value, found.source_label, charged, True)
        logger.info(
            "Governed %s reply: decision=%s score=%d units=%d/%d remaining=%d",
            profile.name,
            decision.value,
            assessment.score,
            charged,
            units,
            after.remaining,
        )
        return GovernedResult(
            record=EmissionRecord(decision, text, charged),
            priority=priority,
            source_label=found.source_label,
            assessment=assessment,
            remaining_after=after.remaining,
            attempts=attempts,
        )

    async def govern_fanout(
        self,
        text: str,
        category: Union[CategoryProfile, str],
        fetch_fn: FetchFn,
        zones: Sequence[str],
    ) -> FanoutResult:
        """Govern ``text`` once per zone, concurrently.

        Every zone draws from the same ledger. A zone whose sources all fail,
        or whose call raises, contributes an ErrorEcho line instead of failing
        the whole call; every zone runs to completion before this returns.
        Cancellation is re-raised once the sibling zones have settled.
        """
        profile = category if isinstance(category, CategoryProfile) else get_profile(category)
        zone_list = [z.strip() for z in zones if z and z.strip()]
        requests = [Request(text, tag=zone) for zone in zone_list]
        outcomes = await asyncio.gather(
            *(self.govern(r, profile, fetch_fn, echo_on_failure=True) for r in requests),
            return_exceptions=True,
        )

        results: List[GovernedResult] = []
        cancelled: Optional[BaseException] = None
        for request, outcome in zip(requests, outcomes):
            if isinstance(outcome, GovernedResult):
                results.append(outcome)
                continue
            if not isinstance(outcome, Exception):
                cancelled = cancelled or outcome
                continue
            logger.error(
                "Zone %s failed for %s request %r: %s: %s",
                request.tag,
                profile.name,
                request.text,
                type(outcome).__name__,
                outcome,
            )
            self._record(request, profile, None, None, 0, False)
            priority = classify(request.text, profile.keywords)
            results.append(self._error_echo_result(request, profile, priority, []))
        if cancelled is not None:
            raise cancelled
        return FanoutResult(zones=zone_list, results=results)

    def on_session_start(self) -> str:
        """Start a new logical session: reset the ledger and clear the cache.

        Returns:
            The new session id
        """
        self.ledger.reset()
        if self.cache is not None:
            self.cache.clear()
        self._session_id = generate_correlation_id("session")
        logger.info("Started session %s", self._session_id)
        return self._session_id

    def status(self) -> Dict[str, Any]:
        """Ledger counters plus session and cache state."""
        data: Dict[str, Any] = {
            "session_id": self._session_id,
            "enabled": self.config.enabled,
            **self.ledger.stats(),
        }
        if self.cache is not None:
            data["cache"] = self.cache.stats().to_dict()
        return data


def create_governor(config: ServerConfig) -> Governor:
    """Build a governor wired to the configured ledger, cache and call log."""
    cache = None
    if config.cache.enabled:
        cache = ResultCache(
            ttl_seconds=config.cache.ttl_seconds,
            max_entries=config.cache.max_entries,
        )
    metrics_log = create_call_metrics_log(
        config.metrics_log.enabled,
        config.metrics_log.get_storage_path(),
    )
    return Governor(
        config.governor,
        ledger=get_ledger(config.governor.total_capacity),
        metrics_log=metrics_log,
        cache=cache,
    )


_governor: Optional[Governor] = None


def get_governor(config: Optional[ServerConfig] = None) -> Governor:
    """Return the process-wide governor, creating it on first use."""
    global _governor
    if _governor is None:
        _governor = create_governor(config or get_config())
    return _governor


def set_governor(governor: Optional[Governor]) -> None:
    """Replace (or with None, forget) the process-wide governor."""
    global _governor
    _governor = governor
