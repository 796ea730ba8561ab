"""Reply rendering, one strategy per degradation level.

Every strategy is a pure function of the decision inputs. Non-zero-cost
strategies render into a character budget of

    min(level_cap, floor(unit_budget * chars_per_unit))

so ``estimate_units(reply) <= unit_budget`` always holds. ``hard_cap`` is a
separate safety net driven only by the remaining ledger capacity.

Example:
    >>> render(Decision.FILTERED, Request("XYZ current price"),
    ...        "price: $123.45, market cap: $10B", 120, profile=STOCK)
    'Price: $123.45 | Market Cap: $10B'
"""

import math
import re
from typing import Callable, Dict, Optional

from marketdata_mcp.config import GovernorConfig
from marketdata_mcp.core.governor.categories import STOCK, CategoryProfile
from marketdata_mcp.core.governor.extraction import (
    extract_indicators,
    first_indicator,
    first_signal_sentence,
)
from marketdata_mcp.core.governor.models import Decision, Request

_DEFAULTS = GovernorConfig()

ELLIPSIS = "…"
HARD_CAP_MARKER = "..."
EMPTY_TEXT = "Query parameter is required"
ERROR_ECHO_TEMPLATE = "ERR {abbrev}: no reliable data"
SEPARATOR = " | "

REGION_ABBREVIATIONS = {
    "indian": "IN",
    "india": "IN",
    "us": "US",
    "usa": "US",
    "uk": "UK",
    "europe": "EU",
    "eu": "EU",
    "japan": "JP",
    "china": "CN",
    "global": "GL",
}

_NON_ALNUM = re.compile(r"[^A-Za-z0-9]")
_BLOCK_SPLIT = re.compile(r"\n\s*\n")

Strategy = Callable[[Request, str, int, CategoryProfile], str]


def truncate(text: str, limit: int, marker: str = ELLIPSIS) -> str:
    """Fit ``text`` into ``limit`` characters, marker included.

    Cuts at the last whitespace when that keeps at least half the room,
    otherwise hard-cuts.
    """
    if len(text) <= limit:
        return text
    if limit <= len(marker):
        return text[: max(0, limit)]
    room = limit - len(marker)
    cut = text[:room]
    space = cut.rfind(" ")
    if space >= room // 2:
        cut = cut[:space]
    return cut.rstrip(" ,;|:") + marker


def abbreviate(text: str, profile: CategoryProfile = STOCK) -> str:
    """Short identifier for the request's entity.

    Known names map through the category's symbol table; otherwise the first
    identifying token is cut to six characters.
    """
    known = profile.lookup_symbol(text)
    if known:
        return known
    symbol = profile.resolve_symbol(text)
    if symbol:
        cleaned = _NON_ALNUM.sub("", symbol)
        if cleaned:
            return cleaned[:6]
    return "REQ"


def abbreviate_tag(tag: str) -> str:
    key = tag.strip().lower()
    if key in REGION_ABBREVIATIONS:
        return REGION_ABBREVIATIONS[key]
    return _NON_ALNUM.sub("", tag)[:2].upper() or "--"


def char_budget(decision: Decision, unit_budget: int, config: GovernorConfig) -> int:
    caps = {
        Decision.EMERGENCY: config.emergency_max_chars,
        Decision.KEY_METRICS: config.key_metrics_max_chars,
        Decision.SUMMARY: config.summary_max_chars,
        Decision.MINIMAL: config.minimal_max_chars,
        Decision.FILTERED: config.filtered_max_chars,
    }
    by_units = math.floor(max(0, unit_budget) * config.chars_per_unit)
    return max(0, min(caps[decision], by_units))


def _key_metrics_line(content: str, profile: CategoryProfile) -> str:
    found = extract_indicators(content, profile.indicators, limit=3)
    return SEPARATOR.join(f"{label}: {value}" for label, value in found)


# ---------------------------------------------------------------------------
# Strategies
# ---------------------------------------------------------------------------


def _render_empty(request: Request, content: str, budget: int, profile: CategoryProfile) -> str:
    return EMPTY_TEXT


def _render_error_echo(
    request: Request, content: str, budget: int, profile: CategoryProfile
) -> str:
    return ERROR_ECHO_TEMPLATE.format(abbrev=abbreviate(request.text, profile))


def _render_skip(request: Request, content: str, budget: int, profile: CategoryProfile) -> str:
    return ""


def _render_emergency(
    request: Request, content: str, budget: int, profile: CategoryProfile
) -> str:
    value = first_indicator(content, profile.indicators) or "N/A"
    abbrev = abbreviate(request.text, profile)
    return truncate(f"{abbrev}:{value.replace(' ', '')}", budget)


def _render_key_metrics(
    request: Request, content: str, budget: int, profile: CategoryProfile
) -> str:
    line = _key_metrics_line(content, profile)
    if not line:
        line = f"{abbreviate(request.text, profile)}:N/A"
    return truncate(line, budget)


def _render_summary(
    request: Request, content: str, budget: int, profile: CategoryProfile
) -> str:
    line = _key_metrics_line(content, profile)
    if not line:
        line = first_signal_sentence(content) or ""
    return truncate(line, budget)


def _render_minimal(
    request: Request, content: str, budget: int, profile: CategoryProfile
) -> str:
    prefix = abbreviate_tag(request.tag) if request.tag else profile.tag
    line = _key_metrics_line(content, profile) or "N/A"
    return truncate(f"[{prefix}] {abbreviate(request.text, profile)} {line}", budget)


def _render_filtered(
    request: Request, content: str, budget: int, profile: CategoryProfile
) -> str:
    parts = []
    length = 0
    for label, value in extract_indicators(content, profile.indicators):
        part = f"{label}: {value}"
        added = len(part) + (len(SEPARATOR) if parts else 0)
        if length + added > budget:
            break
        parts.append(part)
        length += added
    if parts:
        return SEPARATOR.join(parts)
    return truncate(first_signal_sentence(content) or "", budget)


_STRATEGIES: Dict[Decision, Strategy] = {
    Decision.EMPTY: _render_empty,
    Decision.ERROR_ECHO: _render_error_echo,
    Decision.SKIP: _render_skip,
    Decision.EMERGENCY: _render_emergency,
    Decision.KEY_METRICS: _render_key_metrics,
    Decision.SUMMARY: _render_summary,
    Decision.MINIMAL: _render_minimal,
    Decision.FILTERED: _render_filtered,
}


def render(
    decision: Decision,
    request: Request,
    content: str,
    unit_budget: int,
    *,
    profile: Optional[CategoryProfile] = None,
    config: Optional[GovernorConfig] = None,
) -> str:
    """Produce the reply text for ``decision`` within ``unit_budget`` units.

    EMPTY, ERROR_ECHO and SKIP ignore the budget; they are never charged.
    """
    cfg = config or _DEFAULTS
    budget = 0 if decision.zero_cost else char_budget(decision, unit_budget, cfg)
    return _STRATEGIES[decision](request, content, budget, profile or STOCK)


def hard_cap_limit(remaining_capacity: int, config: Optional[GovernorConfig] = None) -> int:
    """Largest reply allowed at this remaining capacity.

    A tenth of the remaining budget in characters, held between the
    configured floor (60) and ceiling (2000).
    """
    cfg = config or _DEFAULTS
    scaled = int(max(0, remaining_capacity) * cfg.chars_per_unit * cfg.hard_cap_fraction)
    return min(cfg.hard_cap_max_chars, max(cfg.hard_cap_min_chars, scaled))


def hard_cap(text: str, max_chars: int) -> str:
    """Keep only the first block of an oversized reply, cut to ``max_chars``."""
    if len(text) <= max_chars:
        return text
    blocks = [b for b in _BLOCK_SPLIT.split(text) if b.strip()]
    first = blocks[0] if blocks else text
    if len(first) > max_chars:
        lines = [line for line in first.splitlines() if line.strip()]
        first = lines[0] if lines else first
    if len(first) > max_chars:
        first = first[: max(0, max_chars - len(HARD_CAP_MARKER))] + HARD_CAP_MARKER
    return first
