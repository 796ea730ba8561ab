"""Request urgency classification and per-call unit allowances.

Tiers are decided by vocabulary, highest tier first:

    "AAPL current price"  -> CRITICAL  (urgency word wins over "price")
    "AAPL dividend"       -> HIGH
    "AAPL"                -> MEDIUM    (bare entity)
    ""  /  "???"          -> LOW       (nothing to identify)

Anything else falls back to MEDIUM.
"""

import re
from functools import lru_cache
from typing import Iterable, Pattern, Tuple

from marketdata_mcp.core.governor.models import Priority

CRITICAL_KEYWORDS: Tuple[str, ...] = (
    "now",
    "live",
    "current",
    "currently",
    "today",
    "realtime",
    "real-time",
    "real time",
    "latest",
    "intraday",
    "breaking",
    "urgent",
    "instant",
)

HIGH_KEYWORDS: Tuple[str, ...] = (
    "price",
    "quote",
    "market cap",
    "volume",
    "pe",
    "p/e",
    "dividend",
    "earnings",
    "eps",
    "revenue",
    "chart",
    "trend",
    "performance",
    "nav",
    "yield",
    "analysis",
    "ratio",
    "fundamentals",
    "returns",
)

#: Share of the per-call cap each tier may spend
PRIORITY_FRACTIONS = {
    Priority.CRITICAL: 1.0,
    Priority.HIGH: 0.75,
    Priority.MEDIUM: 0.5,
    Priority.LOW: 0.25,
}

#: Default units a CRITICAL request may spend in one reply
DEFAULT_PER_CALL_CAP = 120

_SYMBOL_TOKEN = re.compile(r"^[A-Za-z0-9.]{1,15}$")


@lru_cache(maxsize=64)
def _keyword_pattern(keywords: Tuple[str, ...]) -> Pattern[str]:
    """Compile a word-boundary alternation; "p/e" and "real-time" stay whole."""
    ordered = sorted(keywords, key=len, reverse=True)
    body = "|".join(re.escape(k.lower()) for k in ordered)
    return re.compile(rf"(?<![a-z0-9])(?:{body})(?![a-z0-9])")


def matches_any(text: str, keywords: Iterable[str]) -> bool:
    """True if any keyword occurs in ``text`` as a whole word (case-insensitive)."""
    keys = tuple(keywords)
    if not keys:
        return False
    return _keyword_pattern(keys).search(text.lower()) is not None


def is_symbol_like(token: str) -> bool:
    """A ticker or name token: 1-15 letters/digits/dots with at least one letter."""
    return bool(_SYMBOL_TOKEN.match(token)) and any(c.isalpha() for c in token)


def classify(request: str, extra_high_keywords: Iterable[str] = ()) -> Priority:
    """Map a request string to an urgency tier.

    Pure and total: the same string always yields the same tier.

    Args:
        request: Raw request text
        extra_high_keywords: Category vocabulary that also counts as HIGH
            (e.g. "coupon" for bonds)

    Returns:
        The highest tier whose vocabulary matches
    """
    text = request.strip()
    if not text:
        return Priority.LOW

    if matches_any(text, CRITICAL_KEYWORDS):
        return Priority.CRITICAL
    if matches_any(text, HIGH_KEYWORDS + tuple(extra_high_keywords)):
        return Priority.HIGH

    if not any(is_symbol_like(t.strip(",;:!?")) for t in text.split()):
        return Priority.LOW
    # Bare entity names ("reliance", "tata motors") and unrecognized phrasing
    return Priority.MEDIUM


def recommended_units(
    request: str,
    priority: Priority,
    remaining_capacity: int,
    per_call_cap: int = DEFAULT_PER_CALL_CAP,
) -> int:
    """Units one reply may spend.

    A fixed fraction of ``per_call_cap`` by tier, never more than what is
    left in the ledger. An empty request gets nothing.
    """
    if not request.strip():
        return 0
    allowance = int(per_call_cap * PRIORITY_FRACTIONS[priority])
    return max(0, min(allowance, remaining_capacity))
