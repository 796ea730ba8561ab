"""Content quality scoring.

``assess`` is a pure, total function of the content string:

    score = 10                        always
          + 60  if has_domain_signal  (>= 2 currency symbols / financial terms)
          + 20  if length in the efficient window (default 20-1000 chars)
          + 10  if not an error page
    capped at 100; empty content scores 0 with no flags.

Usage:
    from marketdata_mcp.core.governor.quality import assess, estimate_units

    qa = assess("price: $123.45, market cap: $10B")
    qa.score               # 100
    estimate_units("abc")  # 1
"""

import math
import re
from typing import Optional

from marketdata_mcp.config import GovernorConfig
from marketdata_mcp.core.governor.models import QualityAssessment

_DEFAULTS = GovernorConfig()

CURRENCY_SYMBOLS = ("$", "₹", "€", "£", "¥")

FINANCIAL_KEYWORDS = (
    "price",
    "market cap",
    "volume",
    "p/e",
    "dividend",
    "earnings",
    "revenue",
    "eps",
    "yield",
    "nav",
    "52 week",
    "52-week",
    "shares",
    "trading",
    "stock",
    "quote",
    "high",
    "low",
    "open",
    "close",
    "change",
)

ERROR_MARKERS = ("error", "not found", "forbidden", "access denied")

NAVIGATION_WORDS = ("menu", "sign in", "login", "register", "navigation")

_KEYWORD_RE = re.compile(
    r"(?<![a-z0-9])(?:"
    + "|".join(re.escape(k) for k in sorted(FINANCIAL_KEYWORDS, key=len, reverse=True))
    + r")(?![a-z0-9])"
)
_NAVIGATION_RE = re.compile(
    r"(?<![a-z0-9])(?:" + "|".join(re.escape(w) for w in NAVIGATION_WORDS) + r")(?![a-z0-9])"
)
# Status codes only count as standalone numbers, so "$1,500" stays a price
_STATUS_CODE_RE = re.compile(r"(?<![\d.,$₹€£¥])(?:404|500)(?![\d.,]\d|\d)")


def count_domain_signals(content: str) -> int:
    """Number of currency symbols plus financial keyword occurrences."""
    lowered = content.lower()
    symbols = sum(lowered.count(s) for s in CURRENCY_SYMBOLS)
    return symbols + len(_KEYWORD_RE.findall(lowered))


def is_error_page(content: str) -> bool:
    """True if the content carries an HTTP or provider failure marker."""
    lowered = content.lower()
    if any(marker in lowered for marker in ERROR_MARKERS):
        return True
    return _STATUS_CODE_RE.search(lowered) is not None


def is_boilerplate_heavy(content: str, ratio: float = _DEFAULTS.boilerplate_ratio) -> bool:
    """True if navigation words make up more than ``ratio`` of all words."""
    words = content.split()
    if not words:
        return False
    hits = len(_NAVIGATION_RE.findall(content.lower()))
    return hits / len(words) > ratio


def assess(content: str, config: Optional[GovernorConfig] = None) -> QualityAssessment:
    """Score a raw content string.

    Args:
        content: Fetched text
        config: Thresholds (defaults to ``GovernorConfig()``)

    Returns:
        QualityAssessment; identical for identical input
    """
    cfg = config or _DEFAULTS
    if not content or not content.strip():
        return QualityAssessment()

    has_signal = count_domain_signals(content) >= cfg.domain_signal_min
    error_page = is_error_page(content)
    boilerplate = is_boilerplate_heavy(content, cfg.boilerplate_ratio)

    score = 10
    if has_signal:
        score += 60
    if cfg.efficient_min_chars <= len(content) <= cfg.efficient_max_chars:
        score += 20
    if not error_page:
        score += 10

    return QualityAssessment(
        score=min(score, 100),
        has_domain_signal=has_signal,
        is_error_page=error_page,
        is_boilerplate_heavy=boilerplate,
    )


def estimate_units(text: str, chars_per_unit: float = _DEFAULTS.chars_per_unit) -> int:
    """Budget units for ``text``: ``ceil(len(text) / chars_per_unit)``."""
    if not text:
        return 0
    return math.ceil(len(text) / chars_per_unit)
