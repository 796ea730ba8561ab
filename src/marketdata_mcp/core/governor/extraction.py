"""Labelled indicator extraction from fetched page text.

Each indicator is a ``(label, pattern)`` pair whose first capture group is
the value to emit. Categories order these from most to least important; the
renderer takes them in that order until its character budget runs out.
"""

import re
from typing import List, Optional, Pattern, Sequence, Tuple

from marketdata_mcp.core.governor.quality import count_domain_signals

Indicator = Tuple[str, Pattern[str]]

_NUM = r"[$₹€£¥]?\s?\d[\d,]*(?:\.\d+)?"
_SCALE = r"(?:\s?(?:trillion|billion|million|crore|cr|lakh|[tbmk])\b)?"
_PCT = r"[+-]?\d+(?:\.\d+)?\s?%"
_SEP = r"\s*[:=-]?\s*(?:is\s+|of\s+|at\s+)?"


def _indicator(label: str, pattern: str) -> Indicator:
    return label, re.compile(pattern, re.IGNORECASE)


PRICE = _indicator(
    "Price",
    r"\b(?:current\s+price|last\s+price|share\s+price|price|ltp|last|current)\b"
    + _SEP
    + rf"({_NUM})",
)
NAV = _indicator("NAV", r"\bnav\b" + _SEP + rf"({_NUM})")
MARKET_CAP = _indicator(
    "Market Cap",
    r"\bmarket\s*cap(?:italization)?\b" + _SEP + rf"({_NUM}{_SCALE})",
)
PE_RATIO = _indicator(
    "P/E",
    r"\bp\s*/?\s*e\b(?:\s*ratio)?(?:\s*\(ttm\))?" + _SEP + r"(\d+(?:\.\d+)?)",
)
VOLUME = _indicator(
    "Volume",
    r"(?<!24h )\bvolume\b" + _SEP + rf"(\d[\d,]*(?:\.\d+)?{_SCALE})",
)
VOLUME_24H = _indicator(
    "24h Volume",
    r"\b(?:24h|24-hour|24\s+hour)\s*(?:trading\s+)?volume\b" + _SEP + rf"({_NUM}{_SCALE})",
)
CHANGE = _indicator(
    "Change",
    r"\b(?:change|chg)\b(?:\s*\(24h\))?" + _SEP + rf"([+-]?[$₹€£¥]?\d[\d,]*(?:\.\d+)?\s?%?)",
)
YIELD = _indicator(
    "Yield",
    r"\byield\b(?:\s+to\s+maturity)?" + _SEP + rf"({_PCT})",
)
COUPON = _indicator("Coupon", r"\bcoupon(?:\s+rate)?\b" + _SEP + rf"({_PCT})")
MATURITY = _indicator(
    "Maturity",
    r"\bmaturity(?:\s+date)?\b"
    + _SEP
    + r"(\d{4}-\d{2}-\d{2}|\d{1,2}[/-]\d{1,2}[/-]\d{2,4}|\d+\s?(?:years?|yrs?)\b)",
)
DAY_HIGH = _indicator("High", r"\b(?:day'?s?\s+|52[\s-]week\s+)?high\b" + _SEP + rf"({_NUM})")
DAY_LOW = _indicator("Low", r"\b(?:day'?s?\s+|52[\s-]week\s+)?low\b" + _SEP + rf"({_NUM})")
AUM = _indicator(
    "AUM",
    r"\b(?:aum|assets\s+under\s+management|net\s+assets|fund\s+size)\b"
    + _SEP
    + rf"({_NUM}{_SCALE})",
)
EXPENSE_RATIO = _indicator("Expense Ratio", r"\bexpense\s+ratio\b" + _SEP + rf"({_PCT})")
RETURNS = _indicator(
    "Returns",
    r"\b(?:1y|1-year|1\s+year|one\s+year)?\s*returns?\b(?:\s*\(1y\))?" + _SEP + rf"({_PCT})",
)

_SENTENCE_SPLIT = re.compile(r"(?<=[.!?])\s+|\n+")
_MARKDOWN_NOISE = re.compile(r"^[\s#>*|\-]+|[*_`|]+")
_WHITESPACE = re.compile(r"\s+")


def _normalize_value(value: str) -> str:
    value = _WHITESPACE.sub(" ", value).strip()
    return value.rstrip(",.")


def extract_indicators(
    content: str,
    indicators: Sequence[Indicator],
    limit: Optional[int] = None,
) -> List[Tuple[str, str]]:
    """Return ``(label, value)`` for each indicator found, in indicator order.

    Only the first match of each pattern is used. Labels already emitted are
    not repeated (e.g. "Price" from both a price and a NAV pattern).
    """
    found: List[Tuple[str, str]] = []
    seen_labels = set()
    for label, pattern in indicators:
        if limit is not None and len(found) >= limit:
            break
        if label in seen_labels:
            continue
        match = pattern.search(content)
        if not match:
            continue
        value = _normalize_value(match.group(1))
        if not value:
            continue
        found.append((label, value))
        seen_labels.add(label)
    return found


def first_indicator(content: str, indicators: Sequence[Indicator]) -> Optional[str]:
    """Value of the highest-priority indicator present, or None."""
    found = extract_indicators(content, indicators, limit=1)
    return found[0][1] if found else None


def first_signal_sentence(content: str) -> Optional[str]:
    """First sentence/line that carries at least one domain signal."""
    for chunk in _SENTENCE_SPLIT.split(content):
        sentence = _WHITESPACE.sub(" ", _MARKDOWN_NOISE.sub(" ", chunk)).strip()
        if sentence and count_domain_signals(sentence) >= 1:
            return sentence
    return None
