"""Value types shared by the governor components.

Everything here is immutable except where noted. A governed call builds these
fresh and discards them when it returns; the quota ledger is the only state
that outlives a call.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, List, Optional, Tuple


class Priority(str, Enum):
    """Urgency tier of a request, highest first.

    CRITICAL: asks for a live/current value ("now", "live", "today")
    HIGH: asks for domain data without urgency ("price", "dividend")
    MEDIUM: a bare entity name with no qualifiers
    LOW: empty or ambiguous input
    """

    CRITICAL = "critical"
    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"

    @property
    def rank(self) -> int:
        """Numeric rank, 3 for CRITICAL down to 0 for LOW."""
        return {
            Priority.CRITICAL: 3,
            Priority.HIGH: 2,
            Priority.MEDIUM: 1,
            Priority.LOW: 0,
        }[self]


class Decision(str, Enum):
    """Degradation level chosen for one reply.

    Ordered roughly from least to most information:
        EMPTY: request or content missing; fixed prompt, no charge
        ERROR_ECHO: every source failed; abbreviated error line, no charge
        SKIP: content not worth emitting; empty reply, no charge
        EMERGENCY: one indicator, ~10-15 units
        KEY_METRICS: up to three indicators, ~20-40 units
        SUMMARY: indicators or first relevant sentence, ~40-60 units
        MINIMAL: key metrics prefixed with the region tag, ~60-80 units
        FILTERED: labelled extraction of all known indicators, ~80-100 units
    """

    EMPTY = "empty"
    ERROR_ECHO = "error_echo"
    SKIP = "skip"
    EMERGENCY = "emergency"
    KEY_METRICS = "key_metrics"
    SUMMARY = "summary"
    MINIMAL = "minimal"
    FILTERED = "filtered"

    @property
    def zero_cost(self) -> bool:
        """True for the short-circuit levels that never charge the ledger."""
        return self in (Decision.EMPTY, Decision.ERROR_ECHO, Decision.SKIP)


@dataclass(frozen=True)
class Request:
    """An entity-identifying query plus an optional region/category tag."""

    text: str
    tag: Optional[str] = None

    @property
    def is_empty(self) -> bool:
        return not self.text.strip()


@dataclass(frozen=True)
class ContentSample:
    """Raw text returned by one fetch, labelled with its source."""

    source_label: str
    raw_text: str


@dataclass(frozen=True)
class QualityAssessment:
    """Derived quality of a content sample.

    Attributes:
        score: 0-100, additive (see ``quality.assess``)
        has_domain_signal: enough currency symbols/financial keywords
        is_error_page: content carries an HTTP or provider failure marker
        is_boilerplate_heavy: navigation chrome dominates the words
    """

    score: int = 0
    has_domain_signal: bool = False
    is_error_page: bool = False
    is_boilerplate_heavy: bool = False

    def to_dict(self) -> Dict[str, Any]:
        return {
            "score": self.score,
            "has_domain_signal": self.has_domain_signal,
            "is_error_page": self.is_error_page,
            "is_boilerplate_heavy": self.is_boilerplate_heavy,
        }


@dataclass(frozen=True)
class EmissionRecord:
    """The committed output of a governed call and the charge applied for it.

    ``decision`` is None in pass-through mode.
    """

    decision: Optional[Decision]
    text: str
    estimated_units: int

    def to_dict(self) -> Dict[str, Any]:
        return {
            "decision": self.decision.value if self.decision else None,
            "text": self.text,
            "estimated_units": self.estimated_units,
        }


class SourceKind(str, Enum):
    """How a candidate locator is fetched."""

    DIRECT = "direct"
    SEARCH_QUERY = "search_query"


@dataclass(frozen=True)
class SourceCandidate:
    """One content source to try.

    Attributes:
        kind: DIRECT for a known-good page, SEARCH_QUERY for a search URL
        locator: URL handed to the fetch collaborator
        label: Short human-readable source name (reported to callers)
    """

    kind: SourceKind
    locator: str
    label: str


@dataclass(frozen=True)
class FallbackChain:
    """Ordered candidates for one request, already capped by priority."""

    candidates: Tuple[SourceCandidate, ...]
    priority: Priority

    def __len__(self) -> int:
        return len(self.candidates)

    def __iter__(self):
        return iter(self.candidates)

    @property
    def labels(self) -> List[str]:
        return [c.label for c in self.candidates]


@dataclass
class FetchAttempt:
    """Outcome of trying one candidate (mutable while a chain runs).

    ``outcome`` is one of "accepted", "rejected" or "failed".
    """

    label: str
    locator: str
    outcome: str
    detail: str = ""

    def to_dict(self) -> Dict[str, str]:
        return {
            "label": self.label,
            "locator": self.locator,
            "outcome": self.outcome,
            "detail": self.detail,
        }


class ChainExhaustedError(Exception):
    """Every candidate in a fallback chain failed or was rejected.

    Attributes:
        last_error: Error raised by the last candidate, if it raised one
        attempts: Per-candidate outcomes in the order they were tried
    """

    def __init__(
        self,
        message: str,
        *,
        last_error: Optional[BaseException] = None,
        attempts: Optional[List[FetchAttempt]] = None,
    ):
        super().__init__(message)
        self.last_error = last_error
        self.attempts: List[FetchAttempt] = list(attempts or [])

    def to_dict(self) -> Dict[str, Any]:
        return {
            "message": str(self),
            "last_error": str(self.last_error) if self.last_error else None,
            "attempts": [a.to_dict() for a in self.attempts],
        }


__all__ = [
    "ChainExhaustedError",
    "ContentSample",
    "Decision",
    "EmissionRecord",
    "FallbackChain",
    "FetchAttempt",
    "Priority",
    "QualityAssessment",
    "Request",
    "SourceCandidate",
    "SourceKind",
]
