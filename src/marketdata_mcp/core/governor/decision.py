"""Degradation level selection.

Each call runs the same decision table against a fresh remaining-capacity
snapshot; first matching row wins:

    1. empty request or empty content          -> EMPTY
    2. remaining < emergency_floor             -> SKIP if no domain signal, else EMERGENCY
    3. remaining < low_floor                   -> SKIP if error page, else KEY_METRICS
    4. error page                              -> SKIP
       score  0-30                             -> SKIP
       score 31-50                             -> EMERGENCY
       score 51-70                             -> KEY_METRICS (MINIMAL for zone-tagged requests)
       score 71-85, or content too long        -> SUMMARY
       score 86-100                            -> FILTERED

ERROR_ECHO is never chosen here; the governor uses it when no source
produced content at all.
"""

from typing import Optional

from marketdata_mcp.config import GovernorConfig
from marketdata_mcp.core.governor.models import Decision, QualityAssessment, Request

_DEFAULTS = GovernorConfig()


def decide(
    request: Request,
    content: str,
    assessment: QualityAssessment,
    remaining_capacity: int,
    config: Optional[GovernorConfig] = None,
) -> Decision:
    """Pick the degradation level for one reply.

    Deterministic in its inputs.
    """
    cfg = config or _DEFAULTS

    if request.is_empty or not content:
        return Decision.EMPTY

    if remaining_capacity < cfg.emergency_floor:
        if not assessment.has_domain_signal:
            return Decision.SKIP
        return Decision.EMERGENCY

    if remaining_capacity < cfg.low_floor:
        if assessment.is_error_page:
            return Decision.SKIP
        return Decision.KEY_METRICS

    if assessment.is_error_page:
        return Decision.SKIP

    score = assessment.score
    if score <= 30:
        return Decision.SKIP
    if score <= 50:
        return Decision.EMERGENCY
    if score <= 70:
        return Decision.MINIMAL if request.tag else Decision.KEY_METRICS
    if score <= 85 or len(content) > cfg.max_content_length:
        return Decision.SUMMARY
    return Decision.FILTERED
