"""Budgeted response governor.

Import ``Governor`` from ``marketdata_mcp.core.governor.engine``; this
package namespace only re-exports the shared value types so that low-level
modules (cache, providers) can depend on them without pulling in the engine.
"""

from marketdata_mcp.core.governor.models import (
    ChainExhaustedError,
    ContentSample,
    Decision,
    EmissionRecord,
    Priority,
    QualityAssessment,
    Request,
)

__all__ = [
    "ChainExhaustedError",
    "ContentSample",
    "Decision",
    "EmissionRecord",
    "Priority",
    "QualityAssessment",
    "Request",
]
