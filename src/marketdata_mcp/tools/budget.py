"""Unified budget tool: inspect the shared output budget, start sessions and
read back per-call telemetry."""

from __future__ import annotations

import logging
from collections import Counter
from dataclasses import asdict
from typing import Any, Optional

from mcp.server.fastmcp import FastMCP

from marketdata_mcp.config import ServerConfig
from marketdata_mcp.core.context import sync_request_context
from marketdata_mcp.core.governor.engine import Governor, get_governor
from marketdata_mcp.core.naming import canonical_tool
from marketdata_mcp.core.responses import (
    ErrorCode,
    ErrorType,
    error_response,
    success_response,
    validation_error,
)
from marketdata_mcp.tools.router import (
    ActionDefinition,
    ActionRouter,
    ActionRouterError,
)

logger = logging.getLogger(__name__)


_ACTION_SUMMARY = {
    "status": "Ledger counters, session id and cache statistics",
    "start-session": "Reset the ledger and cache for a new logical session",
    "metrics": "Aggregate call telemetry: totals, units charged, decisions",
    "export": "Raw per-call telemetry records, newest last",
}


def perform_budget_status(governor: Governor) -> dict:
    """Return the current ledger state."""
    return asdict(success_response(data=governor.status()))


def perform_start_session(governor: Governor) -> dict:
    """Reset consumption and start a new session."""
    previous = governor.session_id
    session_id = governor.on_session_start()
    return asdict(
        success_response(
            session_id=session_id,
            previous_session_id=previous,
            remaining=governor.ledger.remaining().remaining,
            capacity=governor.ledger.capacity,
        )
    )


def perform_metrics_summary(governor: Governor) -> dict:
    """Aggregate the call telemetry recorded so far.

    ``health`` is "healthy" once at least one call has been governed and
    "ready" before that.
    """
    records = governor.metrics_log.read_all()
    failed = sum(1 for r in records if not r.success)
    by_decision = Counter(r.decision or "failed" for r in records)
    by_category = Counter(r.category or "unknown" for r in records)
    return asdict(
        success_response(
            health="healthy" if records else "ready",
            total_calls=len(records),
            failed_calls=failed,
            units_charged=sum(r.estimated_units for r in records),
            by_decision=dict(by_decision),
            by_category=dict(by_category),
            first_timestamp=records[0].timestamp if records else None,
            last_timestamp=records[-1].timestamp if records else None,
        )
    )


def perform_metrics_export(governor: Governor, limit: Optional[int] = None) -> dict:
    """Return recorded calls, newest last; ``limit`` keeps only the latest ones."""
    if limit is not None and (
        isinstance(limit, bool) or not isinstance(limit, int) or limit < 1
    ):
        return asdict(
            validation_error(
                "limit must be a positive integer",
                field="limit",
                remediation="Omit limit to export every record.",
            )
        )
    records = governor.metrics_log.read_all()
    selected = records[-limit:] if limit else records
    return asdict(
        success_response(
            records=[r.to_dict() for r in selected],
            count=len(selected),
            total=len(records),
        )
    )


def _handle_status(*, governor: Governor, **_: Any) -> dict:
    return perform_budget_status(governor)


def _handle_start_session(*, governor: Governor, **_: Any) -> dict:
    return perform_start_session(governor)


def _handle_metrics(*, governor: Governor, **_: Any) -> dict:
    return perform_metrics_summary(governor)


def _handle_export(*, governor: Governor, limit: Optional[int] = None, **_: Any) -> dict:
    return perform_metrics_export(governor, limit)


def _build_router() -> ActionRouter:
    definitions = [
        ActionDefinition(
            name="status",
            handler=_handle_status,
            summary=_ACTION_SUMMARY["status"],
        ),
        ActionDefinition(
            name="start-session",
            handler=_handle_start_session,
            summary=_ACTION_SUMMARY["start-session"],
        ),
        ActionDefinition(
            name="metrics",
            handler=_handle_metrics,
            summary=_ACTION_SUMMARY["metrics"],
        ),
        ActionDefinition(
            name="export",
            handler=_handle_export,
            summary=_ACTION_SUMMARY["export"],
        ),
    ]
    return ActionRouter(tool_name="budget", actions=definitions)


_BUDGET_ROUTER = _build_router()


def _dispatch_budget_action(
    action: str, *, governor: Governor, limit: Optional[int] = None
) -> dict:
    try:
        return _BUDGET_ROUTER.dispatch(action=action, governor=governor, limit=limit)
    except ActionRouterError as exc:
        allowed = ", ".join(exc.allowed_actions)
        return asdict(
            error_response(
                f"Unsupported budget action '{action}'. Allowed actions: {allowed}",
                error_code=ErrorCode.VALIDATION_ERROR,
                error_type=ErrorType.VALIDATION,
                remediation=f"Use one of: {allowed}",
                details={"action": action, "allowed_actions": exc.allowed_actions},
            )
        )


def register_budget_tool(
    mcp: FastMCP,
    config: ServerConfig,
    *,
    governor: Optional[Governor] = None,
) -> None:
    """Register the consolidated budget tool."""
    active_governor = governor or get_governor(config)

    @canonical_tool(
        mcp,
        canonical_name="budget",
    )
    def budget(action: str, limit: Optional[int] = None) -> dict:
        """Inspect or reset the shared output budget via `action` parameter.

        Actions:
        - status: ledger counters, session id and cache statistics
        - start-session: reset the ledger and cache
        - metrics: aggregate telemetry of governed calls
        - export: raw telemetry records

        Args:
            action: One of "status", "start-session", "metrics" or "export".
            limit: For "export", return only the latest `limit` records.
        """
        with sync_request_context():
            return _dispatch_budget_action(action, governor=active_governor, limit=limit)

    logger.debug("Registered budget tool")


__all__ = [
    "perform_budget_status",
    "perform_metrics_export",
    "perform_metrics_summary",
    "perform_start_session",
    "register_budget_tool",
]
