"""JSON output helpers for the marketdata CLI.

Every command prints exactly one response-v2 envelope: success envelopes
go to stdout, failures to stderr with exit code 1.
"""

import json
import sys
from dataclasses import asdict
from typing import Any, Mapping, NoReturn, Optional

from marketdata_mcp.core.context import generate_correlation_id, get_correlation_id
from marketdata_mcp.core.responses import error_response, success_response


def _request_id() -> str:
    return get_correlation_id() or generate_correlation_id("cli")


def emit(data: Any) -> None:
    """Print ``data`` as minified JSON to stdout."""
    print(json.dumps(data, separators=(",", ":"), ensure_ascii=False, default=str))


def emit_success(data: Mapping[str, Any]) -> None:
    """Wrap ``data`` in a success envelope and print it."""
    emit(asdict(success_response(data=data, request_id=_request_id())))


def emit_error(
    message: str,
    code: str = "INTERNAL_ERROR",
    *,
    error_type: str = "internal",
    remediation: Optional[str] = None,
    details: Optional[Mapping[str, Any]] = None,
) -> NoReturn:
    """Print an error envelope to stderr and exit with code 1.

    Raises:
        SystemExit: Always exits with code 1.
    """
    response = error_response(
        message,
        error_code=code,
        error_type=error_type,
        remediation=remediation,
        details=details,
        request_id=_request_id(),
    )
    print(
        json.dumps(asdict(response), separators=(",", ":"), ensure_ascii=False, default=str),
        file=sys.stderr,
    )
    sys.exit(1)
