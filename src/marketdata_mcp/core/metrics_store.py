"""
Call metrics log for governed calls.

Every governed call pushes one telemetry record
``{request, decision, source_label, estimated_units, success}`` to a
``CallMetricsLog``. The governor only ever appends; reading back is for
inspection tools and tests.
"""

from __future__ import annotations

import fcntl
import json
import logging
import threading
from abc import ABC, abstractmethod
from dataclasses import dataclass, asdict, field
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Optional

logger = logging.getLogger(__name__)


def _utc_now() -> str:
    return datetime.now(timezone.utc).isoformat()


@dataclass
class CallRecord:
    """
    Telemetry for one governed call.

    Attributes:
        request: The request string as received
        decision: Degradation level value, "passthrough", or None on failure
        source_label: Label of the accepted source (None if none accepted)
        estimated_units: Units committed to the quota ledger
        success: False only when every candidate source failed
        category: Resource category (stock, crypto, ...)
        correlation_id: Request correlation ID, if any
        timestamp: ISO 8601 timestamp when recorded
    """

    request: str
    decision: Optional[str]
    source_label: Optional[str]
    estimated_units: int
    success: bool
    category: str = ""
    correlation_id: str = ""
    timestamp: str = field(default_factory=_utc_now)

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for JSON serialization."""
        return asdict(self)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "CallRecord":
        """Create from dictionary."""
        return cls(
            request=data.get("request", ""),
            decision=data.get("decision"),
            source_label=data.get("source_label"),
            estimated_units=int(data.get("estimated_units", 0)),
            success=bool(data.get("success", False)),
            category=data.get("category", ""),
            correlation_id=data.get("correlation_id", ""),
            timestamp=data.get("timestamp", ""),
        )


class CallMetricsLog(ABC):
    """Append-only sink for call records."""

    @abstractmethod
    def append(self, record: CallRecord) -> None:
        """
        Append one call record.

        Implementations must not raise: a telemetry failure never fails the
        governed call that produced it.
        """

    @abstractmethod
    def read_all(self) -> list[CallRecord]:
        """Return every stored record in append order."""


class InMemoryCallMetricsLog(CallMetricsLog):
    """Call log held in process memory (used when file logging is disabled)."""

    def __init__(self, max_records: int = 10000):
        self.max_records = max_records
        self._records: list[CallRecord] = []
        self._lock = threading.Lock()

    def append(self, record: CallRecord) -> None:
        with self._lock:
            self._records.append(record)
            if len(self._records) > self.max_records:
                del self._records[: len(self._records) - self.max_records]

    def read_all(self) -> list[CallRecord]:
        with self._lock:
            return list(self._records)


class FileCallMetricsLog(CallMetricsLog):
    """
    JSONL-based call log.

    One JSON object per line, appended under a process lock and an exclusive
    file lock so concurrent servers sharing the file do not interleave lines.
    """

    def __init__(self, path: str | Path):
        self.path = Path(path).expanduser()
        self.path.parent.mkdir(parents=True, exist_ok=True)
        self._lock = threading.Lock()

    def append(self, record: CallRecord) -> None:
        line = json.dumps(record.to_dict(), default=str, ensure_ascii=False)
        with self._lock:
            try:
                with open(self.path, "a", encoding="utf-8") as f:
                    fcntl.flock(f.fileno(), fcntl.LOCK_EX)
                    try:
                        f.write(line + "\n")
                        f.flush()
                    finally:
                        fcntl.flock(f.fileno(), fcntl.LOCK_UN)
            except OSError as e:
                logger.error(f"Failed to append call record: {e}")

    def read_all(self) -> list[CallRecord]:
        if not self.path.exists():
            return []
        records: list[CallRecord] = []
        with self._lock:
            with open(self.path, "r", encoding="utf-8") as f:
                for lineno, line in enumerate(f, start=1):
                    line = line.strip()
                    if not line:
                        continue
                    try:
                        records.append(CallRecord.from_dict(json.loads(line)))
                    except json.JSONDecodeError:
                        logger.warning(f"Invalid JSON in call log at line {lineno}")
        return records


def create_call_metrics_log(
    enabled: bool, storage_path: Optional[Path] = None
) -> CallMetricsLog:
    """Build the configured call log, falling back to memory on disk errors."""
    if enabled and storage_path is not None:
        try:
            return FileCallMetricsLog(storage_path)
        except OSError as e:
            logger.warning(
                f"Cannot open call log at {storage_path}, using memory: {e}"
            )
    return InMemoryCallMetricsLog()
