"""Process-wide quota ledger for emitted output units.

The ledger is a soft budget: ``remaining()`` is read when a reply is sized
and ``commit()`` is called after it is rendered. Concurrent calls that read
the same snapshot can both decide they have headroom and together push
``consumed`` past ``capacity``. Commits are never rejected; the overshoot
shows up as a smaller ``remaining()`` for every later call, which drives
them toward the emergency levels.

All mutation happens under one lock, so the counters themselves are never
torn, whether callers are asyncio tasks or worker threads.
"""

import logging
import threading
from typing import Any, Dict, NamedTuple, Optional

logger = logging.getLogger(__name__)

DEFAULT_CAPACITY = 4500


class LedgerSnapshot(NamedTuple):
    """Point-in-time read of the ledger."""

    consumed: int
    remaining: int


class QuotaLedger:
    """Shared counter of consumed output units against a fixed capacity.

    Attributes:
        capacity: Fixed ceiling in units
    """

    def __init__(self, capacity: int = DEFAULT_CAPACITY):
        if capacity < 0:
            raise ValueError(f"capacity must be non-negative, got {capacity}")
        self.capacity = capacity
        self._consumed = 0
        self._calls_seen = 0
        self._lock = threading.Lock()

    def remaining(self) -> LedgerSnapshot:
        """Snapshot ``(consumed, remaining)``; remaining goes negative on overshoot."""
        with self._lock:
            return LedgerSnapshot(self._consumed, self.capacity - self._consumed)

    def reserve_estimate(self, units: int) -> bool:
        """Advisory check: would ``units`` fit right now? Does not reserve anything."""
        with self._lock:
            return self._consumed + max(0, units) <= self.capacity

    def commit(self, units: int) -> LedgerSnapshot:
        """Charge ``units`` and count one call. Never rejects.

        Returns:
            Snapshot taken immediately after the commit
        """
        if units < 0:
            logger.warning("Negative commit of %d units clamped to 0", units)
            units = 0
        with self._lock:
            self._consumed += units
            self._calls_seen += 1
            snapshot = LedgerSnapshot(self._consumed, self.capacity - self._consumed)
        if snapshot.remaining < 0:
            logger.info(
                "Quota overshoot: consumed %d of %d units",
                snapshot.consumed,
                self.capacity,
            )
        return snapshot

    def reset(self) -> None:
        """Zero both counters (new logical session)."""
        with self._lock:
            self._consumed = 0
            self._calls_seen = 0
        logger.debug("Quota ledger reset (capacity=%d)", self.capacity)

    @property
    def calls_seen(self) -> int:
        with self._lock:
            return self._calls_seen

    def stats(self) -> Dict[str, Any]:
        with self._lock:
            consumed = self._consumed
            calls = self._calls_seen
        utilization = (consumed / self.capacity * 100) if self.capacity else 100.0
        return {
            "capacity": self.capacity,
            "consumed": consumed,
            "remaining": self.capacity - consumed,
            "calls_seen": calls,
            "utilization_pct": round(utilization, 1),
        }


_ledger: Optional[QuotaLedger] = None
_ledger_lock = threading.Lock()


def get_ledger(capacity: int = DEFAULT_CAPACITY) -> QuotaLedger:
    """Return the process-wide ledger, creating it on first use.

    ``capacity`` only applies to that first call.
    """
    global _ledger
    with _ledger_lock:
        if _ledger is None:
            _ledger = QuotaLedger(capacity)
        return _ledger


def reset_ledger_instance() -> None:
    """Forget the process-wide ledger (tests only)."""
    global _ledger
    with _ledger_lock:
        _ledger = None
