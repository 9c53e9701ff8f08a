"""Status reporter: read-only projection of the scheduler's CycleState.

Never touches the ledger or oracle; answers from the last known state
so the HTTP surface stays responsive while a cycle is mid-flight.
"""

from __future__ import annotations

import math
from datetime import datetime
from typing import Any

from yieldkeeper.core.scheduler import CycleScheduler


def _iso(value: datetime | None) -> str | None:
    return value.isoformat() if value is not None else None


class StatusReporter:
    """Build the ``/api/status`` payload from scheduler state."""

    def __init__(self, scheduler: CycleScheduler) -> None:
        self._scheduler = scheduler

    def seconds_until_next_scan(self, next_scan_time: datetime | None, now: datetime) -> int:
        """``max(0, next - now)`` in whole seconds; 0 before the first cycle."""
        if next_scan_time is None:
            return 0
        return max(0, math.floor((next_scan_time - now).total_seconds()))

    def report(self) -> dict[str, Any]:
        state = self._scheduler.state
        now = self._scheduler.now()
        return {
            "lastScanTime": _iso(state.last_scan_time),
            "nextScanTime": _iso(state.next_scan_time),
            "secondsUntilNextScan": self.seconds_until_next_scan(state.next_scan_time, now),
            "scanIntervalSeconds": state.scan_interval_s,
            "isScanning": state.is_scanning,
            "phase": state.phase.value,
            "cyclesCompleted": state.cycles_completed,
            "lastCycle": state.last_report.to_dict() if state.last_report else None,
        }
