"""Cycle scheduler.

Drives Enumerate → Filter → Validate → Submit as one cycle:

    IDLE → SCANNING → VALIDATING → SUBMITTING → IDLE
    IDLE → SCANNING → IDLE                      (no candidates)

Single-flight: starting a cycle is a non-blocking acquire on a lock, i.e.
a compare-and-swap on the "running" token. A trigger that loses the race
is logged and dropped; it never waits and never runs a second cycle
alongside the first.

Timing comes from a ticker. ``IntervalTicker`` fires at a fixed rate until
the shutdown event is set; tests drive cycles with their own ticker.
"""

from __future__ import annotations

import asyncio
import threading
import time
from collections.abc import Callable
from dataclasses import replace
from datetime import UTC, datetime, timedelta
from typing import Protocol

from yieldkeeper.core.health import HealthValidator
from yieldkeeper.core.models import CyclePhase, CycleReport, CycleState, SubmissionStatus
from yieldkeeper.core.scanner import VaultScanner
from yieldkeeper.core.submitter import RepaymentSubmitter
from yieldkeeper.utils.logger import get_logger

logger = get_logger("scheduler")


def _utcnow() -> datetime:
    return datetime.now(UTC)


# ---------------------------------------------------------------------------
# Tickers
# ---------------------------------------------------------------------------


class Ticker(Protocol):
    async def wait(self) -> bool:
        """Block until the next tick. False means shut down."""
        ...


class IntervalTicker:
    """Fixed-rate ticker with a shutdown signal.

    Ticks land on ``start + k * interval``. If a cycle overruns one or more
    deadlines, the missed ticks collapse into the next future one.

    Args:
        interval_s: Seconds between ticks.
        shutdown: Event that ends the ticker.
        clock: Monotonic clock (injectable for tests).
    """

    def __init__(
        self,
        interval_s: float,
        shutdown: asyncio.Event,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        if interval_s <= 0:
            raise ValueError("interval_s must be positive")
        self._interval_s = interval_s
        self._shutdown = shutdown
        self._clock = clock
        self._deadline = clock()
        self.missed_ticks = 0

    async def wait(self) -> bool:
        if self._shutdown.is_set():
            return False

        self._deadline += self._interval_s
        now = self._clock()
        while self._deadline <= now:
            self._deadline += self._interval_s
            self.missed_ticks += 1
            logger.warning("ticker_missed_tick", interval_s=self._interval_s)

        try:
            await asyncio.wait_for(self._shutdown.wait(), timeout=self._deadline - now)
        except TimeoutError:
            return True
        return False


# ---------------------------------------------------------------------------
# Scheduler
# ---------------------------------------------------------------------------


class CycleScheduler:
    """Owns CycleState and runs keeper cycles one at a time.

    Args:
        scanner: Phase 1 (enumeration + cheap filter).
        validator: Phase 2 (fresh price, health factor).
        submitter: Phase 3 (simulate, submit, pace).
        interval_s: Scan interval, used for ``next_scan_time``.
        clock: Wall clock returning aware datetimes (injectable for tests).
    """

    def __init__(
        self,
        scanner: VaultScanner,
        validator: HealthValidator,
        submitter: RepaymentSubmitter,
        interval_s: int,
        clock: Callable[[], datetime] = _utcnow,
    ) -> None:
        self._scanner = scanner
        self._validator = validator
        self._submitter = submitter
        self._interval = timedelta(seconds=interval_s)
        self._clock = clock
        self._gate = threading.Lock()
        self._state = CycleState(scan_interval_s=interval_s)

    @property
    def state(self) -> CycleState:
        """Copy of the current state; callers can't mutate the scheduler's."""
        return replace(self._state)

    def now(self) -> datetime:
        return self._clock()

    async def run(self, ticker: Ticker) -> None:
        """One immediate cycle, then one per tick until the ticker stops."""
        logger.info("scheduler_started", interval_s=self._state.scan_interval_s)
        await self.run_cycle()
        while await ticker.wait():
            await self.run_cycle()
        logger.info("scheduler_stopped", cycles=self._state.cycles_completed)

    async def run_cycle(self) -> CycleReport | None:
        """Run one cycle. Returns None if another cycle holds the gate."""
        if not self._gate.acquire(blocking=False):
            logger.warning(
                "cycle_skipped_overlap", running_since=str(self._state.last_scan_time)
            )
            return None

        try:
            started = self._clock()
            report = CycleReport(started_at=started)
            self._state.last_scan_time = started
            self._state.next_scan_time = started + self._interval
            self._state.is_scanning = True
            self._state.phase = CyclePhase.SCANNING
            logger.info("cycle_started", at=started.isoformat())

            try:
                await self._execute(report)
            except Exception as e:
                report.error = f"{type(e).__name__}: {e}"
                logger.error("cycle_error", error=str(e), error_type=type(e).__name__)
            finally:
                report.finished_at = self._clock()
                self._state.last_report = report
                self._state.cycles_completed += 1
                self._state.phase = CyclePhase.IDLE
                self._state.is_scanning = False

            logger.info(
                "cycle_complete",
                processed=report.submitted,
                skipped_low_health=report.skipped_low_health,
                simulation_rejected=report.simulation_rejected,
                failed=report.failed,
                duration_s=round((report.finished_at - started).total_seconds(), 3),
            )
            return report
        finally:
            self._gate.release()

    async def _execute(self, report: CycleReport) -> None:
        # Phase 1: cheap filters, no oracle
        scan = await self._scanner.scan()
        report.vaults_scanned = scan.vaults_scanned
        report.scan_errors = scan.errors
        report.candidates = len(scan.candidates)
        if not scan.candidates:
            logger.info("cycle_no_candidates")
            return

        # Phase 2: fresh prices for candidates only
        self._state.phase = CyclePhase.VALIDATING
        decisions = await self._validator.validate(scan.candidates)
        report.eligible = sum(1 for d in decisions if d.eligible)
        report.skipped_low_health = sum(
            1 for d in decisions if not d.eligible and d.health_factor is not None
        )

        # Phase 3: sequential submission
        self._state.phase = CyclePhase.SUBMITTING
        result = await self._submitter.submit_all(decisions)
        report.submitted = result.count(SubmissionStatus.SUBMITTED)
        report.simulation_rejected = result.count(SubmissionStatus.SIMULATION_REJECTED)
        report.failed = result.count(SubmissionStatus.FAILED)
