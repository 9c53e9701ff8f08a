"""Phase 3 repayment submission.

Submissions are strictly sequential: each one consumes the keeper's next
nonce, so two in flight could collide. The lock below is held for the
whole batch and a pacing delay separates consecutive transactions. Every
submission is preceded by an eth_call simulation; a simulated revert
skips the candidate without spending gas.
"""

from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field

from yieldkeeper.core.models import (
    SolvencyDecision,
    SubmissionOutcome,
    SubmissionStatus,
)
from yieldkeeper.core.ports import LedgerError, LedgerWriter
from yieldkeeper.utils.logger import get_logger
from yieldkeeper.utils.units import format_ether, short_address

logger = get_logger("submitter")


@dataclass
class SubmissionReport:
    """Outcomes of one Phase 3 batch, in submission order."""

    outcomes: list[SubmissionOutcome] = field(default_factory=list)

    def count(self, status: SubmissionStatus) -> int:
        return sum(1 for o in self.outcomes if o.status is status)


class RepaymentSubmitter:
    """Simulate-then-submit processAutoRepayment, one owner at a time.

    Args:
        ledger: Ledger write port (owns the signing key and nonce).
        gas_limit: Fixed gas ceiling per transaction.
        delay_s: Pause after each submission before the next one.
        receipt_timeout_s: How long to wait for a receipt.
        sleep: Injectable sleep (tests pass a no-op).
    """

    def __init__(
        self,
        ledger: LedgerWriter,
        gas_limit: int,
        delay_s: float,
        receipt_timeout_s: float,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        self._ledger = ledger
        self._gas_limit = gas_limit
        self._delay_s = delay_s
        self._receipt_timeout_s = receipt_timeout_s
        self._sleep = sleep
        self._lock = asyncio.Lock()

    async def submit_all(self, decisions: list[SolvencyDecision]) -> SubmissionReport:
        """Process eligible decisions in order. Ineligible ones are ignored."""
        report = SubmissionReport()
        eligible = [d for d in decisions if d.eligible]
        if not eligible:
            return report

        async with self._lock:
            for i, decision in enumerate(eligible):
                outcome = await self._submit_one(decision)
                report.outcomes.append(outcome)
                sent = outcome.status is not SubmissionStatus.SIMULATION_REJECTED
                if sent and i < len(eligible) - 1:
                    await self._sleep(self._delay_s)

        logger.info(
            "submission_batch_done",
            submitted=report.count(SubmissionStatus.SUBMITTED),
            simulation_rejected=report.count(SubmissionStatus.SIMULATION_REJECTED),
            failed=report.count(SubmissionStatus.FAILED),
        )
        return report

    async def _submit_one(self, decision: SolvencyDecision) -> SubmissionOutcome:
        owner = decision.candidate.owner

        try:
            simulation = await self._ledger.simulate_repayment(owner)
        except LedgerError as e:
            logger.warning("simulation_call_failed", owner=owner, error=str(e))
            return SubmissionOutcome(owner=owner, status=SubmissionStatus.FAILED, detail=str(e))

        if not simulation.ok:
            logger.info(
                "simulation_rejected",
                owner=short_address(owner),
                reason=simulation.reason or "unknown",
            )
            return SubmissionOutcome(
                owner=owner,
                status=SubmissionStatus.SIMULATION_REJECTED,
                detail=simulation.reason or "unknown",
            )

        try:
            receipt = await self._ledger.submit_repayment(
                owner, self._gas_limit, self._receipt_timeout_s
            )
        except LedgerError as e:
            logger.error(
                "repayment_failed",
                owner=owner,
                error=str(e),
                error_type=type(e).__name__,
                health_factor=decision.health_factor,
            )
            return SubmissionOutcome(owner=owner, status=SubmissionStatus.FAILED, detail=str(e))

        logger.info(
            "repayment_processed",
            owner=short_address(owner),
            tx_hash=receipt.tx_hash,
            gas_used=receipt.gas_used,
            block=receipt.block_number,
        )
        for event in receipt.events:
            logger.info(
                "yield_harvested",
                owner=short_address(event.owner),
                yield_amount=format_ether(event.yield_amount),
                debt_reduced=format_ether(event.debt_reduced),
            )
        if not receipt.events:
            logger.debug("yield_harvested_event_missing", tx_hash=receipt.tx_hash)

        return SubmissionOutcome(
            owner=owner,
            status=SubmissionStatus.SUBMITTED,
            detail=receipt.tx_hash,
            receipt=receipt,
        )
