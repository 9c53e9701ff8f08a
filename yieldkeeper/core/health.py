"""Phase 2 health validation.

Every Phase 1 candidate gets a fresh oracle valuation here, even though
the scan already saw it as ready: collateral value can move between the
scan and submission, and solvency takes priority over throughput. Prices
are never cached across candidates, phases, or cycles.
"""

from __future__ import annotations

import asyncio

from yieldkeeper.core.models import SolvencyDecision, VaultCandidate
from yieldkeeper.core.ports import PriceError, PriceReader
from yieldkeeper.utils.logger import get_logger
from yieldkeeper.utils.units import format_ether, short_address

logger = get_logger("health")


def compute_health_factor(collateral_value: int, debt: int) -> int | None:
    """``floor(collateral_value * 100 / debt)``; None when debt is zero."""
    if debt <= 0:
        return None
    return collateral_value * 100 // debt


class HealthValidator:
    """Fetch fresh prices and decide submission eligibility.

    Args:
        oracle: Price read port.
        min_health_factor: Minimum health factor (percent) to submit.
        batch_size: Oracle reads allowed in flight at once.
    """

    def __init__(self, oracle: PriceReader, min_health_factor: int, batch_size: int) -> None:
        if batch_size <= 0:
            raise ValueError("batch_size must be positive")
        self._oracle = oracle
        self._min_health_factor = min_health_factor
        self._batch_size = batch_size

    async def validate(self, candidates: list[VaultCandidate]) -> list[SolvencyDecision]:
        """Validate candidates; decisions are returned in discovery order.

        Candidates whose price read fails are logged and left out.
        """
        priced: list[tuple[int, VaultCandidate]] = []
        decisions: dict[int, SolvencyDecision] = {}

        for idx, candidate in enumerate(candidates):
            # Division-by-zero guard: never reaches the oracle
            if candidate.debt_amount <= 0:
                decisions[idx] = SolvencyDecision(
                    candidate=candidate,
                    fresh_collateral_value=0,
                    health_factor=None,
                    eligible=False,
                    reason="zero debt",
                )
                logger.info("health_skip_zero_debt", owner=short_address(candidate.owner))
            else:
                priced.append((idx, candidate))

        for offset in range(0, len(priced), self._batch_size):
            batch = priced[offset : offset + self._batch_size]
            async with asyncio.TaskGroup() as tg:
                tasks = [tg.create_task(self._evaluate(c)) for _, c in batch]
            for (idx, _), task in zip(batch, tasks):
                decision = task.result()
                if decision is not None:
                    decisions[idx] = decision

        ordered = [decisions[i] for i in sorted(decisions)]
        eligible = sum(1 for d in ordered if d.eligible)
        logger.info(
            "health_validation_done",
            candidates=len(candidates),
            eligible=eligible,
            rejected=len(ordered) - eligible,
            price_errors=len(candidates) - len(ordered),
        )
        return ordered

    async def _evaluate(self, candidate: VaultCandidate) -> SolvencyDecision | None:
        """Price one candidate. Returns None if the oracle call failed."""
        try:
            value = await self._oracle.asset_value(
                candidate.collateral_asset, candidate.collateral_amount
            )
        except PriceError as e:
            logger.warning("health_price_failed", owner=candidate.owner, error=str(e))
            return None

        if value == 0:
            # Oracle has no usable price for this asset right now
            logger.info(
                "health_skip_zero_value",
                owner=short_address(candidate.owner),
                asset=candidate.collateral_asset,
                feed_price=await self._feed_price(candidate.collateral_asset),
            )
            return SolvencyDecision(
                candidate=candidate,
                fresh_collateral_value=0,
                health_factor=None,
                eligible=False,
                reason="zero collateral value",
            )

        health_factor = compute_health_factor(value, candidate.debt_amount)
        eligible = health_factor is not None and health_factor >= self._min_health_factor
        reason = (
            "health factor ok"
            if eligible
            else f"health {health_factor}% < {self._min_health_factor}%"
        )
        logger.info(
            "health_checked",
            owner=short_address(candidate.owner),
            health_factor=health_factor,
            collateral_value=format_ether(value),
            pending_yield=format_ether(candidate.pending_yield),
            eligible=eligible,
        )
        return SolvencyDecision(
            candidate=candidate,
            fresh_collateral_value=value,
            health_factor=health_factor,
            eligible=eligible,
            reason=reason,
        )

    async def _feed_price(self, asset: str) -> int | None:
        """Raw feed price for diagnostics; None if it can't be read either."""
        try:
            return await self._oracle.get_price(asset)
        except PriceError:
            return None
