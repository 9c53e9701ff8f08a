"""Phase 1 eligibility filter.

Cheap, oracle-free checks on a vault snapshot. Each vault must pass all of
them before Phase 2 spends an oracle read on it. Checks run in a fixed
order so the exclusion reason is deterministic for a given snapshot.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum

from yieldkeeper.core.models import VaultSnapshot
from yieldkeeper.utils.units import format_ether


class Exclusion(Enum):
    NO_DEBT = "NO_DEBT"
    YIELD_TOO_LOW = "YIELD_TOO_LOW"
    INACTIVE = "INACTIVE"
    NOT_READY = "NOT_READY"


@dataclass(frozen=True)
class EligibilityDecision:
    """Result of the Phase 1 filter."""

    passed: bool
    reason: str
    snapshot: VaultSnapshot
    exclusion: Exclusion | None = None


def check_eligibility(snapshot: VaultSnapshot, min_yield: int) -> EligibilityDecision:
    """Decide scan-phase candidacy.

    Candidate iff ``debt > 0``, ``pending_yield >= min_yield``, the vault is
    active, and the ledger's minimum check interval has elapsed.

    Args:
        snapshot: Vault state read in this cycle.
        min_yield: Minimum pending yield in base units.

    Returns:
        EligibilityDecision with the first failing condition, if any.
    """
    # 1. Nothing to repay
    if snapshot.debt_amount <= 0:
        return EligibilityDecision(
            passed=False,
            reason="No debt borrowed",
            snapshot=snapshot,
            exclusion=Exclusion.NO_DEBT,
        )

    # 2. Yield threshold
    if snapshot.pending_yield < min_yield:
        shortfall = min_yield - snapshot.pending_yield
        return EligibilityDecision(
            passed=False,
            reason=f"Yield too low (need {format_ether(shortfall)} more)",
            snapshot=snapshot,
            exclusion=Exclusion.YIELD_TOO_LOW,
        )

    # 3. Closed or liquidated
    if not snapshot.is_active:
        return EligibilityDecision(
            passed=False,
            reason="Vault inactive",
            snapshot=snapshot,
            exclusion=Exclusion.INACTIVE,
        )

    # 4. Inter-check interval
    if not snapshot.is_time_ready:
        return EligibilityDecision(
            passed=False,
            reason="Not ready yet (time interval)",
            snapshot=snapshot,
            exclusion=Exclusion.NOT_READY,
        )

    return EligibilityDecision(passed=True, reason="All cheap checks passed", snapshot=snapshot)
