"""Value objects passed between the keeper phases.

All token amounts are integers in base units. Nothing here is persisted:
snapshots and candidates live for one cycle only.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Any


@dataclass(frozen=True)
class VaultSnapshot:
    """Vault state as read from ``getVaultInfo`` for one owner.

    ``collateral_asset`` is only resolved for vaults that survive the
    cheap filter; it is None on a plain snapshot.
    """

    owner: str
    collateral_amount: int
    debt_amount: int
    pending_yield: int
    is_active: bool
    is_time_ready: bool
    collateral_asset: str | None = None


@dataclass(frozen=True)
class VaultCandidate:
    """Phase 1 survivor awaiting a fresh price check."""

    owner: str
    collateral_amount: int
    debt_amount: int
    pending_yield: int
    collateral_asset: str

    @classmethod
    def from_snapshot(cls, snapshot: VaultSnapshot, collateral_asset: str) -> VaultCandidate:
        return cls(
            owner=snapshot.owner,
            collateral_amount=snapshot.collateral_amount,
            debt_amount=snapshot.debt_amount,
            pending_yield=snapshot.pending_yield,
            collateral_asset=collateral_asset,
        )


@dataclass(frozen=True)
class SolvencyDecision:
    """Phase 2 verdict for one candidate, built from a price fetched in Phase 2."""

    candidate: VaultCandidate
    fresh_collateral_value: int
    health_factor: int | None
    eligible: bool
    reason: str


@dataclass(frozen=True)
class SimulationResult:
    """Outcome of an ``eth_call`` dry run of ``processAutoRepayment``."""

    ok: bool
    reason: str | None = None


@dataclass(frozen=True)
class RepaymentEvent:
    """Decoded ``YieldHarvested`` event."""

    owner: str
    yield_amount: int
    debt_reduced: int


@dataclass(frozen=True)
class RepaymentReceipt:
    """Mined repayment transaction."""

    tx_hash: str
    block_number: int
    gas_used: int
    status: int
    events: tuple[RepaymentEvent, ...] = ()


class SubmissionStatus(Enum):
    SUBMITTED = "SUBMITTED"
    SIMULATION_REJECTED = "SIMULATION_REJECTED"
    FAILED = "FAILED"


@dataclass(frozen=True)
class SubmissionOutcome:
    """Result of Phase 3 for one owner."""

    owner: str
    status: SubmissionStatus
    detail: str = ""
    receipt: RepaymentReceipt | None = None


class CyclePhase(Enum):
    IDLE = "idle"
    SCANNING = "scanning"
    VALIDATING = "validating"
    SUBMITTING = "submitting"


@dataclass
class CycleReport:
    """Counters for one completed (or aborted) cycle."""

    started_at: datetime
    finished_at: datetime | None = None
    vaults_scanned: int = 0
    scan_errors: int = 0
    candidates: int = 0
    eligible: int = 0
    skipped_low_health: int = 0
    submitted: int = 0
    simulation_rejected: int = 0
    failed: int = 0
    error: str | None = None

    def to_dict(self) -> dict[str, Any]:
        """Serialize for the status endpoint."""
        return {
            "startedAt": self.started_at.isoformat(),
            "finishedAt": self.finished_at.isoformat() if self.finished_at else None,
            "vaultsScanned": self.vaults_scanned,
            "scanErrors": self.scan_errors,
            "candidates": self.candidates,
            "eligible": self.eligible,
            "skippedLowHealth": self.skipped_low_health,
            "submitted": self.submitted,
            "simulationRejected": self.simulation_rejected,
            "failed": self.failed,
            "error": self.error,
        }


@dataclass
class CycleState:
    """Process-wide scheduler state. Written only by the CycleScheduler."""

    scan_interval_s: int
    last_scan_time: datetime | None = None
    next_scan_time: datetime | None = None
    is_scanning: bool = False
    phase: CyclePhase = CyclePhase.IDLE
    cycles_completed: int = 0
    last_report: CycleReport | None = None
