"""Shared test fixtures for the yield keeper."""

from __future__ import annotations

import asyncio
import os

# Set test environment before any imports
os.environ.setdefault("MODE", "test")
os.environ.setdefault("LOG_LEVEL", "DEBUG")

from yieldkeeper.core.models import (  # noqa: E402
    RepaymentEvent,
    RepaymentReceipt,
    SimulationResult,
    VaultSnapshot,
)
from yieldkeeper.core.ports import LedgerError, PriceError, SubmissionError  # noqa: E402

ETHER = 10**18
KEEPER = "0x" + "ee" * 20
ASSET = "0x" + "aa" * 20


def addr(i: int) -> str:
    """Deterministic owner address for index ``i``."""
    return "0x" + f"{i:040x}"


def make_snapshot(
    owner: str | None = None,
    collateral: int = 2 * ETHER,
    debt: int = 1000 * ETHER,
    pending_yield: int = 2 * 10**15,
    active: bool = True,
    ready: bool = True,
) -> VaultSnapshot:
    return VaultSnapshot(
        owner=owner or addr(1),
        collateral_amount=collateral,
        debt_amount=debt,
        pending_yield=pending_yield,
        is_active=active,
        is_time_ready=ready,
    )


# ================================================================
# In-memory ledger
# ================================================================


class FakeLedger:
    """Deterministic VaultManager stand-in implementing both ledger ports.

    Tracks every call plus the peak number of concurrent snapshot reads
    and concurrent submissions.
    """

    def __init__(
        self,
        snapshots: list[VaultSnapshot] | None = None,
        min_yield: int = 10**15,
        authorized: bool = True,
    ) -> None:
        self.snapshots = {s.owner: s for s in snapshots or []}
        self.owners = [s.owner for s in snapshots or []]
        self.assets: dict[str, str] = {}
        self.min_yield = min_yield
        self.authorized = authorized

        # Fault injection
        self.failing_owners: set[str] = set()
        self.simulation_reverts: dict[str, str] = {}
        self.submit_failures: set[str] = set()
        self.min_yield_unreadable = False
        self.count_unreadable = False

        # Call tracking
        self.page_calls: list[tuple[int, int]] = []
        self.snapshot_calls: list[str] = []
        self.asset_calls: list[str] = []
        self.simulated: list[str] = []
        self.submitted: list[str] = []
        self._reads_in_flight = 0
        self.max_reads_in_flight = 0
        self._submits_in_flight = 0
        self.max_submits_in_flight = 0

    @property
    def signer_address(self) -> str:
        return KEEPER

    async def total_vault_count(self) -> int:
        if self.count_unreadable:
            raise LedgerError("totalVaults failed: connection reset")
        return len(self.owners)

    async def list_owners(self, start: int, count: int) -> list[str]:
        self.page_calls.append((start, count))
        return self.owners[start : start + count]

    async def get_vault_snapshot(self, owner: str) -> VaultSnapshot:
        self.snapshot_calls.append(owner)
        self._reads_in_flight += 1
        self.max_reads_in_flight = max(self.max_reads_in_flight, self._reads_in_flight)
        try:
            await asyncio.sleep(0)
            if owner in self.failing_owners:
                raise LedgerError(f"getVaultInfo failed for {owner}")
            return self.snapshots[owner]
        finally:
            self._reads_in_flight -= 1

    async def get_collateral_asset(self, owner: str) -> str:
        self.asset_calls.append(owner)
        return self.assets.get(owner, ASSET)

    async def is_authorized_keeper(self, address: str) -> bool:
        return self.authorized

    async def min_yield_threshold(self) -> int:
        if self.min_yield_unreadable:
            raise LedgerError("minYieldThreshold failed")
        return self.min_yield

    async def auto_check_interval(self) -> int:
        return 3600

    async def simulate_repayment(self, owner: str) -> SimulationResult:
        self.simulated.append(owner)
        if owner in self.simulation_reverts:
            return SimulationResult(ok=False, reason=self.simulation_reverts[owner])
        return SimulationResult(ok=True)

    async def submit_repayment(
        self, owner: str, gas_limit: int, receipt_timeout_s: float
    ) -> RepaymentReceipt:
        self._submits_in_flight += 1
        self.max_submits_in_flight = max(self.max_submits_in_flight, self._submits_in_flight)
        try:
            await asyncio.sleep(0)
            self.submitted.append(owner)
            if owner in self.submit_failures:
                raise SubmissionError(f"transaction for {owner} reverted")
            snapshot = self.snapshots.get(owner)
            pending = snapshot.pending_yield if snapshot else 0
            return RepaymentReceipt(
                tx_hash="0x" + f"{len(self.submitted):064x}",
                block_number=100 + len(self.submitted),
                gas_used=150_000,
                status=1,
                events=(RepaymentEvent(owner=owner, yield_amount=pending, debt_reduced=pending),),
            )
        finally:
            self._submits_in_flight -= 1


# ================================================================
# In-memory oracle
# ================================================================


class FakeOracle:
    """Price oracle stand-in. ``prices`` are per whole unit, 18 decimals."""

    def __init__(self, price: int = 1500 * ETHER) -> None:
        self.prices: dict[str, int] = {ASSET: price}
        self.failing_assets: set[str] = set()
        self.calls: list[tuple[str, int]] = []
        self._in_flight = 0
        self.max_in_flight = 0

    async def asset_value(self, asset: str, amount: int) -> int:
        self.calls.append((asset, amount))
        self._in_flight += 1
        self.max_in_flight = max(self.max_in_flight, self._in_flight)
        try:
            await asyncio.sleep(0)
            if asset in self.failing_assets:
                raise PriceError(f"getAssetValue({asset}) failed")
            return amount * self.prices.get(asset, 0) // ETHER
        finally:
            self._in_flight -= 1

    async def get_price(self, asset: str) -> int:
        if asset in self.failing_assets:
            raise PriceError(f"getPrice({asset}) failed")
        return self.prices.get(asset, 0)


async def no_sleep(_seconds: float) -> None:
    """Drop-in for asyncio.sleep that records nothing and returns at once."""
