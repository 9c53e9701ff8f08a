"""VaultManager contract connector (ledger read/write ports).

Interface contract:
  - total_vault_count() → int
  - list_owners(start, count) → list[str] (checksum addresses, stable order)
  - get_vault_snapshot(owner) → VaultSnapshot
  - get_collateral_asset(owner) → str
  - is_authorized_keeper(address) → bool
  - min_yield_threshold() / auto_check_interval() → int
  - simulate_repayment(owner) → SimulationResult (reverts are values)
  - submit_repayment(owner, gas_limit, receipt_timeout_s) → RepaymentReceipt

Every remote fault surfaces as LedgerError (SubmissionError for the write
path). Nothing here retries; the cycle decides what to skip.
"""

from __future__ import annotations

from typing import Any

from web3 import AsyncWeb3
from web3.exceptions import ContractLogicError, TimeExhausted
from web3.logs import DISCARD

from yieldkeeper.connectors.rpc import TRANSIENT_ERRORS
from yieldkeeper.core.models import (
    RepaymentEvent,
    RepaymentReceipt,
    SimulationResult,
    VaultSnapshot,
)
from yieldkeeper.core.ports import LedgerError, SubmissionError
from yieldkeeper.utils.logger import get_logger

logger = get_logger("vault_manager")


def _fn(
    name: str,
    inputs: list[tuple[str, str]],
    outputs: list[tuple[str, str]],
    mutability: str = "view",
) -> dict[str, Any]:
    """Build one ABI function entry."""
    return {
        "type": "function",
        "name": name,
        "stateMutability": mutability,
        "inputs": [{"name": n, "type": t} for n, t in inputs],
        "outputs": [{"name": n, "type": t} for n, t in outputs],
    }


VAULT_MANAGER_ABI: list[dict[str, Any]] = [
    _fn("totalVaults", [], [("", "uint256")]),
    _fn("getAllVaultOwners", [("start", "uint256"), ("count", "uint256")], [("", "address[]")]),
    _fn(
        "getVaultInfo",
        [("user", "address")],
        [
            ("collateral", "uint256"),
            ("debt", "uint256"),
            ("pendingYield", "uint256"),
            ("healthFactor", "uint256"),
            ("isActive", "bool"),
            ("isReady", "bool"),
        ],
    ),
    _fn(
        "vaults",
        [("", "address")],
        [
            ("collateralAmount", "uint256"),
            ("debtAmount", "uint256"),
            ("lastYieldClaim", "uint256"),
            ("collateralAsset", "address"),
            ("isActive", "bool"),
            ("lastAutoCheck", "uint256"),
        ],
    ),
    _fn("keepers", [("", "address")], [("", "bool")]),
    _fn("autoCheckInterval", [], [("", "uint256")]),
    _fn("minYieldThreshold", [], [("", "uint256")]),
    _fn("processAutoRepayment", [("user", "address")], [], "nonpayable"),
    _fn("processMultipleAutoRepayments", [("users", "address[]")], [], "nonpayable"),
    {
        "type": "event",
        "name": "YieldHarvested",
        "anonymous": False,
        "inputs": [
            {"name": "user", "type": "address", "indexed": True},
            {"name": "yieldAmount", "type": "uint256", "indexed": False},
            {"name": "debtReduced", "type": "uint256", "indexed": False},
        ],
    },
]

# vaults(owner) tuple index of collateralAsset
_VAULT_ASSET_INDEX = 3


class VaultManagerClient:
    """Async VaultManager client.

    Args:
        w3: Shared AsyncWeb3 instance.
        address: VaultManager contract address.
        private_key: Keeper signing key. Read-only use is possible without it.
    """

    def __init__(self, w3: AsyncWeb3, address: str, private_key: str | None = None) -> None:
        self._w3 = w3
        self._address = AsyncWeb3.to_checksum_address(address)
        self._contract = w3.eth.contract(address=self._address, abi=VAULT_MANAGER_ABI)
        self._account = w3.eth.account.from_key(private_key) if private_key else None

    @property
    def address(self) -> str:
        return self._address

    @property
    def signer_address(self) -> str:
        if self._account is None:
            raise LedgerError("No signing key configured")
        return self._account.address

    # ------------------------------------------------------------------
    # Read port
    # ------------------------------------------------------------------

    async def total_vault_count(self) -> int:
        return int(await self._read("totalVaults"))

    async def list_owners(self, start: int, count: int) -> list[str]:
        owners = await self._read("getAllVaultOwners", start, count)
        return [AsyncWeb3.to_checksum_address(o) for o in owners]

    async def get_vault_snapshot(self, owner: str) -> VaultSnapshot:
        collateral, debt, pending_yield, _health, active, ready = await self._read(
            "getVaultInfo", owner
        )
        return VaultSnapshot(
            owner=AsyncWeb3.to_checksum_address(owner),
            collateral_amount=int(collateral),
            debt_amount=int(debt),
            pending_yield=int(pending_yield),
            is_active=bool(active),
            is_time_ready=bool(ready),
        )

    async def get_collateral_asset(self, owner: str) -> str:
        vault = await self._read("vaults", owner)
        return AsyncWeb3.to_checksum_address(vault[_VAULT_ASSET_INDEX])

    async def is_authorized_keeper(self, address: str) -> bool:
        return bool(await self._read("keepers", AsyncWeb3.to_checksum_address(address)))

    async def min_yield_threshold(self) -> int:
        return int(await self._read("minYieldThreshold"))

    async def auto_check_interval(self) -> int:
        return int(await self._read("autoCheckInterval"))

    async def _read(self, method: str, *args: Any) -> Any:
        """Call a view function, translating remote faults into LedgerError."""
        try:
            return await getattr(self._contract.functions, method)(*args).call()
        except TRANSIENT_ERRORS as e:
            raise LedgerError(f"{method} failed: {e}") from e

    # ------------------------------------------------------------------
    # Write port
    # ------------------------------------------------------------------

    async def simulate_repayment(self, owner: str) -> SimulationResult:
        """Dry-run processAutoRepayment via eth_call from the keeper address.

        A revert is an expected outcome (preconditions changed since the
        scan) and is returned with its reason rather than raised.
        """
        fn = self._contract.functions.processAutoRepayment(owner)
        try:
            await fn.call({"from": self.signer_address})
        except ContractLogicError as e:
            reason = getattr(e, "message", None) or str(e)
            return SimulationResult(ok=False, reason=reason)
        except TRANSIENT_ERRORS as e:
            raise LedgerError(f"simulate processAutoRepayment failed: {e}") from e
        return SimulationResult(ok=True)

    async def submit_repayment(
        self, owner: str, gas_limit: int, receipt_timeout_s: float
    ) -> RepaymentReceipt:
        """Sign, send and await processAutoRepayment(owner).

        Raises:
            SubmissionError: on revert, receipt timeout, or network fault.
        """
        sender = self.signer_address
        fn = self._contract.functions.processAutoRepayment(owner)
        try:
            nonce = await self._w3.eth.get_transaction_count(sender, "pending")
            tx = await fn.build_transaction({"from": sender, "nonce": nonce, "gas": gas_limit})
            signed = self._account.sign_transaction(tx)
            tx_hash = await self._w3.eth.send_raw_transaction(signed.raw_transaction)
            logger.debug(
                "repayment_tx_sent", owner=owner, nonce=nonce, tx_hash=AsyncWeb3.to_hex(tx_hash)
            )
            receipt = await self._w3.eth.wait_for_transaction_receipt(
                tx_hash, timeout=receipt_timeout_s
            )
        except TimeExhausted as e:
            raise SubmissionError(f"receipt not found within {receipt_timeout_s}s") from e
        except TRANSIENT_ERRORS as e:
            raise SubmissionError(f"processAutoRepayment send failed: {e}") from e

        tx_hex = AsyncWeb3.to_hex(receipt["transactionHash"])
        if receipt["status"] != 1:
            raise SubmissionError(f"transaction {tx_hex} reverted")

        return RepaymentReceipt(
            tx_hash=tx_hex,
            block_number=int(receipt["blockNumber"]),
            gas_used=int(receipt["gasUsed"]),
            status=int(receipt["status"]),
            events=self._decode_events(receipt),
        )

    def _decode_events(self, receipt: Any) -> tuple[RepaymentEvent, ...]:
        """Extract YieldHarvested events; malformed logs are dropped."""
        logs = self._contract.events.YieldHarvested().process_receipt(receipt, errors=DISCARD)
        return tuple(
            RepaymentEvent(
                owner=log["args"]["user"],
                yield_amount=int(log["args"]["yieldAmount"]),
                debt_reduced=int(log["args"]["debtReduced"]),
            )
            for log in logs
        )
