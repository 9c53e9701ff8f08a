"""Capability interfaces for the ledger and oracle, plus the error taxonomy.

Interface contract:
  - LedgerReader: enumerate owners, read vault snapshots and keeper settings
  - LedgerWriter: simulate and submit ``processAutoRepayment``
  - PriceReader: value an asset quantity in the reference currency

The web3-backed clients in ``yieldkeeper.connectors`` implement these;
tests substitute in-memory fakes.
"""

from __future__ import annotations

from typing import Protocol, runtime_checkable

from yieldkeeper.core.models import RepaymentReceipt, SimulationResult, VaultSnapshot

# ================================================================
# Error types
# ================================================================


class KeeperError(Exception):
    """Base error for the keeper."""


class ConfigError(KeeperError):
    """Missing or malformed configuration. Fatal at startup."""


class AuthorizationError(KeeperError):
    """Signing identity is not a registered keeper. Fatal at startup."""


class LedgerError(KeeperError):
    """Remote call to the vault ledger failed (transport, RPC, decoding)."""


class SubmissionError(LedgerError):
    """Repayment transaction reverted, timed out, or could not be sent."""


class PriceError(KeeperError):
    """Remote call to the price oracle failed."""


# ================================================================
# Ports
# ================================================================


@runtime_checkable
class LedgerReader(Protocol):
    async def total_vault_count(self) -> int: ...

    async def list_owners(self, start: int, count: int) -> list[str]: ...

    async def get_vault_snapshot(self, owner: str) -> VaultSnapshot: ...

    async def get_collateral_asset(self, owner: str) -> str: ...

    async def is_authorized_keeper(self, address: str) -> bool: ...

    async def min_yield_threshold(self) -> int: ...

    async def auto_check_interval(self) -> int: ...


@runtime_checkable
class LedgerWriter(Protocol):
    @property
    def signer_address(self) -> str: ...

    async def simulate_repayment(self, owner: str) -> SimulationResult: ...

    async def submit_repayment(
        self, owner: str, gas_limit: int, receipt_timeout_s: float
    ) -> RepaymentReceipt: ...


@runtime_checkable
class PriceReader(Protocol):
    async def asset_value(self, asset: str, amount: int) -> int: ...

    async def get_price(self, asset: str) -> int: ...
