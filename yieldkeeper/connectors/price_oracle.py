"""Price oracle connector.

Interface contract:
  - asset_value(asset, amount) → int (reference-currency value, 18 decimals)
  - get_price(asset) → int (raw feed price)

A zero valuation is a legitimate answer and is returned unchanged; the
caller decides how much to trust it. Remote faults raise PriceError.
"""

from __future__ import annotations

from typing import Any

from web3 import AsyncWeb3

from yieldkeeper.connectors.rpc import TRANSIENT_ERRORS
from yieldkeeper.core.ports import PriceError

ORACLE_ABI: list[dict[str, Any]] = [
    {
        "type": "function",
        "name": "getAssetValue",
        "stateMutability": "view",
        "inputs": [{"name": "asset", "type": "address"}, {"name": "amount", "type": "uint256"}],
        "outputs": [{"name": "", "type": "uint256"}],
    },
    {
        "type": "function",
        "name": "getPrice",
        "stateMutability": "view",
        "inputs": [{"name": "asset", "type": "address"}],
        "outputs": [{"name": "", "type": "uint256"}],
    },
]


class PriceOracleClient:
    """Async client for the protocol's price oracle contract."""

    def __init__(self, w3: AsyncWeb3, address: str) -> None:
        self._address = AsyncWeb3.to_checksum_address(address)
        self._contract = w3.eth.contract(address=self._address, abi=ORACLE_ABI)

    @property
    def address(self) -> str:
        return self._address

    async def asset_value(self, asset: str, amount: int) -> int:
        """Value ``amount`` base units of ``asset`` at the current oracle price."""
        try:
            value = await self._contract.functions.getAssetValue(asset, amount).call()
        except TRANSIENT_ERRORS as e:
            raise PriceError(f"getAssetValue({asset}) failed: {e}") from e
        return int(value)

    async def get_price(self, asset: str) -> int:
        try:
            price = await self._contract.functions.getPrice(asset).call()
        except TRANSIENT_ERRORS as e:
            raise PriceError(f"getPrice({asset}) failed: {e}") from e
        return int(price)
