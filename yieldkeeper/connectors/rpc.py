"""Shared AsyncWeb3 provider for the ledger and oracle clients.

One HTTP provider (one aiohttp session) serves every contract call the
keeper makes. Provider-level retries are off: a failed read is skipped
for this cycle and picked up again by the next one.
"""

from __future__ import annotations

import aiohttp
from web3 import AsyncWeb3
from web3.exceptions import Web3Exception

from yieldkeeper.utils.logger import get_logger

logger = get_logger("rpc")

# Remote faults the clients translate into LedgerError / PriceError.
TRANSIENT_ERRORS: tuple[type[BaseException], ...] = (
    Web3Exception,
    aiohttp.ClientError,
    TimeoutError,
    OSError,
    ValueError,  # JSON-RPC error payloads and ABI decoding failures
)


def create_web3(rpc_url: str, timeout_s: float = 60) -> AsyncWeb3:
    """Build an AsyncWeb3 bound to a JSON-RPC HTTP endpoint.

    Args:
        rpc_url: Node URL.
        timeout_s: Total per-request timeout; a stuck call fails instead of hanging a cycle.
    """
    provider = AsyncWeb3.AsyncHTTPProvider(
        rpc_url,
        request_kwargs={"timeout": aiohttp.ClientTimeout(total=timeout_s)},
        exception_retry_configuration=None,
    )
    logger.info("rpc_provider_created", rpc_url=rpc_url, timeout_s=timeout_s)
    return AsyncWeb3(provider)


async def close_web3(w3: AsyncWeb3) -> None:
    """Close the provider's cached HTTP sessions."""
    try:
        await w3.provider.disconnect()
    except Exception as e:
        logger.warning("rpc_provider_close_error", error=str(e))
