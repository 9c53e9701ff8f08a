"""Token unit helpers.

All ledger amounts are integers in base units (18 decimals for the
collateral asset and the stablecoin). Conversions here are for logs only;
decisions are always made on the raw integers.
"""

from __future__ import annotations


def format_ether(amount_wei: int, decimals: int = 18, places: int = 6) -> str:
    """Format a base-unit integer for logging (e.g. ``"0.001000"``).

    Pure integer arithmetic, so any uint256 formats; digits past
    ``places`` are truncated.
    """
    sign = "-" if amount_wei < 0 else ""
    scaled = abs(amount_wei) * 10**places // 10**decimals
    whole, frac = divmod(scaled, 10**places)
    if places <= 0:
        return f"{sign}{whole}"
    return f"{sign}{whole}.{frac:0{places}d}"


def short_address(address: str) -> str:
    """Abbreviate an address for log lines (``0x1234abcd...``)."""
    return address[:10] + "..."
