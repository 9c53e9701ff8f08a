"""Vault enumeration and Phase 1 scan.

Pages through the ledger's owner registry and runs the cheap filter on
every vault. Owners of one page are checked concurrently inside a
TaskGroup that is joined before the next page is requested, so at most
one page of reads is ever in flight. No oracle calls happen here.
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass, field

from yieldkeeper.core.eligibility import check_eligibility
from yieldkeeper.core.models import VaultCandidate
from yieldkeeper.core.ports import LedgerError, LedgerReader
from yieldkeeper.utils.logger import get_logger
from yieldkeeper.utils.units import format_ether

logger = get_logger("scanner")


@dataclass
class ScanResult:
    """Outcome of Phase 1 for one cycle."""

    candidates: list[VaultCandidate] = field(default_factory=list)
    vaults_scanned: int = 0
    errors: int = 0


def page_bounds(total: int, page_size: int) -> list[tuple[int, int]]:
    """Split ``[0, total)`` into ``(start, count)`` pages.

    Every index appears in exactly one page; the last page is short when
    ``total`` is not a multiple of ``page_size``. ``total == 0`` → no pages.
    """
    if page_size <= 0:
        raise ValueError("page_size must be positive")
    return [(start, min(page_size, total - start)) for start in range(0, total, page_size)]


class VaultScanner:
    """Enumerate all vaults and return the Phase 1 candidates.

    Args:
        ledger: Ledger read port.
        page_size: Owners requested per ``getAllVaultOwners`` call.
        fallback_min_yield: Threshold used when the on-chain value can't be read.
    """

    def __init__(self, ledger: LedgerReader, page_size: int, fallback_min_yield: int) -> None:
        if page_size <= 0:
            raise ValueError("page_size must be positive")
        self._ledger = ledger
        self._page_size = page_size
        self._fallback_min_yield = fallback_min_yield

    async def scan(self) -> ScanResult:
        """Run Phase 1 over every vault in the registry.

        Raises:
            LedgerError: if the vault count or an owner page can't be read.
        """
        result = ScanResult()
        total = await self._ledger.total_vault_count()
        if total == 0:
            logger.info("scan_no_vaults")
            return result

        min_yield = await self._read_min_yield()
        await self._log_check_interval()
        logger.info(
            "scan_started",
            total_vaults=total,
            page_size=self._page_size,
            min_yield=format_ether(min_yield),
        )

        seen: set[str] = set()
        for page_no, (start, count) in enumerate(page_bounds(total, self._page_size), start=1):
            owners = await self._ledger.list_owners(start, count)
            if len(owners) != count:
                logger.warning(
                    "scan_page_size_mismatch", start=start, expected=count, got=len(owners)
                )

            fresh: list[str] = []
            for owner in owners:
                if owner in seen:
                    logger.warning("scan_duplicate_owner", owner=owner, start=start)
                    continue
                seen.add(owner)
                fresh.append(owner)

            async with asyncio.TaskGroup() as tg:
                tasks = [tg.create_task(self._check_owner(owner, min_yield)) for owner in fresh]

            page_candidates = 0
            for task in tasks:
                candidate, failed = task.result()
                if failed:
                    result.errors += 1
                elif candidate is not None:
                    result.candidates.append(candidate)
                    page_candidates += 1
            result.vaults_scanned += len(fresh)

            logger.info(
                "scan_page_done",
                page=page_no,
                start=start,
                owners=len(fresh),
                candidates=page_candidates,
            )

        logger.info(
            "scan_complete",
            vaults_scanned=result.vaults_scanned,
            candidates=len(result.candidates),
            errors=result.errors,
        )
        return result

    async def _check_owner(self, owner: str, min_yield: int) -> tuple[VaultCandidate | None, bool]:
        """Fetch one snapshot and filter it. Returns ``(candidate, failed)``."""
        try:
            snapshot = await self._ledger.get_vault_snapshot(owner)
            decision = check_eligibility(snapshot, min_yield)
            logger.debug(
                "vault_checked",
                owner=owner,
                collateral=format_ether(snapshot.collateral_amount),
                debt=format_ether(snapshot.debt_amount),
                pending_yield=format_ether(snapshot.pending_yield),
                active=snapshot.is_active,
                ready=snapshot.is_time_ready,
            )
            if not decision.passed:
                logger.debug("vault_skipped", owner=owner, reason=decision.reason)
                return None, False

            asset = await self._ledger.get_collateral_asset(owner)
        except LedgerError as e:
            logger.warning("vault_check_failed", owner=owner, error=str(e))
            return None, True

        logger.info(
            "vault_candidate",
            owner=owner,
            pending_yield=format_ether(snapshot.pending_yield),
            debt=format_ether(snapshot.debt_amount),
        )
        return VaultCandidate.from_snapshot(snapshot, asset), False

    async def _read_min_yield(self) -> int:
        """On-chain threshold, falling back to config when unreadable."""
        try:
            return await self._ledger.min_yield_threshold()
        except LedgerError as e:
            logger.warning(
                "min_yield_read_failed",
                error=str(e),
                fallback=format_ether(self._fallback_min_yield),
            )
            return self._fallback_min_yield

    async def _log_check_interval(self) -> None:
        try:
            interval = await self._ledger.auto_check_interval()
        except LedgerError as e:
            logger.debug("auto_check_interval_read_failed", error=str(e))
            return
        logger.debug("auto_check_interval", seconds=interval)
