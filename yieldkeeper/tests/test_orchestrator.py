"""Tests for keeper startup, single-cycle mode, and shutdown."""

from __future__ import annotations

import asyncio
from unittest.mock import AsyncMock, MagicMock, patch

import pytest

from yieldkeeper.config.settings import KeeperConfig
from yieldkeeper.core.ports import AuthorizationError, ConfigError, LedgerError
from yieldkeeper.main import KeeperOrchestrator
from yieldkeeper.tests.conftest import FakeLedger, FakeOracle, addr, make_snapshot


def _make_config(**overrides) -> KeeperConfig:
    values = {
        "KEEPER_PRIVATE_KEY": "0x" + "11" * 32,
        "VAULT_MANAGER_ADDRESS": "0x" + "ab" * 20,
        "ORACLE_ADDRESS": "0x" + "cd" * 20,
        "keeper": {"submission_delay_s": 0},
    }
    values.update(overrides)
    return KeeperConfig(_env_file=None, **values)


def _make_orchestrator(ledger: FakeLedger, **config_overrides) -> KeeperOrchestrator:
    return KeeperOrchestrator(
        config=_make_config(**config_overrides), ledger=ledger, oracle=FakeOracle()
    )


class TestAuthorization:
    async def test_unauthorized_keeper_is_fatal(self) -> None:
        ledger = FakeLedger([make_snapshot(owner=addr(0))], authorized=False)
        orch = _make_orchestrator(ledger)
        with pytest.raises(AuthorizationError, match="Not authorized keeper"):
            await orch.run_once()
        assert ledger.snapshot_calls == []

    async def test_unreadable_registry_is_fatal(self) -> None:
        ledger = FakeLedger()

        async def broken(address: str) -> bool:
            raise LedgerError("keepers() failed")

        ledger.is_authorized_keeper = broken
        with pytest.raises(AuthorizationError, match="Could not verify"):
            await _make_orchestrator(ledger).start()

    async def test_start_refuses_before_scheduling(self) -> None:
        ledger = FakeLedger([make_snapshot(owner=addr(0))], authorized=False)
        orch = _make_orchestrator(ledger)
        with pytest.raises(AuthorizationError):
            await orch.start()
        assert orch._internal_tasks == []


class TestConfigValidation:
    async def test_invalid_config_rejected_before_connecting(self) -> None:
        orch = KeeperOrchestrator(config=_make_config(ORACLE_ADDRESS="nope"))
        with patch("yieldkeeper.connectors.rpc.create_web3") as create:
            with pytest.raises(ConfigError):
                await orch.run_once()
        create.assert_not_called()


class TestRunOnce:
    async def test_single_cycle(self) -> None:
        ledger = FakeLedger([make_snapshot(owner=addr(i)) for i in range(3)])
        orch = _make_orchestrator(ledger)
        report = await orch.run_once()
        assert report is not None
        assert report.submitted == 3
        assert orch.scheduler.state.cycles_completed == 1

    async def test_builds_clients_from_config(self) -> None:
        w3 = MagicMock()
        with (
            patch("yieldkeeper.connectors.rpc.create_web3", return_value=w3) as create,
            patch("yieldkeeper.connectors.rpc.close_web3", new=AsyncMock()) as close,
            patch("yieldkeeper.connectors.vault_manager.VaultManagerClient") as vm_cls,
            patch("yieldkeeper.connectors.price_oracle.PriceOracleClient"),
        ):
            vm = vm_cls.return_value
            vm.signer_address = "0x" + "ee" * 20
            vm.is_authorized_keeper = AsyncMock(return_value=False)
            orch = KeeperOrchestrator(config=_make_config())
            with pytest.raises(AuthorizationError):
                await orch.run_once()

        create.assert_called_once_with("https://rpc.sepolia.mantle.xyz", timeout_s=60)
        close.assert_awaited_once_with(w3)


class TestLifecycle:
    async def test_runs_until_shutdown(self) -> None:
        ledger = FakeLedger([make_snapshot(owner=addr(0))])
        orch = _make_orchestrator(ledger)

        with (
            patch.object(KeeperOrchestrator, "_run_web_server", new=AsyncMock()),
            patch.object(KeeperOrchestrator, "_install_signal_handlers"),
        ):
            runner = asyncio.create_task(orch.start())
            for _ in range(100):
                await asyncio.sleep(0.01)
                if orch.scheduler and orch.scheduler.state.cycles_completed >= 1:
                    break
            orch.request_shutdown()
            await asyncio.wait_for(runner, timeout=5)

        assert ledger.submitted == [addr(0)]
        assert orch._internal_tasks == []
        assert orch.uptime_s > 0
