"""Keeper orchestrator -- startup checks, cycle task, status server.

Entry point: python -m yieldkeeper [--log-level INFO] [--once]

Architecture:
- KeeperOrchestrator owns the RPC clients and the four keeper stages
- Startup: validate config → connect → verify keeper authorization (fatal if not)
- Two independent tasks: the cycle scheduler and the uvicorn status server,
  sharing only the scheduler's read-mostly CycleState
- Graceful shutdown on SIGINT/SIGTERM: set asyncio.Event, cancel tasks, close provider
"""

from __future__ import annotations

import asyncio
import contextlib
import signal
import time
from typing import Any

from yieldkeeper.config.settings import KeeperConfig, get_config
from yieldkeeper.core.health import HealthValidator
from yieldkeeper.core.models import CycleReport
from yieldkeeper.core.ports import (
    AuthorizationError,
    LedgerError,
    LedgerReader,
    LedgerWriter,
    PriceReader,
)
from yieldkeeper.core.scanner import VaultScanner
from yieldkeeper.core.scheduler import CycleScheduler, IntervalTicker
from yieldkeeper.core.status import StatusReporter
from yieldkeeper.core.submitter import RepaymentSubmitter
from yieldkeeper.utils.logger import get_logger
from yieldkeeper.utils.units import format_ether

logger = get_logger("orchestrator")


class KeeperOrchestrator:
    """Wires the keeper together and runs it until shutdown.

    Lifecycle: ``__init__`` -> ``start()`` -> runs until ``stop()`` or signal.

    Args:
        config: Loaded configuration; defaults to ``get_config()``.
        ledger: Ledger client implementing both ports. Built from config if None.
        oracle: Price client. Built from config if None.
    """

    def __init__(
        self,
        config: KeeperConfig | None = None,
        ledger: Any = None,
        oracle: PriceReader | None = None,
    ) -> None:
        self._config = config or get_config()
        self._ledger = ledger
        self._oracle = oracle
        self._w3: Any = None

        self._shutdown_event = asyncio.Event()
        self._internal_tasks: list[asyncio.Task[None]] = []

        # Components (initialized in _init_components())
        self._scheduler: CycleScheduler | None = None
        self._reporter: StatusReporter | None = None
        self._web_app: Any = None

        self._start_time: float = 0.0

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    @property
    def scheduler(self) -> CycleScheduler | None:
        return self._scheduler

    async def start(self) -> None:
        """Initialize, authorize, and run cycles until shutdown.

        Raises:
            ConfigError: invalid configuration.
            AuthorizationError: signer is not a registered keeper.
        """
        cfg = self._config
        logger.info(
            "keeper_starting",
            mode=cfg.mode,
            interval_s=cfg.scan_interval_s,
            min_yield=format_ether(cfg.keeper.min_yield_wei),
            min_health_factor=cfg.keeper.min_health_factor,
        )
        self._start_time = time.monotonic()

        try:
            await self._init_components()
            await self._verify_authorization()
        except BaseException:
            await self._close_components()
            raise

        self._install_signal_handlers()
        self._start_internal_tasks()
        logger.info("keeper_started", http_port=cfg.http_port)

        # Block until shutdown
        await self._shutdown_event.wait()
        await self.stop()

    async def run_once(self) -> CycleReport | None:
        """Initialize, authorize, run a single cycle, and close."""
        try:
            await self._init_components()
            await self._verify_authorization()
            return await self._scheduler.run_cycle()
        finally:
            await self._close_components()

    def request_shutdown(self) -> None:
        self._shutdown_event.set()

    async def stop(self) -> None:
        """Graceful shutdown: cancel tasks, close the RPC provider."""
        logger.info("keeper_stopping")
        self._shutdown_event.set()

        for task in self._internal_tasks:
            if not task.done():
                task.cancel()
        for task in self._internal_tasks:
            with contextlib.suppress(asyncio.CancelledError, Exception):
                await task
        self._internal_tasks.clear()

        await self._close_components()
        logger.info("keeper_stopped", uptime_s=int(self.uptime_s))

    @property
    def uptime_s(self) -> float:
        """Seconds since start."""
        return time.monotonic() - self._start_time if self._start_time else 0.0

    # ------------------------------------------------------------------
    # Signals
    # ------------------------------------------------------------------

    def _install_signal_handlers(self) -> None:
        """Install SIGINT/SIGTERM handlers for graceful shutdown."""
        loop = asyncio.get_running_loop()
        for sig in (signal.SIGINT, signal.SIGTERM):
            loop.add_signal_handler(sig, self._handle_signal, sig)

    def _handle_signal(self, sig: signal.Signals) -> None:
        logger.info("signal_received", signal=sig.name)
        self._shutdown_event.set()

    # ------------------------------------------------------------------
    # Component initialization
    # ------------------------------------------------------------------

    async def _init_components(self) -> None:
        """Build clients (unless injected) and the keeper stages."""
        cfg = self._config
        if self._ledger is None or self._oracle is None:
            cfg.validate_for_startup()
            self._init_clients()

        params = cfg.keeper
        scanner = VaultScanner(
            self._ledger,
            page_size=params.scan_batch_size,
            fallback_min_yield=params.min_yield_wei,
        )
        validator = HealthValidator(
            self._oracle,
            min_health_factor=params.min_health_factor,
            batch_size=params.process_batch_size,
        )
        submitter = RepaymentSubmitter(
            self._ledger,
            gas_limit=params.gas_limit,
            delay_s=params.submission_delay_s,
            receipt_timeout_s=params.receipt_timeout_s,
        )
        self._scheduler = CycleScheduler(
            scanner, validator, submitter, interval_s=cfg.scan_interval_s
        )
        self._reporter = StatusReporter(self._scheduler)

    def _init_clients(self) -> None:
        from yieldkeeper.connectors.price_oracle import PriceOracleClient
        from yieldkeeper.connectors.rpc import create_web3
        from yieldkeeper.connectors.vault_manager import VaultManagerClient

        cfg = self._config
        self._w3 = create_web3(cfg.rpc_url, timeout_s=cfg.rpc.timeout_s)
        if self._ledger is None:
            self._ledger = VaultManagerClient(
                self._w3, cfg.vault_manager_address, private_key=cfg.keeper_private_key
            )
        if self._oracle is None:
            self._oracle = PriceOracleClient(self._w3, cfg.oracle_address)

    async def _verify_authorization(self) -> None:
        """Refuse to schedule anything unless the signer is a registered keeper."""
        ledger: LedgerReader = self._ledger
        writer: LedgerWriter = self._ledger
        try:
            address = writer.signer_address
            authorized = await ledger.is_authorized_keeper(address)
        except LedgerError as e:
            raise AuthorizationError(f"Could not verify keeper authorization: {e}") from e
        if not authorized:
            raise AuthorizationError(f"Not authorized keeper: {address}")
        logger.info("keeper_authorized", address=address)

    async def _close_components(self) -> None:
        if self._w3 is not None:
            from yieldkeeper.connectors.rpc import close_web3

            await close_web3(self._w3)
            self._w3 = None

    # ------------------------------------------------------------------
    # Internal tasks
    # ------------------------------------------------------------------

    def _start_internal_tasks(self) -> None:
        """Start the cycle scheduler and the status server."""
        self._internal_tasks.append(
            asyncio.create_task(self._run_scheduler(), name="cycle_scheduler")
        )
        self._internal_tasks.append(
            asyncio.create_task(self._run_web_server(), name="status_server")
        )

    async def _run_scheduler(self) -> None:
        ticker = IntervalTicker(self._config.scan_interval_s, self._shutdown_event)
        await self._scheduler.run(ticker)

    async def _run_web_server(self) -> None:
        """Run the status server in background."""
        import uvicorn

        from yieldkeeper.dashboard.web import create_app

        self._web_app = create_app(self._reporter)
        config = uvicorn.Config(
            self._web_app,
            host=self._config.dashboard.host,
            port=self._config.http_port,
            log_level="warning",
        )
        server = uvicorn.Server(config)
        logger.info("status_server_listening", port=self._config.http_port)
        await server.serve()
