"""Allow running as: python -m yieldkeeper

Usage:
  python -m yieldkeeper                  # Run cycles every scan interval + status server
  python -m yieldkeeper --once           # Single cycle, then exit
  python -m yieldkeeper --log-level DEBUG
"""

import argparse
import asyncio

from yieldkeeper.core.ports import KeeperError
from yieldkeeper.utils.logger import get_logger, setup_logging


def main() -> None:
    """CLI entry point. Exits 1 on configuration or authorization failure."""
    parser = argparse.ArgumentParser(description="Yield Keeper auto-repayment daemon")
    parser.add_argument("--log-level", default="INFO")
    parser.add_argument(
        "--once",
        action="store_true",
        help="Run a single keeper cycle and exit (no status server)",
    )
    args = parser.parse_args()

    setup_logging(log_level=args.log_level)
    logger = get_logger("cli")

    from yieldkeeper.main import KeeperOrchestrator

    try:
        orchestrator = KeeperOrchestrator()
        if args.once:
            asyncio.run(orchestrator.run_once())
        else:
            asyncio.run(orchestrator.start())
    except KeeperError as e:
        logger.critical("keeper_fatal", error=str(e), error_type=type(e).__name__)
        raise SystemExit(1) from e


main()
