"""Structured logging configuration using structlog.

JSON output in production, colored console in development.
Secret masking processor ensures private keys never leak into logs.
"""

from __future__ import annotations

import logging
import os
import re
import sys
from typing import Any

import structlog

# Patterns that indicate a secret value
_SECRET_PATTERNS = re.compile(
    r"(password|token|secret|private[-_]?key|api[-_]?key|authorization)",
    re.IGNORECASE,
)
_MASK = "***REDACTED***"

# 0x + 64 hex chars: raw secp256k1 key. Tx hashes share the shape, so only
# mask when the key name does not say otherwise.
_RAW_KEY = re.compile(r"^(0x)?[0-9a-fA-F]{64}$")
_HASH_KEYS = frozenset({"tx_hash", "block_hash"})


def _mask_secrets(
    logger: structlog.types.WrappedLogger,
    method_name: str,
    event_dict: dict[str, Any],
) -> dict[str, Any]:
    """Mask any key/value pairs that look like secrets."""
    for key in list(event_dict.keys()):
        if _SECRET_PATTERNS.search(key):
            event_dict[key] = _MASK
        elif isinstance(event_dict[key], str) and key not in _HASH_KEYS:
            if _RAW_KEY.match(event_dict[key]):
                event_dict[key] = event_dict[key][:6] + "..." + _MASK
    return event_dict


def setup_logging(log_level: str = "INFO", json_output: bool | None = None) -> None:
    """Configure structlog and stdlib logging.

    Args:
        log_level: Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL).
        json_output: Force JSON output. If None, auto-detect from MODE env var.
    """
    if json_output is None:
        json_output = os.getenv("MODE", "production") != "dev"

    level = getattr(logging, log_level.upper(), logging.INFO)

    shared_processors: list[structlog.types.Processor] = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_log_level,
        structlog.stdlib.add_logger_name,
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
        _mask_secrets,
    ]

    if json_output:
        renderer: structlog.types.Processor = structlog.processors.JSONRenderer()
    else:
        renderer = structlog.dev.ConsoleRenderer(colors=True)

    structlog.configure(
        processors=[
            *shared_processors,
            structlog.stdlib.ProcessorFormatter.wrap_for_formatter,
        ],
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )

    formatter = structlog.stdlib.ProcessorFormatter(
        processors=[
            structlog.stdlib.ProcessorFormatter.remove_processors_meta,
            renderer,
        ],
    )

    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(formatter)

    root_logger = logging.getLogger()
    root_logger.handlers.clear()
    root_logger.addHandler(handler)
    root_logger.setLevel(level)

    # Silence noisy third-party loggers
    for noisy in ("aiohttp", "asyncio", "web3", "urllib3", "uvicorn.access"):
        logging.getLogger(noisy).setLevel(logging.WARNING)


def get_logger(module: str) -> structlog.stdlib.BoundLogger:
    """Get a bound logger with module context.

    Args:
        module: Module name for context binding.

    Returns:
        A structlog bound logger instance.
    """
    return structlog.get_logger(module=module)
