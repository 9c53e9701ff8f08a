"""Configuration management using Pydantic Settings with YAML overlay.

Loading priority: .env → config/settings.yaml → config/settings.{MODE}.yaml
YAML carries the nested tunables; credentials and addresses come from the environment.
"""

from __future__ import annotations

import os
import re
from functools import lru_cache
from pathlib import Path
from typing import Any

import yaml
from pydantic import BaseModel, Field
from pydantic_settings import BaseSettings

from yieldkeeper.core.ports import ConfigError

_PROJECT_ROOT = Path(__file__).resolve().parent.parent.parent
_CONFIG_DIR = _PROJECT_ROOT / "config"

_ADDRESS_RE = re.compile(r"^0x[0-9a-fA-F]{40}$")
_PRIVATE_KEY_RE = re.compile(r"^(0x)?[0-9a-fA-F]{64}$")


# --- Nested config models ---


class KeeperParams(BaseModel):
    """Cycle tunables for the repayment keeper."""

    scan_interval_s: int = 1800  # 30 min between cycles
    min_yield_wei: int = 10**15  # 0.001 collateral units, used if the on-chain read fails
    min_health_factor: int = 150  # 150% collateral value / debt
    scan_batch_size: int = 100  # owners per enumeration page
    process_batch_size: int = 20  # concurrent oracle reads in Phase 2
    gas_limit: int = 80_000_000  # Mantle gas units are large; fixed ceiling
    submission_delay_s: float = 0.5  # pause between repayment transactions
    receipt_timeout_s: int = 120


class RpcConfig(BaseModel):
    """JSON-RPC transport settings."""

    timeout_s: int = 60


class DashboardConfig(BaseModel):
    """Status HTTP server configuration."""

    host: str = "0.0.0.0"


# --- Main config class ---


class KeeperConfig(BaseSettings):
    """Main configuration for the yield keeper daemon."""

    # Runtime
    mode: str = Field(default="production", alias="MODE")
    log_level: str = Field(default="INFO", alias="LOG_LEVEL")

    # Chain access
    rpc_url: str = Field(default="https://rpc.sepolia.mantle.xyz", alias="MANTLE_SEPOLIA_RPC")
    keeper_private_key: str = Field(default="", alias="KEEPER_PRIVATE_KEY")
    vault_manager_address: str = Field(default="", alias="VAULT_MANAGER_ADDRESS")
    oracle_address: str = Field(default="", alias="ORACLE_ADDRESS")

    # Status server
    http_port: int = Field(default=3001, alias="HTTP_PORT")

    # Overrides keeper.scan_interval_s when set
    scan_interval_override: int | None = Field(default=None, alias="SCAN_INTERVAL_S")

    # Nested config (loaded from YAML)
    keeper: KeeperParams = KeeperParams()
    rpc: RpcConfig = RpcConfig()
    dashboard: DashboardConfig = DashboardConfig()

    model_config = {
        "env_file": ".env",
        "env_file_encoding": "utf-8",
        "extra": "ignore",
        "frozen": True,
        "populate_by_name": True,
    }

    @property
    def scan_interval_s(self) -> int:
        """Effective cycle interval in seconds."""
        if self.scan_interval_override is not None:
            return self.scan_interval_override
        return self.keeper.scan_interval_s

    def validate_for_startup(self) -> None:
        """Check that everything the daemon needs is present and well formed.

        Raises:
            ConfigError: listing every problem found.
        """
        problems: list[str] = []

        if not self.rpc_url:
            problems.append("MANTLE_SEPOLIA_RPC is empty")
        if not self.keeper_private_key:
            problems.append("KEEPER_PRIVATE_KEY is not set")
        elif not _PRIVATE_KEY_RE.match(self.keeper_private_key):
            problems.append("KEEPER_PRIVATE_KEY is not a 32-byte hex key")
        for env_name, value in (
            ("VAULT_MANAGER_ADDRESS", self.vault_manager_address),
            ("ORACLE_ADDRESS", self.oracle_address),
        ):
            if not value:
                problems.append(f"{env_name} is not set")
            elif not _ADDRESS_RE.match(value):
                problems.append(f"{env_name} is not a 20-byte hex address")

        if self.scan_interval_s <= 0:
            problems.append("scan interval must be positive")
        if not 0 < self.http_port < 65536:
            problems.append(f"HTTP_PORT {self.http_port} out of range")
        if self.keeper.scan_batch_size <= 0 or self.keeper.process_batch_size <= 0:
            problems.append("batch sizes must be positive")
        if self.keeper.min_health_factor <= 0:
            problems.append("min_health_factor must be positive")

        if problems:
            raise ConfigError("; ".join(problems))


def _deep_merge(base: dict[str, Any], overlay: dict[str, Any]) -> dict[str, Any]:
    """Deep merge overlay into base dict. Overlay values win."""
    merged = base.copy()
    for key, value in overlay.items():
        if key in merged and isinstance(merged[key], dict) and isinstance(value, dict):
            merged[key] = _deep_merge(merged[key], value)
        else:
            merged[key] = value
    return merged


def _load_yaml(path: Path) -> dict[str, Any]:
    """Load a YAML file, returning empty dict if not found."""
    if not path.exists():
        return {}
    with open(path) as f:
        data = yaml.safe_load(f)
    return data if isinstance(data, dict) else {}


@lru_cache(maxsize=1)
def get_config() -> KeeperConfig:
    """Load and return the singleton KeeperConfig.

    Loading priority: .env → settings.yaml → settings.{MODE}.yaml
    """
    mode = os.getenv("MODE", "production")

    base_yaml = _load_yaml(_CONFIG_DIR / "settings.yaml")
    mode_yaml = _load_yaml(_CONFIG_DIR / f"settings.{mode}.yaml")

    merged = _deep_merge(base_yaml, mode_yaml)

    # Aliased fields come from env vars via pydantic-settings
    return KeeperConfig(**merged)
