"""Worker configuration.

Settings come from CLI flags with environment variables taking precedence,
the same order the entrypoints have always used. A ``.env`` file is loaded
by the entrypoint before this module reads the environment.
"""

from __future__ import annotations

import argparse
import os
from decimal import Decimal, InvalidOperation
from typing import Any, Mapping

from pydantic import BaseModel, Field, ValidationError
from web3 import Web3

from ponyref.worker.errors import ConfigurationError

DEFAULT_PIXEL_PONY_V1_ADDRESS = "0x2B4652Bd6149E407E3F57190E25cdBa1FC9d37d8"
DEFAULT_REFERRAL_CONTRACT_ADDRESS = "0x82249d29af7d7b1F20A63D7aa1248A40c58848e8"
DEFAULT_RPC_URL = "https://mainnet.base.org"


class WorkerSettings(BaseModel):
    pixel_pony_address: str = DEFAULT_PIXEL_PONY_V1_ADDRESS
    referral_address: str = DEFAULT_REFERRAL_CONTRACT_ADDRESS
    rpc_url: str = DEFAULT_RPC_URL
    private_key: str | None = Field(default=None, repr=False)
    check_interval_ms: int = Field(default=3_600_000, gt=0)
    start_block: int = Field(default=0, ge=0)
    max_block_range: int = Field(default=2000, ge=0)
    initial_lookback: int = Field(default=1000, ge=0)
    reward_per_race_wei: int = Field(default=Web3.to_wei(Decimal("0.00005"), "ether"), ge=0)
    max_retries: int = Field(default=3, ge=1)
    retry_base_delay: float = Field(default=1.0, ge=0)
    gas_limit: int = Field(default=500_000, gt=0)
    receipt_timeout: float = Field(default=180.0, gt=0)
    rpc_timeout: float = Field(default=30.0, gt=0)
    checkpoint_path: str | None = None
    basescan_api_key: str | None = Field(default=None, repr=False)

    @property
    def check_interval_seconds(self) -> float:
        return self.check_interval_ms / 1000

    def require_private_key(self) -> str:
        """Signing key, or ConfigurationError when it is missing."""
        if not self.private_key:
            raise ConfigurationError("MAINNET_PRIVATE_KEY not set in environment")
        return self.private_key


# env var -> (settings field, CLI dest)
ENV_VARS: dict[str, tuple[str, str]] = {
    "PIXEL_PONY_V1_ADDRESS": ("pixel_pony_address", "worker.pixel_pony_address"),
    "REFERRAL_CONTRACT_ADDRESS": ("referral_address", "worker.referral_address"),
    "BASE_MAINNET_RPC": ("rpc_url", "worker.rpc_url"),
    "MAINNET_PRIVATE_KEY": ("private_key", ""),
    "CHECK_INTERVAL": ("check_interval_ms", "worker.check_interval"),
    "START_BLOCK": ("start_block", "worker.start_block"),
    "MAX_BLOCK_RANGE": ("max_block_range", "worker.max_block_range"),
    "INITIAL_LOOKBACK": ("initial_lookback", "worker.initial_lookback"),
    "REWARD_PER_RACE": ("reward_per_race_wei", "worker.reward_per_race"),
    "MAX_RETRIES": ("max_retries", "worker.max_retries"),
    "RETRY_BASE_DELAY": ("retry_base_delay", "worker.retry_base_delay"),
    "GAS_LIMIT": ("gas_limit", "worker.gas_limit"),
    "RECEIPT_TIMEOUT": ("receipt_timeout", "worker.receipt_timeout"),
    "RPC_TIMEOUT": ("rpc_timeout", "worker.rpc_timeout"),
    "CHECKPOINT_PATH": ("checkpoint_path", "worker.checkpoint_path"),
    "BASESCAN_API_KEY": ("basescan_api_key", ""),
}


def add_args(parser: argparse.ArgumentParser) -> None:
    """Adds worker arguments to the parser. All default to None so env and model defaults apply."""
    parser.add_argument("--worker.pixel_pony_address", type=str, default=None)
    parser.add_argument("--worker.referral_address", type=str, default=None)
    parser.add_argument("--worker.rpc_url", type=str, default=None, help="JSON-RPC endpoint.")
    parser.add_argument("--worker.check_interval", type=int, default=None, help="Milliseconds between cycles.")
    parser.add_argument("--worker.start_block", type=int, default=None)
    parser.add_argument("--worker.max_block_range", type=int, default=None, help="Max blocks per log query.")
    parser.add_argument("--worker.initial_lookback", type=int, default=None)
    parser.add_argument("--worker.reward_per_race", type=str, default=None, help="Reward per referred race, in ether.")
    parser.add_argument("--worker.max_retries", type=int, default=None)
    parser.add_argument("--worker.retry_base_delay", type=float, default=None)
    parser.add_argument("--worker.gas_limit", type=int, default=None)
    parser.add_argument("--worker.receipt_timeout", type=float, default=None)
    parser.add_argument("--worker.rpc_timeout", type=float, default=None)
    parser.add_argument("--worker.checkpoint_path", type=str, default=None)


def parse_ether(value: Any) -> int:
    """Ether amount (string or number) to wei."""
    try:
        return int(Web3.to_wei(Decimal(str(value)), "ether"))
    except (InvalidOperation, ValueError) as e:
        raise ConfigurationError(f"invalid ether amount: {value!r}") from e


def load_settings(
    args: argparse.Namespace | None = None,
    environ: Mapping[str, str] | None = None,
) -> WorkerSettings:
    """Build settings from CLI args and the environment (env wins)."""
    environ = os.environ if environ is None else environ
    values: dict[str, Any] = {}

    for env_name, (field, dest) in ENV_VARS.items():
        raw = environ.get(env_name)
        if raw in (None, "") and args is not None and dest:
            raw = getattr(args, dest, None)
        if raw in (None, ""):
            continue
        values[field] = parse_ether(raw) if field == "reward_per_race_wei" else raw

    try:
        return WorkerSettings(**values)
    except ValidationError as e:
        raise ConfigurationError(f"invalid configuration: {e}") from e


__all__ = [
    "ENV_VARS",
    "WorkerSettings",
    "add_args",
    "load_settings",
    "parse_ether",
]
