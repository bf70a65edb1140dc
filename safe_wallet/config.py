"""
Runtime configuration for the local chain the wallet contracts run on.

Environment variables (all optional):
  SAFE_WALLET_NETWORK          -> network label used by scripts (default: development)
  SAFE_WALLET_CHAIN_ID         -> chain id used in EIP-712 domains (default: 1337)
  SAFE_WALLET_BLOCK_GAS_LIMIT  -> default and maximum gas per transaction (default: 30000000)
  SAFE_WALLET_GAS_PRICE        -> tx.gasprice when a transaction does not set one, in wei
                                  or with a unit, e.g. "1 gwei" (default: 1 gwei)
  SAFE_WALLET_DEV_ACCOUNTS     -> number of funded development accounts (default: 10)
  SAFE_WALLET_DEV_BALANCE      -> balance of each development account (default: 100 ether)
  SAFE_WALLET_RECOVERY_PERIOD  -> social recovery delay in seconds (default: 86400)
  SAFE_WALLET_LOG_LEVEL        -> logging level for scripts (default: INFO)
"""

from __future__ import annotations

import logging
import os
from dataclasses import asdict, dataclass, field, replace
from functools import lru_cache
from typing import Any, Dict, Mapping, Optional

from safe_wallet.utils import parse_value

ENV_PREFIX = "SAFE_WALLET_"


@dataclass(frozen=True)
class GasSchedule:
    """Gas charged by the local chain for each metered operation."""

    tx_base: int = 21_000
    tx_data_zero: int = 4
    tx_data_nonzero: int = 16
    entry: int = 50
    call: int = 700
    call_value: int = 9_000
    call_stipend: int = 2_300
    balance: int = 700
    sload: int = 800
    sstore_set: int = 20_000
    sstore_reset: int = 5_000
    transient: int = 100
    log: int = 375
    log_topic: int = 375
    log_data: int = 8
    keccak: int = 30
    keccak_word: int = 6
    ecrecover: int = 3_000
    create: int = 32_000


@dataclass(frozen=True)
class ChainConfig:
    network: str = "development"
    chain_id: int = 1337
    block_gas_limit: int = 30_000_000
    gas_price: int = 10**9
    dev_accounts: int = 10
    dev_balance: int = 100 * 10**18
    recovery_period: int = 86_400
    max_call_depth: int = 1024
    log_level: str = "INFO"
    gas: GasSchedule = field(default_factory=GasSchedule)

    def summary(self) -> Dict[str, Any]:
        return asdict(self)


def _int_env(env: Mapping[str, str], name: str, default: int) -> int:
    raw = env.get(ENV_PREFIX + name)
    if raw is None or raw.strip() == "":
        return default
    try:
        return parse_value(raw.strip())
    except (TypeError, ValueError) as e:
        raise ValueError(f"{ENV_PREFIX}{name}: cannot parse {raw!r}") from e


def _validate(cfg: ChainConfig) -> None:
    if cfg.chain_id <= 0:
        raise ValueError("chain_id must be positive")
    if cfg.block_gas_limit < cfg.gas.tx_base:
        raise ValueError("block_gas_limit must cover the transaction base cost")
    if cfg.gas_price < 0 or cfg.dev_balance < 0 or cfg.dev_accounts < 0:
        raise ValueError("gas_price, dev_balance and dev_accounts must be non-negative")
    if cfg.recovery_period < 0:
        raise ValueError("recovery_period must be non-negative")


def load_config(
    env: Optional[Mapping[str, str]] = None,
    overrides: Optional[Mapping[str, Any]] = None,
) -> ChainConfig:
    """
    Build a ChainConfig from environment variables, then apply ``overrides``
    (field name -> value).
    """
    env = os.environ if env is None else env
    defaults = ChainConfig()
    cfg = ChainConfig(
        network=env.get(ENV_PREFIX + "NETWORK", defaults.network),
        chain_id=_int_env(env, "CHAIN_ID", defaults.chain_id),
        block_gas_limit=_int_env(env, "BLOCK_GAS_LIMIT", defaults.block_gas_limit),
        gas_price=_int_env(env, "GAS_PRICE", defaults.gas_price),
        dev_accounts=_int_env(env, "DEV_ACCOUNTS", defaults.dev_accounts),
        dev_balance=_int_env(env, "DEV_BALANCE", defaults.dev_balance),
        recovery_period=_int_env(env, "RECOVERY_PERIOD", defaults.recovery_period),
        log_level=env.get(ENV_PREFIX + "LOG_LEVEL", defaults.log_level).upper(),
    )
    if overrides:
        cfg = replace(cfg, **dict(overrides))
    _validate(cfg)
    return cfg


@lru_cache(maxsize=1)
def get_config() -> ChainConfig:
    return load_config()


def configure_logging(level: Optional[str] = None) -> None:
    """Root logging setup for scripts. Library modules only create loggers."""
    logging.basicConfig(
        level=getattr(logging, (level or get_config().log_level).upper(), logging.INFO),
        format="%(asctime)s %(levelname)-7s %(name)s: %(message)s",
    )
