"""
Configuration Management Module

Network/runtime settings (Config) and per-run scheduling parameters
(ScheduleConfig), both stored as YAML.
"""

import os
from enum import Enum
from decimal import Decimal
from pathlib import Path
from typing import Dict, Any, Optional, Tuple
from dataclasses import dataclass, asdict

import yaml

from .constants import (
    MONAD_TESTNET_RPC, CHAIN_ID, WRAPPED_MON, AMBIENT_ROUTER, AMBIENT_FACTORY,
    EXPLORER_TOKENS_API, GAS_LIMIT, GAS_PRICE_GWEI, BPS_DENOMINATOR,
)
from .utils import ConfigurationError, logger


@dataclass
class Config:
    """Engine configuration settings."""

    # Network
    rpc_url: str = MONAD_TESTNET_RPC
    chain_id: int = CHAIN_ID

    # Contracts
    wrapped_mon: str = WRAPPED_MON
    router_address: str = AMBIENT_ROUTER
    factory_address: str = AMBIENT_FACTORY

    # Gas settings (fixed on Monad testnet)
    gas_limit: int = GAS_LIMIT
    gas_price_gwei: int = GAS_PRICE_GWEI

    # Token discovery
    explorer_tokens_url: str = EXPLORER_TOKENS_API
    explorer_timeout_seconds: float = 5.0

    # Storage
    wallet_file: str = "./wallets.json"

    # Operation
    log_level: str = "INFO"
    log_file: Optional[str] = "./logs/monad_ambient.log"
    json_log_file: Optional[str] = "./logs/monad_ambient.jsonl"
    metrics_file: Optional[str] = "./logs/metrics.json"
    random_seed: Optional[int] = None

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary."""
        return asdict(self)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Config":
        """Create Config from dictionary."""
        # Filter only valid fields
        valid_fields = {k: v for k, v in (data or {}).items() if k in cls.__dataclass_fields__}
        return cls(**valid_fields)


class StrategyKind(Enum):
    """What a scheduled run does for each wallet in each round."""
    MON_TO_TOKEN = "mon_to_token"
    TOKEN_TO_MON = "token_to_mon"
    ROUNDTRIP = "roundtrip"
    AUTO_RANDOM = "auto_random"


def _decimal_or_none(value) -> Optional[Decimal]:
    if value is None:
        return None
    return Decimal(str(value))


@dataclass
class ScheduleConfig:
    """Parameters for a multi-wallet scheduled run."""

    strategy: StrategyKind = StrategyKind.AUTO_RANDOM
    token_address: Optional[str] = None     # unused by AUTO_RANDOM

    # Sizing: fixed amount, or random within bounds when dynamic_amount is set
    amount: Optional[Decimal] = None
    min_amount: Optional[Decimal] = None
    max_amount: Optional[Decimal] = None
    dynamic_amount: bool = True

    slippage_bps: int = 500
    rounds_per_wallet: int = 1

    balance_fraction: Decimal = Decimal("0.7")      # max share of MON per operation
    token_sell_fraction: Decimal = Decimal("0.9")   # share of token balance sold

    # Pauses in milliseconds
    wallet_delay_ms: Tuple[int, int] = (1000, 5000)
    round_delay_ms: Tuple[int, int] = (3000, 8000)

    def __post_init__(self):
        if isinstance(self.strategy, str):
            self.strategy = StrategyKind(self.strategy)
        self.amount = _decimal_or_none(self.amount)
        self.min_amount = _decimal_or_none(self.min_amount)
        self.max_amount = _decimal_or_none(self.max_amount)
        self.balance_fraction = Decimal(str(self.balance_fraction))
        self.token_sell_fraction = Decimal(str(self.token_sell_fraction))
        self.wallet_delay_ms = tuple(self.wallet_delay_ms)
        self.round_delay_ms = tuple(self.round_delay_ms)

    def validate(self) -> "ScheduleConfig":
        """Raise ConfigurationError if the parameters cannot drive a run."""
        if self.strategy is not StrategyKind.AUTO_RANDOM and not self.token_address:
            raise ConfigurationError(f"{self.strategy.value} requires a token address")

        if self.dynamic_amount:
            if self.min_amount is None or self.max_amount is None:
                raise ConfigurationError("Dynamic amounts require min_amount and max_amount")
            if self.min_amount <= 0 or self.max_amount <= 0:
                raise ConfigurationError("Amount bounds must be positive")
            if self.min_amount > self.max_amount:
                raise ConfigurationError(
                    f"min_amount ({self.min_amount}) exceeds max_amount ({self.max_amount})"
                )
        else:
            if self.amount is None or self.amount <= 0:
                raise ConfigurationError("A positive fixed amount is required when dynamic_amount is off")
            if self.strategy is StrategyKind.AUTO_RANDOM:
                raise ConfigurationError("auto_random sizes every operation from min/max bounds")

        if self.rounds_per_wallet < 1:
            raise ConfigurationError("rounds_per_wallet must be at least 1")
        if not 0 <= self.slippage_bps < BPS_DENOMINATOR:
            raise ConfigurationError(f"slippage_bps must be in [0, {BPS_DENOMINATOR})")
        for name in ("balance_fraction", "token_sell_fraction"):
            value = getattr(self, name)
            if not Decimal(0) < value <= Decimal(1):
                raise ConfigurationError(f"{name} must be in (0, 1]")
        for name in ("wallet_delay_ms", "round_delay_ms"):
            lo, hi = getattr(self, name)
            if lo < 0 or hi < lo:
                raise ConfigurationError(f"{name} must be a non-negative (min, max) range")
        return self

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        data["strategy"] = self.strategy.value
        for key in ("amount", "min_amount", "max_amount", "balance_fraction", "token_sell_fraction"):
            if data[key] is not None:
                data[key] = str(data[key])
        data["wallet_delay_ms"] = list(self.wallet_delay_ms)
        data["round_delay_ms"] = list(self.round_delay_ms)
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ScheduleConfig":
        return cls(**{k: v for k, v in (data or {}).items() if k in cls.__dataclass_fields__})


class ConfigManager:
    """Reads and writes the YAML configuration file."""

    def __init__(self, config_path: Path = Path("./monad_ambient.yaml")):
        self.config_path = Path(config_path)

    def exists(self) -> bool:
        return self.config_path.exists()

    def load_config(self) -> Config:
        """Load configuration, falling back to defaults when no file exists."""
        if not self.config_path.exists():
            logger.debug(f"No config file at {self.config_path}, using defaults")
            return Config()

        with open(self.config_path, 'r') as f:
            data = yaml.safe_load(f) or {}

        config = Config.from_dict(data.get("engine", data))
        logger.debug("Configuration loaded successfully")
        return config

    def load_schedule(self) -> Optional[ScheduleConfig]:
        """Load the optional `schedule` section."""
        if not self.config_path.exists():
            return None
        with open(self.config_path, 'r') as f:
            data = yaml.safe_load(f) or {}
        if "schedule" not in data:
            return None
        return ScheduleConfig.from_dict(data["schedule"])

    def save_config(self, config: Config, schedule: Optional[ScheduleConfig] = None):
        """Save configuration to YAML file."""
        self.config_path.parent.mkdir(parents=True, exist_ok=True)

        data: Dict[str, Any] = {"engine": config.to_dict()}
        if schedule is not None:
            data["schedule"] = schedule.to_dict()

        with open(self.config_path, 'w') as f:
            yaml.dump(data, f, default_flow_style=False, sort_keys=False)

        # Set restrictive permissions (owner read/write only)
        os.chmod(self.config_path, 0o600)

        logger.info(f"Configuration saved to {self.config_path}")

    def update_config(self, updates: Dict[str, Any]) -> Config:
        """Update engine configuration values."""
        config = self.load_config()
        data = config.to_dict()
        data.update(updates)
        config = Config.from_dict(data)
        self.save_config(config, self.load_schedule())
        logger.info("Configuration updated")
        return config
