"""
Monad Ambient Swap Engine

Randomized swap orchestration against the Ambient Finance router on Monad
testnet, with direct-transfer fallbacks and multi-wallet scheduling.

Usage:
    from monad_ambient import ChainClient, Config, SwapExecutor, TokenRepository

    # See `python -m monad_ambient --help` for the command line
"""

__version__ = "1.0.0"
__license__ = "MIT"

from .config import Config, ConfigManager, ScheduleConfig, StrategyKind
from .chain import ChainClient, TxHandle
from .wallets import WalletHandle, WalletManager
from .tokens import TokenDescriptor, TokenRepository
from .randomness import RandomnessService
from .amounts import AmountPlanner
from .executor import SwapExecutor, SwapKind, SwapRequest
from .roundtrip import RoundtripCoordinator
from .strategy import Action, StrategySelector
from .scheduler import ScheduleCoordinator
from .results import ResultAggregator, RoundResult, RunReport, SwapOutcome, render_summary
from .utils import (
    logger,
    ErrorKind,
    SwapError,
    InsufficientBalance,
    TransactionError,
    ConfigurationError,
    WalletError,
)

__all__ = [
    "Config",
    "ConfigManager",
    "ScheduleConfig",
    "StrategyKind",
    "ChainClient",
    "TxHandle",
    "WalletHandle",
    "WalletManager",
    "TokenDescriptor",
    "TokenRepository",
    "RandomnessService",
    "AmountPlanner",
    "SwapExecutor",
    "SwapKind",
    "SwapRequest",
    "RoundtripCoordinator",
    "Action",
    "StrategySelector",
    "ScheduleCoordinator",
    "ResultAggregator",
    "RoundResult",
    "RunReport",
    "SwapOutcome",
    "render_summary",
    "logger",
    "ErrorKind",
    "SwapError",
    "InsufficientBalance",
    "TransactionError",
    "ConfigurationError",
    "WalletError",
]
