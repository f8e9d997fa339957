"""
Utility Module

Error taxonomy, logging setup and formatting helpers shared by the engine.

- Exceptions carry an ErrorKind so failures can be recorded as data
- SecureLogger redacts keys, passwords and RPC URLs from log output
- Formatting helpers for addresses, hashes, amounts and durations
"""

import os
import re
import logging
from enum import Enum
from decimal import Decimal
from typing import Optional

from web3 import Web3
from rich.logging import RichHandler
from rich.console import Console


# Global console for Rich output
console = Console()


class ErrorKind(Enum):
    """Classification of a failed operation."""
    INSUFFICIENT_BALANCE = "InsufficientBalance"
    CONTRACT_UNAVAILABLE = "ContractUnavailable"
    ESTIMATION_FAILURE = "EstimationFailure"
    APPROVAL_FAILURE = "ApprovalFailure"
    EXECUTION_FAILURE = "ExecutionFailure"
    UNKNOWN_ERROR = "UnknownError"


class SwapError(Exception):
    """Base class for failures of a single operation."""

    kind = ErrorKind.UNKNOWN_ERROR

    def __init__(self, message: str, kind: Optional[ErrorKind] = None):
        super().__init__(message)
        if kind is not None:
            self.kind = kind

    @property
    def message(self) -> str:
        return str(self)


class InsufficientBalance(SwapError):
    """Amount exceeds the balance-derived ceiling. Recorded as a skip."""
    kind = ErrorKind.INSUFFICIENT_BALANCE


class TransactionError(Exception):
    """A submitted transaction reverted or could not be confirmed."""
    pass


class ConfigurationError(Exception):
    """Invalid configuration detected before a run starts."""
    pass


class WalletError(Exception):
    """Wallet storage or decryption failure."""
    pass


class SecureLogger:
    """
    Logger that sanitizes sensitive data from log messages.

    Transaction hashes are 32 bytes like private keys, so only values that
    appear next to a key/secret label are redacted, plus RPC URLs which may
    embed API keys.
    """

    SENSITIVE_PATTERNS = [
        (r'(private[_ ]?key["\']?\s*[:=]?\s*)(0x)?[a-fA-F0-9]{64}', r'\1[PRIVATE_KEY_REDACTED]'),
        (r'password["\']?\s*[:=]\s*["\']?[^"\'\s]+["\']?', 'password=[REDACTED]'),
        (r'api[_-]?key["\']?\s*[:=]\s*["\']?[^"\'\s]+["\']?', 'api_key=[REDACTED]'),
        (r'https?://[^\s]+', '[URL]'),
    ]

    def __init__(self, logger: logging.Logger):
        self._logger = logger

    @property
    def name(self) -> str:
        return self._logger.name

    def _sanitize(self, msg: str) -> str:
        """Remove sensitive data from log message."""
        if not isinstance(msg, str):
            msg = str(msg)

        sanitized = msg
        for pattern, replacement in self.SENSITIVE_PATTERNS:
            sanitized = re.sub(pattern, replacement, sanitized, flags=re.IGNORECASE)
        return sanitized

    def debug(self, msg: str, *args, **kwargs):
        self._logger.debug(self._sanitize(msg), *args, **kwargs)

    def info(self, msg: str, *args, **kwargs):
        self._logger.info(self._sanitize(msg), *args, **kwargs)

    def warning(self, msg: str, *args, **kwargs):
        self._logger.warning(self._sanitize(msg), *args, **kwargs)

    def error(self, msg: str, *args, **kwargs):
        self._logger.error(self._sanitize(msg), *args, **kwargs)

    def exception(self, msg: str, *args, **kwargs):
        self._logger.exception(self._sanitize(msg), *args, **kwargs)

    def critical(self, msg: str, *args, **kwargs):
        self._logger.critical(self._sanitize(msg), *args, **kwargs)


def setup_logging(log_level: str = "INFO", log_file: Optional[str] = None) -> SecureLogger:
    """
    Configure the package logger with a Rich console handler and an
    optional plain-text file handler.

    Returns a SecureLogger that sanitizes sensitive data.
    """
    base = logging.getLogger("monad_ambient")
    base.setLevel(getattr(logging, log_level.upper()))

    # Remove existing handlers
    base.handlers = []

    rich_handler = RichHandler(
        console=console,
        show_time=True,
        show_path=False,
        rich_tracebacks=True
    )
    rich_handler.setLevel(getattr(logging, log_level.upper()))
    rich_handler.setFormatter(logging.Formatter("%(message)s"))
    base.addHandler(rich_handler)

    if log_file:
        log_path = os.path.abspath(log_file)
        os.makedirs(os.path.dirname(log_path) or ".", exist_ok=True)

        file_handler = logging.FileHandler(log_file)
        file_handler.setLevel(getattr(logging, log_level.upper()))
        file_handler.setFormatter(logging.Formatter(
            "%(asctime)s | %(levelname)-8s | %(name)s | %(message)s",
            datefmt="%Y-%m-%d %H:%M:%S"
        ))
        base.addHandler(file_handler)

    return logger


# Package-wide logger; handlers are attached by setup_logging()
logger = SecureLogger(logging.getLogger("monad_ambient"))


# Formatting utilities

def format_mon(amount: Decimal) -> str:
    """Format a MON amount with appropriate precision."""
    amount = Decimal(amount)
    if abs(amount) < Decimal("0.001"):
        return f"{amount:.6f} MON"
    elif abs(amount) < 1:
        return f"{amount:.4f} MON"
    else:
        return f"{amount:.2f} MON"


def format_duration(seconds: float) -> str:
    """Format duration in seconds to human-readable string."""
    seconds = int(seconds)
    if seconds < 60:
        return f"{seconds}s"
    elif seconds < 3600:
        minutes = seconds // 60
        secs = seconds % 60
        return f"{minutes}m {secs}s" if secs > 0 else f"{minutes}m"
    else:
        hours = seconds // 3600
        minutes = (seconds % 3600) // 60
        return f"{hours}h {minutes}m" if minutes > 0 else f"{hours}h"


def format_address(address: str, length: int = 6) -> str:
    """Format address with ellipsis."""
    if len(address) <= length * 2 + 2:
        return address
    return f"{address[:length + 2]}...{address[-length:]}"


def format_tx_hash(tx_hash: str, length: int = 8) -> str:
    """Format transaction hash with ellipsis."""
    if len(tx_hash) <= length * 2:
        return tx_hash
    return f"{tx_hash[:length]}...{tx_hash[-length:]}"


def validate_private_key(key: str) -> bool:
    """Check that a private key is 32 bytes of hex, with or without 0x."""
    key = key.strip()
    if key.startswith("0x"):
        key = key[2:]
    if len(key) != 64:
        return False
    try:
        int(key, 16)
        return True
    except ValueError:
        return False


def validate_address(address: str) -> bool:
    """Validate an address (any case)."""
    if not address or not address.startswith("0x") or len(address) != 42:
        return False
    try:
        Web3.to_checksum_address(address)
        return True
    except ValueError:
        return False


def sanitize_error_message(error) -> str:
    """
    Sanitize error messages to remove sensitive data before they are
    stored in results or shown to the user.
    """
    if not isinstance(error, str):
        error = str(error)

    patterns = [
        (r'https?://[^\s]+', '[URL]'),
        (r'password["\']?\s*[:=]\s*\S+', 'password=[REDACTED]'),
        (r'private[_ ]?key["\']?\s*[:=]\s*\S+', 'private_key=[REDACTED]'),
    ]

    sanitized = error
    for pattern, replacement in patterns:
        sanitized = re.sub(pattern, replacement, sanitized, flags=re.IGNORECASE)

    return sanitized
