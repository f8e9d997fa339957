"""
Result types and aggregation.

Ok/Err are returned across every engine boundary instead of raising, so
callers branch on ErrorKind explicitly. SwapOutcome is the immutable
record of one attempt; WalletStats and ResultAggregator fold outcomes into
per-wallet and overall summaries.
"""

from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal
from typing import Any, Dict, Generic, List, Optional, Tuple, TypeVar, Union

from .utils import ErrorKind, format_mon

T = TypeVar("T")


@dataclass(frozen=True)
class Ok(Generic[T]):
    value: T

    @property
    def ok(self) -> bool:
        return True


@dataclass(frozen=True)
class Err:
    kind: ErrorKind
    detail: str

    @property
    def ok(self) -> bool:
        return False


Result = Union[Ok[T], Err]


@dataclass(frozen=True)
class SwapOutcome:
    """Outcome of one attempt. A successful outcome always carries a hash."""
    success: bool
    tx_hashes: Tuple[str, ...] = ()
    error_kind: Optional[ErrorKind] = None
    error_message: Optional[str] = None
    used_fallback: bool = False

    def __post_init__(self):
        object.__setattr__(self, "tx_hashes", tuple(self.tx_hashes))
        if self.success:
            if not self.tx_hashes or not all(self.tx_hashes):
                raise ValueError("A successful outcome needs at least one non-empty transaction hash")
        elif self.error_kind is None:
            object.__setattr__(self, "error_kind", ErrorKind.UNKNOWN_ERROR)

    @classmethod
    def succeeded(cls, *tx_hashes: str, used_fallback: bool = False) -> "SwapOutcome":
        return cls(True, tuple(tx_hashes), used_fallback=used_fallback)

    @classmethod
    def failed(cls, kind: ErrorKind, message: str) -> "SwapOutcome":
        return cls(False, (), kind, message)

    @classmethod
    def from_err(cls, err: Err) -> "SwapOutcome":
        return cls.failed(err.kind, err.detail)

    @property
    def tx_hash(self) -> Optional[str]:
        return self.tx_hashes[0] if self.tx_hashes else None

    def to_dict(self) -> Dict[str, Any]:
        return {
            'success': self.success,
            'tx_hashes': list(self.tx_hashes),
            'error_kind': self.error_kind.value if self.error_kind else None,
            'error_message': self.error_message,
            'used_fallback': self.used_fallback,
        }


@dataclass(frozen=True)
class RoundResult:
    """One (wallet, round) pairing."""
    wallet_name: str
    round: int
    outcome: SwapOutcome
    action: str
    amount: Optional[Decimal] = None
    token_symbol: Optional[str] = None
    timestamp: str = field(default_factory=lambda: datetime.now().isoformat())

    @property
    def success(self) -> bool:
        return self.outcome.success

    def to_dict(self) -> Dict[str, Any]:
        return {
            'wallet': self.wallet_name,
            'round': self.round,
            'action': self.action,
            'amount': str(self.amount) if self.amount is not None else None,
            'token': self.token_symbol,
            'timestamp': self.timestamp,
            **self.outcome.to_dict(),
        }


@dataclass(frozen=True)
class FailureRecord:
    round: int
    error_kind: ErrorKind
    message: str


class WalletStats:
    """
    Per-wallet accumulator. completed == successful + len(failures) holds
    after every mutation, since both counters only move together.
    """

    def __init__(self):
        self._completed = 0
        self._successful = 0
        self._failures: List[FailureRecord] = []

    @property
    def completed(self) -> int:
        return self._completed

    @property
    def successful(self) -> int:
        return self._successful

    @property
    def failures(self) -> Tuple[FailureRecord, ...]:
        return tuple(self._failures)

    @property
    def success_rate(self) -> float:
        if self._completed == 0:
            return 0.0
        return self._successful / self._completed * 100

    def record_success(self):
        self._completed += 1
        self._successful += 1

    def record_failure(self, round_number: int, kind: ErrorKind, message: str):
        self._completed += 1
        self._failures.append(FailureRecord(round_number, kind, message))

    def record(self, result: RoundResult):
        if result.outcome.success:
            self.record_success()
        else:
            self.record_failure(
                result.round,
                result.outcome.error_kind,
                result.outcome.error_message or "",
            )

    def to_dict(self) -> Dict[str, Any]:
        return {
            'completed': self._completed,
            'successful': self._successful,
            'success_rate': round(self.success_rate, 2),
            'failures': [
                {'round': f.round, 'kind': f.error_kind.value, 'error': f.message}
                for f in self._failures
            ],
        }


@dataclass
class Summary:
    per_wallet: Dict[str, WalletStats]
    attempted: int
    successful: int

    @property
    def overall_success_rate(self) -> float:
        if self.attempted == 0:
            return 0.0
        return self.successful / self.attempted * 100

    def to_dict(self) -> Dict[str, Any]:
        return {
            'per_wallet': {name: stats.to_dict() for name, stats in self.per_wallet.items()},
            'attempted': self.attempted,
            'successful': self.successful,
            'overall_success_rate': round(self.overall_success_rate, 2),
        }


class ResultAggregator:
    """Fold over RoundResult entries; owned by a single run."""

    def __init__(self, wallet_names: Optional[List[str]] = None):
        self._results: List[RoundResult] = []
        self._wallet_names: List[str] = list(wallet_names or [])

    def add(self, result: RoundResult):
        self._results.append(result)
        if result.wallet_name not in self._wallet_names:
            self._wallet_names.append(result.wallet_name)

    @property
    def results(self) -> Tuple[RoundResult, ...]:
        return tuple(self._results)

    def summary(self) -> Summary:
        per_wallet = {name: WalletStats() for name in self._wallet_names}
        for result in self._results:
            per_wallet[result.wallet_name].record(result)
        attempted = sum(s.completed for s in per_wallet.values())
        successful = sum(s.successful for s in per_wallet.values())
        return Summary(per_wallet, attempted, successful)


@dataclass
class RunReport:
    """Everything a scheduled run produced."""
    results: Tuple[RoundResult, ...]
    stats: Dict[str, WalletStats]
    summary: Summary
    balance_deltas: Dict[str, Decimal] = field(default_factory=dict)
    cancelled: bool = False

    @property
    def net_balance_change(self) -> Decimal:
        return sum(self.balance_deltas.values(), Decimal(0))

    def to_dict(self) -> Dict[str, Any]:
        return {
            'results': [r.to_dict() for r in self.results],
            'summary': self.summary.to_dict(),
            'balance_deltas': {k: str(v) for k, v in self.balance_deltas.items()},
            'net_balance_change': str(self.net_balance_change),
            'cancelled': self.cancelled,
        }


MAX_FAILURES_SHOWN = 3


def render_summary(summary: Summary, net_change: Optional[Decimal] = None) -> str:
    """Printable aggregate summary of attempted vs. successful operations."""
    lines = ["=== Multi-Wallet Operation Summary ==="]
    for name, stats in summary.per_wallet.items():
        lines.append(
            f"{name}: {stats.successful}/{stats.completed} successful "
            f"({round(stats.success_rate)}%)"
        )
        failures = stats.failures
        if failures:
            lines.append(f"  Failures: {len(failures)}")
            for failure in failures[:MAX_FAILURES_SHOWN]:
                lines.append(f"  - Round {failure.round}: {failure.message}")
            if len(failures) > MAX_FAILURES_SHOWN:
                lines.append(f"  - ...and {len(failures) - MAX_FAILURES_SHOWN} more failures")
    lines.append(
        f"Overall: {summary.successful}/{summary.attempted} successful swaps "
        f"({round(summary.overall_success_rate)}%)"
    )
    if net_change is not None:
        lines.append(f"MON balance change: {format_mon(net_change)}")
    return "\n".join(lines)
