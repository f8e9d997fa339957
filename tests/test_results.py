"""
Tests for outcomes, aggregation and summary rendering.
"""

from decimal import Decimal

import pytest

from monad_ambient.results import (
    Err, ResultAggregator, RoundResult, RunReport, SwapOutcome, WalletStats, render_summary,
)
from monad_ambient.utils import ErrorKind


def ok(wallet, round_number):
    return RoundResult(wallet, round_number, SwapOutcome.succeeded("0xabc"), "mon_to_token", Decimal("0.1"))


def failed(wallet, round_number, message="reverted"):
    return RoundResult(
        wallet, round_number, SwapOutcome.failed(ErrorKind.EXECUTION_FAILURE, message), "mon_to_token")


class TestSwapOutcome:
    """Tests for SwapOutcome."""

    def test_success_requires_hash(self):
        with pytest.raises(ValueError):
            SwapOutcome(True)
        with pytest.raises(ValueError):
            SwapOutcome.succeeded("")

    def test_failure_defaults_to_unknown_kind(self):
        assert SwapOutcome(False).error_kind is ErrorKind.UNKNOWN_ERROR

    def test_from_err(self):
        outcome = SwapOutcome.from_err(Err(ErrorKind.APPROVAL_FAILURE, "denied"))
        assert outcome.error_kind is ErrorKind.APPROVAL_FAILURE
        assert outcome.error_message == "denied"

    def test_to_dict(self):
        data = SwapOutcome.succeeded("0x1", "0x2", used_fallback=True).to_dict()
        assert data['tx_hashes'] == ["0x1", "0x2"]
        assert data['used_fallback'] is True
        assert data['error_kind'] is None


class TestWalletStats:
    """Tests for WalletStats."""

    def test_counts_move_together(self):
        stats = WalletStats()
        stats.record(ok("a", 1))
        stats.record(failed("a", 2))
        stats.record(ok("a", 3))

        assert stats.completed == 3
        assert stats.successful == 2
        assert stats.completed == stats.successful + len(stats.failures)
        assert stats.failures[0].round == 2

    def test_success_rate_empty(self):
        assert WalletStats().success_rate == 0.0


class TestResultAggregator:
    """Tests for ResultAggregator."""

    def test_summary(self):
        aggregator = ResultAggregator(["a", "b", "c"])
        aggregator.add(ok("a", 1))
        aggregator.add(failed("b", 1))
        aggregator.add(ok("b", 2))

        summary = aggregator.summary()

        assert summary.attempted == 3
        assert summary.successful == 2
        assert summary.per_wallet["c"].completed == 0
        assert round(summary.overall_success_rate) == 67

    def test_results_are_a_snapshot(self):
        aggregator = ResultAggregator()
        aggregator.add(ok("a", 1))
        snapshot = aggregator.results
        aggregator.add(ok("a", 2))
        assert len(snapshot) == 1


class TestRenderSummary:
    """Tests for the printable summary."""

    def test_lists_first_three_failures(self):
        aggregator = ResultAggregator(["alice"])
        for i in range(1, 6):
            aggregator.add(failed("alice", i, f"error {i}"))
        aggregator.add(ok("alice", 6))

        text = render_summary(aggregator.summary(), Decimal("-0.0123"))

        assert "alice: 1/6 successful (17%)" in text
        assert "Failures: 5" in text
        assert "Round 3: error 3" in text
        assert "Round 4" not in text
        assert "...and 2 more failures" in text
        assert "Overall: 1/6 successful swaps (17%)" in text
        assert "MON balance change: -0.0123 MON" in text

    def test_without_balance_change(self):
        text = render_summary(ResultAggregator(["a"]).summary())
        assert "MON balance change" not in text


class TestRunReport:

    def test_net_balance_change(self):
        summary = ResultAggregator().summary()
        report = RunReport((), summary.per_wallet, summary, {"a": Decimal("-0.1"), "b": Decimal("0.02")})
        assert report.net_balance_change == Decimal("-0.08")
        assert report.to_dict()['net_balance_change'] == "-0.08"
