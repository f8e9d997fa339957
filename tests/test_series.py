"""
Tests for single-wallet swap series.
"""

import asyncio
from decimal import Decimal

from conftest import USDC, wei
from monad_ambient.constants import MAX_UINT256
from monad_ambient.executor import SwapExecutor
from monad_ambient.series import automated_roundtrips, random_multi_token_swaps
from monad_ambient.tokens import TokenDescriptor, TokenRepository


def run(coro):
    return asyncio.run(coro)


class TestAutomatedRoundtrips:
    """Tests for automated_roundtrips."""

    def test_stops_below_minimum_balance(self, chain, tokens, randomness, wallet):
        chain.mon[wallet.address] = wei("0.001")
        report = run(automated_roundtrips(
            SwapExecutor(chain, tokens), randomness, wallet, USDC, 5, Decimal("0.01"), Decimal("0.05")))

        assert report.results == ()
        assert not chain.submitted

    def test_runs_at_most_max_swaps(self, chain, tokens, randomness, wallet):
        chain.mon[wallet.address] = wei("1")
        chain.tokens[(USDC, wallet.address)] = 1_000_000
        chain.allowances[(USDC, wallet.address)] = MAX_UINT256

        report = run(automated_roundtrips(
            SwapExecutor(chain, tokens), randomness, wallet, USDC, 3, Decimal("0.01"), Decimal("0.05")))

        assert 1 <= len(report.results) <= 3
        assert all(r.success for r in report.results)
        assert all(Decimal("0.01") <= r.amount <= Decimal("0.05") for r in report.results)
        assert report.mon_delta == 0

    def test_failed_inbound_leg_self_transfers_half(self, chain, tokens, randomness, wallet):
        chain.mon[wallet.address] = wei("1")
        chain.tokens[(USDC, wallet.address)] = 4_000_000
        chain.allowances[(USDC, wallet.address)] = MAX_UINT256
        chain.fail["swap_exact_tokens_for_eth"] = ValueError("reverted")
        # Executor's own fallback fails too, the series' half-balance transfer succeeds
        transfers = []

        def flaky_transfer(*args):
            transfers.append(args)
            if len(transfers) % 2 == 1:
                raise ValueError("transfer failed")

        chain.on_submit["token_transfer"] = flaky_transfer

        report = run(automated_roundtrips(
            SwapExecutor(chain, tokens), randomness, wallet, USDC, 1, Decimal("0.01"), Decimal("0.05")))

        result = report.results[0]
        assert result.success
        assert result.outcome.used_fallback
        assert transfers[1][3] == 2_000_000

    def test_stop_event(self, chain, tokens, randomness, wallet):
        chain.mon[wallet.address] = wei("1")
        stop = asyncio.Event()
        stop.set()

        report = run(automated_roundtrips(
            SwapExecutor(chain, tokens), randomness, wallet, USDC, 5, Decimal("0.01"), Decimal("0.05"),
            stop=stop))

        assert report.results == ()
        assert report.cancelled


class TestRandomMultiTokenSwaps:
    """Tests for random_multi_token_swaps."""

    def test_buys_when_nothing_is_held(self, chain, randomness, wallet):
        tokens = TokenRepository(tokens={"USDC": TokenDescriptor("USDC", USDC, 6)})
        chain.mon[wallet.address] = wei("1")
        events = []

        report = run(random_multi_token_swaps(
            SwapExecutor(chain, tokens), randomness, tokens, wallet, 3, Decimal("0.01"), Decimal("0.05"),
            reporter=lambda e, p: events.append(e)))

        assert len(report.results) == 3
        assert {r.action for r in report.results} == {"mon_to_token"}
        assert events.count("series_step") == 3
        assert events[-1] == "series_finished"

    def test_insufficient_balance_recorded_as_skip(self, chain, tokens, randomness, wallet):
        report = run(random_multi_token_swaps(
            SwapExecutor(chain, tokens), randomness, tokens, wallet, 2, Decimal("0.01"), Decimal("0.05")))

        assert [r.action for r in report.results] == ["skip", "skip"]
        assert report.successful == 0
