"""
Tests for ScheduleCoordinator: round structure, skips, failure isolation,
stop requests and cancellation.
"""

import asyncio
from collections import Counter
from decimal import Decimal

import pytest

from conftest import USDC, DictWallets, make_wallet, wei
from monad_ambient.config import ScheduleConfig, StrategyKind
from monad_ambient.constants import MAX_UINT256
from monad_ambient.executor import SwapExecutor
from monad_ambient.randomness import RandomnessService
from monad_ambient.scheduler import ScheduleCoordinator
from monad_ambient.utils import ConfigurationError, ErrorKind


def run(coro):
    return asyncio.run(coro)


def mon_to_token_config(**overrides):
    values = dict(
        strategy=StrategyKind.MON_TO_TOKEN,
        token_address=USDC,
        min_amount=Decimal("0.01"),
        max_amount=Decimal("0.05"),
        rounds_per_wallet=2,
    )
    values.update(overrides)
    return ScheduleConfig(**values)


@pytest.fixture
def trio(chain):
    wallets = [make_wallet(name, seed) for seed, name in enumerate(["alice", "bob", "carol"], start=1)]
    for w in wallets:
        chain.mon[w.address] = wei("1")
    return wallets


def build(chain, tokens, randomness, wallets, reporter=None):
    executor = SwapExecutor(chain, tokens)
    return ScheduleCoordinator(executor, DictWallets(*wallets), tokens, randomness, reporter)


class TestRunStructure:
    """Tests for rounds and ordering."""

    def test_every_wallet_once_per_round(self, chain, tokens, randomness, trio):
        events = []
        coordinator = build(chain, tokens, randomness, trio, lambda e, p: events.append((e, p)))

        report = run(coordinator.run(["alice", "bob", "carol"], mon_to_token_config()))

        assert len(report.results) == 6
        per_round = Counter((r.round, r.wallet_name) for r in report.results)
        assert set(per_round.values()) == {1}
        orders = [p["order"] for e, p in events if e == "round_started"]
        assert len(orders) == 2
        assert all(sorted(o) == ["alice", "bob", "carol"] for o in orders)
        assert report.summary.attempted == 6
        assert report.summary.successful == 6
        assert not report.cancelled

    def test_order_reshuffled_each_round(self, chain, tokens, randomness):
        names = ["alice", "bob", "carol", "dave", "erin", "frank"]
        wallets = [make_wallet(name, seed) for seed, name in enumerate(names, start=1)]
        for w in wallets:
            chain.mon[w.address] = wei("1")
        events = []

        run(build(chain, tokens, randomness, wallets, lambda e, p: events.append((e, p))).run(
            names, mon_to_token_config()))

        orders = [p["order"] for e, p in events if e == "round_started"]
        assert len(orders) == 2
        assert all(sorted(o) == sorted(names) for o in orders)
        assert orders[0] != orders[1]

    def test_amounts_within_bounds(self, chain, tokens, randomness, trio):
        report = run(build(chain, tokens, randomness, trio).run(
            ["alice", "bob", "carol"], mon_to_token_config()))
        assert all(Decimal("0.01") <= r.amount <= Decimal("0.05") for r in report.results)

    def test_stats_invariant(self, chain, tokens, randomness, trio):
        chain.mon[trio[1].address] = 0
        report = run(build(chain, tokens, randomness, trio).run(
            ["alice", "bob", "carol"], mon_to_token_config()))

        for stats in report.stats.values():
            assert stats.completed == stats.successful + len(stats.failures)
        assert report.stats["bob"].successful == 0
        assert report.stats["bob"].completed == 2

    def test_events_emitted(self, chain, tokens, randomness, trio):
        events = []
        run(build(chain, tokens, randomness, trio, lambda e, p: events.append(e)).run(
            ["alice", "bob", "carol"], mon_to_token_config(rounds_per_wallet=1)))

        assert events[0] == "run_started"
        assert events[-1] == "run_finished"
        assert events.count("wallet_finished") == 3


class TestFailureIsolation:
    """Failures stay local to one wallet and round."""

    def test_insufficient_balance_is_a_skip(self, chain, tokens, randomness, trio):
        chain.mon[trio[0].address] = wei("0.001")
        report = run(build(chain, tokens, randomness, trio).run(
            ["alice", "bob", "carol"], mon_to_token_config()))

        skipped = [r for r in report.results if r.wallet_name == "alice"]
        assert len(skipped) == 2
        assert all(r.action == "skip" for r in skipped)
        assert all(r.outcome.error_kind is ErrorKind.INSUFFICIENT_BALANCE for r in skipped)
        assert sum(r.success for r in report.results) == 4

    def test_missing_wallet_is_skipped_without_record(self, chain, tokens, randomness, trio):
        events = []
        report = run(build(chain, tokens, randomness, trio, lambda e, p: events.append(e)).run(
            ["alice", "ghost"], mon_to_token_config(rounds_per_wallet=1)))

        assert [r.wallet_name for r in report.results] == ["alice"]
        assert "wallet_skipped" in events

    def test_unexpected_error_recorded(self, chain, tokens, randomness, trio):
        chain.fail["get_balance"] = RuntimeError("rpc exploded")
        report = run(build(chain, tokens, randomness, trio).run(
            ["alice"], mon_to_token_config(rounds_per_wallet=2)))

        assert len(report.results) == 2
        assert all(r.outcome.error_kind is ErrorKind.UNKNOWN_ERROR for r in report.results)


class TestStrategies:
    """Tests for each configured strategy."""

    def test_token_to_mon_sells_fraction(self, chain, tokens, randomness, trio):
        alice = trio[0]
        chain.tokens[(USDC, alice.address)] = 10_000_000
        chain.allowances[(USDC, alice.address)] = MAX_UINT256

        report = run(build(chain, tokens, randomness, trio).run(
            ["alice"], mon_to_token_config(strategy=StrategyKind.TOKEN_TO_MON, rounds_per_wallet=1)))

        assert report.results[0].success
        assert chain.calls_to("swap_exact_tokens_for_eth")[0][1] == 9_000_000

    def test_fixed_amount(self, chain, tokens, randomness, trio):
        config = mon_to_token_config(dynamic_amount=False, amount=Decimal("0.02"), rounds_per_wallet=1)
        run(build(chain, tokens, randomness, trio).run(["alice"], config))
        assert chain.calls_to("swap_exact_eth_for_tokens")[0][1] == wei("0.02")

    def test_roundtrip_strategy(self, chain, tokens, randomness, trio):
        alice, bob = trio[0], trio[1]
        held = {alice.address: 5_000_000, bob.address: 7_250_001}
        for address, units in held.items():
            chain.tokens[(USDC, address)] = units
            chain.allowances[(USDC, address)] = MAX_UINT256
        config = mon_to_token_config(strategy=StrategyKind.ROUNDTRIP, min_amount=Decimal("0.04"),
                                     max_amount=Decimal("0.04"), rounds_per_wallet=1)

        report = run(build(chain, tokens, randomness, trio).run(["alice", "bob"], config))

        assert [r.success for r in report.results] == [True, True]
        assert all(len(r.outcome.tx_hashes) == 2 for r in report.results)
        assert all(r.action == "roundtrip" and r.amount == Decimal("0.04") for r in report.results)
        outbound = {args[0].address: args[1] for args in chain.calls_to("swap_exact_eth_for_tokens")}
        inbound = {args[0].address: args[1] for args in chain.calls_to("swap_exact_tokens_for_eth")}
        assert outbound == {alice.address: wei("0.02"), bob.address: wei("0.02")}
        assert inbound == held

    def test_auto_random_falls_back_to_direct_transfer(self, chain, tokens, randomness, trio):
        chain.fail["swap_exact_eth_for_tokens"] = ValueError("reverted")
        sends = []

        def flaky_send(*args):
            sends.append(args)
            if len(sends) == 1:
                raise ValueError("nonce too low")

        chain.on_submit["send_value"] = flaky_send

        config = ScheduleConfig(
            strategy=StrategyKind.AUTO_RANDOM,
            min_amount=Decimal("0.04"),
            max_amount=Decimal("0.04"),
            rounds_per_wallet=1,
        )
        report = run(build(chain, tokens, randomness, trio).run(["alice"], config))

        result = report.results[0]
        assert result.success
        assert result.outcome.used_fallback
        assert result.action == "mon_to_token (fallback)"
        assert result.amount == Decimal("0.04")
        assert sends[1][2] == wei("0.01")


class TestValidation:

    def test_empty_wallet_list(self, chain, tokens, randomness, trio):
        with pytest.raises(ConfigurationError):
            run(build(chain, tokens, randomness, trio).run([], mon_to_token_config()))

    def test_duplicate_wallets(self, chain, tokens, randomness, trio):
        with pytest.raises(ConfigurationError):
            run(build(chain, tokens, randomness, trio).run(["alice", "alice"], mon_to_token_config()))

    def test_min_above_max(self, chain, tokens, randomness, trio):
        config = mon_to_token_config(min_amount=Decimal("1"), max_amount=Decimal("0.5"))
        with pytest.raises(ConfigurationError):
            run(build(chain, tokens, randomness, trio).run(["alice"], config))
        assert not chain.calls

    def test_unresolvable_token(self, chain, tokens, randomness, trio):
        chain.fail["token_symbol"] = ValueError("not a contract")
        config = mon_to_token_config(token_address="0x2222222222222222222222222222222222222222")
        with pytest.raises(ConfigurationError):
            run(build(chain, tokens, randomness, trio).run(["alice"], config))


class TestStopAndCancel:
    """Tests for graceful stop and cancellation."""

    def test_request_stop_finishes_current_operation(self, chain, tokens, randomness, trio):
        holder = {}

        def reporter(event, payload):
            if event == "wallet_finished":
                holder["coordinator"].request_stop()

        coordinator = build(chain, tokens, randomness, trio, reporter)
        holder["coordinator"] = coordinator
        report = run(coordinator.run(["alice", "bob", "carol"], mon_to_token_config()))

        assert len(report.results) == 1
        assert report.cancelled

    def test_cancellation_reports_partial_results(self, chain, tokens, trio):
        events = []

        async def scenario():
            started = asyncio.Event()

            async def sleeper(seconds):
                started.set()
                await asyncio.sleep(3600)

            randomness = RandomnessService(seed=3, sleeper=sleeper)
            coordinator = build(chain, tokens, randomness, trio, lambda e, p: events.append((e, p)))
            task = asyncio.ensure_future(coordinator.run(["alice", "bob"], mon_to_token_config()))
            await started.wait()
            task.cancel()
            with pytest.raises(asyncio.CancelledError):
                await task

        run(scenario())

        cancelled = [p for e, p in events if e == "run_cancelled"]
        assert len(cancelled) == 1
        assert len(cancelled[0]["results"]) == 1
