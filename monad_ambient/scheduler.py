"""
Schedule Coordinator
====================
Runs a strategy across many wallets in rounds.

Each round visits every wallet exactly once in a freshly shuffled order.
Per wallet the state goes Idle -> Executing -> Recorded: resolve the
handle, derive action and amount, execute, record the result, then pause
before the next wallet. A longer pause separates rounds.

Wallets are processed strictly one after another. Failures stay local to
the wallet/round that produced them; only a ConfigurationError raised
before the first round, `request_stop()` or task cancellation ends a run.
"""

import asyncio
from decimal import Decimal
from typing import Dict, List, Optional, Sequence

from .amounts import AmountPlanner
from .balances import mon_balance, token_balance
from .config import ScheduleConfig, StrategyKind
from .events import EventEmitter, Reporter
from .executor import SwapExecutor
from .randomness import RandomnessService
from .results import ResultAggregator, RoundResult, RunReport, SwapOutcome
from .roundtrip import RoundtripCoordinator
from .strategy import Action, StrategySelector
from .tokens import TokenDescriptor, TokenRepository
from .utils import (
    ConfigurationError, ErrorKind, InsufficientBalance, format_address, logger,
    sanitize_error_message,
)
from .wallets import WalletHandle

# Share of the planned amount sent directly when an auto_random action fails
AUTO_RANDOM_FALLBACK_SHARE = Decimal("0.25")


async def perform_action(executor: SwapExecutor, roundtrips: RoundtripCoordinator,
                         planner: AmountPlanner, action: Action, wallet: WalletHandle,
                         token: TokenDescriptor, amount: Decimal, held: Decimal,
                         sell_fraction: Decimal, slippage_bps: int) -> SwapOutcome:
    """Run a selected action. SWAP_IN sells `sell_fraction` of `held`."""
    if action is Action.SWAP_OUT:
        return await executor.mon_to_token(wallet, token.address, amount, slippage_bps)
    if action is Action.SWAP_IN:
        sell = planner.fraction_of(held, sell_fraction, token.decimals)
        if sell <= 0:
            return SwapOutcome.failed(ErrorKind.INSUFFICIENT_BALANCE, f"{token.symbol} balance too small to sell")
        return await executor.token_to_mon(wallet, token.address, sell, slippage_bps)
    return await roundtrips.roundtrip(wallet, token.address, amount, slippage_bps)


class ScheduleCoordinator:
    """
    Args:
        executor: SwapExecutor bound to a chain client
        wallets: provider with `get(name) -> WalletHandle | None`
        tokens: TokenRepository used to resolve and pick tokens
        randomness: shared RandomnessService (order, amounts, pauses)
        reporter: optional `reporter(event, payload)` progress callback
    """

    def __init__(
        self,
        executor: SwapExecutor,
        wallets,
        tokens: TokenRepository,
        randomness: RandomnessService,
        reporter: Optional[Reporter] = None,
        roundtrips: Optional[RoundtripCoordinator] = None,
    ):
        self.executor = executor
        self.chain = executor.chain
        self.wallets = wallets
        self.tokens = tokens
        self.random = randomness
        self.planner = AmountPlanner(randomness)
        self.selector = StrategySelector(randomness)
        self.roundtrips = roundtrips or RoundtripCoordinator(executor, randomness, tokens)
        self._emit = EventEmitter(reporter)
        self._stop_requested = False

    def request_stop(self):
        """Stop scheduling further operations; the current one finishes."""
        logger.info("Stop requested, finishing current operation")
        self._stop_requested = True

    @property
    def stop_requested(self) -> bool:
        return self._stop_requested

    async def run(self, wallet_names: Sequence[str], config: ScheduleConfig) -> RunReport:
        names = self._validate(wallet_names, config)
        token = await self._resolve_target(config)

        self._stop_requested = False
        aggregator = ResultAggregator(names)
        handles: Dict[str, Optional[WalletHandle]] = {}
        start_balances: Dict[str, Decimal] = {}
        rounds = config.rounds_per_wallet

        logger.info(f"Starting multi-wallet operation with {len(names)} wallets, {rounds} rounds each")
        self._emit("run_started", wallets=list(names), rounds=rounds, strategy=config.strategy.value)

        try:
            for round_index in range(rounds):
                if self._stop_requested:
                    break
                round_number = round_index + 1
                order = self.random.shuffle(names)
                self._emit("round_started", round=round_number, rounds=rounds, order=order)

                for position, name in enumerate(order):
                    if self._stop_requested:
                        break
                    result = await self._visit(name, round_number, config, token, handles, start_balances)
                    if result is not None:
                        aggregator.add(result)
                        self._emit("wallet_finished", result=result)

                    if position < len(order) - 1 and not self._stop_requested:
                        await self.random.delay(*config.wallet_delay_ms)

                self._emit("round_finished", round=round_number, rounds=rounds)
                if round_index < rounds - 1 and not self._stop_requested:
                    await self.random.delay(*config.round_delay_ms)
        except asyncio.CancelledError:
            logger.warning("Run cancelled")
            self._emit("run_cancelled", results=aggregator.results)
            raise

        deltas = await self._balance_deltas(handles, start_balances)
        summary = aggregator.summary()
        report = RunReport(
            results=aggregator.results,
            stats=summary.per_wallet,
            summary=summary,
            balance_deltas=deltas,
            cancelled=self._stop_requested,
        )
        self._emit("run_stopped" if report.cancelled else "run_finished", report=report)
        return report

    # Setup

    def _validate(self, wallet_names: Sequence[str], config: ScheduleConfig) -> List[str]:
        config.validate()
        names = list(wallet_names)
        if not names:
            raise ConfigurationError("No wallets selected")
        if len(set(names)) != len(names):
            raise ConfigurationError("Wallet names must be unique")
        return names

    async def _resolve_target(self, config: ScheduleConfig) -> Optional[TokenDescriptor]:
        if config.strategy is StrategyKind.AUTO_RANDOM:
            if not self.tokens.all():
                raise ConfigurationError("auto_random needs at least one known token")
            return None
        token = await self.tokens.resolve(config.token_address, self.chain)
        if token is None:
            raise ConfigurationError(f"Token information unavailable for {config.token_address}")
        return token

    # Per wallet

    async def _visit(self, name: str, round_number: int, config: ScheduleConfig,
                     token: Optional[TokenDescriptor], handles: Dict[str, Optional[WalletHandle]],
                     start_balances: Dict[str, Decimal]) -> Optional[RoundResult]:
        try:
            if name not in handles:
                handles[name] = self.wallets.get(name)
            wallet = handles[name]
            if wallet is None:
                logger.warning(f"Wallet {name} not found, skipping")
                self._emit("wallet_skipped", wallet=name, round=round_number)
                return None

            self._emit("wallet_started", wallet=name, address=wallet.address, round=round_number)
            logger.info(f"Processing wallet {name} ({format_address(wallet.address)}), round {round_number}")
            if name not in start_balances:
                start_balances[name] = await mon_balance(self.chain, wallet.address)

            if config.strategy is StrategyKind.AUTO_RANDOM:
                return await self._auto_random(wallet, round_number, config)
            return await self._configured(wallet, round_number, config, token)

        except InsufficientBalance as e:
            logger.warning(f"{name}: {e.message}. Skipping this swap.")
            return RoundResult(
                name, round_number, SwapOutcome.failed(ErrorKind.INSUFFICIENT_BALANCE, e.message),
                action="skip", token_symbol=token.symbol if token else None,
            )
        except Exception as e:
            message = sanitize_error_message(e)
            logger.exception(f"Failed for wallet {name} in round {round_number}: {message}")
            return RoundResult(
                name, round_number, SwapOutcome.failed(ErrorKind.UNKNOWN_ERROR, message),
                action=config.strategy.value, token_symbol=token.symbol if token else None,
            )

    def _mon_amount(self, balance: Decimal, config: ScheduleConfig) -> Decimal:
        if config.dynamic_amount:
            return self.planner.plan(balance, config.min_amount, config.max_amount, config.balance_fraction)
        return self.planner.plan_fixed(config.amount)

    async def _configured(self, wallet: WalletHandle, round_number: int, config: ScheduleConfig,
                          token: TokenDescriptor) -> RoundResult:
        slippage = config.slippage_bps

        if config.strategy is StrategyKind.TOKEN_TO_MON:
            held = await token_balance(self.chain, self.tokens, token.address, wallet.address)
            if held <= 0:
                raise InsufficientBalance(f"No {token.symbol} balance")
            if config.dynamic_amount:
                amount = self.planner.fraction_of(held, config.token_sell_fraction, token.decimals)
                if amount <= 0:
                    raise InsufficientBalance(f"{token.symbol} balance too small to sell")
            else:
                amount = self.planner.plan_fixed(config.amount, held, None, token.decimals)
            outcome = await self.executor.token_to_mon(wallet, token.address, amount, slippage)
            return RoundResult(wallet.name, round_number, outcome, config.strategy.value, amount, token.symbol)

        balance = await mon_balance(self.chain, wallet.address)
        amount = self._mon_amount(balance, config)
        if config.strategy is StrategyKind.MON_TO_TOKEN:
            outcome = await self.executor.mon_to_token(wallet, token.address, amount, slippage)
        else:
            outcome = await self.roundtrips.roundtrip(wallet, token.address, amount, slippage)
        return RoundResult(wallet.name, round_number, outcome, config.strategy.value, amount, token.symbol)

    async def _auto_random(self, wallet: WalletHandle, round_number: int,
                           config: ScheduleConfig) -> RoundResult:
        token = self.tokens.random_token(self.random)
        logger.info(f"Selected random token for this round: {token.symbol}")

        balance = await mon_balance(self.chain, wallet.address)
        amount = self.planner.plan(balance, config.min_amount, config.max_amount, config.balance_fraction)

        held = await token_balance(self.chain, self.tokens, token.address, wallet.address)
        action = self.selector.select(held)
        logger.info(f"Randomly selected action: {action.value}")

        outcome = await perform_action(
            self.executor, self.roundtrips, self.planner, action, wallet, token, amount, held,
            config.token_sell_fraction, config.slippage_bps)
        if outcome.success:
            recorded = amount
            if action is Action.SWAP_IN:
                recorded = self.planner.fraction_of(held, config.token_sell_fraction, token.decimals)
            return RoundResult(wallet.name, round_number, outcome, action.value, recorded, token.symbol)

        logger.warning(f"Regular action failed: {outcome.error_message}")
        fallback = await self.executor.direct_transfer(
            wallet, token.address, amount * AUTO_RANDOM_FALLBACK_SHARE, native=True)
        if fallback.success:
            logger.info(f"Fallback direct MON transaction completed: {fallback.tx_hash}")
            return RoundResult(wallet.name, round_number, fallback, f"{action.value} (fallback)",
                               amount, token.symbol)
        return RoundResult(wallet.name, round_number, outcome, action.value, amount, token.symbol)

    # Teardown

    async def _balance_deltas(self, handles: Dict[str, Optional[WalletHandle]],
                              start_balances: Dict[str, Decimal]) -> Dict[str, Decimal]:
        deltas: Dict[str, Decimal] = {}
        for name, start in start_balances.items():
            wallet = handles.get(name)
            try:
                deltas[name] = await mon_balance(self.chain, wallet.address) - start
            except Exception as e:
                logger.warning(f"Could not read final balance of {name}: {sanitize_error_message(e)}")
        return deltas
