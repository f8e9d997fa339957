"""
Single-wallet swap series.

automated_roundtrips: repeated roundtrips on one token with random sizing
and pacing until the budget, the balance or a random early stop ends it.

random_multi_token_swaps: a random token and a random action per swap.

Both fall back to plain transfers when an action fails so the series keeps
producing on-chain activity, and both report the wallet's MON change.
"""

import asyncio
from dataclasses import dataclass
from decimal import Decimal
from typing import Optional, Tuple

from .amounts import AmountPlanner, fraction_of
from .balances import mon_balance, token_balance, token_decimals
from .events import EventEmitter, Reporter
from .executor import SwapExecutor
from .randomness import RandomnessService
from .results import RoundResult, SwapOutcome
from .roundtrip import RoundtripCoordinator
from .scheduler import perform_action
from .strategy import Action, StrategySelector
from .tokens import TokenRepository
from .utils import ErrorKind, InsufficientBalance, format_mon, logger, sanitize_error_message
from .wallets import WalletHandle

SERIES_DELAY_MS = (1000, 10000)
ROUNDTRIP_BALANCE_FRACTION = Decimal("0.8")
MULTI_TOKEN_BALANCE_FRACTION = Decimal("0.7")
MULTI_TOKEN_SELL_FRACTION = Decimal("0.9")
MON_FALLBACK_SHARE = Decimal("0.25")
TOKEN_FALLBACK_SHARE = Decimal("0.5")
EARLY_STOP_CHANCE = 0.1
EARLY_STOP_MIN_SWAPS = 2


@dataclass
class SeriesReport:
    results: Tuple[RoundResult, ...]
    start_balance: Decimal
    end_balance: Decimal
    cancelled: bool = False

    @property
    def mon_delta(self) -> Decimal:
        return self.end_balance - self.start_balance

    @property
    def successful(self) -> int:
        return sum(1 for r in self.results if r.success)


def _stopped(stop: Optional[asyncio.Event]) -> bool:
    return stop is not None and stop.is_set()


async def automated_roundtrips(
    executor: SwapExecutor,
    randomness: RandomnessService,
    wallet: WalletHandle,
    token_address: str,
    max_swaps: int,
    min_mon: Decimal,
    max_mon: Decimal,
    slippage_bps: int = 500,
    tokens: Optional[TokenRepository] = None,
    reporter: Optional[Reporter] = None,
    stop: Optional[asyncio.Event] = None,
) -> SeriesReport:
    """
    Up to `max_swaps` roundtrips, each sized in [min_mon, min(max_mon,
    80% of balance)]. Ends early when the MON balance drops below min_mon,
    or by chance once at least two roundtrips are done.
    """
    chain = executor.chain
    tokens = tokens if tokens is not None else executor.tokens
    planner = AmountPlanner(randomness)
    emit = EventEmitter(reporter)
    min_mon, max_mon = Decimal(min_mon), Decimal(max_mon)

    start = await mon_balance(chain, wallet.address)
    logger.info(f"Starting automated random swaps (max {max_swaps} roundtrips), initial balance {format_mon(start)}")
    results = []
    count = 0

    while count < max_swaps and not _stopped(stop):
        await randomness.delay(*SERIES_DELAY_MS)
        if _stopped(stop):
            break
        count += 1
        emit("series_step", wallet=wallet.name, index=count, total=max_swaps)

        try:
            balance = await mon_balance(chain, wallet.address)
            if balance < min_mon:
                logger.warning(f"MON balance ({balance}) is below minimum ({min_mon}). Stopping swap series.")
                break
            try:
                amount = planner.plan(balance, min_mon, max_mon, ROUNDTRIP_BALANCE_FRACTION)
            except InsufficientBalance as e:
                logger.warning(f"{e.message}. Stopping swap series.")
                break
            logger.info(f"Using random amount: {amount:.4f} MON")

            outcome = await _roundtrip_with_fallbacks(executor, tokens, wallet, token_address, amount, slippage_bps)
            results.append(RoundResult(wallet.name, count, outcome, Action.ROUNDTRIP.value, amount))
        except Exception as e:
            message = sanitize_error_message(e)
            logger.error(f"Error in automated swap #{count}: {message}")
            results.append(RoundResult(
                wallet.name, count, SwapOutcome.failed(ErrorKind.UNKNOWN_ERROR, message), Action.ROUNDTRIP.value))
            await randomness.delay(*SERIES_DELAY_MS)
            continue

        if count >= EARLY_STOP_MIN_SWAPS and randomness.chance(EARLY_STOP_CHANCE):
            logger.info(f"Randomly ending swap series after {count} swaps.")
            break

    end = await mon_balance(chain, wallet.address)
    report = SeriesReport(tuple(results), start, end, cancelled=_stopped(stop))
    logger.info(f"{report.successful} of {len(results)} roundtrips completed, MON change {format_mon(report.mon_delta)}")
    emit("series_finished", report=report)
    return report


async def _roundtrip_with_fallbacks(executor: SwapExecutor, tokens: Optional[TokenRepository],
                                    wallet: WalletHandle, token: str, amount: Decimal,
                                    slippage_bps: int) -> SwapOutcome:
    """
    Roundtrip where each failing leg is replaced by a transfer: amount/4 MON
    to the token, and a self-transfer of half the token balance.
    """
    used_fallback = False
    outbound = await executor.mon_to_token(wallet, token, amount / 2, slippage_bps)
    if not outbound.success:
        logger.warning(f"First swap failed: {outbound.error_message}")
        direct = await executor.direct_transfer(wallet, token, amount * MON_FALLBACK_SHARE, native=True)
        if not direct.success:
            return SwapOutcome.failed(ErrorKind.EXECUTION_FAILURE, outbound.error_message or direct.error_message)
        outbound, used_fallback = direct, True

    hashes = outbound.tx_hashes
    held = await token_balance(executor.chain, tokens, token, wallet.address)
    if held > 0:
        inbound = await executor.token_to_mon(wallet, token, held, slippage_bps)
        if not inbound.success:
            logger.warning(f"Second swap failed: {inbound.error_message}")
            decimals = await token_decimals(executor.chain, tokens, token)
            half = fraction_of(held, TOKEN_FALLBACK_SHARE, decimals)
            if half > 0:
                direct = await executor.direct_transfer(wallet, token, half, native=False)
                if not direct.success:
                    return SwapOutcome.failed(ErrorKind.EXECUTION_FAILURE, inbound.error_message or "")
                inbound, used_fallback = direct, True
            else:
                inbound = None
        if inbound is not None:
            hashes += inbound.tx_hashes
            used_fallback = used_fallback or inbound.used_fallback
    else:
        logger.info("No token balance, skipping second swap")

    return SwapOutcome.succeeded(*hashes, used_fallback=used_fallback or outbound.used_fallback)


async def random_multi_token_swaps(
    executor: SwapExecutor,
    randomness: RandomnessService,
    tokens: TokenRepository,
    wallet: WalletHandle,
    swaps: int,
    min_amount: Decimal,
    max_amount: Decimal,
    slippage_bps: int = 500,
    reporter: Optional[Reporter] = None,
    stop: Optional[asyncio.Event] = None,
) -> SeriesReport:
    """
    `swaps` iterations over random tokens. Each picks an action from the
    fresh token balance; swaps that cannot be sized are recorded as skips.
    """
    chain = executor.chain
    planner = AmountPlanner(randomness)
    selector = StrategySelector(randomness)
    roundtrips = RoundtripCoordinator(executor, randomness, tokens)
    emit = EventEmitter(reporter)
    min_amount, max_amount = Decimal(min_amount), Decimal(max_amount)

    start = await mon_balance(chain, wallet.address)
    logger.info(f"Starting random multi-token swap series ({swaps} swaps), initial balance {format_mon(start)}")
    results = []

    for index in range(1, swaps + 1):
        if _stopped(stop):
            break
        await randomness.delay(*SERIES_DELAY_MS)
        if _stopped(stop):
            break
        emit("series_step", wallet=wallet.name, index=index, total=swaps)

        try:
            balance = await mon_balance(chain, wallet.address)
            try:
                amount = planner.plan(balance, min_amount, max_amount, MULTI_TOKEN_BALANCE_FRACTION)
            except InsufficientBalance as e:
                logger.warning(f"{e.message}. Skipping this swap.")
                results.append(RoundResult(
                    wallet.name, index, SwapOutcome.failed(ErrorKind.INSUFFICIENT_BALANCE, e.message), "skip"))
                continue

            token = tokens.random_token(randomness)
            held = await token_balance(chain, tokens, token.address, wallet.address)
            action = selector.select(held)
            logger.info(f"Swap {index}/{swaps}: {action.value} {token.symbol} with {amount:.4f} MON")

            outcome = await perform_action(executor, roundtrips, planner, action, wallet, token, amount,
                                           held, MULTI_TOKEN_SELL_FRACTION, slippage_bps)
            if outcome.success:
                results.append(RoundResult(wallet.name, index, outcome, action.value, amount, token.symbol))
                continue

            logger.warning(f"Action {action.value} failed: {outcome.error_message}")
            if action is Action.SWAP_IN:
                half = planner.fraction_of(held, TOKEN_FALLBACK_SHARE, token.decimals)
                if half > 0:
                    fallback = await executor.direct_transfer(wallet, token.address, half, native=False)
                else:
                    fallback = SwapOutcome.failed(ErrorKind.INSUFFICIENT_BALANCE,
                                                  "Insufficient token balance for fallback")
            else:
                fallback = await executor.direct_transfer(
                    wallet, token.address, amount * MON_FALLBACK_SHARE, native=True)

            if fallback.success:
                results.append(RoundResult(
                    wallet.name, index, fallback, f"{action.value} (fallback)", amount, token.symbol))
            else:
                logger.error(f"Fallback also failed: {fallback.error_message}")
                results.append(RoundResult(wallet.name, index, outcome, action.value, amount, token.symbol))

        except Exception as e:
            message = sanitize_error_message(e)
            logger.error(f"Error in random swap #{index}: {message}")
            results.append(RoundResult(
                wallet.name, index, SwapOutcome.failed(ErrorKind.UNKNOWN_ERROR, message), "unknown"))
            await randomness.delay(*SERIES_DELAY_MS)

    end = await mon_balance(chain, wallet.address)
    report = SeriesReport(tuple(results), start, end, cancelled=_stopped(stop))
    logger.info(f"Completed {report.successful} of {swaps} random swaps, MON change {format_mon(report.mon_delta)}")
    emit("series_finished", report=report)
    return report
