"""
Swap Executor
=============
Executes one exchange against the Ambient router:

1. Probe the router's code. No code (or a failed probe) means the router is
   unavailable and the direct-transfer fallback runs instead.
2. Token-consuming legs check the router allowance and approve the maximum
   value when it is short. Approval failure ends the attempt.
3. Quote with getAmountsOut and derive the minimum output from slippage.
   A failed quote accepts the minimum output floor instead.
4. Submit with the fixed gas budget and a 20 minute deadline, then wait for
   the receipt.

When submission or confirmation fails the fallback runs exactly once. If it
also fails the attempt reports ExecutionFailure with the primary error.

Every step returns Ok/Err; the fallback decision branches on the ErrorKind.
"""

import time
from dataclasses import dataclass
from decimal import Decimal
from enum import Enum
from typing import Awaitable, Callable, Optional, Sequence

from .amounts import fraction_of, from_base_units, to_base_units
from .chain import TxHandle
from .constants import (
    BPS_DENOMINATOR, DEADLINE_SECONDS, MAX_UINT256, MIN_OUTPUT_FLOOR, NATIVE_DECIMALS,
)
from .events import EventEmitter, Reporter
from .logging_utils import MetricsCollector, timed_operation
from .results import Err, Ok, Result, SwapOutcome
from .tokens import TokenRepository
from .utils import ErrorKind, format_address, logger, sanitize_error_message
from .wallets import WalletHandle

# Fallback sizing for token -> token
TOKEN_LEG_FALLBACK_SHARE = Decimal("0.5")
MON_LEG_FALLBACK_SHARE = Decimal("0.3")


class SwapKind(Enum):
    MON_TO_TOKEN = "mon_to_token"
    TOKEN_TO_MON = "token_to_mon"
    TOKEN_TO_TOKEN = "token_to_token"
    ADD_LIQUIDITY = "add_liquidity"


@dataclass(frozen=True)
class SwapRequest:
    """
    One attempt. `amount` is in human units of the source asset; for
    ADD_LIQUIDITY it is the token amount and `mon_amount` the MON side.
    """
    kind: SwapKind
    wallet: WalletHandle
    amount: Decimal
    token_in: Optional[str] = None
    token_out: Optional[str] = None
    slippage_bps: int = 500
    mon_amount: Optional[Decimal] = None

    def __post_init__(self):
        object.__setattr__(self, "amount", Decimal(self.amount))
        if self.amount <= 0:
            raise ValueError(f"Amount must be positive, got {self.amount}")
        if not 0 <= self.slippage_bps < BPS_DENOMINATOR:
            raise ValueError(f"slippage_bps must be in [0, {BPS_DENOMINATOR})")

        needs_in = self.kind in (SwapKind.TOKEN_TO_MON, SwapKind.TOKEN_TO_TOKEN, SwapKind.ADD_LIQUIDITY)
        needs_out = self.kind in (SwapKind.MON_TO_TOKEN, SwapKind.TOKEN_TO_TOKEN)
        if needs_in and not self.token_in:
            raise ValueError(f"{self.kind.value} requires token_in")
        if needs_out and not self.token_out:
            raise ValueError(f"{self.kind.value} requires token_out")
        if self.kind is SwapKind.ADD_LIQUIDITY:
            if self.mon_amount is None or Decimal(self.mon_amount) <= 0:
                raise ValueError("add_liquidity requires a positive mon_amount")
            object.__setattr__(self, "mon_amount", Decimal(self.mon_amount))


def min_output(expected_out: int, slippage_bps: int) -> int:
    """expected_out reduced by slippage, floored to an integer."""
    return expected_out * (BPS_DENOMINATOR - slippage_bps) // BPS_DENOMINATOR


def _describe(exc: BaseException) -> str:
    return sanitize_error_message(str(exc) or type(exc).__name__)


class SwapExecutor:
    """Router swaps with a direct-transfer fallback."""

    def __init__(
        self,
        chain,
        tokens: Optional[TokenRepository] = None,
        metrics: Optional[MetricsCollector] = None,
        reporter: Optional[Reporter] = None,
        clock: Callable[[], float] = time.time,
    ):
        self.chain = chain
        self.tokens = tokens
        self.metrics = metrics
        self._emit = EventEmitter(reporter)
        self._clock = clock

    # Public entry points

    async def execute(self, request: SwapRequest) -> SwapOutcome:
        extra = {'wallet': request.wallet.name, 'amount': str(request.amount)}
        with timed_operation(self.metrics, request.kind.value, extra) as metric:
            if request.kind is SwapKind.MON_TO_TOKEN:
                outcome = await self._mon_to_token(request)
            elif request.kind is SwapKind.TOKEN_TO_MON:
                outcome = await self._token_to_mon(request)
            elif request.kind is SwapKind.TOKEN_TO_TOKEN:
                outcome = await self._token_to_token(request)
            else:
                outcome = await self._add_liquidity(request)

            metric.success = outcome.success
            metric.error = outcome.error_message
            metric.tx_hashes = list(outcome.tx_hashes)
            metric.used_fallback = outcome.used_fallback

        self._emit(
            "swap_completed" if outcome.success else "swap_failed",
            kind=request.kind.value, wallet=request.wallet.name, outcome=outcome,
        )
        return outcome

    async def mon_to_token(self, wallet: WalletHandle, token: str, amount: Decimal,
                           slippage_bps: int = 500) -> SwapOutcome:
        return await self.execute(SwapRequest(
            SwapKind.MON_TO_TOKEN, wallet, amount, token_out=token, slippage_bps=slippage_bps))

    async def token_to_mon(self, wallet: WalletHandle, token: str, amount: Decimal,
                           slippage_bps: int = 500) -> SwapOutcome:
        return await self.execute(SwapRequest(
            SwapKind.TOKEN_TO_MON, wallet, amount, token_in=token, slippage_bps=slippage_bps))

    async def token_to_token(self, wallet: WalletHandle, token_in: str, token_out: str,
                             amount: Decimal, slippage_bps: int = 500) -> SwapOutcome:
        return await self.execute(SwapRequest(
            SwapKind.TOKEN_TO_TOKEN, wallet, amount, token_in=token_in, token_out=token_out,
            slippage_bps=slippage_bps))

    async def add_liquidity(self, wallet: WalletHandle, token: str, token_amount: Decimal,
                            mon_amount: Decimal, slippage_bps: int = 500) -> SwapOutcome:
        return await self.execute(SwapRequest(
            SwapKind.ADD_LIQUIDITY, wallet, token_amount, token_in=token, slippage_bps=slippage_bps,
            mon_amount=mon_amount))

    async def direct_transfer(self, wallet: WalletHandle, token: str, amount: Decimal,
                              native: bool = True) -> SwapOutcome:
        """
        Activity without the router: send MON to the token contract, or
        transfer `amount` of the token to the wallet itself.
        """
        if native:
            result = await self._send_mon(wallet, token, amount)
        else:
            result = await self._self_transfer(wallet, token, amount)
        if not result.ok:
            return SwapOutcome.failed(ErrorKind.EXECUTION_FAILURE, result.detail)
        return SwapOutcome.succeeded(result.value, used_fallback=True)

    # Steps

    async def _probe_router(self) -> Result:
        try:
            code = await self.chain.get_code(self.chain.router_address)
        except Exception as e:
            return Err(ErrorKind.CONTRACT_UNAVAILABLE, f"Error checking router contract: {_describe(e)}")
        if not code or not bytes(code).strip(b"\x00"):
            return Err(ErrorKind.CONTRACT_UNAVAILABLE, "Router contract not deployed")
        return Ok(None)

    async def _decimals(self, token: str) -> Result:
        if self.tokens is not None:
            known = self.tokens.find(token)
            if known is not None:
                return Ok(known.decimals)
        try:
            return Ok(await self.chain.token_decimals(token))
        except Exception as e:
            return Err(ErrorKind.UNKNOWN_ERROR, f"Could not read decimals of {token}: {_describe(e)}")

    async def _confirm(self, submit: Awaitable[TxHandle],
                       kind: ErrorKind = ErrorKind.EXECUTION_FAILURE) -> Result:
        """Await submission and receipt. Ok(hash) or Err(kind, message)."""
        try:
            handle = await submit
            await handle.wait()
        except Exception as e:
            return Err(kind, _describe(e))
        return Ok(handle.hash)

    async def _ensure_allowance(self, wallet: WalletHandle, token: str, amount_units: int) -> Result:
        router = self.chain.router_address
        try:
            allowance = await self.chain.allowance(token, wallet.address, router)
        except Exception as e:
            return Err(ErrorKind.APPROVAL_FAILURE, f"Allowance check failed: {_describe(e)}")
        if allowance >= amount_units:
            return Ok(None)

        logger.info(f"Approving {format_address(token)} for router from {wallet.name}")
        self._emit("approval_started", wallet=wallet.name, token=token)
        approved = await self._confirm(
            self.chain.approve(wallet, token, router, MAX_UINT256), ErrorKind.APPROVAL_FAILURE)
        if not approved.ok:
            return Err(ErrorKind.APPROVAL_FAILURE, f"Approval failed: {approved.detail}")
        return Ok(approved.value)

    async def _min_out(self, amount_units: int, path: Sequence[str], slippage_bps: int) -> int:
        try:
            amounts = await self.chain.get_amounts_out(amount_units, path)
            return min_output(int(amounts[-1]), slippage_bps)
        except Exception as e:
            logger.warning(f"Price estimation failed, using minimum protection ({_describe(e)})")
            self._emit("estimation_failed", path=list(path), error=_describe(e))
            return MIN_OUTPUT_FLOOR

    def _deadline(self) -> int:
        return int(self._clock()) + DEADLINE_SECONDS

    # Direct transfers

    async def _send_mon(self, wallet: WalletHandle, to: str, amount: Decimal) -> Result:
        return await self._confirm(
            self.chain.send_value(wallet, to, to_base_units(amount, NATIVE_DECIMALS)))

    async def _self_transfer(self, wallet: WalletHandle, token: str, amount: Decimal) -> Result:
        decimals = await self._decimals(token)
        if not decimals.ok:
            return decimals
        return await self._confirm(
            self.chain.token_transfer(wallet, token, wallet.address, to_base_units(amount, decimals.value)))

    async def _run_fallback(self, fallback: Callable[[], Awaitable[Result]],
                            primary: Optional[Err]) -> SwapOutcome:
        """Run the fallback once. `primary` is None when the router was absent."""
        if primary is not None:
            logger.warning(f"Swap failed: {primary.detail}. Attempting fallback direct transfer...")
        self._emit("fallback_started", reason=primary.detail if primary else "router unavailable")
        result = await fallback()
        if result.ok:
            hashes = result.value if isinstance(result.value, tuple) else (result.value,)
            return SwapOutcome.succeeded(*hashes, used_fallback=True)

        logger.error(f"Fallback also failed: {result.detail}")
        detail = primary.detail if primary is not None else result.detail
        return SwapOutcome.failed(ErrorKind.EXECUTION_FAILURE, detail)

    # Legs

    async def _mon_to_token(self, request: SwapRequest) -> SwapOutcome:
        wallet, token, amount = request.wallet, request.token_out, request.amount

        probe = await self._probe_router()
        if not probe.ok:
            logger.info(f"{probe.detail}, using direct swap")
            return await self._run_fallback(lambda: self._send_mon(wallet, token, amount), None)

        value = to_base_units(amount, NATIVE_DECIMALS)
        path = [self.chain.wrapped_mon, token]
        min_out = await self._min_out(value, path, request.slippage_bps)

        logger.info(f"Swapping {amount} MON for {format_address(token)} from {wallet.name}")
        swapped = await self._confirm(
            self.chain.swap_exact_eth_for_tokens(wallet, value, min_out, path, self._deadline()))
        if swapped.ok:
            return SwapOutcome.succeeded(swapped.value)
        return await self._run_fallback(lambda: self._send_mon(wallet, token, amount), swapped)

    async def _token_to_mon(self, request: SwapRequest) -> SwapOutcome:
        wallet, token, amount = request.wallet, request.token_in, request.amount

        probe = await self._probe_router()
        if not probe.ok:
            logger.info(f"{probe.detail}, using direct swap")
            return await self._run_fallback(lambda: self._self_transfer(wallet, token, amount), None)

        decimals = await self._decimals(token)
        if not decimals.ok:
            return SwapOutcome.from_err(decimals)
        amount_in = to_base_units(amount, decimals.value)

        approved = await self._ensure_allowance(wallet, token, amount_in)
        if not approved.ok:
            return SwapOutcome.from_err(approved)

        path = [token, self.chain.wrapped_mon]
        min_out = await self._min_out(amount_in, path, request.slippage_bps)

        logger.info(f"Swapping {amount} of {format_address(token)} for MON from {wallet.name}")
        swapped = await self._confirm(
            self.chain.swap_exact_tokens_for_eth(wallet, amount_in, min_out, path, self._deadline()))
        if swapped.ok:
            return SwapOutcome.succeeded(swapped.value)
        return await self._run_fallback(lambda: self._self_transfer(wallet, token, amount), swapped)

    async def _token_to_token(self, request: SwapRequest) -> SwapOutcome:
        wallet, amount = request.wallet, request.amount
        token_in, token_out = request.token_in, request.token_out

        probe = await self._probe_router()
        if not probe.ok:
            logger.info(f"{probe.detail}, using direct token transfers")

            async def direct_pair() -> Result:
                first = await self._self_transfer(wallet, token_in, amount)
                if not first.ok:
                    return first
                second = await self._send_mon(wallet, token_out, amount / 2)
                if not second.ok:
                    return second
                return Ok((first.value, second.value))

            return await self._run_fallback(direct_pair, None)

        decimals = await self._decimals(token_in)
        if not decimals.ok:
            return SwapOutcome.from_err(decimals)
        amount_in = to_base_units(amount, decimals.value)

        approved = await self._ensure_allowance(wallet, token_in, amount_in)
        if not approved.ok:
            return SwapOutcome.from_err(approved)

        path = [token_in, self.chain.wrapped_mon, token_out]
        min_out = await self._min_out(amount_in, path, request.slippage_bps)

        logger.info(
            f"Swapping {amount} of {format_address(token_in)} for "
            f"{format_address(token_out)} from {wallet.name}"
        )
        swapped = await self._confirm(
            self.chain.swap_exact_tokens_for_tokens(wallet, amount_in, min_out, path, self._deadline()))
        if swapped.ok:
            return SwapOutcome.succeeded(swapped.value)

        async def via_mon() -> Result:
            # Sell part of token_in, then buy token_out with a share of MON
            sell = fraction_of(amount, TOKEN_LEG_FALLBACK_SHARE, decimals.value)
            sold = await self.token_to_mon(wallet, token_in, sell, request.slippage_bps)
            if not sold.success:
                return Err(sold.error_kind, sold.error_message or "")
            try:
                balance = from_base_units(await self.chain.get_balance(wallet.address), NATIVE_DECIMALS)
            except Exception as e:
                return Err(ErrorKind.UNKNOWN_ERROR, _describe(e))
            spend = fraction_of(balance, MON_LEG_FALLBACK_SHARE, NATIVE_DECIMALS)
            bought = await self.mon_to_token(wallet, token_out, spend, request.slippage_bps)
            if not bought.success:
                return Err(bought.error_kind, bought.error_message or "")
            return Ok(sold.tx_hashes + bought.tx_hashes)

        return await self._run_fallback(via_mon, swapped)

    async def _add_liquidity(self, request: SwapRequest) -> SwapOutcome:
        wallet, token = request.wallet, request.token_in
        token_amount, mon_amount = request.amount, request.mon_amount
        router = self.chain.router_address

        decimals = await self._decimals(token)
        if not decimals.ok:
            return SwapOutcome.from_err(decimals)
        token_units = to_base_units(token_amount, decimals.value)
        mon_units = to_base_units(mon_amount, NATIVE_DECIMALS)

        probe = await self._probe_router()
        if not probe.ok:
            logger.info(f"{probe.detail}, simulating liquidity with direct transfers")

            async def direct_liquidity() -> Result:
                approved = await self._confirm(self.chain.approve(wallet, token, router, token_units))
                if not approved.ok:
                    return approved
                sent_token = await self._confirm(self.chain.token_transfer(wallet, token, router, token_units))
                if not sent_token.ok:
                    return sent_token
                sent_mon = await self._confirm(self.chain.send_value(wallet, router, mon_units))
                if not sent_mon.ok:
                    return sent_mon
                return Ok((sent_token.value, sent_mon.value))

            return await self._run_fallback(direct_liquidity, None)

        approved = await self._ensure_allowance(wallet, token, token_units)
        if not approved.ok:
            return SwapOutcome.from_err(approved)

        logger.info(f"Adding liquidity: {token_amount} of {format_address(token)} + {mon_amount} MON")
        added = await self._confirm(self.chain.add_liquidity_eth(
            wallet, token, token_units,
            min_output(token_units, request.slippage_bps),
            min_output(mon_units, request.slippage_bps),
            mon_units, self._deadline(),
        ))
        if added.ok:
            return SwapOutcome.succeeded(added.value)
        logger.error(f"Failed to add liquidity: {added.detail}")
        return SwapOutcome.failed(ErrorKind.EXECUTION_FAILURE, added.detail)

