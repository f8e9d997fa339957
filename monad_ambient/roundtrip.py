"""
Roundtrips: MON -> token -> MON.

The inbound leg sells the wallet's entire token balance after the outbound
leg, so the result scales with whatever the wallet already held.
"""

from decimal import Decimal
from typing import List, Optional

from .amounts import fraction_of
from .balances import mon_balance, token_balance
from .constants import NATIVE_DECIMALS
from .events import EventEmitter, Reporter
from .executor import SwapExecutor
from .randomness import RandomnessService
from .results import SwapOutcome
from .tokens import TokenRepository
from .utils import ErrorKind, logger, sanitize_error_message
from .wallets import WalletHandle

AUTO_ROUNDTRIP_BALANCE_SHARE = Decimal("0.5")
AUTO_ROUNDTRIP_PAUSE_SECONDS = 2


class RoundtripCoordinator:

    def __init__(
        self,
        executor: SwapExecutor,
        randomness: RandomnessService,
        tokens: Optional[TokenRepository] = None,
        reporter: Optional[Reporter] = None,
    ):
        self.executor = executor
        self.chain = executor.chain
        self.random = randomness
        self.tokens = tokens if tokens is not None else executor.tokens
        self._emit = EventEmitter(reporter)

    async def roundtrip(self, wallet: WalletHandle, token: str, amount: Decimal,
                        slippage_bps: int = 500) -> SwapOutcome:
        """
        Buy the token with amount/2 MON, then sell the full token balance.
        Stops at the first failing leg and reports its error.
        """
        amount = Decimal(amount)
        if amount <= 0:
            return SwapOutcome.failed(ErrorKind.INSUFFICIENT_BALANCE, f"Nothing to roundtrip ({amount} MON)")
        logger.info(f"Beginning roundtrip: MON -> Token -> MON ({amount} MON)")

        outbound = await self.executor.mon_to_token(wallet, token, amount / 2, slippage_bps)
        if not outbound.success:
            logger.error(f"Roundtrip failed on outbound leg: {outbound.error_message}")
            return outbound
        logger.info(f"First swap completed: {outbound.tx_hash}")

        try:
            held = await token_balance(self.chain, self.tokens, token, wallet.address)
        except Exception as e:
            return SwapOutcome.failed(ErrorKind.UNKNOWN_ERROR, sanitize_error_message(e))
        logger.info(f"Token balance: {held}")

        if held <= 0:
            return SwapOutcome.failed(
                ErrorKind.INSUFFICIENT_BALANCE, "No token balance after outbound leg")

        inbound = await self.executor.token_to_mon(wallet, token, held, slippage_bps)
        if not inbound.success:
            logger.error(f"Roundtrip failed on inbound leg: {inbound.error_message}")
            return inbound
        logger.info(f"Second swap completed: {inbound.tx_hash}")

        return SwapOutcome.succeeded(
            *(outbound.tx_hashes + inbound.tx_hashes),
            used_fallback=outbound.used_fallback or inbound.used_fallback,
        )

    async def auto_roundtrip(self, wallet: WalletHandle, token: str, amount: Decimal,
                             count: int, slippage_bps: int = 500) -> List[SwapOutcome]:
        """
        `count` roundtrips. After each one the next amount is half of the
        refreshed MON balance.
        """
        results: List[SwapOutcome] = []
        current = Decimal(amount)

        for i in range(count):
            logger.info(f"Roundtrip {i + 1} of {count}")
            self._emit("roundtrip_started", wallet=wallet.name, index=i + 1, count=count, amount=current)
            outcome = await self.roundtrip(wallet, token, current, slippage_bps)
            results.append(outcome)
            self._emit("roundtrip_finished", wallet=wallet.name, index=i + 1, outcome=outcome)

            if i == count - 1:
                break
            try:
                balance = await mon_balance(self.chain, wallet.address)
                current = fraction_of(balance, AUTO_ROUNDTRIP_BALANCE_SHARE, NATIVE_DECIMALS)
                logger.info(f"Adjusted amount for next round: {current} MON")
            except Exception as e:
                logger.error(f"Could not refresh MON balance, keeping {current} MON: {e}")
            await self.random.pause(AUTO_ROUNDTRIP_PAUSE_SECONDS)

        return results
