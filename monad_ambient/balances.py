"""
Balance reads in human units, plus the wallet/token snapshot shown before
swaps.
"""

from dataclasses import dataclass
from decimal import Decimal
from typing import Dict, Optional

from .amounts import from_base_units
from .constants import NATIVE_DECIMALS
from .tokens import TokenDescriptor, TokenRepository
from .utils import logger
from .wallets import WalletHandle


async def mon_balance(chain, address: str) -> Decimal:
    return from_base_units(await chain.get_balance(address), NATIVE_DECIMALS)


async def token_decimals(chain, tokens: Optional[TokenRepository], token: str) -> int:
    if tokens is not None:
        known = tokens.find(token)
        if known is not None:
            return known.decimals
    return await chain.token_decimals(token)


async def token_balance(chain, tokens: Optional[TokenRepository], token: str, owner: str) -> Decimal:
    """Balance of `token` held by `owner`, scaled by the token's decimals."""
    decimals = await token_decimals(chain, tokens, token)
    return from_base_units(await chain.token_balance(token, owner), decimals)


async def check_balances(chain, tokens: TokenRepository, wallet: WalletHandle) -> Dict[str, Decimal]:
    """
    MON balance plus every known token the wallet holds. Tokens whose
    balance cannot be read are left out.
    """
    balances = {"MON": await mon_balance(chain, wallet.address)}
    for token in tokens.all():
        try:
            raw = await chain.token_balance(token.address, wallet.address)
        except Exception as e:
            logger.debug(f"Skipping {token.symbol}: {e}")
            continue
        if raw:
            balances[token.symbol] = from_base_units(raw, token.decimals)
    return balances


@dataclass(frozen=True)
class SwapInfo:
    """Wallet and token snapshot taken before a swap."""
    wallet: str
    mon_balance: Decimal
    gas_limit: int
    gas_price_gwei: int
    token: Optional[TokenDescriptor] = None
    token_balance: Optional[Decimal] = None
    tokens_per_mon: Optional[Decimal] = None    # None when the router cannot quote


async def swap_info(chain, tokens: TokenRepository, wallet: WalletHandle,
                    token_address: Optional[str] = None) -> SwapInfo:
    mon = await mon_balance(chain, wallet.address)
    token = balance = rate = None

    if token_address:
        token = await tokens.resolve(token_address, chain)
        if token is None:
            logger.warning(f"Token information unavailable for {token_address}")
        else:
            balance = from_base_units(await chain.token_balance(token.address, wallet.address), token.decimals)
            try:
                amounts = await chain.get_amounts_out(10 ** NATIVE_DECIMALS, [chain.wrapped_mon, token.address])
                rate = from_base_units(amounts[-1], token.decimals)
            except Exception as e:
                logger.debug(f"Price estimation unavailable for {token.symbol}: {e}")

    return SwapInfo(
        wallet=wallet.name,
        mon_balance=mon,
        gas_limit=chain.gas_limit,
        gas_price_gwei=chain.gas_price // 10 ** 9,
        token=token,
        token_balance=balance,
        tokens_per_mon=rate,
    )
