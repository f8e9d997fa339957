"""
Amount planning.

All amounts are Decimals in human units of the source asset. Random draws
happen over integer base units, so a planned amount is always exactly
representable with the token's decimals and never leaves its bounds.

Conversions run under UINT256_CONTEXT: the default 28-digit context would
round raw balances of 29+ digits (about 1e11 tokens at 18 decimals).
"""

from decimal import Context, Decimal, ROUND_CEILING, ROUND_FLOOR, localcontext
from typing import Optional

from .constants import NATIVE_DECIMALS
from .randomness import RandomnessService
from .utils import InsufficientBalance

# Enough digits for any uint256 value plus its 18 fractional places
UINT256_CONTEXT = Context(prec=100, rounding=ROUND_FLOOR)


def to_base_units(amount: Decimal, decimals: int) -> int:
    """Human units -> smallest denomination, rounded down."""
    with localcontext(UINT256_CONTEXT):
        return int(Decimal(amount).scaleb(decimals).to_integral_value(rounding=ROUND_FLOOR))


def from_base_units(units: int, decimals: int) -> Decimal:
    """Smallest denomination -> human units (exact)."""
    with localcontext(UINT256_CONTEXT):
        return Decimal(int(units)).scaleb(-decimals)


def quantize_down(amount: Decimal, decimals: int) -> Decimal:
    return from_base_units(to_base_units(amount, decimals), decimals)


def fraction_of(balance: Decimal, fraction: Decimal, decimals: int) -> Decimal:
    """balance * fraction rounded down at `decimals`, never above balance * fraction."""
    with localcontext(UINT256_CONTEXT):
        return quantize_down(Decimal(balance) * Decimal(fraction), decimals)


class AmountPlanner:
    """Derives operation amounts from bounds, balances and randomness."""

    def __init__(self, randomness: RandomnessService):
        self.random = randomness

    def ceiling(self, balance: Decimal, max_bound: Decimal, balance_fraction: Decimal) -> Decimal:
        with localcontext(UINT256_CONTEXT):
            return min(Decimal(max_bound), Decimal(balance) * Decimal(balance_fraction))

    def plan(
        self,
        balance: Decimal,
        min_bound: Decimal,
        max_bound: Decimal,
        balance_fraction: Decimal,
        decimals: int = NATIVE_DECIMALS,
    ) -> Decimal:
        """
        Random amount in [min_bound, min(max_bound, balance * fraction)].

        Raises:
            InsufficientBalance: if the ceiling is below min_bound
        """
        min_bound = Decimal(min_bound)
        ceiling = self.ceiling(balance, max_bound, balance_fraction)
        if ceiling < min_bound:
            raise InsufficientBalance(
                f"Balance ({balance}) is too low for minimum amount ({min_bound}); "
                f"ceiling is {ceiling}"
            )

        with localcontext(UINT256_CONTEXT):
            lo = int(min_bound.scaleb(decimals).to_integral_value(rounding=ROUND_CEILING))
        hi = to_base_units(ceiling, decimals)
        if hi < lo:
            # Interval narrower than one base unit
            raise InsufficientBalance(
                f"No {decimals}-decimal amount fits between {min_bound} and {ceiling}"
            )
        return from_base_units(self.random.uniform_int(lo, hi), decimals)

    def plan_fixed(
        self,
        amount: Decimal,
        balance: Optional[Decimal] = None,
        fraction: Optional[Decimal] = None,
        decimals: int = NATIVE_DECIMALS,
    ) -> Decimal:
        """
        Configured amount, clamped to balance * fraction when a
        percentage-based draw is requested.
        """
        planned = Decimal(amount)
        if balance is not None:
            planned = min(planned, fraction_of(balance, fraction if fraction is not None else 1, decimals))
        planned = quantize_down(planned, decimals)
        if planned <= 0:
            raise InsufficientBalance(f"Nothing available to spend (balance {balance})")
        return planned

    def fraction_of(self, balance: Decimal, fraction: Decimal, decimals: int) -> Decimal:
        """e.g. 90% of a token balance, rounded down at the token's decimals."""
        return fraction_of(balance, fraction, decimals)
