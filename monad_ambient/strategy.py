"""Random choice of the next action for a wallet/token pair."""

from decimal import Decimal
from enum import Enum

from .randomness import RandomnessService


class Action(Enum):
    SWAP_OUT = "mon_to_token"
    SWAP_IN = "token_to_mon"
    ROUNDTRIP = "roundtrip"


class StrategySelector:
    """
    Without a token balance only SWAP_OUT is possible; otherwise all three
    actions are equally likely. Always pass a freshly read balance.
    """

    ACTIONS = (Action.SWAP_OUT, Action.SWAP_IN, Action.ROUNDTRIP)

    def __init__(self, randomness: RandomnessService):
        self.random = randomness

    def select(self, token_balance: Decimal) -> Action:
        if Decimal(token_balance) <= 0:
            return Action.SWAP_OUT
        return self.random.choice(self.ACTIONS)
