"""
Shared fixtures: an in-memory chain that records every call, seeded
randomness with instant pauses, and throwaway wallets.
"""

import itertools
from decimal import Decimal

import pytest
from eth_account import Account

from monad_ambient.constants import AMBIENT_ROUTER, DEFAULT_TOKENS, GAS_LIMIT, WRAPPED_MON
from monad_ambient.randomness import RandomnessService
from monad_ambient.tokens import TokenRepository
from monad_ambient.utils import TransactionError
from monad_ambient.wallets import WalletHandle

USDC = DEFAULT_TOKENS["USDC"][0]
WETH = DEFAULT_TOKENS["WETH"][0]

SUBMIT_METHODS = (
    "send_value", "approve", "token_transfer", "swap_exact_eth_for_tokens",
    "swap_exact_tokens_for_eth", "swap_exact_tokens_for_tokens", "add_liquidity_eth",
)


class FakeTxHandle:
    def __init__(self, tx_hash: str, revert: bool = False):
        self.hash = tx_hash
        self._revert = revert

    async def wait(self):
        if self._revert:
            raise TransactionError(f"Transaction reverted (status=0): {self.hash}")
        return {'status': 1}


class FakeChain:
    """
    Stand-in for ChainClient.

    - `code`: router bytecode returned by get_code (b"" means not deployed)
    - `mon`: address -> wei
    - `tokens`: (token, owner) -> base units
    - `fail`: method name -> exception raised when it is called
    - `revert`: method names whose transactions revert on wait()
    - `on_submit`: method name -> callback(*args) run before submission
    """

    def __init__(self, code: bytes = b"\x60\x80"):
        self.router_address = AMBIENT_ROUTER
        self.wrapped_mon = WRAPPED_MON
        self.gas_limit = GAS_LIMIT
        self.gas_price = 50 * 10 ** 9
        self.code = code
        self.mon = {}
        self.tokens = {}
        self.allowances = {}
        self.decimals = {}
        self.quote = None
        self.fail = {}
        self.revert = set()
        self.on_submit = {}
        self.calls = []
        self._hashes = itertools.count(1)

    def calls_to(self, name):
        return [args for method, args in self.calls if method == name]

    @property
    def submitted(self):
        return [method for method, _ in self.calls if method in SUBMIT_METHODS]

    def _record(self, name, *args):
        self.calls.append((name, args))
        if name in self.fail:
            raise self.fail[name]

    # Reads

    async def get_balance(self, address):
        self._record("get_balance", address)
        return self.mon.get(address, 0)

    async def get_code(self, address):
        self._record("get_code", address)
        return self.code

    async def token_balance(self, token, owner):
        self._record("token_balance", token, owner)
        return self.tokens.get((token, owner), 0)

    async def token_decimals(self, token):
        self._record("token_decimals", token)
        return self.decimals.get(token, 18)

    async def token_symbol(self, token):
        self._record("token_symbol", token)
        return "TEST"

    async def allowance(self, token, owner, spender):
        self._record("allowance", token, owner, spender)
        return self.allowances.get((token, owner), 0)

    async def get_amounts_out(self, amount_in, path):
        self._record("get_amounts_out", amount_in, list(path))
        if self.quote is None:
            return [amount_in] * len(path)
        return [amount_in] + [self.quote] * (len(path) - 1)

    # Writes

    async def _submit(self, name, *args):
        self._record(name, *args)
        if name in self.on_submit:
            self.on_submit[name](*args)
        return FakeTxHandle(f"0x{next(self._hashes):064x}", revert=name in self.revert)

    async def send_value(self, wallet, to, value, gas_limit=None):
        return await self._submit("send_value", wallet, to, value)

    async def approve(self, wallet, token, spender, amount):
        return await self._submit("approve", wallet, token, spender, amount)

    async def token_transfer(self, wallet, token, to, amount):
        return await self._submit("token_transfer", wallet, token, to, amount)

    async def swap_exact_eth_for_tokens(self, wallet, value, min_out, path, deadline):
        return await self._submit("swap_exact_eth_for_tokens", wallet, value, min_out, list(path), deadline)

    async def swap_exact_tokens_for_eth(self, wallet, amount_in, min_out, path, deadline):
        return await self._submit("swap_exact_tokens_for_eth", wallet, amount_in, min_out, list(path), deadline)

    async def swap_exact_tokens_for_tokens(self, wallet, amount_in, min_out, path, deadline):
        return await self._submit("swap_exact_tokens_for_tokens", wallet, amount_in, min_out, list(path), deadline)

    async def add_liquidity_eth(self, wallet, token, amount_token, amount_token_min, amount_eth_min,
                                value, deadline):
        return await self._submit("add_liquidity_eth", wallet, token, amount_token, amount_token_min,
                                  amount_eth_min, value, deadline)


def make_wallet(name: str, seed: int = 1) -> WalletHandle:
    return WalletHandle(name, Account.from_key("0x" + f"{seed:064x}"))


class DictWallets:
    """Wallet provider backed by a dict; unknown names resolve to None."""

    def __init__(self, *wallets):
        self._wallets = {w.name: w for w in wallets}

    def get(self, name):
        return self._wallets.get(name)


async def _no_sleep(seconds):
    return None


def wei(amount) -> int:
    return int(Decimal(str(amount)) * 10 ** 18)


@pytest.fixture
def chain():
    return FakeChain()


@pytest.fixture
def randomness():
    return RandomnessService(seed=42, sleeper=_no_sleep)


@pytest.fixture
def tokens():
    return TokenRepository()


@pytest.fixture
def wallet():
    return make_wallet("alice", 1)
