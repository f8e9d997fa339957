"""
Chain Client
============
Thin async wrapper over AsyncWeb3 exposing exactly the calls the engine
needs: native balance/code/value transfers, ERC-20 reads and writes, and
the router's quote, swap and liquidity entry points.

Mutating calls sign locally with the wallet's account, submit the raw
transaction and return a TxHandle; confirmation is awaited separately via
TxHandle.wait(). Gas limit and gas price are fixed per call.
"""

import asyncio
from typing import List, Optional, Sequence

from web3 import AsyncWeb3
from tenacity import retry, stop_after_attempt, wait_exponential, retry_if_exception_type

from .config import Config
from .constants import (
    ERC20_ABI, ROUTER_ABI, APPROVE_GAS_LIMIT, LIQUIDITY_GAS_LIMIT, RECEIPT_TIMEOUT_SECONDS,
)
from .utils import TransactionError, logger
from .wallets import WalletHandle


# Transient RPC failures worth retrying for read-only calls
_read_retry = retry(
    stop=stop_after_attempt(3),
    wait=wait_exponential(multiplier=1, min=1, max=8),
    retry=retry_if_exception_type((OSError, asyncio.TimeoutError)),
    reraise=True
)


class TxHandle:
    """A submitted transaction that can be awaited for its receipt."""

    def __init__(self, w3: AsyncWeb3, tx_hash, timeout: int = RECEIPT_TIMEOUT_SECONDS):
        self._w3 = w3
        self._raw_hash = tx_hash
        self.hash = AsyncWeb3.to_hex(tx_hash)
        self.timeout = timeout

    async def wait(self):
        """Wait for the receipt; raises TransactionError if it reverted."""
        receipt = await self._w3.eth.wait_for_transaction_receipt(self._raw_hash, timeout=self.timeout)
        if receipt['status'] != 1:
            raise TransactionError(f"Transaction reverted (status={receipt['status']}): {self.hash}")
        return receipt

    def __repr__(self) -> str:
        return f"TxHandle({self.hash})"


class ChainClient:
    """Async access to Monad testnet for one run."""

    def __init__(self, config: Config, w3: Optional[AsyncWeb3] = None):
        self.config = config
        self.w3 = w3 or AsyncWeb3(AsyncWeb3.AsyncHTTPProvider(config.rpc_url))
        self.router_address = AsyncWeb3.to_checksum_address(config.router_address)
        self.wrapped_mon = AsyncWeb3.to_checksum_address(config.wrapped_mon)
        self.gas_limit = config.gas_limit
        self.gas_price = AsyncWeb3.to_wei(config.gas_price_gwei, 'gwei')
        self.router = self.w3.eth.contract(address=self.router_address, abi=ROUTER_ABI)

    def _token(self, token: str):
        return self.w3.eth.contract(address=AsyncWeb3.to_checksum_address(token), abi=ERC20_ABI)

    # Reads

    @_read_retry
    async def get_balance(self, address: str) -> int:
        return await self.w3.eth.get_balance(AsyncWeb3.to_checksum_address(address))

    @_read_retry
    async def get_code(self, address: str) -> bytes:
        return bytes(await self.w3.eth.get_code(AsyncWeb3.to_checksum_address(address)))

    @_read_retry
    async def token_balance(self, token: str, owner: str) -> int:
        return await self._token(token).functions.balanceOf(AsyncWeb3.to_checksum_address(owner)).call()

    @_read_retry
    async def token_decimals(self, token: str) -> int:
        return int(await self._token(token).functions.decimals().call())

    @_read_retry
    async def token_symbol(self, token: str) -> str:
        return await self._token(token).functions.symbol().call()

    @_read_retry
    async def allowance(self, token: str, owner: str, spender: str) -> int:
        return await self._token(token).functions.allowance(
            AsyncWeb3.to_checksum_address(owner),
            AsyncWeb3.to_checksum_address(spender)
        ).call()

    async def get_amounts_out(self, amount_in: int, path: Sequence[str]) -> List[int]:
        """Router price quote. Not retried: a failing quote means no liquidity."""
        checksummed = [AsyncWeb3.to_checksum_address(p) for p in path]
        return list(await self.router.functions.getAmountsOut(int(amount_in), checksummed).call())

    # Writes

    async def _tx_params(self, wallet: WalletHandle, gas: int, value: int = 0) -> dict:
        nonce = await self.w3.eth.get_transaction_count(wallet.address, 'pending')
        params = {
            'from': wallet.address,
            'gas': gas,
            'gasPrice': self.gas_price,
            'nonce': nonce,
            'chainId': self.config.chain_id,
        }
        if value:
            params['value'] = int(value)
        return params

    async def _submit(self, wallet: WalletHandle, tx: dict) -> TxHandle:
        signed = wallet.sign_transaction(tx)
        tx_hash = await self.w3.eth.send_raw_transaction(signed.raw_transaction)
        handle = TxHandle(self.w3, tx_hash)
        logger.debug(f"Submitted {handle.hash} from {wallet.name}")
        return handle

    async def send_value(self, wallet: WalletHandle, to: str, value: int,
                         gas_limit: Optional[int] = None) -> TxHandle:
        tx = await self._tx_params(wallet, gas_limit or self.gas_limit, value)
        tx['to'] = AsyncWeb3.to_checksum_address(to)
        return await self._submit(wallet, tx)

    async def approve(self, wallet: WalletHandle, token: str, spender: str, amount: int) -> TxHandle:
        params = await self._tx_params(wallet, APPROVE_GAS_LIMIT)
        tx = await self._token(token).functions.approve(
            AsyncWeb3.to_checksum_address(spender), int(amount)
        ).build_transaction(params)
        return await self._submit(wallet, tx)

    async def token_transfer(self, wallet: WalletHandle, token: str, to: str, amount: int) -> TxHandle:
        params = await self._tx_params(wallet, self.gas_limit)
        tx = await self._token(token).functions.transfer(
            AsyncWeb3.to_checksum_address(to), int(amount)
        ).build_transaction(params)
        return await self._submit(wallet, tx)

    async def swap_exact_eth_for_tokens(self, wallet: WalletHandle, value: int, min_out: int,
                                        path: Sequence[str], deadline: int) -> TxHandle:
        params = await self._tx_params(wallet, self.gas_limit, value)
        tx = await self.router.functions.swapExactETHForTokens(
            int(min_out), [AsyncWeb3.to_checksum_address(p) for p in path], wallet.address, deadline
        ).build_transaction(params)
        return await self._submit(wallet, tx)

    async def swap_exact_tokens_for_eth(self, wallet: WalletHandle, amount_in: int, min_out: int,
                                        path: Sequence[str], deadline: int) -> TxHandle:
        params = await self._tx_params(wallet, self.gas_limit)
        tx = await self.router.functions.swapExactTokensForETH(
            int(amount_in), int(min_out), [AsyncWeb3.to_checksum_address(p) for p in path],
            wallet.address, deadline
        ).build_transaction(params)
        return await self._submit(wallet, tx)

    async def swap_exact_tokens_for_tokens(self, wallet: WalletHandle, amount_in: int, min_out: int,
                                           path: Sequence[str], deadline: int) -> TxHandle:
        params = await self._tx_params(wallet, self.gas_limit)
        tx = await self.router.functions.swapExactTokensForTokens(
            int(amount_in), int(min_out), [AsyncWeb3.to_checksum_address(p) for p in path],
            wallet.address, deadline
        ).build_transaction(params)
        return await self._submit(wallet, tx)

    async def add_liquidity_eth(self, wallet: WalletHandle, token: str, amount_token: int,
                                amount_token_min: int, amount_eth_min: int, value: int,
                                deadline: int) -> TxHandle:
        params = await self._tx_params(wallet, LIQUIDITY_GAS_LIMIT, value)
        tx = await self.router.functions.addLiquidityETH(
            AsyncWeb3.to_checksum_address(token), int(amount_token), int(amount_token_min),
            int(amount_eth_min), wallet.address, deadline
        ).build_transaction(params)
        return await self._submit(wallet, tx)
