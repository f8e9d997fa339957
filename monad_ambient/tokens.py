"""
Token Repository
================
Known tokens keyed by symbol. Seeded with the predefined Monad testnet
tokens; `refresh()` merges whatever the explorer API reports. Nothing is
populated implicitly: callers decide when to refresh.
"""

from dataclasses import dataclass
from typing import Dict, List, Optional

import requests
from web3 import Web3

from .constants import DEFAULT_TOKENS, EXPLORER_TOKENS_API
from .randomness import RandomnessService
from .utils import logger


@dataclass(frozen=True)
class TokenDescriptor:
    """Resolved token metadata. `decimals` drives every amount conversion."""
    symbol: str
    address: str
    decimals: int

    def __post_init__(self):
        object.__setattr__(self, "address", Web3.to_checksum_address(self.address))
        object.__setattr__(self, "decimals", int(self.decimals))


class TokenRepository:
    """Owned by the caller and passed into the engine."""

    def __init__(self, tokens: Optional[Dict[str, TokenDescriptor]] = None,
                 explorer_url: str = EXPLORER_TOKENS_API, timeout: float = 5.0):
        if tokens is None:
            tokens = {
                symbol: TokenDescriptor(symbol, address, decimals)
                for symbol, (address, decimals) in DEFAULT_TOKENS.items()
            }
        self._tokens: Dict[str, TokenDescriptor] = dict(tokens)
        self.explorer_url = explorer_url
        self.timeout = timeout

    def add(self, token: TokenDescriptor):
        self._tokens[token.symbol] = token

    def all(self) -> List[TokenDescriptor]:
        return list(self._tokens.values())

    def by_symbol(self, symbol: str) -> Optional[TokenDescriptor]:
        return self._tokens.get(symbol)

    def find(self, address: str) -> Optional[TokenDescriptor]:
        """Case-insensitive lookup among known tokens."""
        wanted = address.lower()
        for token in self._tokens.values():
            if token.address.lower() == wanted:
                return token
        return None

    async def resolve(self, address: str, chain=None) -> Optional[TokenDescriptor]:
        """
        Known token, or metadata read from the contract when a chain client
        is given. Returns None if neither works. On-chain results are not
        added to the repository.
        """
        token = self.find(address)
        if token is not None or chain is None:
            return token
        try:
            symbol = await chain.token_symbol(address)
            decimals = await chain.token_decimals(address)
        except Exception as e:
            logger.warning(f"Could not read token metadata for {address}: {e}")
            return None
        return TokenDescriptor(symbol, address, decimals)

    def refresh(self) -> int:
        """
        Merge tokens reported by the explorer API. Predefined entries win on
        symbol clashes. Returns the number of tokens added.
        """
        try:
            response = requests.get(self.explorer_url, timeout=self.timeout)
            response.raise_for_status()
            payload = response.json()
        except (requests.RequestException, ValueError) as e:
            logger.warning(f"Could not fetch tokens from explorer API: {e}")
            return 0

        if not isinstance(payload, list):
            logger.warning("Explorer API returned an unexpected payload")
            return 0

        added = 0
        for entry in payload:
            if not isinstance(entry, dict):
                continue
            symbol = entry.get("symbol")
            address = entry.get("address")
            decimals = entry.get("decimals")
            if not (symbol and address and decimals is not None) or symbol in self._tokens:
                continue
            try:
                self._tokens[symbol] = TokenDescriptor(symbol, address, int(decimals))
                added += 1
            except ValueError:
                logger.debug(f"Skipping malformed token entry {symbol}")
        logger.info(f"Found {len(self._tokens)} tokens ({added} new)")
        return added

    def random_token(self, randomness: RandomnessService) -> TokenDescriptor:
        tokens = self.all()
        if not tokens:
            raise LookupError("Token repository is empty")
        return randomness.choice(tokens)
