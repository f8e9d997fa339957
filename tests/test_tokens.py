"""
Tests for the token repository and balance reads.
"""

import asyncio
from decimal import Decimal
from unittest.mock import Mock, patch

import pytest
import requests

from conftest import USDC, wei
from monad_ambient.balances import check_balances, swap_info
from monad_ambient.tokens import TokenDescriptor, TokenRepository

NEW_TOKEN = "0x3333333333333333333333333333333333333333"


def run(coro):
    return asyncio.run(coro)


def explorer_response(payload):
    response = Mock()
    response.json.return_value = payload
    response.raise_for_status.return_value = None
    return response


class TestTokenRepository:
    """Tests for TokenRepository."""

    def test_seeded_with_predefined_tokens(self, tokens):
        assert {t.symbol for t in tokens.all()} == {"USDC", "USDT", "WBTC", "WETH", "WSOL"}
        assert tokens.by_symbol("WBTC").decimals == 8

    def test_find_is_case_insensitive(self, tokens):
        assert tokens.find(USDC.lower()).symbol == "USDC"
        assert tokens.find(NEW_TOKEN) is None

    def test_resolve_reads_chain_for_unknown_token(self, tokens, chain):
        chain.decimals[NEW_TOKEN] = 9
        token = run(tokens.resolve(NEW_TOKEN, chain))

        assert token == TokenDescriptor("TEST", NEW_TOKEN, 9)
        assert tokens.find(NEW_TOKEN) is None

    def test_resolve_failure_returns_none(self, tokens, chain):
        chain.fail["token_symbol"] = ValueError("not a contract")
        assert run(tokens.resolve(NEW_TOKEN, chain)) is None

    def test_random_token_from_empty_repository(self, randomness):
        with pytest.raises(LookupError):
            TokenRepository(tokens={}).random_token(randomness)

    @patch("monad_ambient.tokens.requests.get")
    def test_refresh_merges_without_overwriting(self, mock_get, tokens):
        mock_get.return_value = explorer_response([
            {"symbol": "USDC", "address": NEW_TOKEN, "decimals": 18},
            {"symbol": "NEW", "address": NEW_TOKEN, "decimals": "12"},
            {"symbol": "BAD"},
        ])

        assert tokens.refresh() == 1
        assert tokens.by_symbol("USDC").address == TokenDescriptor("USDC", USDC, 6).address
        assert tokens.by_symbol("NEW").decimals == 12

    @patch("monad_ambient.tokens.requests.get")
    def test_refresh_network_error(self, mock_get, tokens):
        mock_get.side_effect = requests.ConnectionError("offline")
        assert tokens.refresh() == 0
        assert len(tokens.all()) == 5

    @patch("monad_ambient.tokens.requests.get")
    def test_refresh_unexpected_payload(self, mock_get, tokens):
        mock_get.return_value = explorer_response({"error": "rate limited"})
        assert tokens.refresh() == 0


class TestBalances:
    """Tests for balance snapshots."""

    def test_check_balances_lists_held_tokens(self, chain, tokens, wallet):
        chain.mon[wallet.address] = wei("1.5")
        chain.tokens[(tokens.by_symbol("USDC").address, wallet.address)] = 2_500_000

        balances = run(check_balances(chain, tokens, wallet))

        assert balances == {"MON": Decimal("1.5"), "USDC": Decimal("2.5")}

    def test_swap_info_with_quote(self, chain, tokens, wallet):
        chain.mon[wallet.address] = wei("2")
        chain.quote = 3_000_000

        info = run(swap_info(chain, tokens, wallet, USDC))

        assert info.mon_balance == Decimal("2")
        assert info.token.symbol == "USDC"
        assert info.tokens_per_mon == Decimal("3")
        assert info.gas_price_gwei == 50

    def test_swap_info_without_liquidity(self, chain, tokens, wallet):
        chain.fail["get_amounts_out"] = ValueError("no pair")
        info = run(swap_info(chain, tokens, wallet, USDC))
        assert info.tokens_per_mon is None
