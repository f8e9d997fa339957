"""
Tests for command line parsing helpers.
"""

import argparse
from decimal import Decimal
from unittest.mock import patch

import pytest

from monad_ambient import cli


class TestArgumentTypes:

    def test_decimal_parses_positive(self):
        assert cli._decimal("0.05") == Decimal("0.05")

    @pytest.mark.parametrize("value", ["abc", "0", "-1"])
    def test_decimal_rejects(self, value):
        with pytest.raises(argparse.ArgumentTypeError):
            cli._decimal(value)

    def test_slippage_percent_to_bps(self):
        assert cli._slippage_bps(5.0) == 500
        assert cli._slippage_bps(0.5) == 50

    def test_slippage_out_of_range_exits(self):
        with pytest.raises(SystemExit):
            cli._slippage_bps(100.0)


class TestMain:

    def test_no_command_prints_help(self, capsys):
        cli.main([])
        assert "multi-wallet" in capsys.readouterr().out

    def test_unknown_strategy_rejected(self):
        with pytest.raises(SystemExit):
            cli.main(["multi-wallet", "--strategy", "everything"])

    def test_wallet_list(self, tmp_path):
        config_path = tmp_path / "missing.yaml"
        with patch.object(cli, "setup_logging"), patch.object(cli, "add_json_file_handler"):
            cli.main(["--config", str(config_path), "--wallet-file", str(tmp_path / "w.json"), "wallet-list"])
