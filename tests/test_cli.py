"""Tests for the bookshop CLI."""

import json

import pytest

from bookshop import __version__
from bookshop.cli import create_parser, main


class TestSimulate:
    def test_approved(self, capsys):
        assert main(["simulate", "--amount", "19.99"]) == 0
        assert capsys.readouterr().out.startswith("APPROVED")

    def test_declined_card(self, capsys):
        assert main(["simulate", "--last4", "1111", "--amount", "20"]) == 2
        out = capsys.readouterr().out
        assert "DECLINED" in out
        assert "INSUFFICIENT_FUNDS" in out

    def test_json_output(self, capsys):
        main(["simulate", "--paypal", "fail@example.com", "--amount", "10", "--json"])
        data = json.loads(capsys.readouterr().out)
        assert data["success"] is False
        assert data["failure_reason"] == "PAYPAL_ACCOUNT_ISSUE"

    def test_amount_override(self, capsys):
        assert main(["simulate", "--last4", "1111", "--amount", "777.00"]) == 0

    @pytest.mark.parametrize("args", [["--amount", "abc"], ["--last4", "12", "--amount", "1"]])
    def test_bad_input(self, capsys, args):
        assert main(["simulate", *args]) == 1
        assert capsys.readouterr().err.startswith("Error:")


class TestParser:
    def test_version(self, capsys):
        with pytest.raises(SystemExit):
            create_parser().parse_args(["--version"])
        assert __version__ in capsys.readouterr().out

    def test_no_command_prints_help(self, capsys):
        assert main([]) == 0
        assert "usage" in capsys.readouterr().out
