"""Tests for CLI commands."""

import pytest
from typer.testing import CliRunner

from folio.cli import app

runner = CliRunner()


@pytest.fixture
def db_path(tmp_path):
    return str(tmp_path / "folio.db")


def _invoke(db_path, *args):
    return runner.invoke(app, [*args, "--db", db_path])


def _add(db_path, symbol, txn_type, quantity, price, on, *extra):
    return _invoke(
        db_path, "add", symbol, "--type", txn_type, "-q", quantity, "-p", price, "--date", on, *extra
    )


def _recorded_id(result):
    return result.output.splitlines()[0].rsplit(": ", 1)[1]


class TestHelp:
    def test_help(self):
        result = runner.invoke(app, ["--help"])
        assert result.exit_code == 0
        assert "tax-lot accounting" in result.output

    @pytest.mark.parametrize(
        "command",
        ["add", "claim", "unclaim", "preview", "lots", "duplicates", "delete", "reconcile", "gains", "wash-check"],
    )
    def test_command_help(self, command):
        result = runner.invoke(app, [command, "--help"])
        assert result.exit_code == 0


class TestAddAndLots:
    def test_claimed_buy_then_lots(self, db_path):
        result = _add(db_path, "ACME", "buy", "10", "100", "2024-01-02", "--owner", "alice")
        assert result.exit_code == 0, result.output
        assert "Recorded BUY ACME" in result.output
        assert "Opened lot" in result.output

        result = _invoke(db_path, "lots", "ACME", "--owner", "alice")
        assert result.exit_code == 0, result.output
        assert "Available: 10 shares, average cost $100.00" in result.output

    def test_sale_reports_gain(self, db_path):
        _add(db_path, "ACME", "BUY", "10", "100", "2024-01-02", "--owner", "alice")
        result = _add(db_path, "ACME", "SELL", "4", "125", "2024-06-03", "--owner", "alice")
        assert result.exit_code == 0, result.output
        assert "Realized gain/loss: $100.00" in result.output

    def test_oversell_fails(self, db_path):
        _add(db_path, "ACME", "BUY", "10", "100", "2024-01-02", "--owner", "alice")
        result = _add(db_path, "ACME", "SELL", "12", "125", "2024-06-03", "--owner", "alice")
        assert result.exit_code == 1
        assert "check your import history" in result.output

    def test_bad_input(self, db_path):
        result = _add(db_path, "ACME", "SPLIT", "10", "100", "2024-01-02")
        assert result.exit_code == 1
        assert "unknown transaction type" in result.output

        result = _add(db_path, "ACME", "BUY", "ten", "100", "2024-01-02")
        assert result.exit_code == 1
        assert "is not a number" in result.output

        result = _add(db_path, "ACME", "BUY", "-5", "100", "2024-01-02")
        assert result.exit_code == 1
        assert "Error:" in result.output
        assert "quantity" in result.output

        result = _add(db_path, "  ", "BUY", "5", "100", "2024-01-02")
        assert result.exit_code == 1
        assert "symbol must not be empty" in result.output

    def test_no_lots(self, db_path):
        result = _invoke(db_path, "lots", "ACME", "--owner", "alice")
        assert result.exit_code == 0
        assert "No lots for ACME owned by alice" in result.output


class TestClaimFlow:
    def test_claim_and_unclaim(self, db_path):
        added = _add(db_path, "ACME", "BUY", "10", "100", "2024-01-02")
        txn_id = _recorded_id(added)

        result = _invoke(db_path, "claim", txn_id, "--owner", "bob")
        assert result.exit_code == 0, result.output
        assert "Claimed 1 transaction(s) for bob" in result.output

        result = _invoke(db_path, "unclaim", txn_id, "--owner", "bob")
        assert result.exit_code == 0, result.output
        assert "Unclaimed 1 transaction(s)" in result.output

    def test_claim_unknown(self, db_path):
        result = _invoke(db_path, "claim", "missing", "--owner", "bob")
        assert result.exit_code == 1
        assert "Transaction not found" in result.output


class TestPreview:
    def test_preview_does_not_commit(self, db_path):
        _add(db_path, "ACME", "BUY", "10", "100", "2024-01-02", "--owner", "alice")
        result = _invoke(
            db_path, "preview", "ACME", "4", "90", "--owner", "alice", "--date", "2024-06-03", "--method", "hifo"
        )
        assert result.exit_code == 0, result.output
        assert "Total gain/loss: $-40.00 (SHORT_TERM)" in result.output

        result = _invoke(db_path, "lots", "ACME", "--owner", "alice")
        assert "Available: 10 shares" in result.output

    def test_bad_lot_selection(self, db_path):
        result = _invoke(
            db_path, "preview", "ACME", "4", "90", "--owner", "alice", "--method", "SPECID", "--lot", "oops"
        )
        assert result.exit_code == 1
        assert "LOT_ID:QUANTITY" in result.output


class TestDuplicates:
    def test_flag_review_and_delete(self, db_path):
        _add(db_path, "ACME", "BUY", "10", "100", "2024-03-01")
        copy = _add(db_path, "ACME", "BUY", "10", "100", "2024-03-01")
        assert "likely duplicate" in copy.output
        copy_id = _recorded_id(copy)

        result = _invoke(db_path, "duplicates")
        assert result.exit_code == 0
        assert "Likely duplicates" in result.output

        result = _invoke(db_path, "delete", copy_id)
        assert result.exit_code == 0, result.output

        result = _invoke(db_path, "duplicates")
        assert "No flagged duplicates." in result.output

    def test_delete_requires_flag(self, db_path):
        txn_id = _recorded_id(_add(db_path, "ACME", "BUY", "10", "100", "2024-03-01"))
        result = _invoke(db_path, "delete", txn_id)
        assert result.exit_code == 1
        assert "not flagged as a duplicate" in result.output

        result = _invoke(db_path, "delete", txn_id, "--any")
        assert result.exit_code == 0


class TestReports:
    def test_reconcile_clean(self, db_path):
        _add(db_path, "ACME", "BUY", "10", "100", "2024-01-02", "--owner", "alice")
        result = _invoke(db_path, "reconcile", "--strict")
        assert result.exit_code == 0
        assert "open lots match transaction history" in result.output

    def test_gains_and_wash_warning(self, db_path):
        _add(db_path, "ACME", "BUY", "10", "100", "2024-01-02", "--owner", "alice")
        sale = _add(db_path, "ACME", "SELL", "10", "80", "2024-03-01", "--owner", "alice")
        assert "Wash Sale" not in sale.output

        result = _invoke(db_path, "wash-check", "ACME", "--owner", "alice", "--date", "2024-03-10")
        assert result.exit_code == 0
        assert "would wash 1 loss sale(s)" in result.output

        _add(db_path, "ACME", "BUY", "5", "82", "2024-03-10", "--owner", "alice")
        result = _invoke(db_path, "gains", "2024", "--owner", "alice")
        assert result.exit_code == 0, result.output
        assert "Total gain/loss:  $-200.00" in result.output
        assert "Wash-sale loss disallowed: $100.00" in result.output
