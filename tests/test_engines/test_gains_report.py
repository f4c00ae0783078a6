"""Tests for the realized gains report."""

from datetime import date
from decimal import Decimal

import pytest

from conftest import make_txn
from folio.engines.gains import GainsReportEngine
from folio.models.enums import HoldingPeriod


@pytest.fixture
def report(repo):
    return GainsReportEngine(repo)


class TestGainsReport:
    def test_short_and_long_term_split(self, engine, report):
        engine.record_transaction(make_txn("BUY", date(2022, 1, 3), "10", "100", owner_id="alice"))
        engine.record_transaction(make_txn("BUY", date(2024, 5, 1), "10", "100", owner_id="alice"))
        engine.record_transaction(make_txn("SELL", date(2024, 6, 3), "15", "120", owner_id="alice"))

        summary = report.summarize("alice", 2024)
        assert len(summary.lines) == 2
        assert summary.long_term_count == 1
        assert summary.short_term_count == 1
        assert summary.long_term_gain_loss == Decimal("200")
        assert summary.short_term_gain_loss == Decimal("100")
        assert summary.total_proceeds == Decimal("1800")
        assert summary.total_cost_basis == Decimal("1500")
        assert summary.total_gain_loss == Decimal("300")
        assert summary.wash_sale_disallowed == Decimal("0")
        long_line = next(line for line in summary.lines if line.holding_period == HoldingPeriod.LONG_TERM)
        assert long_line.gain_percent == Decimal("20")

    def test_other_years_and_owners_excluded(self, engine, report):
        engine.record_transaction(make_txn("BUY", date(2023, 1, 3), "10", "100", owner_id="alice"))
        engine.record_transaction(make_txn("SELL", date(2023, 6, 1), "5", "120", owner_id="alice"))
        engine.record_transaction(make_txn("BUY", date(2024, 1, 3), "10", "100", owner_id="bob"))
        engine.record_transaction(make_txn("SELL", date(2024, 6, 1), "5", "120", owner_id="bob"))

        assert report.summarize("alice", 2024).lines == []
        assert len(report.summarize("alice", 2023).lines) == 1

    def test_wash_sale_disallowed_counted_once_per_sale(self, engine, report):
        engine.record_transaction(make_txn("BUY", date(2024, 1, 2), "5", "100", owner_id="alice"))
        engine.record_transaction(make_txn("BUY", date(2024, 1, 3), "5", "100", owner_id="alice"))
        engine.record_transaction(make_txn("SELL", date(2024, 3, 1), "10", "80", owner_id="alice"))
        engine.record_transaction(make_txn("BUY", date(2024, 3, 10), "10", "82", owner_id="alice"))

        summary = report.summarize("alice", 2024)
        assert len(summary.lines) == 2
        assert summary.total_gain_loss == Decimal("-200")
        assert summary.wash_sale_disallowed == Decimal("200")
