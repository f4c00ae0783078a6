"""Tests for the cost-basis allocator."""

from datetime import date
from decimal import Decimal

import pytest

from conftest import make_lot
from folio.engines.allocator import CostBasisAllocator
from folio.exceptions import (
    DataValidationError,
    InsufficientQuantityError,
    InvalidMethodError,
    SpecIdMismatchError,
)
from folio.models.enums import CostBasisMethod, HoldingPeriod
from folio.models.transaction import SpecIdSelection


def _three_lots():
    return [
        make_lot("day-10", date(2024, 1, 10), "10", "120"),
        make_lot("day-1", date(2024, 1, 1), "10", "100"),
        make_lot("day-5", date(2024, 1, 5), "10", "140"),
    ]


class TestOrderedMethods:
    def setup_method(self):
        self.allocator = CostBasisAllocator()
        self.sale_date = date(2024, 6, 1)

    def _draws(self, plan):
        return [(p.lot_id, p.quantity) for p in plan.pieces]

    def test_fifo(self):
        plan = self.allocator.plan(_three_lots(), Decimal("15"), Decimal("150"), self.sale_date, "FIFO")
        assert self._draws(plan) == [("day-1", Decimal("10")), ("day-5", Decimal("5"))]
        assert plan.total_cost_basis == Decimal("1000") + Decimal("700")
        assert plan.total_proceeds == Decimal("2250")
        assert plan.total_gain_loss == Decimal("550")

    def test_lifo(self):
        plan = self.allocator.plan(_three_lots(), Decimal("15"), Decimal("150"), self.sale_date, "lifo")
        assert self._draws(plan) == [("day-10", Decimal("10")), ("day-5", Decimal("5"))]

    def test_hifo(self):
        plan = self.allocator.plan(_three_lots(), Decimal("15"), Decimal("150"), self.sale_date, "HIFO")
        assert self._draws(plan) == [("day-5", Decimal("10")), ("day-10", Decimal("5"))]

    def test_hifo_tie_goes_to_oldest(self):
        lots = [
            make_lot("newer", date(2024, 3, 1), "10", "100"),
            make_lot("older", date(2024, 1, 1), "10", "100"),
        ]
        plan = self.allocator.plan(lots, Decimal("5"), Decimal("90"), self.sale_date, CostBasisMethod.HIFO)
        assert self._draws(plan) == [("older", Decimal("5"))]

    def test_planning_does_not_mutate_lots(self):
        lots = _three_lots()
        self.allocator.plan(lots, Decimal("25"), Decimal("150"), self.sale_date, "FIFO")
        assert all(lot.remaining_quantity == lot.quantity for lot in lots)

    def test_closed_lots_skipped(self):
        lots = [
            make_lot("closed", date(2024, 1, 1), "10", "100", remaining="0"),
            make_lot("open", date(2024, 2, 1), "10", "100"),
        ]
        plan = self.allocator.plan(lots, Decimal("5"), Decimal("90"), self.sale_date, "FIFO")
        assert self._draws(plan) == [("open", Decimal("5"))]

    def test_insufficient_quantity(self):
        with pytest.raises(InsufficientQuantityError) as exc_info:
            self.allocator.plan(_three_lots(), Decimal("31"), Decimal("150"), self.sale_date, "FIFO")
        assert exc_info.value.shortfall == Decimal("1")
        assert "check your import history" in str(exc_info.value)

    def test_unknown_method(self):
        with pytest.raises(InvalidMethodError):
            self.allocator.plan(_three_lots(), Decimal("1"), Decimal("150"), self.sale_date, "AVERAGE")

    def test_non_positive_quantity(self):
        with pytest.raises(DataValidationError):
            self.allocator.plan(_three_lots(), Decimal("0"), Decimal("150"), self.sale_date, "FIFO")


class TestSpecificIdentification:
    def setup_method(self):
        self.allocator = CostBasisAllocator()
        self.lots = _three_lots()

    def _plan(self, quantity, selections):
        return self.allocator.plan(
            self.lots, Decimal(quantity), Decimal("150"), date(2024, 6, 1), "SPECID",
            [SpecIdSelection(lot_id=lot_id, quantity=Decimal(qty)) for lot_id, qty in selections],
        )

    def test_exact_selection_in_given_order(self):
        plan = self._plan("7", [("day-10", "4"), ("day-1", "3")])
        assert [(p.lot_id, p.quantity) for p in plan.pieces] == [
            ("day-10", Decimal("4")),
            ("day-1", Decimal("3")),
        ]
        assert plan.total_cost_basis == Decimal("480") + Decimal("300")

    def test_sum_must_equal_sale_quantity(self):
        with pytest.raises(SpecIdMismatchError) as exc_info:
            self._plan("8", [("day-10", "4"), ("day-1", "3")])
        assert exc_info.value.selected == Decimal("7")

    def test_selection_beyond_remaining(self):
        with pytest.raises(SpecIdMismatchError):
            self._plan("12", [("day-1", "6"), ("day-1", "6")])

    def test_unknown_lot(self):
        with pytest.raises(SpecIdMismatchError, match="not an open lot"):
            self._plan("1", [("nope", "1")])

    def test_selections_required(self):
        with pytest.raises(SpecIdMismatchError):
            self._plan("1", [])


class TestHoldingPeriod:
    def setup_method(self):
        self.allocator = CostBasisAllocator()

    def test_one_year_is_short_term(self):
        assert self.allocator.holding_period(date(2023, 1, 1), date(2024, 1, 1)) == HoldingPeriod.SHORT_TERM

    def test_more_than_365_days_is_long_term(self):
        assert self.allocator.holding_period(date(2023, 1, 1), date(2024, 1, 2)) == HoldingPeriod.LONG_TERM

    def test_mixed_plan(self):
        lots = [
            make_lot("old", date(2022, 1, 1), "10", "100"),
            make_lot("new", date(2024, 5, 1), "10", "100"),
        ]
        plan = self.allocator.plan(lots, Decimal("15"), Decimal("90"), date(2024, 6, 1), "FIFO")
        assert plan.holding_period == HoldingPeriod.MIXED
        assert plan.long_term_gain_loss == Decimal("-100")
        assert plan.short_term_gain_loss == Decimal("-50")
        assert plan.pieces[0].holding_days == (date(2024, 6, 1) - date(2022, 1, 1)).days
