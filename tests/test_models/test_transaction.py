"""Tests for transaction and lot models."""

from datetime import date
from decimal import Decimal

import pytest
from pydantic import ValidationError

from folio.exceptions import InvalidMethodError, InvalidTransactionTypeError
from folio.models.enums import CostBasisMethod, TransactionType
from folio.models.transaction import TaxLot, Transaction


class TestTransaction:
    def test_defaults(self):
        txn = Transaction(date=date(2024, 1, 2), type="buy", symbol=" acme ", quantity="10", price="12.5")
        assert txn.type == TransactionType.BUY
        assert txn.symbol == "ACME"
        assert txn.amount == Decimal("125.0")
        assert txn.fees == Decimal("0")
        assert not txn.is_claimed
        assert txn.is_acquisition and not txn.is_disposal

    def test_explicit_amount_kept(self):
        txn = Transaction(
            date=date(2024, 1, 2), type="SELL", symbol="ACME",
            quantity=Decimal("10"), price=Decimal("12.5"), amount=Decimal("120"),
        )
        assert txn.amount == Decimal("120")
        assert txn.is_disposal

    def test_unknown_type(self):
        with pytest.raises(InvalidTransactionTypeError):
            Transaction(date=date(2024, 1, 2), type="SPLIT", symbol="ACME", quantity=1, price=1)

    def test_negative_quantity_rejected(self):
        with pytest.raises(ValidationError):
            Transaction(date=date(2024, 1, 2), type="BUY", symbol="ACME", quantity=-1, price=1)

    def test_blank_symbol_rejected(self):
        with pytest.raises(ValidationError):
            Transaction(date=date(2024, 1, 2), type="BUY", symbol="  ", quantity=1, price=1)

    def test_ids_are_unique(self):
        a = Transaction(date=date(2024, 1, 2), type="BUY", symbol="ACME", quantity=1, price=1)
        b = Transaction(date=date(2024, 1, 2), type="BUY", symbol="ACME", quantity=1, price=1)
        assert a.id != b.id


class TestTaxLot:
    def _lot(self, **overrides):
        fields = dict(
            transaction_id="t1", owner_id="alice", symbol="ACME",
            quantity=Decimal("3"), remaining_quantity=Decimal("3"),
            cost_basis=Decimal("100"), acquired_date=date(2024, 1, 2),
        )
        fields.update(overrides)
        return TaxLot(**fields)

    def test_remaining_cannot_exceed_quantity(self):
        with pytest.raises(ValidationError):
            self._lot(remaining_quantity=Decimal("4"))

    def test_full_quantity_returns_exact_basis(self):
        lot = self._lot()
        thirds = lot.cost_basis_for(Decimal("1")) * 3
        assert lot.cost_basis_for(Decimal("3")) == Decimal("100")
        assert thirds != Decimal("100")

    def test_unit_cost_and_open(self):
        lot = self._lot(quantity=Decimal("4"), remaining_quantity=Decimal("0"))
        assert lot.unit_cost == Decimal("25")
        assert not lot.is_open


class TestCostBasisMethod:
    def test_parse_is_case_insensitive(self):
        assert CostBasisMethod.parse(" hifo ") == CostBasisMethod.HIFO

    def test_parse_unknown(self):
        with pytest.raises(InvalidMethodError):
            CostBasisMethod.parse("average")

    def test_labels(self):
        assert CostBasisMethod.FIFO.label == "First In, First Out (FIFO)"
        assert CostBasisMethod.SPECID.description == "Choose specific lots to sell"
