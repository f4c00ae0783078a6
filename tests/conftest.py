"""Shared test fixtures for Folio."""

from datetime import date
from decimal import Decimal

import pytest

from folio.config import EngineSettings
from folio.db.repository import FolioRepository
from folio.db.schema import create_schema
from folio.engines.accounting import AccountingEngine
from folio.models.enums import TransactionType
from folio.models.transaction import TaxLot, Transaction


@pytest.fixture
def db_conn(tmp_path):
    db_path = tmp_path / "test.db"
    conn = create_schema(db_path)
    yield conn
    conn.close()


@pytest.fixture
def repo(db_conn) -> FolioRepository:
    return FolioRepository(db_conn)


@pytest.fixture
def engine(repo) -> AccountingEngine:
    return AccountingEngine(repo, EngineSettings())


def make_txn(
    txn_type: TransactionType | str,
    on: date,
    quantity: str,
    price: str,
    symbol: str = "ACME",
    owner_id: str | None = None,
    **kwargs,
) -> Transaction:
    return Transaction(
        date=on,
        type=txn_type,
        symbol=symbol,
        quantity=Decimal(quantity),
        price=Decimal(price),
        owner_id=owner_id,
        **kwargs,
    )


def make_lot(
    lot_id: str,
    acquired: date,
    quantity: str,
    unit_cost: str,
    remaining: str | None = None,
    owner_id: str = "alice",
    symbol: str = "ACME",
) -> TaxLot:
    qty = Decimal(quantity)
    return TaxLot(
        id=lot_id,
        transaction_id=f"txn-{lot_id}",
        owner_id=owner_id,
        symbol=symbol,
        quantity=qty,
        remaining_quantity=Decimal(remaining) if remaining is not None else qty,
        cost_basis=qty * Decimal(unit_cost),
        acquired_date=acquired,
    )
