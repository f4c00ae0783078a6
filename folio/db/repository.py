"""Data access layer for Folio.

Write methods do not commit on their own. Callers group them inside
``atomic()`` so a sale and its lot updates, or both sides of a duplicate
pair, land in the database together or not at all.
"""

import json
import sqlite3
from collections.abc import Iterable, Iterator
from contextlib import contextmanager
from datetime import date
from decimal import Decimal

from folio.exceptions import TransactionNotFoundError
from folio.models.enums import TransactionType
from folio.models.reports import AuditEntry
from folio.models.transaction import AllocationPlan, TaxLot, Transaction


def _rows(cursor: sqlite3.Cursor) -> list[dict]:
    columns = [desc[0] for desc in cursor.description]
    return [dict(zip(columns, row)) for row in cursor.fetchall()]


def _dec(value: str | None) -> Decimal | None:
    return Decimal(value) if value is not None else None


class FolioRepository:
    """CRUD operations for transactions, lots, disposals, and the audit log."""

    def __init__(self, conn: sqlite3.Connection):
        self.conn = conn

    @contextmanager
    def atomic(self) -> Iterator[sqlite3.Connection]:
        """Commit everything written inside the block, or roll it all back."""
        with self.conn:
            yield self.conn

    # --- Transactions ---

    def save_transaction(self, txn: Transaction) -> None:
        """Insert a transaction record."""
        self.conn.execute(
            """INSERT INTO transactions
               (id, date, type, symbol, quantity, price, amount, fees, owner_id,
                description, notes, is_duplicate_flag, duplicate_of_id,
                duplicate_score, wash_sale_flag, wash_sale_amount)
               VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)""",
            (
                txn.id,
                txn.date.isoformat(),
                txn.type.value,
                txn.symbol,
                str(txn.quantity),
                str(txn.price),
                str(txn.amount),
                str(txn.fees),
                txn.owner_id,
                txn.description,
                txn.notes,
                int(txn.is_duplicate_flag),
                txn.duplicate_of_id,
                txn.duplicate_score,
                int(txn.wash_sale_flag),
                str(txn.wash_sale_amount) if txn.wash_sale_amount is not None else None,
            ),
        )

    def get_transaction(self, txn_id: str) -> Transaction | None:
        cursor = self.conn.execute("SELECT * FROM transactions WHERE id = ?", (txn_id,))
        rows = _rows(cursor)
        return self._to_transaction(rows[0]) if rows else None

    def require_transaction(self, txn_id: str) -> Transaction:
        txn = self.get_transaction(txn_id)
        if txn is None:
            raise TransactionNotFoundError(txn_id)
        return txn

    def get_transactions(
        self,
        owner_id: str | None = None,
        symbol: str | None = None,
        start: date | None = None,
        end: date | None = None,
        unclaimed: bool = False,
        types: Iterable[TransactionType] | None = None,
    ) -> list[Transaction]:
        """Retrieve transactions with optional filters, oldest first."""
        query = "SELECT * FROM transactions"
        params: list[str] = []
        conditions = []
        if owner_id is not None:
            conditions.append("owner_id = ?")
            params.append(owner_id)
        if unclaimed:
            conditions.append("owner_id IS NULL")
        if symbol:
            conditions.append("symbol = ?")
            params.append(symbol.strip().upper())
        if start:
            conditions.append("date >= ?")
            params.append(start.isoformat())
        if end:
            conditions.append("date <= ?")
            params.append(end.isoformat())
        if types is not None:
            type_values = [t.value for t in types]
            conditions.append(f"type IN ({', '.join('?' for _ in type_values)})")
            params.extend(type_values)
        if conditions:
            query += " WHERE " + " AND ".join(conditions)
        query += " ORDER BY date, rowid"
        cursor = self.conn.execute(query, params)
        return [self._to_transaction(row) for row in _rows(cursor)]

    def get_flagged_duplicates(self) -> list[Transaction]:
        cursor = self.conn.execute(
            """SELECT * FROM transactions
               WHERE is_duplicate_flag = 1 AND owner_id IS NULL
               ORDER BY date DESC, id"""
        )
        return [self._to_transaction(row) for row in _rows(cursor)]

    def set_owner(self, txn_id: str, owner_id: str | None) -> None:
        self.conn.execute(
            "UPDATE transactions SET owner_id = ? WHERE id = ?", (owner_id, txn_id)
        )

    def set_duplicate_link(self, txn_id: str, partner_id: str | None, score: int | None) -> None:
        """Write one side of a duplicate pair; ``partner_id=None`` clears the flag."""
        self.conn.execute(
            """UPDATE transactions
               SET is_duplicate_flag = ?, duplicate_of_id = ?, duplicate_score = ?
               WHERE id = ?""",
            (int(partner_id is not None), partner_id, score if partner_id else None, txn_id),
        )

    def set_wash_sale(self, txn_id: str, flag: bool, amount: Decimal | None) -> None:
        self.conn.execute(
            "UPDATE transactions SET wash_sale_flag = ?, wash_sale_amount = ? WHERE id = ?",
            (int(flag), str(amount) if amount is not None else None, txn_id),
        )

    def delete_transaction(self, txn_id: str) -> None:
        self.conn.execute("DELETE FROM transactions WHERE id = ?", (txn_id,))

    @staticmethod
    def _to_transaction(row: dict) -> Transaction:
        return Transaction(
            id=row["id"],
            date=date.fromisoformat(row["date"]),
            type=TransactionType(row["type"]),
            symbol=row["symbol"],
            quantity=Decimal(row["quantity"]),
            price=Decimal(row["price"]),
            amount=Decimal(row["amount"]),
            fees=Decimal(row["fees"]),
            owner_id=row["owner_id"],
            description=row["description"],
            notes=row["notes"],
            is_duplicate_flag=bool(row["is_duplicate_flag"]),
            duplicate_of_id=row["duplicate_of_id"],
            duplicate_score=row["duplicate_score"],
            wash_sale_flag=bool(row["wash_sale_flag"]),
            wash_sale_amount=_dec(row["wash_sale_amount"]),
        )

    # --- Lots ---

    def save_lot(self, lot: TaxLot) -> None:
        """Insert or update a lot."""
        self.conn.execute(
            """INSERT OR REPLACE INTO tax_lots
               (id, transaction_id, owner_id, symbol, quantity,
                remaining_quantity, cost_basis, acquired_date)
               VALUES (?, ?, ?, ?, ?, ?, ?, ?)""",
            (
                lot.id,
                lot.transaction_id,
                lot.owner_id,
                lot.symbol,
                str(lot.quantity),
                str(lot.remaining_quantity),
                str(lot.cost_basis),
                lot.acquired_date.isoformat(),
            ),
        )

    def get_lots(self, owner_id: str | None = None, symbol: str | None = None) -> list[TaxLot]:
        """Retrieve lots, optionally filtered by owner and symbol, oldest first."""
        query = "SELECT * FROM tax_lots"
        params: list[str] = []
        conditions = []
        if owner_id is not None:
            conditions.append("owner_id = ?")
            params.append(owner_id)
        if symbol:
            conditions.append("symbol = ?")
            params.append(symbol.strip().upper())
        if conditions:
            query += " WHERE " + " AND ".join(conditions)
        query += " ORDER BY acquired_date, rowid"
        cursor = self.conn.execute(query, params)
        return [self._to_lot(row) for row in _rows(cursor)]

    def get_lot_for_transaction(self, txn_id: str) -> TaxLot | None:
        cursor = self.conn.execute("SELECT * FROM tax_lots WHERE transaction_id = ?", (txn_id,))
        rows = _rows(cursor)
        return self._to_lot(rows[0]) if rows else None

    def update_lot_remaining(self, lot_id: str, remaining_quantity: Decimal) -> None:
        """Update the remaining quantity for a lot after consumption."""
        self.conn.execute(
            "UPDATE tax_lots SET remaining_quantity = ? WHERE id = ?",
            (str(remaining_quantity), lot_id),
        )

    def delete_lot(self, lot_id: str) -> None:
        self.conn.execute("DELETE FROM tax_lots WHERE id = ?", (lot_id,))

    @staticmethod
    def _to_lot(row: dict) -> TaxLot:
        return TaxLot(
            id=row["id"],
            transaction_id=row["transaction_id"],
            owner_id=row["owner_id"],
            symbol=row["symbol"],
            quantity=Decimal(row["quantity"]),
            remaining_quantity=Decimal(row["remaining_quantity"]),
            cost_basis=Decimal(row["cost_basis"]),
            acquired_date=date.fromisoformat(row["acquired_date"]),
        )

    # --- Disposals ---

    def save_disposals(self, sale_id: str, plan: AllocationPlan) -> None:
        """Persist the realized pieces of a committed sale."""
        self.conn.executemany(
            """INSERT INTO lot_disposals
               (sale_id, lot_id, method, quantity, cost_basis, acquired_date,
                sale_date, proceeds, gain_loss, holding_period, holding_days)
               VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)""",
            [
                (
                    sale_id,
                    piece.lot_id,
                    plan.method.value,
                    str(piece.quantity),
                    str(piece.cost_basis),
                    piece.acquired_date.isoformat(),
                    plan.sale_date.isoformat(),
                    str(piece.proceeds),
                    str(piece.gain_loss),
                    piece.holding_period.value if piece.holding_period else "",
                    piece.holding_days or 0,
                )
                for piece in plan.pieces
            ],
        )

    def get_disposals(
        self,
        sale_id: str | None = None,
        owner_id: str | None = None,
        tax_year: int | None = None,
        symbol: str | None = None,
    ) -> list[dict]:
        """Retrieve disposals joined with their sale's symbol and owner."""
        query = """SELECT d.*, t.symbol, t.owner_id
                   FROM lot_disposals d JOIN transactions t ON t.id = d.sale_id"""
        params: list[str] = []
        conditions = []
        if sale_id:
            conditions.append("d.sale_id = ?")
            params.append(sale_id)
        if owner_id:
            conditions.append("t.owner_id = ?")
            params.append(owner_id)
        if tax_year:
            conditions.append("d.sale_date LIKE ?")
            params.append(f"{tax_year}-%")
        if symbol:
            conditions.append("t.symbol = ?")
            params.append(symbol.strip().upper())
        if conditions:
            query += " WHERE " + " AND ".join(conditions)
        query += " ORDER BY d.sale_date, d.id"
        cursor = self.conn.execute(query, params)
        return _rows(cursor)

    def has_disposals(self, sale_id: str) -> bool:
        cursor = self.conn.execute(
            "SELECT 1 FROM lot_disposals WHERE sale_id = ? LIMIT 1", (sale_id,)
        )
        return cursor.fetchone() is not None

    # --- Audit log ---

    def save_audit_entry(self, entry: AuditEntry) -> None:
        """Insert an audit log entry."""
        self.conn.execute(
            """INSERT INTO audit_log (timestamp, engine, operation, inputs, output, notes)
               VALUES (?, ?, ?, ?, ?, ?)""",
            (
                entry.timestamp.isoformat(),
                entry.engine,
                entry.operation,
                json.dumps(entry.inputs, default=str),
                json.dumps(entry.output, default=str),
                entry.notes,
            ),
        )

    def get_audit_entries(self, operation: str | None = None) -> list[dict]:
        if operation:
            cursor = self.conn.execute(
                "SELECT * FROM audit_log WHERE operation = ? ORDER BY id", (operation,)
            )
        else:
            cursor = self.conn.execute("SELECT * FROM audit_log ORDER BY id")
        return _rows(cursor)
