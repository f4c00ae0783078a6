"""SQLite database schema definition."""

import sqlite3
from pathlib import Path

SCHEMA_VERSION = 1

SCHEMA_SQL = """
CREATE TABLE IF NOT EXISTS schema_version (
    version INTEGER PRIMARY KEY,
    applied_at TEXT NOT NULL DEFAULT (datetime('now'))
);

CREATE TABLE IF NOT EXISTS transactions (
    id TEXT PRIMARY KEY,
    date TEXT NOT NULL,
    type TEXT NOT NULL,
    symbol TEXT NOT NULL,
    quantity TEXT NOT NULL,
    price TEXT NOT NULL,
    amount TEXT NOT NULL,
    fees TEXT NOT NULL DEFAULT '0',
    owner_id TEXT,
    description TEXT,
    notes TEXT,
    is_duplicate_flag INTEGER NOT NULL DEFAULT 0,
    duplicate_of_id TEXT,
    duplicate_score INTEGER,
    wash_sale_flag INTEGER NOT NULL DEFAULT 0,
    wash_sale_amount TEXT,
    created_at TEXT NOT NULL DEFAULT (datetime('now'))
);

CREATE INDEX IF NOT EXISTS idx_transactions_symbol_date ON transactions (symbol, date);
CREATE INDEX IF NOT EXISTS idx_transactions_owner ON transactions (owner_id, symbol);

CREATE TABLE IF NOT EXISTS tax_lots (
    id TEXT PRIMARY KEY,
    transaction_id TEXT NOT NULL UNIQUE REFERENCES transactions(id),
    owner_id TEXT NOT NULL,
    symbol TEXT NOT NULL,
    quantity TEXT NOT NULL,
    remaining_quantity TEXT NOT NULL,
    cost_basis TEXT NOT NULL,
    acquired_date TEXT NOT NULL,
    created_at TEXT NOT NULL DEFAULT (datetime('now'))
);

CREATE TABLE IF NOT EXISTS lot_disposals (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    sale_id TEXT NOT NULL REFERENCES transactions(id),
    lot_id TEXT NOT NULL REFERENCES tax_lots(id),
    method TEXT NOT NULL,
    quantity TEXT NOT NULL,
    cost_basis TEXT NOT NULL,
    acquired_date TEXT NOT NULL,
    sale_date TEXT NOT NULL,
    proceeds TEXT NOT NULL,
    gain_loss TEXT NOT NULL,
    holding_period TEXT NOT NULL,
    holding_days INTEGER NOT NULL,
    created_at TEXT NOT NULL DEFAULT (datetime('now'))
);

CREATE TABLE IF NOT EXISTS audit_log (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    timestamp TEXT NOT NULL DEFAULT (datetime('now')),
    engine TEXT NOT NULL,
    operation TEXT NOT NULL,
    inputs TEXT NOT NULL,
    output TEXT NOT NULL,
    notes TEXT
);
"""


def create_schema(db_path: Path | str) -> sqlite3.Connection:
    """Create the database schema. Returns the connection."""
    conn = sqlite3.connect(str(db_path))
    conn.execute("PRAGMA foreign_keys=ON")
    if str(db_path) != ":memory:":
        conn.execute("PRAGMA journal_mode=WAL")
    conn.executescript(SCHEMA_SQL)
    conn.execute(
        "INSERT OR IGNORE INTO schema_version (version) VALUES (?)",
        (SCHEMA_VERSION,),
    )
    conn.commit()
    return conn
