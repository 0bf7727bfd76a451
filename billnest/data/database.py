from __future__ import annotations

import os
import sqlite3
from contextlib import contextmanager
from pathlib import Path
from typing import Iterator, Optional


_DB_FILE = "billnest.db"


def _get_storage_directory() -> Path:
    base = Path(os.getenv("LOCALAPPDATA", Path.home()))
    target = base / "BillNest"
    target.mkdir(parents=True, exist_ok=True)
    return target


def get_database_path() -> Path:
    return _get_storage_directory() / _DB_FILE


def get_storage_root() -> Path:
    """Return the application data directory used for persistent assets."""
    return _get_storage_directory()


def create_connection() -> sqlite3.Connection:
    connection = sqlite3.connect(get_database_path(), timeout=10.0)
    connection.row_factory = sqlite3.Row
    _apply_pragmas(connection)
    return connection


@contextmanager
def connection_scope(connection: Optional[sqlite3.Connection] = None) -> Iterator[sqlite3.Connection]:
    """Yield ``connection`` when the caller owns a transaction, else a fresh one.

    Fresh connections are committed on success; borrowed ones are left to the caller.
    """
    if connection is not None:
        yield connection
        return

    with create_connection() as owned:
        yield owned
        owned.commit()


@contextmanager
def write_transaction() -> Iterator[sqlite3.Connection]:
    """Yield a connection holding the database write lock until commit.

    Anything raised inside the block rolls the transaction back.
    """
    with create_connection() as connection:
        connection.execute("BEGIN IMMEDIATE")
        yield connection
        connection.commit()


def _apply_pragmas(connection: sqlite3.Connection) -> None:
    cursor = connection.cursor()
    cursor.execute("PRAGMA foreign_keys = ON;")
    cursor.execute("PRAGMA journal_mode = WAL;")
    cursor.close()


def initialize() -> None:
    with create_connection() as connection:
        cursor = connection.cursor()
        cursor.executescript(
            """
            CREATE TABLE IF NOT EXISTS settings (
                key TEXT PRIMARY KEY,
                value TEXT NOT NULL
            );

            CREATE TABLE IF NOT EXISTS products (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                name TEXT NOT NULL,
                description TEXT NOT NULL DEFAULT '',
                price REAL NOT NULL DEFAULT 0,
                sku TEXT NOT NULL DEFAULT ''
            );

            CREATE TABLE IF NOT EXISTS invoices (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                invoice_number TEXT NOT NULL UNIQUE,
                client_name TEXT NOT NULL,
                client_email TEXT NOT NULL DEFAULT '',
                client_address TEXT NOT NULL DEFAULT '',
                issue_date TEXT,
                due_date TEXT,
                status TEXT NOT NULL DEFAULT 'pending',
                tax_rate REAL NOT NULL DEFAULT 0,
                subtotal REAL NOT NULL DEFAULT 0,
                tax REAL NOT NULL DEFAULT 0,
                total_amount REAL NOT NULL DEFAULT 0,
                currency TEXT NOT NULL DEFAULT 'USD',
                language TEXT NOT NULL DEFAULT 'en',
                notes TEXT NOT NULL DEFAULT '',
                terms TEXT NOT NULL DEFAULT '',
                created_at TEXT NOT NULL DEFAULT CURRENT_TIMESTAMP,
                updated_at TEXT NOT NULL DEFAULT CURRENT_TIMESTAMP
            );

            CREATE TABLE IF NOT EXISTS invoice_items (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                invoice_id INTEGER NOT NULL,
                item_key TEXT NOT NULL,
                description TEXT NOT NULL DEFAULT '',
                quantity REAL NOT NULL,
                unit_price REAL NOT NULL,
                FOREIGN KEY(invoice_id) REFERENCES invoices(id) ON DELETE CASCADE
            );

            CREATE INDEX IF NOT EXISTS idx_invoice_items_invoice_id
            ON invoice_items(invoice_id);

            CREATE INDEX IF NOT EXISTS idx_invoices_created_at
            ON invoices(created_at);
            """
        )

        _ensure_column(connection, "invoices", "language", "TEXT NOT NULL DEFAULT 'en'")
        _ensure_column(connection, "invoices", "currency", "TEXT NOT NULL DEFAULT 'USD'")
        _ensure_column(connection, "invoices", "terms", "TEXT NOT NULL DEFAULT ''")

        cursor.close()
        connection.commit()


def _ensure_column(connection: sqlite3.Connection, table: str, column: str, definition: str) -> None:
    info = connection.execute(f"PRAGMA table_info({table});").fetchall()
    if not any(row[1] == column for row in info):
        connection.execute(f"ALTER TABLE {table} ADD COLUMN {column} {definition};")
