from __future__ import annotations

import sqlite3
from dataclasses import replace
from datetime import date, datetime
from typing import Callable, Dict, List, Optional, Tuple

from ..models.invoice_models import Invoice, InvoiceItem, InvoiceTotals
from .database import connection_scope, create_connection, write_transaction


_DATE_FORMAT = "%Y-%m-%d"

_INVOICE_COLUMNS = """
    id,
    invoice_number,
    client_name,
    client_email,
    client_address,
    issue_date,
    due_date,
    status,
    tax_rate,
    currency,
    language,
    notes,
    terms,
    created_at,
    updated_at
"""


def insert_invoice(
    invoice: Invoice,
    totals: InvoiceTotals,
    *,
    connection: Optional[sqlite3.Connection] = None,
) -> int:
    with connection_scope(connection) as active:
        cursor = active.cursor()
        try:
            cursor.execute(
                """
                INSERT INTO invoices (
                    invoice_number,
                    client_name,
                    client_email,
                    client_address,
                    issue_date,
                    due_date,
                    status,
                    tax_rate,
                    subtotal,
                    tax,
                    total_amount,
                    currency,
                    language,
                    notes,
                    terms
                ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                """,
                (
                    invoice.invoice_number.strip(),
                    invoice.client_name.strip(),
                    invoice.client_email.strip(),
                    invoice.client_address.strip(),
                    _format_date(invoice.issue_date),
                    _format_date(invoice.due_date),
                    invoice.status.strip(),
                    float(invoice.tax_rate),
                    totals.subtotal,
                    totals.tax,
                    totals.total_amount,
                    invoice.currency,
                    invoice.language,
                    invoice.notes.strip(),
                    invoice.terms.strip(),
                ),
            )
            invoice_id = int(cursor.lastrowid)
            _insert_items(cursor, invoice_id, invoice.items)
            return invoice_id
        finally:
            cursor.close()


def insert_invoice_with_reserved_number(
    invoice: Invoice,
    totals: InvoiceTotals,
    reserve: Callable[[sqlite3.Connection], str],
) -> Tuple[int, str]:
    """Allocate a number with ``reserve`` and insert the invoice in one write transaction."""
    with write_transaction() as connection:
        invoice_number = reserve(connection)
        numbered = replace(invoice, invoice_number=invoice_number)
        invoice_id = insert_invoice(numbered, totals, connection=connection)
    return invoice_id, invoice_number


def update_invoice(invoice_id: int, invoice: Invoice, totals: InvoiceTotals) -> None:
    with create_connection() as connection:
        cursor = connection.cursor()
        try:
            cursor.execute(
                """
                UPDATE invoices
                SET
                    invoice_number = ?,
                    client_name = ?,
                    client_email = ?,
                    client_address = ?,
                    issue_date = ?,
                    due_date = ?,
                    status = ?,
                    tax_rate = ?,
                    subtotal = ?,
                    tax = ?,
                    total_amount = ?,
                    currency = ?,
                    language = ?,
                    notes = ?,
                    terms = ?,
                    updated_at = CURRENT_TIMESTAMP
                WHERE id = ?
                """,
                (
                    invoice.invoice_number.strip(),
                    invoice.client_name.strip(),
                    invoice.client_email.strip(),
                    invoice.client_address.strip(),
                    _format_date(invoice.issue_date),
                    _format_date(invoice.due_date),
                    invoice.status.strip(),
                    float(invoice.tax_rate),
                    totals.subtotal,
                    totals.tax,
                    totals.total_amount,
                    invoice.currency,
                    invoice.language,
                    invoice.notes.strip(),
                    invoice.terms.strip(),
                    int(invoice_id),
                ),
            )

            cursor.execute("DELETE FROM invoice_items WHERE invoice_id = ?", (int(invoice_id),))
            _insert_items(cursor, int(invoice_id), invoice.items)

            connection.commit()
        except sqlite3.IntegrityError as exc:
            connection.rollback()
            raise exc
        finally:
            cursor.close()


def fetch_invoice(invoice_id: int) -> Optional[Invoice]:
    with create_connection() as connection:
        invoice_row = connection.execute(
            f"""
            SELECT {_INVOICE_COLUMNS}
            FROM invoices
            WHERE id = ?
            LIMIT 1
            """,
            (int(invoice_id),),
        ).fetchone()

        if invoice_row is None:
            return None

        items = _fetch_items(connection, [int(invoice_row["id"])])

    return _row_to_invoice(invoice_row, items.get(int(invoice_row["id"]), []))


def fetch_invoices(limit: Optional[int] = 50) -> List[Invoice]:
    sql = f"""
        SELECT {_INVOICE_COLUMNS}
        FROM invoices
        ORDER BY created_at DESC, id DESC
    """
    params: Tuple[object, ...] = ()
    if limit is not None:
        sql += " LIMIT ?"
        params = (int(limit),)

    with create_connection() as connection:
        rows = connection.execute(sql, params).fetchall()
        items = _fetch_items(connection, [int(row["id"]) for row in rows])

    return [_row_to_invoice(row, items.get(int(row["id"]), [])) for row in rows]


def fetch_highest_invoice_number(
    prefix: str,
    *,
    connection: Optional[sqlite3.Connection] = None,
) -> Optional[str]:
    # Only prefix + digits qualify; longest first so that INV-10000 outranks INV-9999.
    with connection_scope(connection) as active:
        row = active.execute(
            """
            SELECT invoice_number
            FROM invoices
            WHERE invoice_number GLOB ? || '[0-9]*'
              AND SUBSTR(invoice_number, LENGTH(?) + 1) NOT GLOB '*[^0-9]*'
            ORDER BY LENGTH(invoice_number) DESC, invoice_number DESC
            LIMIT 1
            """,
            (prefix, prefix),
        ).fetchone()

    if row is None:
        return None
    return row["invoice_number"]


def update_invoice_status(invoice_id: int, status: str) -> None:
    with create_connection() as connection:
        connection.execute(
            """
            UPDATE invoices
            SET status = ?,
                updated_at = CURRENT_TIMESTAMP
            WHERE id = ?
            """,
            (status.strip(), int(invoice_id)),
        )
        connection.commit()


def delete_invoice(invoice_id: int) -> None:
    with create_connection() as connection:
        connection.execute("DELETE FROM invoices WHERE id = ?", (int(invoice_id),))
        connection.commit()


def _insert_items(cursor: sqlite3.Cursor, invoice_id: int, items: List[InvoiceItem]) -> None:
    cursor.executemany(
        """
        INSERT INTO invoice_items (
            invoice_id,
            item_key,
            description,
            quantity,
            unit_price
        ) VALUES (?, ?, ?, ?, ?)
        """,
        [
            (
                invoice_id,
                item.item_id,
                item.description.strip(),
                float(item.quantity),
                float(item.unit_price),
            )
            for item in items
        ],
    )


def _fetch_items(connection: sqlite3.Connection, invoice_ids: List[int]) -> Dict[int, List[InvoiceItem]]:
    grouped: Dict[int, List[InvoiceItem]] = {}
    if not invoice_ids:
        return grouped

    placeholders = ", ".join("?" for _ in invoice_ids)
    rows = connection.execute(
        f"""
        SELECT invoice_id, item_key, description, quantity, unit_price
        FROM invoice_items
        WHERE invoice_id IN ({placeholders})
        ORDER BY id
        """,
        tuple(invoice_ids),
    ).fetchall()

    for row in rows:
        grouped.setdefault(int(row["invoice_id"]), []).append(
            InvoiceItem(
                description=row["description"] or "",
                quantity=float(row["quantity"]),
                unit_price=float(row["unit_price"]),
                item_id=row["item_key"],
            )
        )
    return grouped


def _row_to_invoice(row: sqlite3.Row, items: List[InvoiceItem]) -> Invoice:
    return Invoice(
        id=int(row["id"]),
        invoice_number=row["invoice_number"],
        client_name=row["client_name"],
        client_email=row["client_email"] or "",
        client_address=row["client_address"] or "",
        issue_date=_parse_date(row["issue_date"]),
        due_date=_parse_date(row["due_date"]),
        status=row["status"],
        items=items,
        tax_rate=float(row["tax_rate"] or 0.0),
        currency=row["currency"],
        language=row["language"],
        notes=row["notes"] or "",
        terms=row["terms"] or "",
        created_at=_parse_timestamp(row["created_at"]),
        updated_at=_parse_timestamp(row["updated_at"]),
    )


def _format_date(value: Optional[date]) -> Optional[str]:
    if value is None:
        return None
    return value.strftime(_DATE_FORMAT)


def _parse_date(raw: Optional[str]) -> Optional[date]:
    if not raw:
        return None
    try:
        return datetime.strptime(raw, _DATE_FORMAT).date()
    except ValueError:
        return None


def _parse_timestamp(raw: Optional[str]) -> Optional[datetime]:
    if not raw:
        return None
    try:
        return datetime.fromisoformat(raw)
    except ValueError:
        try:
            return datetime.strptime(raw, "%Y-%m-%d %H:%M:%S")
        except ValueError:
            return None
