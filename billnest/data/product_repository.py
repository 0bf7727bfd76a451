from __future__ import annotations

import sqlite3
from typing import List, Optional

from ..models.invoice_models import Product
from .database import create_connection


def list_products() -> List[Product]:
    with create_connection() as connection:
        rows = connection.execute(
            """
            SELECT id, name, description, price, sku
            FROM products
            ORDER BY name COLLATE NOCASE ASC
            """
        ).fetchall()

    return [_row_to_product(row) for row in rows]


def get_product(product_id: int) -> Optional[Product]:
    with create_connection() as connection:
        row = connection.execute(
            """
            SELECT id, name, description, price, sku
            FROM products
            WHERE id = ?
            """,
            (int(product_id),),
        ).fetchone()

    if row is None:
        return None
    return _row_to_product(row)


def save_product(product: Product) -> Product:
    name = product.name.strip()
    if not name:
        raise ValueError("Product name is required")

    with create_connection() as connection:
        cursor = connection.cursor()
        try:
            if product.id is None:
                cursor.execute(
                    """
                    INSERT INTO products (name, description, price, sku)
                    VALUES (?, ?, ?, ?)
                    """,
                    (name, product.description.strip(), float(product.price), product.sku.strip().upper()),
                )
                product_id = int(cursor.lastrowid)
            else:
                cursor.execute(
                    """
                    UPDATE products
                    SET name = ?, description = ?, price = ?, sku = ?
                    WHERE id = ?
                    """,
                    (
                        name,
                        product.description.strip(),
                        float(product.price),
                        product.sku.strip().upper(),
                        int(product.id),
                    ),
                )
                product_id = int(product.id)
            connection.commit()
        finally:
            cursor.close()

    saved = get_product(product_id)
    if saved is None:
        raise ValueError("Product not found")
    return saved


def delete_product(product_id: int) -> None:
    with create_connection() as connection:
        connection.execute("DELETE FROM products WHERE id = ?", (int(product_id),))
        connection.commit()


def _row_to_product(row: sqlite3.Row) -> Product:
    return Product(
        id=int(row["id"]),
        name=row["name"],
        description=row["description"] or "",
        price=float(row["price"] or 0.0),
        sku=row["sku"] or "",
    )
