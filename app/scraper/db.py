"""SQLite helpers for the product stock scraper.

This module defines the database path, connection helper, schema
initialisation, and the single-statement upsert that keeps one row per
product URL. The read API and the scrape loop share these helpers; row-level
atomicity comes from SQLite itself rather than application locks.
"""
from __future__ import annotations

import sqlite3
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, Iterable, List, Optional

from . import config
from .error_codes import ErrorCode, ScraperError
from .models import Product

DB_PATH: Path = config.DB_PATH


class PersistenceError(ScraperError):
    error_code = ErrorCode.PERSISTENCE


def get_connection() -> sqlite3.Connection:
    """Return a SQLite connection to the project database.

    The parent directory is created if missing and ``check_same_thread`` is
    disabled so the API thread can hold its own connection. WAL mode lets
    readers proceed while the scrape loop writes.
    """

    DB_PATH.parent.mkdir(parents=True, exist_ok=True)
    conn = sqlite3.connect(DB_PATH, check_same_thread=False, timeout=10)
    conn.row_factory = sqlite3.Row
    conn.execute("PRAGMA journal_mode=WAL")
    return conn


def initialize_schema() -> None:
    """Create the products table if it does not yet exist.

    Safe to call multiple times; each statement uses ``IF NOT EXISTS``.
    """

    statements: Iterable[str] = (
        """
        CREATE TABLE IF NOT EXISTS products (
            id          INTEGER PRIMARY KEY AUTOINCREMENT,
            url         TEXT NOT NULL UNIQUE,
            name        TEXT NOT NULL DEFAULT '',
            in_stock    INTEGER NOT NULL,
            price       REAL NOT NULL DEFAULT 0,
            image_url   TEXT NOT NULL DEFAULT '',
            updated_at  TEXT NOT NULL
        );
        """,
    )

    conn = get_connection()
    try:
        with conn:
            for statement in statements:
                conn.execute(statement)
    finally:
        conn.close()


def _row_to_product(row: sqlite3.Row) -> Product:
    return Product(
        id=int(row["id"]),
        url=row["url"],
        name=row["name"],
        in_stock=bool(row["in_stock"]),
        price=float(row["price"]),
        image_url=row["image_url"],
        updated_at=datetime.fromisoformat(row["updated_at"]),
    )


def upsert_product(product: Product) -> int:
    """Insert or replace the row for ``product.url`` and return its id.

    A conflicting ``url`` overwrites every mutable column and ``updated_at``
    in one statement; the ``id`` assigned on first insert never changes.
    """

    try:
        conn = get_connection()
    except sqlite3.Error as exc:
        raise PersistenceError(f"Unable to open database: {exc}") from exc

    try:
        with conn:
            conn.execute(
                """
                INSERT INTO products (url, name, in_stock, price, image_url, updated_at)
                VALUES (?, ?, ?, ?, ?, ?)
                ON CONFLICT(url) DO UPDATE SET
                    name = excluded.name,
                    in_stock = excluded.in_stock,
                    price = excluded.price,
                    image_url = excluded.image_url,
                    updated_at = excluded.updated_at
                """,
                (
                    product.url,
                    product.name,
                    1 if product.in_stock else 0,
                    product.price,
                    product.image_url,
                    product.updated_at.isoformat(),
                ),
            )
            row = conn.execute(
                "SELECT id FROM products WHERE url = ?", (product.url,)
            ).fetchone()
    except sqlite3.Error as exc:
        raise PersistenceError(f"Upsert failed for {product.url}: {exc}") from exc
    finally:
        conn.close()

    product_id = int(row["id"])
    product.id = product_id
    return product_id


def get_product_by_url(url: str) -> Optional[Product]:
    """Return the stored product for ``url``, if any."""

    try:
        conn = get_connection()
        try:
            row = conn.execute(
                "SELECT * FROM products WHERE url = ? LIMIT 1", (url,)
            ).fetchone()
        finally:
            conn.close()
    except sqlite3.Error as exc:
        raise PersistenceError(f"Lookup failed for {url}: {exc}") from exc
    return _row_to_product(row) if row else None


def list_products() -> List[Product]:
    """Return every stored product ordered by id."""

    try:
        conn = get_connection()
        try:
            rows = conn.execute("SELECT * FROM products ORDER BY id").fetchall()
        finally:
            conn.close()
    except sqlite3.Error as exc:
        raise PersistenceError(f"Listing products failed: {exc}") from exc
    return [_row_to_product(row) for row in rows]


def product_stats() -> Dict[str, Any]:
    """Return row counts and the newest ``updated_at`` for the products table."""

    try:
        conn = get_connection()
        try:
            row = conn.execute(
                "SELECT COUNT(*), COALESCE(SUM(in_stock), 0), MAX(updated_at) FROM products"
            ).fetchone()
        finally:
            conn.close()
    except sqlite3.Error as exc:
        raise PersistenceError(f"Reading product stats failed: {exc}") from exc
    return {"products": int(row[0]), "in_stock": int(row[1]), "last_updated_at": row[2]}


__all__ = [
    "DB_PATH",
    "PersistenceError",
    "get_connection",
    "initialize_schema",
    "upsert_product",
    "get_product_by_url",
    "list_products",
    "product_stats",
]
