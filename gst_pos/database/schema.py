"""
gst_pos/database/schema.py

Idempotent schema manager. init_schema(conn) runs on every process start and
brings any earlier revision of the POS database up to the current layout in
a single IMMEDIATE transaction:

  1. CREATE TABLE IF NOT EXISTS for every table.
  2. ADD COLUMN for columns introduced after a table's first revision,
     each checked with PRAGMA table_info first. Columns are never dropped
     or renamed.
  3. INSERT OR IGNORE the singleton counter rows.
  4. CREATE INDEX IF NOT EXISTS for secondary indexes.
  5. Versioned data migrations (see versioning.py).

Older files that gain product_id/barcode_value through ADD COLUMN do not get
the UNIQUE constraints a fresh file has; SQLite cannot add them in place.
"""

from __future__ import annotations

import sqlite3
from datetime import date
from typing import Dict, List, Optional, Tuple

from ..utils.loggers import get_logger
from .tx import immediate_tx
from .versioning import Migration, run_migrations

_log = get_logger(__name__)


class SchemaError(RuntimeError):
    """The schema transaction could not commit; the application must not start."""


TABLES: Tuple[str, ...] = (
    """
    CREATE TABLE IF NOT EXISTS products (
        id            INTEGER PRIMARY KEY AUTOINCREMENT,
        product_id    TEXT UNIQUE,
        name          TEXT NOT NULL,
        price         REAL NOT NULL,
        stock         INTEGER NOT NULL DEFAULT 0,
        category      TEXT,
        sub_category  TEXT,
        brand         TEXT,
        model_name    TEXT,
        unit          TEXT,
        hsn_code      TEXT,
        gst_percent   REAL,
        barcode_value TEXT UNIQUE
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS sales (
        id             INTEGER PRIMARY KEY AUTOINCREMENT,
        total          REAL NOT NULL,
        timestamp      TEXT NOT NULL,
        invoice_no     TEXT,
        payment_method TEXT,
        customer_name  TEXT,
        customer_phone TEXT,
        customer_gstin TEXT
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS sale_items (
        id            INTEGER PRIMARY KEY AUTOINCREMENT,
        sale_id       INTEGER NOT NULL,
        product_id    INTEGER,
        name          TEXT NOT NULL,
        price         REAL NOT NULL,
        quantity      INTEGER NOT NULL,
        hsn_code      TEXT,
        gst_percent   REAL,
        taxable_value REAL,
        gst_amount    REAL,
        cgst          REAL,
        sgst          REAL,
        FOREIGN KEY (sale_id) REFERENCES sales(id) DEFERRABLE INITIALLY DEFERRED
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS store_settings (
        id                 INTEGER PRIMARY KEY CHECK (id = 1),
        store_name         TEXT,
        store_address      TEXT,
        store_subtitle     TEXT,
        store_phone        TEXT,
        store_gstin        TEXT,
        store_footer       TEXT,
        store_fssai        TEXT,
        schema_version     INTEGER NOT NULL DEFAULT 0,
        label_printer_name TEXT,
        category_map       TEXT
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS invoice_counter (
        id          INTEGER PRIMARY KEY CHECK (id = 1),
        last_number INTEGER NOT NULL DEFAULT 0
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS invoice_daily_counter (
        id                   INTEGER PRIMARY KEY CHECK (id = 1),
        last_reset_date      TEXT NOT NULL,
        current_daily_number INTEGER NOT NULL DEFAULT 0
    )
    """,
)

# Columns that later revisions added, per table, in the order they appeared.
# ADD COLUMN cannot carry UNIQUE or a NOT NULL without default.
ADDED_COLUMNS: Dict[str, List[Tuple[str, str]]] = {
    "products": [
        ("category", "TEXT"),
        ("hsn_code", "TEXT"),
        ("gst_percent", "REAL"),
        ("product_id", "TEXT"),
        ("sub_category", "TEXT"),
        ("brand", "TEXT"),
        ("model_name", "TEXT"),
        ("unit", "TEXT"),
        ("barcode_value", "TEXT"),
    ],
    "sales": [
        ("invoice_no", "TEXT"),
        ("payment_method", "TEXT"),
        ("customer_name", "TEXT"),
        ("customer_phone", "TEXT"),
        ("customer_gstin", "TEXT"),
    ],
    "sale_items": [
        ("product_id", "INTEGER"),
        ("hsn_code", "TEXT"),
        ("gst_percent", "REAL"),
        ("taxable_value", "REAL"),
        ("gst_amount", "REAL"),
        ("cgst", "REAL"),
        ("sgst", "REAL"),
    ],
    "store_settings": [
        ("store_subtitle", "TEXT"),
        ("store_phone", "TEXT"),
        ("store_gstin", "TEXT"),
        ("store_footer", "TEXT"),
        ("store_fssai", "TEXT"),
        ("schema_version", "INTEGER NOT NULL DEFAULT 0"),
        ("label_printer_name", "TEXT"),
        ("category_map", "TEXT"),
    ],
}

INDEXES: Tuple[str, ...] = (
    "CREATE INDEX IF NOT EXISTS idx_products_category ON products(category)",
    "CREATE INDEX IF NOT EXISTS idx_products_sub_category ON products(sub_category)",
    "CREATE INDEX IF NOT EXISTS idx_products_brand ON products(brand)",
    "CREATE INDEX IF NOT EXISTS idx_products_id_desc ON products(id DESC)",
    "CREATE INDEX IF NOT EXISTS idx_sale_items_sale_id ON sale_items(sale_id)",
    "CREATE INDEX IF NOT EXISTS idx_sales_timestamp ON sales(timestamp)",
)


# ---------------------------------------------------------------------------
# Column introspection
# ---------------------------------------------------------------------------

def column_names(conn: sqlite3.Connection, table: str) -> set[str]:
    rows = conn.execute(f"PRAGMA table_info({table});").fetchall()
    return {row[1] for row in rows}  # row[1] = name


def ensure_columns(conn: sqlite3.Connection, table: str) -> list[str]:
    """
    Add any ADDED_COLUMNS entry the on-disk table lacks. Returns the names
    added (empty when the table is current). Caller owns the transaction.
    """
    existing = column_names(conn, table)
    added: list[str] = []
    for name, decl in ADDED_COLUMNS.get(table, []):
        if name in existing:
            continue
        conn.execute(f"ALTER TABLE {table} ADD COLUMN {name} {decl};")
        existing.add(name)
        added.append(name)
        _log.info("Added column %s.%s", table, name)
    return added


# ---------------------------------------------------------------------------
# Data migrations
# ---------------------------------------------------------------------------

def _baseline(conn: sqlite3.Connection) -> None:
    """Marks files that have been through the current schema manager once."""


def _blank_barcodes_to_null(conn: sqlite3.Connection) -> None:
    # '' collides under UNIQUE(barcode_value); NULLs do not
    conn.execute("UPDATE products SET barcode_value = NULL WHERE TRIM(barcode_value) = ''")
    conn.execute("UPDATE products SET product_id = NULL WHERE TRIM(product_id) = ''")


MIGRATIONS: Tuple[Migration, ...] = (
    Migration(1, "baseline", _baseline),
    Migration(2, "blank product codes to NULL", _blank_barcodes_to_null),
)

SCHEMA_VERSION = max(m.version for m in MIGRATIONS)


# ---------------------------------------------------------------------------
# Entry point
# ---------------------------------------------------------------------------

def init_schema(conn: sqlite3.Connection, today: Optional[date] = None) -> int:
    """
    Create/upgrade the schema. Safe to call on an empty file, on any older
    revision, and on a current file. Returns the stored schema version.

    Raises SchemaError if the transaction cannot commit.
    """
    seed_date = (today or date.today()).isoformat()
    try:
        with immediate_tx(conn):
            for ddl in TABLES:
                conn.execute(ddl)

            for table in ADDED_COLUMNS:
                ensure_columns(conn, table)

            conn.execute("INSERT OR IGNORE INTO invoice_counter(id, last_number) VALUES (1, 0)")
            conn.execute(
                "INSERT OR IGNORE INTO invoice_daily_counter(id, last_reset_date, current_daily_number) "
                "VALUES (1, ?, 0)",
                (seed_date,),
            )

            for ddl in INDEXES:
                conn.execute(ddl)

            version = run_migrations(conn, MIGRATIONS)
    except sqlite3.Error as exc:
        _log.error("Schema initialisation failed: %s", exc)
        raise SchemaError(f"Could not initialise the database schema: {exc}") from exc

    _log.info("Schema ready (version %d)", version)
    return version
