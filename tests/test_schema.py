# tests/test_schema.py
import sqlite3

import pytest

from gst_pos.database import connect, get_connection
from gst_pos.database.schema import (
    ADDED_COLUMNS,
    SCHEMA_VERSION,
    SchemaError,
    column_names,
    ensure_columns,
    init_schema,
)
from gst_pos.database.versioning import Migration, get_current_version, run_migrations, set_current_version

from conftest import make_legacy_db

ALL_TABLES = ("products", "sales", "sale_items", "store_settings", "invoice_counter", "invoice_daily_counter")


def _snapshot(con):
    cols = {t: [r[1] for r in con.execute(f"PRAGMA table_info({t})")] for t in ALL_TABLES}
    idx = sorted(r[0] for r in con.execute("SELECT name FROM sqlite_master WHERE type='index'"))
    counts = {t: con.execute(f"SELECT COUNT(*) FROM {t}").fetchone()[0] for t in ALL_TABLES}
    return cols, idx, counts


def test_fresh_file_gets_every_table_and_counter_rows(tmp_path, clock):
    con = connect(tmp_path / "fresh.db")
    try:
        assert init_schema(con, today=clock().date()) == SCHEMA_VERSION
        names = {r[0] for r in con.execute("SELECT name FROM sqlite_master WHERE type='table'")}
        assert set(ALL_TABLES) <= names
        assert con.execute("SELECT last_number FROM invoice_counter").fetchall()[0][0] == 0
        row = con.execute("SELECT last_reset_date, current_daily_number FROM invoice_daily_counter").fetchone()
        assert tuple(row) == ("2025-07-28", 0)
    finally:
        con.close()


def test_three_runs_change_nothing(conn, clock):
    conn.execute("INSERT INTO products(name, price, stock) VALUES ('Tea', 10, 1)")
    conn.execute("INSERT INTO sales(total, timestamp) VALUES (10, '2025-07-28T09:00:00')")
    conn.commit()
    first = _snapshot(conn)

    for _ in range(3):
        assert init_schema(conn, today=clock().date()) == SCHEMA_VERSION

    cols, idx, counts = _snapshot(conn)
    assert (cols, idx, counts) == first
    for t, names in cols.items():
        assert len(names) == len(set(names)), t


def test_legacy_file_is_upgraded_in_place(tmp_path, clock):
    path = make_legacy_db(tmp_path / "old.db", products=2, sales=1)
    con = connect(path)
    try:
        init_schema(con, today=clock().date())
        for table, added in ADDED_COLUMNS.items():
            have = column_names(con, table)
            assert {name for name, _ in added} <= have, table
        assert con.execute("SELECT COUNT(*) FROM products").fetchone()[0] == 2
        assert con.execute("SELECT COUNT(*) FROM sales").fetchone()[0] == 1
        assert get_current_version(con) == SCHEMA_VERSION
    finally:
        con.close()


def test_blank_codes_become_null(tmp_path, clock):
    path = make_legacy_db(tmp_path / "old.db")
    raw = sqlite3.connect(str(path))
    raw.execute("ALTER TABLE products ADD COLUMN barcode_value TEXT")
    raw.execute("ALTER TABLE products ADD COLUMN product_id TEXT")
    raw.executemany(
        "INSERT INTO products(name, price, stock, barcode_value, product_id) VALUES (?, 1, 0, ?, ?)",
        [("A", "", " "), ("B", "", "P-2"), ("C", "GRX0001ZZ", "")],
    )
    raw.commit()
    raw.close()

    con = connect(path)
    try:
        init_schema(con, today=clock().date())
        rows = con.execute("SELECT name, barcode_value, product_id FROM products ORDER BY id").fetchall()
        assert [tuple(r) for r in rows] == [("A", None, None), ("B", None, "P-2"), ("C", "GRX0001ZZ", None)]
    finally:
        con.close()


def test_ensure_columns_reports_what_it_added(tmp_path):
    con = sqlite3.connect(str(tmp_path / "x.db"))
    try:
        con.execute("CREATE TABLE sales (id INTEGER PRIMARY KEY, total REAL NOT NULL, timestamp TEXT NOT NULL)")
        assert ensure_columns(con, "sales") == [n for n, _ in ADDED_COLUMNS["sales"]]
        assert ensure_columns(con, "sales") == []
    finally:
        con.close()


def test_migrations_run_once_in_order(conn):
    seen = []
    steps = [
        Migration(SCHEMA_VERSION + 2, "second", lambda c: seen.append("second")),
        Migration(SCHEMA_VERSION + 1, "first", lambda c: seen.append("first")),
    ]
    with conn:
        assert run_migrations(conn, steps) == SCHEMA_VERSION + 2
    with conn:
        assert run_migrations(conn, steps) == SCHEMA_VERSION + 2
    assert seen == ["first", "second"]


def test_version_never_moves_backwards(conn):
    with conn:
        set_current_version(conn, 1)
    assert get_current_version(conn) == SCHEMA_VERSION


def test_failure_raises_schema_error(tmp_path, monkeypatch):
    import gst_pos.database.schema as schema

    monkeypatch.setattr(schema, "INDEXES", ("CREATE INDEX broken ON no_such_table(x)",))
    con = connect(tmp_path / "bad.db")
    try:
        with pytest.raises(SchemaError):
            schema.init_schema(con)
        names = {r[0] for r in con.execute("SELECT name FROM sqlite_master WHERE type='table'")}
        assert "products" not in names
    finally:
        con.close()


def test_get_connection_closes_on_schema_error(tmp_path, monkeypatch):
    import gst_pos.database as database

    def fail(conn, today=None):
        raise SchemaError("nope")

    monkeypatch.setattr(database, "init_schema", fail)
    with pytest.raises(SchemaError):
        database.get_connection(tmp_path / "x.db")


def test_get_connection_applies_schema(tmp_path):
    con = get_connection(tmp_path / "y.db")
    try:
        assert get_current_version(con) == SCHEMA_VERSION
        assert con.execute("PRAGMA foreign_keys").fetchone()[0] == 1
    finally:
        con.close()
