# gst_pos/tests/conftest.py
# ---------------------------------------------------------------------
# Ground rules:
# - Every test gets its own SQLite file under tmp_path (no shared DB)
# - The working directory is tmp_path, so ./pos.db and ./logs stay local
# - Time comes from a FakeClock; nothing depends on the real date
# - conn.row_factory = sqlite3.Row, PRAGMA foreign_keys=ON (via connect())
# - No QApplication: Qt lookups are monkeypatched where they would happen
# ---------------------------------------------------------------------

from __future__ import annotations

import sqlite3
from datetime import datetime, timedelta
from pathlib import Path

import pytest

from gst_pos.context import PosContext
from gst_pos.database import connect
from gst_pos.database.db_path import DbPathResolver
from gst_pos.database.schema import init_schema


class FakeClock:
    """Callable returning a settable 'now'."""

    def __init__(self, start: datetime):
        self.current = start

    def __call__(self) -> datetime:
        return self.current

    def advance(self, **kwargs) -> datetime:
        self.current = self.current + timedelta(**kwargs)
        return self.current


@pytest.fixture(autouse=True)
def _isolated_cwd(tmp_path, monkeypatch):
    monkeypatch.chdir(tmp_path)
    monkeypatch.delenv("POS_DB_PATH", raising=False)


@pytest.fixture()
def clock() -> FakeClock:
    return FakeClock(datetime(2025, 7, 28, 10, 30, 0))


@pytest.fixture()
def db_path(tmp_path) -> Path:
    return tmp_path / "data" / "pos.db"


@pytest.fixture()
def conn(db_path, clock):
    con = connect(db_path)
    init_schema(con, today=clock().date())
    try:
        yield con
    finally:
        con.close()


@pytest.fixture()
def resolver(tmp_path) -> DbPathResolver:
    return DbPathResolver(legacy_dir=tmp_path / "legacy", app_data_dir=tmp_path / "appdata", env={})


@pytest.fixture()
def ctx(db_path, clock, resolver):
    pos = PosContext.open(db_path, now=clock, resolver=resolver)
    try:
        yield pos
    finally:
        pos.close()


# ---------- Small builders ----------

def make_legacy_db(path: Path, products: int = 0, sales: int = 0) -> Path:
    """
    A database in the oldest layout: no GST columns, no settings extras,
    no counters. Optionally filled with `products`/`sales` rows.
    """
    path.parent.mkdir(parents=True, exist_ok=True)
    con = sqlite3.connect(str(path))
    try:
        con.executescript(
            """
            CREATE TABLE products (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                name TEXT NOT NULL,
                price REAL NOT NULL,
                stock INTEGER NOT NULL DEFAULT 0
            );
            CREATE TABLE sales (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                total REAL NOT NULL,
                timestamp TEXT NOT NULL
            );
            CREATE TABLE sale_items (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                sale_id INTEGER NOT NULL,
                name TEXT NOT NULL,
                price REAL NOT NULL,
                quantity INTEGER NOT NULL
            );
            CREATE TABLE store_settings (
                id INTEGER PRIMARY KEY CHECK (id = 1),
                store_name TEXT,
                store_address TEXT
            );
            """
        )
        for n in range(products):
            con.execute("INSERT INTO products(name, price, stock) VALUES (?, ?, ?)", (f"Item {n}", 10.0 + n, 5))
        for n in range(sales):
            con.execute("INSERT INTO sales(total, timestamp) VALUES (?, ?)", (100.0, f"2024-01-{n + 1:02d}T09:00:00"))
        con.commit()
    finally:
        con.close()
    return path


def product_payload(**overrides) -> dict:
    base = {
        "name": "Basmati Rice 1kg",
        "price": 118.0,
        "stock": 20,
        "category": "Grocery",
        "sub_category": "Rice",
        "brand": "Daawat",
        "model_name": "BR-1KG",
        "unit": "pcs",
        "hsn_code": "1006",
        "gst_percent": 18,
    }
    base.update(overrides)
    return base


def sale_payload(*items: dict, **header) -> dict:
    payload = {"items": list(items) or [{"name": "Pen", "price": 1180, "quantity": 1, "gst_percent": 18}]}
    payload.update(header)
    return payload
