# gst_pos/database/__init__.py
from __future__ import annotations

from pathlib import Path
import sqlite3
from typing import Optional

from .db_path import resolve_db_path
from .schema import SchemaError, init_schema


def connect(db_path: str | Path) -> sqlite3.Connection:
    """
    Returns a sqlite3.Connection with:
      - WAL mode
      - foreign_keys ON
      - row_factory = sqlite3.Row (so rows behave like dicts and tuples)
    Does not touch the schema.
    """
    path = Path(db_path)
    path.parent.mkdir(parents=True, exist_ok=True)
    conn = sqlite3.connect(str(path))
    conn.row_factory = sqlite3.Row
    conn.execute("PRAGMA foreign_keys = ON;")
    conn.execute("PRAGMA journal_mode = WAL;")
    return conn


def get_connection(db_path: Optional[str | Path] = None) -> sqlite3.Connection:
    """
    Open the database of record (resolved when db_path is None) and apply the
    schema idempotently. SchemaError propagates: the caller must not continue.
    """
    conn = connect(db_path or resolve_db_path())
    try:
        init_schema(conn)
    except SchemaError:
        conn.close()
        raise
    return conn


__all__ = [
    "connect",
    "get_connection",
]
