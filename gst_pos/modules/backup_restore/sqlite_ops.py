"""
gst_pos/modules/backup_restore/sqlite_ops.py

Purpose
-------
SQLite-aware helpers for snapshotting the POS database and deciding whether
a file is fit to be restored. Works with WAL and non-WAL files.

Public Interface
----------------
- get_db_size_bytes(path) -> int
- create_consistent_snapshot(src_path, dest_path) -> None
- quick_check(db_path) -> bool
- has_pos_tables(db_path) -> bool
- orphaned_sale_items(db_path) -> int

Notes
-----
- Prefers the SQLite Online Backup API; falls back to VACUUM INTO.
- Never copies -wal/-shm files. The snapshot is a single standalone file.
"""

from __future__ import annotations

import sqlite3
from pathlib import Path

from ...constants import CORE_TABLES

__all__ = [
    "get_db_size_bytes",
    "create_consistent_snapshot",
    "quick_check",
    "has_pos_tables",
    "orphaned_sale_items",
]


def get_db_size_bytes(path: str) -> int:
    p = Path(path)
    return p.stat().st_size if p.exists() else 0


def _connect_ro(db_path: str) -> sqlite3.Connection:
    uri = f"file:{Path(db_path).as_posix()}?mode=ro"
    return sqlite3.connect(uri, uri=True, isolation_level=None)


def _table_names(con: sqlite3.Connection) -> set[str]:
    return {r[0] for r in con.execute("SELECT name FROM sqlite_master WHERE type='table'")}


# ----------------------------
# Snapshot
# ----------------------------

def create_consistent_snapshot(src_path: str, dest_path: str) -> None:
    """
    Copy `src_path` to `dest_path` as one self-contained file, including
    anything still sitting in the WAL.

    Raises RuntimeError if neither the backup API nor VACUUM INTO works.
    """
    Path(dest_path).parent.mkdir(parents=True, exist_ok=True)
    try:
        _backup_api(src_path, dest_path)
    except sqlite3.Error:
        Path(dest_path).unlink(missing_ok=True)
        _vacuum_into(src_path, dest_path)


def _backup_api(src_path: str, dest_path: str) -> None:
    src = sqlite3.connect(src_path, isolation_level=None)
    try:
        dst = sqlite3.connect(dest_path, isolation_level=None)
        try:
            src.backup(dst, pages=1024)
        finally:
            dst.close()
    finally:
        src.close()


def _vacuum_into(src_path: str, dest_path: str) -> None:
    """VACUUM INTO (SQLite 3.27+). Holds a short lock on the source."""
    con = sqlite3.connect(src_path, isolation_level=None)
    try:
        con.execute("VACUUM INTO ?;", (dest_path,))
    except sqlite3.OperationalError as exc:
        raise RuntimeError(
            "Could not snapshot the database: the Online Backup API failed and "
            "VACUUM INTO is not supported by the linked SQLite library."
        ) from exc
    finally:
        con.close()


# ----------------------------
# Restore checks
# ----------------------------

def quick_check(db_path: str) -> bool:
    """PRAGMA quick_check; True iff the result is exactly 'ok'."""
    p = Path(db_path)
    if not p.is_file():
        return False
    try:
        con = _connect_ro(str(p))
        try:
            row = con.execute("PRAGMA quick_check;").fetchone()
        finally:
            con.close()
    except sqlite3.Error:
        return False
    return bool(row and isinstance(row[0], str) and row[0].lower() == "ok")


def has_pos_tables(db_path: str) -> bool:
    """True if the file contains the core POS tables (products, sales)."""
    try:
        con = _connect_ro(db_path)
        try:
            names = _table_names(con)
        finally:
            con.close()
    except sqlite3.Error:
        return False
    return all(t in names for t in CORE_TABLES)


def orphaned_sale_items(db_path: str) -> int:
    """
    Count sale_items rows whose sale header is gone. Legacy files declare no
    foreign keys, so PRAGMA foreign_key_check would not see these.
    """
    con = _connect_ro(db_path)
    try:
        if "sale_items" not in _table_names(con):
            return 0
        row = con.execute(
            """
            SELECT COUNT(*) FROM sale_items si
            LEFT JOIN sales s ON s.id = si.sale_id
            WHERE s.id IS NULL
            """
        ).fetchone()
    finally:
        con.close()
    return int(row[0] or 0)
