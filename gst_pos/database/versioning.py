"""
Schema version bookkeeping.

The stored version lives in store_settings.schema_version (row id=1). A data
migration numbered N runs only while the stored version is below N, after
which the stored version is advanced to N. Versions never move backwards.
"""

from __future__ import annotations

import sqlite3
from dataclasses import dataclass
from typing import Callable, Iterable

from ..utils.loggers import get_logger

_log = get_logger(__name__)


@dataclass(frozen=True)
class Migration:
    version: int
    name: str
    apply: Callable[[sqlite3.Connection], None]


def get_current_version(conn: sqlite3.Connection) -> int:
    row = conn.execute("SELECT schema_version FROM store_settings WHERE id=1;").fetchone()
    if row is None or row[0] is None:
        return 0
    return int(row[0])


def set_current_version(conn: sqlite3.Connection, version: int) -> None:
    """Caller owns the transaction."""
    conn.execute(
        """
        INSERT INTO store_settings(id, schema_version) VALUES (1, ?)
        ON CONFLICT(id) DO UPDATE SET schema_version = MAX(COALESCE(schema_version, 0), excluded.schema_version)
        """,
        (int(version),),
    )


def run_migrations(conn: sqlite3.Connection, migrations: Iterable[Migration]) -> int:
    """
    Apply pending migrations in ascending version order and return the
    resulting stored version. Must run inside the schema transaction.
    """
    current = get_current_version(conn)
    for m in sorted(migrations, key=lambda m: m.version):
        if m.version <= current:
            continue
        _log.info("Applying data migration %d (%s)", m.version, m.name)
        m.apply(conn)
        set_current_version(conn, m.version)
        current = m.version
    return current
