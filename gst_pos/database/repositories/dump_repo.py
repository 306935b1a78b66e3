"""
Full data dump: every row of the business tables as plain dicts, and the
inverse "delete everything, then bulk insert" restore in one transaction.

Columns are matched by name against the live table, so a dump taken from an
older schema revision restores cleanly (missing columns stay NULL/default;
unknown keys are ignored).
"""

from __future__ import annotations

import sqlite3
from typing import Any, Mapping

from ...utils.loggers import get_logger
from ..schema import column_names
from ..tx import immediate_tx
from ..versioning import get_current_version, set_current_version
from .errors import ValidationError
from .results import Done, Failure, WriteResult

_log = get_logger(__name__)

DUMP_TABLES = ("products", "sales", "sale_items", "store_settings")

# children first when deleting, parents first when inserting
_DELETE_ORDER = ("sale_items", "sales", "products", "store_settings")


class DumpRepo:
    def __init__(self, conn: sqlite3.Connection):
        conn.row_factory = sqlite3.Row
        self.conn = conn

    def export_full_dump(self) -> dict[str, list[dict]]:
        out: dict[str, list[dict]] = {}
        for table in DUMP_TABLES:
            rows = self.conn.execute(f"SELECT * FROM {table} ORDER BY id").fetchall()
            out[table] = [dict(r) for r in rows]
        return out

    @staticmethod
    def _table_rows(dump: Mapping[str, Any], table: str) -> list[Mapping[str, Any]]:
        if table not in dump:
            raise ValidationError(f"Dump is missing '{table}'.")
        rows = dump[table]
        if rows is None:
            return []
        if isinstance(rows, Mapping):  # a single settings object
            rows = [rows]
        if not isinstance(rows, (list, tuple)) or not all(isinstance(r, Mapping) for r in rows):
            raise ValidationError(f"'{table}' must be a list of objects.")
        return list(rows)

    def _insert_rows(self, table: str, rows: list[Mapping[str, Any]]) -> int:
        live = column_names(self.conn, table)
        for r in rows:
            cols = [c for c in r.keys() if c in live]
            if not cols:
                continue
            self.conn.execute(
                f"INSERT INTO {table} ({', '.join(cols)}) VALUES ({', '.join('?' for _ in cols)})",
                [r[c] for c in cols],
            )
        return len(rows)

    def import_full_dump(self, dump: Mapping[str, Any]) -> WriteResult:
        """
        Replace products, sales, sale_items and store_settings with the dump's
        rows. The stored schema version is kept. All-or-nothing.
        """
        try:
            if not isinstance(dump, Mapping):
                raise ValidationError("Dump must be an object.")
            tables = {t: self._table_rows(dump, t) for t in DUMP_TABLES}
        except ValidationError as e:
            return Failure(e.message, kind=e.kind)

        try:
            with immediate_tx(self.conn):
                version = get_current_version(self.conn)
                for table in _DELETE_ORDER:
                    self.conn.execute(f"DELETE FROM {table}")
                counts = {t: self._insert_rows(t, tables[t]) for t in DUMP_TABLES}
                set_current_version(self.conn, version)
                self.conn.execute(
                    "UPDATE store_settings SET schema_version = ? WHERE id = 1", (version,)
                )
        except sqlite3.Error as e:
            _log.error("Dump import failed, rolled back: %s", e)
            return Failure(f"Error importing data: {e}", kind="storage")

        _log.info("Imported dump: %s", ", ".join(f"{t}={n}" for t, n in counts.items()))
        return Done(message="Data imported")
