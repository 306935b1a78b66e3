"""
gst_pos/modules/backup_restore/service.py

Purpose
-------
Backup and restore workflows for the POS database.

Public interface
----------------
- BackupService.backup_to(dest_file) -> FileWritten | Failure
- BackupService.restore_from(snapshot, db_manager=None) -> Done | Failure
- BackupService.write_dump(dest_dir) -> FileWritten | Failure
- BackupService.read_dump(path) -> dict
- BackupService.load_dump(path) -> Done | Failure

`db_manager` is any object exposing close_all() and reopen(); restore closes
every connection before swapping files and reopens afterwards (which runs
the schema manager, so an older snapshot is upgraded on the way in).

Steps are reported through the JSON-lines event logger.
"""

from __future__ import annotations

import json
import logging
import sqlite3
from datetime import datetime
from pathlib import Path
from typing import Any, Callable, Mapping, Optional

from ...constants import DUMP_FILE_PREFIX, SNAPSHOT_SUFFIX
from ...database.repositories.errors import ValidationError
from ...database.repositories.results import Done, Failure, FileResult, FileWritten, WriteResult
from ...utils.loggers import get_event_logger, log_event
from . import fsops as _fsops
from . import sqlite_ops as _sqlite_ops
from .validators import (
    validate_backup_destination,
    validate_backup_source,
    validate_dump,
    validate_restore_source,
)

DUMP_FORMAT = "gst-pos-dump"
DUMP_VERSION = 1


def _fmt_err(msg: str, exc: BaseException | None = None) -> str:
    if exc is None:
        return msg
    return f"{msg} {exc}"


class BackupService:
    """
    Snapshot/restore of the database file plus JSON dumps of its data.
    Collaborators are injectable for tests.
    """

    def __init__(
        self,
        db_path: str | Path,
        *,
        export_dump: Optional[Callable[[], Mapping[str, Any]]] = None,
        import_dump: Optional[Callable[[Mapping[str, Any]], WriteResult]] = None,
        sqlite_ops=None,
        fsops=None,
        logger: Optional[logging.Logger] = None,
        now: Optional[Callable[[], datetime]] = None,
    ) -> None:
        self.db_path = Path(db_path)
        self._export_dump = export_dump
        self._import_dump = import_dump
        self._sqlite_ops = sqlite_ops or _sqlite_ops
        self._fsops = fsops or _fsops
        self._log = logger or get_event_logger()
        self._now = now or datetime.now

    def _stamp(self) -> str:
        return self._now().strftime("%Y%m%d-%H%M%S")

    # ----------------------------
    # Snapshot backup
    # ----------------------------
    def backup_to(self, dest_file: str | Path) -> FileResult:
        dest = Path(dest_file)
        if not dest.suffix:
            dest = dest.with_suffix(SNAPSHOT_SUFFIX)
        tmp: Optional[str] = None
        try:
            log_event(self._log, "backup", "preflight", "Checking source and destination",
                      extra={"db": str(self.db_path), "dest": str(dest)})
            validate_backup_source(str(self.db_path))
            if dest.resolve() == self.db_path.resolve():
                raise RuntimeError("Backup destination is the live database file.")
            validate_backup_destination(
                str(dest),
                self._sqlite_ops.get_db_size_bytes(str(self.db_path)),
                self._fsops.get_free_space_bytes(str(dest.parent)),
            )

            tmp = self._fsops.make_temp_file(suffix=SNAPSHOT_SUFFIX, dir=str(dest.parent))
            self._sqlite_ops.create_consistent_snapshot(str(self.db_path), tmp)

            log_event(self._log, "backup", "verify", "Verifying snapshot", extra={"tmp": tmp})
            if not self._sqlite_ops.quick_check(tmp):
                raise RuntimeError("Snapshot integrity check failed (PRAGMA quick_check != 'ok').")

            self._fsops.atomic_move(tmp, str(dest), logger=self._log)
            tmp = None
        except (RuntimeError, OSError, sqlite3.Error) as exc:
            log_event(self._log, "backup", "failed", str(exc), extra={"dest": str(dest)}, level=logging.ERROR)
            return Failure(_fmt_err("Backup failed.", exc), kind="storage")
        finally:
            if tmp:
                Path(tmp).unlink(missing_ok=True)

        log_event(self._log, "backup", "done", "Backup completed", extra={"dest": str(dest)})
        return FileWritten(path=str(dest), message="Backup completed successfully.")

    # ----------------------------
    # Restore
    # ----------------------------
    def restore_from(self, snapshot: str | Path, db_manager=None) -> WriteResult:
        src = Path(snapshot)
        safety_dir: Optional[str] = None
        swapped = False
        try:
            validate_restore_source(str(src))
            if not self._sqlite_ops.quick_check(str(src)):
                raise RuntimeError("Selected backup failed integrity check (PRAGMA quick_check != 'ok').")
            if not self._sqlite_ops.has_pos_tables(str(src)):
                raise RuntimeError("Selected file is not a POS database (products/sales tables missing).")
            orphans = self._sqlite_ops.orphaned_sale_items(str(src))
            if orphans:
                raise RuntimeError(f"Selected backup has {orphans} invoice line(s) without an invoice.")

            # closing checkpoints the WAL, so the safety copy is a single complete file
            if db_manager is not None:
                db_manager.close_all()
            if self.db_path.exists():
                safety_dir = self._fsops.safety_copy_current_db(str(self.db_path), self._stamp(), logger=self._log)

            self._fsops.replace_db_with(str(src), str(self.db_path), logger=self._log)
            swapped = True

            if not self._sqlite_ops.quick_check(str(self.db_path)):
                raise RuntimeError("Restored database failed integrity check (PRAGMA quick_check != 'ok').")
        except (RuntimeError, OSError, sqlite3.Error) as exc:
            log_event(self._log, "restore", "failed", str(exc), extra={"src": str(src)}, level=logging.ERROR)
            if swapped and safety_dir:
                self._rollback(safety_dir)
            if db_manager is not None:
                db_manager.reopen()
            return Failure(_fmt_err("Restore failed.", exc), kind="storage")

        if db_manager is not None:
            db_manager.reopen()
        log_event(self._log, "restore", "done", "Restore completed",
                  extra={"src": str(src), "safety_dir": safety_dir})
        note = f" Previous database saved in {safety_dir}." if safety_dir else ""
        return Done(message="Restore completed successfully." + note)

    def _rollback(self, safety_dir: str) -> None:
        original = Path(safety_dir) / self.db_path.name
        try:
            self._fsops.replace_db_with(str(original), str(self.db_path), logger=self._log)
        except (RuntimeError, OSError) as exc:
            log_event(self._log, "restore", "rollback", f"Rollback failed: {exc}",
                      extra={"safety_dir": safety_dir}, level=logging.CRITICAL)
            return
        log_event(self._log, "restore", "rollback", "Rolled back from safety copy",
                  extra={"safety_dir": safety_dir}, level=logging.WARNING)

    # ----------------------------
    # JSON dumps
    # ----------------------------
    def write_dump(self, dest_dir: str | Path) -> FileResult:
        if self._export_dump is None:
            return Failure("No data source configured for dumps.", kind="storage")
        dest = Path(dest_dir) / f"{DUMP_FILE_PREFIX}-{self._stamp()}.json"
        try:
            self._fsops.ensure_writable_dir(str(dest_dir))
            payload = {
                "format": DUMP_FORMAT,
                "version": DUMP_VERSION,
                "exported_at": self._now().replace(microsecond=0).isoformat(),
                "data": dict(self._export_dump()),
            }
            text = json.dumps(payload, ensure_ascii=False, indent=2, default=str)
            self._fsops.write_text_atomic(str(dest), text, logger=self._log)
        except (RuntimeError, OSError, sqlite3.Error) as exc:
            log_event(self._log, "dump", "failed", str(exc), extra={"dest": str(dest)}, level=logging.ERROR)
            return Failure(_fmt_err("Export failed.", exc), kind="storage")
        log_event(self._log, "dump", "done", "Dump written", extra={"dest": str(dest)})
        return FileWritten(path=str(dest), message="Data exported successfully.")

    @staticmethod
    def read_dump(path: str | Path) -> dict:
        """
        Parse a dump file. Accepts the wrapped format written by write_dump()
        or a bare {products, sales, sale_items, store_settings} object.
        Raises ValidationError on unreadable or malformed content.
        """
        try:
            with open(path, "r", encoding="utf-8") as fh:
                raw = json.load(fh)
        except (OSError, ValueError) as exc:
            raise ValidationError(f"Could not read dump file: {exc}") from exc

        data = raw.get("data", raw) if isinstance(raw, dict) and raw.get("format") == DUMP_FORMAT else raw
        try:
            validate_dump(data)
        except RuntimeError as exc:
            raise ValidationError(str(exc)) from exc
        return data

    def load_dump(self, path: str | Path) -> WriteResult:
        if self._import_dump is None:
            return Failure("No data target configured for dumps.", kind="storage")
        try:
            data = self.read_dump(path)
        except ValidationError as exc:
            return Failure(exc.message, kind=exc.kind)
        result = self._import_dump(data)
        log_event(self._log, "dump", "import", "Dump import finished",
                  extra={"src": str(path), "success": result.success},
                  level=logging.INFO if result.success else logging.ERROR)
        return result
