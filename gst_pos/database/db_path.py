"""
gst_pos/database/db_path.py

Purpose
-------
Decide which on-disk database file is the database of record, and move the
legacy file (beside the application, in the working directory) into the
per-user application data folder exactly once.

Public interface
----------------
- count_rows(path) -> int
- verify_non_empty(path) -> bool
- DbPathResolver(legacy_dir=None, app_data_dir=None, env=None, file_name="pos.db")
    .resolve() -> Path
    .migrate(old_path) -> bool
- resolve_db_path() -> Path
- migrate_db_to_app_data(old_path) -> bool

Notes
-----
- Candidate files are only ever opened read-only. Any error while opening or
  counting counts as zero rows; the resolver never raises.
- When both files exist, "more rows in products + sales wins" and a tie keeps
  the legacy file. This is a heuristic, not a merge: the losing file is left
  untouched on disk and the decision is logged with both scores so an
  operator can recover it via POS_DB_PATH.
- The migration copy is written next to the target as '<name>.part' and
  os.replace()d into place, so a crash never leaves a half-written pos.db.
"""

from __future__ import annotations

import logging
import os
import shutil
import sqlite3
from pathlib import Path
from typing import Mapping, Optional

from ..config import app_data_dir as _default_app_data_dir
from ..config import env_db_override
from ..constants import CORE_TABLES, DB_FILE_NAME
from ..utils.loggers import get_event_logger, log_event

__all__ = [
    "count_rows",
    "verify_non_empty",
    "DbPathResolver",
    "resolve_db_path",
    "migrate_db_to_app_data",
]


# ----------------------------
# Read-only row counts
# ----------------------------

def _connect_ro(db_path: Path) -> sqlite3.Connection:
    uri = f"file:{db_path.as_posix()}?mode=ro"
    return sqlite3.connect(uri, uri=True, isolation_level=None)


def count_rows(path: str | Path) -> int:
    """
    Combined row count of the core tables (products + sales) in the file at
    `path`. Missing file, unreadable file or missing tables -> 0.
    """
    p = Path(path)
    if not p.is_file():
        return 0
    try:
        con = _connect_ro(p)
    except sqlite3.Error:
        return 0
    try:
        total = 0
        for table in CORE_TABLES:
            row = con.execute(f"SELECT COUNT(*) FROM {table}").fetchone()
            total += int(row[0] if row else 0)
        return total
    except sqlite3.Error:
        return 0
    finally:
        con.close()


def verify_non_empty(path: str | Path) -> bool:
    return count_rows(path) > 0


# ----------------------------
# Copy helpers
# ----------------------------

def _remove_with_companions(path: Path) -> None:
    for suffix in ("", "-wal", "-shm", "-journal"):
        Path(str(path) + suffix).unlink(missing_ok=True)


def _copy_database(src: Path, dest: Path) -> None:
    """
    Consistent copy of `src` into `dest` (via '<dest>.part' + os.replace).
    Uses the Online Backup API from a read-only source connection so pages
    still sitting in the source's WAL are included; falls back to a byte copy
    when the source cannot be opened as a database.
    """
    part = dest.with_name(dest.name + ".part")
    _remove_with_companions(part)
    try:
        src_con = _connect_ro(src)
        try:
            dst_con = sqlite3.connect(str(part), isolation_level=None)
            try:
                src_con.backup(dst_con)
            finally:
                dst_con.close()
        finally:
            src_con.close()
    except sqlite3.Error:
        _remove_with_companions(part)
        shutil.copyfile(str(src), str(part))
    # leftover sidecars of the old target would be replayed onto the copy
    for suffix in ("-wal", "-shm", "-journal"):
        Path(str(dest) + suffix).unlink(missing_ok=True)
    os.replace(str(part), str(dest))


# ----------------------------
# Resolver
# ----------------------------

class DbPathResolver:
    """
    Chooses between the legacy and app-data database files.

    All inputs are injectable so tests can point at temporary folders and a
    fake environment; by default the legacy folder is the working directory
    and the app-data folder comes from Qt's QStandardPaths.
    """

    def __init__(
        self,
        legacy_dir: Optional[str | Path] = None,
        app_data_dir: Optional[str | Path] = None,
        env: Optional[Mapping[str, str]] = None,
        file_name: str = DB_FILE_NAME,
        logger=None,
    ) -> None:
        self._legacy_dir = Path(legacy_dir) if legacy_dir is not None else None
        self._app_data_dir = Path(app_data_dir) if app_data_dir is not None else None
        self._env = env
        self._file_name = file_name
        self._events = logger or get_event_logger()

    @property
    def legacy_path(self) -> Path:
        return (self._legacy_dir or Path.cwd()) / self._file_name

    @property
    def new_path(self) -> Path:
        base = self._app_data_dir or _default_app_data_dir()
        return base / self._file_name

    def _event(self, op: str, phase: str, message: str, level: int = logging.INFO, **extra) -> None:
        log_event(self._events, op, phase, message, extra=extra, level=level)

    def resolve(self) -> Path:
        """
        Return the path of the database of record. Never raises.

          1. POS_DB_PATH set and the file exists -> that file.
          2. Only the legacy file exists         -> legacy (no silent migration).
          3. Only the app-data file exists       -> app-data.
          4. Both exist -> higher products+sales row count wins, tie -> legacy.
          5. Neither exists                      -> app-data (created fresh later).
        """
        override = env_db_override(self._env)
        if override and Path(override).is_file():
            self._event("resolve", "override", "Using POS_DB_PATH override", path=override)
            return Path(override)
        if override:
            self._event(
                "resolve", "override", "POS_DB_PATH points to a missing file; ignoring it",
                level=logging.WARNING, path=override,
            )

        legacy = self.legacy_path
        new = self.new_path
        try:
            new.parent.mkdir(parents=True, exist_ok=True)
        except OSError as exc:
            self._event("resolve", "mkdir", "Could not create app data folder", level=logging.WARNING,
                        path=str(new.parent), error=str(exc))

        has_legacy = legacy.is_file()
        has_new = new.is_file()

        if has_legacy and not has_new:
            self._event("resolve", "choose", "Only legacy database exists; staying on it", path=str(legacy))
            return legacy

        if has_new and not has_legacy:
            self._event("resolve", "choose", "Only app-data database exists", path=str(new))
            return new

        if has_legacy and has_new:
            legacy_score = count_rows(legacy)
            new_score = count_rows(new)
            chosen = legacy if legacy_score >= new_score else new
            self._event(
                "resolve", "score", "Both databases found; keeping the one with more rows",
                level=logging.WARNING if legacy_score and new_score else logging.INFO,
                legacy=str(legacy), legacy_score=legacy_score,
                new=str(new), new_score=new_score, chosen=str(chosen),
            )
            return chosen

        self._event("resolve", "choose", "No database found; a new one will be created", path=str(new))
        return new

    def migrate(self, old_path: str | Path) -> bool:
        """
        Copy the legacy file into the app-data folder when the target is
        absent or empty, then re-verify the copy. A failed verification
        removes the copy. The source file is never modified. Calling this
        again once the target holds data is a no-op returning True.
        """
        src = Path(old_path)
        target = self.new_path

        if not src.is_file():
            self._event("migrate", "preflight", "Legacy database missing; nothing to migrate",
                        level=logging.WARNING, src=str(src))
            return False

        if target.exists() and verify_non_empty(target):
            self._event("migrate", "preflight", "Target already holds data; skipping", target=str(target))
            return True

        try:
            target.parent.mkdir(parents=True, exist_ok=True)
            _copy_database(src, target)
        except OSError as exc:
            self._event("migrate", "copy", "Copy failed", level=logging.ERROR,
                        src=str(src), target=str(target), error=str(exc))
            _remove_with_companions(target.with_name(target.name + ".part"))
            return False

        if not verify_non_empty(target):
            _remove_with_companions(target)
            self._event("migrate", "verify", "Copy failed verification; removed it", level=logging.ERROR,
                        src=str(src), target=str(target))
            return False

        self._event("migrate", "verify", "Copied legacy database and verified it",
                    src=str(src), target=str(target), rows=count_rows(target))
        return True


def resolve_db_path() -> Path:
    return DbPathResolver().resolve()


def migrate_db_to_app_data(old_path: str | Path) -> bool:
    return DbPathResolver().migrate(old_path)
