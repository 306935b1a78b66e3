"""
gst_pos/modules/backup_restore/fsops.py

Purpose
-------
File-system utilities with attention to atomicity and cross-platform behavior.

Public interface
----------------
- ensure_writable_dir(path) -> None
- get_free_space_bytes(path) -> int
- make_temp_file(suffix="", dir=None) -> str
- atomic_move(src, dest, *, logger=None) -> None
- write_text_atomic(dest, text, *, logger=None) -> None
- safety_copy_current_db(db_path, timestamp, *, logger=None) -> str
- replace_db_with(source_db_file, target_db_path, *, logger=None) -> None

Notes
-----
- Writes go to '<dest>.tmp' / '<dest>.part' / '<dest>.swap' first and are
  os.replace()d into place, so readers never see a half-written file.
- When a logger is passed, each step is emitted as a structured event.
"""

from __future__ import annotations

import logging
import os
import shutil
import tempfile
from pathlib import Path
from typing import Optional

from ...utils.loggers import log_event

__all__ = [
    "ensure_writable_dir",
    "get_free_space_bytes",
    "make_temp_file",
    "atomic_move",
    "write_text_atomic",
    "safety_copy_current_db",
    "replace_db_with",
]

# ----------------------------
# Helpers (private)
# ----------------------------


def _log(logger: Optional[logging.Logger], phase: str, message: str, **fields) -> None:
    if logger is not None:
        log_event(logger, "fs", phase, message, extra=fields)


def _fsync_file(path: Path) -> None:
    """fsync a file; platforms without fsync on this handle are skipped."""
    try:
        fd = os.open(str(path), os.O_RDWR | getattr(os, "O_BINARY", 0))
    except OSError:
        return
    try:
        os.fsync(fd)
    finally:
        os.close(fd)


def _fsync_dir(path: Path) -> None:
    """fsync a directory after rename/replace (no-op where unsupported, e.g. Windows)."""
    try:
        fd = os.open(str(path), os.O_RDONLY)
    except OSError:
        return
    try:
        os.fsync(fd)
    except OSError:
        pass
    finally:
        os.close(fd)


def _copy_file_fsync(src: Path, dst: Path) -> None:
    dst.parent.mkdir(parents=True, exist_ok=True)
    shutil.copy2(str(src), str(dst))
    _fsync_file(dst)


# ----------------------------
# Public API
# ----------------------------

def ensure_writable_dir(path: str) -> None:
    """
    Validate that `path` exists, is a directory, and is writable.
    Raise RuntimeError with a helpful message if not.
    """
    p = Path(path)
    if not p.exists():
        raise RuntimeError(f"Destination folder does not exist: {p}")
    if not p.is_dir():
        raise RuntimeError(f"Destination path is not a folder: {p}")
    if not os.access(str(p), os.W_OK | os.X_OK):
        raise RuntimeError(f"Destination folder is not writable: {p}")

    try:
        tmp = tempfile.NamedTemporaryFile(prefix=".permcheck_", dir=str(p), delete=True)
        tmp.close()
    except OSError as exc:
        raise RuntimeError(f"Unable to write to destination folder: {p} ({exc})") from exc


def get_free_space_bytes(path: str) -> int:
    target = Path(path)
    if not target.exists():
        target = target.parent if target.parent.exists() else Path.home()
    return int(shutil.disk_usage(str(target)).free)


def make_temp_file(suffix: str = "", dir: Optional[str] = None) -> str:
    """
    Create an empty temp file that persists after close and return its path.
    Caller moves or removes it.
    """
    d = Path(dir) if dir else Path(tempfile.gettempdir())
    d.mkdir(parents=True, exist_ok=True)
    f = tempfile.NamedTemporaryFile(prefix="pos_", suffix=suffix, dir=str(d), delete=False)
    f_path = Path(f.name).resolve()
    f.close()
    return str(f_path)


def atomic_move(src: str, dest: str, *, logger: Optional[logging.Logger] = None) -> None:
    """
    Move `src` to `dest`. Copies + fsyncs into '<dest>.part' next to the
    destination and os.replace()s it (works across volumes), then removes
    the source.
    """
    src_p = Path(src).resolve()
    dest_p = Path(dest).resolve()
    dest_p.parent.mkdir(parents=True, exist_ok=True)

    tmp_dest = dest_p.with_name(dest_p.name + ".part")
    tmp_dest.unlink(missing_ok=True)
    _copy_file_fsync(src_p, tmp_dest)
    os.replace(str(tmp_dest), str(dest_p))
    _fsync_dir(dest_p.parent)
    src_p.unlink(missing_ok=True)
    _log(logger, "move", "File moved into place", src=str(src_p), dest=str(dest_p),
         size=dest_p.stat().st_size)


def write_text_atomic(dest: str, text: str, *, logger: Optional[logging.Logger] = None) -> None:
    dest_p = Path(dest)
    dest_p.parent.mkdir(parents=True, exist_ok=True)
    tmp = dest_p.with_name(dest_p.name + ".tmp")
    with open(tmp, "w", encoding="utf-8", newline="\n") as fh:
        fh.write(text)
        fh.flush()
        os.fsync(fh.fileno())
    os.replace(str(tmp), str(dest_p))
    _fsync_dir(dest_p.parent)
    _log(logger, "write", "File written", dest=str(dest_p), size=dest_p.stat().st_size)


def safety_copy_current_db(db_path: str, timestamp: str, *, logger: Optional[logging.Logger] = None) -> str:
    """
    Copy the DB file and its -wal/-shm companions into
      <db_dir>/pre-restore-<timestamp>/
    and return that folder's path.
    """
    db = Path(db_path).resolve()
    if not db.exists():
        raise RuntimeError(f"Database file not found for safety copy: {db}")
    out_dir = db.parent / f"pre-restore-{timestamp}"
    out_dir.mkdir(parents=True, exist_ok=True)

    _copy_file_fsync(db, out_dir / db.name)
    for suffix in ("-wal", "-shm"):
        comp = Path(str(db) + suffix)
        if comp.is_file():
            _copy_file_fsync(comp, out_dir / comp.name)

    _fsync_dir(out_dir)
    _log(logger, "safety_copy", "Safety copy created", dir=str(out_dir))
    return str(out_dir)


def replace_db_with(source_db_file: str, target_db_path: str, *, logger: Optional[logging.Logger] = None) -> None:
    """
    Replace the live DB file with `source_db_file`.

    Steps:
      - Copy source to '<target>.swap' in the target directory and fsync.
      - Remove lingering target -wal/-shm files.
      - os.replace() swap -> target and fsync the directory.
    All connections to the target must be closed first.
    """
    src = Path(source_db_file).resolve()
    tgt = Path(target_db_path).resolve()
    if not src.is_file():
        raise RuntimeError(f"Source DB file not found: {src}")

    tgt.parent.mkdir(parents=True, exist_ok=True)
    tmp = tgt.with_name(tgt.name + ".swap")
    tmp.unlink(missing_ok=True)
    _copy_file_fsync(src, tmp)

    # a stale WAL would be replayed onto the restored file
    for suffix in ("-wal", "-shm"):
        stale = Path(str(tgt) + suffix)
        try:
            stale.unlink(missing_ok=True)
        except OSError as exc:
            tmp.unlink(missing_ok=True)
            raise RuntimeError(f"Unable to remove {stale} (is the database still open?)") from exc

    os.replace(str(tmp), str(tgt))
    _fsync_dir(tgt.parent)
    _log(logger, "swap", "Database file replaced", src=str(src), target=str(tgt),
         size=tgt.stat().st_size)
