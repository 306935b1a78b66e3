"""
gst_pos/modules/backup_restore/validators.py

Preflight checks with user-facing messages. Each raises RuntimeError on
failure and returns None otherwise.
"""

from __future__ import annotations

import os
import sys
from pathlib import Path
from typing import Any, Iterable, Mapping

from ...database.repositories.dump_repo import DUMP_TABLES


def _human_size(num: int) -> str:
    units = ["B", "KB", "MB", "GB", "TB"]
    size = float(max(0, int(num)))
    for u in units:
        if size < 1024.0 or u == units[-1]:
            return f"{size:.1f} {u}"
        size /= 1024.0
    return f"{size:.1f} TB"


def _windows_reserved_names() -> Iterable[str]:
    return {
        "con", "prn", "aux", "nul",
        *(f"com{i}" for i in range(1, 10)),
        *(f"lpt{i}" for i in range(1, 10)),
    }


def validate_backup_destination(dest_file: str, db_size: int, free_space: int) -> None:
    """
    Rules:
      - Parent folder must exist and be writable.
      - Filename must be non-empty and not a directory.
      - At least 1.5x the DB size must be free.
    """
    path = Path(dest_file)
    parent = path.parent if path.parent != Path("") else Path.cwd()

    if not parent.is_dir():
        raise RuntimeError(f"Destination folder does not exist: {parent}")
    if not os.access(str(parent), os.W_OK | os.X_OK):
        raise RuntimeError(f"Destination folder is not writable: {parent}")

    if not path.name.strip():
        raise RuntimeError("Please provide a file name for the backup.")
    if sys.platform.startswith("win"):
        if path.stem.lower().rstrip(".") in _windows_reserved_names():
            raise RuntimeError(f"The backup filename '{path.stem}' is reserved on Windows.")
        if path.name.endswith((" ", ".")):
            raise RuntimeError("Windows filenames cannot end with a space or dot.")

    if path.is_dir():
        raise RuntimeError("Destination path points to a directory, not a file.")

    required = int(max(0, db_size) * 1.5)
    if free_space < required:
        raise RuntimeError(
            "Not enough free space in the destination folder.\n"
            f"Required (approx): {_human_size(required)}\n"
            f"Available: {_human_size(free_space)}"
        )


def validate_backup_source(db_path: str) -> None:
    p = Path(db_path)
    if not p.exists():
        raise RuntimeError(f"Database file not found: {p}")
    if not p.is_file():
        raise RuntimeError(f"Database path is not a file: {p}")
    if not os.access(str(p), os.R_OK):
        raise RuntimeError(f"Database file is not readable: {p}")
    if p.stat().st_size <= 0:
        raise RuntimeError(
            "The database file appears to be empty (0 bytes). "
            "Please verify the active database location."
        )


def validate_restore_source(snapshot: str) -> None:
    p = Path(snapshot)
    if not p.is_file():
        raise RuntimeError("Backup file does not exist.")
    if p.stat().st_size <= 0:
        raise RuntimeError("Backup file is empty.")


def validate_dump(data: Any) -> None:
    if not isinstance(data, Mapping):
        raise RuntimeError("Dump file does not contain a JSON object.")
    missing = [t for t in DUMP_TABLES if t not in data]
    if missing:
        raise RuntimeError(f"Dump file is missing: {', '.join(missing)}")
