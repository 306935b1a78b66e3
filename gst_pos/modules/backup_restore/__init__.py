"""
Backup & Restore: consistent database snapshots, restore with a safety copy,
and JSON dumps of all business data.
"""

from __future__ import annotations

from .service import BackupService

MODULE_TITLE: str = "Backup & Restore"
__all__ = ["MODULE_TITLE", "BackupService"]
