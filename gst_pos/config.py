from __future__ import annotations

import os
from pathlib import Path
from typing import Mapping

from .constants import APP_NAME, ENV_DB_PATH, ORG_NAME


def app_data_dir() -> Path:
    """
    OS-appropriate per-user application data folder, e.g.
    %APPDATA%/GST POS/GST POS on Windows or ~/.local/share/GST POS/GST POS on Linux.
    """
    from PySide6.QtCore import QCoreApplication, QStandardPaths

    if not QCoreApplication.organizationName():
        QCoreApplication.setOrganizationName(ORG_NAME)
    if not QCoreApplication.applicationName():
        QCoreApplication.setApplicationName(APP_NAME)

    location = QStandardPaths.writableLocation(QStandardPaths.StandardLocation.AppDataLocation)
    if not location:
        # headless/odd platforms can report no writable location
        location = str(Path.home() / f".{APP_NAME.lower().replace(' ', '_')}")
    return Path(location)


def env_db_override(env: Mapping[str, str] | None = None) -> str | None:
    """Manual recovery escape hatch: POS_DB_PATH forces a database file."""
    source = os.environ if env is None else env
    value = (source.get(ENV_DB_PATH) or "").strip()
    return value or None
