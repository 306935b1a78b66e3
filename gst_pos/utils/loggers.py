"""
gst_pos/utils/loggers.py

Two flavours of logger:

- get_logger(name): plain console logger used by repositories and services.
- get_event_logger(file_path=None): append-only JSON-lines logger for
  operational events (database location decisions, migrations, backups),
  written to logs/pos_db.log and mirrored to stderr at WARNING+.

log_event() attaches a structured payload that the JSON formatter emits.
"""

from __future__ import annotations

import json
import logging
from datetime import datetime, timezone
from pathlib import Path
from typing import Dict, Optional

from ..constants import DB_EVENTS_LOG_FILE, LOG_DIR

__all__ = ["get_logger", "get_event_logger", "log_event"]

_EVENT_LOGGER_NAME = "gst_pos.events"


def get_logger(name: str = "gst_pos") -> logging.Logger:
    logger = logging.getLogger(name)
    if not logger.handlers:
        logger.setLevel(logging.INFO)
        ch = logging.StreamHandler()
        ch.setFormatter(logging.Formatter("%(asctime)s [%(levelname)s] %(name)s: %(message)s"))
        logger.addHandler(ch)
    return logger


class _JsonLineFormatter(logging.Formatter):
    """
    {"ts":"2025-07-28T12:00:01.123Z","level":"INFO","name":"gst_pos.events","msg":"...","extra":{...}}
    """
    def format(self, record: logging.LogRecord) -> str:  # type: ignore[override]
        payload = {
            "ts": datetime.now(timezone.utc).isoformat(timespec="milliseconds").replace("+00:00", "Z"),
            "level": record.levelname,
            "name": record.name,
            "msg": record.getMessage(),
        }
        if hasattr(record, "extra_payload") and isinstance(record.extra_payload, dict):
            payload["extra"] = record.extra_payload
        return json.dumps(payload, ensure_ascii=False, default=str)


def get_event_logger(file_path: Optional[str] = None, level: int = logging.INFO) -> logging.Logger:
    """
    Return the shared JSON-lines event logger. Handlers are attached once.
    If the log file cannot be opened, events go to stderr only.
    """
    logger = logging.getLogger(_EVENT_LOGGER_NAME)
    logger.setLevel(level)
    logger.propagate = False

    if logger.handlers:
        return logger

    log_file = Path(file_path) if file_path else Path(LOG_DIR) / DB_EVENTS_LOG_FILE
    try:
        log_file.parent.mkdir(parents=True, exist_ok=True)
        fh = logging.FileHandler(str(log_file), mode="a", encoding="utf-8", delay=True)
    except OSError:
        sh = logging.StreamHandler()
        sh.setLevel(level)
        sh.setFormatter(_JsonLineFormatter())
        logger.addHandler(sh)
        return logger

    fh.setLevel(level)
    fh.setFormatter(_JsonLineFormatter())
    logger.addHandler(fh)

    sh = logging.StreamHandler()
    sh.setLevel(logging.WARNING)
    sh.setFormatter(_JsonLineFormatter())
    logger.addHandler(sh)

    return logger


def log_event(
    logger: logging.Logger,
    op: str,
    phase: str,
    message: str,
    extra: Dict[str, object] | None = None,
    level: int = logging.INFO,
) -> None:
    """
    Log one structured event line.

    Args:
        op: operation name, e.g. "resolve", "migrate", "backup", "restore".
        phase: step within the operation, e.g. "override", "score", "verify".
        extra: additional key/values (paths, row counts, outcome).
    """
    extra_payload = {"op": op, "phase": phase}
    if extra:
        for k, v in extra.items():
            if k not in extra_payload:
                extra_payload[k] = v
    logger.log(level, message, extra={"extra_payload": extra_payload})
