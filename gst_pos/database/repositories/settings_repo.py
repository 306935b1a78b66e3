# gst_pos/database/repositories/settings_repo.py
from __future__ import annotations

import json
import math
import sqlite3
from typing import Any, Mapping

from ...utils.loggers import get_logger
from ...utils.validators import blank_to_none, try_parse_float
from ..tx import immediate_tx
from .errors import ValidationError
from .results import Done, Failure, WriteResult

_log = get_logger(__name__)

PROFILE_FIELDS = (
    "store_name",
    "store_address",
    "store_subtitle",
    "store_phone",
    "store_gstin",
    "store_footer",
    "store_fssai",
)


def _entry_value(entry: Mapping[str, Any], *keys: str) -> Any:
    for k in keys:
        if k in entry:
            return entry[k]
    return None


def clean_category_map(data: Any) -> dict[str, dict]:
    """
    Normalize a category map to {category: {"hsn_code", "gst_percent"}}.
    Blank HSN/GST become None; a GST that is not a finite, non-negative
    number raises ValidationError.
    """
    if not isinstance(data, Mapping):
        raise ValidationError("Category map must be an object.")
    out: dict[str, dict] = {}
    for raw_name, entry in data.items():
        name = blank_to_none(raw_name)
        if name is None:
            raise ValidationError("Category name is required.")
        if entry is None:
            entry = {}
        if not isinstance(entry, Mapping):
            raise ValidationError(f"Category '{name}': expected an object.")
        hsn = blank_to_none(_entry_value(entry, "hsn_code", "hsn"))
        gst_raw = _entry_value(entry, "gst_percent", "gst")
        gst = None
        if gst_raw is not None and str(gst_raw).strip() != "":
            ok, gst = try_parse_float(str(gst_raw).strip().rstrip("%"))
            if not ok or not math.isfinite(gst) or gst < 0:
                raise ValidationError(f"Category '{name}': GST percent must be a non-negative number.")
        out[name] = {"hsn_code": hsn, "gst_percent": gst}
    return out


class SettingsRepo:
    """Singleton store profile (row id=1), the chosen label printer and the category map."""

    def __init__(self, conn: sqlite3.Connection):
        conn.row_factory = sqlite3.Row
        self.conn = conn

    def get(self) -> dict | None:
        """
        Stored profile or None when nothing has been saved yet. The label
        printer is exposed under both label_printer_name and labelPrinterName.
        """
        try:
            row = self.conn.execute(
                f"SELECT {', '.join(PROFILE_FIELDS)}, label_printer_name FROM store_settings WHERE id = 1"
            ).fetchone()
        except sqlite3.Error as e:
            _log.error("Failed to fetch store settings: %s", e)
            return None
        # the schema manager creates row 1 to hold schema_version
        if row is None or all(v is None for v in tuple(row)):
            return None
        out = dict(row)
        out["labelPrinterName"] = out.get("label_printer_name")
        return out

    def label_printer_name(self) -> str | None:
        s = self.get()
        return (s or {}).get("label_printer_name") or None

    def save(self, payload: Mapping[str, Any]) -> WriteResult:
        """
        Upsert row 1. Profile fields missing from the payload are stored as
        '' (the form always sends the whole profile). The label printer
        accepts label_printer_name or labelPrinterName; when neither is sent
        the stored printer is kept.
        """
        values = [str(payload.get(f) or "").strip() for f in PROFILE_FIELDS]
        if "label_printer_name" in payload or "labelPrinterName" in payload:
            printer = payload.get("label_printer_name")
            if printer is None:
                printer = payload.get("labelPrinterName")
            printer = (str(printer).strip() or None) if printer is not None else None
            keep_printer = False
        else:
            printer, keep_printer = None, True

        cols = ", ".join(PROFILE_FIELDS)
        marks = ", ".join("?" for _ in PROFILE_FIELDS)
        updates = ", ".join(f"{f} = excluded.{f}" for f in PROFILE_FIELDS)
        if not keep_printer:
            updates += ", label_printer_name = excluded.label_printer_name"
        try:
            with immediate_tx(self.conn):
                self.conn.execute(
                    f"""
                    INSERT INTO store_settings (id, {cols}, label_printer_name)
                    VALUES (1, {marks}, ?)
                    ON CONFLICT(id) DO UPDATE SET {updates}
                    """,
                    (*values, printer),
                )
        except sqlite3.Error as e:
            _log.error("Failed to save store settings: %s", e)
            return Failure("DB save error", kind="storage")
        return Done()

    def category_map(self) -> dict[str, dict]:
        """
        Category -> {"hsn_code", "gst_percent"} defaults for the product form
        and the CSV import. {} when nothing is stored or the stored JSON is
        unreadable.
        """
        try:
            row = self.conn.execute("SELECT category_map FROM store_settings WHERE id = 1").fetchone()
        except sqlite3.Error as e:
            _log.error("Failed to fetch category map: %s", e)
            return {}
        if row is None or not row[0]:
            return {}
        try:
            return clean_category_map(json.loads(row[0]))
        except (ValueError, ValidationError) as e:
            _log.warning("Stored category map ignored: %s", e)
            return {}

    def save_category_map(self, data: Mapping[str, Any]) -> WriteResult:
        """Replace the whole map. Entries may be {hsn, gst} or {hsn_code, gst_percent}."""
        try:
            cleaned = clean_category_map(data)
        except ValidationError as e:
            return Failure(e.message, kind=e.kind)
        try:
            with immediate_tx(self.conn):
                self.conn.execute(
                    """
                    INSERT INTO store_settings (id, category_map) VALUES (1, ?)
                    ON CONFLICT(id) DO UPDATE SET category_map = excluded.category_map
                    """,
                    (json.dumps(cleaned, ensure_ascii=False),),
                )
        except sqlite3.Error as e:
            _log.error("Failed to save category map: %s", e)
            return Failure("DB save error", kind="storage")
        _log.info("Saved category map (%d categories)", len(cleaned))
        return Done()
