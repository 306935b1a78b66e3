# gst_pos/database/repositories/invoice_repo.py
from __future__ import annotations

import sqlite3
from datetime import date
from typing import Callable, Optional

from ...constants import INVOICE_PREFIX, INVOICE_SERIAL_WIDTH
from ..tx import immediate_tx


def format_invoice_number(day: date, serial: int) -> str:
    """INV + YYYYMMDD + zero-padded serial, e.g. INV202507280001."""
    return f"{INVOICE_PREFIX}{day.strftime('%Y%m%d')}{serial:0{INVOICE_SERIAL_WIDTH}d}"


class InvoiceNumberRepo:
    """
    Daily-reset invoice numbering over the invoice_daily_counter singleton.

    The read-modify-write runs inside BEGIN IMMEDIATE, or inside the caller's
    open transaction (the sale engine draws the number in the same unit of
    work as the sale rows, so a rolled-back sale gives its number back).
    """

    def __init__(self, conn: sqlite3.Connection, today: Optional[Callable[[], date]] = None):
        conn.row_factory = sqlite3.Row
        self.conn = conn
        self._today = today or date.today

    def current_state(self) -> tuple[str | None, int]:
        row = self.conn.execute(
            "SELECT last_reset_date, current_daily_number FROM invoice_daily_counter WHERE id=1"
        ).fetchone()
        if row is None:
            return None, 0
        return row["last_reset_date"], int(row["current_daily_number"] or 0)

    def next_invoice_number(self) -> str:
        today = self._today()
        today_iso = today.isoformat()
        with immediate_tx(self.conn):
            last_reset, current = self.current_state()
            if last_reset is None:
                self.conn.execute(
                    "INSERT INTO invoice_daily_counter(id, last_reset_date, current_daily_number) "
                    "VALUES (1, ?, 0)",
                    (today_iso,),
                )
            if last_reset != today_iso:
                current = 0
            serial = current + 1
            self.conn.execute(
                "UPDATE invoice_daily_counter SET last_reset_date=?, current_daily_number=? WHERE id=1",
                (today_iso, serial),
            )
            # lifetime count kept for older readers of invoice_counter
            self.conn.execute("UPDATE invoice_counter SET last_number = last_number + 1 WHERE id=1")
        return format_invoice_number(today, serial)
