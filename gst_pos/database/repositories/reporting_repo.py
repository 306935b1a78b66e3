# gst_pos/database/repositories/reporting_repo.py
from __future__ import annotations

import sqlite3
from dataclasses import dataclass
from datetime import date
from typing import Any, Callable, Mapping, Optional, Sequence

from ...constants import DEFAULT_PAGE_SIZE, RECENT_INVOICES_LIMIT, TOP_PRODUCTS_LIMIT
from ...utils.helpers import round2
from ...utils.loggers import get_logger
from ...utils.validators import blank_to_none, is_date_iso
from .errors import ValidationError

_log = get_logger(__name__)


@dataclass(frozen=True)
class InvoiceFilter:
    """
    Inclusive date range on the sale timestamp's date part, plus a substring
    search over invoice number or customer name.
    """
    start_date: Optional[str] = None
    end_date: Optional[str] = None
    search: Optional[str] = None

    def __post_init__(self) -> None:
        for label, value in (("start date", self.start_date), ("end date", self.end_date)):
            if value is not None and not is_date_iso(value):
                raise ValidationError(f"Invalid {label}: {value!r} (expected YYYY-MM-DD).")

    @classmethod
    def from_mapping(cls, data: Optional[Mapping[str, Any]]) -> "InvoiceFilter":
        """Accepts snake_case or the checkout screen's camelCase keys."""
        data = data or {}
        return cls(
            start_date=blank_to_none(data.get("start_date", data.get("startDate"))),
            end_date=blank_to_none(data.get("end_date", data.get("endDate"))),
            search=blank_to_none(data.get("search", data.get("searchQuery"))),
        )

    def where(self, alias: str = "s") -> tuple[str, list]:
        clauses: list[str] = []
        params: list = []
        if self.start_date:
            clauses.append(f"substr({alias}.timestamp, 1, 10) >= ?")
            params.append(self.start_date)
        if self.end_date:
            clauses.append(f"substr({alias}.timestamp, 1, 10) <= ?")
            params.append(self.end_date)
        if self.search:
            clauses.append(f"({alias}.invoice_no LIKE ? OR {alias}.customer_name LIKE ?)")
            like = f"%{self.search}%"
            params += [like, like]
        sql = (" WHERE " + " AND ".join(clauses)) if clauses else ""
        return sql, params


_NO_FILTER = InvoiceFilter()

EMPTY_GST_TOTALS = {
    "total_taxable_value": 0.0,
    "total_gst_amount": 0.0,
    "total_cgst": 0.0,
    "total_sgst": 0.0,
    "grand_total": 0.0,
}


class ReportingRepo:
    """
    Read-only queries for the dashboard, invoice list and GST reports.

    Notes:
      • Date filters compare substr(timestamp, 1, 10) with ISO 'YYYY-MM-DD'
        strings; timestamps are stored as local ISO strings.
      • Monetary aggregates are rounded half-up to 2 places on the way out.
      • A storage error is logged and yields an empty/zero result so report
        screens show "no data" instead of failing.
    """

    def __init__(self, conn: sqlite3.Connection, today: Optional[Callable[[], date]] = None) -> None:
        self.conn = conn
        self.conn.row_factory = sqlite3.Row
        self._today = today or date.today

    # ------------------------------------------------------------------
    # helpers
    # ------------------------------------------------------------------
    def _rows(self, sql: str, params: Sequence = ()) -> list[dict]:
        try:
            return [dict(r) for r in self.conn.execute(sql, params).fetchall()]
        except sqlite3.Error as e:
            _log.error("Report query failed: %s", e)
            return []

    def _scalar(self, sql: str, params: Sequence = ()) -> float:
        try:
            row = self.conn.execute(sql, params).fetchone()
        except sqlite3.Error as e:
            _log.error("Report query failed: %s", e)
            return 0.0
        return round2(row[0] if row and row[0] is not None else 0)

    @staticmethod
    def _money(row: dict, *keys: str) -> dict:
        for k in keys:
            row[k] = round2(row.get(k))
        return row

    # ------------------------------------------------------------------
    # Dashboard
    # ------------------------------------------------------------------
    def dashboard_stats(self) -> dict:
        today = self._today()
        day, month, year = today.isoformat(), today.strftime("%Y-%m"), today.strftime("%Y")

        top = self._rows(
            """
            SELECT name, SUM(quantity) AS total_quantity
            FROM sale_items
            GROUP BY name
            ORDER BY total_quantity DESC, name
            LIMIT ?
            """,
            (TOP_PRODUCTS_LIMIT,),
        )
        chart = self._rows(
            """
            SELECT substr(timestamp, 1, 7) AS month, SUM(total) AS total_sales
            FROM sales
            WHERE substr(timestamp, 1, 4) = ?
            GROUP BY month
            ORDER BY month
            """,
            (year,),
        )
        return {
            "today_sales": self._scalar(
                "SELECT SUM(total) FROM sales WHERE substr(timestamp, 1, 10) = ?", (day,)
            ),
            "month_sales": self._scalar(
                "SELECT SUM(total) FROM sales WHERE substr(timestamp, 1, 7) = ?", (month,)
            ),
            "year_sales": self._scalar(
                "SELECT SUM(total) FROM sales WHERE substr(timestamp, 1, 4) = ?", (year,)
            ),
            "top_products": [
                {"name": r["name"], "total_quantity": int(r["total_quantity"] or 0)} for r in top
            ],
            "monthly_sales_chart": [self._money(r, "total_sales") for r in chart],
        }

    # ------------------------------------------------------------------
    # Invoices
    # ------------------------------------------------------------------
    _INVOICE_COLUMNS = """
        s.id, s.invoice_no, s.timestamp, s.payment_method,
        s.customer_name, s.customer_phone, s.customer_gstin,
        CAST(s.total AS REAL) AS total,
        (SELECT COUNT(*) FROM sale_items si WHERE si.sale_id = s.id) AS item_count
    """

    def list_invoices(
        self,
        flt: InvoiceFilter = _NO_FILTER,
        page: int = 1,
        limit: int = DEFAULT_PAGE_SIZE,
    ) -> dict:
        """One page of invoices, newest first: {data, total, page, limit}."""
        page = max(1, int(page or 1))
        limit = max(1, int(limit or DEFAULT_PAGE_SIZE))
        where, params = flt.where("s")

        try:
            total = int(self.conn.execute(f"SELECT COUNT(*) FROM sales s{where}", params).fetchone()[0])
        except sqlite3.Error as e:
            _log.error("Invoice count failed: %s", e)
            return {"data": [], "total": 0, "page": page, "limit": limit}

        data = self._rows(
            f"SELECT {self._INVOICE_COLUMNS} FROM sales s{where} ORDER BY s.id DESC LIMIT ? OFFSET ?",
            [*params, limit, (page - 1) * limit],
        )
        return {
            "data": [self._money(r, "total") for r in data],
            "total": total,
            "page": page,
            "limit": limit,
        }

    def recent_invoices(self, limit: int = RECENT_INVOICES_LIMIT) -> list[dict]:
        rows = self._rows(
            f"SELECT {self._INVOICE_COLUMNS} FROM sales s ORDER BY s.id DESC LIMIT ?",
            (int(limit),),
        )
        return [self._money(r, "total") for r in rows]

    def invoice_details(self, sale_id: int) -> dict | None:
        header = self._rows("SELECT * FROM sales WHERE id = ?", (sale_id,))
        if not header:
            return None
        sale = self._money(header[0], "total")
        sale["items"] = [
            self._money(r, "price", "taxable_value", "gst_amount", "cgst", "sgst")
            for r in self._rows(
                """
                SELECT id, sale_id, product_id, name, price, quantity, hsn_code,
                       gst_percent, taxable_value, gst_amount, cgst, sgst
                FROM sale_items
                WHERE sale_id = ?
                ORDER BY id
                """,
                (sale_id,),
            )
        ]
        return sale

    def invoices_for_export(self, flt: InvoiceFilter = _NO_FILTER) -> list[dict]:
        """Denormalized sale x item rows, oldest first."""
        where, params = flt.where("s")
        rows = self._rows(
            f"""
            SELECT s.id AS sale_id, s.invoice_no, s.timestamp, s.payment_method,
                   s.customer_name, s.customer_phone, s.customer_gstin,
                   CAST(s.total AS REAL) AS total,
                   si.name AS item_name, si.hsn_code, si.quantity, si.price,
                   si.gst_percent, si.taxable_value, si.gst_amount, si.cgst, si.sgst,
                   COALESCE(si.taxable_value, 0) + COALESCE(si.gst_amount, 0) AS line_total
            FROM sales s
            JOIN sale_items si ON si.sale_id = s.id
            {where}
            ORDER BY s.timestamp, s.id, si.id
            """,
            params,
        )
        return [
            self._money(r, "total", "price", "taxable_value", "gst_amount", "cgst", "sgst", "line_total")
            for r in rows
        ]

    # ------------------------------------------------------------------
    # GST
    # ------------------------------------------------------------------
    def gst_summary(self, flt: InvoiceFilter = _NO_FILTER) -> list[dict]:
        """One row per (HSN code, GST rate) slab."""
        where, params = flt.where("s")
        rows = self._rows(
            f"""
            SELECT si.hsn_code, si.gst_percent,
                   SUM(si.quantity)      AS quantity,
                   SUM(si.taxable_value) AS taxable_value,
                   SUM(si.cgst)          AS cgst,
                   SUM(si.sgst)          AS sgst,
                   SUM(si.gst_amount)    AS gst_amount,
                   SUM(COALESCE(si.taxable_value, 0) + COALESCE(si.gst_amount, 0)) AS total
            FROM sale_items si
            JOIN sales s ON s.id = si.sale_id
            {where}
            GROUP BY si.hsn_code, si.gst_percent
            ORDER BY si.hsn_code, si.gst_percent
            """,
            params,
        )
        return [self._money(r, "taxable_value", "cgst", "sgst", "gst_amount", "total") for r in rows]

    def gst_totals(self, flt: InvoiceFilter = _NO_FILTER) -> dict:
        where, params = flt.where("s")
        rows = self._rows(
            f"""
            SELECT SUM(si.taxable_value) AS total_taxable_value,
                   SUM(si.gst_amount)    AS total_gst_amount,
                   SUM(si.cgst)          AS total_cgst,
                   SUM(si.sgst)          AS total_sgst,
                   SUM(COALESCE(si.taxable_value, 0) + COALESCE(si.gst_amount, 0)) AS grand_total
            FROM sale_items si
            JOIN sales s ON s.id = si.sale_id
            {where}
            """,
            params,
        )
        if not rows:
            return dict(EMPTY_GST_TOTALS)
        return self._money(rows[0], *EMPTY_GST_TOTALS.keys())
