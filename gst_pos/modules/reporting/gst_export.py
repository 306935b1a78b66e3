"""
GST report export.

Writes an Excel workbook with three sheets:

  GST Summary       totals for the filtered period
  GST Slab Summary  one row per (HSN code, GST rate)
  Invoice Lines     one row per sale item

If the workbook cannot be written (file locked by Excel, openpyxl failure)
the invoice lines are written as CSV next to the requested path instead and
the result is flagged as a fallback.
"""

from __future__ import annotations

import csv
from datetime import datetime
from pathlib import Path
from typing import Callable, Iterable, Optional, Sequence

from openpyxl import Workbook
from openpyxl.styles import Font
from openpyxl.utils import get_column_letter

from ...database.repositories.reporting_repo import InvoiceFilter, ReportingRepo
from ...database.repositories.results import Failure, FileResult, FileWritten
from ...utils.helpers import clean_text, fmt_percent
from ...utils.loggers import get_logger

_log = get_logger(__name__)

MONEY_FORMAT = "#,##0.00"

SUMMARY_SHEET = "GST Summary"
SLAB_SHEET = "GST Slab Summary"
LINES_SHEET = "Invoice Lines"

_SUMMARY_ROWS = (
    ("Total Taxable Value", "total_taxable_value"),
    ("Total GST Amount", "total_gst_amount"),
    ("Total CGST", "total_cgst"),
    ("Total SGST", "total_sgst"),
    ("Grand Total", "grand_total"),
)

# (header, width)
_SLAB_COLUMNS = (
    ("HSN Code", 14), ("GST %", 10), ("Taxable Value (₹)", 18), ("CGST (₹)", 14),
    ("SGST (₹)", 14), ("Total GST (₹)", 16), ("Total Value (₹)", 18),
)
_LINE_COLUMNS = (
    ("Invoice No", 18), ("Date/Time", 22), ("Customer", 24), ("GSTIN", 18), ("Item", 36),
    ("Qty", 8), ("Price", 12), ("GST %", 10), ("Taxable (₹)", 14), ("CGST (₹)", 12),
    ("SGST (₹)", 12), ("Total (₹)", 14),
)
CSV_HEADER = (
    "InvoiceNo", "Date", "CustomerName", "CustomerGSTIN", "Total", "ItemName", "Quantity",
    "Price", "GSTPercent", "TaxableValue", "GSTAmount", "CGST", "SGST",
)


def default_report_path(now: Optional[datetime] = None) -> Path:
    stamp = (now or datetime.now()).strftime("%Y-%m-%d-%H-%M-%S")
    return Path.home() / "Downloads" / f"gst-report-{stamp}.xlsx"


def _add_sheet(wb: Workbook, title: str, columns: Sequence[tuple[str, int]], first: bool = False):
    ws = wb.active if first else wb.create_sheet()
    ws.title = title
    ws.append([h for h, _ in columns])
    for idx, (_, width) in enumerate(columns, start=1):
        ws.cell(row=1, column=idx).font = Font(bold=True)
        ws.column_dimensions[get_column_letter(idx)].width = width
    return ws


def _money_cols(ws, cols: Iterable[int]) -> None:
    for col in cols:
        for (cell,) in ws.iter_rows(min_row=2, min_col=col, max_col=col):
            cell.number_format = MONEY_FORMAT


def build_workbook(totals: dict, slabs: list[dict], lines: list[dict]) -> Workbook:
    wb = Workbook()

    ws = _add_sheet(wb, SUMMARY_SHEET, (("Description", 28), ("Amount (₹)", 18)), first=True)
    for label, key in _SUMMARY_ROWS:
        ws.append([label, float(totals.get(key) or 0)])
    _money_cols(ws, (2,))

    ws = _add_sheet(wb, SLAB_SHEET, _SLAB_COLUMNS)
    for r in slabs:
        ws.append([
            r.get("hsn_code") or "NA",
            fmt_percent(r.get("gst_percent")),
            r.get("taxable_value") or 0,
            r.get("cgst") or 0,
            r.get("sgst") or 0,
            r.get("gst_amount") or 0,
            r.get("total") or 0,
        ])
    _money_cols(ws, range(3, 8))

    ws = _add_sheet(wb, LINES_SHEET, _LINE_COLUMNS)
    for r in lines:
        ws.append([
            r.get("invoice_no") or "",
            r.get("timestamp") or "",
            clean_text(r.get("customer_name")),
            clean_text(r.get("customer_gstin")),
            clean_text(r.get("item_name")),
            int(r.get("quantity") or 0),
            r.get("price") or 0,
            fmt_percent(r.get("gst_percent")),
            r.get("taxable_value") or 0,
            r.get("cgst") or 0,
            r.get("sgst") or 0,
            r.get("line_total") or 0,
        ])
    _money_cols(ws, (7, 9, 10, 11, 12))
    return wb


def write_lines_csv(lines: list[dict], path: Path) -> Path:
    path.parent.mkdir(parents=True, exist_ok=True)
    with open(path, "w", newline="", encoding="utf-8") as fh:
        w = csv.writer(fh)
        w.writerow(CSV_HEADER)
        for r in lines:
            w.writerow([
                r.get("invoice_no") or "",
                r.get("timestamp") or "",
                clean_text(r.get("customer_name")),
                clean_text(r.get("customer_gstin")),
                r.get("total") or 0,
                clean_text(r.get("item_name")),
                r.get("quantity") or 0,
                r.get("price") or 0,
                r.get("gst_percent") or 0,
                r.get("taxable_value") or 0,
                r.get("gst_amount") or 0,
                r.get("cgst") or 0,
                r.get("sgst") or 0,
            ])
    return path


def csv_fallback_path(xlsx_path: Path, now: Optional[datetime] = None) -> Path:
    stamp = (now or datetime.now()).strftime("%Y-%m-%d-%H-%M-%S")
    return xlsx_path.with_name(f"{xlsx_path.stem}-{stamp}.csv")


def export_gst_report(
    reports: ReportingRepo,
    flt: InvoiceFilter = InvoiceFilter(),
    out_path: str | Path | None = None,
    *,
    now: Optional[Callable[[], datetime]] = None,
    build: Callable[[dict, list, list], Workbook] = build_workbook,
) -> FileResult:
    """
    Export the filtered GST report. Returns FileWritten(path, fallback=False)
    for the workbook, FileWritten(csv_path, fallback=True) when only the CSV
    could be written, or Failure when neither could.
    """
    clock = now or datetime.now
    target = Path(out_path) if out_path else default_report_path(clock())
    if target.suffix.lower() != ".xlsx":
        target = target.with_suffix(".xlsx")

    totals = reports.gst_totals(flt)
    slabs = reports.gst_summary(flt)
    lines = reports.invoices_for_export(flt)

    try:
        target.parent.mkdir(parents=True, exist_ok=True)
        build(totals, slabs, lines).save(str(target))
    except Exception as exc:  # openpyxl raises a wide range of errors on save
        _log.error("Excel export failed (%s); writing CSV fallback", exc)
        fallback = csv_fallback_path(target, clock())
        try:
            write_lines_csv(lines, fallback)
        except OSError as csv_exc:
            _log.error("CSV fallback failed: %s", csv_exc)
            return Failure("Failed to generate both Excel and CSV. Please try again.", kind="storage")
        return FileWritten(
            path=str(fallback), fallback=True, message="Excel failed. Created CSV fallback instead."
        )

    _log.info("GST report written to %s (%d lines)", target, len(lines))
    return FileWritten(path=str(target), message="Report exported.")


__all__ = [
    "export_gst_report",
    "build_workbook",
    "write_lines_csv",
    "default_report_path",
    "csv_fallback_path",
    "SUMMARY_SHEET",
    "SLAB_SHEET",
    "LINES_SHEET",
]
