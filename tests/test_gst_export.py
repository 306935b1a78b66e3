# tests/test_gst_export.py
import csv

import pytest
from openpyxl import load_workbook

from gst_pos.database.repositories import InvoiceFilter
from gst_pos.modules.reporting.gst_export import (
    CSV_HEADER,
    LINES_SHEET,
    SLAB_SHEET,
    SUMMARY_SHEET,
    export_gst_report,
)

from conftest import sale_payload


@pytest.fixture()
def sold(ctx):
    ctx.record_sale(
        sale_payload(
            {"name": "Pen", "price": 1180, "quantity": 1, "gst_percent": 18, "hsn_code": "9608"},
            {"name": "Notebook", "price": 105, "quantity": 2, "gst_percent": 5},
            customer_name="Asha",
        )
    )
    ctx.record_sale(sale_payload(timestamp="2025-06-01T09:00:00"))
    return ctx


def _boom(*args):
    raise PermissionError("file is open in Excel")


def test_workbook_has_three_sheets(sold, tmp_path):
    res = sold.export_gst_report({"startDate": "2025-07-01"}, tmp_path / "out" / "gst.xlsx")
    assert res.success and not res.fallback
    wb = load_workbook(res.path)
    assert wb.sheetnames == [SUMMARY_SHEET, SLAB_SHEET, LINES_SHEET]

    summary = [tuple(r) for r in wb[SUMMARY_SHEET].iter_rows(min_row=2, values_only=True)]
    assert summary == [
        ("Total Taxable Value", 1200.0),
        ("Total GST Amount", 190.0),
        ("Total CGST", 95.0),
        ("Total SGST", 95.0),
        ("Grand Total", 1390.0),
    ]

    slabs = list(wb[SLAB_SHEET].iter_rows(min_row=2, values_only=True))
    assert [(r[0], r[1]) for r in slabs] == [("NA", "5.00%"), ("9608", "18.00%")]

    lines = list(wb[LINES_SHEET].iter_rows(min_row=2, values_only=True))
    assert len(lines) == 2
    assert lines[0][0] == "INV202507280001"
    assert lines[0][2] == "Asha"
    assert lines[0][4] == "Pen"
    assert lines[0][11] == 1180.0


def test_suffix_forced_to_xlsx(sold, tmp_path):
    res = sold.export_gst_report(None, tmp_path / "gst.report")
    assert res.path.endswith("gst.xlsx")


def test_csv_fallback_when_workbook_fails(sold, tmp_path, clock):
    res = export_gst_report(sold.reports, InvoiceFilter(), tmp_path / "gst.xlsx", now=clock, build=_boom)
    assert res.success
    assert res.fallback
    assert res.path.endswith("gst-2025-07-28-10-30-00.csv")

    with open(res.path, newline="", encoding="utf-8") as fh:
        rows = list(csv.reader(fh))
    assert tuple(rows[0]) == CSV_HEADER
    assert len(rows) == 4
    assert rows[1][1] == "2025-06-01T09:00:00"


def test_failure_when_neither_can_be_written(sold, tmp_path, clock):
    blocker = tmp_path / "blocker"
    blocker.write_text("not a folder")
    res = export_gst_report(sold.reports, InvoiceFilter(), blocker / "gst.xlsx", now=clock)
    assert not res.success
    assert res.kind == "storage"


def test_empty_period_still_exports(ctx, tmp_path):
    res = ctx.export_gst_report(InvoiceFilter(start_date="2030-01-01"), tmp_path / "empty.xlsx")
    assert res.success
    wb = load_workbook(res.path)
    assert wb[LINES_SHEET].max_row == 1
