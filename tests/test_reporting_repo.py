# tests/test_reporting_repo.py
import pytest

from gst_pos.database import connect
from gst_pos.database.repositories import InvoiceFilter, ReportingRepo, SalesRepo, ValidationError

from conftest import sale_payload

PEN = {"name": "Pen", "price": 1180, "gst_percent": 18, "hsn_code": "9608"}
BOOK = {"name": "Notebook", "price": 105, "gst_percent": 5, "hsn_code": "4820"}


@pytest.fixture()
def seeded(conn, clock):
    sales = SalesRepo(conn, now=clock)
    for item, qty, ts, customer, inv in [
        (PEN, 1, "2025-07-28T09:00:00", "Asha", "INV202507280001"),
        (BOOK, 2, "2025-07-15T12:00:00", "Ravi Kumar", "INV202507150001"),
        (PEN, 2, "2025-03-01T10:00:00", None, "INV202503010001"),
        (BOOK, 1, "2024-12-31T18:00:00", None, "INV202412310001"),
    ]:
        res = sales.record_sale(
            sale_payload(dict(item, quantity=qty), timestamp=ts, customer_name=customer, invoice_no=inv)
        )
        assert res.success
    return ReportingRepo(conn, today=lambda: clock().date())


def test_dashboard_stats(seeded):
    stats = seeded.dashboard_stats()
    assert stats["today_sales"] == 1180.0
    assert stats["month_sales"] == 1390.0
    assert stats["year_sales"] == 3750.0
    assert stats["top_products"] == [
        {"name": "Notebook", "total_quantity": 3},
        {"name": "Pen", "total_quantity": 3},
    ]
    assert stats["monthly_sales_chart"] == [
        {"month": "2025-03", "total_sales": 2360.0},
        {"month": "2025-07", "total_sales": 1390.0},
    ]


def test_dashboard_on_empty_db(conn, clock):
    stats = ReportingRepo(conn, today=lambda: clock().date()).dashboard_stats()
    assert stats == {
        "today_sales": 0.0,
        "month_sales": 0.0,
        "year_sales": 0.0,
        "top_products": [],
        "monthly_sales_chart": [],
    }


def test_list_invoices_pages_newest_first(seeded):
    first = seeded.list_invoices(page=1, limit=3)
    assert first["total"] == 4
    assert [r["invoice_no"] for r in first["data"]] == [
        "INV202412310001",
        "INV202503010001",
        "INV202507150001",
    ]
    second = seeded.list_invoices(page=2, limit=3)
    assert [r["invoice_no"] for r in second["data"]] == ["INV202507280001"]
    assert (second["page"], second["limit"]) == (2, 3)
    assert first["data"][0]["item_count"] == 1


def test_list_invoices_date_range_is_inclusive(seeded):
    res = seeded.list_invoices(InvoiceFilter(start_date="2025-07-15", end_date="2025-07-28"))
    assert res["total"] == 2


def test_list_invoices_search(seeded):
    assert seeded.list_invoices(InvoiceFilter(search="ravi"))["total"] == 1
    assert seeded.list_invoices(InvoiceFilter(search="INV2025"))["total"] == 3


def test_recent_invoices(seeded):
    assert len(seeded.recent_invoices(limit=2)) == 2


def test_invoice_details(seeded):
    sale = seeded.invoice_details(1)
    assert sale["invoice_no"] == "INV202507280001"
    assert sale["customer_name"] == "Asha"
    (item,) = sale["items"]
    assert (item["name"], item["quantity"], item["taxable_value"], item["cgst"]) == ("Pen", 1, 1000.0, 90.0)
    assert seeded.invoice_details(999) is None


def test_invoices_for_export_oldest_first(seeded):
    rows = seeded.invoices_for_export()
    assert [r["invoice_no"] for r in rows] == [
        "INV202412310001",
        "INV202503010001",
        "INV202507150001",
        "INV202507280001",
    ]
    last = rows[-1]
    assert last["item_name"] == "Pen"
    assert last["line_total"] == 1180.0
    assert last["total"] == 1180.0


def test_gst_summary_groups_by_hsn_and_rate(seeded):
    assert seeded.gst_summary() == [
        {
            "hsn_code": "4820", "gst_percent": 5.0, "quantity": 3,
            "taxable_value": 300.0, "cgst": 7.5, "sgst": 7.5, "gst_amount": 15.0, "total": 315.0,
        },
        {
            "hsn_code": "9608", "gst_percent": 18.0, "quantity": 3,
            "taxable_value": 3000.0, "cgst": 270.0, "sgst": 270.0, "gst_amount": 540.0, "total": 3540.0,
        },
    ]


def test_gst_totals(seeded):
    assert seeded.gst_totals() == {
        "total_taxable_value": 3300.0,
        "total_gst_amount": 555.0,
        "total_cgst": 277.5,
        "total_sgst": 277.5,
        "grand_total": 3855.0,
    }
    july = seeded.gst_totals(InvoiceFilter(start_date="2025-07-01", end_date="2025-07-31"))
    assert july["grand_total"] == 1390.0


def test_gst_totals_empty_range_is_zero(seeded):
    totals = seeded.gst_totals(InvoiceFilter(start_date="2030-01-01"))
    assert set(totals.values()) == {0.0}


def test_filter_from_mapping_accepts_camel_case():
    flt = InvoiceFilter.from_mapping({"startDate": "2025-01-01", "endDate": "", "searchQuery": " x "})
    assert flt == InvoiceFilter(start_date="2025-01-01", end_date=None, search="x")


def test_filter_rejects_bad_dates():
    with pytest.raises(ValidationError):
        InvoiceFilter(start_date="28/07/2025")


def test_storage_errors_read_as_empty(db_path, conn):
    other = connect(db_path)
    repo = ReportingRepo(other)
    other.close()
    assert repo.list_invoices()["data"] == []
    assert repo.gst_summary() == []
    assert repo.gst_totals()["grand_total"] == 0.0
    assert repo.invoice_details(1) is None
