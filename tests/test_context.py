# tests/test_context.py
import pytest

from gst_pos import PosContext
from gst_pos.database.schema import SchemaError

from conftest import make_legacy_db, product_payload, sale_payload


def test_open_resolves_when_no_path_given(resolver, clock):
    make_legacy_db(resolver.legacy_path, products=2)
    with PosContext.open(now=clock, resolver=resolver) as pos:
        assert pos.db_path == resolver.legacy_path
        assert len(pos.list_products()) == 2
        assert pos.resolve_database_path() == resolver.legacy_path
    assert pos.conn is None


def test_fresh_contexts_do_not_share_counters(tmp_path, clock, resolver):
    a = PosContext.open(tmp_path / "a.db", now=clock, resolver=resolver)
    b = PosContext.open(tmp_path / "b.db", now=clock, resolver=resolver)
    try:
        a.add_product(product_payload())
        a.add_product(product_payload(name="Two"))
        assert b.add_product(product_payload()).barcode_value == "GRRDA0001BR"
        assert a.barcodes is not b.barcodes
    finally:
        a.close()
        b.close()


def test_counter_seeded_on_open(db_path, clock, resolver):
    with PosContext.open(db_path, now=clock, resolver=resolver) as pos:
        pos.add_product(product_payload())
        pos.add_product(product_payload(name="Two"))
    with PosContext.open(db_path, now=clock, resolver=resolver) as pos:
        assert pos.generate_barcode(product_payload()) == "GRRDA0003BR"


def test_sale_flow_through_context(ctx):
    pid = ctx.add_product(product_payload(stock=10)).id
    res = ctx.record_sale(sale_payload({"id": pid, "name": "Rice", "price": 118, "quantity": 3, "gst_percent": 5}))
    assert res.success
    assert ctx.get_product(pid).stock == 7
    assert ctx.get_invoice_details(res.sale_id)["invoice_no"] == res.invoice_no
    assert ctx.get_invoices({"searchQuery": res.invoice_no})["total"] == 1
    assert ctx.get_invoices(page=1, limit=5)["limit"] == 5
    assert ctx.get_dashboard_stats()["today_sales"] == 354.0
    assert ctx.get_gst_totals()["grand_total"] == 354.0
    assert len(ctx.get_gst_summary()) == 1
    assert len(ctx.export_invoice_rows()) == 1
    assert ctx.get_recent_invoices()[0]["invoice_no"] == res.invoice_no


def test_next_invoice_number_follows_clock(ctx, clock):
    assert ctx.next_invoice_number() == "INV202507280001"
    clock.advance(days=3)
    assert ctx.next_invoice_number() == "INV202507310001"


def test_stock_guard_option(db_path, clock, resolver):
    with PosContext.open(db_path, now=clock, resolver=resolver, enforce_stock=True) as pos:
        pid = pos.add_product(product_payload(stock=1)).id
        res = pos.record_sale(sale_payload({"id": pid, "name": "Rice", "price": 118, "quantity": 2}))
        assert res.kind == "insufficient_stock"


def test_catalog_helpers(ctx):
    ctx.add_product(product_payload(product_id="R1"))
    assert ctx.find_by_code("r1").product_id == "R1"
    assert ctx.unique_sub_categories("Grocery") == ["Rice"]
    assert ctx.bulk_import_products([{"name": "Tea", "price": "10"}]).imported == 1
    assert ctx.regenerate_all_barcodes().success
    pid = ctx.list_products()[0].id
    assert ctx.update_product(pid, product_payload(name="Green Tea", product_id="T1")).success
    assert ctx.delete_product(pid).success


def test_settings_round_trip(ctx):
    assert ctx.get_store_settings() is None
    ctx.save_store_settings({"store_name": "Shop"})
    assert ctx.get_store_settings()["store_name"] == "Shop"


def test_full_dump_round_trip(ctx):
    ctx.add_product(product_payload())
    dump = ctx.export_full_dump()
    ctx.add_product(product_payload(name="Extra"))
    assert ctx.import_full_dump(dump).success
    assert [p.name for p in ctx.list_products()] == ["Basmati Rice 1kg"]


def test_init_schema_is_repeatable(ctx):
    assert ctx.init_schema() == ctx.init_schema()


def test_schema_error_propagates_from_open(tmp_path, clock, resolver, monkeypatch):
    import gst_pos.context as context

    def fail(conn, today=None):
        raise SchemaError("disk full")

    monkeypatch.setattr(context, "_init_schema", fail)
    with pytest.raises(SchemaError):
        PosContext.open(tmp_path / "x.db", now=clock, resolver=resolver)


def test_category_map_feeds_product_defaults(ctx):
    assert ctx.save_category_map({"Stationery": {"hsn": "9608", "gst": "18"}, "Grocery": {}}).success
    pid = ctx.add_product(product_payload(category="Stationery", hsn_code="", gst_percent="")).id
    assert (ctx.get_product(pid).hsn_code, ctx.get_product(pid).gst_percent) == ("9608", 18.0)
    ctx.add_product(product_payload(category="Toys", name="Ball"))
    assert ctx.list_categories() == ["Stationery", "Grocery", "Toys"]


def test_category_map_travels_with_dump(ctx):
    ctx.save_category_map({"Stationery": {"hsn": "9608", "gst": "18"}})
    dump = ctx.export_full_dump()
    ctx.save_category_map({})
    assert ctx.import_full_dump(dump).success
    assert ctx.get_category_map() == {"Stationery": {"hsn_code": "9608", "gst_percent": 18.0}}


@pytest.mark.parametrize("flt", [{"start_date": "28-07-2025"}, {"endDate": "2025/07/31"}])
def test_reads_with_malformed_dates_return_nothing(ctx, flt, caplog):
    ctx.record_sale(sale_payload())
    with caplog.at_level("WARNING"):
        assert ctx.get_invoices(flt) == {"data": [], "total": 0, "page": 1, "limit": 10}
        assert ctx.get_gst_summary(flt) == []
        assert ctx.export_invoice_rows(flt) == []
        totals = ctx.get_gst_totals(flt)
    assert set(totals.values()) == {0.0}
    assert "expected YYYY-MM-DD" in caplog.text


def test_gst_report_with_malformed_date_fails_cleanly(ctx, tmp_path):
    res = ctx.export_gst_report({"startDate": "yesterday"}, tmp_path / "gst.xlsx")
    assert (res.success, res.kind) == (False, "validation")
    assert not (tmp_path / "gst.xlsx").exists()
