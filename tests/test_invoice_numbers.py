# tests/test_invoice_numbers.py
from datetime import date

import pytest

from gst_pos.database.repositories import InvoiceNumberRepo, format_invoice_number


@pytest.fixture()
def invoices(conn, clock):
    return InvoiceNumberRepo(conn, today=lambda: clock().date())


def test_format():
    assert format_invoice_number(date(2025, 7, 28), 1) == "INV202507280001"
    assert format_invoice_number(date(2025, 1, 2), 12345) == "INV2025010212345"


def test_same_day_numbers_increase(invoices):
    assert [invoices.next_invoice_number() for _ in range(3)] == [
        "INV202507280001",
        "INV202507280002",
        "INV202507280003",
    ]


def test_new_day_resets_to_one(invoices, clock):
    invoices.next_invoice_number()
    invoices.next_invoice_number()
    clock.advance(days=1)
    assert invoices.next_invoice_number() == "INV202507290001"
    assert invoices.current_state() == ("2025-07-29", 1)


def test_lifetime_counter_keeps_counting_across_days(invoices, conn, clock):
    invoices.next_invoice_number()
    clock.advance(days=1)
    invoices.next_invoice_number()
    assert conn.execute("SELECT last_number FROM invoice_counter WHERE id=1").fetchone()[0] == 2


def test_missing_counter_row_is_recreated(invoices, conn):
    conn.execute("DELETE FROM invoice_daily_counter")
    conn.commit()
    assert invoices.next_invoice_number() == "INV202507280001"
    assert invoices.current_state() == ("2025-07-28", 1)


def test_state_survives_reopen(db_path, clock, conn):
    InvoiceNumberRepo(conn, today=lambda: clock().date()).next_invoice_number()
    conn.close()

    from gst_pos.database import connect

    again = connect(db_path)
    try:
        assert InvoiceNumberRepo(again, today=lambda: clock().date()).next_invoice_number() == "INV202507280002"
    finally:
        again.close()


def test_numbers_from_concurrent_connections_are_distinct(db_path, clock, conn):
    from gst_pos.database import connect

    other = connect(db_path)
    try:
        a = InvoiceNumberRepo(conn, today=lambda: clock().date())
        b = InvoiceNumberRepo(other, today=lambda: clock().date())
        got = [a.next_invoice_number(), b.next_invoice_number(), a.next_invoice_number()]
    finally:
        other.close()
    assert len(set(got)) == 3
