from __future__ import annotations

import math
import sqlite3
from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal
from typing import Any, Callable, Iterable, Mapping, Optional

from ...constants import DEFAULT_PAYMENT_METHOD
from ...utils.helpers import now_iso
from ...utils.loggers import get_logger
from ...utils.validators import blank_to_none, non_empty, try_parse_float, try_parse_int
from ..schema import ensure_columns
from ..tx import immediate_tx
from .errors import DomainError, InsufficientStockError, ValidationError
from .gst import GstBreakdown, compute_gst
from .invoice_repo import InvoiceNumberRepo
from .results import Failure, SaleRecorded, SaleResult

_log = get_logger(__name__)


@dataclass
class SaleLine:
    name: str
    price: float
    quantity: int
    gst_percent: float = 0.0
    product_id: int | None = None  # products.id; None for ad hoc items
    hsn_code: str | None = None
    discount: float = 0.0


@dataclass
class SaleRequest:
    items: list[SaleLine]
    invoice_no: str | None = None
    timestamp: str | None = None
    payment_method: str = DEFAULT_PAYMENT_METHOD
    customer_name: str | None = None
    customer_phone: str | None = None
    customer_gstin: str | None = None

    @classmethod
    def from_payload(cls, payload: Mapping[str, Any]) -> "SaleRequest":
        """
        Build a request from a loose mapping (checkout screen / import shape).
        Unparseable numbers raise ValidationError; range checks are left to
        validate().

        Item keys: name, price, quantity, gst_percent, hsn_code, discount and
        the product row reference as `id` (or an integer `product_id`).
        """
        if not isinstance(payload, Mapping):
            raise ValidationError("Sale request must be a mapping.")
        raw_items = payload.get("items")
        if not isinstance(raw_items, (list, tuple)) or not raw_items:
            raise ValidationError("Sale must contain at least one item.")

        lines: list[SaleLine] = []
        for n, raw in enumerate(raw_items, start=1):
            if not isinstance(raw, Mapping):
                raise ValidationError(f"Item {n}: expected an object.")
            ok_p, price = try_parse_float(raw.get("price"))
            if not ok_p:
                raise ValidationError(f"Item {n}: price must be a number.")
            ok_q, qty = try_parse_int(raw.get("quantity"))
            if not ok_q:
                raise ValidationError(f"Item {n}: quantity must be a whole number.")
            gst_raw = raw.get("gst_percent")
            ok_g, gst = try_parse_float(0 if gst_raw in (None, "") else gst_raw)
            if not ok_g:
                raise ValidationError(f"Item {n}: GST percent must be a number.")
            disc_raw = raw.get("discount")
            ok_d, disc = try_parse_float(0 if disc_raw in (None, "") else disc_raw)
            if not ok_d:
                raise ValidationError(f"Item {n}: discount must be a number.")

            ref = raw.get("id")
            if ref in (None, ""):
                ref = raw.get("product_id")
            ok_r, ref_id = try_parse_int(ref) if ref not in (None, "") else (False, None)

            lines.append(
                SaleLine(
                    name=str(raw.get("name") or "").strip(),
                    price=price,
                    quantity=qty,
                    gst_percent=gst,
                    product_id=ref_id if ok_r else None,
                    hsn_code=blank_to_none(raw.get("hsn_code")),
                    discount=disc,
                )
            )

        return cls(
            items=lines,
            invoice_no=blank_to_none(payload.get("invoice_no")),
            timestamp=blank_to_none(payload.get("timestamp")),
            payment_method=blank_to_none(payload.get("payment_method")) or DEFAULT_PAYMENT_METHOD,
            customer_name=blank_to_none(payload.get("customer_name")),
            customer_phone=blank_to_none(payload.get("customer_phone")),
            customer_gstin=blank_to_none(payload.get("customer_gstin")),
        )

    def validate(self) -> None:
        if not self.items:
            raise ValidationError("Sale must contain at least one item.")
        for n, line in enumerate(self.items, start=1):
            if not non_empty(line.name):
                raise ValidationError(f"Item {n}: name is required.")
            for label, value in (("price", line.price), ("GST percent", line.gst_percent), ("discount", line.discount)):
                if value is not None and not math.isfinite(value):
                    raise ValidationError(f"Item {n}: {label} must be a finite number.")
            if line.price is None or line.price < 0:
                raise ValidationError(f"Item {n}: price cannot be negative.")
            if isinstance(line.quantity, bool) or not isinstance(line.quantity, int) or line.quantity <= 0:
                raise ValidationError(f"Item {n}: quantity must be a positive whole number.")
            if line.gst_percent is not None and line.gst_percent < 0:
                raise ValidationError(f"Item {n}: GST percent cannot be negative.")
            discount = line.discount or 0
            if discount < 0:
                raise ValidationError(f"Item {n}: discount cannot be negative.")
            if discount > line.price * line.quantity:
                raise ValidationError(f"Item {n}: discount exceeds the line amount.")


@dataclass
class _PricedLine:
    line: SaleLine
    gst: GstBreakdown = field(repr=False)


class SalesRepo:
    """
    Sale transaction engine.

    record_sale() writes the sale header, its items and the stock decrements
    in one IMMEDIATE transaction. Any failure rolls all of it back (including
    the invoice number drawn for it) and comes back as a Failure.

    With enforce_stock=True the decrement only applies when enough stock is
    on hand; otherwise the whole sale fails with kind="insufficient_stock".
    """

    def __init__(
        self,
        conn: sqlite3.Connection,
        invoices: Optional[InvoiceNumberRepo] = None,
        now: Optional[Callable[[], datetime]] = None,
        enforce_stock: bool = False,
    ):
        conn.row_factory = sqlite3.Row
        self.conn = conn
        self._now = now or datetime.now
        self._invoices = invoices or InvoiceNumberRepo(conn, today=lambda: self._now().date())
        self.enforce_stock = enforce_stock

    # ------------------------------------------------------------------
    # Internal writes (run inside record_sale's transaction)
    # ------------------------------------------------------------------
    def _insert_header(self, req: SaleRequest, invoice_no: str, timestamp: str, total: Decimal) -> int:
        cur = self.conn.execute(
            """
            INSERT INTO sales (total, timestamp, invoice_no, payment_method,
                               customer_name, customer_phone, customer_gstin)
            VALUES (?, ?, ?, ?, ?, ?, ?)
            """,
            (
                float(total),
                timestamp,
                invoice_no,
                req.payment_method or DEFAULT_PAYMENT_METHOD,
                req.customer_name,
                req.customer_phone,
                req.customer_gstin,
            ),
        )
        return int(cur.lastrowid)

    def _insert_item(self, sale_id: int, priced: _PricedLine) -> int:
        line, gst = priced.line, priced.gst
        cur = self.conn.execute(
            """
            INSERT INTO sale_items (sale_id, product_id, name, price, quantity,
                                    hsn_code, gst_percent, taxable_value,
                                    gst_amount, cgst, sgst)
            VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
            """,
            (
                sale_id,
                line.product_id,
                line.name.strip(),
                float(line.price),
                int(line.quantity),
                line.hsn_code,
                line.gst_percent,
                float(gst.taxable_value),
                float(gst.gst_amount),
                float(gst.cgst),
                float(gst.sgst),
            ),
        )
        return int(cur.lastrowid)

    def _decrement_stock(self, product_id: int, quantity: int) -> bool:
        """
        Relative decrement of products.stock. Returns False when the reference
        does not resolve to a product row (nothing to decrement).
        """
        if not self.enforce_stock:
            cur = self.conn.execute(
                "UPDATE products SET stock = stock - ? WHERE id = ?",
                (quantity, product_id),
            )
            return cur.rowcount > 0

        cur = self.conn.execute(
            "UPDATE products SET stock = stock - ? WHERE id = ? AND stock >= ?",
            (quantity, product_id, quantity),
        )
        if cur.rowcount > 0:
            return True
        row = self.conn.execute("SELECT stock FROM products WHERE id = ?", (product_id,)).fetchone()
        if row is None:
            return False
        raise InsufficientStockError(product_id, quantity, int(row["stock"]))

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------
    def price_lines(self, items: Iterable[SaleLine]) -> list[_PricedLine]:
        return [
            _PricedLine(line, compute_gst(line.price, line.quantity, line.gst_percent, line.discount))
            for line in items
        ]

    def record_sale(self, request: SaleRequest | Mapping[str, Any]) -> SaleResult:
        try:
            req = request if isinstance(request, SaleRequest) else SaleRequest.from_payload(request)
            req.validate()
            priced = self.price_lines(req.items)
        except ValidationError as e:
            _log.warning("Sale rejected: %s", e.message)
            return Failure(e.message, kind=e.kind)

        total = sum((p.gst.line_total for p in priced), Decimal("0"))
        timestamp = req.timestamp or now_iso(self._now())

        try:
            with immediate_tx(self.conn):
                ensure_columns(self.conn, "sales")
                invoice_no = req.invoice_no or self._invoices.next_invoice_number()
                sale_id = self._insert_header(req, invoice_no, timestamp, total)
                for p in priced:
                    self._insert_item(sale_id, p)
                    if p.line.product_id is not None:
                        self._decrement_stock(p.line.product_id, p.line.quantity)
        except DomainError as e:
            _log.warning("Sale failed: %s", e.message)
            return Failure(e.message, kind=e.kind)
        except sqlite3.Error as e:
            _log.error("Sale failed, rolled back: %s", e)
            return Failure(f"Error saving sale: {e}", kind="storage")

        _log.info("Recorded sale %s (%s) total=%.2f", sale_id, invoice_no, total)
        return SaleRecorded(sale_id=sale_id, invoice_no=invoice_no, total=float(total))
