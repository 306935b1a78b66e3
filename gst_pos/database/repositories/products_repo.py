# gst_pos/database/repositories/products_repo.py
from __future__ import annotations

import math
import sqlite3
from dataclasses import asdict, dataclass
from typing import Any, Callable, Iterable, Mapping, Optional

from ...utils.barcodes import BarcodeGenerator
from ...utils.loggers import get_logger
from ...utils.validators import blank_to_none, non_empty, try_parse_float, try_parse_int
from ..tx import immediate_tx
from .errors import DomainError, NotFoundError, ValidationError
from .results import Done, Failure, ImportResult, ImportSummary, ProductResult, ProductSaved, WriteResult

_log = get_logger(__name__)


@dataclass
class Product:
    id: int | None
    product_id: str | None
    name: str
    price: float
    stock: int
    category: str | None = None
    sub_category: str | None = None
    brand: str | None = None
    model_name: str | None = None
    unit: str | None = None
    hsn_code: str | None = None
    gst_percent: float | None = None
    barcode_value: str | None = None

    def to_dict(self) -> dict:
        return asdict(self)


_COLUMNS = (
    "id, product_id, name, price, stock, category, sub_category, brand, "
    "model_name, unit, hsn_code, gst_percent, barcode_value"
)

_TEXT_FIELDS = ("product_id", "category", "sub_category", "brand", "model_name", "unit", "hsn_code", "barcode_value")


def _pick(row: Mapping[str, Any], *keys: str) -> Any:
    """First present, non-blank value among `keys` (CSV headers vary)."""
    for k in keys:
        v = row.get(k)
        if v is not None and str(v).strip() != "":
            return v
    return None


def _percent(v: Any) -> Any:
    return str(v).strip().rstrip("%") if isinstance(v, str) else v


CategoryDefaults = Mapping[str, Mapping[str, Any]]


def apply_category_defaults(p: dict, defaults: CategoryDefaults) -> dict:
    """Fill a blank hsn_code / gst_percent from the product's category entry."""
    entry = defaults.get(p.get("category") or "")
    if entry:
        if p.get("hsn_code") is None:
            p["hsn_code"] = entry.get("hsn_code")
        if p.get("gst_percent") is None:
            p["gst_percent"] = entry.get("gst_percent")
    return p


class ProductsRepo:
    """
    Product catalog: CRUD, code lookup, CSV bulk import and barcode
    (re)generation. The barcode counter belongs to the injected
    BarcodeGenerator, one per open database.

    `category_defaults` returns the category -> {hsn_code, gst_percent} map
    used to fill in whatever a payload leaves blank.
    """

    def __init__(
        self,
        conn: sqlite3.Connection,
        barcodes: Optional[BarcodeGenerator] = None,
        category_defaults: Optional[Callable[[], CategoryDefaults]] = None,
    ):
        conn.row_factory = sqlite3.Row
        self.conn = conn
        self.barcodes = barcodes or BarcodeGenerator()
        self._category_defaults = category_defaults

    def category_defaults(self) -> CategoryDefaults:
        return self._category_defaults() if self._category_defaults else {}

    # ---------------------------- Reads ----------------------------

    def list_products(self) -> list[Product]:
        rows = self.conn.execute(f"SELECT {_COLUMNS} FROM products ORDER BY id DESC").fetchall()
        return [Product(**r) for r in rows]

    def get(self, pid: int) -> Product | None:
        r = self.conn.execute(f"SELECT {_COLUMNS} FROM products WHERE id=?", (pid,)).fetchone()
        return Product(**r) if r else None

    def find_by_code(self, raw_code: str) -> Product | None:
        """Barcode or product code; case- and space-insensitive."""
        code = "".join(str(raw_code or "").split()).upper()
        if not code:
            return None
        r = self.conn.execute(
            f"""
            SELECT {_COLUMNS} FROM products
            WHERE UPPER(REPLACE(barcode_value, ' ', '')) = ?
               OR UPPER(REPLACE(product_id, ' ', '')) = ?
            ORDER BY id
            LIMIT 1
            """,
            (code, code),
        ).fetchone()
        return Product(**r) if r else None

    def unique_categories(self) -> list[str]:
        rows = self.conn.execute(
            "SELECT DISTINCT category FROM products "
            "WHERE category IS NOT NULL AND TRIM(category) <> '' ORDER BY category"
        ).fetchall()
        return [r[0] for r in rows]

    def unique_sub_categories(self, category: str | None = None) -> list[str]:
        sql = (
            "SELECT DISTINCT sub_category FROM products "
            "WHERE sub_category IS NOT NULL AND TRIM(sub_category) <> ''"
        )
        params: list = []
        if category:
            sql += " AND category = ?"
            params.append(category)
        sql += " ORDER BY sub_category"
        return [r[0] for r in self.conn.execute(sql, params).fetchall()]

    def _code_taken(self, product_id: str | None, barcode: str | None, exclude_id: int | None = None) -> bool:
        checks = []
        if product_id:
            checks.append(("product_id", product_id))
        if barcode:
            checks.append(("barcode_value", barcode))
        for col, val in checks:
            sql = f"SELECT 1 FROM products WHERE {col} = ?"
            params: list = [val]
            if exclude_id is not None:
                sql += " AND id <> ?"
                params.append(exclude_id)
            if self.conn.execute(sql + " LIMIT 1", params).fetchone():
                return True
        return False

    # ---------------------------- Validation ----------------------------

    @staticmethod
    def clean(payload: Mapping[str, Any]) -> dict:
        """
        Normalize a product payload; raises ValidationError on bad input.
        Blank text fields become NULL (NULLs do not collide under UNIQUE).
        """
        if not non_empty(payload.get("name")):
            raise ValidationError("Product name is required.")
        ok, price = try_parse_float(payload.get("price"))
        if not ok or not math.isfinite(price) or price < 0:
            raise ValidationError("Price must be a non-negative number.")
        stock_raw = payload.get("stock")
        ok, stock = try_parse_int(0 if stock_raw in (None, "") else stock_raw)
        if not ok or stock < 0:
            raise ValidationError("Stock must be a non-negative whole number.")
        gst_raw = payload.get("gst_percent")
        gst = None
        if gst_raw not in (None, ""):
            ok, gst = try_parse_float(_percent(gst_raw))
            if not ok or not math.isfinite(gst) or gst < 0:
                raise ValidationError("GST percent must be a non-negative number.")

        out = {
            "name": str(payload["name"]).strip(),
            "price": price,
            "stock": stock,
            "gst_percent": gst,
        }
        for f in _TEXT_FIELDS:
            out[f] = blank_to_none(payload.get(f))
        return out

    # ---------------------------- Writes ----------------------------

    def generate_barcode(self, draft: Mapping[str, Any]) -> str:
        return self.barcodes.next_for(draft)

    def _insert(self, p: dict) -> int:
        cur = self.conn.execute(
            """
            INSERT INTO products (product_id, name, price, stock, category, sub_category,
                                  brand, model_name, unit, hsn_code, gst_percent, barcode_value)
            VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
            """,
            (
                p["product_id"], p["name"], p["price"], p["stock"], p["category"], p["sub_category"],
                p["brand"], p["model_name"], p["unit"], p["hsn_code"], p["gst_percent"], p["barcode_value"],
            ),
        )
        return int(cur.lastrowid)

    def add(self, payload: Mapping[str, Any]) -> ProductResult:
        try:
            p = apply_category_defaults(self.clean(payload), self.category_defaults())
            with immediate_tx(self.conn):
                if self._code_taken(p["product_id"], p["barcode_value"]):
                    raise ValidationError("Product code or barcode already exists.")
                if not p["barcode_value"]:
                    p["barcode_value"] = self.generate_barcode(p)
                new_id = self._insert(p)
        except DomainError as e:
            return Failure(e.message, kind=e.kind)
        except sqlite3.Error as e:
            _log.error("Failed to add product: %s", e)
            return Failure("Error adding product", kind="storage")
        return ProductSaved(id=new_id, barcode_value=p["barcode_value"])

    def update(self, pid: int, payload: Mapping[str, Any]) -> ProductResult:
        """
        Full edit of one product. A blank barcode keeps the stored one.
        Past sales keep their own snapshot of name/price/tax.
        """
        try:
            p = apply_category_defaults(self.clean(payload), self.category_defaults())
            with immediate_tx(self.conn):
                if self.get(pid) is None:
                    raise NotFoundError("Product not found")
                if self._code_taken(p["product_id"], p["barcode_value"], exclude_id=pid):
                    raise ValidationError("Product code or barcode already exists.")
                self.conn.execute(
                    """
                    UPDATE products
                    SET product_id=?, name=?, price=?, stock=?, category=?, sub_category=?,
                        brand=?, model_name=?, unit=?, hsn_code=?, gst_percent=?,
                        barcode_value=COALESCE(?, barcode_value)
                    WHERE id=?
                    """,
                    (
                        p["product_id"], p["name"], p["price"], p["stock"], p["category"],
                        p["sub_category"], p["brand"], p["model_name"], p["unit"], p["hsn_code"],
                        p["gst_percent"], p["barcode_value"], pid,
                    ),
                )
                saved = self.get(pid)
        except DomainError as e:
            return Failure(e.message, kind=e.kind)
        except sqlite3.Error as e:
            _log.error("Failed to update product %s: %s", pid, e)
            return Failure("Error updating product", kind="storage")
        return ProductSaved(id=pid, barcode_value=saved.barcode_value if saved else None)

    def delete(self, pid: int) -> WriteResult:
        try:
            with immediate_tx(self.conn):
                cur = self.conn.execute("DELETE FROM products WHERE id=?", (pid,))
                if cur.rowcount == 0:
                    raise NotFoundError("Product not found")
        except DomainError as e:
            return Failure(e.message, kind=e.kind)
        except sqlite3.Error as e:
            _log.error("Failed to delete product %s: %s", pid, e)
            return Failure("Error deleting product", kind="storage")
        return Done()

    def bulk_import(self, rows: Iterable[Mapping[str, Any]]) -> ImportResult:
        """
        Import catalog rows (CSV shape: product_id, name, category,
        price_selling or price, tax_rate or gst_percent, plus optional
        sub_category, brand, model_name, unit, hsn_code, stock, barcode_value).

        A blank HSN code or tax rate is taken from the category map.
        Rows without a name, with a bad price/tax, or whose product code or
        barcode already exists are skipped. One transaction for the batch.
        """
        imported = skipped = 0
        defaults = self.category_defaults()
        try:
            with immediate_tx(self.conn):
                for n, row in enumerate(rows, start=1):
                    draft = dict(row)
                    draft["price"] = _pick(row, "price_selling", "price")
                    draft["gst_percent"] = _pick(row, "tax_rate", "gst_percent")
                    try:
                        p = apply_category_defaults(self.clean(draft), defaults)
                    except ValidationError as e:
                        _log.info("Import row %d skipped: %s", n, e.message)
                        skipped += 1
                        continue
                    if self._code_taken(p["product_id"], p["barcode_value"]):
                        _log.info("Import row %d skipped: duplicate code %s", n, p["product_id"] or p["barcode_value"])
                        skipped += 1
                        continue
                    if not p["barcode_value"]:
                        p["barcode_value"] = self.generate_barcode(p)
                    self._insert(p)
                    imported += 1
        except sqlite3.Error as e:
            _log.error("Product import failed, rolled back: %s", e)
            return Failure(f"Error importing products: {e}", kind="storage")
        _log.info("Imported %d products (%d skipped)", imported, skipped)
        return ImportSummary(imported=imported, skipped=skipped)

    def regenerate_all_barcodes(self) -> WriteResult:
        """Clear every barcode and issue fresh ones in id order, counter from 1."""
        try:
            with immediate_tx(self.conn):
                self.conn.execute("UPDATE products SET barcode_value = NULL")
                self.barcodes.reset()
                products = self.conn.execute(f"SELECT {_COLUMNS} FROM products ORDER BY id").fetchall()
                for r in products:
                    self.conn.execute(
                        "UPDATE products SET barcode_value=? WHERE id=?",
                        (self.generate_barcode(dict(r)), r["id"]),
                    )
        except sqlite3.Error as e:
            _log.error("Barcode regeneration failed: %s", e)
            return Failure("Error regenerating barcodes", kind="storage")
        return Done(message=f"Regenerated {len(products)} barcodes")
