"""
gst_pos/context.py

One open database and everything that works on it.

PosContext owns the connection, the clock and the barcode counter and hands
them to each repository, so nothing in the package keeps module-level state.
The UI (or the maintenance CLI) opens one context at start-up:

    with PosContext.open() as pos:
        result = pos.record_sale({...})

Open resolves the database of record, applies the schema and seeds the
barcode counter. A SchemaError propagates; the caller must not continue.
"""

from __future__ import annotations

import sqlite3
from datetime import datetime
from pathlib import Path
from typing import Any, Callable, Iterable, Mapping, Optional, Union

from .constants import DEFAULT_PAGE_SIZE
from .database import connect
from .database.db_path import DbPathResolver
from .database.repositories import (
    DumpRepo,
    InvoiceFilter,
    InvoiceNumberRepo,
    Product,
    ProductsRepo,
    ReportingRepo,
    SalesRepo,
    SettingsRepo,
    ValidationError,
)
from .database.repositories.results import (
    Failure,
    FileResult,
    ImportResult,
    ProductResult,
    SaleResult,
    WriteResult,
)
from .database.repositories.reporting_repo import EMPTY_GST_TOTALS
from .database.schema import SchemaError
from .database.schema import init_schema as _init_schema
from .modules import printing
from .modules.backup_restore import BackupService
from .modules.reporting.gst_export import export_gst_report
from .utils.barcodes import BarcodeGenerator
from .utils.loggers import get_logger

_log = get_logger(__name__)

FilterLike = Union[InvoiceFilter, Mapping[str, Any], None]


def _as_filter(flt: FilterLike) -> InvoiceFilter:
    if isinstance(flt, InvoiceFilter):
        return flt
    return InvoiceFilter.from_mapping(flt)


class PosContext:
    def __init__(
        self,
        db_path: str | Path,
        *,
        now: Optional[Callable[[], datetime]] = None,
        enforce_stock: bool = False,
        resolver: Optional[DbPathResolver] = None,
    ) -> None:
        self.db_path = Path(db_path)
        self.now = now or datetime.now
        self.enforce_stock = enforce_stock
        self.resolver = resolver
        self.conn: Optional[sqlite3.Connection] = None
        self.barcodes = BarcodeGenerator()

    # ------------------------------------------------------------------
    # lifecycle
    # ------------------------------------------------------------------
    @classmethod
    def open(
        cls,
        db_path: Optional[str | Path] = None,
        *,
        now: Optional[Callable[[], datetime]] = None,
        enforce_stock: bool = False,
        resolver: Optional[DbPathResolver] = None,
    ) -> "PosContext":
        """Open db_path, or the resolved database of record when it is None."""
        resolver = resolver or DbPathResolver()
        path = Path(db_path) if db_path is not None else resolver.resolve()
        ctx = cls(path, now=now, enforce_stock=enforce_stock, resolver=resolver)
        ctx.reopen()
        return ctx

    def reopen(self) -> None:
        self.close()
        conn = connect(self.db_path)
        try:
            _init_schema(conn, today=self.now().date())
        except SchemaError:
            conn.close()
            raise
        self.conn = conn
        self._wire()
        _log.info("Opened database %s", self.db_path)

    def _wire(self) -> None:
        conn = self.conn
        today = lambda: self.now().date()  # noqa: E731
        self.barcodes.reset()
        self.barcodes.seed_from_db(conn)
        self.invoices = InvoiceNumberRepo(conn, today=today)
        self.sales = SalesRepo(conn, invoices=self.invoices, now=self.now, enforce_stock=self.enforce_stock)
        self.reports = ReportingRepo(conn, today=today)
        self.settings = SettingsRepo(conn)
        self.products = ProductsRepo(conn, barcodes=self.barcodes, category_defaults=self.settings.category_map)
        self.dumps = DumpRepo(conn)
        self.backups = BackupService(
            self.db_path,
            export_dump=lambda: self.dumps.export_full_dump(),
            import_dump=lambda data: self.import_full_dump(data),
            now=self.now,
        )

    def close(self) -> None:
        if self.conn is not None:
            self.conn.close()
            self.conn = None

    # db_manager protocol used by BackupService.restore_from
    def close_all(self) -> None:
        self.close()

    def __enter__(self) -> "PosContext":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()

    # ------------------------------------------------------------------
    # database location / schema
    # ------------------------------------------------------------------
    def resolve_database_path(self) -> Path:
        return (self.resolver or DbPathResolver()).resolve()

    def migrate_database(self, old_path: str | Path) -> bool:
        return (self.resolver or DbPathResolver()).migrate(old_path)

    def init_schema(self, conn: Optional[sqlite3.Connection] = None) -> int:
        return _init_schema(conn or self.conn, today=self.now().date())

    # ------------------------------------------------------------------
    # sales / invoices
    # ------------------------------------------------------------------
    def record_sale(self, request) -> SaleResult:
        return self.sales.record_sale(request)

    def next_invoice_number(self) -> str:
        return self.invoices.next_invoice_number()

    # ------------------------------------------------------------------
    # reporting
    # ------------------------------------------------------------------
    def get_dashboard_stats(self) -> dict:
        return self.reports.dashboard_stats()

    # Reads never raise on a malformed filter; they log it and report no data.
    def _read_filter(self, flt: FilterLike, op: str) -> Optional[InvoiceFilter]:
        try:
            return _as_filter(flt)
        except ValidationError as e:
            _log.warning("%s: %s", op, e.message)
            return None

    def get_invoices(self, flt: FilterLike = None, page: int = 1, limit: Optional[int] = None) -> dict:
        f = self._read_filter(flt, "get_invoices")
        if f is None:
            return {"data": [], "total": 0, "page": max(1, int(page or 1)), "limit": limit or DEFAULT_PAGE_SIZE}
        if limit is None:
            return self.reports.list_invoices(f, page)
        return self.reports.list_invoices(f, page, limit)

    def get_recent_invoices(self) -> list[dict]:
        return self.reports.recent_invoices()

    def get_invoice_details(self, sale_id: int) -> dict | None:
        return self.reports.invoice_details(sale_id)

    def get_gst_summary(self, flt: FilterLike = None) -> list[dict]:
        f = self._read_filter(flt, "get_gst_summary")
        return [] if f is None else self.reports.gst_summary(f)

    def get_gst_totals(self, flt: FilterLike = None) -> dict:
        f = self._read_filter(flt, "get_gst_totals")
        return dict(EMPTY_GST_TOTALS) if f is None else self.reports.gst_totals(f)

    def export_invoice_rows(self, flt: FilterLike = None) -> list[dict]:
        f = self._read_filter(flt, "export_invoice_rows")
        return [] if f is None else self.reports.invoices_for_export(f)

    def export_gst_report(self, flt: FilterLike = None, out_path: Optional[str | Path] = None) -> FileResult:
        try:
            f = _as_filter(flt)
        except ValidationError as e:
            return Failure(e.message, kind=e.kind)
        return export_gst_report(self.reports, f, out_path, now=self.now)

    # ------------------------------------------------------------------
    # products
    # ------------------------------------------------------------------
    def list_products(self) -> list[Product]:
        return self.products.list_products()

    def get_product(self, pid: int) -> Product | None:
        return self.products.get(pid)

    def find_by_code(self, raw_code: str) -> Product | None:
        return self.products.find_by_code(raw_code)

    def unique_sub_categories(self, category: Optional[str] = None) -> list[str]:
        return self.products.unique_sub_categories(category)

    def add_product(self, payload: Mapping[str, Any]) -> ProductResult:
        return self.products.add(payload)

    def update_product(self, pid: int, payload: Mapping[str, Any]) -> ProductResult:
        return self.products.update(pid, payload)

    def delete_product(self, pid: int) -> WriteResult:
        return self.products.delete(pid)

    def bulk_import_products(self, rows: Iterable[Mapping[str, Any]]) -> ImportResult:
        return self.products.bulk_import(rows)

    def generate_barcode(self, draft: Mapping[str, Any]) -> str:
        return self.products.generate_barcode(draft)

    def regenerate_all_barcodes(self) -> WriteResult:
        return self.products.regenerate_all_barcodes()

    # ------------------------------------------------------------------
    # settings / printer
    # ------------------------------------------------------------------
    def get_store_settings(self) -> dict | None:
        return self.settings.get()

    def save_store_settings(self, payload: Mapping[str, Any]) -> WriteResult:
        return self.settings.save(payload)

    def get_category_map(self) -> dict[str, dict]:
        return self.settings.category_map()

    def save_category_map(self, data: Mapping[str, Any]) -> WriteResult:
        return self.settings.save_category_map(data)

    def list_categories(self) -> list[str]:
        """Mapped categories in map order, then any others products already use."""
        names = list(self.settings.category_map())
        names += [c for c in self.products.unique_categories() if c not in names]
        return names

    def resolve_label_printer(self, requested: Optional[str] = None, **kwargs) -> printing.PrinterChoice:
        return printing.resolve_label_printer(requested, saved=self.settings.label_printer_name(), **kwargs)

    # ------------------------------------------------------------------
    # dumps / backup
    # ------------------------------------------------------------------
    def export_full_dump(self) -> dict[str, list[dict]]:
        return self.dumps.export_full_dump()

    def import_full_dump(self, dump: Mapping[str, Any]) -> WriteResult:
        result = self.dumps.import_full_dump(dump)
        if result.success:
            self.barcodes.reset()
            self.barcodes.seed_from_db(self.conn)
        return result

    def backup_to(self, dest: str | Path) -> FileResult:
        return self.backups.backup_to(dest)

    def write_dump(self, dest_dir: str | Path) -> FileResult:
        return self.backups.write_dump(dest_dir)

    def load_dump(self, path: str | Path) -> WriteResult:
        return self.backups.load_dump(path)

    def restore_from(self, snapshot: str | Path) -> WriteResult:
        return self.backups.restore_from(snapshot, db_manager=self)


__all__ = ["PosContext"]
