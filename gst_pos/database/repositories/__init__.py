from .errors import DomainError, InsufficientStockError, NotFoundError, ValidationError
from .results import Done, Failure, FileWritten, ImportSummary, ProductSaved, SaleRecorded
from .gst import GstBreakdown, compute_gst
from .invoice_repo import InvoiceNumberRepo, format_invoice_number
from .sales_repo import SaleLine, SaleRequest, SalesRepo
from .reporting_repo import InvoiceFilter, ReportingRepo
from .products_repo import Product, ProductsRepo
from .settings_repo import SettingsRepo
from .dump_repo import DumpRepo

__all__ = [
    "DomainError",
    "InsufficientStockError",
    "NotFoundError",
    "ValidationError",
    "Done",
    "Failure",
    "FileWritten",
    "ImportSummary",
    "ProductSaved",
    "SaleRecorded",
    "GstBreakdown",
    "compute_gst",
    "InvoiceNumberRepo",
    "format_invoice_number",
    "SaleLine",
    "SaleRequest",
    "SalesRepo",
    "InvoiceFilter",
    "ReportingRepo",
    "Product",
    "ProductsRepo",
    "SettingsRepo",
    "DumpRepo",
]
