"""GST point-of-sale core: database, sales, invoices, reports and backups."""

from .context import PosContext

__version__ = "1.0.0"

__all__ = ["PosContext", "__version__"]
