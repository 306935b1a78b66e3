# gst_pos/database/repositories/errors.py
from __future__ import annotations


class DomainError(Exception):
    """Domain-level error the caller/UI can surface as-is (toast/snackbar)."""
    kind = "domain"

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message


class ValidationError(DomainError):
    """Input rejected before any write."""
    kind = "validation"


class InsufficientStockError(DomainError):
    kind = "insufficient_stock"

    def __init__(self, product_id: int, requested: int, available: int | None = None) -> None:
        if available is None:
            msg = f"Product {product_id} does not exist or has too little stock for quantity {requested}."
        else:
            msg = f"Insufficient stock for product {product_id}: requested {requested}, available {available}."
        super().__init__(msg)
        self.product_id = product_id
        self.requested = requested
        self.available = available


class NotFoundError(DomainError):
    kind = "not_found"
