"""
Outcome types returned by write operations.

Every public write returns exactly one of these instead of raising; the UI
checks `.success` and shows `.message` on failure. `to_dict()` gives the
plain shape ({"success": ..., ...}) for callers that want a mapping.
"""

from __future__ import annotations

from dataclasses import asdict, dataclass, field
from typing import Any, Dict, Optional, Union


@dataclass(frozen=True)
class SaleRecorded:
    sale_id: int
    invoice_no: str
    total: float = 0.0
    success: bool = field(default=True, init=False)

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass(frozen=True)
class ProductSaved:
    id: int
    barcode_value: Optional[str] = None
    success: bool = field(default=True, init=False)

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass(frozen=True)
class ImportSummary:
    imported: int
    skipped: int
    success: bool = field(default=True, init=False)

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass(frozen=True)
class Done:
    message: str = ""
    success: bool = field(default=True, init=False)

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass(frozen=True)
class Failure:
    message: str
    kind: str = "storage"  # validation | storage | not_found | insufficient_stock
    success: bool = field(default=False, init=False)

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass(frozen=True)
class FileWritten:
    """A backup, dump or report file; `fallback` marks the CSV stand-in for Excel."""
    path: str
    fallback: bool = False
    message: str = ""
    success: bool = field(default=True, init=False)

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


SaleResult = Union[SaleRecorded, Failure]
ProductResult = Union[ProductSaved, Failure]
ImportResult = Union[ImportSummary, Failure]
WriteResult = Union[Done, Failure]
FileResult = Union[FileWritten, Failure]
