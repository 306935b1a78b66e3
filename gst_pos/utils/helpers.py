# gst_pos/utils/helpers.py
from datetime import datetime
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation
from typing import Optional, Union

NumberLike = Union[float, int, str, Decimal]

_CENT = Decimal("0.01")


def now_iso(now: Optional[datetime] = None) -> str:
    """Local wall-clock timestamp, second precision, e.g. 2025-07-28T14:05:09."""
    return (now or datetime.now()).replace(microsecond=0).isoformat()


def to_decimal(v: Optional[NumberLike]) -> Decimal:
    """
    Parse a number into Decimal via its string form so binary float noise
    (0.1 + 0.2) does not leak into currency maths. None -> 0.
    """
    if v is None:
        return Decimal("0")
    if isinstance(v, Decimal):
        return v
    try:
        return Decimal(str(v).strip())
    except (InvalidOperation, ValueError) as e:
        raise ValueError(f"Could not parse {v!r} as a number.") from e


def quantize2(v: NumberLike) -> Decimal:
    """Round half-up to paise."""
    return to_decimal(v).quantize(_CENT, rounding=ROUND_HALF_UP)


def round2(v: Optional[NumberLike]) -> float:
    """Currency rounding at the storage/query boundary (half-up, 2 places)."""
    return float(quantize2(v or 0))


def fmt_percent(v: Optional[NumberLike]) -> str:
    """Rates are stored as 0-100; renders 18 as '18.00%'."""
    try:
        num = float(v or 0)
    except (TypeError, ValueError):
        num = 0.0
    return f"{num:.2f}%"


def clean_text(v) -> str:
    """Single-line text safe for CSV/Excel cells."""
    return " ".join(str(v if v is not None else "").split())
