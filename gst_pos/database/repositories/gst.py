"""
Tax-inclusive GST extraction.

The shelf price (MRP) already contains GST, so tax is divided out, not added:

    gross         = price * quantity - discount
    taxable_value = round(gross / (1 + rate/100), 2)
    gst_amount    = round(gross - taxable_value, 2), never below 0 for gross >= 0
    cgst = sgst   = round(gst_amount / 2, 2)

Both steps work on the unrounded gross; the gross itself is rounded only
for the reported field. Rounding is half-up at two places and happens per
line; a sale's total is the sum of already-rounded lines and is never
recomputed on the aggregate.
"""

from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal

from ...utils.helpers import NumberLike, quantize2, to_decimal

_HUNDRED = Decimal("100")
_TWO = Decimal("2")
_ZERO = Decimal("0.00")


@dataclass(frozen=True)
class GstBreakdown:
    gross: Decimal
    taxable_value: Decimal
    gst_amount: Decimal
    cgst: Decimal
    sgst: Decimal

    @property
    def line_total(self) -> Decimal:
        return self.taxable_value + self.gst_amount

    def as_floats(self) -> dict:
        return {
            "taxable_value": float(self.taxable_value),
            "gst_amount": float(self.gst_amount),
            "cgst": float(self.cgst),
            "sgst": float(self.sgst),
        }


def compute_gst(
    price: NumberLike,
    quantity: NumberLike,
    gst_percent: NumberLike | None = 0,
    discount: NumberLike | None = 0,
) -> GstBreakdown:
    """
    >>> b = compute_gst(1180, 1, 18)
    >>> (b.taxable_value, b.gst_amount, b.cgst, b.sgst)
    (Decimal('1000.00'), Decimal('180.00'), Decimal('90.00'), Decimal('90.00'))
    """
    rate = to_decimal(gst_percent or 0)
    if rate < 0:
        raise ValueError("GST percent cannot be negative.")
    raw_gross = to_decimal(price) * to_decimal(quantity) - to_decimal(discount or 0)
    divisor = 1 + rate / _HUNDRED
    taxable = quantize2(raw_gross / divisor)
    gst_amount = quantize2(raw_gross - taxable)
    if gst_amount < 0 <= raw_gross:
        # a gross ending in half a paisa can leave a remainder of -0.005
        gst_amount = _ZERO
    half = quantize2(gst_amount / _TWO)
    return GstBreakdown(
        gross=quantize2(raw_gross),
        taxable_value=taxable,
        gst_amount=gst_amount,
        cgst=half,
        sgst=half,
    )
