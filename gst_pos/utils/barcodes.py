"""
Product barcode generator.

Layout (11 characters for counters below 10000):

    CC S BB NNNN MM
    |  | |  |    +-- model name prefix (before the first '-'), 2 chars, 'Z' padded
    |  | |  +------- running counter, zero padded to 4 digits
    |  | +---------- brand, 2 chars, 'X' padded
    |  +------------ sub-category, 1 char, '_' when missing
    +--------------- category, 2 chars, 'X' padded ('UN' when missing)

The counter lives on the generator instance. The application context creates
one generator per open database and seeds it from the barcodes already stored,
so numbers keep increasing across restarts.
"""

from __future__ import annotations

import re
import sqlite3
from typing import Iterable, Mapping, Optional

# all-digit codes (EAN/UPC) are supplier barcodes, not ours
_COUNTER_RX = re.compile(r"^(?=.*\D).{5}(\d{4,})..$")


def _chunk(value: Optional[str], size: int, fill: str, default: str) -> str:
    text = (value or "").strip() or default
    return text[:size].upper().ljust(size, fill)


class BarcodeGenerator:
    def __init__(self, counter: int = 0) -> None:
        self.counter = int(counter)

    def next_for(self, product: Mapping[str, object]) -> str:
        category = _chunk(product.get("category"), 2, "X", "UNK")  # type: ignore[arg-type]
        sub_category = _chunk(product.get("sub_category"), 1, "_", "_")  # type: ignore[arg-type]
        brand = _chunk(product.get("brand"), 2, "X", "XX")  # type: ignore[arg-type]
        model_raw = str(product.get("model_name") or "").split("-")[0]
        model = _chunk(model_raw, 2, "Z", "ZZ")

        self.counter += 1
        return f"{category}{sub_category}{brand}{self.counter:04d}{model}"

    def reset(self) -> None:
        self.counter = 0

    def seed_from(self, barcodes: Iterable[Optional[str]]) -> int:
        """Move the counter past the highest counter found in existing barcodes."""
        highest = self.counter
        for code in barcodes:
            if not code:
                continue
            m = _COUNTER_RX.match(code.strip())
            if m:
                highest = max(highest, int(m.group(1)))
        self.counter = highest
        return self.counter

    def seed_from_db(self, conn: sqlite3.Connection) -> int:
        rows = conn.execute(
            "SELECT barcode_value FROM products WHERE barcode_value IS NOT NULL"
        ).fetchall()
        return self.seed_from(r[0] for r in rows)
