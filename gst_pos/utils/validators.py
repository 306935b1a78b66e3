# gst_pos/utils/validators.py
import re

_ISO_DATE = re.compile(r"^\d{4}-\d{2}-\d{2}$")


def non_empty(text) -> bool:
    """
    True if `text` is not None/empty after stripping whitespace.
    """
    return bool(text and str(text).strip())


def blank_to_none(text):
    """'' / whitespace -> None, anything else stripped."""
    if text is None:
        return None
    s = str(text).strip()
    return s or None


# ---- Numeric parsing & validators ----

def try_parse_float(x):
    """
    Best-effort parse to float.

    Returns:
        (ok: bool, value: float|None)
    """
    if x is None or isinstance(x, bool):
        return False, None
    try:
        return True, float(str(x).strip())
    except (TypeError, ValueError):
        return False, None


def try_parse_int(x):
    """
    (ok, value) for whole numbers only: 3, "3", 3.0 pass; 2.5, "abc" fail.
    """
    ok, val = try_parse_float(x)
    if not ok or val is None or not float(val).is_integer():
        return False, None
    return True, int(val)


def is_date_iso(x) -> bool:
    """'YYYY-MM-DD' shape check (no calendar validation)."""
    return isinstance(x, str) and bool(_ISO_DATE.match(x))
