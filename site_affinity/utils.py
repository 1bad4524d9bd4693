from __future__ import annotations

import math
from typing import Optional


# ---------------------------------------------------------------------
# Logging
# ---------------------------------------------------------------------
def log(msg: str) -> None:
    print(msg, flush=True)


# ---------------------------------------------------------------------
# Parsing helpers
# ---------------------------------------------------------------------
def _is_nullish(v: object) -> bool:
    s = str(v).strip().lower()
    return s in {"", "null", "none", "nan", "na", "undefined"}


def to_float(value: object) -> Optional[float]:
    """Parse a finite float; anything else (None, '', 'NaN', 'abc', inf) -> None."""
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        v = float(value)
        return v if math.isfinite(v) else None
    s = str(value).strip()
    if _is_nullish(s):
        return None
    try:
        v = float(s)
    except ValueError:
        return None
    return v if math.isfinite(v) else None


def clean_text(value: object) -> str:
    if value is None or _is_nullish(value):
        return ""
    return str(value).strip()
