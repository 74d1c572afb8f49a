from __future__ import annotations

import math
from decimal import ROUND_HALF_UP, Decimal
from typing import Any, Optional

_MISSING_TOKENS = {"", "N/A", "N/D", "NA", "NAN", "NULL", "NONE", "-"}


def normalize_symbol(symbol: str) -> str:
    """
    Canonical form for underlying tickers.
    Examples:
    - ' aapl '  -> 'AAPL'
    - 'brk.b'   -> 'BRK.B'
    """
    return str(symbol or "").strip().upper()


def to_float(value: Any) -> Optional[float]:
    """Tolerant numeric decode used for every vendor payload.

    Accepts numbers, numeric strings (thousands separators allowed) and Yahoo-style
    ``{"raw": 1.23, "fmt": "1.23"}`` objects. Anything else, including NaN, is absent.
    """
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, dict):
        return to_float(value.get("raw"))
    if isinstance(value, (int, float)):
        out = float(value)
    elif isinstance(value, str):
        cleaned = value.replace(",", "").strip()
        if cleaned.upper() in _MISSING_TOKENS:
            return None
        try:
            out = float(cleaned)
        except ValueError:
            return None
    else:
        return None
    if math.isnan(out) or math.isinf(out):
        return None
    return out


def round_to_cent(value: float) -> float:
    return float(Decimal(str(value)).quantize(Decimal("0.01"), rounding=ROUND_HALF_UP))
