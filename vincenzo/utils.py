"""Small formatting helpers."""

from __future__ import annotations

import math
from decimal import Decimal

_UNITS = ("B", "KiB", "MiB", "GiB", "TiB", "PiB", "EiB", "ZiB", "YiB")
_DELIMITER = 1024.0


def _plain_number(n: float) -> str:
    """Format a float in its shortest form, without exponent or trailing '.0'."""
    if math.isfinite(n) and n.is_integer():
        return str(int(n))
    text = repr(n)
    if "e" in text or "E" in text:
        text = format(Decimal(text), "f")
    return text


def _round_half_away(x: float) -> float:
    return math.copysign(math.floor(abs(x) + 0.5), x)


def to_human_readable(n: float) -> str:
    """Turn a byte count into a human readable string such as '1.95 GiB'."""
    n = float(n)
    if n < _DELIMITER:
        return f"{_plain_number(n)} B"
    unit = 0
    while _round_half_away(n * 10) / 10 >= _DELIMITER and unit < len(_UNITS) - 1:
        n /= _DELIMITER
        unit += 1
    return f"{n:.2f} {_UNITS[unit]}"