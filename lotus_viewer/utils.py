"""Small helpers shared by the coordinate display and the fetch keys."""

from __future__ import annotations

import math


def format_number(value: float) -> str:
    """Return a compact textual form of *value*.

    Integral values are written without a decimal point (``2.0`` -> ``"2"``)
    so that coordinate fields and query strings stay short; other values keep
    up to ten significant digits.  Negative zero is printed as ``"0"``.
    """

    value = float(value)
    if not math.isfinite(value):
        return str(value)
    if value == 0:
        return "0"
    if value.is_integer():
        return str(int(value))
    return f"{value:.10g}"


def clamp(value, low, high):
    """Clamp *value* into ``[low, high]``."""
    return max(low, min(high, value))
