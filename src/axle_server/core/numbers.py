"""Numeric coercion for loosely typed payloads (provider JSON, stored metrics)."""

import math
from typing import Any


def to_number(value: Any) -> float | None:
    """Return value as a finite float, or None.

    Bools, strings, NaN and infinities are rejected.
    """
    if isinstance(value, bool) or not isinstance(value, int | float):
        return None
    if not math.isfinite(value):
        return None
    return float(value)


def is_number(value: Any) -> bool:
    """True for finite ints/floats (bools excluded)."""
    return to_number(value) is not None
