"""Small numeric helpers shared by the scorers."""

from __future__ import annotations

import math


def clamp(value: float, lo: float, hi: float) -> float:
    return max(lo, min(hi, value))


def clamp01(value: float) -> float:
    return clamp(value, 0.0, 1.0)


def round_half_up(value: float, decimals: int = 1) -> float:
    """Round half away from zero for non-negative values (2.25 -> 2.3)."""
    factor = 10 ** decimals
    return math.floor(value * factor + 0.5) / factor


def round_to_half(value: float) -> float:
    """Snap to the nearest 0.5 step."""
    return math.floor(value * 2 + 0.5) / 2
