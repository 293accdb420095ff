"""Rounding and clamping helpers shared by the health models."""

import math
from typing import Iterable, List


def clamp(value: float, min_val: float, max_val: float) -> float:
    return max(min_val, min(max_val, value))


def round_half_up(value: float) -> int:
    """Round to the nearest integer, halves towards +infinity."""
    return int(math.floor(value + 0.5))


def round2(value: float) -> float:
    """Round to two decimals with the same half-up rule."""
    return math.floor(value * 100 + 0.5) / 100


def mean_or_zero(values: List[float]) -> float:
    return sum(values) / max(1, len(values))


def population_stddev(values: List[float], mean: float) -> float:
    variance = sum((value - mean) ** 2 for value in values) / max(1, len(values))
    return math.sqrt(variance)


def format_number(value: float) -> str:
    """Render a metric for evidence strings: ``0.4``, ``1``, ``1.35``."""
    if float(value).is_integer():
        return str(int(value))
    return format(value, "g")


def ordered_unique(values: Iterable[str]) -> List[str]:
    return list(dict.fromkeys(values))
