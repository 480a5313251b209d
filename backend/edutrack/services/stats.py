"""Numeric helpers shared by the aggregation views.

Empty inputs never raise and never produce NaN: a percentage over a zero
total is 0 and the mean of nothing is 0.
"""
import math
from typing import Iterable, Optional, Union

Number = Union[int, float]


def round_half_up(value: float, digits: int = 0) -> float:
    factor = 10 ** digits
    return math.floor(value * factor + 0.5) / factor


def percentage(part: Number, total: Number) -> int:
    """Whole-number percentage of ``part`` in ``total``; 0 when total is 0"""
    if not total:
        return 0
    return int(round_half_up(part / total * 100))


def mean(values: Iterable[Optional[Number]], digits: Optional[int] = None) -> float:
    """Arithmetic mean ignoring None; 0 for an empty input"""
    numbers = [v for v in values if v is not None]
    if not numbers:
        return 0
    result = sum(numbers) / len(numbers)
    if digits is not None:
        return round_half_up(result, digits)
    return result
