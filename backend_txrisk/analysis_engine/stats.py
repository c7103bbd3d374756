"""
Statistics kernel shared by every detector.

Pure numpy functions over numeric samples. Population statistics (divide
by n). Degenerate input never raises: empty samples, zero std and zero mean
return 0 (or the caller-supplied fallback). All results are plain floats.
"""

from __future__ import annotations

import math
from typing import Iterable, Sequence

import numpy as np

# Default multiplier for extreme IQR outliers
EXTREME_IQR_MULTIPLIER = 3.0


def _array(values: Iterable[float]) -> np.ndarray:
    return np.asarray(list(values), dtype=np.float64)


def mean(values: Iterable[float]) -> float:
    arr = _array(values)
    if arr.size == 0:
        return 0.0
    return float(arr.mean())


def variance(values: Iterable[float]) -> float:
    """Population variance; 0.0 for an empty sample."""
    arr = _array(values)
    if arr.size == 0:
        return 0.0
    return float(arr.var())


def std_dev(values: Iterable[float]) -> float:
    """Population standard deviation; 0.0 for an empty sample."""
    arr = _array(values)
    if arr.size == 0:
        return 0.0
    return float(arr.std())


def z_score(x: float, mu: float, sigma: float) -> float:
    """Absolute z-score; 0.0 when sigma is 0 so the point is never flagged."""
    if sigma == 0:
        return 0.0
    return abs(x - mu) / sigma


def z_scores(values: Sequence[float]) -> list[float]:
    arr = _array(values)
    if arr.size == 0:
        return []
    sigma = float(arr.std())
    if sigma == 0:
        return [0.0] * int(arr.size)
    return [float(z) for z in np.abs(arr - arr.mean()) / sigma]


def quartiles(values: Iterable[float]) -> tuple[float, float, float]:
    """
    Return (q1, q3, iqr) using index quartiles on the sorted sample:
    q1 = sorted[floor(0.25n)], q3 = sorted[floor(0.75n)].
    """
    arr = np.sort(_array(values))
    n = int(arr.size)
    if n == 0:
        return 0.0, 0.0, 0.0
    q1 = float(arr[math.floor(0.25 * n)])
    q3 = float(arr[min(n - 1, math.floor(0.75 * n))])
    return q1, q3, q3 - q1


def iqr_bounds(
    values: Iterable[float],
    multiplier: float = EXTREME_IQR_MULTIPLIER,
) -> tuple[float, float]:
    """(lower, upper) outlier fences: q1 - m*iqr, q3 + m*iqr."""
    q1, q3, iqr = quartiles(values)
    return q1 - multiplier * iqr, q3 + multiplier * iqr


def coefficient_of_variation(
    values: Iterable[float],
    zero_mean_value: float = 0.0,
) -> float:
    """std / mean; zero_mean_value when the mean is 0 (or the sample is empty)."""
    arr = _array(values)
    if arr.size == 0:
        return zero_mean_value
    mu = float(arr.mean())
    if mu == 0:
        return zero_mean_value
    return float(arr.std()) / mu


def intervals(timestamps: Iterable[float]) -> list[float]:
    """Consecutive differences of the sorted timestamps."""
    arr = np.sort(_array(timestamps))
    if arr.size < 2:
        return []
    return [float(d) for d in np.diff(arr)]


def amount_similarity(a: float, b: float) -> float:
    """min/max ratio of two amounts; 1 when both are 0, 0 when only one is."""
    if a == 0 and b == 0:
        return 1.0
    if a == 0 or b == 0:
        return 0.0
    return min(a, b) / max(a, b)


def clamp(value: float, low: float = 0.0, high: float = 100.0) -> float:
    return max(low, min(high, value))
