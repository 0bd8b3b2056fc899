"""
crime_forecast/normalizer.py
----------------------------
Min/max rescaling to [0, 1] and its inverse.

Statistics are global over the whole array by default, matching how
the inputs and labels of each run are scaled (one min and one max per
tensor). Pass axis=0 for per-column statistics, as the outcome
classifier does for latitude and longitude.

Zero variance (max == min) is handled by an explicit policy:

  "center" – the default. Every value maps to exactly 0.5, and invert()
             returns min exactly, so a constant series round-trips and
             a constant label series always forecasts its own value.
  "raise"  – raise DegenerateNormalizationError.

The same stats object must be used for transform() and invert() within
a run. Stats are recomputed for every run and never persisted.
"""

from typing import NamedTuple

import numpy as np

from crime_forecast.errors import DegenerateNormalizationError, InsufficientDataError

ZERO_VARIANCE_POLICIES = ("center", "raise")


class NormalizationStats(NamedTuple):
    min: float | np.ndarray
    max: float | np.ndarray

    @property
    def span(self):
        return np.subtract(self.max, self.min)

    @property
    def degenerate(self) -> bool:
        return bool(np.any(self.span == 0))


def fit(values, axis: int | None = None) -> NormalizationStats:
    arr = np.asarray(values, dtype=float)
    if arr.size == 0:
        raise InsufficientDataError(
            "Cannot compute normalization statistics from an empty collection."
        )
    lo, hi = arr.min(axis=axis), arr.max(axis=axis)
    if axis is None:
        return NormalizationStats(float(lo), float(hi))
    return NormalizationStats(lo, hi)


def transform(values, stats: NormalizationStats, zero_variance: str = "center") -> np.ndarray:
    """
    Scale values to [0, 1] using previously fitted stats.

    Values outside the fitted range (e.g. future month indices) land
    outside [0, 1]; that is expected for extrapolation.

    Raises:
        DegenerateNormalizationError: if max == min and the policy is
            'raise'.
    """
    if zero_variance not in ZERO_VARIANCE_POLICIES:
        raise ValueError(
            f"Unknown zero-variance policy '{zero_variance}'. "
            f"Valid policies: {', '.join(ZERO_VARIANCE_POLICIES)}"
        )
    arr  = np.asarray(values, dtype=float)
    span = stats.span

    if stats.degenerate and zero_variance == "raise":
        raise DegenerateNormalizationError(
            f"All values equal {stats.min}; min/max scaling is undefined."
        )

    safe_span = np.where(span == 0, 1.0, span)
    scaled = (arr - stats.min) / safe_span
    return np.where(span == 0, 0.5, scaled)


def invert(values, stats: NormalizationStats) -> np.ndarray:
    arr = np.asarray(values, dtype=float)
    return arr * stats.span + stats.min
