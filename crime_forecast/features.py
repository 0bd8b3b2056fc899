"""
crime_forecast/features.py
--------------------------
Maps chronological month indices (0 for the first observed month) to
model input rows.

Encodings:
  trend     – [i]
  seasonal  – [i, sin(2π·(i mod 12)/12), cos(2π·(i mod 12)/12)]
              The sine/cosine pair places month-of-year on the unit
              circle, so December and January are neighbours rather
              than 11 apart.
  window    – the previous LOOKBACK raw counts, used by the
              autoregressive variants. Built by sliding_windows().

Indices past the observed range use the same formulas, which is what
lets forecasting generate inputs for months it has never seen.
"""

import numpy as np

from crime_forecast.constants import ENCODINGS, LOOKBACK, SEASON_LENGTH


def trend_features(indices) -> np.ndarray:
    idx = np.asarray(indices, dtype=float)
    return idx.reshape(-1, 1)


def seasonal_features(indices) -> np.ndarray:
    idx = np.asarray(indices, dtype=float)
    phase = 2 * np.pi * (idx % SEASON_LENGTH) / SEASON_LENGTH
    return np.column_stack([idx, np.sin(phase), np.cos(phase)])


def encode(indices, encoding: str) -> np.ndarray:
    """
    Encode month indices with an index-driven scheme.

    Args:
        indices:  Iterable of integer month indices.
        encoding: 'trend' or 'seasonal'. Window features depend on
                  counts rather than indices, see sliding_windows().

    Returns:
        2-D float array, one row per index.
    """
    if encoding == "trend":
        return trend_features(indices)
    if encoding == "seasonal":
        return seasonal_features(indices)
    if encoding == "window":
        raise ValueError("Window features are built from counts; use sliding_windows().")
    raise ValueError(f"Unknown encoding '{encoding}'. Valid encodings: {', '.join(ENCODINGS)}")


def feature_width(encoding: str, lookback: int = LOOKBACK) -> int:
    return {"trend": 1, "seasonal": 3, "window": lookback}[encoding]


def sliding_windows(
    counts,
    lookback: int = LOOKBACK,
    positive_only: bool = True,
) -> tuple[np.ndarray, np.ndarray]:
    """
    Build (window, next value) training pairs from a count series.

    A pair is only emitted where a full window of `lookback` values
    precedes the target, so the first target is counts[lookback].
    With positive_only, pairs containing a zero or negative count
    anywhere are skipped.

    Returns:
        X of shape (pairs, lookback) and y of shape (pairs,).
    """
    values = np.asarray(counts, dtype=float)
    xs, ys = [], []
    for i in range(lookback, len(values)):
        window = values[i - lookback:i]
        target = values[i]
        if positive_only and (np.any(window <= 0) or target <= 0):
            continue
        xs.append(window)
        ys.append(target)

    if not xs:
        return np.empty((0, lookback)), np.empty(0)
    return np.array(xs), np.array(ys)
