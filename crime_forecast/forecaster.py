"""
crime_forecast/forecaster.py
----------------------------
Turns a trained model into a sequence of future (month, value) points.

Two strategies:

  independent    – every future month is encoded from its index alone
                   (trend / seasonal features) and all months are
                   predicted in one batched call. The first future month
                   has index n, where n is the number of observed months.
  autoregressive – a rolling window of the most recent LOOKBACK values
                   is fed to the model; each prediction is appended and
                   the oldest value dropped. NaN or non-positive
                   predictions are replaced by the mean of the current
                   window before being appended.

Both strategies take plain callables working on the original count
scale, so normalisation stays with the caller that owns the stats.
"""

import math
from typing import Callable, NamedTuple

import numpy as np
import pandas as pd

from crime_forecast.constants import LOOKBACK
from crime_forecast.errors import InsufficientDataError
from crime_forecast.features import encode


class ForecastPoint(NamedTuple):
    month: str
    predicted_value: float


def future_months(last_month: str, steps: int) -> list[str]:
    """
    Calendar months following last_month, as "YYYY-MM" labels.

    >>> future_months("2023-11", 3)
    ['2023-12', '2024-01', '2024-02']
    """
    try:
        start = pd.Period(last_month, freq="M")
    except (ValueError, TypeError) as e:
        raise ValueError(f"Month label '{last_month}' is not YYYY-MM.") from e
    return [str(start + k) for k in range(1, steps + 1)]


def stabilise(prediction: float, window) -> float:
    """Fall back to the window mean when a prediction is NaN or ≤ 0."""
    if math.isnan(prediction) or prediction <= 0:
        return float(np.mean(window))
    return float(prediction)


def independent_forecast(
    predict: Callable[[np.ndarray], np.ndarray],
    n_observed: int,
    last_month: str,
    steps: int,
    encoding: str,
) -> list[ForecastPoint]:
    """
    Args:
        predict:    Maps raw feature rows to predicted counts.
        n_observed: Number of observed months (first future index).
        last_month: Label of the last observed month.
        steps:      Number of months to forecast.
        encoding:   'trend' or 'seasonal'.
    """
    if steps <= 0:
        return []
    indices = np.arange(n_observed, n_observed + steps)
    values  = predict(encode(indices, encoding))
    months  = future_months(last_month, steps)
    return [ForecastPoint(m, float(v)) for m, v in zip(months, values)]


def autoregressive_forecast(
    predict_one: Callable[[np.ndarray], float],
    history,
    last_month: str,
    steps: int,
    lookback: int = LOOKBACK,
) -> list[ForecastPoint]:
    """
    Args:
        predict_one: Maps one raw window (length lookback) to the next count.
        history:     Observed counts, oldest first.
        last_month:  Label of the last observed month.
        steps:       Number of months to forecast.
        lookback:    Window length.
    """
    values = [float(v) for v in history]
    if len(values) < lookback:
        raise InsufficientDataError(
            f"Need at least {lookback} months to seed the forecast window, "
            f"got {len(values)}."
        )
    if steps <= 0:
        return []

    window = values[-lookback:]
    points = []
    for month in future_months(last_month, steps):
        predicted = stabilise(float(predict_one(np.array(window))), window)
        points.append(ForecastPoint(month, predicted))
        window = window[1:] + [predicted]
    return points
