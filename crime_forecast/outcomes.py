"""
crime_forecast/outcomes.py
--------------------------
Resolved-outcome experiment: does where a crime happened say anything
about whether it gets an outcome?

Crimes at a location are fetched from the police.uk API, labelled 1 if
they carry an outcome_status and 0 otherwise, and a small classifier is
trained on min/max-normalised latitude and longitude (per-column
stats). The trained model is then evaluated over an evenly spaced
lat/lon grid spanning the observed coordinates.

This sits beside the forecasting pipeline and shares only the
normaliser and model contract with it.
"""

from typing import Callable, NamedTuple

import numpy as np
import pandas as pd
import requests

from crime_forecast import normalizer
from crime_forecast.constants import (
    OUTCOME_API_URL,
    OUTCOME_DEFAULT_LOCATION,
    OUTCOME_GRID_SIZE,
    OUTCOME_TIMEOUT,
    RANDOM_STATE,
)
from crime_forecast.errors import ExternalServiceError, InsufficientDataError
from crime_forecast.models import OutcomeClassifier

OUTCOME_COLUMNS = ["latitude", "longitude", "outcome"]


class OutcomeHandle(NamedTuple):
    model: OutcomeClassifier
    input_stats: normalizer.NormalizationStats
    history: dict


def _coordinate(value) -> float | None:
    try:
        coord = float(value)
    except (TypeError, ValueError):
        return None
    return None if np.isnan(coord) else coord


def parse_outcome_records(crimes: list) -> pd.DataFrame:
    """
    Flatten API crime objects to latitude, longitude, outcome. Crimes
    without usable coordinates are dropped.
    """
    rows = []
    for crime in crimes:
        location = (crime or {}).get("location") or {}
        lat = _coordinate(location.get("latitude"))
        lng = _coordinate(location.get("longitude"))
        if lat is None or lng is None:
            continue
        rows.append({
            "latitude":  lat,
            "longitude": lng,
            "outcome":   1 if crime.get("outcome_status") else 0,
        })
    return pd.DataFrame(rows, columns=OUTCOME_COLUMNS)


def fetch_outcome_records(
    lat: float = OUTCOME_DEFAULT_LOCATION["lat"],
    lng: float = OUTCOME_DEFAULT_LOCATION["lng"],
    date: str | None = None,
    url: str = OUTCOME_API_URL,
    timeout: int = OUTCOME_TIMEOUT,
) -> pd.DataFrame:
    """
    Raises:
        ExternalServiceError: on network failure, a non-2xx status, or
                              a body that is not a JSON list.
    """
    params = {"lat": lat, "lng": lng}
    if date:
        params["date"] = date
    try:
        r = requests.get(url, params=params, timeout=timeout)
        r.raise_for_status()
        crimes = r.json()
    except (requests.RequestException, ValueError) as e:
        raise ExternalServiceError(f"police.uk request failed: {e}") from e

    if not isinstance(crimes, list):
        raise ExternalServiceError("police.uk returned an unexpected response body.")
    return parse_outcome_records(crimes)


def train_outcome_model(
    frame: pd.DataFrame,
    on_epoch_end: Callable | None = None,
    random_state: int = RANDOM_STATE,
    **model_kwargs,
) -> OutcomeHandle:
    """
    Fit the outcome classifier on one fetched frame.

    Raises:
        InsufficientDataError: with fewer than two rows or only one
                               outcome class present.
    """
    if len(frame) < 2:
        raise InsufficientDataError(
            f"Need at least 2 crimes to train the outcome model, got {len(frame)}."
        )
    if frame["outcome"].nunique() < 2:
        raise InsufficientDataError(
            "All fetched crimes share the same outcome; nothing to classify."
        )

    X = frame[["latitude", "longitude"]].to_numpy(dtype=float)
    y = frame["outcome"].to_numpy(dtype=int)

    stats = normalizer.fit(X, axis=0)
    model = OutcomeClassifier(random_state=random_state, **model_kwargs)
    try:
        history = model.fit(normalizer.transform(X, stats), y, on_epoch_end=on_epoch_end)
    except Exception:
        model.close()
        raise
    return OutcomeHandle(model, stats, history)


def predict_outcome_grid(handle: OutcomeHandle, grid_size: int = OUTCOME_GRID_SIZE) -> pd.DataFrame:
    """
    Probability of a resolved outcome over a grid_size × grid_size
    lat/lon grid spanning the training coordinates.

    Returns:
        DataFrame with latitude, longitude, probability.
    """
    lo, hi = handle.input_stats
    lats = np.linspace(lo[0], hi[0], grid_size)
    lngs = np.linspace(lo[1], hi[1], grid_size)
    grid = np.array([(la, ln) for la in lats for ln in lngs])

    probs = handle.model.predict(normalizer.transform(grid, handle.input_stats))
    return pd.DataFrame({
        "latitude":    grid[:, 0],
        "longitude":   grid[:, 1],
        "probability": probs,
    })
