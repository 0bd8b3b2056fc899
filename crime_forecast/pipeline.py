"""
crime_forecast/pipeline.py
--------------------------
Runs the forecasting pipeline end to end:

    archive → parse → aggregate → encode → normalise → fit
            → forecast → invert → annotate → chart / summary payloads

Every run computes its own normalisation stats and trains its own
model. train() returns a ModelHandle carrying the model together with
the stats it was trained against; predict_future() takes that handle
explicitly, and forecast_series() closes the model before returning.

Usage:
    result = run_forecast(uploaded_zip, profile="street", variant="seasonal")
    chart  = build_chart_data(result["months"], result["counts"], result["forecast"])

Insufficient history raises InsufficientDataError before any model is
built. Progress is reported with print(), one line per stage.
"""

from typing import Callable, NamedTuple

import numpy as np

from crime_forecast import normalizer
from crime_forecast.aggregator import (
    MonthlyAggregator,
    crime_types,
    monthly_series,
    type_series,
)
from crime_forecast.annotator import annotate
from crime_forecast.archive import iter_csv_entries
from crime_forecast.constants import (
    DEFAULT_PROFILE,
    DEFAULT_VARIANT,
    LOOKBACK,
    MIN_TRAINING_EXAMPLES,
    PROFILES,
    RANDOM_STATE,
    VARIANTS,
)
from crime_forecast.errors import InsufficientDataError
from crime_forecast.features import encode, sliding_windows
from crime_forecast.forecaster import (
    ForecastPoint,
    autoregressive_forecast,
    independent_forecast,
)
from crime_forecast.models import ForecastModel, build_model
from crime_forecast.parser import CsvRecordParser

ACTUAL_SERIES    = "Actual Crimes"
PREDICTED_SERIES = "Predicted Crimes"


class ModelHandle(NamedTuple):
    model: ForecastModel
    input_stats: normalizer.NormalizationStats
    label_stats: normalizer.NormalizationStats
    variant: dict
    history: dict


# ── Configuration ─────────────────────────────────────────────────

def resolve_profile(profile: str | dict = DEFAULT_PROFILE) -> dict:
    if isinstance(profile, dict):
        return profile
    if profile not in PROFILES:
        raise ValueError(
            f"Unknown profile '{profile}'. Valid profiles: {', '.join(PROFILES)}"
        )
    return PROFILES[profile]


def resolve_variant(variant: str | dict = DEFAULT_VARIANT, overrides: dict | None = None) -> dict:
    """
    Return a fresh variant config dict, with any overrides applied on top.
    """
    if isinstance(variant, dict):
        config = dict(variant)
    elif variant in VARIANTS:
        config = dict(VARIANTS[variant])
    else:
        raise ValueError(
            f"Unknown variant '{variant}'. Valid variants: {', '.join(VARIANTS)}"
        )
    config.update(overrides or {})
    config.setdefault("zero_variance", "center")
    config.setdefault("lookback", LOOKBACK)
    return config


# ── Loading ───────────────────────────────────────────────────────

def load_monthly_counts(source, profile: str | dict = DEFAULT_PROFILE, by_type: bool = True) -> dict:
    """
    Parse every matching archive entry and aggregate to monthly counts.

    Returns:
        dict with keys:
            table   – {month: MonthlyCount}, ascending by month
            files   – number of entries parsed
            records – rows kept
            dropped – malformed rows dropped

    Raises:
        ArchiveError:          if the archive cannot be read.
        InsufficientDataError: if no entry matches or no row is usable.
    """
    config = resolve_profile(profile)
    parser = CsvRecordParser(mode=config["mode"])
    agg    = MonthlyAggregator(by_type=by_type)

    files = 0
    for name, text in iter_csv_entries(source, config["entry_suffix"]):
        agg.add(parser.parse(text))
        files += 1

    if files == 0:
        raise InsufficientDataError(
            f"No entries ending in '{config['entry_suffix']}' found in the archive."
        )

    print(f"  Parsed {files:,} files: {parser.parsed:,} rows kept, {parser.dropped:,} dropped")
    if parser.dropped:
        print(f"  WARNING: {parser.dropped:,} malformed rows were dropped")

    table = agg.result()
    if not table:
        raise InsufficientDataError("No usable crime records found in the archive.")

    return {
        "table":   table,
        "files":   files,
        "records": parser.parsed,
        "dropped": parser.dropped,
    }


# ── Training ──────────────────────────────────────────────────────

def check_sufficient(n_months: int, variant: str | dict = DEFAULT_VARIANT):
    """
    Raise InsufficientDataError if n_months cannot produce enough
    training examples for the variant.

    Independent variants need MIN_TRAINING_EXAMPLES months (one example
    per month). Window variants need lookback + MIN_TRAINING_EXAMPLES
    months, so that at least that many full windows precede a target.
    """
    config = resolve_variant(variant)
    if config["strategy"] == "autoregressive":
        needed = config["lookback"] + MIN_TRAINING_EXAMPLES
    else:
        needed = MIN_TRAINING_EXAMPLES
    if n_months < needed:
        raise InsufficientDataError(
            f"{config['label']} needs at least {needed} months of data, "
            f"got {n_months}."
        )


def training_set(counts, config: dict) -> tuple[np.ndarray, np.ndarray]:
    counts = np.asarray(counts, dtype=float)
    if config["encoding"] == "window":
        return sliding_windows(counts, config["lookback"])
    return encode(np.arange(len(counts)), config["encoding"]), counts


def train(
    months: list[str],
    counts,
    variant: str | dict = DEFAULT_VARIANT,
    on_epoch_end: Callable | None = None,
    random_state: int = RANDOM_STATE,
    overrides: dict | None = None,
) -> ModelHandle:
    """
    Fit a fresh model on one series.

    Args:
        months:       Month labels aligned with counts.
        counts:       Monthly counts, oldest first.
        variant:      Variant name from VARIANTS or a config dict.
        on_epoch_end: Called as on_epoch_end(epoch, {"loss": ...}).
        random_state: Seed for the model.
        overrides:    Per-run config overrides, e.g. {"epochs": 50}.

    Returns:
        ModelHandle. The caller owns handle.model and must close it.

    Raises:
        InsufficientDataError: before any model is built.
        DegenerateNormalizationError: under zero_variance='raise'.
    """
    config = resolve_variant(variant, overrides)
    counts = np.asarray(counts, dtype=float)
    if len(months) != len(counts):
        raise ValueError(f"Got {len(months)} month labels for {len(counts)} counts.")

    check_sufficient(len(counts), config)
    X, y = training_set(counts, config)
    if len(X) < MIN_TRAINING_EXAMPLES:
        raise InsufficientDataError(
            f"Only {len(X)} usable training example(s); at least "
            f"{MIN_TRAINING_EXAMPLES} are needed. Windows containing a zero or "
            "negative count are not used."
        )

    policy      = config["zero_variance"]
    input_stats = normalizer.fit(X)
    label_stats = normalizer.fit(y)
    X_norm = normalizer.transform(X, input_stats, policy)
    y_norm = normalizer.transform(y, label_stats, policy)

    print(f"  Training {config['label']} on {len(X):,} examples for {config['epochs']} epochs")
    model = build_model(config, random_state)
    try:
        history = model.fit(X_norm, y_norm, on_epoch_end=on_epoch_end)
    except Exception:
        model.close()
        raise

    return ModelHandle(model, input_stats, label_stats, config, history)


# ── Forecasting ───────────────────────────────────────────────────

def predict_future(handle: ModelHandle, months: list[str], counts, steps: int | None = None) -> list[ForecastPoint]:
    """
    Forecast `steps` months past the last observed month. steps
    defaults to the variant's horizon, or the history length when the
    horizon is None.
    """
    config = handle.variant
    policy = config["zero_variance"]
    counts = np.asarray(counts, dtype=float)
    if steps is None:
        steps = config["horizon"] or len(counts)

    def predict(rows):
        scaled = normalizer.transform(rows, handle.input_stats, policy)
        return normalizer.invert(handle.model.predict(scaled), handle.label_stats)

    if config["strategy"] == "autoregressive":
        return autoregressive_forecast(
            lambda window: float(predict(window.reshape(1, -1))[0]),
            counts,
            months[-1],
            steps,
            config["lookback"],
        )
    return independent_forecast(predict, len(counts), months[-1], steps, config["encoding"])


def forecast_series(
    months: list[str],
    counts,
    variant: str | dict = DEFAULT_VARIANT,
    horizon: int | None = None,
    on_epoch_end: Callable | None = None,
    random_state: int = RANDOM_STATE,
    overrides: dict | None = None,
) -> dict:
    """
    Train, forecast and annotate one series. The model is closed
    before this returns.

    Returns:
        dict with keys months, counts, forecast (list of ForecastPoint),
        annotations (peaks/troughs of the forecast), history, variant.
    """
    handle = train(months, counts, variant, on_epoch_end, random_state, overrides)
    with handle.model:
        points = predict_future(handle, months, counts, horizon)

    annotations = annotate(
        [p.predicted_value for p in points],
        [p.month for p in points],
    )
    return {
        "months":      list(months),
        "counts":      [float(c) for c in counts],
        "forecast":    points,
        "annotations": annotations,
        "history":     handle.history,
        "variant":     handle.variant,
    }


def run_forecast(
    source,
    profile: str | dict = DEFAULT_PROFILE,
    variant: str | dict = DEFAULT_VARIANT,
    horizon: int | None = None,
    on_epoch_end: Callable | None = None,
    random_state: int = RANDOM_STATE,
    overrides: dict | None = None,
) -> dict:
    """
    Full run from an archive. Adds 'table' and 'diagnostics' (files,
    records, dropped) to the forecast_series() result.
    """
    print("=" * 50)
    print("Loading monthly counts")
    print("=" * 50)
    loaded = load_monthly_counts(source, profile)
    months, counts = monthly_series(loaded["table"])
    print(f"  {len(months)} months: {months[0]} to {months[-1]}")

    result = forecast_series(
        months, counts, variant, horizon, on_epoch_end, random_state, overrides
    )
    result["table"] = loaded["table"]
    result["diagnostics"] = {
        "files":   loaded["files"],
        "records": loaded["records"],
        "dropped": loaded["dropped"],
    }
    print(f"  ✓ Forecast {len(result['forecast'])} months")
    return result


def forecast_by_crime_type(
    table: dict,
    variant: str | dict = DEFAULT_VARIANT,
    horizon: int | None = None,
    types: list[str] | None = None,
    on_epoch_end: Callable | None = None,
    random_state: int = RANDOM_STATE,
    overrides: dict | None = None,
) -> dict:
    """
    One forecast per crime type, keyed by type. Types that do not have
    enough history for the variant are skipped with a warning.
    """
    months  = list(table)
    results = {}
    for crime_type in types or crime_types(table):
        counts = type_series(table, crime_type)
        try:
            results[crime_type] = forecast_series(
                months, counts, variant, horizon, on_epoch_end, random_state, overrides
            )
        except InsufficientDataError as e:
            print(f"  WARNING: skipping {crime_type}: {e}")
    return results


# ── Output payloads ───────────────────────────────────────────────

def build_chart_data(months: list[str], counts, points: list[ForecastPoint]) -> dict:
    """
    Chart payload with one label per observed and forecast month.
    Each series is padded with None where it has no value.

    Returns:
        {"labels": [...], "series": [{"name": ..., "points": [...]}, ...]}
    """
    n_hist, n_pred = len(months), len(points)
    actual    = [float(c) for c in counts] + [None] * n_pred
    predicted = [None] * n_hist + [p.predicted_value for p in points]
    return {
        "labels": list(months) + [p.month for p in points],
        "series": [
            {"name": ACTUAL_SERIES,    "points": actual},
            {"name": PREDICTED_SERIES, "points": predicted},
        ],
    }


def build_summary(months: list[str], counts, points: list[ForecastPoint]) -> dict:
    """{historical, predicted} date/value lists for the narrative service."""
    return {
        "historical": [
            {"date": m, "value": float(c)} for m, c in zip(months, counts)
        ],
        "predicted": [
            {"date": p.month, "value": p.predicted_value} for p in points
        ],
    }
