"""
utils/helpers.py
----------------
Small general-purpose helper functions used across sections.
These are pure Python/pandas with no Streamlit or Plotly dependencies
so they can be tested without a running app.

Import example:
    from utils.helpers import fmt_count, fmt_month, forecast_frame
"""

import numpy as np
import pandas as pd


# ── DataFrame helpers ─────────────────────────────────────────────

def forecast_frame(points: list) -> pd.DataFrame:
    """
    One row per ForecastPoint, with month and predicted_value columns.
    Predicted values are rounded to whole crimes for display.
    """
    df = pd.DataFrame(points, columns=["month", "predicted_value"])
    df["predicted_value"] = df["predicted_value"].astype(float).round(0)
    return df


def annotation_frame(annotations: list) -> pd.DataFrame:
    """Annotations as a DataFrame with kind, month and value columns."""
    df = pd.DataFrame(annotations, columns=["kind", "index", "month", "value"])
    return df.drop(columns="index")


def forecast_change(counts, points: list, window: int = 12) -> float:
    """
    Percentage change of the mean forecast against the mean of the
    last `window` observed months.

    Returns float('nan') if there is nothing to compare, so callers can
    format it without a try/except.
    """
    observed = np.asarray(counts, dtype=float)[-window:]
    if len(observed) == 0 or not points or observed.mean() == 0:
        return float("nan")
    predicted = np.mean([p.predicted_value for p in points])
    return round((predicted - observed.mean()) / observed.mean() * 100, 1)


# ── Formatting helpers ────────────────────────────────────────────

def fmt_pct(value: float, sign: bool = True, decimals: int = 0) -> str:
    """
    Format a float as a percentage string.

    Args:
        value:    Numeric value (e.g. 53.5 for 53.5%).
        sign:     If True, prepend '+' for positive values.
        decimals: Number of decimal places.

    Returns:
        Formatted string e.g. '+53%', '-18.5%', '7.1%'. 'n/a' for NaN.
    """
    if pd.isna(value):
        return "n/a"
    fmt = f"+.{decimals}f" if sign else f".{decimals}f"
    return f"{value:{fmt}}%"


def fmt_count(value: float | int) -> str:
    """Format a number with thousands separator."""
    return f"{int(round(value)):,}"


def fmt_month(label: str) -> str:
    """'2023-01' → 'Jan 2023'. Unparseable labels are returned as-is."""
    try:
        return pd.Period(label, freq="M").strftime("%b %Y")
    except (ValueError, TypeError):
        return label


def fmt_month_range(months: list[str]) -> str:
    if not months:
        return "n/a"
    return f"{fmt_month(months[0])} – {fmt_month(months[-1])}"
