"""
sections/forecast.py
--------------------
'Forecast' section: trains a fresh model on the uploaded archive's
monthly totals and charts observed vs predicted crimes, with peaks and
troughs of the forecast marked.

Each press of "Run forecast" starts a new run on the session's
RunTracker. The per-epoch callback updates the progress bar and aborts
the run if a newer one has started, so only the latest run's results
reach st.session_state["forecast"].
"""

import streamlit as st

from crime_forecast.aggregator import monthly_series
from crime_forecast.constants import DEFAULT_VARIANT, VARIANTS
from crime_forecast.errors import (
    DegenerateNormalizationError,
    InsufficientDataError,
    RunCancelledError,
)
from crime_forecast.pipeline import (
    build_chart_data,
    check_sufficient,
    forecast_series,
    resolve_variant,
)
from utils.charts import forecast_chart, loss_chart
from utils.constants import (
    ANNOTATION_RENAME,
    CHART_CONFIG,
    DIAGNOSTIC_LABELS,
    FORECAST_RENAME,
)
from utils.data_loaders import get_uploaded_archive, load_counts
from utils.helpers import (
    annotation_frame,
    fmt_count,
    fmt_month,
    fmt_month_range,
    fmt_pct,
    forecast_change,
    forecast_frame,
)


def render():
    st.title("Monthly Crime Forecast")
    st.markdown("""
    Incidents in every street file of the uploaded archive are counted per
    month, and a small neural network is trained on that series to project
    the months ahead. The model is retrained from scratch on every run and
    only sees the uploaded data.
    """)

    archive = get_uploaded_archive()
    if archive is None:
        st.info("Upload a police.uk archive (.zip) in the sidebar to begin.")
        return

    loaded = load_counts(archive["bytes"], archive["profile"])
    months, counts = monthly_series(loaded["table"])

    _render_diagnostics(loaded, months)
    st.divider()

    variant, horizon, epochs = _render_controls(len(months))
    if st.button("Run forecast", type="primary"):
        _run(months, counts, variant, horizon, epochs, archive["key"])

    result = st.session_state.get("forecast")
    if result is None or result.get("archive_key") != archive["key"]:
        st.caption("No forecast for this archive yet.")
        return

    _render_forecast(result)
    _render_training(result)


# ── Controls and run ──────────────────────────────────────────────

def _render_diagnostics(loaded: dict, months: list[str]):
    col1, col2, col3, col4 = st.columns(4)
    col1.metric("Months covered", f"{len(months)}", fmt_month_range(months), delta_color="off")
    col2.metric(DIAGNOSTIC_LABELS["files"],   fmt_count(loaded["files"]))
    col3.metric(DIAGNOSTIC_LABELS["records"], fmt_count(loaded["records"]))
    col4.metric(DIAGNOSTIC_LABELS["dropped"], fmt_count(loaded["dropped"]))

    if loaded["dropped"]:
        st.caption(
            f"{fmt_count(loaded['dropped'])} rows were dropped because they had too "
            "few columns, a month that is not YYYY-MM, or an empty crime type. "
            "Rows with quoted commas are not supported and may be among them."
        )


def _render_controls(n_months: int) -> tuple[str, int, int]:
    col1, col2, col3 = st.columns([2, 1, 1])
    names = list(VARIANTS)
    variant = col1.selectbox(
        "Model",
        names,
        index=names.index(DEFAULT_VARIANT),
        format_func=lambda v: VARIANTS[v]["label"],
    )
    config = VARIANTS[variant]
    horizon = col2.number_input(
        "Months to forecast",
        min_value=1,
        max_value=60,
        value=min(config["horizon"] or n_months, 60),
    )
    epochs = col3.number_input(
        "Training epochs",
        min_value=1,
        max_value=2000,
        value=config["epochs"],
    )
    return variant, int(horizon), int(epochs)


def _run(months, counts, variant: str, horizon: int, epochs: int, archive_key: str):
    tracker = st.session_state["tracker"]
    config  = resolve_variant(variant, {"epochs": epochs})

    try:
        check_sufficient(len(months), config)
    except InsufficientDataError as e:
        st.error(str(e))
        return

    generation = tracker.begin()
    progress   = st.progress(0.0, text="Training…")

    def on_epoch(epoch, logs):
        progress.progress(
            (epoch + 1) / config["epochs"],
            text=f"Epoch {epoch + 1}/{config['epochs']} · loss {logs['loss']:.5f}",
        )

    try:
        result = forecast_series(
            months, counts, config, horizon,
            on_epoch_end=tracker.guard_epochs(generation, on_epoch),
        )
    except RunCancelledError:
        progress.empty()
        return
    except (InsufficientDataError, DegenerateNormalizationError) as e:
        progress.empty()
        st.error(str(e))
        return
    except RuntimeError as e:
        progress.empty()
        st.error(f"Could not train the model: {e}")
        return

    progress.empty()
    result["archive_key"] = archive_key
    result["chart"] = build_chart_data(result["months"], result["counts"], result["forecast"])
    tracker.apply(
        generation, st.session_state, result,
        key="forecast", invalidates=("recommendations",),
    )


# ── Results ───────────────────────────────────────────────────────

def _render_forecast(result: dict):
    points = result["forecast"]
    change = forecast_change(result["counts"], points)

    st.subheader("Observed and predicted crimes")
    col1, col2, col3 = st.columns(3)
    col1.metric("Model", result["variant"]["label"])
    col2.metric(
        "Forecast horizon", f"{len(points)} months",
        fmt_month_range([p.month for p in points]), delta_color="off",
    )
    col3.metric(
        "Mean forecast vs last 12 months", fmt_pct(change, decimals=1),
        delta_color="off",
    )

    st.plotly_chart(
        forecast_chart(result["chart"], result["annotations"]),
        use_container_width=True,
        config=CHART_CONFIG,
    )

    col1, col2 = st.columns(2)
    with col1:
        st.markdown("**Predicted crimes by month**")
        table = forecast_frame(points)
        table["month"] = table["month"].map(fmt_month)
        st.dataframe(table.rename(columns=FORECAST_RENAME), hide_index=True, use_container_width=True)
    with col2:
        st.markdown("**Turning points in the forecast**")
        if result["annotations"]:
            turns = annotation_frame(result["annotations"])
            turns["month"] = turns["month"].map(fmt_month)
            turns["value"] = turns["value"].round(0)
            st.dataframe(turns.rename(columns=ANNOTATION_RENAME), hide_index=True, use_container_width=True)
        else:
            st.caption("The forecast has no local peaks or troughs.")


def _render_training(result: dict):
    with st.expander("Training details"):
        config = result["variant"]
        st.markdown(
            f"- Encoding: **{config['encoding']}**, strategy: **{config['strategy']}**\n"
            f"- Epochs: **{config['epochs']}**, learning rate: **{config['learning_rate']}**\n"
            "- Inputs and labels are min/max scaled to [0, 1] using statistics "
            "from this run only. A series with no variation maps to 0.5 and "
            "forecasts its own constant value."
        )
        st.plotly_chart(loss_chart(result["history"]), use_container_width=True, config=CHART_CONFIG)
