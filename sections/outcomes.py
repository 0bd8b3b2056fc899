"""
sections/outcomes.py
--------------------
'Outcome experiment' section: fetches crimes recorded near a point from
the police.uk API and trains a classifier to predict, from location
alone, whether a crime ends with a recorded outcome.

This is an exploratory side experiment. Location alone is a weak
predictor and the heatmap should be read as a curiosity.
"""

import streamlit as st

from crime_forecast.constants import OUTCOME_DEFAULT_LOCATION, OUTCOME_EPOCHS
from crime_forecast.errors import InsufficientDataError
from crime_forecast.outcomes import predict_outcome_grid, train_outcome_model
from utils.charts import outcome_grid_chart
from utils.constants import CHART_CONFIG
from utils.data_loaders import load_outcome_records
from utils.helpers import fmt_count, fmt_pct


def render():
    st.title("Outcome Experiment")
    st.markdown("""
    Crimes recorded at the location nearest to the chosen point are fetched
    live from data.police.uk. Each is labelled by whether it has an outcome
    status, and a small neural network learns that label from latitude and
    longitude.
    """)

    col1, col2, col3 = st.columns(3)
    lat  = col1.number_input("Latitude",  value=OUTCOME_DEFAULT_LOCATION["lat"], format="%.6f")
    lng  = col2.number_input("Longitude", value=OUTCOME_DEFAULT_LOCATION["lng"], format="%.6f")
    date = col3.text_input("Month (YYYY-MM, optional)", value="")

    if st.button("Fetch and train", type="primary"):
        _run(float(lat), float(lng), date.strip() or None)

    stored = st.session_state.get("outcome")
    if stored is None:
        return

    _render_results(stored)


def _run(lat: float, lng: float, date: str | None):
    frame = load_outcome_records(lat, lng, date)
    if frame is None:
        st.warning("Could not reach data.police.uk. Showing the previous results, if any.")
        return

    progress = st.progress(0.0, text="Training…")

    def on_epoch(epoch, logs):
        progress.progress(
            (epoch + 1) / OUTCOME_EPOCHS,
            text=f"Epoch {epoch + 1}/{OUTCOME_EPOCHS} · loss {logs['loss']:.4f}",
        )

    try:
        handle = train_outcome_model(frame, on_epoch_end=on_epoch)
    except InsufficientDataError as e:
        progress.empty()
        st.warning(str(e))
        return

    with handle.model:
        grid = predict_outcome_grid(handle)
    progress.empty()

    st.session_state["outcome"] = {
        "frame":   frame,
        "grid":    grid,
        "history": handle.history,
    }


def _render_results(stored: dict):
    frame = stored["frame"]
    resolved = frame["outcome"].mean() * 100

    col1, col2, col3 = st.columns(3)
    col1.metric("Crimes fetched", fmt_count(len(frame)))
    col2.metric("With an outcome", fmt_pct(resolved, sign=False))
    col3.metric("Final training loss", f"{stored['history']['loss'][-1]:.4f}")

    st.plotly_chart(
        outcome_grid_chart(stored["grid"], frame),
        use_container_width=True,
        config=CHART_CONFIG,
    )
