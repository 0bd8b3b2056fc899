"""
sections/crime_types.py
-----------------------
'Crime types' section: total monthly crimes plus one line per selected
crime type, and optional per-type forecasts.

Per-type series are zero-filled, so a type that was not recorded in a
month counts as 0 there rather than leaving a gap.
"""

import streamlit as st

from crime_forecast.aggregator import crime_types
from crime_forecast.constants import VARIANTS
from crime_forecast.errors import RunCancelledError
from crime_forecast.pipeline import build_chart_data, forecast_by_crime_type
from utils.charts import crime_type_chart, forecast_chart
from utils.constants import CHART_CONFIG
from utils.data_loaders import get_uploaded_archive, load_counts
from utils.helpers import fmt_count, fmt_pct, forecast_change


def render():
    st.title("Crime Types")
    st.markdown("""
    How each category of crime contributes to the monthly total. Select the
    categories to compare; the total line always covers every category.
    """)

    archive = get_uploaded_archive()
    if archive is None:
        st.info("Upload a police.uk archive (.zip) in the sidebar to begin.")
        return

    loaded = load_counts(archive["bytes"], archive["profile"])
    frame  = loaded["frame"]
    types  = crime_types(loaded["table"])

    if not types:
        st.warning("No crime types were recorded in this archive.")
        return

    totals  = frame[types].sum().sort_values(ascending=False)
    default = list(totals.index[:5])
    selected = st.multiselect("Crime types", types, default=default)

    st.plotly_chart(
        crime_type_chart(frame, selected),
        use_container_width=True,
        config=CHART_CONFIG,
    )

    with st.expander("Totals by crime type"):
        table = totals.rename("Crimes").to_frame()
        table["Crimes"] = table["Crimes"].map(fmt_count)
        st.dataframe(table, use_container_width=True)

    st.divider()
    _render_type_forecasts(loaded["table"], selected, archive["key"])


def _render_type_forecasts(table: dict, selected: list[str], archive_key: str):
    st.subheader("Forecast by crime type")
    if not selected:
        st.caption("Select at least one crime type above.")
        return

    names = list(VARIANTS)
    col1, col2 = st.columns([2, 1])
    variant = col1.selectbox(
        "Model",
        names,
        index=names.index("trend"),
        format_func=lambda v: VARIANTS[v]["label"],
        key="type_variant",
    )
    horizon = col2.number_input("Months to forecast", min_value=1, max_value=60, value=12, key="type_horizon")

    if st.button("Forecast selected types"):
        tracker    = st.session_state["tracker"]
        generation = tracker.begin()
        epochs     = VARIANTS[variant]["epochs"]
        progress   = st.progress(0.0, text="Training…")
        done       = {"runs": 0}

        def on_epoch(epoch, logs):
            if epoch == 0:
                done["runs"] += 1
            progress.progress(
                min(1.0, ((done["runs"] - 1) * epochs + epoch + 1) / (epochs * len(selected))),
                text=f"Model {done['runs']}/{len(selected)} · epoch {epoch + 1}/{epochs}",
            )

        try:
            results = forecast_by_crime_type(
                table, variant, int(horizon), types=selected,
                on_epoch_end=tracker.guard_epochs(generation, on_epoch),
            )
        except RunCancelledError:
            progress.empty()
            return
        except RuntimeError as e:
            progress.empty()
            st.error(f"Could not train the model: {e}")
            return

        progress.empty()
        tracker.apply(
            generation,
            st.session_state,
            {"archive_key": archive_key, "results": results},
            key="type_forecasts",
        )

    stored = st.session_state.get("type_forecasts")
    if not stored or stored["archive_key"] != archive_key:
        return

    results = stored["results"]
    skipped = [t for t in selected if t not in results]
    if skipped:
        st.warning(f"Not enough history to forecast: {', '.join(skipped)}")

    for crime_type, result in results.items():
        change = forecast_change(result["counts"], result["forecast"])
        st.markdown(f"**{crime_type}** · mean forecast vs last 12 months: {fmt_pct(change, decimals=1)}")
        chart = build_chart_data(result["months"], result["counts"], result["forecast"])
        st.plotly_chart(
            forecast_chart(chart, result["annotations"]),
            use_container_width=True,
            config=CHART_CONFIG,
            key=f"type_forecast_{crime_type}",
        )
