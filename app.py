import hashlib

import streamlit as st

from crime_forecast.constants import DEFAULT_PROFILE, PROFILES
from crime_forecast.runs import RunTracker
from sections import archive_structure, crime_types, forecast, outcomes, recommendations

st.set_page_config(
    page_title="UK Crime Forecast",
    page_icon="🔍",
    layout="wide"
)

# ── Session ───────────────────────────────────────────────────────

if "tracker" not in st.session_state:
    st.session_state["tracker"] = RunTracker()


def store_upload(uploaded, profile: str):
    """
    Keep the uploaded archive in session state. A new archive (or a new
    profile) starts a new run generation, so any run still training on
    the previous upload can no longer publish its results.
    """
    if uploaded is None:
        return
    data = uploaded.getvalue()
    key  = f"{hashlib.sha1(data).hexdigest()[:12]}:{profile}"

    current = st.session_state.get("archive")
    if current is not None and current["key"] == key:
        return

    st.session_state["tracker"].begin()
    for stale in ("forecast", "type_forecasts", "recommendations"):
        st.session_state.pop(stale, None)
    st.session_state["archive"] = {
        "name":    uploaded.name,
        "bytes":   data,
        "key":     key,
        "profile": profile,
    }


# ── Sidebar ───────────────────────────────────────────────────────

st.sidebar.title("UK Crime Forecast")

uploaded = st.sidebar.file_uploader("police.uk archive", type="zip")
profile_names = list(PROFILES)
profile = st.sidebar.selectbox(
    "File layout",
    profile_names,
    index=profile_names.index(DEFAULT_PROFILE),
    format_func=lambda p: PROFILES[p]["label"],
)
store_upload(uploaded, profile)

SECTIONS = {
    "Forecast":           forecast,
    "Crime types":        crime_types,
    "Recommendations":    recommendations,
    "Archive structure":  archive_structure,
    "Outcome experiment": outcomes,
}

section = st.sidebar.radio("Navigate", list(SECTIONS))

st.sidebar.caption(
    "Download monthly street files from data.police.uk/data and upload the "
    "zip as-is. Nothing is stored once the session ends."
)

SECTIONS[section].render()
