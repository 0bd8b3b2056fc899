"""
sections/recommendations.py
---------------------------
'Recommendations' section: sends the latest forecast's historical and
predicted series to a chat-completions service and shows the narrative
it returns as markdown.

A failed request shows the placeholder text as a warning and keeps the
last successful narrative on screen.
"""

import streamlit as st

from crime_forecast.constants import NO_RECOMMENDATION_DATA, RECOMMENDATION_ERROR
from crime_forecast.pipeline import build_summary
from crime_forecast.recommendations import generate_recommendations
from utils.data_loaders import get_uploaded_archive


def render():
    st.title("Recommendations")
    st.markdown("""
    A language model reads the observed and forecast monthly totals and
    describes the patterns it sees, with suggestions for stakeholders. Its
    output is unverified commentary, not analysis: check it against the
    charts before relying on it.
    """)

    archive  = get_uploaded_archive()
    forecast = st.session_state.get("forecast")
    if archive is None or forecast is None or forecast.get("archive_key") != archive["key"]:
        st.info("Run a forecast on the Forecast page first.")
        return

    summary = build_summary(forecast["months"], forecast["counts"], forecast["forecast"])

    with st.expander("Data sent to the service"):
        st.json(summary, expanded=False)

    api_key = st.text_input("OpenAI API key", type="password")
    if st.button("Generate recommendations", disabled=not api_key):
        with st.spinner("Generating recommendations…"):
            text = generate_recommendations(summary, api_key)
        if text in (RECOMMENDATION_ERROR, NO_RECOMMENDATION_DATA):
            st.warning(text)
        else:
            st.session_state["recommendations"] = {
                "archive_key": archive["key"],
                "text":        text,
            }

    stored = st.session_state.get("recommendations")
    if stored and stored["archive_key"] == archive["key"]:
        st.divider()
        st.markdown(stored["text"])
