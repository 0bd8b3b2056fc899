"""
utils/data_loaders.py
---------------------
All data loading functions for the dashboard.
Uploaded archives are passed in as raw bytes so @st.cache_data can
hash them; the same upload is only unzipped and parsed once per session.

Archive and data-sufficiency problems stop the page with one st.error
message. External services (police.uk) return None instead, so the
section can warn and keep whatever it showed before.

Model training is deliberately not cached here: every run trains a
fresh model with its own progress bar, see sections/forecast.py.
"""

import pandas as pd
import streamlit as st

from crime_forecast.aggregator import to_frame
from crime_forecast.archive import archive_tree, list_entries
from crime_forecast.errors import (
    ArchiveError,
    ExternalServiceError,
    InsufficientDataError,
)
from crime_forecast.outcomes import fetch_outcome_records
from crime_forecast.pipeline import load_monthly_counts


# ── Uploaded archive ──────────────────────────────────────────────

@st.cache_data
def load_counts(archive: bytes, profile: str) -> dict:
    """
    Monthly counts for an uploaded archive.

    Returns:
        dict from pipeline.load_monthly_counts() plus:
            frame – aggregator.to_frame() of the table
    """
    try:
        loaded = load_monthly_counts(archive, profile)
    except ArchiveError as e:
        st.error(f"Could not read the uploaded archive: {e}")
        st.stop()
    except InsufficientDataError as e:
        st.error(f"Not enough data in the uploaded archive: {e}")
        st.stop()

    loaded["frame"] = to_frame(loaded["table"])
    return loaded


@st.cache_data
def load_archive_tree(archive: bytes, name: str) -> dict:
    """
    Returns:
        dict with keys:
            tree    – ASCII tree of the archive
            entries – [(entry name, uncompressed size), ...]
    """
    try:
        return {
            "tree":    archive_tree(archive, root_name=name),
            "entries": list_entries(archive),
        }
    except ArchiveError as e:
        st.error(f"Could not read the uploaded archive: {e}")
        st.stop()


# ── police.uk ─────────────────────────────────────────────────────

@st.cache_data(ttl=3600)
def load_outcome_records(lat: float, lng: float, date: str | None = None) -> pd.DataFrame | None:
    try:
        return fetch_outcome_records(lat, lng, date)
    except ExternalServiceError as e:
        print(f"  WARNING: {e}")
        return None


# ── Session ───────────────────────────────────────────────────────

def get_uploaded_archive() -> dict | None:
    """
    The archive uploaded in the sidebar, as stored by app.py:
    {"name", "bytes", "key", "profile"}. None before the first upload.
    """
    return st.session_state.get("archive")
