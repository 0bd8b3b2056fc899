"""
sections/archive_structure.py
-----------------------------
'Archive structure' section: the uploaded zip's folders and files as
an ASCII tree, with a download button for the text.

Works for any zip, including ones with no crime data in them, which
makes it the first place to look when the Forecast page finds nothing.
"""

import streamlit as st

from crime_forecast.constants import PROFILES
from utils.data_loaders import get_uploaded_archive, load_archive_tree
from utils.helpers import fmt_count


def render():
    st.title("Archive Structure")

    archive = get_uploaded_archive()
    if archive is None:
        st.info("Upload a police.uk archive (.zip) in the sidebar to begin.")
        return

    suffix  = PROFILES[archive["profile"]]["entry_suffix"]
    data    = load_archive_tree(archive["bytes"], archive["name"])
    entries = data["entries"]
    files   = [name for name, _ in entries if not name.endswith("/")]
    matched = [name for name in files if name.endswith(suffix)]
    size    = sum(s for _, s in entries)

    col1, col2, col3 = st.columns(3)
    col1.metric("Files", fmt_count(len(files)))
    col2.metric(f"Ending in {suffix}", fmt_count(len(matched)))
    col3.metric("Uncompressed size", f"{size / 1_048_576:,.1f} MB")

    if not matched:
        st.warning(
            f"No entries end in `{suffix}`. Try another file layout in the sidebar."
        )

    st.code(data["tree"], language=None)
    st.download_button(
        "Download tree",
        data["tree"],
        file_name=f"{archive['name'].rsplit('.', 1)[0]}-structure.txt",
        mime="text/plain",
    )
