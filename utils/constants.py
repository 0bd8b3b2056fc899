"""
utils/constants.py
------------------
Shared display constants used across the dashboard sections.
Import from here rather than defining locally in section files.

Pipeline constants (schema, profiles, variants, endpoints) live in
crime_forecast/constants.py; this module only holds what the charts
and tables need.
"""

# ── Plotly chart config ───────────────────────────────────────────
CHART_CONFIG = {'displayModeBar': False, 'scrollZoom': False}

# ── Colour palette ────────────────────────────────────────────────
SERIES_COLOURS = {
    'Actual Crimes':    '#3498db',
    'Predicted Crimes': '#e67e22',
    'Total':            '#95a5a6',
}

ANNOTATION_COLOURS = {
    'Peak':   '#e74c3c',
    'Trough': '#3498db',
}

CRIME_COLOURS = {
    'Anti-social behaviour':        '#f1c40f',
    'Bicycle theft':                '#16a085',
    'Burglary':                     '#7f8c8d',
    'Criminal damage and arson':    '#d35400',
    'Drugs':                        '#9b59b6',
    'Other crime':                  '#bdc3c7',
    'Other theft':                  '#e67e22',
    'Possession of weapons':        '#c0392b',
    'Public order':                 '#2980b9',
    'Robbery':                      '#1abc9c',
    'Shoplifting':                  '#e74c3c',
    'Theft from the person':        '#f39c12',
    'Vehicle crime':                '#95a5a6',
    'Violence and sexual offences': '#3498db',
}

FALLBACK_COLOUR = '#95a5a6'

# ── DataFrame column rename mappings ─────────────────────────────
FORECAST_RENAME = {
    'month':           'Month',
    'predicted_value': 'Predicted crimes',
}

ANNOTATION_RENAME = {
    'kind':  'Turning point',
    'month': 'Month',
    'value': 'Predicted crimes',
}

DIAGNOSTIC_LABELS = {
    'files':   'Files parsed',
    'records': 'Rows counted',
    'dropped': 'Malformed rows dropped',
}

# ── Shared layout defaults applied to all Plotly figures ─────────
BASE_LAYOUT = dict(
    plot_bgcolor='rgba(0,0,0,0)',
    paper_bgcolor='rgba(0,0,0,0)',
    dragmode=False,
    hovermode='x unified',
)

AXIS_DEFAULTS = dict(
    showspikes=False,
    gridcolor='rgba(255,255,255,0.05)',
)

LEGEND_TOP = dict(
    orientation='h',
    yanchor='bottom',
    y=1.02,
)
