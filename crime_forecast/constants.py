"""
crime_forecast/constants.py
---------------------------
Shared constants for the forecasting pipeline: the police.uk street
CSV schema, named ingestion profiles, named modelling variants, and
the endpoints used by the external collaborators.

Import from here rather than defining locally in pipeline modules.

Profiles and variants are plain dicts so the dashboard can list them
in a selectbox and callers can override individual keys, e.g.

    config = {**VARIANTS["seasonal"], "epochs": 50}
"""

# ── Street CSV schema ─────────────────────────────────────────────
# Column order of the police.uk bulk download street files.
STREET_COLUMNS = [
    "Crime ID",
    "Month",
    "Reported by",
    "Falls within",
    "Longitude",
    "Latitude",
    "Location",
    "LSOA code",
    "LSOA name",
    "Crime type",
    "Last outcome category",
    "Context",
]

MONTH_COLUMN      = "Month"
CRIME_TYPE_COLUMN = "Crime type"
MONTH_PATTERN     = r"\d{4}-\d{2}"

PARSE_MODES = ("positional", "headered")

# ── Ingestion profiles ────────────────────────────────────────────
# Two archive conventions (which entries count as data) crossed with
# two CSV schemas (fixed column positions vs header lookup).
PROFILES = {
    "street": {
        "label":        "Street files, header lookup",
        "entry_suffix": "-street.csv",
        "mode":         "headered",
    },
    "street-positional": {
        "label":        "Street files, fixed columns",
        "entry_suffix": "-street.csv",
        "mode":         "positional",
    },
    "all-csv": {
        "label":        "Any CSV, fixed columns",
        "entry_suffix": ".csv",
        "mode":         "positional",
    },
}

DEFAULT_PROFILE = "street"

# ── Modelling ─────────────────────────────────────────────────────
LOOKBACK              = 12
SEASON_LENGTH         = 12
RANDOM_STATE          = 42
MIN_TRAINING_EXAMPLES = 2

ENCODINGS  = ("trend", "seasonal", "window")
STRATEGIES = ("independent", "autoregressive")

# horizon=None means "forecast as many months as were observed".
VARIANTS = {
    "trend": {
        "label":         "Linear trend (dense network)",
        "encoding":      "trend",
        "strategy":      "independent",
        "model":         "dense",
        "hidden_layers": (64, 64),
        "epochs":        100,
        "learning_rate": 0.001,
        "horizon":       12,
    },
    "seasonal": {
        "label":         "Trend + seasonality (dense network)",
        "encoding":      "seasonal",
        "strategy":      "independent",
        "model":         "dense",
        "hidden_layers": (10,),
        "epochs":        500,
        "learning_rate": 0.01,
        "horizon":       24,
    },
    "autoregressive": {
        "label":         "12-month lookback (dense network)",
        "encoding":      "window",
        "strategy":      "autoregressive",
        "model":         "dense",
        "hidden_layers": (64, 32),
        "epochs":        200,
        "learning_rate": 0.001,
        "horizon":       None,
    },
    "recurrent": {
        "label":         "12-month lookback (stacked LSTM)",
        "encoding":      "window",
        "strategy":      "autoregressive",
        "model":         "lstm",
        "units":         (50, 50),
        "epochs":        50,
        "learning_rate": 0.001,
        "horizon":       12,
    },
}

DEFAULT_VARIANT = "seasonal"

# ── Outcome classifier experiment ─────────────────────────────────
OUTCOME_API_URL          = "https://data.police.uk/api/crimes-at-location"
OUTCOME_DEFAULT_LOCATION = {"lat": 51.509865, "lng": -0.118092}
OUTCOME_HIDDEN_LAYERS    = (128, 128, 128, 128)
OUTCOME_EPOCHS           = 100
OUTCOME_BATCH_SIZE       = 32
OUTCOME_LEARNING_RATE    = 0.0005
OUTCOME_GRID_SIZE        = 20
OUTCOME_TIMEOUT          = 10

# ── Narrative recommendations ─────────────────────────────────────
RECOMMENDATION_URL         = "https://api.openai.com/v1/chat/completions"
RECOMMENDATION_MODEL       = "gpt-4"
RECOMMENDATION_TEMPERATURE = 0.7
RECOMMENDATION_TIMEOUT     = 60

RECOMMENDATION_SYSTEM_PROMPT = (
    "You are an analytical assistant providing insights based on crime "
    "data trends."
)

RECOMMENDATION_INSTRUCTIONS = """
Analyze the historical data and provide insights.
Analyze the predicted data and provide insights.
Explain the prediction basis, describe observed patterns, differences, and
trends, and provide significant findings or potential reasons behind these
patterns. Additionally, provide actionable insights and recommendations for
stakeholders based on this analysis.
"""

NO_RECOMMENDATION_DATA = "No sufficient data to generate recommendations."
RECOMMENDATION_ERROR   = "Error generating recommendations."
