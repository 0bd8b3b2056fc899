"""
tests/test_services.py
----------------------
Tests for everything around the core pipeline: the archive reader and
tree renderer, the recommendation and police.uk clients (HTTP faked
with monkeypatch), the run tracker, and the dashboard's pure helpers
and chart builders.

Run with:
    pytest tests/test_services.py -v
"""

import io
import zipfile

import numpy as np
import pandas as pd
import pytest
import requests

from crime_forecast import outcomes, recommendations
from crime_forecast.annotator import Annotation
from crime_forecast.archive import archive_tree, build_tree, iter_csv_entries, render_tree
from crime_forecast.constants import (
    NO_RECOMMENDATION_DATA,
    RECOMMENDATION_ERROR,
    RECOMMENDATION_MODEL,
    RECOMMENDATION_TEMPERATURE,
)
from crime_forecast.errors import (
    ArchiveError,
    ExternalServiceError,
    InsufficientDataError,
    RunCancelledError,
)
from crime_forecast.forecaster import ForecastPoint
from crime_forecast.pipeline import build_chart_data
from crime_forecast.runs import RunTracker
from utils.charts import crime_type_chart, forecast_chart, outcome_grid_chart
from utils.helpers import fmt_month, fmt_pct, forecast_change, forecast_frame

SUMMARY = {
    "historical": [{"date": "2023-01", "value": 10.0}],
    "predicted":  [{"date": "2023-02", "value": 11.0}],
}


# ── Helpers ───────────────────────────────────────────────────────

def make_zip(entries: dict[str, str | bytes]) -> bytes:
    buf = io.BytesIO()
    with zipfile.ZipFile(buf, "w") as zf:
        for name, data in entries.items():
            zf.writestr(name, data)
    return buf.getvalue()


class FakeResponse:

    def __init__(self, payload=None, status: int = 200, body_error: bool = False):
        self.payload    = payload
        self.status     = status
        self.body_error = body_error

    def raise_for_status(self):
        if self.status >= 400:
            raise requests.HTTPError(f"{self.status} error")

    def json(self):
        if self.body_error:
            raise ValueError("not JSON")
        return self.payload


def chat_payload(text: str) -> dict:
    return {"choices": [{"message": {"role": "assistant", "content": text}}]}


# ══════════════════════════════════════════════════════════════════
# Archive reader
# ══════════════════════════════════════════════════════════════════

class TestArchive:

    @pytest.fixture(scope="class")
    def archive(self):
        return make_zip({
            "2023-01/": b"",
            "2023-01/2023-01-met-street.csv":    "Month\n2023-01\n",
            "2023-01/2023-01-met-outcomes.csv":  "Month\n2023-01\n",
            "2023-02/2023-02-met-street.csv":    "\ufeffMonth\n2023-02\n".encode("utf-8"),
            "__MACOSX/2023-01/._2023-01-met-street.csv": b"\x00\x05\x16\x07",
            "2023-02/._2023-02-met-street.csv":  b"\x00\x05\x16\x07",
        })

    def test_suffix_filter_and_resource_forks(self, archive):
        names = [name for name, _ in iter_csv_entries(archive, "-street.csv")]
        assert names == ["2023-01/2023-01-met-street.csv", "2023-02/2023-02-met-street.csv"]

    def test_any_csv_suffix(self, archive):
        assert len(list(iter_csv_entries(archive, ".csv"))) == 3

    def test_bom_is_stripped(self, archive):
        texts = dict(iter_csv_entries(archive))
        assert texts["2023-02/2023-02-met-street.csv"].startswith("Month")

    def test_accepts_path_and_file_object(self, archive, tmp_path):
        path = tmp_path / "crimes.zip"
        path.write_bytes(archive)
        assert len(list(iter_csv_entries(str(path)))) == 2
        assert len(list(iter_csv_entries(io.BytesIO(archive)))) == 2

    def test_bad_zip(self):
        with pytest.raises(ArchiveError):
            list(iter_csv_entries(b"this is not a zip"))

    def test_archive_error_is_external(self):
        assert issubclass(ArchiveError, ExternalServiceError)

    def test_archive_tree(self, archive):
        assert archive_tree(archive, root_name="crimes.zip") == "\n".join([
            "crimes.zip",
            "├── 2023-01",
            "│   ├── 2023-01-met-street.csv",
            "│   └── 2023-01-met-outcomes.csv",
            "└── 2023-02",
            "    └── 2023-02-met-street.csv",
        ])


class TestTree:

    def test_insertion_order_and_shared_parents(self):
        root = build_tree(["b/x.csv", "a/y.csv", "b/z.csv"])
        assert list(root.children) == ["b", "a"]
        assert list(root.children["b"].children) == ["x.csv", "z.csv"]

    def test_sizes_on_files(self):
        root = build_tree([("data/", 0), ("data/one.csv", 120)])
        leaf = root.children["data"].children["one.csv"]
        assert leaf.is_file and leaf.size == 120
        assert not root.children["data"].is_file

    def test_deep_nesting(self):
        path = "/".join(f"d{i}" for i in range(500)) + "/leaf.csv"
        rendered = render_tree(build_tree([path]), "deep.zip")
        lines = rendered.splitlines()
        assert len(lines) == 502
        assert lines[-1].endswith("└── leaf.csv")

    def test_empty(self):
        assert render_tree(build_tree([]), "empty.zip") == "empty.zip"


# ══════════════════════════════════════════════════════════════════
# Recommendation client
# ══════════════════════════════════════════════════════════════════

class TestRecommendations:

    def test_success(self, monkeypatch):
        sent = {}

        def fake_post(url, json=None, headers=None, timeout=None):
            sent.update(url=url, json=json, headers=headers)
            return FakeResponse(chat_payload("## Findings\nCrime is flat."))

        monkeypatch.setattr(recommendations.requests, "post", fake_post)
        text = recommendations.generate_recommendations(SUMMARY, "sk-test")

        assert text == "## Findings\nCrime is flat."
        assert sent["json"]["model"] == RECOMMENDATION_MODEL
        assert sent["json"]["temperature"] == RECOMMENDATION_TEMPERATURE
        assert sent["headers"]["Authorization"] == "Bearer sk-test"
        user = sent["json"]["messages"][-1]["content"]
        assert '"date": "2023-02"' in user, "Predicted data missing from prompt."

    def test_no_predicted_data(self, monkeypatch):
        monkeypatch.setattr(
            recommendations.requests, "post",
            lambda *a, **k: pytest.fail("service called without data"),
        )
        summary = {"historical": SUMMARY["historical"], "predicted": []}
        assert recommendations.generate_recommendations(summary, "k") == NO_RECOMMENDATION_DATA

    @pytest.mark.parametrize("response", [
        FakeResponse(status=500),
        FakeResponse(body_error=True),
        FakeResponse({"choices": []}),
        FakeResponse({"error": {"message": "bad key"}}),
        FakeResponse(chat_payload(None)),
    ])
    def test_failures_return_placeholder(self, monkeypatch, capsys, response):
        monkeypatch.setattr(recommendations.requests, "post", lambda *a, **k: response)
        assert recommendations.generate_recommendations(SUMMARY, "k") == RECOMMENDATION_ERROR
        assert "WARNING" in capsys.readouterr().out

    def test_network_failure(self, monkeypatch):
        def refuse(*args, **kwargs):
            raise requests.ConnectionError("refused")

        monkeypatch.setattr(recommendations.requests, "post", refuse)
        assert recommendations.generate_recommendations(SUMMARY, "k") == RECOMMENDATION_ERROR
        with pytest.raises(ExternalServiceError):
            recommendations.request_recommendations(SUMMARY, "k")


# ══════════════════════════════════════════════════════════════════
# Outcome experiment
# ══════════════════════════════════════════════════════════════════

def crime(lat, lng, resolved: bool) -> dict:
    return {
        "category": "burglary",
        "location": {"latitude": str(lat), "longitude": str(lng)},
        "outcome_status": {"category": "Under investigation"} if resolved else None,
    }


class TestOutcomes:

    def test_parse_records(self):
        frame = outcomes.parse_outcome_records([
            crime(51.5, -0.1, True),
            crime(51.6, -0.2, False),
            {"location": {"latitude": "", "longitude": "-0.1"}},
            {"location": None},
        ])
        assert list(frame.columns) == ["latitude", "longitude", "outcome"]
        assert frame["outcome"].tolist() == [1, 0]

    def test_fetch(self, monkeypatch):
        seen = {}

        def fake_get(url, params=None, timeout=None):
            seen.update(params)
            return FakeResponse([crime(51.5, -0.1, True)])

        monkeypatch.setattr(outcomes.requests, "get", fake_get)
        frame = outcomes.fetch_outcome_records(51.5, -0.1, date="2024-01")
        assert len(frame) == 1
        assert seen == {"lat": 51.5, "lng": -0.1, "date": "2024-01"}

    @pytest.mark.parametrize("response", [
        FakeResponse(status=503),
        FakeResponse({"not": "a list"}),
    ])
    def test_fetch_failures(self, monkeypatch, response):
        monkeypatch.setattr(outcomes.requests, "get", lambda *a, **k: response)
        with pytest.raises(ExternalServiceError):
            outcomes.fetch_outcome_records()

    def test_needs_both_classes(self):
        frame = pd.DataFrame({"latitude": [51.5, 51.6], "longitude": [-0.1, -0.2], "outcome": [1, 1]})
        with pytest.raises(InsufficientDataError):
            outcomes.train_outcome_model(frame)
        with pytest.raises(InsufficientDataError):
            outcomes.train_outcome_model(frame.iloc[:1])

    def test_train_and_grid(self):
        frame = outcomes.parse_outcome_records([
            crime(51.50, -0.10, True),
            crime(51.51, -0.12, False),
            crime(51.52, -0.11, True),
            crime(51.53, -0.13, False),
        ])
        handle = outcomes.train_outcome_model(frame, hidden_layers=(8,), epochs=3)
        with handle.model:
            grid = outcomes.predict_outcome_grid(handle, grid_size=5)
        assert len(handle.history["loss"]) == 3
        assert grid.shape == (25, 3)
        assert grid["latitude"].min() == pytest.approx(51.50)
        assert grid["longitude"].max() == pytest.approx(-0.10)
        assert grid["probability"].between(0, 1).all()


# ══════════════════════════════════════════════════════════════════
# Run tracker
# ══════════════════════════════════════════════════════════════════

class TestRunTracker:

    def test_only_latest_generation_applies(self):
        tracker = RunTracker()
        state   = {}
        first   = tracker.begin()
        second  = tracker.begin()

        assert not tracker.apply(first, state, "stale")
        assert state == {}
        assert tracker.apply(second, state, "fresh")
        assert state == {"forecast": "fresh"}

    def test_results_replaced_wholesale(self):
        tracker = RunTracker()
        state   = {"forecast": {"months": ["2023-01"]}}
        tracker.apply(tracker.begin(), state, {"months": ["2024-01"]})
        assert state["forecast"] == {"months": ["2024-01"]}

    def test_guard_aborts_superseded_run(self):
        tracker = RunTracker()
        calls   = []
        guard   = tracker.guard_epochs(tracker.begin(), lambda e, logs: calls.append(e))
        guard(0, {"loss": 1.0})
        tracker.begin()
        with pytest.raises(RunCancelledError):
            guard(1, {"loss": 0.5})
        assert calls == [0]

    def test_new_forecast_clears_derived_results(self):
        tracker = RunTracker()
        state   = {"forecast": "seasonal run", "recommendations": {"text": "old"}}
        tracker.apply(tracker.begin(), state, "trend run", invalidates=("recommendations",))
        assert state == {"forecast": "trend run"}

    def test_stale_run_keeps_derived_results(self):
        tracker = RunTracker()
        state   = {"recommendations": {"text": "kept"}}
        stale   = tracker.begin()
        tracker.begin()
        tracker.apply(stale, state, "late", invalidates=("recommendations",))
        assert state == {"recommendations": {"text": "kept"}}


# ══════════════════════════════════════════════════════════════════
# Dashboard helpers and charts
# ══════════════════════════════════════════════════════════════════

POINTS = [ForecastPoint("2023-04", 12.0), ForecastPoint("2023-05", 9.0), ForecastPoint("2023-06", 11.0)]


class TestHelpers:

    def test_fmt_month(self):
        assert fmt_month("2023-01") == "Jan 2023"
        assert fmt_month("unknown") == "unknown"

    def test_fmt_pct_nan(self):
        assert fmt_pct(float("nan")) == "n/a"
        assert fmt_pct(5.26, decimals=1) == "+5.3%"

    def test_forecast_change(self):
        assert forecast_change([10, 10, 10], POINTS) == pytest.approx(6.7)
        assert np.isnan(forecast_change([0, 0], POINTS))
        assert np.isnan(forecast_change([10], []))

    def test_forecast_frame(self):
        df = forecast_frame(POINTS)
        assert list(df.columns) == ["month", "predicted_value"]
        assert forecast_frame([]).empty


class TestCharts:

    def test_forecast_chart_traces(self):
        chart = build_chart_data(["2023-01", "2023-02", "2023-03"], [10, 11, 12], POINTS)
        annotations = [Annotation("Trough", 1, "2023-05", 9.0)]
        fig = forecast_chart(chart, annotations)
        names = [t.name for t in fig.data]
        assert names == ["Actual Crimes", "Predicted Crimes", "Trough"]
        assert len(fig.data[0].x) == len(fig.data[0].y) == 6

    def test_crime_type_chart_skips_unknown_types(self):
        frame = pd.DataFrame({"month": ["2023-01"], "total": [3], "Drugs": [3]})
        fig = crime_type_chart(frame, ["Drugs", "Robbery"])
        assert [t.name for t in fig.data] == ["Total", "Drugs"]

    def test_outcome_grid_with_repeated_coordinates(self):
        grid = pd.DataFrame({
            "latitude":    [51.5] * 4,
            "longitude":   [-0.1] * 4,
            "probability": [0.2, 0.4, 0.6, 0.8],
        })
        observed = pd.DataFrame({"latitude": [51.5], "longitude": [-0.1], "outcome": [1]})
        fig = outcome_grid_chart(grid, observed)
        assert len(fig.data) == 2
