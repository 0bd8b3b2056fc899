"""
tests/test_models.py
--------------------
Contract tests for the model families: epoch-by-epoch training,
callbacks, seeding, and the fit/predict/close lifecycle.

Run with:
    pytest tests/test_models.py -v

The LSTM tests are skipped when TensorFlow is not installed
(pip install -e '.[recurrent]').
"""

import numpy as np
import pytest

from crime_forecast.constants import VARIANTS
from crime_forecast.errors import InsufficientDataError, RunCancelledError
from crime_forecast.models import (
    DenseRegressor,
    OutcomeClassifier,
    RecurrentRegressor,
    build_model,
)

X_TREND = np.linspace(0, 1, 12).reshape(-1, 1)
Y_TREND = np.linspace(0.1, 0.9, 12)


def small_dense(**kwargs) -> DenseRegressor:
    params = dict(hidden_layers=(8,), epochs=5, learning_rate=0.01, random_state=42)
    params.update(kwargs)
    return DenseRegressor(**params)


def assert_history(history: dict, epochs: int):
    assert list(history) == ["loss"], f"Unexpected history keys: {list(history)}"
    assert len(history["loss"]) == epochs, (
        f"Expected {epochs} loss values, got {len(history['loss'])}."
    )
    assert all(np.isfinite(history["loss"]))


# ══════════════════════════════════════════════════════════════════
# Dense regressor
# ══════════════════════════════════════════════════════════════════

class TestDenseRegressor:

    def test_runs_full_epoch_budget(self):
        with small_dense(epochs=7) as model:
            assert_history(model.fit(X_TREND, Y_TREND), 7)

    def test_callback_once_per_epoch(self):
        calls = []
        with small_dense() as model:
            model.fit(X_TREND, Y_TREND, on_epoch_end=lambda e, logs: calls.append((e, logs["loss"])))
            assert [e for e, _ in calls] == [0, 1, 2, 3, 4]
            assert [loss for _, loss in calls] == model.history["loss"]

    def test_callback_can_abort_training(self):
        def stop_at_two(epoch, logs):
            if epoch == 2:
                raise RunCancelledError("superseded")

        model = small_dense(epochs=50)
        with pytest.raises(RunCancelledError):
            model.fit(X_TREND, Y_TREND, on_epoch_end=stop_at_two)
        assert len(model.history["loss"]) == 3

    def test_predict_shape(self):
        with small_dense() as model:
            model.fit(X_TREND, Y_TREND)
            assert model.predict(np.array([[1.1], [1.2]])).shape == (2,)

    def test_same_seed_same_predictions(self):
        preds = []
        for _ in range(2):
            with small_dense() as model:
                model.fit(X_TREND, Y_TREND)
                preds.append(model.predict(X_TREND))
        np.testing.assert_array_equal(preds[0], preds[1])

    def test_empty_training_set_refused(self):
        with pytest.raises(InsufficientDataError):
            small_dense().fit(np.empty((0, 1)), np.empty(0))

    def test_mismatched_lengths(self):
        with pytest.raises(ValueError, match="rows"):
            small_dense().fit(X_TREND, Y_TREND[:-1])

    def test_predict_before_fit(self):
        with pytest.raises(RuntimeError, match="not been fitted"):
            small_dense().predict(X_TREND)

    def test_closed_model_refuses_use(self):
        model = small_dense()
        with model:
            model.fit(X_TREND, Y_TREND)
        assert model.closed
        with pytest.raises(RuntimeError, match="closed"):
            model.predict(X_TREND)
        with pytest.raises(RuntimeError, match="closed"):
            model.fit(X_TREND, Y_TREND)


# ══════════════════════════════════════════════════════════════════
# Outcome classifier
# ══════════════════════════════════════════════════════════════════

class TestOutcomeClassifier:

    def test_probabilities(self):
        X = np.array([[0.0, 0.0], [0.1, 0.2], [0.9, 1.0], [1.0, 0.8]])
        y = np.array([0, 0, 1, 1])
        with OutcomeClassifier(hidden_layers=(8,), epochs=5) as model:
            assert_history(model.fit(X, y), 5)
            probs = model.predict(X)
        assert probs.shape == (4,)
        assert ((probs >= 0) & (probs <= 1)).all()

    def test_single_class_batch_still_trains(self):
        X = np.array([[0.0, 0.0], [1.0, 1.0]])
        with OutcomeClassifier(hidden_layers=(4,), epochs=2) as model:
            model.fit(X, [1, 1])
            assert model.predict(X).shape == (2,)


# ══════════════════════════════════════════════════════════════════
# Factory
# ══════════════════════════════════════════════════════════════════

class TestBuildModel:

    @pytest.mark.parametrize("variant", ["trend", "seasonal", "autoregressive"])
    def test_dense_variants(self, variant):
        model = build_model(VARIANTS[variant])
        assert isinstance(model, DenseRegressor)
        assert model.hidden_layers == tuple(VARIANTS[variant]["hidden_layers"])
        assert model.epochs == VARIANTS[variant]["epochs"]

    def test_recurrent_variant(self):
        model = build_model(VARIANTS["recurrent"])
        assert isinstance(model, RecurrentRegressor)
        assert model.units == (50, 50)

    def test_unknown_family(self):
        with pytest.raises(ValueError, match="dense"):
            build_model({"model": "gbm", "epochs": 1, "learning_rate": 0.1})


# ══════════════════════════════════════════════════════════════════
# Stacked LSTM
# ══════════════════════════════════════════════════════════════════

class TestRecurrentRegressor:

    @pytest.fixture(scope="class")
    def windows(self):
        pytest.importorskip("tensorflow")
        series = np.sin(np.linspace(0, 6, 40)) * 0.4 + 0.5
        X = np.array([series[i:i + 12] for i in range(len(series) - 12)])
        y = series[12:]
        return X, y

    def test_fit_and_predict(self, windows):
        X, y = windows
        calls = []
        model = RecurrentRegressor(units=(4, 4), epochs=2, learning_rate=0.01)
        with model:
            history = model.fit(X, y, on_epoch_end=lambda e, logs: calls.append(e))
            preds = model.predict(X[:3])
        assert_history(history, 2)
        assert calls == [0, 1]
        assert preds.shape == (3,)
        assert model.closed
