"""
crime_forecast/models.py
------------------------
Trainable model families behind one fit/predict contract.

  DenseRegressor      – scikit-learn MLPRegressor (ReLU, Adam, squared
                        error) over trend/seasonal features or flat
                        lookback windows.
  RecurrentRegressor  – stacked Keras LSTM over lookback windows, one
                        value out. Needs the optional TensorFlow extra.
  OutcomeClassifier   – scikit-learn MLPClassifier with a logistic
                        output and log-loss, for the resolved-outcome
                        experiment. Not part of the forecasting path.

Every model trains for its full epoch budget (no early stopping) and
calls on_epoch_end(epoch, {"loss": ...}) after each epoch, which is
where the dashboard updates its progress bar and where a superseded
run is aborted.

Models are created fresh for each run and must be released once the
predictions are out:

    with build_model(VARIANTS["seasonal"]) as model:
        history = model.fit(X, y, on_epoch_end=progress)
        y_hat   = model.predict(X_future)
"""

from typing import Callable

import numpy as np
from sklearn.neural_network import MLPClassifier, MLPRegressor

from crime_forecast.constants import (
    OUTCOME_BATCH_SIZE,
    OUTCOME_EPOCHS,
    OUTCOME_HIDDEN_LAYERS,
    OUTCOME_LEARNING_RATE,
    RANDOM_STATE,
)
from crime_forecast.errors import InsufficientDataError

EpochCallback = Callable[[int, dict], None]


class ForecastModel:
    """
    Shared lifecycle: fit once, predict any number of times, close.
    Subclasses implement _fit() and _predict().
    """

    def __init__(
        self,
        epochs: int,
        learning_rate: float,
        batch_size: int | None = None,
        random_state: int = RANDOM_STATE,
    ):
        self.epochs        = epochs
        self.learning_rate = learning_rate
        self.batch_size    = batch_size
        self.random_state  = random_state
        self.history       = {"loss": []}
        self._estimator    = None
        self._closed       = False

    # ── Public contract ───────────────────────────────────────────

    def fit(self, X, y, on_epoch_end: EpochCallback | None = None) -> dict:
        """
        Train on X (examples × features) and y (one target per example).

        Returns:
            Training history, {"loss": [one value per epoch]}.

        Raises:
            InsufficientDataError: if the training set is empty.
        """
        self._check_open()
        X = np.asarray(X, dtype=float)
        y = self._coerce_labels(np.asarray(y).ravel())
        if len(X) == 0:
            raise InsufficientDataError("Refusing to train on an empty training set.")
        if len(X) != len(y):
            raise ValueError(f"X has {len(X)} rows but y has {len(y)} values.")

        self.history = {"loss": []}
        self._fit(X, y, on_epoch_end)
        return self.history

    def predict(self, X) -> np.ndarray:
        self._check_open()
        if self._estimator is None:
            raise RuntimeError(f"{type(self).__name__} has not been fitted.")
        X = np.asarray(X, dtype=float)
        return np.asarray(self._predict(X), dtype=float).ravel()

    def close(self):
        self._estimator = None
        self._closed    = True

    @property
    def closed(self) -> bool:
        return self._closed

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc, tb):
        self.close()
        return False

    # ── Hooks ─────────────────────────────────────────────────────

    def _coerce_labels(self, y: np.ndarray) -> np.ndarray:
        return y.astype(float)

    def _fit(self, X, y, on_epoch_end):
        raise NotImplementedError

    def _predict(self, X):
        raise NotImplementedError

    def _record_epoch(self, epoch: int, loss: float, on_epoch_end):
        self.history["loss"].append(loss)
        if on_epoch_end is not None:
            on_epoch_end(epoch, {"loss": loss})

    def _check_open(self):
        if self._closed:
            raise RuntimeError(f"{type(self).__name__} has been closed.")


# ── scikit-learn networks ─────────────────────────────────────────

class _EpochwiseMLP(ForecastModel):
    """Runs one partial_fit pass per epoch so progress can be reported."""

    def __init__(self, hidden_layers=(64, 64), **kwargs):
        super().__init__(**kwargs)
        self.hidden_layers = tuple(hidden_layers)

    def _build(self):
        raise NotImplementedError

    def _partial_fit_kwargs(self, epoch: int) -> dict:
        return {}

    def _fit(self, X, y, on_epoch_end):
        self._estimator = self._build()
        for epoch in range(self.epochs):
            self._estimator.partial_fit(X, y, **self._partial_fit_kwargs(epoch))
            self._record_epoch(epoch, float(self._estimator.loss_), on_epoch_end)


class DenseRegressor(_EpochwiseMLP):

    def _build(self):
        return MLPRegressor(
            hidden_layer_sizes=self.hidden_layers,
            activation="relu",
            solver="adam",
            learning_rate_init=self.learning_rate,
            batch_size=self.batch_size or "auto",
            random_state=self.random_state,
        )

    def _predict(self, X):
        return self._estimator.predict(X)


class OutcomeClassifier(_EpochwiseMLP):
    """
    Binary classifier; predict() returns the probability of class 1.
    """

    def __init__(
        self,
        hidden_layers=OUTCOME_HIDDEN_LAYERS,
        epochs: int = OUTCOME_EPOCHS,
        learning_rate: float = OUTCOME_LEARNING_RATE,
        batch_size: int | None = OUTCOME_BATCH_SIZE,
        random_state: int = RANDOM_STATE,
    ):
        super().__init__(
            hidden_layers=hidden_layers,
            epochs=epochs,
            learning_rate=learning_rate,
            batch_size=batch_size,
            random_state=random_state,
        )

    def _coerce_labels(self, y: np.ndarray) -> np.ndarray:
        return y.astype(int)

    def _build(self):
        return MLPClassifier(
            hidden_layer_sizes=self.hidden_layers,
            activation="relu",
            solver="adam",
            learning_rate_init=self.learning_rate,
            batch_size=self.batch_size or "auto",
            random_state=self.random_state,
        )

    def _partial_fit_kwargs(self, epoch: int) -> dict:
        return {"classes": np.array([0, 1])} if epoch == 0 else {}

    def _predict(self, X):
        return self._estimator.predict_proba(X)[:, 1]


# ── Keras LSTM ────────────────────────────────────────────────────

def _import_tensorflow():
    try:
        import tensorflow as tf
    except ImportError as e:
        raise RuntimeError(
            "The recurrent variant needs TensorFlow.\n"
            "Install with: pip install 'uk-crime-forecast[recurrent]'"
        ) from e
    return tf


class RecurrentRegressor(ForecastModel):
    """
    Stacked LSTM sequence-to-value regressor. Each lookback window is
    fed as a sequence of single-feature timesteps.
    """

    def __init__(self, units=(50, 50), batch_size: int | None = 32, **kwargs):
        super().__init__(batch_size=batch_size, **kwargs)
        self.units = tuple(units)

    def _fit(self, X, y, on_epoch_end):
        tf = _import_tensorflow()
        tf.keras.utils.set_random_seed(self.random_state)

        timesteps = X.shape[1]
        layers = [tf.keras.Input(shape=(timesteps, 1))]
        for i, n_units in enumerate(self.units):
            layers.append(
                tf.keras.layers.LSTM(n_units, return_sequences=i < len(self.units) - 1)
            )
        layers.append(tf.keras.layers.Dense(1))

        model = tf.keras.Sequential(layers)
        model.compile(
            optimizer=tf.keras.optimizers.Adam(learning_rate=self.learning_rate),
            loss="mean_squared_error",
        )

        callbacks = [
            tf.keras.callbacks.LambdaCallback(
                on_epoch_end=lambda epoch, logs: self._record_epoch(
                    epoch, float((logs or {})["loss"]), on_epoch_end
                )
            )
        ]
        self._estimator = model
        model.fit(
            X.reshape(len(X), timesteps, 1),
            y,
            epochs=self.epochs,
            batch_size=self.batch_size,
            shuffle=True,
            verbose=0,
            callbacks=callbacks,
        )

    def _predict(self, X):
        X3 = X.reshape(len(X), X.shape[1], 1)
        return self._estimator(X3, training=False).numpy()

    def close(self):
        if self._estimator is not None:
            _import_tensorflow().keras.backend.clear_session()
        super().close()


# ── Factory ───────────────────────────────────────────────────────

def build_model(config: dict, random_state: int = RANDOM_STATE) -> ForecastModel:
    """
    Create an untrained model for a variant config from VARIANTS.

    Args:
        config:       Variant dict with at least 'model', 'epochs' and
                      'learning_rate'. Dense variants read
                      'hidden_layers'; LSTM variants read 'units'.
        random_state: Seed for weight initialisation and shuffling.
    """
    kind = config.get("model")
    common = dict(
        epochs=config["epochs"],
        learning_rate=config["learning_rate"],
        random_state=random_state,
    )
    if kind == "dense":
        return DenseRegressor(
            hidden_layers=config.get("hidden_layers", (64, 64)),
            batch_size=config.get("batch_size"),
            **common,
        )
    if kind == "lstm":
        return RecurrentRegressor(
            units=config.get("units", (50, 50)),
            batch_size=config.get("batch_size", 32),
            **common,
        )
    raise ValueError(f"Unknown model family '{kind}'. Valid families: dense, lstm")
