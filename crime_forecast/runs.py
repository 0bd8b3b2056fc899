"""
crime_forecast/runs.py
----------------------
Single-flight bookkeeping for forecast runs.

Every new upload (or re-run) calls begin() and gets a generation
number. Only the run holding the current generation may publish its
results; an older run finds out at its next epoch boundary and stops.

    tracker = RunTracker()
    gen = tracker.begin()
    result = forecast_series(..., on_epoch_end=tracker.guard_epochs(gen, progress))
    tracker.apply(gen, state, result)

The dashboard keeps one tracker in st.session_state.
"""

from typing import Callable

from crime_forecast.errors import RunCancelledError


class RunTracker:

    def __init__(self):
        self.generation = 0

    def begin(self) -> int:
        self.generation += 1
        return self.generation

    def is_current(self, generation: int) -> bool:
        return generation == self.generation

    def ensure_current(self, generation: int):
        if not self.is_current(generation):
            raise RunCancelledError(
                f"Run {generation} superseded by run {self.generation}."
            )

    def guard_epochs(self, generation: int, callback: Callable | None = None) -> Callable:
        """
        Wrap an epoch callback so it aborts the run once superseded.
        """
        def on_epoch_end(epoch, logs):
            self.ensure_current(generation)
            if callback is not None:
                callback(epoch, logs)
        return on_epoch_end

    def apply(
        self, generation: int, state, value, key: str = "forecast", invalidates=()
    ) -> bool:
        """
        Store value under key only if the run is still current. The
        previous value is replaced wholesale, never mutated, and any
        keys in invalidates (results derived from it) are removed.

        Returns:
            True if the value was stored.
        """
        if not self.is_current(generation):
            print(f"  WARNING: discarding stale results from run {generation}")
            return False
        state[key] = value
        for stale in invalidates:
            state.pop(stale, None)
        return True
