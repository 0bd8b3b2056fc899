"""
crime_forecast/errors.py
------------------------
Exception types raised by the forecasting pipeline.

Parse-time problems are normally recovered by dropping the row, so
MalformedRowError only escapes when a parser runs in strict mode.
InsufficientDataError and DegenerateNormalizationError abort a run
before any model is built. ExternalServiceError covers everything that
talks to the outside world (zip decoding, police.uk, the narrative
service) and is caught at the call site by the dashboard.
"""


class CrimeForecastError(Exception):
    """Base class for all pipeline errors."""


class MalformedRowError(CrimeForecastError):

    def __init__(self, line_number: int, reason: str):
        self.line_number = line_number
        self.reason = reason
        super().__init__(f"line {line_number}: {reason}")


class InsufficientDataError(CrimeForecastError):
    """Not enough usable history to build even one training example."""


class DegenerateNormalizationError(CrimeForecastError):
    """All values identical, so min/max scaling would divide by zero."""


class ExternalServiceError(CrimeForecastError):
    pass


class ArchiveError(ExternalServiceError):
    pass


class RunCancelledError(CrimeForecastError):
    """A newer run has started; this run's results must not be applied."""
