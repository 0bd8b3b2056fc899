"""
crime_forecast/aggregator.py
----------------------------
Counts CrimeRecords per month, and optionally per crime type within
each month, across any number of source files.

The emitted table is ordered by ascending month string. For "YYYY-MM"
labels lexicographic order is chronological order, and downstream
feature encoding relies on that.

Usage:
    agg = MonthlyAggregator(by_type=True)
    for name, text in entries:
        agg.add(parser.parse(text))
    table = agg.result()
    months, counts = monthly_series(table)
"""

from collections import defaultdict
from typing import Iterable, NamedTuple

import numpy as np
import pandas as pd

from crime_forecast.parser import CrimeRecord


class MonthlyCount(NamedTuple):
    month: str
    total: int
    by_type: dict


class MonthlyAggregator:

    def __init__(self, by_type: bool = True):
        self.by_type = by_type
        self._totals = defaultdict(int)
        self._types  = defaultdict(lambda: defaultdict(int))

    def add(self, records: Iterable[CrimeRecord]) -> int:
        """Consume records, returning how many were counted."""
        n = 0
        for record in records:
            self._totals[record.month] += 1
            if self.by_type:
                self._types[record.month][record.crime_type] += 1
            n += 1
        return n

    def result(self) -> dict[str, MonthlyCount]:
        table = {}
        for month in sorted(self._totals):
            by_type = dict(sorted(self._types[month].items())) if self.by_type else {}
            table[month] = MonthlyCount(month, self._totals[month], by_type)
        return table


def aggregate(
    records: Iterable[CrimeRecord],
    by_type: bool = True,
) -> dict[str, MonthlyCount]:
    agg = MonthlyAggregator(by_type=by_type)
    agg.add(records)
    return agg.result()


# ── Table helpers ─────────────────────────────────────────────────

def monthly_series(table: dict[str, MonthlyCount]) -> tuple[list[str], np.ndarray]:
    """Return (months, total counts) in table order."""
    months = list(table)
    counts = np.array([table[m].total for m in months], dtype=float)
    return months, counts


def crime_types(table: dict[str, MonthlyCount]) -> list[str]:
    return sorted({t for row in table.values() for t in row.by_type})


def type_series(table: dict[str, MonthlyCount], crime_type: str) -> np.ndarray:
    """Counts of one crime type per month, 0 where the type was absent."""
    return np.array(
        [row.by_type.get(crime_type, 0) for row in table.values()],
        dtype=float,
    )


def to_frame(table: dict[str, MonthlyCount]) -> pd.DataFrame:
    """
    Flatten the table to one row per month with a 'total' column and
    one column per crime type (missing types filled with 0).

    Returns:
        DataFrame with columns month, total, <crime types...>.
    """
    rows = []
    for row in table.values():
        rows.append({"month": row.month, "total": row.total, **row.by_type})
    df = pd.DataFrame(rows, columns=["month", "total", *crime_types(table)])
    type_cols = [c for c in df.columns if c not in ("month", "total")]
    if type_cols:
        df[type_cols] = df[type_cols].fillna(0).astype(int)
    return df
