"""
crime_forecast/annotator.py
---------------------------
Marks local peaks and troughs in a series.

Only interior points are considered and comparisons are strict, so the
endpoints and any point on a plateau are never annotated.
"""

from typing import NamedTuple

PEAK   = "Peak"
TROUGH = "Trough"


class Annotation(NamedTuple):
    kind: str
    index: int
    month: str | None
    value: float


def annotate(values, months=None) -> list[Annotation]:
    """
    Args:
        values: Sequence of numbers.
        months: Optional labels aligned with values.

    Returns:
        Annotations in index order.
    """
    values = [float(v) for v in values]
    if months is not None and len(months) != len(values):
        raise ValueError(f"Got {len(months)} month labels for {len(values)} values.")

    annotations = []
    for i in range(1, len(values) - 1):
        prev, cur, nxt = values[i - 1], values[i], values[i + 1]
        if cur > prev and cur > nxt:
            kind = PEAK
        elif cur < prev and cur < nxt:
            kind = TROUGH
        else:
            continue
        annotations.append(
            Annotation(kind, i, months[i] if months is not None else None, cur)
        )
    return annotations
