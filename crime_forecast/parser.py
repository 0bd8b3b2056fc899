"""
crime_forecast/parser.py
------------------------
Parses one police.uk street crime CSV (as text) into CrimeRecords.

Two modes share one validation path through CsvSchema:

  positional – the fixed 12-column street layout; month is column 1,
               crime type is column 9, and a row needs all 12 columns.
  headered   – the "Month" and "Crime type" columns are looked up in
               the header line, so files with extra or reordered
               columns still parse.

Lines are split on a bare comma. Quoted fields containing commas are
NOT supported; such rows either shift their columns or are dropped.

Malformed rows (too narrow, an empty crime type, or a month that is not
YYYY-MM) are dropped silently, but every drop is counted on the parser
so callers can report it:

    parser  = CsvRecordParser(mode="headered")
    records = list(parser.parse(text))
    print(f"{parser.parsed:,} kept, {parser.dropped:,} dropped")
"""

import re
from typing import Iterator, NamedTuple

from crime_forecast.constants import (
    CRIME_TYPE_COLUMN,
    MONTH_COLUMN,
    MONTH_PATTERN,
    PARSE_MODES,
    STREET_COLUMNS,
)
from crime_forecast.errors import MalformedRowError


MONTH_RE = re.compile(MONTH_PATTERN)


class CrimeRecord(NamedTuple):
    month: str
    crime_type: str


class CsvSchema:
    """
    Ordered field names plus the minimum row width a data line must
    reach before its month and crime type can be read.
    """

    def __init__(
        self,
        fields: list[str],
        month_field: str = MONTH_COLUMN,
        crime_type_field: str = CRIME_TYPE_COLUMN,
        min_width: int | None = None,
    ):
        self.fields = list(fields)
        self.month_field = month_field
        self.crime_type_field = crime_type_field
        self.missing = [
            f for f in (month_field, crime_type_field) if f not in self.fields
        ]
        if self.missing:
            self.month_index = self.crime_type_index = None
            self.min_width = len(self.fields)
            return
        self.month_index      = self.fields.index(month_field)
        self.crime_type_index = self.fields.index(crime_type_field)
        if min_width is None:
            min_width = max(self.month_index, self.crime_type_index) + 1
        self.min_width = min_width

    @classmethod
    def from_header(cls, header_line: str) -> "CsvSchema":
        fields = [f.strip().strip('"') for f in header_line.lstrip("\ufeff").split(",")]
        return cls(fields)

    @property
    def usable(self) -> bool:
        return not self.missing

    def extract(self, columns: list[str]) -> tuple[str, str] | None:
        """
        Return (month, crime_type) trimmed, or None if the row is too
        narrow, either field is empty, or the month is not YYYY-MM (a
        repeated header line, "n/a" and so on).
        """
        if not self.usable or len(columns) < self.min_width:
            return None
        month      = columns[self.month_index].strip()
        crime_type = columns[self.crime_type_index].strip()
        if not crime_type or not MONTH_RE.fullmatch(month):
            return None
        return month, crime_type


# Positional mode always demands the full street layout.
POSITIONAL_SCHEMA = CsvSchema(STREET_COLUMNS, min_width=len(STREET_COLUMNS))


class CsvRecordParser:

    def __init__(self, mode: str = "positional", strict: bool = False):
        if mode not in PARSE_MODES:
            raise ValueError(
                f"Unknown parse mode '{mode}'. Valid modes: {', '.join(PARSE_MODES)}"
            )
        self.mode    = mode
        self.strict  = strict
        self.parsed  = 0
        self.dropped = 0

    def parse(self, text: str) -> Iterator[CrimeRecord]:
        """
        Lazily yield CrimeRecords from one file's text, in file order.

        The first line is treated as the header in both modes. Blank
        lines are skipped without counting as drops. The parsed and
        dropped counters are only final once the generator is consumed.

        Raises:
            MalformedRowError: in strict mode, for the first bad row.
        """
        lines = text.splitlines()
        if not lines:
            return

        if self.mode == "headered":
            schema = CsvSchema.from_header(lines[0])
        else:
            schema = POSITIONAL_SCHEMA

        if not schema.usable:
            n_data = sum(1 for line in lines[1:] if line.strip())
            if self.strict:
                raise MalformedRowError(1, f"header is missing {schema.missing}")
            print(
                f"  WARNING: header is missing {schema.missing}; "
                f"skipping {n_data:,} rows"
            )
            self.dropped += n_data
            return

        for line_number, line in enumerate(lines[1:], start=2):
            if not line.strip():
                continue
            fields = schema.extract(line.split(","))
            if fields is None:
                if self.strict:
                    raise MalformedRowError(
                        line_number,
                        f"expected at least {schema.min_width} columns with a "
                        f"YYYY-MM {schema.month_field} and a non-empty {schema.crime_type_field}",
                    )
                self.dropped += 1
                continue
            self.parsed += 1
            yield CrimeRecord(*fields)


def parse_csv(text: str, mode: str = "positional") -> list[CrimeRecord]:
    return list(CsvRecordParser(mode=mode).parse(text))
