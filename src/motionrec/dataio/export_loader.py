"""Utilities for reading CSV exports back (rows and summary block)."""

from __future__ import annotations

import csv
import io
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, List

# Summary count label -> column whose non-empty cells it counts.
SUMMARY_COUNT_COLUMNS = (
    ("GPS Samples", "GPS LAT"),
    ("Accelerometer Samples", "Accel X"),
    ("Gyroscope Samples", "Gyro Alpha"),
)


@dataclass
class ParsedExport:
    header: List[str]
    rows: List[Dict[str, str]] = field(default_factory=list)
    summary: Dict[str, str] = field(default_factory=dict)

    def summary_int(self, key: str) -> int:
        return int(self.summary[key])

    def summary_float(self, key: str) -> float:
        return float(self.summary[key])

    def count_present(self, column: str) -> int:
        """Number of rows with a non-empty value in ``column``."""
        return sum(1 for row in self.rows if row.get(column, "") != "")

    def mismatches(self) -> List[str]:
        """Summary figures that disagree with the data rows (empty when consistent)."""
        problems = []
        expected = [("Total Samples", len(self.rows))]
        expected += [(label, self.count_present(column)) for label, column in SUMMARY_COUNT_COLUMNS]
        for label, actual in expected:
            if label not in self.summary:
                problems.append(f"summary is missing {label!r}")
                continue
            try:
                reported = self.summary_int(label)
            except ValueError:
                problems.append(f"{label!r} is not an integer: {self.summary[label]!r}")
                continue
            if reported != actual:
                problems.append(f"{label!r} reports {reported}, rows contain {actual}")
        return problems


def parse_export(text: str) -> ParsedExport:
    """
    Split an export into its data rows and its ``#`` summary block.

    The data section ends at the first blank line; every following line of the
    form ``# Key,Value`` lands in ``summary``.
    """
    data_part, _, summary_part = text.partition("\n\n")
    reader = csv.reader(io.StringIO(data_part))
    try:
        header = next(reader)
    except StopIteration:
        raise ValueError("Export is empty") from None

    parsed = ParsedExport(header=header)
    for values in reader:
        if not values:
            continue
        if len(values) != len(header):
            raise ValueError(f"Row has {len(values)} fields, expected {len(header)}")
        parsed.rows.append(dict(zip(header, values)))

    for values in csv.reader(io.StringIO(summary_part)):
        if not values or not values[0].startswith("#"):
            continue
        key = values[0].lstrip("#").strip()
        if len(values) > 1:
            parsed.summary[key] = ",".join(values[1:])
    return parsed


def load_export(path: Path) -> ParsedExport:
    """Read and parse the export stored at ``path``."""
    return parse_export(Path(path).read_text(encoding="utf-8"))
