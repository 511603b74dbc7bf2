"""Chunked CSV export of recorded samples.

The export sorts a session's samples by ingestion timestamp, renders one row
per sample with two derived columns (interval to the previous sample and a
smoothed frequency), and closes with a ``#``-prefixed summary block.

:func:`iter_csv_chunks` is the cooperative form: it renders ``chunk_size``
rows per step and yields between steps, so an event loop can interleave other
work. The text is only assembled once every chunk has been rendered; a
failure in any chunk raises :class:`SerializationError` and no partial text is
ever returned.
"""

from __future__ import annotations

import logging
import math
from collections import deque
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Any, Deque, Generator, Iterable, List, Optional, Sequence, Tuple

import numpy as np

from ..core.models import PRIMARY_FIELDS, STRING_FIELDS, Sample, SampleGroup

logger = logging.getLogger(__name__)

DEFAULT_CHUNK_SIZE = 1000
DEFAULT_FREQUENCY_WINDOW = 10
UNKNOWN_USER = "unknown"

# (header, attribute) in column order; ``None`` marks the derived columns.
COLUMNS: Tuple[Tuple[str, Optional[str]], ...] = (
    ("Data Point Timestamp", "timestamp"),
    ("User ID", "user_id"),
    ("GPS Date Timestamp", "gps_timestamp"),
    ("GPS LAT", "gps_lat"),
    ("GPS LON", "gps_lon"),
    ("GPS ERROR", "gps_error"),
    ("GPS ALT", "gps_alt"),
    ("GPS ALT ACCURACY", "gps_alt_accuracy"),
    ("GPS HEADING", "gps_heading"),
    ("GPS SPEED", "gps_speed"),
    ("Accel Date Timestamp", "accel_timestamp"),
    ("Accel X", "accel_x"),
    ("Accel Y", "accel_y"),
    ("Accel Z", "accel_z"),
    ("Gyro Date Timestamp", "gyro_timestamp"),
    ("Gyro Alpha", "gyro_alpha"),
    ("Gyro Beta", "gyro_beta"),
    ("Gyro Gamma", "gyro_gamma"),
    ("Sample Time (ms)", None),
    ("Frequency (Hz)", None),
)

HEADERS: Tuple[str, ...] = tuple(name for name, _ in COLUMNS)
_FIELD_COLUMNS: Tuple[str, ...] = tuple(attr for _, attr in COLUMNS[1:] if attr is not None)

_EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)
_NEEDS_QUOTING = (",", '"', "\n", "\r")


class SerializationError(Exception):
    """Raised when the sample collection cannot be rendered as CSV."""


@dataclass
class CsvFormat:
    """Rendering options for :func:`iter_csv_chunks`."""

    decimal_places: int = 6
    coarse_decimal_places: int = 2
    coarse_threshold: float = 100.0
    timestamp_format: str = "iso"
    frequency_window: int = DEFAULT_FREQUENCY_WINDOW

    def __post_init__(self) -> None:
        if self.timestamp_format not in ("iso", "epoch_ms"):
            raise ValueError(f"Unsupported timestamp_format: {self.timestamp_format!r}")
        if self.frequency_window <= 0:
            raise ValueError("frequency_window must be positive")


@dataclass(frozen=True)
class CsvSummary:
    user_id: str
    total: int
    gps_count: int
    accel_count: int
    gyro_count: int
    duration_s: float

    @property
    def average_hz(self) -> float:
        return self.rate(self.total)

    def rate(self, count: int) -> float:
        if self.duration_s <= 0 or count <= 0:
            return 0.0
        return count / self.duration_s


@dataclass(frozen=True)
class CsvExport:
    """Finished export: the CSV text plus the figures of its summary block."""

    text: str
    summary: CsvSummary

    @property
    def user_id(self) -> str:
        return self.summary.user_id


# ---------------------------------------------------------------- formatting
def format_number(value: Any, fmt: CsvFormat | None = None) -> str:
    """
    Render a numeric field.

    ``None`` becomes an empty string and integral values print without a
    fractional part. Other values get ``decimal_places`` decimals, or
    ``coarse_decimal_places`` once their magnitude exceeds ``coarse_threshold``.
    """
    if value is None:
        return ""
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise SerializationError(f"Expected a number, got {type(value).__name__}: {value!r}")
    if isinstance(value, int):
        return str(value)
    fmt = fmt or CsvFormat()
    if math.isfinite(value) and value.is_integer():
        return str(int(value))
    places = fmt.coarse_decimal_places if abs(value) > fmt.coarse_threshold else fmt.decimal_places
    return f"{value:.{places}f}"


def escape_field(value: Any) -> str:
    """Quote a text field when it contains a delimiter, quote or line break."""
    if value is None:
        return ""
    if not isinstance(value, str):
        raise SerializationError(f"Expected text, got {type(value).__name__}: {value!r}")
    if any(ch in value for ch in _NEEDS_QUOTING):
        return '"' + value.replace('"', '""') + '"'
    return value


def format_timestamp(timestamp_ms: int, fmt: CsvFormat | None = None) -> str:
    fmt = fmt or CsvFormat()
    if fmt.timestamp_format == "epoch_ms":
        return str(timestamp_ms)
    moment = _EPOCH + timedelta(milliseconds=timestamp_ms)
    return moment.isoformat(timespec="milliseconds").replace("+00:00", "Z")


# ------------------------------------------------------------------ sorting
def _validated_timestamps(samples: Sequence[Any]) -> np.ndarray:
    timestamps = np.empty(len(samples), dtype=np.int64)
    for idx, sample in enumerate(samples):
        if not isinstance(sample, Sample):
            raise SerializationError(
                f"Unexpected sample type at index {idx}: {type(sample).__name__}"
            )
        ts = sample.timestamp
        if isinstance(ts, bool) or not isinstance(ts, int):
            raise SerializationError(f"Sample {idx} has a non-integer timestamp: {ts!r}")
        try:
            timestamps[idx] = ts
        except OverflowError as exc:
            raise SerializationError(f"Sample {idx} timestamp out of range: {ts!r}") from exc
    return timestamps


def sort_samples(samples: Sequence[Any]) -> List[Sample]:
    """Return ``samples`` stably sorted by ingestion timestamp."""
    timestamps = _validated_timestamps(samples)
    order = np.argsort(timestamps, kind="stable")
    return [samples[int(i)] for i in order]


# ------------------------------------------------------------------ rendering
class _FrequencyWindow:
    """Circular window of instantaneous frequencies (oldest overwritten)."""

    def __init__(self, capacity: int) -> None:
        self._values: Deque[float] = deque(maxlen=capacity)

    def push(self, value: float) -> None:
        self._values.append(value)

    def mean(self) -> float:
        if not self._values:
            return 0.0
        return sum(self._values) / len(self._values)


def _render_row(sample: Sample, sample_time: float, frequency: float, fmt: CsvFormat) -> str:
    cells = [format_timestamp(sample.timestamp, fmt)]
    for attr in _FIELD_COLUMNS:
        value = getattr(sample, attr)
        if attr in STRING_FIELDS:
            cells.append(escape_field(value))
        else:
            cells.append(format_number(value, fmt))
    cells.append(f"{sample_time:.2f}")
    cells.append(f"{frequency:.2f}")
    return ",".join(cells)


def _summary_lines(summary: CsvSummary, exported_at: datetime | None) -> List[str]:
    lines = [
        "",
        "# Summary Statistics",
        f"# User ID,{escape_field(summary.user_id)}",
    ]
    if exported_at is not None:
        stamp = exported_at.isoformat(timespec="milliseconds").replace("+00:00", "Z")
        lines.append(f"# Export Date,{stamp}")
    lines.extend(
        [
            f"# Total Samples,{summary.total}",
            f"# GPS Samples,{summary.gps_count}",
            f"# Accelerometer Samples,{summary.accel_count}",
            f"# Gyroscope Samples,{summary.gyro_count}",
            f"# Duration (seconds),{summary.duration_s:.2f}",
            f"# Average Sample Rate (Hz),{summary.average_hz:.2f}",
        ]
    )
    if summary.duration_s > 0:
        for label, count in (
            ("GPS", summary.gps_count),
            ("Accelerometer", summary.accel_count),
            ("Gyroscope", summary.gyro_count),
        ):
            if count > 0:
                lines.append(f"# {label} Sample Rate (Hz),{summary.rate(count):.2f}")
    return lines


def iter_csv_chunks(
    samples: Iterable[Any],
    *,
    chunk_size: int = DEFAULT_CHUNK_SIZE,
    fmt: CsvFormat | None = None,
    exported_at: datetime | None = None,
) -> Generator[int, None, CsvExport]:
    """
    Render ``samples`` as CSV, yielding after every chunk of rows.

    Yields the number of rows rendered so far; the finished :class:`CsvExport`
    is the generator's return value. ``samples`` is copied up front, so later
    changes to the caller's collection never leak into an export in progress.
    """
    if chunk_size <= 0:
        raise ValueError(f"chunk_size must be a positive integer, got {chunk_size}")
    fmt = fmt or CsvFormat()
    snapshot = list(samples)
    ordered = sort_samples(snapshot)

    lines: List[str] = [",".join(HEADERS)]
    window = _FrequencyWindow(fmt.frequency_window)
    last_timestamp: Optional[int] = None
    counts = dict.fromkeys(PRIMARY_FIELDS, 0)

    total = len(ordered)
    for start in range(0, total, chunk_size):
        for index in range(start, min(start + chunk_size, total)):
            sample = ordered[index]
            sample_time = 0.0
            if last_timestamp is not None:
                sample_time = float(sample.timestamp - last_timestamp)
                if sample_time > 0:
                    window.push(1000.0 / sample_time)
            last_timestamp = sample.timestamp
            try:
                lines.append(_render_row(sample, sample_time, window.mean(), fmt))
                for group, attr in PRIMARY_FIELDS.items():
                    if getattr(sample, attr) is not None:
                        counts[group] += 1
            except SerializationError as exc:
                raise SerializationError(f"Row {index}: {exc}") from exc
            except (TypeError, ValueError, OverflowError) as exc:
                raise SerializationError(f"Row {index}: {exc}") from exc
        yield min(start + chunk_size, total)

    duration_s = 0.0
    if total > 1:
        duration_s = (ordered[-1].timestamp - ordered[0].timestamp) / 1000.0
    user_id = UNKNOWN_USER
    if ordered and ordered[0].user_id:
        user_id = ordered[0].user_id
    summary = CsvSummary(
        user_id=user_id,
        total=total,
        gps_count=counts[SampleGroup.GPS],
        accel_count=counts[SampleGroup.ACCEL],
        gyro_count=counts[SampleGroup.GYRO],
        duration_s=duration_s,
    )
    lines.extend(_summary_lines(summary, exported_at))
    logger.debug("CSV export rendered %d rows (%.2f Hz avg)", total, summary.average_hz)
    return CsvExport(text="\n".join(lines), summary=summary)


def serialize_samples(
    samples: Iterable[Any],
    *,
    chunk_size: int = DEFAULT_CHUNK_SIZE,
    fmt: CsvFormat | None = None,
    exported_at: datetime | None = None,
) -> CsvExport:
    """Run :func:`iter_csv_chunks` to completion in one call."""
    chunks = iter_csv_chunks(samples, chunk_size=chunk_size, fmt=fmt, exported_at=exported_at)
    while True:
        try:
            next(chunks)
        except StopIteration as done:
            return done.value
