"""Shared dataclasses for recorded samples and throughput statistics."""

from __future__ import annotations

import math
from dataclasses import dataclass, fields
from enum import Enum
from typing import Any, Dict, Mapping, Optional


class SampleGroup(str, Enum):
    """Sensor group a sample belongs to, decided by its primary field."""

    GPS = "gps"
    ACCEL = "accel"
    GYRO = "gyro"
    NONE = "none"


# Wire names used by the browser producer -> dataclass attribute names.
WIRE_FIELDS: Dict[str, str] = {
    "timestamp": "timestamp",
    "userId": "user_id",
    "recordingSessionStart": "session_start",
    "gpsTimestamp": "gps_timestamp",
    "gpsLat": "gps_lat",
    "gpsLon": "gps_lon",
    "gpsError": "gps_error",
    "gpsAlt": "gps_alt",
    "gpsAltAccuracy": "gps_alt_accuracy",
    "gpsHeading": "gps_heading",
    "gpsSpeed": "gps_speed",
    "accelTimestamp": "accel_timestamp",
    "accelX": "accel_x",
    "accelY": "accel_y",
    "accelZ": "accel_z",
    "gyroTimestamp": "gyro_timestamp",
    "gyroAlpha": "gyro_alpha",
    "gyroBeta": "gyro_beta",
    "gyroGamma": "gyro_gamma",
}

STRING_FIELDS = frozenset(
    {"user_id", "session_start", "gps_timestamp", "accel_timestamp", "gyro_timestamp"}
)

PRIMARY_FIELDS: Dict[SampleGroup, str] = {
    SampleGroup.GPS: "gps_lat",
    SampleGroup.ACCEL: "accel_x",
    SampleGroup.GYRO: "gyro_alpha",
}


@dataclass(frozen=True, slots=True)
class Sample:
    """
    One sensor reading.

    ``timestamp`` is the ingestion time in integer milliseconds and is the only
    mandatory field. A sample normally carries the fields of a single group
    (GPS, accelerometer or gyroscope); every other field stays ``None``.
    """

    timestamp: int
    user_id: Optional[str] = None
    session_start: Optional[str] = None

    gps_timestamp: Optional[str] = None
    gps_lat: Optional[float] = None
    gps_lon: Optional[float] = None
    gps_error: Optional[float] = None
    gps_alt: Optional[float] = None
    gps_alt_accuracy: Optional[float] = None
    gps_heading: Optional[float] = None
    gps_speed: Optional[float] = None

    accel_timestamp: Optional[str] = None
    accel_x: Optional[float] = None
    accel_y: Optional[float] = None
    accel_z: Optional[float] = None

    gyro_timestamp: Optional[str] = None
    gyro_alpha: Optional[float] = None
    gyro_beta: Optional[float] = None
    gyro_gamma: Optional[float] = None

    @property
    def group(self) -> SampleGroup:
        for group, attr in PRIMARY_FIELDS.items():
            if getattr(self, attr) is not None:
                return group
        return SampleGroup.NONE

    @classmethod
    def from_mapping(cls, data: Mapping[str, Any]) -> "Sample":
        """
        Build a sample from a producer record.

        Accepts both the camelCase wire keys and the attribute names. Unknown
        keys are ignored; empty strings and ``None`` mean "absent".
        """
        if not isinstance(data, Mapping):
            raise ValueError(f"Expected mapping for sample, got {type(data).__name__}")

        known = {f.name for f in fields(cls)}
        values: Dict[str, Any] = {}
        for key, value in data.items():
            attr = WIRE_FIELDS.get(key, key)
            if attr not in known or value is None or value == "":
                continue
            values[attr] = value

        raw_ts = values.pop("timestamp", None)
        if raw_ts is None:
            raise ValueError(f"Sample is missing a timestamp: {dict(data)!r}")
        values["timestamp"] = _coerce_timestamp(raw_ts)

        for attr, value in list(values.items()):
            if attr == "timestamp":
                continue
            if attr in STRING_FIELDS:
                values[attr] = str(value)
            else:
                values[attr] = _coerce_float(attr, value)
        return cls(**values)

    def to_mapping(self) -> Dict[str, Any]:
        """Return the camelCase wire representation, omitting absent fields."""
        out: Dict[str, Any] = {}
        for wire, attr in WIRE_FIELDS.items():
            value = getattr(self, attr)
            if value is not None:
                out[wire] = value
        return out


def _coerce_timestamp(value: Any) -> int:
    if isinstance(value, bool):
        raise ValueError(f"Invalid sample timestamp: {value!r}")
    try:
        number = float(value)
    except (TypeError, ValueError) as exc:
        raise ValueError(f"Invalid sample timestamp: {value!r}") from exc
    if math.isnan(number) or math.isinf(number):
        raise ValueError(f"Invalid sample timestamp: {value!r}")
    return int(number)


def _coerce_float(name: str, value: Any) -> float:
    if isinstance(value, bool):
        raise ValueError(f"Field {name} must be numeric, got {value!r}")
    if isinstance(value, (int, float)):
        return value
    try:
        return float(value)
    except (TypeError, ValueError) as exc:
        raise ValueError(f"Field {name} must be numeric, got {value!r}") from exc


@dataclass(frozen=True, slots=True)
class StatsSnapshot:
    """Point-in-time throughput figures, produced on flush and on request."""

    total_points: int = 0
    buffer_size: int = 0
    average_hz: float = 0.0
    current_hz: float = 0.0
    peak_hz: float = 0.0
    min_hz: float = 0.0
    current_batch: int = 0
    is_recording: bool = False

    def to_mapping(self) -> Dict[str, Any]:
        return {
            "totalPoints": self.total_points,
            "bufferSize": self.buffer_size,
            "averageHz": self.average_hz,
            "currentHz": self.current_hz,
            "peakHz": self.peak_hz,
            "minHz": self.min_hz,
            "currentBatch": self.current_batch,
            "isRecording": self.is_recording,
        }


@dataclass(frozen=True, slots=True)
class FinalStats:
    """Statistics attached to RECORDING_STOPPED."""

    total_points: int = 0
    duration_s: float = 0.0
    average_hz: float = 0.0
    peak_hz: float = 0.0
    min_hz: float = 0.0

    def to_mapping(self) -> Dict[str, Any]:
        return {
            "totalPoints": self.total_points,
            "duration": self.duration_s,
            "averageHz": self.average_hz,
            "peakHz": self.peak_hz,
            "minHz": self.min_hz,
        }
