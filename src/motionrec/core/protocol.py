"""Command and event messages exchanged with the recording pipeline.

Callers talk to the pipeline with the tagged messages the browser recorder
used (``{"type": "ADD_DATA_BATCH", "data": [...]}``). :func:`parse_command`
turns such a message into one of the command dataclasses below, and every
event knows how to render itself back into the same message shape.
"""

from __future__ import annotations

import logging
from collections.abc import Mapping, Sequence
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, Tuple, Union

from .models import FinalStats, Sample, StatsSnapshot

logger = logging.getLogger(__name__)

__all__ = [
    "CommandType",
    "EventType",
    "ProtocolError",
    "StartRecording",
    "StopRecording",
    "AddDataPoint",
    "AddDataBatch",
    "GenerateCsv",
    "GetStats",
    "ClearData",
    "Command",
    "RecordingStarted",
    "RecordingStopped",
    "StatsUpdate",
    "CsvGenerated",
    "WorkerError",
    "Event",
    "parse_command",
]


class ProtocolError(ValueError):
    """Raised for unknown command tags or payloads of the wrong shape."""


class CommandType(str, Enum):
    START_RECORDING = "START_RECORDING"
    STOP_RECORDING = "STOP_RECORDING"
    ADD_DATA_POINT = "ADD_DATA_POINT"
    ADD_DATA_BATCH = "ADD_DATA_BATCH"
    GENERATE_CSV = "GENERATE_CSV"
    GET_STATS = "GET_STATS"
    CLEAR_DATA = "CLEAR_DATA"


class EventType(str, Enum):
    RECORDING_STARTED = "RECORDING_STARTED"
    RECORDING_STOPPED = "RECORDING_STOPPED"
    STATS_UPDATE = "STATS_UPDATE"
    CSV_GENERATED = "CSV_GENERATED"
    WORKER_ERROR = "WORKER_ERROR"


# ---------------------------------------------------------------- commands
@dataclass(frozen=True)
class StartRecording:
    type = CommandType.START_RECORDING


@dataclass(frozen=True)
class StopRecording:
    type = CommandType.STOP_RECORDING


@dataclass(frozen=True)
class AddDataPoint:
    sample: Sample
    type = CommandType.ADD_DATA_POINT


@dataclass(frozen=True)
class AddDataBatch:
    samples: Tuple[Sample, ...]
    type = CommandType.ADD_DATA_BATCH


@dataclass(frozen=True)
class GenerateCsv:
    samples: Tuple[Any, ...]
    type = CommandType.GENERATE_CSV


@dataclass(frozen=True)
class GetStats:
    type = CommandType.GET_STATS


@dataclass(frozen=True)
class ClearData:
    type = CommandType.CLEAR_DATA


Command = Union[
    StartRecording,
    StopRecording,
    AddDataPoint,
    AddDataBatch,
    GenerateCsv,
    GetStats,
    ClearData,
]

COMMAND_TYPES = (
    StartRecording,
    StopRecording,
    AddDataPoint,
    AddDataBatch,
    GenerateCsv,
    GetStats,
    ClearData,
)


# ------------------------------------------------------------------ events
@dataclass(frozen=True)
class RecordingStarted:
    type = EventType.RECORDING_STARTED

    def to_message(self) -> Dict[str, Any]:
        return {"type": self.type.value}


@dataclass(frozen=True)
class RecordingStopped:
    samples: list = field(default_factory=list)
    stats: FinalStats = field(default_factory=FinalStats)
    type = EventType.RECORDING_STOPPED

    def to_message(self) -> Dict[str, Any]:
        return {
            "type": self.type.value,
            "data": {
                "data": [sample.to_mapping() for sample in self.samples],
                "stats": self.stats.to_mapping(),
            },
        }


@dataclass(frozen=True)
class StatsUpdate:
    snapshot: StatsSnapshot
    type = EventType.STATS_UPDATE

    def to_message(self) -> Dict[str, Any]:
        return {"type": self.type.value, "data": self.snapshot.to_mapping()}


@dataclass(frozen=True)
class CsvGenerated:
    text: str
    user_id: str
    type = EventType.CSV_GENERATED

    def to_message(self) -> Dict[str, Any]:
        return {"type": self.type.value, "data": self.text, "userId": self.user_id}


@dataclass(frozen=True)
class WorkerError:
    message: str
    type = EventType.WORKER_ERROR

    def to_message(self) -> Dict[str, Any]:
        return {"type": self.type.value, "data": self.message}


Event = Union[RecordingStarted, RecordingStopped, StatsUpdate, CsvGenerated, WorkerError]


# ----------------------------------------------------------------- parsing
def parse_command(message: Any) -> Command:
    """
    Convert ``message`` into a command instance.

    Command instances pass through unchanged; mappings are decoded from their
    ``type`` tag and ``data`` payload. Raises :class:`ProtocolError` for an
    unknown tag or a payload that does not fit the tag.
    """
    if isinstance(message, COMMAND_TYPES):
        return message
    if not isinstance(message, Mapping):
        raise ProtocolError(f"Expected a command mapping, got {type(message).__name__}")

    raw_type = message.get("type")
    try:
        command_type = CommandType(raw_type)
    except ValueError:
        raise ProtocolError(f"Unknown command type: {raw_type!r}") from None

    data = message.get("data")
    if command_type is CommandType.START_RECORDING:
        return StartRecording()
    if command_type is CommandType.STOP_RECORDING:
        return StopRecording()
    if command_type is CommandType.GET_STATS:
        return GetStats()
    if command_type is CommandType.CLEAR_DATA:
        return ClearData()
    if command_type is CommandType.ADD_DATA_POINT:
        return AddDataPoint(_decode_sample(data))
    if command_type is CommandType.ADD_DATA_BATCH:
        return AddDataBatch(_decode_samples(data))
    if command_type is CommandType.GENERATE_CSV:
        return GenerateCsv(_decode_samples(data, keep_invalid=True))
    raise ProtocolError(f"Unhandled command type: {command_type}")  # pragma: no cover


def _decode_sample(data: Any) -> Sample:
    if isinstance(data, Sample):
        return data
    try:
        return Sample.from_mapping(data)
    except ValueError as exc:
        raise ProtocolError(str(exc)) from exc


def _decode_samples(data: Any, *, keep_invalid: bool = False) -> Tuple[Any, ...]:
    """
    Decode a batch record by record.

    Only the batch itself must be a sequence. Invalid records are dropped with
    a warning, except for export requests (``keep_invalid``): those keep the
    raw record so the serializer rejects it with a WORKER_ERROR.
    """
    if isinstance(data, (str, bytes)) or not isinstance(data, Sequence):
        raise ProtocolError(f"Expected a sequence of samples, got {type(data).__name__}")
    decoded = []
    dropped = 0
    for index, item in enumerate(data):
        try:
            decoded.append(_decode_sample(item))
        except ProtocolError as exc:
            if keep_invalid:
                decoded.append(item)
                continue
            dropped += 1
            logger.debug("Dropping sample %d of batch: %s", index, exc)
    if dropped:
        logger.warning("Dropped %d of %d samples in batch (invalid records)", dropped, len(data))
    return tuple(decoded)
