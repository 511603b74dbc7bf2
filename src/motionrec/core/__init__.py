"""Core recording model: samples, protocol messages and the ingestion buffer.

The command router itself lives in :mod:`motionrec.core.pipeline`; it is not
re-exported here because it depends on :mod:`motionrec.dataio`, which in turn
imports the sample model from this package.
"""

from .ingest_buffer import BufferConfig, FlushReason, IngestionBuffer
from .models import FinalStats, Sample, SampleGroup, StatsSnapshot
from .protocol import (
    AddDataBatch,
    AddDataPoint,
    ClearData,
    CommandType,
    CsvGenerated,
    EventType,
    GenerateCsv,
    GetStats,
    ProtocolError,
    RecordingStarted,
    RecordingStopped,
    StartRecording,
    StatsUpdate,
    StopRecording,
    WorkerError,
    parse_command,
)

__all__ = [
    "BufferConfig",
    "FlushReason",
    "IngestionBuffer",
    "FinalStats",
    "Sample",
    "SampleGroup",
    "StatsSnapshot",
    "AddDataBatch",
    "AddDataPoint",
    "ClearData",
    "CommandType",
    "CsvGenerated",
    "EventType",
    "GenerateCsv",
    "GetStats",
    "ProtocolError",
    "RecordingStarted",
    "RecordingStopped",
    "StartRecording",
    "StatsUpdate",
    "StopRecording",
    "WorkerError",
    "parse_command",
]
