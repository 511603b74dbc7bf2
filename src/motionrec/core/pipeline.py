"""Recording pipeline: command routing, buffering, flushing and export jobs."""

from __future__ import annotations

import logging
import time
from datetime import datetime
from typing import Any, Callable, Iterable, List, Optional, Sequence

from ..analysis.rate import RateStatistics
from ..config.runtime import PipelineConfig
from ..dataio.csv_export import CsvFormat, SerializationError, iter_csv_chunks
from ..tools.debug import time_block
from .ingest_buffer import BufferConfig, FlushReason, IngestionBuffer
from .models import FinalStats, Sample, StatsSnapshot
from .protocol import (
    AddDataBatch,
    AddDataPoint,
    ClearData,
    Command,
    CsvGenerated,
    Event,
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

__all__ = ["CsvJob", "EventSink", "RecorderPipeline"]

logger = logging.getLogger(__name__)

EventSink = Callable[[Event], None]
Clock = Callable[[], float]


def _discard_event(event: Event) -> None:  # pragma: no cover - trivial
    return


def csv_format_from_config(config: PipelineConfig) -> CsvFormat:
    return CsvFormat(
        decimal_places=config.decimal_places,
        coarse_decimal_places=config.coarse_decimal_places,
        coarse_threshold=config.coarse_threshold,
        timestamp_format=config.timestamp_format,
        frequency_window=config.frequency_window_size,
    )


class CsvJob:
    """
    One CSV export in progress.

    The sample collection is snapshotted when the job is created. ``step()``
    renders a single chunk and returns ``True`` once the job has finished,
    after which exactly one ``CSV_GENERATED`` or ``WORKER_ERROR`` event has
    been emitted.
    """

    def __init__(
        self,
        samples: Iterable[Any],
        emit: EventSink,
        *,
        chunk_size: int,
        fmt: CsvFormat | None = None,
        exported_at: datetime | None = None,
    ) -> None:
        self._snapshot = tuple(samples)
        self._emit = emit
        self._chunks = iter_csv_chunks(
            self._snapshot, chunk_size=chunk_size, fmt=fmt, exported_at=exported_at
        )
        self.rows_done = 0
        self.elapsed_ms = 0.0
        self.done = False

    @property
    def total(self) -> int:
        return len(self._snapshot)

    def step(self) -> bool:
        if self.done:
            return True
        try:
            with time_block(f"CSV chunk after row {self.rows_done}", log=logger) as timing:
                self.rows_done = next(self._chunks)
            self.elapsed_ms += timing.elapsed_ms
            return False
        except StopIteration as finished:
            export = finished.value
            self.done = True
            logger.info(
                "CSV generated: %d samples in %.1f ms, %.2f Hz average",
                export.summary.total,
                self.elapsed_ms,
                export.summary.average_hz,
            )
            self._emit(CsvGenerated(text=export.text, user_id=export.user_id))
        except SerializationError as exc:
            self.done = True
            logger.exception("Failed to generate CSV for %d samples", self.total)
            self._emit(WorkerError(f"Failed to generate CSV: {exc}"))
        return True

    def run(self) -> None:
        """Render every remaining chunk without yielding."""
        while not self.step():
            pass


class RecorderPipeline:
    """
    Single-session ingestion pipeline driven by protocol commands.

    The pipeline owns the ingestion buffer, the accumulated sample collection
    and the rate statistics; nothing else mutates them. It is not thread-safe:
    one caller (typically :class:`~motionrec.worker.PipelineWorker`) feeds it
    commands and scheduler ticks one at a time, and results leave through the
    ``emit`` callback.
    """

    def __init__(
        self,
        config: PipelineConfig | None = None,
        *,
        emit: EventSink | None = None,
        clock: Clock = time.monotonic,
    ) -> None:
        self.config = (config or PipelineConfig()).sanitized()
        self._emit = emit or _discard_event
        self._clock = clock
        self._buffer = IngestionBuffer(
            BufferConfig(
                normal_threshold=self.config.normal_threshold,
                emergency_threshold=self.config.emergency_threshold,
                bulk_append_cutoff=self.config.bulk_append_cutoff,
            )
        )
        self._rates = RateStatistics(
            flush_interval_s=self.config.flush_interval_s,
            window_size=self.config.rate_window_size,
            recent_count=self.config.recent_rate_count,
        )
        self._samples: List[Sample] = []
        self._recording = False
        self._stopped_at: Optional[float] = None
        self._last_stats_emit: Optional[float] = None
        self._last_batch = 0
        self.flush_count = 0
        self.emergency_flush_count = 0

    # ------------------------------------------------------------------ state
    @property
    def is_recording(self) -> bool:
        return self._recording

    @property
    def buffer_size(self) -> int:
        return len(self._buffer)

    @property
    def accumulated_count(self) -> int:
        return len(self._samples)

    @property
    def total_points(self) -> int:
        """Samples accepted this session, flushed or still buffered."""
        return self._rates.total_points + len(self._buffer)

    # --------------------------------------------------------------- commands
    def handle(self, message: Any) -> None:
        """
        Process one raw message or command instance to completion.

        Malformed messages are logged and ignored. CSV exports run in one go
        here; the Qt worker steps them chunk by chunk instead.
        """
        try:
            command = parse_command(message)
        except ProtocolError as exc:
            logger.warning("Ignoring malformed command: %s", exc)
            return
        self.dispatch(command)

    def dispatch(self, command: Command) -> None:
        if isinstance(command, StartRecording):
            self.start_recording()
        elif isinstance(command, StopRecording):
            self.stop_recording()
        elif isinstance(command, AddDataPoint):
            self.add_one(command.sample)
        elif isinstance(command, AddDataBatch):
            self.add_batch(command.samples)
        elif isinstance(command, GenerateCsv):
            self.create_csv_job(command).run()
        elif isinstance(command, GetStats):
            self._emit(StatsUpdate(self.snapshot()))
        elif isinstance(command, ClearData):
            self.clear()
        else:
            logger.warning("Ignoring unsupported command: %r", command)

    def start_recording(self) -> None:
        """Begin a session, discarding whatever a running session had."""
        if self._recording:
            logger.warning(
                "Recording restarted while active; discarding %d buffered and %d stored samples",
                len(self._buffer),
                len(self._samples),
            )
        self._reset_state()
        self._rates.start(self._clock())
        self._recording = True
        logger.info("Recording started")
        self._emit(RecordingStarted())

    def stop_recording(self) -> FinalStats:
        self._recording = False
        flushed = self.flush(FlushReason.STOP, force_stats=True)
        now = self._clock()
        if not flushed:
            self._emit_stats(now)
        if self._rates.started_at is not None and self._stopped_at is None:
            self._stopped_at = now

        stats = self.final_stats(now)
        samples = self._samples
        self._samples = []
        logger.info(
            "Recording stopped: %d samples over %.2f s (%.2f Hz)",
            stats.total_points,
            stats.duration_s,
            stats.average_hz,
        )
        self._emit(RecordingStopped(samples=samples, stats=stats))
        return stats

    def add_one(self, sample: Sample) -> None:
        if not self._recording:
            return
        reason = self._buffer.add_one(sample)
        if reason is not None:
            self.flush(reason)

    def add_batch(self, samples: Sequence[Sample]) -> None:
        if not self._recording or not samples:
            return
        reason = self._buffer.add_batch(samples)
        if reason is not None:
            self.flush(reason)

    def clear(self) -> None:
        """Drop buffered and stored samples and reset statistics."""
        self._reset_state()
        if self._recording:
            self._rates.start(self._clock())
        logger.info("Recording data cleared")

    def create_csv_job(self, command: GenerateCsv, *, exported_at: datetime | None = None) -> CsvJob:
        logger.info("Generating CSV for %d samples", len(command.samples))
        return CsvJob(
            command.samples,
            self._emit,
            chunk_size=self.config.csv_chunk_size,
            fmt=csv_format_from_config(self.config),
            exported_at=exported_at,
        )

    # ------------------------------------------------------------ flush/tick
    def flush(self, reason: FlushReason = FlushReason.TIMER, *, force_stats: bool = False) -> int:
        """
        Move buffered samples into the session collection.

        Returns the number of samples moved. A flush feeds exactly one
        instantaneous rate into the statistics and may emit a STATS_UPDATE
        (throttled unless ``force_stats``).
        """
        if not self._buffer:
            return 0
        batch = self._buffer.drain()
        self._samples.extend(batch)
        flushed = len(batch)
        now = self._clock()
        rate = self._rates.record_flush(flushed, now)
        self._last_batch = flushed
        self.flush_count += 1

        if reason is FlushReason.EMERGENCY:
            self.emergency_flush_count += 1
            logger.warning("Emergency buffer flush at %d samples", flushed)
        else:
            logger.debug("Flushed %d samples (%s, %.1f Hz)", flushed, reason.value, rate)

        if force_stats or self._stats_due(now):
            self._emit_stats(now)
        return flushed

    def tick(self) -> None:
        """Periodic scheduler step: drain the buffer and refresh statistics."""
        if not self._recording:
            return
        if self._buffer:
            self.flush(FlushReason.TIMER)
        if self._rates.has_rates:
            self._emit_stats(self._clock())

    # ------------------------------------------------------------------ stats
    def snapshot(self) -> StatsSnapshot:
        estimate = self._rates.estimate()
        return StatsSnapshot(
            total_points=self.total_points,
            buffer_size=len(self._buffer),
            average_hz=estimate.average_hz,
            current_hz=estimate.current_hz,
            peak_hz=estimate.peak_hz,
            min_hz=estimate.min_hz,
            current_batch=self._last_batch,
            is_recording=self._recording,
        )

    def final_stats(self, now: float | None = None) -> FinalStats:
        if now is None:
            now = self._clock()
        end = self._stopped_at if self._stopped_at is not None else now
        duration = self._rates.elapsed_s(end)
        total = self._rates.total_points
        return FinalStats(
            total_points=total,
            duration_s=duration,
            average_hz=total / duration if duration > 0 else 0.0,
            peak_hz=self._rates.peak_hz,
            min_hz=self._rates.min_hz,
        )

    def _stats_due(self, now: float) -> bool:
        if self._last_stats_emit is None:
            return True
        return now - self._last_stats_emit >= self.config.stats_throttle_s

    def _emit_stats(self, now: float) -> None:
        self._last_stats_emit = now
        self._emit(StatsUpdate(self.snapshot()))

    def _reset_state(self) -> None:
        self._buffer.clear()
        self._samples = []
        self._rates.reset()
        self._stopped_at = None
        self._last_stats_emit = None
        self._last_batch = 0
