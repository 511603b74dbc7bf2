"""Qt worker hosting the recording pipeline on its own event loop."""

from __future__ import annotations

import logging
import time
from collections import deque
from typing import Callable, Deque, Optional

from PySide6.QtCore import QObject, QTimer, Signal, Slot

from ..config.runtime import PipelineConfig
from ..core.pipeline import CsvJob, RecorderPipeline
from ..core.protocol import (
    CsvGenerated,
    Event,
    GenerateCsv,
    ProtocolError,
    RecordingStarted,
    RecordingStopped,
    StatsUpdate,
    WorkerError,
    parse_command,
)

logger = logging.getLogger(__name__)


class PipelineWorker(QObject):
    """QObject-based worker that owns a :class:`RecorderPipeline`.

    It is meant to live in its own QThread. Commands arrive through the
    ``submit`` slot and are handled one at a time; a QTimer drives the flush
    scheduler, and CSV exports advance one chunk per event-loop turn so
    commands and timer ticks queued meanwhile are not starved.
    """

    event_emitted = Signal(object)
    recording_started = Signal()
    recording_stopped = Signal(object, object)  # (samples, FinalStats)
    stats_updated = Signal(object)  # StatsSnapshot
    csv_generated = Signal(str, str)  # (text, user_id)
    worker_error = Signal(str)
    finished = Signal()

    def __init__(
        self,
        config: PipelineConfig | None = None,
        *,
        clock: Callable[[], float] = time.monotonic,
        parent: QObject | None = None,
    ) -> None:
        super().__init__(parent)
        self._config = (config or PipelineConfig()).sanitized()
        self._pipeline = RecorderPipeline(self._config, emit=self._publish, clock=clock)
        self._flush_timer: Optional[QTimer] = None
        self._csv_jobs: Deque[CsvJob] = deque()
        self._csv_step_pending = False

    @property
    def pipeline(self) -> RecorderPipeline:
        return self._pipeline

    @property
    def pending_csv_jobs(self) -> int:
        return len(self._csv_jobs)

    # ---------------------------------------------------------------- lifecycle
    @Slot()
    def start(self) -> None:
        """Entry point for the QThread: arm the periodic flush timer."""
        if self._flush_timer is None:
            self._flush_timer = QTimer(self)
            self._flush_timer.setInterval(self._config.flush_interval_ms)
            self._flush_timer.timeout.connect(self._on_flush_timer)
        self._flush_timer.start()
        logger.info("Pipeline worker started (flush every %d ms)", self._config.flush_interval_ms)

    @Slot()
    def stop(self) -> None:
        """Stop the flush timer and drop exports that have not finished."""
        if self._flush_timer is not None:
            self._flush_timer.stop()
        if self._csv_jobs:
            logger.warning("Pipeline worker stopping with %d unfinished CSV export(s)", len(self._csv_jobs))
            self._csv_jobs.clear()
        self.finished.emit()

    # ----------------------------------------------------------------- commands
    @Slot(object)
    def submit(self, message: object) -> None:
        try:
            command = parse_command(message)
        except ProtocolError as exc:
            logger.warning("Ignoring malformed command: %s", exc)
            return

        try:
            if isinstance(command, GenerateCsv):
                self._csv_jobs.append(self._pipeline.create_csv_job(command))
                self._schedule_csv_step()
            else:
                self._pipeline.dispatch(command)
        except Exception as exc:  # pragma: no cover - safety net for the worker thread
            logger.exception("Command %s failed", command.type.value)
            self._publish(WorkerError(f"{command.type.value} failed: {exc}"))

    # -------------------------------------------------------------- scheduling
    @Slot()
    def _on_flush_timer(self) -> None:
        try:
            self._pipeline.tick()
        except Exception as exc:  # pragma: no cover - safety net for the worker thread
            logger.exception("Scheduled flush failed")
            self._publish(WorkerError(f"Scheduled flush failed: {exc}"))

    def _schedule_csv_step(self) -> None:
        if self._csv_step_pending or not self._csv_jobs:
            return
        self._csv_step_pending = True
        QTimer.singleShot(0, self._process_csv_chunk)

    @Slot()
    def _process_csv_chunk(self) -> None:
        self._csv_step_pending = False
        if not self._csv_jobs:
            return
        job = self._csv_jobs[0]
        try:
            finished = job.step()
        except Exception as exc:  # pragma: no cover - safety net for the worker thread
            logger.exception("CSV export failed unexpectedly")
            self._publish(WorkerError(f"Failed to generate CSV: {exc}"))
            finished = True
        if finished:
            self._csv_jobs.popleft()
        self._schedule_csv_step()

    # ------------------------------------------------------------------ events
    def _publish(self, event: Event) -> None:
        self.event_emitted.emit(event)
        if isinstance(event, StatsUpdate):
            self.stats_updated.emit(event.snapshot)
        elif isinstance(event, RecordingStarted):
            self.recording_started.emit()
        elif isinstance(event, RecordingStopped):
            self.recording_stopped.emit(event.samples, event.stats)
        elif isinstance(event, CsvGenerated):
            self.csv_generated.emit(event.text, event.user_id)
        elif isinstance(event, WorkerError):
            self.worker_error.emit(event.message)
