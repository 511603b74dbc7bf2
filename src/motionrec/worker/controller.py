from __future__ import annotations

import logging
from pathlib import Path
from typing import Iterable, Optional

from PySide6.QtCore import QMetaObject, QObject, QThread, Qt, Signal, Slot

from ..config.runtime import PipelineConfig
from ..core.models import Sample
from ..core.protocol import (
    AddDataBatch,
    AddDataPoint,
    ClearData,
    GenerateCsv,
    GetStats,
    StartRecording,
    StopRecording,
)
from ..dataio import csv_writer
from .pipeline_worker import PipelineWorker

logger = logging.getLogger(__name__)


class PipelineController(QObject):
    """Caller-side handle that runs a :class:`PipelineWorker` on its own QThread.

    Every call is fire-and-forget: it posts one command to the worker and the
    outcome arrives later through this object's signals.
    """

    command_posted = Signal(object)

    recording_started = Signal()
    data_received = Signal(object, object)  # (samples, FinalStats)
    stats_updated = Signal(object)
    csv_generated = Signal(str, str)
    csv_saved = Signal(str)
    error_reported = Signal(str)

    def __init__(
        self,
        config: PipelineConfig | None = None,
        parent: Optional[QObject] = None,
    ) -> None:
        super().__init__(parent)
        self._config = (config or PipelineConfig()).sanitized()
        self._thread: Optional[QThread] = None
        self._worker: Optional[PipelineWorker] = None
        self._stopping = False

    # --------------------------------------------------------------- lifecycle
    def start(self) -> None:
        if self._worker is not None:
            raise RuntimeError("Pipeline worker is already running.")

        thread = QThread(self)
        worker = PipelineWorker(self._config)
        worker.moveToThread(thread)
        thread.started.connect(worker.start)
        self.command_posted.connect(worker.submit)
        worker.recording_started.connect(self.recording_started)
        worker.recording_stopped.connect(self._on_recording_stopped)
        worker.stats_updated.connect(self.stats_updated)
        worker.csv_generated.connect(self._on_csv_generated)
        worker.worker_error.connect(self._on_worker_error)
        worker.finished.connect(worker.deleteLater)
        # quit() must run on the worker thread; the owning thread may be blocked in wait().
        worker.finished.connect(thread.quit, Qt.DirectConnection)
        thread.finished.connect(thread.deleteLater)
        thread.start()

        self._thread = thread
        self._worker = worker
        self._stopping = False
        logger.info("Pipeline controller started")

    @property
    def worker_thread(self) -> Optional[QThread]:
        return self._thread

    def terminate(self, *, wait_timeout_ms: int | None = 5000) -> bool:
        """
        Stop the worker and wait for its thread to finish.

        Returns ``True`` once the thread has stopped. On timeout the thread is
        kept referenced so a later ``terminate()`` can wait for it again.
        """
        worker = self._worker
        thread = self._thread
        if worker is None or thread is None:
            return True
        if not self._stopping:
            self._stopping = True
            self.command_posted.disconnect(worker.submit)
            QMetaObject.invokeMethod(worker, "stop", Qt.QueuedConnection)

        if wait_timeout_ms is None:
            stopped = thread.wait()
        else:
            stopped = thread.wait(max(0, int(wait_timeout_ms)))
        if not stopped:
            logger.warning("Pipeline worker thread still running after %s ms", wait_timeout_ms)
            return False

        self._worker = None
        self._thread = None
        logger.info("Pipeline controller stopped")
        return True

    def is_available(self) -> bool:
        return self._worker is not None and not self._stopping

    # ---------------------------------------------------------------- commands
    def start_recording(self) -> None:
        self._post(StartRecording())

    def stop_recording(self) -> None:
        self._post(StopRecording())

    def add_data_point(self, sample: Sample) -> None:
        self._post(AddDataPoint(sample))

    def add_data_batch(self, samples: Iterable[Sample]) -> None:
        self._post(AddDataBatch(tuple(samples)))

    def generate_csv(self, samples: Iterable[Sample]) -> None:
        self._post(GenerateCsv(tuple(samples)))

    def get_stats(self) -> None:
        self._post(GetStats())

    def clear_data(self) -> None:
        self._post(ClearData())

    def post_message(self, message: object) -> None:
        """Forward a raw ``{"type": ..., "data": ...}`` message unchanged."""
        self._post(message)

    def _post(self, command: object) -> None:
        if not self.is_available():
            logger.debug("Pipeline worker not running; dropping %r", command)
            return
        self.command_posted.emit(command)

    # ------------------------------------------------------------ worker events
    @Slot(object, object)
    def _on_recording_stopped(self, samples: list, stats: object) -> None:
        self.data_received.emit(samples, stats)

    @Slot(str, str)
    def _on_csv_generated(self, text: str, user_id: str) -> None:
        self.csv_generated.emit(text, user_id)
        export_dir = self._config.export_dir
        if export_dir is None:
            return
        try:
            path = csv_writer.save_export(text, user_id, Path(export_dir))
        except OSError as exc:
            self._on_worker_error(f"Failed to save CSV: {exc}")
            return
        logger.info("CSV export saved to %s", path)
        self.csv_saved.emit(str(path))

    @Slot(str)
    def _on_worker_error(self, message: str) -> None:
        logger.error("Pipeline worker error: %s", message)
        self.error_reported.emit(str(message))
