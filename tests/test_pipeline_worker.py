import time
from pathlib import Path

import pytest

from PySide6.QtCore import QCoreApplication

from motionrec.config.runtime import PipelineConfig
from motionrec.core.models import Sample
from motionrec.core.protocol import (
    CsvGenerated,
    GenerateCsv,
    RecordingStarted,
    RecordingStopped,
    StatsUpdate,
    WorkerError,
)
from motionrec.dataio.export_loader import load_export, parse_export
from motionrec.worker import PipelineController, PipelineWorker


@pytest.fixture(scope="module")
def qapp():
    app = QCoreApplication.instance() or QCoreApplication([])
    yield app


def _wait_for(app, predicate, timeout: float = 3.0) -> bool:
    deadline = time.monotonic() + timeout
    while time.monotonic() < deadline:
        app.processEvents()
        if predicate():
            return True
        time.sleep(0.005)
    app.processEvents()
    return predicate()


def _batch(count: int, start: int = 0) -> list:
    return [{"timestamp": start + i * 5, "userId": "qt", "accelX": 0.1} for i in range(count)]


def _of_type(events: list, kind: type) -> list:
    return [event for event in events if isinstance(event, kind)]


def test_worker_runs_a_session(qapp) -> None:
    worker = PipelineWorker(PipelineConfig(normal_threshold=10, emergency_threshold=40))
    events: list = []
    stopped: list = []
    worker.event_emitted.connect(events.append)
    worker.recording_stopped.connect(lambda samples, stats: stopped.append((samples, stats)))

    worker.submit({"type": "START_RECORDING"})
    worker.submit({"type": "ADD_DATA_BATCH", "data": _batch(25)})
    worker.submit({"type": "ADD_DATA_POINT", "data": {"timestamp": 999}})
    worker.submit({"type": "STOP_RECORDING"})

    assert isinstance(events[0], RecordingStarted)
    assert isinstance(events[-1], RecordingStopped)
    assert _of_type(events, StatsUpdate)[-1].snapshot.total_points == 26
    samples, stats = stopped[0]
    assert len(samples) == 26
    assert stats.total_points == 26


def test_malformed_commands_are_ignored(qapp) -> None:
    worker = PipelineWorker()
    events: list = []
    worker.event_emitted.connect(events.append)

    worker.submit({"type": "UNKNOWN"})
    worker.submit("START_RECORDING")

    assert events == []
    assert not worker.pipeline.is_recording


def test_csv_export_is_chunked_across_event_loop_turns(qapp) -> None:
    worker = PipelineWorker(PipelineConfig(csv_chunk_size=100))
    events: list = []
    generated: list = []
    worker.event_emitted.connect(events.append)
    worker.csv_generated.connect(lambda text, user_id: generated.append((text, user_id)))

    samples = tuple(Sample(timestamp=i, user_id="qt", gyro_alpha=1.0) for i in range(1050))
    worker.submit(GenerateCsv(samples))
    assert worker.pending_csv_jobs == 1
    assert generated == []

    # commands are still served while the export is in progress
    worker.submit({"type": "GET_STATS"})
    assert isinstance(events[-1], StatsUpdate)

    assert _wait_for(qapp, lambda: bool(generated))
    text, user_id = generated[0]
    assert user_id == "qt"
    assert len(parse_export(text).rows) == 1050
    assert worker.pending_csv_jobs == 0
    assert isinstance(events[-1], CsvGenerated)


def test_failed_export_emits_worker_error(qapp) -> None:
    worker = PipelineWorker()
    errors: list = []
    worker.worker_error.connect(errors.append)

    worker.submit({"type": "GENERATE_CSV", "data": [{"timestamp": 1, "gpsLat": "north"}]})

    assert _wait_for(qapp, lambda: bool(errors))
    assert errors[0].startswith("Failed to generate CSV")


def test_flush_timer_drains_buffer(qapp) -> None:
    worker = PipelineWorker(PipelineConfig(flush_interval_s=0.05))
    snapshots: list = []
    finished: list = []
    worker.stats_updated.connect(snapshots.append)
    worker.finished.connect(lambda: finished.append(True))

    worker.start()
    worker.submit({"type": "START_RECORDING"})
    worker.submit({"type": "ADD_DATA_BATCH", "data": _batch(5)})

    assert _wait_for(qapp, lambda: any(s.buffer_size == 0 and s.total_points == 5 for s in snapshots))
    assert worker.pipeline.accumulated_count == 5

    worker.stop()
    assert finished == [True]


def test_stop_drops_unfinished_exports(qapp) -> None:
    worker = PipelineWorker(PipelineConfig(csv_chunk_size=1))
    events: list = []
    worker.event_emitted.connect(events.append)

    worker.submit(GenerateCsv(tuple(Sample(timestamp=i) for i in range(50))))
    worker.stop()
    qapp.processEvents()

    assert worker.pending_csv_jobs == 0
    assert not _of_type(events, CsvGenerated)
    assert not _of_type(events, WorkerError)


def test_controller_round_trip_on_worker_thread(qapp, tmp_path: Path) -> None:
    controller = PipelineController(
        PipelineConfig(normal_threshold=20, emergency_threshold=100, export_dir=tmp_path)
    )
    started: list = []
    received: list = []
    saved: list = []
    controller.recording_started.connect(lambda: started.append(True))
    controller.data_received.connect(lambda samples, stats: received.append((samples, stats)))
    controller.csv_saved.connect(saved.append)

    controller.start()
    thread = controller.worker_thread
    try:
        assert controller.is_available()
        assert thread.isRunning()
        controller.start_recording()
        controller.add_data_batch([Sample(timestamp=i, user_id="ctl", accel_x=0.5) for i in range(30)])
        controller.add_data_point(Sample(timestamp=30, user_id="ctl", accel_x=0.5))
        controller.stop_recording()

        assert _wait_for(qapp, lambda: bool(received))
        assert started == [True]
        samples, stats = received[0]
        assert len(samples) == 31
        assert stats.total_points == 31

        controller.generate_csv(samples)
        assert _wait_for(qapp, lambda: bool(saved))
    finally:
        stopped = controller.terminate(wait_timeout_ms=5000)

    assert stopped
    assert thread.isFinished()
    assert not thread.isRunning()
    assert controller.worker_thread is None

    path = Path(saved[0])
    assert path.parent == tmp_path
    assert path.name.startswith("motion-data-ctl-")
    assert load_export(path).summary_int("Total Samples") == 31
    assert not controller.is_available()


def test_controller_terminate_stops_idle_thread(qapp) -> None:
    controller = PipelineController(PipelineConfig(flush_interval_s=0.05))
    controller.start()
    thread = controller.worker_thread

    # let the worker thread spin its event loop and flush timer for a while
    deadline = time.monotonic() + 0.5
    while time.monotonic() < deadline:
        qapp.processEvents()
        time.sleep(0.01)

    started = time.monotonic()
    assert controller.terminate(wait_timeout_ms=2000)
    assert time.monotonic() - started < 2.0
    assert not thread.isRunning()
    assert not controller.is_available()

    # commands after terminate are dropped and a second terminate is a no-op
    controller.start_recording()
    assert controller.terminate()


def test_controller_terminate_without_start(qapp) -> None:
    controller = PipelineController()
    assert controller.terminate()
    assert controller.worker_thread is None
