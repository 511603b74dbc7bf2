"""Command-line entry point for offline exports and pipeline replays.

``motionrec export`` turns a JSON-lines recording straight into a CSV export.
``motionrec replay`` pushes the same recording through a
:class:`~motionrec.core.pipeline.RecorderPipeline` batch by batch, with a clock
derived from the sample timestamps, and reports the statistics a live session
would have produced. ``motionrec verify`` checks that an export's summary
counts agree with its data rows.
"""

from __future__ import annotations

import argparse
import logging
import sys
from pathlib import Path
from typing import List, Optional, Sequence

from .config.runtime import PipelineConfig, load_config
from .core.models import FinalStats, Sample
from .core.pipeline import RecorderPipeline, csv_format_from_config
from .core.protocol import Event, RecordingStopped
from .dataio import csv_writer
from .dataio.csv_export import SerializationError, serialize_samples
from .dataio.export_loader import load_export
from .dataio.sample_loader import load_samples

logger = logging.getLogger(__name__)

EXIT_OK = 0
EXIT_SERIALIZATION_ERROR = 1
EXIT_VERIFY_FAILED = 1
EXIT_USAGE = 2

LOG_LEVELS: dict[str, int] = {
    "critical": logging.CRITICAL,
    "error": logging.ERROR,
    "warning": logging.WARNING,
    "info": logging.INFO,
    "debug": logging.DEBUG,
}


def configure_logging(
    level_name: str,
    *,
    fmt: str = "%(asctime)s | %(levelname)-8s | %(name)s | %(message)s",
    datefmt: str = "%H:%M:%S",
) -> None:
    """Configure root logging for command-line use."""
    level = LOG_LEVELS.get(level_name.lower())
    if level is None:
        valid = ", ".join(sorted(LOG_LEVELS))
        raise ValueError(f"Invalid log level '{level_name}'. Choose from: {valid}")

    root = logging.getLogger()
    for handler in list(root.handlers):
        root.removeHandler(handler)
        handler.close()
    root.setLevel(level)

    handler = logging.StreamHandler()
    handler.setFormatter(logging.Formatter(fmt=fmt, datefmt=datefmt))
    root.addHandler(handler)


def _build_arg_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="motionrec",
        description="Motion recorder export tools",
    )
    parser.add_argument(
        "--config",
        type=Path,
        default=None,
        help="YAML pipeline configuration (default: $MOTIONREC_CONFIG)",
    )
    parser.add_argument(
        "--log-level",
        default="warning",
        choices=sorted(LOG_LEVELS),
        help="Logging verbosity (default: warning)",
    )
    sub = parser.add_subparsers(dest="command", required=True)

    export = sub.add_parser("export", help="Convert a JSONL recording to CSV")
    export.add_argument("input", type=Path, help="JSON-lines file with one sample per line")
    export.add_argument("-o", "--output", type=Path, default=None, help="CSV file to write")
    export.add_argument(
        "--chunk-size",
        type=int,
        default=None,
        help="Rows rendered per chunk (default: from config)",
    )

    replay = sub.add_parser("replay", help="Replay a JSONL recording through the pipeline")
    replay.add_argument("input", type=Path, help="JSON-lines file with one sample per line")
    replay.add_argument("-o", "--output", type=Path, default=None, help="CSV file to write")
    replay.add_argument(
        "--batch-size",
        type=int,
        default=10,
        help="Samples per ADD_DATA_BATCH command (default: 10)",
    )

    verify = sub.add_parser("verify", help="Check an export's summary block against its rows")
    verify.add_argument("export", type=Path, help="CSV export to check")
    return parser


class _ReplayClock:
    """Clock in seconds that follows the timestamp of the replayed samples."""

    def __init__(self) -> None:
        self.now = 0.0

    def __call__(self) -> float:
        return self.now


def replay_samples(
    samples: Sequence[Sample],
    config: PipelineConfig,
    *,
    batch_size: int = 10,
) -> RecordingStopped:
    """
    Feed ``samples`` through a fresh pipeline and return its RECORDING_STOPPED.

    Scheduler ticks fire whenever the replayed clock crosses another flush
    interval, as the periodic timer would have during the live session.
    """
    if batch_size <= 0:
        raise ValueError(f"batch_size must be a positive integer, got {batch_size}")
    clock = _ReplayClock()
    events: List[Event] = []
    pipeline = RecorderPipeline(config, emit=events.append, clock=clock)

    if samples:
        clock.now = samples[0].timestamp / 1000.0
    pipeline.start_recording()
    next_tick = clock.now + pipeline.config.flush_interval_s

    for start in range(0, len(samples), batch_size):
        batch = samples[start : start + batch_size]
        clock.now = max(clock.now, batch[-1].timestamp / 1000.0)
        while clock.now >= next_tick:
            pipeline.tick()
            next_tick += pipeline.config.flush_interval_s
        pipeline.add_batch(batch)

    pipeline.stop_recording()
    for event in reversed(events):
        if isinstance(event, RecordingStopped):
            return event
    raise RuntimeError("Pipeline did not report RECORDING_STOPPED")  # pragma: no cover


def _write_csv(samples: Sequence[Sample], output: Path | None, config: PipelineConfig, chunk_size: int) -> int:
    try:
        export = serialize_samples(samples, chunk_size=chunk_size, fmt=csv_format_from_config(config))
    except SerializationError as exc:
        logger.error("Failed to generate CSV: %s", exc)
        print(f"error: failed to generate CSV: {exc}", file=sys.stderr)
        return EXIT_SERIALIZATION_ERROR

    if output is None:
        sys.stdout.write(export.text)
        sys.stdout.write("\n")
    else:
        csv_writer.write_text(output, export.text)
        print(f"Wrote {export.summary.total} samples to {output}")
    return EXIT_OK


def _print_stats(stats: FinalStats) -> None:
    print(f"Total samples : {stats.total_points}")
    print(f"Duration      : {stats.duration_s:.2f} s")
    print(f"Average rate  : {stats.average_hz:.2f} Hz")
    print(f"Peak rate     : {stats.peak_hz:.2f} Hz")
    print(f"Min rate      : {stats.min_hz:.2f} Hz")


def _verify_export(path: Path) -> int:
    try:
        parsed = load_export(path)
    except (OSError, ValueError) as exc:
        print(f"error: {exc}", file=sys.stderr)
        return EXIT_USAGE

    problems = parsed.mismatches()
    for problem in problems:
        print(f"mismatch: {problem}", file=sys.stderr)
    if problems:
        return EXIT_VERIFY_FAILED
    print(f"{path}: {len(parsed.rows)} rows, summary consistent")
    return EXIT_OK


def main(argv: Optional[Sequence[str]] = None) -> int:
    parser = _build_arg_parser()
    args = parser.parse_args(argv)
    configure_logging(args.log_level)

    if args.command == "verify":
        return _verify_export(args.export)

    try:
        config = load_config(args.config)
        samples = load_samples(args.input)
    except (OSError, ValueError) as exc:
        print(f"error: {exc}", file=sys.stderr)
        return EXIT_USAGE

    if args.command == "export":
        chunk_size = args.chunk_size if args.chunk_size is not None else config.csv_chunk_size
        if chunk_size <= 0:
            print("error: --chunk-size must be positive", file=sys.stderr)
            return EXIT_USAGE
        return _write_csv(samples, args.output, config, chunk_size)

    if args.command == "replay":
        try:
            stopped = replay_samples(samples, config, batch_size=args.batch_size)
        except ValueError as exc:
            print(f"error: {exc}", file=sys.stderr)
            return EXIT_USAGE
        _print_stats(stopped.stats)
        if args.output is None:
            return EXIT_OK
        return _write_csv(stopped.samples, args.output, config, config.csv_chunk_size)

    parser.error(f"Unknown command {args.command!r}")  # pragma: no cover
    return EXIT_USAGE


if __name__ == "__main__":
    sys.exit(main())
