import logging
from datetime import datetime, timezone
from pathlib import Path

from motionrec.core.models import Sample
from motionrec.dataio import csv_writer
from motionrec.dataio.csv_export import serialize_samples
from motionrec.dataio.export_loader import load_export, parse_export
from motionrec.dataio.file_paths import export_filename, export_path
from motionrec.dataio.sample_loader import dump_samples, iter_samples, load_samples

WHEN = datetime(2025, 12, 4, 15, 30, 45, 123000, tzinfo=timezone.utc)


def test_export_filename_uses_user_and_time() -> None:
    assert export_filename("abc123", WHEN) == "motion-data-abc123-2025-12-04T15-30-45.csv"


def test_export_filename_sanitizes_user_id() -> None:
    assert export_filename("../jane doe/", WHEN) == "motion-data-jane_doe-2025-12-04T15-30-45.csv"
    assert export_filename(None, WHEN) == "motion-data-unknown-2025-12-04T15-30-45.csv"
    assert export_filename("///", WHEN) == "motion-data-unknown-2025-12-04T15-30-45.csv"


def test_save_export_writes_file(tmp_path: Path) -> None:
    text = "a,b\n1,2\n\n# Summary Statistics\n# Total Samples,1"
    path = csv_writer.save_export(text, "u1", tmp_path / "nested", WHEN)

    assert path == export_path(tmp_path / "nested", "u1", WHEN)
    assert path.read_text(encoding="utf-8") == text

    parsed = load_export(path)
    assert parsed.header == ["a", "b"]
    assert parsed.rows == [{"a": "1", "b": "2"}]
    assert parsed.summary_int("Total Samples") == 1


def test_iter_samples_skips_bad_lines(caplog) -> None:
    lines = [
        '{"timestamp": 1, "accelX": 0.5}\n',
        "\n",
        "{not json}\n",
        "[1, 2]\n",
        '{"accelX": 0.5}\n',
        '{"timestamp": 2, "userId": "u"}\n',
    ]
    with caplog.at_level(logging.WARNING, logger="motionrec.dataio.sample_loader"):
        samples = list(iter_samples(lines))

    assert [s.timestamp for s in samples] == [1, 2]
    assert "line 3" in caplog.text
    assert "line 5" in caplog.text


def test_dump_and_load_samples(tmp_path: Path) -> None:
    samples = [
        Sample(timestamp=1, user_id="u", gps_lat=1.25, gps_lon=-3.5),
        Sample(timestamp=2, user_id="u", gyro_alpha=10.0, gyro_timestamp="2024-01-01T00:00:00Z"),
    ]
    path = tmp_path / "rec" / "session.jsonl"
    dump_samples(path, samples)

    assert load_samples(path) == samples


def test_mismatches_flags_disagreeing_summary() -> None:
    parsed = parse_export(
        "GPS LAT,Accel X,Gyro Alpha\n1.0,,\n,2.0,\n\n"
        "# Summary Statistics\n# Total Samples,2\n# GPS Samples,1\n# Accelerometer Samples,2"
    )

    assert parsed.mismatches() == [
        "'Accelerometer Samples' reports 2, rows contain 1",
        "summary is missing 'Gyroscope Samples'",
    ]


def test_mismatches_empty_for_serialized_export() -> None:
    samples = [
        Sample(timestamp=0, gps_lat=1.0),
        Sample(timestamp=10, accel_x=0.5),
        Sample(timestamp=20, gyro_alpha=3.0),
    ]
    assert parse_export(serialize_samples(samples).text).mismatches() == []
