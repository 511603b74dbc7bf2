import random
from datetime import datetime, timezone

import pytest

from motionrec.core.models import Sample
from motionrec.dataio.csv_export import (
    HEADERS,
    CsvFormat,
    SerializationError,
    escape_field,
    format_number,
    format_timestamp,
    iter_csv_chunks,
    serialize_samples,
    sort_samples,
)
from motionrec.dataio.export_loader import parse_export

EXPECTED_HEADER = (
    "Data Point Timestamp,User ID,GPS Date Timestamp,GPS LAT,GPS LON,GPS ERROR,GPS ALT,"
    "GPS ALT ACCURACY,GPS HEADING,GPS SPEED,Accel Date Timestamp,Accel X,Accel Y,Accel Z,"
    "Gyro Date Timestamp,Gyro Alpha,Gyro Beta,Gyro Gamma,Sample Time (ms),Frequency (Hz)"
)


def _accel(ts: int, user: str = "rider-7") -> Sample:
    return Sample(timestamp=ts, user_id=user, accel_x=0.25, accel_y=-1.5, accel_z=9.81)


def _mixed_session() -> list[Sample]:
    samples = []
    for i in range(10):
        ts = i * 100
        if i in (0, 3, 6):
            samples.append(Sample(timestamp=ts, user_id="rider-7", gps_lat=52.37, gps_lon=4.89))
        elif i in (8, 9):
            samples.append(Sample(timestamp=ts, user_id="rider-7", gyro_alpha=12.5))
        else:
            samples.append(_accel(ts))
    return samples


def test_header_row_matches_column_order() -> None:
    text = serialize_samples([_accel(0)]).text
    assert text.splitlines()[0] == EXPECTED_HEADER
    assert ",".join(HEADERS) == EXPECTED_HEADER


def test_empty_export_has_header_and_zero_summary() -> None:
    export = serialize_samples([])
    assert export.text == "\n".join(
        [
            EXPECTED_HEADER,
            "",
            "# Summary Statistics",
            "# User ID,unknown",
            "# Total Samples,0",
            "# GPS Samples,0",
            "# Accelerometer Samples,0",
            "# Gyroscope Samples,0",
            "# Duration (seconds),0.00",
            "# Average Sample Rate (Hz),0.00",
        ]
    )
    assert export.user_id == "unknown"


def test_frequency_column_uses_moving_average() -> None:
    parsed = parse_export(serialize_samples([_accel(ts) for ts in (0, 10, 20, 30)]).text)

    assert [row["Sample Time (ms)"] for row in parsed.rows] == ["0.00", "10.00", "10.00", "10.00"]
    assert [row["Frequency (Hz)"] for row in parsed.rows] == ["0.00", "100.00", "100.00", "100.00"]


def test_frequency_window_overwrites_oldest_values() -> None:
    timestamps = list(range(0, 101, 10)) + list(range(120, 301, 20))
    parsed = parse_export(serialize_samples([_accel(ts) for ts in timestamps]).text)

    assert len(parsed.rows) == 21
    assert parsed.rows[10]["Frequency (Hz)"] == "100.00"
    assert parsed.rows[11]["Frequency (Hz)"] == "95.00"
    assert parsed.rows[-1]["Frequency (Hz)"] == "50.00"


def test_duplicate_timestamps_do_not_touch_the_window() -> None:
    parsed = parse_export(serialize_samples([_accel(ts) for ts in (0, 10, 10, 20)]).text)

    assert parsed.rows[2]["Sample Time (ms)"] == "0.00"
    assert parsed.rows[2]["Frequency (Hz)"] == "100.00"
    assert parsed.rows[3]["Frequency (Hz)"] == "100.00"


def test_summary_counts_match_rows() -> None:
    export = serialize_samples(_mixed_session())
    parsed = parse_export(export.text)

    assert parsed.summary["User ID"] == "rider-7"
    assert parsed.summary_int("Total Samples") == 10 == len(parsed.rows)
    assert parsed.summary_int("GPS Samples") == 3 == parsed.count_present("GPS LAT")
    assert parsed.summary_int("Accelerometer Samples") == 5 == parsed.count_present("Accel X")
    assert parsed.summary_int("Gyroscope Samples") == 2 == parsed.count_present("Gyro Alpha")
    assert parsed.summary["Duration (seconds)"] == "0.90"
    assert parsed.summary["Average Sample Rate (Hz)"] == "11.11"
    assert parsed.summary["GPS Sample Rate (Hz)"] == "3.33"
    assert parsed.summary["Accelerometer Sample Rate (Hz)"] == "5.56"
    assert parsed.summary["Gyroscope Sample Rate (Hz)"] == "2.22"
    assert export.summary.gps_count == 3


def test_group_rates_are_omitted_for_single_sample() -> None:
    text = serialize_samples([_accel(5)]).text
    assert "# Average Sample Rate (Hz),0.00" in text
    assert "# Accelerometer Sample Rate" not in text


def test_rows_are_sorted_and_output_is_order_independent() -> None:
    samples = [_accel(ts * 13) for ts in range(50)]
    shuffled = samples[:]
    random.Random(3).shuffle(shuffled)

    first = serialize_samples(samples).text
    second = serialize_samples(shuffled).text

    assert first == second
    rows = parse_export(first).rows
    assert rows[0]["Data Point Timestamp"] == "1970-01-01T00:00:00.000Z"
    assert rows[1]["Data Point Timestamp"] == "1970-01-01T00:00:00.013Z"


def test_sort_is_stable_for_equal_timestamps() -> None:
    first = Sample(timestamp=5, user_id="first")
    second = Sample(timestamp=5, user_id="second")
    earliest = Sample(timestamp=1, user_id="zero")

    ordered = sort_samples([first, second, earliest])

    assert [s.user_id for s in ordered] == ["zero", "first", "second"]


def test_user_id_comes_from_earliest_sample() -> None:
    export = serialize_samples([_accel(20, user="late"), _accel(10, user="early")])
    assert export.user_id == "early"


def test_text_fields_are_escaped() -> None:
    sample = Sample(timestamp=0, user_id='doe, "jj"', accel_x=1.0)
    text = serialize_samples([sample]).text

    assert '"doe, ""jj"""' in text.splitlines()[1]
    assert parse_export(text).rows[0]["User ID"] == 'doe, "jj"'


def test_export_date_is_written_when_supplied() -> None:
    when = datetime(2024, 1, 2, 3, 4, 5, tzinfo=timezone.utc)
    text = serialize_samples([_accel(0)], exported_at=when).text
    lines = text.splitlines()
    assert lines[lines.index("# User ID,rider-7") + 1] == "# Export Date,2024-01-02T03:04:05.000Z"


def test_epoch_ms_timestamps() -> None:
    text = serialize_samples([_accel(1234)], fmt=CsvFormat(timestamp_format="epoch_ms")).text
    assert text.splitlines()[1].startswith("1234,rider-7,")


def test_chunks_yield_progress_and_return_export() -> None:
    samples = [_accel(i * 7) for i in range(2500)]
    chunks = iter_csv_chunks(samples, chunk_size=1000)

    progress = []
    while True:
        try:
            progress.append(next(chunks))
        except StopIteration as done:
            export = done.value
            break

    assert progress == [1000, 2000, 2500]
    assert export.text == serialize_samples(samples, chunk_size=333).text


def test_chunked_export_ignores_later_changes_to_input() -> None:
    samples = [_accel(i) for i in range(5)]
    chunks = iter_csv_chunks(samples, chunk_size=2)
    next(chunks)
    samples.append(_accel(99))

    while True:
        try:
            next(chunks)
        except StopIteration as done:
            export = done.value
            break

    assert export.summary.total == 5
    assert len(parse_export(export.text).rows) == 5


@pytest.mark.parametrize(
    "samples",
    [
        [Sample(timestamp=0), {"timestamp": 1}],
        [Sample(timestamp=1, accel_x="abc")],
        [Sample(timestamp=1.5)],
        [Sample(timestamp=1, user_id=5)],
        [Sample(timestamp=1, gps_lat=True)],
    ],
)
def test_invalid_input_raises_serialization_error(samples: list) -> None:
    with pytest.raises(SerializationError):
        serialize_samples(samples)


@pytest.mark.parametrize(
    "value, expected",
    [
        (None, ""),
        (5, "5"),
        (5.0, "5"),
        (-2, "-2"),
        (1.5, "1.500000"),
        (99.1234567, "99.123457"),
        (123.4567, "123.46"),
        (-100.5, "-100.50"),
        (100.0, "100"),
    ],
)
def test_format_number(value: object, expected: str) -> None:
    assert format_number(value) == expected


@pytest.mark.parametrize("value", [True, "1.0", [1]])
def test_format_number_rejects_non_numbers(value: object) -> None:
    with pytest.raises(SerializationError):
        format_number(value)


@pytest.mark.parametrize(
    "value, expected",
    [
        ("plain", "plain"),
        ("a,b", '"a,b"'),
        ('say "hi"', '"say ""hi"""'),
        ("line\nbreak", '"line\nbreak"'),
        (None, ""),
    ],
)
def test_escape_field(value: object, expected: str) -> None:
    assert escape_field(value) == expected


def test_format_timestamp() -> None:
    assert format_timestamp(10) == "1970-01-01T00:00:00.010Z"
    assert format_timestamp(10, CsvFormat(timestamp_format="epoch_ms")) == "10"
