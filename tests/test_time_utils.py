from datetime import datetime, timedelta, timezone

from qr_attendance.utils import format_countdown, parse_timestamp, seconds_until


def test_parse_timestamp_accepts_zulu_and_epoch_millis():
    expected = datetime(2025, 1, 6, 10, 0, tzinfo=timezone.utc)
    assert parse_timestamp("2025-01-06T10:00:00.000Z") == expected
    assert parse_timestamp(1736157600000) == expected
    assert parse_timestamp("2025-01-06 10:00:00") == expected


def test_seconds_until_rounds_up_and_floors_at_zero():
    now = datetime(2025, 1, 6, 10, 0, tzinfo=timezone.utc)
    assert seconds_until(now + timedelta(milliseconds=200), now) == 1
    assert seconds_until(now - timedelta(seconds=5), now) == 0


def test_format_countdown():
    assert format_countdown(65) == "01:05"
    assert format_countdown(7200) == "2:00:00"
    assert format_countdown(-3) == "00:00"
