from datetime import date, datetime, timezone

import pytest

from app.policydesk.utils import format_timestamp, parse_timestamp, to_naive_utc


@pytest.mark.parametrize(
    ("raw", "expected"),
    [
        ("2026-01-01T10:00:00.12+00:00", datetime(2026, 1, 1, 10, 0, 0, 120000, tzinfo=timezone.utc)),
        ("2026-01-01T10:00:00.5Z", datetime(2026, 1, 1, 10, 0, 0, 500000, tzinfo=timezone.utc)),
        ("2026-01-01T10:00:00.123456789+00:00", datetime(2026, 1, 1, 10, 0, 0, 123456, tzinfo=timezone.utc)),
        ("2026-01-01T12:00:00+02:00", datetime(2026, 1, 1, 10, 0, tzinfo=timezone.utc)),
        ("2026-01-01T10:00:00", datetime(2026, 1, 1, 10, 0, tzinfo=timezone.utc)),
        ("2026-01-01", datetime(2026, 1, 1, tzinfo=timezone.utc)),
    ],
)
def test_parse_timestamp(raw, expected):
    assert parse_timestamp(raw) == expected


def test_parse_timestamp_empty_and_dates():
    assert parse_timestamp(None) is None
    assert parse_timestamp("  ") is None
    assert parse_timestamp(date(2026, 3, 1)) == datetime(2026, 3, 1, tzinfo=timezone.utc)


@pytest.mark.parametrize("value", [1767261600, 17.5, ["2026-01-01"], "not a date"])
def test_parse_timestamp_rejects_other_values(value):
    with pytest.raises(ValueError):
        parse_timestamp(value)


def test_format_and_naive():
    ts = datetime(2026, 1, 1, 10, 0, 0, 120000, tzinfo=timezone.utc)
    assert format_timestamp(ts) == "2026-01-01T10:00:00.120000+00:00"
    assert to_naive_utc("2026-01-01T12:00:00+02:00") == datetime(2026, 1, 1, 10, 0)
    with pytest.raises(ValueError):
        format_timestamp(None)
