"""Unit tests for UTC timestamp helpers."""

from __future__ import annotations

from datetime import datetime, timezone

from core.time_utils import (
    from_epoch_ms,
    isoformat_z,
    parse_epoch_seconds,
    parse_timestamp,
    to_epoch_ms,
)


def test_parse_timestamp_handles_zulu_suffix() -> None:
    """ISO timestamps ending in Z should parse as UTC."""
    parsed = parse_timestamp("2021-03-01T10:00:05.000Z")

    assert parsed == datetime(2021, 3, 1, 10, 0, 5, tzinfo=timezone.utc)


def test_parse_timestamp_truncates_seven_digit_fractions() -> None:
    """Chat exports with 100ns precision should still parse and convert to UTC."""
    parsed = parse_timestamp("2020-06-22T16:21:08.2360000-07:00")

    assert parsed == datetime(2020, 6, 22, 23, 21, 8, 236000, tzinfo=timezone.utc)


def test_parse_timestamp_returns_none_for_garbage() -> None:
    """Unparseable text should yield None rather than raising."""
    assert parse_timestamp("not a date") is None


def test_epoch_ms_round_trip_preserves_instant() -> None:
    """Epoch milliseconds should convert back to the same aware instant."""
    instant = datetime(2022, 1, 2, 3, 4, 5, 678000, tzinfo=timezone.utc)

    restored = from_epoch_ms(to_epoch_ms(instant))

    assert restored == instant


def test_isoformat_z_renders_millisecond_precision() -> None:
    """Rendered timestamps should use millisecond precision and a Z suffix."""
    rendered = isoformat_z(datetime(2022, 1, 2, 3, 4, 5, 678901, tzinfo=timezone.utc))

    assert rendered == "2022-01-02T03:04:05.678Z"


def test_parse_timestamp_returns_none_when_utc_conversion_overflows() -> None:
    """Offsets that push an instant below year one should not raise."""
    assert parse_timestamp("0001-01-01T00:00:00+05:00") is None


def test_parse_epoch_seconds_returns_none_out_of_range() -> None:
    """Unix seconds past the calendar limit should not raise."""
    assert parse_epoch_seconds("99999999999999") is None


def test_parse_epoch_seconds_truncates_fractions() -> None:
    """Fractional seconds should be truncated to whole seconds."""
    assert parse_epoch_seconds("1600000000.9") == datetime.fromtimestamp(
        1600000000, tz=timezone.utc
    )
