"""Unit tests for CSV export readers."""

from __future__ import annotations

from datetime import datetime, timezone

import pytest

from core.errors import HistoryIngestError
from core.types import UNCLAIMED
from ingest.csv_reader import parse_war_log_content, read_exchange_csv, read_war_log_csv
from tests.fixture_paths import fixture_path


def test_read_exchange_csv_counts_malformed_rows() -> None:
    """Bad timestamps and wrong column counts should be counted, not raised."""
    parsed = read_exchange_csv(fixture_path("exports/exchange_export.csv"))

    assert (len(parsed.candidates), parsed.malformed_count) == (7, 2)


def test_read_exchange_csv_maps_none_defender_to_unclaimed() -> None:
    """The 'None' defender label should become the UNCLAIMED sentinel."""
    parsed = read_exchange_csv(fixture_path("exports/exchange_export.csv"))

    assert parsed.candidates[0].defender is UNCLAIMED


def test_read_exchange_csv_reads_unix_seconds() -> None:
    """The time column should be read as unix seconds in UTC."""
    parsed = read_exchange_csv(fixture_path("exports/exchange_export.csv"))

    assert parsed.candidates[0].time == datetime.fromtimestamp(1600000000, tz=timezone.utc)


def test_read_exchange_csv_raises_for_missing_file(tmp_path) -> None:
    """A missing export should be a fatal ingest error."""
    with pytest.raises(HistoryIngestError):
        read_exchange_csv(tmp_path / "missing.csv")


def test_read_war_log_csv_skips_non_bot_and_chatter() -> None:
    """Human messages and bot chatter should be skipped; bad dates are malformed."""
    parsed = read_war_log_csv(fixture_path("exports/war_log.csv"))

    counts = (len(parsed.candidates), parsed.skipped_count, parsed.malformed_count)
    assert counts == (2, 2, 1)


def test_read_war_log_csv_parses_moto_bot_format() -> None:
    """The moto-bot arrow format should yield territory, attacker, and defender."""
    parsed = read_war_log_csv(fixture_path("exports/war_log.csv"))

    event = parsed.candidates[1]
    assert (event.territory, event.attacker, event.defender) == (
        "Detlas",
        "Gamma Order",
        "Beta Squad",
    )


def test_parse_war_log_content_reads_strikethrough_format() -> None:
    """The strikethrough format should parse defender and attacker."""
    parsed = parse_war_log_content("Ragni: ~~Alpha Guild~~ -> **Beta Squad**")

    assert parsed == ("Ragni", "Alpha Guild", "Beta Squad")


def test_parse_war_log_content_uses_first_line_only() -> None:
    """Trailing lines of a message should not affect parsing."""
    parsed = parse_war_log_content("Ragni: ~~Alpha Guild~~ -> **Beta Squad**\nheld 2h")

    assert parsed is not None and parsed[2] == "Beta Squad"


def test_read_exchange_csv_counts_out_of_range_time_as_malformed(tmp_path) -> None:
    """Unix seconds beyond the representable calendar should be malformed, not fatal."""
    source = tmp_path / "exchanges.csv"
    source.write_text(
        "time,defender,attacker,territory\n"
        "99999999999999,None,Alpha Guild,Detlas\n"
        "1600000000,None,Alpha Guild,Ragni\n",
        encoding="utf-8",
    )

    parsed = read_exchange_csv(source)

    assert (len(parsed.candidates), parsed.malformed_count) == (1, 1)


def test_read_war_log_csv_counts_out_of_range_date_as_malformed(tmp_path) -> None:
    """Dates that overflow when converted to UTC should be malformed, not fatal."""
    source = tmp_path / "war_log.csv"
    source.write_text(
        "AuthorID,Author,Date,Content\n"
        "1,WynnBot,0001-01-01T00:00:00+05:00,Ragni: ~~Alpha Guild~~ -> **Beta Squad**\n",
        encoding="utf-8",
    )

    parsed = read_war_log_csv(source)

    assert (len(parsed.candidates), parsed.malformed_count) == (0, 1)
