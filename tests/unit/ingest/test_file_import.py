"""Unit tests for file import orchestration."""

from __future__ import annotations

import pytest

from core.errors import HistoryIngestError
from core.types import ImportOptions
from ingest.file_import import detect_source_format, import_exchange_file
from store.event_store import EventStore
from store.prefix_registry import GuildPrefixRegistry
from tests.fixture_paths import fixture_path
from tests.history_builders import open_database


def _import(tmp_path, relative_path: str, **option_values):
    database = open_database(tmp_path)
    options = ImportOptions(source_path=str(fixture_path(relative_path)), **option_values)
    events = EventStore(database)
    summary = import_exchange_file(options, events, GuildPrefixRegistry(database))
    return summary, events


def test_import_collapses_repeated_reports(tmp_path) -> None:
    """Five identical rows within ten seconds should store one event."""
    summary, events = _import(tmp_path, "exports/exchange_export.csv")

    assert summary.intra_batch_duplicates == 4
    assert len(events.query(territories=["Ragni"])) == 2


def test_import_registers_guessed_prefixes_for_new_guilds(tmp_path) -> None:
    """Guilds first seen in an import should get guessed prefixes."""
    database = open_database(tmp_path)
    options = ImportOptions(source_path=str(fixture_path("exports/exchange_export.csv")))
    registry = GuildPrefixRegistry(database)

    import_exchange_file(options, EventStore(database), registry)

    assert registry.prefix_map() == {"Alpha Guild": "ALP", "Beta Squad": "BET"}


def test_reimport_inserts_nothing(tmp_path) -> None:
    """Importing the same export twice should insert zero rows the second time."""
    database = open_database(tmp_path)
    options = ImportOptions(source_path=str(fixture_path("exports/chat_export.json")))
    events = EventStore(database)
    registry = GuildPrefixRegistry(database)
    import_exchange_file(options, events, registry)

    second = import_exchange_file(options, events, registry)

    assert (second.inserted_count, second.cross_store_duplicates) == (0, 2)


def test_dry_run_reports_without_writing(tmp_path) -> None:
    """Dry runs should count survivors but leave the store empty."""
    summary, events = _import(tmp_path, "exports/war_log.csv", dry_run=True)

    assert (summary.inserted_count, summary.new_guild_count, events.count()) == (0, 3, 0)


def test_import_reports_candidate_bounds(tmp_path) -> None:
    """Summaries should carry the earliest and latest surviving candidate times."""
    summary, _ = _import(tmp_path, "exports/exchange_export.csv")

    assert summary.earliest is not None and summary.latest is not None
    assert (summary.latest - summary.earliest).total_seconds() == 1200


def test_detect_source_format_reads_csv_headers() -> None:
    """Both CSV shapes should be recognized from their headers."""
    formats = (
        detect_source_format(fixture_path("exports/exchange_export.csv")),
        detect_source_format(fixture_path("exports/war_log.csv")),
        detect_source_format(fixture_path("exports/chat_export.json")),
    )

    assert formats == ("exchange-csv", "war-log-csv", "chat-json")


def test_detect_source_format_rejects_unknown_files(tmp_path) -> None:
    """Unrecognized files should fail with a format hint."""
    path = tmp_path / "notes.txt"
    path.write_text("hello", encoding="utf-8")

    with pytest.raises(HistoryIngestError):
        detect_source_format(path)


def test_resolve_prefixes_without_resolver_fails(tmp_path) -> None:
    """Requesting resolution without a registry client should be an ingest error."""
    with pytest.raises(HistoryIngestError):
        _import(tmp_path, "exports/exchange_export.csv", resolve_prefixes=True)
