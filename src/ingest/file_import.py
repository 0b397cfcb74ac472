"""File import orchestration.

This module runs one idempotent import of an exchange export: parse,
collapse in-file repeats, drop events the store already holds, insert
the survivors, and give any new guilds a guessed prefix.
"""

from __future__ import annotations

from datetime import timedelta
from pathlib import Path

from core.constants import (
    CHAT_JSON_FORMAT,
    CROSS_STORE_PADDING_SECONDS,
    EXCHANGE_CSV_FORMAT,
    EXCHANGE_CSV_HEADER,
    SUPPORTED_IMPORT_FORMATS,
    WAR_LOG_CSV_FORMAT,
    WAR_LOG_CSV_HEADER,
)
from core.errors import HistoryIngestError
from core.logging_config import get_logger
from core.types import ExchangeEvent, ImportOptions, ImportSummary, ParsedSource
from ingest.chat_export_reader import read_chat_export
from ingest.csv_reader import read_csv_header, read_exchange_csv, read_war_log_csv
from ingest.prefix_resolver import GuildPrefixResolver
from store.event_store import EventStore, padded_range
from store.prefix_registry import GuildPrefixRegistry
from transforms.exchange_dedup import (
    DedupResult,
    build_fuzzy_keys,
    collapse_repeated_reports,
    distinct_guilds,
    filter_novel_events,
)

_LOGGER = get_logger(__name__)


class FileImportRunner:
    """Stateful runner for one file import.

    Everything the run accumulates lives on the instance, so two runs
    never share dedup windows or guild sets.
    """

    def __init__(
        self,
        options: ImportOptions,
        event_store: EventStore,
        prefix_registry: GuildPrefixRegistry,
        resolver: GuildPrefixResolver | None = None,
    ) -> None:
        self._options = options
        self._event_store = event_store
        self._prefix_registry = prefix_registry
        self._resolver = resolver
        self._source_path = Path(options.source_path).expanduser()

    def run(self) -> ImportSummary:
        """Execute the import and return its counters.

        Raises:
            HistoryIngestError: If the source is unreadable or its format unknown.
            HistoryStoreError: If a batch insert fails.
        """
        source_format = self._options.source_format or detect_source_format(self._source_path)
        parsed = _read_source(self._source_path, source_format)
        collapsed = collapse_repeated_reports(parsed.candidates)
        novel = self._drop_stored_events(collapsed.events)
        guilds = distinct_guilds(novel.events)
        inserted = 0
        if self._options.dry_run:
            new_guilds = len(guilds - self._prefix_registry.known_names())
        else:
            inserted = self._event_store.append(novel.events)
            new_guilds = self._prefix_registry.register_guessed(guilds)
        if self._options.resolve_prefixes and not self._options.dry_run:
            self._resolve_prefixes()
        summary = ImportSummary(
            source_path=str(self._source_path),
            source_format=source_format,
            parsed_count=len(parsed.candidates),
            malformed_count=parsed.malformed_count,
            skipped_count=parsed.skipped_count,
            intra_batch_duplicates=collapsed.removed_count,
            cross_store_duplicates=novel.removed_count,
            inserted_count=inserted,
            new_guild_count=new_guilds,
            earliest=collapsed.events[0].time if collapsed.events else None,
            latest=collapsed.events[-1].time if collapsed.events else None,
            dry_run=self._options.dry_run,
        )
        _log_import_completion(summary)
        return summary

    def _drop_stored_events(self, candidates: list[ExchangeEvent]) -> DedupResult:
        """Filter candidates that fuzzily match events already in the store."""
        if not candidates:
            return filter_novel_events(candidates, set())
        window = padded_range(
            candidates[0].time,
            candidates[-1].time,
            timedelta(seconds=CROSS_STORE_PADDING_SECONDS),
        )
        existing_keys = build_fuzzy_keys(self._event_store.query(time_range=window))
        return filter_novel_events(candidates, existing_keys)

    def _resolve_prefixes(self) -> None:
        if self._resolver is None:
            raise HistoryIngestError(
                "Prefix resolution was requested but no guild registry resolver is configured. "
                "Import without --resolve-prefixes or configure the registry."
            )
        self._resolver.resolve_pending()


def import_exchange_file(
    options: ImportOptions,
    event_store: EventStore,
    prefix_registry: GuildPrefixRegistry,
    resolver: GuildPrefixResolver | None = None,
) -> ImportSummary:
    """Run one file import.

    Args:
        options: Import request options.
        event_store: Destination event log.
        prefix_registry: Guild prefix table for new guilds.
        resolver: Optional registry resolver used with ``resolve_prefixes``.

    Returns:
        Import counters.
    """
    runner = FileImportRunner(options, event_store, prefix_registry, resolver)
    return runner.run()


def detect_source_format(source_path: Path) -> str:
    """Infer the export format from the file extension and CSV header.

    Raises:
        HistoryIngestError: If the file is missing or its format unknown.
    """
    if not source_path.exists():
        raise HistoryIngestError(
            f"Failed to read source at {source_path}: path does not exist. "
            "Provide an existing CSV or JSON export."
        )
    suffix = source_path.suffix.lower()
    if suffix == ".json":
        return CHAT_JSON_FORMAT
    if suffix == ".csv":
        header = tuple(cell.lower() for cell in read_csv_header(source_path))[:4]
        if header == _lowered(EXCHANGE_CSV_HEADER):
            return EXCHANGE_CSV_FORMAT
        if header == _lowered(WAR_LOG_CSV_HEADER):
            return WAR_LOG_CSV_FORMAT
    raise HistoryIngestError(
        f"Unable to detect import format for {source_path}. "
        f"Pass --format with one of: {', '.join(SUPPORTED_IMPORT_FORMATS)}."
    )


def _read_source(source_path: Path, source_format: str) -> ParsedSource:
    """Dispatch to the reader for source_format."""
    if source_format == EXCHANGE_CSV_FORMAT:
        return read_exchange_csv(source_path)
    if source_format == WAR_LOG_CSV_FORMAT:
        return read_war_log_csv(source_path)
    if source_format == CHAT_JSON_FORMAT:
        return read_chat_export(source_path)
    raise HistoryIngestError(
        f"Unsupported import format '{source_format}'. "
        f"Use one of: {', '.join(SUPPORTED_IMPORT_FORMATS)}."
    )


def _lowered(columns: tuple[str, ...]) -> tuple[str, ...]:
    return tuple(column.lower() for column in columns)


def _log_import_completion(summary: ImportSummary) -> None:
    """Emit the structured import summary event."""
    _LOGGER.info(
        "import_completed",
        source_path=summary.source_path,
        source_format=summary.source_format,
        parsed_count=summary.parsed_count,
        malformed_count=summary.malformed_count,
        skipped_count=summary.skipped_count,
        intra_batch_duplicates=summary.intra_batch_duplicates,
        cross_store_duplicates=summary.cross_store_duplicates,
        inserted_count=summary.inserted_count,
        new_guild_count=summary.new_guild_count,
        dry_run=summary.dry_run,
    )
