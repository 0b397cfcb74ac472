"""CSV export readers.

This module parses the two CSV export shapes that carry territory
exchanges: the tracker's own ``time,defender,attacker,territory`` dump
and chat war-log exports posted by tracker bots.
"""

from __future__ import annotations

import csv
from pathlib import Path
import re
from typing import Iterator

from core.constants import (
    EXCHANGE_CSV_FORMAT,
    WAR_LOG_BOT_AUTHOR_PREFIXES,
    WAR_LOG_CSV_FORMAT,
)
from core.errors import HistoryIngestError
from core.ownership import owner_from_label
from core.time_utils import parse_epoch_seconds, parse_timestamp
from core.types import ExchangeEvent, ParsedSource

_WAR_LOG_PATTERNS = (
    re.compile(r"^(.+): \*(.+?)\* \(\d+\) → \*\*(.+?)\*\* \(\d+\)"),
    re.compile(r"^(.+): ~~(.+)~~ -> \*\*(.+)\*\*$"),
)


def read_exchange_csv(source_path: Path) -> ParsedSource:
    """Parse a ``time,defender,attacker,territory`` export.

    Args:
        source_path: CSV file path. Time is unix seconds.

    Returns:
        Parsed candidates and malformed-row count.

    Raises:
        HistoryIngestError: If the file cannot be read.
    """
    candidates: list[ExchangeEvent] = []
    malformed = 0
    for row in _iter_data_rows(source_path):
        if len(row) != 4:
            malformed += 1
            continue
        time_text, defender, attacker, territory = row
        exchange_time = parse_epoch_seconds(time_text)
        if exchange_time is None or not territory.strip():
            malformed += 1
            continue
        candidates.append(
            ExchangeEvent(
                time=exchange_time,
                territory=territory.strip(),
                attacker=owner_from_label(attacker),
                defender=owner_from_label(defender),
            )
        )
    return ParsedSource(
        source_format=EXCHANGE_CSV_FORMAT,
        candidates=tuple(candidates),
        malformed_count=malformed,
        skipped_count=0,
    )


def read_war_log_csv(source_path: Path) -> ParsedSource:
    """Parse an ``AuthorID,Author,Date,Content`` chat war-log export.

    Only messages posted by known tracker bots are considered. Bot
    messages that are not exchange reports count as skipped.

    Args:
        source_path: CSV file path.

    Returns:
        Parsed candidates with malformed and skipped counts.

    Raises:
        HistoryIngestError: If the file cannot be read.
    """
    candidates: list[ExchangeEvent] = []
    malformed = 0
    skipped = 0
    for row in _iter_data_rows(source_path):
        if len(row) < 4:
            malformed += 1
            continue
        _, author, date_text, content = row[:4]
        if not author.startswith(WAR_LOG_BOT_AUTHOR_PREFIXES):
            skipped += 1
            continue
        parsed = parse_war_log_content(content)
        if parsed is None:
            skipped += 1
            continue
        exchange_time = parse_timestamp(date_text)
        if exchange_time is None:
            malformed += 1
            continue
        territory, defender, attacker = parsed
        candidates.append(
            ExchangeEvent(
                time=exchange_time,
                territory=territory,
                attacker=owner_from_label(attacker),
                defender=owner_from_label(defender),
            )
        )
    return ParsedSource(
        source_format=WAR_LOG_CSV_FORMAT,
        candidates=tuple(candidates),
        malformed_count=malformed,
        skipped_count=skipped,
    )


def parse_war_log_content(content: str) -> tuple[str, str, str] | None:
    """Extract (territory, defender, attacker) from a bot war-log message."""
    lines = content.strip().splitlines()
    if not lines:
        return None
    first_line = lines[0].strip()
    for pattern in _WAR_LOG_PATTERNS:
        match = pattern.match(first_line)
        if match:
            return match.group(1).strip(), match.group(2).strip(), match.group(3).strip()
    return None


def read_csv_header(source_path: Path) -> list[str]:
    """Return the header row of a CSV file, or an empty list for an empty file."""
    for row in _iter_rows(source_path):
        return [cell.strip() for cell in row]
    return []


def _iter_data_rows(source_path: Path) -> Iterator[list[str]]:
    """Yield non-blank rows after the header."""
    rows = _iter_rows(source_path)
    next(rows, None)
    for row in rows:
        if not any(cell.strip() for cell in row):
            continue
        yield row


def _iter_rows(source_path: Path) -> Iterator[list[str]]:
    """Yield raw CSV rows, translating read failures into ingest errors."""
    try:
        with source_path.open("r", encoding="utf-8-sig", newline="") as handle:
            yield from csv.reader(handle)
    except FileNotFoundError as error:
        raise HistoryIngestError(
            f"Failed to read source at {source_path}: path does not exist. "
            "Provide an existing CSV export."
        ) from error
    except (OSError, UnicodeDecodeError, csv.Error) as error:
        raise HistoryIngestError(
            f"Failed to read CSV source at {source_path}: {error}. "
            "Check the file is a readable UTF-8 CSV export."
        ) from error
