"""Ordered ownership-change log.

This module appends and queries exchange events in the relational store
and owns the transactional copy-and-swap maintenance dedup.
"""

from __future__ import annotations

from datetime import datetime, timedelta
import sqlite3
from typing import Iterable, Iterator, Sequence

from core.constants import (
    EVENTS_DEDUP_TABLE_NAME,
    EVENTS_TABLE_NAME,
    GAP_THRESHOLD_DAYS,
    INSERT_BATCH_SIZE,
)
from core.errors import HistoryStoreError
from core.logging_config import get_logger
from core.ownership import owner_from_column, owner_to_column
from core.time_utils import from_epoch_ms, to_epoch_ms
from core.types import DedupReport, ExchangeEvent, HistoryGap, Owner, TimeRange
from store.database import EVENTS_INDEX_SQL, EVENTS_TABLE_SQL, HistoryDatabase

_LOGGER = get_logger(__name__)

_MS_PER_DAY = 24 * 60 * 60 * 1000
_EVENT_COLUMNS = "exchange_time_ms, territory, attacker_name, defender_name"


class EventStore:
    """Append/query access to the territory exchange log.

    The store never enforces uniqueness on append; callers dedup first.
    """

    def __init__(self, database: HistoryDatabase) -> None:
        self._database = database

    def append(self, events: Iterable[ExchangeEvent], batch_size: int = INSERT_BATCH_SIZE) -> int:
        """Insert events in fixed-size transactional batches.

        Args:
            events: Events to insert, in any order.
            batch_size: Rows per transaction.

        Returns:
            Number of inserted rows.
        """
        inserted = 0
        for batch in _chunked_rows(events, batch_size):
            with self._database.transaction() as connection:
                _insert_rows(connection, batch)
            inserted += len(batch)
        return inserted

    def append_atomic(
        self,
        events: Iterable[ExchangeEvent],
        batch_size: int = INSERT_BATCH_SIZE,
    ) -> int:
        """Insert events in one transaction, executing fixed-size chunks.

        A failure in any chunk rolls back every row of the call, so an
        interrupted caller leaves the log exactly as it found it.

        Args:
            events: Events to insert; may be a lazy iterator.
            batch_size: Rows per ``executemany`` chunk.

        Returns:
            Number of inserted rows.
        """
        inserted = 0
        with self._database.transaction() as connection:
            for batch in _chunked_rows(events, batch_size):
                _insert_rows(connection, batch)
                inserted += len(batch)
        return inserted

    def query(
        self,
        time_range: TimeRange | None = None,
        territories: Sequence[str] | None = None,
    ) -> list[ExchangeEvent]:
        """Return events ordered by (time, territory, attacker).

        Args:
            time_range: Optional inclusive time window.
            territories: Optional territory allow-list.

        Returns:
            Ordered events.
        """
        clauses, params = _range_clauses(time_range)
        if territories is not None:
            if not territories:
                return []
            placeholders = ", ".join("?" for _ in territories)
            clauses.append(f"territory IN ({placeholders})")
            params.extend(territories)
        sql = f"SELECT {_EVENT_COLUMNS} FROM {EVENTS_TABLE_NAME}"
        if clauses:
            sql += " WHERE " + " AND ".join(clauses)
        sql += " ORDER BY exchange_time_ms ASC, territory ASC, attacker_name ASC"
        with self._database.connect() as connection:
            rows = connection.execute(sql, params).fetchall()
        return [_event_from_row(row) for row in rows]

    def count(self, time_range: TimeRange | None = None) -> int:
        """Count events inside an optional inclusive window."""
        clauses, params = _range_clauses(time_range)
        sql = f"SELECT COUNT(*) FROM {EVENTS_TABLE_NAME}"
        if clauses:
            sql += " WHERE " + " AND ".join(clauses)
        with self._database.connect() as connection:
            return int(connection.execute(sql, params).fetchone()[0])

    def bounds(self) -> tuple[datetime, datetime] | None:
        """Return (earliest, latest) event times, or None for an empty log."""
        with self._database.connect() as connection:
            row = connection.execute(
                f"SELECT MIN(exchange_time_ms), MAX(exchange_time_ms) FROM {EVENTS_TABLE_NAME}"
            ).fetchone()
        if row is None or row[0] is None:
            return None
        return from_epoch_ms(row[0]), from_epoch_ms(row[1])

    def first_event_at_or_after(self, instant: datetime) -> datetime | None:
        """Return the earliest event time at or after instant."""
        with self._database.connect() as connection:
            row = connection.execute(
                f"SELECT MIN(exchange_time_ms) FROM {EVENTS_TABLE_NAME} "
                "WHERE exchange_time_ms >= ?",
                (to_epoch_ms(instant),),
            ).fetchone()
        return from_epoch_ms(row[0]) if row and row[0] is not None else None

    def has_event_at_or_before(self, instant: datetime) -> bool:
        """Return whether the log holds any event at or before instant."""
        with self._database.connect() as connection:
            row = connection.execute(
                f"SELECT 1 FROM {EVENTS_TABLE_NAME} WHERE exchange_time_ms <= ? LIMIT 1",
                (to_epoch_ms(instant),),
            ).fetchone()
        return row is not None

    def latest_owners_at_or_before(self, instant: datetime) -> dict[str, Owner]:
        """Return each territory's attacker from its last event at or before instant.

        When several rows share that last time, a claiming attacker wins
        over UNCLAIMED; remaining ties go to the lowest guild name.
        """
        with self._database.connect() as connection:
            rows = connection.execute(
                f"SELECT e.territory, e.attacker_name FROM {EVENTS_TABLE_NAME} AS e "
                "JOIN (SELECT territory, MAX(exchange_time_ms) AS last_ms "
                f"FROM {EVENTS_TABLE_NAME} WHERE exchange_time_ms <= ? GROUP BY territory) "
                "AS latest ON e.territory = latest.territory "
                "AND e.exchange_time_ms = latest.last_ms "
                "ORDER BY e.territory ASC, e.attacker_name IS NULL ASC, e.attacker_name ASC",
                (to_epoch_ms(instant),),
            ).fetchall()
        owners: dict[str, Owner] = {}
        for territory, attacker_name in rows:
            owners.setdefault(str(territory), owner_from_column(attacker_name))
        return owners

    def first_seen_by_territory(self) -> dict[str, datetime]:
        """Return each territory's first event time."""
        with self._database.connect() as connection:
            rows = connection.execute(
                f"SELECT territory, MIN(exchange_time_ms) FROM {EVENTS_TABLE_NAME} "
                "GROUP BY territory"
            ).fetchall()
        return {str(territory): from_epoch_ms(first_ms) for territory, first_ms in rows}

    def find_gaps(self, threshold_days: int = GAP_THRESHOLD_DAYS) -> list[HistoryGap]:
        """List calendar-day gaps longer than threshold_days with no events."""
        with self._database.connect() as connection:
            rows = connection.execute(
                f"SELECT DISTINCT exchange_time_ms / {_MS_PER_DAY} AS day "
                f"FROM {EVENTS_TABLE_NAME} ORDER BY day"
            ).fetchall()
        days = [int(row[0]) for row in rows]
        gaps: list[HistoryGap] = []
        for day, next_day in zip(days, days[1:]):
            if next_day - day > threshold_days:
                gaps.append(
                    HistoryGap(
                        start=from_epoch_ms(day * _MS_PER_DAY),
                        end=from_epoch_ms(next_day * _MS_PER_DAY),
                    )
                )
        return gaps

    def deduplicate(self) -> DedupReport:
        """Collapse exact duplicate rows with a verified copy-and-swap.

        Returns:
            Row counts before and after the swap.

        Raises:
            HistoryStoreError: If the copy does not match the expected
                distinct count; the live table is left untouched.
        """
        with self._database.transaction() as connection:
            before_count = _count_rows(connection, EVENTS_TABLE_NAME)
            expected_count = _count_distinct_rows(connection)
            connection.execute(f"DROP TABLE IF EXISTS {EVENTS_DEDUP_TABLE_NAME}")
            connection.execute(EVENTS_TABLE_SQL.format(table=EVENTS_DEDUP_TABLE_NAME))
            connection.execute(
                f"INSERT INTO {EVENTS_DEDUP_TABLE_NAME} ({_EVENT_COLUMNS}) "
                f"SELECT DISTINCT {_EVENT_COLUMNS} FROM {EVENTS_TABLE_NAME}"
            )
            copied_count = _count_rows(connection, EVENTS_DEDUP_TABLE_NAME)
            if copied_count != expected_count:
                _LOGGER.error(
                    "event_dedup_rolled_back",
                    expected_count=expected_count,
                    copied_count=copied_count,
                )
                raise HistoryStoreError(
                    f"Event dedup verification failed: expected {expected_count} distinct rows "
                    f"but the copy holds {copied_count}. The transaction was rolled back; "
                    "the live table is unchanged."
                )
            connection.execute(f"DROP TABLE {EVENTS_TABLE_NAME}")
            connection.execute(
                f"ALTER TABLE {EVENTS_DEDUP_TABLE_NAME} RENAME TO {EVENTS_TABLE_NAME}"
            )
            for statement in EVENTS_INDEX_SQL:
                connection.execute(statement)
        report = DedupReport(before_count=before_count, after_count=copied_count)
        _LOGGER.info(
            "event_dedup_completed",
            before_count=report.before_count,
            after_count=report.after_count,
            removed_count=report.removed_count,
        )
        return report

def padded_range(earliest: datetime, latest: datetime, padding: timedelta) -> TimeRange:
    """Build an inclusive window widened by padding on both sides.

    An end that would leave the representable range is left open.
    """
    return TimeRange(start=_shifted(earliest, -padding), end=_shifted(latest, padding))


def _shifted(value: datetime, delta: timedelta) -> datetime | None:
    try:
        return value + delta
    except OverflowError:
        return None


def _range_clauses(time_range: TimeRange | None) -> tuple[list[str], list[object]]:
    """Translate an inclusive time range into SQL clauses."""
    clauses: list[str] = []
    params: list[object] = []
    if time_range is None:
        return clauses, params
    if time_range.start is not None:
        clauses.append("exchange_time_ms >= ?")
        params.append(to_epoch_ms(time_range.start))
    if time_range.end is not None:
        clauses.append("exchange_time_ms <= ?")
        params.append(to_epoch_ms(time_range.end))
    return clauses, params


def _row_from_event(event: ExchangeEvent) -> tuple[int, str, str | None, str | None]:
    return (
        to_epoch_ms(event.time),
        event.territory,
        owner_to_column(event.attacker),
        owner_to_column(event.defender),
    )


def _event_from_row(row: tuple[int, str, str | None, str | None]) -> ExchangeEvent:
    return ExchangeEvent(
        time=from_epoch_ms(row[0]),
        territory=row[1],
        attacker=owner_from_column(row[2]),
        defender=owner_from_column(row[3]),
    )


def _count_rows(connection: sqlite3.Connection, table_name: str) -> int:
    return int(connection.execute(f"SELECT COUNT(*) FROM {table_name}").fetchone()[0])


def _count_distinct_rows(connection: sqlite3.Connection) -> int:
    """Count distinct (time, territory, attacker, defender) rows in the live table."""
    return int(
        connection.execute(
            f"SELECT COUNT(*) FROM (SELECT DISTINCT {_EVENT_COLUMNS} FROM {EVENTS_TABLE_NAME})"
        ).fetchone()[0]
    )


def _chunked_rows(
    events: Iterable[ExchangeEvent],
    batch_size: int,
) -> Iterator[list[tuple[int, str, str | None, str | None]]]:
    batch: list[tuple[int, str, str | None, str | None]] = []
    for event in events:
        batch.append(_row_from_event(event))
        if len(batch) >= batch_size:
            yield batch
            batch = []
    if batch:
        yield batch


def _insert_rows(
    connection: sqlite3.Connection,
    batch: list[tuple[int, str, str | None, str | None]],
) -> None:
    connection.executemany(
        f"INSERT INTO {EVENTS_TABLE_NAME} ({_EVENT_COLUMNS}) VALUES (?, ?, ?, ?)",
        batch,
    )
