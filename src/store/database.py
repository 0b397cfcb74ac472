"""SQLite connection and schema management.

This module opens the shared relational store, creates the history
tables on first use, and provides explicit transaction scopes.
"""

from __future__ import annotations

from contextlib import contextmanager
from pathlib import Path
import sqlite3
from typing import Iterator

from core.constants import EVENTS_TABLE_NAME, PREFIXES_TABLE_NAME, SNAPSHOTS_TABLE_NAME
from core.errors import HistoryStoreError

EVENTS_TABLE_SQL = """
CREATE TABLE IF NOT EXISTS {table} (
    exchange_time_ms INTEGER NOT NULL,
    territory        TEXT    NOT NULL,
    attacker_name    TEXT,
    defender_name    TEXT
)
"""

EVENTS_INDEX_SQL = (
    f"CREATE INDEX IF NOT EXISTS idx_te_territory_time "
    f"ON {EVENTS_TABLE_NAME} (territory, exchange_time_ms DESC)",
    f"CREATE INDEX IF NOT EXISTS idx_te_time ON {EVENTS_TABLE_NAME} (exchange_time_ms)",
)

_SCHEMA_SQL = (
    EVENTS_TABLE_SQL.format(table=EVENTS_TABLE_NAME),
    *EVENTS_INDEX_SQL,
    f"""
    CREATE TABLE IF NOT EXISTS {SNAPSHOTS_TABLE_NAME} (
        snapshot_time_ms INTEGER NOT NULL,
        territories      TEXT    NOT NULL
    )
    """,
    f"CREATE INDEX IF NOT EXISTS idx_snapshots_time ON {SNAPSHOTS_TABLE_NAME} (snapshot_time_ms)",
    f"""
    CREATE TABLE IF NOT EXISTS {PREFIXES_TABLE_NAME} (
        guild_name   TEXT PRIMARY KEY,
        guild_prefix TEXT NOT NULL,
        source       TEXT NOT NULL
    )
    """,
)


class HistoryDatabase:
    """Owner of the SQLite file backing every history store."""

    def __init__(self, database_path: Path) -> None:
        self._database_path = database_path
        self._database_path.parent.mkdir(parents=True, exist_ok=True)
        with self.connect() as connection:
            for statement in _SCHEMA_SQL:
                connection.execute(statement)

    @property
    def path(self) -> Path:
        return self._database_path

    @contextmanager
    def connect(self) -> Iterator[sqlite3.Connection]:
        """Open an autocommit connection for one operation.

        Raises:
            HistoryStoreError: If the database cannot be opened.
        """
        try:
            connection = sqlite3.connect(str(self._database_path), isolation_level=None)
        except sqlite3.Error as error:
            raise HistoryStoreError(
                f"Failed to open history database at {self._database_path}: {error}. "
                "Check the path and file permissions."
            ) from error
        try:
            yield connection
        except sqlite3.Error as error:
            raise HistoryStoreError(
                f"History database operation failed at {self._database_path}: {error}. "
                "Check the database file and retry the operation."
            ) from error
        finally:
            connection.close()

    @contextmanager
    def transaction(self) -> Iterator[sqlite3.Connection]:
        """Open a connection inside an all-or-nothing write transaction.

        Any exception rolls the transaction back before propagating.
        """
        with self.connect() as connection:
            connection.execute("BEGIN IMMEDIATE")
            try:
                yield connection
            except BaseException:
                if connection.in_transaction:
                    connection.execute("ROLLBACK")
                raise
            connection.execute("COMMIT")
