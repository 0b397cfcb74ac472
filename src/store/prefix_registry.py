"""Guild prefix registry table.

This module stores best-effort guild prefixes with their provenance so
guessed values can be corrected later by an authoritative lookup.
"""

from __future__ import annotations

from typing import Iterable, Mapping

from core.constants import (
    PREFIX_SOURCE_GUESSED,
    PREFIX_SOURCE_REGISTRY,
    PREFIXES_TABLE_NAME,
)
from core.ownership import guess_prefix
from core.types import GuildPrefixEntry
from store.database import HistoryDatabase


class GuildPrefixRegistry:
    """Relational guild name to prefix mapping."""

    def __init__(self, database: HistoryDatabase) -> None:
        self._database = database

    def prefix_map(self) -> dict[str, str]:
        """Return every known guild prefix keyed by guild name."""
        return {entry.guild_name: entry.guild_prefix for entry in self.entries()}

    def entries(self) -> list[GuildPrefixEntry]:
        """Return all registry rows ordered by guild name."""
        with self._database.connect() as connection:
            rows = connection.execute(
                f"SELECT guild_name, guild_prefix, source FROM {PREFIXES_TABLE_NAME} "
                "ORDER BY guild_name"
            ).fetchall()
        return [
            GuildPrefixEntry(guild_name=row[0], guild_prefix=row[1], source=row[2])
            for row in rows
        ]

    def known_names(self) -> set[str]:
        """Return guild names that already have any prefix."""
        with self._database.connect() as connection:
            rows = connection.execute(f"SELECT guild_name FROM {PREFIXES_TABLE_NAME}").fetchall()
        return {row[0] for row in rows}

    def guessed_names(self) -> list[str]:
        """Return guild names whose prefix is still a low-confidence guess."""
        with self._database.connect() as connection:
            rows = connection.execute(
                f"SELECT guild_name FROM {PREFIXES_TABLE_NAME} "
                "WHERE source = ? ORDER BY guild_name",
                (PREFIX_SOURCE_GUESSED,),
            ).fetchall()
        return [row[0] for row in rows]

    def register_guessed(self, guild_names: Iterable[str]) -> int:
        """Insert guessed prefixes for guilds that have none yet.

        Returns:
            Number of newly registered guilds.
        """
        rows = [
            (name, guess_prefix(name), PREFIX_SOURCE_GUESSED)
            for name in sorted(set(guild_names))
        ]
        if not rows:
            return 0
        with self._database.transaction() as connection:
            before = connection.total_changes
            connection.executemany(
                f"INSERT OR IGNORE INTO {PREFIXES_TABLE_NAME} (guild_name, guild_prefix, source) "
                "VALUES (?, ?, ?)",
                rows,
            )
            return connection.total_changes - before

    def upsert_observed(self, prefixes: Mapping[str, str], source: str) -> int:
        """Record prefixes observed in trusted data without overriding registry answers.

        Args:
            prefixes: Guild name to observed prefix.
            source: Provenance label for the rows.

        Returns:
            Number of inserted or updated rows.
        """
        rows = [(name, prefix, source) for name, prefix in sorted(prefixes.items()) if prefix]
        if not rows:
            return 0
        with self._database.transaction() as connection:
            before = connection.total_changes
            connection.executemany(
                f"INSERT INTO {PREFIXES_TABLE_NAME} (guild_name, guild_prefix, source) "
                "VALUES (?, ?, ?) "
                "ON CONFLICT (guild_name) DO UPDATE SET "
                "guild_prefix = excluded.guild_prefix, source = excluded.source "
                f"WHERE {PREFIXES_TABLE_NAME}.source != '{PREFIX_SOURCE_REGISTRY}'",
                rows,
            )
            return connection.total_changes - before

    def set_prefix(self, guild_name: str, guild_prefix: str, source: str) -> None:
        """Write a resolved prefix for one guild, replacing any earlier value."""
        with self._database.transaction() as connection:
            connection.execute(
                f"INSERT INTO {PREFIXES_TABLE_NAME} (guild_name, guild_prefix, source) "
                "VALUES (?, ?, ?) "
                "ON CONFLICT (guild_name) DO UPDATE SET "
                "guild_prefix = excluded.guild_prefix, source = excluded.source",
                (guild_name, guild_prefix, source),
            )


def prefix_for(prefixes: Mapping[str, str], guild_name: str) -> str:
    """Return the stored prefix for a guild, else a guessed one."""
    return prefixes.get(guild_name) or guess_prefix(guild_name)
