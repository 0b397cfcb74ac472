"""Compact timeline encoding.

This module packs the exchange log into integer-indexed tables so a
client can download history once and reconstruct any instant locally.
Names are replaced by first-seen indices and each event becomes an
``(epochSeconds, territoryIndex, guildIndex)`` triple. Bounded windows
also carry the ownership at their start as index pairs.
"""

from __future__ import annotations

from bisect import bisect_right
from datetime import datetime
from itertools import groupby
from typing import Any, Iterable, Mapping

from core.ownership import guess_prefix, is_claimed
from core.time_utils import from_epoch_seconds, isoformat_z, to_epoch_seconds
from core.types import (
    CompactEventStream,
    ExchangeEvent,
    HistoryStream,
    Owner,
    RangedHistoryStream,
    UNCLAIMED,
)


class _IndexTable:
    """First-seen index assignment for hashable names."""

    def __init__(self) -> None:
        self._indices: dict[Any, int] = {}
        self.values: list[Any] = []

    def index_of(self, value: Any) -> int:
        index = self._indices.get(value)
        if index is None:
            index = len(self.values)
            self._indices[value] = index
            self.values.append(value)
        return index


class _StreamEncoder:
    """Index tables and encoded rows for one stream."""

    def __init__(self, prefixes: Mapping[str, str] | None) -> None:
        self._prefixes = prefixes or {}
        self._territories = _IndexTable()
        self._guilds = _IndexTable()
        self.rows: list[tuple[int, int, int]] = []

    def index_pair(self, territory: str, owner: Owner) -> tuple[int, int]:
        guild_value = owner if is_claimed(owner) else None
        return self._territories.index_of(territory), self._guilds.index_of(guild_value)

    def add_events(self, events: Iterable[ExchangeEvent]) -> None:
        """Encode events grouped by epoch second, then by territory within it."""
        for epoch_seconds, second_events in groupby(
            events, key=lambda event: to_epoch_seconds(event.time)
        ):
            attackers_by_territory: dict[str, list[Owner]] = {}
            for event in second_events:
                attackers_by_territory.setdefault(event.territory, []).append(event.attacker)
            for territory, attackers in attackers_by_territory.items():
                for attacker in _collapse_attackers(attackers):
                    territory_index, guild_index = self.index_pair(territory, attacker)
                    self.rows.append((epoch_seconds, territory_index, guild_index))

    def stream(self) -> CompactEventStream:
        guild_names: tuple[str | None, ...] = tuple(self._guilds.values)
        return CompactEventStream(
            territories=tuple(self._territories.values),
            guilds=guild_names,
            prefixes=tuple(
                None if name is None else self._prefixes.get(name) or guess_prefix(name)
                for name in guild_names
            ),
            events=tuple(self.rows),
        )


def encode_event_stream(
    events: Iterable[ExchangeEvent],
    prefixes: Mapping[str, str] | None = None,
) -> CompactEventStream:
    """Encode ordered events into the compact stream.

    Rows sharing an epoch second and territory are flushed together, even
    when rows for other territories fall between them: identical attackers
    collapse to one row, and UNCLAIMED rows are dropped whenever a real
    guild is also reported.

    Args:
        events: Events in store query order.
        prefixes: Known guild prefixes; unknown guilds get a guessed prefix.

    Returns:
        Deterministic compact stream.
    """
    encoder = _StreamEncoder(prefixes)
    encoder.add_events(events)
    return encoder.stream()


def encode_event_range(
    initial_owners: Mapping[str, Owner],
    events: Iterable[ExchangeEvent],
    start: datetime,
    end: datetime,
    prefixes: Mapping[str, str] | None = None,
) -> RangedHistoryStream:
    """Encode a bounded window together with the ownership at its start.

    Initial owners are indexed first, in territory name order, so a
    client can seed its map before applying the window's rows.

    Args:
        initial_owners: Each territory's owner at start; UNCLAIMED is kept.
        events: Events in store query order; only start < time <= end are used.
        start: Exclusive window start.
        end: Inclusive window end.
        prefixes: Known guild prefixes; unknown guilds get a guessed prefix.

    Returns:
        Ranged stream whose bounds fall back to start and end when the
        window holds no events.
    """
    encoder = _StreamEncoder(prefixes)
    initial_state = tuple(
        encoder.index_pair(territory, owner)
        for territory, owner in sorted(initial_owners.items())
    )
    encoder.add_events(event for event in events if start < event.time <= end)
    rows = encoder.rows
    return RangedHistoryStream(
        stream=encoder.stream(),
        initial_state=initial_state,
        start=start,
        end=end,
        earliest=from_epoch_seconds(rows[0][0]) if rows else start,
        latest=from_epoch_seconds(rows[-1][0]) if rows else end,
    )


def lookup_owner_at(
    stream: CompactEventStream,
    territory: str,
    epoch_seconds: int,
) -> Owner | None:
    """Find a territory's owner at an instant by binary search over the stream.

    This is the traversal a client performs on the downloaded stream.

    Args:
        stream: Encoded timeline.
        territory: Territory full name.
        epoch_seconds: Instant to look up.

    Returns:
        Guild name, ``UNCLAIMED``, or ``None`` when no event for the
        territory precedes the instant.
    """
    if territory not in stream.territories:
        return None
    territory_index = stream.territories.index(territory)
    rows = [row for row in stream.events if row[1] == territory_index]
    times = [row[0] for row in rows]
    position = bisect_right(times, epoch_seconds)
    if position == 0:
        return None
    guild_name = stream.guilds[rows[position - 1][2]]
    return UNCLAIMED if guild_name is None else guild_name


def history_payload(history: HistoryStream) -> dict[str, Any]:
    """Render the full-history stream in its external JSON shape."""
    stream = history.stream
    return {
        "territories": list(stream.territories),
        "guilds": list(stream.guilds),
        "prefixes": list(stream.prefixes),
        "events": [list(row) for row in stream.events],
        "earliest": _iso_or_none(history.earliest),
        "latest": _iso_or_none(history.latest),
    }


def ranged_history_payload(ranged: RangedHistoryStream) -> dict[str, Any]:
    """Render a bounded-window stream in its external JSON shape."""
    stream = ranged.stream
    return {
        "territories": list(stream.territories),
        "guilds": list(stream.guilds),
        "prefixes": list(stream.prefixes),
        "initialState": [list(pair) for pair in ranged.initial_state],
        "events": [list(row) for row in stream.events],
        "earliest": isoformat_z(ranged.earliest),
        "latest": isoformat_z(ranged.latest),
    }


def _collapse_attackers(attackers: list[Owner]) -> list[Owner]:
    """Deduplicate a group's attackers, preferring real guilds over UNCLAIMED."""
    unique: list[Owner] = []
    for attacker in attackers:
        if attacker not in unique:
            unique.append(attacker)
    if any(is_claimed(attacker) for attacker in unique):
        return [attacker for attacker in unique if is_claimed(attacker)]
    return unique


def _iso_or_none(value: datetime | None) -> str | None:
    return isoformat_z(value) if value is not None else None
