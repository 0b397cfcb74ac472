"""Shared typed models.

This module defines immutable data models used by store, ingest,
transform, and serving layers to keep interfaces explicit and stable.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Literal, Mapping, Union


class Unclaimed(Enum):
    """Explicit "no owner" marker, distinct from every guild name."""

    UNCLAIMED = "unclaimed"

    def __repr__(self) -> str:
        return "UNCLAIMED"


UNCLAIMED = Unclaimed.UNCLAIMED

Owner = Union[str, Unclaimed]

ReconstructionMethod = Literal["snapshot", "replay", "snapshot_fallback"]


@dataclass(frozen=True)
class ExchangeEvent:
    """One observed ownership transition.

    Attributes:
        time: UTC instant of the transition.
        territory: Territory full name.
        attacker: New owner, or UNCLAIMED.
        defender: Previous owner, or UNCLAIMED.
    """

    time: datetime
    territory: str
    attacker: Owner
    defender: Owner


@dataclass(frozen=True)
class TerritoryOwner:
    """Owning guild of one territory inside a snapshot.

    Attributes:
        guild_name: Guild full name.
        guild_prefix: Short guild tag shown on the map.
    """

    guild_name: str
    guild_prefix: str


@dataclass(frozen=True)
class Snapshot:
    """Externally produced full-state checkpoint.

    Attributes:
        time: UTC capture instant.
        ownership: Territory name to owner; absent territories are unclaimed.
    """

    time: datetime
    ownership: Mapping[str, TerritoryOwner] = field(default_factory=dict)


@dataclass(frozen=True)
class TimeRange:
    """Inclusive time window; either end may be open."""

    start: datetime | None = None
    end: datetime | None = None


@dataclass(frozen=True)
class GuildPrefixEntry:
    """One guild prefix registry row.

    Attributes:
        guild_name: Guild full name.
        guild_prefix: Current best-known prefix.
        source: Provenance (guessed, snapshot, registry, not-found).
    """

    guild_name: str
    guild_prefix: str
    source: str


@dataclass(frozen=True)
class ReconstructionResult:
    """Point-in-time ownership answer.

    Attributes:
        time: Instant the returned ownership describes.
        ownership: Territory name to owning guild.
        requested_time: Instant the caller asked about.
        time_diff_seconds: Absolute distance between time and requested_time.
        method: How the answer was produced.
    """

    time: datetime
    ownership: Mapping[str, TerritoryOwner]
    requested_time: datetime
    time_diff_seconds: int
    method: ReconstructionMethod


@dataclass(frozen=True)
class CompactEventStream:
    """Integer-indexed encoding of the full timeline.

    Attributes:
        territories: Index to territory name.
        guilds: Index to guild name; None encodes UNCLAIMED.
        prefixes: Guild prefixes parallel to guilds.
        events: (epoch_seconds, territory_index, guild_index) tuples.
    """

    territories: tuple[str, ...]
    guilds: tuple[str | None, ...]
    prefixes: tuple[str | None, ...]
    events: tuple[tuple[int, int, int], ...]


@dataclass(frozen=True)
class HistoryStream:
    """Compact stream plus the reliable history bounds."""

    stream: CompactEventStream
    earliest: datetime | None
    latest: datetime | None


@dataclass(frozen=True)
class RangedHistoryStream:
    """Compact stream for a bounded window plus the state at its start.

    Attributes:
        stream: Events strictly after start and at or before end.
        initial_state: (territory_index, guild_index) pairs holding each
            territory's owner at start; a guild index naming None is UNCLAIMED.
        start: Window start after validation.
        end: Window end after clamping.
        earliest: First event time, or start when the window is empty.
        latest: Last event time, or end when the window is empty.
    """

    stream: CompactEventStream
    initial_state: tuple[tuple[int, int], ...]
    start: datetime
    end: datetime
    earliest: datetime
    latest: datetime


@dataclass(frozen=True)
class SnapshotSeries:
    """Snapshots spanning a window around a center instant.

    ``source`` is ``"snapshots"`` when stored checkpoints cover the window
    and ``"exchanges"`` when the series was replayed from the event log.
    """

    center: datetime
    start: datetime
    end: datetime
    snapshots: tuple[Snapshot, ...]
    source: str


@dataclass(frozen=True)
class ImportOptions:
    """File import options.

    Attributes:
        source_path: CSV or JSON export path.
        source_format: Explicit format, auto-detected when omitted.
        dry_run: Report only, never write.
        resolve_prefixes: Query the guild registry after insert.
    """

    source_path: str
    source_format: str | None = None
    dry_run: bool = False
    resolve_prefixes: bool = False


@dataclass(frozen=True)
class BackfillOptions:
    """Snapshot diff backfill options."""

    dry_run: bool = False
    force: bool = False


@dataclass(frozen=True)
class ImportSummary:
    """Counters reported by one file import run."""

    source_path: str
    source_format: str
    parsed_count: int
    malformed_count: int
    skipped_count: int
    intra_batch_duplicates: int
    cross_store_duplicates: int
    inserted_count: int
    new_guild_count: int
    earliest: datetime | None
    latest: datetime | None
    dry_run: bool


@dataclass(frozen=True)
class BackfillSummary:
    """Counters reported by one snapshot diff backfill run."""

    snapshot_count: int
    event_count: int
    inserted_count: int
    cutoff: datetime | None
    dry_run: bool


@dataclass(frozen=True)
class ResolutionSummary:
    """Counters reported by one guild prefix resolution run."""

    pending_count: int
    resolved_count: int
    not_found_count: int
    error_count: int
    overrides_applied: int


@dataclass(frozen=True)
class DedupReport:
    """Row counts from the maintenance copy-and-swap dedup."""

    before_count: int
    after_count: int

    @property
    def removed_count(self) -> int:
        """Number of exact duplicate rows collapsed."""
        return self.before_count - self.after_count


@dataclass(frozen=True)
class HistoryGap:
    """Calendar-day period with no exchange data."""

    start: datetime
    end: datetime


@dataclass(frozen=True)
class ParsedSource:
    """Candidate events read from one export file.

    Attributes:
        source_format: Format the file was parsed as.
        candidates: Parsed events in file order.
        malformed_count: Rows that looked like exchanges but failed to parse.
        skipped_count: Rows that are not exchange reports at all.
    """

    source_format: str
    candidates: tuple[ExchangeEvent, ...]
    malformed_count: int
    skipped_count: int
