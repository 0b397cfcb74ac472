"""Snapshot diff backfill.

This module synthesizes exchange events for periods covered only by
snapshots, by diffing consecutive snapshots taken before the first
event the live log already holds for that period. Synthesized events
are written in a single transaction, so an interrupted run leaves no
partial range behind and a re-run starts from the same cutoff.
"""

from __future__ import annotations

from datetime import datetime
from typing import Iterator

from core.constants import (
    BACKFILL_PROGRESS_INTERVAL,
    INSERT_BATCH_SIZE,
    PREFIX_SOURCE_SNAPSHOT,
)
from core.errors import HistoryIngestError
from core.logging_config import get_logger
from core.time_utils import isoformat_z
from core.types import BackfillOptions, BackfillSummary, ExchangeEvent, Snapshot, TimeRange
from store.event_store import EventStore
from store.prefix_registry import GuildPrefixRegistry
from store.snapshot_store import SnapshotStore
from transforms.snapshot_diff import iter_snapshot_diffs, observed_prefixes

_LOGGER = get_logger(__name__)


class SnapshotDiffImporter:
    """Backfill runner turning snapshot pairs into exchange events."""

    def __init__(
        self,
        options: BackfillOptions,
        snapshot_store: SnapshotStore,
        event_store: EventStore,
        prefix_registry: GuildPrefixRegistry,
        batch_size: int = INSERT_BATCH_SIZE,
    ) -> None:
        self._options = options
        self._snapshot_store = snapshot_store
        self._event_store = event_store
        self._prefix_registry = prefix_registry
        self._batch_size = batch_size

    def run(self) -> BackfillSummary:
        """Diff snapshots before the cutoff and insert the resulting events.

        Returns:
            Backfill counters.

        Raises:
            HistoryIngestError: If events already exist in the selected
                snapshot range and neither force nor dry-run is set.
        """
        cutoff = self._find_cutoff()
        snapshots = self._snapshot_store.list_snapshots(before=cutoff)
        if len(snapshots) < 2:
            _LOGGER.info("snapshot_backfill_skipped", snapshot_count=len(snapshots))
            return BackfillSummary(
                snapshot_count=len(snapshots),
                event_count=0,
                inserted_count=0,
                cutoff=cutoff,
                dry_run=self._options.dry_run,
            )
        self._guard_overlap(snapshots)
        event_count, inserted = self._diff_and_insert(snapshots)
        if not self._options.dry_run:
            prefixes = observed_prefixes(snapshots)
            self._prefix_registry.upsert_observed(prefixes, PREFIX_SOURCE_SNAPSHOT)
        summary = BackfillSummary(
            snapshot_count=len(snapshots),
            event_count=event_count,
            inserted_count=inserted,
            cutoff=cutoff,
            dry_run=self._options.dry_run,
        )
        _LOGGER.info(
            "snapshot_backfill_completed",
            snapshot_count=summary.snapshot_count,
            event_count=summary.event_count,
            inserted_count=summary.inserted_count,
            cutoff=isoformat_z(cutoff) if cutoff else None,
            dry_run=summary.dry_run,
        )
        return summary

    def _find_cutoff(self) -> datetime | None:
        """Return the first logged event at or after the earliest snapshot."""
        snapshot_range = self._snapshot_store.time_range()
        if snapshot_range is None:
            return None
        return self._event_store.first_event_at_or_after(snapshot_range[0])

    def _guard_overlap(self, snapshots: list[Snapshot]) -> None:
        first, last = snapshots[0].time, snapshots[-1].time
        existing = self._event_store.count(TimeRange(start=first, end=last))
        if existing == 0 or self._options.dry_run:
            return
        if self._options.force:
            _LOGGER.warning("snapshot_backfill_forced", existing_count=existing)
            return
        raise HistoryIngestError(
            f"Refusing snapshot backfill: {existing} events already exist between "
            f"{isoformat_z(first)} and {isoformat_z(last)}. "
            "Re-run with --force to insert anyway, or delete that range first."
        )

    def _diff_and_insert(self, snapshots: list[Snapshot]) -> tuple[int, int]:
        """Insert every diffed event in one transaction; dry runs only count."""
        diffed = self._iter_diffed_events(snapshots)
        if self._options.dry_run:
            return sum(1 for _ in diffed), 0
        inserted = self._event_store.append_atomic(diffed, batch_size=self._batch_size)
        return inserted, inserted

    def _iter_diffed_events(self, snapshots: list[Snapshot]) -> Iterator[ExchangeEvent]:
        event_count = 0
        for index, events in iter_snapshot_diffs(snapshots):
            event_count += len(events)
            yield from events
            if index % BACKFILL_PROGRESS_INTERVAL == 0:
                _LOGGER.info(
                    "snapshot_backfill_progress",
                    processed_snapshots=index,
                    total_snapshots=len(snapshots),
                    event_count=event_count,
                )


def backfill_snapshot_events(
    options: BackfillOptions,
    snapshot_store: SnapshotStore,
    event_store: EventStore,
    prefix_registry: GuildPrefixRegistry,
) -> BackfillSummary:
    """Run one snapshot diff backfill.

    Args:
        options: Dry-run and force flags.
        snapshot_store: Source snapshots.
        event_store: Destination event log.
        prefix_registry: Guild prefix table updated from snapshot prefixes.

    Returns:
        Backfill counters.
    """
    importer = SnapshotDiffImporter(options, snapshot_store, event_store, prefix_registry)
    return importer.run()
