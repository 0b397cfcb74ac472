"""Snapshot series around an instant.

This module returns the stored checkpoints inside a window centered on
an instant. When none were stored there, it replays the exchange log and
emits one synthesized snapshot per clock-aligned tick instead.
"""

from __future__ import annotations

from datetime import datetime, timedelta
from typing import Any, Iterator

from core.constants import (
    SNAPSHOT_SERIES_HALF_WINDOW_SECONDS,
    SNAPSHOT_SERIES_MAX_LIMIT,
    SNAPSHOT_SERIES_TICK_SECONDS,
)
from core.errors import HistoryQueryError
from core.logging_config import get_logger
from core.ownership import is_claimed
from core.time_utils import ensure_utc, from_epoch_seconds, isoformat_z, to_epoch_seconds
from core.types import Snapshot, SnapshotSeries, TerritoryOwner, TimeRange
from serve.reconstruction import replay_events
from store.event_store import EventStore
from store.prefix_registry import GuildPrefixRegistry, prefix_for
from store.snapshot_store import SnapshotStore

_LOGGER = get_logger(__name__)


class SnapshotSeriesBuilder:
    """Builds the snapshot series for a window around a center instant."""

    def __init__(
        self,
        snapshot_store: SnapshotStore,
        event_store: EventStore,
        prefix_registry: GuildPrefixRegistry,
        half_window: timedelta = timedelta(seconds=SNAPSHOT_SERIES_HALF_WINDOW_SECONDS),
        tick: timedelta = timedelta(seconds=SNAPSHOT_SERIES_TICK_SECONDS),
    ) -> None:
        self._snapshot_store = snapshot_store
        self._event_store = event_store
        self._prefix_registry = prefix_registry
        self._half_window = half_window
        self._tick_seconds = int(tick.total_seconds())

    def series_around(self, center: datetime) -> SnapshotSeries:
        """Return snapshots within the window around center.

        Args:
            center: Window center; naive values are UTC.

        Returns:
            Stored snapshots when any fall inside the window, otherwise
            snapshots replayed from the exchange log at each tick.

        Raises:
            HistoryQueryError: If the window leaves the representable range.
        """
        center = ensure_utc(center)
        try:
            start = center - self._half_window
            end = center + self._half_window
        except OverflowError as error:
            raise HistoryQueryError(
                f"Snapshot window around {isoformat_z(center)} is out of range. "
                "Pick a center closer to the recorded history."
            ) from error
        stored = self._snapshot_store.list_between(start, end)
        if stored:
            return SnapshotSeries(center, start, end, tuple(stored), "snapshots")
        replayed = self._replay_ticks(start, end)
        _LOGGER.debug(
            "snapshot_series_replayed",
            center=isoformat_z(center),
            snapshot_count=len(replayed),
        )
        return SnapshotSeries(center, start, end, tuple(replayed), "exchanges")

    def _replay_ticks(self, start: datetime, end: datetime) -> list[Snapshot]:
        owners = {
            territory: str(owner)
            for territory, owner in self._event_store.latest_owners_at_or_before(start).items()
            if is_claimed(owner)
        }
        events = [
            event
            for event in self._event_store.query(TimeRange(start=start, end=end))
            if event.time > start
        ]
        if not owners and not events:
            return []
        prefixes = self._prefix_registry.prefix_map()
        snapshots: list[Snapshot] = []
        position = 0
        for tick in _tick_instants(start, end, self._tick_seconds):
            applied_end = position
            while applied_end < len(events) and events[applied_end].time <= tick:
                applied_end += 1
            owners = replay_events(owners, events[position:applied_end])
            position = applied_end
            if not owners:
                continue
            snapshots.append(
                Snapshot(
                    time=tick,
                    ownership={
                        territory: TerritoryOwner(
                            guild_name=guild_name,
                            guild_prefix=prefix_for(prefixes, guild_name),
                        )
                        for territory, guild_name in owners.items()
                    },
                )
            )
        return snapshots


def _tick_instants(start: datetime, end: datetime, tick_seconds: int) -> Iterator[datetime]:
    """Yield clock-aligned ticks from the one at or before start through end."""
    tick = to_epoch_seconds(start) // tick_seconds * tick_seconds
    last = to_epoch_seconds(end)
    while tick <= last:
        yield from_epoch_seconds(tick)
        tick += tick_seconds


def snapshot_series_payload(
    series: SnapshotSeries,
    limit: int | None = None,
    offset: int = 0,
) -> dict[str, Any]:
    """Render a snapshot series page in its external JSON shape.

    Args:
        series: Series to render.
        limit: Optional page size, capped at the series page maximum.
        offset: Number of leading snapshots to skip.

    Raises:
        HistoryQueryError: If limit or offset is negative.
    """
    if offset < 0 or (limit is not None and limit < 0):
        raise HistoryQueryError(
            f"Invalid snapshot page (limit={limit}, offset={offset}). "
            "Use a non-negative limit and offset."
        )
    total = len(series.snapshots)
    page_end = total if limit is None else offset + min(limit, SNAPSHOT_SERIES_MAX_LIMIT)
    page = series.snapshots[offset:page_end]
    return {
        "center": isoformat_z(series.center),
        "start": isoformat_z(series.start),
        "end": isoformat_z(series.end),
        "source": series.source,
        "total": total,
        "offset": offset,
        "count": len(page),
        "hasMore": offset + len(page) < total,
        "snapshots": [
            {
                "timestamp": isoformat_z(item.time),
                "territories": {
                    territory: {"g": owner.guild_prefix, "n": owner.guild_name}
                    for territory, owner in sorted(item.ownership.items())
                },
            }
            for item in page
        ],
    }
