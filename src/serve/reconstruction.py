"""Point-in-time territory ownership reconstruction.

This module answers "who owned what at instant T" from the snapshot
checkpoints and the exchange log. A snapshot within the fallback
threshold is returned as a disclosed approximation; otherwise the log is
replayed forward from the latest snapshot at or before T, or from the
start of the log when no such snapshot exists.
"""

from __future__ import annotations

from datetime import datetime, timedelta
from itertools import groupby
from typing import Any, Iterable, Mapping

from core.constants import SNAPSHOT_FALLBACK_THRESHOLD_SECONDS
from core.errors import HistoryNotFoundError
from core.logging_config import get_logger
from core.ownership import guess_prefix, is_claimed
from core.time_utils import ensure_utc, isoformat_z
from core.types import (
    ExchangeEvent,
    ReconstructionMethod,
    ReconstructionResult,
    Snapshot,
    TerritoryOwner,
    TimeRange,
)
from store.event_store import EventStore
from store.prefix_registry import GuildPrefixRegistry, prefix_for
from store.snapshot_store import SnapshotStore

_LOGGER = get_logger(__name__)


class Reconstructor:
    """Read-only ownership reconstruction over snapshots and events."""

    def __init__(
        self,
        snapshot_store: SnapshotStore,
        event_store: EventStore,
        prefix_registry: GuildPrefixRegistry,
        fallback_threshold: timedelta = timedelta(seconds=SNAPSHOT_FALLBACK_THRESHOLD_SECONDS),
    ) -> None:
        self._snapshot_store = snapshot_store
        self._event_store = event_store
        self._prefix_registry = prefix_registry
        self._fallback_threshold = fallback_threshold

    def reconstruct_at(self, target_time: datetime) -> ReconstructionResult:
        """Return territory ownership at target_time.

        Args:
            target_time: Instant to reconstruct; naive values are UTC.

        Returns:
            Ownership with the instant it describes and the disclosed
            distance from the requested instant.

        Raises:
            HistoryNotFoundError: If neither a snapshot nor a usable event
                exists to answer the query.
        """
        target = ensure_utc(target_time)
        nearest = self._snapshot_store.nearest(target)
        if nearest is not None and abs(nearest.time - target) <= self._fallback_threshold:
            return self._from_snapshot(nearest, target, "snapshot")
        if self._event_store.has_event_at_or_before(target):
            return self._replay(target)
        if nearest is not None:
            return self._from_snapshot(nearest, target, "snapshot_fallback")
        raise HistoryNotFoundError(
            f"No territory history covers {isoformat_z(target)}: "
            "no snapshot exists and no event precedes that instant. "
            "Import exchange history or pick a later timestamp."
        )

    def _from_snapshot(
        self,
        snapshot: Snapshot,
        target: datetime,
        method: ReconstructionMethod,
    ) -> ReconstructionResult:
        prefixes = self._prefix_registry.prefix_map()
        ownership = {
            territory: TerritoryOwner(
                guild_name=owner.guild_name,
                guild_prefix=owner.guild_prefix or prefix_for(prefixes, owner.guild_name),
            )
            for territory, owner in snapshot.ownership.items()
        }
        return _build_result(snapshot.time, ownership, target, method)

    def _replay(self, target: datetime) -> ReconstructionResult:
        effective = min(target, self._latest_observation() or target)
        anchor = self._snapshot_store.latest_at_or_before(effective)
        events = self._event_store.query(
            TimeRange(start=anchor.time if anchor else None, end=effective)
        )
        if anchor is not None:
            events = [event for event in events if event.time > anchor.time]
        initial = {t: owner.guild_name for t, owner in anchor.ownership.items()} if anchor else {}
        owners = replay_events(initial, events)
        prefixes = self._prefix_registry.prefix_map()
        anchored_prefixes = {
            owner.guild_name: owner.guild_prefix
            for owner in (anchor.ownership.values() if anchor else ())
            if owner.guild_prefix
        }
        ownership = {
            territory: TerritoryOwner(
                guild_name=guild_name,
                guild_prefix=prefixes.get(guild_name)
                or anchored_prefixes.get(guild_name)
                or guess_prefix(guild_name),
            )
            for territory, guild_name in owners.items()
        }
        _LOGGER.debug(
            "ownership_replayed",
            target_time=isoformat_z(target),
            anchor_time=isoformat_z(anchor.time) if anchor else None,
            replayed_events=len(events),
        )
        return _build_result(effective, ownership, target, "replay")

    def _latest_observation(self) -> datetime | None:
        """Return the later of the last event and the last snapshot."""
        candidates: list[datetime] = []
        event_bounds = self._event_store.bounds()
        if event_bounds is not None:
            candidates.append(event_bounds[1])
        snapshot_range = self._snapshot_store.time_range()
        if snapshot_range is not None:
            candidates.append(snapshot_range[1])
        return max(candidates) if candidates else None


def replay_events(initial: Mapping[str, str], events: Iterable[ExchangeEvent]) -> dict[str, str]:
    """Apply ordered events to an ownership map.

    Events sharing a (time, territory) are resolved together: a real
    attacker wins over an UNCLAIMED row reported at the same instant, and
    an UNCLAIMED outcome removes the territory.

    Args:
        initial: Territory to guild name at the replay start.
        events: Events in store query order.

    Returns:
        Territory to guild name after replay.
    """
    owners = dict(initial)
    for (_, territory), group in groupby(events, key=lambda item: (item.time, item.territory)):
        attackers = [event.attacker for event in group]
        claimed = [attacker for attacker in attackers if is_claimed(attacker)]
        if claimed:
            owners[territory] = str(claimed[-1])
        else:
            owners.pop(territory, None)
    return owners


def to_payload(result: ReconstructionResult) -> dict[str, Any]:
    """Render a reconstruction result in the external snapshot shape."""
    return {
        "timestamp": isoformat_z(result.time),
        "ownership": {
            territory: {"g": owner.guild_prefix, "n": owner.guild_name}
            for territory, owner in sorted(result.ownership.items())
        },
        "requestedTimestamp": isoformat_z(result.requested_time),
        "timeDiffSeconds": result.time_diff_seconds,
    }


def _build_result(
    time: datetime,
    ownership: Mapping[str, TerritoryOwner],
    requested_time: datetime,
    method: ReconstructionMethod,
) -> ReconstructionResult:
    return ReconstructionResult(
        time=time,
        ownership=dict(ownership),
        requested_time=requested_time,
        time_diff_seconds=int(round(abs((time - requested_time).total_seconds()))),
        method=method,
    )
