"""Snapshot-to-event diff transform.

This module turns consecutive ownership snapshots into synthetic
exchange events, one per territory whose owner changed.
"""

from __future__ import annotations

from typing import Iterable, Iterator

from core.types import UNCLAIMED, ExchangeEvent, Owner, Snapshot


def diff_snapshots(previous: Snapshot, current: Snapshot) -> list[ExchangeEvent]:
    """Emit the ownership changes between two snapshots.

    Args:
        previous: Earlier snapshot.
        current: Later snapshot; its time stamps every emitted event.

    Returns:
        One event per territory whose owner differs, sorted by territory.
    """
    events: list[ExchangeEvent] = []
    territories = set(previous.ownership) | set(current.ownership)
    for territory in sorted(territories):
        old_owner = _owner_in(previous, territory)
        new_owner = _owner_in(current, territory)
        if old_owner == new_owner:
            continue
        events.append(
            ExchangeEvent(
                time=current.time,
                territory=territory,
                attacker=new_owner,
                defender=old_owner,
            )
        )
    return events


def iter_snapshot_diffs(snapshots: Iterable[Snapshot]) -> Iterator[tuple[int, list[ExchangeEvent]]]:
    """Yield (later snapshot index, events) for each consecutive pair in time order."""
    previous: Snapshot | None = None
    for index, snapshot in enumerate(sorted(snapshots, key=lambda item: item.time)):
        if previous is not None:
            yield index, diff_snapshots(previous, snapshot)
        previous = snapshot


def observed_prefixes(snapshots: Iterable[Snapshot]) -> dict[str, str]:
    """Collect the latest prefix seen for each guild across snapshots."""
    prefixes: dict[str, str] = {}
    for snapshot in sorted(snapshots, key=lambda item: item.time):
        for owner in snapshot.ownership.values():
            if owner.guild_prefix:
                prefixes[owner.guild_name] = owner.guild_prefix
    return prefixes


def _owner_in(snapshot: Snapshot, territory: str) -> Owner:
    owner = snapshot.ownership.get(territory)
    if owner is None:
        return UNCLAIMED
    return owner.guild_name
