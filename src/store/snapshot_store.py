"""Periodic full-state checkpoints.

This module stores externally produced territory snapshots and answers
nearest-in-time and coverage questions for the reconstructor.
"""

from __future__ import annotations

from datetime import datetime
import json
from typing import Any

from core.constants import SNAPSHOTS_TABLE_NAME, UNCLAIMED_SOURCE_LABELS
from core.errors import HistoryStoreError
from core.logging_config import get_logger
from core.time_utils import from_epoch_ms, to_epoch_ms
from core.types import Snapshot, TerritoryOwner
from store.database import HistoryDatabase
from store.event_store import EventStore

_LOGGER = get_logger(__name__)


class SnapshotStore:
    """Snapshot table access.

    Snapshots are written only by the live poller collaborator; this
    class exposes that write path plus the read queries used here.
    """

    def __init__(self, database: HistoryDatabase) -> None:
        self._database = database

    def append(self, snapshot: Snapshot) -> None:
        """Persist one snapshot as a compact ``{territory: {g, n}}`` document."""
        payload = {
            territory: {"g": owner.guild_prefix, "n": owner.guild_name}
            for territory, owner in sorted(snapshot.ownership.items())
        }
        with self._database.transaction() as connection:
            connection.execute(
                f"INSERT INTO {SNAPSHOTS_TABLE_NAME} (snapshot_time_ms, territories) VALUES (?, ?)",
                (to_epoch_ms(snapshot.time), json.dumps(payload, sort_keys=True)),
            )
        _LOGGER.debug(
            "snapshot_appended",
            snapshot_time=snapshot.time.isoformat(),
            territory_count=len(payload),
        )

    def nearest(self, target_time: datetime) -> Snapshot | None:
        """Return the snapshot closest to target_time; ties go to the earlier one."""
        target_ms = to_epoch_ms(target_time)
        with self._database.connect() as connection:
            row = connection.execute(
                f"SELECT snapshot_time_ms, territories FROM {SNAPSHOTS_TABLE_NAME} "
                "ORDER BY ABS(snapshot_time_ms - ?) ASC, snapshot_time_ms ASC LIMIT 1",
                (target_ms,),
            ).fetchone()
        return _snapshot_from_row(row) if row else None

    def latest_at_or_before(self, instant: datetime) -> Snapshot | None:
        """Return the most recent snapshot taken at or before instant."""
        with self._database.connect() as connection:
            row = connection.execute(
                f"SELECT snapshot_time_ms, territories FROM {SNAPSHOTS_TABLE_NAME} "
                "WHERE snapshot_time_ms <= ? ORDER BY snapshot_time_ms DESC LIMIT 1",
                (to_epoch_ms(instant),),
            ).fetchone()
        return _snapshot_from_row(row) if row else None

    def latest(self) -> Snapshot | None:
        """Return the most recent snapshot."""
        with self._database.connect() as connection:
            row = connection.execute(
                f"SELECT snapshot_time_ms, territories FROM {SNAPSHOTS_TABLE_NAME} "
                "ORDER BY snapshot_time_ms DESC LIMIT 1"
            ).fetchone()
        return _snapshot_from_row(row) if row else None

    def list_snapshots(self, before: datetime | None = None) -> list[Snapshot]:
        """Return snapshots in ascending time order, optionally strictly before an instant."""
        sql = f"SELECT snapshot_time_ms, territories FROM {SNAPSHOTS_TABLE_NAME}"
        params: tuple[Any, ...] = ()
        if before is not None:
            sql += " WHERE snapshot_time_ms < ?"
            params = (to_epoch_ms(before),)
        sql += " ORDER BY snapshot_time_ms ASC"
        with self._database.connect() as connection:
            rows = connection.execute(sql, params).fetchall()
        return [_snapshot_from_row(row) for row in rows]

    def time_range(self) -> tuple[datetime, datetime] | None:
        """Return (earliest, latest) snapshot times, or None when empty."""
        with self._database.connect() as connection:
            row = connection.execute(
                f"SELECT MIN(snapshot_time_ms), MAX(snapshot_time_ms) FROM {SNAPSHOTS_TABLE_NAME}"
            ).fetchone()
        if row is None or row[0] is None:
            return None
        return from_epoch_ms(row[0]), from_epoch_ms(row[1])

    def full_coverage_time(self, event_store: EventStore) -> datetime | None:
        """Return the earliest instant at which every tracked territory has been observed.

        Tracked territories come from the latest snapshot, or from the
        event log when no snapshot exists. A territory is observed once it
        appears in an event or in any snapshot.

        Args:
            event_store: Event log merged with the snapshots.

        Returns:
            Coverage start, or ``None`` when some tracked territory was
            never observed or there is no data at all.
        """
        first_seen = event_store.first_seen_by_territory()
        latest_snapshot = self.latest()
        if latest_snapshot is not None:
            tracked = set(latest_snapshot.ownership)
            self._merge_snapshot_observations(first_seen, tracked)
        else:
            tracked = set(first_seen)
        if not tracked:
            return None
        if any(territory not in first_seen for territory in tracked):
            return None
        return max(first_seen[territory] for territory in tracked)

    def _merge_snapshot_observations(
        self,
        first_seen: dict[str, datetime],
        tracked: set[str],
    ) -> None:
        """Fold snapshot observations into first_seen, oldest snapshot first.

        Scanning stops at the first snapshot taken no earlier than the first
        observation of every tracked territory; later rows cannot lower any
        tracked entry, so they are never decoded.
        """
        decoded_count = 0
        with self._database.connect() as connection:
            cursor = connection.execute(
                f"SELECT snapshot_time_ms, territories FROM {SNAPSHOTS_TABLE_NAME} "
                "ORDER BY snapshot_time_ms ASC"
            )
            for row in cursor:
                snapshot_time = from_epoch_ms(row[0])
                if _all_observed_by(first_seen, tracked, snapshot_time):
                    break
                decoded_count += 1
                for territory in _snapshot_from_row(row).ownership:
                    seen_at = first_seen.get(territory)
                    if seen_at is None or snapshot_time < seen_at:
                        first_seen[territory] = snapshot_time
        _LOGGER.debug("snapshot_coverage_scanned", decoded_snapshots=decoded_count)

    def list_between(self, start: datetime, end: datetime) -> list[Snapshot]:
        """Return snapshots taken within [start, end], ascending."""
        with self._database.connect() as connection:
            rows = connection.execute(
                f"SELECT snapshot_time_ms, territories FROM {SNAPSHOTS_TABLE_NAME} "
                "WHERE snapshot_time_ms >= ? AND snapshot_time_ms <= ? "
                "ORDER BY snapshot_time_ms ASC",
                (to_epoch_ms(start), to_epoch_ms(end)),
            ).fetchall()
        return [_snapshot_from_row(row) for row in rows]


def _all_observed_by(
    first_seen: dict[str, datetime],
    tracked: set[str],
    instant: datetime,
) -> bool:
    """Return True when every tracked territory was observed at or before instant."""
    return all(
        territory in first_seen and first_seen[territory] <= instant for territory in tracked
    )


def _snapshot_from_row(row: tuple[int, str]) -> Snapshot:
    """Decode a stored snapshot row."""
    snapshot_time = from_epoch_ms(row[0])
    try:
        payload = json.loads(row[1])
    except json.JSONDecodeError as error:
        raise HistoryStoreError(
            f"Failed to parse snapshot at {snapshot_time.isoformat()}: {error.msg}. "
            "Remove or rewrite the corrupt snapshot row."
        ) from error
    if not isinstance(payload, dict):
        raise HistoryStoreError(
            f"Invalid snapshot at {snapshot_time.isoformat()}: expected a JSON object. "
            "Remove or rewrite the corrupt snapshot row."
        )
    ownership: dict[str, TerritoryOwner] = {}
    for territory, entry in payload.items():
        if not isinstance(entry, dict):
            continue
        guild_name = str(entry.get("n") or "")
        if guild_name.strip() in UNCLAIMED_SOURCE_LABELS:
            continue
        ownership[str(territory)] = TerritoryOwner(
            guild_name=guild_name,
            guild_prefix=str(entry.get("g") or ""),
        )
    return Snapshot(time=snapshot_time, ownership=ownership)
