"""Shared builders for territory history tests."""

from __future__ import annotations

from datetime import datetime
from pathlib import Path

from core.ownership import guess_prefix
from core.time_utils import from_epoch_seconds
from core.types import ExchangeEvent, Owner, Snapshot, TerritoryOwner
from store.database import HistoryDatabase

BASE_EPOCH_SECONDS = 1_600_000_000


def at(offset_seconds: float) -> datetime:
    """Return an aware UTC instant offset from a fixed base time."""
    return from_epoch_seconds(BASE_EPOCH_SECONDS + offset_seconds)


def exchange(
    offset_seconds: float,
    territory: str,
    attacker: Owner,
    defender: Owner,
) -> ExchangeEvent:
    """Build one exchange event at a base-relative offset."""
    return ExchangeEvent(
        time=at(offset_seconds),
        territory=territory,
        attacker=attacker,
        defender=defender,
    )


def snapshot(offset_seconds: float, ownership: dict[str, str]) -> Snapshot:
    """Build a snapshot from territory to guild name, with guessed prefixes."""
    return Snapshot(
        time=at(offset_seconds),
        ownership={
            territory: TerritoryOwner(guild_name=name, guild_prefix=guess_prefix(name))
            for territory, name in ownership.items()
        },
    )


def open_database(root: Path) -> HistoryDatabase:
    """Create a fresh history database under root."""
    return HistoryDatabase(root / "history.db")
