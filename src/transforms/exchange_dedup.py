"""Exchange event deduplication transforms.

This module collapses re-announced events inside one import batch and
filters candidates that fuzzily match events already in the store.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Iterable

from core.constants import FUZZY_MINUTE_TOLERANCE, INTRA_BATCH_WINDOW_SECONDS
from core.time_utils import to_epoch_ms
from core.types import ExchangeEvent, Owner

TransitionKey = tuple[str, Owner, Owner]
FuzzyKey = tuple[str, Owner, Owner, int]


@dataclass(frozen=True)
class DedupResult:
    """Surviving events and the number removed."""

    events: list[ExchangeEvent]
    removed_count: int


def collapse_repeated_reports(
    events: Iterable[ExchangeEvent],
    window_seconds: int = INTRA_BATCH_WINDOW_SECONDS,
) -> DedupResult:
    """Drop repeats of the same transition reported within a short window.

    Events are processed in time order. A repeat is dropped when it falls
    within window_seconds of the last kept occurrence of the same
    (territory, attacker, defender) triple.

    Args:
        events: Candidate events from one import run.
        window_seconds: Re-announcement window.

    Returns:
        Kept events in time order plus the dropped count.
    """
    window_ms = window_seconds * 1000
    last_kept_ms: dict[TransitionKey, int] = {}
    kept: list[ExchangeEvent] = []
    removed = 0
    for event in sorted(events, key=lambda item: item.time):
        key = transition_key(event)
        event_ms = to_epoch_ms(event.time)
        previous_ms = last_kept_ms.get(key)
        if previous_ms is not None and abs(event_ms - previous_ms) < window_ms:
            removed += 1
            continue
        last_kept_ms[key] = event_ms
        kept.append(event)
    return DedupResult(events=kept, removed_count=removed)


def build_fuzzy_keys(
    existing_events: Iterable[ExchangeEvent],
    tolerance_minutes: int = FUZZY_MINUTE_TOLERANCE,
) -> set[FuzzyKey]:
    """Index stored events under their minute bucket and its neighbours."""
    keys: set[FuzzyKey] = set()
    for event in existing_events:
        territory, attacker, defender = transition_key(event)
        bucket = minute_bucket(event)
        for offset in range(-tolerance_minutes, tolerance_minutes + 1):
            keys.add((territory, attacker, defender, bucket + offset))
    return keys


def filter_novel_events(
    candidates: Iterable[ExchangeEvent],
    existing_keys: set[FuzzyKey],
) -> DedupResult:
    """Keep only candidates with no fuzzy match in existing_keys."""
    novel: list[ExchangeEvent] = []
    removed = 0
    for event in candidates:
        if fuzzy_key(event) in existing_keys:
            removed += 1
            continue
        novel.append(event)
    return DedupResult(events=novel, removed_count=removed)


def transition_key(event: ExchangeEvent) -> TransitionKey:
    """Return the (territory, attacker, defender) identity of an event."""
    return (event.territory, event.attacker, event.defender)


def fuzzy_key(event: ExchangeEvent) -> FuzzyKey:
    """Return the transition identity plus its minute bucket."""
    return (*transition_key(event), minute_bucket(event))


def minute_bucket(event: ExchangeEvent) -> int:
    """Round an event time to the nearest whole epoch minute."""
    return (to_epoch_ms(event.time) + 30_000) // 60_000


def distinct_guilds(events: Iterable[ExchangeEvent]) -> set[str]:
    """Collect real guild names appearing as attacker or defender."""
    guilds: set[str] = set()
    for event in events:
        for owner in (event.attacker, event.defender):
            if isinstance(owner, str):
                guilds.add(owner)
    return guilds
