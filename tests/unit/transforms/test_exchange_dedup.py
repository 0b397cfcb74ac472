"""Unit tests for exchange event deduplication transforms."""

from __future__ import annotations

from core.types import UNCLAIMED
from tests.history_builders import exchange
from transforms.exchange_dedup import (
    build_fuzzy_keys,
    collapse_repeated_reports,
    distinct_guilds,
    filter_novel_events,
)


def test_collapse_keeps_one_of_five_reports_within_ten_seconds() -> None:
    """Repeated identical transitions inside the window should collapse to one."""
    events = [exchange(offset, "Ragni", "Alpha Guild", UNCLAIMED) for offset in (0, 2, 4, 6, 8)]

    result = collapse_repeated_reports(events)

    assert (len(result.events), result.removed_count) == (1, 4)


def test_collapse_keeps_repeats_outside_window() -> None:
    """The same transition reported minutes apart should be kept twice."""
    events = [
        exchange(0, "Ragni", "Alpha Guild", UNCLAIMED),
        exchange(120, "Ragni", "Alpha Guild", UNCLAIMED),
    ]

    result = collapse_repeated_reports(events)

    assert len(result.events) == 2


def test_collapse_measures_window_from_last_kept_report() -> None:
    """A report 59s after a dropped repeat but 70s after the kept one should be kept."""
    events = [
        exchange(0, "Ragni", "Alpha Guild", UNCLAIMED),
        exchange(11, "Ragni", "Alpha Guild", UNCLAIMED),
        exchange(70, "Ragni", "Alpha Guild", UNCLAIMED),
    ]

    result = collapse_repeated_reports(events)

    assert len(result.events) == 2


def test_collapse_distinguishes_different_defenders() -> None:
    """Transitions with different defenders are different events."""
    events = [
        exchange(0, "Ragni", "Alpha Guild", UNCLAIMED),
        exchange(1, "Ragni", "Alpha Guild", "Beta Squad"),
    ]

    result = collapse_repeated_reports(events)

    assert result.removed_count == 0


def test_fuzzy_filter_rejects_candidate_within_one_minute() -> None:
    """A candidate 50s from an identical stored triple should be rejected."""
    keys = build_fuzzy_keys([exchange(0, "Ragni", "Alpha Guild", UNCLAIMED)])

    result = filter_novel_events([exchange(50, "Ragni", "Alpha Guild", UNCLAIMED)], keys)

    assert (result.events, result.removed_count) == ([], 1)


def test_fuzzy_filter_keeps_candidate_minutes_away() -> None:
    """A candidate several minutes from the stored triple should survive."""
    keys = build_fuzzy_keys([exchange(0, "Ragni", "Alpha Guild", UNCLAIMED)])

    result = filter_novel_events([exchange(300, "Ragni", "Alpha Guild", UNCLAIMED)], keys)

    assert len(result.events) == 1


def test_fuzzy_filter_keeps_different_attacker() -> None:
    """A different attacker at the same instant is a different transition."""
    keys = build_fuzzy_keys([exchange(0, "Ragni", "Alpha Guild", UNCLAIMED)])

    result = filter_novel_events([exchange(0, "Ragni", "Beta Squad", UNCLAIMED)], keys)

    assert len(result.events) == 1


def test_distinct_guilds_ignores_unclaimed() -> None:
    """Guild collection should include only real guild names."""
    events = [exchange(0, "Ragni", "Alpha Guild", UNCLAIMED)]

    assert distinct_guilds(events) == {"Alpha Guild"}
