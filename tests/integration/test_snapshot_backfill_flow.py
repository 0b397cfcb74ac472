"""Integration tests for the snapshot backfill workflow."""

from __future__ import annotations

from dataclasses import replace

from core.config import HistoryConfig
from core.types import UNCLAIMED
from store.history_sdk import HistoryClient
from tests.history_builders import at, exchange, snapshot

_DAY = 86_400


def test_backfill_enables_replay_between_snapshots(tmp_path) -> None:
    """Backfilled events should let replay answer between sparse snapshots."""
    config = replace(HistoryConfig.from_env(), data_root=tmp_path, database_path=None)
    client = HistoryClient(config)
    client.record_snapshot(snapshot(0, {"Ragni": "Alpha Guild"}))
    client.record_snapshot(snapshot(3 * _DAY, {"Ragni": "Beta Squad", "Detlas": "Beta Squad"}))
    client.events.append([exchange(5 * _DAY, "Detlas", "Gamma Order", "Beta Squad")])

    summary = client.backfill_snapshots()
    result = client.reconstruct_at(at(4 * _DAY + 3600))

    assert summary.inserted_count == 2
    assert result.method == "replay"
    assert result.ownership["Detlas"].guild_name == "Beta Squad"


def test_chain_breaks_surface_after_backfill(tmp_path) -> None:
    """Events whose defender contradicts the prior attacker should be listed."""
    config = replace(HistoryConfig.from_env(), data_root=tmp_path, database_path=None)
    client = HistoryClient(config)
    client.events.append(
        [
            exchange(0, "Ragni", "Alpha Guild", UNCLAIMED),
            exchange(60, "Ragni", "Gamma Order", "Beta Squad"),
        ]
    )

    breaks = client.chain_breaks()

    assert [item.expected_defender for item in breaks] == ["Alpha Guild"]
