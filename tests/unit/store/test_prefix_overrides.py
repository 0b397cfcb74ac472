"""Unit tests for the durable prefix override record."""

from __future__ import annotations

import json

import pytest

from core.errors import HistoryStoreError
from store.prefix_overrides import PrefixOverride, PrefixOverrideStore


def test_load_returns_empty_record_for_missing_file(tmp_path) -> None:
    """A missing override file should behave as an empty record."""
    store = PrefixOverrideStore(tmp_path / "overrides.json")

    assert store.load() == {}


def test_save_writes_sorted_guild_names(tmp_path) -> None:
    """Saved overrides should be ordered by guild name."""
    store = PrefixOverrideStore(tmp_path / "overrides.json")
    store.save(
        {
            "Zeta Union": PrefixOverride(prefix="ZU", source="registry"),
            "Alpha Guild": PrefixOverride(prefix="AG", source="registry"),
        }
    )

    payload = json.loads(store.path.read_text(encoding="utf-8"))

    assert list(payload) == ["Alpha Guild", "Zeta Union"]


def test_save_then_load_restores_sources(tmp_path) -> None:
    """Not-found answers should survive a save and reload."""
    store = PrefixOverrideStore(tmp_path / "overrides.json")
    store.save({"Gone Guild": PrefixOverride(prefix="GON", source="not-found")})

    restored = store.load()

    assert restored["Gone Guild"].source == "not-found"


def test_load_raises_for_invalid_json(tmp_path) -> None:
    """A corrupt override file should raise a store error."""
    path = tmp_path / "overrides.json"
    path.write_text("{not json", encoding="utf-8")

    with pytest.raises(HistoryStoreError):
        PrefixOverrideStore(path).load()


def test_load_raises_store_error_for_non_utf8_file(tmp_path) -> None:
    """Undecodable bytes should surface as a store error."""
    path = tmp_path / "overrides.json"
    path.write_bytes(b"\xff\xfe{\x00")

    with pytest.raises(HistoryStoreError, match="Failed to read prefix overrides"):
        PrefixOverrideStore(path).load()


def test_load_raises_store_error_when_path_is_a_directory(tmp_path) -> None:
    """An unreadable override path should surface as a store error."""
    path = tmp_path / "overrides.json"
    path.mkdir()

    with pytest.raises(HistoryStoreError, match="Failed to read prefix overrides"):
        PrefixOverrideStore(path).load()
