"""Unit tests for owner sentinel conversions."""

from __future__ import annotations

from core.ownership import guess_prefix, owner_from_column, owner_from_label, owner_to_column
from core.types import UNCLAIMED


def test_owner_from_label_maps_none_text_to_unclaimed() -> None:
    """The literal export spelling 'None' should become the sentinel."""
    assert owner_from_label("None") is UNCLAIMED


def test_owner_from_label_maps_blank_to_unclaimed() -> None:
    """Empty owner fields should become the sentinel."""
    assert owner_from_label("  ") is UNCLAIMED


def test_owner_from_label_keeps_real_guild_names() -> None:
    """Real guild names should pass through trimmed."""
    assert owner_from_label(" Alpha Guild ") == "Alpha Guild"


def test_unclaimed_is_stored_as_null() -> None:
    """The sentinel should be stored as SQL NULL and decoded back."""
    column = owner_to_column(UNCLAIMED)

    assert column is None and owner_from_column(column) is UNCLAIMED


def test_guess_prefix_uppercases_first_three_letters() -> None:
    """Guessed prefixes should be the first three letters uppercased."""
    assert guess_prefix("Beta Squad") == "BET"
