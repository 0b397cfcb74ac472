"""Owner sentinel conversions.

External exports spell "no owner" as text and the store keeps it as
SQL NULL; this module is the single place those spellings are mapped.
"""

from __future__ import annotations

from core.constants import GUESSED_PREFIX_LENGTH, UNCLAIMED_SOURCE_LABELS
from core.types import UNCLAIMED, Owner


def owner_from_label(raw_value: str | None) -> Owner:
    """Map an export owner label to a guild name or UNCLAIMED."""
    if raw_value is None:
        return UNCLAIMED
    label = raw_value.strip()
    if label in UNCLAIMED_SOURCE_LABELS:
        return UNCLAIMED
    return label


def owner_to_column(owner: Owner) -> str | None:
    """Encode an owner for the relational store."""
    if owner is UNCLAIMED:
        return None
    return str(owner)


def owner_from_column(value: str | None) -> Owner:
    """Decode a stored owner column."""
    if value is None:
        return UNCLAIMED
    return value


def is_claimed(owner: Owner) -> bool:
    """Return whether owner is a real guild."""
    return owner is not UNCLAIMED


def guess_prefix(guild_name: str) -> str:
    """Guess a guild prefix from the first letters of its name."""
    return guild_name.strip()[:GUESSED_PREFIX_LENGTH].upper()
