"""Durable guild prefix override record.

This module keeps every registry answer (including "not found") in a
JSON file so a guild's last-known-good prefix survives upstream deletion
and lets interrupted resolution runs resume without re-querying.
"""

from __future__ import annotations

from dataclasses import dataclass
import json
from pathlib import Path

from core.errors import HistoryStoreError


@dataclass(frozen=True)
class PrefixOverride:
    """One resolved guild prefix."""

    prefix: str
    source: str


class PrefixOverrideStore:
    """Filesystem-backed override record keyed by guild name."""

    def __init__(self, overrides_path: Path) -> None:
        self._overrides_path = overrides_path

    @property
    def path(self) -> Path:
        return self._overrides_path

    def load(self) -> dict[str, PrefixOverride]:
        """Read the override file; a missing file is an empty record.

        Raises:
            HistoryStoreError: If the file exists but cannot be read as
                UTF-8 JSON.
        """
        if not self._overrides_path.exists():
            return {}
        try:
            raw_text = self._overrides_path.read_text(encoding="utf-8")
        except (OSError, UnicodeDecodeError) as error:
            raise HistoryStoreError(
                f"Failed to read prefix overrides at {self._overrides_path}: {error}. "
                "Check file permissions and encoding, or delete the file and retry."
            ) from error
        try:
            payload = json.loads(raw_text)
        except json.JSONDecodeError as error:
            raise HistoryStoreError(
                f"Failed to parse prefix overrides at {self._overrides_path}: {error.msg}. "
                "Fix or delete the file and retry prefix resolution."
            ) from error
        if not isinstance(payload, dict):
            raise HistoryStoreError(
                f"Invalid prefix overrides at {self._overrides_path}: expected a JSON object. "
                "Fix or delete the file and retry prefix resolution."
            )
        overrides: dict[str, PrefixOverride] = {}
        for guild_name, entry in payload.items():
            if not isinstance(entry, dict) or not isinstance(entry.get("prefix"), str):
                continue
            overrides[str(guild_name)] = PrefixOverride(
                prefix=entry["prefix"],
                source=str(entry.get("source", "")),
            )
        return overrides

    def save(self, overrides: dict[str, PrefixOverride]) -> None:
        """Write the override record sorted by guild name for readable diffs."""
        self._overrides_path.parent.mkdir(parents=True, exist_ok=True)
        payload = {
            name: {"prefix": override.prefix, "source": override.source}
            for name, override in sorted(overrides.items())
        }
        temp_path = self._overrides_path.with_suffix(".tmp")
        temp_path.write_text(json.dumps(payload, indent=2) + "\n", encoding="utf-8")
        temp_path.replace(self._overrides_path)
