"""Chat-log JSON export reader.

Tracker bots post exchanges as message embeds. Each embed field is one
exchange: the field name is the territory and the first line of the
value reads ``Defender (a -> b) -> **Attacker** (c -> d)``.
"""

from __future__ import annotations

import json
from pathlib import Path
import re
from typing import Any

from core.constants import CHAT_INFO_FIELD_MARKERS, CHAT_JSON_FORMAT
from core.errors import HistoryIngestError
from core.ownership import owner_from_label
from core.time_utils import parse_timestamp
from core.types import ExchangeEvent, ParsedSource

_FIELD_VALUE_PATTERN = re.compile(
    r"^(.+?)\s*\(\d+\s*->\s*\d+\)\s*->\s*\*\*(.+?)\*\*\s*\(\d+\s*->\s*\d+\)"
)


def read_chat_export(source_path: Path) -> ParsedSource:
    """Parse exchange embeds from a chat-log JSON export.

    Args:
        source_path: JSON export path.

    Returns:
        Parsed candidates with malformed and skipped counts.

    Raises:
        HistoryIngestError: If the file is unreadable or not an export object.
    """
    payload = _load_export(source_path)
    candidates: list[ExchangeEvent] = []
    malformed = 0
    skipped = 0
    for message in _as_list(payload.get("messages")):
        if not isinstance(message, dict):
            malformed += 1
            continue
        for embed in _as_list(message.get("embeds")):
            if not isinstance(embed, dict):
                malformed += 1
                continue
            raw_time = embed.get("timestamp") or message.get("timestamp")
            exchange_time = parse_timestamp(raw_time) if isinstance(raw_time, str) else None
            if exchange_time is None:
                malformed += 1
                continue
            for field in _as_list(embed.get("fields")):
                name = str(field.get("name", "")) if isinstance(field, dict) else ""
                if any(marker in name for marker in CHAT_INFO_FIELD_MARKERS):
                    skipped += 1
                    continue
                parsed = parse_field_value(str(field.get("value", ""))) if name.strip() else None
                if parsed is None:
                    malformed += 1
                    continue
                defender, attacker = parsed
                candidates.append(
                    ExchangeEvent(
                        time=exchange_time,
                        territory=name.strip(),
                        attacker=owner_from_label(attacker),
                        defender=owner_from_label(defender),
                    )
                )
    return ParsedSource(
        source_format=CHAT_JSON_FORMAT,
        candidates=tuple(candidates),
        malformed_count=malformed,
        skipped_count=skipped,
    )


def parse_field_value(value: str) -> tuple[str, str] | None:
    """Extract (defender, attacker) from an embed field value."""
    lines = value.strip().splitlines()
    if not lines:
        return None
    match = _FIELD_VALUE_PATTERN.match(lines[0].strip())
    if not match:
        return None
    return match.group(1).strip(), match.group(2).strip()


def _load_export(source_path: Path) -> dict[str, Any]:
    """Read and validate the top-level export object.

    Raises:
        HistoryIngestError: If the file is missing, unreadable, or malformed.
    """
    if not source_path.exists():
        raise HistoryIngestError(
            f"Failed to read source at {source_path}: path does not exist. "
            "Provide an existing JSON chat export."
        )
    try:
        payload = json.loads(source_path.read_text(encoding="utf-8-sig"))
    except (OSError, UnicodeDecodeError) as error:
        raise HistoryIngestError(
            f"Failed to read JSON source at {source_path}: {error}. "
            "Check file permissions and encoding."
        ) from error
    except json.JSONDecodeError as error:
        raise HistoryIngestError(
            f"Failed to parse JSON export at {source_path}: {error.msg}. "
            "Re-export the channel as JSON and retry the import."
        ) from error
    if not isinstance(payload, dict):
        raise HistoryIngestError(
            f"Invalid JSON export at {source_path}: expected an object with 'messages'. "
            "Re-export the channel as JSON and retry the import."
        )
    return payload


def _as_list(value: Any) -> list[Any]:
    return value if isinstance(value, list) else []
