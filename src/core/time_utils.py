"""UTC timestamp helpers.

This module converts between aware datetimes, epoch integers, and the
timestamp spellings found in external exports.
"""

from __future__ import annotations

from datetime import datetime, timezone
import re

_FALLBACK_FORMATS = (
    "%Y-%m-%d %H:%M:%S",
    "%Y-%m-%d %H:%M",
    "%d-%b-%y %I:%M %p",
    "%m/%d/%Y %I:%M %p",
    "%m/%d/%Y %H:%M",
)
_EXCESS_FRACTION_PATTERN = re.compile(r"(\.\d{6})\d+")


def ensure_utc(value: datetime) -> datetime:
    """Return value as an aware UTC datetime; naive values are taken as UTC."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def to_epoch_ms(value: datetime) -> int:
    """Convert a datetime to integer epoch milliseconds."""
    return int(round(ensure_utc(value).timestamp() * 1000))


def from_epoch_ms(value: int) -> datetime:
    """Convert integer epoch milliseconds to an aware UTC datetime."""
    return datetime.fromtimestamp(value / 1000, tz=timezone.utc)


def to_epoch_seconds(value: datetime) -> int:
    """Floor a datetime to integer epoch seconds."""
    return to_epoch_ms(value) // 1000


def from_epoch_seconds(value: int | float) -> datetime:
    """Convert epoch seconds to an aware UTC datetime."""
    return datetime.fromtimestamp(value, tz=timezone.utc)


def parse_epoch_seconds(raw_value: str) -> datetime | None:
    """Parse unix seconds text; ``None`` when it is not a representable instant."""
    try:
        return from_epoch_seconds(int(float(raw_value.strip())))
    except (ValueError, OverflowError, OSError):
        return None


def parse_timestamp(raw_value: str) -> datetime | None:
    """Parse an ISO-8601 or common export timestamp.

    Args:
        raw_value: Timestamp text from an export.

    Returns:
        Aware UTC datetime, or ``None`` when the text is not a timestamp
        or names an instant outside the representable range.
    """
    text = raw_value.strip()
    if not text:
        return None
    if text.endswith("Z"):
        text = text[:-1] + "+00:00"
    text = _EXCESS_FRACTION_PATTERN.sub(r"\1", text)
    try:
        return ensure_utc(datetime.fromisoformat(text))
    except (ValueError, OverflowError):
        pass
    for pattern in _FALLBACK_FORMATS:
        try:
            return ensure_utc(datetime.strptime(text, pattern))
        except (ValueError, OverflowError):
            continue
    return None


def isoformat_z(value: datetime) -> str:
    """Render a datetime as ISO-8601 UTC with a ``Z`` suffix and millisecond precision."""
    utc_value = ensure_utc(value)
    return utc_value.strftime("%Y-%m-%dT%H:%M:%S.") + f"{utc_value.microsecond // 1000:03d}Z"
