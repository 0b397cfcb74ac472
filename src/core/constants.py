"""Core constants used across territory history modules.

This module centralizes thresholds, file names, and table names.
Keeping values here avoids magic literals in business logic.
"""

from __future__ import annotations

from pathlib import Path

DEFAULT_DATA_ROOT = Path(".territory-history")
DATABASE_FILE_NAME = "history.db"
PREFIX_OVERRIDES_FILE_NAME = "guild-prefix-overrides.json"
EVENTS_TABLE_NAME = "territory_exchanges"
EVENTS_DEDUP_TABLE_NAME = "territory_exchanges_dedup"
SNAPSHOTS_TABLE_NAME = "territory_snapshots"
PREFIXES_TABLE_NAME = "guild_prefixes"
UNCLAIMED_SOURCE_LABELS = ("None", "none", "")
SNAPSHOT_FALLBACK_THRESHOLD_SECONDS = 24 * 60 * 60
INTRA_BATCH_WINDOW_SECONDS = 60
CROSS_STORE_PADDING_SECONDS = 24 * 60 * 60
FUZZY_MINUTE_TOLERANCE = 1
INSERT_BATCH_SIZE = 2000
BACKFILL_PROGRESS_INTERVAL = 1000
GAP_THRESHOLD_DAYS = 1
GUESSED_PREFIX_LENGTH = 3
DEFAULT_REGISTRY_URL = "https://api.wynncraft.com/v3/guild"
DEFAULT_REGISTRY_INTERVAL_SECONDS = 0.25
DEFAULT_REGISTRY_TIMEOUT_SECONDS = 10.0
REGISTRY_RATE_LIMIT_BACKOFF_SECONDS = 5.0
REGISTRY_CHECKPOINT_INTERVAL = 50
PREFIX_SOURCE_GUESSED = "guessed"
PREFIX_SOURCE_SNAPSHOT = "snapshot"
PREFIX_SOURCE_REGISTRY = "registry"
PREFIX_SOURCE_NOT_FOUND = "not-found"
EXCHANGE_CSV_FORMAT = "exchange-csv"
WAR_LOG_CSV_FORMAT = "war-log-csv"
CHAT_JSON_FORMAT = "chat-json"
SUPPORTED_IMPORT_FORMATS = (EXCHANGE_CSV_FORMAT, WAR_LOG_CSV_FORMAT, CHAT_JSON_FORMAT)
WAR_LOG_BOT_AUTHOR_PREFIXES = ("WynnBot", "moto-bot")
CHAT_INFO_FIELD_MARKERS = ("ℹ️", "New Tracker")
EXCHANGE_CSV_HEADER = ("time", "defender", "attacker", "territory")
WAR_LOG_CSV_HEADER = ("AuthorID", "Author", "Date", "Content")
HISTORY_EXPORT_FILE_NAME = "history-stream.json"
RANGED_STREAM_MAX_DAYS = 6 * 30
SNAPSHOT_SERIES_HALF_WINDOW_SECONDS = 302_400
SNAPSHOT_SERIES_TICK_SECONDS = 10 * 60
SNAPSHOT_SERIES_MAX_LIMIT = 2000
