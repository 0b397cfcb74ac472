"""Runtime configuration model for the territory history engine.

This module owns all environment variable parsing and validation.
Other modules consume a typed config object instead of raw env reads.
"""

from __future__ import annotations

from dataclasses import dataclass
import os
from pathlib import Path

from core.constants import (
    DATABASE_FILE_NAME,
    DEFAULT_DATA_ROOT,
    DEFAULT_REGISTRY_INTERVAL_SECONDS,
    DEFAULT_REGISTRY_TIMEOUT_SECONDS,
    DEFAULT_REGISTRY_URL,
    PREFIX_OVERRIDES_FILE_NAME,
)
from core.errors import HistoryConfigError


@dataclass(frozen=True)
class HistoryConfig:
    """Validated runtime configuration.

    Attributes:
        data_root: Local root directory for the database and override file.
        database_path: Optional explicit SQLite file; defaults under data_root.
        registry_url: Base URL of the external guild registry.
        registry_interval_seconds: Fixed delay between registry requests.
        registry_timeout_seconds: Per-request registry timeout.
        s3_region: Optional default AWS region for history exports.
        s3_profile: Optional AWS profile for boto3 session initialization.
    """

    data_root: Path
    database_path: Path | None
    registry_url: str
    registry_interval_seconds: float
    registry_timeout_seconds: float
    s3_region: str | None
    s3_profile: str | None

    @classmethod
    def from_env(cls) -> "HistoryConfig":
        """Build config from process environment variables.

        Returns:
            A validated config object.

        Raises:
            HistoryConfigError: If environment values are invalid.
        """
        data_root_value = os.getenv("HISTORY_DATA_ROOT", str(DEFAULT_DATA_ROOT))
        database_value = os.getenv("HISTORY_DATABASE_PATH")
        registry_url = os.getenv("HISTORY_REGISTRY_URL", DEFAULT_REGISTRY_URL)
        interval = _parse_seconds(
            "HISTORY_REGISTRY_INTERVAL",
            os.getenv("HISTORY_REGISTRY_INTERVAL", str(DEFAULT_REGISTRY_INTERVAL_SECONDS)),
        )
        timeout = _parse_seconds(
            "HISTORY_REGISTRY_TIMEOUT",
            os.getenv("HISTORY_REGISTRY_TIMEOUT", str(DEFAULT_REGISTRY_TIMEOUT_SECONDS)),
        )
        return cls(
            data_root=Path(data_root_value).expanduser().resolve(),
            database_path=Path(database_value).expanduser().resolve() if database_value else None,
            registry_url=registry_url.rstrip("/"),
            registry_interval_seconds=interval,
            registry_timeout_seconds=timeout,
            s3_region=os.getenv("HISTORY_S3_REGION"),
            s3_profile=os.getenv("HISTORY_S3_PROFILE"),
        )

    def resolved_database_path(self) -> Path:
        """Return the SQLite file path, defaulting under the data root."""
        if self.database_path is not None:
            return self.database_path
        return self.data_root / DATABASE_FILE_NAME

    def overrides_path(self) -> Path:
        """Return the durable guild prefix override file path."""
        return self.data_root / PREFIX_OVERRIDES_FILE_NAME


def _parse_seconds(variable_name: str, raw_value: str) -> float:
    """Parse a non-negative seconds value from the environment.

    Args:
        variable_name: Environment variable name, for error context.
        raw_value: Raw string from environment.

    Returns:
        Parsed float seconds.

    Raises:
        HistoryConfigError: If value is not a non-negative number.
    """
    try:
        seconds = float(raw_value)
    except ValueError as error:
        raise HistoryConfigError(
            f"Invalid {variable_name} value: "
            f"expected number of seconds, got '{raw_value}'. "
            f"Set {variable_name} to a numeric value."
        ) from error
    if seconds < 0:
        raise HistoryConfigError(
            f"Invalid {variable_name} value: expected non-negative seconds, got {seconds}. "
            f"Set {variable_name} to zero or a positive value."
        )
    return seconds
