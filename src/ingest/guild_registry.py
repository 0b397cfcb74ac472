"""External guild registry client.

This module asks the public guild API for a guild's authoritative
prefix. Calls are sequential; pacing between calls is the caller's job.
"""

from __future__ import annotations

import time
from typing import Any, Callable
from urllib.parse import quote

import httpx

from core.config import HistoryConfig
from core.constants import REGISTRY_RATE_LIMIT_BACKOFF_SECONDS
from core.errors import HistoryRegistryError
from core.logging_config import get_logger

_LOGGER = get_logger(__name__)


class GuildRegistryClient:
    """Synchronous guild prefix lookups over HTTP.

    A ``None`` answer means the registry does not know the guild. Transport
    failures and unexpected statuses raise ``HistoryRegistryError``.
    """

    def __init__(
        self,
        base_url: str,
        timeout_seconds: float,
        transport: httpx.BaseTransport | None = None,
        sleep: Callable[[float], None] | None = None,
        backoff_seconds: float = REGISTRY_RATE_LIMIT_BACKOFF_SECONDS,
    ) -> None:
        self._base_url = base_url.rstrip("/")
        self._client = httpx.Client(timeout=timeout_seconds, transport=transport)
        self._sleep = sleep or time.sleep
        self._backoff_seconds = backoff_seconds

    @classmethod
    def from_config(cls, config: HistoryConfig, **kwargs: Any) -> "GuildRegistryClient":
        """Build a client from runtime configuration."""
        return cls(config.registry_url, config.registry_timeout_seconds, **kwargs)

    def fetch_prefix(self, guild_name: str) -> str | None:
        """Look up one guild's prefix.

        Args:
            guild_name: Guild full name.

        Returns:
            The registry prefix, or ``None`` when the guild is unknown.

        Raises:
            HistoryRegistryError: On transport errors, timeouts, or
                unexpected responses, including a second rate limit.
        """
        url = f"{self._base_url}/{quote(guild_name, safe='')}"
        response = self._get(url)
        if response.status_code == 429:
            _LOGGER.warning(
                "registry_rate_limited",
                guild_name=guild_name,
                backoff_seconds=self._backoff_seconds,
            )
            self._sleep(self._backoff_seconds)
            response = self._get(url)
        if response.status_code == 404:
            return None
        if response.status_code != 200:
            raise HistoryRegistryError(
                f"Guild registry returned HTTP {response.status_code} for '{guild_name}' "
                f"at {url}. Retry prefix resolution later."
            )
        return _prefix_from_body(response, url)

    def close(self) -> None:
        self._client.close()

    def __enter__(self) -> "GuildRegistryClient":
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()

    def _get(self, url: str) -> httpx.Response:
        try:
            return self._client.get(url)
        except httpx.HTTPError as error:
            raise HistoryRegistryError(
                f"Guild registry request to {url} failed: {error}. "
                "Check network access to the registry and retry prefix resolution."
            ) from error


def _prefix_from_body(response: httpx.Response, url: str) -> str | None:
    """Extract a non-empty prefix from a registry JSON body."""
    try:
        payload = response.json()
    except ValueError as error:
        raise HistoryRegistryError(
            f"Guild registry returned invalid JSON at {url}. Retry prefix resolution later."
        ) from error
    if not isinstance(payload, dict):
        return None
    prefix = payload.get("prefix")
    if isinstance(prefix, str) and prefix.strip():
        return prefix.strip()
    return None
