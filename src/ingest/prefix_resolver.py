"""Guild prefix resolution.

This module upgrades guessed guild prefixes to authoritative registry
answers. Every answer is also written to the durable override record so
interrupted runs resume without re-querying and deleted guilds keep
their last known prefix.
"""

from __future__ import annotations

import time
from typing import Callable, Iterable

from core.constants import (
    PREFIX_SOURCE_NOT_FOUND,
    PREFIX_SOURCE_REGISTRY,
    REGISTRY_CHECKPOINT_INTERVAL,
)
from core.errors import HistoryRegistryError
from core.logging_config import get_logger
from core.ownership import guess_prefix
from core.types import ResolutionSummary
from ingest.guild_registry import GuildRegistryClient
from store.prefix_overrides import PrefixOverride, PrefixOverrideStore
from store.prefix_registry import GuildPrefixRegistry

_LOGGER = get_logger(__name__)


class GuildPrefixResolver:
    """Sequential, rate-limited resolver for guessed guild prefixes."""

    def __init__(
        self,
        registry: GuildPrefixRegistry,
        override_store: PrefixOverrideStore,
        client: GuildRegistryClient,
        interval_seconds: float,
        sleep: Callable[[float], None] | None = None,
        checkpoint_interval: int = REGISTRY_CHECKPOINT_INTERVAL,
    ) -> None:
        self._registry = registry
        self._override_store = override_store
        self._client = client
        self._interval_seconds = interval_seconds
        self._sleep = sleep or time.sleep
        self._checkpoint_interval = checkpoint_interval

    def register_guessed(self, guild_names: Iterable[str]) -> int:
        """Give new guilds a guessed prefix so they render immediately."""
        return self._registry.register_guessed(guild_names)

    def resolve_pending(self, limit: int | None = None) -> ResolutionSummary:
        """Resolve every guild whose prefix is still guessed.

        Durable overrides are applied first. Remaining guilds are looked up
        one at a time with a fixed delay between requests. Lookup failures
        leave the guessed prefix in place so a later run retries them.

        Args:
            limit: Optional cap on registry lookups for this run.

        Returns:
            Resolution counters.
        """
        overrides = self._override_store.load()
        pending = self._registry.guessed_names()
        overrides_applied = self._apply_overrides(pending, overrides)
        to_fetch = [name for name in pending if name not in overrides]
        if limit is not None:
            to_fetch = to_fetch[: max(limit, 0)]
        resolved = not_found = errors = lookups = 0
        try:
            for index, guild_name in enumerate(to_fetch):
                if index > 0:
                    self._sleep(self._interval_seconds)
                try:
                    prefix = self._client.fetch_prefix(guild_name)
                except HistoryRegistryError as error:
                    errors += 1
                    _LOGGER.warning("prefix_lookup_failed", guild_name=guild_name, error=str(error))
                    continue
                lookups += 1
                if prefix is None:
                    not_found += 1
                    guessed = guess_prefix(guild_name)
                    self._record(overrides, guild_name, guessed, PREFIX_SOURCE_NOT_FOUND)
                else:
                    resolved += 1
                    self._record(overrides, guild_name, prefix, PREFIX_SOURCE_REGISTRY)
                if lookups % self._checkpoint_interval == 0:
                    self._override_store.save(overrides)
        finally:
            if lookups:
                self._override_store.save(overrides)
        summary = ResolutionSummary(
            pending_count=len(pending),
            resolved_count=resolved,
            not_found_count=not_found,
            error_count=errors,
            overrides_applied=overrides_applied,
        )
        _LOGGER.info(
            "prefix_resolution_completed",
            pending_count=summary.pending_count,
            resolved_count=summary.resolved_count,
            not_found_count=summary.not_found_count,
            error_count=summary.error_count,
            overrides_applied=summary.overrides_applied,
        )
        return summary

    def _apply_overrides(self, pending: list[str], overrides: dict[str, PrefixOverride]) -> int:
        applied = 0
        for guild_name in pending:
            override = overrides.get(guild_name)
            if override is None:
                continue
            source = override.source or PREFIX_SOURCE_REGISTRY
            self._registry.set_prefix(guild_name, override.prefix, source)
            applied += 1
        return applied

    def _record(
        self,
        overrides: dict[str, PrefixOverride],
        guild_name: str,
        prefix: str,
        source: str,
    ) -> None:
        overrides[guild_name] = PrefixOverride(prefix=prefix, source=source)
        self._registry.set_prefix(guild_name, prefix, source)
        _LOGGER.info("prefix_resolved", guild_name=guild_name, guild_prefix=prefix, source=source)
