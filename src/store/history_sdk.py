"""Python SDK for territory history operations.

This module wires the stores, importers, and query services to one
runtime configuration. The CLI and embedders use it as the single
entry point.
"""

from __future__ import annotations

from datetime import datetime, timedelta
from typing import Any, Callable

import httpx

from core.config import HistoryConfig
from core.constants import RANGED_STREAM_MAX_DAYS
from core.errors import HistoryNotFoundError, HistoryQueryError
from core.time_utils import ensure_utc, isoformat_z
from core.types import (
    BackfillOptions,
    BackfillSummary,
    DedupReport,
    HistoryStream,
    ImportOptions,
    ImportSummary,
    RangedHistoryStream,
    ReconstructionResult,
    ResolutionSummary,
    Snapshot,
    SnapshotSeries,
    TimeRange,
)
from ingest.file_import import import_exchange_file
from ingest.guild_registry import GuildRegistryClient
from ingest.prefix_resolver import GuildPrefixResolver
from ingest.snapshot_backfill import backfill_snapshot_events
from serve.compact_encoding import (
    encode_event_range,
    encode_event_stream,
    history_payload,
    ranged_history_payload,
)
from serve.reconstruction import Reconstructor, to_payload
from serve.snapshot_series import SnapshotSeriesBuilder, snapshot_series_payload
from store.database import HistoryDatabase
from store.event_store import EventStore
from store.history_export import export_history_payload
from store.prefix_overrides import PrefixOverrideStore
from store.prefix_registry import GuildPrefixRegistry
from store.snapshot_store import SnapshotStore
from transforms.chain_breaks import ChainBreak, find_chain_breaks


class HistoryClient:
    """Primary SDK entry point for territory history workflows."""

    def __init__(
        self,
        config: HistoryConfig | None = None,
        registry_transport: httpx.BaseTransport | None = None,
        sleep: Callable[[float], None] | None = None,
    ) -> None:
        """Create SDK client.

        Args:
            config: Optional runtime configuration.
            registry_transport: Optional HTTP transport for the guild registry.
            sleep: Optional sleeper used for registry pacing.
        """
        self._config = config or HistoryConfig.from_env()
        self._database = HistoryDatabase(self._config.resolved_database_path())
        self.events = EventStore(self._database)
        self.snapshots = SnapshotStore(self._database)
        self.prefixes = GuildPrefixRegistry(self._database)
        self._registry_transport = registry_transport
        self._sleep = sleep

    @property
    def config(self) -> HistoryConfig:
        return self._config

    def import_file(self, options: ImportOptions) -> ImportSummary:
        """Import one CSV or JSON exchange export.

        Args:
            options: Import options.

        Returns:
            Import counters.

        Raises:
            HistoryIngestError: If the source is unreadable.
            HistoryStoreError: If inserts fail.
        """
        if not options.resolve_prefixes or options.dry_run:
            return import_exchange_file(options, self.events, self.prefixes)
        with self._registry_client() as registry_client:
            resolver = self._build_resolver(registry_client)
            return import_exchange_file(options, self.events, self.prefixes, resolver)

    def backfill_snapshots(self, options: BackfillOptions | None = None) -> BackfillSummary:
        """Synthesize events from snapshots that predate the live log.

        Raises:
            HistoryIngestError: If the backfill range overlaps existing events.
        """
        return backfill_snapshot_events(
            options or BackfillOptions(),
            self.snapshots,
            self.events,
            self.prefixes,
        )

    def resolve_prefixes(self, limit: int | None = None) -> ResolutionSummary:
        """Resolve guessed guild prefixes against the external registry."""
        with self._registry_client() as registry_client:
            return self._build_resolver(registry_client).resolve_pending(limit=limit)

    def deduplicate_events(self) -> DedupReport:
        """Collapse exact duplicate events with the verified copy-and-swap.

        Raises:
            HistoryStoreError: If verification fails; nothing is changed.
        """
        return self.events.deduplicate()

    def record_snapshot(self, snapshot: Snapshot) -> None:
        """Store a snapshot on behalf of the live poller."""
        self.snapshots.append(snapshot)

    def reconstruct_at(self, instant: datetime) -> ReconstructionResult:
        """Reconstruct ownership at an instant.

        Raises:
            HistoryNotFoundError: If no data can answer the query.
        """
        reconstructor = Reconstructor(self.snapshots, self.events, self.prefixes)
        return reconstructor.reconstruct_at(instant)

    def snapshot_at(self, instant: datetime) -> dict[str, Any]:
        """Return the external snapshot payload for an instant."""
        return to_payload(self.reconstruct_at(instant))

    def history_stream(self) -> HistoryStream:
        """Encode the full timeline with its reliable bounds."""
        stream = encode_event_stream(self.events.query(), self.prefixes.prefix_map())
        bounds = self.events.bounds()
        return HistoryStream(
            stream=stream,
            earliest=self.snapshots.full_coverage_time(self.events),
            latest=bounds[1] if bounds else None,
        )

    def full_history(self) -> dict[str, Any]:
        """Return the external full-history payload."""
        return history_payload(self.history_stream())

    def encode_event_range(self, start: datetime, end: datetime) -> RangedHistoryStream:
        """Encode events in (start, end] with each territory's owner at start.

        The end is clamped so the window spans at most the ranged maximum.

        Raises:
            HistoryQueryError: If end is not after start.
        """
        start = ensure_utc(start)
        end = ensure_utc(end)
        if end <= start:
            raise HistoryQueryError(
                f"Invalid history range {isoformat_z(start)} to {isoformat_z(end)}: "
                "the end must be after the start."
            )
        try:
            capped_end = start + timedelta(days=RANGED_STREAM_MAX_DAYS)
        except OverflowError:
            capped_end = end
        end = min(end, capped_end)
        return encode_event_range(
            self.events.latest_owners_at_or_before(start),
            self.events.query(TimeRange(start=start, end=end)),
            start,
            end,
            self.prefixes.prefix_map(),
        )

    def ranged_history(self, start: datetime, end: datetime) -> dict[str, Any]:
        """Return the external bounded-window payload."""
        return ranged_history_payload(self.encode_event_range(start, end))

    def snapshots_in_range(self, center: datetime) -> SnapshotSeries:
        """Return the snapshot series for the window around center."""
        builder = SnapshotSeriesBuilder(self.snapshots, self.events, self.prefixes)
        return builder.series_around(center)

    def snapshot_series(
        self,
        center: datetime,
        limit: int | None = None,
        offset: int = 0,
    ) -> dict[str, Any]:
        """Return one page of the external snapshot series payload."""
        return snapshot_series_payload(self.snapshots_in_range(center), limit, offset)

    def bounds(self) -> dict[str, Any]:
        """Return earliest and latest history times plus multi-day gaps.

        Raises:
            HistoryNotFoundError: If the event log is empty.
        """
        event_bounds = self.events.bounds()
        if event_bounds is None:
            raise HistoryNotFoundError(
                "No territory history is available. Import exchange history first."
            )
        earliest = self.snapshots.full_coverage_time(self.events) or event_bounds[0]
        return {
            "earliest": isoformat_z(earliest),
            "latest": isoformat_z(event_bounds[1]),
            "gaps": [
                {"start": isoformat_z(gap.start), "end": isoformat_z(gap.end)}
                for gap in self.events.find_gaps()
            ],
        }

    def chain_breaks(self) -> list[ChainBreak]:
        """List events whose defender does not match the prior attacker."""
        return find_chain_breaks(self.events.query())

    def export_history(self, output_uri: str, s3_client: Any | None = None) -> str:
        """Write the full-history payload to a local path or ``s3://`` URI.

        Raises:
            HistoryStoreError: If the destination cannot be written.
            HistoryDependencyError: If S3 export is requested without boto3.
        """
        return export_history_payload(self.full_history(), output_uri, self._config, s3_client)

    def _registry_client(self) -> GuildRegistryClient:
        return GuildRegistryClient.from_config(
            self._config,
            transport=self._registry_transport,
            sleep=self._sleep,
        )

    def _build_resolver(self, registry_client: GuildRegistryClient) -> GuildPrefixResolver:
        return GuildPrefixResolver(
            self.prefixes,
            PrefixOverrideStore(self._config.overrides_path()),
            registry_client,
            interval_seconds=self._config.registry_interval_seconds,
            sleep=self._sleep,
        )
