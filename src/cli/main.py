"""Territory history CLI entry points.

This module exposes operator commands for imports, backfill, prefix
resolution, maintenance, and history queries. It maps argparse commands
onto SDK calls.
"""

from __future__ import annotations

import argparse
from dataclasses import replace
from datetime import datetime
import json
from pathlib import Path
from typing import Any, Sequence

from core.config import HistoryConfig
from core.constants import HISTORY_EXPORT_FILE_NAME, SUPPORTED_IMPORT_FORMATS
from core.errors import HistoryError
from core.time_utils import isoformat_z, parse_epoch_seconds, parse_timestamp
from core.types import BackfillOptions, ImportOptions
from store.history_sdk import HistoryClient


def build_parser() -> argparse.ArgumentParser:
    """Build the top-level CLI parser.

    Returns:
        Configured argument parser.
    """
    parser = argparse.ArgumentParser(
        prog="territory-history",
        description="Territory ownership history CLI",
    )
    parser.add_argument("--data-root", help="Override HISTORY_DATA_ROOT for this command")
    subparsers = parser.add_subparsers(dest="command", required=True)
    _add_import_command(subparsers)
    _add_backfill_command(subparsers)
    _add_resolve_prefixes_command(subparsers)
    subparsers.add_parser("dedup-events", help="Collapse exact duplicate exchange events")
    _add_snapshot_at_command(subparsers)
    _add_history_range_command(subparsers)
    _add_snapshot_series_command(subparsers)
    _add_export_history_command(subparsers)
    subparsers.add_parser("bounds", help="Print history bounds and multi-day gaps")
    return parser


def main(argv: Sequence[str] | None = None) -> int:
    """Run the territory history CLI.

    Args:
        argv: Optional argument vector.

    Returns:
        Process exit code.
    """
    parser = build_parser()
    args = parser.parse_args(argv)
    try:
        client = _build_client(args.data_root)
        return _dispatch(client, args)
    except HistoryError as error:
        print(f"error={error}")
        return 1


def _dispatch(client: HistoryClient, args: argparse.Namespace) -> int:
    """Route parsed args to a command handler."""
    if args.command == "import":
        return _run_import_command(client, args)
    if args.command == "backfill-snapshots":
        return _run_backfill_command(client, args)
    if args.command == "resolve-prefixes":
        return _run_resolve_prefixes_command(client, args)
    if args.command == "dedup-events":
        return _run_dedup_command(client)
    if args.command == "snapshot-at":
        return _run_snapshot_at_command(client, args)
    if args.command == "history-range":
        return _run_history_range_command(client, args)
    if args.command == "snapshot-series":
        return _run_snapshot_series_command(client, args)
    if args.command == "export-history":
        return _run_export_history_command(client, args)
    if args.command == "bounds":
        return _print_json(client.bounds())
    print(f"error=Unsupported command: {args.command}")
    return 2


def _build_client(data_root: str | None) -> HistoryClient:
    """Build SDK client with optional data-root override.

    Args:
        data_root: Optional override path.

    Returns:
        Configured SDK client.
    """
    config = HistoryConfig.from_env()
    if data_root:
        config = replace(config, data_root=Path(data_root).expanduser().resolve())
    return HistoryClient(config)


def _run_import_command(client: HistoryClient, args: argparse.Namespace) -> int:
    """Handle import command.

    Args:
        client: SDK client.
        args: Parsed CLI args.

    Returns:
        Exit code.
    """
    options = ImportOptions(
        source_path=args.source,
        source_format=args.format,
        dry_run=args.dry_run,
        resolve_prefixes=args.resolve_prefixes,
    )
    summary = client.import_file(options)
    print(f"source_format={summary.source_format}")
    print(f"parsed={summary.parsed_count}")
    print(f"malformed={summary.malformed_count}")
    print(f"skipped={summary.skipped_count}")
    print(f"intra_batch_duplicates={summary.intra_batch_duplicates}")
    print(f"cross_store_duplicates={summary.cross_store_duplicates}")
    print(f"inserted={summary.inserted_count}")
    print(f"new_guilds={summary.new_guild_count}")
    print(f"earliest={_iso_or_dash(summary.earliest)}")
    print(f"latest={_iso_or_dash(summary.latest)}")
    print(f"dry_run={str(summary.dry_run).lower()}")
    return 0


def _run_backfill_command(client: HistoryClient, args: argparse.Namespace) -> int:
    """Handle backfill-snapshots command."""
    summary = client.backfill_snapshots(BackfillOptions(dry_run=args.dry_run, force=args.force))
    print(f"snapshots={summary.snapshot_count}")
    print(f"events={summary.event_count}")
    print(f"inserted={summary.inserted_count}")
    print(f"cutoff={_iso_or_dash(summary.cutoff)}")
    print(f"dry_run={str(summary.dry_run).lower()}")
    return 0


def _run_resolve_prefixes_command(client: HistoryClient, args: argparse.Namespace) -> int:
    """Handle resolve-prefixes command."""
    summary = client.resolve_prefixes(limit=args.limit)
    print(f"pending={summary.pending_count}")
    print(f"overrides_applied={summary.overrides_applied}")
    print(f"resolved={summary.resolved_count}")
    print(f"not_found={summary.not_found_count}")
    print(f"errors={summary.error_count}")
    return 0


def _run_dedup_command(client: HistoryClient) -> int:
    """Handle dedup-events command."""
    report = client.deduplicate_events()
    print(f"before={report.before_count}")
    print(f"after={report.after_count}")
    print(f"removed={report.removed_count}")
    return 0


def _run_snapshot_at_command(client: HistoryClient, args: argparse.Namespace) -> int:
    """Handle snapshot-at command."""
    instant = _parse_instant(args.timestamp)
    if instant is None:
        return _invalid_timestamp(args.timestamp)
    return _print_json(client.snapshot_at(instant))


def _run_history_range_command(client: HistoryClient, args: argparse.Namespace) -> int:
    """Handle history-range command."""
    start = _parse_instant(args.start)
    end = _parse_instant(args.end)
    if start is None:
        return _invalid_timestamp(args.start)
    if end is None:
        return _invalid_timestamp(args.end)
    return _print_json(client.ranged_history(start, end))


def _run_snapshot_series_command(client: HistoryClient, args: argparse.Namespace) -> int:
    """Handle snapshot-series command."""
    center = _parse_instant(args.center)
    if center is None:
        return _invalid_timestamp(args.center)
    return _print_json(client.snapshot_series(center, limit=args.limit, offset=args.offset))


def _run_export_history_command(client: HistoryClient, args: argparse.Namespace) -> int:
    """Handle export-history command."""
    output = args.output or str(client.config.data_root / HISTORY_EXPORT_FILE_NAME)
    destination = client.export_history(output)
    print(f"output={destination}")
    return 0


def _add_import_command(subparsers: Any) -> None:
    """Register import subcommand."""
    parser = subparsers.add_parser("import", help="Import a CSV or JSON exchange export")
    parser.add_argument("source", help="Export file path")
    parser.add_argument(
        "--format",
        choices=SUPPORTED_IMPORT_FORMATS,
        help="Source format; detected from extension and header when omitted",
    )
    parser.add_argument("--dry-run", action="store_true", help="Report counts without writing")
    parser.add_argument(
        "--resolve-prefixes",
        action="store_true",
        help="Query the guild registry for guessed prefixes after insert",
    )


def _add_backfill_command(subparsers: Any) -> None:
    """Register backfill-snapshots subcommand."""
    parser = subparsers.add_parser(
        "backfill-snapshots",
        help="Synthesize exchange events from snapshots before the live log",
    )
    parser.add_argument("--dry-run", action="store_true", help="Report counts without writing")
    parser.add_argument(
        "--force",
        action="store_true",
        help="Insert even when events already exist in the snapshot range",
    )


def _add_resolve_prefixes_command(subparsers: Any) -> None:
    """Register resolve-prefixes subcommand."""
    parser = subparsers.add_parser(
        "resolve-prefixes",
        help="Resolve guessed guild prefixes against the guild registry",
    )
    parser.add_argument("--limit", type=int, help="Maximum registry lookups for this run")


def _add_snapshot_at_command(subparsers: Any) -> None:
    """Register snapshot-at subcommand."""
    parser = subparsers.add_parser("snapshot-at", help="Print ownership at an instant")
    parser.add_argument("timestamp", help="ISO-8601 timestamp or unix seconds")


def _add_history_range_command(subparsers: Any) -> None:
    """Register history-range subcommand."""
    parser = subparsers.add_parser(
        "history-range",
        help="Print the compact stream for a window with its starting ownership",
    )
    parser.add_argument("start", help="Exclusive window start (ISO-8601 or unix seconds)")
    parser.add_argument("end", help="Inclusive window end (ISO-8601 or unix seconds)")


def _add_snapshot_series_command(subparsers: Any) -> None:
    """Register snapshot-series subcommand."""
    parser = subparsers.add_parser(
        "snapshot-series",
        help="Print snapshots in the week around an instant",
    )
    parser.add_argument("center", help="Window center (ISO-8601 or unix seconds)")
    parser.add_argument("--limit", type=int, help="Maximum snapshots to print")
    parser.add_argument("--offset", type=int, default=0, help="Snapshots to skip")


def _add_export_history_command(subparsers: Any) -> None:
    """Register export-history subcommand."""
    parser = subparsers.add_parser(
        "export-history",
        help="Write the compact full-history payload as JSON",
    )
    parser.add_argument("--output", help="Local path or s3://bucket/key destination")


def _parse_instant(raw_value: str) -> datetime | None:
    """Parse an ISO timestamp or unix seconds."""
    text = raw_value.strip()
    if text.isdigit():
        return parse_epoch_seconds(text)
    return parse_timestamp(text)


def _print_json(payload: dict[str, Any]) -> int:
    print(json.dumps(payload, indent=2, sort_keys=True))
    return 0


def _iso_or_dash(value: datetime | None) -> str:
    return isoformat_z(value) if value is not None else "-"


def _invalid_timestamp(raw_value: str) -> int:
    print(
        f"error=Invalid timestamp '{raw_value}': "
        "expected ISO-8601 or unix seconds. Pass a valid timestamp."
    )
    return 1
