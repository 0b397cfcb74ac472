"""Unit tests for CLI command handling."""

from __future__ import annotations

import json

import pytest

from cli.main import main
from tests.fixture_paths import fixture_path


@pytest.fixture(autouse=True)
def _isolated_env(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.delenv("HISTORY_DATABASE_PATH", raising=False)


def _run(tmp_path, *args: str) -> int:
    return main(["--data-root", str(tmp_path), *args])


def _import_fixture(tmp_path) -> None:
    _run(tmp_path, "import", str(fixture_path("exports/exchange_export.csv")))


def test_cli_import_prints_counters(tmp_path, capsys) -> None:
    """CLI import should report inserted rows as key=value lines."""
    exit_code = _run(tmp_path, "import", str(fixture_path("exports/exchange_export.csv")))
    output = capsys.readouterr().out

    assert exit_code == 0 and "inserted=3" in output.splitlines()


def test_cli_import_dry_run_inserts_nothing(tmp_path, capsys) -> None:
    """Dry-run imports should say so and insert zero rows."""
    _run(tmp_path, "import", str(fixture_path("exports/war_log.csv")), "--dry-run")
    lines = capsys.readouterr().out.splitlines()

    assert "inserted=0" in lines and "dry_run=true" in lines


def test_cli_bounds_prints_json(tmp_path, capsys) -> None:
    """Bounds should print the covered range as JSON."""
    _import_fixture(tmp_path)
    capsys.readouterr()

    exit_code = _run(tmp_path, "bounds")
    payload = json.loads(capsys.readouterr().out)

    assert exit_code == 0 and payload["gaps"] == []


def test_cli_bounds_on_empty_history_fails(tmp_path, capsys) -> None:
    """An empty store should produce an error line and exit code 1."""
    exit_code = _run(tmp_path, "bounds")
    output = capsys.readouterr().out

    assert exit_code == 1 and output.startswith("error=")


def test_cli_snapshot_at_accepts_unix_seconds(tmp_path, capsys) -> None:
    """snapshot-at should accept unix seconds and print ownership JSON."""
    _import_fixture(tmp_path)
    capsys.readouterr()

    _run(tmp_path, "snapshot-at", "1600001300")
    payload = json.loads(capsys.readouterr().out)

    assert payload["ownership"]["Detlas"] == {"g": "BET", "n": "Beta Squad"}


def test_cli_snapshot_at_rejects_invalid_timestamp(tmp_path, capsys) -> None:
    """Unparseable timestamps should fail without querying."""
    exit_code = _run(tmp_path, "snapshot-at", "yesterday")

    assert exit_code == 1 and "Invalid timestamp" in capsys.readouterr().out


def test_cli_export_history_writes_default_file(tmp_path, capsys) -> None:
    """export-history should default to a file under the data root."""
    _import_fixture(tmp_path)

    _run(tmp_path, "export-history")
    payload = json.loads((tmp_path / "history-stream.json").read_text(encoding="utf-8"))

    assert payload["territories"] == ["Ragni", "Detlas"]


def test_cli_dedup_events_reports_counts(tmp_path, capsys) -> None:
    """dedup-events should report before, after, and removed counts."""
    _import_fixture(tmp_path)
    capsys.readouterr()

    _run(tmp_path, "dedup-events")
    lines = capsys.readouterr().out.splitlines()

    assert lines == ["before=3", "after=3", "removed=0"]


def test_cli_backfill_without_snapshots_is_a_no_op(tmp_path, capsys) -> None:
    """Backfill with no snapshots should report zero work."""
    exit_code = _run(tmp_path, "backfill-snapshots")
    lines = capsys.readouterr().out.splitlines()

    assert exit_code == 0 and "inserted=0" in lines


def test_cli_snapshot_at_rejects_out_of_range_seconds(tmp_path, capsys) -> None:
    """Unix seconds beyond the calendar should be reported as an invalid timestamp."""
    exit_code = _run(tmp_path, "snapshot-at", "99999999999999")

    assert exit_code == 1 and "Invalid timestamp" in capsys.readouterr().out


def test_cli_history_range_prints_initial_state(tmp_path, capsys) -> None:
    """history-range should print the window's events with the owners at its start."""
    _import_fixture(tmp_path)
    capsys.readouterr()

    exit_code = _run(tmp_path, "history-range", "1600000300", "1600001300")
    payload = json.loads(capsys.readouterr().out)

    assert exit_code == 0
    assert payload["territories"] == ["Ragni", "Detlas"]
    assert payload["initialState"] == [[0, 0]]
    assert payload["events"] == [[1600000600, 0, 1], [1600001200, 1, 1]]


def test_cli_history_range_rejects_invalid_end(tmp_path, capsys) -> None:
    """An unparseable end should fail before querying."""
    exit_code = _run(tmp_path, "history-range", "1600000300", "later")

    assert exit_code == 1 and "Invalid timestamp 'later'" in capsys.readouterr().out


def test_cli_snapshot_series_prints_a_page(tmp_path, capsys) -> None:
    """snapshot-series should print a page of replayed ten-minute snapshots."""
    _import_fixture(tmp_path)
    capsys.readouterr()

    _run(tmp_path, "snapshot-series", "1600001300", "--limit", "2")
    payload = json.loads(capsys.readouterr().out)

    assert (payload["source"], payload["count"], payload["hasMore"]) == ("exchanges", 2, True)
    assert payload["snapshots"][0]["timestamp"] == "2020-09-13T12:30:00.000Z"
