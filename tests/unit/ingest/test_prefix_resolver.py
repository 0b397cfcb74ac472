"""Unit tests for guild prefix resolution."""

from __future__ import annotations

import json

import httpx
import pytest

from ingest.guild_registry import GuildRegistryClient
from ingest.prefix_resolver import GuildPrefixResolver
from store.prefix_overrides import PrefixOverride, PrefixOverrideStore
from store.prefix_registry import GuildPrefixRegistry
from tests.history_builders import open_database

_REGISTRY_ANSWERS = {"Alpha Guild": "AG", "Beta Squad": "BSQ"}


class _RegistryStub:
    """Serve prefixes from a dict and count requests per guild."""

    def __init__(self, answers: dict[str, str], failing: set[str] | None = None) -> None:
        self.answers = answers
        self.failing = failing or set()
        self.requested: list[str] = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        guild_name = request.url.path.rsplit("/", 1)[-1]
        self.requested.append(guild_name)
        if guild_name in self.failing:
            raise httpx.ConnectError("connection reset", request=request)
        if guild_name not in self.answers:
            return httpx.Response(404)
        return httpx.Response(200, json={"prefix": self.answers[guild_name]})


def _resolver(tmp_path, stub: _RegistryStub, sleep=None):
    registry = GuildPrefixRegistry(open_database(tmp_path))
    overrides = PrefixOverrideStore(tmp_path / "overrides.json")
    client = GuildRegistryClient(
        "https://registry.test/v3/guild",
        timeout_seconds=1.0,
        transport=httpx.MockTransport(stub),
        sleep=lambda seconds: None,
    )
    resolver = GuildPrefixResolver(
        registry,
        overrides,
        client,
        interval_seconds=0.25,
        sleep=sleep or (lambda seconds: None),
    )
    return resolver, registry, overrides


def test_resolve_pending_upgrades_guessed_prefixes(tmp_path) -> None:
    """Registry answers should replace guessed prefixes."""
    resolver, registry, _ = _resolver(tmp_path, _RegistryStub(_REGISTRY_ANSWERS))
    resolver.register_guessed(["Alpha Guild", "Beta Squad"])

    resolver.resolve_pending()

    assert registry.prefix_map() == {"Alpha Guild": "AG", "Beta Squad": "BSQ"}


def test_resolve_pending_paces_requests(tmp_path) -> None:
    """The fixed delay should separate consecutive lookups only."""
    sleeps: list[float] = []
    resolver, _, _ = _resolver(tmp_path, _RegistryStub(_REGISTRY_ANSWERS), sleeps.append)
    resolver.register_guessed(["Alpha Guild", "Beta Squad", "Gamma Order"])

    resolver.resolve_pending()

    assert sleeps == [0.25, 0.25]


def test_not_found_is_recorded_and_not_requeried(tmp_path) -> None:
    """Unknown guilds keep the guessed prefix and are skipped on later runs."""
    stub = _RegistryStub({})
    resolver, registry, _ = _resolver(tmp_path, stub)
    resolver.register_guessed(["Gone Guild"])
    resolver.resolve_pending()

    second = resolver.resolve_pending()

    assert (stub.requested, second.pending_count) == (["Gone Guild"], 0)
    assert registry.entries()[0].source == "not-found"


def test_lookup_errors_leave_guess_for_retry(tmp_path) -> None:
    """Failed lookups should be counted but not recorded anywhere."""
    stub = _RegistryStub(_REGISTRY_ANSWERS, failing={"Alpha Guild"})
    resolver, registry, overrides = _resolver(tmp_path, stub)
    resolver.register_guessed(["Alpha Guild", "Beta Squad"])

    summary = resolver.resolve_pending()

    assert (summary.error_count, summary.resolved_count) == (1, 1)
    assert registry.guessed_names() == ["Alpha Guild"]
    assert "Alpha Guild" not in overrides.load()


def test_overrides_are_applied_without_requests(tmp_path) -> None:
    """Guilds in the durable override file should never hit the registry."""
    stub = _RegistryStub(_REGISTRY_ANSWERS)
    resolver, registry, overrides = _resolver(tmp_path, stub)
    overrides.save({"Alpha Guild": PrefixOverride(prefix="OLD", source="registry")})
    resolver.register_guessed(["Alpha Guild"])

    summary = resolver.resolve_pending()

    assert (summary.overrides_applied, stub.requested) == (1, [])
    assert registry.prefix_map() == {"Alpha Guild": "OLD"}


def test_limit_caps_registry_lookups(tmp_path) -> None:
    """A limit should stop after that many lookups."""
    stub = _RegistryStub(_REGISTRY_ANSWERS)
    resolver, _, _ = _resolver(tmp_path, stub)
    resolver.register_guessed(["Alpha Guild", "Beta Squad"])

    resolver.resolve_pending(limit=1)

    assert stub.requested == ["Alpha Guild"]


def test_answers_are_checkpointed_when_run_is_interrupted(tmp_path) -> None:
    """Resolved answers should reach the override file even if the run aborts."""

    def interrupting_sleep(seconds: float) -> None:
        raise KeyboardInterrupt

    stub = _RegistryStub(_REGISTRY_ANSWERS)
    resolver, _, overrides = _resolver(tmp_path, stub, interrupting_sleep)
    resolver.register_guessed(["Alpha Guild", "Beta Squad"])

    with pytest.raises(KeyboardInterrupt):
        resolver.resolve_pending()

    saved = json.loads(overrides.path.read_text(encoding="utf-8"))
    assert saved == {"Alpha Guild": {"prefix": "AG", "source": "registry"}}
