"""Unit tests for the guild registry HTTP client."""

from __future__ import annotations

import httpx
import pytest

from core.errors import HistoryRegistryError
from ingest.guild_registry import GuildRegistryClient

_BASE_URL = "https://registry.test/v3/guild"


def _client(handler, sleeps: list[float] | None = None) -> GuildRegistryClient:
    recorder = sleeps if sleeps is not None else []
    return GuildRegistryClient(
        _BASE_URL,
        timeout_seconds=1.0,
        transport=httpx.MockTransport(handler),
        sleep=recorder.append,
    )


def test_fetch_prefix_returns_registry_prefix() -> None:
    """A 200 answer should yield the stripped prefix."""
    client = _client(lambda request: httpx.Response(200, json={"prefix": " AG "}))

    assert client.fetch_prefix("Alpha Guild") == "AG"


def test_fetch_prefix_quotes_guild_name() -> None:
    """Guild names with spaces should be sent as one encoded path segment."""
    seen: list[str] = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request.url.path)
        return httpx.Response(200, json={"prefix": "AG"})

    _client(handler).fetch_prefix("Alpha Guild")

    assert seen == ["/v3/guild/Alpha Guild"]


def test_fetch_prefix_returns_none_for_unknown_guild() -> None:
    """A 404 answer should mean the registry does not know the guild."""
    client = _client(lambda request: httpx.Response(404))

    assert client.fetch_prefix("Gone Guild") is None


def test_fetch_prefix_retries_once_after_rate_limit() -> None:
    """A 429 should back off and retry exactly once."""
    statuses = iter([429, 200])
    sleeps: list[float] = []

    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(next(statuses), json={"prefix": "AG"})

    prefix = _client(handler, sleeps).fetch_prefix("Alpha Guild")

    assert (prefix, sleeps) == ("AG", [5.0])


def test_fetch_prefix_raises_on_repeated_rate_limit() -> None:
    """A second 429 should surface as a registry error."""
    client = _client(lambda request: httpx.Response(429))

    with pytest.raises(HistoryRegistryError):
        client.fetch_prefix("Alpha Guild")


def test_fetch_prefix_raises_on_server_error() -> None:
    """Unexpected statuses should raise instead of guessing."""
    client = _client(lambda request: httpx.Response(500))

    with pytest.raises(HistoryRegistryError):
        client.fetch_prefix("Alpha Guild")


def test_fetch_prefix_wraps_transport_errors() -> None:
    """Network failures should become registry errors."""

    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("connection refused", request=request)

    with pytest.raises(HistoryRegistryError):
        _client(handler).fetch_prefix("Alpha Guild")


def test_fetch_prefix_treats_blank_prefix_as_unknown() -> None:
    """A body without a usable prefix should be treated like not found."""
    client = _client(lambda request: httpx.Response(200, json={"prefix": ""}))

    assert client.fetch_prefix("Alpha Guild") is None
