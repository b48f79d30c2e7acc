"""Tests for the IGDB enrichment provider."""

import json
from typing import Any
from unittest.mock import AsyncMock

import httpx
import pytest

from catalog_search.services.catalog_store import InMemoryCatalogStore
from catalog_search.services.errors import ErrorCategory, ProviderError
from catalog_search.services.http_client import HttpClientService
from catalog_search.services.igdb_provider import (
    GAMES_URL,
    TOKEN_URL,
    IgdbEnrichmentProvider,
    build_search_body,
    normalize_game,
)


class MockResponse:
    """Minimal stand-in for httpx.Response."""

    def __init__(self, payload: Any) -> None:
        self._payload = payload

    def json(self) -> Any:
        if isinstance(self._payload, Exception):
            raise self._payload
        return self._payload


class Clock:
    def __init__(self, now: float = 1_000_000.0) -> None:
        self.now = now

    def __call__(self) -> float:
        return self.now


TOKEN_RESPONSE = MockResponse({"access_token": "token-1", "expires_in": 3600, "token_type": "bearer"})

GAMES = [
    {
        "id": 1942,
        "name": "The Witcher 3: Wild Hunt",
        "game_type": {"id": 0, "type": "Main Game"},
        "first_release_date": 1431993600,
        "aggregated_rating": 91.3,
        "aggregated_rating_count": 52,
        "hypes": 30,
        "franchise": {"id": 452, "name": "The Witcher"},
        "franchises": [{"id": 452, "name": "The Witcher"}],
    },
    {"id": 11156, "name": "Horizon Zero Dawn", "category": 0},
    {"name": "No id"},
    "not a game",
]


def make_provider(
    http_client: AsyncMock,
    client_id: str | None = "client",
    client_secret: str | None = "secret",
    clock: Clock | None = None,
) -> tuple[IgdbEnrichmentProvider, InMemoryCatalogStore]:
    store = InMemoryCatalogStore()
    provider = IgdbEnrichmentProvider(
        http_client,
        store,
        client_id=client_id,
        client_secret=client_secret,
        clock=clock or Clock(),
    )
    return provider, store


def games_calls(http_client: AsyncMock) -> list[Any]:
    return [call for call in http_client.post.call_args_list if call.args[0] == GAMES_URL]


def token_calls(http_client: AsyncMock) -> list[Any]:
    return [call for call in http_client.post.call_args_list if call.args[0] == TOKEN_URL]


def http_status_error(status_code: int) -> httpx.HTTPStatusError:
    request = httpx.Request("POST", GAMES_URL)
    response = httpx.Response(status_code, request=request)
    return httpx.HTTPStatusError(f"HTTP {status_code}", request=request, response=response)


class TestNormalizeGame:
    """Mapping of IGDB game objects to catalog fields."""

    def test_full_game(self) -> None:
        game_id, fields = normalize_game(GAMES[0])

        assert game_id == 1942
        assert fields["title"] == "The Witcher 3: Wild Hunt"
        assert fields["category"] == 0
        assert fields["aggregated_rating"] == 91.3
        assert fields["aggregated_rating_count"] == 52
        assert fields["hype_count"] == 30
        assert fields["first_release_date"] == 1431993600
        assert fields["franchise"] == {"id": 452, "name": "The Witcher"}

    def test_game_type_takes_precedence_over_category(self) -> None:
        _, fields = normalize_game({"id": 1, "name": "RE4", "game_type": 8, "category": 0})
        assert fields["category"] == 8

    def test_category_is_used_without_game_type(self) -> None:
        _, fields = normalize_game({"id": 1, "name": "Portal", "category": 1})
        assert fields["category"] == 1

    def test_missing_metrics_are_none(self) -> None:
        _, fields = normalize_game({"id": 1, "name": "Portal", "aggregated_rating": "high", "hypes": True})
        assert fields["category"] is None
        assert fields["aggregated_rating"] is None
        assert fields["hype_count"] is None

    @pytest.mark.parametrize("raw", [{"name": "No id"}, {"id": 1}, {"id": 1, "name": "  "}, {"id": "1", "name": "x"}])
    def test_unusable_games(self, raw: dict[str, Any]) -> None:
        assert normalize_game(raw) is None


def test_build_search_body_escapes_quotes() -> None:
    body = build_search_body('say "hi"', 25)

    assert body.startswith('search "say \\"hi\\"";')
    assert "fields " in body
    assert "franchises.name" in body
    assert body.endswith("limit 25;")


@pytest.mark.parametrize(
    ("query", "expected"),
    [
        ("zelda\\", 'search "zelda\\\\";'),
        ('a\\"b', 'search "a\\\\\\"b";'),
    ],
)
def test_build_search_body_escapes_backslashes(query: str, expected: str) -> None:
    assert build_search_body(query, 10).splitlines()[0] == expected


@pytest.mark.asyncio
async def test_enrich_upserts_fetched_games() -> None:
    http_client = AsyncMock(spec=HttpClientService)
    http_client.post.side_effect = [TOKEN_RESPONSE, MockResponse(GAMES)]
    provider, store = make_provider(http_client)

    entries = await provider.enrich("witcher", limit=5, min_cached_results=10)

    assert [entry.id for entry in entries] == [1942, 11156]
    assert len(store) == 2
    witcher = store.get_by_id(1942)
    assert witcher is not None
    assert witcher.franchise_names == ["The Witcher"]

    [call] = games_calls(http_client)
    assert call.kwargs["headers"]["Client-ID"] == "client"
    assert call.kwargs["headers"]["Authorization"] == "Bearer token-1"
    # Asks for enough games to reach the cached minimum
    assert call.kwargs["content"].endswith("limit 10;")

    [token_call] = token_calls(http_client)
    assert token_call.kwargs["data"]["grant_type"] == "client_credentials"


@pytest.mark.asyncio
async def test_access_token_is_reused_until_close_to_expiry() -> None:
    http_client = AsyncMock(spec=HttpClientService)
    http_client.post.side_effect = [
        TOKEN_RESPONSE,
        MockResponse([]),
        MockResponse([]),
        MockResponse({"access_token": "token-2", "expires_in": 3600}),
        MockResponse([]),
    ]
    clock = Clock()
    provider, _ = make_provider(http_client, clock=clock)

    await provider.enrich("a", 20, 10)
    clock.now += 3000
    await provider.enrich("b", 20, 10)
    clock.now += 550
    await provider.enrich("c", 20, 10)

    assert len(token_calls(http_client)) == 2
    assert games_calls(http_client)[-1].kwargs["headers"]["Authorization"] == "Bearer token-2"


@pytest.mark.asyncio
async def test_unconfigured_provider_fails_without_network() -> None:
    http_client = AsyncMock(spec=HttpClientService)
    provider, _ = make_provider(http_client, client_id=None, client_secret=None)

    assert provider.is_configured is False
    with pytest.raises(ProviderError) as exc_info:
        await provider.enrich("zelda", 20, 10)

    assert exc_info.value.category == ErrorCategory.PROVIDER
    http_client.post.assert_not_called()


@pytest.mark.asyncio
async def test_from_env_reads_credentials(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("IGDB_CLIENT_ID", "env-client")
    monkeypatch.setenv("IGDB_CLIENT_SECRET", "env-secret")

    provider = IgdbEnrichmentProvider.from_env(AsyncMock(spec=HttpClientService), InMemoryCatalogStore())

    assert provider.is_configured is True


@pytest.mark.asyncio
async def test_http_status_error_becomes_provider_error() -> None:
    http_client = AsyncMock(spec=HttpClientService)
    http_client.post.side_effect = [TOKEN_RESPONSE, http_status_error(401), TOKEN_RESPONSE, MockResponse([])]
    provider, _ = make_provider(http_client)

    with pytest.raises(ProviderError) as exc_info:
        await provider.enrich("zelda", 20, 10)
    assert exc_info.value.status_code == 401

    # A rejected token is not reused
    await provider.enrich("zelda", 20, 10)
    assert len(token_calls(http_client)) == 2


@pytest.mark.asyncio
async def test_network_error_becomes_provider_error() -> None:
    http_client = AsyncMock(spec=HttpClientService)
    http_client.post.side_effect = httpx.ConnectError("connection refused")
    provider, store = make_provider(http_client)

    with pytest.raises(ProviderError) as exc_info:
        await provider.enrich("zelda", 20, 10)

    assert isinstance(exc_info.value.original_error, httpx.ConnectError)
    assert len(store) == 0


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "payload",
    [
        {"message": "not a list"},
        json.JSONDecodeError("Expecting value", "<html>", 0),
    ],
)
async def test_garbage_payload_becomes_provider_error(payload: Any) -> None:
    http_client = AsyncMock(spec=HttpClientService)
    http_client.post.side_effect = [TOKEN_RESPONSE, MockResponse(payload)]
    provider, store = make_provider(http_client)

    with pytest.raises(ProviderError):
        await provider.enrich("zelda", 20, 10)
    assert len(store) == 0


@pytest.mark.asyncio
async def test_malformed_token_response_becomes_provider_error() -> None:
    http_client = AsyncMock(spec=HttpClientService)
    http_client.post.side_effect = [MockResponse({"error": "invalid_client"})]
    provider, _ = make_provider(http_client)

    with pytest.raises(ProviderError):
        await provider.enrich("zelda", 20, 10)
    assert games_calls(http_client) == []
