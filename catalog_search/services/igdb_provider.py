"""IGDB enrichment provider: searches IGDB and caches what it finds."""

import asyncio
import os
import time
from collections.abc import Callable
from typing import Any

import httpx
import structlog

from ..models import CatalogEntry
from .catalog_store import CatalogStore
from .errors import ProviderError
from .http_client import HttpClientService

log = structlog.stdlib.get_logger()

GAMES_URL = "https://api.igdb.com/v4/games"
TOKEN_URL = "https://id.twitch.tv/oauth2/token"

# Refresh the access token when less than this many seconds remain
MINIMUM_TOKEN_TTL = 60.0

GAME_FIELDS = (
    "id,name,category,game_type,first_release_date,"
    "aggregated_rating,aggregated_rating_count,hypes,"
    "franchise.name,franchises.name"
)


def build_search_body(query: str, limit: int) -> str:
    """Build the Apicalypse body of a game search."""
    escaped = query.replace("\\", "\\\\").replace('"', '\\"')
    return f'search "{escaped}";\nfields {GAME_FIELDS};\nlimit {limit};'


def _as_code(value: Any) -> int | None:
    # Expanded enum fields come back as {"id": ..., "type": ...}
    if isinstance(value, dict):
        value = value.get("id")
    if isinstance(value, bool) or not isinstance(value, int):
        return None
    return value


def _as_number(value: Any) -> float | None:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return None
    return float(value)


def _as_count(value: Any) -> int | None:
    if isinstance(value, bool) or not isinstance(value, int):
        return None
    return value


def normalize_game(raw: dict[str, Any]) -> tuple[int, dict[str, Any]] | None:
    """Turn an IGDB game object into a catalog id and upsert fields.

    Returns:
        (id, fields), or None if the game has no usable id or name
    """
    game_id = raw.get("id")
    title = raw.get("name")
    if isinstance(game_id, bool) or not isinstance(game_id, int):
        return None
    if not isinstance(title, str) or not title.strip():
        return None

    # game_type replaced the deprecated category field
    category = _as_code(raw.get("game_type"))
    if category is None:
        category = _as_code(raw.get("category"))

    release_date = raw.get("first_release_date")
    fields = {
        "title": title.strip(),
        "category": category,
        "aggregated_rating": _as_number(raw.get("aggregated_rating")),
        "aggregated_rating_count": _as_count(raw.get("aggregated_rating_count")),
        "hype_count": _as_count(raw.get("hypes")),
        "first_release_date": _as_count(release_date),
        "franchise": raw.get("franchise"),
        "franchises": raw.get("franchises"),
    }
    return game_id, fields


class IgdbEnrichmentProvider:
    """Searches IGDB for games and upserts the results into the catalog."""

    def __init__(
        self,
        http_client: HttpClientService,
        store: CatalogStore,
        client_id: str | None,
        client_secret: str | None,
        clock: Callable[[], float] = time.time,
    ) -> None:
        """Initialize the IGDB provider.

        Args:
            http_client: HTTP client used for Twitch and IGDB calls
            store: Catalog the fetched games are written to
            client_id: Twitch application client id
            client_secret: Twitch application client secret
            clock: Source of the current time in epoch seconds
        """
        self._http = http_client
        self._store = store
        self._client_id = client_id
        self._client_secret = client_secret
        self._clock = clock
        self._access_token: str | None = None
        self._token_expires_at: float = 0.0
        self._token_lock = asyncio.Lock()

        log.info("IGDB provider initialized", credentials_configured=self.is_configured)

    @classmethod
    def from_env(cls, http_client: HttpClientService, store: CatalogStore) -> "IgdbEnrichmentProvider":
        """Create a provider using IGDB_CLIENT_ID and IGDB_CLIENT_SECRET."""
        return cls(
            http_client,
            store,
            client_id=os.getenv("IGDB_CLIENT_ID"),
            client_secret=os.getenv("IGDB_CLIENT_SECRET"),
        )

    @property
    def is_configured(self) -> bool:
        return bool(self._client_id and self._client_secret)

    async def enrich(self, query: str, limit: int, min_cached_results: int) -> list[CatalogEntry]:
        """Search IGDB and cache every game found.

        Args:
            query: Normalized search text
            limit: Number of results the caller displays
            min_cached_results: Cached hit count the caller wants to reach

        Returns:
            The catalog entries written for the fetched games

        Raises:
            ProviderError: If IGDB cannot be queried or answers with garbage
        """
        if not self.is_configured:
            raise ProviderError("IGDB credentials are not configured", query=query)

        fetch_limit = max(limit, min_cached_results)
        log.debug("Searching IGDB", query=query, limit=fetch_limit)

        try:
            token = await self._get_access_token()
            response = await self._http.post(
                GAMES_URL,
                headers={
                    "Client-ID": self._client_id or "",
                    "Authorization": f"Bearer {token}",
                    "Content-Type": "text/plain",
                },
                content=build_search_body(query, fetch_limit),
            )
            raw_games = response.json()
        except httpx.HTTPStatusError as e:
            if e.response.status_code == 401:
                # Token revoked before its expiry; fetch a new one next time
                self._access_token = None
            raise ProviderError(
                "IGDB request failed",
                query=query,
                status_code=e.response.status_code,
                original_error=e,
            ) from e
        except (httpx.HTTPError, ValueError) as e:
            raise ProviderError("IGDB request failed", query=query, original_error=e) from e

        if not isinstance(raw_games, list):
            raise ProviderError("IGDB returned an unexpected payload", query=query)

        entries: list[CatalogEntry] = []
        for raw in raw_games:
            normalized = normalize_game(raw) if isinstance(raw, dict) else None
            if normalized is None:
                log.debug("Skipping unusable IGDB game", payload=str(raw)[:100])
                continue
            game_id, fields = normalized
            entries.append(self._store.upsert(game_id, fields))

        log.info("IGDB search cached", query=query, fetched=len(raw_games), cached=len(entries))
        return entries

    async def _get_access_token(self) -> str:
        async with self._token_lock:
            now = self._clock()
            if self._access_token and self._token_expires_at - now > MINIMUM_TOKEN_TTL:
                return self._access_token

            log.debug("Requesting IGDB access token")
            response = await self._http.post(
                TOKEN_URL,
                data={
                    "client_id": self._client_id or "",
                    "client_secret": self._client_secret or "",
                    "grant_type": "client_credentials",
                },
            )
            payload = response.json()
            try:
                access_token = str(payload["access_token"])
                expires_in = float(payload["expires_in"])
            except (KeyError, TypeError) as e:
                raise ValueError(f"Malformed token response: {e}") from e

            self._access_token = access_token
            self._token_expires_at = now + expires_in
            log.info("IGDB access token refreshed", expires_in=expires_in)
            return access_token
