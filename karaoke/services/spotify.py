"""
Karaoke Queue Service - Spotify Catalog Client

Client-credentials access to the Spotify Web API for catalog import.

The app token lives in an explicit :class:`TokenCache` owned by the
client and built in the application lifespan; nothing is cached at
module level.  Tests inject a cache with a fake clock and an
``httpx.AsyncClient`` backed by ``httpx.MockTransport``.
"""

from __future__ import annotations

import time
from dataclasses import dataclass, field
from typing import Any, Callable, Optional

import httpx
from loguru import logger

from karaoke.config import (
    HTTP_TIMEOUT,
    SPOTIFY_ACCOUNTS_URL,
    SPOTIFY_API_URL,
    SPOTIFY_CLIENT_ID,
    SPOTIFY_CLIENT_SECRET,
    SPOTIFY_TOKEN_EXPIRY_MARGIN,
)
from karaoke.errors import InfrastructureError, NotFoundError, ValidationError
from karaoke.models import SongSource, SourceTrack


class TokenCache:
    """Single-value cache with an absolute expiry time."""

    def __init__(self, clock: Callable[[], float] = time.monotonic):
        self._clock = clock
        self._value: Optional[str] = None
        self._expires_at = 0.0

    def get(self) -> Optional[str]:
        if self._value is not None and self._clock() < self._expires_at:
            return self._value
        return None

    def set(self, value: str, ttl: float) -> None:
        self._value = value
        self._expires_at = self._clock() + max(ttl, 0)

    def clear(self) -> None:
        self._value = None
        self._expires_at = 0.0


@dataclass
class SpotifyTrack:
    id: str
    name: str
    artists: list[str]
    album: Optional[str] = None
    duration_ms: Optional[int] = None
    images: list[dict[str, Any]] = field(default_factory=list)

    @classmethod
    def from_api(cls, data: dict[str, Any]) -> SpotifyTrack:
        album = data.get("album") or {}
        return cls(
            id=data["id"],
            name=data.get("name", ""),
            artists=[a.get("name", "") for a in data.get("artists", []) if a.get("name")],
            album=album.get("name"),
            duration_ms=data.get("duration_ms"),
            images=album.get("images") or [],
        )

    @property
    def cover_art_url(self) -> Optional[str]:
        if not self.images:
            return None
        largest = max(self.images, key=lambda img: (img.get("width") or 0) * (img.get("height") or 0))
        return largest.get("url")

    def to_source_track(self) -> SourceTrack:
        if not self.name.strip():
            raise ValidationError("Spotify track has no title", field="title")
        if not self.artists:
            raise ValidationError("Spotify track has no artist", field="artist")
        return SourceTrack(
            title=self.name.strip(),
            artists=tuple(self.artists),
            source=SongSource.SPOTIFY,
            source_id=self.id,
            album=self.album,
            duration_sec=round(self.duration_ms / 1000) if self.duration_ms else None,
            cover_art_url=self.cover_art_url,
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "artists": self.artists,
            "album": self.album,
            "duration_ms": self.duration_ms,
            "cover_art_url": self.cover_art_url,
        }


class SpotifyClient:
    def __init__(
        self,
        client_id: str = SPOTIFY_CLIENT_ID,
        client_secret: str = SPOTIFY_CLIENT_SECRET,
        cache: Optional[TokenCache] = None,
        client: Optional[httpx.AsyncClient] = None,
        accounts_url: str = SPOTIFY_ACCOUNTS_URL,
        api_url: str = SPOTIFY_API_URL,
        expiry_margin: int = SPOTIFY_TOKEN_EXPIRY_MARGIN,
    ):
        self.client_id = client_id
        self.client_secret = client_secret
        self.cache = cache or TokenCache()
        self._client = client
        self._owns_client = client is None
        self.accounts_url = accounts_url.rstrip("/")
        self.api_url = api_url.rstrip("/")
        self.expiry_margin = expiry_margin

    @property
    def is_configured(self) -> bool:
        return bool(self.client_id and self.client_secret)

    def _get_client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(timeout=HTTP_TIMEOUT)
        return self._client

    async def close(self) -> None:
        self.cache.clear()
        if self._client is not None and self._owns_client:
            await self._client.aclose()
            self._client = None

    async def get_app_token(self) -> str:
        """Return a cached client-credentials token, fetching a new one when stale."""
        if not self.is_configured:
            raise InfrastructureError("Spotify integration not configured", {"retryable": False})

        cached = self.cache.get()
        if cached:
            return cached

        try:
            response = await self._get_client().post(
                f"{self.accounts_url}/api/token",
                data={"grant_type": "client_credentials"},
                auth=httpx.BasicAuth(self.client_id, self.client_secret),
            )
            response.raise_for_status()
            payload = response.json()
            token = payload["access_token"]
            ttl = int(payload.get("expires_in", 3600)) - self.expiry_margin
        except (httpx.HTTPError, ValueError, KeyError, TypeError) as e:
            logger.error("❌ Spotify token request failed: {}", e)
            raise InfrastructureError("Spotify token request failed") from e

        self.cache.set(token, ttl)
        logger.debug("🔑 Spotify app token refreshed (ttl={}s)", ttl)
        return token

    async def _get(self, path: str, params: Optional[dict[str, Any]] = None) -> httpx.Response:
        token = await self.get_app_token()
        try:
            response = await self._get_client().get(
                f"{self.api_url}{path}",
                params=params,
                headers={"Authorization": f"Bearer {token}"},
            )
        except httpx.HTTPError as e:
            logger.error("❌ Spotify request {} failed: {}", path, e)
            raise InfrastructureError("Spotify request failed") from e

        if response.status_code == 401:
            # Token revoked early; force a refresh on the next call
            self.cache.clear()
        return response

    async def get_track(self, track_id: str) -> SpotifyTrack:
        if not track_id or not track_id.strip():
            raise ValidationError("track_id is required", field="track_id")
        response = await self._get(f"/tracks/{track_id.strip()}")
        if response.status_code in (400, 404):
            raise NotFoundError("track", track_id)
        if response.is_error:
            logger.error("❌ Spotify track lookup returned HTTP {}", response.status_code)
            raise InfrastructureError(
                "Spotify track lookup failed", {"status": response.status_code}
            )
        try:
            return SpotifyTrack.from_api(response.json())
        except (ValueError, KeyError, TypeError, AttributeError) as e:
            logger.error("❌ Spotify track lookup returned a malformed body: {}", e)
            raise InfrastructureError("Spotify track lookup failed") from e

    async def search_tracks(self, query: str, limit: int = 20) -> list[SpotifyTrack]:
        if not query or not query.strip():
            raise ValidationError("q is required", field="q")
        limit = max(1, min(limit, 50))
        response = await self._get(
            "/search", {"q": query.strip(), "type": "track", "limit": limit}
        )
        if response.is_error:
            logger.error("❌ Spotify search returned HTTP {}", response.status_code)
            raise InfrastructureError("Spotify search failed", {"status": response.status_code})
        try:
            items = response.json().get("tracks", {}).get("items", [])
            return [SpotifyTrack.from_api(item) for item in items]
        except (ValueError, KeyError, TypeError, AttributeError) as e:
            logger.error("❌ Spotify search returned a malformed body: {}", e)
            raise InfrastructureError("Spotify search failed") from e
