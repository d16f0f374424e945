"""Spotify Web API client with single-shot token refresh.

A request that comes back 401 refreshes the access token once and is
retried; a second 401 (or a failed refresh) raises ``ServiceAuthError``.
"""
from __future__ import annotations

import logging
import re
from typing import Any, Awaitable, Callable
from urllib.parse import urlencode

import httpx

from trapt.config import settings
from trapt.errors import ServiceAuthError, ServiceError

from .http import safe_json, send_with_retry

logger = logging.getLogger(__name__)

SPOTIFY_AUTHORIZE_URL = "https://accounts.spotify.com/authorize"
SPOTIFY_TOKEN_URL = "https://accounts.spotify.com/api/token"
SPOTIFY_API_BASE_URL = "https://api.spotify.com/v1"

AUTH_REQUIRED = "SPOTIFY_AUTH_REQUIRED"
AUTH_EXPIRED = "SPOTIFY_AUTH_EXPIRED"

ADD_TRACKS_BATCH_SIZE = 50

_TRACK_ID_RE = re.compile(r"track[/:]([a-zA-Z0-9]+)")
_PLAYLIST_ID_RE = re.compile(r"playlist[/:]([a-zA-Z0-9]+)")

TokenCallback = Callable[[dict[str, Any]], Awaitable[None] | None]


def extract_track_id(link: str | None) -> str | None:
    """Pull the track id out of an ``open.spotify.com`` link or URI."""
    if not link:
        return None
    match = _TRACK_ID_RE.search(link)
    return match.group(1) if match else None


def extract_playlist_id(value: str | None) -> str | None:
    """Accept a playlist URL, a ``spotify:playlist:`` URI or a bare id."""
    if not value:
        return None
    match = _PLAYLIST_ID_RE.search(value)
    if match:
        return match.group(1)
    if re.fullmatch(r"[a-zA-Z0-9]+", value):
        return value
    return None


def track_uri(link: str | None) -> str | None:
    track_id = extract_track_id(link)
    return f"spotify:track:{track_id}" if track_id else None


def authorize_url(state: str) -> str:
    query = urlencode({
        "response_type": "code",
        "client_id": settings.spotify.client_id,
        "scope": settings.spotify.scopes,
        "redirect_uri": settings.spotify.redirect_uri,
        "state": state,
    })
    return f"{SPOTIFY_AUTHORIZE_URL}?{query}"


async def _token_request(http: httpx.AsyncClient, data: dict[str, str]) -> httpx.Response:
    return await send_with_retry(
        http,
        "POST",
        SPOTIFY_TOKEN_URL,
        data=data,
        auth=(settings.spotify.client_id, settings.spotify.client_secret),
    )


async def exchange_code(http: httpx.AsyncClient, code: str) -> dict[str, Any]:
    """Trade an authorization code for access and refresh tokens."""
    response = await _token_request(http, {
        "grant_type": "authorization_code",
        "code": code,
        "redirect_uri": settings.spotify.redirect_uri,
    })
    data = safe_json(response)
    if response.status_code != 200 or "access_token" not in data:
        logger.error(f"Spotify code exchange failed: {response.status_code}")
        raise ServiceError("Spotify token exchange failed", status_code=response.status_code, payload=data)
    return data


async def refresh_access_token(http: httpx.AsyncClient, refresh_token: str | None) -> dict[str, Any] | None:
    """Refresh once; ``None`` means the caller must re-authenticate."""
    if not refresh_token:
        return None
    try:
        response = await _token_request(http, {
            "grant_type": "refresh_token",
            "refresh_token": refresh_token,
        })
    except httpx.HTTPError as e:
        logger.error(f"Failed to contact Spotify token endpoint: {e}")
        return None

    data = safe_json(response)
    if response.status_code != 200 or not data.get("access_token"):
        logger.warning(f"Spotify token refresh failed: {response.status_code}")
        return None
    logger.info("Refreshed Spotify access token")
    return data


class SpotifyClient:
    """Thin wrapper around the endpoints the app uses."""

    def __init__(
        self,
        http: httpx.AsyncClient,
        access_token: str | None,
        *,
        refresh_token: str | None = None,
        on_refresh: TokenCallback | None = None,
    ) -> None:
        self.http = http
        self.access_token = access_token
        self.refresh_token = refresh_token
        self.on_refresh = on_refresh
        self._refreshed = False

    async def refresh(self) -> str | None:
        """Swap in a new access token; only ever attempted once per client."""
        if self._refreshed:
            return None
        self._refreshed = True
        data = await refresh_access_token(self.http, self.refresh_token)
        if data is None:
            return None
        self.access_token = data["access_token"]
        if data.get("refresh_token"):
            self.refresh_token = data["refresh_token"]
        if self.on_refresh is not None:
            result = self.on_refresh(data)
            if result is not None:
                await result
        return self.access_token

    async def request(self, method: str, path: str, **kwargs) -> httpx.Response:
        """Call the Web API, refreshing and retrying once on 401."""
        if not self.access_token:
            raise ServiceAuthError("Not authenticated with Spotify", code=AUTH_REQUIRED)

        url = path if path.startswith("http") else f"{SPOTIFY_API_BASE_URL}{path}"
        response = await send_with_retry(self.http, method, url, headers=self._headers(), **kwargs)
        if response.status_code != 401:
            return response

        logger.info(f"Spotify returned 401 for {method} {path}; refreshing token")
        if await self.refresh() is None:
            raise ServiceAuthError("Spotify authentication expired", code=AUTH_EXPIRED)

        response = await send_with_retry(self.http, method, url, headers=self._headers(), **kwargs)
        if response.status_code == 401:
            raise ServiceAuthError("Spotify authentication expired", code=AUTH_EXPIRED)
        return response

    def _headers(self) -> dict[str, str]:
        return {"Authorization": f"Bearer {self.access_token}"}

    async def _json(self, method: str, path: str, error: str, **kwargs) -> dict[str, Any]:
        response = await self.request(method, path, **kwargs)
        data = safe_json(response)
        if response.is_error:
            err = data.get("error")
            message = err.get("message") if isinstance(err, dict) else None
            raise ServiceError(message or error, status_code=response.status_code, payload=data)
        return data

    async def me(self) -> dict[str, Any]:
        return await self._json("GET", "/me", "Failed to get user profile")

    async def currently_playing(self) -> dict[str, Any] | None:
        """Return the playback payload, or ``None`` when nothing is playing."""
        response = await self.request("GET", "/me/player/currently-playing")
        if response.status_code == 204 or not response.content:
            return None
        if response.is_error:
            raise ServiceError("Failed to fetch currently playing track", status_code=response.status_code)
        return safe_json(response)

    async def search_tracks(self, query: str, *, limit: int = 10) -> list[dict[str, Any]]:
        data = await self._json(
            "GET",
            "/search",
            "Spotify search failed",
            params={"q": query, "type": "track", "limit": limit},
        )
        return (data.get("tracks") or {}).get("items") or []

    async def get_playlist(self, playlist_id: str) -> dict[str, Any]:
        return await self._json("GET", f"/playlists/{playlist_id}", "Failed to fetch playlist")

    async def get_playlist_with_tracks(self, playlist_id: str) -> dict[str, Any]:
        """Fetch a playlist and follow ``tracks.next`` until every item is loaded."""
        playlist = await self.get_playlist(playlist_id)
        tracks = playlist.get("tracks") or {}
        items = list(tracks.get("items") or [])
        next_url = tracks.get("next")
        while next_url:
            page = await self._json("GET", next_url, "Failed to fetch playlist tracks")
            items.extend(page.get("items") or [])
            next_url = page.get("next")
        playlist["tracks"] = {**tracks, "items": items, "next": None}
        return playlist

    async def create_playlist(
        self,
        name: str,
        *,
        description: str | None = None,
        public: bool = False,
        user_id: str | None = None,
    ) -> dict[str, Any]:
        path = f"/users/{user_id}/playlists" if user_id else "/me/playlists"
        body: dict[str, Any] = {"name": name, "public": public}
        if description is not None:
            body["description"] = description
        return await self._json("POST", path, "Failed to create playlist", json=body)

    async def add_tracks(self, playlist_id: str, uris: list[str]) -> httpx.Response:
        return await self.request("POST", f"/playlists/{playlist_id}/tracks", json={"uris": uris})

    async def replace_tracks(self, playlist_id: str, uris: list[str]) -> httpx.Response:
        return await self.request("PUT", f"/playlists/{playlist_id}/tracks", json={"uris": uris})

    async def add_tracks_in_batches(self, playlist_id: str, uris: list[str]) -> tuple[int, list[str]]:
        """Add URIs 50 at a time; returns (added count, URIs of failed batches)."""
        added = 0
        failed: list[str] = []
        for start in range(0, len(uris), ADD_TRACKS_BATCH_SIZE):
            batch = uris[start:start + ADD_TRACKS_BATCH_SIZE]
            response = await self.add_tracks(playlist_id, batch)
            if response.is_success:
                added += len(batch)
            else:
                logger.error(f"Error adding tracks batch to {playlist_id}: {response.status_code}")
                failed.extend(batch)
        return added, failed


def simplify_track(track: dict[str, Any]) -> dict[str, Any]:
    """The track shape the SPA consumes for search and match results."""
    album = track.get("album") or {}
    return {
        "id": track.get("id"),
        "uri": track.get("uri"),
        "name": track.get("name"),
        "artists": track.get("artists") or [],
        "album": album,
        "duration_ms": track.get("duration_ms"),
        "external_urls": track.get("external_urls") or {},
        "images": album.get("images") or [],
    }


def artist_names(track: dict[str, Any]) -> str:
    return ", ".join(a.get("name", "") for a in track.get("artists") or [])
