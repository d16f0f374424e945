"""Genius API client: OAuth code exchange, search, songs and annotations."""
from __future__ import annotations

import logging
import re
from typing import Any
from urllib.parse import urlencode

import httpx

from trapt.config import settings
from trapt.errors import ServiceError

from .http import safe_json, send_with_retry

logger = logging.getLogger(__name__)

GENIUS_BASE_URL = "https://api.genius.com"
GENIUS_AUTH_URL = "https://genius.com/oauth/authorize"
GENIUS_TOKEN_URL = "https://api.genius.com/oauth/token"

_SONG_ID_RE = re.compile(r"genius\.com/songs/(\d+)")
_LYRICS_SLUG_RE = re.compile(r"genius\.com/([^/]+)-lyrics")
_ANY_SLUG_RE = re.compile(r"genius\.com/([^/?]+)")


def authorize_url() -> str:
    query = urlencode({
        "client_id": settings.genius.client_id,
        "redirect_uri": settings.genius.redirect_uri,
        "response_type": "code",
        "scope": "me",
    })
    return f"{GENIUS_AUTH_URL}?{query}"


async def exchange_code(http: httpx.AsyncClient, code: str) -> dict[str, Any]:
    """Trade an authorization code for an access token.

    Returns the raw token payload; callers check for ``access_token``.
    """
    response = await send_with_retry(
        http,
        "POST",
        GENIUS_TOKEN_URL,
        json={
            "code": code,
            "client_id": settings.genius.client_id,
            "client_secret": settings.genius.client_secret,
            "redirect_uri": settings.genius.redirect_uri,
            "grant_type": "authorization_code",
        },
    )
    return safe_json(response)


class GeniusClient:
    """Bearer-token client for the Genius REST API."""

    def __init__(self, http: httpx.AsyncClient, token: str) -> None:
        self.http = http
        self.token = token

    async def _get(self, path: str, **kwargs) -> httpx.Response:
        return await send_with_retry(
            self.http,
            "GET",
            f"{GENIUS_BASE_URL}{path}",
            headers={"Authorization": f"Bearer {self.token}"},
            **kwargs,
        )

    async def search(self, query: str) -> list[dict[str, Any]]:
        """Return search hits; raises ``ServiceError`` on a non-2xx answer."""
        response = await self._get("/search", params={"q": query})
        if response.is_error:
            raise ServiceError("Genius search failed", status_code=response.status_code)
        return (safe_json(response).get("response") or {}).get("hits") or []

    async def song(self, song_id: int | str) -> dict[str, Any] | None:
        response = await self._get(f"/songs/{song_id}")
        if response.is_error:
            logger.warning(f"Genius song {song_id} lookup failed: {response.status_code}")
            return None
        return (safe_json(response).get("response") or {}).get("song")

    async def annotation(self, annotation_id: int | str) -> dict[str, Any]:
        response = await self._get(f"/annotations/{annotation_id}")
        return safe_json(response)

    async def resolve_url(self, url: str) -> int | None:
        """Map a Genius page URL to a song id.

        ``/songs/<id>`` URLs are read directly; lyrics-page slugs are turned
        into a search query and the first hit wins.
        """
        match = _SONG_ID_RE.search(url)
        if match:
            return int(match.group(1))

        for pattern in (_LYRICS_SLUG_RE, _ANY_SLUG_RE):
            match = pattern.search(url)
            if not match:
                continue
            query = match.group(1).replace("-", " ")
            try:
                hits = await self.search(query)
            except (ServiceError, httpx.HTTPError) as e:
                logger.warning(f"Genius search for URL {url} failed: {e}")
                continue
            if hits:
                return hits[0]["result"]["id"]
        return None


def hit_summary(hit: dict[str, Any]) -> dict[str, Any]:
    result = hit.get("result") or {}
    return {
        "id": result.get("id"),
        "url": result.get("url"),
        "title": result.get("title") or "",
        "artist": (result.get("primary_artist") or {}).get("name") or "",
        "thumbnail": result.get("song_art_image_thumbnail_url"),
    }
