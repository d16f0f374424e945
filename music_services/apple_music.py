"""Apple Music API client for reading a user's library playlists."""
from __future__ import annotations

import logging
import re
import time
from pathlib import Path
from typing import Any

import httpx
import jwt

from trapt.config import settings
from trapt.errors import ServiceAuthError, ServiceError

from .http import safe_json, send_with_retry

logger = logging.getLogger(__name__)

APPLE_MUSIC_HOST = "https://api.music.apple.com"
APPLE_MUSIC_API_BASE = f"{APPLE_MUSIC_HOST}/v1"
AUTH_REQUIRED = "APPLE_MUSIC_AUTH_REQUIRED"

# Apple caps developer tokens at six months
MAX_TOKEN_TTL = 15777000
ARTWORK_SIZE = "300"

_PLAYLIST_ID_RE = re.compile(r"playlist/(?:[^/]+/)?(pl\.u-[a-zA-Z0-9]+)")


def extract_playlist_id(value: str) -> str | None:
    """Accept a library playlist URL or a bare ``pl.u-`` id."""
    match = _PLAYLIST_ID_RE.search(value)
    if match:
        return match.group(1)
    if value.startswith("pl.u-"):
        return value
    return None


def load_private_key(value: str) -> str:
    """Return PEM text given either the PEM itself or a path to a .p8 file."""
    if "BEGIN PRIVATE KEY" in value:
        return value.replace("\\n", "\n")
    path = Path(value).expanduser()
    if not path.exists():
        raise FileNotFoundError(f"Private key file not found at {path}")
    return path.read_text(encoding="utf-8")


def mint_developer_token(team_id: str, key_id: str, private_key: str, *, ttl: int = MAX_TOKEN_TTL) -> str:
    """Sign an ES256 developer token for the Apple Music API."""
    now = int(time.time())
    payload = {"iss": team_id, "iat": now, "exp": now + min(ttl, MAX_TOKEN_TTL)}
    return jwt.encode(payload, load_private_key(private_key), algorithm="ES256", headers={"kid": key_id})


def developer_token() -> str | None:
    """Configured developer token, or one minted from the signing key settings."""
    cfg = settings.apple_music
    if cfg.developer_token:
        return cfg.developer_token
    if cfg.team_id and cfg.key_id and cfg.private_key:
        return mint_developer_token(cfg.team_id, cfg.key_id, cfg.private_key)
    return None


def simplify_track(track: dict[str, Any], position: int) -> dict[str, Any]:
    attributes = track.get("attributes") or {}
    artwork = (attributes.get("artwork") or {}).get("url")
    if artwork:
        artwork = artwork.replace("{w}", ARTWORK_SIZE).replace("{h}", ARTWORK_SIZE)
    return {
        "position": position,
        "title": attributes.get("name") or "",
        "artist": attributes.get("artistName") or "",
        "album": attributes.get("albumName") or "",
        "appleMusicId": track.get("id"),
        "duration": attributes.get("durationInMillis"),
        "artworkUrl": artwork or None,
    }


class AppleMusicClient:
    """Reads library playlists using a developer token plus a MusicKit user token."""

    def __init__(self, http: httpx.AsyncClient, dev_token: str, user_token: str) -> None:
        self.http = http
        self.dev_token = dev_token
        self.user_token = user_token

    def _headers(self) -> dict[str, str]:
        return {
            "Authorization": f"Bearer {self.dev_token}",
            "Music-User-Token": self.user_token,
        }

    async def _get(self, url: str) -> httpx.Response:
        if url.startswith("/"):
            url = f"{APPLE_MUSIC_HOST}{url}"
        return await send_with_retry(self.http, "GET", url, headers=self._headers())

    async def fetch_library_playlist(self, playlist_id: str) -> dict[str, Any]:
        """Fetch a playlist and every page of its tracks."""
        response = await self._get(f"{APPLE_MUSIC_API_BASE}/me/library/playlists/{playlist_id}")
        if response.status_code == 401:
            raise ServiceAuthError("Apple Music authentication expired or invalid", code=AUTH_REQUIRED)
        if response.is_error:
            raise ServiceError(
                "Failed to fetch Apple Music playlist",
                status_code=response.status_code,
                payload=safe_json(response),
            )

        data = safe_json(response).get("data") or [{}]
        playlist = data[0]
        tracks: list[dict[str, Any]] = []
        next_url = ((playlist.get("relationships") or {}).get("tracks") or {}).get("href")
        while next_url:
            page = await self._get(next_url)
            if page.is_error:
                logger.warning(f"Stopped paging Apple Music tracks at {next_url}: {page.status_code}")
                break
            body = safe_json(page)
            tracks.extend(body.get("data") or [])
            next_url = body.get("next")

        attributes = playlist.get("attributes") or {}
        logger.info(f"Fetched {len(tracks)} tracks from Apple Music playlist {playlist_id}")
        return {
            "playlistName": attributes.get("name") or "Untitled Playlist",
            "playlistDescription": (attributes.get("description") or {}).get("standard") or "",
            "tracks": [simplify_track(t, i + 1) for i, t in enumerate(tracks)],
        }
