"""FastAPI dependencies for third-party service access."""
from __future__ import annotations

import logging

import httpx
from fastapi import Depends, Request, Response, status

from music_services import spotify
from music_services.spotify import SpotifyClient

from .auth import SpotifyCookies, store_spotify_tokens
from .errors import APIError

logger = logging.getLogger(__name__)


def get_http_client(request: Request) -> httpx.AsyncClient:
    """The shared outbound client created in the application lifespan."""
    return request.app.state.http_client


async def get_spotify_client(
    request: Request,
    response: Response,
    http: httpx.AsyncClient = Depends(get_http_client),
) -> SpotifyClient:
    """Build a Spotify client from cookies, refreshing an expired token first.

    Refreshed tokens are written back to the response cookies.
    """
    cookies = SpotifyCookies.from_request(request)

    def remember(token_data: dict) -> None:
        store_spotify_tokens(
            response,
            token_data["access_token"],
            int(token_data.get("expires_in", 3600)),
            token_data.get("refresh_token"),
        )

    client = SpotifyClient(
        http,
        cookies.access_token,
        refresh_token=cookies.refresh_token,
        on_refresh=remember,
    )

    if cookies.is_expired:
        if await client.refresh() is None:
            raise APIError(
                status.HTTP_401_UNAUTHORIZED,
                "Spotify authentication expired",
                code=spotify.AUTH_EXPIRED,
            )

    if not client.access_token:
        raise APIError(
            status.HTTP_401_UNAUTHORIZED,
            "Not authenticated with Spotify",
            code=spotify.AUTH_REQUIRED,
        )
    return client
