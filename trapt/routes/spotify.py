"""Spotify OAuth, playback and playlist proxy endpoints.

Tokens live in HttpOnly cookies. Handlers that talk to Spotify obtain a
client through ``get_spotify_client``, which refreshes an expired token
and writes the new cookies onto the response.
"""
from __future__ import annotations

import logging
import secrets

import httpx
from fastapi import APIRouter, Depends, Query, Request, Response, status
from fastapi.responses import RedirectResponse
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from music_services import spotify
from music_services.spotify import SpotifyClient
from trapt import models
from trapt.auth import (
    SPOTIFY_STATE_COOKIE,
    CurrentUser,
    clear_spotify_tokens,
    require_admin,
    set_token_cookie,
    store_spotify_tokens,
)
from trapt.config import settings
from trapt.db import get_session
from trapt.dependencies import get_http_client, get_spotify_client
from trapt.errors import APIError
from trapt.pipelines.playlist_import import build_unrated_playlist, sync_playlist_from_spotify
from trapt.routes.playlists import load_playlist
from trapt.schemas import PlaylistIdRequest, SongWithPlaylist

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/spotify-proxy", tags=["spotify"])

STATE_MAX_AGE = 600


@router.get("/login")
async def login():
    """Send the browser to Spotify's consent page."""
    state = secrets.token_urlsafe(16)
    response = RedirectResponse(spotify.authorize_url(state))
    set_token_cookie(response, SPOTIFY_STATE_COOKIE, state, max_age=STATE_MAX_AGE)
    return response


@router.get("/callback")
async def callback(
    request: Request,
    code: str | None = Query(default=None),
    state: str | None = Query(default=None),
    error: str | None = Query(default=None),
    http: httpx.AsyncClient = Depends(get_http_client),
):
    if error:
        raise APIError(status.HTTP_400_BAD_REQUEST, "Spotify authorization failed", detail=error)
    if not code:
        raise APIError(status.HTTP_400_BAD_REQUEST, "Missing code")
    expected = request.cookies.get(SPOTIFY_STATE_COOKIE)
    if not state or not expected or not secrets.compare_digest(state, expected):
        raise APIError(status.HTTP_400_BAD_REQUEST, "State mismatch")

    token_data = await spotify.exchange_code(http, code)

    response = RedirectResponse(settings.spotify.post_login_redirect)
    store_spotify_tokens(
        response,
        token_data["access_token"],
        int(token_data.get("expires_in", 3600)),
        token_data.get("refresh_token"),
    )
    response.delete_cookie(SPOTIFY_STATE_COOKIE, path="/")
    logger.info("Spotify account connected")
    return response


@router.get("/logout")
async def logout(response: Response):
    clear_spotify_tokens(response)
    return {"success": True}


async def find_song_for_track(session: AsyncSession, track_id: str | None) -> models.Song | None:
    """The stored song whose Spotify link points at ``track_id``."""
    if not track_id:
        return None
    result = await session.execute(
        select(models.Song)
        .options(selectinload(models.Song.playlist))
        .where(models.Song.spotify_link.contains(track_id))
        .order_by(models.Song.id)
        .limit(1)
    )
    return result.scalars().first()


@router.get("/currently-playing")
async def currently_playing(
    client: SpotifyClient = Depends(get_spotify_client),
    session: AsyncSession = Depends(get_session),
):
    payload = await client.currently_playing()
    if not payload or not payload.get("item"):
        return {"playing": False}

    song = await find_song_for_track(session, payload["item"].get("id"))
    return {
        **payload,
        "dbSong": SongWithPlaylist.model_validate(song) if song else None,
    }


@router.get("")
async def playlist_proxy(
    playlist_id: str | None = Query(default=None, alias="playlistId"),
    client: SpotifyClient = Depends(get_spotify_client),
):
    """A Spotify playlist with every track page loaded."""
    spotify_id = spotify.extract_playlist_id(playlist_id)
    if not spotify_id:
        raise APIError(status.HTTP_400_BAD_REQUEST, "Missing or invalid playlistId")
    return await client.get_playlist_with_tracks(spotify_id)


@router.post("/sync-playlist")
async def sync_playlist(
    body: PlaylistIdRequest,
    request: Request,
    response: Response,
    _: CurrentUser = Depends(require_admin),
    session: AsyncSession = Depends(get_session),
    http: httpx.AsyncClient = Depends(get_http_client),
):
    if not body.playlist_id:
        raise APIError(status.HTTP_400_BAD_REQUEST, "Missing playlistId")
    playlist = await session.get(models.Playlist, body.playlist_id)
    if playlist is None:
        raise APIError(status.HTTP_404_NOT_FOUND, "Playlist not found")

    client = await get_spotify_client(request, response, http)
    return await sync_playlist_from_spotify(session, client, playlist)


@router.post("/create-unrated-playlist")
async def create_unrated_playlist(
    body: PlaylistIdRequest,
    request: Request,
    response: Response,
    session: AsyncSession = Depends(get_session),
    http: httpx.AsyncClient = Depends(get_http_client),
):
    """Push a playlist's unrated songs into its "Not Rated" Spotify playlist."""
    if not body.playlist_id:
        raise APIError(status.HTTP_400_BAD_REQUEST, "Missing playlistId")
    playlist = await load_playlist(session, body.playlist_id)

    client = await get_spotify_client(request, response, http)
    return await build_unrated_playlist(session, client, playlist)
