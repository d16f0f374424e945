"""Apple Music to Spotify playlist conversion (admin only)."""
from __future__ import annotations

import logging

import httpx
import jwt
from fastapi import APIRouter, Depends, Request, Response, status

from music_services import apple_music
from music_services.apple_music import AppleMusicClient
from music_services.spotify import simplify_track
from trapt.auth import require_admin
from trapt.config import settings
from trapt.dependencies import get_http_client, get_spotify_client
from trapt.errors import APIError, ServiceAuthError, ServiceError
from trapt.pipelines.track_matching import match_tracks
from trapt.schemas import AppleFetchRequest, CreateSpotifyPlaylistRequest, MatchTracksRequest, SpotifySearchRequest

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/apple-music", tags=["apple-music"], dependencies=[Depends(require_admin)])

MANUAL_SEARCH_LIMIT = 10
DEFAULT_DESCRIPTION = "Converted from Apple Music"

USER_TOKEN_INSTRUCTIONS = """To get your Apple Music user token:

1. Open your browser's developer console (F12)
2. Go to https://music.apple.com
3. Run this JavaScript code in the console:

   // Load MusicKit JS if not already loaded
   if (!window.MusicKit) {
     const script = document.createElement('script');
     script.src = 'https://js-cdn.music.apple.com/musickit/v1/musickit.js';
     document.head.appendChild(script);
     await new Promise(resolve => script.onload = resolve);
   }

   const music = await window.MusicKit.configure({
     developerToken: 'YOUR_DEVELOPER_TOKEN',
     app: { name: 'Trapt', build: '1.0.0' }
   });

   await music.authorize();
   copy(music.musicUserToken);

Paste the copied token into the converter."""


@router.get("/get-user-token")
async def get_user_token():
    return {
        "instructions": USER_TOKEN_INSTRUCTIONS,
        "developerTokenRequired": bool(
            settings.apple_music.developer_token or settings.apple_music.private_key
        ),
        "note": "User tokens are pasted in; there is no Apple Music OAuth flow.",
    }


@router.post("/fetch-playlist")
async def fetch_playlist(
    body: AppleFetchRequest,
    http: httpx.AsyncClient = Depends(get_http_client),
):
    if not body.playlist_id:
        raise APIError(status.HTTP_400_BAD_REQUEST, "Missing playlistId")
    if not body.user_token:
        raise APIError(status.HTTP_400_BAD_REQUEST, "Missing userToken. Please authenticate with Apple Music first.")

    playlist_id = apple_music.extract_playlist_id(body.playlist_id)
    if not playlist_id:
        raise APIError(status.HTTP_400_BAD_REQUEST, "Invalid Apple Music playlist ID or URL")

    try:
        dev_token = apple_music.developer_token()
    except (OSError, ValueError, jwt.PyJWTError) as e:
        logger.error(f"Could not mint Apple Music developer token: {e}")
        dev_token = None
    if not dev_token:
        raise APIError(
            status.HTTP_500_INTERNAL_SERVER_ERROR,
            "Apple Music developer token not configured. Please set APPLE_MUSIC_DEVELOPER_TOKEN.",
        )

    client = AppleMusicClient(http, dev_token, body.user_token)
    try:
        return await client.fetch_library_playlist(playlist_id)
    except ServiceAuthError:
        raise
    except ServiceError as e:
        raise APIError(
            e.status_code or status.HTTP_502_BAD_GATEWAY,
            "Failed to fetch Apple Music playlist",
            detail=e.payload,
        )


@router.post("/match-tracks")
async def match_tracks_route(
    body: MatchTracksRequest,
    request: Request,
    response: Response,
    http: httpx.AsyncClient = Depends(get_http_client),
):
    if body.tracks is None:
        raise APIError(status.HTTP_400_BAD_REQUEST, "Missing or invalid tracks array")

    client = await get_spotify_client(request, response, http)
    tracks = [track.model_dump(by_alias=True) for track in body.tracks]
    return await match_tracks(client, tracks)


@router.post("/search-spotify")
async def search_spotify(
    body: SpotifySearchRequest,
    request: Request,
    response: Response,
    http: httpx.AsyncClient = Depends(get_http_client),
):
    if not body.query or not isinstance(body.query, str):
        raise APIError(status.HTTP_400_BAD_REQUEST, "Missing or invalid query")

    client = await get_spotify_client(request, response, http)
    results = await client.search_tracks(body.query, limit=MANUAL_SEARCH_LIMIT)
    return {"tracks": [simplify_track(t) for t in results]}


@router.post("/create-spotify-playlist")
async def create_spotify_playlist(
    body: CreateSpotifyPlaylistRequest,
    request: Request,
    response: Response,
    http: httpx.AsyncClient = Depends(get_http_client),
):
    if not body.playlist_name:
        raise APIError(status.HTTP_400_BAD_REQUEST, "Missing playlistName")
    if not body.tracks:
        raise APIError(status.HTTP_400_BAD_REQUEST, "Missing or empty tracks array")

    client = await get_spotify_client(request, response, http)
    profile = await client.me()
    created = await client.create_playlist(
        body.playlist_name,
        description=body.playlist_description or DEFAULT_DESCRIPTION,
        public=True,
        user_id=profile.get("id"),
    )

    ordered = sorted(body.tracks, key=lambda t: t.position or 0)
    uris = [uri for uri in (t.spotify_uri or t.uri for t in ordered) if uri]
    added, failed = await client.add_tracks_in_batches(created["id"], uris)

    logger.info(f"Created Spotify playlist {created['id']} with {added}/{len(uris)} tracks")
    result = {
        "spotifyPlaylistId": created["id"],
        "spotifyPlaylistUrl": (created.get("external_urls") or {}).get("spotify"),
        "tracksAdded": added,
        "tracksFailed": len(failed),
    }
    if failed:
        result["failedTracks"] = failed
    return result
