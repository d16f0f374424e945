"""Genius proxy: OAuth login, search, lyrics embeds and annotations.

Everything goes through ``GET /api/genius?action=...``; no response is cached.
"""
from __future__ import annotations

import logging

import httpx
from fastapi import APIRouter, Depends, Query, Request, status
from fastapi.responses import HTMLResponse, JSONResponse, RedirectResponse

from music_services import genius
from music_services.genius import GeniusClient
from trapt.auth import GENIUS_TOKEN_COOKIE, get_genius_token, set_token_cookie
from trapt.dependencies import get_http_client
from trapt.errors import APIError, ServiceError

logger = logging.getLogger(__name__)

router = APIRouter(tags=["genius"])

NO_CACHE_HEADERS = {
    "Cache-Control": "no-store, no-cache, must-revalidate, proxy-revalidate",
    "Pragma": "no-cache",
    "Expires": "0",
}

CALLBACK_PAGE = """<html>
  <body>
    <script>
      if (window.opener) {
        window.opener.postMessage({ type: 'genius-auth-success' }, window.location.origin);
        window.close();
      } else {
        setTimeout(() => { window.location = '/'; }, 1000);
      }
    </script>
    <p>Authentication successful. You can close this window or <a href="/">return to the app</a>.</p>
  </body>
</html>
"""


def _error(status_code: int, message: str, detail=None) -> APIError:
    return APIError(status_code, message, detail=detail, headers=NO_CACHE_HEADERS)


def _json(content) -> JSONResponse:
    return JSONResponse(content, headers=NO_CACHE_HEADERS)


def _client(request: Request, http: httpx.AsyncClient) -> GeniusClient:
    token = get_genius_token(request)
    if not token:
        raise _error(status.HTTP_401_UNAUTHORIZED, "Not authenticated")
    return GeniusClient(http, token)


async def _callback(code: str | None, http: httpx.AsyncClient):
    if not code:
        raise _error(status.HTTP_400_BAD_REQUEST, "Missing code")
    try:
        token_data = await genius.exchange_code(http, code)
    except httpx.HTTPError as e:
        logger.error(f"Genius token exchange failed: {e}")
        raise _error(status.HTTP_500_INTERNAL_SERVER_ERROR, "Token exchange failed", str(e))

    if not token_data.get("access_token"):
        raise _error(status.HTTP_400_BAD_REQUEST, "Failed to get access token", token_data)

    response = HTMLResponse(CALLBACK_PAGE, headers=NO_CACHE_HEADERS)
    set_token_cookie(response, GENIUS_TOKEN_COOKIE, token_data["access_token"])
    logger.info("Genius account connected")
    return response


@router.get("/genius")
async def genius_proxy(
    request: Request,
    action: str | None = Query(default=None),
    code: str | None = Query(default=None),
    q: str | None = Query(default=None),
    song_id: str | None = Query(default=None),
    annotation_id: str | None = Query(default=None),
    http: httpx.AsyncClient = Depends(get_http_client),
):
    if action == "auth":
        return RedirectResponse(genius.authorize_url(), headers=NO_CACHE_HEADERS)

    if action == "callback":
        return await _callback(code, http)

    if action == "search":
        client = _client(request, http)
        if not q:
            raise _error(status.HTTP_400_BAD_REQUEST, "Missing search query")
        try:
            return _json(await client.search(q))
        except (ServiceError, httpx.HTTPError) as e:
            raise _error(status.HTTP_500_INTERNAL_SERVER_ERROR, "Failed to search Genius", str(e))

    if action == "lyrics":
        client = _client(request, http)
        if not song_id:
            raise _error(status.HTTP_400_BAD_REQUEST, "Missing song_id")
        try:
            song = await client.song(song_id)
        except httpx.HTTPError as e:
            raise _error(status.HTTP_500_INTERNAL_SERVER_ERROR, "Failed to fetch song", str(e))
        if not song or not song.get("embed_content"):
            raise _error(status.HTTP_404_NOT_FOUND, "Song or embed_content not found")
        return _json({"embed_content": song["embed_content"]})

    if action == "annotation":
        client = _client(request, http)
        if not annotation_id:
            raise _error(status.HTTP_400_BAD_REQUEST, "Missing annotation_id")
        try:
            return _json(await client.annotation(annotation_id))
        except httpx.HTTPError as e:
            raise _error(status.HTTP_500_INTERNAL_SERVER_ERROR, "Failed to fetch annotation", str(e))

    raise _error(status.HTTP_404_NOT_FOUND, "Not found")
