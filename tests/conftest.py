"""
Shared fixtures for the Trapt API tests.

The app runs against a throwaway SQLite file and every outbound call to
Spotify, Genius or Apple Music is answered by ``FakeServices`` through
``httpx.MockTransport``.
"""

import asyncio
import os
import tempfile
from datetime import timedelta
from pathlib import Path

import httpx
import pytest

_TMP = Path(tempfile.mkdtemp(prefix="trapt-tests-"))

# Settings are read at import time
os.environ["ENVIRONMENT"] = "testing"
os.environ["DB_URL"] = f"sqlite+aiosqlite:///{_TMP / 'test.db'}"
os.environ["IMPORT_RATINGS_DIR"] = str(_TMP / "import")
os.environ["GENIUS_REQUEST_DELAY"] = "0"
os.environ["MATCHING_SEARCH_DELAY"] = "0"
os.environ["HTTP_MAX_ATTEMPTS"] = "1"
os.environ["AUTH_BCRYPT_ROUNDS"] = "4"
os.environ["LOG_FORMAT"] = "text"

from fastapi.testclient import TestClient  # noqa: E402

from trapt import models  # noqa: E402
from trapt.api import app  # noqa: E402
from trapt.auth import create_access_token, hash_password  # noqa: E402
from trapt.db import AsyncSessionMaker, create_all  # noqa: E402
from trapt.dependencies import get_http_client  # noqa: E402

TEST_PASSWORD = "hunter22"


class FakeServices:
    """Canned third-party responses keyed by method and URL prefix.

    A responder is an ``httpx.Response``, a callable taking the request, or
    a list of either that is consumed one entry per call.
    """

    def __init__(self):
        self.routes = []
        self.requests: list[httpx.Request] = []

    def add(self, method: str, url_prefix: str, responder):
        self.routes.append((method.upper(), url_prefix, responder))

    def json(self, method: str, url_prefix: str, payload, status_code: int = 200):
        self.add(method, url_prefix, httpx.Response(status_code, json=payload))

    def calls(self, method: str, url_prefix: str) -> list[httpx.Request]:
        return [
            r for r in self.requests
            if r.method == method.upper() and str(r.url).startswith(url_prefix)
        ]

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        url = str(request.url)
        for method, prefix, responder in self.routes:
            if method != request.method or not url.startswith(prefix):
                continue
            if isinstance(responder, list):
                if not responder:
                    continue
                responder = responder.pop(0)
            return responder(request) if callable(responder) else responder
        return httpx.Response(404, json={"error": f"no fake for {request.method} {url}"})


class Store:
    """Direct database access for arranging test data."""

    def run(self, coro):
        return asyncio.run(coro)

    def add(self, *objects):
        async def _add():
            async with AsyncSessionMaker() as session:
                session.add_all(objects)
                await session.commit()
        self.run(_add())
        return objects[0] if len(objects) == 1 else objects

    def get(self, model, pk):
        async def _get():
            async with AsyncSessionMaker() as session:
                return await session.get(model, pk)
        return self.run(_get())

    def user(self, email, *, role=models.Role.VIEWER, username=None, password=TEST_PASSWORD, name=None):
        return self.add(models.User(
            email=email,
            username=username,
            name=name,
            role=role.value,
            password=hash_password(password) if password else None,
        ))

    def playlist(self, name, **fields):
        return self.add(models.Playlist(name=name, **fields))

    def song(self, playlist, title, artist, **fields):
        return self.add(models.Song(playlist_id=playlist.id, title=title, artist=artist, **fields))

    def comment(self, song, user, content, *, parent=None, **fields):
        return self.add(models.Comment(
            song_id=song.id,
            user_id=user.id,
            content=content,
            parent_comment_id=parent.id if parent else None,
            **fields,
        ))


def days_ago(days: float):
    return models.utcnow() - timedelta(days=days)


def bearer(user) -> dict[str, str]:
    return {"Authorization": f"Bearer {create_access_token(user)}"}


@pytest.fixture
def fake_services():
    return FakeServices()


@pytest.fixture
def store():
    asyncio.run(create_all(drop=True))
    return Store()


@pytest.fixture
def client(store, fake_services):
    http = httpx.AsyncClient(transport=httpx.MockTransport(fake_services.handler))
    app.dependency_overrides[get_http_client] = lambda: http
    with TestClient(app) as test_client:
        yield test_client
    app.dependency_overrides.clear()


@pytest.fixture
def admin(store):
    return store.user("admin@example.com", role=models.Role.ADMIN, username="admin", name="Admin User")


@pytest.fixture
def viewer(store):
    return store.user("viewer@example.com", username="viewer", name="Viewer User")


@pytest.fixture
def admin_headers(admin):
    return bearer(admin)


@pytest.fixture
def viewer_headers(viewer):
    return bearer(viewer)


@pytest.fixture
def spotify_session(client):
    """A client carrying a valid Spotify access token cookie."""
    client.cookies.set("spotify_access_token", "access-1")
    client.cookies.set("spotify_refresh_token", "refresh-1")
    return client
