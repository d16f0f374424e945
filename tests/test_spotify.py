"""
Tests for the Spotify proxy: OAuth, token refresh, playback, playlist sync
and the "Not Rated" playlist builder.
"""

import json

import httpx
import pytest

from trapt import models

API = "https://api.spotify.com/v1"
TOKEN_URL = "https://accounts.spotify.com/api/token"


def _track(track_id, name, artist, *, album="Album", image=None):
    return {
        "id": track_id,
        "uri": f"spotify:track:{track_id}",
        "name": name,
        "artists": [{"name": artist}],
        "album": {"name": album, "images": [{"url": image}] if image else []},
        "external_urls": {"spotify": f"https://open.spotify.com/track/{track_id}"},
        "duration_ms": 200000,
    }


def _set_cookies(res) -> list[str]:
    return res.headers.get_list("set-cookie")


class TestOAuth:
    def test_login_redirects_with_state(self, client):
        res = client.get("/api/spotify-proxy/login", follow_redirects=False)
        assert res.status_code == 307
        location = res.headers["location"]
        assert location.startswith("https://accounts.spotify.com/authorize?")
        state = res.cookies["spotify_auth_state"]
        assert f"state={state}" in location

    def test_callback_stores_tokens(self, client, fake_services):
        fake_services.json("POST", TOKEN_URL, {"access_token": "new-access", "refresh_token": "new-refresh", "expires_in": 3600})
        client.cookies.set("spotify_auth_state", "xyz")
        res = client.get(
            "/api/spotify-proxy/callback",
            params={"code": "auth-code", "state": "xyz"},
            follow_redirects=False,
        )
        assert res.status_code == 307
        assert res.headers["location"] == "/now-playing"
        assert res.cookies["spotify_access_token"] == "new-access"
        assert res.cookies["spotify_refresh_token"] == "new-refresh"

        [token_request] = fake_services.calls("POST", TOKEN_URL)
        assert b"grant_type=authorization_code" in token_request.content
        assert b"code=auth-code" in token_request.content

    def test_callback_rejects_state_mismatch(self, client):
        client.cookies.set("spotify_auth_state", "xyz")
        res = client.get("/api/spotify-proxy/callback", params={"code": "c", "state": "other"})
        assert res.status_code == 400
        assert res.json()["error"] == "State mismatch"

    def test_callback_reports_spotify_error(self, client):
        res = client.get("/api/spotify-proxy/callback", params={"error": "access_denied"})
        assert res.status_code == 400
        assert res.json()["detail"] == "access_denied"

    def test_failed_code_exchange(self, client, fake_services):
        fake_services.json("POST", TOKEN_URL, {"error": "invalid_grant"}, status_code=400)
        client.cookies.set("spotify_auth_state", "xyz")
        res = client.get("/api/spotify-proxy/callback", params={"code": "c", "state": "xyz"})
        assert res.status_code == 502

    def test_logout_clears_cookies(self, spotify_session):
        res = spotify_session.get("/api/spotify-proxy/logout")
        assert res.json() == {"success": True}
        cleared = _set_cookies(res)
        assert any(h.startswith("spotify_access_token=") for h in cleared)
        assert any(h.startswith("spotify_refresh_token=") for h in cleared)


class TestCurrentlyPlaying:
    URL = f"{API}/me/player/currently-playing"

    def test_requires_spotify_session(self, client):
        res = client.get("/api/spotify-proxy/currently-playing")
        assert res.status_code == 401
        assert res.json()["code"] == "SPOTIFY_AUTH_REQUIRED"

    def test_nothing_playing(self, spotify_session, fake_services):
        fake_services.add("GET", self.URL, httpx.Response(204))
        res = spotify_session.get("/api/spotify-proxy/currently-playing")
        assert res.json() == {"playing": False}

    def test_playing_track_joined_with_library(self, spotify_session, fake_services, store):
        playlist = store.playlist("Now")
        song = store.song(playlist, "Live", "Band", spotify_link="https://open.spotify.com/track/abc123", rating=4)
        fake_services.json("GET", self.URL, {"is_playing": True, "item": _track("abc123", "Live", "Band")})

        res = spotify_session.get("/api/spotify-proxy/currently-playing")
        assert res.status_code == 200
        body = res.json()
        assert body["is_playing"] is True
        assert body["item"]["id"] == "abc123"
        assert body["dbSong"]["id"] == song.id
        assert body["dbSong"]["playlist"]["name"] == "Now"

        [call] = fake_services.calls("GET", self.URL)
        assert call.headers["authorization"] == "Bearer access-1"

    def test_unknown_track(self, spotify_session, fake_services):
        fake_services.json("GET", self.URL, {"is_playing": True, "item": _track("zzz", "Other", "Else")})
        res = spotify_session.get("/api/spotify-proxy/currently-playing")
        assert res.json()["dbSong"] is None

    def test_refreshes_once_on_401(self, spotify_session, fake_services):
        fake_services.add("GET", self.URL, [
            httpx.Response(401),
            httpx.Response(200, json={"is_playing": False, "item": _track("t", "T", "A")}),
        ])
        fake_services.json("POST", TOKEN_URL, {"access_token": "access-2", "expires_in": 3600})

        res = spotify_session.get("/api/spotify-proxy/currently-playing")
        assert res.status_code == 200
        assert res.cookies["spotify_access_token"] == "access-2"

        first, second = fake_services.calls("GET", self.URL)
        assert first.headers["authorization"] == "Bearer access-1"
        assert second.headers["authorization"] == "Bearer access-2"
        assert b"grant_type=refresh_token" in fake_services.calls("POST", TOKEN_URL)[0].content

    def test_failed_refresh_requires_login(self, spotify_session, fake_services):
        fake_services.add("GET", self.URL, httpx.Response(401))
        fake_services.json("POST", TOKEN_URL, {"error": "invalid_grant"}, status_code=400)
        res = spotify_session.get("/api/spotify-proxy/currently-playing")
        assert res.status_code == 401
        assert res.json()["code"] == "SPOTIFY_AUTH_EXPIRED"

    def test_expired_cookie_refreshes_before_calling(self, client, fake_services):
        client.cookies.set("spotify_access_token", "stale")
        client.cookies.set("spotify_refresh_token", "refresh-1")
        client.cookies.set("spotify_expires_at", "1000")
        fake_services.json("POST", TOKEN_URL, {"access_token": "access-3", "expires_in": 60})
        fake_services.add("GET", self.URL, httpx.Response(204))

        res = client.get("/api/spotify-proxy/currently-playing")
        assert res.json() == {"playing": False}
        [call] = fake_services.calls("GET", self.URL)
        assert call.headers["authorization"] == "Bearer access-3"


class TestPlaylistProxy:
    def test_follows_track_pages(self, spotify_session, fake_services):
        next_url = f"{API}/playlists/PL1/tracks?offset=1"
        fake_services.json("GET", next_url, {"items": [{"track": _track("t2", "Two", "B")}], "next": None})
        fake_services.json("GET", f"{API}/playlists/PL1", {
            "id": "PL1",
            "name": "Remote",
            "tracks": {"items": [{"track": _track("t1", "One", "A")}], "next": next_url, "total": 2},
        })

        res = spotify_session.get(
            "/api/spotify-proxy",
            params={"playlistId": "https://open.spotify.com/playlist/PL1?si=share"},
        )
        assert res.status_code == 200
        tracks = res.json()["tracks"]
        assert [i["track"]["id"] for i in tracks["items"]] == ["t1", "t2"]
        assert tracks["next"] is None

    def test_invalid_playlist_id(self, spotify_session):
        res = spotify_session.get("/api/spotify-proxy", params={"playlistId": "not a playlist!"})
        assert res.status_code == 400

    def test_upstream_error(self, spotify_session, fake_services):
        fake_services.json("GET", f"{API}/playlists/GONE", {"error": {"status": 404, "message": "Not found"}}, status_code=404)
        res = spotify_session.get("/api/spotify-proxy", params={"playlistId": "GONE"})
        assert res.status_code == 502
        assert res.json()["error"] == "Not found"


class TestSyncPlaylist:
    def test_appends_new_tracks(self, spotify_session, fake_services, store, admin_headers):
        playlist = store.playlist("Mirror", spotify_link="https://open.spotify.com/playlist/PL9")
        store.song(playlist, "One", "A", spotify_link="https://open.spotify.com/track/t1", sort_order=4)
        fake_services.json("GET", f"{API}/playlists/PL9", {
            "id": "PL9",
            "images": [{"url": "https://img/cover.jpg"}],
            "tracks": {
                "items": [
                    {"track": _track("t1", "One", "A")},
                    {"track": _track("t2", "Two", "B", image="https://img/t2.jpg")},
                    {"track": None},
                    {"track": _track("t3", "Three", "C")},
                ],
                "next": None,
            },
        })

        res = spotify_session.post("/api/spotify-proxy/sync-playlist", json={"playlistId": playlist.id}, headers=admin_headers)
        assert res.status_code == 200
        assert res.json() == {"added": 2, "total": 4}

        songs = spotify_session.get(f"/api/playlists/{playlist.id}").json()["songs"]
        assert [(s["title"], s["sortOrder"]) for s in songs] == [("One", 4), ("Two", 5), ("Three", 6)]
        assert songs[1]["artworkUrl"] == "https://img/t2.jpg"
        assert songs[1]["rating"] is None
        assert store.get(models.Playlist, playlist.id).artwork_url == "https://img/cover.jpg"

    def test_playlist_without_link(self, spotify_session, store, admin_headers):
        playlist = store.playlist("Local Only")
        res = spotify_session.post("/api/spotify-proxy/sync-playlist", json={"playlistId": playlist.id}, headers=admin_headers)
        assert res.status_code == 400
        assert res.json()["error"] == "Playlist has no Spotify link"

    def test_requires_admin(self, spotify_session, viewer_headers):
        res = spotify_session.post("/api/spotify-proxy/sync-playlist", json={"playlistId": 1}, headers=viewer_headers)
        assert res.status_code == 403

    def test_unknown_playlist(self, spotify_session, admin_headers):
        res = spotify_session.post("/api/spotify-proxy/sync-playlist", json={"playlistId": 9999}, headers=admin_headers)
        assert res.status_code == 404


class TestUnratedPlaylist:
    @pytest.fixture
    def playlist(self, store):
        playlist = store.playlist("Mix")
        store.song(playlist, "Rated", "A", rating=4, sort_order=0, spotify_link="https://open.spotify.com/track/r1")
        store.song(playlist, "Fresh", "B", sort_order=1, spotify_link="https://open.spotify.com/track/u1")
        store.song(playlist, "Zeroed", "C", rating=0, sort_order=2, spotify_link="spotify:track:u2")
        store.song(playlist, "Offline", "D", sort_order=3)
        return playlist

    def test_creates_private_playlist(self, spotify_session, fake_services, store, playlist):
        fake_services.json("POST", f"{API}/me/playlists", {
            "id": "NR1",
            "external_urls": {"spotify": "https://open.spotify.com/playlist/NR1"},
        }, status_code=201)
        fake_services.json("POST", f"{API}/playlists/NR1/tracks", {"snapshot_id": "s"}, status_code=201)

        res = spotify_session.post("/api/spotify-proxy/create-unrated-playlist", json={"playlistId": playlist.id})
        assert res.status_code == 200
        assert res.json() == {
            "message": "Unrated playlist created successfully",
            "externalUrl": "https://open.spotify.com/playlist/NR1",
            "playlistId": "NR1",
        }

        [create] = fake_services.calls("POST", f"{API}/me/playlists")
        assert json.loads(create.content) == {"name": "Mix - Not Rated", "public": False}
        [add] = fake_services.calls("POST", f"{API}/playlists/NR1/tracks")
        assert json.loads(add.content) == {"uris": ["spotify:track:u1", "spotify:track:u2"]}
        assert store.get(models.Playlist, playlist.id).unrated_playlist_id == "NR1"

    def test_replaces_existing_playlist(self, spotify_session, fake_services, store):
        playlist = store.playlist("Kept", unrated_playlist_id="OLD")
        store.song(playlist, "Fresh", "B", spotify_link="https://open.spotify.com/track/u1")
        fake_services.json("PUT", f"{API}/playlists/OLD/tracks", {"snapshot_id": "s"})
        fake_services.json("POST", f"{API}/playlists/OLD/tracks", {"snapshot_id": "s"}, status_code=201)
        fake_services.json("GET", f"{API}/playlists/OLD", {
            "id": "OLD",
            "external_urls": {"spotify": "https://open.spotify.com/playlist/OLD"},
        })

        res = spotify_session.post("/api/spotify-proxy/create-unrated-playlist", json={"playlistId": playlist.id})
        assert res.json()["message"] == "Unrated playlist updated successfully"
        assert res.json()["playlistId"] == "OLD"
        [replace] = fake_services.calls("PUT", f"{API}/playlists/OLD/tracks")
        assert json.loads(replace.content) == {"uris": []}
        assert not fake_services.calls("POST", f"{API}/me/playlists")

    def test_recreates_missing_playlist(self, spotify_session, fake_services, store):
        playlist = store.playlist("Lost", unrated_playlist_id="DELETED")
        store.song(playlist, "Fresh", "B", spotify_link="https://open.spotify.com/track/u1")
        fake_services.json("PUT", f"{API}/playlists/DELETED/tracks", {"error": {"message": "gone"}}, status_code=404)
        fake_services.json("POST", f"{API}/me/playlists", {"id": "NEW", "external_urls": {}}, status_code=201)
        fake_services.json("POST", f"{API}/playlists/NEW/tracks", {}, status_code=201)

        res = spotify_session.post("/api/spotify-proxy/create-unrated-playlist", json={"playlistId": playlist.id})
        assert res.json()["message"] == "Unrated playlist created successfully"
        assert store.get(models.Playlist, playlist.id).unrated_playlist_id == "NEW"

    def test_nothing_unrated(self, spotify_session, store):
        playlist = store.playlist("Done")
        store.song(playlist, "Rated", "A", rating=5, spotify_link="https://open.spotify.com/track/r1")
        res = spotify_session.post("/api/spotify-proxy/create-unrated-playlist", json={"playlistId": playlist.id})
        assert res.status_code == 400
        assert res.json()["error"] == "No unrated songs with Spotify links to add."

    def test_missing_playlist_id(self, spotify_session):
        res = spotify_session.post("/api/spotify-proxy/create-unrated-playlist", json={})
        assert res.status_code == 400

    def test_requires_spotify_session(self, client, playlist):
        res = client.post("/api/spotify-proxy/create-unrated-playlist", json={"playlistId": playlist.id})
        assert res.status_code == 401
