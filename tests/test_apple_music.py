"""
Tests for the Apple Music to Spotify converter endpoints.
"""

import json

import httpx
import pytest

from trapt.config import settings

APPLE = "https://api.music.apple.com/v1"
SPOTIFY = "https://api.spotify.com/v1"
PLAYLIST_ID = "pl.u-AbC123"


@pytest.fixture
def developer_token(monkeypatch):
    monkeypatch.setattr(settings.apple_music, "developer_token", "dev-token")
    return "dev-token"


def _apple_track(track_id, name, artist):
    return {
        "id": track_id,
        "attributes": {
            "name": name,
            "artistName": artist,
            "albumName": "Album",
            "durationInMillis": 180000,
            "artwork": {"url": "https://is1.mzstatic.com/{w}x{h}bb.jpg"},
        },
    }


def _spotify_track(track_id, name, artist):
    return {
        "id": track_id,
        "uri": f"spotify:track:{track_id}",
        "name": name,
        "artists": [{"name": artist}],
        "album": {"name": "Album", "images": []},
        "external_urls": {"spotify": f"https://open.spotify.com/track/{track_id}"},
    }


class TestFetchPlaylist:
    def test_fetches_every_track_page(self, client, fake_services, developer_token, admin_headers):
        tracks_url = f"{APPLE}/me/library/playlists/{PLAYLIST_ID}/tracks"
        fake_services.add("GET", tracks_url, [
            httpx.Response(200, json={
                "data": [_apple_track("i.1", "Blinding Lights", "The Weeknd")],
                "next": f"/v1/me/library/playlists/{PLAYLIST_ID}/tracks?offset=1",
            }),
            httpx.Response(200, json={"data": [_apple_track("i.2", "Levitating", "Dua Lipa")]}),
        ])
        fake_services.json("GET", f"{APPLE}/me/library/playlists/{PLAYLIST_ID}", {
            "data": [{
                "attributes": {"name": "Road Trip", "description": {"standard": "windows down"}},
                "relationships": {"tracks": {"href": f"/v1/me/library/playlists/{PLAYLIST_ID}/tracks"}},
            }]
        })

        res = client.post(
            "/api/apple-music/fetch-playlist",
            json={"playlistId": f"https://music.apple.com/us/playlist/road-trip/{PLAYLIST_ID}", "userToken": "user-tok"},
            headers=admin_headers,
        )
        assert res.status_code == 200
        body = res.json()
        assert body["playlistName"] == "Road Trip"
        assert body["playlistDescription"] == "windows down"
        assert [t["position"] for t in body["tracks"]] == [1, 2]
        assert body["tracks"][0] == {
            "position": 1,
            "title": "Blinding Lights",
            "artist": "The Weeknd",
            "album": "Album",
            "appleMusicId": "i.1",
            "duration": 180000,
            "artworkUrl": "https://is1.mzstatic.com/300x300bb.jpg",
        }

        first = fake_services.requests[0]
        assert first.headers["authorization"] == "Bearer dev-token"
        assert first.headers["music-user-token"] == "user-tok"
        assert str(fake_services.requests[-1].url).endswith("/tracks?offset=1")

    def test_expired_user_token(self, client, fake_services, developer_token, admin_headers):
        fake_services.add("GET", f"{APPLE}/me/library/playlists/{PLAYLIST_ID}", httpx.Response(401))
        res = client.post(
            "/api/apple-music/fetch-playlist",
            json={"playlistId": PLAYLIST_ID, "userToken": "old"},
            headers=admin_headers,
        )
        assert res.status_code == 401
        assert res.json()["code"] == "APPLE_MUSIC_AUTH_REQUIRED"

    def test_upstream_error_keeps_status(self, client, fake_services, developer_token, admin_headers):
        fake_services.json("GET", f"{APPLE}/me/library/playlists/{PLAYLIST_ID}", {"errors": [{"title": "Not Found"}]}, status_code=404)
        res = client.post(
            "/api/apple-music/fetch-playlist",
            json={"playlistId": PLAYLIST_ID, "userToken": "tok"},
            headers=admin_headers,
        )
        assert res.status_code == 404
        assert res.json()["detail"] == {"errors": [{"title": "Not Found"}]}

    def test_developer_token_not_configured(self, client, monkeypatch, admin_headers):
        monkeypatch.setattr(settings.apple_music, "developer_token", None)
        monkeypatch.setattr(settings.apple_music, "private_key", None)
        res = client.post(
            "/api/apple-music/fetch-playlist",
            json={"playlistId": PLAYLIST_ID, "userToken": "tok"},
            headers=admin_headers,
        )
        assert res.status_code == 500

    @pytest.mark.parametrize("payload", [
        {"userToken": "tok"},
        {"playlistId": PLAYLIST_ID},
        {"playlistId": "https://music.apple.com/us/album/123", "userToken": "tok"},
    ])
    def test_bad_requests(self, client, developer_token, admin_headers, payload):
        res = client.post("/api/apple-music/fetch-playlist", json=payload, headers=admin_headers)
        assert res.status_code == 400

    def test_admin_only(self, client, viewer_headers):
        res = client.post(
            "/api/apple-music/fetch-playlist",
            json={"playlistId": PLAYLIST_ID, "userToken": "tok"},
            headers=viewer_headers,
        )
        assert res.status_code == 403


def test_user_token_instructions(client, developer_token, admin_headers):
    res = client.get("/api/apple-music/get-user-token", headers=admin_headers)
    assert res.status_code == 200
    assert "music.authorize()" in res.json()["instructions"]
    assert res.json()["developerTokenRequired"] is True


class TestMatchTracks:
    def test_match_summary(self, spotify_session, fake_services, admin_headers):
        results = {
            'track:"Blinding Lights" artist:"The Weeknd"': [_spotify_track("s1", "Blinding Lights", "The Weeknd")],
            'track:"Save Your Tears" artist:"The Weeknd"': [_spotify_track("s2", "Save Your Tears", "Weeknd")],
            'track:"Obscure" artist:"Nobody"': [_spotify_track("s3", "Different Song", "Other")],
        }

        def search(request: httpx.Request) -> httpx.Response:
            items = results.get(request.url.params["q"], [])
            return httpx.Response(200, json={"tracks": {"items": items}})

        fake_services.add("GET", f"{SPOTIFY}/search", search)
        tracks = [
            {"position": 1, "title": "Blinding Lights", "artist": "The Weeknd", "appleMusicId": "i.1"},
            {"position": 2, "title": "Save Your Tears", "artist": "The Weeknd"},
            {"position": 3, "title": "Obscure", "artist": "Nobody"},
            {"position": 4, "title": "Nothing", "artist": "Ghost"},
        ]

        res = spotify_session.post("/api/apple-music/match-tracks", json={"tracks": tracks}, headers=admin_headers)
        assert res.status_code == 200
        body = res.json()
        assert body["summary"] == {"total": 4, "matched": 2, "unmatched": 2, "exactMatches": 1, "fuzzyMatches": 1}

        exact, fuzzy = body["matches"]
        assert exact["matchType"] == "exact"
        assert exact["confidence"] == 1.0
        assert exact["spotifyTrack"]["uri"] == "spotify:track:s1"
        assert exact["appleTrack"]["appleMusicId"] == "i.1"
        assert fuzzy["matchType"] == "fuzzy"
        assert fuzzy["position"] == 2

        obscure, nothing = body["unmatched"]
        assert obscure["suggestions"][0]["id"] == "s3"
        assert obscure["suggestions"][0]["matchScore"] < 0.85
        assert nothing["suggestions"] == []

    def test_requires_tracks(self, spotify_session, admin_headers):
        res = spotify_session.post("/api/apple-music/match-tracks", json={}, headers=admin_headers)
        assert res.status_code == 400

    def test_requires_spotify_session(self, client, admin_headers):
        res = client.post("/api/apple-music/match-tracks", json={"tracks": []}, headers=admin_headers)
        assert res.status_code == 401


class TestSearchSpotify:
    def test_manual_search(self, spotify_session, fake_services, admin_headers):
        fake_services.json("GET", f"{SPOTIFY}/search", {"tracks": {"items": [_spotify_track("s9", "Hello", "Adele")]}})
        res = spotify_session.post("/api/apple-music/search-spotify", json={"query": "hello adele"}, headers=admin_headers)
        assert res.status_code == 200
        assert res.json()["tracks"][0]["name"] == "Hello"
        [call] = fake_services.calls("GET", f"{SPOTIFY}/search")
        assert call.url.params["limit"] == "10"

    def test_query_must_be_text(self, spotify_session, admin_headers):
        res = spotify_session.post("/api/apple-music/search-spotify", json={"query": 42}, headers=admin_headers)
        assert res.status_code == 400


class TestCreateSpotifyPlaylist:
    TRACKS = [
        {"position": 2, "spotifyUri": "spotify:track:b"},
        {"position": 1, "uri": "spotify:track:a"},
        {"position": 3},
    ]

    @pytest.fixture
    def spotify_user(self, fake_services):
        fake_services.json("GET", f"{SPOTIFY}/me", {"id": "user1"})
        fake_services.json("POST", f"{SPOTIFY}/users/user1/playlists", {
            "id": "SP1",
            "external_urls": {"spotify": "https://open.spotify.com/playlist/SP1"},
        }, status_code=201)

    def test_creates_public_playlist_in_order(self, spotify_session, fake_services, spotify_user, admin_headers):
        fake_services.json("POST", f"{SPOTIFY}/playlists/SP1/tracks", {"snapshot_id": "x"}, status_code=201)
        res = spotify_session.post(
            "/api/apple-music/create-spotify-playlist",
            json={"playlistName": "Road Trip", "tracks": self.TRACKS},
            headers=admin_headers,
        )
        assert res.status_code == 200
        assert res.json() == {
            "spotifyPlaylistId": "SP1",
            "spotifyPlaylistUrl": "https://open.spotify.com/playlist/SP1",
            "tracksAdded": 2,
            "tracksFailed": 0,
        }

        [create] = fake_services.calls("POST", f"{SPOTIFY}/users/user1/playlists")
        assert json.loads(create.content) == {
            "name": "Road Trip",
            "public": True,
            "description": "Converted from Apple Music",
        }
        [add] = fake_services.calls("POST", f"{SPOTIFY}/playlists/SP1/tracks")
        assert json.loads(add.content) == {"uris": ["spotify:track:a", "spotify:track:b"]}

    def test_reports_failed_batches(self, spotify_session, fake_services, spotify_user, admin_headers):
        fake_services.add("POST", f"{SPOTIFY}/playlists/SP1/tracks", httpx.Response(500))
        res = spotify_session.post(
            "/api/apple-music/create-spotify-playlist",
            json={"playlistName": "Road Trip", "tracks": self.TRACKS},
            headers=admin_headers,
        )
        body = res.json()
        assert body["tracksAdded"] == 0
        assert body["tracksFailed"] == 2
        assert body["failedTracks"] == ["spotify:track:a", "spotify:track:b"]

    @pytest.mark.parametrize("payload", [{"tracks": [{"uri": "spotify:track:a"}]}, {"playlistName": "x", "tracks": []}])
    def test_bad_requests(self, spotify_session, admin_headers, payload):
        res = spotify_session.post("/api/apple-music/create-spotify-playlist", json=payload, headers=admin_headers)
        assert res.status_code == 400
