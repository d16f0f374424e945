"""Bring Spotify playlists into the library and push unrated songs back out."""
from __future__ import annotations

import logging
from typing import Any, Iterable

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from music_services import spotify
from music_services.spotify import SpotifyClient
from trapt import models
from trapt.errors import APIError, ServiceError
from trapt.pipelines.stats import is_rated

logger = logging.getLogger(__name__)

UNRATED_SUFFIX = " - Not Rated"


def track_from_item(item: dict[str, Any]) -> dict[str, Any] | None:
    """Convert a Spotify playlist item into the import shape.

    Local files and removed tracks come back without a ``track``; they are
    skipped.
    """
    track = item.get("track")
    if not track or not track.get("name"):
        return None
    album = track.get("album") or {}
    images = album.get("images") or []
    return {
        "title": track["name"],
        "artist": spotify.artist_names(track),
        "album": album.get("name"),
        "spotify_link": (track.get("external_urls") or {}).get("spotify"),
        "artwork_url": images[0]["url"] if images else None,
    }


async def find_or_create_playlist(session: AsyncSession, name: str) -> models.Playlist:
    result = await session.execute(select(models.Playlist).where(models.Playlist.name == name).limit(1))
    playlist = result.scalars().first()
    if playlist is None:
        playlist = models.Playlist(name=name)
        session.add(playlist)
        await session.flush()
        logger.info(f"Created playlist {name!r}")
    return playlist


async def import_playlist(
    session: AsyncSession,
    name: str,
    tracks: Iterable[dict[str, Any]],
) -> tuple[models.Playlist, list[models.Song]]:
    """Append ``tracks`` to the playlist called ``name``, creating it if needed.

    Songs arrive unrated with ``sort_order`` equal to their position in
    ``tracks``.
    """
    playlist = await find_or_create_playlist(session, name)

    songs = []
    for index, track in enumerate(tracks):
        song = models.Song(
            title=track["title"],
            artist=track["artist"],
            album=track.get("album"),
            spotify_link=track.get("spotify_link"),
            artwork_url=track.get("artwork_url"),
            playlist_id=playlist.id,
            rating=None,
            sort_order=index,
        )
        session.add(song)
        songs.append(song)

    await session.commit()
    logger.info(f"Imported {len(songs)} songs into playlist {playlist.id}")
    return playlist, songs


async def sync_playlist_from_spotify(
    session: AsyncSession,
    client: SpotifyClient,
    playlist: models.Playlist,
) -> dict[str, int]:
    """Append Spotify tracks not yet stored for ``playlist``.

    Tracks are compared by Spotify track id. New songs are placed after the
    current highest ``sort_order``.

    Raises:
        APIError: If the playlist has no usable Spotify link
    """
    spotify_id = spotify.extract_playlist_id(playlist.spotify_link)
    if not spotify_id:
        raise APIError(400, "Playlist has no Spotify link")

    remote = await client.get_playlist_with_tracks(spotify_id)

    result = await session.execute(
        select(models.Song.spotify_link).where(models.Song.playlist_id == playlist.id)
    )
    known_ids = {spotify.extract_track_id(link) for link in result.scalars().all()}
    known_ids.discard(None)

    max_order = await session.scalar(
        select(func.max(models.Song.sort_order)).where(models.Song.playlist_id == playlist.id)
    )
    next_order = (max_order + 1) if max_order is not None else 0

    items = (remote.get("tracks") or {}).get("items") or []
    added = 0
    for item in items:
        track = track_from_item(item)
        if track is None:
            continue
        track_id = spotify.extract_track_id(track["spotify_link"])
        if track_id and track_id in known_ids:
            continue
        session.add(models.Song(
            **track,
            playlist_id=playlist.id,
            rating=None,
            sort_order=next_order,
        ))
        if track_id:
            known_ids.add(track_id)
        next_order += 1
        added += 1

    images = remote.get("images") or []
    if images:
        playlist.artwork_url = images[0].get("url")

    await session.commit()
    logger.info(f"Synced playlist {playlist.id} from Spotify: {added} added")
    return {"added": added, "total": len(items)}


def unrated_track_uris(playlist: models.Playlist) -> list[str]:
    """Spotify URIs of the playlist's unrated songs, in stored order."""
    uris = []
    for song in playlist.songs:
        if is_rated(song):
            continue
        uri = spotify.track_uri(song.spotify_link)
        if uri:
            uris.append(uri)
    return uris


async def build_unrated_playlist(
    session: AsyncSession,
    client: SpotifyClient,
    playlist: models.Playlist,
) -> dict[str, Any]:
    """Fill the playlist's "Not Rated" Spotify playlist with its unrated songs.

    An existing "Not Rated" playlist has its tracks replaced; if that fails a
    new private playlist is created and remembered on ``playlist``.

    Raises:
        APIError: If no unrated song has a Spotify link
    """
    uris = unrated_track_uris(playlist)
    if not uris:
        raise APIError(400, "No unrated songs with Spotify links to add.")

    if playlist.unrated_playlist_id:
        try:
            cleared = await client.replace_tracks(playlist.unrated_playlist_id, [])
            if cleared.is_error:
                raise ServiceError("Failed to clear unrated playlist", status_code=cleared.status_code)
            await client.add_tracks_in_batches(playlist.unrated_playlist_id, uris)
            existing = await client.get_playlist(playlist.unrated_playlist_id)
            return {
                "message": "Unrated playlist updated successfully",
                "externalUrl": (existing.get("external_urls") or {}).get("spotify"),
                "playlistId": playlist.unrated_playlist_id,
            }
        except ServiceError as e:
            if e.status_code == 401:
                raise
            logger.warning(f"Updating unrated playlist {playlist.unrated_playlist_id} failed, creating a new one: {e}")

    created = await client.create_playlist(f"{playlist.name}{UNRATED_SUFFIX}", public=False)
    await client.add_tracks_in_batches(created["id"], uris)

    playlist.unrated_playlist_id = created["id"]
    await session.commit()
    logger.info(f"Created unrated playlist {created['id']} for playlist {playlist.id}")
    return {
        "message": "Unrated playlist created successfully",
        "externalUrl": (created.get("external_urls") or {}).get("spotify"),
        "playlistId": created["id"],
    }
