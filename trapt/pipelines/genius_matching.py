"""Match playlist songs to Genius song ids.

For every song in a playlist the pipeline reports one of:

- ``no_match_available``: an admin flagged the song as not on Genius
- ``already_matched``: the song has a Genius id (details fetched if possible)
- ``exact_match_found`` / ``matches_found``: search candidates to confirm
- ``no_results`` / ``error``: nothing usable came back
"""
from __future__ import annotations

import asyncio
import logging
from typing import Any

import httpx
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from music_services.genius import GeniusClient, hit_summary
from trapt import models
from trapt.config import settings
from trapt.errors import GeniusMatchError, ServiceError

logger = logging.getLogger(__name__)

MAX_CANDIDATES = 5


def classify_match(candidate_title: str, candidate_artist: str, title: str, artist: str) -> str:
    """``exact`` when title and artist agree, ``partial`` when one does."""
    t = candidate_title.strip().lower()
    a = candidate_artist.strip().lower()
    song_title = (title or "").strip().lower()
    song_artist = (artist or "").strip().lower()
    if t == song_title and a == song_artist:
        return "exact"
    if t == song_title or a == song_artist:
        return "partial"
    return "possible"


def _base(song: models.Song) -> dict[str, Any]:
    return {"songId": song.id, "title": song.title, "artist": song.artist}


async def _already_matched(genius: GeniusClient, song: models.Song) -> dict[str, Any]:
    result = {**_base(song), "status": "already_matched", "geniusId": song.genius_song_id, "geniusUrl": song.genius_url}
    try:
        details = await genius.song(song.genius_song_id)
    except httpx.HTTPError as e:
        logger.warning(f"Error fetching Genius song {song.genius_song_id}: {e}")
        details = None
    if details:
        result.update({
            "geniusUrl": song.genius_url or details.get("url"),
            "geniusTitle": details.get("title"),
            "geniusArtist": (details.get("primary_artist") or {}).get("name"),
            "thumbnail": details.get("song_art_image_thumbnail_url"),
        })
    return result


async def _search_song(genius: GeniusClient, song: models.Song) -> dict[str, Any]:
    try:
        hits = await genius.search(f"{song.artist} {song.title}")
    except (ServiceError, httpx.HTTPError) as e:
        logger.error(f"Error processing song {song.id}: {e}")
        return {**_base(song), "status": "error", "error": str(e), "potentialMatches": []}

    if not hits:
        return {**_base(song), "status": "no_results", "potentialMatches": []}

    candidates = []
    for hit in hits[:MAX_CANDIDATES]:
        summary = hit_summary(hit)
        summary["matchType"] = classify_match(summary["title"], summary["artist"], song.title, song.artist)
        candidates.append(summary)

    exact = next((c for c in candidates if c["matchType"] == "exact"), None)
    return {
        **_base(song),
        "status": "exact_match_found" if exact else "matches_found",
        "potentialMatches": candidates,
        "suggestedMatch": exact or candidates[0],
    }


async def match_playlist(session: AsyncSession, genius: GeniusClient, playlist_id: int) -> list[dict[str, Any]]:
    """Run the Genius lookup for every song of a playlist, in sort order.

    Raises:
        GeniusMatchError: If the playlist has no songs
    """
    result = await session.execute(
        select(models.Song)
        .where(models.Song.playlist_id == playlist_id)
        .order_by(models.Song.sort_order)
    )
    songs = result.scalars().all()
    if not songs:
        raise GeniusMatchError("No songs found in playlist", status_code=404)

    results: list[dict[str, Any]] = []
    for song in songs:
        if song.genius_no_match:
            results.append({**_base(song), "status": "no_match_available"})
            continue
        if song.genius_song_id:
            results.append(await _already_matched(genius, song))
            continue

        results.append(await _search_song(genius, song))
        if settings.genius.request_delay:
            await asyncio.sleep(settings.genius.request_delay)

    logger.info(f"Genius matching for playlist {playlist_id}: {len(results)} songs processed")
    return results


async def _songs_by_ids(session: AsyncSession, song_ids: list[int]) -> list[models.Song]:
    result = await session.execute(select(models.Song).where(models.Song.id.in_(song_ids)))
    return list(result.scalars().all())


async def mark_no_match(session: AsyncSession, song_ids: list[int]) -> list[models.Song]:
    songs = await _songs_by_ids(session, song_ids)
    for song in songs:
        song.genius_no_match = True
    await session.commit()
    return songs


async def clear_matches(session: AsyncSession, song_ids: list[int]) -> list[models.Song]:
    """Remove Genius ids and the no-match flag so songs can be searched again."""
    songs = await _songs_by_ids(session, song_ids)
    for song in songs:
        song.genius_song_id = None
        song.genius_url = None
        song.genius_no_match = False
    await session.commit()
    return songs


async def save_matches(
    session: AsyncSession,
    matches: list[Any],
    genius: GeniusClient | None,
) -> list[models.Song]:
    """Persist confirmed matches, resolving missing ids from their URLs.

    Raises:
        GeniusMatchError: If a URL cannot be resolved to a Genius id
    """
    updated: list[models.Song] = []
    for match in matches:
        if not match.song_id or not match.genius_url:
            continue

        genius_id = match.genius_id
        if not genius_id and genius is not None:
            genius_id = await genius.resolve_url(match.genius_url)
        if not genius_id:
            await session.rollback()
            raise GeniusMatchError(f"Could not resolve song ID from URL: {match.genius_url}")

        song = await session.get(models.Song, int(match.song_id))
        if song is None:
            logger.warning(f"Skipping Genius match for missing song {match.song_id}")
            continue
        song.genius_song_id = int(genius_id)
        song.genius_url = match.genius_url
        updated.append(song)

    await session.commit()
    logger.info(f"Saved {len(updated)} Genius matches")
    return updated
