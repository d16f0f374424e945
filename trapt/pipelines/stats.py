"""Library statistics: rating distribution, playlist and artist leaderboards."""
from __future__ import annotations

import logging
import math
from collections import Counter, defaultdict
from typing import Any, Sequence

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from trapt import models

logger = logging.getLogger(__name__)

TOP_ARTISTS = 10
MIN_RATED_FOR_PLAYLIST_RANKING = 5
MIN_RATED_FOR_ARTIST_RANKING = 3


def round_half_up(value: float, digits: int) -> float:
    factor = 10 ** digits
    return math.floor(value * factor + 0.5) / factor


def is_rated(song: models.Song) -> bool:
    return song.rating is not None and song.rating != 0


def _has_text(value: str | None) -> bool:
    return bool(value and value.strip())


def _percent(count: int, total: int) -> float:
    return round_half_up(count / total * 100, 1) if total else 0


def playlist_summary(playlist: models.Playlist) -> dict[str, Any]:
    rated = [s.rating for s in playlist.songs if is_rated(s)]
    return {
        "id": playlist.id,
        "name": playlist.name,
        "songCount": len(playlist.songs),
        "ratedCount": len(rated),
        "avgRating": sum(rated) / len(rated) if rated else None,
        "year": playlist.year,
    }


def compute_stats(playlists: Sequence[models.Playlist]) -> dict[str, Any]:
    """Aggregate stats over playlists whose ``songs`` are loaded."""
    songs = [song for playlist in playlists for song in playlist.songs]
    total_songs = len(songs)
    total_playlists = len(playlists)

    rating_counts: dict[str, int] = {str(r): 0 for r in (5, 4, 3, 2, 1)}
    rating_counts["unrated"] = 0
    for song in songs:
        if not is_rated(song):
            rating_counts["unrated"] += 1
        elif str(song.rating) in rating_counts:
            rating_counts[str(song.rating)] += 1

    rated_values = [s.rating for s in songs if is_rated(s)]
    avg_rating = sum(rated_values) / len(rated_values) if rated_values else 0

    songs_with_notes = sum(1 for s in songs if _has_text(s.notes))
    songs_with_artwork = sum(1 for s in songs if _has_text(s.artwork_url))

    playlist_stats = [playlist_summary(p) for p in playlists]
    by_song_count = sorted(playlist_stats, key=lambda p: p["songCount"], reverse=True)
    ranked = sorted(
        (p for p in playlist_stats
         if p["avgRating"] is not None and p["ratedCount"] >= MIN_RATED_FOR_PLAYLIST_RANKING),
        key=lambda p: p["avgRating"],
        reverse=True,
    )

    artist_counts: Counter[str] = Counter()
    artist_ratings: dict[str, list[int]] = defaultdict(list)
    for song in songs:
        artist = song.artist or "Unknown"
        artist_counts[artist] += 1
        if is_rated(song):
            artist_ratings[artist].append(song.rating)

    top_by_count = [
        {"artist": artist, "count": count}
        for artist, count in sorted(artist_counts.items(), key=lambda kv: kv[1], reverse=True)[:TOP_ARTISTS]
    ]
    top_by_rating = sorted(
        (
            {
                "artist": artist,
                "avgRating": sum(ratings) / len(ratings),
                "ratedCount": len(ratings),
                "totalCount": artist_counts[artist],
            }
            for artist, ratings in artist_ratings.items()
            if len(ratings) >= MIN_RATED_FOR_ARTIST_RANKING
        ),
        key=lambda a: a["avgRating"],
        reverse=True,
    )[:TOP_ARTISTS]

    year_counts: Counter[int] = Counter()
    for playlist in playlists:
        if playlist.year:
            year_counts[playlist.year] += len(playlist.songs)

    return {
        "totalSongs": total_songs,
        "totalPlaylists": total_playlists,
        "avgSongsPerPlaylist": round_half_up(total_songs / total_playlists, 1) if total_playlists else 0,
        "ratingCounts": rating_counts,
        "ratingPercentages": {key: _percent(count, total_songs) for key, count in rating_counts.items()},
        "ratedCount": len(rated_values),
        "avgRating": round_half_up(avg_rating, 2),
        "songsWithNotes": songs_with_notes,
        "songsWithoutNotes": total_songs - songs_with_notes,
        "songsWithArtwork": songs_with_artwork,
        "songsWithoutArtwork": total_songs - songs_with_artwork,
        "mostSongsPlaylist": by_song_count[0] if by_song_count else None,
        "leastSongsPlaylist": by_song_count[-1] if by_song_count else None,
        "highestRatedPlaylist": ranked[0] if ranked else None,
        "lowestRatedPlaylist": ranked[-1] if ranked else None,
        "topArtistsByCount": top_by_count,
        "topArtistsByRating": top_by_rating,
        "mostFeaturedArtist": top_by_count[0] if top_by_count else None,
        "highestRatedArtist": top_by_rating[0] if top_by_rating else None,
        "yearStats": [{"year": year, "count": count} for year, count in sorted(year_counts.items())],
    }


async def load_stats(session: AsyncSession) -> dict[str, Any]:
    result = await session.execute(
        select(models.Playlist).options(selectinload(models.Playlist.songs))
    )
    playlists = result.scalars().all()
    stats = compute_stats(playlists)
    logger.info(f"Computed stats over {stats['totalSongs']} songs in {stats['totalPlaylists']} playlists")
    return stats
