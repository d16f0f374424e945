"""Match Apple Music tracks to Spotify search results."""
from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import Any, Iterable

import httpx

from music_services.spotify import SpotifyClient, artist_names, simplify_track
from trapt.config import settings
from trapt.errors import ServiceAuthError, ServiceError
from trapt.pipelines.normalization import normalize_for_match, similarity

logger = logging.getLogger(__name__)

SEARCH_LIMIT = 5
MAX_SUGGESTIONS = 5

EXACT = "exact"
FUZZY = "fuzzy"
NONE = "none"


@dataclass
class MatchScore:
    score: float
    type: str


def calculate_match_score(title: str, artist: str, spotify_track: dict[str, Any]) -> MatchScore:
    """Score a Spotify track against an Apple Music title/artist pair.

    Exact normalized equality scores 1.0; otherwise title and artist
    similarity are blended by the configured weights.
    """
    apple_title = normalize_for_match(title)
    apple_artist = normalize_for_match(artist)
    spotify_title = normalize_for_match(spotify_track.get("name"))
    spotify_artist = normalize_for_match(artist_names(spotify_track))

    if apple_title == spotify_title and apple_artist == spotify_artist:
        return MatchScore(1.0, EXACT)

    cfg = settings.matching
    combined = (
        similarity(apple_title, spotify_title) * cfg.title_weight
        + similarity(apple_artist, spotify_artist) * cfg.artist_weight
    )
    return MatchScore(combined, FUZZY if combined >= cfg.auto_match_threshold else NONE)


def search_query(title: str, artist: str) -> str:
    return f'track:"{title}" artist:"{artist}"'


def _unmatched(apple_track: dict[str, Any], suggestions: list | None = None, error: str | None = None) -> dict[str, Any]:
    entry = {
        "appleTrack": apple_track,
        "suggestions": suggestions or [],
        "position": apple_track.get("position"),
    }
    if error:
        entry["error"] = error
    return entry


async def match_track(spotify: SpotifyClient, apple_track: dict[str, Any]) -> tuple[dict[str, Any] | None, dict[str, Any] | None]:
    """Return ``(match, None)`` for an auto-match or ``(None, unmatched)``."""
    title = apple_track.get("title") or ""
    artist = apple_track.get("artist") or ""

    try:
        results = await spotify.search_tracks(search_query(title, artist), limit=SEARCH_LIMIT)
    except ServiceAuthError:
        raise
    except (ServiceError, httpx.HTTPError) as e:
        logger.warning(f"Spotify search failed for {title!r} by {artist!r}: {e}")
        return None, _unmatched(apple_track, error=str(e))

    if not results:
        return None, _unmatched(apple_track)

    scored = []
    for track in results:
        match = calculate_match_score(title, artist, track)
        scored.append((match, track))
    scored.sort(key=lambda pair: pair[0].score, reverse=True)

    best, best_track = scored[0]
    if best.type in (EXACT, FUZZY):
        return {
            "appleTrack": apple_track,
            "spotifyTrack": simplify_track(best_track),
            "matchType": best.type,
            "confidence": best.score,
            "position": apple_track.get("position"),
        }, None

    suggestions = [
        {**simplify_track(track), "matchScore": match.score}
        for match, track in scored[:MAX_SUGGESTIONS]
    ]
    return None, _unmatched(apple_track, suggestions)


async def match_tracks(spotify: SpotifyClient, tracks: Iterable[dict[str, Any]]) -> dict[str, Any]:
    """Match every track; a Spotify auth failure aborts the whole run.

    Raises:
        ServiceAuthError: If Spotify rejects the session after a refresh
    """
    tracks = list(tracks)
    matches: list[dict[str, Any]] = []
    unmatched: list[dict[str, Any]] = []

    for apple_track in tracks:
        match, miss = await match_track(spotify, apple_track)
        if match is not None:
            matches.append(match)
        else:
            unmatched.append(miss)
        if settings.matching.search_delay:
            await asyncio.sleep(settings.matching.search_delay)

    summary = {
        "total": len(tracks),
        "matched": len(matches),
        "unmatched": len(unmatched),
        "exactMatches": sum(1 for m in matches if m["matchType"] == EXACT),
        "fuzzyMatches": sum(1 for m in matches if m["matchType"] == FUZZY),
    }
    logger.info(f"Track matching: {summary['matched']}/{summary['total']} matched")
    return {"matches": matches, "unmatched": unmatched, "summary": summary}
