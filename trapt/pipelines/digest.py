"""Activity digest: songs rated, annotated or commented on since a cutoff."""
from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from trapt import models

logger = logging.getLogger(__name__)


@dataclass
class DigestEntry:
    """A song with its latest activity and comment tallies."""
    song: models.Song
    activity_date: datetime
    comment_count: int
    response_count: int

    @property
    def has_comments(self) -> bool:
        return self.comment_count > 0

    @property
    def has_responses(self) -> bool:
        return self.response_count > 0


async def collect_activity(session: AsyncSession, since: datetime) -> dict[int, datetime]:
    """Map song id to its most recent comment or update at/after ``since``."""
    activity: dict[int, datetime] = {}

    comment_rows = await session.execute(
        select(models.Comment.song_id, func.max(models.Comment.created_at))
        .where(models.Comment.created_at >= since)
        .group_by(models.Comment.song_id)
    )
    for song_id, created_at in comment_rows.all():
        activity[song_id] = created_at

    update_rows = await session.execute(
        select(models.Song.id, models.Song.updated_at).where(models.Song.updated_at >= since)
    )
    for song_id, updated_at in update_rows.all():
        existing = activity.get(song_id)
        if existing is None or updated_at > existing:
            activity[song_id] = updated_at

    return activity


async def _count_comments(session: AsyncSession, song_ids: list[int], *, replies: bool) -> dict[int, int]:
    parent_filter = (
        models.Comment.parent_comment_id.is_not(None)
        if replies
        else models.Comment.parent_comment_id.is_(None)
    )
    rows = await session.execute(
        select(models.Comment.song_id, func.count(models.Comment.id))
        .where(models.Comment.song_id.in_(song_ids), parent_filter)
        .group_by(models.Comment.song_id)
    )
    return {song_id: count for song_id, count in rows.all()}


async def build_digest(session: AsyncSession, since: datetime) -> list[DigestEntry]:
    """Songs with activity since ``since``, most recent first."""
    activity = await collect_activity(session, since)
    if not activity:
        return []

    song_ids = list(activity)
    songs_result = await session.execute(
        select(models.Song)
        .options(selectinload(models.Song.playlist))
        .where(models.Song.id.in_(song_ids))
    )
    songs = songs_result.scalars().all()

    comment_counts = await _count_comments(session, song_ids, replies=False)
    response_counts = await _count_comments(session, song_ids, replies=True)

    entries = [
        DigestEntry(
            song=song,
            activity_date=activity[song.id],
            comment_count=comment_counts.get(song.id, 0),
            response_count=response_counts.get(song.id, 0),
        )
        for song in songs
    ]
    entries.sort(key=lambda e: e.activity_date, reverse=True)

    logger.info(f"Digest since {since.isoformat()}: {len(entries)} songs")
    return entries
