"""Song CRUD. Reads are public; ratings and notes are saved through PUT."""
from __future__ import annotations

import logging

from fastapi import APIRouter, Depends, Query, Response, status
from sqlalchemy import delete, select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from trapt import models
from trapt.auth import CurrentUser, get_current_user, require_admin
from trapt.db import get_session
from trapt.errors import APIError
from trapt.schemas import IdRequest, SongCreate, SongOut, SongUpdate, SongWithPlaylist

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/songs", tags=["songs"])

LIST_CACHE_CONTROL = "s-maxage=3600, stale-while-revalidate"
REQUIRED_FIELDS = ("title", "artist", "playlist_id", "sort_order")


@router.get("", response_model=list[SongWithPlaylist])
async def list_songs(
    response: Response,
    playlist_id: int | None = Query(default=None, alias="playlistId"),
    session: AsyncSession = Depends(get_session),
):
    stmt = select(models.Song).options(selectinload(models.Song.playlist)).order_by(models.Song.sort_order)
    if playlist_id is not None:
        stmt = stmt.where(models.Song.playlist_id == playlist_id)
    result = await session.execute(stmt)

    response.headers["Cache-Control"] = LIST_CACHE_CONTROL
    return result.scalars().all()


@router.get("/{song_id}", response_model=SongWithPlaylist)
async def get_song(song_id: int, session: AsyncSession = Depends(get_session)):
    result = await session.execute(
        select(models.Song).options(selectinload(models.Song.playlist)).where(models.Song.id == song_id)
    )
    song = result.scalars().first()
    if song is None:
        raise APIError(status.HTTP_404_NOT_FOUND, "Song not found")
    return song


async def _ensure_playlist(session: AsyncSession, playlist_id: int) -> None:
    if await session.get(models.Playlist, playlist_id) is None:
        raise APIError(status.HTTP_400_BAD_REQUEST, "Playlist not found")


@router.post("", response_model=SongOut, status_code=status.HTTP_201_CREATED)
async def create_song(
    body: SongCreate,
    _: CurrentUser = Depends(require_admin),
    session: AsyncSession = Depends(get_session),
):
    await _ensure_playlist(session, body.playlist_id)
    song = models.Song(**body.model_dump())
    session.add(song)
    await session.commit()
    logger.info(f"Created song {song.id} in playlist {song.playlist_id}")
    return song


@router.put("", response_model=SongOut)
async def update_song(
    body: SongUpdate,
    user: CurrentUser = Depends(get_current_user),
    session: AsyncSession = Depends(get_session),
):
    song = await session.get(models.Song, body.id)
    if song is None:
        raise APIError(status.HTTP_404_NOT_FOUND, "Song not found")

    changes = body.model_dump(exclude_unset=True, exclude={"id"})
    for field in REQUIRED_FIELDS:
        if field in changes and changes[field] is None:
            del changes[field]
    if "playlist_id" in changes and changes["playlist_id"] != song.playlist_id:
        await _ensure_playlist(session, changes["playlist_id"])

    for field, value in changes.items():
        setattr(song, field, value)
    await session.commit()
    logger.info(f"User {user.id} updated song {song.id}: {sorted(changes)}")
    return song


@router.delete("", status_code=status.HTTP_204_NO_CONTENT)
async def delete_song(
    body: IdRequest,
    _: CurrentUser = Depends(require_admin),
    session: AsyncSession = Depends(get_session),
):
    if await session.get(models.Song, body.id) is None:
        raise APIError(status.HTTP_404_NOT_FOUND, "Song not found")

    await session.execute(delete(models.Comment).where(models.Comment.song_id == body.id))
    await session.execute(delete(models.Song).where(models.Song.id == body.id))
    await session.commit()
    logger.info(f"Deleted song {body.id}")
    return Response(status_code=status.HTTP_204_NO_CONTENT)
