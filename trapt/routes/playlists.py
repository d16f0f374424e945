"""Playlist CRUD and bulk import of tracks fetched from Spotify."""
from __future__ import annotations

import logging

from fastapi import APIRouter, Depends, Query, Response, status
from sqlalchemy import delete, select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from trapt import models
from trapt.auth import CurrentUser, require_admin
from trapt.db import get_session
from trapt.errors import APIError
from trapt.pipelines.playlist_import import import_playlist
from trapt.schemas import (
    IdRequest,
    ImportPlaylistRequest,
    ImportPlaylistResponse,
    PlaylistCreate,
    PlaylistOut,
    PlaylistSummary,
    PlaylistUpdate,
    PlaylistWithSongs,
    SongOut,
)

logger = logging.getLogger(__name__)

router = APIRouter(tags=["playlists"])


async def load_playlist(session: AsyncSession, playlist_id: int) -> models.Playlist:
    """Fetch a playlist with its songs or raise 404."""
    result = await session.execute(
        select(models.Playlist)
        .options(selectinload(models.Playlist.songs))
        .where(models.Playlist.id == playlist_id)
    )
    playlist = result.scalars().first()
    if playlist is None:
        raise APIError(status.HTTP_404_NOT_FOUND, "Playlist not found")
    return playlist


@router.get("/playlists")
async def list_playlists(
    admin: str | None = Query(default=None),
    session: AsyncSession = Depends(get_session),
):
    """All playlists by name; ``?admin=1`` returns only ids and names."""
    if admin == "1":
        result = await session.execute(select(models.Playlist).order_by(models.Playlist.name))
        return [PlaylistSummary.model_validate(p) for p in result.scalars().all()]

    result = await session.execute(
        select(models.Playlist)
        .options(selectinload(models.Playlist.songs))
        .order_by(models.Playlist.name)
    )
    return [PlaylistWithSongs.model_validate(p) for p in result.scalars().all()]


@router.get("/playlists/{playlist_id}", response_model=PlaylistWithSongs)
async def get_playlist(playlist_id: int, session: AsyncSession = Depends(get_session)):
    return await load_playlist(session, playlist_id)


@router.post("/playlists", response_model=PlaylistOut, status_code=status.HTTP_201_CREATED)
async def create_playlist(
    body: PlaylistCreate,
    _: CurrentUser = Depends(require_admin),
    session: AsyncSession = Depends(get_session),
):
    playlist = models.Playlist(**body.model_dump())
    session.add(playlist)
    await session.commit()
    logger.info(f"Created playlist {playlist.id} ({playlist.name!r})")
    return playlist


@router.put("/playlists", response_model=PlaylistOut)
async def update_playlist(
    body: PlaylistUpdate,
    _: CurrentUser = Depends(require_admin),
    session: AsyncSession = Depends(get_session),
):
    playlist = await session.get(models.Playlist, body.id)
    if playlist is None:
        raise APIError(status.HTTP_404_NOT_FOUND, "Playlist not found")

    changes = body.model_dump(exclude_unset=True, exclude={"id"})
    if changes.get("name", "") is None:
        del changes["name"]
    for field, value in changes.items():
        setattr(playlist, field, value)
    await session.commit()
    logger.info(f"Updated playlist {playlist.id}: {sorted(changes)}")
    return playlist


@router.delete("/playlists", status_code=status.HTTP_204_NO_CONTENT)
async def delete_playlist(
    body: IdRequest,
    _: CurrentUser = Depends(require_admin),
    session: AsyncSession = Depends(get_session),
):
    if await session.get(models.Playlist, body.id) is None:
        raise APIError(status.HTTP_404_NOT_FOUND, "Playlist not found")

    song_ids = select(models.Song.id).where(models.Song.playlist_id == body.id)
    await session.execute(delete(models.Comment).where(models.Comment.song_id.in_(song_ids)))
    await session.execute(delete(models.Song).where(models.Song.playlist_id == body.id))
    await session.execute(delete(models.Playlist).where(models.Playlist.id == body.id))
    await session.commit()
    logger.info(f"Deleted playlist {body.id}")
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.post("/import-playlist", response_model=ImportPlaylistResponse, status_code=status.HTTP_201_CREATED)
async def import_playlist_route(
    body: ImportPlaylistRequest,
    _: CurrentUser = Depends(require_admin),
    session: AsyncSession = Depends(get_session),
):
    if not body.playlist_name or not body.songs:
        raise APIError(status.HTTP_400_BAD_REQUEST, "Missing playlistName or songs")

    try:
        playlist, songs = await import_playlist(
            session,
            body.playlist_name,
            [track.model_dump() for track in body.songs],
        )
    except Exception as e:
        logger.error(f"Playlist import failed: {e}", exc_info=True)
        raise APIError(status.HTTP_500_INTERNAL_SERVER_ERROR, "Failed to import playlist", detail=str(e))

    return ImportPlaylistResponse(
        playlist=PlaylistOut.model_validate(playlist),
        songs=[SongOut.model_validate(s) for s in songs],
    )
