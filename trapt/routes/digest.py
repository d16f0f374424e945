"""Recent-activity digest endpoint."""
from __future__ import annotations

import logging
from datetime import datetime, timedelta, timezone

from fastapi import APIRouter, Depends, Query, Response, status
from sqlalchemy.ext.asyncio import AsyncSession

from trapt.auth import CurrentUser, get_current_user
from trapt.db import get_session
from trapt.errors import APIError
from trapt.models import utcnow
from trapt.pipelines.digest import build_digest
from trapt.schemas import DigestSong, PlaylistOut, SongOut

logger = logging.getLogger(__name__)

router = APIRouter(tags=["digest"])


def parse_start_date(value: str) -> datetime:
    """Parse an ISO timestamp into the naive-UTC form the columns store."""
    try:
        parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
    except ValueError:
        raise APIError(status.HTTP_400_BAD_REQUEST, "Invalid startDate parameter")
    if parsed.tzinfo is not None:
        parsed = parsed.astimezone(timezone.utc).replace(tzinfo=None)
    return parsed


def resolve_since(days: str | None, start_date: str | None) -> datetime:
    if days is not None:
        if not days.isdigit() or int(days) < 1:
            raise APIError(status.HTTP_400_BAD_REQUEST, "Invalid days parameter")
        return utcnow() - timedelta(days=int(days))
    if start_date:
        return parse_start_date(start_date)
    raise APIError(status.HTTP_400_BAD_REQUEST, "Either days or startDate is required")


@router.get("/digest", response_model=list[DigestSong])
async def digest(
    response: Response,
    days: str | None = Query(default=None),
    start_date: str | None = Query(default=None, alias="startDate"),
    _: CurrentUser = Depends(get_current_user),
    session: AsyncSession = Depends(get_session),
):
    since = resolve_since(days, start_date)
    entries = await build_digest(session, since)

    response.headers["Cache-Control"] = "no-store"
    return [
        DigestSong(
            **SongOut.model_validate(entry.song).model_dump(),
            playlist=PlaylistOut.model_validate(entry.song.playlist) if entry.song.playlist else None,
            activity_date=entry.activity_date,
            comment_count=entry.comment_count,
            response_count=entry.response_count,
            has_comments=entry.has_comments,
            has_responses=entry.has_responses,
        )
        for entry in entries
    ]
