"""Threaded comments on songs. Only the author may edit or delete a comment."""
from __future__ import annotations

import logging

from fastapi import APIRouter, Depends, Query, Response, status
from sqlalchemy import delete, select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from trapt import models
from trapt.auth import CurrentUser, get_current_user
from trapt.db import get_session
from trapt.errors import APIError
from trapt.schemas import CommentCreate, CommentDelete, CommentOut, CommentThread, CommentUpdate

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/comments", tags=["comments"])


async def _owned_comment(session: AsyncSession, comment_id: int | None, user: CurrentUser) -> models.Comment:
    if not comment_id:
        raise APIError(status.HTTP_400_BAD_REQUEST, "Comment id is required")
    comment = await session.get(models.Comment, comment_id)
    if comment is None:
        raise APIError(status.HTTP_404_NOT_FOUND, "Comment not found")
    if comment.user_id != user.id:
        raise APIError(status.HTTP_403_FORBIDDEN, "You can only modify your own comments")
    return comment


async def _with_user(session: AsyncSession, comment_id: int) -> models.Comment:
    result = await session.execute(
        select(models.Comment)
        .options(selectinload(models.Comment.user))
        .where(models.Comment.id == comment_id)
        .execution_options(populate_existing=True)
    )
    return result.scalars().one()


@router.get("", response_model=list[CommentThread])
async def list_comments(
    song_id: int | None = Query(default=None, alias="songId"),
    session: AsyncSession = Depends(get_session),
):
    """Top-level comments for a song, oldest first, each with its replies."""
    if song_id is None:
        raise APIError(status.HTTP_400_BAD_REQUEST, "songId is required")

    result = await session.execute(
        select(models.Comment)
        .options(
            selectinload(models.Comment.user),
            selectinload(models.Comment.replies).selectinload(models.Comment.user),
        )
        .where(models.Comment.song_id == song_id, models.Comment.parent_comment_id.is_(None))
        .order_by(models.Comment.created_at, models.Comment.id)
    )
    return result.scalars().all()


@router.post("", response_model=CommentOut, status_code=status.HTTP_201_CREATED)
async def create_comment(
    body: CommentCreate,
    user: CurrentUser = Depends(get_current_user),
    session: AsyncSession = Depends(get_session),
):
    content = (body.content or "").strip()
    if not body.song_id or not content:
        raise APIError(status.HTTP_400_BAD_REQUEST, "songId and content are required")

    if await session.get(models.Song, body.song_id) is None:
        raise APIError(status.HTTP_404_NOT_FOUND, "Song not found")

    if body.parent_comment_id is not None:
        parent = await session.get(models.Comment, body.parent_comment_id)
        if parent is None or parent.song_id != body.song_id:
            raise APIError(status.HTTP_400_BAD_REQUEST, "Invalid parent comment")

    comment = models.Comment(
        song_id=body.song_id,
        user_id=user.id,
        content=content,
        parent_comment_id=body.parent_comment_id,
    )
    session.add(comment)
    await session.commit()
    logger.info(f"User {user.id} commented on song {body.song_id}")
    return await _with_user(session, comment.id)


@router.put("", response_model=CommentOut)
async def update_comment(
    body: CommentUpdate,
    user: CurrentUser = Depends(get_current_user),
    session: AsyncSession = Depends(get_session),
):
    content = (body.content or "").strip()
    if not content:
        raise APIError(status.HTTP_400_BAD_REQUEST, "Content is required")

    comment = await _owned_comment(session, body.id, user)
    comment.content = content
    await session.commit()
    return await _with_user(session, comment.id)


@router.delete("", status_code=status.HTTP_204_NO_CONTENT)
async def delete_comment(
    body: CommentDelete,
    user: CurrentUser = Depends(get_current_user),
    session: AsyncSession = Depends(get_session),
):
    comment = await _owned_comment(session, body.id, user)
    await session.execute(delete(models.Comment).where(models.Comment.parent_comment_id == comment.id))
    await session.execute(delete(models.Comment).where(models.Comment.id == comment.id))
    await session.commit()
    logger.info(f"User {user.id} deleted comment {comment.id}")
    return Response(status_code=status.HTTP_204_NO_CONTENT)
