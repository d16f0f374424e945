"""Login, current user, profile edits and master-code password reset."""
from __future__ import annotations

import logging

from fastapi import APIRouter, Depends, status
from sqlalchemy import or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from trapt import models
from trapt.auth import CurrentUser, create_access_token, get_current_user, hash_password, verify_password
from trapt.config import settings
from trapt.db import get_session
from trapt.errors import APIError
from trapt.schemas import (
    LoginRequest,
    LoginResponse,
    ProfileUpdateRequest,
    ResetPasswordRequest,
    SuccessResponse,
    UserOut,
)

logger = logging.getLogger(__name__)

router = APIRouter(tags=["auth"])


async def find_user(session: AsyncSession, identifier: str) -> models.User | None:
    """Look a user up by email or username."""
    result = await session.execute(
        select(models.User).where(
            or_(models.User.email == identifier, models.User.username == identifier)
        )
    )
    return result.scalars().first()


@router.post("/login", response_model=LoginResponse)
async def login(body: LoginRequest, session: AsyncSession = Depends(get_session)):
    if not body.identifier or not body.password:
        raise APIError(status.HTTP_400_BAD_REQUEST, "Email/username and password required")

    user = await find_user(session, body.identifier)
    if user is None or not verify_password(body.password, user.password):
        logger.info(f"Failed login for {body.identifier!r}")
        raise APIError(status.HTTP_401_UNAUTHORIZED, "Invalid credentials")

    logger.info(f"User {user.id} logged in")
    return LoginResponse(token=create_access_token(user), user=UserOut.model_validate(user))


@router.get("/me")
async def me(user: CurrentUser = Depends(get_current_user)):
    return {"user": user.claims}


@router.post("/profile", response_model=SuccessResponse)
async def update_profile(
    body: ProfileUpdateRequest,
    current: CurrentUser = Depends(get_current_user),
    session: AsyncSession = Depends(get_session),
):
    user = await session.get(models.User, current.id)
    if user is None:
        raise APIError(status.HTTP_404_NOT_FOUND, "User not found")

    changed = False
    if body.new_password:
        if not body.current_password:
            raise APIError(status.HTTP_400_BAD_REQUEST, "Current password required to change password")
        if not verify_password(body.current_password, user.password):
            raise APIError(status.HTTP_400_BAD_REQUEST, "Current password is incorrect")
        user.password = hash_password(body.new_password)
        changed = True

    if body.username and body.username != user.username:
        taken = await session.execute(
            select(models.User.id).where(models.User.username == body.username, models.User.id != user.id)
        )
        if taken.first() is not None:
            raise APIError(status.HTTP_400_BAD_REQUEST, "Username already taken")
        user.username = body.username
        changed = True

    if not changed:
        raise APIError(status.HTTP_400_BAD_REQUEST, "No changes to update")

    await session.commit()
    logger.info(f"User {user.id} updated their profile")
    return SuccessResponse(message="Profile updated")


@router.post("/reset-password", response_model=SuccessResponse)
async def reset_password(body: ResetPasswordRequest, session: AsyncSession = Depends(get_session)):
    if not body.identifier or not body.master_code or not body.new_password:
        raise APIError(status.HTTP_400_BAD_REQUEST, "Missing required fields")
    if body.master_code != settings.auth.master_reset_code:
        logger.warning(f"Bad master code used to reset {body.identifier!r}")
        raise APIError(status.HTTP_401_UNAUTHORIZED, "Invalid master code")

    user = await find_user(session, body.identifier)
    if user is None:
        raise APIError(status.HTTP_404_NOT_FOUND, "User not found")

    user.password = hash_password(body.new_password)
    await session.commit()
    logger.info(f"Password reset for user {user.id}")
    return SuccessResponse(message="Password reset successfully")
