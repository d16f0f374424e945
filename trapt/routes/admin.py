"""Admin endpoints: stats, user management, ratings import and Genius matching."""
from __future__ import annotations

import logging

import httpx
from fastapi import APIRouter, Depends, File, Query, Request, UploadFile, status
from sqlalchemy import or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from music_services.genius import GeniusClient
from trapt import models
from trapt.auth import CurrentUser, get_current_user, get_genius_token, hash_password, require_admin
from trapt.db import get_session
from trapt.dependencies import get_http_client
from trapt.errors import APIError
from trapt.pipelines import genius_matching, ratings_import
from trapt.pipelines.stats import load_stats
from trapt.schemas import (
    ApplyRatingsRequest,
    ApplyRatingsResponse,
    GeniusMatchPostRequest,
    GeniusMatchSaveRequest,
    ImportedRating,
    RatingCandidate,
    RatingPreviewResponse,
    RatingPreviewRow,
    SongOut,
    UserCreateRequest,
    UserOut,
    UserRoleUpdateRequest,
)

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/admin", tags=["admin"])

ROLES = {role.value for role in models.Role}


@router.get("")
async def admin_index(_: CurrentUser = Depends(require_admin)):
    return {"message": "Welcome, admin!"}


@router.get("/stats")
async def stats(
    _: CurrentUser = Depends(get_current_user),
    session: AsyncSession = Depends(get_session),
):
    try:
        return await load_stats(session)
    except Exception as e:
        logger.error(f"Stats computation failed: {e}", exc_info=True)
        raise APIError(status.HTTP_500_INTERNAL_SERVER_ERROR, "Failed to fetch stats", detail=str(e))


# --- Users -----------------------------------------------------------------

@router.get("/users")
async def list_users(
    _: CurrentUser = Depends(require_admin),
    session: AsyncSession = Depends(get_session),
):
    result = await session.execute(select(models.User).order_by(models.User.id))
    return {"users": [UserOut.model_validate(u) for u in result.scalars().all()]}


@router.post("/users", status_code=status.HTTP_201_CREATED)
async def create_user(
    body: UserCreateRequest,
    _: CurrentUser = Depends(require_admin),
    session: AsyncSession = Depends(get_session),
):
    if not body.email or not body.password:
        raise APIError(status.HTTP_400_BAD_REQUEST, "Email and password are required")
    role = body.role or models.Role.VIEWER.value
    if role not in ROLES:
        raise APIError(status.HTTP_400_BAD_REQUEST, "Invalid role")

    clash = models.User.email == body.email
    if body.username:
        clash = or_(clash, models.User.username == body.username)
    existing = await session.execute(select(models.User.id).where(clash))
    if existing.first() is not None:
        raise APIError(status.HTTP_400_BAD_REQUEST, "User with this email or username already exists")

    user = models.User(
        email=body.email,
        username=body.username or None,
        password=hash_password(body.password),
        name=body.name,
        role=role,
    )
    session.add(user)
    await session.commit()
    logger.info(f"Created user {user.id} with role {role}")
    return {"user": UserOut.model_validate(user)}


@router.put("/users")
async def update_user_role(
    body: UserRoleUpdateRequest,
    _: CurrentUser = Depends(require_admin),
    session: AsyncSession = Depends(get_session),
):
    if not body.id or not body.role:
        raise APIError(status.HTTP_400_BAD_REQUEST, "Missing id or role")
    if body.role not in ROLES:
        raise APIError(status.HTTP_400_BAD_REQUEST, "Invalid role")

    user = await session.get(models.User, body.id)
    if user is None:
        raise APIError(status.HTTP_404_NOT_FOUND, "User not found")
    user.role = body.role
    await session.commit()
    logger.info(f"User {user.id} role set to {body.role}")
    return {"user": UserOut.model_validate(user)}


# --- Ratings import ---------------------------------------------------------

def _preview_response(previews: list[ratings_import.RatingPreview]) -> RatingPreviewResponse:
    return RatingPreviewResponse(results=[
        RatingPreviewRow(
            imported=ImportedRating.model_validate(p.imported),
            matches=[
                RatingCandidate(score=m.score, song=SongOut.model_validate(m.song))
                for m in p.matches
            ],
        )
        for p in previews
    ])


@router.get("/import-ratings", response_model=RatingPreviewResponse)
async def preview_ratings_file(
    year: str | None = Query(default=None),
    _: CurrentUser = Depends(require_admin),
    session: AsyncSession = Depends(get_session),
):
    """Preview matches for the stored spreadsheet export of ``year``."""
    if not ratings_import.is_valid_year(year):
        raise APIError(status.HTTP_400_BAD_REQUEST, "Missing or invalid year parameter")

    path = ratings_import.ratings_csv_path(year)
    if not path.exists():
        raise APIError(status.HTTP_404_NOT_FOUND, f"CSV file for year {year} not found.")

    rows = ratings_import.parse_ratings_csv(path)
    return _preview_response(await ratings_import.preview_ratings(session, rows))


@router.post("/import-ratings/preview", response_model=RatingPreviewResponse)
async def preview_ratings_upload(
    file: UploadFile = File(...),
    _: CurrentUser = Depends(require_admin),
    session: AsyncSession = Depends(get_session),
):
    if file.filename and not file.filename.lower().endswith(".csv"):
        raise APIError(status.HTTP_400_BAD_REQUEST, "Only CSV files are supported")

    rows = ratings_import.parse_ratings_csv(file.file)
    logger.info(f"Previewing uploaded ratings file {file.filename!r}")
    return _preview_response(await ratings_import.preview_ratings(session, rows))


@router.post("/import-ratings", response_model=ApplyRatingsResponse)
async def apply_ratings(
    body: ApplyRatingsRequest,
    _: CurrentUser = Depends(require_admin),
    session: AsyncSession = Depends(get_session),
):
    if not body.updates:
        raise APIError(status.HTTP_400_BAD_REQUEST, "No updates provided.")

    updated = await ratings_import.apply_rating_updates(session, body.updates)
    return ApplyRatingsResponse(
        updated_count=len(updated),
        updated=[SongOut.model_validate(s) for s in updated],
    )


# --- Genius matching --------------------------------------------------------

def _song_ids(values: list[int | str] | None) -> list[int]:
    if not values:
        raise APIError(status.HTTP_400_BAD_REQUEST, "Missing or invalid songIds array")
    try:
        return [int(v) for v in values]
    except (TypeError, ValueError):
        raise APIError(status.HTTP_400_BAD_REQUEST, "Missing or invalid songIds array")


@router.post("/match-genius")
async def match_genius(
    body: GeniusMatchPostRequest,
    request: Request,
    _: CurrentUser = Depends(require_admin),
    session: AsyncSession = Depends(get_session),
    http: httpx.AsyncClient = Depends(get_http_client),
):
    """Search Genius for a playlist, or flag/unflag songs via ``action``."""
    if body.action == "mark-no-match":
        songs = await genius_matching.mark_no_match(session, _song_ids(body.song_ids))
        return {"success": True, "updated": len(songs)}

    if body.action == "clear-match":
        songs = await genius_matching.clear_matches(session, _song_ids(body.song_ids))
        return {
            "success": True,
            "updated": len(songs),
            "updatedSongs": [SongOut.model_validate(s) for s in songs],
        }

    if not body.playlist_id:
        raise APIError(status.HTTP_400_BAD_REQUEST, "Missing playlistId")

    token = get_genius_token(request)
    if not token:
        raise APIError(status.HTTP_401_UNAUTHORIZED, "Not authenticated with Genius. Please connect to Genius first.")

    try:
        playlist_id = int(body.playlist_id)
    except ValueError:
        raise APIError(status.HTTP_400_BAD_REQUEST, "Missing playlistId")

    results = await genius_matching.match_playlist(session, GeniusClient(http, token), playlist_id)
    return {"success": True, "total": len(results), "results": results}


@router.put("/match-genius")
async def save_genius_matches(
    body: GeniusMatchSaveRequest,
    request: Request,
    _: CurrentUser = Depends(require_admin),
    session: AsyncSession = Depends(get_session),
    http: httpx.AsyncClient = Depends(get_http_client),
):
    """Resolve Genius URLs to ids, or save confirmed matches."""
    token = get_genius_token(request)
    genius = GeniusClient(http, token) if token else None

    if body.resolve_urls is not None:
        if genius is None:
            raise APIError(status.HTTP_401_UNAUTHORIZED, "Not authenticated with Genius")
        resolved = [{"url": url, "songId": await genius.resolve_url(url)} for url in body.resolve_urls]
        return {"resolved": resolved}

    if body.matches is None:
        raise APIError(status.HTTP_400_BAD_REQUEST, "Missing or invalid matches array")

    updated = await genius_matching.save_matches(session, body.matches, genius)
    return {
        "success": True,
        "updated": len(updated),
        "updatedSongs": [SongOut.model_validate(s) for s in updated],
    }
