"""Bearer-token auth, password hashing and third-party token cookies."""
from __future__ import annotations

import logging
import time
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Any, Callable

import bcrypt
import jwt
from fastapi import Depends, Request, Response, status

from . import models
from .config import settings
from .errors import APIError

logger = logging.getLogger(__name__)

SPOTIFY_ACCESS_COOKIE = "spotify_access_token"
SPOTIFY_REFRESH_COOKIE = "spotify_refresh_token"
SPOTIFY_EXPIRES_COOKIE = "spotify_expires_at"
SPOTIFY_STATE_COOKIE = "spotify_auth_state"
GENIUS_TOKEN_COOKIE = "genius_token"


@dataclass
class CurrentUser:
    """Identity decoded from a bearer token."""
    id: int
    role: str
    email: str | None = None
    username: str | None = None
    claims: dict[str, Any] = field(default_factory=dict)

    @property
    def is_admin(self) -> bool:
        return self.role == models.Role.ADMIN.value


def hash_password(password: str) -> str:
    salt = bcrypt.gensalt(rounds=settings.auth.bcrypt_rounds)
    return bcrypt.hashpw(password.encode("utf-8"), salt).decode("utf-8")


def verify_password(password: str, hashed: str | None) -> bool:
    if not hashed:
        return False
    try:
        return bcrypt.checkpw(password.encode("utf-8"), hashed.encode("utf-8"))
    except ValueError:
        logger.warning("Stored password hash is malformed")
        return False


def create_access_token(user: models.User) -> str:
    """Sign a token carrying the user's id, role, email and username."""
    now = datetime.now(timezone.utc)
    payload = {
        "id": user.id,
        "role": user.role,
        "email": user.email,
        "username": user.username,
        "iat": now,
        "exp": now + timedelta(days=settings.auth.token_ttl_days),
    }
    return jwt.encode(payload, settings.auth.jwt_secret, algorithm=settings.auth.jwt_algorithm)


def decode_access_token(token: str) -> dict[str, Any]:
    return jwt.decode(token, settings.auth.jwt_secret, algorithms=[settings.auth.jwt_algorithm])


async def get_current_user(request: Request) -> CurrentUser:
    """Resolve the caller from ``Authorization: Bearer <token>``."""
    auth_header = request.headers.get("authorization")
    if not auth_header:
        raise APIError(status.HTTP_401_UNAUTHORIZED, "No token")

    parts = auth_header.split(" ", 1)
    token = parts[1].strip() if len(parts) == 2 else ""
    try:
        claims = decode_access_token(token)
    except jwt.PyJWTError as e:
        logger.info(f"Rejected bearer token: {e}")
        raise APIError(status.HTTP_403_FORBIDDEN, "Invalid token")

    return CurrentUser(
        id=int(claims["id"]),
        role=claims.get("role", models.Role.VIEWER.value),
        email=claims.get("email"),
        username=claims.get("username"),
        claims=claims,
    )


def require_role(role: models.Role | str) -> Callable:
    """Dependency factory restricting a route to one role."""
    wanted = role.value if isinstance(role, models.Role) else role

    async def dependency(user: CurrentUser = Depends(get_current_user)) -> CurrentUser:
        if user.role != wanted:
            raise APIError(status.HTTP_403_FORBIDDEN, "Insufficient permissions")
        return user

    return dependency


require_admin = require_role(models.Role.ADMIN)


def set_token_cookie(response: Response, name: str, value: str, *, max_age: int | None = None) -> None:
    response.set_cookie(
        name,
        value,
        max_age=max_age,
        path="/",
        httponly=True,
        samesite="lax",
        secure=settings.environment.value == "production",
    )


@dataclass
class SpotifyCookies:
    """The Spotify token triple stored in cookies."""
    access_token: str | None
    refresh_token: str | None
    expires_at: int | None  # epoch milliseconds

    @classmethod
    def from_request(cls, request: Request) -> SpotifyCookies:
        raw_expiry = request.cookies.get(SPOTIFY_EXPIRES_COOKIE)
        try:
            expires_at = int(raw_expiry) if raw_expiry else None
        except ValueError:
            expires_at = None
        return cls(
            access_token=request.cookies.get(SPOTIFY_ACCESS_COOKIE),
            refresh_token=request.cookies.get(SPOTIFY_REFRESH_COOKIE),
            expires_at=expires_at,
        )

    @property
    def is_expired(self) -> bool:
        return bool(self.expires_at) and time.time() * 1000 > self.expires_at


def store_spotify_tokens(
    response: Response,
    access_token: str,
    expires_in: int,
    refresh_token: str | None = None,
) -> None:
    """Persist a fresh Spotify token (and rotated refresh token) in cookies."""
    expires_at = int((time.time() + expires_in) * 1000)
    set_token_cookie(response, SPOTIFY_ACCESS_COOKIE, access_token, max_age=expires_in)
    set_token_cookie(response, SPOTIFY_EXPIRES_COOKIE, str(expires_at), max_age=60 * 60 * 24 * 30)
    if refresh_token:
        set_token_cookie(response, SPOTIFY_REFRESH_COOKIE, refresh_token, max_age=60 * 60 * 24 * 30)


def clear_spotify_tokens(response: Response) -> None:
    for name in (SPOTIFY_ACCESS_COOKIE, SPOTIFY_REFRESH_COOKIE, SPOTIFY_EXPIRES_COOKIE):
        response.delete_cookie(name, path="/")


def get_genius_token(request: Request) -> str | None:
    return request.cookies.get(GENIUS_TOKEN_COOKIE)
