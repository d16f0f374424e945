"""API routers, mounted under ``/api`` by ``trapt.api``."""
from fastapi import APIRouter

from . import admin, apple_music, auth, comments, digest, genius, playlists, songs, spotify

api_router = APIRouter(prefix="/api")

for module in (auth, songs, playlists, comments, digest, admin, genius, spotify, apple_music):
    api_router.include_router(module.router)

__all__ = ["api_router"]
