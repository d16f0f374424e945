"""FastAPI app: routers, error envelopes, health check and optional SPA.

Every error leaves the service as ``{"error": ..., "detail"?: ..., "code"?: ...}``.
"""
from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from pathlib import Path

from fastapi import FastAPI, Request, status
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from fastapi.staticfiles import StaticFiles
from starlette.exceptions import HTTPException as StarletteHTTPException

from music_services.http import create_http_client

from .config import settings
from .db import create_all
from .errors import APIError, GeniusMatchError, RatingsImportError, ServiceAuthError, ServiceError
from .logging_config import setup_logging
from .routes import api_router
from .schemas import ErrorResponse, HealthResponse

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Lifespan context manager for startup/shutdown logic."""
    # Startup
    setup_logging()
    logger.info(f"{settings.app_name} starting up ({settings.environment.value})")
    if settings.db.create_tables:
        await create_all()
        logger.info("Database tables ensured")
    app.state.http_client = create_http_client()

    yield

    # Shutdown
    await app.state.http_client.aclose()
    logger.info("Application shutting down")


app = FastAPI(
    title=settings.app_name,
    version=settings.version,
    description="Playlist curation: ratings, notes, comments and music-service glue",
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


def error_response(
    status_code: int,
    error: str,
    *,
    detail=None,
    code: str | None = None,
    headers: dict[str, str] | None = None,
) -> JSONResponse:
    body = ErrorResponse(error=error, detail=jsonable_encoder(detail), code=code)
    return JSONResponse(
        status_code=status_code,
        content=body.model_dump(exclude_none=True),
        headers=headers,
    )


# Exception handlers
@app.exception_handler(APIError)
async def api_error_handler(request: Request, exc: APIError):
    if exc.status_code >= 500:
        logger.error(f"{request.method} {request.url.path} failed: {exc.error} ({exc.detail})")
    return error_response(exc.status_code, exc.error, detail=exc.detail, code=exc.code, headers=exc.headers)


@app.exception_handler(RequestValidationError)
async def validation_error_handler(request: Request, exc: RequestValidationError):
    logger.info(f"Invalid request to {request.url.path}: {exc.errors()}")
    return error_response(status.HTTP_400_BAD_REQUEST, "Invalid request", detail=exc.errors())


@app.exception_handler(StarletteHTTPException)
async def http_error_handler(request: Request, exc: StarletteHTTPException):
    return error_response(exc.status_code, str(exc.detail), headers=getattr(exc, "headers", None))


@app.exception_handler(ServiceAuthError)
async def service_auth_error_handler(request: Request, exc: ServiceAuthError):
    """Handle third-party credentials that could not be refreshed."""
    logger.warning(f"Service auth error on {request.url.path}: {exc}")
    return error_response(status.HTTP_401_UNAUTHORIZED, str(exc), code=exc.code)


@app.exception_handler(ServiceError)
async def service_error_handler(request: Request, exc: ServiceError):
    """Handle failed third-party calls."""
    logger.error(f"Service error on {request.url.path}: {exc} (upstream status {exc.status_code})")
    return error_response(status.HTTP_502_BAD_GATEWAY, str(exc), detail=exc.payload or None)


@app.exception_handler(RatingsImportError)
async def ratings_import_error_handler(request: Request, exc: RatingsImportError):
    """Handle unreadable ratings spreadsheets."""
    logger.error(f"Ratings import error: {exc}")
    return error_response(status.HTTP_500_INTERNAL_SERVER_ERROR, "Failed to parse CSV.", detail=str(exc))


@app.exception_handler(GeniusMatchError)
async def genius_match_error_handler(request: Request, exc: GeniusMatchError):
    """Handle Genius matching failures."""
    logger.error(f"Genius match error: {exc}")
    return error_response(exc.status_code, str(exc))


@app.get("/health", response_model=HealthResponse)
async def health():
    """Health check endpoint."""
    return HealthResponse(status="ok", version=settings.version)


app.include_router(api_router)


def _frontend_dir() -> Path | None:
    if not settings.frontend_dist:
        return None
    path = Path(settings.frontend_dist)
    return path if path.is_dir() else None


if _frontend_dir() is not None:
    app.mount("/", StaticFiles(directory=_frontend_dir(), html=True), name="frontend")
else:
    @app.get("/")
    async def root():
        """Root endpoint with API info."""
        return {
            "app": settings.app_name,
            "version": settings.version,
            "endpoints": {
                "health": "/health",
                "login": "/api/login",
                "songs": "/api/songs",
                "playlists": "/api/playlists",
                "comments": "/api/comments",
                "digest": "/api/digest",
                "admin": "/api/admin",
                "genius": "/api/genius",
                "spotify": "/api/spotify-proxy",
                "apple_music": "/api/apple-music",
                "docs": "/docs",
            },
        }
