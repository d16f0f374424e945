"""Main entry point for running the FastAPI application with auto-reload."""
import uvicorn

from trapt.config import settings

if __name__ == "__main__":
    print(f"Starting {settings.app_name} v{settings.version} ({settings.environment.value})")
    print(f"Debug mode: {settings.debug}")
    print(f"Database: {settings.db.url.split('@')[-1] if '@' in settings.db.url else settings.db.url}")
    print(f"Frontend: {settings.frontend_dist or 'not served'}")
    print("-" * 50)

    uvicorn.run(
        "trapt.api:app",
        host="0.0.0.0",
        port=8000,
        reload=settings.debug,
        reload_dirs=["trapt", "music_services"] if settings.debug else None,
        log_level=settings.logging.level.lower(),
    )
