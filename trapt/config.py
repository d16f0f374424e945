"""Central configuration for the Trapt playlist curation API.

This module uses Pydantic Settings for validation and env management.
"""
from __future__ import annotations

from enum import Enum
from functools import lru_cache

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Environment(str, Enum):
    """Application environment."""
    DEVELOPMENT = "development"
    PRODUCTION = "production"
    TESTING = "testing"


class DatabaseSettings(BaseSettings):
    """Database configuration."""
    model_config = SettingsConfigDict(
        env_prefix="DB_",
        extra="ignore",
    )

    url: str = Field(
        default="sqlite+aiosqlite:///./trapt.db",
        description="Async database connection URL",
    )
    echo: bool = Field(default=False)
    create_tables: bool = Field(default=False, description="Create missing tables at startup")


class AuthSettings(BaseSettings):
    """Bearer token and password configuration."""
    model_config = SettingsConfigDict(env_prefix="AUTH_", extra="ignore")

    jwt_secret: str = Field(default="supersecret")
    jwt_algorithm: str = Field(default="HS256")
    token_ttl_days: int = Field(default=365, ge=1)
    bcrypt_rounds: int = Field(default=10, ge=4, le=16)
    master_reset_code: str = Field(default="87278")


class SpotifySettings(BaseSettings):
    """Spotify Web API OAuth configuration."""
    model_config = SettingsConfigDict(env_prefix="SPOTIFY_", extra="ignore")

    client_id: str = Field(default="")
    client_secret: str = Field(default="")
    redirect_uri: str = Field(default="http://localhost:8000/api/spotify-proxy/callback")
    scopes: str = Field(
        default=(
            "user-read-currently-playing user-read-playback-state "
            "playlist-read-private playlist-modify-public playlist-modify-private"
        ),
    )
    post_login_redirect: str = Field(default="/now-playing")


class GeniusSettings(BaseSettings):
    """Genius API configuration."""
    model_config = SettingsConfigDict(env_prefix="GENIUS_", extra="ignore")

    client_id: str = Field(default="")
    client_secret: str = Field(default="")
    redirect_uri: str = Field(default="http://localhost:8000/api/genius?action=callback")
    request_delay: float = Field(default=0.2, ge=0.0, description="Seconds between batch searches")


class AppleMusicSettings(BaseSettings):
    """Apple Music API configuration."""
    model_config = SettingsConfigDict(env_prefix="APPLE_MUSIC_", extra="ignore")

    developer_token: str | None = Field(default=None)
    team_id: str | None = Field(default=None)
    key_id: str | None = Field(default=None)
    private_key: str | None = Field(default=None, description="PEM text or path to a .p8 file")


class MatchingSettings(BaseSettings):
    """Fuzzy matching configuration."""
    model_config = SettingsConfigDict(env_prefix="MATCHING_", extra="ignore")

    auto_match_threshold: float = Field(default=0.85, ge=0.0, le=1.0)
    title_weight: float = Field(default=0.7, ge=0.0, le=1.0)
    artist_weight: float = Field(default=0.3, ge=0.0, le=1.0)
    ratings_top_n: int = Field(default=3, ge=1, le=20)
    search_delay: float = Field(default=0.1, ge=0.0, description="Seconds between Spotify searches")


class ImportSettings(BaseSettings):
    """CSV rating import configuration."""
    model_config = SettingsConfigDict(env_prefix="IMPORT_", extra="ignore")

    ratings_dir: str = Field(default="data/import")
    ratings_filename_template: str = Field(default="Rob {year}.csv")


class HttpSettings(BaseSettings):
    """Outbound HTTP client configuration."""
    model_config = SettingsConfigDict(env_prefix="HTTP_", extra="ignore")

    timeout: float = Field(default=15.0, gt=0)
    max_attempts: int = Field(default=3, ge=1, le=10, description="Attempts on transport errors")


class LoggingSettings(BaseSettings):
    """Logging configuration."""
    model_config = SettingsConfigDict(env_prefix="LOG_", extra="ignore")

    level: str = Field(default="INFO")
    format: str = Field(default="json")
    file: str | None = Field(default=None)


class Settings(BaseSettings):
    """Main application settings."""
    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    environment: Environment = Field(default=Environment.DEVELOPMENT)
    debug: bool = Field(default=False)
    app_name: str = Field(default="Trapt")
    version: str = Field(default="0.1.0")
    cors_origins: list[str] = Field(default=["http://localhost:5173", "http://localhost:3000"])
    frontend_dist: str | None = Field(default=None, description="Built SPA directory to serve")

    # Sub-configs
    db: DatabaseSettings = Field(default_factory=DatabaseSettings)
    auth: AuthSettings = Field(default_factory=AuthSettings)
    spotify: SpotifySettings = Field(default_factory=SpotifySettings)
    genius: GeniusSettings = Field(default_factory=GeniusSettings)
    apple_music: AppleMusicSettings = Field(default_factory=AppleMusicSettings)
    matching: MatchingSettings = Field(default_factory=MatchingSettings)
    imports: ImportSettings = Field(default_factory=ImportSettings)
    http: HttpSettings = Field(default_factory=HttpSettings)
    logging: LoggingSettings = Field(default_factory=LoggingSettings)

    @field_validator("db", mode="before")
    @classmethod
    def validate_db(cls, v):
        return v if isinstance(v, DatabaseSettings) else DatabaseSettings()


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Cached settings singleton."""
    return Settings()


settings = get_settings()
