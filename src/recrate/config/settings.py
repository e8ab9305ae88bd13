"""Application settings loaded from environment variables via pydantic-settings."""

from datetime import date
from functools import lru_cache
from pathlib import Path

from pydantic import BaseModel, Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class DatabaseSettings(BaseModel):
    """Database connection settings."""

    url: str = "sqlite+aiosqlite:///./data/recrate.db"
    echo: bool = False
    pool_pre_ping: bool = True
    # PostgreSQL only - ignored for SQLite
    pool_size: int = 5
    max_overflow: int = 10
    pool_timeout: int = 30
    pool_recycle: int = 1800
    # Seconds a SQLite writer waits on BEGIN IMMEDIATE before "database is locked"
    sqlite_busy_timeout: float = 30.0


class MusicBrainzSettings(BaseModel):
    """MusicBrainz API settings.

    MusicBrainz rejects requests without a User-Agent carrying app name,
    version and a contact address.
    """

    app_name: str = "recrate"
    app_version: str = "0.1.0"
    contact: str = "ops@recrate.invalid"
    base_url: str = "https://musicbrainz.org/ws/2"
    timeout: float = 15.0


class DiscogsSettings(BaseModel):
    """Discogs API settings."""

    token: str = ""
    user_agent: str = "recrate/0.1.0"
    base_url: str = "https://api.discogs.com"
    timeout: float = 15.0


class QueueSettings(BaseModel):
    """Enrichment job defaults.

    Lower priority value = served sooner.
    """

    default_attempts: int = Field(default=3, ge=1)
    backoff_delay_ms: int = Field(default=2000, ge=0)
    metadata_check_priority: int = 5
    artist_check_priority: int = 5
    artwork_cache_priority: int = 10


class DailyChallengeSettings(BaseModel):
    """Daily challenge settings."""

    # Day 0 of the curated rotation (UTC)
    epoch: date = date(2025, 1, 1)
    max_attempts: int = Field(default=6, ge=1)


class Settings(BaseSettings):
    """recrate settings.

    Environment variables override defaults, e.g. ``RECRATE_DATABASE__URL`` or
    ``RECRATE_QUEUE__DEFAULT_ATTEMPTS``. A local ``.env`` file is read when present.
    """

    model_config = SettingsConfigDict(
        env_prefix="RECRATE_",
        env_nested_delimiter="__",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    app_name: str = "recrate"
    log_level: str = "INFO"
    log_json: bool = False

    database: DatabaseSettings = Field(default_factory=DatabaseSettings)
    musicbrainz: MusicBrainzSettings = Field(default_factory=MusicBrainzSettings)
    discogs: DiscogsSettings = Field(default_factory=DiscogsSettings)
    queue: QueueSettings = Field(default_factory=QueueSettings)
    daily_challenge: DailyChallengeSettings = Field(
        default_factory=DailyChallengeSettings
    )

    @field_validator("log_level")
    @classmethod
    def _normalize_log_level(cls, value: str) -> str:
        level = value.upper()
        if level not in {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}:
            raise ValueError(f"Unknown log level: {value}")
        return level

    def get_sqlite_db_path(self) -> Path | None:
        """Return the SQLite file path, or None for non-file databases."""
        url = self.database.url
        if not url.startswith("sqlite"):
            return None
        _, _, path = url.partition(":///")
        if not path or path == ":memory:":
            return None
        return Path(path)


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
