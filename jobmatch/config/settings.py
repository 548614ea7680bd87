"""Application settings for jobmatch."""

from enum import Enum
from pathlib import Path

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class CacheBackend(str, Enum):
    """Where scored match results are memoised."""

    MEMORY = "memory"
    SQLITE = "sqlite"


class Settings(BaseSettings):
    """Process-level settings for the CLI and long-running workers.

    Matching behaviour lives in `MatchingConfig`; this class only picks
    the cache backend and the log level. Values come from unprefixed
    environment variables (`CACHE_BACKEND`, `CACHE_DB_PATH`, `LOG_LEVEL`)
    or a .env file.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    cache_backend: CacheBackend = Field(
        default=CacheBackend.MEMORY,
        description="Match cache backend: 'memory' (per process) or 'sqlite' (shared)",
    )
    cache_db_path: Path = Field(
        default=Path("./data/match_cache.db"),
        description="Path to the SQLite match cache database",
    )

    log_level: str = Field(
        default="INFO",
        description="Logging level: DEBUG, INFO, WARNING, ERROR",
    )

    @field_validator("cache_backend", mode="before")
    @classmethod
    def validate_cache_backend(cls, v: str | CacheBackend) -> CacheBackend:
        """Convert string backend names to CacheBackend."""
        if isinstance(v, CacheBackend):
            return v
        if isinstance(v, str):
            value = v.lower().strip()
            for backend in CacheBackend:
                if backend.value == value:
                    return backend
            raise ValueError(f"Invalid cache backend: {v}. Must be 'memory' or 'sqlite'")
        raise ValueError(f"Invalid cache backend type: {type(v)}")

    @field_validator("log_level", mode="before")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        """Validate log level is a known level."""
        valid_levels = {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}
        if v.upper() not in valid_levels:
            raise ValueError(f"Invalid log level: {v}. Must be one of {valid_levels}")
        return v.upper()


_settings: Settings | None = None


def get_settings() -> Settings:
    """Get the application settings singleton."""
    global _settings
    if _settings is None:
        _settings = Settings()
    return _settings


def reset_settings() -> None:
    """Reset the settings singleton (useful for testing)."""
    global _settings
    _settings = None
