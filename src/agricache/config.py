"""
Configuration management using pydantic-settings.

Loads configuration from environment variables and .env files.
Validates limits and durations and provides typed access to settings.
"""

from __future__ import annotations

from functools import lru_cache
from pathlib import Path
from typing import Literal

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

# Defaults used by the cache when no settings are supplied
DEFAULT_SIZE_LIMIT_BYTES = 50 * 1024 * 1024  # 50 MB
DEFAULT_TTL_SECONDS = 24 * 60 * 60  # 24 hours
DEFAULT_BLOB_TTL_SECONDS = 7 * 24 * 60 * 60  # 7 days
DEFAULT_EVICTION_HEADROOM = 0.8


class Settings(BaseSettings):
    """Cache settings loaded from environment variables.

    Optional:
        CACHE_DIR: Directory holding the SQLite store and blob files
        CACHE_SIZE_LIMIT_BYTES: Total tracked size that triggers eviction
        DEFAULT_TTL_SECONDS: TTL for structured data entries
        BLOB_DEFAULT_TTL_SECONDS: TTL for downloaded blobs
        EVICTION_HEADROOM: Fraction of the size limit eviction sweeps down to
        BLOB_BACKEND: "filesystem" or "passthrough" (no writable disk)
        DOWNLOAD_TIMEOUT_SECONDS: HTTP timeout for blob downloads
        KEY_HASH_ALGORITHM: hashlib digest used for storage keys
        LOG_LEVEL: Logging level
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # Directories
    CACHE_DIR: Path = Field(default=Path(".cache"), description="Cache directory")

    # Limits
    CACHE_SIZE_LIMIT_BYTES: int = Field(
        default=DEFAULT_SIZE_LIMIT_BYTES,
        gt=0,
        description="Total tracked size in bytes before eviction runs",
    )
    EVICTION_HEADROOM: float = Field(
        default=DEFAULT_EVICTION_HEADROOM,
        gt=0.0,
        le=1.0,
        description="Eviction removes entries until size <= limit * headroom",
    )

    # Expiry
    DEFAULT_TTL_SECONDS: float = Field(
        default=DEFAULT_TTL_SECONDS, gt=0, description="TTL for structured data"
    )
    BLOB_DEFAULT_TTL_SECONDS: float = Field(
        default=DEFAULT_BLOB_TTL_SECONDS, gt=0, description="TTL for blobs"
    )

    # Blob tier
    BLOB_BACKEND: Literal["filesystem", "passthrough"] = Field(
        default="filesystem",
        description="Blob storage backend (passthrough returns source URLs)",
    )
    DOWNLOAD_TIMEOUT_SECONDS: float = Field(
        default=30.0, gt=0, description="HTTP timeout for blob downloads"
    )

    # Keys
    KEY_HASH_ALGORITHM: str = Field(
        default="sha256", description="hashlib algorithm for storage keys"
    )

    # Logging
    LOG_LEVEL: Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"] = Field(
        default="INFO", description="Logging level"
    )

    @field_validator("KEY_HASH_ALGORITHM")
    @classmethod
    def normalize_algorithm(cls, v: str) -> str:
        """Lowercase the algorithm name; hashlib names are lowercase."""
        v = v.strip().lower()
        if not v:
            raise ValueError("KEY_HASH_ALGORITHM must not be empty")
        return v

    @property
    def blobs_dir(self) -> Path:
        """Directory for downloaded blob files."""
        return self.CACHE_DIR / "blobs"

    @property
    def db_path(self) -> Path:
        """Path of the SQLite key-value store."""
        return self.CACHE_DIR / "cache.db"

    def ensure_directories(self) -> None:
        """Create cache directories if they don't exist."""
        self.CACHE_DIR.mkdir(parents=True, exist_ok=True)
        if self.BLOB_BACKEND == "filesystem":
            self.blobs_dir.mkdir(parents=True, exist_ok=True)

    def display(self) -> dict[str, str | int | float]:
        """Return settings as plain values for display."""
        return {
            "CACHE_DIR": str(self.CACHE_DIR),
            "CACHE_SIZE_LIMIT_BYTES": self.CACHE_SIZE_LIMIT_BYTES,
            "EVICTION_HEADROOM": self.EVICTION_HEADROOM,
            "DEFAULT_TTL_SECONDS": self.DEFAULT_TTL_SECONDS,
            "BLOB_DEFAULT_TTL_SECONDS": self.BLOB_DEFAULT_TTL_SECONDS,
            "BLOB_BACKEND": self.BLOB_BACKEND,
            "DOWNLOAD_TIMEOUT_SECONDS": self.DOWNLOAD_TIMEOUT_SECONDS,
            "KEY_HASH_ALGORITHM": self.KEY_HASH_ALGORITHM,
            "LOG_LEVEL": self.LOG_LEVEL,
        }


@lru_cache
def get_settings() -> Settings:
    """Get cached settings singleton.

    Returns:
        Settings instance loaded from environment.

    Raises:
        ValidationError: If settings are invalid.
    """
    return Settings()


def clear_settings_cache() -> None:
    """Clear the settings cache (useful for testing)."""
    get_settings.cache_clear()
