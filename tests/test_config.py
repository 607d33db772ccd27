"""
Tests for configuration module.
"""

from __future__ import annotations

import os
from pathlib import Path
from unittest.mock import patch

import pytest
from pydantic import ValidationError

from agricache.cache.blob_store import FilesystemBlobStore, PassthroughBlobStore
from agricache.cache.service import ContentCache
from agricache.config import (
    DEFAULT_BLOB_TTL_SECONDS,
    DEFAULT_SIZE_LIMIT_BYTES,
    DEFAULT_TTL_SECONDS,
    Settings,
    clear_settings_cache,
    get_settings,
)


class TestSettingsDefaults:
    """Tests for default values."""

    def test_defaults(self) -> None:
        """Test that an empty environment yields the documented defaults."""
        with patch.dict(os.environ, {}, clear=True):
            settings = Settings(_env_file=None)

        assert settings.CACHE_SIZE_LIMIT_BYTES == DEFAULT_SIZE_LIMIT_BYTES == 50 * 1024 * 1024
        assert settings.DEFAULT_TTL_SECONDS == DEFAULT_TTL_SECONDS == 86400
        assert settings.BLOB_DEFAULT_TTL_SECONDS == DEFAULT_BLOB_TTL_SECONDS == 604800
        assert settings.EVICTION_HEADROOM == 0.8
        assert settings.BLOB_BACKEND == "filesystem"
        assert settings.KEY_HASH_ALGORITHM == "sha256"
        assert settings.LOG_LEVEL == "INFO"

    def test_derived_paths(self) -> None:
        """Test the blob directory and database paths."""
        with patch.dict(os.environ, {"CACHE_DIR": "/var/cache/agri"}, clear=True):
            settings = Settings(_env_file=None)

        assert settings.blobs_dir == Path("/var/cache/agri/blobs")
        assert settings.db_path == Path("/var/cache/agri/cache.db")


class TestSettingsValidation:
    """Tests for Settings validation."""

    def test_settings_loads_from_env(self, mock_env_vars: dict[str, str]) -> None:
        """Test that settings correctly loads from environment variables."""
        settings = get_settings()

        assert settings.CACHE_DIR == Path(mock_env_vars["CACHE_DIR"])
        assert settings.CACHE_SIZE_LIMIT_BYTES == 2048
        assert settings.DEFAULT_TTL_SECONDS == 60
        assert settings.BLOB_DEFAULT_TTL_SECONDS == 120
        assert settings.EVICTION_HEADROOM == 0.5
        assert settings.LOG_LEVEL == "DEBUG"

    @pytest.mark.parametrize(
        "name,value",
        [
            ("EVICTION_HEADROOM", "0"),
            ("EVICTION_HEADROOM", "1.5"),
            ("CACHE_SIZE_LIMIT_BYTES", "0"),
            ("DEFAULT_TTL_SECONDS", "-5"),
            ("BLOB_DEFAULT_TTL_SECONDS", "0"),
            ("BLOB_BACKEND", "s3"),
            ("KEY_HASH_ALGORITHM", "   "),
        ],
    )
    def test_invalid_values_rejected(self, name: str, value: str) -> None:
        """Test that out-of-range values fail validation."""
        with patch.dict(os.environ, {name: value}, clear=True):
            with pytest.raises(ValidationError):
                Settings(_env_file=None)

    def test_algorithm_normalized(self) -> None:
        """Test that the hash algorithm name is lowercased."""
        with patch.dict(os.environ, {"KEY_HASH_ALGORITHM": " SHA1 "}, clear=True):
            settings = Settings(_env_file=None)

        assert settings.KEY_HASH_ALGORITHM == "sha1"

    def test_get_settings_is_cached(self, mock_env_vars: dict[str, str]) -> None:
        """Test that get_settings returns one instance until cleared."""
        first = get_settings()
        assert get_settings() is first

        clear_settings_cache()
        assert get_settings() is not first


class TestSettingsHelpers:
    """Tests for directory creation and display."""

    def test_ensure_directories_filesystem(self, temp_dir: Path) -> None:
        """Test that the filesystem backend gets a blob directory."""
        with patch.dict(os.environ, {"CACHE_DIR": str(temp_dir / "c")}, clear=True):
            settings = Settings(_env_file=None)
        settings.ensure_directories()

        assert settings.blobs_dir.is_dir()

    def test_ensure_directories_passthrough(self, temp_dir: Path) -> None:
        """Test that the passthrough backend creates no blob directory."""
        env = {"CACHE_DIR": str(temp_dir / "c"), "BLOB_BACKEND": "passthrough"}
        with patch.dict(os.environ, env, clear=True):
            settings = Settings(_env_file=None)
        settings.ensure_directories()

        assert settings.CACHE_DIR.is_dir()
        assert not settings.blobs_dir.exists()

    def test_display(self, mock_settings: Settings) -> None:
        """Test that display returns every setting as a plain value."""
        shown = mock_settings.display()

        assert shown["CACHE_SIZE_LIMIT_BYTES"] == 2048
        assert shown["BLOB_BACKEND"] == "filesystem"
        assert isinstance(shown["CACHE_DIR"], str)


class TestFromSettings:
    """Tests for building a cache from settings."""

    def test_filesystem_backend(self, mock_settings: Settings) -> None:
        """Test that settings flow into the cache."""
        cache = ContentCache.from_settings(mock_settings)

        assert cache.size_limit_bytes == 2048
        assert cache.default_ttl == 60
        assert cache.blob_default_ttl == 120
        assert cache.eviction_headroom == 0.5
        assert isinstance(cache._blobs, FilesystemBlobStore)

    def test_passthrough_backend(self, temp_dir: Path) -> None:
        """Test that the passthrough backend is selected from settings."""
        env = {"CACHE_DIR": str(temp_dir), "BLOB_BACKEND": "passthrough"}
        with patch.dict(os.environ, env, clear=True):
            settings = Settings(_env_file=None)

        cache = ContentCache.from_settings(settings)
        assert isinstance(cache._blobs, PassthroughBlobStore)
