"""
Tests for storage key derivation.
"""

from __future__ import annotations

import hashlib

from agricache.cache.keys import (
    MAX_FALLBACK_KEY_LENGTH,
    STORAGE_KEY_LENGTH,
    sanitize_key,
    storage_key,
)


class TestStorageKey:
    """Tests for storage_key."""

    def test_deterministic(self) -> None:
        """Test that the same logical key maps to the same storage key."""
        key = "https://api.example.com/market/prices?region=thies"
        assert storage_key(key) == storage_key(key)

    def test_length_and_charset(self) -> None:
        """Test that storage keys are 16 lowercase hex characters."""
        result = storage_key("encyclopedia:sorghum")

        assert len(result) == STORAGE_KEY_LENGTH == 16
        assert all(c in "0123456789abcdef" for c in result)

    def test_matches_sha256_prefix(self) -> None:
        """Test that the default algorithm is a SHA-256 prefix."""
        expected = hashlib.sha256(b"forum:topics").hexdigest()[:16]
        assert storage_key("forum:topics") == expected

    def test_distinct_keys_differ(self) -> None:
        """Test that different logical keys map to different storage keys."""
        assert storage_key("weather:dakar") != storage_key("weather:thies")

    def test_other_algorithm(self) -> None:
        """Test selecting another hashlib algorithm."""
        expected = hashlib.md5(b"k").hexdigest()[:16]
        assert storage_key("k", "md5") == expected

    def test_unknown_algorithm_falls_back(self) -> None:
        """Test that an unavailable digest yields the sanitized key."""
        assert storage_key("a/b?c=1", "not-a-digest") == "a_b_c_1"

    def test_long_fallback_is_bounded(self) -> None:
        """Test that the fallback key stays within file name limits and is pure."""
        key = "https://cdn.example.com/" + "a" * 400

        result = storage_key(key, "not-a-digest")

        assert len(result) == MAX_FALLBACK_KEY_LENGTH
        assert result == storage_key(key, "not-a-digest")


class TestSanitizeKey:
    """Tests for sanitize_key."""

    def test_replaces_non_alphanumerics(self) -> None:
        assert sanitize_key("https://x.io/img 1.png") == "https___x_io_img_1_png"

    def test_keeps_alphanumerics(self) -> None:
        assert sanitize_key("Abc123") == "Abc123"
