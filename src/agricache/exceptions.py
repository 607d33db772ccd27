"""
Custom exception hierarchy for the content cache.

All exceptions inherit from CacheError, which carries optional context
for structured logging. Backends raise these; ContentCache catches them at
its public operations and degrades to a cache miss.
"""

from __future__ import annotations

from typing import Any


class CacheError(Exception):
    """Base exception for all cache errors.

    Attributes:
        message: Human-readable error message.
        context: Optional structured context for logging/debugging.
    """

    def __init__(self, message: str, context: dict[str, Any] | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.context = context or {}

    def __str__(self) -> str:
        if self.context:
            ctx_str = ", ".join(f"{k}={v!r}" for k, v in self.context.items())
            return f"{self.message} ({ctx_str})"
        return self.message

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}({self.message!r}, context={self.context!r})"


class ConfigurationError(CacheError):
    """Raised when settings cannot be turned into a working cache."""

    pass


class SerializationError(CacheError):
    """Raised when a value cannot be encoded or a payload decoded.

    Context should include:
        - codec: Name of the codec in use
        - key: The logical key, when known
    """

    pass


class StorageError(CacheError):
    """Raised when the key-value store or the file system fails.

    Context should include:
        - backend: The backend that failed (sqlite, memory, filesystem)
        - key: The storage key or path involved
    """

    pass


class DownloadError(CacheError):
    """Raised when a blob download fails.

    Context should include:
        - url: The URL that was being fetched
        - status_code: HTTP status code if a response arrived
    """

    pass
