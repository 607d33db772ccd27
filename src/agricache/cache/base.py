"""
Base classes for the cache backends.

- KeyValueStore: durable string-keyed byte store for payloads and the index
- BlobStore: file storage for downloaded assets, addressed by storage key

Backends raise StorageError (or DownloadError) on failure; ContentCache turns
those into cache misses.
"""

from __future__ import annotations

from abc import ABC, abstractmethod


class KeyValueStore(ABC):
    """Abstract interface for the durable key-value store."""

    async def init(self) -> None:
        """Open connections or create schema. Optional."""

    async def close(self) -> None:
        """Release resources. Optional."""

    @abstractmethod
    async def get(self, key: str) -> bytes | None:
        """Get the value stored under a key."""
        ...

    @abstractmethod
    async def set(self, key: str, value: bytes) -> None:
        """Store a value under a key, replacing any previous value."""
        ...

    @abstractmethod
    async def delete(self, key: str) -> bool:
        """Delete a key. Returns whether it existed."""
        ...

    @abstractmethod
    async def keys(self, prefix: str = "") -> list[str]:
        """List keys starting with a prefix."""
        ...

    async def delete_many(self, keys: list[str]) -> int:
        """Delete several keys. Returns how many existed."""
        removed = 0
        for key in keys:
            if await self.delete(key):
                removed += 1
        return removed


class BlobStore(ABC):
    """Abstract interface for blob file storage.

    ``stores_files`` is False for stores that keep nothing locally; the cache
    then hands source URLs back unchanged.
    """

    stores_files: bool = True

    async def init(self) -> None:
        """Prepare the storage location. Optional."""

    async def close(self) -> None:
        """Release resources. Optional."""

    @abstractmethod
    def path_for(self, storage_key: str) -> str:
        """Local path a blob with this storage key lives at."""
        ...

    @abstractmethod
    async def exists(self, storage_key: str) -> bool:
        """Whether a blob file is present."""
        ...

    @abstractmethod
    async def size(self, storage_key: str) -> int:
        """Size of a blob file in bytes, 0 when absent."""
        ...

    @abstractmethod
    async def download(self, url: str, storage_key: str) -> int:
        """Download ``url`` into the blob for ``storage_key``.

        Returns:
            Size of the stored file in bytes.

        Raises:
            DownloadError: On a non-2xx response or transport error.
        """
        ...

    @abstractmethod
    async def delete(self, storage_key: str) -> bool:
        """Delete a blob file. Returns whether it existed."""
        ...

    @abstractmethod
    async def clear(self) -> None:
        """Delete every blob file."""
        ...
