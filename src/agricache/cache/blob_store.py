"""
Blob stores for downloaded assets.

- FilesystemBlobStore: one file per storage key under a blob directory,
  downloaded over HTTP with httpx
- PassthroughBlobStore: for hosts without a writable file system; stores
  nothing, so the cache hands the source URL back unchanged
"""

from __future__ import annotations

import shutil
from pathlib import Path

import httpx

from agricache.cache.base import BlobStore
from agricache.exceptions import DownloadError, StorageError
from agricache.logging import get_logger

logger = get_logger(__name__)

USER_AGENT = "agricache/0.1"

# Suffix for downloads in progress; renamed into place once complete
PARTIAL_SUFFIX = ".part"


class FilesystemBlobStore(BlobStore):
    """Blob files under ``blobs_dir``, named by storage key.

    Downloads stream into ``<key>.part`` and are renamed when complete, so a
    blob path either holds a full download or nothing.
    """

    stores_files = True

    def __init__(
        self,
        blobs_dir: str | Path,
        timeout: float = 30.0,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        """Initialize the store.

        Args:
            blobs_dir: Directory that holds blob files.
            timeout: HTTP timeout in seconds for downloads.
            client: HTTP client to use. Created lazily when omitted.
        """
        self.blobs_dir = Path(blobs_dir)
        self.timeout = timeout
        self._client = client
        self._owns_client = client is None

    async def init(self) -> None:
        try:
            self.blobs_dir.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            raise StorageError(
                "Cannot create blob directory",
                context={"backend": "filesystem", "path": str(self.blobs_dir)},
            ) from e

    async def _get_client(self) -> httpx.AsyncClient:
        """Get or create HTTP client."""
        if self._client is None:
            self._client = httpx.AsyncClient(
                timeout=self.timeout,
                follow_redirects=True,
                headers={"User-Agent": USER_AGENT},
            )
        return self._client

    async def close(self) -> None:
        """Close the HTTP client if this store created it."""
        if self._client and self._owns_client:
            await self._client.aclose()
            self._client = None

    def path_for(self, storage_key: str) -> str:
        return str(self.blobs_dir / storage_key)

    async def exists(self, storage_key: str) -> bool:
        try:
            return (self.blobs_dir / storage_key).is_file()
        except OSError as e:
            raise StorageError(
                "Cannot check blob file",
                context={"backend": "filesystem", "key": storage_key, "error": str(e)},
            ) from e

    async def size(self, storage_key: str) -> int:
        try:
            return (self.blobs_dir / storage_key).stat().st_size
        except FileNotFoundError:
            return 0
        except OSError as e:
            raise StorageError(
                "Cannot stat blob file",
                context={"backend": "filesystem", "key": storage_key, "error": str(e)},
            ) from e

    async def download(self, url: str, storage_key: str) -> int:
        target = self.blobs_dir / storage_key
        partial = target.with_name(target.name + PARTIAL_SUFFIX)
        client = await self._get_client()

        try:
            async with client.stream("GET", url) as response:
                if not response.is_success:
                    raise DownloadError(
                        "Download returned non-success status",
                        context={"url": url, "status_code": response.status_code},
                    )
                self.blobs_dir.mkdir(parents=True, exist_ok=True)
                with open(partial, "wb") as f:
                    async for chunk in response.aiter_bytes():
                        f.write(chunk)
            partial.replace(target)
            size = target.stat().st_size
        except (httpx.HTTPError, httpx.InvalidURL) as e:
            self._discard_partial(partial)
            raise DownloadError(
                "Download failed", context={"url": url, "error": str(e)}
            ) from e
        except OSError as e:
            self._discard_partial(partial)
            raise StorageError(
                "Cannot write blob file",
                context={"backend": "filesystem", "path": str(target), "error": str(e)},
            ) from e
        except DownloadError:
            self._discard_partial(partial)
            raise

        logger.debug("Stored blob", key=storage_key, size=size)
        return size

    def _discard_partial(self, partial: Path) -> None:
        try:
            partial.unlink(missing_ok=True)
        except OSError as e:
            logger.warning("Could not remove partial download", path=str(partial), error=str(e))

    async def delete(self, storage_key: str) -> bool:
        path = self.blobs_dir / storage_key
        try:
            if path.is_file():
                path.unlink()
                return True
        except OSError as e:
            raise StorageError(
                "Cannot delete blob file",
                context={"backend": "filesystem", "path": str(path), "error": str(e)},
            ) from e
        return False

    async def clear(self) -> None:
        try:
            shutil.rmtree(self.blobs_dir, ignore_errors=False)
        except FileNotFoundError:
            pass
        except OSError as e:
            raise StorageError(
                "Cannot clear blob directory",
                context={"backend": "filesystem", "path": str(self.blobs_dir), "error": str(e)},
            ) from e
        self.blobs_dir.mkdir(parents=True, exist_ok=True)


class PassthroughBlobStore(BlobStore):
    """Blob store that keeps nothing locally."""

    stores_files = False

    def path_for(self, storage_key: str) -> str:
        return storage_key

    async def exists(self, storage_key: str) -> bool:
        return False

    async def size(self, storage_key: str) -> int:
        return 0

    async def download(self, url: str, storage_key: str) -> int:
        return 0

    async def delete(self, storage_key: str) -> bool:
        return False

    async def clear(self) -> None:
        return None
