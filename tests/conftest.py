"""
Pytest configuration and fixtures for content cache tests.
"""

from __future__ import annotations

import os
from pathlib import Path
from typing import AsyncGenerator, Generator
from unittest.mock import patch

import httpx
import pytest

from agricache.cache.blob_store import FilesystemBlobStore
from agricache.cache.kv_store import InMemoryKVStore, SQLiteKVStore
from agricache.cache.service import ContentCache
from agricache.config import Settings, clear_settings_cache
from agricache.exceptions import StorageError

# Small limit so eviction is easy to trigger
TEST_SIZE_LIMIT = 1000

BLOB_BYTES = b"\x89PNG" + b"\x00" * 96  # 100 bytes


class FakeClock:
    """Controllable clock returning epoch seconds."""

    def __init__(self, start: float = 1_000_000.0) -> None:
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class FailingKVStore(InMemoryKVStore):
    """In-memory store that raises StorageError while ``failing`` is set."""

    def __init__(self) -> None:
        super().__init__()
        self.failing = False

    def _check(self, key: str) -> None:
        if self.failing:
            raise StorageError("Simulated I/O failure", context={"backend": "memory", "key": key})

    async def get(self, key: str) -> bytes | None:
        self._check(key)
        return await super().get(key)

    async def set(self, key: str, value: bytes) -> None:
        self._check(key)
        await super().set(key, value)

    async def delete(self, key: str) -> bool:
        self._check(key)
        return await super().delete(key)

    async def keys(self, prefix: str = "") -> list[str]:
        self._check(prefix)
        return await super().keys(prefix)


class BlobServer:
    """httpx MockTransport handler serving a few fixed routes."""

    def __init__(self) -> None:
        self.calls: list[str] = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.calls.append(request.url.path)
        if request.url.path == "/missing.png":
            return httpx.Response(404, content=b"not found")
        if request.url.path == "/error.png":
            return httpx.Response(500, content=b"server error")
        if request.url.path == "/unreachable.png":
            raise httpx.ConnectError("connection refused", request=request)
        if request.url.path == "/large.bin":
            return httpx.Response(200, content=b"x" * 5000)
        return httpx.Response(200, content=BLOB_BYTES)


@pytest.fixture
def temp_dir(tmp_path: Path) -> Path:
    """Provide a temporary directory for test outputs."""
    return tmp_path


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def mock_env_vars(temp_dir: Path) -> Generator[dict[str, str], None, None]:
    """Provide cache environment variables pointing at a temp directory."""
    env_vars = {
        "CACHE_DIR": str(temp_dir / "cache"),
        "CACHE_SIZE_LIMIT_BYTES": "2048",
        "DEFAULT_TTL_SECONDS": "60",
        "BLOB_DEFAULT_TTL_SECONDS": "120",
        "EVICTION_HEADROOM": "0.5",
        "BLOB_BACKEND": "filesystem",
        "LOG_LEVEL": "DEBUG",
    }

    with patch.dict(os.environ, env_vars, clear=False):
        clear_settings_cache()
        yield env_vars


@pytest.fixture
def mock_settings(mock_env_vars: dict[str, str]) -> Generator[Settings, None, None]:
    """Provide a Settings instance built from mock_env_vars."""
    from agricache.config import get_settings

    settings = get_settings()
    settings.ensure_directories()
    yield settings
    clear_settings_cache()


@pytest.fixture
def kv_store() -> FailingKVStore:
    return FailingKVStore()


@pytest.fixture
async def memory_cache(kv_store: FailingKVStore, clock: FakeClock) -> AsyncGenerator[ContentCache, None]:
    """Content cache over an in-memory store with a fake clock."""
    cache = ContentCache(kv_store, size_limit_bytes=TEST_SIZE_LIMIT, clock=clock)
    await cache.init()
    yield cache
    await cache.close()


@pytest.fixture
def blob_server() -> BlobServer:
    return BlobServer()


@pytest.fixture
async def http_client(blob_server: BlobServer) -> AsyncGenerator[httpx.AsyncClient, None]:
    client = httpx.AsyncClient(transport=httpx.MockTransport(blob_server))
    yield client
    await client.aclose()


@pytest.fixture
async def disk_cache(
    temp_dir: Path, http_client: httpx.AsyncClient, clock: FakeClock
) -> AsyncGenerator[ContentCache, None]:
    """Content cache over SQLite and the filesystem blob store."""
    cache = ContentCache(
        SQLiteKVStore(temp_dir / "cache" / "cache.db"),
        FilesystemBlobStore(temp_dir / "cache" / "blobs", client=http_client),
        size_limit_bytes=TEST_SIZE_LIMIT,
        clock=clock,
    )
    await cache.init()
    yield cache
    await cache.close()


@pytest.fixture(autouse=True)
def reset_settings_cache() -> Generator[None, None, None]:
    """Automatically reset settings cache before and after each test."""
    clear_settings_cache()
    yield
    clear_settings_cache()
