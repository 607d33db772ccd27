"""
Content cache service.

ContentCache ties the key-value store, the blob store and the index
together and exposes the cache operations used by the rest of the
platform:

- put / get / remove / get_or_load for structured data
- get_or_fetch for downloaded blobs
- clear_cache / clear_expired_cache / get_cache_stats for maintenance

The cache is an optimization, never a correctness dependency: storage,
serialization and download failures are logged and reported as misses.
"""

from __future__ import annotations

import asyncio
from typing import Any, Awaitable, Callable

import httpx
import orjson

from agricache.cache.base import BlobStore, KeyValueStore
from agricache.cache.blob_store import FilesystemBlobStore, PassthroughBlobStore
from agricache.cache.index import CacheIndex
from agricache.cache.keys import storage_key
from agricache.cache.kv_store import SQLiteKVStore
from agricache.cache.serialization import Codec, JSONCodec, encoded_size
from agricache.config import (
    DEFAULT_BLOB_TTL_SECONDS,
    DEFAULT_EVICTION_HEADROOM,
    DEFAULT_SIZE_LIMIT_BYTES,
    DEFAULT_TTL_SECONDS,
    Settings,
    get_settings,
)
from agricache.exceptions import (
    CacheError,
    ConfigurationError,
    DownloadError,
    SerializationError,
)
from agricache.logging import get_logger, log_context
from agricache.types import (
    CacheEntry,
    CacheStats,
    Clock,
    EntryKind,
    IndexRecord,
    epoch_now,
)

logger = get_logger(__name__)

# Prefix of payload records in the key-value store
PAYLOAD_PREFIX = "agricache_entry_"


class ContentCache:
    """Size-bounded, TTL-aware cache with a data tier and a blob tier.

    Construct one per application and pass it to consumers. Call ``init()``
    before use and ``close()`` on shutdown. Every public operation holds a
    single lock for its whole read-modify-write of the index.
    """

    def __init__(
        self,
        kv_store: KeyValueStore,
        blob_store: BlobStore | None = None,
        *,
        size_limit_bytes: int = DEFAULT_SIZE_LIMIT_BYTES,
        default_ttl: float = DEFAULT_TTL_SECONDS,
        blob_default_ttl: float = DEFAULT_BLOB_TTL_SECONDS,
        eviction_headroom: float = DEFAULT_EVICTION_HEADROOM,
        codec: Codec | None = None,
        key_algorithm: str = "sha256",
        clock: Clock | None = None,
        name: str = "content",
    ) -> None:
        """Initialize the cache.

        Args:
            kv_store: Durable store for payloads and the index.
            blob_store: Store for downloaded files. Passthrough when omitted.
            size_limit_bytes: Tracked size above which eviction runs.
            default_ttl: TTL in seconds for structured data.
            blob_default_ttl: TTL in seconds for blobs.
            eviction_headroom: Eviction stops at size_limit * headroom.
            codec: Default codec for structured data (JSON when omitted).
            key_algorithm: hashlib algorithm for storage keys.
            clock: Returns the current time in epoch seconds.
            name: Name used in log context.

        Raises:
            ConfigurationError: If a limit or TTL is out of range.
        """
        if size_limit_bytes <= 0:
            raise ConfigurationError(
                "size_limit_bytes must be positive", context={"value": size_limit_bytes}
            )
        if not 0 < eviction_headroom <= 1:
            raise ConfigurationError(
                "eviction_headroom must be in (0, 1]", context={"value": eviction_headroom}
            )
        if default_ttl <= 0 or blob_default_ttl <= 0:
            raise ConfigurationError(
                "default TTLs must be positive",
                context={"default_ttl": default_ttl, "blob_default_ttl": blob_default_ttl},
            )

        self._kv = kv_store
        self._blobs = blob_store or PassthroughBlobStore()
        self._index = CacheIndex(kv_store)
        self._lock = asyncio.Lock()
        self._clock = clock or epoch_now

        self.size_limit_bytes = size_limit_bytes
        self.default_ttl = default_ttl
        self.blob_default_ttl = blob_default_ttl
        self.eviction_headroom = eviction_headroom
        self.codec: Codec = codec or JSONCodec()
        self.key_algorithm = key_algorithm
        self.name = name

        self._hits = 0
        self._misses = 0
        self._evictions = 0

    @classmethod
    def from_settings(
        cls,
        settings: Settings | None = None,
        *,
        client: httpx.AsyncClient | None = None,
        clock: Clock | None = None,
    ) -> ContentCache:
        """Build a cache backed by SQLite and the configured blob backend.

        Args:
            settings: Settings to use. Loaded from the environment when omitted.
            client: HTTP client for blob downloads.
            clock: Clock override.
        """
        settings = settings or get_settings()

        blob_store: BlobStore
        if settings.BLOB_BACKEND == "filesystem":
            blob_store = FilesystemBlobStore(
                settings.blobs_dir,
                timeout=settings.DOWNLOAD_TIMEOUT_SECONDS,
                client=client,
            )
        else:
            blob_store = PassthroughBlobStore()

        return cls(
            SQLiteKVStore(settings.db_path),
            blob_store,
            size_limit_bytes=settings.CACHE_SIZE_LIMIT_BYTES,
            default_ttl=settings.DEFAULT_TTL_SECONDS,
            blob_default_ttl=settings.BLOB_DEFAULT_TTL_SECONDS,
            eviction_headroom=settings.EVICTION_HEADROOM,
            key_algorithm=settings.KEY_HASH_ALGORITHM,
            clock=clock,
        )

    async def init(self) -> None:
        """Open the backing stores. The index itself loads lazily."""
        await self._kv.init()
        await self._blobs.init()
        logger.info(
            "Content cache initialized",
            cache_name=self.name,
            size_limit_bytes=self.size_limit_bytes,
            blobs="filesystem" if self._blobs.stores_files else "passthrough",
        )

    async def close(self) -> None:
        """Close the backing stores."""
        await self._blobs.close()
        await self._kv.close()

    # ------------ keys ------------

    def storage_key(self, key: str) -> str:
        """Storage key for a logical key."""
        return storage_key(key, self.key_algorithm)

    def _payload_key(self, key: str) -> str:
        return f"{PAYLOAD_PREFIX}{self.storage_key(key)}"

    # ------------ structured-data tier ------------

    async def put(
        self,
        key: str,
        value: Any,
        ttl: float | None = None,
        codec: Codec | None = None,
    ) -> None:
        """Store a value under a logical key.

        Args:
            key: Logical key.
            value: Value to store; must be encodable by the codec.
            ttl: Validity window in seconds (default_ttl when omitted).
            codec: Codec override for this value.
        """
        if ttl is not None and ttl < 0:
            raise ValueError("ttl must not be negative")

        with log_context(cache_name=self.name, operation="put"):
            async with self._lock:
                try:
                    await self._put_locked(key, value, ttl, codec or self.codec)
                except SerializationError as e:
                    logger.warning("Value not cached, cannot encode", key=key, error=str(e))
                except CacheError as e:
                    logger.error("Cache write failed", key=key, error=str(e))

    async def _put_locked(self, key: str, value: Any, ttl: float | None, codec: Codec) -> None:
        await self._index.ensure_loaded()

        # Encode before touching storage so a bad value writes nothing
        text = codec.encode(value)
        size = encoded_size(text)
        ttl = self.default_ttl if ttl is None else ttl
        now = self._clock()

        previous = self._index.get(key)
        if previous is not None and previous.kind is EntryKind.BLOB:
            await self._blobs.delete(self.storage_key(key))

        entry = CacheEntry(data=text, stored_at=now, ttl=ttl, size_bytes=size, codec=codec.name)
        await self._kv.set(self._payload_key(key), orjson.dumps(entry.to_dict()))

        self._index.record(IndexRecord(key, EntryKind.DATA, now, ttl, size))
        await self._index.save()
        logger.debug("Cached data", key=key, size=size, ttl=ttl)

        await self._evict_if_needed()

    async def get(
        self,
        key: str,
        force_refresh: bool = False,
        codec: Codec | None = None,
    ) -> Any | None:
        """Return the live value for a logical key, or None.

        A successful read refreshes the entry's timestamp, which both slides
        its expiry and marks it recently used for eviction.

        Args:
            key: Logical key.
            force_refresh: Bypass the cache and report a miss. Counted as a
                miss in the statistics.
            codec: Codec override matching the one used by ``put``.
        """
        if force_refresh:
            self._misses += 1
            return None

        with log_context(cache_name=self.name, operation="get"):
            async with self._lock:
                try:
                    value = await self._get_locked(key, codec or self.codec)
                except CacheError as e:
                    logger.warning("Cache read failed", key=key, error=str(e))
                    value = None
                if value is None:
                    self._misses += 1
                else:
                    self._hits += 1
                return value

    async def _get_locked(self, key: str, codec: Codec) -> Any | None:
        await self._index.ensure_loaded()
        payload_key = self._payload_key(key)

        raw = await self._kv.get(payload_key)
        if raw is None:
            record = self._index.get(key)
            if record is not None and record.kind is EntryKind.DATA:
                # Payload lost after the index was written
                self._index.drop(key)
                await self._index.save()
                logger.debug("Dropped index record without payload", key=key)
            return None

        entry = self._decode_entry(raw, key)
        if entry.codec != codec.name:
            raise SerializationError(
                "Payload written by a different codec",
                context={"key": key, "stored": entry.codec, "requested": codec.name},
            )

        now = self._clock()
        if entry.is_expired(now):
            self._index.drop(key)
            await self._kv.delete(payload_key)
            await self._index.save()
            logger.debug("Expired entry removed", key=key)
            return None

        value = codec.decode(entry.data)

        entry.stored_at = now
        await self._kv.set(payload_key, orjson.dumps(entry.to_dict()))

        record = self._index.get(key)
        if record is not None and record.kind is EntryKind.DATA:
            self._index.touch(key, now)
            await self._index.save()
        else:
            # Payload written but index update lost; track it again
            self._index.record(IndexRecord(key, EntryKind.DATA, now, entry.ttl, entry.size_bytes))
            await self._index.save()
            await self._evict_if_needed()

        return value

    def _decode_entry(self, raw: bytes, key: str) -> CacheEntry:
        try:
            return CacheEntry.from_dict(orjson.loads(raw))
        except (orjson.JSONDecodeError, KeyError, TypeError, ValueError) as e:
            raise SerializationError(
                "Corrupt cache entry", context={"key": key, "error": str(e)}
            ) from e

    async def remove(self, key: str) -> bool:
        """Remove one entry from whichever tier holds it.

        Returns:
            True if the index tracked the key.
        """
        with log_context(cache_name=self.name, operation="remove"):
            async with self._lock:
                try:
                    await self._index.ensure_loaded()
                    return await self._remove_locked(key)
                except CacheError as e:
                    logger.error("Cache remove failed", key=key, error=str(e))
                    return False

    async def _remove_locked(self, key: str) -> bool:
        record = self._index.drop(key)
        if record is not None and record.kind is EntryKind.BLOB:
            await self._blobs.delete(self.storage_key(key))
        else:
            await self._kv.delete(self._payload_key(key))
        await self._index.save()
        return record is not None

    async def get_or_load(
        self,
        key: str,
        loader: Callable[[], Awaitable[Any]],
        ttl: float | None = None,
        force_refresh: bool = False,
        codec: Codec | None = None,
    ) -> Any:
        """Return the cached value, or load, cache and return a fresh one.

        A cached ``None`` is indistinguishable from a miss and reloads.
        Exceptions raised by ``loader`` propagate.

        Args:
            key: Logical key.
            loader: Coroutine function producing the fresh value.
            ttl: TTL for a freshly loaded value.
            force_refresh: Skip the cached value and always load.
            codec: Codec override.
        """
        cached = await self.get(key, force_refresh=force_refresh, codec=codec)
        if cached is not None:
            return cached

        value = await loader()
        await self.put(key, value, ttl=ttl, codec=codec)
        return value

    # ------------ blob tier ------------

    async def get_or_fetch(
        self,
        source_url: str,
        ttl: float | None = None,
        force_refresh: bool = False,
    ) -> str | None:
        """Return a local path for a remote asset, downloading it if needed.

        With a passthrough blob store the source URL is returned unchanged,
        so callers must accept either a local path or the remote reference.

        Args:
            source_url: URL of the asset.
            ttl: Validity window in seconds (blob_default_ttl when omitted).
            force_refresh: Download again even if a live copy exists.

        Returns:
            Local path, the source URL (passthrough), or None on failure.
        """
        if ttl is not None and ttl < 0:
            raise ValueError("ttl must not be negative")
        if not self._blobs.stores_files:
            return source_url

        with log_context(cache_name=self.name, operation="get_or_fetch"):
            async with self._lock:
                try:
                    return await self._fetch_locked(source_url, ttl, force_refresh)
                except DownloadError as e:
                    logger.warning(
                        "Blob download failed",
                        url=source_url,
                        status_code=e.context.get("status_code"),
                        error=str(e),
                    )
                    self._misses += 1
                    return None
                except CacheError as e:
                    logger.error("Blob cache failed", url=source_url, error=str(e))
                    return None

    async def _fetch_locked(
        self, source_url: str, ttl: float | None, force_refresh: bool
    ) -> str | None:
        await self._index.ensure_loaded()
        skey = self.storage_key(source_url)
        path = self._blobs.path_for(skey)
        previous = self._index.get(source_url)
        record = previous if previous is not None and previous.kind is EntryKind.BLOB else None

        if not force_refresh and await self._blobs.exists(skey):
            now = self._clock()
            if record is not None and record.is_expired(now):
                await self._blobs.delete(skey)
                self._index.drop(source_url)
                await self._index.save()
                logger.debug("Expired blob removed", url=source_url)
            else:
                if record is not None:
                    self._index.touch(source_url, now)
                else:
                    # File on disk the index lost track of
                    await self._discard_data_payload(previous)
                    self._index.record(
                        IndexRecord(
                            source_url,
                            EntryKind.BLOB,
                            now,
                            self.blob_default_ttl if ttl is None else ttl,
                            await self._blobs.size(skey),
                        )
                    )
                await self._index.save()
                self._hits += 1
                if record is None:
                    await self._evict_if_needed()
                    if source_url not in self._index:
                        return None
                return path

        size = await self._blobs.download(source_url, skey)
        self._misses += 1

        await self._discard_data_payload(previous)

        ttl = self.blob_default_ttl if ttl is None else ttl
        self._index.record(IndexRecord(source_url, EntryKind.BLOB, self._clock(), ttl, size))
        await self._index.save()
        logger.debug("Cached blob", url=source_url, size=size, ttl=ttl)

        await self._evict_if_needed()
        if source_url not in self._index:
            logger.warning(
                "Blob larger than the cache size limit, not kept", url=source_url, size=size
            )
            return None
        return path

    async def _discard_data_payload(self, previous: IndexRecord | None) -> None:
        """Delete the data-tier payload when a blob takes over its key."""
        if previous is not None and previous.kind is EntryKind.DATA:
            await self._kv.delete(self._payload_key(previous.key))

    # ------------ eviction & maintenance ------------

    async def _evict_if_needed(self) -> int:
        """Evict oldest-touched entries once the size limit is exceeded.

        Removes entries until the total is at or below
        ``size_limit_bytes * eviction_headroom``.

        Returns:
            Number of entries evicted.
        """
        if self._index.total_size_bytes <= self.size_limit_bytes:
            return 0

        target = self.size_limit_bytes * self.eviction_headroom
        evicted = 0
        for record in self._index.eviction_order():
            if self._index.total_size_bytes <= target:
                break
            await self._delete_payload(record)
            self._index.drop(record.key)
            evicted += 1

        await self._index.save()
        self._evictions += evicted
        logger.info(
            "Evicted cache entries",
            evicted=evicted,
            total_size_bytes=self._index.total_size_bytes,
            limit=self.size_limit_bytes,
        )
        return evicted

    async def _delete_payload(self, record: IndexRecord) -> None:
        """Delete the payload or blob behind a record. Failures are logged.

        The record is dropped from the index either way, so a failed delete
        can orphan storage but never overstate the tracked total.
        """
        try:
            if record.kind is EntryKind.BLOB:
                await self._blobs.delete(self.storage_key(record.key))
            else:
                await self._kv.delete(self._payload_key(record.key))
        except CacheError as e:
            logger.warning("Could not delete cached payload", key=record.key, error=str(e))

    async def clear_expired_cache(self) -> int:
        """Remove every entry whose TTL has elapsed.

        Returns:
            Number of entries removed.
        """
        with log_context(cache_name=self.name, operation="clear_expired_cache"):
            async with self._lock:
                try:
                    await self._index.ensure_loaded()
                    expired = self._index.expired(self._clock())
                    for record in expired:
                        await self._delete_payload(record)
                        self._index.drop(record.key)
                    await self._index.save()
                except CacheError as e:
                    logger.error("Clearing expired entries failed", error=str(e))
                    return 0

        if expired:
            logger.info("Cleared expired cache entries", removed=len(expired))
        return len(expired)

    async def clear_cache(self) -> None:
        """Remove every payload and blob file and reset the index."""
        with log_context(cache_name=self.name, operation="clear_cache"):
            async with self._lock:
                try:
                    payload_keys = await self._kv.keys(PAYLOAD_PREFIX)
                    await self._kv.delete_many(payload_keys)
                    await self._blobs.clear()
                    self._index.reset()
                    await self._index.save()
                except CacheError as e:
                    logger.error("Clearing cache failed", error=str(e))
                    return
                logger.info("Cache cleared", payloads=len(payload_keys))

    async def get_cache_stats(self) -> CacheStats:
        """Aggregate statistics over the index. Zeros on an empty cache."""
        async with self._lock:
            try:
                await self._index.ensure_loaded()
            except CacheError as e:
                logger.error("Reading cache stats failed", error=str(e))
                return CacheStats()

            records = list(self._index)
            timestamps = [r.stored_at for r in records]
            return CacheStats(
                total_size_bytes=self._index.total_size_bytes,
                entry_count=len(records),
                oldest_entry_timestamp=min(timestamps) if timestamps else 0.0,
                newest_entry_timestamp=max(timestamps) if timestamps else 0.0,
                data_entries=sum(1 for r in records if r.kind is EntryKind.DATA),
                blob_entries=sum(1 for r in records if r.kind is EntryKind.BLOB),
                hits=self._hits,
                misses=self._misses,
                evictions=self._evictions,
            )
