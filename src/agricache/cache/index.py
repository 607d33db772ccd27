"""
Cache index: per-key metadata persisted beside the payloads.

The index is the single shared mutable structure of the cache. It tracks
every entry of both tiers with its timestamp, TTL and size, keeps the
running total used to decide eviction, and orders entries for the sweep.
"""

from __future__ import annotations

from typing import Any, Iterator

import orjson

from agricache.cache.base import KeyValueStore
from agricache.logging import get_logger
from agricache.types import IndexRecord

logger = get_logger(__name__)

# Well-known key the index is persisted under
INDEX_KEY = "agricache_index"


class CacheIndex:
    """In-memory view of the index, loaded lazily from a KeyValueStore."""

    def __init__(self, store: KeyValueStore, index_key: str = INDEX_KEY) -> None:
        self._store = store
        self.index_key = index_key
        self._entries: dict[str, IndexRecord] = {}
        self._total_size_bytes = 0
        self.loaded = False

    # ------------ persistence ------------

    async def load(self) -> None:
        """Load the persisted index.

        The total is recomputed from the entries, so an overstated persisted
        total heals here. An unreadable record starts the index empty.

        Raises:
            StorageError: If the store cannot be read. The index stays
                unloaded so the next operation retries.
        """
        raw = await self._store.get(self.index_key)
        self._entries = {}
        if raw:
            try:
                payload = orjson.loads(raw)
                for key, record in payload.get("entries", {}).items():
                    self._entries[key] = IndexRecord.from_dict(record)
            except (orjson.JSONDecodeError, AttributeError, KeyError, TypeError, ValueError) as e:
                logger.warning("Cache index unreadable, starting empty", error=str(e))
                self._entries = {}
        self._total_size_bytes = sum(r.size_bytes for r in self._entries.values())
        self.loaded = True
        logger.debug(
            "Cache index loaded",
            entries=len(self._entries),
            total_size_bytes=self._total_size_bytes,
        )

    async def ensure_loaded(self) -> None:
        if not self.loaded:
            await self.load()

    async def save(self) -> None:
        """Persist the whole index in one write."""
        await self._store.set(self.index_key, orjson.dumps(self.to_dict()))

    def to_dict(self) -> dict[str, Any]:
        return {
            "total_size_bytes": self._total_size_bytes,
            "entries": {key: r.to_dict() for key, r in self._entries.items()},
        }

    # ------------ reads ------------

    @property
    def total_size_bytes(self) -> int:
        return self._total_size_bytes

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, key: object) -> bool:
        return key in self._entries

    def __iter__(self) -> Iterator[IndexRecord]:
        return iter(list(self._entries.values()))

    def get(self, key: str) -> IndexRecord | None:
        return self._entries.get(key)

    def expired(self, now: float) -> list[IndexRecord]:
        """Records whose TTL has elapsed at ``now``."""
        return [r for r in self._entries.values() if r.is_expired(now)]

    def eviction_order(self) -> list[IndexRecord]:
        """Records oldest-touched first; ties broken by key."""
        return sorted(self._entries.values(), key=lambda r: (r.stored_at, r.key))

    # ------------ writes (in memory; call save() to persist) ------------

    def record(self, record: IndexRecord) -> None:
        """Track an entry, replacing any previous record for its key."""
        previous = self._entries.get(record.key)
        if previous is not None:
            self._total_size_bytes -= previous.size_bytes
        self._entries[record.key] = record
        self._total_size_bytes += record.size_bytes

    def touch(self, key: str, now: float) -> bool:
        """Mark an entry as used at ``now``. Returns whether it is tracked."""
        record = self._entries.get(key)
        if record is None:
            return False
        record.stored_at = now
        return True

    def drop(self, key: str) -> IndexRecord | None:
        """Stop tracking an entry and return its record."""
        record = self._entries.pop(key, None)
        if record is not None:
            self._total_size_bytes -= record.size_bytes
        return record

    def reset(self) -> None:
        """Forget every entry. The empty index counts as loaded."""
        self._entries = {}
        self._total_size_bytes = 0
        self.loaded = True
