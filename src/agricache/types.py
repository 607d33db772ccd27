"""
Core types for the content cache.

This module defines the data structures shared by the cache layers:
- Enums for entry kinds and named TTL presets
- CacheEntry: the envelope persisted for structured data
- IndexRecord: per-key metadata tracked in the cache index
- CacheStats: aggregate statistics reported to callers
- Clock helpers
"""

from __future__ import annotations

import time
from dataclasses import asdict, dataclass
from enum import Enum
from typing import Any, Callable

Clock = Callable[[], float]


def epoch_now() -> float:
    """Current wall-clock time in epoch seconds."""
    return time.time()


class EntryKind(str, Enum):
    """Which tier holds an entry."""

    DATA = "data"
    BLOB = "blob"


class TTLPreset(int, Enum):
    """Named validity windows, in seconds, used by the platform's screens."""

    WEATHER = 15 * 60
    MARKETPLACE = 30 * 60
    DEFAULT = 60 * 60
    ENCYCLOPEDIA = 24 * 60 * 60


def is_expired(stored_at: float, ttl: float, now: float) -> bool:
    """An entry is live while ``now <= stored_at + ttl``."""
    return now > stored_at + ttl


@dataclass
class CacheEntry:
    """Envelope persisted for one structured-data entry.

    ``data`` holds the codec's text encoding of the value; ``codec`` names the
    codec that produced it so a mismatched decoder can refuse it.
    """

    data: str
    stored_at: float
    ttl: float
    size_bytes: int
    codec: str

    def is_expired(self, now: float) -> bool:
        return is_expired(self.stored_at, self.ttl, now)

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> CacheEntry:
        return cls(
            data=data["data"],
            stored_at=float(data["stored_at"]),
            ttl=float(data["ttl"]),
            size_bytes=int(data["size_bytes"]),
            codec=data.get("codec", "json"),
        )


@dataclass
class IndexRecord:
    """Metadata the index keeps for one logical key."""

    key: str
    kind: EntryKind
    stored_at: float
    ttl: float
    size_bytes: int

    def is_expired(self, now: float) -> bool:
        return is_expired(self.stored_at, self.ttl, now)

    def to_dict(self) -> dict[str, Any]:
        return {
            "key": self.key,
            "kind": self.kind.value,
            "stored_at": self.stored_at,
            "ttl": self.ttl,
            "size_bytes": self.size_bytes,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> IndexRecord:
        return cls(
            key=data["key"],
            kind=EntryKind(data.get("kind", EntryKind.DATA.value)),
            stored_at=float(data["stored_at"]),
            ttl=float(data["ttl"]),
            size_bytes=int(data["size_bytes"]),
        )


@dataclass(frozen=True)
class CacheStats:
    """Aggregate statistics over the cache index.

    Timestamps are epoch seconds; all fields are zero on an empty cache.
    Hit, miss and eviction counters cover the lifetime of the process.
    """

    total_size_bytes: int = 0
    entry_count: int = 0
    oldest_entry_timestamp: float = 0.0
    newest_entry_timestamp: float = 0.0
    data_entries: int = 0
    blob_entries: int = 0
    hits: int = 0
    misses: int = 0
    evictions: int = 0

    @property
    def hit_rate(self) -> float:
        lookups = self.hits + self.misses
        return self.hits / lookups if lookups else 0.0

    def to_dict(self) -> dict[str, Any]:
        result = asdict(self)
        result["hit_rate"] = self.hit_rate
        return result
