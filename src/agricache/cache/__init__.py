"""
Cache package for local content.

This package provides:
- Key-value stores (kv_store.py): SQLite-backed and in-memory payload storage
- Blob stores (blob_store.py): downloaded files, or passthrough without a disk
- Cache index (index.py): per-key metadata, size accounting, eviction order
- ContentCache (service.py): the put/get/get_or_fetch/maintenance operations
"""

from agricache.cache.blob_store import FilesystemBlobStore, PassthroughBlobStore
from agricache.cache.kv_store import InMemoryKVStore, SQLiteKVStore
from agricache.cache.serialization import JSONCodec, PydanticCodec
from agricache.cache.service import ContentCache

__all__ = [
    "ContentCache",
    "FilesystemBlobStore",
    "InMemoryKVStore",
    "JSONCodec",
    "PassthroughBlobStore",
    "PydanticCodec",
    "SQLiteKVStore",
]
