__all__ = [
    "KeyValueStore",
    "GuardedStore",
    "StorageError",
    "StorageUnavailable",
    "StorageCorrupt",
    "InMemoryBackend",
    "JsonFileBackend",
    "DiskCacheBackend",
    "SQLiteBackend",
    "build_backend",
]

from pathlib import Path

from .base import GuardedStore, KeyValueStore, StorageCorrupt, StorageError, StorageUnavailable
from .diskcache_backend import DiskCacheBackend
from .inmemory_backend import InMemoryBackend
from .json_backend import JsonFileBackend
from .sqlite_backend import SQLiteBackend


def build_backend(kind: str, memory_dir: Path) -> KeyValueStore:
    kind = (kind or "memory").strip().lower()
    if kind == "memory":
        return InMemoryBackend()
    if kind == "json":
        return JsonFileBackend(memory_dir / "json")
    if kind == "diskcache":
        return DiskCacheBackend(memory_dir / "diskcache")
    if kind == "sqlite":
        return SQLiteBackend(memory_dir / "sqlite" / "zac.sqlite3")
    raise ValueError(f"Unknown storage backend: {kind}")
