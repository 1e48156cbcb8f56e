from __future__ import annotations

import asyncio
from pathlib import Path

from diskcache import Cache


_SEP = "\x1f"


class DiskCacheBackend:
    name = "diskcache"

    def __init__(self, cache_dir: Path):
        self._cache_dir = cache_dir
        self._cache: Cache | None = None
        self._lock = asyncio.Lock()

    def _get_cache(self) -> Cache:
        if self._cache is None:
            self._cache_dir.mkdir(parents=True, exist_ok=True)
            self._cache = Cache(directory=str(self._cache_dir))
        return self._cache

    @staticmethod
    def _key(namespace: str, key: str) -> str:
        return f"{namespace}{_SEP}{key}"

    async def initialize(self) -> None:
        await asyncio.to_thread(self._get_cache)

    async def get(self, namespace: str, key: str) -> bytes | None:
        async with self._lock:
            return await asyncio.to_thread(self._get_cache().get, self._key(namespace, key), None)

    async def set(self, namespace: str, key: str, value: bytes) -> None:
        async with self._lock:
            await asyncio.to_thread(self._get_cache().set, self._key(namespace, key), bytes(value))

    async def delete(self, namespace: str, key: str) -> bool:
        async with self._lock:
            return bool(await asyncio.to_thread(self._get_cache().delete, self._key(namespace, key)))

    async def list_namespace(self, namespace: str) -> list[tuple[str, bytes]]:
        prefix = f"{namespace}{_SEP}"

        def _scan() -> list[tuple[str, bytes]]:
            cache = self._get_cache()
            out: list[tuple[str, bytes]] = []
            for full_key in cache.iterkeys():
                if isinstance(full_key, str) and full_key.startswith(prefix):
                    value = cache.get(full_key, None)
                    if value is not None:
                        out.append((full_key[len(prefix):], value))
            return sorted(out)

        async with self._lock:
            return await asyncio.to_thread(_scan)

    async def close(self) -> None:
        if self._cache is not None:
            await asyncio.to_thread(self._cache.close)
            self._cache = None
