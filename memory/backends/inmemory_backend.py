from __future__ import annotations

import asyncio


class InMemoryBackend:
    """Process-local store. Nothing survives a restart."""

    name = "memory"

    def __init__(self) -> None:
        self._data: dict[str, dict[str, bytes]] = {}
        self._lock = asyncio.Lock()

    async def initialize(self) -> None:
        return None

    async def get(self, namespace: str, key: str) -> bytes | None:
        return self._data.get(namespace, {}).get(key)

    async def set(self, namespace: str, key: str, value: bytes) -> None:
        async with self._lock:
            self._data.setdefault(namespace, {})[key] = bytes(value)

    async def delete(self, namespace: str, key: str) -> bool:
        async with self._lock:
            bucket = self._data.get(namespace)
            if not bucket or key not in bucket:
                return False
            del bucket[key]
            if not bucket:
                self._data.pop(namespace, None)
            return True

    async def list_namespace(self, namespace: str) -> list[tuple[str, bytes]]:
        return sorted(self._data.get(namespace, {}).items())

    async def close(self) -> None:
        return None
