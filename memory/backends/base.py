from __future__ import annotations

import asyncio
from typing import Any, Protocol, runtime_checkable

import orjson

from core.logging_setup import get_logger


logger = get_logger(__name__)


class StorageError(RuntimeError):
    pass


class StorageUnavailable(StorageError):
    """The backend timed out or refused the operation."""


class StorageCorrupt(StorageError):
    """Stored bytes could not be decoded."""


@runtime_checkable
class KeyValueStore(Protocol):
    """Namespaced key-value persistence port. Values are opaque bytes."""

    name: str

    async def initialize(self) -> None: ...

    async def get(self, namespace: str, key: str) -> bytes | None: ...

    async def set(self, namespace: str, key: str, value: bytes) -> None: ...

    async def delete(self, namespace: str, key: str) -> bool: ...

    async def list_namespace(self, namespace: str) -> list[tuple[str, bytes]]: ...

    async def close(self) -> None: ...


class GuardedStore:
    """Wrap a backend so every call is bounded by a timeout.

    Timeouts and backend exceptions surface as StorageUnavailable.
    """

    def __init__(self, inner: KeyValueStore, timeout_s: float = 5.0):
        self._inner = inner
        self._timeout_s = timeout_s
        self.name = inner.name

    async def _call(self, op: str, coro):
        try:
            return await asyncio.wait_for(coro, timeout=self._timeout_s)
        except asyncio.TimeoutError as e:
            logger.warning("storage_timeout", backend=self.name, op=op, timeout_s=self._timeout_s)
            raise StorageUnavailable(f"{self.name}.{op} timed out") from e
        except StorageError:
            raise
        except Exception as e:  # noqa: BLE001
            logger.warning("storage_failed", backend=self.name, op=op, error=str(e))
            raise StorageUnavailable(f"{self.name}.{op} failed: {e}") from e

    async def initialize(self) -> None:
        await self._call("initialize", self._inner.initialize())

    async def get(self, namespace: str, key: str) -> bytes | None:
        return await self._call("get", self._inner.get(namespace, key))

    async def set(self, namespace: str, key: str, value: bytes) -> None:
        await self._call("set", self._inner.set(namespace, key, value))

    async def delete(self, namespace: str, key: str) -> bool:
        return await self._call("delete", self._inner.delete(namespace, key))

    async def list_namespace(self, namespace: str) -> list[tuple[str, bytes]]:
        return await self._call("list_namespace", self._inner.list_namespace(namespace))

    async def close(self) -> None:
        await self._inner.close()


def decode(raw: bytes) -> Any:
    try:
        return orjson.loads(raw)
    except orjson.JSONDecodeError as e:
        raise StorageCorrupt(str(e)) from e


def _decode(namespace: str, key: str, raw: bytes) -> Any | None:
    try:
        return decode(raw)
    except StorageCorrupt as e:
        logger.warning("storage_corrupt", namespace=namespace, key=key, error=str(e))
        return None


async def load_json(store: KeyValueStore, namespace: str, key: str) -> Any | None:
    """Read and decode one value. Corrupt or unreachable values read as None."""
    try:
        raw = await store.get(namespace, key)
    except StorageUnavailable as e:
        logger.warning("storage_unavailable", namespace=namespace, key=key, error=str(e))
        return None
    if raw is None:
        return None
    return _decode(namespace, key, raw)


async def list_json(store: KeyValueStore, namespace: str) -> list[tuple[str, Any]]:
    try:
        rows = await store.list_namespace(namespace)
    except StorageUnavailable as e:
        logger.warning("storage_unavailable", namespace=namespace, error=str(e))
        return []
    out: list[tuple[str, Any]] = []
    for key, raw in rows:
        value = _decode(namespace, key, raw)
        if value is not None:
            out.append((key, value))
    return out


async def save_json(store: KeyValueStore, namespace: str, key: str, value: Any) -> bool:
    """Encode and write one value. Returns False when the write did not land."""
    try:
        await store.set(namespace, key, orjson.dumps(value))
        return True
    except StorageUnavailable as e:
        logger.warning("storage_unavailable", namespace=namespace, key=key, error=str(e))
        return False


async def delete_key(store: KeyValueStore, namespace: str, key: str) -> bool:
    try:
        await store.delete(namespace, key)
        return True
    except StorageUnavailable as e:
        logger.warning("storage_unavailable", namespace=namespace, key=key, error=str(e))
        return False
