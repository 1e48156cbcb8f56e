from __future__ import annotations

import asyncio
from pathlib import Path
from urllib.parse import quote

import aiofiles
import aiofiles.os
import orjson

from core.logging_setup import get_logger


logger = get_logger(__name__)


class JsonFileBackend:
    """One JSON document per namespace, mapping key -> UTF-8 value text."""

    name = "json"

    def __init__(self, json_dir: Path):
        self._json_dir = json_dir
        self._lock = asyncio.Lock()
        self._initialized = False

    def _path(self, namespace: str) -> Path:
        return self._json_dir / f"{quote(namespace, safe='')}.json"

    async def initialize(self) -> None:
        if self._initialized:
            return
        self._json_dir.mkdir(parents=True, exist_ok=True)
        self._initialized = True

    async def _read(self, namespace: str) -> dict[str, str]:
        path = self._path(namespace)
        if not path.exists():
            return {}
        async with aiofiles.open(path, "rb") as f:
            raw = await f.read()
        if not raw.strip():
            return {}
        try:
            data = orjson.loads(raw)
        except orjson.JSONDecodeError as e:
            logger.warning("storage_corrupt", backend=self.name, namespace=namespace, error=str(e))
            await aiofiles.os.replace(path, path.with_suffix(".corrupt"))
            return {}
        if not isinstance(data, dict):
            logger.warning("storage_corrupt", backend=self.name, namespace=namespace, error="not an object")
            return {}
        return {str(k): str(v) for k, v in data.items()}

    async def _write(self, namespace: str, data: dict[str, str]) -> None:
        path = self._path(namespace)
        if not data:
            if path.exists():
                await aiofiles.os.remove(path)
            return
        tmp = path.with_suffix(".tmp")
        async with aiofiles.open(tmp, "wb") as f:
            await f.write(orjson.dumps(data, option=orjson.OPT_SORT_KEYS))
        await aiofiles.os.replace(tmp, path)

    async def get(self, namespace: str, key: str) -> bytes | None:
        await self.initialize()
        async with self._lock:
            value = (await self._read(namespace)).get(key)
        return value.encode("utf-8") if value is not None else None

    async def set(self, namespace: str, key: str, value: bytes) -> None:
        await self.initialize()
        async with self._lock:
            data = await self._read(namespace)
            data[key] = value.decode("utf-8")
            await self._write(namespace, data)

    async def delete(self, namespace: str, key: str) -> bool:
        await self.initialize()
        async with self._lock:
            data = await self._read(namespace)
            if key not in data:
                return False
            del data[key]
            await self._write(namespace, data)
            return True

    async def list_namespace(self, namespace: str) -> list[tuple[str, bytes]]:
        await self.initialize()
        async with self._lock:
            data = await self._read(namespace)
        return [(k, v.encode("utf-8")) for k, v in sorted(data.items())]

    async def close(self) -> None:
        return None
