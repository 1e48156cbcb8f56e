from __future__ import annotations

import asyncio
from datetime import datetime, timezone
from pathlib import Path

import aiosqlite


class SQLiteBackend:
    name = "sqlite"

    def __init__(self, db_path: Path):
        self._db_path = db_path
        self._init_lock = asyncio.Lock()
        self._initialized = False

    async def initialize(self) -> None:
        if self._initialized:
            return
        async with self._init_lock:
            if self._initialized:
                return
            self._db_path.parent.mkdir(parents=True, exist_ok=True)
            async with aiosqlite.connect(self._db_path) as db:
                await db.execute("PRAGMA journal_mode=WAL;")
                await db.execute("PRAGMA synchronous=NORMAL;")
                await db.execute(
                    """
                    CREATE TABLE IF NOT EXISTS kv (
                        namespace TEXT NOT NULL,
                        key TEXT NOT NULL,
                        value BLOB NOT NULL,
                        updated_at TEXT NOT NULL,
                        PRIMARY KEY(namespace, key)
                    );
                    """
                )
                await db.commit()
            self._initialized = True

    @staticmethod
    def _now_iso() -> str:
        return datetime.now(timezone.utc).isoformat()

    async def get(self, namespace: str, key: str) -> bytes | None:
        await self.initialize()
        async with aiosqlite.connect(self._db_path) as db:
            async with db.execute("SELECT value FROM kv WHERE namespace=? AND key=?", (namespace, key)) as cur:
                row = await cur.fetchone()
        return bytes(row[0]) if row else None

    async def set(self, namespace: str, key: str, value: bytes) -> None:
        await self.initialize()
        async with aiosqlite.connect(self._db_path) as db:
            await db.execute(
                """
                INSERT INTO kv(namespace, key, value, updated_at)
                VALUES(?, ?, ?, ?)
                ON CONFLICT(namespace, key) DO UPDATE SET value=excluded.value, updated_at=excluded.updated_at
                """,
                (namespace, key, bytes(value), self._now_iso()),
            )
            await db.commit()

    async def delete(self, namespace: str, key: str) -> bool:
        await self.initialize()
        async with aiosqlite.connect(self._db_path) as db:
            cur = await db.execute("DELETE FROM kv WHERE namespace=? AND key=?", (namespace, key))
            await db.commit()
            return int(cur.rowcount or 0) > 0

    async def list_namespace(self, namespace: str) -> list[tuple[str, bytes]]:
        await self.initialize()
        async with aiosqlite.connect(self._db_path) as db:
            async with db.execute("SELECT key, value FROM kv WHERE namespace=? ORDER BY key", (namespace,)) as cur:
                rows = await cur.fetchall()
        return [(str(r[0]), bytes(r[1])) for r in rows]

    async def close(self) -> None:
        return None
