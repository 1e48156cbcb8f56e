from __future__ import annotations

import asyncio
import bisect
import re
from collections import Counter
from contextlib import asynccontextmanager
from datetime import datetime
from typing import Any, AsyncIterator, Callable, Iterable
from uuid import UUID

from pydantic import ValidationError

from core.logging_setup import get_logger
from memory.backends.base import KeyValueStore, delete_key, load_json, save_json
from memory.schemas import ConversationSession, MemoryRecord, utcnow


logger = get_logger(__name__)

INDEX_NAMESPACE = "memory"
INDEX_KEY = "index"
SESSION_KEY = "session"

_DAY_S = 24 * 3600.0
_HOUR_S = 3600.0
_RECALL_LIMIT = 5

_TOPIC_STOPWORDS = {
    "the", "and", "that", "this", "with", "what", "have", "your", "you", "are", "for", "was", "but",
    "not", "can", "about", "just", "like", "know", "tell", "does", "mean", "from", "they", "there",
    "been", "will", "would", "could", "should", "their", "them", "then", "than", "when", "where",
    "which", "while", "here", "i'm", "it's", "don't", "remember", "name", "is", "my", "me",
}


def session_namespace(session_id: str) -> str:
    return f"memory:{session_id}"


def compute_importance(session: ConversationSession, now: datetime) -> float:
    count_score = min(len(session.records) / 20.0, 1.0)
    idle_s = (now - session.last_activity).total_seconds()
    recency_score = min(max(0.0, 1.0 - idle_s / _DAY_S), 1.0)
    span_s = (session.last_activity - session.started_at).total_seconds()
    duration_score = min(max(span_s, 0.0) / _HOUR_S, 1.0)
    return min(1.0, (count_score + recency_score + duration_score) / 3.0)


class ConversationMemory:
    """Per-session turn log with importance scoring and bounded retention."""

    def __init__(
        self,
        store: KeyValueStore,
        max_records: int = 100,
        retention_window_s: float = 3000.0,
        eviction_threshold: float = 0.3,
        clock: Callable[[], datetime] = utcnow,
    ):
        self._store = store
        self._max_records = max(1, int(max_records))
        self._retention_window_s = float(retention_window_s)
        self._eviction_threshold = float(eviction_threshold)
        self._clock = clock
        self._sessions: dict[str, ConversationSession] = {}
        self._pins: dict[str, Counter[UUID]] = {}
        self._lock = asyncio.Lock()

    async def initialize(self) -> None:
        ids = await load_json(self._store, INDEX_NAMESPACE, INDEX_KEY)
        if not isinstance(ids, list):
            return
        for session_id in ids:
            raw = await load_json(self._store, session_namespace(str(session_id)), SESSION_KEY)
            if raw is None:
                continue
            try:
                self._sessions[str(session_id)] = ConversationSession.model_validate(raw)
            except ValidationError as e:
                logger.warning("storage_corrupt", namespace=session_namespace(str(session_id)), error=str(e))
        logger.info("conversation_sessions_restored", sessions=len(self._sessions))

    async def _persist(self, session: ConversationSession) -> bool:
        return await save_json(self._store, session_namespace(session.id), SESSION_KEY, session.model_dump(mode="json"))

    async def _persist_index(self) -> bool:
        return await save_json(self._store, INDEX_NAMESPACE, INDEX_KEY, sorted(self._sessions))

    def session(self, session_id: str) -> ConversationSession | None:
        return self._sessions.get(session_id)

    def session_ids(self) -> list[str]:
        return list(self._sessions)

    async def append(self, record: MemoryRecord) -> bool:
        """Add a record and rescore its session. Returns False if the write was not durable."""
        async with self._lock:
            session = self._sessions.get(record.session_id)
            created = session is None
            if session is None:
                session = ConversationSession(
                    id=record.session_id,
                    started_at=record.timestamp,
                    last_activity=record.timestamp,
                )
                self._sessions[session.id] = session

            bisect.insort_right(session.records, record, key=lambda r: r.timestamp)
            session.started_at = min(session.started_at, record.timestamp)
            session.last_activity = max(session.last_activity, record.timestamp)
            self._trim(session)
            session.importance = compute_importance(session, self._clock())

            durable = await self._persist(session)
            if created:
                durable = await self._persist_index() and durable
        return durable

    def _trim(self, session: ConversationSession) -> None:
        records = session.records
        if len(records) <= self._max_records:
            return
        to_drop = max(len(records) - self._max_records, self._max_records // 5)
        pinned = self._pins.get(session.id) or Counter()
        newest = records[-1].id
        kept: list[MemoryRecord] = []
        dropped = 0
        for r in records:
            if dropped < to_drop and r.id != newest and not pinned.get(r.id):
                dropped += 1
                continue
            kept.append(r)
        session.records = kept
        logger.debug("conversation_trimmed", session_id=session.id, dropped=dropped, kept=len(kept))

    @asynccontextmanager
    async def pinned(self, session_id: str, record_ids: Iterable[UUID]) -> AsyncIterator[None]:
        """Keep the given records out of overflow trimming while the block runs."""
        pins = self._pins.setdefault(session_id, Counter())
        ids = list(record_ids)
        pins.update(ids)
        try:
            yield
        finally:
            pins.subtract(ids)
            for rid in ids:
                if pins[rid] <= 0:
                    del pins[rid]
            if not pins:
                self._pins.pop(session_id, None)

    def current_importance(self, session_id: str) -> float:
        session = self._sessions.get(session_id)
        if session is None:
            return 0.0
        session.importance = compute_importance(session, self._clock())
        return session.importance

    def recall(self, session_id: str, keyword: str, limit: int = _RECALL_LIMIT) -> list[MemoryRecord]:
        """Case-insensitive substring scan, most recent matches first."""
        session = self._sessions.get(session_id)
        kw = (keyword or "").strip().lower()
        if session is None or not kw:
            return []
        out: list[MemoryRecord] = []
        for r in reversed(session.records):
            if kw in r.content.lower():
                out.append(r)
                if len(out) >= limit:
                    break
        return out

    async def evict(self, now: datetime | None = None) -> list[str]:
        """Drop sessions that are both unimportant and idle past the retention window."""
        now = now or self._clock()
        evicted: list[str] = []
        async with self._lock:
            for session_id, session in list(self._sessions.items()):
                if session_id in self._pins:
                    continue
                session.importance = compute_importance(session, now)
                idle_s = (now - session.last_activity).total_seconds()
                if session.importance < self._eviction_threshold and idle_s > self._retention_window_s:
                    del self._sessions[session_id]
                    await delete_key(self._store, session_namespace(session_id), SESSION_KEY)
                    evicted.append(session_id)
                    logger.info("session_evicted", session_id=session_id, importance=round(session.importance, 3), idle_s=int(idle_s))
            if evicted:
                await self._persist_index()
        return evicted

    async def clear_session(self, session_id: str) -> int:
        async with self._lock:
            session = self._sessions.pop(session_id, None)
            if session is None:
                return 0
            await delete_key(self._store, session_namespace(session_id), SESSION_KEY)
            await self._persist_index()
        return len(session.records)

    def summarize(self, session_id: str, top_n: int = 5) -> dict[str, Any]:
        session = self._sessions.get(session_id)
        if session is None:
            return {"session_id": session_id, "messages": 0, "duration_s": 0, "topics": []}
        words: Counter[str] = Counter()
        for r in session.records:
            if r.role != "user":
                continue
            for w in re.findall(r"[a-z']{4,}", r.content.lower()):
                if w not in _TOPIC_STOPWORDS:
                    words[w] += 1
        return {
            "session_id": session_id,
            "messages": len(session.records),
            "duration_s": int((session.last_activity - session.started_at).total_seconds()),
            "importance": round(session.importance, 3),
            "topics": [w for w, _ in words.most_common(top_n)],
        }

    def stats(self) -> dict[str, Any]:
        return {
            "sessions": len(self._sessions),
            "records": sum(len(s.records) for s in self._sessions.values()),
            "max_records_per_session": self._max_records,
        }
