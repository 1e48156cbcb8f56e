from __future__ import annotations

import asyncio
import re
from datetime import datetime
from pathlib import Path
from typing import Any, Callable, Literal

import aiofiles
import orjson
from pydantic import ValidationError

from core.logging_setup import get_logger
from memory.backends.base import KeyValueStore, delete_key, list_json, save_json
from memory.schemas import KnowledgeEntry, KnowledgeHit, utcnow


logger = get_logger(__name__)

NAMESPACE = "knowledge"
SEED_CONFIDENCE = 0.9
LEARNED_CONFIDENCE = 0.8

_TOKEN_RE = re.compile(r"[a-z0-9']+")

# Seed file section -> entry category.
_SEED_SECTIONS: dict[str, Literal["vocabulary", "mathematics", "fact"]] = {
    "vocabulary": "vocabulary",
    "mathematics": "mathematics",
    "facts": "fact",
}


def tokenize(text: str) -> list[str]:
    seen: set[str] = set()
    out: list[str] = []
    for tok in _TOKEN_RE.findall((text or "").lower()):
        tok = tok.strip("'")
        if tok and tok not in seen:
            seen.add(tok)
            out.append(tok)
    return out


def relevance(query_tokens: list[str], candidate_tokens: list[str]) -> float:
    """Share of query tokens that contain, or are contained in, a candidate token."""
    if not query_tokens:
        return 0.0
    matched = sum(1 for q in query_tokens if any(q in c or c in q for c in candidate_tokens))
    return matched / len(query_tokens)


def _term_key(term: str) -> str:
    return re.sub(r"\s+", " ", (term or "").strip().lower())


class KnowledgeStore:
    def __init__(
        self,
        store: KeyValueStore,
        capacity: int = 2000,
        clock: Callable[[], datetime] = utcnow,
    ):
        self._store = store
        self._capacity = max(1, int(capacity))
        self._clock = clock
        self._entries: dict[str, KnowledgeEntry] = {}
        self._tokens: dict[str, list[str]] = {}
        self._lock = asyncio.Lock()
        self._seeded = False

    async def initialize(self, seed_path: Path | None = None) -> None:
        for key, raw in await list_json(self._store, NAMESPACE):
            try:
                entry = KnowledgeEntry.model_validate(raw)
            except ValidationError as e:
                logger.warning("storage_corrupt", namespace=NAMESPACE, key=key, error=str(e))
                continue
            self._index(entry)
        if any(e.seed for e in self._entries.values()):
            self._seeded = True
        if seed_path is not None:
            await self.load_seed(seed_path)

    def _index(self, entry: KnowledgeEntry) -> None:
        key = _term_key(entry.term)
        self._entries[key] = entry
        self._tokens[key] = tokenize(entry.text())

    def _unindex(self, key: str) -> None:
        self._entries.pop(key, None)
        self._tokens.pop(key, None)

    async def load_seed(self, path: Path) -> int:
        """Load the seed file once. Later calls are no-ops."""
        if self._seeded:
            return 0
        if not path.exists():
            logger.warning("knowledge_seed_missing", path=str(path))
            return 0
        async with aiofiles.open(path, "rb") as f:
            raw = await f.read()
        try:
            data = orjson.loads(raw)
        except orjson.JSONDecodeError as e:
            logger.warning("knowledge_seed_invalid", path=str(path), error=str(e))
            return 0

        loaded = 0
        now = self._clock()
        for section, category in _SEED_SECTIONS.items():
            for item in data.get(section) or []:
                if not isinstance(item, dict) or not str(item.get("term") or "").strip():
                    continue
                payload = {k: v for k, v in item.items() if k != "term"}
                entry = KnowledgeEntry(
                    term=str(item["term"]).strip(),
                    category=category,
                    payload=payload,
                    confidence=SEED_CONFIDENCE,
                    learned_at=now,
                    seed=True,
                    source="seed",
                )
                if await self.put(entry):
                    loaded += 1
        self._seeded = True
        logger.info("knowledge_seed_loaded", path=str(path), entries=loaded)
        return loaded

    async def put(self, entry: KnowledgeEntry) -> bool:
        """Insert a new entry. Existing terms are never overwritten."""
        key = _term_key(entry.term)
        if not key:
            return False
        async with self._lock:
            if key in self._entries:
                return False
            self._index(entry)
            await save_json(self._store, NAMESPACE, key, entry.model_dump(mode="json"))
            await self._enforce_capacity()
        return True

    async def learn(
        self,
        term: str,
        category: Literal["vocabulary", "mathematics", "fact"],
        payload: dict[str, Any],
        source: str,
    ) -> KnowledgeEntry | None:
        entry = KnowledgeEntry(
            term=term.strip(),
            category=category,
            payload=payload,
            confidence=LEARNED_CONFIDENCE,
            learned_at=self._clock(),
            source=source,
        )
        if not await self.put(entry):
            return None
        logger.info("knowledge_learned", term=entry.term, category=category, source=source)
        return entry

    async def _enforce_capacity(self) -> None:
        overflow = len(self._entries) - self._capacity
        if overflow <= 0:
            return
        candidates = sorted(
            (e for e in self._entries.values() if not e.seed),
            key=lambda e: (e.confidence / max(e.access_count, 1), e.learned_at),
        )
        for entry in candidates[:overflow]:
            key = _term_key(entry.term)
            self._unindex(key)
            await delete_key(self._store, NAMESPACE, key)
            logger.info("knowledge_evicted", term=entry.term, access_count=entry.access_count)
        if len(self._entries) > self._capacity:
            logger.warning("knowledge_over_capacity", size=len(self._entries), capacity=self._capacity)

    def peek(self, term: str) -> KnowledgeEntry | None:
        return self._entries.get(_term_key(term))

    async def get(self, term: str) -> KnowledgeEntry | None:
        """Fetch by exact term and record the access."""
        key = _term_key(term)
        async with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                return None
            entry = entry.model_copy(update={"last_accessed": self._clock(), "access_count": entry.access_count + 1})
            self._entries[key] = entry
            await save_json(self._store, NAMESPACE, key, entry.model_dump(mode="json"))
        return entry

    def search_scored(self, query: str, limit: int | None = None) -> list[KnowledgeHit]:
        q_tokens = tokenize(query)
        if not q_tokens:
            return []
        hits: list[KnowledgeHit] = []
        for key, entry in list(self._entries.items()):
            score = relevance(q_tokens, self._tokens.get(key, []))
            if score > 0:
                hits.append(KnowledgeHit(entry=entry, score=score))
        hits.sort(key=lambda h: (h.score, h.entry.confidence, h.entry.learned_at), reverse=True)
        return hits[:limit] if limit else hits

    def search(self, query: str, limit: int | None = None) -> list[KnowledgeEntry]:
        return [h.entry for h in self.search_scored(query, limit=limit)]

    async def clear(self, include_seed: bool = False) -> int:
        async with self._lock:
            doomed = [k for k, e in self._entries.items() if include_seed or not e.seed]
            for key in doomed:
                self._unindex(key)
                await delete_key(self._store, NAMESPACE, key)
            if include_seed:
                self._seeded = False
        logger.info("knowledge_cleared", removed=len(doomed), include_seed=include_seed)
        return len(doomed)

    def __len__(self) -> int:
        return len(self._entries)

    def stats(self) -> dict[str, Any]:
        by_category: dict[str, int] = {}
        for e in self._entries.values():
            by_category[e.category] = by_category.get(e.category, 0) + 1
        seeds = sum(1 for e in self._entries.values() if e.seed)
        return {
            "entries": len(self._entries),
            "seed": seeds,
            "learned": len(self._entries) - seeds,
            "capacity": self._capacity,
            "by_category": by_category,
        }
