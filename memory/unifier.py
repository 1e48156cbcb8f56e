from __future__ import annotations

import asyncio
from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path
from typing import Any, Callable

from core.config import AssistantConfig
from core.logging_setup import get_logger
from memory.backends import GuardedStore, KeyValueStore, build_backend
from memory.conversation import ConversationMemory
from memory.facts import FactBook
from memory.knowledge import KnowledgeStore
from memory.schemas import ExtractedFact, MemoryRecord, utcnow


logger = get_logger(__name__)


@dataclass
class RecallResult:
    keyword: str
    facts: list[ExtractedFact] = field(default_factory=list)
    records: list[MemoryRecord] = field(default_factory=list)
    summary: str = ""

    @property
    def found(self) -> bool:
        return bool(self.summary) and bool(self.facts or self.records)


class MemoryUnifier:
    """Single owner of the persistence port and the three stores built on it."""

    def __init__(
        self,
        backend: KeyValueStore,
        *,
        storage_timeout_s: float = 5.0,
        knowledge_capacity: int = 2000,
        max_records_per_session: int = 100,
        retention_window_s: float = 3000.0,
        eviction_threshold: float = 0.3,
        seed_path: Path | None = None,
        clock: Callable[[], datetime] = utcnow,
    ):
        self._backend = backend
        self._store = GuardedStore(backend, timeout_s=storage_timeout_s)
        self._seed_path = seed_path
        self.facts = FactBook(self._store)
        self.knowledge = KnowledgeStore(self._store, capacity=knowledge_capacity, clock=clock)
        self.conversation = ConversationMemory(
            self._store,
            max_records=max_records_per_session,
            retention_window_s=retention_window_s,
            eviction_threshold=eviction_threshold,
            clock=clock,
        )
        self._init_lock = asyncio.Lock()
        self._initialized = False

    @classmethod
    def from_config(cls, cfg: AssistantConfig) -> "MemoryUnifier":
        return cls(
            build_backend(cfg.storage_backend, cfg.memory_dir),
            storage_timeout_s=cfg.storage_timeout_s,
            knowledge_capacity=cfg.knowledge_capacity,
            max_records_per_session=cfg.max_records_per_session,
            retention_window_s=cfg.retention_window_s,
            eviction_threshold=cfg.eviction_importance_threshold,
            seed_path=cfg.seed_path,
        )

    @property
    def backend_name(self) -> str:
        return self._store.name

    async def initialize(self) -> None:
        if self._initialized:
            return
        async with self._init_lock:
            if self._initialized:
                return
            await self._store.initialize()
            logger.info("storage_backend_initialized", backend=self._store.name)
            await self.knowledge.initialize(self._seed_path)
            await self.conversation.initialize()
            self._initialized = True

    async def recall(self, session_id: str, keyword: str) -> RecallResult:
        """Facts and past turns mentioning the keyword, with a readable summary."""
        await self.initialize()
        result = RecallResult(keyword=keyword)
        result.facts = await self.facts.search(session_id, keyword)
        result.records = self.conversation.recall(session_id, keyword)

        lines: list[str] = []
        if result.facts:
            lines.append(await self.facts.summary(session_id, result.facts))
        user_lines = [r.content for r in result.records if r.role == "user"]
        said = [r.content for r in result.records if r.role == "assistant"]
        if user_lines:
            lines.append(f'I also remember you saying: "{user_lines[0]}"')
        elif said:
            lines.append(f'I remember telling you: "{said[0]}"')
        result.summary = " ".join(lines)
        return result

    async def clear_session(self, session_id: str) -> dict[str, int]:
        await self.initialize()
        facts = await self.facts.clear(session_id)
        records = await self.conversation.clear_session(session_id)
        logger.info("session_cleared", session_id=session_id, facts=facts, records=records)
        return {"facts": facts, "records": records}

    def status(self, session_id: str | None = None) -> dict[str, Any]:
        """Lock-free snapshot for diagnostics views."""
        snapshot: dict[str, Any] = {
            "backend": self._store.name,
            "initialized": self._initialized,
            "knowledge": self.knowledge.stats(),
            "conversation": self.conversation.stats(),
        }
        if session_id is not None:
            snapshot["session"] = self.conversation.summarize(session_id)
        return snapshot

    async def close(self) -> None:
        await self._store.close()
