from __future__ import annotations

from datetime import datetime, timezone
from typing import Any, Literal
from uuid import UUID, uuid4

from pydantic import BaseModel, Field


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class ExtractedFact(BaseModel):
    key: str
    value: str
    importance: float = Field(ge=0.0, le=1.0, default=0.5)
    source: Literal["conversation", "manual"] = "conversation"
    timestamp: datetime = Field(default_factory=utcnow)
    provisional: bool = False


class KnowledgeEntry(BaseModel):
    term: str
    category: Literal["vocabulary", "mathematics", "fact"]
    payload: dict[str, Any] = Field(default_factory=dict)
    confidence: float = Field(ge=0.0, le=1.0, default=0.8)
    learned_at: datetime = Field(default_factory=utcnow)
    seed: bool = False
    source: str = "local"
    last_accessed: datetime | None = None
    access_count: int = 0

    def text(self) -> str:
        """Searchable text: the term followed by every string in the payload."""
        parts = [self.term]
        for value in self.payload.values():
            if isinstance(value, str):
                parts.append(value)
            elif isinstance(value, (list, tuple)):
                parts.extend(str(v) for v in value)
        return " ".join(parts)


class MemoryRecord(BaseModel):
    id: UUID = Field(default_factory=uuid4)
    role: Literal["user", "assistant"]
    content: str
    timestamp: datetime = Field(default_factory=utcnow)
    session_id: str


class ConversationSession(BaseModel):
    id: str
    records: list[MemoryRecord] = Field(default_factory=list)
    importance: float = Field(ge=0.0, le=1.0, default=0.0)
    started_at: datetime = Field(default_factory=utcnow)
    last_activity: datetime = Field(default_factory=utcnow)


class KnowledgeHit(BaseModel):
    entry: KnowledgeEntry
    score: float
