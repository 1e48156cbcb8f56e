from datetime import datetime, timedelta, timezone
from pathlib import Path
from unittest.mock import AsyncMock

import pytest

from core.brain import Brain
from core.config import AssistantConfig
from core.tool_router import LookupRouter
from memory.backends import InMemoryBackend
from memory.unifier import MemoryUnifier
from plugins.registry import LookupResult

SEED_PATH = Path(__file__).resolve().parents[1] / "memory" / "seed_knowledge.json"


class FakeClock:
    def __init__(self, start: datetime | None = None):
        self.now = start or datetime(2026, 1, 1, 12, 0, tzinfo=timezone.utc)

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> None:
        self.now += timedelta(**kwargs)


class FailingWriteBackend(InMemoryBackend):
    """Reads work, writes blow up."""

    async def set(self, namespace: str, key: str, value: bytes) -> None:
        raise OSError("disk full")


def not_found(source: str) -> AsyncMock:
    return AsyncMock(return_value=LookupResult(found=False, source=source))


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def backend() -> InMemoryBackend:
    return InMemoryBackend()


@pytest.fixture
async def memory(backend, clock) -> MemoryUnifier:
    mem = MemoryUnifier(backend, clock=clock)
    await mem.initialize()
    return mem


@pytest.fixture
async def seeded_memory(backend, clock) -> MemoryUnifier:
    mem = MemoryUnifier(backend, clock=clock, seed_path=SEED_PATH)
    await mem.initialize()
    return mem


@pytest.fixture
def lookup_fns() -> dict[str, AsyncMock]:
    return {
        "dictionary": not_found("dictionaryapi.dev"),
        "thesaurus": not_found("datamuse"),
        "encyclopedia": not_found("wikipedia"),
    }


@pytest.fixture
def config() -> AssistantConfig:
    return AssistantConfig()


@pytest.fixture
def brain(memory, lookup_fns, config, clock) -> Brain:
    return Brain(memory, lookups=LookupRouter(lookup_fns), config=config, session_id="s1", clock=clock)
