from __future__ import annotations

import os
from typing import Any

from fastapi import FastAPI, HTTPException, Query
from fastapi.middleware.cors import CORSMiddleware
from pydantic import BaseModel, Field

from core.brain import Brain
from core.config import AssistantConfig, load_config
from core.logging_setup import get_logger, setup_logging
from core.tool_router import LookupRouter
from memory.unifier import MemoryUnifier
from plugins.registry import REGISTRY


logger = get_logger(__name__)


class ChatRequest(BaseModel):
    message: str = Field(min_length=1)
    session_id: str | None = None


class ChatResponse(BaseModel):
    session_id: str
    content: str
    confidence: float
    reasoning: list[str] = Field(default_factory=list)
    intent: str | None = None
    degraded: bool = False


class FactOut(BaseModel):
    key: str
    value: str
    importance: float
    source: str
    timestamp: str


app = FastAPI(title="Zac Assistant", version="0.1.0")


def _parse_allowed_origins() -> list[str]:
    raw = os.getenv("ZAC_ALLOWED_ORIGINS", "").strip()
    if not raw:
        return ["http://localhost:5173", "http://127.0.0.1:5173", "http://localhost:3000"]
    parts = [p.strip() for p in raw.split(",") if p.strip()]
    return parts or ["http://localhost:3000"]


app.add_middleware(
    CORSMiddleware,
    allow_origins=_parse_allowed_origins(),
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


class _State:
    config: AssistantConfig | None = None
    memory: MemoryUnifier | None = None
    brain: Brain | None = None


STATE = _State()


def _require_brain() -> Brain:
    if STATE.brain is None:
        raise HTTPException(status_code=503, detail="Not ready")
    return STATE.brain


def _require_memory() -> MemoryUnifier:
    if STATE.memory is None:
        raise HTTPException(status_code=503, detail="Memory not initialized")
    return STATE.memory


@app.on_event("startup")
async def _startup() -> None:
    cfg = load_config()
    setup_logging(cfg.log_level)
    STATE.config = cfg

    memory = MemoryUnifier.from_config(cfg)
    await memory.initialize()

    from plugins import init as _plugins_init  # noqa: F401

    lookups = LookupRouter.from_registry(REGISTRY)
    logger.info("lookups_registered", lookups=lookups.list_kinds())

    brain = Brain(memory=memory, lookups=lookups, config=cfg)
    brain.start()

    STATE.memory = memory
    STATE.brain = brain
    logger.info("startup_complete", version=cfg.version, backend=memory.backend_name)


@app.on_event("shutdown")
async def _shutdown() -> None:
    if STATE.brain is not None:
        await STATE.brain.stop()
    if STATE.memory is not None:
        await STATE.memory.close()


@app.get("/health")
async def health() -> dict:
    cfg = STATE.config
    if cfg is None or STATE.brain is None:
        raise HTTPException(status_code=503, detail="Not ready")
    return {"version": cfg.version, "backend": cfg.storage_backend, "session_id": STATE.brain.session_id}


@app.post("/chat", response_model=ChatResponse)
async def chat(req: ChatRequest) -> ChatResponse:
    brain = _require_brain()
    try:
        result = await brain.chat(req.message, session_id=req.session_id)
    except Exception as e:  # noqa: BLE001
        logger.error("chat_failed", error=str(e))
        raise HTTPException(status_code=500, detail="chat_failed") from e
    return ChatResponse(
        session_id=result.session_id,
        content=result.content,
        confidence=result.confidence,
        reasoning=result.reasoning,
        intent=result.intent,
        degraded=result.degraded,
    )


@app.get("/status")
async def status() -> dict[str, Any]:
    return _require_brain().status()


@app.get("/memory/facts", response_model=list[FactOut])
async def list_facts(session_id: str | None = Query(None)) -> list[FactOut]:
    brain = _require_brain()
    memory = _require_memory()
    facts = await memory.facts.all(session_id or brain.session_id)
    return [FactOut(**f.model_dump(mode="json")) for f in facts]


@app.delete("/memory/facts/{term}")
async def forget_fact(term: str, session_id: str | None = Query(None)) -> dict[str, Any]:
    brain = _require_brain()
    memory = _require_memory()
    removed = await memory.facts.forget(session_id or brain.session_id, term)
    if not removed:
        raise HTTPException(status_code=404, detail=f"No fact matches: {term}")
    return {"removed": [f.key for f in removed]}


@app.get("/memory/recall")
async def recall(q: str = Query(..., min_length=1), session_id: str | None = Query(None)) -> dict[str, Any]:
    brain = _require_brain()
    memory = _require_memory()
    result = await memory.recall(session_id or brain.session_id, q)
    return {
        "keyword": result.keyword,
        "summary": result.summary,
        "facts": [f.model_dump(mode="json") for f in result.facts],
        "records": [r.model_dump(mode="json") for r in result.records],
    }


@app.post("/memory/clear")
async def clear_memory() -> dict[str, int]:
    return await _require_brain().clear_session()


@app.get("/knowledge/search")
async def knowledge_search(q: str = Query(..., min_length=1), limit: int = Query(10, ge=1, le=100)) -> list[dict[str, Any]]:
    memory = _require_memory()
    return [
        {"term": h.entry.term, "category": h.entry.category, "score": round(h.score, 3), "confidence": h.entry.confidence}
        for h in memory.knowledge.search_scored(q, limit=limit)
    ]
