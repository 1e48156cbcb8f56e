from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path

from dotenv import load_dotenv


@dataclass(frozen=True)
class AssistantConfig:
    version: str = "0.1.0"
    host: str = "127.0.0.1"
    port: int = 8008
    log_level: str = "INFO"

    # Conversational memory
    retention_window_ms: int = 3_000_000
    eviction_importance_threshold: float = 0.3
    max_records_per_session: int = 100
    eviction_interval_s: float = 30.0

    # Routing
    immediate_response_enabled: bool = True
    immediate_response_importance_floor: float = 0.7

    # Knowledge + lookups
    lookup_timeout_ms: int = 5000
    knowledge_capacity: int = 2000
    seed_path: Path | None = None

    # Persistence
    storage_backend: str = "json"
    storage_timeout_ms: int = 5000
    memory_dir: Path = Path("memory_data")

    @property
    def lookup_timeout_s(self) -> float:
        return self.lookup_timeout_ms / 1000.0

    @property
    def storage_timeout_s(self) -> float:
        return self.storage_timeout_ms / 1000.0

    @property
    def retention_window_s(self) -> float:
        return self.retention_window_ms / 1000.0


def _env_bool(name: str, default: bool) -> bool:
    raw = os.getenv(name, "").strip().lower()
    if not raw:
        return default
    return raw in {"1", "true", "yes", "on"}


def load_config(repo_root: Path | None = None) -> AssistantConfig:
    root = (repo_root or Path(__file__).resolve().parents[1]).resolve()

    load_dotenv(dotenv_path=root / ".env", override=False)

    memory_dir_env = os.getenv("ZAC_MEMORY_DIR", "memory_data")
    memory_dir = (root / memory_dir_env).resolve()

    seed_env = os.getenv("ZAC_SEED_PATH", "").strip()
    seed_path = Path(seed_env).expanduser().resolve() if seed_env else (root / "memory" / "seed_knowledge.json")

    return AssistantConfig(
        version=os.getenv("ZAC_VERSION", "0.1.0").strip() or "0.1.0",
        host=os.getenv("ZAC_HOST", "127.0.0.1"),
        port=int(os.getenv("ZAC_PORT", "8008")),
        log_level=os.getenv("ZAC_LOG_LEVEL", "INFO").upper(),
        retention_window_ms=int(os.getenv("ZAC_RETENTION_WINDOW_MS", "3000000")),
        eviction_importance_threshold=float(os.getenv("ZAC_EVICTION_IMPORTANCE_THRESHOLD", "0.3")),
        max_records_per_session=int(os.getenv("ZAC_MAX_RECORDS_PER_SESSION", "100")),
        eviction_interval_s=float(os.getenv("ZAC_EVICTION_INTERVAL_S", "30")),
        immediate_response_enabled=_env_bool("ZAC_IMMEDIATE_RESPONSE", True),
        immediate_response_importance_floor=float(os.getenv("ZAC_IMMEDIATE_RESPONSE_FLOOR", "0.7")),
        lookup_timeout_ms=int(os.getenv("ZAC_LOOKUP_TIMEOUT_MS", "5000")),
        knowledge_capacity=int(os.getenv("ZAC_KNOWLEDGE_CAPACITY", "2000")),
        seed_path=seed_path,
        storage_backend=os.getenv("ZAC_STORAGE_BACKEND", "json").strip().lower() or "json",
        storage_timeout_ms=int(os.getenv("ZAC_STORAGE_TIMEOUT_MS", "5000")),
        memory_dir=memory_dir,
    )
