from __future__ import annotations

import asyncio
from dataclasses import dataclass

from core.logging_setup import get_logger
from plugins.registry import (
    REGISTRY,
    AsyncLookupFn,
    LookupFailed,
    LookupRegistry,
    LookupResult,
    LookupTimeout,
    LookupUnavailable,
)


logger = get_logger(__name__)


@dataclass
class LookupCall:
    kind: str
    term: str


class LookupRouter:
    """Dispatch lookups by kind with a hard timeout per attempt."""

    def __init__(self, lookups: dict[str, AsyncLookupFn]):
        self._lookups = dict(lookups)

    @classmethod
    def from_registry(cls, registry: LookupRegistry = REGISTRY) -> "LookupRouter":
        return cls({kind: spec.fn for kind, spec in registry.get_lookups().items()})

    def list_kinds(self) -> list[str]:
        return sorted(self._lookups.keys())

    def supports(self, kind: str) -> bool:
        return kind in self._lookups

    async def execute(self, call: LookupCall, timeout_s: float = 5.0, retries: int = 0) -> LookupResult:
        if call.kind not in self._lookups:
            raise LookupUnavailable(f"Unknown lookup: {call.kind}")

        last_err: LookupFailed | None = None
        for attempt in range(retries + 1):
            try:
                return await asyncio.wait_for(self._lookups[call.kind](call.term), timeout=timeout_s)
            except asyncio.TimeoutError:
                last_err = LookupTimeout(f"{call.kind} lookup timed out after {timeout_s:.1f}s")
            except Exception as e:  # noqa: BLE001
                last_err = LookupUnavailable(f"{call.kind} lookup failed: {e}")
            logger.warning("lookup_failed", kind=call.kind, term=call.term, attempt=attempt, error=str(last_err))
            if attempt < retries:
                await asyncio.sleep(0.2 * (attempt + 1))

        raise last_err or LookupUnavailable(f"{call.kind} lookup failed")
