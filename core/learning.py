from __future__ import annotations

from core.logging_setup import get_logger
from core.tool_router import LookupCall, LookupRouter
from memory.knowledge import KnowledgeStore
from memory.schemas import KnowledgeEntry
from plugins.registry import LookupFailed


logger = get_logger(__name__)

_CATEGORY_BY_KIND = {
    "dictionary": "vocabulary",
    "thesaurus": "vocabulary",
    "encyclopedia": "fact",
}


class KnowledgeLearner:
    """Populates the knowledge store from external lookups."""

    def __init__(self, knowledge: KnowledgeStore, router: LookupRouter, timeout_s: float = 5.0):
        self._knowledge = knowledge
        self._router = router
        self._timeout_s = timeout_s

    async def learn(self, term: str, kinds: tuple[str, ...]) -> KnowledgeEntry | None:
        """Try each lookup kind in order and store the first hit.

        Returns None when every reachable source answered "not found". Raises
        the first LookupFailed when no source could be reached at all.
        """
        failures: list[LookupFailed] = []
        attempted = 0
        for kind in kinds:
            if not self._router.supports(kind):
                continue
            attempted += 1
            try:
                result = await self._router.execute(LookupCall(kind=kind, term=term), timeout_s=self._timeout_s)
            except LookupFailed as e:
                failures.append(e)
                continue
            if not result.found:
                logger.info("lookup_not_found", kind=kind, term=term, source=result.source)
                continue
            entry = await self._knowledge.learn(term, _CATEGORY_BY_KIND.get(kind, "fact"), result.payload, result.source)
            return entry or self._knowledge.peek(term)

        if attempted and len(failures) == attempted:
            raise failures[0]
        return None
