from __future__ import annotations

import re

from pydantic import ValidationError

from core.logging_setup import get_logger
from memory.backends.base import KeyValueStore, delete_key, load_json, save_json
from memory.schemas import ExtractedFact


logger = get_logger(__name__)

NAMESPACE = "facts"

_LABELS = {
    "name": "Name",
    "age": "Age",
    "location": "Location",
    "job": "Job",
    "employer": "Works at",
    "pets": "Pets",
    "pet_name": "Pet",
    "spouse": "Partner",
    "mother": "Mother",
    "father": "Father",
    "birthday": "Birthday",
    "likes": "Likes",
}

# Extra words a user might use when asking to forget a fact.
_ALIASES = {
    "location": {"city", "home", "where i live", "address", "hometown"},
    "job": {"work", "occupation", "profession"},
    "employer": {"company", "workplace"},
    "pets": {"pet", "animals"},
    "pet_name": {"pet", "pet names", "pets name", "dog", "cat"},
    "spouse": {"wife", "husband", "partner"},
    "mother": {"mom", "mum"},
    "father": {"dad"},
    "birthday": {"birth date", "date of birth"},
    "likes": {"interests", "hobbies"},
}


def _base_key(key: str) -> str:
    return re.sub(r"_\d+$", "", key)


def label_for(key: str) -> str:
    base = _base_key(key)
    if base in _LABELS:
        return _LABELS[base]
    if base.startswith("favorite_"):
        return f"Favorite {base[len('favorite_'):]}"
    return base.replace("_", " ").capitalize()


def _norm(term: str) -> str:
    t = re.sub(r"\s+", " ", (term or "").lower()).strip(" \t\"'.,!?;:")
    return re.sub(r"^(?:my|the|about)\s+", "", t)


class FactBook:
    """Per-session personal facts, one live value per key.

    Values live in memory and are mirrored to the `facts` namespace keyed by
    session id. A failed write leaves the in-process copy authoritative.
    """

    def __init__(self, store: KeyValueStore):
        self._store = store
        self._sessions: dict[str, dict[str, ExtractedFact]] = {}

    async def _facts(self, session_id: str) -> dict[str, ExtractedFact]:
        cached = self._sessions.get(session_id)
        if cached is not None:
            return cached
        raw = await load_json(self._store, NAMESPACE, session_id)
        facts: dict[str, ExtractedFact] = {}
        if isinstance(raw, dict):
            for key, value in raw.items():
                try:
                    facts[key] = ExtractedFact.model_validate(value)
                except ValidationError as e:
                    logger.warning("storage_corrupt", namespace=NAMESPACE, key=f"{session_id}/{key}", error=str(e))
        self._sessions[session_id] = facts
        return facts

    async def _persist(self, session_id: str) -> bool:
        facts = self._sessions.get(session_id, {})
        if not facts:
            return await delete_key(self._store, NAMESPACE, session_id)
        payload = {k: f.model_dump(mode="json") for k, f in facts.items()}
        return await save_json(self._store, NAMESPACE, session_id, payload)

    async def admit(
        self, session_id: str, new_facts: list[ExtractedFact]
    ) -> tuple[list[ExtractedFact], list[ExtractedFact]]:
        """Split facts into those upsert would store and provisional ones held back by a firm value."""
        facts = await self._facts(session_id)
        accepted: list[ExtractedFact] = []
        held: list[ExtractedFact] = []
        for fact in new_facts:
            prev = facts.get(fact.key)
            if fact.provisional and prev is not None and not prev.provisional and prev.value != fact.value:
                held.append(fact)
            else:
                accepted.append(fact)
        return accepted, held

    async def upsert(self, session_id: str, new_facts: list[ExtractedFact]) -> bool:
        """Merge facts into the session. Returns False if the write was not durable."""
        if not new_facts:
            return True
        facts = await self._facts(session_id)
        for fact in new_facts:
            prev = facts.get(fact.key)
            if prev is not None and fact.provisional and not prev.provisional:
                logger.info("fact_held_back", session_id=session_id, key=fact.key)
                continue
            if prev is not None:
                fact = fact.model_copy(update={"importance": max(prev.importance, fact.importance)})
            facts[fact.key] = fact
            logger.info("fact_persisted", session_id=session_id, key=fact.key, importance=fact.importance)
        return await self._persist(session_id)

    async def get(self, session_id: str, key: str) -> ExtractedFact | None:
        return (await self._facts(session_id)).get(key)

    async def all(self, session_id: str) -> list[ExtractedFact]:
        facts = await self._facts(session_id)
        return sorted(facts.values(), key=lambda f: (-f.importance, f.key))

    async def search(self, session_id: str, keyword: str) -> list[ExtractedFact]:
        kw = _norm(keyword)
        if not kw:
            return []
        kw_key = kw.replace(" ", "_")
        facts = await self.all(session_id)
        exact = [f for f in facts if _base_key(f.key) == kw_key or kw in _ALIASES.get(_base_key(f.key), ())]
        if exact:
            return exact
        return [f for f in facts if kw in f.value.lower() or kw_key in f.key or kw in label_for(f.key).lower()]

    async def forget(self, session_id: str, term: str) -> list[ExtractedFact]:
        """Remove facts matching the term, trying the strictest match first.

        Tiers: key or alias, then exact value, then containment either way.
        Only the first tier that matches anything is removed.
        """
        facts = await self._facts(session_id)
        t = _norm(term)
        if not t or not facts:
            return []
        t_key = t.replace(" ", "_")

        def by_key(key: str, fact: ExtractedFact) -> bool:
            base = _base_key(key)
            return key == t_key or base == t_key or t in _ALIASES.get(base, ())

        def by_value(key: str, fact: ExtractedFact) -> bool:
            return fact.value.lower() == t

        def by_containment(key: str, fact: ExtractedFact) -> bool:
            v = fact.value.lower()
            return t in v or (len(v) >= 3 and v in t) or t_key in key

        for tier in (by_key, by_value, by_containment):
            hits = [k for k, f in facts.items() if tier(k, f)]
            if hits:
                removed = [facts.pop(k) for k in hits]
                await self._persist(session_id)
                logger.info("facts_forgotten", session_id=session_id, keys=hits, tier=tier.__name__)
                return removed
        return []

    async def clear(self, session_id: str) -> int:
        facts = await self._facts(session_id)
        n = len(facts)
        facts.clear()
        await self._persist(session_id)
        return n

    def drop_cached(self, session_id: str) -> None:
        self._sessions.pop(session_id, None)

    async def summary(self, session_id: str, facts: list[ExtractedFact] | None = None) -> str:
        facts = facts if facts is not None else await self.all(session_id)
        if not facts:
            return ""
        grouped: dict[str, list[str]] = {}
        for f in facts:
            grouped.setdefault(label_for(f.key), []).append(f.value)
        parts = [f"{label}: {', '.join(values)}" for label, values in grouped.items()]
        return "Here's what I know about you: " + "; ".join(parts) + "."
