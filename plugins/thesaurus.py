from __future__ import annotations

import os

import httpx

from plugins.registry import LookupResult, lookup


SOURCE = "datamuse"


async def _fetch(url: str, params: dict[str, str]) -> httpx.Response:
    async with httpx.AsyncClient(timeout=httpx.Timeout(10.0)) as client:
        return await client.get(url, params=params)


@lookup(kind="thesaurus", source=SOURCE, description="Find synonyms for a word using Datamuse.")
async def synonyms(term: str) -> LookupResult:
    word = (term or "").strip().lower()
    if not word:
        raise ValueError("thesaurus lookup requires a term")

    url = os.getenv("ZAC_THESAURUS_URL", "https://api.datamuse.com/words").strip()
    r = await _fetch(url, {"rel_syn": word, "max": "10"})
    r.raise_for_status()
    rows = r.json() or []

    words = [str(row.get("word")) for row in rows if isinstance(row, dict) and row.get("word")]
    if not words:
        return LookupResult(found=False, source=SOURCE)
    return LookupResult(found=True, source=SOURCE, payload={"word": word, "synonyms": words})
