from __future__ import annotations

import os
from urllib.parse import quote

import httpx

from plugins.registry import LookupResult, lookup


SOURCE = "dictionaryapi.dev"


def _base_url() -> str:
    return os.getenv("ZAC_DICTIONARY_URL", "https://api.dictionaryapi.dev/api/v2/entries/en/").strip()


async def _fetch(url: str) -> httpx.Response:
    async with httpx.AsyncClient(timeout=httpx.Timeout(10.0)) as client:
        return await client.get(url)


@lookup(kind="dictionary", source=SOURCE, description="Look up an English word definition.")
async def define(term: str) -> LookupResult:
    word = (term or "").strip().lower()
    if not word:
        raise ValueError("dictionary lookup requires a term")

    r = await _fetch(f"{_base_url()}{quote(word)}")
    if r.status_code == 404:
        return LookupResult(found=False, source=SOURCE)
    r.raise_for_status()
    data = r.json()

    entry = data[0] if isinstance(data, list) and data else {}
    meanings = entry.get("meanings") or []
    for meaning in meanings:
        definitions = meaning.get("definitions") or []
        if not definitions:
            continue
        first = definitions[0]
        return LookupResult(
            found=True,
            source=SOURCE,
            payload={
                "word": entry.get("word") or word,
                "part_of_speech": meaning.get("partOfSpeech"),
                "definition": first.get("definition"),
                "example": first.get("example"),
                "synonyms": list(meaning.get("synonyms") or [])[:5],
                "phonetic": entry.get("phonetic"),
            },
        )
    return LookupResult(found=False, source=SOURCE)
