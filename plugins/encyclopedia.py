from __future__ import annotations

import os
import re
from urllib.parse import quote

import httpx

from plugins.registry import LookupResult, lookup


SOURCE = "wikipedia"

_SENTENCE_END = re.compile(r"(?<=[.!?])\s+")


def _first_sentence(text: str) -> str:
    text = (text or "").strip()
    return _SENTENCE_END.split(text, maxsplit=1)[0] if text else ""


async def _fetch(url: str) -> httpx.Response:
    headers = {"User-Agent": "zac-assistant/0.1", "Accept": "application/json"}
    async with httpx.AsyncClient(timeout=httpx.Timeout(10.0), follow_redirects=True) as client:
        return await client.get(url, headers=headers)


@lookup(kind="encyclopedia", source=SOURCE, description="Summarise a topic from Wikipedia.")
async def summary(term: str) -> LookupResult:
    topic = (term or "").strip()
    if not topic:
        raise ValueError("encyclopedia lookup requires a term")

    base = os.getenv("ZAC_ENCYCLOPEDIA_URL", "https://en.wikipedia.org/api/rest_v1/page/summary/").strip()
    r = await _fetch(f"{base}{quote(topic.replace(' ', '_'))}")
    if r.status_code == 404:
        return LookupResult(found=False, source=SOURCE)
    r.raise_for_status()
    data = r.json()

    extract = str(data.get("extract") or "").strip()
    if data.get("type") == "disambiguation" or not extract:
        return LookupResult(found=False, source=SOURCE)

    page = ((data.get("content_urls") or {}).get("desktop") or {}).get("page")
    return LookupResult(
        found=True,
        source=SOURCE,
        payload={
            "title": data.get("title") or topic,
            "summary": _first_sentence(extract),
            "extract": extract,
            "url": page,
        },
    )
