import asyncio
from unittest.mock import AsyncMock, MagicMock, patch

import pytest

from core.learning import KnowledgeLearner
from core.tool_router import LookupCall, LookupRouter
from plugins import dictionary, encyclopedia, thesaurus
from plugins.registry import REGISTRY, LookupRegistry, LookupResult, LookupSpec, LookupTimeout, LookupUnavailable


def _response(status_code=200, payload=None):
    resp = MagicMock()
    resp.status_code = status_code
    resp.json.return_value = payload
    return resp


def test_plugins_register_their_kinds():
    from plugins import init  # noqa: F401

    kinds = REGISTRY.get_lookups()
    assert {"dictionary", "thesaurus", "encyclopedia"} <= set(kinds)
    assert kinds["dictionary"].source == dictionary.SOURCE


def test_registry_rejects_duplicates():
    registry = LookupRegistry()
    spec = LookupSpec(kind="dictionary", source="x", description="x", fn=AsyncMock())
    registry.register_sync(spec)
    with pytest.raises(RuntimeError):
        registry.register_sync(spec)


async def test_dictionary_found():
    payload = [
        {
            "word": "serendipity",
            "phonetic": "/ˌsɛɹənˈdɪpɪti/",
            "meanings": [
                {
                    "partOfSpeech": "noun",
                    "synonyms": ["luck", "fortune"],
                    "definitions": [{"definition": "A happy accident.", "example": "Pure serendipity."}],
                }
            ],
        }
    ]
    with patch("plugins.dictionary._fetch", AsyncMock(return_value=_response(200, payload))) as fetch:
        result = await dictionary.define("Serendipity")

    assert result.found
    assert result.source == "dictionaryapi.dev"
    assert result.payload["definition"] == "A happy accident."
    assert result.payload["part_of_speech"] == "noun"
    assert result.payload["synonyms"] == ["luck", "fortune"]
    assert fetch.await_args.args[0].endswith("/serendipity")


async def test_dictionary_not_found():
    with patch("plugins.dictionary._fetch", AsyncMock(return_value=_response(404))):
        result = await dictionary.define("qwzx")
    assert not result.found


async def test_dictionary_requires_term():
    with pytest.raises(ValueError):
        await dictionary.define("  ")


async def test_encyclopedia_summary_uses_first_sentence():
    payload = {
        "type": "standard",
        "title": "Black hole",
        "extract": "A black hole is a region of spacetime. Nothing escapes it.",
        "content_urls": {"desktop": {"page": "https://en.wikipedia.org/wiki/Black_hole"}},
    }
    with patch("plugins.encyclopedia._fetch", AsyncMock(return_value=_response(200, payload))) as fetch:
        result = await encyclopedia.summary("black hole")

    assert result.found
    assert result.payload["summary"] == "A black hole is a region of spacetime."
    assert result.payload["url"].endswith("Black_hole")
    assert fetch.await_args.args[0].endswith("/black_hole")


async def test_encyclopedia_disambiguation_is_not_found():
    payload = {"type": "disambiguation", "title": "Mercury", "extract": "Mercury may refer to:"}
    with patch("plugins.encyclopedia._fetch", AsyncMock(return_value=_response(200, payload))):
        result = await encyclopedia.summary("mercury")
    assert not result.found


async def test_thesaurus():
    rows = [{"word": "happy", "score": 10}, {"word": "glad"}, {"score": 1}]
    with patch("plugins.thesaurus._fetch", AsyncMock(return_value=_response(200, rows))) as fetch:
        result = await thesaurus.synonyms("Joyful")
    assert result.payload == {"word": "joyful", "synonyms": ["happy", "glad"]}
    assert fetch.await_args.args[1]["rel_syn"] == "joyful"

    with patch("plugins.thesaurus._fetch", AsyncMock(return_value=_response(200, []))):
        assert not (await thesaurus.synonyms("zzz")).found


async def test_router_executes_lookup():
    fn = AsyncMock(return_value=LookupResult(found=True, source="stub", payload={"definition": "x"}))
    router = LookupRouter({"dictionary": fn})
    result = await router.execute(LookupCall(kind="dictionary", term="word"))
    assert result.found
    fn.assert_awaited_once_with("word")
    assert router.list_kinds() == ["dictionary"]


async def test_router_unknown_kind():
    with pytest.raises(LookupUnavailable):
        await LookupRouter({}).execute(LookupCall(kind="dictionary", term="word"))


async def test_router_timeout():
    async def slow(term):
        await asyncio.sleep(1)

    router = LookupRouter({"dictionary": slow})
    with pytest.raises(LookupTimeout):
        await router.execute(LookupCall(kind="dictionary", term="word"), timeout_s=0.01)


async def test_router_wraps_errors_and_retries():
    fn = AsyncMock(side_effect=RuntimeError("502"))
    router = LookupRouter({"dictionary": fn})
    with pytest.raises(LookupUnavailable):
        await router.execute(LookupCall(kind="dictionary", term="word"), retries=1)
    assert fn.await_count == 2


async def test_learner_stores_first_hit(memory):
    fns = {
        "dictionary": AsyncMock(return_value=LookupResult(found=False, source="dictionaryapi.dev")),
        "encyclopedia": AsyncMock(
            return_value=LookupResult(found=True, source="wikipedia", payload={"title": "Rust", "summary": "A language."})
        ),
    }
    learner = KnowledgeLearner(memory.knowledge, LookupRouter(fns))
    entry = await learner.learn("rust", ("dictionary", "encyclopedia"))

    assert entry.category == "fact"
    assert entry.source == "wikipedia"
    assert entry.confidence == 0.8
    assert memory.knowledge.peek("rust") is not None


async def test_learner_returns_none_when_nobody_knows(memory, lookup_fns):
    learner = KnowledgeLearner(memory.knowledge, LookupRouter(lookup_fns))
    assert await learner.learn("qwzx", ("dictionary", "encyclopedia")) is None
    assert len(memory.knowledge) == 0


async def test_learner_raises_when_every_source_fails(memory):
    fns = {"dictionary": AsyncMock(side_effect=RuntimeError("down"))}
    learner = KnowledgeLearner(memory.knowledge, LookupRouter(fns))
    with pytest.raises(LookupUnavailable):
        await learner.learn("word", ("dictionary", "encyclopedia"))


async def test_learner_tolerates_partial_failure(memory):
    fns = {
        "dictionary": AsyncMock(side_effect=RuntimeError("down")),
        "encyclopedia": AsyncMock(return_value=LookupResult(found=False, source="wikipedia")),
    }
    learner = KnowledgeLearner(memory.knowledge, LookupRouter(fns))
    assert await learner.learn("word", ("dictionary", "encyclopedia")) is None
