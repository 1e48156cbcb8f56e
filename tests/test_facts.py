from datetime import timedelta

import pytest

from memory.backends import GuardedStore
from memory.facts import FactBook, label_for
from memory.schemas import ExtractedFact
from tests.conftest import FailingWriteBackend


@pytest.fixture
def book(backend):
    return FactBook(GuardedStore(backend))


def _fact(key, value, importance=0.7, **kw):
    return ExtractedFact(key=key, value=value, importance=importance, **kw)


async def _seed(book):
    await book.upsert(
        "s1",
        [
            _fact("name", "Alex", 0.9),
            _fact("location", "Berlin"),
            _fact("pet_name_1", "Rex", 0.75),
            _fact("pet_name_2", "Max", 0.75),
        ],
    )


def test_labels():
    assert label_for("name") == "Name"
    assert label_for("pet_name_2") == "Pet"
    assert label_for("favorite_color") == "Favorite color"
    assert label_for("shoe_size") == "Shoe size"


async def test_upsert_is_idempotent_per_key(book, clock):
    first = _fact("name", "Alex", 0.9, timestamp=clock())
    second = _fact("name", "Alexander", 0.5, timestamp=clock() + timedelta(minutes=1))
    assert await book.upsert("s1", [first])
    assert await book.upsert("s1", [second])

    facts = await book.all("s1")
    assert len(facts) == 1
    assert facts[0].value == "Alexander"
    assert facts[0].importance == 0.9
    assert facts[0].timestamp == second.timestamp


async def test_all_sorts_by_importance(book):
    await _seed(book)
    assert [f.key for f in await book.all("s1")] == ["name", "pet_name_1", "pet_name_2", "location"]


async def test_sessions_are_isolated(book):
    await _seed(book)
    assert await book.all("s2") == []


async def test_forget_by_key_removes_all_numbered_values(book):
    await _seed(book)
    removed = await book.forget("s1", "pet name")
    assert sorted(f.key for f in removed) == ["pet_name_1", "pet_name_2"]
    assert [f.key for f in await book.all("s1")] == ["name", "location"]


async def test_forget_by_alias(book):
    await _seed(book)
    removed = await book.forget("s1", "where I live")
    assert [f.key for f in removed] == ["location"]


async def test_forget_by_value_then_containment(book):
    await _seed(book)
    assert [f.key for f in await book.forget("s1", "Berlin")] == ["location"]
    assert [f.key for f in await book.forget("s1", "ale")] == ["name"]
    assert await book.forget("s1", "Paris") == []


async def test_search_prefers_exact_key(book):
    await _seed(book)
    assert [f.key for f in await book.search("s1", "name")] == ["name"]
    assert [f.key for f in await book.search("s1", "berlin")] == ["location"]
    assert await book.search("s1", "") == []


async def test_summary(book):
    await _seed(book)
    text = await book.summary("s1")
    assert text.startswith("Here's what I know about you:")
    assert "Name: Alex" in text
    assert "Pet: Rex, Max" in text
    assert "Location: Berlin" in text
    assert await book.summary("empty") == ""


async def test_facts_persist_across_instances(backend):
    first = FactBook(GuardedStore(backend))
    await _seed(first)
    second = FactBook(GuardedStore(backend))
    assert (await second.get("s1", "name")).value == "Alex"


async def test_clear(book, backend):
    await _seed(book)
    assert await book.clear("s1") == 4
    assert await book.all("s1") == []
    assert await backend.get("facts", "s1") is None


async def test_corrupt_value_reads_as_empty(backend):
    await backend.set("facts", "s1", b"not json at all")
    book = FactBook(GuardedStore(backend))
    assert await book.all("s1") == []


async def test_failed_write_keeps_facts_in_process():
    book = FactBook(GuardedStore(FailingWriteBackend()))
    assert await book.upsert("s1", [_fact("name", "Alex", 0.9)]) is False
    assert (await book.get("s1", "name")).value == "Alex"


async def test_provisional_value_does_not_replace_a_declared_one(book):
    await book.upsert("s1", [_fact("name", "Alex", 0.9)])
    accepted, held = await book.admit("s1", [_fact("name", "Sam", 0.9, provisional=True), _fact("age", "30")])
    assert [f.key for f in accepted] == ["age"]
    assert [f.value for f in held] == ["Sam"]

    await book.upsert("s1", [_fact("name", "Sam", 0.9, provisional=True)])
    assert (await book.get("s1", "name")).value == "Alex"


async def test_declared_value_replaces_a_provisional_one(book):
    await book.upsert("s1", [_fact("name", "Sam", 0.9, provisional=True)])
    accepted, held = await book.admit("s1", [_fact("name", "Alex", 0.9)])
    assert held == []
    await book.upsert("s1", accepted)
    name = await book.get("s1", "name")
    assert name.value == "Alex"
    assert name.provisional is False
