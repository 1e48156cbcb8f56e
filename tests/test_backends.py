import asyncio

import pytest

from memory.backends import (
    DiskCacheBackend,
    GuardedStore,
    InMemoryBackend,
    JsonFileBackend,
    SQLiteBackend,
    StorageCorrupt,
    StorageUnavailable,
    build_backend,
)
from memory.backends.base import decode, list_json, load_json, save_json


@pytest.fixture(params=["memory", "json", "diskcache", "sqlite"])
async def kv(request, tmp_path):
    store = build_backend(request.param, tmp_path)
    await store.initialize()
    yield store
    await store.close()


async def test_set_get_delete(kv):
    assert await kv.get("facts", "s1") is None
    await kv.set("facts", "s1", b'{"a": 1}')
    assert await kv.get("facts", "s1") == b'{"a": 1}'

    await kv.set("facts", "s1", b'{"a": 2}')
    assert await kv.get("facts", "s1") == b'{"a": 2}'

    assert await kv.delete("facts", "s1") is True
    assert await kv.delete("facts", "s1") is False
    assert await kv.get("facts", "s1") is None


async def test_namespaces_are_isolated(kv):
    await kv.set("memory:a", "session", b"1")
    await kv.set("memory:b", "session", b"2")
    await kv.set("knowledge", "pi", b"3")
    await kv.set("knowledge", "dna", b"4")

    assert await kv.list_namespace("knowledge") == [("dna", b"4"), ("pi", b"3")]
    assert await kv.list_namespace("memory:a") == [("session", b"1")]
    assert await kv.list_namespace("nothing") == []


def test_build_backend_kinds(tmp_path):
    assert isinstance(build_backend("memory", tmp_path), InMemoryBackend)
    assert isinstance(build_backend("JSON", tmp_path), JsonFileBackend)
    assert isinstance(build_backend("diskcache", tmp_path), DiskCacheBackend)
    assert isinstance(build_backend("sqlite", tmp_path), SQLiteBackend)
    with pytest.raises(ValueError):
        build_backend("redis", tmp_path)


async def test_json_backend_survives_corrupt_file(tmp_path):
    store = JsonFileBackend(tmp_path)
    await store.set("facts", "s1", b"{}")
    (tmp_path / "facts.json").write_text("{broken", encoding="utf-8")

    assert await store.get("facts", "s1") is None
    assert (tmp_path / "facts.corrupt").exists()

    await store.set("facts", "s1", b"[]")
    assert await store.get("facts", "s1") == b"[]"


async def test_json_backend_removes_empty_files(tmp_path):
    store = JsonFileBackend(tmp_path)
    await store.set("facts", "s1", b"{}")
    await store.delete("facts", "s1")
    assert not (tmp_path / "facts.json").exists()


class SlowBackend(InMemoryBackend):
    async def get(self, namespace, key):
        await asyncio.sleep(1)
        return None


async def test_guarded_store_turns_timeouts_into_unavailable():
    guarded = GuardedStore(SlowBackend(), timeout_s=0.01)
    with pytest.raises(StorageUnavailable):
        await guarded.get("facts", "s1")
    assert await load_json(guarded, "facts", "s1") is None


class BrokenBackend(InMemoryBackend):
    async def list_namespace(self, namespace):
        raise OSError("gone")

    async def set(self, namespace, key, value):
        raise OSError("gone")


async def test_guarded_store_turns_errors_into_unavailable():
    guarded = GuardedStore(BrokenBackend())
    with pytest.raises(StorageUnavailable):
        await guarded.set("facts", "s1", b"{}")
    assert await save_json(guarded, "facts", "s1", {}) is False
    assert await list_json(guarded, "facts") == []


def test_decode_raises_corrupt():
    with pytest.raises(StorageCorrupt):
        decode(b"{nope")
    assert decode(b'{"ok": true}') == {"ok": True}


async def test_list_json_skips_corrupt_values():
    store = InMemoryBackend()
    await store.set("knowledge", "good", b'{"term": "pi"}')
    await store.set("knowledge", "bad", b"{")
    assert await list_json(GuardedStore(store), "knowledge") == [("good", {"term": "pi"})]
