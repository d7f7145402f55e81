"""Tests for the document store backends (in-memory and JSON files)."""

import json

import pytest

from trustville.persistence import InMemoryPersistence, JsonPersistence, PostgresPersistence


@pytest.fixture(params=["memory", "json"])
def store(request, tmp_path):
    if request.param == "memory":
        return InMemoryPersistence()
    return JsonPersistence(tmp_path / "data")


@pytest.mark.asyncio
async def test_upsert_get_round_trip(store):
    await store.initialize()
    await store.upsert("agents", "w1", "0", {"name": "Ada", "trust_score": 50.0})

    assert await store.get("agents", "w1", "0") == {"name": "Ada", "trust_score": 50.0}
    assert await store.get("agents", "w1", "1") is None
    assert await store.get("agents", "w2", "0") is None

    await store.upsert("agents", "w1", "0", {"name": "Ada", "trust_score": 61.5})
    assert (await store.get("agents", "w1", "0"))["trust_score"] == 61.5
    await store.close()


@pytest.mark.asyncio
async def test_list_is_scoped(store):
    await store.initialize()
    await store.upsert("players", "w1", "0", {"id": "0"})
    await store.upsert("players", "w1", "1", {"id": "1"})
    await store.upsert("players", "w2", "0", {"id": "other"})

    listed = await store.list_documents("players", "w1")
    assert sorted(doc["id"] for doc in listed) == ["0", "1"]
    assert await store.list_documents("players", "nowhere") == []


@pytest.mark.asyncio
async def test_insert_never_replaces_an_existing_document(store):
    await store.initialize()
    assert await store.insert("inputs", "e1", "000000000000", {"name": "join"}) is True
    assert await store.insert("inputs", "e1", "000000000000", {"name": "leave"}) is False

    assert await store.get("inputs", "e1", "000000000000") == {"name": "join"}
    assert await store.insert("inputs", "e2", "000000000000", {"name": "leave"}) is True
    await store.close()


@pytest.mark.asyncio
async def test_delete_and_delete_scope(store):
    await store.initialize()
    await store.upsert("messages", "w1", "a", {"text": "hi"})
    await store.upsert("messages", "w1", "b", {"text": "yo"})
    await store.upsert("messages", "w2", "a", {"text": "keep"})

    assert await store.delete("messages", "w1", "a") is True
    assert await store.delete("messages", "w1", "a") is False

    assert await store.delete_scope("messages", "w1") == 1
    assert await store.list_documents("messages", "w1") == []
    assert await store.get("messages", "w2", "a") == {"text": "keep"}


@pytest.mark.asyncio
async def test_in_memory_documents_are_copied():
    store = InMemoryPersistence()
    document = {"participants": ["0", "1"]}
    await store.upsert("conversations", "w1", "2", document)

    document["participants"].append("9")
    loaded = await store.get("conversations", "w1", "2")
    assert loaded["participants"] == ["0", "1"]

    loaded["participants"].clear()
    assert (await store.get("conversations", "w1", "2"))["participants"] == ["0", "1"]


@pytest.mark.asyncio
async def test_json_layout_is_human_readable(tmp_path):
    store = JsonPersistence(tmp_path)
    await store.initialize()
    await store.upsert("memories", "w1:0", "abc", {"description": "hello"})

    path = tmp_path / "memories" / "w1_0" / "abc.json"
    assert path.exists()
    assert json.loads(path.read_text("utf-8")) == {"description": "hello"}


def test_postgres_connects_lazily():
    store = PostgresPersistence("postgresql://localhost/trustville_test")
    assert store.database_url == "postgresql://localhost/trustville_test"
    assert store.pool is None
