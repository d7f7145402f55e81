"""Tests for the durable input queue."""

import pytest

from trustville.inputs import InputQueue
from trustville.persistence import InMemoryPersistence
from trustville.schemas import InputResult


@pytest.mark.asyncio
async def test_numbers_start_at_zero_and_increase():
    queue = InputQueue(InMemoryPersistence())

    records = [await queue.append("e1", "join", {"name": str(i)}, received_at=float(i)) for i in range(3)]
    assert [record.number for record in records] == [0, 1, 2]

    other = await queue.append("e2", "join", {}, received_at=0.0)
    assert other.number == 0


@pytest.mark.asyncio
async def test_numbering_survives_a_new_queue_instance():
    store = InMemoryPersistence()
    await InputQueue(store).append("e1", "stop")
    await InputQueue(store).append("e1", "start")

    record = await InputQueue(store).append("e1", "stop")
    assert record.number == 2


@pytest.mark.asyncio
async def test_interleaved_queue_instances_never_reuse_a_number():
    store = InMemoryPersistence()
    first, second = InputQueue(store), InputQueue(store)

    a = await first.append("e1", "join", {"name": "Pat"})
    b = await second.append("e1", "join", {"name": "Sam"})
    c = await first.append("e1", "walkTo", {"playerId": "0"})

    assert [a.number, b.number, c.number] == [0, 1, 2]
    stored = await first.pending("e1", None, 10)
    assert [(r.number, r.name, r.args.get("name")) for r in stored] == [
        (0, "join", "Pat"),
        (1, "join", "Sam"),
        (2, "walkTo", None),
    ]


@pytest.mark.asyncio
async def test_append_skips_a_number_claimed_behind_its_back():
    store = InMemoryPersistence()
    queue = InputQueue(store)
    await queue.append("e1", "join", {"name": "Pat"})

    original = store.list_documents

    async def stale_listing(collection, scope):
        # Simulates a listing taken before another producer wrote #1.
        documents = await original(collection, scope)
        await store.insert(collection, scope, "000000000001", {**documents[0], "number": 1, "name": "leave"})
        return documents

    store.list_documents = stale_listing
    record = await queue.append("e1", "stop")
    store.list_documents = original

    assert record.number == 2
    assert (await queue.get("e1", 1)).name == "leave"


@pytest.mark.asyncio
async def test_pending_respects_watermark_and_limit():
    queue = InputQueue(InMemoryPersistence())
    for i in range(5):
        await queue.append("e1", "join", {"name": str(i)})

    assert [r.number for r in await queue.pending("e1", None, 10)] == [0, 1, 2, 3, 4]
    assert [r.number for r in await queue.pending("e1", 1, 2)] == [2, 3]
    assert await queue.pending("e1", 4, 10) == []
    assert await queue.count_pending("e1", 2) == 2


@pytest.mark.asyncio
async def test_results_are_write_once():
    queue = InputQueue(InMemoryPersistence())
    record = await queue.append("e1", "join", {"name": "Pat"})

    assert await queue.status("e1", record.number) == {
        "processed": False,
        "success": None,
        "result": None,
        "error": None,
    }

    await queue.record_result(record, InputResult.error("Player 4 not found"))
    with pytest.raises(ValueError):
        await queue.record_result(record, InputResult.ok({"player_id": "0"}))

    status = await queue.status("e1", record.number)
    assert status["processed"] is True
    assert status["success"] is False
    assert status["error"] == "Player 4 not found"


@pytest.mark.asyncio
async def test_status_of_unknown_input():
    queue = InputQueue(InMemoryPersistence())
    assert await queue.status("e1", 42) is None
