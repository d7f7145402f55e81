"""Tests for the world aggregate: ids, membership, conversations, persistence."""

import random

import pytest

from trustville.config import Config
from trustville.entities import Agent, Player
from trustville.errors import (
    AlreadyInConversationError,
    ConversationError,
    EntityNotFoundError,
    WorldNotFoundError,
)
from trustville.persistence import DESCRIPTIONS, PLAYERS, InMemoryPersistence, JsonPersistence
from trustville.schemas import Point
from trustville.world import ARCHIVED_PLAYERS, World


async def make_world(store=None) -> World:
    store = store or InMemoryPersistence()
    await store.initialize()
    return await World.create(store, "w1", rng=random.Random(11))


@pytest.mark.asyncio
async def test_allocate_id_returns_distinct_ids():
    world = await make_world()
    world.next_id = 7

    ids = [world.allocate_id() for _ in range(25)]
    assert len(set(ids)) == 25
    assert ids[0] == "7"
    assert world.next_id == 32


@pytest.mark.asyncio
async def test_add_player_and_agent():
    world = await make_world()
    player = world.add_player("Pat", "f1", "a visitor", now=1.0)
    agent = world.add_player("Ada", "f2", "the baker", now=1.0, kind="agent")

    assert isinstance(player, Player) and not isinstance(player, Agent)
    assert player.position == Point(x=0.0, y=0.0)
    assert isinstance(agent, Agent)
    assert 0 <= agent.position.x < Config.WORLD_SIZE
    assert (player.id, agent.id) == ("0", "1")
    assert world.get_participant("1") is agent
    assert [entity.id for entity in world.participants()] == ["0", "1"]

    await world.save()
    description = await world.description("1")
    assert description.kind == "agent"
    assert description.description == "the baker"


@pytest.mark.asyncio
async def test_two_party_lifecycle_closure():
    world = await make_world()
    a = world.add_agent("Ada", "f1", "", now=0.0)
    b = world.add_agent("Bo", "f2", "", now=0.0)

    conversation = world.start_conversation(a.id, b.id, now=1.0)
    assert conversation.status == "active"
    assert a.conversation_id == conversation.id
    assert b.conversation_id == conversation.id
    assert a.status == b.status == "talking"

    world.leave_conversation(b.id, conversation.id, now=2.0)
    assert conversation.status == "ended"
    assert a.conversation_id is None and b.conversation_id is None
    assert a.status == b.status == "idle"
    assert conversation.id not in world.conversations

    await world.save()
    archived = await world.archived_conversation(conversation.id)
    assert archived.status == "ended"
    assert archived.ended == 2.0


@pytest.mark.asyncio
async def test_entity_can_only_be_in_one_conversation():
    world = await make_world()
    a = world.add_player("A", "f1", "", now=0.0)
    b = world.add_player("B", "f1", "", now=0.0)
    c = world.add_player("C", "f1", "", now=0.0)
    world.start_conversation(a.id, b.id, now=1.0)

    with pytest.raises(AlreadyInConversationError):
        world.start_conversation(c.id, a.id, now=2.0)
    with pytest.raises(AlreadyInConversationError):
        world.start_conversation(b.id, c.id, now=2.0)
    with pytest.raises(EntityNotFoundError):
        world.start_conversation(c.id, "404", now=2.0)
    assert c.conversation_id is None


@pytest.mark.asyncio
async def test_group_invitation_through_world():
    world = await make_world()
    a = world.add_player("A", "f1", "", now=0.0)
    b = world.add_player("B", "f1", "", now=0.0)
    c = world.add_player("C", "f1", "", now=0.0)

    conversation = world.start_conversation(a.id, [b.id, c.id], now=1.0)
    assert conversation.status == "waiting"
    assert a.conversation_id == conversation.id
    assert b.conversation_id is None

    world.accept_invite(b.id, conversation.id, now=2.0)
    assert b.conversation_id == conversation.id
    world.reject_invite(c.id, conversation.id, now=3.0)
    assert conversation.status == "active"
    assert c.conversation_id is None


@pytest.mark.asyncio
async def test_unanswered_group_invitation_releases_the_creator():
    world = await make_world()
    a = world.add_player("A", "f1", "", now=0.0)
    b = world.add_player("B", "f1", "", now=0.0)
    c = world.add_player("C", "f1", "", now=0.0)
    conversation = world.start_conversation(a.id, [b.id, c.id], now=1.0)

    assert world.tick(1.0 + Config.INACTIVITY_TIMEOUT_SECONDS) == []
    assert world.tick(2.0 + Config.INACTIVITY_TIMEOUT_SECONDS) == [conversation.id]

    assert conversation.id not in world.conversations
    assert a.conversation_id is None
    assert a.can_start_conversation()
    with pytest.raises(EntityNotFoundError):
        world.accept_invite(b.id, conversation.id, now=3.0 + Config.INACTIVITY_TIMEOUT_SECONDS)


@pytest.mark.asyncio
async def test_send_message_requires_a_conversation():
    world = await make_world()
    a = world.add_player("A", "f1", "", now=0.0)

    with pytest.raises(ConversationError):
        world.send_message(a.id, "hello?", "m1", now=1.0)


@pytest.mark.asyncio
async def test_messages_are_persisted_on_save():
    world = await make_world()
    a = world.add_player("A", "f1", "", now=0.0)
    b = world.add_player("B", "f1", "", now=0.0)
    conversation = world.start_conversation(a.id, b.id, now=1.0)

    world.send_message(a.id, "hi", "m1", now=2.0)
    world.finish_speaking(a.id, conversation.id, now=3.0)
    world.send_message(b.id, "hello", "m2", now=4.0)
    assert world.has_pending_writes()

    await world.save()
    messages = await world.messages(conversation.id)
    assert [(m.author, m.text) for m in messages] == [(a.id, "hi"), (b.id, "hello")]
    assert not world.has_pending_writes()


@pytest.mark.asyncio
async def test_remove_player_leaves_conversation_and_archives():
    world = await make_world()
    a = world.add_player("A", "f1", "", now=0.0)
    b = world.add_player("B", "f1", "", now=0.0)
    conversation = world.start_conversation(a.id, b.id, now=1.0)
    await world.save()

    removed = world.remove_player(a.id, now=2.0)
    assert removed is a
    assert conversation.status == "ended"
    assert b.conversation_id is None
    assert world.get_participant(a.id) is None

    # Absent ids are a no-op.
    assert world.remove_player(a.id, now=3.0) is None

    await world.save()
    assert await world.store.get(PLAYERS, world.id, a.id) is None
    archived = await world.archived_participant(a.id)
    assert archived.name == "A"
    assert await world.store.get(ARCHIVED_PLAYERS, world.id, a.id) is not None


@pytest.mark.asyncio
async def test_end_conversation_is_idempotent():
    world = await make_world()
    assert world.end_conversation("404", now=1.0) is None


@pytest.mark.asyncio
async def test_tick_ends_idle_conversations():
    world = await make_world()
    a = world.add_player("A", "f1", "", now=0.0)
    b = world.add_player("B", "f1", "", now=0.0)
    conversation = world.start_conversation(a.id, b.id, now=0.0)

    assert world.tick(now=Config.TURN_HANDOFF_TIMEOUT_SECONDS) == []
    ended = world.tick(now=Config.TURN_HANDOFF_TIMEOUT_SECONDS + 1)

    assert ended == [conversation.id]
    assert a.conversation_id is None and b.conversation_id is None
    assert world.last_viewed == Config.TURN_HANDOFF_TIMEOUT_SECONDS + 1


@pytest.mark.asyncio
async def test_tick_moves_entities():
    world = await make_world()
    world.tick_duration = 1.0
    player = world.add_player("A", "f1", "", now=0.0)
    world.walk_to(player.id, Point(x=2.0, y=0.0), now=0.0)

    world.tick(now=1.0)
    assert player.position == Point(x=1.0, y=0.0)
    world.tick(now=2.0)
    assert player.position == Point(x=2.0, y=0.0)
    assert player.status == "idle"


@pytest.mark.asyncio
async def test_find_nearby_participants_includes_boundary():
    world = await make_world()
    a = world.add_player("A", "f1", "", now=0.0)
    b = world.add_player("B", "f1", "", now=0.0)
    c = world.add_player("C", "f1", "", now=0.0)
    b.position = Point(x=3.0, y=4.0)
    c.position = Point(x=6.0, y=0.0)

    nearby = world.find_nearby_participants(Point(x=0.0, y=0.0), radius=5.0)
    assert [entity.id for entity in nearby] == [a.id, b.id]


@pytest.mark.asyncio
async def test_restart_wipes_entities_and_archives():
    world = await make_world()
    a = world.add_player("A", "f1", "", now=0.0)
    b = world.add_player("B", "f1", "", now=0.0)
    conversation = world.start_conversation(a.id, b.id, now=1.0)
    world.leave_conversation(a.id, conversation.id, now=2.0)
    await world.save()

    world.restart(now=5.0)
    await world.save()

    assert world.next_id == 0
    assert await world.archived_conversation(conversation.id) is None
    assert await world.store.list_documents(DESCRIPTIONS, world.id) == []

    reloaded = await World.load(world.store, world.id)
    assert reloaded.participants() == []
    assert reloaded.next_id == 0
    assert reloaded.allocate_id() == "0"


@pytest.mark.asyncio
async def test_load_missing_world_is_fatal():
    with pytest.raises(WorldNotFoundError):
        await World.load(InMemoryPersistence(), "nope")


@pytest.mark.asyncio
async def test_save_load_round_trip_in_memory():
    world = await make_world()
    a = world.add_agent("Ada", "f1", "", now=0.0)
    b = world.add_player("Bo", "f2", "", now=0.0)
    a.update_trust_score(12, "helped", now=1.0)
    a.update_social_connection(b.id, 5, now=1.0)
    conversation = world.start_conversation(a.id, b.id, now=2.0)
    world.send_message(a.id, "hi", "m1", now=3.0)
    await world.save()

    loaded = await World.load(world.store, world.id)
    assert loaded.next_id == world.next_id
    assert loaded.agents[a.id] == a
    assert loaded.players[b.id] == b
    assert loaded.conversations[conversation.id] == conversation


@pytest.mark.asyncio
async def test_save_load_round_trip_json(tmp_path):
    store = JsonPersistence(tmp_path / "town")
    world = await make_world(store)
    a = world.add_agent("Ada", "f1", "", now=0.0)
    b = world.add_agent("Bo", "f2", "", now=0.0)
    a.walk_to(Point(x=1.0, y=1.0), now=0.0)
    b.update_trust_score(-4, "rude", now=1.0)
    await world.save()

    loaded = await World.load(JsonPersistence(tmp_path / "town"), "w1")
    assert loaded.agents[a.id] == a
    assert loaded.agents[b.id].trust_score == 46
    assert loaded.agents[a.id].pathfinding.destination == Point(x=1.0, y=1.0)
    assert loaded.stats()["agents"] == 2
