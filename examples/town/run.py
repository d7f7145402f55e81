"""Small town demo: agents walk to the plaza, chat, and build trust.

Everything goes through the engine's input queue except the agents' own
bookkeeping (memories and per-peer trust), which the driver applies between
steps the way an agent runner would.

Run with in-memory storage:

    uv run python -m examples.town.run --rounds 20

Keep the town on disk (one JSON file per document):

    uv run python -m examples.town.run --rounds 20 --data-dir town_data --verbose
"""

from __future__ import annotations

import argparse
import asyncio
import random
import uuid
from pathlib import Path
from typing import Dict, List, Optional

from trustville import (
    ConversationDecider,
    EmbeddingMemoryStream,
    Engine,
    InMemoryPersistence,
    JsonPersistence,
    Point,
)
from trustville.agent_ops import (
    apply_social_interaction,
    conversation_starter,
    decide_leave_conversation,
    decide_start_conversation,
    respond_to_message,
)
from trustville.world import World

RESIDENTS = [
    ("Ada", "f1", "the town baker"),
    ("Bo", "f2", "a travelling musician"),
    ("Cy", "f3", "the retired mayor"),
]
PLAZA = Point(x=50.0, y=50.0)
TALK_RADIUS = 3.0
SECONDS_PER_STEP = 5.0


class SimulatedClock:
    """Clock the driver advances by hand so runs do not depend on wall time."""

    def __init__(self, start: float) -> None:
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


def parse_args() -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Trustville town simulation")
    parser.add_argument("--rounds", type=int, default=20, help="Conversation rounds to simulate")
    parser.add_argument("--seed", type=int, default=7, help="Seed for positions and decisions")
    parser.add_argument("--data-dir", type=Path, default=None, help="Persist the town as JSON files here")
    parser.add_argument("--verbose", action="store_true", help="Log every step and command")
    return parser.parse_args()


async def step(engine: Engine, clock: SimulatedClock) -> None:
    clock.advance(SECONDS_PER_STEP)
    await engine.step()


async def join_residents(engine: Engine, clock: SimulatedClock) -> Dict[str, str]:
    """Enqueue a join per resident and return name -> agent id once applied."""
    inputs = []
    for name, character, description in RESIDENTS:
        record = await engine.send_input(
            "join",
            {"name": name, "character": character, "description": description, "kind": "agent"},
        )
        inputs.append((name, record.number))

    await step(engine, clock)

    ids = {}
    for name, number in inputs:
        status = await engine.input_status(number)
        if not status["success"]:
            raise RuntimeError(f"join for {name} failed: {status['error']}")
        ids[name] = status["result"]["player_id"]
    return ids


async def walk_to_plaza(engine: Engine, clock: SimulatedClock, ids: Dict[str, str], max_steps: int = 40) -> None:
    for offset, agent_id in enumerate(ids.values()):
        spot = Point(x=PLAZA.x + offset, y=PLAZA.y)
        await engine.send_input("walkTo", {"playerId": agent_id, "destination": spot.model_dump()})

    for _ in range(max_steps):
        await step(engine, clock)
        world = await engine.load_world()
        if all(agent.pathfinding is None for agent in world.agents.values()):
            return


async def plan_round(
    engine: Engine,
    world: World,
    memory: EmbeddingMemoryStream,
    decider: ConversationDecider,
    now: float,
) -> None:
    """Decide what every agent does this round and enqueue the commands."""
    # Agents in a conversation take their turn.
    for conversation in world.conversations.values():
        if conversation.status != "active" or conversation.current_speaker is not None:
            continue
        # Round robin after whoever spoke last; the creator opens.
        order = conversation.participants
        if conversation.last_message is None:
            speaker_id = order[0]
        else:
            author = conversation.last_message.author
            index = order.index(author) if author in order else -1
            speaker_id = order[(index + 1) % len(order)]
        speaker = world.agents.get(speaker_id)
        if speaker is None:
            continue

        leaving = decide_leave_conversation(speaker, decider, conversation, now)
        if conversation.last_message is None:
            peer_id = next(p for p in conversation.participants if p != speaker_id)
            text = await conversation_starter(speaker, memory, decider, peer_id, location="the plaza")
        else:
            sender_id = conversation.last_message.author
            history = [m.text for m in await world.messages(conversation.id)]
            decision = await respond_to_message(
                speaker, memory, decider, sender_id, conversation.last_message.text, history, now=now
            )
            text = decision.response
            leaving = leaving or not decision.should_continue
            sender = world.get_participant(sender_id)
            await apply_social_interaction(
                speaker,
                memory,
                sender_id,
                sender.name if sender else None,
                decision.emotional_impact,
                f'they said "{conversation.last_message.text}"',
                now,
            )

        if leaving:
            text = decider.generate_leaving_message("time")
        await engine.send_input(
            "agentSendMessage",
            {
                "agentId": speaker_id,
                "text": text,
                "messageUuid": str(uuid.uuid4()),
                "leaveConversation": leaving,
            },
        )
        if not leaving:
            await engine.send_input(
                "finishSpeaking", {"playerId": speaker_id, "conversationId": conversation.id}
            )

    # Idle agents look for someone nearby to talk to.
    claimed = set()
    for agent in world.agents.values():
        if agent.id in claimed or not agent.can_start_conversation():
            continue
        for peer in world.find_nearby_participants(agent.position, TALK_RADIUS):
            if peer.id == agent.id or peer.id in claimed:
                continue
            if await decide_start_conversation(agent, memory, decider, peer):
                await engine.send_input("startConversation", {"playerId": agent.id, "invitee": peer.id})
                claimed.update((agent.id, peer.id))
                break

    # Persist the trust/mood changes made while planning.
    await world.save()


async def run_town(
    rounds: int,
    *,
    seed: Optional[int] = None,
    data_dir: Optional[Path] = None,
    verbose: bool = False,
) -> Dict[str, object]:
    rng = random.Random(seed)
    store = JsonPersistence(data_dir) if data_dir is not None else InMemoryPersistence()
    await store.initialize()

    clock = SimulatedClock(start=8 * 60 * 60.0)
    engine = await Engine.create(
        store,
        "town",
        clock=clock,
        rng=rng,
        tick_duration=SECONDS_PER_STEP,
        verbose=verbose,
    )
    await engine.start()

    memory = EmbeddingMemoryStream(store, namespace=engine.world_id, clock=clock)
    decider = ConversationDecider(random.Random(seed))

    ids = await join_residents(engine, clock)
    for name, character, description in RESIDENTS:
        await memory.create_reflection_memory(
            ids[name], f"I am {name}, {description}. I have just awakened in this world.", 8
        )

    await walk_to_plaza(engine, clock, ids)
    print(f"Residents gathered at the plaza: {', '.join(ids)}")

    ended: List[str] = []
    for _ in range(rounds):
        world = await engine.load_world()
        await plan_round(engine, world, memory, decider, clock())
        clock.advance(SECONDS_PER_STEP)
        result = await engine.step()
        ended.extend(result.ended_conversations)
        for outcome in result.results:
            if not outcome.success:
                print(f"  refused: {outcome.message}")

    await engine.stop()

    world = await engine.load_world()
    print(f"\nConversations finished: {len(ended)}")
    for agent in world.agents.values():
        peers = ", ".join(
            f"{world.agents[peer_id].name}={connection.trust_level:.0f}"
            for peer_id, connection in agent.social_connections.items()
            if peer_id in world.agents
        )
        memories = await memory.recent_memories(agent.id, limit=memory.max_memories)
        print(
            f"{agent.name:>4}: trust={agent.trust_score:.0f} mood={agent.mood:.0f} "
            f"memories={len(memories)} peers[{peers or '-'}]"
        )
        print(f"      {await memory.generate_reflection(agent.id)}")

    status = await engine.status()
    await store.close()
    return {"world": world, "ended_conversations": ended, "status": status}


async def main(args: argparse.Namespace) -> None:
    await run_town(args.rounds, seed=args.seed, data_dir=args.data_dir, verbose=args.verbose)


if __name__ == "__main__":
    asyncio.run(main(parse_args()))
