"""Agent-level operations composed from the world, memory stream and decider.

These are the building blocks an agent driver (or a test) uses between engine
steps: they mutate an ``Agent`` in place and record what happened in the
agent's memory stream. Persisting the agent is left to ``World.save()``.
"""

from typing import Any, Dict, List, Optional, Sequence

from .decisions import (
    ConversationDecider,
    LeaveContext,
    ResponseContext,
    ResponseDecision,
    StartContext,
    StarterContext,
)
from .entities import Agent, Conversation, Participant
from .memory import EmbeddingMemoryStream, calculate_memory_importance
from .persistence import MESSAGES, DocumentStore
from .schemas import Goal, MemoryData, MemoryRecord
from .world import World

RECENT_CONVERSATION_WINDOW_SECONDS = 60 * 60
SELF_KNOWLEDGE_IMPORTANCE = 8.0


async def create_agent(
    world: World,
    memory: EmbeddingMemoryStream,
    name: str,
    character: str,
    description: str,
    now: float,
) -> Agent:
    """Add an agent to ``world`` and seed its memory with who it is."""
    agent = world.add_agent(name, character, description, now)
    await memory.create_memory(
        agent.id,
        f"I am {name}, {description}. I have just awakened in this world.",
        SELF_KNOWLEDGE_IMPORTANCE,
        MemoryData(kind="reflection"),
        now=now,
    )
    return agent


async def apply_trust_change(
    agent: Agent,
    memory: EmbeddingMemoryStream,
    delta: float,
    action: str,
    context: str,
    now: float,
) -> MemoryRecord:
    """Shift the agent's global trust and remember why."""
    agent.update_trust_score(delta, action, context, now)

    direction = "increased" if delta > 0 else "decreased"
    description = f"My trust was {direction} due to {action}: {context}"
    importance = calculate_memory_importance(
        description,
        emotional_impact=abs(delta) * 0.5,
        social_relevance=3,
        novelty=2,
        personal_relevance=5,
    )
    return await memory.create_reflection_memory(agent.id, description, importance, now=now)


async def apply_social_interaction(
    agent: Agent,
    memory: EmbeddingMemoryStream,
    peer_id: str,
    peer_name: Optional[str],
    trust_delta: float,
    context: str,
    now: float,
) -> MemoryRecord:
    """Update the private trust level toward ``peer_id`` and store a relationship memory."""
    agent.update_social_connection(peer_id, trust_delta, now)

    description = f"I had an interaction with {peer_name or 'someone'}: {context}"
    importance = calculate_memory_importance(
        description,
        emotional_impact=abs(trust_delta) * 0.3,
        social_relevance=5,
        novelty=3,
        personal_relevance=4,
    )
    return await memory.create_relationship_memory(agent.id, peer_id, description, importance, now=now)


async def set_agent_goal(
    agent: Agent,
    memory: EmbeddingMemoryStream,
    goal_type: str,
    target: Optional[str],
    priority: float,
    deadline: Optional[float],
    now: float,
) -> Goal:
    goal = agent.set_goal(goal_type, target, priority, deadline)

    description = f"I set a new goal: {goal_type}"
    if target:
        description += f" (target: {target})"
    importance = calculate_memory_importance(
        description,
        emotional_impact=priority * 0.5,
        social_relevance=3 if target else 1,
        novelty=4,
        personal_relevance=5,
    )
    await memory.create_reflection_memory(agent.id, description, importance, now=now)
    return goal


async def count_recent_conversations(
    store: DocumentStore,
    world_id: str,
    agent_id: str,
    now: float,
    window: float = RECENT_CONVERSATION_WINDOW_SECONDS,
) -> int:
    """Distinct conversations ``agent_id`` posted in during the trailing ``window`` seconds."""
    conversations = {
        doc["conversation_id"]
        for doc in await store.list_documents(MESSAGES, world_id)
        if doc.get("author") == agent_id and now - doc.get("timestamp", 0.0) <= window
    }
    return len(conversations)


async def decide_start_conversation(
    agent: Agent,
    memory: EmbeddingMemoryStream,
    decider: ConversationDecider,
    peer: Participant,
    recent_conversations: int = 0,
) -> bool:
    """Roll the start-conversation heuristic for ``agent`` approaching ``peer``."""
    if not agent.can_start_conversation() or not peer.is_available():
        return False

    shared = await memory.memories_about(agent.id, peer.id)
    context = StartContext(
        proximity=agent.position.distance_to(peer.position),
        shared_history=bool(shared),
        mood=agent.mood,
        trust_level=agent.trust_level(peer.id),
        recent_conversations=recent_conversations,
    )
    return decider.should_start_conversation(context)


def decide_leave_conversation(
    agent: Agent,
    decider: ConversationDecider,
    conversation: Conversation,
    now: float,
) -> bool:
    last_message_at = (
        conversation.last_message.timestamp if conversation.last_message else conversation.created
    )
    context = LeaveContext(
        conversation_length=conversation.num_messages,
        last_message_age=now - last_message_at,
        participant_count=len(conversation.participants),
        mood=agent.mood,
        has_goals=agent.current_goal is not None,
    )
    return decider.should_leave_conversation(context)


async def conversation_starter(
    agent: Agent,
    memory: EmbeddingMemoryStream,
    decider: ConversationDecider,
    peer_id: str,
    *,
    location: str = "",
    time_of_day: str = "",
    current_events: Sequence[str] = (),
) -> str:
    shared = await memory.memories_about(agent.id, peer_id)
    context = StarterContext(
        location=location,
        time_of_day=time_of_day,
        shared_memories=[m.description for m in shared],
        current_events=list(current_events),
    )
    return decider.generate_conversation_starter(context)


async def respond_to_message(
    agent: Agent,
    memory: EmbeddingMemoryStream,
    decider: ConversationDecider,
    sender_id: str,
    message: str,
    history: Sequence[str],
    *,
    now: Optional[float] = None,
) -> ResponseDecision:
    """Draft a reply using the most relevant memories for ``message``."""
    relevant = await memory.retrieve_memories(agent.id, message, limit=5, now=now)
    context = ResponseContext(
        conversation_history=list(history),
        sender_trust_level=agent.trust_level(sender_id),
        mood=agent.mood,
        personality=agent.character,
        memories=[item.memory.description for item in relevant],
    )
    return decider.generate_response(message, context)


async def agent_stats(
    world: World,
    memory: EmbeddingMemoryStream,
    agent: Agent,
    now: float,
) -> Dict[str, Any]:
    memories: List[MemoryRecord] = await memory.recent_memories(agent.id, limit=memory.max_memories)
    return {
        **agent.reputation_summary(now),
        "memory_count": len(memories),
        "recent_conversations": await count_recent_conversations(world.store, world.id, agent.id, now),
        "activity": agent.activity_description(),
    }
