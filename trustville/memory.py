"""
MemoryStrategy interface and the embedding-backed memory stream.

Agents keep an append-only stream of episodic memories. Each memory carries
an importance in [0, 10] fixed at creation time and an embedding of its
description. Retrieval ranks memories by

    cosine(query, memory) + 0.2 * recency + 0.3 * importance / 10

where recency decays linearly from 1 to 0 over seven days since the memory
was last accessed.

Key responsibilities:
- Store relationship, conversation and reflection memories
- Retrieve relevant memories for a query
- Summarise recent memories into reflections
- Prune low-importance memories once an agent exceeds its cap

Memories live in the ``memories`` collection, scoped by ``{namespace}:{agent id}``.
"""

import time
import uuid
from abc import ABC, abstractmethod
from typing import Dict, List, Optional, Sequence

from .config import Config
from .embeddings import EmbeddingFunction, HashingEmbedder, cosine_similarity, get_cached_embedding
from .logging_utils import LOG_TAG_DETERMINISTIC, env_flag, log_deterministic
from .persistence import MEMORIES, DocumentStore
from .schemas import MemoryData, MemoryRecord, ScoredMemory

DEBUG_MEMORY = env_flag("DEBUG_MEMORY")

RECENCY_WINDOW_SECONDS = 7 * 24 * 60 * 60
STALENESS_WINDOW_SECONDS = 30 * 24 * 60 * 60

SOCIAL_WORDS = ("conversation", "talked", "met", "friend", "together", "group")
PERSONAL_WORDS = ("thought", "realized", "learned", "decided", "felt", "myself")
POSITIVE_WORDS = ("happy", "good", "great", "wonderful", "enjoyed", "love")
NEGATIVE_WORDS = ("sad", "bad", "terrible", "worried", "upset", "angry")


def calculate_memory_importance(
    description: str,
    *,
    emotional_impact: float = 0.0,
    social_relevance: float = 0.0,
    novelty: float = 0.0,
    personal_relevance: float = 0.0,
) -> float:
    """Score how memorable an event is, clamped to [0, 10].

    Longer descriptions earn up to 3 points (one per 50 characters). Emotional
    impact (0-10) and social relevance, novelty and personal relevance (0-5
    each) are added on top.
    """
    importance = min(len(description) / 50.0, 3.0)
    importance += emotional_impact + social_relevance + novelty + personal_relevance
    return max(0.0, min(10.0, importance))


def extract_themes(descriptions: Sequence[str]) -> Dict[str, int]:
    """Count social, personal, positive and negative cues across descriptions."""
    themes = {"social": 0, "personal": 0, "positive": 0, "negative": 0}
    for description in descriptions:
        lower = description.lower()
        if any(word in lower for word in SOCIAL_WORDS):
            themes["social"] += 1
        if any(word in lower for word in PERSONAL_WORDS):
            themes["personal"] += 1
        if any(word in lower for word in POSITIVE_WORDS):
            themes["positive"] += 1
        if any(word in lower for word in NEGATIVE_WORDS):
            themes["negative"] += 1
    return themes


class MemoryStrategy(ABC):
    """
    Abstract base class for agent memory systems.

    Implementations decide how memories are stored and ranked; callers only
    rely on the operations below. Every method takes the owning agent id.
    """

    @abstractmethod
    async def initialize(self) -> None:
        """Prepare the backend before the first call."""
        pass

    @abstractmethod
    async def close(self) -> None:
        """Release backend resources."""
        pass

    @abstractmethod
    async def create_memory(
        self,
        owner_id: str,
        description: str,
        importance: float,
        data: MemoryData,
        *,
        now: Optional[float] = None,
    ) -> MemoryRecord:
        """
        Store a new memory for an agent.

        Args:
            owner_id: Agent who owns this memory
            description: Natural-language description of the event
            importance: Importance in [0, 10] (out-of-range values are clamped)
            data: Kind-specific payload (relationship / conversation / reflection)
            now: Creation timestamp (defaults to the store's clock)

        Returns:
            The stored MemoryRecord
        """
        pass

    @abstractmethod
    async def retrieve_memories(
        self,
        owner_id: str,
        query: str,
        limit: int = 10,
        min_importance: float = 3.0,
        *,
        now: Optional[float] = None,
    ) -> List[ScoredMemory]:
        """
        Rank an agent's memories against a query.

        Memories below ``min_importance`` are never returned.

        Returns:
            Up to ``limit`` scored memories, best first
        """
        pass

    @abstractmethod
    async def recent_memories(self, owner_id: str, limit: int = 10) -> List[MemoryRecord]:
        """Most recently created memories first."""
        pass

    @abstractmethod
    async def cleanup_memories(
        self,
        owner_id: str,
        max_memories: Optional[int] = None,
        min_importance_to_keep: Optional[float] = None,
        *,
        now: Optional[float] = None,
    ) -> int:
        """
        Prune memories once the owner holds more than ``max_memories``.

        Returns:
            Number of memories deleted (may be fewer than the overflow)
        """
        pass

    @abstractmethod
    async def clear_agent_memories(self, owner_id: str) -> None:
        """Delete every memory of an agent."""
        pass


class EmbeddingMemoryStream(MemoryStrategy):
    """Memory stream ranked by embedding similarity, recency and importance.

    Records are stored through a DocumentStore; embeddings go through the
    content-hash cache so identical descriptions are embedded once.
    """

    def __init__(
        self,
        store: DocumentStore,
        embedder: Optional[EmbeddingFunction] = None,
        *,
        namespace: str = "default",
        clock=time.time,
        max_memories: Optional[int] = None,
        min_importance_to_keep: Optional[float] = None,
    ) -> None:
        """
        Args:
            store: DocumentStore instance holding memory and embedding documents
            embedder: Embedding collaborator (defaults to HashingEmbedder)
            namespace: Prefix for memory scopes, usually the world id, since
                agent ids are only unique within one world
            clock: Callable returning the current timestamp in seconds
            max_memories: Per-agent cap used by cleanup_memories()
            min_importance_to_keep: Memories at or above this are never pruned
        """
        self.store = store
        self.embedder = embedder or HashingEmbedder()
        self.namespace = namespace
        self.clock = clock
        self.max_memories = max_memories or Config.MAX_MEMORIES
        self.min_importance_to_keep = (
            Config.MIN_IMPORTANCE_TO_KEEP
            if min_importance_to_keep is None
            else min_importance_to_keep
        )

    async def initialize(self) -> None:  # pragma: no cover - delegate to store
        pass

    async def close(self) -> None:  # pragma: no cover - delegate to store
        pass

    def _now(self, now: Optional[float]) -> float:
        return self.clock() if now is None else now

    def _scope(self, owner_id: str) -> str:
        return f"{self.namespace}:{owner_id}"

    async def _all(self, owner_id: str) -> List[MemoryRecord]:
        documents = await self.store.list_documents(MEMORIES, self._scope(owner_id))
        return [MemoryRecord.model_validate(doc) for doc in documents]

    async def _save(self, memory: MemoryRecord) -> None:
        await self.store.upsert(MEMORIES, self._scope(memory.owner_id), memory.id, memory.model_dump(mode="json"))

    # ------------------------------------------------------------------
    # Creation
    # ------------------------------------------------------------------

    async def create_memory(
        self,
        owner_id: str,
        description: str,
        importance: float,
        data: MemoryData,
        *,
        now: Optional[float] = None,
    ) -> MemoryRecord:
        now = self._now(now)
        embedding = await get_cached_embedding(self.store, description, self.embedder, now=now)
        memory = MemoryRecord(
            id=str(uuid.uuid4()),
            owner_id=owner_id,
            description=description,
            embedding=embedding,
            importance=max(0.0, min(10.0, importance)),
            last_access=now,
            created_at=now,
            data=data,
        )
        await self._save(memory)
        return memory

    async def create_relationship_memory(
        self,
        owner_id: str,
        peer_id: str,
        description: str,
        importance: float,
        *,
        now: Optional[float] = None,
    ) -> MemoryRecord:
        data = MemoryData(kind="relationship", peer_id=peer_id)
        return await self.create_memory(owner_id, description, importance, data, now=now)

    async def create_conversation_memory(
        self,
        owner_id: str,
        conversation_id: str,
        participant_ids: Sequence[str],
        description: str,
        importance: float,
        *,
        now: Optional[float] = None,
    ) -> MemoryRecord:
        data = MemoryData(
            kind="conversation",
            conversation_id=conversation_id,
            participant_ids=list(participant_ids),
        )
        return await self.create_memory(owner_id, description, importance, data, now=now)

    async def create_reflection_memory(
        self,
        owner_id: str,
        description: str,
        importance: float,
        related_memory_ids: Sequence[str] = (),
        *,
        now: Optional[float] = None,
    ) -> MemoryRecord:
        data = MemoryData(kind="reflection", related_memory_ids=list(related_memory_ids))
        return await self.create_memory(owner_id, description, importance, data, now=now)

    # ------------------------------------------------------------------
    # Retrieval
    # ------------------------------------------------------------------

    async def retrieve_memories(
        self,
        owner_id: str,
        query: str,
        limit: int = 10,
        min_importance: float = 3.0,
        *,
        now: Optional[float] = None,
    ) -> List[ScoredMemory]:
        now = self._now(now)
        candidates = [m for m in await self._all(owner_id) if m.importance >= min_importance]
        if not candidates:
            return []

        query_embedding = await get_cached_embedding(self.store, query, self.embedder, now=now)

        scored: List[ScoredMemory] = []
        for memory in candidates:
            relevance = cosine_similarity(query_embedding, memory.embedding)
            recency = max(0.0, 1.0 - (now - memory.last_access) / RECENCY_WINDOW_SECONDS)
            score = relevance + recency * 0.2 + (memory.importance / 10.0) * 0.3
            scored.append(ScoredMemory(memory=memory, score=score))

        scored.sort(key=lambda item: item.score, reverse=True)

        if DEBUG_MEMORY:
            log_deterministic(f"  {LOG_TAG_DETERMINISTIC} [Memory] {owner_id} query={query!r}")
            for item in scored[:limit]:
                log_deterministic(f"      {item.score:.3f}  {item.memory.description}")

        return scored[:limit]

    async def access_memory(self, owner_id: str, memory_id: str, *, now: Optional[float] = None) -> None:
        """Stamp ``last_access`` so the memory ranks as recent again. No-op if absent."""
        document = await self.store.get(MEMORIES, self._scope(owner_id), memory_id)
        if document is None:
            return
        memory = MemoryRecord.model_validate(document)
        memory.last_access = self._now(now)
        await self._save(memory)

    async def recent_memories(self, owner_id: str, limit: int = 10) -> List[MemoryRecord]:
        memories = await self._all(owner_id)
        memories.sort(key=lambda m: m.created_at, reverse=True)
        return memories[:limit]

    async def memories_about(self, owner_id: str, peer_id: str, limit: int = 5) -> List[MemoryRecord]:
        """Relationship memories about ``peer_id``, newest first."""
        memories = [
            m for m in await self._all(owner_id)
            if m.data.kind == "relationship" and m.data.peer_id == peer_id
        ]
        memories.sort(key=lambda m: m.created_at, reverse=True)
        return memories[:limit]

    async def conversation_memories(self, owner_id: str, limit: int = 10) -> List[MemoryRecord]:
        memories = [m for m in await self._all(owner_id) if m.data.kind == "conversation"]
        memories.sort(key=lambda m: m.created_at, reverse=True)
        return memories[:limit]

    # ------------------------------------------------------------------
    # Reflection
    # ------------------------------------------------------------------

    async def generate_reflection(
        self,
        owner_id: str,
        recent: Optional[Sequence[MemoryRecord]] = None,
        *,
        now: Optional[float] = None,
    ) -> str:
        """Summarise recent memories into a reflection and store it.

        With no recent memories nothing is stored and a stock sentence is returned.
        The stored reflection's importance is ``min(8, average + 1)``.
        """
        if recent is None:
            recent = await self.recent_memories(owner_id)
        if not recent:
            return "I haven't had many notable experiences lately."

        themes = extract_themes([m.description for m in recent])
        average = sum(m.importance for m in recent) / len(recent)

        if average > 7:
            reflection = "I've been having some really significant experiences lately. "
        elif average > 5:
            reflection = "There have been some interesting developments in my life recently. "
        else:
            reflection = "Life has been pretty routine lately, but that's not necessarily bad. "

        if themes["social"] > themes["personal"]:
            reflection += "I've been spending a lot of time with others and building relationships. "
        elif themes["personal"] > themes["social"]:
            reflection += "I've been focusing more on personal growth and self-reflection. "

        if themes["positive"] > themes["negative"]:
            reflection += "Overall, things have been going well and I'm feeling optimistic."
        elif themes["negative"] > themes["positive"]:
            reflection += "I've been dealing with some challenges, but I'm learning from them."
        else:
            reflection += "Life has been a mix of ups and downs, which keeps things interesting."

        await self.create_reflection_memory(
            owner_id,
            reflection,
            min(8.0, average + 1),
            [m.id for m in recent],
            now=now,
        )
        return reflection

    # ------------------------------------------------------------------
    # Capacity
    # ------------------------------------------------------------------

    async def cleanup_memories(
        self,
        owner_id: str,
        max_memories: Optional[int] = None,
        min_importance_to_keep: Optional[float] = None,
        *,
        now: Optional[float] = None,
    ) -> int:
        max_memories = self.max_memories if max_memories is None else max_memories
        keep_floor = (
            self.min_importance_to_keep
            if min_importance_to_keep is None
            else min_importance_to_keep
        )
        now = self._now(now)

        memories = await self._all(owner_id)
        if len(memories) <= max_memories:
            return 0

        memories.sort(key=lambda m: m.importance + (now - m.last_access) / STALENESS_WINDOW_SECONDS)
        overflow = memories[: len(memories) - max_memories]

        deleted = 0
        for memory in overflow:
            # Important memories survive even when that leaves the agent over its cap.
            if memory.importance < keep_floor:
                await self.store.delete(MEMORIES, self._scope(owner_id), memory.id)
                deleted += 1
        return deleted

    async def clear_agent_memories(self, owner_id: str) -> None:
        await self.store.delete_scope(MEMORIES, self._scope(owner_id))
