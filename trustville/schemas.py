"""
Pydantic schemas for the Trustville simulation.

Plain records shared by the world, engine, memory store and persistence
layers. Entities with behavior (Player, Agent, Conversation) live in
``trustville.entities`` and are built from the value types defined here.

Design Philosophy:
- Every record round-trips through ``model_dump(mode="json")`` / ``model_validate``
  so any document store can hold it
- Timestamps are float seconds taken from the engine clock
- Bounded scores are clamped by the entities that own them, not by validators,
  so a stored snapshot always loads even if an older build wrote odd values
"""

from typing import Any, Dict, List, Literal, Optional

from pydantic import BaseModel, Field


# ============================================================================
# Geometry
# ============================================================================


class Point(BaseModel):
    """A position or direction on the 2D town plane."""

    x: float = Field(0.0, description="Horizontal coordinate")
    y: float = Field(0.0, description="Vertical coordinate")

    def distance_to(self, other: "Point") -> float:
        return ((self.x - other.x) ** 2 + (self.y - other.y) ** 2) ** 0.5


class Pathfinding(BaseModel):
    """Straight-line route an entity is following.

    ``path`` is an ordered list of waypoints; ``current_step`` indexes the
    waypoint the entity is heading towards. ``destination`` is where the
    entity snaps to once the final waypoint is reached.
    """

    destination: Point
    path: List[Point] = Field(default_factory=list)
    current_step: int = Field(0, ge=0)


# ============================================================================
# Status vocabularies
# ============================================================================

PlayerStatus = Literal["idle", "walking", "talking", "thinking"]
AgentStatus = Literal["idle", "walking", "talking", "thinking", "sleeping"]
ConversationStatus = Literal["waiting", "active", "ended"]
EntityKind = Literal["player", "agent"]
MemoryKind = Literal["relationship", "conversation", "reflection"]


# ============================================================================
# Agent sub-records
# ============================================================================


class ReputationEntry(BaseModel):
    """One trust change recorded in an agent's reputation history."""

    timestamp: float
    action: str = Field(..., description="What the agent did (e.g. 'helped', 'lied')")
    impact: float = Field(..., description="Signed trust delta that was applied")
    context: str = Field("", description="Free-form context for the change")


class SocialConnection(BaseModel):
    """An agent's private view of one peer."""

    trust_level: float = Field(50.0, description="Per-peer trust in [0, 100]")
    interaction_count: int = Field(0, ge=0)
    last_interaction: float = Field(0.0, description="Timestamp of the latest interaction")


class Goal(BaseModel):
    """Something an agent is currently trying to do."""

    type: str = Field(..., description="Goal category (socialize, explore, rest, ...)")
    target: Optional[str] = Field(None, description="Optional entity id or place the goal concerns")
    priority: float = Field(1.0, description="Relative urgency, higher is more urgent")
    deadline: Optional[float] = Field(None, description="Optional timestamp the goal expires")


class EmotionalState(BaseModel):
    """Four bounded mood dimensions, each in [0, 100]."""

    happiness: float = 50.0
    stress: float = 20.0
    energy: float = 80.0
    sociability: float = 60.0


# ============================================================================
# Conversation records
# ============================================================================


class LastMessage(BaseModel):
    """Denormalized copy of the newest message, kept on the conversation."""

    author: str
    text: str
    timestamp: float
    message_uuid: str


class MessageRecord(BaseModel):
    """A persisted chat message."""

    conversation_id: str
    message_uuid: str
    author: str
    text: str
    timestamp: float


class EntityDescription(BaseModel):
    """Static description stored when an entity joins a world."""

    world_id: str
    entity_id: str
    kind: EntityKind = "player"
    name: str
    character: str
    description: str


# ============================================================================
# Memory records
# ============================================================================


class MemoryData(BaseModel):
    """Kind-specific payload of a memory.

    - relationship: ``peer_id`` names the other agent
    - conversation: ``conversation_id`` plus ``participant_ids``
    - reflection: ``related_memory_ids`` point at the memories reflected on
    """

    kind: MemoryKind
    peer_id: Optional[str] = None
    conversation_id: Optional[str] = None
    participant_ids: List[str] = Field(default_factory=list)
    related_memory_ids: List[str] = Field(default_factory=list)


class MemoryRecord(BaseModel):
    """One episodic memory owned by an agent.

    Importance is fixed at creation and never recomputed; only ``last_access``
    changes after the record is written.
    """

    id: str
    owner_id: str
    description: str
    embedding: List[float] = Field(default_factory=list)
    importance: float = Field(..., ge=0, le=10)
    last_access: float
    created_at: float
    data: MemoryData


class ScoredMemory(BaseModel):
    """A memory returned by retrieval together with its combined score."""

    memory: MemoryRecord
    score: float


# ============================================================================
# Engine records
# ============================================================================


class InputResult(BaseModel):
    """Outcome written back to an input exactly once."""

    kind: Literal["ok", "error"]
    value: Any = None
    message: Optional[str] = None

    @classmethod
    def ok(cls, value: Any = None) -> "InputResult":
        return cls(kind="ok", value=value)

    @classmethod
    def error(cls, message: str) -> "InputResult":
        return cls(kind="error", message=message)

    @property
    def success(self) -> bool:
        return self.kind == "ok"


class InputRecord(BaseModel):
    """A command submitted to an engine's input queue."""

    engine_id: str
    number: int = Field(..., ge=0, description="Strictly increasing per engine")
    name: str
    args: Dict[str, Any] = Field(default_factory=dict)
    received_at: float
    result: Optional[InputResult] = None


class EngineState(BaseModel):
    """Durable state of one engine loop."""

    id: str
    world_id: str
    running: bool = False
    current_time: Optional[float] = None
    last_step_ts: Optional[float] = None
    # Watermark: number of the last input a step applied. None until the first input.
    processed_input_number: Optional[int] = None
    generation_number: int = 0


class WorldRecord(BaseModel):
    """Durable header of a world; entities are stored in their own collections."""

    id: str
    next_id: int = Field(0, ge=0)
    last_viewed: float = 0.0
    # Last input applied to this world; written in the same document as next_id.
    processed_input_number: Optional[int] = None
