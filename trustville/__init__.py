"""
Trustville - tick-driven town simulation with trust-aware agents.

Players and agents walk around a 2D town, hold turn-taking conversations and
keep trust scores on each other. An engine drains a durable input queue into
the world one fixed-size step at a time.

All collaborators (document store, embedder, scheduler, clock, random source)
are injected. Nothing here requires a database or network access.
"""

__version__ = "0.1.0"

# Engine loop
from .engine import Engine, StepResult, Scheduler, AsyncioScheduler
from .game import Game
from .inputs import InputQueue
from .commands import COMMANDS, parse_command

# World and entities
from .world import World
from .entities import Player, Agent, Conversation, Participant

# Decisions and memory
from .decisions import (
    ConversationDecider,
    StartContext,
    LeaveContext,
    ResponseContext,
    StarterContext,
    ResponseDecision,
    analyze_message,
)
from .memory import (
    MemoryStrategy,
    EmbeddingMemoryStream,
    calculate_memory_importance,
)
from .embeddings import (
    EmbeddingFunction,
    HashingEmbedder,
    cosine_similarity,
    get_cached_embedding,
)

# Persistence
from .persistence import (
    DocumentStore,
    InMemoryPersistence,
    JsonPersistence,
    PostgresPersistence,
)

# Records
from .schemas import (
    Point,
    EngineState,
    InputRecord,
    InputResult,
    MemoryRecord,
    MessageRecord,
    WorldRecord,
)
from .errors import (
    TrustvilleError,
    InvalidCommandError,
    EntityNotFoundError,
    ConversationError,
    TurnViolationError,
    AlreadyInConversationError,
    EntityBusyError,
    EngineNotFoundError,
    WorldNotFoundError,
)
from .config import Config

__all__ = [
    # Engine loop
    "Engine",
    "StepResult",
    "Scheduler",
    "AsyncioScheduler",
    "Game",
    "InputQueue",
    "COMMANDS",
    "parse_command",
    # World and entities
    "World",
    "Player",
    "Agent",
    "Conversation",
    "Participant",
    # Decisions and memory
    "ConversationDecider",
    "StartContext",
    "LeaveContext",
    "ResponseContext",
    "StarterContext",
    "ResponseDecision",
    "analyze_message",
    "MemoryStrategy",
    "EmbeddingMemoryStream",
    "calculate_memory_importance",
    "EmbeddingFunction",
    "HashingEmbedder",
    "cosine_similarity",
    "get_cached_embedding",
    # Persistence
    "DocumentStore",
    "InMemoryPersistence",
    "JsonPersistence",
    "PostgresPersistence",
    # Records
    "Point",
    "EngineState",
    "InputRecord",
    "InputResult",
    "MemoryRecord",
    "MessageRecord",
    "WorldRecord",
    # Errors
    "TrustvilleError",
    "InvalidCommandError",
    "EntityNotFoundError",
    "ConversationError",
    "TurnViolationError",
    "AlreadyInConversationError",
    "EntityBusyError",
    "EngineNotFoundError",
    "WorldNotFoundError",
    # Config
    "Config",
]
