"""
Exception hierarchy for Trustville.

Two families:
- Command errors (``TrustvilleError`` subclasses other than the fatal ones) are
  raised by world/entity operations when a command breaks a contract. The game
  layer converts them into ``{"error": message}`` results and the step keeps going.
- Fatal step errors (``EngineNotFoundError``, ``WorldNotFoundError``) mean there
  is nothing to operate on. They abort the step and propagate to the caller.
"""


class TrustvilleError(Exception):
    """Base class for all Trustville errors."""


class InvalidCommandError(TrustvilleError):
    """Raised for unknown command names or arguments that fail validation."""


class EntityNotFoundError(TrustvilleError):
    """Raised when a command references a player, agent or conversation that does not exist."""

    def __init__(self, kind: str, entity_id: str) -> None:
        self.kind = kind
        self.entity_id = entity_id
        super().__init__(f"{kind.capitalize()} {entity_id} not found")


class ConversationError(TrustvilleError):
    """Raised when a conversation operation is not allowed in the current state."""


class TurnViolationError(ConversationError):
    """Raised when a participant posts while someone else holds the floor."""

    def __init__(self, *, conversation_id: str, author: str, current_speaker: str) -> None:
        self.conversation_id = conversation_id
        self.author = author
        self.current_speaker = current_speaker
        super().__init__(
            f"It is not {author}'s turn in conversation {conversation_id}: "
            f"{current_speaker} is still speaking"
        )


class AlreadyInConversationError(ConversationError):
    """Raised when an entity that is already talking is pulled into another conversation."""

    def __init__(self, entity_id: str, conversation_id: str) -> None:
        self.entity_id = entity_id
        self.conversation_id = conversation_id
        super().__init__(f"{entity_id} is already in conversation {conversation_id}")


class EntityBusyError(TrustvilleError):
    """Raised when an entity cannot perform an action in its current status."""


class EmbeddingUnavailableError(TrustvilleError):
    """Raised by embedding backends for transient failures; embedding calls retry on it."""


# =============================
# Fatal step errors
# =============================

class EngineNotFoundError(TrustvilleError):
    """Raised when a step starts and the engine record is missing."""

    def __init__(self, *, engine_id: str) -> None:
        self.engine_id = engine_id
        message = (
            f"Engine {engine_id} not found; the step was aborted.\n\n"
            "Remediation tips:\n"
            "  - Create the engine with Engine.create() before scheduling steps\n"
            "  - Check that the engine id matches the one used to enqueue inputs\n"
            "  - Verify the document store points at the same database/directory"
        )
        super().__init__(message)


class WorldNotFoundError(TrustvilleError):
    """Raised when a step starts and the world record is missing."""

    def __init__(self, *, world_id: str, engine_id: str | None = None) -> None:
        self.world_id = world_id
        self.engine_id = engine_id
        owner = f" (engine {engine_id})" if engine_id else ""
        message = (
            f"World {world_id}{owner} not found; the step was aborted and no "
            "inputs were consumed.\n\n"
            "Remediation tips:\n"
            "  - Create the world together with its engine via Engine.create()\n"
            "  - Check that nothing deleted the 'worlds' collection between steps\n"
            "  - Set DEBUG_INPUTS=true to inspect the pending commands"
        )
        super().__init__(message)
