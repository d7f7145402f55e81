"""Argument models for the command surface.

Every command accepted through the input queue has one pydantic model here.
Fields accept both the camelCase wire names (``playerId``, ``messageUuid``)
and their snake_case equivalents.
"""

from __future__ import annotations

from typing import Any, Dict, List, Mapping, Optional, Type

from pydantic import BaseModel, ConfigDict, Field, ValidationError, model_validator
from pydantic.alias_generators import to_camel

from .errors import InvalidCommandError
from .schemas import EntityKind, Point


class CommandArgs(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra="forbid")


class EmptyArgs(CommandArgs):
    """Arguments of the lifecycle commands (stop, start, restart)."""


class JoinArgs(CommandArgs):
    name: str = Field(..., min_length=1)
    character: str = Field(..., min_length=1)
    description: str = ""
    kind: EntityKind = "player"


class LeaveArgs(CommandArgs):
    player_id: str


class SendMessageArgs(CommandArgs):
    player_id: str
    text: str = Field(..., min_length=1)
    message_uuid: str = Field(..., min_length=1)


class StartConversationArgs(CommandArgs):
    """``invitee`` starts a two-party conversation; ``invitees`` invites a group."""

    player_id: str
    invitee: Optional[str] = None
    invitees: Optional[List[str]] = None

    @model_validator(mode="after")
    def _require_invitee(self) -> "StartConversationArgs":
        if self.invitee is None and not self.invitees:
            raise ValueError("either invitee or invitees is required")
        if self.invitee is not None and self.invitees:
            raise ValueError("pass invitee or invitees, not both")
        return self

    @property
    def invitee_ids(self) -> List[str]:
        return [self.invitee] if self.invitee is not None else list(self.invitees or [])


class ConversationActionArgs(CommandArgs):
    """acceptInvite, rejectInvite, leaveConversation and finishSpeaking."""

    player_id: str
    conversation_id: str


class WalkToArgs(CommandArgs):
    player_id: str
    destination: Point


class AgentSendMessageArgs(CommandArgs):
    agent_id: str
    text: str = Field(..., min_length=1)
    message_uuid: str = Field(..., min_length=1)
    leave_conversation: bool = False


class AgentWakeUpArgs(CommandArgs):
    agent_id: str


COMMANDS: Dict[str, Type[CommandArgs]] = {
    "join": JoinArgs,
    "leave": LeaveArgs,
    "sendMessage": SendMessageArgs,
    "startConversation": StartConversationArgs,
    "acceptInvite": ConversationActionArgs,
    "rejectInvite": ConversationActionArgs,
    "leaveConversation": ConversationActionArgs,
    "finishSpeaking": ConversationActionArgs,
    "walkTo": WalkToArgs,
    "agentSendMessage": AgentSendMessageArgs,
    "agentWakeUp": AgentWakeUpArgs,
    "stop": EmptyArgs,
    "start": EmptyArgs,
    "restart": EmptyArgs,
}

LIFECYCLE_COMMANDS = frozenset({"stop", "start", "restart"})


def _truncate_preview(value: Any, *, limit: int = 60) -> str:
    if value is None:
        return "null"
    text = repr(value)
    if len(text) > limit:
        return text[: limit - 3] + "..."
    return text


def describe_validation_error(name: str, error: ValidationError) -> str:
    """Flatten a ValidationError into one readable line per offending field."""
    issues: List[str] = []
    for err in error.errors(include_url=False):
        loc = ".".join(str(part) for part in err.get("loc", [])) or "args"
        details = f"{loc}: {err.get('msg', 'invalid value')}"
        if "input" in err and err.get("type") != "missing":
            details += f" (received {_truncate_preview(err['input'])})"
        issues.append(details)

    if not issues:
        issues.append("args: invalid arguments")
    return f"Invalid arguments for {name}: " + "; ".join(issues)


def parse_command(name: str, args: Optional[Mapping[str, Any]]) -> CommandArgs:
    """Validate ``args`` against the model registered for ``name``.

    Raises:
        InvalidCommandError: Unknown command name or arguments that fail validation
    """
    model = COMMANDS.get(name)
    if model is None:
        raise InvalidCommandError(f"Unknown command: {name}")

    try:
        return model.model_validate(dict(args or {}))
    except ValidationError as exc:
        raise InvalidCommandError(describe_validation_error(name, exc)) from exc
