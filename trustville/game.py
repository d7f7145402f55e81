"""
Command dispatch for one engine step.

``Game.process_input`` validates a queued command, applies it to the loaded
world and turns the outcome into an ``InputResult``. Contract violations
(``TrustvilleError``) become ``error`` results and never interrupt the batch;
anything else is a bug and propagates.

Lifecycle commands (stop, start, restart) act on the engine state the game was
constructed with; the engine persists that state at the end of the step.
"""

from typing import Any, Callable, Dict, Optional

from .commands import (
    AgentSendMessageArgs,
    AgentWakeUpArgs,
    CommandArgs,
    ConversationActionArgs,
    JoinArgs,
    LeaveArgs,
    SendMessageArgs,
    StartConversationArgs,
    WalkToArgs,
    parse_command,
)
from .errors import TrustvilleError
from .logging_utils import LOG_TAG_COMMAND, LOG_TAG_ERROR, log_command, log_error
from .schemas import EngineState, InputResult
from .world import World

Handler = Callable[[World, Any, float], Any]


class Game:
    """Applies commands to a world.

    Args:
        engine_state: Engine record mutated by lifecycle commands
        verbose: Log every applied command
    """

    def __init__(self, engine_state: EngineState, *, verbose: bool = False) -> None:
        self.engine_state = engine_state
        self.verbose = verbose
        self._handlers: Dict[str, Handler] = {
            "join": self._join,
            "leave": self._leave,
            "sendMessage": self._send_message,
            "startConversation": self._start_conversation,
            "acceptInvite": self._accept_invite,
            "rejectInvite": self._reject_invite,
            "leaveConversation": self._leave_conversation,
            "finishSpeaking": self._finish_speaking,
            "walkTo": self._walk_to,
            "agentSendMessage": self._agent_send_message,
            "agentWakeUp": self._agent_wake_up,
            "stop": self._stop,
            "start": self._start,
            "restart": self._restart,
        }

    def process_input(
        self,
        world: World,
        name: str,
        args: Optional[Dict[str, Any]],
        now: float,
    ) -> InputResult:
        """Validate and apply one command.

        Returns:
            ``InputResult.ok(value)`` on success, ``InputResult.error(message)``
            when the command broke a contract
        """
        try:
            parsed = parse_command(name, args)
            value = self._handlers[name](world, parsed, now)
        except TrustvilleError as exc:
            log_error(f"{LOG_TAG_ERROR} {name} failed: {exc}")
            return InputResult.error(str(exc))

        if self.verbose:
            log_command(f"{LOG_TAG_COMMAND} {name} -> {value}")
        return InputResult.ok(value)

    # ------------------------------------------------------------------
    # Entity commands
    # ------------------------------------------------------------------

    def _join(self, world: World, args: JoinArgs, now: float) -> Dict[str, Any]:
        entity = world.add_player(args.name, args.character, args.description, now, kind=args.kind)
        return {"player_id": entity.id, "kind": entity.kind}

    def _leave(self, world: World, args: LeaveArgs, now: float) -> Dict[str, Any]:
        removed = world.remove_player(args.player_id, now)
        return {"player_id": args.player_id, "removed": removed is not None}

    def _send_message(self, world: World, args: SendMessageArgs, now: float) -> Dict[str, Any]:
        message = world.send_message(args.player_id, args.text, args.message_uuid, now)
        conversation = world.conversations[message.conversation_id]
        return {
            "conversation_id": message.conversation_id,
            "message_uuid": message.message_uuid,
            "num_messages": conversation.num_messages,
        }

    def _start_conversation(self, world: World, args: StartConversationArgs, now: float) -> Dict[str, Any]:
        conversation = world.start_conversation(args.player_id, args.invitee_ids, now)
        return {"conversation_id": conversation.id, "status": conversation.status}

    def _accept_invite(self, world: World, args: ConversationActionArgs, now: float) -> Dict[str, Any]:
        conversation = world.accept_invite(args.player_id, args.conversation_id, now)
        return {"conversation_id": conversation.id, "status": conversation.status}

    def _reject_invite(self, world: World, args: ConversationActionArgs, now: float) -> Dict[str, Any]:
        conversation = world.reject_invite(args.player_id, args.conversation_id, now)
        return {"conversation_id": conversation.id, "status": conversation.status}

    def _leave_conversation(self, world: World, args: ConversationActionArgs, now: float) -> Dict[str, Any]:
        conversation = world.leave_conversation(args.player_id, args.conversation_id, now)
        return {"conversation_id": conversation.id, "status": conversation.status}

    def _finish_speaking(self, world: World, args: ConversationActionArgs, now: float) -> Dict[str, Any]:
        conversation = world.finish_speaking(args.player_id, args.conversation_id, now)
        return {"conversation_id": conversation.id, "status": conversation.status}

    def _walk_to(self, world: World, args: WalkToArgs, now: float) -> Dict[str, Any]:
        entity = world.walk_to(args.player_id, args.destination, now)
        return {"player_id": entity.id, "destination": args.destination.model_dump()}

    def _agent_send_message(self, world: World, args: AgentSendMessageArgs, now: float) -> Dict[str, Any]:
        world.require_agent(args.agent_id)
        message = world.send_message(args.agent_id, args.text, args.message_uuid, now)
        if args.leave_conversation:
            world.leave_conversation(args.agent_id, message.conversation_id, now)
        return {
            "conversation_id": message.conversation_id,
            "message_uuid": message.message_uuid,
            "left": args.leave_conversation,
        }

    def _agent_wake_up(self, world: World, args: AgentWakeUpArgs, now: float) -> Dict[str, Any]:
        agent = world.wake_agent(args.agent_id, now)
        return {"agent_id": agent.id, "status": agent.status}

    # ------------------------------------------------------------------
    # Lifecycle commands
    # ------------------------------------------------------------------

    def _stop(self, world: World, args: CommandArgs, now: float) -> Dict[str, Any]:
        self.engine_state.running = False
        return {"running": False}

    def _start(self, world: World, args: CommandArgs, now: float) -> Dict[str, Any]:
        self.engine_state.running = True
        return {"running": True}

    def _restart(self, world: World, args: CommandArgs, now: float) -> Dict[str, Any]:
        world.restart(now)
        self.engine_state.generation_number += 1
        return {"generation_number": self.engine_state.generation_number}
