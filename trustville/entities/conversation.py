"""
Conversation state machine.

States: ``waiting -> active -> ended``. A waiting conversation can also go
straight to ``ended`` when every invitee declines and only the creator is left,
or when nobody answers an invitation within the inactivity timeout.

Turn-taking is strict: while ``current_speaker`` is set, nobody else may post.
The floor is released by ``finish_speaking`` or when ``speaking_until`` lapses
on a later tick. Deadlines are evaluated lazily in ``tick`` and compare with a
strict ``now > deadline``.

Methods only mutate this record and return what the caller must persist
(e.g. the new ``MessageRecord``). Keeping member entities in step
(``conversation_id``/status) is the world's job.
"""

from typing import List, Optional

from pydantic import BaseModel, Field

from trustville.config import Config
from trustville.errors import ConversationError, TurnViolationError
from trustville.schemas import ConversationStatus, LastMessage, MessageRecord


class Conversation(BaseModel):
    """A live or archived conversation between two or more entities."""

    id: str
    creator: str
    created: float
    ended: Optional[float] = None
    last_message: Optional[LastMessage] = None
    num_messages: int = 0
    participants: List[str] = Field(default_factory=list)
    invited: List[str] = Field(default_factory=list)
    status: ConversationStatus = "waiting"
    current_speaker: Optional[str] = None
    speaking_until: Optional[float] = None
    inactivity_timeout: Optional[float] = None

    @classmethod
    def create(
        cls,
        conversation_id: str,
        creator: str,
        invited: List[str],
        now: float,
    ) -> "Conversation":
        """Start a conversation.

        A single invitee joins immediately and the conversation is ``active``.
        Several invitees produce a ``waiting`` conversation that activates once
        every invitee has answered, or ends if nobody answers for
        ``INACTIVITY_TIMEOUT_SECONDS``.

        Raises:
            ConversationError: If there is nobody to invite
        """
        invitees: List[str] = []
        for peer_id in invited:
            if peer_id != creator and peer_id not in invitees:
                invitees.append(peer_id)
        if not invitees:
            raise ConversationError(f"{creator} must invite someone other than themselves")

        if len(invitees) == 1:
            return cls(
                id=conversation_id,
                creator=creator,
                created=now,
                participants=[creator, invitees[0]],
                invited=[],
                status="active",
                inactivity_timeout=now + Config.TURN_HANDOFF_TIMEOUT_SECONDS,
            )

        return cls(
            id=conversation_id,
            creator=creator,
            created=now,
            participants=[creator],
            invited=invitees,
            status="waiting",
            inactivity_timeout=now + Config.INACTIVITY_TIMEOUT_SECONDS,
        )

    # ------------------------------------------------------------------
    # Transitions
    # ------------------------------------------------------------------

    def accept_invite(self, peer_id: str, now: float) -> None:
        if peer_id not in self.invited:
            raise ConversationError(f"{peer_id} is not invited to conversation {self.id}")
        self.invited.remove(peer_id)
        self.participants.append(peer_id)
        self._activate_if_answered(now)

    def reject_invite(self, peer_id: str, now: float) -> None:
        if peer_id not in self.invited:
            raise ConversationError(f"{peer_id} is not invited to conversation {self.id}")
        self.invited.remove(peer_id)
        if not self.invited and len(self.participants) <= 1:
            self.end(now)
            return
        self._activate_if_answered(now)

    def add_message(self, author: str, text: str, message_uuid: str, now: float) -> MessageRecord:
        """Post a message and give ``author`` the floor.

        Raises:
            ConversationError: If the author is not a participant or the conversation is not active
            TurnViolationError: If another participant currently holds the floor
        """
        if author not in self.participants:
            raise ConversationError(f"{author} is not a participant of conversation {self.id}")
        if self.status != "active":
            raise ConversationError(f"Conversation {self.id} is {self.status}, not active")
        if self.current_speaker is not None and self.current_speaker != author:
            raise TurnViolationError(
                conversation_id=self.id,
                author=author,
                current_speaker=self.current_speaker,
            )

        self.last_message = LastMessage(
            author=author,
            text=text,
            timestamp=now,
            message_uuid=message_uuid,
        )
        self.num_messages += 1
        self.current_speaker = author
        self.speaking_until = now + Config.SPEAKING_GRACE_SECONDS
        self.inactivity_timeout = now + Config.INACTIVITY_TIMEOUT_SECONDS

        return MessageRecord(
            conversation_id=self.id,
            message_uuid=message_uuid,
            author=author,
            text=text,
            timestamp=now,
        )

    def finish_speaking(self, peer_id: str, now: float) -> None:
        if self.current_speaker != peer_id:
            raise ConversationError(f"{peer_id} is not the current speaker of conversation {self.id}")
        self._release_floor()
        self.inactivity_timeout = now + Config.TURN_HANDOFF_TIMEOUT_SECONDS

    def leave(self, peer_id: str, now: float) -> None:
        if peer_id not in self.participants and peer_id not in self.invited:
            raise ConversationError(f"{peer_id} is not part of conversation {self.id}")

        if peer_id in self.participants:
            self.participants.remove(peer_id)
        if peer_id in self.invited:
            self.invited.remove(peer_id)
        if self.current_speaker == peer_id:
            self._release_floor()

        # Needs two live participants to continue.
        if len(self.participants) <= 1:
            self.end(now)
            return
        self._activate_if_answered(now)

    def tick(self, now: float) -> bool:
        """Expire lapsed deadlines. Returns True once the conversation has ended."""
        if self.status == "waiting":
            if self.inactivity_timeout is not None and now > self.inactivity_timeout:
                self.end(now)
        elif self.status == "active":
            if self.speaking_until is not None and now > self.speaking_until:
                self._release_floor()
            if self.inactivity_timeout is not None and now > self.inactivity_timeout:
                self.end(now)
        return self.is_finished()

    def end(self, now: float) -> None:
        if self.status == "ended":
            return
        self.status = "ended"
        self.ended = now
        self._release_floor()
        self.inactivity_timeout = None

    def _release_floor(self) -> None:
        self.current_speaker = None
        self.speaking_until = None

    def _activate_if_answered(self, now: float) -> None:
        if self.status != "waiting":
            return
        if not self.invited and len(self.participants) >= 2:
            self.status = "active"
            self.inactivity_timeout = now + Config.TURN_HANDOFF_TIMEOUT_SECONDS
        else:
            # Each answer restarts the wait for the remaining invitees.
            self.inactivity_timeout = now + Config.INACTIVITY_TIMEOUT_SECONDS

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def is_finished(self) -> bool:
        return self.status == "ended"

    def members(self) -> List[str]:
        """Participants followed by outstanding invitees."""
        return [*self.participants, *self.invited]

    def can_speak(self, peer_id: str) -> bool:
        return (
            self.status == "active"
            and peer_id in self.participants
            and self.current_speaker in (None, peer_id)
        )

    def next_speaker(self) -> Optional[str]:
        """Round-robin successor of the current speaker."""
        if not self.participants:
            return None
        if self.current_speaker is None or self.current_speaker not in self.participants:
            return self.participants[0]
        index = self.participants.index(self.current_speaker)
        return self.participants[(index + 1) % len(self.participants)]

    def needs_attention(self, now: float) -> bool:
        """True when a deadline has lapsed or the inactivity timeout is under 10s away."""
        if self.status != "active":
            return False
        if self.speaking_until is not None and now > self.speaking_until:
            return True
        return self.inactivity_timeout is not None and now > self.inactivity_timeout - 10

    def summary(self) -> str:
        if self.status == "waiting":
            return f"Waiting for {len(self.invited)} participants to join"
        state = "Active" if self.status == "active" else "Ended"
        return (
            f"{state} conversation with {len(self.participants)} participants "
            f"({self.num_messages} messages)"
        )
