"""
World aggregate: owns every player, agent and conversation of one town.

All entity operations are synchronous in-memory mutations. Anything that
must reach storage besides the live entities themselves (description records,
chat messages, archived entities, the wipe requested by ``restart``) is queued
in an outbox and written by ``save()``. An engine step therefore has exactly
two async boundaries: ``World.load`` at the start and ``World.save`` at the end.

Storage layout (collection / scope / key):
- worlds / {world_id} / {world_id}          -> WorldRecord
- players|agents|conversations / {world_id} / {entity_id}   live entities
- archived_players|archived_agents|archived_conversations / {world_id} / {entity_id}
- descriptions / {world_id} / {entity_id}
- messages / {world_id} / {conversation_id}-{message_uuid}

Entity invariants maintained here:
- an entity's ``conversation_id`` names a live conversation listing it as a participant
- an entity is in at most one conversation at a time
- ended conversations are archived and dropped from the live map immediately
"""

import random
from typing import Any, Dict, Iterable, List, Optional, Sequence, Tuple, Union

from .config import Config
from .entities import Agent, Conversation, Participant, Player
from .errors import (
    AlreadyInConversationError,
    ConversationError,
    EntityBusyError,
    EntityNotFoundError,
    WorldNotFoundError,
)
from .persistence import (
    AGENTS,
    CONVERSATIONS,
    DESCRIPTIONS,
    MESSAGES,
    PLAYERS,
    WORLDS,
    DocumentStore,
)
from .schemas import EntityDescription, EntityKind, MessageRecord, Point, WorldRecord

ARCHIVED_PLAYERS = "archived_players"
ARCHIVED_AGENTS = "archived_agents"
ARCHIVED_CONVERSATIONS = "archived_conversations"

# Collections wiped by restart().
WORLD_SCOPED_COLLECTIONS = (
    PLAYERS,
    AGENTS,
    CONVERSATIONS,
    ARCHIVED_PLAYERS,
    ARCHIVED_AGENTS,
    ARCHIVED_CONVERSATIONS,
    DESCRIPTIONS,
    MESSAGES,
)


class World:
    """Aggregate root for one simulation instance.

    Args:
        store: DocumentStore the world loads from and saves to
        world_id: Identifier of the world record
        rng: Random source for agent spawn positions
        tick_duration: Simulated seconds one tick moves entities
    """

    def __init__(
        self,
        store: DocumentStore,
        world_id: str,
        *,
        rng: Optional[random.Random] = None,
        tick_duration: Optional[float] = None,
    ) -> None:
        self.store = store
        self.id = world_id
        self.rng = rng or random.Random()
        self.tick_duration = tick_duration or Config.TICK_DURATION_SECONDS

        self.next_id = 0
        self.last_viewed = 0.0
        self.processed_input_number: Optional[int] = None
        self.players: Dict[str, Player] = {}
        self.agents: Dict[str, Agent] = {}
        self.conversations: Dict[str, Conversation] = {}

        # Outbox flushed by save(); each entry is (collection, key, document).
        self._pending_writes: List[Tuple[str, str, Dict[str, Any]]] = []
        # Live documents to remove after their archive copy is written.
        self._pending_deletes: List[Tuple[str, str]] = []
        self._reset_pending = False

    # ------------------------------------------------------------------
    # Construction & persistence
    # ------------------------------------------------------------------

    @classmethod
    async def create(cls, store: DocumentStore, world_id: str, **kwargs) -> "World":
        """Create and persist an empty world."""
        world = cls(store, world_id, **kwargs)
        await store.upsert(WORLDS, world_id, world_id, world.record().model_dump(mode="json"))
        return world

    @classmethod
    async def load(cls, store: DocumentStore, world_id: str, **kwargs) -> "World":
        """Rebuild a world and its live entities from storage.

        Raises:
            WorldNotFoundError: If no world record exists for ``world_id``
        """
        document = await store.get(WORLDS, world_id, world_id)
        if document is None:
            raise WorldNotFoundError(world_id=world_id)

        record = WorldRecord.model_validate(document)
        world = cls(store, world_id, **kwargs)
        world.next_id = record.next_id
        world.last_viewed = record.last_viewed
        world.processed_input_number = record.processed_input_number

        for doc in await store.list_documents(PLAYERS, world_id):
            player = Player.model_validate(doc)
            world.players[player.id] = player
        for doc in await store.list_documents(AGENTS, world_id):
            agent = Agent.model_validate(doc)
            world.agents[agent.id] = agent
        for doc in await store.list_documents(CONVERSATIONS, world_id):
            conversation = Conversation.model_validate(doc)
            world.conversations[conversation.id] = conversation
        return world

    async def save(self) -> None:
        """Flush the outbox, then upsert every live entity and the world record.

        Each document is written independently. If a write fails, the documents
        before it stay written and the unwritten outbox entries are retried by
        the next save().
        """
        store = self.store

        if self._reset_pending:
            for collection in WORLD_SCOPED_COLLECTIONS:
                await store.delete_scope(collection, self.id)
            self._reset_pending = False

        while self._pending_writes:
            collection, key, document = self._pending_writes[0]
            await store.upsert(collection, self.id, key, document)
            self._pending_writes.pop(0)

        while self._pending_deletes:
            collection, key = self._pending_deletes[0]
            await store.delete(collection, self.id, key)
            self._pending_deletes.pop(0)

        for player in self.players.values():
            await store.upsert(PLAYERS, self.id, player.id, player.model_dump(mode="json"))
        for agent in self.agents.values():
            await store.upsert(AGENTS, self.id, agent.id, agent.model_dump(mode="json"))
        for conversation in self.conversations.values():
            await store.upsert(CONVERSATIONS, self.id, conversation.id, conversation.model_dump(mode="json"))

        await store.upsert(WORLDS, self.id, self.id, self.record().model_dump(mode="json"))

    def record(self) -> WorldRecord:
        return WorldRecord(
            id=self.id,
            next_id=self.next_id,
            last_viewed=self.last_viewed,
            processed_input_number=self.processed_input_number,
        )

    def has_pending_writes(self) -> bool:
        return bool(self._pending_writes or self._pending_deletes or self._reset_pending)

    def _archive(self, entity: Union[Player, Conversation]) -> None:
        if isinstance(entity, Conversation):
            live, archive = CONVERSATIONS, ARCHIVED_CONVERSATIONS
        elif isinstance(entity, Agent):
            live, archive = AGENTS, ARCHIVED_AGENTS
        else:
            live, archive = PLAYERS, ARCHIVED_PLAYERS
        self._pending_writes.append((archive, entity.id, entity.model_dump(mode="json")))
        self._pending_deletes.append((live, entity.id))

    # ------------------------------------------------------------------
    # Identifiers & lookups
    # ------------------------------------------------------------------

    def allocate_id(self) -> str:
        """Return the current counter as a string and advance it."""
        allocated = str(self.next_id)
        self.next_id += 1
        return allocated

    def get_participant(self, entity_id: str) -> Optional[Participant]:
        return self.players.get(entity_id) or self.agents.get(entity_id)

    def require_participant(self, entity_id: str) -> Participant:
        entity = self.get_participant(entity_id)
        if entity is None:
            raise EntityNotFoundError("player", entity_id)
        return entity

    def require_agent(self, agent_id: str) -> Agent:
        agent = self.agents.get(agent_id)
        if agent is None:
            raise EntityNotFoundError("agent", agent_id)
        return agent

    def require_conversation(self, conversation_id: str) -> Conversation:
        conversation = self.conversations.get(conversation_id)
        if conversation is None:
            raise EntityNotFoundError("conversation", conversation_id)
        return conversation

    def participants(self) -> List[Participant]:
        """Players followed by agents."""
        return [*self.players.values(), *self.agents.values()]

    def find_nearby_participants(self, position: Point, radius: float) -> List[Participant]:
        """Entities within ``radius`` of ``position`` (boundary included)."""
        return [entity for entity in self.participants() if entity.position.distance_to(position) <= radius]

    # ------------------------------------------------------------------
    # Membership
    # ------------------------------------------------------------------

    def add_player(
        self,
        name: str,
        character: str,
        description: str,
        now: float,
        kind: EntityKind = "player",
    ) -> Participant:
        """Create a player (spawned at the origin) or an agent (random spawn)."""
        entity_id = self.allocate_id()
        if kind == "agent":
            entity: Participant = Agent.spawn(
                agent_id=entity_id,
                name=name,
                character=character,
                now=now,
                rng=self.rng,
            )
            self.agents[entity_id] = entity
        else:
            entity = Player(id=entity_id, name=name, character=character, last_activity=now)
            self.players[entity_id] = entity

        description_record = EntityDescription(
            world_id=self.id,
            entity_id=entity_id,
            kind=kind,
            name=name,
            character=character,
            description=description,
        )
        self._pending_writes.append((DESCRIPTIONS, entity_id, description_record.model_dump(mode="json")))
        return entity

    def add_agent(self, name: str, character: str, description: str, now: float) -> Agent:
        return self.add_player(name, character, description, now, kind="agent")

    def remove_player(self, entity_id: str, now: float) -> Optional[Participant]:
        """Leave any conversation, then archive the entity. No-op if absent."""
        entity = self.get_participant(entity_id)
        if entity is None:
            return None

        if entity.conversation_id is not None:
            self.leave_conversation(entity_id, entity.conversation_id, now)
        for conversation in list(self.conversations.values()):
            if entity_id in conversation.invited:
                self.reject_invite(entity_id, conversation.id, now)

        self.players.pop(entity_id, None)
        self.agents.pop(entity_id, None)
        self._archive(entity)
        return entity

    # ------------------------------------------------------------------
    # Conversations
    # ------------------------------------------------------------------

    def _ensure_free(self, entity: Participant, target: Optional[str] = None) -> None:
        if entity.conversation_id is not None and entity.conversation_id != target:
            raise AlreadyInConversationError(entity.id, entity.conversation_id)
        if entity.status == "sleeping":
            raise EntityBusyError(f"{entity.name} is sleeping")

    def start_conversation(
        self,
        creator_id: str,
        invitee_ids: Union[str, Sequence[str]],
        now: float,
    ) -> Conversation:
        """Create a conversation.

        One invitee: both parties join at once and the conversation is active.
        Several invitees: only the creator joins; the rest must accept.

        Raises:
            EntityNotFoundError: If any id is unknown
            AlreadyInConversationError: If any party is already in a conversation
            EntityBusyError: If any party is asleep
        """
        if isinstance(invitee_ids, str):
            invitee_ids = [invitee_ids]

        creator = self.require_participant(creator_id)
        invitees = [self.require_participant(peer_id) for peer_id in invitee_ids]
        self._ensure_free(creator)
        for invitee in invitees:
            self._ensure_free(invitee)

        conversation = Conversation.create(self.allocate_id(), creator_id, list(invitee_ids), now)
        for member_id in conversation.participants:
            self.require_participant(member_id).join_conversation(conversation.id, now)

        self.conversations[conversation.id] = conversation
        return conversation

    def accept_invite(self, entity_id: str, conversation_id: str, now: float) -> Conversation:
        entity = self.require_participant(entity_id)
        conversation = self.require_conversation(conversation_id)
        self._ensure_free(entity)

        conversation.accept_invite(entity_id, now)
        entity.join_conversation(conversation.id, now)
        return conversation

    def reject_invite(self, entity_id: str, conversation_id: str, now: float) -> Conversation:
        self.require_participant(entity_id)
        conversation = self.require_conversation(conversation_id)

        conversation.reject_invite(entity_id, now)
        if conversation.is_finished():
            self.end_conversation(conversation.id, now)
        return conversation

    def leave_conversation(self, entity_id: str, conversation_id: str, now: float) -> Conversation:
        entity = self.require_participant(entity_id)
        conversation = self.require_conversation(conversation_id)

        conversation.leave(entity_id, now)
        if entity.conversation_id == conversation.id:
            entity.leave_conversation(now)
        if conversation.is_finished():
            self.end_conversation(conversation.id, now)
        return conversation

    def finish_speaking(self, entity_id: str, conversation_id: str, now: float) -> Conversation:
        entity = self.require_participant(entity_id)
        conversation = self.require_conversation(conversation_id)

        conversation.finish_speaking(entity_id, now)
        entity.last_activity = now
        return conversation

    def send_message(
        self,
        author_id: str,
        text: str,
        message_uuid: str,
        now: float,
    ) -> MessageRecord:
        """Post to the author's current conversation.

        Raises:
            ConversationError: If the author is not in a conversation or the post is refused
        """
        author = self.require_participant(author_id)
        if author.conversation_id is None:
            raise ConversationError(f"{author_id} is not in a conversation")

        conversation = self.require_conversation(author.conversation_id)
        message = conversation.add_message(author_id, text, message_uuid, now)
        author.last_activity = now

        key = f"{conversation.id}-{message_uuid}"
        self._pending_writes.append((MESSAGES, key, message.model_dump(mode="json")))
        return message

    def end_conversation(self, conversation_id: str, now: float) -> Optional[Conversation]:
        """Release every member, archive the conversation. No-op if absent."""
        conversation = self.conversations.pop(conversation_id, None)
        if conversation is None:
            return None

        for entity in self.participants():
            if entity.conversation_id == conversation.id:
                entity.leave_conversation(now)

        conversation.end(now)
        self._archive(conversation)
        return conversation

    # ------------------------------------------------------------------
    # Movement & agents
    # ------------------------------------------------------------------

    def walk_to(self, entity_id: str, destination: Point, now: float) -> Participant:
        entity = self.require_participant(entity_id)
        entity.walk_to(destination, now)
        return entity

    def wake_agent(self, agent_id: str, now: float) -> Agent:
        agent = self.require_agent(agent_id)
        if agent.status == "sleeping":
            agent.wake_up(now)
        return agent

    # ------------------------------------------------------------------
    # Simulation
    # ------------------------------------------------------------------

    def tick(self, now: float) -> List[str]:
        """Advance players, then agents, then conversations by one tick.

        Returns:
            Ids of conversations that ended during this tick
        """
        for player in self.players.values():
            player.tick(now, self.tick_duration)
        for agent in self.agents.values():
            agent.tick(now, self.tick_duration)

        finished = [
            conversation.id
            for conversation in self.conversations.values()
            if conversation.tick(now)
        ]
        for conversation_id in finished:
            self.end_conversation(conversation_id, now)

        self.last_viewed = now
        return finished

    def restart(self, now: float) -> None:
        """Wipe every entity and archive of this world and reset the id counter.

        Destructive: the next save() deletes all stored players, agents,
        conversations (live and archived), descriptions and messages.
        """
        self.players.clear()
        self.agents.clear()
        self.conversations.clear()
        self.next_id = 0
        self.last_viewed = now

        self._pending_writes.clear()
        self._pending_deletes.clear()
        self._reset_pending = True

    def stats(self) -> Dict[str, Any]:
        return {
            "players": len(self.players),
            "agents": len(self.agents),
            "conversations": len(self.conversations),
            "next_id": self.next_id,
            "last_viewed": self.last_viewed,
        }

    # ------------------------------------------------------------------
    # Stored history
    # ------------------------------------------------------------------

    async def messages(self, conversation_id: str) -> List[MessageRecord]:
        """Persisted messages of a conversation, oldest first."""
        records = [
            MessageRecord.model_validate(doc)
            for doc in await self.store.list_documents(MESSAGES, self.id)
            if doc.get("conversation_id") == conversation_id
        ]
        records.sort(key=lambda record: record.timestamp)
        return records

    async def description(self, entity_id: str) -> Optional[EntityDescription]:
        document = await self.store.get(DESCRIPTIONS, self.id, entity_id)
        return EntityDescription.model_validate(document) if document else None

    async def archived_conversation(self, conversation_id: str) -> Optional[Conversation]:
        document = await self.store.get(ARCHIVED_CONVERSATIONS, self.id, conversation_id)
        return Conversation.model_validate(document) if document else None

    async def archived_participant(self, entity_id: str) -> Optional[Participant]:
        document = await self.store.get(ARCHIVED_AGENTS, self.id, entity_id)
        if document is not None:
            return Agent.model_validate(document)
        document = await self.store.get(ARCHIVED_PLAYERS, self.id, entity_id)
        return Player.model_validate(document) if document else None
