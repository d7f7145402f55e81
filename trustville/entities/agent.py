"""
Agent entity: a Player with trust, reputation, emotions, goals and a sleep cycle.

Trust bookkeeping:
- ``trust_score`` is the agent's global reputation, clamped to [0, 100]
- ``social_connections`` hold a private trust level per peer, also [0, 100]
- every trust change is appended to ``reputation_history`` (newest last,
  capped at Config.REPUTATION_HISTORY_LIMIT entries)

Emotional coupling of trust changes is asymmetric: gains lift happiness more
than equal losses lower it, and losses raise stress more than gains relieve it.
``update_trust_score`` is therefore not its own inverse.
"""

import random
import time
from typing import Any, ClassVar, Dict, List, Optional

from pydantic import Field

from trustville.config import Config
from trustville.entities.player import Player
from trustville.errors import EntityBusyError
from trustville.schemas import (
    AgentStatus,
    EmotionalState,
    EntityKind,
    Goal,
    Point,
    ReputationEntry,
    SocialConnection,
)

# Per-tick homeostasis deltas, calibrated for a 16ms tick.
ENERGY_RECOVERY_PER_TICK = 0.1
STRESS_RELIEF_PER_TICK = 0.05
SOCIABILITY_DECAY_PER_TICK = 0.1
# Seconds without activity before sociability starts to decay.
LONELINESS_AFTER_SECONDS = 60.0

REPUTATION_WINDOW_SECONDS = 24 * 60 * 60


def clamp(value: float, low: float = 0.0, high: float = 100.0) -> float:
    return max(low, min(high, value))


class Agent(Player):
    """Autonomous participant with reputation and mood."""

    kind: ClassVar[EntityKind] = "agent"

    status: AgentStatus = "idle"
    trust_score: float = 50.0
    reputation_history: List[ReputationEntry] = Field(default_factory=list)
    social_connections: Dict[str, SocialConnection] = Field(default_factory=dict)
    current_goal: Optional[Goal] = None
    emotional_state: EmotionalState = Field(default_factory=EmotionalState)
    last_wake_up: float = 0.0
    sleep_until: Optional[float] = None
    memory_importance_threshold: float = 5.0

    @classmethod
    def spawn(
        cls,
        *,
        agent_id: str,
        name: str,
        character: str,
        now: float,
        rng: Optional[random.Random] = None,
        world_size: Optional[float] = None,
    ) -> "Agent":
        """Create an agent at a random position with neutral trust and mid-range emotions."""
        rng = rng or random.Random()
        size = Config.WORLD_SIZE if world_size is None else world_size
        return cls(
            id=agent_id,
            name=name,
            character=character,
            position=Point(x=rng.random() * size, y=rng.random() * size),
            last_activity=now,
            last_wake_up=now,
        )

    # ------------------------------------------------------------------
    # Trust & reputation
    # ------------------------------------------------------------------

    def update_trust_score(
        self,
        delta: float,
        action: str,
        context: str = "",
        now: Optional[float] = None,
    ) -> None:
        """Apply a signed change to the global trust score.

        Args:
            delta: Signed trust change; the result is clamped to [0, 100]
            action: Short label of what caused the change
            context: Free-form description recorded in the history
            now: Timestamp of the change (defaults to wall clock)
        """
        now = time.time() if now is None else now
        self.trust_score = clamp(self.trust_score + delta)

        self.reputation_history.append(
            ReputationEntry(timestamp=now, action=action, impact=delta, context=context)
        )
        overflow = len(self.reputation_history) - Config.REPUTATION_HISTORY_LIMIT
        if overflow > 0:
            del self.reputation_history[:overflow]

        emotions = self.emotional_state
        if delta > 0:
            emotions.happiness = clamp(emotions.happiness + delta * 0.5)
            emotions.stress = clamp(emotions.stress - delta * 0.3)
        else:
            emotions.stress = clamp(emotions.stress + abs(delta) * 0.4)
            emotions.happiness = clamp(emotions.happiness + delta * 0.3)

        self.last_activity = now

    def update_social_connection(
        self,
        peer_id: str,
        trust_delta: float,
        now: Optional[float] = None,
    ) -> SocialConnection:
        """Record an interaction with ``peer_id`` and shift the private trust level."""
        now = time.time() if now is None else now
        connection = self.social_connections.get(peer_id)
        if connection is None:
            connection = SocialConnection()
            self.social_connections[peer_id] = connection

        connection.trust_level = clamp(connection.trust_level + trust_delta)
        connection.interaction_count += 1
        connection.last_interaction = now

        # Any interaction, friendly or not, counts as social contact.
        self.emotional_state.sociability = clamp(self.emotional_state.sociability + 1)
        self.last_activity = now
        return connection

    def trust_level(self, peer_id: str) -> float:
        connection = self.social_connections.get(peer_id)
        return connection.trust_level if connection else 50.0

    def should_trust(self, peer_id: str, threshold: float = 60.0) -> bool:
        """Blend private history, global reputation and current mood into a yes/no."""
        score = 0.7 * self.trust_level(peer_id) + 0.3 * self.trust_score
        score += (self.emotional_state.happiness - self.emotional_state.stress) * 0.1
        return score >= threshold

    def reputation_summary(self, now: Optional[float] = None) -> Dict[str, Any]:
        now = time.time() if now is None else now
        recent = [
            entry for entry in self.reputation_history
            if now - entry.timestamp < REPUTATION_WINDOW_SECONDS
        ]
        return {
            "trust_score": self.trust_score,
            "recent_actions": len(recent),
            "social_connections": len(self.social_connections),
            "emotional_state": self.emotional_state.model_dump(),
        }

    @property
    def mood(self) -> float:
        """Single 0-100 mood value; 50 is neutral."""
        emotions = self.emotional_state
        return clamp((emotions.happiness + (100.0 - emotions.stress)) / 2.0)

    # ------------------------------------------------------------------
    # Goals
    # ------------------------------------------------------------------

    def set_goal(
        self,
        goal_type: str,
        target: Optional[str] = None,
        priority: float = 1.0,
        deadline: Optional[float] = None,
    ) -> Goal:
        self.current_goal = Goal(type=goal_type, target=target, priority=priority, deadline=deadline)
        return self.current_goal

    def clear_goal(self) -> None:
        self.current_goal = None

    # ------------------------------------------------------------------
    # Sleep cycle
    # ------------------------------------------------------------------

    def should_sleep(self, now: float) -> bool:
        hours_awake = (now - self.last_wake_up) / 3600.0
        return (
            self.emotional_state.energy < Config.LOW_ENERGY_THRESHOLD
            or hours_awake > Config.MAX_AWAKE_HOURS
        )

    def go_to_sleep(self, now: float, duration: Optional[float] = None) -> None:
        if self.conversation_id is not None:
            raise EntityBusyError(f"{self.name} cannot sleep during a conversation")

        duration = Config.SLEEP_DURATION_SECONDS if duration is None else duration
        self.pathfinding = None
        self.status = "sleeping"
        self.sleep_until = now + duration
        self.emotional_state.energy = clamp(self.emotional_state.energy + 20)
        self.last_activity = now

    def wake_up(self, now: float) -> None:
        self.status = "idle"
        self.sleep_until = None
        self.last_wake_up = now
        self.emotional_state.energy = 100.0
        self.emotional_state.stress = clamp(self.emotional_state.stress - 20)
        self.last_activity = now

    # ------------------------------------------------------------------
    # Tick
    # ------------------------------------------------------------------

    def tick(self, now: float, tick_duration: float) -> None:
        """Advance one tick: sleep gate, sleep trigger, movement, homeostasis."""
        if self.status == "sleeping":
            if self.sleep_until is None or now >= self.sleep_until:
                self.wake_up(now)
            return

        # Agents finish their conversation before falling asleep.
        if self.conversation_id is None and self.should_sleep(now):
            self.go_to_sleep(now)
            return

        self._advance_along_path(tick_duration)

        emotions = self.emotional_state
        emotions.energy = clamp(emotions.energy + ENERGY_RECOVERY_PER_TICK)
        emotions.stress = clamp(emotions.stress - STRESS_RELIEF_PER_TICK)
        if now - self.last_activity > LONELINESS_AFTER_SECONDS:
            emotions.sociability = clamp(emotions.sociability - SOCIABILITY_DECAY_PER_TICK)

    # ------------------------------------------------------------------
    # Player overrides
    # ------------------------------------------------------------------

    def walk_to(self, destination: Point, now: float) -> None:
        if self.status == "sleeping":
            raise EntityBusyError(f"{self.name} is sleeping")
        super().walk_to(destination, now)

    def join_conversation(self, conversation_id: str, now: float) -> None:
        super().join_conversation(conversation_id, now)
        self.emotional_state.sociability = clamp(self.emotional_state.sociability + 2)

    def activity_description(self) -> str:
        if self.status == "walking":
            return f"{self.name} is walking around"
        if self.status == "sleeping":
            return f"{self.name} is sleeping"
        return super().activity_description()

    def can_start_conversation(self) -> bool:
        return self.status not in ("sleeping", "talking") and self.conversation_id is None

    def is_available(self) -> bool:
        return self.status != "sleeping" and super().is_available()
