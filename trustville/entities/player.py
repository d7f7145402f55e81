"""
Player entity: position, straight-line movement and conversation membership.

Players are the human-controlled participants of a world. ``Agent`` extends
this class, so every world operation that only needs ``id``, ``position`` and
``conversation_id`` treats both kinds through this one interface.

Status invariants kept by the methods below:
- ``conversation_id`` is set exactly when ``status == "talking"``
- ``pathfinding`` is set exactly when ``status == "walking"``
"""

import math
from typing import ClassVar, Optional

from pydantic import BaseModel, Field

from trustville.errors import EntityBusyError
from trustville.schemas import EntityKind, Pathfinding, Point, PlayerStatus

# Remaining distance below which a waypoint counts as reached.
ARRIVAL_EPSILON = 0.1


class Player(BaseModel):
    """A moving, conversing participant of a world."""

    kind: ClassVar[EntityKind] = "player"

    id: str
    name: str
    character: str = Field(..., description="Sprite/character key used by clients")
    position: Point = Field(default_factory=Point)
    # Unit vector of the latest movement direction; players start facing "down".
    facing: Point = Field(default_factory=lambda: Point(x=0.0, y=1.0))
    speed: float = Field(1.0, gt=0, description="World units per simulated second")
    conversation_id: Optional[str] = None
    status: PlayerStatus = "idle"
    last_activity: float = 0.0
    pathfinding: Optional[Pathfinding] = None

    # ------------------------------------------------------------------
    # Movement
    # ------------------------------------------------------------------

    def walk_to(self, destination: Point, now: float) -> None:
        """Start walking in a straight line towards ``destination``.

        Raises:
            EntityBusyError: If the entity is talking (or asleep, for agents)
        """
        if self.conversation_id is not None or self.status not in ("idle", "walking", "thinking"):
            raise EntityBusyError(f"{self.name} cannot walk while {self.status}")

        destination = Point.model_validate(destination)
        self.pathfinding = Pathfinding(
            destination=destination,
            path=[destination],
            current_step=0,
        )
        self.status = "walking"
        self.last_activity = now

    def stop_walking(self, now: float) -> None:
        self.pathfinding = None
        if self.status == "walking":
            self.status = "idle"
        self.last_activity = now

    def _advance_along_path(self, tick_duration: float) -> None:
        route = self.pathfinding
        if self.status != "walking" or route is None:
            return

        if route.current_step >= len(route.path):
            self._arrive(route.destination)
            return

        target = route.path[route.current_step]
        dx = target.x - self.position.x
        dy = target.y - self.position.y
        distance = math.hypot(dx, dy)

        if distance < ARRIVAL_EPSILON:
            route.current_step += 1
            if route.current_step >= len(route.path):
                self._arrive(route.destination)
            return

        # Never step past the waypoint.
        step = min(self.speed * tick_duration, distance)
        unit_x, unit_y = dx / distance, dy / distance
        self.position = Point(x=self.position.x + unit_x * step, y=self.position.y + unit_y * step)
        self.facing = Point(x=unit_x, y=unit_y)

        if distance - step < ARRIVAL_EPSILON:
            route.current_step += 1
            if route.current_step >= len(route.path):
                self._arrive(route.destination)

    def _arrive(self, destination: Point) -> None:
        self.position = Point(x=destination.x, y=destination.y)
        self.pathfinding = None
        self.status = "idle"

    def tick(self, now: float, tick_duration: float) -> None:
        """Advance one tick of movement."""
        self._advance_along_path(tick_duration)

    # ------------------------------------------------------------------
    # Conversation membership
    # ------------------------------------------------------------------

    def join_conversation(self, conversation_id: str, now: float) -> None:
        self.pathfinding = None
        self.conversation_id = conversation_id
        self.status = "talking"
        self.last_activity = now

    def leave_conversation(self, now: float) -> None:
        self.conversation_id = None
        if self.status == "talking":
            self.status = "idle"
        self.last_activity = now

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def is_near(self, position: Point, radius: float = 2.0) -> bool:
        return self.position.distance_to(position) <= radius

    def activity_description(self) -> str:
        if self.status == "walking":
            return f"{self.name} is walking"
        if self.status == "talking":
            return f"{self.name} is in a conversation"
        if self.status == "thinking":
            return f"{self.name} is thinking"
        return f"{self.name} is standing around"

    def can_start_conversation(self) -> bool:
        return self.status == "idle" and self.conversation_id is None

    def is_available(self) -> bool:
        return self.status != "talking" or self.conversation_id is None
