"""Entity models owned by a world: players, agents and conversations."""

from typing import Union

from .player import Player, ARRIVAL_EPSILON
from .agent import Agent, clamp
from .conversation import Conversation

# Anything that can walk and join conversations. Agent extends Player, so
# Player is the shared interface; the alias documents intent at call sites.
Participant = Union[Player, Agent]

__all__ = [
    "Player",
    "Agent",
    "Conversation",
    "Participant",
    "ARRIVAL_EPSILON",
    "clamp",
]
