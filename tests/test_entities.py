"""Tests for player movement, agent homeostasis, sleep and trust bookkeeping."""

import math
import random

import pytest

from trustville.config import Config
from trustville.entities import Agent, Player
from trustville.errors import EntityBusyError
from trustville.schemas import Point


def make_agent(now: float = 0.0, **overrides) -> Agent:
    agent = Agent.spawn(agent_id="a1", name="Ada", character="f1", now=now, rng=random.Random(3))
    for field, value in overrides.items():
        setattr(agent, field, value)
    return agent


def test_walk_to_reaches_destination_within_bound():
    player = Player(id="p1", name="Pat", character="f2")
    destination = Point(x=3.0, y=4.0)
    tick_duration = 0.5
    bound = math.ceil(5.0 / (player.speed * tick_duration))

    player.walk_to(destination, now=0.0)
    assert player.status == "walking"

    for i in range(bound - 1):
        player.tick(now=float(i), tick_duration=tick_duration)
    assert player.status == "walking"

    player.tick(now=float(bound), tick_duration=tick_duration)
    assert player.position == destination
    assert player.status == "idle"
    assert player.pathfinding is None


def test_walk_updates_facing_towards_destination():
    player = Player(id="p1", name="Pat", character="f2")
    player.walk_to(Point(x=10.0, y=0.0), now=0.0)
    player.tick(now=0.0, tick_duration=1.0)

    assert player.position == Point(x=1.0, y=0.0)
    assert player.facing == Point(x=1.0, y=0.0)


def test_walk_to_rejected_while_talking():
    player = Player(id="p1", name="Pat", character="f2")
    player.join_conversation("c1", now=0.0)

    with pytest.raises(EntityBusyError):
        player.walk_to(Point(x=1.0, y=1.0), now=1.0)


def test_join_conversation_stops_walking():
    player = Player(id="p1", name="Pat", character="f2")
    player.walk_to(Point(x=5.0, y=5.0), now=0.0)
    player.join_conversation("c1", now=1.0)

    assert player.pathfinding is None
    assert player.status == "talking"

    player.leave_conversation(now=2.0)
    assert player.conversation_id is None
    assert player.status == "idle"


def test_agent_spawns_inside_world_bounds():
    agent = make_agent()
    assert 0 <= agent.position.x < Config.WORLD_SIZE
    assert 0 <= agent.position.y < Config.WORLD_SIZE
    assert agent.trust_score == 50.0
    assert agent.status == "idle"


def test_sleep_cycle():
    agent = make_agent(now=0.0)
    agent.emotional_state.energy = 20.0

    agent.tick(now=10.0, tick_duration=0.016)
    assert agent.status == "sleeping"
    assert agent.sleep_until == pytest.approx(10.0 + Config.SLEEP_DURATION_SECONDS)

    agent.tick(now=100.0, tick_duration=0.016)
    assert agent.status == "sleeping"

    agent.tick(now=agent.sleep_until, tick_duration=0.016)
    assert agent.status == "idle"
    assert agent.emotional_state.energy == 100.0
    assert agent.sleep_until is None


def test_agent_does_not_fall_asleep_mid_conversation():
    agent = make_agent(now=0.0)
    agent.join_conversation("c1", now=0.0)
    agent.emotional_state.energy = 5.0

    agent.tick(now=1.0, tick_duration=0.016)
    assert agent.status == "talking"


def test_sleeping_agent_cannot_walk():
    agent = make_agent(now=0.0)
    agent.go_to_sleep(now=0.0)

    with pytest.raises(EntityBusyError):
        agent.walk_to(Point(x=1.0, y=1.0), now=1.0)
    assert not agent.is_available()


def test_homeostasis_per_tick():
    agent = make_agent(now=0.0)
    agent.tick(now=61.0, tick_duration=0.016)

    emotions = agent.emotional_state
    assert emotions.energy == pytest.approx(80.1)
    assert emotions.stress == pytest.approx(19.95)
    # More than a minute since the last activity: sociability decays.
    assert emotions.sociability == pytest.approx(59.9)


def test_trust_update_is_asymmetric():
    agent = make_agent()

    agent.update_trust_score(10, "helped", "carried groceries", now=1.0)
    assert agent.trust_score == 60
    assert agent.emotional_state.happiness == pytest.approx(55.0)
    assert agent.emotional_state.stress == pytest.approx(17.0)

    agent.update_trust_score(-10, "lied", "about the groceries", now=2.0)
    assert agent.trust_score == 50
    assert agent.emotional_state.stress == pytest.approx(21.0)
    assert agent.emotional_state.happiness == pytest.approx(52.0)
    assert [entry.action for entry in agent.reputation_history] == ["helped", "lied"]


def test_trust_and_emotions_stay_clamped():
    agent = make_agent()
    rng = random.Random(7)

    for step in range(300):
        agent.update_trust_score(rng.uniform(-80, 80), "act", now=float(step))
        agent.update_social_connection(rng.choice(["b", "c"]), rng.uniform(-80, 80), now=float(step))

    assert 0 <= agent.trust_score <= 100
    for connection in agent.social_connections.values():
        assert 0 <= connection.trust_level <= 100
    for value in agent.emotional_state.model_dump().values():
        assert 0 <= value <= 100


def test_reputation_history_keeps_most_recent_entries():
    agent = make_agent()
    for i in range(150):
        agent.update_trust_score(0, f"a{i}", now=float(i))

    assert len(agent.reputation_history) == Config.REPUTATION_HISTORY_LIMIT
    assert agent.reputation_history[0].action == "a50"
    assert agent.reputation_history[-1].action == "a149"


def test_social_connection_defaults_and_sociability():
    agent = make_agent()
    assert agent.trust_level("b") == 50.0

    connection = agent.update_social_connection("b", 15, now=5.0)
    assert connection.trust_level == 65
    assert connection.interaction_count == 1
    assert connection.last_interaction == 5.0
    assert agent.emotional_state.sociability == 61


def test_should_trust_blends_peer_global_and_mood():
    agent = make_agent()
    # 0.7 * 50 + 0.3 * 50 + 0.1 * (50 - 20) = 53
    assert not agent.should_trust("b")
    assert agent.should_trust("b", threshold=53)

    agent.update_social_connection("b", 20, now=1.0)
    assert agent.should_trust("b")


def test_reputation_summary_counts_recent_actions():
    agent = make_agent()
    agent.update_trust_score(5, "old", now=0.0)
    agent.update_trust_score(5, "new", now=90_000.0)

    summary = agent.reputation_summary(now=90_001.0)
    assert summary["recent_actions"] == 1
    assert summary["trust_score"] == 60
    assert set(summary["emotional_state"]) == {"happiness", "stress", "energy", "sociability"}


def test_mood_is_neutral_midpoint():
    agent = make_agent()
    agent.emotional_state.happiness = 50
    agent.emotional_state.stress = 50
    assert agent.mood == 50


def test_goals():
    agent = make_agent()
    goal = agent.set_goal("socialize", target="b", priority=2.0)
    assert agent.current_goal == goal
    agent.clear_goal()
    assert agent.current_goal is None
