"""Tests for the console tags printed while commands are applied.

These tests assert that:
- A refused command prints the [!] error tag and is reported on the result
- Applied commands print [>] only when the game runs verbose
"""

from __future__ import annotations

import pytest

from trustville.game import Game
from trustville.logging_utils import LOG_TAG_COMMAND, LOG_TAG_ERROR
from trustville.persistence import InMemoryPersistence
from trustville.schemas import EngineState
from trustville.world import World


@pytest.fixture(autouse=True)
def plain_output(monkeypatch):
    monkeypatch.setenv("TRUSTVILLE_NO_COLOR", "1")


async def make_world() -> World:
    return await World.create(InMemoryPersistence(), "w1")


@pytest.mark.asyncio
async def test_refused_command_prints_error_tag(capsys):
    world = await make_world()
    game = Game(EngineState(id="e1", world_id="w1"))

    result = game.process_input(world, "teleport", {}, 10.0)

    assert not result.success
    assert result.message == "Unknown command: teleport"
    out = capsys.readouterr().out
    assert f"{LOG_TAG_ERROR} teleport failed: Unknown command: teleport" in out


@pytest.mark.asyncio
async def test_command_tag_only_when_verbose(capsys):
    world = await make_world()

    quiet = Game(EngineState(id="e1", world_id="w1"))
    assert quiet.process_input(world, "join", {"name": "Ada", "character": "f1"}, 10.0).success
    assert LOG_TAG_COMMAND not in capsys.readouterr().out

    loud = Game(EngineState(id="e1", world_id="w1"), verbose=True)
    assert loud.process_input(world, "join", {"name": "Bo", "character": "f2"}, 11.0).success
    assert f"{LOG_TAG_COMMAND} join ->" in capsys.readouterr().out
