"""Tests for the plain records shared across the engine."""

import pytest
from pydantic import ValidationError

from trustville.schemas import (
    EngineState,
    InputRecord,
    InputResult,
    MemoryData,
    MemoryRecord,
    Pathfinding,
    Point,
)


def test_point_distance():
    assert Point(x=0, y=0).distance_to(Point(x=3, y=4)) == pytest.approx(5.0)


def test_pathfinding_step_cannot_be_negative():
    with pytest.raises(ValidationError):
        Pathfinding(destination=Point(), current_step=-1)


def test_input_result_helpers():
    ok = InputResult.ok({"player_id": "0"})
    assert ok.success
    assert ok.value == {"player_id": "0"}

    failed = InputResult.error("Unknown command: fly")
    assert not failed.success
    assert failed.message == "Unknown command: fly"


def test_input_numbers_are_non_negative():
    with pytest.raises(ValidationError):
        InputRecord(engine_id="e1", number=-1, name="stop")


def test_engine_state_starts_without_watermark():
    state = EngineState(id="e1", world_id="w1")
    assert not state.running
    assert state.processed_input_number is None
    assert state.generation_number == 0


def test_memory_importance_is_bounded():
    with pytest.raises(ValidationError):
        MemoryRecord(
            id="m1",
            owner_id="ada",
            description="too much",
            importance=11,
            last_access=0.0,
            created_at=0.0,
            data=MemoryData(kind="reflection"),
        )


def test_memory_record_json_round_trip():
    record = MemoryRecord(
        id="m1",
        owner_id="ada",
        description="Met Bo",
        embedding=[0.5, 0.5],
        importance=4,
        last_access=1.0,
        created_at=1.0,
        data=MemoryData(kind="relationship", peer_id="bo"),
    )
    assert MemoryRecord.model_validate(record.model_dump(mode="json")) == record
