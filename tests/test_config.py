"""Tests for configuration validation and console helpers."""

import pytest

from trustville.config import Config
from trustville.logging_utils import Color, colored, env_flag


def test_defaults_validate():
    Config.validate()


def test_display_lists_engine_settings():
    text = Config.display()
    assert text.startswith("Trustville Configuration:")
    assert f"Tick Interval: {Config.TICK_INTERVAL_MS}ms" in text


@pytest.mark.parametrize(
    "attribute, value",
    [
        ("TICK_INTERVAL_MS", 0),
        ("TICK_DURATION_SECONDS", -1.0),
        ("MAX_INPUTS_PER_STEP", 0),
        ("TURN_HANDOFF_TIMEOUT_SECONDS", 10_000.0),
        ("MIN_IMPORTANCE_TO_KEEP", 11.0),
    ],
)
def test_invalid_values_are_rejected(monkeypatch, attribute, value):
    monkeypatch.setattr(Config, attribute, value)
    with pytest.raises(ValueError):
        Config.validate()


def test_colored_respects_no_color(monkeypatch):
    monkeypatch.delenv("TRUSTVILLE_NO_COLOR", raising=False)
    assert colored("hi", Color.RED) == "\033[91mhi\033[0m"
    assert colored("hi", Color.RED, bold=True).startswith("\033[1m\033[91m")

    monkeypatch.setenv("TRUSTVILLE_NO_COLOR", "1")
    assert colored("hi", Color.RED) == "hi"


@pytest.mark.parametrize("raw, expected", [("1", True), ("TRUE", True), ("yes", True), ("0", False), ("", False)])
def test_env_flag(monkeypatch, raw, expected):
    monkeypatch.setenv("DEBUG_INPUTS", raw)
    assert env_flag("DEBUG_INPUTS") is expected
