"""
Trustville Configuration

Loads configuration from environment variables with sensible defaults.
"""

import os
from pathlib import Path
from dotenv import load_dotenv

# Load .env file if it exists
load_dotenv()


class Config:
    """Application configuration loaded from environment variables."""

    # Database Configuration
    DATABASE_URL: str = os.getenv("DATABASE_URL", "postgresql://localhost/trustville")

    # Engine loop
    # Delay between scheduled steps (ms) and the simulated seconds one tick moves entities.
    TICK_INTERVAL_MS: int = int(os.getenv("TICK_INTERVAL_MS", "16"))
    TICK_DURATION_SECONDS: float = float(os.getenv("TICK_DURATION_SECONDS", "0.016"))
    MAX_INPUTS_PER_STEP: int = int(os.getenv("MAX_INPUTS_PER_STEP", "100"))

    # Conversation timing (seconds)
    SPEAKING_GRACE_SECONDS: float = float(os.getenv("SPEAKING_GRACE_SECONDS", "10"))
    INACTIVITY_TIMEOUT_SECONDS: float = float(os.getenv("INACTIVITY_TIMEOUT_SECONDS", "60"))
    TURN_HANDOFF_TIMEOUT_SECONDS: float = float(os.getenv("TURN_HANDOFF_TIMEOUT_SECONDS", "30"))

    # Agent sleep cycle
    SLEEP_DURATION_SECONDS: float = float(os.getenv("SLEEP_DURATION_SECONDS", str(8 * 60 * 60)))
    MAX_AWAKE_HOURS: float = float(os.getenv("MAX_AWAKE_HOURS", "16"))
    LOW_ENERGY_THRESHOLD: float = float(os.getenv("LOW_ENERGY_THRESHOLD", "30"))

    REPUTATION_HISTORY_LIMIT: int = int(os.getenv("REPUTATION_HISTORY_LIMIT", "100"))

    # Memory / embeddings
    EMBEDDING_DIMENSION: int = int(os.getenv("EMBEDDING_DIMENSION", "384"))
    EMBEDDING_MAX_ATTEMPTS: int = int(os.getenv("EMBEDDING_MAX_ATTEMPTS", "3"))
    MAX_MEMORIES: int = int(os.getenv("MAX_MEMORIES", "1000"))
    MIN_IMPORTANCE_TO_KEEP: float = float(os.getenv("MIN_IMPORTANCE_TO_KEEP", "3"))

    # Agents spawn uniformly inside [0, WORLD_SIZE) on both axes
    WORLD_SIZE: float = float(os.getenv("WORLD_SIZE", "100"))

    # Logging
    LOG_LEVEL: str = os.getenv("LOG_LEVEL", "INFO")

    # Project Paths
    PROJECT_ROOT: Path = Path(__file__).parent.parent
    DATA_DIR: Path = Path(os.getenv("TRUSTVILLE_DATA_DIR", str(PROJECT_ROOT / "town_data")))

    @classmethod
    def validate(cls) -> None:
        """Validate configuration and raise errors if values are unusable."""
        if cls.TICK_INTERVAL_MS <= 0:
            raise ValueError("TICK_INTERVAL_MS must be positive")

        if cls.TICK_DURATION_SECONDS <= 0:
            raise ValueError("TICK_DURATION_SECONDS must be positive")

        if cls.MAX_INPUTS_PER_STEP <= 0:
            raise ValueError(
                "MAX_INPUTS_PER_STEP must be positive. "
                "Use stop/start commands to pause the engine instead of a zero batch."
            )

        # The shorter hand-off window must fit inside the full inactivity window.
        if cls.TURN_HANDOFF_TIMEOUT_SECONDS > cls.INACTIVITY_TIMEOUT_SECONDS:
            raise ValueError(
                "TURN_HANDOFF_TIMEOUT_SECONDS cannot exceed INACTIVITY_TIMEOUT_SECONDS"
            )

        if not 0 <= cls.MIN_IMPORTANCE_TO_KEEP <= 10:
            raise ValueError("MIN_IMPORTANCE_TO_KEEP must be within [0, 10]")

    @classmethod
    def display(cls) -> str:
        """Return a formatted string showing current configuration."""
        lines = [
            "Trustville Configuration:",
            f"  Database: {cls.DATABASE_URL}",
            f"  Tick Interval: {cls.TICK_INTERVAL_MS}ms",
            f"  Tick Duration: {cls.TICK_DURATION_SECONDS}s",
            f"  Inputs per Step: {cls.MAX_INPUTS_PER_STEP}",
            f"  Sleep Duration: {cls.SLEEP_DURATION_SECONDS / 3600:.1f}h",
            f"  Memory Cap: {cls.MAX_MEMORIES}",
        ]
        return "\n".join(lines)
