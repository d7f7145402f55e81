"""Console output helpers for Trustville engines.

Each kind of engine event gets its own color and a bracketed tag, so a busy
terminal stays readable (and stays readable without color, via the tags).

Environment toggles:
- TRUSTVILLE_NO_COLOR: print plain text
- TRUSTVILLE_VERBOSE: per-step and per-command output from the engine
- DEBUG_INPUTS / DEBUG_MEMORY: queue and retrieval tracing
"""

import os
from enum import Enum


class Color(Enum):
    """ANSI escape sequences used by the log helpers."""

    BLUE = "\033[94m"      # simulation work: steps, ticks, retrieval traces
    YELLOW = "\033[93m"    # commands entering or leaving the queue
    RED = "\033[91m"       # refused commands, aborted steps, retries
    GREEN = "\033[92m"     # finished steps, engine started
    CYAN = "\033[96m"      # lifecycle notes

    BOLD = "\033[1m"
    RESET = "\033[0m"


# Tags printed in front of messages; readable without color.
LOG_TAG_DETERMINISTIC = "[•]"
LOG_TAG_COMMAND = "[>]"
LOG_TAG_ERROR = "[!]"
LOG_TAG_SUCCESS = "[✓]"
LOG_TAG_INFO = "[i]"


def env_flag(name: str) -> bool:
    """True when the environment variable ``name`` is set to 1/true/yes."""
    return os.getenv(name, "").lower() in ("1", "true", "yes")


def colored(text: str, color: Color, bold: bool = False) -> str:
    """Wrap ``text`` in ANSI codes.

    Args:
        text: Text to print
        color: Foreground color
        bold: Prefix the bold code as well

    Returns:
        The wrapped text, or ``text`` unchanged when TRUSTVILLE_NO_COLOR is set
    """
    if os.getenv("TRUSTVILLE_NO_COLOR"):
        return text

    codes = color.value
    if bold:
        codes = Color.BOLD.value + codes
    return f"{codes}{text}{Color.RESET.value}"


def log_deterministic(message: str) -> None:
    print(colored(message, Color.BLUE))


def log_command(message: str) -> None:
    print(colored(message, Color.YELLOW))


def log_error(message: str) -> None:
    print(colored(message, Color.RED))


def log_success(message: str) -> None:
    print(colored(message, Color.GREEN))


def log_info(message: str) -> None:
    print(colored(message, Color.CYAN))
