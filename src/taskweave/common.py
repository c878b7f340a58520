"""Terminal helpers shared by the interactive entry points."""

from enum import Enum
from typing import Any


class AnsiColors(Enum):
    """
    ANSI color codes for terminal output.
    """

    RED = "\033[91m"
    GREEN = "\033[92m"
    YELLOW = "\033[33m"
    BLUE = "\033[94m"
    GREY = "\033[90m"


def colored_print(text: str, color: AnsiColors, *args: Any, **kwargs: Any) -> None:
    """
    Print text in color, resetting the terminal color afterwards.

    Extra positional and keyword arguments are passed through to :func:`print` (``end``, ``flush``).
    """
    print(f"{color.value}{text}\033[0m", *args, **kwargs)


def truncate(text: str, limit: int = 200) -> str:
    """Shorten *text* for one-line display."""
    text = text.replace("\n", " ")
    return text if len(text) <= limit else text[: limit - 3] + "..."
