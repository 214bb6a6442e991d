"""Interfaces of the collaborators around the supervisor core.

- Sink: where output of the current run is displayed
- CommandSource: where the command line is read from, fresh for every run
- NotificationSource: stream of change notifications and user actions
"""

from __future__ import annotations

from collections.abc import AsyncIterator
from typing import TYPE_CHECKING, Any, Protocol, runtime_checkable

if TYPE_CHECKING:
    from .events import WatchEvent

__all__ = [
    "CommandSource",
    "NotificationSource",
    "Sink",
    "parse_control_line",
]

# Separates the action words of the control line from the command text
CONTROL_DELIMITER = "%"


@runtime_checkable
class Sink(Protocol):
    """Display destination for command output.

    Callers are responsible for generation-guarding writes.
    """

    def reset(self) -> None:
        """Clear displayed content and return to the start."""
        ...

    def write(self, data: bytes) -> None:
        """Append raw output."""
        ...

    def printf(self, fmt: str, *args: Any) -> None:
        """Append a %-formatted status or error notice."""
        ...


@runtime_checkable
class CommandSource(Protocol):
    """Source of the command line."""

    def read_command_line(self) -> str:
        """Return the command text; raise ControlLineError if unreadable."""
        ...


class NotificationSource(Protocol):
    """Possibly infinite stream of events."""

    def __aiter__(self) -> AsyncIterator["WatchEvent"]:
        ...


def parse_control_line(text: str) -> str:
    """Extract the command from a control line.

    Returns the text after the first ``%``, stripped of surrounding
    whitespace, or an empty string when there is no ``%``.
    """
    _, sep, after = text.partition(CONTROL_DELIMITER)
    if not sep:
        return ""
    return after.strip()
