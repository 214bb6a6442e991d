"""Notification events and their routing to the supervisor.

Event kinds:
- change: something in the watched directory changed (coalesced into a run)
- execute: a user action word (Kill, Quit, Del, ...)
- input: any other user input, passed through untouched
"""

from __future__ import annotations

import logging
import time
from collections.abc import Awaitable, Callable
from typing import TYPE_CHECKING, Literal

from pydantic import BaseModel, ConfigDict, Field

if TYPE_CHECKING:
    from .supervisor import RunSupervisor

__all__ = [
    "EventRouter",
    "WatchEvent",
    "change_event",
    "action_event",
]

logger = logging.getLogger(__name__)

ACTION_KILL = "Kill"
ACTION_QUIT = "Quit"
ACTION_DEL = "Del"
ACTIONS = frozenset({ACTION_KILL, ACTION_QUIT, ACTION_DEL})


class WatchEvent(BaseModel):
    """One notification.

    Attributes:
        kind: change / execute / input
        text: Action word, changed names, or raw input text
        origin: Which source produced the event
        timestamp: Unix timestamp (seconds)
        modified: Newest modification time among changed entries (change only)
    """

    model_config = ConfigDict(extra="ignore", frozen=True)

    kind: Literal["change", "execute", "input"]
    text: str = ""
    origin: str = "unknown"
    timestamp: float = Field(default_factory=time.time)
    modified: float | None = None


def change_event(
    names: list[str],
    origin: str = "watcher",
    modified: float | None = None,
) -> WatchEvent:
    """Build a change event listing the changed names."""
    return WatchEvent(
        kind="change",
        text=" ".join(sorted(names)),
        origin=origin,
        modified=modified,
    )


def action_event(text: str, origin: str = "stdin") -> WatchEvent:
    """Build an execute event for action words, an input event otherwise."""
    word = text.strip()
    if word in ACTIONS:
        return WatchEvent(kind="execute", text=word, origin=origin)
    return WatchEvent(kind="input", text=text, origin=origin)


def _log_passthrough(event: WatchEvent) -> None:
    logger.debug(f"Passing through {event.kind} event: {event.text!r}")


class EventRouter:
    """Routes events to the supervisor.

    Change notifications only queue a coalesced trigger, unless the change
    was written by the command itself. Kill and Quit go
    straight to the supervisor without passing through the trigger queue.
    Del asks the display layer to close and ends routing.
    """

    def __init__(
        self,
        supervisor: "RunSupervisor",
        on_delete: Callable[[], None] | None = None,
        passthrough: Callable[[WatchEvent], Awaitable[None] | None] | None = None,
    ) -> None:
        self.supervisor = supervisor
        self._on_delete = on_delete
        self._passthrough = passthrough or _log_passthrough

    async def dispatch(self, event: WatchEvent) -> bool:
        """Handle one event.

        Returns:
            False once routing should stop (Del), True otherwise
        """
        if event.kind == "change":
            if self.supervisor.written_by_run(event.modified):
                logger.debug(f"Ignoring change made by the command: {event.text}")
                return True
            logger.debug(f"Change detected: {event.text}")
            self.supervisor.notify()
            return True

        if event.kind == "execute":
            if event.text == ACTION_KILL:
                logger.info("Kill requested")
                await self.supervisor.on_kill()
                return True
            if event.text == ACTION_QUIT:
                logger.info("Quit requested")
                await self.supervisor.on_quit()
                return True
            if event.text == ACTION_DEL:
                logger.info("Del requested")
                if self._on_delete:
                    self._on_delete()
                return False

        result = self._passthrough(event)
        if result is not None:
            await result
        return True
