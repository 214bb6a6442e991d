"""Coalescing trigger queue.

A capacity-one mailbox: ``notify()`` never blocks and is a no-op while a
token is already pending, so any burst of change notifications that arrives
before the supervisor gets to it produces exactly one more run.
"""

from __future__ import annotations

import asyncio
import logging

__all__ = ["TriggerQueue"]

logger = logging.getLogger(__name__)


class TriggerQueue:
    """Presence-only, capacity-one trigger mailbox."""

    def __init__(self) -> None:
        self._queue: asyncio.Queue[None] = asyncio.Queue(maxsize=1)

    def notify(self) -> bool:
        """Request a run.

        Returns:
            True if a token was enqueued, False if one was already pending
        """
        try:
            self._queue.put_nowait(None)
        except asyncio.QueueFull:
            return False
        logger.debug("Trigger queued")
        return True

    async def next(self) -> None:
        """Wait for a pending token and consume it."""
        await self._queue.get()

    @property
    def pending(self) -> bool:
        """Whether a token is waiting to be consumed."""
        return self._queue.full()
