"""Shared run state guarded by a single lock.

The generation number is the version token for every externally visible
mutation: a runner may only write to the sink or publish its process while
its generation is still the current one, checked under ``RunState.lock``.
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass, field

__all__ = [
    "Run",
    "RunState",
]


@dataclass
class Run:
    """Live state of one generation.

    Attributes:
        generation: Generation this run belongs to
        process: Spawned process
        finished: Unix time at which the process was seen to exit
    """

    generation: int
    process: asyncio.subprocess.Process
    finished: float | None = None

    @property
    def in_flight(self) -> bool:
        return self.finished is None and self.process.returncode is None

    def __repr__(self) -> str:
        return (
            f"Run(generation={self.generation}, pid={self.process.pid}, "
            f"finished={self.finished})"
        )


@dataclass
class RunState:
    """Supervisor state shared with the runners it launches.

    All fields except ``lock`` must only be read or written while holding
    ``lock``.
    """

    lock: asyncio.Lock = field(default_factory=asyncio.Lock)
    generation: int = 0
    active_run: Run | None = None
    kill_requested: bool = False

    def is_current(self, generation: int) -> bool:
        """Whether ``generation`` is still the current one. Caller holds the lock."""
        return generation == self.generation

    def may_publish(self, generation: int) -> bool:
        """Current and not killed since the trigger. Caller holds the lock."""
        return self.is_current(generation) and not self.kill_requested
