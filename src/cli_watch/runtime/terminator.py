"""Escalating, fire-and-forget process termination.

Two implementations share one interface and are selected once at startup:

- ``SignalTerminator`` (POSIX): SIGINT -> 100ms -> SIGTERM -> 100ms -> SIGKILL,
  each delivered to the whole process group of the command.
- ``PortableTerminator``: interrupt request -> 100ms -> kill.

Every stage first checks whether the process has already exited and stops
the escalation if it has, so terminating an exited process sends nothing.
The delays are fixed.
"""

from __future__ import annotations

import asyncio
import logging
import os
import signal
from abc import ABC, abstractmethod
from typing import Any, Callable

import anyio

__all__ = [
    "STAGE_DELAY",
    "Terminator",
    "SignalTerminator",
    "PortableTerminator",
    "select_terminator",
]

logger = logging.getLogger(__name__)

# Seconds between escalation stages
STAGE_DELAY = 0.1


def _has_exited(process: Any) -> bool:
    return process.returncode is not None


class Terminator(ABC):
    """Capability interface for stopping a command's process.

    ``terminate()`` returns immediately; the escalation runs as a detached
    task. The task is kept referenced until it finishes.
    """

    def __init__(self, delay: float = STAGE_DELAY) -> None:
        self.delay = delay
        self._tasks: set[asyncio.Task[None]] = set()

    def terminate(self, process: Any) -> asyncio.Task[None] | None:
        """Start escalating termination of ``process`` in the background.

        Args:
            process: Process handle (``asyncio.subprocess.Process`` or compatible)

        Returns:
            The background task, or None if the process had already exited
        """
        if process is None or _has_exited(process):
            return None

        task = asyncio.get_running_loop().create_task(
            self.escalate(process),
            name=f"terminate-{process.pid}",
        )
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task

    async def escalate(self, process: Any) -> None:
        """Run the escalation to completion (or until the process exits)."""
        pid = process.pid
        stages = self._stages()
        try:
            for index, (name, send) in enumerate(stages):
                if _has_exited(process):
                    logger.debug(f"Process exited before {name} pid={pid}")
                    return
                send(process)
                logger.debug(f"Sent {name} pid={pid}")
                if index == len(stages) - 1:
                    return
                if await self._wait_exit(process):
                    logger.debug(
                        f"Process exited after {name} pid={pid} "
                        f"returncode={process.returncode}"
                    )
                    return
        except ProcessLookupError:
            logger.debug(f"Process already gone pid={pid}")

    async def _wait_exit(self, process: Any) -> bool:
        """Wait up to one stage delay for ``process`` to exit."""
        with anyio.move_on_after(self.delay):
            await process.wait()
        return _has_exited(process)

    @abstractmethod
    def _stages(self) -> list[tuple[str, Callable[[Any], None]]]:
        """Escalation stages, weakest first."""

    @abstractmethod
    def quit(self, process: Any) -> None:
        """Ask the command to dump its state and exit. Single signal, no escalation."""

    async def drain(self, timeout: float = 1.0) -> None:
        """Wait for outstanding escalations to finish."""
        if not self._tasks:
            return
        with anyio.move_on_after(timeout):
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

    @property
    def pending(self) -> int:
        """Number of escalations still in progress."""
        return len(self._tasks)


class SignalTerminator(Terminator):
    """POSIX termination via signals to the command's process group.

    The command is started in its own session, so its pid is also its
    process group id.
    """

    def __init__(
        self,
        delay: float = STAGE_DELAY,
        killpg: Callable[[int, int], None] | None = None,
    ) -> None:
        super().__init__(delay)
        self._killpg = killpg if killpg is not None else os.killpg

    def _signal_group(self, process: Any, sig: int) -> None:
        try:
            self._killpg(process.pid, sig)
        except ProcessLookupError:
            raise
        except OSError as e:
            # Not a group leader (or not permitted); fall back to the process
            logger.debug(f"killpg failed pid={process.pid}, falling back: {e}")
            process.send_signal(sig)

    def _stages(self) -> list[tuple[str, Callable[[Any], None]]]:
        return [
            ("SIGINT", lambda p: self._signal_group(p, signal.SIGINT)),
            ("SIGTERM", lambda p: self._signal_group(p, signal.SIGTERM)),
            ("SIGKILL", lambda p: self._signal_group(p, signal.SIGKILL)),
        ]

    def quit(self, process: Any) -> None:
        if process is None or _has_exited(process):
            return
        try:
            self._signal_group(process, signal.SIGQUIT)
            logger.debug(f"Sent SIGQUIT pid={process.pid}")
        except ProcessLookupError:
            logger.debug(f"Process already gone pid={process.pid}")


class PortableTerminator(Terminator):
    """Termination for platforms without process-group signals."""

    @staticmethod
    def _interrupt(process: Any) -> None:
        ctrl_break = getattr(signal, "CTRL_BREAK_EVENT", None)
        if ctrl_break is not None:
            try:
                process.send_signal(ctrl_break)
                return
            except OSError as e:
                logger.debug(f"CTRL_BREAK_EVENT failed pid={process.pid}: {e}")
        process.terminate()

    def _stages(self) -> list[tuple[str, Callable[[Any], None]]]:
        return [
            ("interrupt", self._interrupt),
            ("kill", lambda p: p.kill()),
        ]

    def quit(self, process: Any) -> None:
        logger.info("Quit is not supported on this platform")


def select_terminator(delay: float = STAGE_DELAY) -> Terminator:
    """Pick the terminator for the running platform."""
    if hasattr(os, "killpg"):
        return SignalTerminator(delay)
    return PortableTerminator(delay)
