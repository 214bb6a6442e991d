"""Run supervision.

RunSupervisor consumes coalesced triggers one at a time. Each trigger
starts a new generation: the previous run (if any) is terminated in the
background, the sink is reset, the command line is re-read, and a
ProcessRunner for the new generation is launched as a detached task.

The only synchronization between the supervisor and its runners is the
shared RunState and its lock; runner results are never awaited for their
values.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable
from pathlib import Path

import anyio

from .interfaces import CommandSource, Sink
from .runtime import ProcessRunner, RunState, Terminator, resolve_shell, select_terminator
from .triggers import TriggerQueue

__all__ = ["RunSupervisor"]

logger = logging.getLogger(__name__)


class RunSupervisor:
    """Keeps at most one generation of the command current.

    Example:
        supervisor = RunSupervisor(TerminalSink(sys.stdout.buffer), StaticControlLine("mk"))
        supervisor.notify()
        await supervisor.serve()

    Attributes:
        sink: Display for the current run's output
        command_source: Where the command line is read from on every run
        terminator: Termination strategy for superseded and killed runs
        triggers: Coalescing trigger queue consumed by serve()
        state: Generation, active run and kill flag, guarded by one lock
    """

    def __init__(
        self,
        sink: Sink,
        command_source: CommandSource,
        terminator: Terminator | None = None,
        triggers: TriggerQueue | None = None,
        runner_factory: Callable[[], ProcessRunner] | None = None,
        shell_resolver: Callable[[], str] = resolve_shell,
        cwd: Path | None = None,
    ) -> None:
        self.sink = sink
        self.command_source = command_source
        self.terminator = terminator if terminator is not None else select_terminator()
        self.triggers = triggers if triggers is not None else TriggerQueue()
        self.state = RunState()
        self._shell_resolver = shell_resolver
        self._cwd = cwd
        self._runner_factory = runner_factory or self._default_runner
        self._tasks: set[asyncio.Task[None]] = set()

    def _default_runner(self) -> ProcessRunner:
        return ProcessRunner(
            self.state,
            self.sink,
            self.terminator,
            shell_resolver=self._shell_resolver,
            cwd=self._cwd,
        )

    @property
    def generation(self) -> int:
        """Current generation (0 before the first run)."""
        return self.state.generation

    @property
    def running_tasks(self) -> int:
        """Number of runner tasks still alive."""
        return len(self._tasks)

    def notify(self) -> bool:
        """Request a run; coalesced with any pending request."""
        return self.triggers.notify()

    def has_active_run(self) -> bool:
        """Whether the published run's process is still running."""
        run = self.state.active_run
        return run is not None and run.process.returncode is None

    def written_by_run(self, modified: float | None) -> bool:
        """Whether a change last modified at ``modified`` came from the command.

        Changes made while the published run is in flight, or stamped no
        later than its exit, are the command's own output. A change with no
        known modification time is never attributed to the command.
        """
        run = self.state.active_run
        if run is None or modified is None:
            return False
        if run.in_flight:
            return True
        return run.finished is not None and modified <= run.finished

    async def serve(self) -> None:
        """Consume triggers forever.

        Generations are only assigned here, so no two are assigned
        concurrently. A ControlLineError from the command source propagates
        and ends serving.
        """
        while True:
            await self.triggers.next()
            await self.on_trigger()

    async def on_trigger(self) -> int:
        """Start a new generation, superseding the current one.

        Returns:
            The new generation
        """
        async with self.state.lock:
            self.state.generation += 1
            generation = self.state.generation
            previous = self.state.active_run
            self.state.active_run = None
            self.state.kill_requested = False

        if previous is not None:
            logger.debug(f"Superseding {previous} with generation={generation}")
            self.terminator.terminate(previous.process)

        async with self.state.lock:
            if self.state.is_current(generation):
                self.sink.reset()

        command_line = self.command_source.read_command_line()
        logger.debug(f"Launching generation={generation} command={command_line!r}")

        runner = self._runner_factory()
        task = asyncio.create_task(
            runner.run(generation, command_line),
            name=f"run-{generation}",
        )
        self._tasks.add(task)
        task.add_done_callback(self._on_run_done)
        return generation

    def _on_run_done(self, task: asyncio.Task[None]) -> None:
        self._tasks.discard(task)
        if task.cancelled():
            return
        error = task.exception()
        if error is not None:
            logger.error(f"Runner {task.get_name()} failed: {error!r}")

    async def on_kill(self) -> None:
        """Terminate the current run, if any. The next trigger starts afresh."""
        async with self.state.lock:
            self.state.kill_requested = True
            run = self.state.active_run

        if run is not None:
            logger.debug(f"Killing {run}")
            self.terminator.terminate(run.process)

    async def on_quit(self) -> None:
        """Send the current run's process group the dump-state-and-exit signal."""
        async with self.state.lock:
            run = self.state.active_run

        if run is not None:
            logger.debug(f"Quitting {run}")
            self.terminator.quit(run.process)

    async def shutdown(self, timeout: float = 1.0) -> None:
        """Kill the current run and wait (bounded) for runners and escalations.

        Stop calling serve() before shutting down; a later trigger would
        clear the kill request.
        """
        await self.on_kill()

        tasks = list(self._tasks)
        if tasks:
            with anyio.move_on_after(timeout):
                await asyncio.gather(*tasks, return_exceptions=True)
            for task in tasks:
                if not task.done():
                    task.cancel()
            await asyncio.gather(*tasks, return_exceptions=True)

        await self.terminator.drain(timeout)
        logger.debug("Supervisor shut down")
