"""Runs one generation of the watched command and streams its output.

cli-watch runtime module

This module provides:
- Interpreter lookup (``$PLAN9/bin/rc``, ``rc`` beside ``9``, fixed fallback)
- Subprocess isolation in a new session/process group
- Merged stdout/stderr streaming to the sink, guarded by generation
- Partial-line marker and exit notices once the command finishes

Key design points:
- Every sink write and the publication of the process handle happen under
  ``RunState.lock`` and only while the runner's generation is current
- A runner superseded (or killed) before publication never publishes; its
  process is handed straight to the terminator
- Spawn failures and abnormal exits are written inline, never raised
"""

from __future__ import annotations

import asyncio
import logging
import os
import shutil
import signal
import subprocess
import sys
import time
from collections.abc import Callable, Mapping
from enum import Enum
from pathlib import Path
from typing import TYPE_CHECKING, Any

import anyio

from .state import Run, RunState

if TYPE_CHECKING:
    from ..interfaces import Sink
    from .terminator import Terminator

__all__ = [
    "FALLBACK_SHELL",
    "OutputState",
    "ProcessRunner",
    "describe_exit",
    "resolve_shell",
]

logger = logging.getLogger(__name__)

IS_WINDOWS = sys.platform == "win32"

FALLBACK_SHELL = "/usr/local/plan9/bin/rc"

READ_SIZE = 4096

# Written when output stopped mid-line, before the final newline
CONTINUATION_MARKER = "\\\n"


class OutputState(Enum):
    """Whether the last byte written to the sink ended a line."""

    AT_LINE_START = "at_line_start"
    MID_LINE = "mid_line"

    @classmethod
    def after(cls, chunk: bytes) -> "OutputState":
        return cls.AT_LINE_START if chunk.endswith(b"\n") else cls.MID_LINE


def resolve_shell(environ: Mapping[str, str] | None = None) -> str:
    """Locate the rc interpreter.

    There may be a different rc on the PATH, but there probably won't be a
    different 9, so rc is taken from next to 9 rather than looked up itself.

    Search order:
    1. ``$PLAN9/bin/rc``
    2. ``rc`` in the directory holding the ``9`` launcher on PATH
    3. ``/usr/local/plan9/bin/rc``

    Args:
        environ: Environment to consult (defaults to ``os.environ``)

    Returns:
        Path of the interpreter (not checked for existence)
    """
    env = os.environ if environ is None else environ

    plan9 = env.get("PLAN9")
    if plan9:
        return str(Path(plan9) / "bin" / "rc")

    nine = shutil.which("9", path=env.get("PATH"))
    if nine:
        return str(Path(nine).parent / "rc")

    return FALLBACK_SHELL


def describe_exit(returncode: int) -> str:
    """Describe a non-zero exit the way a shell reports it."""
    if returncode < 0:
        try:
            name = signal.Signals(-returncode).name
        except ValueError:
            name = str(-returncode)
        return f"signal: {name}"
    return f"exit status {returncode}"


class ProcessRunner:
    """Runs the command line for one generation.

    Example:
        runner = ProcessRunner(state, sink, terminator)
        await runner.run(generation, "mk test")
    """

    def __init__(
        self,
        state: RunState,
        sink: "Sink",
        terminator: "Terminator",
        shell_resolver: Callable[[], str] = resolve_shell,
        cwd: Path | None = None,
    ) -> None:
        self.state = state
        self.sink = sink
        self.terminator = terminator
        self.shell_resolver = shell_resolver
        self.cwd = cwd

    async def run(self, generation: int, command_line: str) -> None:
        """Spawn, publish, stream and report one run.

        Args:
            generation: Generation assigned by the supervisor
            command_line: Text passed to the interpreter as ``-c`` argument
        """
        process, spawn_error = await self._spawn(command_line)

        if process is None:
            async with self.state.lock:
                if self.state.may_publish(generation):
                    self.sink.printf("(exec: %s)\n", spawn_error)
            return

        run = Run(generation, process)
        async with self.state.lock:
            abandoned = not self.state.may_publish(generation)
            if not abandoned:
                self.state.active_run = run

        if abandoned:
            logger.debug(f"Abandoning run generation={generation} before publication")
            self.terminator.terminate(process)
            return

        logger.debug(
            f"Started generation={generation} pid={process.pid} "
            f"command={command_line!r}"
        )

        try:
            output_state = await self._stream(generation, process)
            await self._finish(run, output_state)
        except anyio.get_cancelled_exc_class():
            if process.returncode is None:
                self.terminator.terminate(process)
            raise

    async def _spawn(
        self,
        command_line: str,
    ) -> tuple[asyncio.subprocess.Process | None, Exception | None]:
        """Start ``<shell> -c <command_line>`` with stdout and stderr merged."""
        try:
            shell = self.shell_resolver()
            process = await asyncio.create_subprocess_exec(
                shell,
                "-c",
                command_line,
                stdin=asyncio.subprocess.DEVNULL,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.STDOUT,
                cwd=self.cwd,
                **self._build_subprocess_kwargs(),
            )
        except (OSError, ValueError) as e:
            logger.debug(f"Spawn failed: {e}")
            return None, e
        return process, None

    @staticmethod
    def _build_subprocess_kwargs() -> dict[str, Any]:
        """Platform-specific isolation kwargs."""
        if IS_WINDOWS:
            return {"creationflags": subprocess.CREATE_NEW_PROCESS_GROUP}
        return {"start_new_session": True}

    async def _stream(
        self,
        generation: int,
        process: asyncio.subprocess.Process,
    ) -> OutputState:
        """Forward output to the sink until end of stream."""
        output_state = OutputState.AT_LINE_START
        if process.stdout is None:
            return output_state

        while True:
            try:
                chunk = await process.stdout.read(READ_SIZE)
            except OSError as e:
                logger.debug(f"Read error generation={generation}: {e}")
                break
            if not chunk:
                break

            async with self.state.lock:
                if self.state.is_current(generation):
                    self.sink.write(chunk)
                    output_state = OutputState.after(chunk)

        return output_state

    async def _finish(self, run: Run, output_state: OutputState) -> None:
        """Wait for exit, then write the partial-line marker and exit notice."""
        process = run.process
        error: str | None = None
        try:
            returncode = await process.wait()
            if returncode != 0:
                error = describe_exit(returncode)
        except OSError as e:
            error = str(e)

        logger.debug(
            f"Finished generation={run.generation} pid={process.pid} "
            f"returncode={process.returncode}"
        )

        async with self.state.lock:
            run.finished = time.time()
            if not self.state.is_current(run.generation):
                return
            if output_state is OutputState.MID_LINE:
                self.sink.printf(CONTINUATION_MARKER)
            if error is not None:
                self.sink.printf("(%s)\n", error)
