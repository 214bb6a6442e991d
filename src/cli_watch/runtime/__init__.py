"""Runtime module for running the watched command.

Provides the per-generation process runner, the shared run state it is
guarded by, and escalating termination of superseded or killed commands.
"""

from __future__ import annotations

from .process_runner import OutputState, ProcessRunner, describe_exit, resolve_shell
from .state import Run, RunState
from .terminator import (
    STAGE_DELAY,
    PortableTerminator,
    SignalTerminator,
    Terminator,
    select_terminator,
)

__all__ = [
    "OutputState",
    "PortableTerminator",
    "ProcessRunner",
    "Run",
    "RunState",
    "STAGE_DELAY",
    "SignalTerminator",
    "Terminator",
    "describe_exit",
    "resolve_shell",
    "select_terminator",
]
