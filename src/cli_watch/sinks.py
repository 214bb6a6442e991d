"""Output sinks.

- BufferSink: in-memory display, useful for embedding and tests
- TerminalSink: writes to a binary stream such as ``sys.stdout.buffer``
"""

from __future__ import annotations

import logging
from typing import IO, Any

__all__ = ["BufferSink", "TerminalSink"]

logger = logging.getLogger(__name__)

# Cursor home + erase display
CLEAR_SEQUENCE = b"\x1b[H\x1b[2J"
SEPARATOR = b"\n" + b"-" * 40 + b"\n"


def _format(fmt: str, args: tuple[Any, ...]) -> str:
    return fmt % args if args else fmt


class BufferSink:
    """Display held in a bytearray."""

    def __init__(self) -> None:
        self._buffer = bytearray()
        self.resets = 0

    def reset(self) -> None:
        self._buffer.clear()
        self.resets += 1

    def write(self, data: bytes) -> None:
        self._buffer.extend(data)

    def printf(self, fmt: str, *args: Any) -> None:
        self.write(_format(fmt, args).encode("utf-8"))

    def getvalue(self) -> bytes:
        return bytes(self._buffer)

    def __repr__(self) -> str:
        return f"BufferSink({len(self._buffer)} bytes, resets={self.resets})"


class TerminalSink:
    """Display on a terminal (or any binary stream).

    Args:
        stream: Binary stream to write to
        clear: Clear the screen on reset; otherwise print a separator line
    """

    def __init__(self, stream: IO[bytes], clear: bool = True) -> None:
        self.stream = stream
        self.clear = clear
        self._written = False

    def reset(self) -> None:
        if self.clear:
            self._emit(CLEAR_SEQUENCE)
        elif self._written:
            self._emit(SEPARATOR)
        self._written = False

    def write(self, data: bytes) -> None:
        if data:
            self._written = True
        self._emit(data)

    def printf(self, fmt: str, *args: Any) -> None:
        self.write(_format(fmt, args).encode("utf-8"))

    def _emit(self, data: bytes) -> None:
        try:
            self.stream.write(data)
            self.stream.flush()
        except (BrokenPipeError, ValueError) as e:
            # Display went away (closed pipe / closed file)
            logger.debug(f"Terminal write failed: {e}")
