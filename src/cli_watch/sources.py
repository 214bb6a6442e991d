"""Concrete command and notification sources.

Command sources:
- StaticControlLine: control line held in memory, seeded from argv
- ControlFile: control line re-read from a file on every run

Notification sources:
- DirectoryWatcher: reports entries written in a directory (watchfiles)
- ActionReader: reads action words (Kill/Quit/Del) and input from a stream
- merge_sources: interleaves several sources into one stream
"""

from __future__ import annotations

import asyncio
import logging
import os
from collections.abc import AsyncIterator
from pathlib import Path
from typing import IO, Any

import anyio
from watchfiles import Change, DefaultFilter, awatch

from .errors import ControlLineError, NotificationSourceError, WatchError
from .events import WatchEvent, action_event, change_event
from .interfaces import parse_control_line

__all__ = [
    "ActionReader",
    "ControlFile",
    "DirectoryWatcher",
    "StaticControlLine",
    "merge_sources",
]

logger = logging.getLogger(__name__)

CONTROL_PREFIX = "Kill Quit"

# Wake the watcher at least this often to check the directory still exists
ROOT_CHECK_MS = 500


class StaticControlLine:
    """In-memory control line: ``Kill Quit % <command>``."""

    def __init__(self, command: str = "") -> None:
        self.text = ""
        self.set_command(command)

    def set_command(self, command: str) -> None:
        """Replace the command text; takes effect on the next run."""
        self.text = f"{CONTROL_PREFIX} % {command.strip()}"
        logger.debug(f"Control line: {self.text!r}")

    def read_command_line(self) -> str:
        return parse_control_line(self.text)


class ControlFile:
    """Control line stored in a file, read fresh on every run."""

    def __init__(self, path: Path) -> None:
        self.path = Path(path)

    def read_command_line(self) -> str:
        try:
            text = self.path.read_text(encoding="utf-8")
        except (OSError, UnicodeDecodeError) as e:
            raise ControlLineError(str(self.path), str(e)) from e
        # Only the first line is the control line
        first_line = text.split("\n", 1)[0]
        return parse_control_line(first_line)

    def set_command(self, command: str) -> None:
        """Create or overwrite the control file with ``command``."""
        self.path.write_text(f"{CONTROL_PREFIX} % {command.strip()}\n", encoding="utf-8")


class VisibleFilter(DefaultFilter):
    """watchfiles' default filter, also ignoring entries whose name starts with ``.``."""

    def __call__(self, change: Change, path: str) -> bool:
        if os.path.basename(path).startswith("."):
            return False
        return super().__call__(change, path)


class DirectoryWatcher:
    """Watches a directory (non-recursively) for written entries.

    Each batch of filesystem changes reported by ``watchfiles.awatch``
    yields one change event listing the changed names and the newest
    modification time among them. The batch is reported once no further
    change arrives within ``interval`` seconds.
    """

    def __init__(self, root: Path, interval: float = 0.5) -> None:
        self.root = Path(root)
        self.interval = interval
        self.watch_filter = VisibleFilter()

    def check_root(self) -> None:
        if not self.root.is_dir():
            raise NotificationSourceError(f"watch {self.root}: not a directory")

    def newest_mtime(self, changes: set[tuple[Change, str]]) -> float | None:
        """Newest mtime among changed paths.

        A removed entry counts with the mtime of the directory it was
        removed from.
        """
        newest: float | None = None
        for _, path in changes:
            try:
                mtime = os.stat(path).st_mtime
            except FileNotFoundError:
                try:
                    mtime = os.stat(self.root).st_mtime
                except OSError:
                    continue
            except OSError:
                continue
            newest = mtime if newest is None else max(newest, mtime)
        return newest

    async def events(self) -> AsyncIterator[WatchEvent]:
        self.check_root()
        logger.debug(f"Watching {self.root}")
        batches = awatch(
            self.root,
            watch_filter=self.watch_filter,
            step=max(1, int(self.interval * 1000)),
            recursive=False,
            rust_timeout=ROOT_CHECK_MS,
            yield_on_timeout=True,
        )
        try:
            async for changes in batches:
                self.check_root()
                if not changes:
                    continue
                names = sorted({os.path.relpath(path, self.root) for _, path in changes})
                modified = await anyio.to_thread.run_sync(self.newest_mtime, changes)
                yield change_event(names, origin=f"watcher:{self.root}", modified=modified)
        except (OSError, RuntimeError) as e:
            raise NotificationSourceError(f"watch {self.root}: {e}") from e
        finally:
            await batches.aclose()

    def __aiter__(self) -> AsyncIterator[WatchEvent]:
        return self.events()


async def open_line_reader(
    stream: IO[Any],
) -> tuple[asyncio.StreamReader, asyncio.BaseTransport | None]:
    """Wrap a file object in an ``asyncio.StreamReader``.

    Pipes, sockets and terminals are read asynchronously. Regular files
    cannot be attached to the event loop and are read up front.

    Returns:
        The reader and the pipe transport (None for regular files)
    """
    loop = asyncio.get_running_loop()
    reader = asyncio.StreamReader()
    protocol = asyncio.StreamReaderProtocol(reader)
    try:
        transport, _ = await loop.connect_read_pipe(lambda: protocol, stream)
    except (ValueError, OSError) as e:
        logger.debug(f"Cannot attach {stream!r} to the event loop: {e}")
        data = await anyio.to_thread.run_sync(stream.read)
        if isinstance(data, str):
            data = data.encode()
        reader.feed_data(data)
        reader.feed_eof()
        return reader, None
    return reader, transport


class ActionReader:
    """Reads one action or input per line.

    Lines consisting of an action word (Kill, Quit, Del) become execute
    events; all other non-empty lines become input events. The source ends
    at end of file.
    """

    def __init__(
        self,
        stream: IO[Any] | None = None,
        reader: asyncio.StreamReader | None = None,
    ) -> None:
        self.stream = stream
        self._reader = reader

    async def events(self) -> AsyncIterator[WatchEvent]:
        transport = None
        if self._reader is None:
            if self.stream is None:
                return
            self._reader, transport = await open_line_reader(self.stream)

        try:
            while True:
                line = await self._reader.readline()
                if not line:
                    logger.debug("Action input closed")
                    return
                text = line.decode("utf-8", errors="replace").rstrip("\r\n")
                if text.strip():
                    yield action_event(text)
        finally:
            if transport is not None:
                transport.close()

    def __aiter__(self) -> AsyncIterator[WatchEvent]:
        return self.events()


class _Failure:
    def __init__(self, error: BaseException) -> None:
        self.error = error


_DONE = object()


async def merge_sources(*sources: Any) -> AsyncIterator[WatchEvent]:
    """Interleave events from several sources.

    Ends when every source has ended. The first source to fail ends the
    merged stream with its error (wrapped in NotificationSourceError unless
    it already is a WatchError).
    """
    queue: asyncio.Queue[Any] = asyncio.Queue()

    async def pump(source: Any) -> None:
        try:
            async for event in source:
                await queue.put(event)
        except Exception as e:
            await queue.put(_Failure(e))
        finally:
            await queue.put(_DONE)

    tasks = [
        asyncio.create_task(pump(source), name=f"source-{index}")
        for index, source in enumerate(sources)
    ]
    remaining = len(tasks)
    try:
        while remaining:
            item = await queue.get()
            if item is _DONE:
                remaining -= 1
                continue
            if isinstance(item, _Failure):
                if isinstance(item.error, WatchError):
                    raise item.error
                raise NotificationSourceError(str(item.error)) from item.error
            yield item
    finally:
        for task in tasks:
            if not task.done():
                task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)
