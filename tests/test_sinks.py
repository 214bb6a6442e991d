"""Output sink tests."""

from __future__ import annotations

import io

from cli_watch.interfaces import Sink
from cli_watch.sinks import CLEAR_SEQUENCE, SEPARATOR, BufferSink, TerminalSink


class TestBufferSink:
    """Test the in-memory display."""

    def test_write_and_reset(self):
        sink = BufferSink()
        sink.write(b"old output\n")
        sink.reset()
        sink.write(b"new\n")

        assert sink.getvalue() == b"new\n"
        assert sink.resets == 1

    def test_printf(self):
        sink = BufferSink()
        sink.printf("(%s)\n", "exit status 2")
        sink.printf("100%\n")

        assert sink.getvalue() == b"(exit status 2)\n100%\n"

    def test_is_sink(self):
        assert isinstance(BufferSink(), Sink)


class TestTerminalSink:
    """Test terminal output."""

    def test_clear_on_reset(self):
        stream = io.BytesIO()
        sink = TerminalSink(stream)

        sink.write(b"a\n")
        sink.reset()
        sink.write(b"b\n")

        assert stream.getvalue() == b"a\n" + CLEAR_SEQUENCE + b"b\n"

    def test_separator_without_clear(self):
        """Without clearing, a separator follows output that was written."""
        stream = io.BytesIO()
        sink = TerminalSink(stream, clear=False)

        sink.reset()
        sink.write(b"a\n")
        sink.reset()
        sink.reset()

        assert stream.getvalue() == b"a\n" + SEPARATOR

    def test_closed_stream_ignored(self):
        """Writes to a closed display do not raise."""
        stream = io.BytesIO()
        sink = TerminalSink(stream)
        stream.close()

        sink.write(b"lost\n")
        sink.printf("(%s)\n", "exit status 1")
        sink.reset()
