"""Event model and routing tests."""

from __future__ import annotations

import pytest
from pydantic import ValidationError

from cli_watch.events import EventRouter, WatchEvent, action_event, change_event


class FakeSupervisor:
    def __init__(self, finished: float | None = None) -> None:
        self.finished = finished
        self.notifies = 0
        self.kills = 0
        self.quits = 0

    def notify(self) -> bool:
        self.notifies += 1
        return True

    def written_by_run(self, modified: float | None) -> bool:
        return (
            self.finished is not None and modified is not None and modified <= self.finished
        )

    async def on_kill(self) -> None:
        self.kills += 1

    async def on_quit(self) -> None:
        self.quits += 1


class TestWatchEvent:
    """Test the event model."""

    def test_change_event(self):
        event = change_event(["b.go", "a.go"])
        assert event.kind == "change"
        assert event.text == "a.go b.go"
        assert event.origin == "watcher"
        assert event.modified is None

    def test_action_words(self):
        for word in ("Kill", "Quit", "Del"):
            event = action_event(f"{word}\n")
            assert event.kind == "execute"
            assert event.text == word

    def test_other_input(self):
        event = action_event("kill")
        assert event.kind == "input"
        assert event.text == "kill"

    def test_invalid_kind(self):
        with pytest.raises(ValidationError):
            WatchEvent(kind="bogus")

    def test_unknown_fields_ignored(self):
        event = WatchEvent(kind="change", text="x", extra_field=1)
        assert not hasattr(event, "extra_field")

    def test_frozen(self):
        event = WatchEvent(kind="change")
        with pytest.raises(ValidationError):
            event.text = "changed"


class TestEventRouter:
    """Test EventRouter.dispatch()."""

    @pytest.mark.asyncio
    async def test_change_notifies(self):
        supervisor = FakeSupervisor()
        router = EventRouter(supervisor)

        assert await router.dispatch(change_event(["a"])) is True
        assert await router.dispatch(change_event(["b"])) is True

        assert supervisor.notifies == 2
        assert supervisor.kills == 0

    @pytest.mark.asyncio
    async def test_change_written_by_command_ignored(self):
        """Changes stamped before the last run exited do not trigger a run."""
        supervisor = FakeSupervisor(finished=100.0)
        router = EventRouter(supervisor)

        assert await router.dispatch(change_event(["a.out"], modified=99.5)) is True
        assert supervisor.notifies == 0

        assert await router.dispatch(change_event(["main.c"], modified=100.5)) is True
        assert supervisor.notifies == 1

    @pytest.mark.asyncio
    async def test_kill_and_quit(self):
        supervisor = FakeSupervisor()
        router = EventRouter(supervisor)

        assert await router.dispatch(action_event("Kill")) is True
        assert await router.dispatch(action_event("Quit")) is True

        assert supervisor.kills == 1
        assert supervisor.quits == 1
        assert supervisor.notifies == 0

    @pytest.mark.asyncio
    async def test_del_stops_routing(self):
        deleted: list[bool] = []
        router = EventRouter(FakeSupervisor(), on_delete=lambda: deleted.append(True))

        assert await router.dispatch(action_event("Del")) is False
        assert deleted == [True]

    @pytest.mark.asyncio
    async def test_passthrough(self):
        seen: list[WatchEvent] = []
        supervisor = FakeSupervisor()
        router = EventRouter(supervisor, passthrough=seen.append)

        event = action_event("% make")
        assert await router.dispatch(event) is True

        assert seen == [event]
        assert supervisor.notifies == 0

    @pytest.mark.asyncio
    async def test_async_passthrough(self):
        seen: list[str] = []

        async def passthrough(event: WatchEvent) -> None:
            seen.append(event.text)

        router = EventRouter(FakeSupervisor(), passthrough=passthrough)
        await router.dispatch(action_event("hello"))

        assert seen == ["hello"]
