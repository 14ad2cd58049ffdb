"""Test correlation tokens, the task table, the session context and the event bus"""

import asyncio

import pytest

from qobuz_sync.core.context import SessionContext
from qobuz_sync.core.correlation import GenerationCounter, PendingTokens
from qobuz_sync.core.events import EventBus, EventTypes, LoggedOut, PlaylistsChanged
from qobuz_sync.core.tasks import TaskManager
from qobuz_sync.qobuz.models import Quality


class TestGenerationCounter:

    def test_only_latest_is_live(self):
        counter = GenerationCounter()
        first = counter.issue()
        second = counter.issue()
        assert not counter.is_live(first)
        assert counter.is_live(second)

    def test_cancel_all_makes_everything_stale(self):
        counter = GenerationCounter()
        token = counter.issue()
        counter.cancel_all()
        assert not counter.is_live(token)


class TestPendingTokens:

    def test_tokens_live_until_consumed(self):
        pending = PendingTokens()
        a = pending.issue("a")
        b = pending.issue("b")
        assert pending.is_live(a) and pending.is_live(b)

        assert pending.consume(a)
        assert not pending.consume(a)
        assert len(pending) == 1

    def test_take_returns_payload(self):
        pending = PendingTokens()
        token = pending.issue({'playlist': 3})
        assert pending.take(token) == (True, {'playlist': 3})
        assert pending.take(token) == (False, None)

    def test_cancel_all(self):
        pending = PendingTokens()
        token = pending.issue(1)
        pending.issue(2)
        assert pending.cancel_all() == [1, 2]
        assert not pending
        assert token not in pending

    @pytest.mark.asyncio
    async def test_wait_empty(self):
        pending = PendingTokens()
        a = pending.issue()
        b = pending.issue()

        waiter = asyncio.ensure_future(pending.wait_empty())
        await asyncio.sleep(0)
        pending.consume(a)
        await asyncio.sleep(0)
        assert not waiter.done()

        pending.consume(b)
        await asyncio.wait_for(waiter, 1)


class TestTaskManager:

    def test_begin_and_finish(self):
        tasks = TaskManager()
        task_id = tasks.begin("Searching")
        assert task_id != 0
        assert tasks.is_active(task_id)
        assert tasks.active_tasks() == [(task_id, "Searching")]

        tasks.finish(task_id)
        tasks.finish(task_id)
        assert not tasks.is_active(task_id)

    def test_zero_is_never_active(self):
        assert not TaskManager().is_active(0)

    @pytest.mark.asyncio
    async def test_wait_finished_any_order(self):
        tasks = TaskManager()
        ids = [tasks.begin(f"task {i}") for i in range(3)]

        waiter = asyncio.ensure_future(tasks.wait_finished(*ids, 0))
        for task_id in (ids[2], ids[0]):
            tasks.finish(task_id)
            await asyncio.sleep(0)
            assert not waiter.done()

        tasks.finish(ids[1])
        await asyncio.wait_for(waiter, 1)


class TestSessionContext:

    def test_open_and_close(self):
        context = SessionContext()
        epoch = context.epoch.current
        context.open("tok", "42", Quality.LOSSY)

        assert context.is_logged_in()
        assert context.accepting()
        assert not context.epoch.is_live(epoch)

        context.close()
        assert not context.is_logged_in()
        assert context.user_id is None
        assert context.quality == Quality.NONE

    def test_open_requires_token(self):
        with pytest.raises(ValueError):
            SessionContext().open("", "42")

    def test_invalidate_drops_token_and_epoch(self):
        context = SessionContext()
        context.open("tok", "42")
        epoch = context.epoch.current

        context.invalidate()

        assert context.token is None
        assert context.user_id == "42"
        assert not context.epoch.is_live(epoch)

    def test_closing_refuses_new_actions(self):
        context = SessionContext()
        context.open("tok", "42")
        context.begin_close()
        assert context.is_logged_in()
        assert not context.accepting()

    def test_open_refused_while_closing(self):
        context = SessionContext()
        context.open("tok", "42")
        context.invalidate()
        context.begin_close()

        with pytest.raises(RuntimeError):
            context.open("tok-2", "42")
        assert context.token is None

        context.close()
        context.open("tok-2", "42")
        assert context.accepting()


class TestEventBus:

    def test_events_delivered_in_order(self):
        bus = EventBus()
        received = []
        bus.on(EventTypes.PLAYLISTS_CHANGED, lambda e: received.append(("first", e.playlist_id)))
        bus.on(EventTypes.PLAYLISTS_CHANGED, lambda e: received.append(("second", e.playlist_id)))

        bus.emit(PlaylistsChanged(playlist_id=3))

        assert received == [("first", 3), ("second", 3)]

    def test_only_matching_type(self):
        bus = EventBus()
        received = []
        bus.on(EventTypes.LOGGED_IN, received.append)
        bus.emit(LoggedOut())
        assert received == []

    def test_rejects_non_events(self):
        with pytest.raises(ValueError):
            EventBus().emit("not an event")
