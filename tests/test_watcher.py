"""Tests for the background nudge watcher."""

import asyncio
from datetime import timedelta

import pytest

from nudgr.nudges import (
    NudgeContext,
    NudgeEngine,
    NudgeWatcher,
    PendingNudge,
    TriggeredNudge,
)
from tests.conftest import FailingGenerator


async def _resolve(user_id: str, task_id: str) -> NudgeContext:
    return NudgeContext(title=f"Task {task_id}")


async def _schedule_ready(engine, clock, pairs):
    for user_id, task_id in pairs:
        await engine.schedule(user_id, task_id, clock.now + timedelta(seconds=1))
    clock.advance(seconds=1)


@pytest.fixture
def watcher(engine, queries) -> NudgeWatcher:
    return NudgeWatcher(engine, queries, _resolve, poll_interval=0.01)


class TestPollOnce:
    async def test_triggers_ready_nudges(self, watcher, engine, queries, clock):
        await _schedule_ready(
            engine, clock, [("alice", "a"), ("alice", "b"), ("bob", "a")]
        )
        await engine.schedule("bob", "later", clock.now + timedelta(hours=1))

        result = await watcher.poll_once()

        assert (result.triggered, result.skipped, result.errors) == (3, 0, 0)
        assert await queries.users_with_ready_nudges() == []
        assert isinstance(await queries.get("alice", "a"), TriggeredNudge)
        assert isinstance(await queries.get("bob", "later"), PendingNudge)

    async def test_passes_resolved_context(self, watcher, engine, clock, generator):
        await _schedule_ready(engine, clock, [("alice", "essay")])
        await watcher.poll_once()
        assert generator.calls == [NudgeContext(title="Task essay")]

    async def test_nothing_ready(self, watcher):
        result = await watcher.poll_once()
        assert (result.triggered, result.skipped, result.errors) == (0, 0, 0)

    async def test_missing_context_skipped(self, engine, queries, clock):
        async def resolve(user_id, task_id):
            return None if task_id == "gone" else NudgeContext(title=task_id)

        await _schedule_ready(engine, clock, [("u", "gone"), ("u", "kept")])
        watcher = NudgeWatcher(engine, queries, resolve)

        result = await watcher.poll_once()

        assert (result.triggered, result.skipped) == (1, 1)
        assert len(await queries.ready_for_user("u")) == 1

    async def test_resolver_error_counted(self, engine, queries, clock):
        async def resolve(user_id, task_id):
            raise LookupError("task service down")

        await _schedule_ready(engine, clock, [("u", "t")])
        watcher = NudgeWatcher(engine, queries, resolve)

        result = await watcher.poll_once()

        assert result.errors == 1
        assert result.triggered == 0

    async def test_generation_failure_counted_and_retried_later(
        self, store, queries, clock
    ):
        failing = NudgeEngine(store, FailingGenerator(), clock=clock)
        await _schedule_ready(failing, clock, [("u", "t")])
        watcher = NudgeWatcher(failing, queries, _resolve)

        result = await watcher.poll_once()

        assert result.errors == 1
        # Still pending, so the next poll tries again
        assert len(await queries.ready_for_user("u")) == 1

    async def test_lost_race_counted_as_skipped(self, engine, queries, clock, context):
        await _schedule_ready(engine, clock, [("u", "t")])

        async def resolve(user_id, task_id):
            # Someone else triggers while the context is being looked up
            await engine.trigger(user_id, task_id, context)
            return context

        watcher = NudgeWatcher(engine, queries, resolve)
        result = await watcher.poll_once()

        assert (result.triggered, result.skipped, result.errors) == (0, 1, 0)

    async def test_max_users_per_poll(self, engine, queries, clock):
        await _schedule_ready(engine, clock, [("a", "t"), ("b", "t"), ("c", "t")])
        watcher = NudgeWatcher(engine, queries, _resolve, max_users_per_poll=2)

        first = await watcher.poll_once()
        second = await watcher.poll_once()

        assert first.triggered == 2
        assert second.triggered == 1

    async def test_two_watchers_trigger_once(self, engine, queries, clock):
        await _schedule_ready(engine, clock, [("u", f"t{i}") for i in range(5)])
        first = NudgeWatcher(engine, queries, _resolve)
        second = NudgeWatcher(engine, queries, _resolve)

        results = await asyncio.gather(first.poll_once(), second.poll_once())

        assert sum(r.triggered for r in results) == 5
        assert len(await queries.list_for_user("u", "triggered")) == 5


class TestLifecycle:
    async def test_start_and_stop(self, watcher, engine, queries, clock):
        await _schedule_ready(engine, clock, [("u", "t")])

        await watcher.start()
        assert watcher.running
        for _ in range(100):
            if await queries.last_triggered_at("u") is not None:
                break
            await asyncio.sleep(0.01)
        await watcher.stop()

        assert not watcher.running
        assert isinstance(await queries.get("u", "t"), TriggeredNudge)

    async def test_start_twice_is_noop(self, watcher):
        await watcher.start()
        await watcher.start()
        await watcher.stop()
        assert not watcher.running

    async def test_stop_without_start(self, watcher):
        await watcher.stop()
        assert not watcher.running

    async def test_loop_survives_poll_errors(self, engine, queries):
        calls = 0

        class BrokenQueries:
            async def users_with_ready_nudges(self, limit):
                nonlocal calls
                calls += 1
                raise RuntimeError("database is locked")

        watcher = NudgeWatcher(engine, BrokenQueries(), _resolve, poll_interval=0.01)
        await watcher.start()
        for _ in range(100):
            if calls >= 2:
                break
            await asyncio.sleep(0.01)
        await watcher.stop()

        assert calls >= 2
