"""Tests for nudge scheduling, cancellation and triggering."""

import asyncio
from datetime import timedelta, timezone

import pytest

from nudgr.nudges import (
    AlreadyTriggeredError,
    DuplicateNudgeError,
    GenerationFailureError,
    InvalidPayloadError,
    NudgeEngine,
    NudgeNotFoundError,
    NudgeStatus,
    PastDeliveryTimeError,
    PendingNudge,
    TooEarlyError,
    TriggeredNudge,
)
from tests.conftest import FailingGenerator, GatedGenerator, StubGenerator


class TestSchedule:
    async def test_schedule_creates_pending_nudge(self, engine, store, clock):
        delivery = clock.now + timedelta(minutes=30)

        nudge = await engine.schedule("u1", "t1", delivery)

        assert isinstance(nudge, PendingNudge)
        assert nudge.status == NudgeStatus.PENDING
        assert nudge.delivery_time == delivery
        assert nudge.created_at == clock.now
        assert await store.get("u1", "t1") == nudge

    async def test_schedule_in_past_rejected(self, engine, store, clock):
        with pytest.raises(PastDeliveryTimeError) as exc_info:
            await engine.schedule("u", "t3", clock.now - timedelta(milliseconds=500))

        assert exc_info.value.user_id == "u"
        assert exc_info.value.task_id == "t3"
        assert await store.get("u", "t3") is None

    async def test_schedule_at_now_rejected(self, engine, store, clock):
        with pytest.raises(PastDeliveryTimeError):
            await engine.schedule("u", "t", clock.now)
        assert await store.get("u", "t") is None

    async def test_duplicate_schedule_rejected(self, engine, queries, clock):
        delivery = clock.now + timedelta(milliseconds=500)
        first = await engine.schedule("u", "t2", delivery)

        with pytest.raises(DuplicateNudgeError):
            await engine.schedule("u", "t2", delivery + timedelta(hours=1))

        nudges = await queries.list_for_user("u")
        assert nudges == [first]

    async def test_duplicate_rejected_after_trigger(self, engine, clock, context):
        await engine.schedule("u", "t", clock.now + timedelta(seconds=1))
        clock.advance(seconds=2)
        await engine.trigger("u", "t", context)

        with pytest.raises(DuplicateNudgeError):
            await engine.schedule("u", "t", clock.now + timedelta(hours=1))

    async def test_reschedule_after_cancel(self, engine, clock):
        await engine.schedule("u", "t", clock.now + timedelta(minutes=5))
        await engine.cancel("u", "t")

        nudge = await engine.schedule("u", "t", clock.now + timedelta(minutes=10))
        assert nudge.delivery_time == clock.now + timedelta(minutes=10)

    async def test_same_task_different_users(self, engine, clock):
        delivery = clock.now + timedelta(minutes=5)
        a = await engine.schedule("alice", "shared", delivery)
        b = await engine.schedule("bob", "shared", delivery)
        assert a.id != b.id

    async def test_delivery_time_normalized_to_utc(self, engine, clock):
        offset = timezone(timedelta(hours=-5))
        local = (clock.now + timedelta(hours=1)).astimezone(offset)

        nudge = await engine.schedule("u", "t", local)

        assert nudge.delivery_time == local
        assert nudge.delivery_time.utcoffset() == timedelta(0)

    async def test_naive_delivery_time_taken_as_utc(self, engine, clock):
        naive = (clock.now + timedelta(hours=1)).replace(tzinfo=None)
        nudge = await engine.schedule("u", "t", naive)
        assert nudge.delivery_time == clock.now + timedelta(hours=1)


class TestCancel:
    async def test_cancel_pending(self, engine, store, clock):
        await engine.schedule("u", "t", clock.now + timedelta(minutes=5))

        await engine.cancel("u", "t")

        assert await store.get("u", "t") is None

    async def test_cancel_missing(self, engine):
        with pytest.raises(NudgeNotFoundError):
            await engine.cancel("u", "t4")

    async def test_cancel_triggered_without_override(
        self, engine, store, clock, context
    ):
        await engine.schedule("u", "t", clock.now + timedelta(seconds=1))
        clock.advance(seconds=1)
        triggered = await engine.trigger("u", "t", context)

        with pytest.raises(AlreadyTriggeredError):
            await engine.cancel("u", "t")

        assert await store.get("u", "t") == triggered

    async def test_cancel_triggered_with_override(self, engine, store, clock, context):
        await engine.schedule("u", "t", clock.now + timedelta(seconds=1))
        clock.advance(seconds=1)
        await engine.trigger("u", "t", context)

        await engine.cancel("u", "t", override=True)

        assert await store.get("u", "t") is None

    async def test_cancel_pending_with_override(self, engine, store, clock):
        await engine.schedule("u", "t", clock.now + timedelta(minutes=5))
        await engine.cancel("u", "t", override=True)
        assert await store.get("u", "t") is None

    async def test_override_cancel_missing(self, engine):
        with pytest.raises(NudgeNotFoundError):
            await engine.cancel("u", "t", override=True)

    async def test_cancel_twice(self, engine, clock):
        await engine.schedule("u", "t", clock.now + timedelta(minutes=5))
        await engine.cancel("u", "t")
        with pytest.raises(NudgeNotFoundError):
            await engine.cancel("u", "t")


class TestTrigger:
    async def test_too_early_then_ready_then_already_triggered(
        self, engine, generator, clock, context
    ):
        await engine.schedule("u", "t1", clock.now + timedelta(milliseconds=500))

        with pytest.raises(TooEarlyError):
            await engine.trigger("u", "t1", context)
        assert generator.calls == []

        clock.advance(milliseconds=600)
        nudge = await engine.trigger("u", "t1", context)

        assert isinstance(nudge, TriggeredNudge)
        assert nudge.message
        assert nudge.triggered_at == clock.now

        with pytest.raises(AlreadyTriggeredError):
            await engine.trigger("u", "t1", context)
        assert len(generator.calls) == 1

    async def test_trigger_exactly_at_delivery_time(self, engine, clock, context):
        delivery = clock.now + timedelta(minutes=1)
        await engine.schedule("u", "t", delivery)
        clock.now = delivery

        nudge = await engine.trigger("u", "t", context)
        assert nudge.triggered_at == delivery

    async def test_trigger_missing(self, engine, context):
        with pytest.raises(NudgeNotFoundError):
            await engine.trigger("u", "nope", context)

    async def test_context_forwarded_verbatim(self, engine, generator, clock, context):
        await engine.schedule("u", "t", clock.now + timedelta(seconds=1))
        clock.advance(seconds=1)

        await engine.trigger("u", "t", context)

        assert generator.calls == [context]

    async def test_message_is_trimmed(self, store, clock, context):
        engine = NudgeEngine(
            store, StubGenerator("  Take five minutes on it.\n"), clock=clock
        )
        await engine.schedule("u", "t", clock.now + timedelta(seconds=1))
        clock.advance(seconds=1)

        nudge = await engine.trigger("u", "t", context)
        assert nudge.message == "Take five minutes on it."

    async def test_generation_failure_leaves_pending(self, store, clock, context):
        failing = FailingGenerator()
        engine = NudgeEngine(store, failing, clock=clock)
        await engine.schedule("u", "t", clock.now + timedelta(seconds=1))
        clock.advance(seconds=1)

        with pytest.raises(GenerationFailureError) as exc_info:
            await engine.trigger("u", "t", context)

        assert "model unavailable" in exc_info.value.reason
        assert isinstance(exc_info.value.__cause__, RuntimeError)
        assert isinstance(await store.get("u", "t"), PendingNudge)

    async def test_retry_after_generation_failure(self, store, clock, context):
        await NudgeEngine(store, FailingGenerator(), clock=clock).schedule(
            "u", "t", clock.now + timedelta(seconds=1)
        )
        clock.advance(seconds=1)
        with pytest.raises(GenerationFailureError):
            await NudgeEngine(store, FailingGenerator(), clock=clock).trigger(
                "u", "t", context
            )

        nudge = await NudgeEngine(store, StubGenerator(), clock=clock).trigger(
            "u", "t", context
        )
        assert isinstance(nudge, TriggeredNudge)

    async def test_generation_timeout(self, store, clock, context):
        engine = NudgeEngine(
            store, GatedGenerator(), clock=clock, generation_timeout=0.05
        )
        await engine.schedule("u", "t", clock.now + timedelta(seconds=1))
        clock.advance(seconds=1)

        with pytest.raises(GenerationFailureError) as exc_info:
            await engine.trigger("u", "t", context)

        assert "timed out" in exc_info.value.reason
        assert isinstance(await store.get("u", "t"), PendingNudge)

    @pytest.mark.parametrize("message", ["", "   \n\t"])
    async def test_empty_message_rejected(self, store, clock, context, message):
        engine = NudgeEngine(store, StubGenerator(message), clock=clock)
        await engine.schedule("u", "t", clock.now + timedelta(seconds=1))
        clock.advance(seconds=1)

        with pytest.raises(InvalidPayloadError):
            await engine.trigger("u", "t", context)
        assert isinstance(await store.get("u", "t"), PendingNudge)

    async def test_long_message_rejected(self, store, clock, context):
        engine = NudgeEngine(store, StubGenerator("x" * 201), clock=clock)
        await engine.schedule("u", "t", clock.now + timedelta(seconds=1))
        clock.advance(seconds=1)

        with pytest.raises(InvalidPayloadError) as exc_info:
            await engine.trigger("u", "t", context)
        assert "201" in exc_info.value.reason
        assert isinstance(await store.get("u", "t"), PendingNudge)

    async def test_message_at_limit_accepted(self, store, clock, context):
        engine = NudgeEngine(store, StubGenerator("x" * 200), clock=clock)
        await engine.schedule("u", "t", clock.now + timedelta(seconds=1))
        clock.advance(seconds=1)

        nudge = await engine.trigger("u", "t", context)
        assert len(nudge.message) == 200

    async def test_non_text_message_rejected(self, store, clock, context):
        async def returns_none(ctx):
            return None

        engine = NudgeEngine(store, returns_none, clock=clock)
        await engine.schedule("u", "t", clock.now + timedelta(seconds=1))
        clock.advance(seconds=1)

        with pytest.raises(InvalidPayloadError):
            await engine.trigger("u", "t", context)

    async def test_trigger_stamps_increase_per_user(self, engine, clock, context):
        for task in ("a", "b", "c"):
            await engine.schedule("u", task, clock.now + timedelta(seconds=1))
        clock.advance(seconds=1)

        # Same clock reading for all three
        stamps = [
            (await engine.trigger("u", task, context)).triggered_at
            for task in ("a", "b", "c")
        ]

        assert stamps == sorted(stamps)
        assert len(set(stamps)) == 3
        assert stamps[0] == clock.now

    async def test_stamps_independent_across_users(self, engine, clock, context):
        await engine.schedule("alice", "t", clock.now + timedelta(seconds=1))
        await engine.schedule("bob", "t", clock.now + timedelta(seconds=1))
        clock.advance(seconds=1)

        a = await engine.trigger("alice", "t", context)
        b = await engine.trigger("bob", "t", context)

        assert a.triggered_at == b.triggered_at == clock.now


class TestConcurrency:
    async def test_concurrent_triggers_fire_once(self, store, clock, context):
        gated = GatedGenerator()
        engines = [NudgeEngine(store, gated, clock=clock) for _ in range(4)]
        await engines[0].schedule("u", "t", clock.now + timedelta(seconds=1))
        clock.advance(seconds=1)

        tasks = [
            asyncio.create_task(engine.trigger("u", "t", context)) for engine in engines
        ]
        while gated.entered < len(engines):
            await asyncio.sleep(0.01)
        gated.gate.set()
        results = await asyncio.gather(*tasks, return_exceptions=True)

        successes = [r for r in results if isinstance(r, TriggeredNudge)]
        losers = [r for r in results if isinstance(r, AlreadyTriggeredError)]
        assert len(successes) == 1
        assert len(losers) == len(engines) - 1
        assert await store.get("u", "t") == successes[0]

    async def test_cancel_during_generation(self, store, clock, context):
        gated = GatedGenerator()
        engine = NudgeEngine(store, gated, clock=clock)
        await engine.schedule("u", "t", clock.now + timedelta(seconds=1))
        clock.advance(seconds=1)

        trigger = asyncio.create_task(engine.trigger("u", "t", context))
        while gated.entered < 1:
            await asyncio.sleep(0.01)
        await engine.cancel("u", "t")
        gated.gate.set()

        with pytest.raises(NudgeNotFoundError):
            await trigger
        assert await store.get("u", "t") is None

    async def test_concurrent_triggers_across_tasks(self, store, clock, context):
        gated = GatedGenerator()
        engine = NudgeEngine(store, gated, clock=clock)
        tasks_ids = [f"t{i}" for i in range(5)]
        for task_id in tasks_ids:
            await engine.schedule("u", task_id, clock.now + timedelta(seconds=1))
        clock.advance(seconds=1)

        tasks = [
            asyncio.create_task(engine.trigger("u", task_id, context))
            for task_id in tasks_ids
        ]
        while gated.entered < len(tasks):
            await asyncio.sleep(0.01)
        gated.gate.set()
        results = await asyncio.gather(*tasks)

        stamps = sorted(r.triggered_at for r in results)
        assert len(set(stamps)) == len(tasks_ids)

    async def test_concurrent_schedules_one_wins(self, engine, clock):
        delivery = clock.now + timedelta(minutes=1)
        results = await asyncio.gather(
            *(engine.schedule("u", "t", delivery) for _ in range(3)),
            return_exceptions=True,
        )

        assert sum(isinstance(r, PendingNudge) for r in results) == 1
        assert sum(isinstance(r, DuplicateNudgeError) for r in results) == 2


class TestDeleteAllForUser:
    async def test_removes_every_state(self, engine, store, clock, context):
        await engine.schedule("u", "pending", clock.now + timedelta(hours=1))
        await engine.schedule("u", "fired", clock.now + timedelta(seconds=1))
        await engine.schedule("other", "t", clock.now + timedelta(hours=1))
        clock.advance(seconds=1)
        await engine.trigger("u", "fired", context)

        removed = await engine.delete_all_for_user("u")

        assert removed == 2
        assert await store.get("u", "pending") is None
        assert await store.get("u", "fired") is None
        assert await store.get("other", "t") is not None

    async def test_no_nudges(self, engine):
        assert await engine.delete_all_for_user("nobody") == 0
