"""Test Emitter registration rules, once-semantics and concurrent delivery."""

from __future__ import annotations

import asyncio
import logging

import pytest

from permit_core.core.errors import (
    DuplicateListenerError,
    EmitterError,
    EventNameRequiredError,
    MaxListenersExceededError,
    UnhandledErrorEvent,
)
from permit_core.events.emitter import Emitter


def _recorder(sink: list, tag: str):
    async def listener(value):
        sink.append((tag, value))

    return listener


class TestDelivery:
    async def test_async_listener_receives_value(self, emitter):
        received = []
        emitter.on("permitType:created", _recorder(received, "a"))

        await emitter.emit("permitType:created", {"id": 7})

        assert received == [("a", {"id": 7})]

    async def test_sync_listener_supported(self, emitter):
        received = []
        emitter.on("sector:deleted", received.append)

        await emitter.emit("sector:deleted", 3)

        assert received == [3]

    async def test_no_listeners_is_a_noop(self, emitter):
        assert await emitter.emit("custom", 1) is None
        assert emitter.event_names() == []

    async def test_events_are_isolated(self, emitter):
        received = []
        emitter.on("sector:created", _recorder(received, "a"))

        await emitter.emit("sector:updated", 1)

        assert received == []

    async def test_initiation_follows_registration_order(self, emitter):
        started = []
        for tag in ("first", "second", "third"):
            emitter.on("evt", _recorder(started, tag))

        await emitter.emit("evt", None)

        assert [tag for tag, _ in started] == ["first", "second", "third"]

    async def test_listeners_run_concurrently(self, emitter):
        """A sequential await chain would deadlock here."""
        gate = asyncio.Event()

        async def waits(value):
            await gate.wait()

        async def opens(value):
            gate.set()

        emitter.on("evt", waits)
        emitter.on("evt", opens)

        await asyncio.wait_for(emitter.emit("evt", None), timeout=1.0)

    async def test_emit_waits_for_all_listeners(self, emitter):
        done = []

        async def slow(value):
            await asyncio.sleep(0.01)
            done.append("slow")

        emitter.on("evt", slow)
        emitter.on("evt", done.append)

        await emitter.emit("evt", "fast")

        assert sorted(done) == ["fast", "slow"]


class TestListenerFailures:
    async def test_failure_propagates_after_all_ran(self, emitter):
        received = []

        async def bad(value):
            raise ValueError("boom")

        emitter.on("evt", bad)
        emitter.on("evt", _recorder(received, "good"))

        with pytest.raises(ValueError, match="boom"):
            await emitter.emit("evt", 1)
        assert received == [("good", 1)]

    async def test_first_failure_raised_others_logged(self, emitter, caplog):
        async def first(value):
            raise ValueError("first")

        async def second(value):
            raise KeyError("second")

        emitter.on("evt", first)
        emitter.on("evt", second)

        with caplog.at_level(logging.ERROR):
            with pytest.raises(ValueError, match="first"):
                await emitter.emit("evt", 1)
        assert any(
            "Additional listener failure" in r.message for r in caplog.records
        )

    async def test_sync_listener_failure_propagates(self, emitter):
        def bad(value):
            raise RuntimeError("sync boom")

        emitter.on("evt", bad)
        with pytest.raises(RuntimeError, match="sync boom"):
            await emitter.emit("evt", 1)


class TestErrorEvent:
    def test_unhandled_error_raises_immediately(self, emitter):
        cause = RuntimeError("socket closed")
        with pytest.raises(UnhandledErrorEvent) as info:
            emitter.emit("error", cause)
        assert info.value.value is cause

    async def test_error_event_with_listener_is_delivered(self, emitter):
        received = []
        emitter.on("error", _recorder(received, "handler"))

        await emitter.emit("error", "bad thing")

        assert received == [("handler", "bad thing")]

    def test_unhandled_error_after_handler_removed(self, emitter):
        handler = _recorder([], "handler")
        emitter.on("error", handler)
        emitter.off("error", handler)

        with pytest.raises(UnhandledErrorEvent):
            emitter.emit("error", None)


class TestOnce:
    async def test_once_listener_fires_once(self, emitter):
        received = []
        emitter.once("evt", _recorder(received, "once"))

        await emitter.emit("evt", 1)
        await emitter.emit("evt", 2)

        assert received == [("once", 1)]

    async def test_once_pruning_keeps_persistent_listeners(self, emitter):
        received = []
        emitter.on("evt", _recorder(received, "a"))
        emitter.once("evt", _recorder(received, "once"))
        emitter.on("evt", _recorder(received, "b"))
        assert emitter.listener_count("evt") == 3

        await emitter.emit("evt", 1)
        assert emitter.listener_count("evt") == 2

        received.clear()
        await emitter.emit("evt", 2)
        assert sorted(tag for tag, _ in received) == ["a", "b"]

    async def test_once_only_event_is_removed(self, emitter):
        emitter.once("evt", _recorder([], "x"))
        emitter.once("evt", _recorder([], "y"))

        await emitter.emit("evt", 1)

        assert "evt" not in emitter
        assert emitter.event_names() == []
        assert emitter.listener_count("evt") == 0

    async def test_pruning_happens_at_call_time(self, emitter):
        received = []
        emitter.once("evt", _recorder(received, "x"))

        delivery = emitter.emit("evt", 1)
        assert emitter.listener_count("evt") == 0

        await delivery
        assert received == [("x", 1)]

    async def test_delivery_runs_without_await(self, emitter):
        received = []
        emitter.once("evt", _recorder(received, "once"))
        emitter.on("evt", _recorder(received, "on"))

        emitter.emit("evt", 1)
        await asyncio.sleep(0.01)

        assert received == [("once", 1), ("on", 1)]
        assert emitter.listener_count("evt") == 1

    async def test_once_then_off_then_on_is_persistent(self, emitter):
        received = []
        listener = _recorder(received, "x")
        emitter.once("evt", listener)
        emitter.off("evt", listener)
        emitter.on("evt", listener)

        await emitter.emit("evt", 1)
        await emitter.emit("evt", 2)

        assert len(received) == 2


class TestCancellation:
    async def test_cancelled_waiter_does_not_cancel_listeners(self, emitter):
        release = asyncio.Event()
        finished = []

        async def slow(value):
            await release.wait()
            finished.append(value)

        emitter.on("evt", slow)

        async def waiter():
            await emitter.emit("evt", 1)

        task = asyncio.create_task(waiter())
        await asyncio.sleep(0)
        task.cancel()
        with pytest.raises(asyncio.CancelledError):
            await task

        release.set()
        for _ in range(10):
            if finished:
                break
            await asyncio.sleep(0)
        assert finished == [1]

    async def test_cancelled_delivery_task_lets_listeners_finish(self, emitter):
        release = asyncio.Event()
        finished = []

        async def slow(value):
            await release.wait()
            finished.append(value)

        emitter.on("evt", slow)
        emitter.on("evt", _recorder(finished, "fast"))

        delivery = emitter.emit("evt", 2)
        await asyncio.sleep(0)
        delivery.cancel()

        release.set()
        for _ in range(10):
            if len(finished) == 2:
                break
            await asyncio.sleep(0)
        assert finished == [("fast", 2), 2]


class TestSnapshot:
    async def test_listener_added_during_delivery_waits_for_next_emit(self, emitter):
        received = []
        late = _recorder(received, "late")

        async def adds(value):
            emitter.on("evt", late)

        emitter.on("evt", adds)

        await emitter.emit("evt", 1)
        assert received == []

        await emitter.emit("evt", 2)
        assert received == [("late", 2)]

    async def test_listener_removed_during_delivery_still_receives(self, emitter):
        received = []
        victim = _recorder(received, "victim")

        async def removes(value):
            emitter.off("evt", victim)

        emitter.on("evt", removes)
        emitter.on("evt", victim)

        await emitter.emit("evt", 1)
        assert received == [("victim", 1)]
        assert emitter.listener_count("evt") == 1


class TestRegistration:
    def test_duplicate_listener_rejected(self, emitter):
        listener = _recorder([], "x")
        emitter.on("evt", listener)

        with pytest.raises(DuplicateListenerError, match="evt"):
            emitter.on("evt", listener)
        assert emitter.listener_count("evt") == 1

    def test_duplicate_across_on_and_once(self, emitter):
        listener = _recorder([], "x")
        emitter.on("evt", listener)

        with pytest.raises(DuplicateListenerError):
            emitter.once("evt", listener)
        assert emitter.listener_count("evt") == 1

    def test_same_listener_on_different_events(self, emitter):
        listener = _recorder([], "x")
        emitter.on("a", listener)
        emitter.on("b", listener)
        assert emitter.listener_count("a") == emitter.listener_count("b") == 1

    async def test_max_listeners_exceeded_keeps_listener(self, emitter):
        """The ceiling error is raised after the add, not instead of it."""
        received = []
        for i in range(10):
            emitter.on("evt", _recorder(received, f"l{i}"))

        with pytest.raises(MaxListenersExceededError) as info:
            emitter.on("evt", _recorder(received, "l10"))

        assert info.value.count == 11
        assert info.value.max_listeners == 10
        assert emitter.listener_count("evt") == 11

        await emitter.emit("evt", None)
        assert ("l10", None) in received

    def test_custom_max_listeners(self):
        emitter = Emitter(max_listeners=2)
        emitter.on("evt", _recorder([], "a"))
        emitter.on("evt", _recorder([], "b"))

        with pytest.raises(MaxListenersExceededError):
            emitter.once("evt", _recorder([], "c"))
        assert emitter.max_listeners == 2

    def test_registry_errors_share_a_base(self, emitter):
        listener = _recorder([], "x")
        emitter.on("evt", listener)
        with pytest.raises(EmitterError):
            emitter.on("evt", listener)


class TestRemoval:
    def test_off_without_listener_removes_event(self, emitter):
        emitter.on("evt", _recorder([], "a"))
        emitter.once("evt", _recorder([], "b"))

        emitter.off("evt")

        assert emitter.listener_count("evt") == 0
        assert "evt" not in emitter

    def test_on_after_off_is_not_a_duplicate(self, emitter):
        listener = _recorder([], "a")
        emitter.on("evt", listener)
        emitter.off("evt")

        emitter.on("evt", listener)
        assert emitter.listener_count("evt") == 1

    def test_off_single_listener(self, emitter):
        keep = _recorder([], "keep")
        drop = _recorder([], "drop")
        emitter.on("evt", keep)
        emitter.on("evt", drop)

        emitter.off("evt", drop)
        assert emitter.listener_count("evt") == 1

    def test_off_last_listener_removes_record(self, emitter):
        listener = _recorder([], "a")
        emitter.on("evt", listener)

        emitter.off("evt", listener)
        assert "evt" not in emitter

    def test_off_absent_listener_is_noop(self, emitter):
        emitter.on("evt", _recorder([], "a"))
        emitter.off("evt", _recorder([], "stranger"))
        emitter.off("missing", _recorder([], "stranger"))
        assert emitter.listener_count("evt") == 1

    def test_clear_all(self, emitter):
        emitter.on("a", _recorder([], "a"))
        emitter.on("b", _recorder([], "b"))

        emitter.clear()
        assert emitter.event_names() == []

    def test_clear_one_event(self, emitter):
        emitter.on("a", _recorder([], "a"))
        emitter.on("b", _recorder([], "b"))

        emitter.clear("a")
        assert emitter.event_names() == ["b"]


class TestListenerCount:
    @pytest.mark.parametrize("name", ["", None])
    def test_requires_event_name(self, emitter, name):
        with pytest.raises(EventNameRequiredError):
            emitter.listener_count(name)

    def test_unknown_event_is_zero(self, emitter):
        assert emitter.listener_count("nothing") == 0
