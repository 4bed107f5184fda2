"""
Tests for the schedule registry and the per-message locks
"""
import asyncio
import logging

import pytest
from apscheduler.jobstores.base import JobLookupError

from deadswitch.features.reminders.locks import MessageLocks
from deadswitch.features.reminders.registry import ScheduleRegistry, TaskKind


class FakeJob:
    def __init__(self, job_id, gone=False):
        self.id = job_id
        self.gone = gone
        self.removed = 0

    def remove(self):
        if self.gone:
            raise JobLookupError(self.id)
        self.removed += 1
        self.gone = True


class TestScheduleRegistry:
    def test_put_replaces_and_cancels_previous(self):
        registry = ScheduleRegistry()
        first, second = FakeJob("a"), FakeJob("b")

        registry.put((1, TaskKind.PROMPT), first)
        registry.put((1, TaskKind.PROMPT), second)

        assert first.removed == 1
        assert second.removed == 0
        assert registry.get((1, TaskKind.PROMPT)) is second
        assert len(registry) == 1

    def test_kinds_are_independent(self):
        registry = ScheduleRegistry()
        prompt, escalation = FakeJob("p"), FakeJob("e")
        registry.put((1, TaskKind.PROMPT), prompt)
        registry.put((1, TaskKind.ESCALATION), escalation)

        assert registry.cancel((1, TaskKind.ESCALATION)) is True
        assert (1, TaskKind.PROMPT) in registry
        assert prompt.removed == 0

    def test_cancel_missing_key(self):
        assert ScheduleRegistry().cancel((7, TaskKind.PROMPT)) is False

    def test_cancel_finished_job_logs_warning(self, caplog):
        registry = ScheduleRegistry()
        registry.put((3, TaskKind.ESCALATION), FakeJob("done", gone=True))

        with caplog.at_level(logging.WARNING, logger="schedule_registry"):
            assert registry.cancel((3, TaskKind.ESCALATION)) is False

        assert (3, TaskKind.ESCALATION) not in registry
        assert "may have already completed" in caplog.text

    def test_cancel_all(self):
        registry = ScheduleRegistry()
        registry.put((1, TaskKind.PROMPT), FakeJob("p1"))
        registry.put((1, TaskKind.ESCALATION), FakeJob("e1"))
        registry.put((2, TaskKind.PROMPT), FakeJob("p2"))

        assert registry.cancel_all(1) == 2
        assert registry.keys() == [(2, TaskKind.PROMPT)]

    def test_holds_and_release(self):
        registry = ScheduleRegistry()
        job = FakeJob("e1")
        registry.put((1, TaskKind.ESCALATION), job)

        assert registry.holds((1, TaskKind.ESCALATION), "e1")
        assert not registry.holds((1, TaskKind.ESCALATION), "other")
        assert registry.release((1, TaskKind.ESCALATION), "other") is False
        assert registry.release((1, TaskKind.ESCALATION), "e1") is True
        assert job.removed == 0
        assert len(registry) == 0

    def test_clear(self):
        registry = ScheduleRegistry()
        job = FakeJob("p1")
        registry.put((1, TaskKind.PROMPT), job)
        registry.clear()
        assert len(registry) == 0
        assert job.removed == 0


class TestMessageLocks:
    @pytest.mark.asyncio
    async def test_same_message_is_serialized(self):
        locks = MessageLocks()
        order = []

        async def worker(name):
            async with locks.hold(1):
                order.append(f"{name}-in")
                await asyncio.sleep(0.01)
                order.append(f"{name}-out")

        await asyncio.gather(worker("a"), worker("b"))
        assert order == ["a-in", "a-out", "b-in", "b-out"]

    @pytest.mark.asyncio
    async def test_different_messages_do_not_block(self):
        locks = MessageLocks()
        async with locks.hold(1):
            await asyncio.wait_for(locks.lock_for(2).acquire(), timeout=0.5)
            locks.lock_for(2).release()

    @pytest.mark.asyncio
    async def test_discard_keeps_held_locks(self):
        locks = MessageLocks()
        async with locks.hold(1):
            locks.discard(1)
            assert len(locks) == 1
        locks.discard(1)
        assert len(locks) == 0
