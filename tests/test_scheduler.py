"""Tests for the background task scheduler."""

import asyncio
from datetime import datetime

from passkey_server.schemas.ceremony import CeremonyType
from passkey_server.tasks.scheduler import BackgroundTaskScheduler, ScheduledTask
from tests.fakes import InspectableChallengeStore


class TestBackgroundTaskScheduler:
    async def test_registers_cleanup_task(self):
        scheduler = BackgroundTaskScheduler(InspectableChallengeStore(), cleanup_interval=30)

        status = scheduler.get_task_status()

        assert status["total_tasks"] == 1
        assert status["tasks"]["challenge_cleanup"]["interval_seconds"] == 30

    async def test_no_tasks_without_store(self):
        assert BackgroundTaskScheduler().tasks == {}

    async def test_cleanup_removes_expired_challenges(self, clock):
        store = InspectableChallengeStore(ttl_seconds=300, clock=clock)
        await store.issue("old", b"1", CeremonyType.REGISTRATION)
        clock.advance(200)
        await store.issue("new", b"2", CeremonyType.AUTHENTICATION)
        clock.advance(150)
        scheduler = BackgroundTaskScheduler(store)
        task = scheduler.tasks["challenge_cleanup"]

        await scheduler.execute_task(task)

        assert store.peek("old") is None
        assert store.peek("new") is not None
        assert task.last_run is not None
        assert task.running is False

    async def test_failed_task_is_rescheduled(self):
        async def broken():
            raise RuntimeError("boom")

        scheduler = BackgroundTaskScheduler()
        scheduler.add_task("broken", broken, interval_seconds=10)
        task = scheduler.tasks["broken"]

        await scheduler.execute_task(task)

        assert task.running is False
        assert task.next_run > task.last_run

    async def test_runs_due_tasks_until_stopped(self):
        calls = []

        async def record():
            calls.append(1)

        scheduler = BackgroundTaskScheduler(poll_interval=0.01)
        scheduler.add_task("record", record, interval_seconds=60)
        scheduler.tasks["record"].next_run = datetime.now()

        scheduler.start()
        await asyncio.sleep(0.05)
        await scheduler.stop()

        assert calls == [1]
        assert scheduler.running is False

    async def test_remove_task(self):
        scheduler = BackgroundTaskScheduler(InspectableChallengeStore())

        scheduler.remove_task("challenge_cleanup")
        scheduler.remove_task("missing")

        assert scheduler.tasks == {}


def test_scheduled_task_should_run():
    async def noop():
        pass

    task = ScheduledTask(name="noop", func=noop, interval_seconds=60)

    assert task.should_run() is False
    assert task.should_run(task.next_run) is True
    task.enabled = False
    assert task.should_run(task.next_run) is False
