"""
Tests for the periodic cleanup scheduler.
"""
import asyncio

import pytest

from services.cleanup_scheduler import CleanupScheduler
from services.session_registry import SessionRegistry
from services.task_tracker import TaskProgressTracker


def test_run_once_expires_sessions_and_drops_finished_tasks(tmp_path):
    registry = SessionRegistry(timeout=300)
    tracker = TaskProgressTracker()
    scheduler = CleanupScheduler(registry, tracker=tracker, interval=60)

    stale = tmp_path / "stale.mp4"
    stale.write_bytes(b"s")
    registry.track("old", stale, now=0)
    tracker.start("trim-1")
    tracker.complete("trim-1")

    expired = scheduler.run_once(now=10**10)

    assert expired == ["old"]
    assert not stale.exists()
    assert tracker.get("trim-1") is None
    assert scheduler.get_status()["sessions_expired"] == 1


@pytest.mark.asyncio
async def test_scheduler_sweeps_in_background(tmp_path):
    registry = SessionRegistry(timeout=0)
    scheduler = CleanupScheduler(registry, interval=0.01)
    stale = tmp_path / "stale.mp4"
    stale.write_bytes(b"s")
    registry.track("s1", stale, now=0)

    scheduler.start()
    try:
        for _ in range(100):
            if registry.session_count == 0:
                break
            await asyncio.sleep(0.01)
    finally:
        await scheduler.stop()

    assert registry.session_count == 0
    assert not stale.exists()
    assert scheduler.running is False


@pytest.mark.asyncio
async def test_scheduler_survives_failing_tick():
    class BrokenRegistry(SessionRegistry):
        def __init__(self):
            super().__init__()
            self.calls = 0

        def sweep(self, now=None):
            self.calls += 1
            if self.calls == 1:
                raise RuntimeError("disk on fire")
            return []

    registry = BrokenRegistry()
    scheduler = CleanupScheduler(registry, interval=0.01)
    scheduler.start()
    try:
        for _ in range(100):
            if registry.calls >= 2:
                break
            await asyncio.sleep(0.01)
    finally:
        await scheduler.stop()

    assert registry.calls >= 2


@pytest.mark.asyncio
async def test_stop_without_start_is_noop():
    scheduler = CleanupScheduler(SessionRegistry())
    await scheduler.stop()
    assert scheduler.task is None
