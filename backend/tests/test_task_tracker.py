"""
Tests for the task progress tracker and its polling subscription.
"""
import asyncio

import pytest

from services.task_tracker import TaskProgressTracker


def test_new_task_id_embeds_kind():
    task_id = TaskProgressTracker.new_task_id("trim")
    kind, stamp, suffix = task_id.split("-")
    assert kind == "trim"
    assert stamp.isdigit()
    assert len(suffix) == 6


def test_task_ids_are_unique():
    ids = {TaskProgressTracker.new_task_id("extract") for _ in range(200)}
    assert len(ids) == 200


def test_update_clamps_running_values(tracker):
    tracker.start("t")
    tracker.update("t", -5)
    assert tracker.get("t") == 0
    tracker.update("t", 150)
    assert tracker.get("t") == 99


def test_update_never_decreases(tracker):
    tracker.start("t")
    tracker.update("t", 40)
    tracker.update("t", 20)
    assert tracker.get("t") == 40


def test_update_after_complete_is_ignored(tracker):
    tracker.start("t")
    tracker.complete("t")
    tracker.update("t", 50)
    assert tracker.get("t") == 100


def test_update_unknown_task_does_not_create_it(tracker):
    tracker.update("ghost", 50)
    assert tracker.get("ghost") is None
    assert len(tracker) == 0


def test_fail_removes_task(tracker):
    tracker.start("t")
    tracker.update("t", 30)
    tracker.fail("t")
    assert tracker.get("t") is None


def test_discard_finished_keeps_running_tasks(tracker):
    tracker.start("running")
    tracker.start("done")
    tracker.complete("done")

    # Well past the retention window
    dropped = tracker.discard_finished(older_than=60, now=10**12)

    assert dropped == 1
    assert tracker.get("done") is None
    assert tracker.get("running") == 0


@pytest.mark.asyncio
async def test_subscribe_ends_after_completion(tracker):
    tracker.start("t")

    async def drive():
        await asyncio.sleep(0.03)
        tracker.update("t", 50)
        await asyncio.sleep(0.03)
        tracker.complete("t")

    driver = asyncio.create_task(drive())
    snapshots = [s["progress"] async for s in tracker.subscribe("t")]
    await driver

    assert snapshots[0] == 0
    assert snapshots[-1] == 100
    assert snapshots == sorted(snapshots)
    assert 50 in snapshots


@pytest.mark.asyncio
async def test_subscribe_stops_on_disconnect(tracker):
    tracker.start("t")
    polls = 0

    async def is_disconnected():
        nonlocal polls
        polls += 1
        return polls > 3

    snapshots = [s async for s in tracker.subscribe("t", is_disconnected)]

    assert len(snapshots) == 3
    # The task itself is untouched
    assert tracker.get("t") == 0


@pytest.mark.asyncio
async def test_subscribe_unknown_task_yields_nothing(tracker):
    polls = 0

    async def is_disconnected():
        nonlocal polls
        polls += 1
        return polls > 5

    snapshots = [s async for s in tracker.subscribe("missing", is_disconnected)]
    assert snapshots == []
