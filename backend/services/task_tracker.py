"""
Task Progress Tracker

Process-wide last-value store of task id -> percent complete. Jobs write
into it while they run; progress streams sample it on a fixed cadence.

A task that is absent is unknown or failed, 100 means done. The store has
no back-pressure and no history: it is a liveness signal, not a queue.
"""
import asyncio
import logging
import threading
import time
import uuid
from typing import AsyncIterator, Awaitable, Callable, Optional

from constants import ProgressConfig

logger = logging.getLogger(__name__)


class TaskProgressTracker:
    """Lock-guarded map of task id -> (progress, last update time)."""

    def __init__(self, poll_interval: float = ProgressConfig.POLL_INTERVAL_SECONDS):
        self.poll_interval = poll_interval
        self._tasks: dict[str, tuple[float, float]] = {}
        self._lock = threading.Lock()

    @staticmethod
    def new_task_id(kind: str) -> str:
        """Task ids embed the job kind and start time, plus a random suffix."""
        return f"{kind}-{int(time.time() * 1000)}-{uuid.uuid4().hex[:6]}"

    def start(self, task_id: str) -> None:
        with self._lock:
            self._tasks[task_id] = (0, time.time())
        logger.debug(f"Task {task_id} started")

    def update(self, task_id: str, percent: float) -> None:
        """Store a running percentage, clamped to [0, 99] and never decreasing."""
        clamped = min(ProgressConfig.RUNNING_MAX, max(ProgressConfig.RUNNING_MIN, percent))
        with self._lock:
            current = self._tasks.get(task_id)
            if current is None:
                return
            # complete() already stored 100
            if current[0] >= ProgressConfig.DONE:
                return
            self._tasks[task_id] = (max(current[0], clamped), time.time())

    def complete(self, task_id: str) -> None:
        with self._lock:
            self._tasks[task_id] = (ProgressConfig.DONE, time.time())
        logger.debug(f"Task {task_id} complete")

    def fail(self, task_id: str) -> None:
        with self._lock:
            self._tasks.pop(task_id, None)
        logger.debug(f"Task {task_id} failed, removed")

    def get(self, task_id: str) -> Optional[float]:
        with self._lock:
            entry = self._tasks.get(task_id)
        return entry[0] if entry is not None else None

    def __len__(self) -> int:
        with self._lock:
            return len(self._tasks)

    def discard_finished(self, older_than: float = ProgressConfig.COMPLETED_RETENTION_SECONDS,
                         now: Optional[float] = None) -> int:
        """
        Drop completed tasks whose final update is older than ``older_than`` seconds.

        Running tasks are never dropped.

        Returns:
            Number of entries removed
        """
        now = time.time() if now is None else now
        with self._lock:
            stale = [
                task_id for task_id, (progress, updated_at) in self._tasks.items()
                if progress >= ProgressConfig.DONE and now - updated_at > older_than
            ]
            for task_id in stale:
                del self._tasks[task_id]
        return len(stale)

    async def subscribe(
        self,
        task_id: str,
        is_disconnected: Optional[Callable[[], Awaitable[bool]]] = None,
    ) -> AsyncIterator[dict]:
        """
        Yield ``{"progress": value}`` snapshots every poll interval.

        Nothing is yielded while the task is unknown. The sequence ends after
        a value of 100 has been yielded, or when ``is_disconnected`` reports
        true. Closing the generator stops polling; the job itself is never
        affected.
        """
        while True:
            if is_disconnected is not None and await is_disconnected():
                logger.debug(f"Progress subscriber for {task_id} disconnected")
                return

            progress = self.get(task_id)
            if progress is not None:
                yield {"progress": progress}
                if progress >= ProgressConfig.DONE:
                    return

            await asyncio.sleep(self.poll_interval)


# Global tracker instance
task_tracker = TaskProgressTracker()
