"""
Cleanup Scheduler - periodic session expiry

Sweeps the session registry on a fixed interval for the lifetime of the
process, removing sessions (and their scratch files) that have been idle
longer than the session timeout. Completed progress entries past their
retention window are dropped on the same tick.
"""
import asyncio
import logging
import time
from typing import Optional

from constants import SessionConfig
from services.session_registry import SessionRegistry
from services.task_tracker import TaskProgressTracker

logger = logging.getLogger(__name__)


class CleanupScheduler:
    """
    Background service that expires idle sessions.

    Nothing is persisted: sessions and scratch files live only as long as
    the process.
    """

    def __init__(
        self,
        registry: SessionRegistry,
        tracker: Optional[TaskProgressTracker] = None,
        interval: float = SessionConfig.SWEEP_INTERVAL_SECONDS,
    ):
        self.registry = registry
        self.tracker = tracker
        self.interval = interval
        self.running = False
        self.task: Optional[asyncio.Task] = None
        self.last_run: Optional[float] = None
        self.sessions_expired = 0

    def start(self):
        """Start the scheduler background task"""
        if self.running:
            logger.warning("Cleanup scheduler already running")
            return

        self.running = True
        self.task = asyncio.create_task(self._run())
        logger.info(f"✅ Cleanup scheduler started (every {self.interval:g}s)")

    async def stop(self):
        """Stop the scheduler background task and wait for it to exit"""
        if not self.running:
            return

        self.running = False
        if self.task and not self.task.done():
            self.task.cancel()
            try:
                await self.task
            except asyncio.CancelledError:
                pass
        self.task = None
        logger.info("🛑 Cleanup scheduler stopped")

    def run_once(self, now: Optional[float] = None) -> list[str]:
        """
        Perform one sweep.

        Returns:
            Ids of the sessions that expired on this tick
        """
        now = time.time() if now is None else now
        expired = self.registry.sweep(now)
        self.sessions_expired += len(expired)
        if self.tracker is not None:
            dropped = self.tracker.discard_finished(now=now)
            if dropped:
                logger.debug(f"Dropped {dropped} finished task(s) from progress store")
        self.last_run = now
        return expired

    async def _run(self):
        """Main loop: sleep, sweep, repeat until cancelled."""
        while self.running:
            try:
                await asyncio.sleep(self.interval)
                expired = self.run_once()
                if expired:
                    logger.info(f"[Cleanup] Expired {len(expired)} session(s)")
            except asyncio.CancelledError:
                logger.info("Cleanup scheduler task cancelled")
                break
            except Exception as e:
                # A failed tick must not end the schedule
                logger.error(f"Cleanup sweep error: {e}", exc_info=True)

    def get_status(self) -> dict:
        return {
            'running': self.running,
            'interval_seconds': self.interval,
            'session_timeout_seconds': self.registry.timeout,
            'active_sessions': self.registry.session_count,
            'sessions_expired': self.sessions_expired,
            'last_run': self.last_run,
        }
