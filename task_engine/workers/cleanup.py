import asyncio
import logging
from typing import Optional

from task_engine.core.service import TaskService

logger = logging.getLogger(__name__)


class CleanupScheduler:
    """Periodically drops finished tasks that haven't been touched for a while."""

    def __init__(
        self,
        service: TaskService,
        interval_seconds: float = 3600,
        older_than_hours: float = 24,
    ):
        self.service = service
        self.interval_seconds = interval_seconds
        self.older_than_hours = older_than_hours
        self.last_run = None
        self.last_deleted_count = 0
        self._cleanup_task: Optional[asyncio.Task] = None

    async def start(self):
        """Start periodic cleanup"""
        if self._cleanup_task is not None and not self._cleanup_task.done():
            return
        self._cleanup_task = asyncio.create_task(self._cleanup_loop())
        logger.info(f"Cleanup scheduler started (every {self.interval_seconds}s, "
                    f"older than {self.older_than_hours}h)")

    async def stop(self):
        """Stop periodic cleanup"""
        if self._cleanup_task:
            self._cleanup_task.cancel()
            try:
                await self._cleanup_task
            except asyncio.CancelledError:
                pass
            self._cleanup_task = None
        logger.info("Cleanup scheduler stopped")

    def run_once(self) -> int:
        deleted_count = self.service.cleanup_old_tasks(self.older_than_hours)
        self.last_run = self.service.store.now()
        self.last_deleted_count = deleted_count
        return deleted_count

    async def _cleanup_loop(self):
        while True:
            await asyncio.sleep(self.interval_seconds)
            try:
                self.run_once()
            except Exception as e:
                logger.exception("Cleanup run failed")
                self.service.events.worker_error(f"Cleanup error: {e}")
