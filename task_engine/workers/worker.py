import asyncio
import inspect
import logging
import os
import time
import uuid
from typing import Any, Dict, Optional

from task_engine.core import metrics
from task_engine.core.exceptions import HandlerExecutionError, HandlerTimeout
from task_engine.core.service import TaskService
from task_engine.models.task import Task, WorkerStatus
from task_engine.workers.registry import HandlerRegistry, TaskHandler

logger = logging.getLogger(__name__)


class Worker:
    """
    Cooperative single-task execution loop.

    Claims one task at a time, runs it through the handler registered for its
    type and reports the outcome back to the TaskService. Exactly one task is
    in flight per worker; handler errors never stop the loop.
    """

    def __init__(
        self,
        service: TaskService,
        registry: Optional[HandlerRegistry] = None,
        *,
        worker_id: Optional[str] = None,
        busy_delay: float = 0.1,
        idle_delay: float = 1.0,
        error_delay: float = 5.0,
        restart_pause: float = 1.0,
        task_timeout: Optional[float] = None,
    ):
        self.service = service
        self.queue = service.queue
        self.registry = registry or HandlerRegistry()
        self.worker_id = worker_id or os.getenv('WORKER_ID', str(uuid.uuid4()))
        self.busy_delay = busy_delay
        self.idle_delay = idle_delay
        self.error_delay = error_delay
        self.restart_pause = restart_pause
        self.task_timeout = task_timeout

        self.running = False
        self.current_task_id: Optional[str] = None
        self.processed_count = 0
        self.failed_count = 0
        self.started_at = None
        self.last_activity = None

        self._stop_event = asyncio.Event()
        self._loop_task: Optional[asyncio.Task] = None

    def register_task_handler(self, task_type, handler: TaskHandler):
        """Register a handler function for a specific task type"""
        self.registry.register(task_type, handler)

    def start(self) -> asyncio.Task:
        """Start the loop in the background. Calling it on a running worker is a no-op."""
        if self._loop_task is not None and not self._loop_task.done():
            return self._loop_task

        self.running = True
        self._stop_event = asyncio.Event()
        if self.started_at is None:
            self.started_at = self.service.store.now()

        self.service.events.worker_started(self.worker_id)
        metrics.WORKER_RUNNING.set(1)
        self._loop_task = asyncio.create_task(self.run())
        return self._loop_task

    async def stop(self, timeout: Optional[float] = None):
        """
        Stop claiming new tasks and wait for the loop to exit.

        An in-flight task is allowed to finish. With a ``timeout`` the loop is
        cancelled if it hasn't settled in time.
        """
        self.running = False
        self._stop_event.set()

        loop_task, self._loop_task = self._loop_task, None
        if loop_task is not None and not loop_task.done():
            try:
                await asyncio.wait_for(asyncio.shield(loop_task), timeout)
            except asyncio.TimeoutError:
                logger.warning(f"Worker {self.worker_id} did not stop within {timeout}s, cancelling")
                loop_task.cancel()
                try:
                    await loop_task
                except asyncio.CancelledError:
                    pass

        metrics.WORKER_RUNNING.set(0)
        self.service.events.worker_stopped(self.worker_id)

    async def restart(self):
        self.service.events.custom(
            "Worker Restart",
            worker_id=self.worker_id,
            processed_count=self.processed_count,
            failed_count=self.failed_count,
        )
        await self.stop()
        await asyncio.sleep(self.restart_pause)
        self.start()

    async def run(self):
        """Main worker loop"""
        logger.info(f"Starting worker {self.worker_id}...")
        while self.running:
            try:
                processed = await self.run_once()
                delay = self.busy_delay if processed else self.idle_delay
            except Exception as e:
                logger.exception("Error in worker loop")
                self.service.events.worker_error(f"Worker loop error: {e}")
                delay = self.error_delay
            await self._pause(delay)
        logger.info(f"Worker {self.worker_id} stopped")

    async def run_once(self) -> bool:
        """Claim and process at most one task. Returns whether a task was processed."""
        task = self.queue.claim_next()
        if task is None:
            return False
        await self.process_task(task)
        return True

    async def process_task(self, task: Task):
        """Process a single claimed task"""
        self.current_task_id = task.id
        self.last_activity = self.service.store.now()
        self.service.events.task_picked_up(task)
        logger.info(f"Processing task {task.id} of type {task.type.value}")

        started = time.perf_counter()
        try:
            result = await self._execute(task)
        except HandlerExecutionError as e:
            self._record_failure(task, str(e), started, retryable=e.retryable)
        except asyncio.CancelledError:
            # Cancelled by stop(timeout=...); don't leave the task in PROCESSING
            self._record_failure(task, "Task interrupted by worker shutdown", started, retryable=True)
            raise
        except Exception as e:
            self._record_failure(task, f"Task failed: {e}", started, retryable=True)
        else:
            duration_ms = self._elapsed_ms(task, started)
            self.service.mark_task_completed(task.id, result, duration_ms)
            self.processed_count += 1
            logger.info(f"Task {task.id} completed successfully")
        finally:
            self.current_task_id = None
            self.last_activity = self.service.store.now()

    async def _execute(self, task: Task) -> Dict[str, Any]:
        handler = self.registry.resolve(task)
        result = handler(task.payload)
        if inspect.isawaitable(result):
            if self.task_timeout:
                try:
                    result = await asyncio.wait_for(result, self.task_timeout)
                except asyncio.TimeoutError:
                    raise HandlerTimeout(task.id, task.type, self.task_timeout) from None
            else:
                result = await result

        if not isinstance(result, dict):
            result = {"result": result}
        return result

    def _record_failure(self, task: Task, error: str, started: float, retryable: bool):
        logger.error(f"Task {task.id} failed: {error}")
        duration_ms = self._elapsed_ms(task, started)
        self.service.mark_task_failed(task.id, error, duration_ms, retryable=retryable)
        self.failed_count += 1

    @staticmethod
    def _elapsed_ms(task: Task, started: float) -> float:
        elapsed = time.perf_counter() - started
        metrics.TASK_DURATION.labels(task_type=task.type.value).observe(elapsed)
        return elapsed * 1000

    async def _pause(self, delay: float):
        # Wakes up early when stop() is called
        if delay <= 0:
            await asyncio.sleep(0)
            return
        try:
            await asyncio.wait_for(self._stop_event.wait(), timeout=delay)
        except asyncio.TimeoutError:
            pass

    def get_status(self) -> WorkerStatus:
        return WorkerStatus(
            worker_id=self.worker_id,
            running=self.running,
            current_task_id=self.current_task_id,
            processed_count=self.processed_count,
            failed_count=self.failed_count,
            started_at=self.started_at,
            last_activity=self.last_activity,
            registered_types=self.registry.registered_types(),
        )
