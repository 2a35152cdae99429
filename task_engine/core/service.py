import logging
from datetime import timedelta
from typing import Any, Dict, List, Optional, Union

from task_engine.core import metrics
from task_engine.core.events import TaskEventLogger
from task_engine.core.exceptions import InvalidStateTransition, TaskNotFound
from task_engine.core.queue import TaskQueue
from task_engine.models.task import (
    Task,
    TaskCreate,
    TaskFilter,
    TaskStats,
    TaskStatus,
    TaskUpdate,
)

logger = logging.getLogger(__name__)


class TaskService:
    """
    Public task API and owner of the task state machine.

        PENDING -> PROCESSING -> COMPLETED | FAILED | RETRYING
        RETRYING -> PROCESSING
        PENDING | RETRYING -> CANCELLED
        FAILED -> RETRYING            (explicit retry request)

    Every check-then-write runs under the store lock so a concurrent claim
    can't slip in between the status check and the mutation.
    """

    def __init__(
        self,
        queue: TaskQueue,
        events: Optional[TaskEventLogger] = None,
        retry_backoff_seconds: float = 0.0,
        default_max_retries: int = 3,
    ):
        self.queue = queue
        self.store = queue.store
        self.events = events or TaskEventLogger()
        self.retry_backoff_seconds = retry_backoff_seconds
        self.default_max_retries = default_max_retries

    def create_task(self, task_create: Union[TaskCreate, Dict[str, Any]]) -> Task:
        if not isinstance(task_create, TaskCreate):
            task_create = TaskCreate.model_validate(task_create)

        max_retries = task_create.max_retries
        if "max_retries" not in task_create.model_fields_set:
            max_retries = self.default_max_retries

        now = self.store.now()
        task = Task(
            type=task_create.type,
            payload=task_create.payload,
            priority=task_create.priority,
            max_retries=max_retries,
            scheduled_for=task_create.scheduled_for,
            created_by=task_create.created_by,
            metadata=task_create.metadata,
            created_at=now,
            updated_at=now,
        )
        self.queue.enqueue_task(task)

        metrics.TASKS_CREATED.labels(task_type=task.type.value).inc()
        self.events.task_created(task)
        return task

    def get_task(self, task_id: str) -> Optional[Task]:
        return self.queue.get_task(task_id)

    def get_tasks(self, task_filter: Optional[TaskFilter] = None, limit: int = 50, offset: int = 0) -> List[Task]:
        return self.queue.get_tasks(task_filter, limit=limit, offset=offset)

    def get_stats(self) -> TaskStats:
        return self.queue.get_stats()

    def update_task(self, task_id: str, task_update: Union[TaskUpdate, Dict[str, Any]]) -> Task:
        if not isinstance(task_update, TaskUpdate):
            task_update = TaskUpdate.model_validate(task_update)

        with self.store.lock:
            task = self._require(task_id)
            if task.status == TaskStatus.PROCESSING:
                raise InvalidStateTransition(task_id, task.status, "update",
                                             "Cannot update task while it's being processed")

            updates: Dict[str, Any] = {}
            if task_update.priority is not None:
                updates["priority"] = task_update.priority
            if task_update.max_retries is not None:
                updates["max_retries"] = task_update.max_retries
            # An explicit null clears the schedule
            if "scheduled_for" in task_update.model_fields_set:
                updates["scheduled_for"] = task_update.scheduled_for
            if task_update.metadata is not None:
                updates["metadata"] = {**task.metadata, **task_update.metadata}

            updated = self.queue.update_task(task_id, **updates)

        self.events.custom("Task Updated", updated, changes=sorted(updates))
        return updated

    def cancel_task(self, task_id: str, reason: Optional[str] = None) -> Task:
        with self.store.lock:
            task = self._require(task_id)
            if task.status == TaskStatus.PROCESSING:
                raise InvalidStateTransition(task_id, task.status, "cancel",
                                             "Cannot cancel task while it's being processed")
            if task.status.is_terminal:
                raise InvalidStateTransition(task_id, task.status, "cancel")

            updated = self.queue.update_task(
                task_id,
                status=TaskStatus.CANCELLED,
                error=reason or "Task cancelled by user",
                completed_at=self.store.now(),
            )

        metrics.TASKS_CANCELLED.labels(task_type=updated.type.value).inc()
        self.events.task_cancelled(updated, reason)
        return updated

    def delete_task(self, task_id: str) -> bool:
        with self.store.lock:
            task = self._require(task_id)
            if task.status == TaskStatus.PROCESSING:
                raise InvalidStateTransition(task_id, task.status, "delete",
                                             "Cannot delete task while it's being processed")
            deleted = self.queue.delete_task(task_id)

        self.events.custom("Task Deleted", task)
        return deleted

    def retry_task(self, task_id: str) -> Task:
        """Put a FAILED task back into the pool. The retry count is kept."""
        with self.store.lock:
            task = self._require(task_id)
            if task.status != TaskStatus.FAILED:
                raise InvalidStateTransition(task_id, task.status, "retry",
                                             "Only failed tasks can be retried")
            if task.retry_count >= task.max_retries:
                raise InvalidStateTransition(task_id, task.status, "retry",
                                             "Task has exceeded maximum retry attempts")

            updated = self.queue.update_task(
                task_id,
                status=TaskStatus.RETRYING,
                error=None,
                started_at=None,
                completed_at=None,
            )

        self.events.custom("Task Retry Requested", updated, retry_count=updated.retry_count)
        return updated

    # Outcome recording, called by the worker

    def mark_task_completed(self, task_id: str, result: Dict[str, Any], duration_ms: float) -> Task:
        with self.store.lock:
            task = self._require(task_id)
            self._require_processing(task, "complete")
            updated = self.queue.update_task(
                task_id,
                status=TaskStatus.COMPLETED,
                result=result,
                error=None,
                completed_at=self.store.now(),
            )

        metrics.TASKS_PROCESSED.labels(task_type=updated.type.value).inc()
        self.events.task_completed(updated, duration_ms)
        return updated

    def mark_task_failed(
        self,
        task_id: str,
        error: str,
        duration_ms: Optional[float] = None,
        retryable: bool = True,
    ) -> Task:
        """
        Record a failed attempt.

        The ceiling is checked before the count is bumped: while
        ``retry_count < max_retries`` the task goes to RETRYING, otherwise it
        becomes FAILED. Both branches increment ``retry_count``, so a task that
        never succeeds ends with ``retry_count == max_retries + 1``.
        Non-retryable failures go straight to FAILED.
        """
        with self.store.lock:
            task = self._require(task_id)
            self._require_processing(task, "fail")

            should_retry = retryable and task.retry_count < task.max_retries
            retry_count = task.retry_count + 1

            if should_retry:
                updates: Dict[str, Any] = {
                    "status": TaskStatus.RETRYING,
                    "error": error,
                    "retry_count": retry_count,
                    "started_at": None,
                }
                if self.retry_backoff_seconds > 0:
                    backoff = self.retry_backoff_seconds * 2 ** (retry_count - 1)
                    updates["scheduled_for"] = self.store.now() + timedelta(seconds=backoff)
            else:
                updates = {
                    "status": TaskStatus.FAILED,
                    "error": error,
                    "retry_count": retry_count,
                    "completed_at": self.store.now(),
                }

            updated = self.queue.update_task(task_id, **updates)

        if should_retry:
            metrics.TASKS_RETRIED.labels(task_type=updated.type.value).inc()
            self.events.task_retrying(updated, error)
        else:
            metrics.TASKS_FAILED.labels(task_type=updated.type.value).inc()
            self.events.task_failed(updated, error, duration_ms)
        return updated

    def cleanup_old_tasks(self, older_than_hours: float = 24) -> int:
        deleted_count = self.queue.clear_finished_tasks(older_than_hours)
        if deleted_count > 0:
            self.events.custom("Tasks Cleaned Up", deleted_count=deleted_count,
                               older_than_hours=older_than_hours)
        return deleted_count

    def _require(self, task_id: str) -> Task:
        task = self.queue.get_task(task_id)
        if task is None:
            raise TaskNotFound(task_id)
        return task

    @staticmethod
    def _require_processing(task: Task, operation: str) -> None:
        if task.status != TaskStatus.PROCESSING:
            raise InvalidStateTransition(task.id, task.status, operation)
