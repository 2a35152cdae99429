import logging
from datetime import timedelta
from typing import List, Optional

from task_engine.core.store import TaskStore
from task_engine.models.task import Task, TaskFilter, TaskStats, TaskStatus, TERMINAL_STATUSES

logger = logging.getLogger(__name__)


class TaskQueue:
    """Selection policy and atomic claiming on top of a TaskStore."""

    def __init__(self, store: TaskStore):
        self.store = store

    @property
    def max_size(self) -> int:
        return self.store.max_size

    def enqueue_task(self, task: Task) -> str:
        self.store.insert(task)
        logger.debug(f"Task {task.id} enqueued with priority {task.priority.name}")
        return task.id

    def claim_next(self) -> Optional[Task]:
        """
        Claim the next eligible task and move it to PROCESSING.

        Highest priority wins; among equal priorities the oldest task wins,
        and tasks created at the same instant keep their insertion order.
        Selection and transition happen under the store lock, so two
        concurrent callers can never claim the same task.
        """
        with self.store.lock:
            now = self.store.now()
            eligible = self.store.scan(lambda t: t.is_eligible(now))
            if not eligible:
                return None

            eligible.sort(key=lambda t: (-t.priority.value, t.created_at))
            head = eligible[0]
            claimed = self.store.update(head.id, status=TaskStatus.PROCESSING, started_at=now)

        logger.debug(f"Claimed task {claimed.id} ({claimed.type.value}, priority {claimed.priority.name})")
        return claimed

    def get_task(self, task_id: str) -> Optional[Task]:
        return self.store.get(task_id)

    def get_tasks(self, task_filter: Optional[TaskFilter] = None, limit: int = 50, offset: int = 0) -> List[Task]:
        return self.store.list(task_filter, limit=limit, offset=offset)

    def update_task(self, task_id: str, **fields) -> Optional[Task]:
        return self.store.update(task_id, **fields)

    def delete_task(self, task_id: str) -> bool:
        return self.store.delete(task_id)

    def get_stats(self) -> TaskStats:
        return self.store.statistics()

    def clear_finished_tasks(self, older_than_hours: float = 24) -> int:
        """Drop terminal tasks whose last update is older than the cutoff."""
        cutoff = self.store.now() - timedelta(hours=older_than_hours)
        deleted_count = self.store.remove_where(
            lambda t: t.status in TERMINAL_STATUSES and t.updated_at < cutoff
        )
        if deleted_count > 0:
            logger.info(f"Cleared {deleted_count} finished tasks older than {older_than_hours} hours")
        return deleted_count

    def get_queue_length(self) -> int:
        return len(self.store)

    def get_eligible_count(self) -> int:
        now = self.store.now()
        return len(self.store.scan(lambda t: t.is_eligible(now)))

    def get_processing_count(self) -> int:
        return len(self.store.scan(lambda t: t.status == TaskStatus.PROCESSING))
