import logging
import threading
from datetime import datetime
from typing import Callable, Dict, List, Optional

from task_engine.core.exceptions import CapacityExceeded
from task_engine.models.task import Task, TaskFilter, TaskStats, TaskStatus, utcnow

logger = logging.getLogger(__name__)

Clock = Callable[[], datetime]


class TaskStore:
    """
    Memory-resident owner of every task record.

    The store only ever hands out deep copies, so callers can't mutate the
    authoritative record behind its back. All access goes through ``lock``,
    a re-entrant lock that callers also hold when they need a read-then-write
    step to be atomic (claiming, state checks before a transition).
    """

    def __init__(self, max_size: int = 1000, clock: Optional[Clock] = None):
        self.max_size = max_size
        self.clock: Clock = clock or utcnow
        self.lock = threading.RLock()
        self._tasks: Dict[str, Task] = {}

    def now(self) -> datetime:
        return self.clock()

    def __len__(self) -> int:
        with self.lock:
            return len(self._tasks)

    def __contains__(self, task_id: str) -> bool:
        with self.lock:
            return task_id in self._tasks

    def insert(self, task: Task) -> Task:
        with self.lock:
            if len(self._tasks) >= self.max_size:
                raise CapacityExceeded(self.max_size)
            self._tasks[task.id] = task.model_copy(deep=True)
            logger.debug(f"Task {task.id} added to store ({len(self._tasks)}/{self.max_size})")
            return task.model_copy(deep=True)

    def get(self, task_id: str) -> Optional[Task]:
        with self.lock:
            task = self._tasks.get(task_id)
            return task.model_copy(deep=True) if task else None

    def update(self, task_id: str, **fields) -> Optional[Task]:
        """Merge ``fields`` into the stored task. Keys passed as None are cleared."""
        with self.lock:
            task = self._tasks.get(task_id)
            if task is None:
                return None
            fields["updated_at"] = self.now()
            updated = task.model_copy(update=fields, deep=True)
            self._tasks[task_id] = updated
            return updated.model_copy(deep=True)

    def delete(self, task_id: str) -> bool:
        with self.lock:
            deleted = self._tasks.pop(task_id, None) is not None
        if deleted:
            logger.debug(f"Task {task_id} deleted from store")
        return deleted

    def scan(self, predicate: Callable[[Task], bool]) -> List[Task]:
        """Copies of the tasks matching ``predicate``, in insertion order."""
        with self.lock:
            return [t.model_copy(deep=True) for t in self._tasks.values() if predicate(t)]

    def remove_where(self, predicate: Callable[[Task], bool]) -> int:
        with self.lock:
            doomed = [task_id for task_id, t in self._tasks.items() if predicate(t)]
            for task_id in doomed:
                del self._tasks[task_id]
        return len(doomed)

    def list(self, task_filter: Optional[TaskFilter] = None, limit: int = 50, offset: int = 0) -> List[Task]:
        tasks = self.scan(task_filter.matches if task_filter else (lambda _t: True))
        # Newest first
        tasks.sort(key=lambda t: t.created_at, reverse=True)
        return tasks[offset:offset + limit]

    def statistics(self) -> TaskStats:
        with self.lock:
            tasks = list(self._tasks.values())

            by_status = {status: 0 for status in TaskStatus}
            for task in tasks:
                by_status[task.status] += 1

            durations = [
                t.duration_ms for t in tasks
                if t.status == TaskStatus.COMPLETED and t.duration_ms is not None
            ]

        average_duration_ms = sum(durations) / len(durations) if durations else 0.0

        finished = by_status[TaskStatus.COMPLETED] + by_status[TaskStatus.FAILED]
        success_rate = by_status[TaskStatus.COMPLETED] / finished if finished else 0.0

        return TaskStats(
            total=len(tasks),
            by_status=by_status,
            average_duration_ms=average_duration_ms,
            success_rate=success_rate,
        )
