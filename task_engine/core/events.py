import json
import logging
from typing import Any, Dict, Optional

from task_engine.models.task import Task, utcnow

logger = logging.getLogger("task_engine.events")


class TaskEventLogger:
    """
    Emits task lifecycle events.

    With structured logs enabled every event is a single JSON object per line,
    otherwise a short human-readable line with the interesting fields.
    """

    def __init__(self, structured: bool = True, service_name: str = "TaskService"):
        self.structured = structured
        self.service_name = service_name

    def task_created(self, task: Task) -> None:
        self._emit(logging.INFO, "[Task Created]", task, created_by=task.created_by, metadata={
            "priority": task.priority.name,
            "max_retries": task.max_retries,
            "scheduled_for": task.scheduled_for,
            **task.metadata,
        })

    def task_picked_up(self, task: Task) -> None:
        self._emit(logging.INFO, "[Task Processing]", task, retry_count=task.retry_count)

    def task_completed(self, task: Task, duration_ms: float) -> None:
        self._emit(logging.INFO, "[Task Completed]", task, processing_time=duration_ms,
                   retry_count=task.retry_count)

    def task_retrying(self, task: Task, error: str) -> None:
        self._emit(logging.WARNING, "[Task Retrying]", task, error=error, retry_count=task.retry_count)

    def task_failed(self, task: Task, error: str, duration_ms: Optional[float] = None) -> None:
        self._emit(logging.ERROR, "[Task Failed]", task, error=error, processing_time=duration_ms,
                   retry_count=task.retry_count)

    def task_cancelled(self, task: Task, reason: Optional[str] = None) -> None:
        self._emit(logging.WARNING, "[Task Cancelled]", task, error=reason)

    def custom(self, message: str, task: Optional[Task] = None, **context: Any) -> None:
        self._emit(logging.INFO, f"[{message}]", task, **context)

    def worker_started(self, worker_id: str) -> None:
        self._emit(logging.INFO, "[Worker Started]", None, worker_id=worker_id, status="running")

    def worker_stopped(self, worker_id: str) -> None:
        self._emit(logging.INFO, "[Worker Stopped]", None, worker_id=worker_id, status="stopped")

    def worker_error(self, error: str) -> None:
        self._emit(logging.ERROR, "[Worker Error]", None, error=error)

    def _emit(self, level: int, message: str, task: Optional[Task], **context: Any) -> None:
        if not logger.isEnabledFor(level):
            return

        fields: Dict[str, Any] = {
            "task_id": task.id if task else "N/A",
            "type": task.type.value if task else "SYSTEM",
        }
        if task is not None:
            fields["status"] = task.status.value
        fields.update({k: v for k, v in context.items() if v is not None})

        if self.structured:
            entry = {
                "timestamp": utcnow().isoformat(),
                "level": logging.getLevelName(level),
                "service": self.service_name,
                "message": message,
                **fields,
            }
            logger.log(level, json.dumps(entry, default=str))
        else:
            parts = []
            if fields["task_id"] != "N/A":
                parts.append(f"ID={fields['task_id']}")
            parts.append(f"Type={fields['type']}")
            for key in ("status", "retry_count", "processing_time", "error"):
                if key in fields:
                    parts.append(f"{key}={fields[key]}")
            logger.log(level, f"[{self.service_name}] {message} {' '.join(parts)}")
