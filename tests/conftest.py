from __future__ import annotations

from datetime import datetime, timedelta, timezone
from typing import Any

import pytest

from task_engine.core.events import TaskEventLogger
from task_engine.core.queue import TaskQueue
from task_engine.core.service import TaskService
from task_engine.core.store import TaskStore
from task_engine.models.task import Task, TaskCreate, TaskPriority, TaskType


class FakeClock:
    """Manually advanced clock so scheduling and cleanup tests are deterministic."""

    def __init__(self, start: datetime | None = None) -> None:
        self.now = start or datetime(2024, 1, 1, 12, 0, tzinfo=timezone.utc)

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs: float) -> None:
        self.now += timedelta(**kwargs)


@pytest.fixture()
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture()
def store(clock: FakeClock) -> TaskStore:
    return TaskStore(max_size=1000, clock=clock)


@pytest.fixture()
def queue(store: TaskStore) -> TaskQueue:
    return TaskQueue(store)


@pytest.fixture()
def service(queue: TaskQueue) -> TaskService:
    return TaskService(queue, events=TaskEventLogger(structured=True))


@pytest.fixture()
def make_task(service: TaskService):
    """Create a task through the service with sensible defaults."""

    def _make(**overrides: Any) -> Task:
        data: dict[str, Any] = {
            "type": TaskType.SEND_NOTIFICATION,
            "payload": {"user_id": "u1", "title": "hi", "message": "hello"},
            "priority": TaskPriority.NORMAL,
            "created_by": "svc-a",
        }
        data.update(overrides)
        return service.create_task(TaskCreate(**data))

    return _make
