import logging
from typing import Any, Awaitable, Callable, Dict, Iterator, List, Union

from task_engine.core.exceptions import UnregisteredHandler
from task_engine.models.task import Task, TaskType

logger = logging.getLogger(__name__)

# A handler takes the task payload and returns a result mapping, or raises.
# Plain (non-async) functions are accepted too.
# Handlers never retry on their own; retry policy belongs to TaskService.
TaskHandler = Callable[[Dict[str, Any]], Union[Awaitable[Any], Any]]


class HandlerRegistry:
    """Maps each task type to the coroutine function that executes it."""

    def __init__(self):
        self._handlers: Dict[TaskType, TaskHandler] = {}

    def register(self, task_type: Union[TaskType, str], handler: TaskHandler) -> None:
        task_type = TaskType(task_type)
        if task_type in self._handlers:
            logger.warning(f"Replacing handler for task type: {task_type.value}")
        self._handlers[task_type] = handler
        logger.info(f"Registered handler for task type: {task_type.value}")

    def unregister(self, task_type: Union[TaskType, str]) -> bool:
        return self._handlers.pop(TaskType(task_type), None) is not None

    def resolve(self, task: Task) -> TaskHandler:
        handler = self._handlers.get(task.type)
        if handler is None:
            raise UnregisteredHandler(task.id, task.type)
        return handler

    def registered_types(self) -> List[TaskType]:
        return list(self._handlers)

    def __contains__(self, task_type) -> bool:
        return task_type in self._handlers

    def __iter__(self) -> Iterator[TaskType]:
        return iter(self._handlers)

    def __len__(self) -> int:
        return len(self._handlers)
