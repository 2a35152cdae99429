from datetime import datetime
from typing import List, Optional

from fastapi import APIRouter, HTTPException, Query

from task_engine.core.exceptions import (
    CapacityExceeded,
    InvalidStateTransition,
    TaskEngineError,
    TaskNotFound,
)
from task_engine.core.service import TaskService
from task_engine.models.task import (
    CleanupRequest,
    CleanupResult,
    Task,
    TaskCancel,
    TaskCreate,
    TaskFilter,
    TaskPriority,
    TaskStats,
    TaskStatus,
    TaskType,
    TaskUpdate,
)

router = APIRouter(prefix="/tasks", tags=["tasks"])

# This will be injected as dependency
task_service: TaskService = None


def set_task_service(service: TaskService):
    """Set the task service instance for this router"""
    global task_service
    task_service = service


def _to_http_error(error: TaskEngineError) -> HTTPException:
    if isinstance(error, TaskNotFound):
        return HTTPException(status_code=404, detail="Task not found")
    if isinstance(error, InvalidStateTransition):
        return HTTPException(status_code=409, detail=str(error))
    if isinstance(error, CapacityExceeded):
        return HTTPException(status_code=503, detail=str(error))
    return HTTPException(status_code=500, detail=str(error))


@router.post("/", response_model=Task, status_code=201)
async def create_task(task_create: TaskCreate):
    """
    Create a new task and add it to the queue.
    """
    try:
        return task_service.create_task(task_create)
    except TaskEngineError as e:
        raise _to_http_error(e)


@router.get("/", response_model=List[Task])
async def list_tasks(
    type: Optional[TaskType] = None,
    status: Optional[TaskStatus] = None,
    priority: Optional[TaskPriority] = None,
    created_by: Optional[str] = None,
    created_after: Optional[datetime] = None,
    created_before: Optional[datetime] = None,
    limit: int = Query(50, ge=1, le=500),
    offset: int = Query(0, ge=0),
):
    """
    List tasks, newest first.
    """
    task_filter = TaskFilter(
        type=type,
        status=status,
        priority=priority,
        created_by=created_by,
        created_after=created_after,
        created_before=created_before,
    )
    return task_service.get_tasks(task_filter, limit=limit, offset=offset)


@router.get("/stats", response_model=TaskStats)
async def get_stats():
    """
    Get statistics about the tasks held by the queue.
    """
    return task_service.get_stats()


@router.post("/cleanup", response_model=CleanupResult)
async def cleanup_old_tasks(request: Optional[CleanupRequest] = None):
    """
    Remove finished tasks older than the given number of hours.
    """
    request = request or CleanupRequest()
    deleted_count = task_service.cleanup_old_tasks(request.older_than_hours)
    return CleanupResult(deleted_count=deleted_count, older_than_hours=request.older_than_hours)


@router.get("/{task_id}", response_model=Task)
async def get_task(task_id: str):
    """
    Get the status and result of a specific task.
    """
    task = task_service.get_task(task_id)
    if not task:
        raise HTTPException(status_code=404, detail="Task not found")
    return task


@router.put("/{task_id}", response_model=Task)
async def update_task(task_id: str, task_update: TaskUpdate):
    try:
        return task_service.update_task(task_id, task_update)
    except TaskEngineError as e:
        raise _to_http_error(e)


@router.post("/{task_id}/cancel", response_model=Task)
async def cancel_task(task_id: str, request: Optional[TaskCancel] = None):
    try:
        return task_service.cancel_task(task_id, request.reason if request else None)
    except TaskEngineError as e:
        raise _to_http_error(e)


@router.post("/{task_id}/retry", response_model=Task)
async def retry_task(task_id: str):
    """
    Queue a failed task for another attempt.
    """
    try:
        return task_service.retry_task(task_id)
    except TaskEngineError as e:
        raise _to_http_error(e)


@router.delete("/{task_id}")
async def delete_task(task_id: str):
    try:
        deleted = task_service.delete_task(task_id)
    except TaskEngineError as e:
        raise _to_http_error(e)
    return {"deleted": deleted, "task_id": task_id}
