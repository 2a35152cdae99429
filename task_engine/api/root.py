from fastapi import APIRouter
from fastapi.responses import JSONResponse

router = APIRouter(tags=["root"])


@router.get("/")
async def root():
    """
    Root endpoint that provides API information.
    """
    return JSONResponse({
        "name": "Task Engine API",
        "version": "1.0.0",
        "description": "In-process task scheduling and worker execution engine",
        "endpoints": {
            "tasks": "/tasks/",
            "task": "/tasks/{task_id}",
            "cancel": "/tasks/{task_id}/cancel",
            "retry": "/tasks/{task_id}/retry",
            "stats": "/tasks/stats",
            "cleanup": "/tasks/cleanup",
            "worker_status": "/worker/status",
            "worker_restart": "/worker/restart",
            "metrics": "/metrics",
            "health": "/health"
        }
    })
