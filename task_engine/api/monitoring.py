import logging
import os

import psutil
from fastapi import APIRouter
from fastapi.responses import JSONResponse, Response
from prometheus_client import CONTENT_TYPE_LATEST, generate_latest

from task_engine.core import metrics
from task_engine.core.service import TaskService
from task_engine.models.task import WorkerStatus
from task_engine.workers.worker import Worker

logger = logging.getLogger(__name__)

router = APIRouter(tags=["monitoring"])

# These will be injected as dependencies
task_service: TaskService = None
worker: Worker = None


def set_dependencies(service: TaskService, task_worker: Worker):
    """Set the service and worker instances for this router"""
    global task_service, worker
    task_service = service
    worker = task_worker


@router.get("/metrics")
async def prometheus_metrics():
    """
    Prometheus metrics endpoint - returns metrics in Prometheus format
    """
    try:
        queue = task_service.queue
        metrics.QUEUE_SIZE.set(queue.get_queue_length())
        metrics.QUEUE_CAPACITY.set(queue.max_size)
        metrics.ELIGIBLE_TASKS.set(queue.get_eligible_count())
        metrics.TASKS_IN_PROGRESS.set(queue.get_processing_count())
        metrics.WORKER_RUNNING.set(1 if worker.running else 0)

        process = psutil.Process(os.getpid())
        metrics.WORKER_MEMORY_USAGE.set(process.memory_info().rss)
        metrics.WORKER_CPU_USAGE.set(process.cpu_percent())
    except Exception:
        # Still return whatever the collectors hold
        logger.exception("Error updating metrics")

    return Response(
        content=generate_latest(metrics.REGISTRY),
        media_type=CONTENT_TYPE_LATEST
    )


@router.get("/health")
async def health_check():
    """
    Health check endpoint, unhealthy when the worker loop isn't running
    """
    queue = task_service.queue
    body = {
        "status": "healthy" if worker.running else "unhealthy",
        "worker_running": worker.running,
        "queue_size": queue.get_queue_length(),
        "queue_capacity": queue.max_size,
        "api_status": "running",
    }
    if not worker.running:
        return JSONResponse(status_code=503, content=body)
    return body


@router.get("/worker/status", response_model=WorkerStatus, tags=["worker"])
async def get_worker_status():
    return worker.get_status()


@router.post("/worker/restart", tags=["worker"])
async def restart_worker():
    logger.info("Worker restart requested")
    await worker.restart()
    return {"status": "restarted", "worker_id": worker.worker_id}
