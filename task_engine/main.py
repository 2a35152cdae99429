import logging
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from task_engine.api.router import configure_dependencies, create_api_router
from task_engine.config import Settings, get_settings
from task_engine.core import metrics
from task_engine.core.events import TaskEventLogger
from task_engine.core.queue import TaskQueue
from task_engine.core.service import TaskService
from task_engine.core.store import Clock, TaskStore
from task_engine.workers.cleanup import CleanupScheduler
from task_engine.workers.handlers import register_default_handlers
from task_engine.workers.registry import HandlerRegistry
from task_engine.workers.worker import Worker

logger = logging.getLogger(__name__)


def setup_logging(level: str = "INFO"):
    logging.basicConfig(
        level=level.upper(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


def create_app(
    settings: Optional[Settings] = None,
    registry: Optional[HandlerRegistry] = None,
    clock: Optional[Clock] = None,
) -> FastAPI:
    """
    Wire store, queue, service, worker and cleanup into a FastAPI app.

    Without an explicit ``registry`` the built-in handlers are registered.
    """
    settings = settings or get_settings()

    store = TaskStore(max_size=settings.max_queue_size, clock=clock)
    queue = TaskQueue(store)
    service = TaskService(
        queue,
        events=TaskEventLogger(structured=settings.enable_structured_logs),
        retry_backoff_seconds=settings.retry_backoff_seconds,
        default_max_retries=settings.default_max_retries,
    )

    if registry is None:
        registry = HandlerRegistry()
        register_default_handlers(registry, settings)

    worker = Worker(
        service,
        registry,
        busy_delay=settings.worker_busy_delay,
        idle_delay=settings.worker_idle_delay,
        error_delay=settings.worker_error_delay,
        restart_pause=settings.worker_restart_pause,
        task_timeout=settings.task_timeout_seconds,
    )
    cleanup = CleanupScheduler(
        service,
        interval_seconds=settings.cleanup_interval_seconds,
        older_than_hours=settings.cleanup_older_than_hours,
    )

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        if settings.worker_autostart:
            worker.start()
        await cleanup.start()
        try:
            yield
        finally:
            await cleanup.stop()
            await worker.stop(timeout=settings.task_timeout_seconds)

    app = FastAPI(
        title=settings.app_name,
        description="In-process task scheduling and worker execution engine",
        version=settings.version,
        lifespan=lifespan,
    )

    # Add CORS middleware
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.middleware("http")
    async def count_requests(request, call_next):
        metrics.HTTP_REQUESTS.inc()
        response = await call_next(request)
        return response

    configure_dependencies(service, worker)
    app.include_router(create_api_router())

    app.state.settings = settings
    app.state.task_service = service
    app.state.worker = worker
    app.state.cleanup = cleanup
    return app


setup_logging(get_settings().log_level)

# Application instance for `uvicorn task_engine.main:app`
app = create_app()

if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host="0.0.0.0", port=8000)
