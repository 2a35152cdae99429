from __future__ import annotations

import asyncio

import pytest

from task_engine.core.service import TaskService
from task_engine.models.task import TaskPriority, TaskStatus, TaskType
from task_engine.workers.registry import HandlerRegistry
from task_engine.workers.worker import Worker


class FlakyHandler:
    """Fails a fixed number of times, then succeeds."""

    def __init__(self, failures: int, result=None) -> None:
        self.failures = failures
        self.result = result if result is not None else {"delivered": True}
        self.calls: list[dict] = []

    async def __call__(self, payload: dict) -> dict:
        self.calls.append(payload)
        if len(self.calls) <= self.failures:
            raise RuntimeError("smtp down")
        return self.result


def _worker(service: TaskService, registry: HandlerRegistry, **kwargs) -> Worker:
    kwargs.setdefault("busy_delay", 0)
    kwargs.setdefault("idle_delay", 0.01)
    kwargs.setdefault("restart_pause", 0)
    return Worker(service, registry, worker_id="w-test", **kwargs)


async def _wait_for(predicate, timeout: float = 2.0) -> None:
    loop = asyncio.get_running_loop()
    deadline = loop.time() + timeout
    while not predicate():
        if loop.time() > deadline:
            raise AssertionError("condition not met in time")
        await asyncio.sleep(0.01)


@pytest.mark.asyncio
async def test_failed_attempt_is_retried_then_completes(service: TaskService) -> None:
    handler = FlakyHandler(failures=1)
    registry = HandlerRegistry()
    registry.register(TaskType.SEND_NOTIFICATION, handler)
    worker = _worker(service, registry)

    task = service.create_task({
        "type": TaskType.SEND_NOTIFICATION,
        "payload": {"user_id": "u1"},
        "priority": TaskPriority.HIGH,
        "max_retries": 1,
        "created_by": "svc-a",
    })

    assert await worker.run_once() is True
    after_failure = service.get_task(task.id)
    assert after_failure.status == TaskStatus.RETRYING
    assert after_failure.retry_count == 1
    assert "smtp down" in after_failure.error

    assert await worker.run_once() is True
    final = service.get_task(task.id)
    assert final.status == TaskStatus.COMPLETED
    assert final.result == {"delivered": True}
    assert final.retry_count == 1

    assert handler.calls == [{"user_id": "u1"}, {"user_id": "u1"}]
    assert worker.processed_count == 1
    assert worker.failed_count == 1
    assert await worker.run_once() is False


@pytest.mark.asyncio
async def test_unregistered_type_fails_without_retry(service: TaskService, make_task) -> None:
    registry = HandlerRegistry()
    registry.register(TaskType.SEND_NOTIFICATION, FlakyHandler(failures=0))
    worker = _worker(service, registry)

    orphan = make_task(type=TaskType.GENERATE_REPORT, priority=TaskPriority.CRITICAL, max_retries=3)
    fine = make_task()

    await worker.run_once()
    failed = service.get_task(orphan.id)
    assert failed.status == TaskStatus.FAILED
    assert failed.retry_count == 1
    assert "No handler registered" in failed.error

    await worker.run_once()
    assert service.get_task(fine.id).status == TaskStatus.COMPLETED


@pytest.mark.asyncio
async def test_handler_timeout_counts_as_failure(service: TaskService, make_task) -> None:
    async def slow(payload: dict) -> dict:
        await asyncio.sleep(1)
        return {}

    registry = HandlerRegistry()
    registry.register(TaskType.SEND_NOTIFICATION, slow)
    worker = _worker(service, registry, task_timeout=0.05)

    task = make_task()
    await worker.run_once()

    updated = service.get_task(task.id)
    assert updated.status == TaskStatus.RETRYING
    assert "timed out" in updated.error


@pytest.mark.asyncio
async def test_non_mapping_result_is_wrapped(service: TaskService, make_task) -> None:
    async def returns_string(payload: dict) -> str:
        return "sent"

    registry = HandlerRegistry()
    registry.register(TaskType.SEND_NOTIFICATION, returns_string)
    worker = _worker(service, registry)

    task = make_task()
    await worker.run_once()
    assert service.get_task(task.id).result == {"result": "sent"}


@pytest.mark.asyncio
async def test_loop_drains_queue_and_stops(service: TaskService, make_task) -> None:
    registry = HandlerRegistry()
    registry.register(TaskType.SEND_NOTIFICATION, FlakyHandler(failures=0))
    worker = _worker(service, registry)

    tasks = [make_task() for _ in range(3)]
    worker.start()
    assert worker.running

    await _wait_for(lambda: service.get_stats().by_status[TaskStatus.COMPLETED] == 3)
    await worker.stop()

    assert not worker.running
    assert worker.processed_count == 3
    assert all(service.get_task(t.id).status == TaskStatus.COMPLETED for t in tasks)

    # Nothing is claimed after stop
    late = make_task()
    await asyncio.sleep(0.05)
    assert service.get_task(late.id).status == TaskStatus.PENDING


@pytest.mark.asyncio
async def test_loop_survives_handler_errors(service: TaskService, make_task) -> None:
    registry = HandlerRegistry()
    registry.register(TaskType.SEND_NOTIFICATION, FlakyHandler(failures=100))
    registry.register(TaskType.GENERATE_REPORT, FlakyHandler(failures=0, result={"report_id": "r1"}))
    worker = _worker(service, registry)

    doomed = make_task(max_retries=0, priority=TaskPriority.HIGH)
    report = make_task(type=TaskType.GENERATE_REPORT, payload={"report_type": "daily"})

    worker.start()
    await _wait_for(lambda: service.get_task(report.id).status == TaskStatus.COMPLETED)
    await worker.stop()

    assert service.get_task(doomed.id).status == TaskStatus.FAILED


@pytest.mark.asyncio
async def test_stop_lets_in_flight_task_finish(service: TaskService, make_task) -> None:
    release = asyncio.Event()

    async def blocking(payload: dict) -> dict:
        await release.wait()
        return {"done": True}

    registry = HandlerRegistry()
    registry.register(TaskType.SEND_NOTIFICATION, blocking)
    worker = _worker(service, registry)

    task = make_task()
    worker.start()
    await _wait_for(lambda: worker.current_task_id == task.id)

    stopping = asyncio.create_task(worker.stop())
    await asyncio.sleep(0.05)
    assert not stopping.done()
    assert service.get_task(task.id).status == TaskStatus.PROCESSING

    release.set()
    await stopping
    assert service.get_task(task.id).status == TaskStatus.COMPLETED
    assert worker.current_task_id is None


@pytest.mark.asyncio
async def test_restart_keeps_counters(service: TaskService, make_task) -> None:
    registry = HandlerRegistry()
    registry.register(TaskType.SEND_NOTIFICATION, FlakyHandler(failures=0))
    worker = _worker(service, registry)

    make_task()
    worker.start()
    await _wait_for(lambda: worker.processed_count == 1)
    started_at = worker.started_at

    await worker.restart()
    assert worker.running
    assert worker.processed_count == 1
    assert worker.started_at == started_at

    make_task()
    await _wait_for(lambda: worker.processed_count == 2)
    await worker.stop()


@pytest.mark.asyncio
async def test_status_snapshot(service: TaskService) -> None:
    registry = HandlerRegistry()
    registry.register(TaskType.SEND_NOTIFICATION, FlakyHandler(failures=0))
    worker = _worker(service, registry)

    status = worker.get_status()
    assert status.worker_id == "w-test"
    assert status.running is False
    assert status.started_at is None
    assert status.registered_types == [TaskType.SEND_NOTIFICATION]

    worker.start()
    await worker.stop()
    status = worker.get_status()
    assert status.started_at is not None
    assert status.processed_count == 0


@pytest.mark.asyncio
async def test_stop_timeout_returns_interrupted_task_to_pool(service: TaskService, make_task) -> None:
    async def stuck(payload: dict) -> dict:
        await asyncio.sleep(10)
        return {}

    registry = HandlerRegistry()
    registry.register(TaskType.SEND_NOTIFICATION, stuck)
    worker = _worker(service, registry)

    task = make_task(max_retries=1)
    worker.start()
    await _wait_for(lambda: worker.current_task_id == task.id)
    await worker.stop(timeout=0.05)

    interrupted = service.get_task(task.id)
    assert interrupted.status == TaskStatus.RETRYING
    assert interrupted.retry_count == 1
    assert "interrupted" in interrupted.error
    assert worker.current_task_id is None

    # The task is no longer locked in PROCESSING
    assert service.cancel_task(task.id).status == TaskStatus.CANCELLED


@pytest.mark.asyncio
async def test_plain_function_handler_completes_once(service: TaskService, make_task) -> None:
    calls = []

    def sync_handler(payload: dict) -> dict:
        calls.append(payload)
        return {"ok": True}

    registry = HandlerRegistry()
    registry.register(TaskType.SEND_NOTIFICATION, sync_handler)
    worker = _worker(service, registry, task_timeout=1)

    task = make_task(max_retries=2)
    assert await worker.run_once() is True

    done = service.get_task(task.id)
    assert done.status == TaskStatus.COMPLETED
    assert done.result == {"ok": True}
    assert done.retry_count == 0
    assert len(calls) == 1
    assert await worker.run_once() is False
