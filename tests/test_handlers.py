import pytest

from task_engine.config import Settings
from task_engine.models.task import TaskType
from task_engine.workers.handlers import DefaultHandlers, register_default_handlers
from task_engine.workers.registry import HandlerRegistry


@pytest.fixture()
def handlers() -> DefaultHandlers:
    return DefaultHandlers(delay_scale=0)


@pytest.mark.asyncio
async def test_send_notification_reports_delivery(handlers):
    result = await handlers.send_notification({"user_id": "u1", "title": "Hi", "message": "Welcome"})
    assert result["delivered"] is True
    assert result["user_id"] == "u1"
    assert result["type"] == "info"


@pytest.mark.asyncio
async def test_send_notification_requires_fields(handlers):
    with pytest.raises(ValueError, match="title"):
        await handlers.send_notification({"user_id": "u1", "message": "Welcome"})


@pytest.mark.asyncio
async def test_process_submission_scores_passing_cases(handlers):
    result = await handlers.process_submission({
        "submission_id": "s1",
        "challenge_id": "c1",
        "user_id": "u1",
        "code": "print(1)",
    })
    assert result["score"] == 20
    assert result["passed"] is False
    assert len(result["test_results"]) == 3


@pytest.mark.asyncio
async def test_update_leaderboard_rejects_non_numeric_score(handlers):
    with pytest.raises(ValueError):
        await handlers.update_leaderboard({"user_id": "u1", "score": "lots"})

    result = await handlers.update_leaderboard({"user_id": "u1", "score": 42})
    assert result["score"] == 42
    assert result["leaderboard_type"] == "global"


@pytest.mark.asyncio
async def test_cleanup_data_validates_age(handlers):
    with pytest.raises(ValueError):
        await handlers.cleanup_data({"data_type": "logs", "older_than_days": -1})

    result = await handlers.cleanup_data({"data_type": "logs"})
    assert result["older_than_days"] == 30


@pytest.mark.asyncio
async def test_generate_report_requires_type(handlers):
    with pytest.raises(ValueError):
        await handlers.generate_report({})

    result = await handlers.generate_report({"report_type": "weekly"})
    assert result["report_id"].startswith("report_")


@pytest.mark.asyncio
async def test_generate_challenge_needs_backend(handlers):
    with pytest.raises(ValueError, match="backend_url"):
        await handlers.generate_challenge({"difficulty": "easy"})


def test_register_default_handlers_covers_every_type():
    registry = HandlerRegistry()
    register_default_handlers(registry, Settings(handler_delay_scale=0))

    assert len(registry) == len(TaskType)
    assert all(task_type in registry for task_type in TaskType)
