import asyncio
import logging
import random
import time
from datetime import datetime, timezone
from typing import Any, Dict, Optional

import aiohttp

from task_engine.config import Settings
from task_engine.models.task import TaskType
from task_engine.workers.registry import HandlerRegistry, TaskHandler

logger = logging.getLogger(__name__)


def _require(payload: Dict[str, Any], *keys: str) -> None:
    missing = [k for k in keys if payload.get(k) in (None, "")]
    if missing:
        raise ValueError(f"Invalid input: missing {', '.join(missing)}")


class DefaultHandlers:
    """
    Built-in handlers for every TaskType.

    Only generate-challenge talks to another service; the rest simulate their
    work with a random delay scaled by ``delay_scale`` (0 disables it).
    """

    def __init__(
        self,
        backend_url: Optional[str] = None,
        backend_api_key: str = "",
        delay_scale: float = 1.0,
        request_timeout: float = 30.0,
    ):
        self.backend_url = backend_url.rstrip("/") if backend_url else None
        self.backend_api_key = backend_api_key
        self.delay_scale = delay_scale
        self.request_timeout = request_timeout

    async def _simulate_delay(self, min_s: float, max_s: float):
        if self.delay_scale <= 0:
            return
        await asyncio.sleep(random.uniform(min_s, max_s) * self.delay_scale)

    async def generate_challenge(self, payload: Dict[str, Any]) -> Dict[str, Any]:
        """Ask the backend to generate a new challenge"""
        if not self.backend_url:
            raise ValueError("backend_url is not configured")

        logger.debug(f"Requesting challenge generation from {self.backend_url}")
        timeout = aiohttp.ClientTimeout(total=self.request_timeout)
        async with aiohttp.ClientSession(timeout=timeout) as session:
            async with session.post(
                f"{self.backend_url}/api/challenges/generate",
                json={
                    "difficulty": payload.get("difficulty"),
                    "category": payload.get("category"),
                    "requested_by": payload.get("user_id"),
                },
                headers={"X-API-Key": self.backend_api_key},
            ) as resp:
                resp.raise_for_status()
                data = await resp.json()

        return {
            "challenge_id": data.get("id"),
            "title": data.get("title"),
            "description": data.get("description"),
            "difficulty": data.get("difficulty"),
            "category": data.get("category"),
        }

    async def process_submission(self, payload: Dict[str, Any]) -> Dict[str, Any]:
        """Grade a code submission against its test cases"""
        _require(payload, "submission_id", "challenge_id", "user_id", "code")
        await self._simulate_delay(2, 5)

        test_results = [
            {"test_case": 1, "passed": True, "execution_time": 45},
            {"test_case": 2, "passed": True, "execution_time": 52},
            {"test_case": 3, "passed": False, "execution_time": 0, "error": "Time limit exceeded"},
        ]

        return {
            "submission_id": payload["submission_id"],
            "challenge_id": payload["challenge_id"],
            "user_id": payload["user_id"],
            "score": sum(10 for t in test_results if t["passed"]),
            "passed": all(t["passed"] for t in test_results),
            "test_results": test_results,
            "total_execution_time": sum(t["execution_time"] for t in test_results),
        }

    async def send_notification(self, payload: Dict[str, Any]) -> Dict[str, Any]:
        _require(payload, "user_id", "title", "message")
        await self._simulate_delay(0.5, 1.5)

        return {
            "notification_id": f"notif_{int(time.time() * 1000)}",
            "user_id": payload["user_id"],
            "type": payload.get("type", "info"),
            "title": payload["title"],
            "message": payload["message"],
            "sent_at": datetime.now(timezone.utc).isoformat(),
            "delivery_status": "sent",
            "delivered": True,
        }

    async def update_leaderboard(self, payload: Dict[str, Any]) -> Dict[str, Any]:
        _require(payload, "user_id", "score")
        if not isinstance(payload["score"], (int, float)):
            raise ValueError("Invalid input: score must be a number")
        await self._simulate_delay(1, 3)

        return {
            "user_id": payload["user_id"],
            "challenge_id": payload.get("challenge_id"),
            "score": payload["score"],
            "leaderboard_type": payload.get("type", "global"),
            "new_rank": random.randint(1, 100),
            "previous_rank": random.randint(1, 100),
            "updated_at": datetime.now(timezone.utc).isoformat(),
        }

    async def generate_report(self, payload: Dict[str, Any]) -> Dict[str, Any]:
        _require(payload, "report_type")
        await self._simulate_delay(5, 15)

        report_id = f"report_{int(time.time() * 1000)}"
        return {
            "report_id": report_id,
            "report_type": payload["report_type"],
            "user_id": payload.get("user_id"),
            "date_range": payload.get("date_range"),
            "generated_at": datetime.now(timezone.utc).isoformat(),
            "file_url": f"https://reports.example.com/{report_id}.pdf",
            "size": random.randint(100_000, 1_100_000),
        }

    async def cleanup_data(self, payload: Dict[str, Any]) -> Dict[str, Any]:
        _require(payload, "data_type")
        older_than_days = payload.get("older_than_days", 30)
        if not isinstance(older_than_days, int) or older_than_days < 0:
            raise ValueError("Invalid input: older_than_days must be a non-negative integer")
        await self._simulate_delay(2, 8)

        deleted_count = random.randint(10, 1010)
        return {
            "data_type": payload["data_type"],
            "older_than_days": older_than_days,
            "deleted_count": deleted_count,
            "cleaned_at": datetime.now(timezone.utc).isoformat(),
            "space_saved": f"{deleted_count * 0.5:.2f} MB",
        }

    def as_mapping(self) -> Dict[TaskType, TaskHandler]:
        return {
            TaskType.GENERATE_CHALLENGE: self.generate_challenge,
            TaskType.PROCESS_SUBMISSION: self.process_submission,
            TaskType.SEND_NOTIFICATION: self.send_notification,
            TaskType.UPDATE_LEADERBOARD: self.update_leaderboard,
            TaskType.GENERATE_REPORT: self.generate_report,
            TaskType.CLEANUP_DATA: self.cleanup_data,
        }


def build_default_handlers(settings: Settings) -> Dict[TaskType, TaskHandler]:
    handlers = DefaultHandlers(
        backend_url=settings.backend_url,
        backend_api_key=settings.backend_api_key,
        delay_scale=settings.handler_delay_scale,
    )
    return handlers.as_mapping()


def register_default_handlers(registry: HandlerRegistry, settings: Settings):
    """Register all built-in task handlers with the registry"""
    for task_type, handler in build_default_handlers(settings).items():
        registry.register(task_type, handler)
