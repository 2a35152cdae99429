"""
Priority experiment against a running engine.

Submits a shuffled batch of tasks across all four priorities, waits until the
batch is finished and reports how long each priority class waited between
creation and being claimed. Timings come from the engine's own ``created_at``
and ``started_at`` stamps, so polling frequency doesn't skew them.
"""

import asyncio
import json
import logging
import os
import random
import statistics
import uuid
from datetime import datetime
from typing import Dict, List

import aiohttp
import matplotlib.pyplot as plt

logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)

PRIORITY_LABELS = {4: 'CRITICAL', 3: 'HIGH', 2: 'NORMAL', 1: 'LOW'}
FINISHED_STATUSES = {"completed", "failed", "cancelled"}


class TaskPriorityExperiment:
    def __init__(self, base_url: str = "http://localhost:8000", results_dir: str = "experiment_results"):
        self.base_url = base_url
        self.results_dir = results_dir
        # Tags this run's tasks so they can be listed back with one filter
        self.run_id = f"priority-experiment-{uuid.uuid4().hex[:8]}"
        os.makedirs(self.results_dir, exist_ok=True)

    async def submit_batch(self, session: aiohttp.ClientSession, tasks_per_priority: int):
        priorities = [p for p in PRIORITY_LABELS for _ in range(tasks_per_priority)]
        random.shuffle(priorities)

        for priority in priorities:
            body = {
                "type": "send-notification",
                "payload": {"user_id": "u1", "title": "Experiment", "message": "ping"},
                "priority": priority,
                "created_by": self.run_id,
            }
            async with session.post(f"{self.base_url}/tasks/", json=body) as resp:
                resp.raise_for_status()
        logger.info(f"Submitted {len(priorities)} tasks as {self.run_id}")
        return len(priorities)

    async def fetch_batch(self, session: aiohttp.ClientSession) -> List[Dict]:
        params = {"created_by": self.run_id, "limit": 500}
        async with session.get(f"{self.base_url}/tasks/", params=params) as resp:
            resp.raise_for_status()
            return await resp.json()

    async def wait_for_batch(self, session: aiohttp.ClientSession, expected: int, poll_interval: float = 1.0):
        while True:
            tasks = await self.fetch_batch(session)
            finished = [t for t in tasks if t["status"] in FINISHED_STATUSES]
            logger.info(f"{len(finished)}/{expected} tasks finished")
            if len(finished) >= expected:
                return tasks
            await asyncio.sleep(poll_interval)

    async def run(self, tasks_per_priority: int = 25):
        async with aiohttp.ClientSession() as session:
            expected = await self.submit_batch(session, tasks_per_priority)
            tasks = await self.wait_for_batch(session, expected)

        waits = self.queue_waits(tasks)
        self.save_results(tasks, waits)
        self.print_summary(waits)

    @staticmethod
    def queue_waits(tasks: List[Dict]) -> Dict[int, List[float]]:
        """Seconds each task spent between creation and being claimed, by priority"""
        waits = {priority: [] for priority in PRIORITY_LABELS}
        for task in tasks:
            if not task.get("started_at"):
                continue
            created = datetime.fromisoformat(task["created_at"])
            started = datetime.fromisoformat(task["started_at"])
            waits[task["priority"]].append((started - created).total_seconds())
        return waits

    def save_results(self, tasks: List[Dict], waits: Dict[int, List[float]]):
        base_filename = os.path.join(self.results_dir, self.run_id)
        with open(f"{base_filename}.json", "w") as f:
            json.dump(tasks, f, indent=2)

        labels = [PRIORITY_LABELS[p] for p in waits]
        means = [statistics.mean(w) if w else 0.0 for w in waits.values()]
        plt.figure(figsize=(8, 5))
        plt.bar(labels, means)
        plt.ylabel("Mean queue wait (s)")
        plt.title("Time from creation to claim by priority")
        plt.savefig(f"{base_filename}_waits.png")
        plt.close()

    def print_summary(self, waits: Dict[int, List[float]]):
        print(f"\nPriority experiment {self.run_id}:")
        for priority, samples in waits.items():
            label = PRIORITY_LABELS[priority]
            if samples:
                print(f"  {label:<8} n={len(samples):<4} mean wait={statistics.mean(samples):.2f}s "
                      f"max wait={max(samples):.2f}s")
            else:
                print(f"  {label:<8} no tasks claimed")


if __name__ == "__main__":
    asyncio.run(TaskPriorityExperiment().run())
