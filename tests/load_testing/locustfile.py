from locust import HttpUser, task, between
import random


class TaskEngineUser(HttpUser):
    wait_time = between(1, 3)

    def on_start(self):
        self.task_ids = []

    @task(3)
    def submit_notification_task(self):
        payload = {
            "type": "send-notification",
            "payload": {
                "user_id": f"user_{random.randint(1, 1000)}",
                "title": "Load test",
                "message": "Hello from locust",
            },
            "priority": random.randint(1, 4),
            "max_retries": 3,
            "created_by": "locust",
        }
        with self.client.post("/tasks/", json=payload, catch_response=True) as response:
            if response.status_code == 201:
                self.task_ids.append(response.json()["id"])
                self.task_ids = self.task_ids[-100:]
            elif response.status_code == 503:
                # Queue full is an expected outcome under load
                response.success()

    @task(2)
    def submit_leaderboard_task(self):
        payload = {
            "type": "update-leaderboard",
            "payload": {"user_id": f"user_{random.randint(1, 1000)}", "score": random.randint(0, 100)},
            "priority": random.randint(1, 4),
            "created_by": "locust",
        }
        self.client.post("/tasks/", json=payload)

    @task(2)
    def get_task_status(self):
        if not self.task_ids:
            return
        task_id = random.choice(self.task_ids)
        self.client.get(f"/tasks/{task_id}", name="/tasks/[id]")

    @task(1)
    def list_pending_tasks(self):
        self.client.get("/tasks/", params={"status": "pending", "limit": 20})

    @task(1)
    def get_queue_stats(self):
        self.client.get("/tasks/stats")
