from prometheus_client import CollectorRegistry, Counter, Gauge, Histogram

# All collectors live on one registry so the app can expose it without the
# default process/platform collectors.
REGISTRY = CollectorRegistry()

HTTP_REQUESTS = Counter('http_requests_total', 'Total HTTP requests', registry=REGISTRY)

TASKS_CREATED = Counter('tasks_created_total', 'Total tasks created', ['task_type'], registry=REGISTRY)
TASKS_PROCESSED = Counter('tasks_processed_total', 'Total tasks completed successfully', ['task_type'], registry=REGISTRY)
TASKS_FAILED = Counter('tasks_failed_total', 'Total tasks that failed terminally', ['task_type'], registry=REGISTRY)
TASKS_RETRIED = Counter('tasks_retried_total', 'Total failed attempts that were scheduled for retry', ['task_type'], registry=REGISTRY)
TASKS_CANCELLED = Counter('tasks_cancelled_total', 'Total tasks cancelled', ['task_type'], registry=REGISTRY)
TASK_DURATION = Histogram('task_duration_seconds', 'Handler execution time', ['task_type'], registry=REGISTRY)

QUEUE_SIZE = Gauge('queue_size', 'Number of tasks held in the store', registry=REGISTRY)
QUEUE_CAPACITY = Gauge('queue_capacity', 'Maximum number of tasks the store accepts', registry=REGISTRY)
ELIGIBLE_TASKS = Gauge('eligible_tasks', 'Tasks that could be claimed right now', registry=REGISTRY)
TASKS_IN_PROGRESS = Gauge('tasks_in_progress', 'Number of tasks currently being processed', registry=REGISTRY)
WORKER_RUNNING = Gauge('worker_running', 'Whether the worker loop is running', registry=REGISTRY)
WORKER_MEMORY_USAGE = Gauge('worker_memory_usage_bytes', 'Worker memory usage in bytes', registry=REGISTRY)
WORKER_CPU_USAGE = Gauge('worker_cpu_usage_percent', 'Worker CPU usage percentage', registry=REGISTRY)
