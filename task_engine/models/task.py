from enum import Enum
from typing import Any, Dict, List, Optional
from pydantic import BaseModel, Field, field_validator
from datetime import datetime, timezone
import uuid


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def as_utc(value: Optional[datetime]) -> Optional[datetime]:
    """Naive datetimes coming from clients are taken to be UTC."""
    if value is None or value.tzinfo is not None:
        return value
    return value.replace(tzinfo=timezone.utc)


class TaskType(str, Enum):
    GENERATE_CHALLENGE = "generate-challenge"
    PROCESS_SUBMISSION = "process-submission"
    SEND_NOTIFICATION = "send-notification"
    UPDATE_LEADERBOARD = "update-leaderboard"
    GENERATE_REPORT = "generate-report"
    CLEANUP_DATA = "cleanup-data"


class TaskStatus(str, Enum):
    PENDING = "pending"
    PROCESSING = "processing"
    RETRYING = "retrying"
    COMPLETED = "completed"
    FAILED = "failed"
    CANCELLED = "cancelled"

    @property
    def is_terminal(self) -> bool:
        return self in TERMINAL_STATUSES

    @property
    def is_claimable(self) -> bool:
        return self in CLAIMABLE_STATUSES


TERMINAL_STATUSES = frozenset({TaskStatus.COMPLETED, TaskStatus.FAILED, TaskStatus.CANCELLED})
CLAIMABLE_STATUSES = frozenset({TaskStatus.PENDING, TaskStatus.RETRYING})


class TaskPriority(int, Enum):
    LOW = 1
    NORMAL = 2
    HIGH = 3
    CRITICAL = 4


class TaskCreate(BaseModel):
    type: TaskType
    payload: Dict[str, Any]
    priority: TaskPriority = TaskPriority.NORMAL
    max_retries: int = Field(default=3, ge=0, le=10)
    scheduled_for: Optional[datetime] = None
    created_by: str
    metadata: Dict[str, Any] = Field(default_factory=dict)

    @field_validator("created_by")
    @classmethod
    def _created_by_not_blank(cls, value: str) -> str:
        value = value.strip()
        if not value:
            raise ValueError("created_by must not be blank")
        return value

    @field_validator("scheduled_for")
    @classmethod
    def _scheduled_for_utc(cls, value: Optional[datetime]) -> Optional[datetime]:
        return as_utc(value)


class TaskUpdate(BaseModel):
    priority: Optional[TaskPriority] = None
    max_retries: Optional[int] = Field(default=None, ge=0, le=10)
    scheduled_for: Optional[datetime] = None
    metadata: Optional[Dict[str, Any]] = None

    @field_validator("scheduled_for")
    @classmethod
    def _scheduled_for_utc(cls, value: Optional[datetime]) -> Optional[datetime]:
        return as_utc(value)


class Task(BaseModel):
    id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    type: TaskType
    status: TaskStatus = TaskStatus.PENDING
    priority: TaskPriority = TaskPriority.NORMAL
    payload: Dict[str, Any]
    result: Optional[Dict[str, Any]] = None
    error: Optional[str] = None
    retry_count: int = 0
    max_retries: int = 3
    scheduled_for: Optional[datetime] = None
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)
    started_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    created_by: str
    metadata: Dict[str, Any] = Field(default_factory=dict)

    @field_validator("scheduled_for", "created_at", "updated_at", "started_at", "completed_at")
    @classmethod
    def _timestamps_utc(cls, value: Optional[datetime]) -> Optional[datetime]:
        return as_utc(value)

    def is_eligible(self, now: datetime) -> bool:
        """A task can be claimed once it is pending/retrying and its scheduled time has come."""
        if not self.status.is_claimable:
            return False
        return self.scheduled_for is None or self.scheduled_for <= now

    @property
    def duration_ms(self) -> Optional[float]:
        if self.started_at is None or self.completed_at is None:
            return None
        return (self.completed_at - self.started_at).total_seconds() * 1000


class TaskFilter(BaseModel):
    type: Optional[TaskType] = None
    status: Optional[TaskStatus] = None
    priority: Optional[TaskPriority] = None
    created_by: Optional[str] = None
    created_after: Optional[datetime] = None
    created_before: Optional[datetime] = None

    @field_validator("created_after", "created_before")
    @classmethod
    def _bounds_utc(cls, value: Optional[datetime]) -> Optional[datetime]:
        return as_utc(value)

    def matches(self, task: Task) -> bool:
        if self.type is not None and task.type != self.type:
            return False
        if self.status is not None and task.status != self.status:
            return False
        if self.priority is not None and task.priority != self.priority:
            return False
        if self.created_by is not None and task.created_by != self.created_by:
            return False
        if self.created_after is not None and task.created_at < self.created_after:
            return False
        if self.created_before is not None and task.created_at > self.created_before:
            return False
        return True


class TaskStats(BaseModel):
    total: int
    by_status: Dict[TaskStatus, int]
    average_duration_ms: float
    success_rate: float


class WorkerStatus(BaseModel):
    worker_id: str
    running: bool
    current_task_id: Optional[str] = None
    processed_count: int
    failed_count: int
    started_at: Optional[datetime] = None
    last_activity: Optional[datetime] = None
    registered_types: List[TaskType] = Field(default_factory=list)


class TaskCancel(BaseModel):
    reason: Optional[str] = None


class CleanupRequest(BaseModel):
    older_than_hours: float = Field(default=24, ge=0)


class CleanupResult(BaseModel):
    deleted_count: int
    older_than_hours: float
