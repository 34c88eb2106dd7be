"""Task-related data models."""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum

from ..errors import ValidationError


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


class TaskStatus(str, Enum):
    """Task lifecycle states."""

    PENDING = "pending"
    ASSIGNED = "assigned"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    FAILED = "failed"
    CANCELLED = "cancelled"

    @property
    def is_terminal(self) -> bool:
        return self in (TaskStatus.COMPLETED, TaskStatus.FAILED, TaskStatus.CANCELLED)


_TRANSITIONS: dict[TaskStatus, frozenset[TaskStatus]] = {
    TaskStatus.PENDING: frozenset(
        {TaskStatus.ASSIGNED, TaskStatus.IN_PROGRESS, TaskStatus.FAILED, TaskStatus.CANCELLED}
    ),
    TaskStatus.ASSIGNED: frozenset(
        {TaskStatus.IN_PROGRESS, TaskStatus.FAILED, TaskStatus.CANCELLED}
    ),
    TaskStatus.IN_PROGRESS: frozenset(
        {TaskStatus.COMPLETED, TaskStatus.FAILED, TaskStatus.CANCELLED}
    ),
    TaskStatus.COMPLETED: frozenset(),
    TaskStatus.FAILED: frozenset(),
    TaskStatus.CANCELLED: frozenset(),
}


class TaskPriority(str, Enum):
    """Task priority tiers."""

    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"

    @property
    def rank(self) -> int:
        """Higher rank is served first."""
        return _PRIORITY_RANK[self]


_PRIORITY_RANK = {
    TaskPriority.LOW: 0,
    TaskPriority.MEDIUM: 1,
    TaskPriority.HIGH: 2,
    TaskPriority.CRITICAL: 3,
}


@dataclass
class TaskMetadata:
    """Requirements and constraints attached to a task."""

    requirements: list[str] = field(default_factory=list)
    constraints: list[str] = field(default_factory=list)
    code_files: list[str] = field(default_factory=list)
    estimated_duration: float | None = None  # seconds


@dataclass
class Task:
    """A unit of work with priority, dependencies and a lifecycle."""

    id: str
    title: str
    description: str = ""
    status: TaskStatus = TaskStatus.PENDING
    priority: TaskPriority = TaskPriority.MEDIUM
    dependencies: list[str] = field(default_factory=list)
    subtasks: list[str] = field(default_factory=list)  # subtask ids
    complexity: int = 1  # 1-10
    created_at: datetime = field(default_factory=_utc_now)
    updated_at: datetime = field(default_factory=_utc_now)
    metadata: TaskMetadata = field(default_factory=TaskMetadata)
    assigned_agent: str | None = None
    completed_at: datetime | None = None

    def validate(self) -> None:
        """Raise ValidationError listing every malformed field."""
        errors = []
        if not isinstance(self.id, str) or not self.id:
            errors.append("id: must be a non-empty string")
        if not isinstance(self.title, str) or not self.title:
            errors.append("title: must be a non-empty string")
        if not isinstance(self.status, TaskStatus):
            errors.append(f"status: expected TaskStatus, got {self.status!r}")
        if not isinstance(self.priority, TaskPriority):
            errors.append(f"priority: expected TaskPriority, got {self.priority!r}")
        if isinstance(self.complexity, bool) or not isinstance(self.complexity, int):
            errors.append(f"complexity: expected int, got {type(self.complexity).__name__}")
        elif not 1 <= self.complexity <= 10:
            errors.append(f"complexity: must be within 1-10, got {self.complexity}")
        if not all(isinstance(dep, str) for dep in self.dependencies):
            errors.append("dependencies: must be a list of task ids")
        if self.id in self.dependencies:
            errors.append("dependencies: task cannot depend on itself")
        if not all(isinstance(sub, str) for sub in self.subtasks):
            errors.append("subtasks: must be a list of task ids")
        if not isinstance(self.metadata, TaskMetadata):
            errors.append("metadata: expected TaskMetadata")
        if errors:
            raise ValidationError(f"Invalid task {self.id!r}", errors)

    @property
    def requirements(self) -> frozenset[str]:
        return frozenset(self.metadata.requirements)

    def transition(self, status: TaskStatus) -> None:
        """Move to a new status; terminal states are final."""
        if status not in _TRANSITIONS[self.status]:
            raise ValidationError(
                f"Task {self.id} cannot move from {self.status.value} to {status.value}"
            )
        self.status = status
        self.updated_at = _utc_now()
        if status.is_terminal:
            self.completed_at = self.updated_at
