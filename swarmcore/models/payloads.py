"""Payload schemas, one per event category."""

from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field

Priority = Literal["low", "medium", "high", "critical"]


class EventPayload(BaseModel):
    """Base for all payloads. Immutable; unknown keys are kept."""

    model_config = ConfigDict(frozen=True, extra="allow")


class TaskEventPayload(EventPayload):
    task_id: str = Field(min_length=1)
    task_title: str
    task_description: str = ""
    priority: Priority
    complexity: int = Field(ge=0)
    assigned_agent: str | None = None
    estimated_duration: float | None = None
    actual_duration: float | None = None
    result: Any = None
    error: str | None = None


class PerformancePayload(EventPayload):
    tasks_completed: int = Field(default=0, ge=0)
    average_completion_time: float = Field(default=0.0, ge=0)
    success_rate: float = Field(default=0.0, ge=0, le=1)
    collaboration_rating: float = Field(default=0.0, ge=0, le=1)


class AgentLifecyclePayload(EventPayload):
    agent_id: str = Field(min_length=1)
    agent_role: str
    capabilities: list[str] = Field(default_factory=list)
    status: Literal["idle", "thinking", "working", "waiting", "collaborating"]
    workload: float = Field(ge=0, le=100)
    performance: PerformancePayload = Field(default_factory=PerformancePayload)
    current_task: str | None = None


class MessagePayload(EventPayload):
    message_id: str = Field(min_length=1)
    content: str
    message_type: Literal["command", "response", "collaboration", "status", "error"]
    session_id: str | None = None
    task_id: str | None = None
    priority: Priority = "medium"
    tags: list[str] = Field(default_factory=list)


class CollaborationPayload(EventPayload):
    collaboration_id: str = Field(min_length=1)
    requesting_agent: str
    target_agent: str
    request_type: Literal["help", "review", "delegation", "consultation"]
    context: Any = None
    response: Any = None
    status: Literal["pending", "accepted", "rejected", "completed"] = "pending"


class SystemPayload(EventPayload):
    component: str
    level: Literal["info", "warning", "error", "critical"]
    message: str
    stack_trace: str | None = None
    metrics: dict[str, float] | None = None


class SessionPayload(EventPayload):
    session_id: str = Field(min_length=1)
    session_title: str
    session_description: str = ""
    participants: list[str] = Field(default_factory=list)
    status: Literal["active", "paused", "completed", "archived"] = "active"
    tech_stack: list[str] = Field(default_factory=list)
    metrics: dict[str, float] = Field(default_factory=dict)


class CodeChanges(EventPayload):
    added: int = Field(default=0, ge=0)
    removed: int = Field(default=0, ge=0)
    modified: int = Field(default=0, ge=0)


class CodePayload(EventPayload):
    file_path: str
    file_name: str
    language: str
    content: str | None = None
    changes: CodeChanges | None = None
    version: int = Field(default=1, ge=1)
    modified_by: str | None = None
    execution_result: Any = None
    execution_error: str | None = None
