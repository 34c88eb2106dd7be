"""Core data models for SwarmCore."""

from .agents import AgentPerformance, AgentState, AgentStatus, IAgent, ISwarmAgent
from .events import (
    CATEGORY_BY_TYPE,
    PAYLOAD_SCHEMAS,
    AgentEventType,
    Event,
    EventCategory,
    EventFilter,
    as_utc,
    payload_schema,
)
from .payloads import (
    AgentLifecyclePayload,
    CodeChanges,
    CodePayload,
    CollaborationPayload,
    EventPayload,
    MessagePayload,
    PerformancePayload,
    SessionPayload,
    SystemPayload,
    TaskEventPayload,
)
from .replay import ReplayJob, ReplayStatus
from .stats import SystemStats
from .tasks import Task, TaskMetadata, TaskPriority, TaskStatus

__all__ = [
    # Events
    "AgentEventType",
    "EventCategory",
    "Event",
    "EventFilter",
    "CATEGORY_BY_TYPE",
    "PAYLOAD_SCHEMAS",
    "payload_schema",
    "as_utc",
    # Payloads
    "EventPayload",
    "TaskEventPayload",
    "PerformancePayload",
    "AgentLifecyclePayload",
    "MessagePayload",
    "CollaborationPayload",
    "SystemPayload",
    "SessionPayload",
    "CodeChanges",
    "CodePayload",
    # Tasks
    "Task",
    "TaskMetadata",
    "TaskPriority",
    "TaskStatus",
    # Agents
    "AgentStatus",
    "AgentPerformance",
    "AgentState",
    "IAgent",
    "ISwarmAgent",
    # Stats / replay
    "SystemStats",
    "ReplayJob",
    "ReplayStatus",
]
