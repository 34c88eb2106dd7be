"""Event-related data models."""

from dataclasses import dataclass
from datetime import datetime, timezone
from enum import Enum
from typing import Any

from .payloads import (
    AgentLifecyclePayload,
    CodePayload,
    CollaborationPayload,
    EventPayload,
    MessagePayload,
    SessionPayload,
    SystemPayload,
    TaskEventPayload,
)


class AgentEventType(str, Enum):
    """Closed set of event type tags."""

    # Task management
    TASK_CREATED = "task_created"
    TASK_ASSIGNED = "task_assigned"
    TASK_STARTED = "task_started"
    TASK_COMPLETED = "task_completed"
    TASK_FAILED = "task_failed"
    TASK_CANCELLED = "task_cancelled"

    # Agent lifecycle
    AGENT_REGISTERED = "agent_registered"
    AGENT_AVAILABLE = "agent_available"
    AGENT_BUSY = "agent_busy"
    AGENT_OFFLINE = "agent_offline"
    AGENT_HEARTBEAT = "agent_heartbeat"

    # Communication
    MESSAGE_SENT = "message_sent"
    MESSAGE_RECEIVED = "message_received"
    COLLABORATION_REQUEST = "collaboration_request"
    COLLABORATION_RESPONSE = "collaboration_response"

    # System
    SYSTEM_STARTUP = "system_startup"
    SYSTEM_SHUTDOWN = "system_shutdown"
    ERROR_OCCURRED = "error_occurred"
    PERFORMANCE_METRIC = "performance_metric"

    # Sessions
    SESSION_CREATED = "session_created"
    SESSION_UPDATED = "session_updated"
    SESSION_CLOSED = "session_closed"

    # Code
    CODE_FILE_CREATED = "code_file_created"
    CODE_FILE_UPDATED = "code_file_updated"
    CODE_FILE_DELETED = "code_file_deleted"
    CODE_EXECUTION_STARTED = "code_execution_started"
    CODE_EXECUTION_COMPLETED = "code_execution_completed"


class EventCategory(str, Enum):
    """Payload shape family of an event type."""

    TASK = "task"
    AGENT = "agent"
    MESSAGE = "message"
    COLLABORATION = "collaboration"
    SYSTEM = "system"
    SESSION = "session"
    CODE = "code"


_PREFIX_CATEGORIES = {
    "task_": EventCategory.TASK,
    "agent_": EventCategory.AGENT,
    "message_": EventCategory.MESSAGE,
    "collaboration_": EventCategory.COLLABORATION,
    "system_": EventCategory.SYSTEM,
    "session_": EventCategory.SESSION,
    "code_": EventCategory.CODE,
}

CATEGORY_BY_TYPE: dict[AgentEventType, EventCategory] = {
    **{
        event_type: category
        for event_type in AgentEventType
        for prefix, category in _PREFIX_CATEGORIES.items()
        if event_type.value.startswith(prefix)
    },
    AgentEventType.ERROR_OCCURRED: EventCategory.SYSTEM,
    AgentEventType.PERFORMANCE_METRIC: EventCategory.SYSTEM,
}

PAYLOAD_SCHEMAS: dict[EventCategory, type[EventPayload]] = {
    EventCategory.TASK: TaskEventPayload,
    EventCategory.AGENT: AgentLifecyclePayload,
    EventCategory.MESSAGE: MessagePayload,
    EventCategory.COLLABORATION: CollaborationPayload,
    EventCategory.SYSTEM: SystemPayload,
    EventCategory.SESSION: SessionPayload,
    EventCategory.CODE: CodePayload,
}


def payload_schema(event_type: AgentEventType) -> type[EventPayload]:
    """Payload schema for an event type tag."""
    return PAYLOAD_SCHEMAS[CATEGORY_BY_TYPE[event_type]]


def as_utc(value: datetime) -> datetime:
    """Aware UTC datetime. Naive values are taken as UTC."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


@dataclass(frozen=True)
class Event:
    """An immutable record of something that happened."""

    id: str
    type: AgentEventType
    source: str
    timestamp: datetime
    correlation_id: str
    payload: EventPayload
    version: int = 1
    target: str | None = None
    metadata: dict[str, Any] | None = None

    def __hash__(self) -> int:
        return hash(self.id)

    @property
    def category(self) -> EventCategory:
        return CATEGORY_BY_TYPE[self.type]

    def to_dict(self) -> dict[str, Any]:
        """JSON-compatible representation."""
        return {
            "id": self.id,
            "type": self.type.value,
            "source": self.source,
            "target": self.target,
            "timestamp": self.timestamp.isoformat(),
            "correlation_id": self.correlation_id,
            "version": self.version,
            "payload": self.payload.model_dump(mode="json"),
            "metadata": self.metadata,
        }


@dataclass
class EventFilter:
    """Query over stored events. Timestamp bounds are inclusive."""

    event_types: list[AgentEventType] | None = None
    source: str | None = None
    target: str | None = None
    correlation_id: str | None = None
    from_timestamp: datetime | None = None
    to_timestamp: datetime | None = None
    limit: int | None = None
    offset: int = 0

    def __post_init__(self) -> None:
        if self.from_timestamp is not None:
            self.from_timestamp = as_utc(self.from_timestamp)
        if self.to_timestamp is not None:
            self.to_timestamp = as_utc(self.to_timestamp)

    def matches(self, event: Event) -> bool:
        """Whether an event passes every non-pagination criterion."""
        if self.event_types and event.type not in self.event_types:
            return False
        if self.source is not None and event.source != self.source:
            return False
        if self.target is not None and event.target != self.target:
            return False
        if self.correlation_id is not None and event.correlation_id != self.correlation_id:
            return False
        if self.from_timestamp is not None and event.timestamp < self.from_timestamp:
            return False
        if self.to_timestamp is not None and event.timestamp > self.to_timestamp:
            return False
        return True
