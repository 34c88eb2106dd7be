"""Builders for well-formed, validated events."""

import uuid
import weakref
from collections.abc import Mapping
from datetime import datetime, timezone
from typing import Any

from pydantic import ValidationError as PydanticValidationError

from ..errors import ValidationError
from ..models import (
    CATEGORY_BY_TYPE,
    AgentEventType,
    AgentState,
    Event,
    EventCategory,
    EventPayload,
    Task,
    payload_schema,
)


def _format_errors(error: PydanticValidationError) -> list[str]:
    messages = []
    for item in error.errors():
        location = ".".join(str(part) for part in item["loc"])
        field = f"payload.{location}" if location else "payload"
        messages.append(f"{field}: {item['msg']}")
    return messages


class EventFactory:
    """Stateless event builders, one per event category.

    The only way events enter the system: the bus refuses events the
    factory did not issue.
    """

    _issued: "weakref.WeakSet[Event]" = weakref.WeakSet()
    _last_timestamp: datetime | None = None

    @staticmethod
    def new_event_id() -> str:
        return f"evt_{uuid.uuid4().hex}"

    @staticmethod
    def new_correlation_id() -> str:
        return f"corr_{uuid.uuid4().hex}"

    @classmethod
    def is_issued(cls, event: Event) -> bool:
        """Whether the event was produced by this factory."""
        return isinstance(event, Event) and event in cls._issued

    @classmethod
    def _now(cls) -> datetime:
        # Never hand out a timestamp older than the previous one
        now = datetime.now(timezone.utc)
        if cls._last_timestamp is not None and now < cls._last_timestamp:
            now = cls._last_timestamp
        cls._last_timestamp = now
        return now

    @staticmethod
    def _coerce_type(event_type: AgentEventType | str) -> AgentEventType:
        try:
            return AgentEventType(event_type)
        except ValueError:
            raise ValidationError(f"Unknown event type {event_type!r}") from None

    @classmethod
    def create_event(
        cls,
        event_type: AgentEventType | str,
        payload: Mapping[str, Any] | EventPayload,
        source: str,
        *,
        target: str | None = None,
        correlation_id: str | None = None,
        metadata: Mapping[str, Any] | None = None,
        version: int = 1,
    ) -> Event:
        """Build an event of any type, validating the payload for its category."""
        event_type = cls._coerce_type(event_type)
        errors = []

        if not isinstance(source, str) or not source:
            errors.append("source: must be a non-empty string")
        if target is not None and not isinstance(target, str):
            errors.append("target: must be a string")
        if correlation_id is not None and (not isinstance(correlation_id, str) or not correlation_id):
            errors.append("correlation_id: must be a non-empty string")
        if isinstance(version, bool) or not isinstance(version, int) or version < 1:
            errors.append("version: must be a positive integer")
        if metadata is not None and not isinstance(metadata, Mapping):
            errors.append("metadata: must be a mapping")

        if isinstance(payload, EventPayload):
            payload = payload.model_dump()
        validated = None
        try:
            validated = payload_schema(event_type).model_validate(payload)
        except PydanticValidationError as e:
            errors.extend(_format_errors(e))

        if errors:
            raise ValidationError(f"Invalid {event_type.value} event", errors)

        event = Event(
            id=cls.new_event_id(),
            type=event_type,
            source=source,
            target=target,
            timestamp=cls._now(),
            correlation_id=correlation_id or cls.new_correlation_id(),
            version=version,
            payload=validated,
            metadata=dict(metadata) if metadata is not None else None,
        )
        cls._issued.add(event)
        return event

    @classmethod
    def _category_event(
        cls,
        category: EventCategory,
        event_type: AgentEventType | str,
        payload: Mapping[str, Any] | EventPayload,
        source: str,
        **kwargs: Any,
    ) -> Event:
        event_type = cls._coerce_type(event_type)
        if CATEGORY_BY_TYPE[event_type] is not category:
            raise ValidationError(
                f"{event_type.value} is not a {category.value} event"
            )
        return cls.create_event(event_type, payload, source, **kwargs)

    # Category builders

    @classmethod
    def task_event(cls, event_type, payload, source, **kwargs) -> Event:
        return cls._category_event(EventCategory.TASK, event_type, payload, source, **kwargs)

    @classmethod
    def agent_event(cls, event_type, payload, source, **kwargs) -> Event:
        return cls._category_event(EventCategory.AGENT, event_type, payload, source, **kwargs)

    @classmethod
    def message_event(cls, event_type, payload, source, **kwargs) -> Event:
        return cls._category_event(EventCategory.MESSAGE, event_type, payload, source, **kwargs)

    @classmethod
    def collaboration_event(cls, event_type, payload, source, **kwargs) -> Event:
        return cls._category_event(
            EventCategory.COLLABORATION, event_type, payload, source, **kwargs
        )

    @classmethod
    def system_event(cls, event_type, payload, source, **kwargs) -> Event:
        return cls._category_event(EventCategory.SYSTEM, event_type, payload, source, **kwargs)

    @classmethod
    def session_event(cls, event_type, payload, source, **kwargs) -> Event:
        return cls._category_event(EventCategory.SESSION, event_type, payload, source, **kwargs)

    @classmethod
    def code_event(cls, event_type, payload, source, **kwargs) -> Event:
        return cls._category_event(EventCategory.CODE, event_type, payload, source, **kwargs)

    # Task events

    @staticmethod
    def _task_payload(task: Task, **extra: Any) -> dict[str, Any]:
        payload = {
            "task_id": task.id,
            "task_title": task.title,
            "task_description": task.description,
            "priority": task.priority.value,
            "complexity": task.complexity,
            "assigned_agent": task.assigned_agent,
            "estimated_duration": task.metadata.estimated_duration,
        }
        payload.update(extra)
        return payload

    @classmethod
    def task_created(cls, task: Task, source: str, correlation_id: str | None = None) -> Event:
        return cls.task_event(
            AgentEventType.TASK_CREATED,
            cls._task_payload(task),
            source,
            correlation_id=correlation_id,
        )

    @classmethod
    def task_assigned(
        cls, task: Task, agent_id: str, source: str, correlation_id: str | None = None
    ) -> Event:
        return cls.task_event(
            AgentEventType.TASK_ASSIGNED,
            cls._task_payload(task, assigned_agent=agent_id),
            source,
            target=agent_id,
            correlation_id=correlation_id,
        )

    @classmethod
    def task_started(
        cls, task: Task, agent_id: str, source: str, correlation_id: str | None = None
    ) -> Event:
        return cls.task_event(
            AgentEventType.TASK_STARTED,
            cls._task_payload(task, assigned_agent=agent_id),
            source,
            target=agent_id,
            correlation_id=correlation_id,
        )

    @classmethod
    def task_completed(
        cls,
        task: Task,
        result: Any,
        actual_duration: float,
        source: str,
        correlation_id: str | None = None,
    ) -> Event:
        return cls.task_event(
            AgentEventType.TASK_COMPLETED,
            cls._task_payload(task, result=result, actual_duration=actual_duration),
            source,
            correlation_id=correlation_id,
        )

    @classmethod
    def task_failed(
        cls, task: Task, error: str, source: str, correlation_id: str | None = None
    ) -> Event:
        return cls.task_event(
            AgentEventType.TASK_FAILED,
            cls._task_payload(task, error=error),
            source,
            correlation_id=correlation_id,
        )

    @classmethod
    def task_cancelled(
        cls,
        task: Task,
        source: str,
        correlation_id: str | None = None,
        reason: str | None = None,
    ) -> Event:
        return cls.task_event(
            AgentEventType.TASK_CANCELLED,
            cls._task_payload(task, error=reason),
            source,
            correlation_id=correlation_id,
        )

    # Agent lifecycle events

    @staticmethod
    def _agent_payload(state: AgentState) -> dict[str, Any]:
        return {
            "agent_id": state.id,
            "agent_role": state.role,
            "capabilities": sorted(state.capabilities),
            "status": state.status.value,
            "workload": state.workload,
            "performance": {
                "tasks_completed": state.performance.tasks_completed,
                "average_completion_time": state.performance.average_completion_time,
                "success_rate": state.performance.success_rate,
                "collaboration_rating": state.performance.collaboration_rating,
            },
            "current_task": state.current_tasks[0] if state.current_tasks else None,
        }

    @classmethod
    def agent_registered(cls, state: AgentState, source: str) -> Event:
        return cls.agent_event(
            AgentEventType.AGENT_REGISTERED, cls._agent_payload(state), source
        )

    @classmethod
    def agent_available(cls, state: AgentState, source: str) -> Event:
        return cls.agent_event(
            AgentEventType.AGENT_AVAILABLE, cls._agent_payload(state), source
        )

    @classmethod
    def agent_busy(cls, state: AgentState, source: str) -> Event:
        return cls.agent_event(AgentEventType.AGENT_BUSY, cls._agent_payload(state), source)

    # System events

    @classmethod
    def error_occurred(
        cls,
        component: str,
        message: str,
        *,
        stack_trace: str | None = None,
        level: str = "error",
        source: str = "system",
        correlation_id: str | None = None,
        metadata: Mapping[str, Any] | None = None,
    ) -> Event:
        return cls.system_event(
            AgentEventType.ERROR_OCCURRED,
            {
                "component": component,
                "level": level,
                "message": message,
                "stack_trace": stack_trace,
            },
            source,
            correlation_id=correlation_id,
            metadata=metadata,
        )

    @classmethod
    def performance_metric(
        cls, component: str, metrics: Mapping[str, float], source: str = "system"
    ) -> Event:
        return cls.system_event(
            AgentEventType.PERFORMANCE_METRIC,
            {
                "component": component,
                "level": "info",
                "message": "Performance metrics updated",
                "metrics": dict(metrics),
            },
            source,
        )
