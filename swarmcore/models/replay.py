"""Event replay job model."""

import asyncio
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any

from .events import AgentEventType


class ReplayStatus(str, Enum):
    """Replay job states."""

    PENDING = "pending"
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"


@dataclass
class ReplayJob:
    """Re-delivery of a time-bounded slice of the event store."""

    replay_id: str
    from_timestamp: datetime
    to_timestamp: datetime
    event_types: list[AgentEventType] | None = None
    status: ReplayStatus = ReplayStatus.PENDING
    progress: float = 0.0  # percent
    total_events: int = 0
    processed_events: int = 0
    errors: list[str] = field(default_factory=list)
    _done: asyncio.Event = field(default_factory=asyncio.Event, repr=False, compare=False)

    @property
    def finished(self) -> bool:
        return self.status in (ReplayStatus.COMPLETED, ReplayStatus.FAILED)

    async def wait(self) -> "ReplayJob":
        """Wait until the job completes or fails."""
        await self._done.wait()
        return self

    def finish(self, status: ReplayStatus) -> None:
        self.status = status
        self._done.set()

    def to_dict(self) -> dict[str, Any]:
        return {
            "replay_id": self.replay_id,
            "from_timestamp": self.from_timestamp.isoformat(),
            "to_timestamp": self.to_timestamp.isoformat(),
            "event_types": [t.value for t in self.event_types] if self.event_types else None,
            "status": self.status.value,
            "progress": self.progress,
            "total_events": self.total_events,
            "processed_events": self.processed_events,
            "errors": list(self.errors),
        }
