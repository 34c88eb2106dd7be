"""Agent-related data models and the agent capability contract."""

from collections.abc import Collection
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Protocol

from .tasks import Task


class AgentStatus(str, Enum):
    """Agent activity states. IDLE is the rest state."""

    IDLE = "idle"
    THINKING = "thinking"
    WORKING = "working"
    WAITING = "waiting"
    COLLABORATING = "collaborating"


@dataclass
class AgentPerformance:
    """Performance counters kept by the registry."""

    tasks_completed: int = 0
    tasks_failed: int = 0
    average_completion_time: float = 0.0  # seconds
    success_rate: float = 0.0  # [0, 1]
    collaboration_rating: float = 0.0  # [0, 1]
    collaborations: int = 0


@dataclass
class AgentState:
    """Registry-owned state of one agent."""

    id: str
    role: str
    capabilities: frozenset[str] = frozenset()
    status: AgentStatus = AgentStatus.IDLE
    performance: AgentPerformance = field(default_factory=AgentPerformance)
    last_active: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    workload: float = 0.0  # [0, 100]
    current_tasks: list[str] = field(default_factory=list)


class IAgent(Protocol):
    """An opaque worker registered with the AgentEventManager."""

    @property
    def agent_id(self) -> str:
        """Agent identifier."""
        ...

    @property
    def role(self) -> str:
        """Role tag."""
        ...

    @property
    def capabilities(self) -> Collection[str]:
        """Capability tags matched against task requirements."""
        ...

    async def process(self, task: Task) -> Any:
        """Process a task and return its result; raise on failure."""
        ...

    def status(self) -> AgentStatus:
        """Agent's own view of its current state."""
        ...


class ISwarmAgent(Protocol):
    """An opaque worker registered with the SwarmCoordinator."""

    @property
    def agent_id(self) -> str:
        """Agent identifier."""
        ...

    @property
    def specialties(self) -> Collection[str]:
        """Specialty tags matched against task requirements."""
        ...

    async def process(self, task: Task) -> Any:
        """Process a task and return its result; raise on failure."""
        ...

    def status(self) -> AgentStatus:
        """Agent's own view of its current state."""
        ...
