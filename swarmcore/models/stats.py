"""System statistics snapshot."""

from dataclasses import asdict, dataclass, field
from datetime import datetime
from typing import Any


@dataclass
class SystemStats:
    """Derived snapshot, recomputed from the registry on every request."""

    total_agents: int
    available_agents: int
    agents_by_status: dict[str, int]
    total_tasks: int
    pending_tasks: int
    tasks_by_status: dict[str, int]
    completed_tasks: int
    failed_tasks: int
    throughput_per_minute: float
    average_completion_time: float
    agent_workloads: dict[str, float]
    generated_at: datetime
    event_bus: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        data = asdict(self)
        data["generated_at"] = self.generated_at.isoformat()
        return data

    def to_metrics(self) -> dict[str, float]:
        """Flat numeric view used for performance_metric events."""
        return {
            "total_agents": float(self.total_agents),
            "available_agents": float(self.available_agents),
            "total_tasks": float(self.total_tasks),
            "pending_tasks": float(self.pending_tasks),
            "completed_tasks": float(self.completed_tasks),
            "failed_tasks": float(self.failed_tasks),
            "throughput_per_minute": self.throughput_per_minute,
            "average_completion_time": self.average_completion_time,
        }
