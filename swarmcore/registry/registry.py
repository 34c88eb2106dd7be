"""Arena of agent records indexed by id."""

import copy
from collections.abc import Collection, Iterator
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any

from ..errors import ValidationError
from ..models import AgentState, AgentStatus, TaskStatus


def _clamp(value: float, low: float, high: float) -> float:
    return max(low, min(high, value))


@dataclass
class AgentRecord:
    """Handle plus registry-owned state of one agent."""

    handle: Any
    state: AgentState
    order: int  # registration order
    charges: dict[str, float] = field(default_factory=dict)  # task id -> workload asked for


class AgentRegistry:
    """Single writer for agent state.

    Callers only ever receive snapshots; every mutation goes through
    a registry method.
    """

    def __init__(self) -> None:
        self._records: dict[str, AgentRecord] = {}
        self._next_order = 0

    def __contains__(self, agent_id: object) -> bool:
        return agent_id in self._records

    def __len__(self) -> int:
        return len(self._records)

    def __iter__(self) -> Iterator[str]:
        """Agent ids in registration order."""
        return iter(self._records)

    def add(self, agent_id: str, role: str, capabilities: Collection[str], handle: Any) -> AgentState:
        """Register an agent at status idle. Duplicate ids are rejected."""
        errors = []
        if not isinstance(agent_id, str) or not agent_id:
            errors.append("agent_id: must be a non-empty string")
        if not isinstance(role, str):
            errors.append("role: must be a string")
        if isinstance(capabilities, str) or not all(isinstance(c, str) for c in capabilities):
            errors.append("capabilities: must be a collection of strings")
        if errors:
            raise ValidationError("Invalid agent", errors)
        if agent_id in self._records:
            raise ValidationError(f"Agent {agent_id!r} is already registered")

        state = AgentState(id=agent_id, role=role, capabilities=frozenset(capabilities))
        self._records[agent_id] = AgentRecord(handle=handle, state=state, order=self._next_order)
        self._next_order += 1
        return self.snapshot(agent_id)

    def _record(self, agent_id: str) -> AgentRecord:
        try:
            return self._records[agent_id]
        except KeyError:
            raise KeyError(f"Unknown agent: {agent_id}") from None

    def handle(self, agent_id: str) -> Any:
        return self._record(agent_id).handle

    def snapshot(self, agent_id: str) -> AgentState:
        return copy.deepcopy(self._record(agent_id).state)

    def snapshots(self) -> list[AgentState]:
        return [copy.deepcopy(record.state) for record in self._records.values()]

    def order(self, agent_id: str) -> int:
        return self._record(agent_id).order

    def status(self, agent_id: str) -> AgentStatus:
        return self._record(agent_id).state.status

    def workload(self, agent_id: str) -> float:
        return self._record(agent_id).state.workload

    def capabilities(self, agent_id: str) -> frozenset[str]:
        return self._record(agent_id).state.capabilities

    def idle_ids(self) -> list[str]:
        """Idle agents in registration order."""
        return [
            agent_id
            for agent_id, record in self._records.items()
            if record.state.status is AgentStatus.IDLE
        ]

    def set_capabilities(self, agent_id: str, capabilities: Collection[str]) -> None:
        self._record(agent_id).state.capabilities = frozenset(capabilities)

    def set_status(self, agent_id: str, status: AgentStatus) -> None:
        state = self._record(agent_id).state
        state.status = status
        state.last_active = datetime.now(timezone.utc)

    def start_task(self, agent_id: str, task_id: str, workload: float) -> None:
        """Agent picks up a task: working, workload raised.

        Workload is the sum of the charges of open tasks, clamped to 100.
        """
        record = self._record(agent_id)
        record.state.current_tasks.append(task_id)
        record.charges[task_id] = workload
        self._settle_workload(record)
        record.state.status = AgentStatus.WORKING
        record.state.last_active = datetime.now(timezone.utc)

    def finish_task(
        self,
        agent_id: str,
        task_id: str,
        outcome: TaskStatus,
        duration: float = 0.0,
    ) -> bool:
        """Agent is done with a task. Returns True if it went back to idle.

        Only COMPLETED and FAILED outcomes count towards performance.
        """
        record = self._record(agent_id)
        state = record.state
        if task_id in state.current_tasks:
            state.current_tasks.remove(task_id)
        record.charges.pop(task_id, None)
        self._settle_workload(record)
        state.last_active = datetime.now(timezone.utc)

        perf = state.performance
        if outcome is TaskStatus.COMPLETED:
            total_time = perf.average_completion_time * perf.tasks_completed + duration
            perf.tasks_completed += 1
            perf.average_completion_time = total_time / perf.tasks_completed
        elif outcome is TaskStatus.FAILED:
            perf.tasks_failed += 1
        finished = perf.tasks_completed + perf.tasks_failed
        if finished:
            perf.success_rate = _clamp(perf.tasks_completed / finished, 0.0, 1.0)

        if not state.current_tasks:
            state.status = AgentStatus.IDLE
            return True
        return False

    def record_collaboration(self, agent_id: str, rating: float) -> float:
        """Fold a rating in [0, 1] into the running collaboration score."""
        perf = self._record(agent_id).state.performance
        rating = _clamp(float(rating), 0.0, 1.0)
        perf.collaboration_rating = (
            perf.collaboration_rating * perf.collaborations + rating
        ) / (perf.collaborations + 1)
        perf.collaborations += 1
        return perf.collaboration_rating

    def release(self, agent_id: str) -> None:
        """Drop all in-flight work: idle, zero workload. Performance is kept."""
        record = self._record(agent_id)
        record.charges.clear()
        state = record.state
        state.current_tasks.clear()
        state.workload = 0.0
        state.status = AgentStatus.IDLE
        state.last_active = datetime.now(timezone.utc)

    @staticmethod
    def _settle_workload(record: AgentRecord) -> None:
        record.state.workload = _clamp(sum(record.charges.values()), 0.0, 100.0)
