"""SwarmCoordinator: specialty-matched fan-out with isolated agent failures."""

import asyncio
import copy
from collections.abc import Collection, Mapping
from dataclasses import dataclass, field
from typing import Any, Protocol

from ..errors import ValidationError
from ..event_bus import EventBus
from ..event_factory import EventFactory
from ..logging_config import get_logger
from ..models import AgentState, ISwarmAgent, Task, TaskStatus
from ..registry import AgentRegistry

logger = get_logger(__name__)

SOURCE = "swarm_coordinator"
SWARM_ROLE = "swarm"
WORKLOAD_PER_COMPLEXITY = 10.0


@dataclass
class SwarmOutput:
    """Successful result of one agent invocation."""

    task_id: str
    agent_id: str
    result: Any
    duration: float


@dataclass
class SwarmError:
    """Failed or undispatchable unit of work."""

    task_id: str
    agent_id: str | None
    error: str


@dataclass
class SwarmResult:
    """Outcome of process_task: partial outputs are kept even when failed."""

    task: Task
    status: TaskStatus
    outputs: list[SwarmOutput] = field(default_factory=list)
    errors: list[SwarmError] = field(default_factory=list)
    summary: str = ""
    duration: float = 0.0

    @property
    def results(self) -> dict[str, Any]:
        """Successful results keyed by (sub)task id."""
        return {output.task_id: output.result for output in self.outputs}

    def to_dict(self) -> dict[str, Any]:
        return {
            "task_id": self.task.id,
            "status": self.status.value,
            "outputs": [vars(output) for output in self.outputs],
            "errors": [vars(error) for error in self.errors],
            "summary": self.summary,
            "duration": self.duration,
        }


@dataclass
class SwarmMetrics:
    total_tasks: int = 0
    completed_tasks: int = 0
    failed_tasks: int = 0
    success_rate: float = 0.0
    average_duration: float = 0.0
    agent_utilization: dict[str, float] = field(default_factory=dict)  # share of invocations


class ISwarmCoordinator(Protocol):
    """Pool of specialty-tagged agents processing decomposed tasks."""

    def register_swarm_agent(self, agent: ISwarmAgent) -> AgentState:
        """Add an agent with its specialties. Duplicate ids are rejected."""
        ...

    async def process_task(
        self,
        task: Task,
        subtasks: Mapping[str, Task] | None = None,
        completed: Collection[str] = (),
    ) -> SwarmResult:
        """Dispatch the task (or its subtasks) and combine the outcomes."""
        ...


class SwarmCoordinator:
    """Independent agent pool tagged by specialty.

    A task without subtasks goes to the single best-matching agent. A task
    with subtasks fans out: every subtask whose sibling dependencies are done
    is dispatched at once, wave after wave. One failing agent never aborts
    the others; its failure becomes an entry in ``SwarmResult.errors``.
    """

    def __init__(self, event_bus: EventBus | None = None):
        self._event_bus = event_bus
        self._registry = AgentRegistry()
        self._invocations: dict[str, int] = {}
        self._total_tasks = 0
        self._completed_tasks = 0
        self._failed_tasks = 0
        self._total_duration = 0.0

    def register_swarm_agent(self, agent: ISwarmAgent) -> AgentState:
        state = self._registry.add(
            getattr(agent, "agent_id", None),
            SWARM_ROLE,
            getattr(agent, "specialties", ()),
            agent,
        )
        self._invocations[state.id] = 0
        logger.info(
            "Swarm agent registered: %s",
            state.id,
            extra={"context": {"specialties": sorted(state.capabilities)}},
        )
        return state

    def get_swarm_status(self) -> list[AgentState]:
        return self._registry.snapshots()

    def get_metrics(self) -> SwarmMetrics:
        finished = self._completed_tasks + self._failed_tasks
        invocations = sum(self._invocations.values())
        return SwarmMetrics(
            total_tasks=self._total_tasks,
            completed_tasks=self._completed_tasks,
            failed_tasks=self._failed_tasks,
            success_rate=self._completed_tasks / finished if finished else 0.0,
            average_duration=self._total_duration / finished if finished else 0.0,
            agent_utilization={
                agent_id: count / invocations if invocations else 0.0
                for agent_id, count in self._invocations.items()
            },
        )

    def reset(self) -> None:
        """Zero the metrics and return every agent to idle."""
        for agent_id in self._registry:
            self._registry.release(agent_id)
            self._invocations[agent_id] = 0
        self._total_tasks = 0
        self._completed_tasks = 0
        self._failed_tasks = 0
        self._total_duration = 0.0

    async def process_task(
        self,
        task: Task,
        subtasks: Mapping[str, Task] | None = None,
        completed: Collection[str] = (),
    ) -> SwarmResult:
        """Process a task and return combined outputs plus per-agent errors.

        Args:
            task: The parent task. Its ``subtasks`` lists the ids to fan out.
            subtasks: Task objects for the ids in ``task.subtasks``, keyed by id.
            completed: Ids of tasks already completed elsewhere. Every
                dependency of the parent, and every dependency of a subtask
                on something outside this fan-out, must be among them.

        Returns:
            SwarmResult with status completed only if no error was recorded.
        """
        task.validate()
        if task.status.is_terminal:
            raise ValidationError(f"Task {task.id!r} is already {task.status.value}")
        completed = frozenset(completed)
        unfinished = [dep for dep in task.dependencies if dep not in completed]
        if unfinished:
            raise ValidationError(
                f"Task {task.id!r} has unfinished dependencies",
                [f"dependencies: {dep} is not completed" for dep in unfinished],
            )
        subtasks = dict(subtasks or {})
        for key, subtask in subtasks.items():
            subtask.validate()
            if key != subtask.id:
                raise ValidationError(
                    f"Subtask key {key!r} does not match its id {subtask.id!r}"
                )

        owned = copy.deepcopy(task)
        if owned.status is not TaskStatus.IN_PROGRESS:
            owned.transition(TaskStatus.IN_PROGRESS)
        self._total_tasks += 1
        correlation_id = EventFactory.new_correlation_id()
        await self._publish(EventFactory.task_started(owned, SOURCE, SOURCE, correlation_id))

        loop = asyncio.get_running_loop()
        started = loop.time()
        if owned.subtasks:
            outputs, errors = await self._fan_out(owned, subtasks, completed)
        else:
            outputs, errors = await self._dispatch_wave([owned])
        duration = loop.time() - started

        result = SwarmResult(
            task=owned,
            status=TaskStatus.COMPLETED if not errors else TaskStatus.FAILED,
            outputs=outputs,
            errors=errors,
            summary=self._summarize(owned, outputs, errors),
            duration=duration,
        )
        owned.transition(result.status)
        self._total_duration += duration
        if result.status is TaskStatus.COMPLETED:
            self._completed_tasks += 1
            await self._publish(
                EventFactory.task_completed(owned, result.summary, duration, SOURCE, correlation_id)
            )
        else:
            self._failed_tasks += 1
            await self._publish(
                EventFactory.task_failed(owned, result.summary, SOURCE, correlation_id)
            )

        logger.info(
            "Swarm task %s %s: %s outputs, %s errors",
            owned.id,
            result.status.value,
            len(outputs),
            len(errors),
        )
        return result

    # Internals

    async def _publish(self, event) -> None:
        if self._event_bus is not None:
            await self._event_bus.publish(event)

    async def _fan_out(
        self, task: Task, subtasks: dict[str, Task], completed: frozenset[str]
    ) -> tuple[list[SwarmOutput], list[SwarmError]]:
        outputs: list[SwarmOutput] = []
        errors: list[SwarmError] = []

        remaining: dict[str, Task] = {}
        for subtask_id in task.subtasks:
            subtask = subtasks.get(subtask_id)
            if subtask is None:
                errors.append(SwarmError(subtask_id, None, "Subtask not provided"))
                continue
            outside = [
                dep
                for dep in subtask.dependencies
                if dep not in task.subtasks and dep not in completed
            ]
            if outside:
                errors.append(
                    SwarmError(subtask_id, None, f"Dependency {outside[0]} is not completed")
                )
            else:
                remaining[subtask_id] = copy.deepcopy(subtask)

        done: set[str] = set()
        failed = {error.task_id for error in errors}
        while remaining:
            wave = []
            for subtask_id, subtask in list(remaining.items()):
                # Outside dependencies were checked above
                siblings = [dep for dep in subtask.dependencies if dep in task.subtasks]
                broken = [dep for dep in siblings if dep in failed]
                if broken:
                    del remaining[subtask_id]
                    failed.add(subtask_id)
                    errors.append(
                        SwarmError(subtask_id, None, f"Dependency {broken[0]} failed")
                    )
                elif all(dep in done for dep in siblings):
                    wave.append(remaining.pop(subtask_id))

            if not wave:
                if remaining:
                    for subtask_id in remaining:
                        failed.add(subtask_id)
                        errors.append(
                            SwarmError(subtask_id, None, "Unresolvable subtask dependencies")
                        )
                    remaining.clear()
                break

            wave_outputs, wave_errors = await self._dispatch_wave(wave)
            outputs.extend(wave_outputs)
            errors.extend(wave_errors)
            done.update(output.task_id for output in wave_outputs)
            failed.update(error.task_id for error in wave_errors)

        return outputs, errors

    async def _dispatch_wave(
        self, tasks: list[Task]
    ) -> tuple[list[SwarmOutput], list[SwarmError]]:
        """Pick an agent for each task, then run all of them concurrently."""
        errors: list[SwarmError] = []
        assignments: list[tuple[Task, str]] = []
        for task in tasks:
            agent_id = self._best_agent(task)
            if agent_id is None:
                errors.append(
                    SwarmError(
                        task.id,
                        None,
                        f"No swarm agent matches requirements {sorted(task.requirements)}",
                    )
                )
                continue
            # Charged up front so the next pick in this wave sees the load
            self._registry.start_task(agent_id, task.id, task.complexity * WORKLOAD_PER_COMPLEXITY)
            assignments.append((task, agent_id))

        outcomes = await asyncio.gather(
            *(self._invoke(task, agent_id) for task, agent_id in assignments)
        )
        outputs = [outcome for outcome in outcomes if isinstance(outcome, SwarmOutput)]
        errors.extend(outcome for outcome in outcomes if isinstance(outcome, SwarmError))
        return outputs, errors

    def _best_agent(self, task: Task) -> str | None:
        """Largest specialty overlap, then most specific, least loaded, first registered."""
        requirements = task.requirements
        candidates = []
        for agent_id in self._registry:
            specialties = self._registry.capabilities(agent_id)
            overlap = len(requirements & specialties)
            if requirements and not overlap:
                continue
            candidates.append(
                (
                    -overlap,
                    len(specialties - requirements),
                    self._registry.workload(agent_id),
                    self._registry.order(agent_id),
                    agent_id,
                )
            )
        if not candidates:
            return None
        return min(candidates)[-1]

    async def _invoke(self, task: Task, agent_id: str) -> SwarmOutput | SwarmError:
        loop = asyncio.get_running_loop()
        started = loop.time()
        self._invocations[agent_id] = self._invocations.get(agent_id, 0) + 1
        outcome = TaskStatus.FAILED
        try:
            result = await self._registry.handle(agent_id).process(copy.deepcopy(task))
            outcome = TaskStatus.COMPLETED
            return SwarmOutput(task.id, agent_id, result, loop.time() - started)
        except asyncio.CancelledError:
            outcome = TaskStatus.CANCELLED
            raise
        except Exception as e:
            logger.warning("Swarm agent %s failed on %s: %s", agent_id, task.id, e)
            return SwarmError(task.id, agent_id, str(e) or type(e).__name__)
        finally:
            self._registry.finish_task(
                agent_id,
                task.id,
                outcome,
                loop.time() - started,
            )

    @staticmethod
    def _summarize(task: Task, outputs: list[SwarmOutput], errors: list[SwarmError]) -> str:
        units = len(task.subtasks) or 1
        summary = f"{task.title}: {len(outputs)}/{units} completed"
        if errors:
            summary += f", {len(errors)} failed ({'; '.join(f'{e.task_id}: {e.error}' for e in errors)})"
        return summary
