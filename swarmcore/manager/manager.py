"""AgentEventManager: agent registry, task queue and task dispatch."""

import asyncio
import copy
import itertools
from collections.abc import Collection
from datetime import datetime, timezone
from typing import Protocol

from ..errors import StoreError, ValidationError
from ..event_bus import EventBus
from ..event_factory import EventFactory
from ..logging_config import get_logger
from ..models import (
    AgentEventType,
    AgentState,
    AgentStatus,
    Event,
    IAgent,
    SystemStats,
    Task,
    TaskStatus,
)
from ..registry import AgentRegistry

logger = get_logger(__name__)

SOURCE = "agent_manager"
WORKLOAD_PER_COMPLEXITY = 10.0  # percent per complexity point


class IAgentEventManager(Protocol):
    """Registry of agents plus a priority queue of tasks waiting for one."""

    async def register_agent(self, agent: IAgent) -> AgentState:
        """Register an agent at status idle. Duplicate ids are rejected."""
        ...

    async def submit_task(self, task: Task) -> str:
        """Accept a task and assign it now or queue it. Returns the task id."""
        ...

    def get_system_stats(self) -> SystemStats:
        """Counts and rates computed from current state."""
        ...


class AgentEventManager:
    """Assigns tasks to capable idle agents and drives their lifecycle.

    All agent and task state is owned here; callers get copies. A task with
    no capable idle agent simply waits in the queue, ordered by priority and
    then by submission. Every time an agent goes back to idle the queue is
    scanned again.
    """

    def __init__(self, event_bus: EventBus, stats_interval: float = 0.0):
        self._event_bus = event_bus
        self._stats_interval = stats_interval
        self._registry = AgentRegistry()

        self._tasks: dict[str, Task] = {}
        self._queue: list[str] = []  # pending task ids
        self._submission_order: dict[str, int] = {}
        self._sequence = itertools.count()
        self._correlations: dict[str, str] = {}  # task id -> correlation id
        self._runs: dict[str, asyncio.Task] = {}  # task id -> agent invocation
        self._finishing: set[str] = set()  # results being recorded, no longer cancelable

        self._started_at = datetime.now(timezone.utc)
        self._stats_task: asyncio.Task | None = None
        self._subscription_ids: list[str] = []
        self._running = False

    @property
    def registry(self) -> AgentRegistry:
        return self._registry

    # Lifecycle

    async def start(self) -> None:
        """Listen for external availability signals and start the stats timer."""
        if self._running:
            return
        self._running = True
        self._started_at = datetime.now(timezone.utc)
        self._subscription_ids.append(
            self._event_bus.subscribe(
                AgentEventType.AGENT_AVAILABLE,
                self._on_agent_available,
                filter=lambda event: event.source != SOURCE,
            )
        )
        if self._stats_interval > 0:
            self._stats_task = asyncio.create_task(self._stats_timer())
        logger.info("AgentEventManager started (stats_interval=%s)", self._stats_interval)

    async def stop(self) -> None:
        """Cancel the stats timer and any agent invocation still in flight."""
        self._running = False
        for subscription_id in self._subscription_ids:
            self._event_bus.unsubscribe(subscription_id)
        self._subscription_ids.clear()

        if self._stats_task:
            self._stats_task.cancel()
            try:
                await self._stats_task
            except asyncio.CancelledError:
                pass
            self._stats_task = None

        await self._cancel_runs()
        logger.info("AgentEventManager stopped")

    async def reset(self) -> None:
        """Forget all tasks and return every agent to idle. Agents stay registered."""
        await self._cancel_runs()
        self._tasks.clear()
        self._queue.clear()
        self._submission_order.clear()
        self._correlations.clear()
        for agent_id in self._registry:
            self._registry.release(agent_id)
        self._started_at = datetime.now(timezone.utc)
        logger.info("AgentEventManager reset")

    async def wait_for_tasks(self) -> None:
        """Wait until no agent invocation is in flight."""
        while self._runs:
            await asyncio.gather(*list(self._runs.values()), return_exceptions=True)

    # Agents

    async def register_agent(self, agent: IAgent) -> AgentState:
        """Register an agent at status idle and emit AGENT_REGISTERED."""
        state = self._registry.add(
            getattr(agent, "agent_id", None),
            getattr(agent, "role", None),
            getattr(agent, "capabilities", ()),
            agent,
        )
        logger.info(
            "Agent registered: %s",
            state.id,
            extra={"context": {"role": state.role, "capabilities": sorted(state.capabilities)}},
        )
        await self._event_bus.publish(EventFactory.agent_registered(state, SOURCE))
        await self._dispatch_pending()
        return state

    async def update_agent_capabilities(
        self, agent_id: str, capabilities: Collection[str]
    ) -> AgentState:
        """Replace an agent's capability set; queued tasks may now match."""
        if isinstance(capabilities, str) or not all(isinstance(c, str) for c in capabilities):
            raise ValidationError("capabilities: must be a collection of strings")
        self._registry.set_capabilities(agent_id, capabilities)
        await self._dispatch_pending()
        return self._registry.snapshot(agent_id)

    def record_collaboration(self, agent_id: str, rating: float) -> float:
        """Fold a collaboration rating in [0, 1] into the agent's score."""
        return self._registry.record_collaboration(agent_id, rating)

    def get_agent_state(self, agent_id: str) -> AgentState | None:
        if agent_id not in self._registry:
            return None
        return self._registry.snapshot(agent_id)

    def get_agents(self) -> list[AgentState]:
        return self._registry.snapshots()

    # Tasks

    async def submit_task(self, task: Task) -> str:
        """Emit TASK_CREATED, then assign the task or leave it pending."""
        task.validate()
        if task.id in self._tasks:
            raise ValidationError(f"Task {task.id!r} already submitted")
        if task.status is not TaskStatus.PENDING:
            raise ValidationError(f"Task {task.id!r} must be pending, got {task.status.value}")

        owned = copy.deepcopy(task)
        owned.assigned_agent = None
        self._tasks[owned.id] = owned
        self._submission_order[owned.id] = next(self._sequence)
        self._correlations[owned.id] = EventFactory.new_correlation_id()
        self._queue.append(owned.id)

        logger.info(
            "Task submitted: %s",
            owned.id,
            extra={"context": {"priority": owned.priority.value, "complexity": owned.complexity}},
        )
        try:
            await self._event_bus.publish(
                EventFactory.task_created(owned, SOURCE, self._correlations[owned.id])
            )
        except StoreError:
            # Never recorded, so never accepted
            self._forget(owned.id)
            raise
        await self._dispatch_pending()
        return owned.id

    async def cancel_task(self, task_id: str) -> bool:
        """Cancel a task that has not finished yet.

        A running agent is not interrupted; its result is discarded when it
        reports back. Returns False if the task was already terminal or its
        result is being recorded.
        """
        task = self._task(task_id)
        if task.status.is_terminal or task_id in self._finishing:
            return False

        task.transition(TaskStatus.CANCELLED)
        if task_id in self._queue:
            self._queue.remove(task_id)
        logger.info("Task cancelled: %s", task_id)
        await self._event_bus.publish(
            EventFactory.task_cancelled(task, SOURCE, self._correlations[task_id], reason="cancelled")
        )
        # Dependents of this task can now be failed
        await self._dispatch_pending()
        return True

    def get_task(self, task_id: str) -> Task | None:
        task = self._tasks.get(task_id)
        return copy.deepcopy(task) if task is not None else None

    def get_tasks(self, status: TaskStatus | None = None) -> list[Task]:
        return [
            copy.deepcopy(task)
            for task in self._tasks.values()
            if status is None or task.status is status
        ]

    def get_correlation_id(self, task_id: str) -> str | None:
        return self._correlations.get(task_id)

    def pending_task_ids(self) -> list[str]:
        """Queued task ids in the order they will be considered."""
        return sorted(self._queue, key=self._queue_key)

    # Stats

    def get_system_stats(self) -> SystemStats:
        """Recomputed from the registry and task table on every call."""
        agents = self._registry.snapshots()
        agents_by_status = {status.value: 0 for status in AgentStatus}
        for state in agents:
            agents_by_status[state.status.value] += 1

        tasks_by_status = {status.value: 0 for status in TaskStatus}
        for task in self._tasks.values():
            tasks_by_status[task.status.value] += 1

        completed = sum(state.performance.tasks_completed for state in agents)
        total_time = sum(
            state.performance.average_completion_time * state.performance.tasks_completed
            for state in agents
        )
        now = datetime.now(timezone.utc)
        uptime_minutes = max((now - self._started_at).total_seconds(), 1.0) / 60

        return SystemStats(
            total_agents=len(agents),
            available_agents=agents_by_status[AgentStatus.IDLE.value],
            agents_by_status=agents_by_status,
            total_tasks=len(self._tasks),
            pending_tasks=tasks_by_status[TaskStatus.PENDING.value],
            tasks_by_status=tasks_by_status,
            completed_tasks=tasks_by_status[TaskStatus.COMPLETED.value],
            failed_tasks=tasks_by_status[TaskStatus.FAILED.value],
            throughput_per_minute=tasks_by_status[TaskStatus.COMPLETED.value] / uptime_minutes,
            average_completion_time=total_time / completed if completed else 0.0,
            agent_workloads={state.id: state.workload for state in agents},
            generated_at=now,
            event_bus=self._event_bus.get_stats(),
        )

    # Internals

    def _task(self, task_id: str) -> Task:
        try:
            return self._tasks[task_id]
        except KeyError:
            raise KeyError(f"Unknown task: {task_id}") from None

    def _forget(self, task_id: str) -> None:
        self._tasks.pop(task_id, None)
        self._submission_order.pop(task_id, None)
        self._correlations.pop(task_id, None)
        if task_id in self._queue:
            self._queue.remove(task_id)

    def _queue_key(self, task_id: str) -> tuple[int, int]:
        return (-self._tasks[task_id].priority.rank, self._submission_order[task_id])

    def _blocking_dependency(self, task: Task) -> tuple[str | None, bool]:
        """First unfinished dependency and whether it can never complete."""
        for dep_id in task.dependencies:
            dep = self._tasks.get(dep_id)
            if dep is None:
                return dep_id, False
            if dep.status in (TaskStatus.FAILED, TaskStatus.CANCELLED):
                return dep_id, True
            if dep.status is not TaskStatus.COMPLETED:
                return dep_id, False
        return None, False

    def _find_agent(self, task: Task) -> str | None:
        """First idle agent, by registration order, covering the requirements."""
        requirements = task.requirements
        for agent_id in self._registry.idle_ids():
            if requirements <= self._registry.capabilities(agent_id):
                return agent_id
        return None

    async def _dispatch_pending(self) -> None:
        """Assign queued tasks to idle agents, highest priority and oldest first."""
        for task_id in self.pending_task_ids():
            task = self._tasks.get(task_id)
            # Handlers of events published below may have changed the queue
            if task is None or task.status is not TaskStatus.PENDING or task_id not in self._queue:
                continue

            dep_id, dead = self._blocking_dependency(task)
            if dead:
                await self._fail_pending(task, f"Dependency {dep_id} did not complete")
                continue
            if dep_id is not None:
                continue

            agent_id = self._find_agent(task)
            if agent_id is None:
                logger.debug("No idle agent can take task %s yet", task_id)
                continue
            await self._assign(task, agent_id)

    async def _assign(self, task: Task, agent_id: str) -> None:
        self._queue.remove(task.id)
        task.assigned_agent = agent_id
        task.transition(TaskStatus.ASSIGNED)
        self._registry.start_task(agent_id, task.id, task.complexity * WORKLOAD_PER_COMPLEXITY)
        logger.info("Task %s assigned to %s", task.id, agent_id)

        correlation_id = self._correlations[task.id]
        try:
            await self._event_bus.publish(
                EventFactory.task_assigned(task, agent_id, SOURCE, correlation_id)
            )
            await self._event_bus.publish(
                EventFactory.agent_busy(self._registry.snapshot(agent_id), SOURCE)
            )
        finally:
            # Started after TASK_ASSIGNED so the chain stays in order
            run = asyncio.create_task(self._run(task.id, agent_id))
            self._runs[task.id] = run
            run.add_done_callback(lambda _t, tid=task.id: self._runs.pop(tid, None))

    async def _fail_pending(self, task: Task, reason: str) -> None:
        self._queue.remove(task.id)
        task.transition(TaskStatus.FAILED)
        logger.warning("Task %s failed before assignment: %s", task.id, reason)
        await self._event_bus.publish(
            EventFactory.task_failed(task, reason, SOURCE, self._correlations[task.id])
        )
        # Tasks depending on this one may now be decided as well
        await self._dispatch_pending()

    async def _run(self, task_id: str, agent_id: str) -> None:
        """Invoke the agent, then free it and look for more work."""
        loop = asyncio.get_running_loop()
        started = loop.time()
        try:
            await self._execute(task_id, agent_id, started)
        except asyncio.CancelledError:
            raise
        except Exception as e:
            logger.error("Error while running task %s: %s", task_id, e, exc_info=True)
        finally:
            idle = False
            task = self._tasks.get(task_id)
            if agent_id in self._registry:
                idle = self._registry.finish_task(
                    agent_id,
                    task_id,
                    task.status if task is not None else TaskStatus.CANCELLED,
                    loop.time() - started,
                )

        if idle:
            await self._agent_idle(agent_id)

    async def _execute(self, task_id: str, agent_id: str, started: float) -> None:
        task = self._tasks.get(task_id)
        if task is None or task.status is TaskStatus.CANCELLED:
            return
        correlation_id = self._correlations[task_id]

        task.transition(TaskStatus.IN_PROGRESS)
        result, error = None, None
        try:
            await self._event_bus.publish(
                EventFactory.task_started(task, agent_id, SOURCE, correlation_id)
            )
            result = await self._registry.handle(agent_id).process(copy.deepcopy(task))
        except asyncio.CancelledError:
            raise
        except Exception as e:
            error = str(e) or type(e).__name__
            logger.warning("Agent %s failed task %s: %s", agent_id, task_id, error)

        if task.status is TaskStatus.CANCELLED:
            logger.info("Discarding result of cancelled task %s", task_id)
            return

        duration = asyncio.get_running_loop().time() - started
        if error is None:
            # The task only counts as completed once TASK_COMPLETED is recorded
            self._finishing.add(task_id)
            try:
                await self._event_bus.publish(
                    EventFactory.task_completed(task, result, duration, SOURCE, correlation_id)
                )
            except StoreError as e:
                error = f"Result could not be recorded: {e}"
                logger.warning("Task %s result from %s rejected: %s", task_id, agent_id, e)
            else:
                task.transition(TaskStatus.COMPLETED)
                logger.info("Task %s completed by %s in %.3fs", task_id, agent_id, duration)
                return
            finally:
                self._finishing.discard(task_id)

        task.transition(TaskStatus.FAILED)
        await self._event_bus.publish(EventFactory.task_failed(task, error, SOURCE, correlation_id))

    async def _agent_idle(self, agent_id: str) -> None:
        try:
            await self._event_bus.publish(
                EventFactory.agent_available(self._registry.snapshot(agent_id), SOURCE)
            )
            await self._dispatch_pending()
        except Exception as e:
            logger.error("Failed to reschedule after %s went idle: %s", agent_id, e, exc_info=True)

    async def _on_agent_available(self, event: Event) -> None:
        """An agent outside this manager reported itself available."""
        agent_id = event.payload.agent_id
        if agent_id not in self._registry:
            return
        if not self._registry.snapshot(agent_id).current_tasks:
            self._registry.set_status(agent_id, AgentStatus.IDLE)
            await self._dispatch_pending()

    async def _cancel_runs(self) -> None:
        runs = list(self._runs.values())
        for run in runs:
            run.cancel()
        if runs:
            await asyncio.gather(*runs, return_exceptions=True)

    async def _stats_timer(self) -> None:
        """Background timer publishing PERFORMANCE_METRIC every stats_interval."""
        while self._running:
            try:
                await asyncio.sleep(self._stats_interval)
                stats = self.get_system_stats()
                await self._event_bus.publish(
                    EventFactory.performance_metric(SOURCE, stats.to_metrics(), source=SOURCE)
                )
            except asyncio.CancelledError:
                break
            except Exception as e:
                logger.error("Stats timer error: %s", e, exc_info=True)
