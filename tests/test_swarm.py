"""Tests for SwarmCoordinator."""

import asyncio

import pytest

from fakes import FailingAgent, GatedAgent, wait_for
from swarmcore.agents import EchoAgent
from swarmcore.errors import ValidationError
from swarmcore.models import AgentEventType, AgentStatus, Task, TaskMetadata, TaskStatus
from swarmcore.swarm import SwarmCoordinator


def make_task(task_id, requirements=(), subtasks=(), **fields):
    return Task(
        id=task_id,
        title=f"Task {task_id}",
        subtasks=list(subtasks),
        metadata=TaskMetadata(requirements=list(requirements)),
        **fields,
    )


@pytest.fixture
def feature():
    """A parent task split into frontend, backend and database subtasks."""
    subtasks = {
        "ui": make_task("ui", {"frontend"}),
        "api": make_task("api", {"backend"}),
        "db": make_task("db", {"database"}),
    }
    return make_task("feature", subtasks=subtasks), subtasks


class TestRegisterSwarmAgent:
    """Tests for register_swarm_agent."""

    def test_register(self, coordinator):
        """Test that specialties are recorded."""
        state = coordinator.register_swarm_agent(EchoAgent("s1", {"frontend", "css"}))

        assert state.capabilities == frozenset({"frontend", "css"})
        assert [s.id for s in coordinator.get_swarm_status()] == ["s1"]

    def test_duplicate_rejected(self, coordinator):
        """Test that ids are unique."""
        coordinator.register_swarm_agent(EchoAgent("s1"))
        with pytest.raises(ValidationError):
            coordinator.register_swarm_agent(EchoAgent("s1"))


class TestProcessTask:
    """Tests for process_task."""

    async def test_single_task_best_match(self, coordinator):
        """Test that the most specific overlap wins."""
        coordinator.register_swarm_agent(EchoAgent("generalist", {"python", "go", "rust"}))
        coordinator.register_swarm_agent(EchoAgent("specialist", {"python", "django"}))
        coordinator.register_swarm_agent(EchoAgent("other", {"java"}))

        result = await coordinator.process_task(make_task("t1", {"python", "django"}))

        assert result.status is TaskStatus.COMPLETED
        assert [o.agent_id for o in result.outputs] == ["specialist"]
        assert result.errors == []
        assert result.task.status is TaskStatus.COMPLETED

    async def test_fewer_extraneous_specialties_break_ties(self, coordinator):
        """Test that between equal overlaps the narrower agent wins."""
        coordinator.register_swarm_agent(EchoAgent("broad", {"python", "go", "rust"}))
        coordinator.register_swarm_agent(EchoAgent("narrow", {"python"}))

        result = await coordinator.process_task(make_task("t1", {"python"}))

        assert result.outputs[0].agent_id == "narrow"

    async def test_subtasks_dispatched_to_matching_agents(self, coordinator, feature):
        """Test that each subtask goes to its specialist."""
        task, subtasks = feature
        coordinator.register_swarm_agent(EchoAgent("fe", {"frontend"}))
        coordinator.register_swarm_agent(EchoAgent("be", {"backend"}))
        coordinator.register_swarm_agent(EchoAgent("dba", {"database"}))

        result = await coordinator.process_task(task, subtasks)

        assert result.status is TaskStatus.COMPLETED
        assert {o.task_id: o.agent_id for o in result.outputs} == {
            "ui": "fe",
            "api": "be",
            "db": "dba",
        }
        assert set(result.results) == {"ui", "api", "db"}

    async def test_partial_failure(self, coordinator, feature):
        """Test that one failing agent yields one error and keeps the other outputs."""
        task, subtasks = feature
        coordinator.register_swarm_agent(EchoAgent("fe", {"frontend"}))
        coordinator.register_swarm_agent(FailingAgent("be", {"backend"}, message="500"))
        coordinator.register_swarm_agent(EchoAgent("dba", {"database"}))

        result = await coordinator.process_task(task, subtasks)

        assert result.status is TaskStatus.FAILED
        assert len(result.errors) == 1
        assert result.errors[0].task_id == "api"
        assert result.errors[0].agent_id == "be"
        assert result.errors[0].error == "500"
        assert len(result.outputs) == 2
        assert {o.task_id for o in result.outputs} == {"ui", "db"}

    async def test_subtasks_run_concurrently(self, coordinator):
        """Test that a wave is in flight at the same time."""
        agents = [GatedAgent(f"g{i}", {"work"}) for i in range(3)]
        for agent in agents:
            coordinator.register_swarm_agent(agent)
        subtasks = {f"s{i}": make_task(f"s{i}", {"work"}) for i in range(3)}
        task = make_task("parent", subtasks=subtasks)

        pending = asyncio.create_task(coordinator.process_task(task, subtasks))
        while sum(len(a.processed) for a in agents) < 3:
            await asyncio.sleep(0.001)

        # Load spreads across the pool
        assert [len(a.processed) for a in agents] == [1, 1, 1]
        assert all(s.status is AgentStatus.WORKING for s in coordinator.get_swarm_status())
        for agent in agents:
            agent.open()
        result = await pending
        assert result.status is TaskStatus.COMPLETED

    async def test_dependency_waves(self, coordinator):
        """Test that a subtask waits for its sibling dependency."""
        agent = GatedAgent("g", {"work"})
        agent.open()
        coordinator.register_swarm_agent(agent)
        subtasks = {
            "build": make_task("build", {"work"}),
            "test": make_task("test", {"work"}, dependencies=["build"]),
        }

        result = await coordinator.process_task(make_task("ci", subtasks=subtasks), subtasks)

        assert agent.processed == ["build", "test"]
        assert result.status is TaskStatus.COMPLETED

    async def test_failed_dependency_skips_dependent(self, coordinator):
        """Test that dependents of a failed subtask become errors."""
        coordinator.register_swarm_agent(FailingAgent("f", {"work"}))
        subtasks = {
            "build": make_task("build", {"work"}),
            "test": make_task("test", {"work"}, dependencies=["build"]),
        }

        result = await coordinator.process_task(make_task("ci", subtasks=subtasks), subtasks)

        assert [e.task_id for e in result.errors] == ["build", "test"]
        assert result.errors[1].agent_id is None

    async def test_no_matching_agent(self, coordinator):
        """Test that an unmatched task is an error entry, not an exception."""
        coordinator.register_swarm_agent(EchoAgent("s1", {"python"}))

        result = await coordinator.process_task(make_task("t1", {"cobol"}))

        assert result.status is TaskStatus.FAILED
        assert result.outputs == []
        assert result.errors[0].agent_id is None

    async def test_missing_subtask_object(self, coordinator):
        """Test that listed subtasks without objects become errors."""
        coordinator.register_swarm_agent(EchoAgent("s1"))
        subtasks = {"a": make_task("a")}
        task = make_task("parent", subtasks=["a", "b"])

        result = await coordinator.process_task(task, subtasks)

        assert [o.task_id for o in result.outputs] == ["a"]
        assert [e.task_id for e in result.errors] == ["b"]

    async def test_unfinished_parent_dependency_rejected(self, coordinator):
        """Test that a task cannot start before its dependencies completed."""
        coordinator.register_swarm_agent(EchoAgent("s1"))
        task = make_task("t1", dependencies=["setup"])

        with pytest.raises(ValidationError) as exc_info:
            await coordinator.process_task(task)
        assert exc_info.value.errors == ["dependencies: setup is not completed"]

        result = await coordinator.process_task(task, completed={"setup"})
        assert result.status is TaskStatus.COMPLETED

    async def test_outside_dependency_must_be_completed(self, coordinator):
        """Test that a subtask depending on unfinished outside work is not run."""
        agent = GatedAgent("g", {"work"})
        agent.open()
        coordinator.register_swarm_agent(agent)
        subtasks = {
            "build": make_task("build", {"work"}, dependencies=["design"]),
            "test": make_task("test", {"work"}, dependencies=["build"]),
            "docs": make_task("docs", {"work"}, dependencies=["review"]),
        }
        task = make_task("ci", subtasks=subtasks)

        result = await coordinator.process_task(task, subtasks, completed={"review"})

        assert agent.processed == ["docs"]
        assert [e.task_id for e in result.errors] == ["build", "test"]
        assert result.errors[0].error == "Dependency design is not completed"

    async def test_subtask_key_must_match_id(self, coordinator):
        """Test that subtasks are keyed by their own ids."""
        coordinator.register_swarm_agent(EchoAgent("s1"))
        subtasks = {"a": make_task("b")}

        with pytest.raises(ValidationError):
            await coordinator.process_task(make_task("parent", subtasks=["a"]), subtasks)

    async def test_workload_released_per_subtask(self, coordinator):
        """Test that finishing one of two clamped subtasks leaves the other's load."""
        agent = GatedAgent("g", {"work"})
        coordinator.register_swarm_agent(agent)
        subtasks = {
            "x": make_task("x", {"work"}, complexity=8),
            "y": make_task("y", {"work"}, complexity=5),
        }

        pending = asyncio.create_task(
            coordinator.process_task(make_task("parent", subtasks=subtasks), subtasks)
        )
        await wait_for(lambda: len(agent.processed) == 2)
        assert coordinator.get_swarm_status()[0].workload == 100

        agent.release("x")
        await wait_for(lambda: coordinator.get_swarm_status()[0].current_tasks == ["y"])
        assert coordinator.get_swarm_status()[0].workload == 50

        agent.release("y")
        result = await pending
        assert result.status is TaskStatus.COMPLETED
        assert coordinator.get_swarm_status()[0].workload == 0

    async def test_caller_task_untouched(self, coordinator):
        """Test that the coordinator works on a copy."""
        coordinator.register_swarm_agent(EchoAgent("s1"))
        task = make_task("t1")

        await coordinator.process_task(task)
        assert task.status is TaskStatus.PENDING

    async def test_terminal_task_rejected(self, coordinator):
        """Test that finished tasks cannot be processed again."""
        task = make_task("t1", status=TaskStatus.COMPLETED)
        with pytest.raises(ValidationError):
            await coordinator.process_task(task)


class TestSwarmEventsAndMetrics:
    """Tests for published events and metrics."""

    async def test_publishes_task_events(self, coordinator, recorder):
        """Test that start and outcome events share a correlation id."""
        events = recorder(
            AgentEventType.TASK_STARTED,
            AgentEventType.TASK_COMPLETED,
            AgentEventType.TASK_FAILED,
        )
        coordinator.register_swarm_agent(EchoAgent("s1"))

        await coordinator.process_task(make_task("t1"))

        assert [e.type for e in events] == [
            AgentEventType.TASK_STARTED,
            AgentEventType.TASK_COMPLETED,
        ]
        assert events[0].correlation_id == events[1].correlation_id

    async def test_metrics(self, coordinator, feature):
        """Test totals, success rate and utilization."""
        task, subtasks = feature
        coordinator.register_swarm_agent(EchoAgent("fe", {"frontend"}))
        coordinator.register_swarm_agent(FailingAgent("be", {"backend"}))
        coordinator.register_swarm_agent(EchoAgent("dba", {"database"}))

        await coordinator.process_task(task, subtasks)
        await coordinator.process_task(make_task("solo", {"frontend"}))

        metrics = coordinator.get_metrics()
        assert metrics.total_tasks == 2
        assert metrics.completed_tasks == 1
        assert metrics.failed_tasks == 1
        assert metrics.success_rate == 0.5
        assert metrics.agent_utilization["fe"] == pytest.approx(2 / 4)

        coordinator.reset()
        assert coordinator.get_metrics().total_tasks == 0

    async def test_works_without_event_bus(self):
        """Test a standalone coordinator."""
        coordinator = SwarmCoordinator()
        coordinator.register_swarm_agent(EchoAgent("s1"))

        result = await coordinator.process_task(make_task("t1"))
        assert result.status is TaskStatus.COMPLETED
