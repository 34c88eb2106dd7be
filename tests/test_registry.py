"""Tests for AgentRegistry."""

import pytest

from swarmcore.errors import ValidationError
from swarmcore.models import AgentStatus, TaskStatus
from swarmcore.registry import AgentRegistry


@pytest.fixture
def registry():
    reg = AgentRegistry()
    reg.add("a1", "coder", {"python"}, handle=object())
    reg.add("a2", "reviewer", {"python", "review"}, handle=object())
    return reg


class TestAgentRegistryAdd:
    """Tests for registration."""

    def test_add_starts_idle(self, registry):
        """Test initial state."""
        state = registry.snapshot("a1")
        assert state.status is AgentStatus.IDLE
        assert state.workload == 0
        assert state.capabilities == frozenset({"python"})

    def test_registration_order(self, registry):
        """Test ids iterate in registration order."""
        assert list(registry) == ["a1", "a2"]
        assert registry.order("a1") < registry.order("a2")
        assert registry.idle_ids() == ["a1", "a2"]

    def test_duplicate_rejected(self, registry):
        """Test that ids are unique."""
        with pytest.raises(ValidationError):
            registry.add("a1", "coder", set(), handle=None)

    def test_invalid_agent_rejected(self, registry):
        """Test that malformed agents are refused with every problem listed."""
        with pytest.raises(ValidationError) as exc_info:
            registry.add("", None, "python", handle=None)
        assert len(exc_info.value.errors) == 3

    def test_unknown_agent(self, registry):
        """Test lookups of unknown ids."""
        assert "zz" not in registry
        with pytest.raises(KeyError):
            registry.snapshot("zz")


class TestAgentRegistrySnapshots:
    """Tests for copy-on-read."""

    def test_snapshot_is_detached(self, registry):
        """Test that mutating a snapshot leaves the registry untouched."""
        state = registry.snapshot("a1")
        state.workload = 99
        state.current_tasks.append("t9")
        state.performance.tasks_completed = 7

        fresh = registry.snapshot("a1")
        assert fresh.workload == 0
        assert fresh.current_tasks == []
        assert fresh.performance.tasks_completed == 0


class TestAgentRegistryTasks:
    """Tests for start_task / finish_task."""

    def test_start_task(self, registry):
        """Test that starting work marks the agent working."""
        registry.start_task("a1", "t1", 30)
        state = registry.snapshot("a1")

        assert state.status is AgentStatus.WORKING
        assert state.workload == 30
        assert state.current_tasks == ["t1"]
        assert registry.idle_ids() == ["a2"]

    def test_workload_clamped(self, registry):
        """Test that workload never exceeds 100."""
        registry.start_task("a1", "t1", 80)
        registry.start_task("a1", "t2", 80)
        assert registry.workload("a1") == 100

    def test_finish_releases_own_charge(self, registry):
        """Test that finishing a task drops what it asked for, not what fit under the cap."""
        registry.start_task("a1", "t1", 80)
        registry.start_task("a1", "t2", 50)
        assert registry.workload("a1") == 100

        registry.finish_task("a1", "t1", TaskStatus.COMPLETED)
        assert registry.workload("a1") == 50
        registry.finish_task("a1", "t2", TaskStatus.COMPLETED)
        assert registry.workload("a1") == 0


    def test_finish_task_updates_performance(self, registry):
        """Test counters and running average."""
        registry.start_task("a1", "t1", 20)
        assert registry.finish_task("a1", "t1", TaskStatus.COMPLETED, 2.0) is True
        registry.start_task("a1", "t2", 20)
        registry.finish_task("a1", "t2", TaskStatus.COMPLETED, 4.0)
        registry.start_task("a1", "t3", 20)
        registry.finish_task("a1", "t3", TaskStatus.FAILED, 1.0)

        perf = registry.snapshot("a1").performance
        assert perf.tasks_completed == 2
        assert perf.tasks_failed == 1
        assert perf.average_completion_time == pytest.approx(3.0)
        assert perf.success_rate == pytest.approx(2 / 3)

    def test_finish_one_of_two_stays_working(self, registry):
        """Test that the agent stays busy while work remains."""
        registry.start_task("a1", "t1", 20)
        registry.start_task("a1", "t2", 20)

        assert registry.finish_task("a1", "t1", TaskStatus.COMPLETED) is False
        assert registry.status("a1") is AgentStatus.WORKING
        assert registry.workload("a1") == 20

    def test_cancelled_outcome_not_counted(self, registry):
        """Test that cancellations do not touch performance."""
        registry.start_task("a1", "t1", 20)
        registry.finish_task("a1", "t1", TaskStatus.CANCELLED)

        perf = registry.snapshot("a1").performance
        assert perf.tasks_completed == perf.tasks_failed == 0
        assert registry.status("a1") is AgentStatus.IDLE

    def test_release(self, registry):
        """Test that release drops in-flight work."""
        registry.start_task("a1", "t1", 50)
        registry.release("a1")

        state = registry.snapshot("a1")
        assert state.status is AgentStatus.IDLE
        assert state.workload == 0
        assert state.current_tasks == []


class TestAgentRegistryCollaboration:
    """Tests for collaboration ratings."""

    def test_running_mean_clamped(self, registry):
        """Test that ratings are averaged and clamped to [0, 1]."""
        registry.record_collaboration("a1", 1.0)
        registry.record_collaboration("a1", 0.5)
        score = registry.record_collaboration("a1", 7)

        assert score == pytest.approx((1.0 + 0.5 + 1.0) / 3)
        assert registry.snapshot("a1").performance.collaborations == 3
