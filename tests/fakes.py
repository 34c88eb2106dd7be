"""Test agents and helpers."""

import asyncio

from swarmcore.models import AgentStatus


async def wait_for(predicate, timeout=2.0):
    """Yield to the loop until predicate() holds."""
    loop = asyncio.get_running_loop()
    deadline = loop.time() + timeout
    while not predicate():
        if loop.time() > deadline:
            raise AssertionError("condition not reached in time")
        await asyncio.sleep(0.001)


class GatedAgent:
    """Agent whose tasks finish only when the test releases them."""

    def __init__(self, agent_id, capabilities=(), role="worker", fail=()):
        self.agent_id = agent_id
        self.role = role
        self.capabilities = frozenset(capabilities)
        self.specialties = self.capabilities
        self.processed = []
        self.fail = set(fail)
        self._gates = {}
        self._open = False

    def _gate(self, task_id):
        return self._gates.setdefault(task_id, asyncio.Event())

    def release(self, task_id):
        self._gate(task_id).set()

    def open(self):
        """Release every current and future task."""
        self._open = True
        for gate in self._gates.values():
            gate.set()

    def status(self):
        return AgentStatus.IDLE

    async def process(self, task):
        self.processed.append(task.id)
        gate = self._gate(task.id)
        if self._open:
            gate.set()
        await gate.wait()
        if task.id in self.fail:
            raise RuntimeError(f"{self.agent_id} failed {task.id}")
        return f"done:{task.id}"


class FailingAgent:
    """Agent that always raises."""

    def __init__(self, agent_id, capabilities=(), role="worker", message="agent crashed"):
        self.agent_id = agent_id
        self.role = role
        self.capabilities = frozenset(capabilities)
        self.specialties = self.capabilities
        self.message = message
        self.calls = 0

    def status(self):
        return AgentStatus.IDLE

    async def process(self, task):
        self.calls += 1
        raise RuntimeError(self.message)
