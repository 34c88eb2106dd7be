"""Echo agent: the built-in worker used to exercise task flow end to end."""

import asyncio
from collections.abc import Collection
from typing import Any

from ..logging_config import get_logger
from ..models import AgentStatus, Task

logger = get_logger(__name__)


class EchoAgent:
    """Minimal agent that answers every task with its own description.

    Satisfies both IAgent (role + capabilities) and ISwarmAgent (specialties),
    so one instance can be registered with the manager or the coordinator.
    """

    def __init__(
        self,
        agent_id: str,
        capabilities: Collection[str] = (),
        role: str = "echo",
        delay: float = 0.0,
    ):
        self._agent_id = agent_id
        self._role = role
        self._capabilities = frozenset(capabilities)
        self._delay = delay
        self._status = AgentStatus.IDLE

    @property
    def agent_id(self) -> str:
        return self._agent_id

    @property
    def role(self) -> str:
        return self._role

    @property
    def capabilities(self) -> frozenset[str]:
        return self._capabilities

    @property
    def specialties(self) -> frozenset[str]:
        return self._capabilities

    def status(self) -> AgentStatus:
        return self._status

    async def process(self, task: Task) -> dict[str, Any]:
        """Echo the task back after the configured delay."""
        self._status = AgentStatus.WORKING
        logger.info("EchoAgent %s started task %s", self._agent_id, task.id)
        try:
            if self._delay > 0:
                await asyncio.sleep(self._delay)
            output = f"Echo: {task.title}"
            if task.description:
                output += f" - {task.description}"
        finally:
            self._status = AgentStatus.IDLE

        logger.info("EchoAgent %s completed task %s", self._agent_id, task.id)
        return {"agent_id": self._agent_id, "task_id": task.id, "output": output}
