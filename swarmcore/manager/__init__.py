"""Agent Event Manager: agent registry, task queue and dispatch."""

from .manager import AgentEventManager, IAgentEventManager

__all__ = ["AgentEventManager", "IAgentEventManager"]
