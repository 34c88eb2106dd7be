"""Agent registry module."""

from .registry import AgentRecord, AgentRegistry

__all__ = ["AgentRecord", "AgentRegistry"]
