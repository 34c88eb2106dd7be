"""Swarm Coordinator: specialty-matched task fan-out."""

from .coordinator import (
    ISwarmCoordinator,
    SwarmCoordinator,
    SwarmError,
    SwarmMetrics,
    SwarmOutput,
    SwarmResult,
)

__all__ = [
    "ISwarmCoordinator",
    "SwarmCoordinator",
    "SwarmError",
    "SwarmMetrics",
    "SwarmOutput",
    "SwarmResult",
]
