"""SwarmCore: event-driven multi-agent coordination core."""

from .app import Application
from .config import EventBusConfig
from .errors import (
    DeliveryError,
    ExhaustedRetriesError,
    StoreError,
    SwarmCoreError,
    ValidationError,
)
from .event_bus import EventBus
from .event_factory import EventFactory
from .event_store import InMemoryEventStore, SqliteEventStore
from .manager import AgentEventManager
from .swarm import SwarmCoordinator, SwarmResult

__version__ = "0.1.0"

__all__ = [
    "AgentEventManager",
    "Application",
    "DeliveryError",
    "EventBus",
    "EventBusConfig",
    "EventFactory",
    "ExhaustedRetriesError",
    "InMemoryEventStore",
    "SqliteEventStore",
    "StoreError",
    "SwarmCoordinator",
    "SwarmCoreError",
    "SwarmResult",
    "ValidationError",
]
