"""Application bootstrap and lifecycle management."""

import os
from typing import Protocol

from .agents import EchoAgent
from .config import EventBusConfig, resolve_db_path, stats_interval, store_backend
from .event_bus import EventBus
from .event_factory import EventFactory
from .event_store import IEventStore, InMemoryEventStore, SqliteEventStore
from .logging_config import get_logger
from .manager import AgentEventManager
from .models import AgentEventType
from .swarm import SwarmCoordinator

logger = get_logger(__name__)

SOURCE = "application"


class IApplication(Protocol):
    """Bootstrap and lifecycle."""

    async def start(self) -> None:
        """Initialize components in dependency order."""
        ...

    async def stop(self) -> None:
        """Shutdown in reverse order."""
        ...

    async def reset(self) -> None:
        """Reset data between test runs."""
        ...


class Application:
    """Main application bootstrap."""

    def __init__(
        self,
        db_path: str | None = None,
        backend: str | None = None,
        bus_config: EventBusConfig | None = None,
        stats_interval_seconds: float | None = None,
        default_agents: bool = True,
    ):
        env_db_path = os.getenv("DATABASE_URL") if db_path is None else db_path
        self._db_path = resolve_db_path(env_db_path)
        self._backend = backend or store_backend()
        self._bus_config = bus_config
        self._stats_interval = stats_interval_seconds
        self._default_agents = default_agents

        # Components (initialized in start())
        self._event_store: IEventStore | None = None
        self._event_bus: EventBus | None = None
        self._manager: AgentEventManager | None = None
        self._coordinator: SwarmCoordinator | None = None

    async def start(self) -> None:
        """Initialize components in dependency order."""
        logger.info("Starting application")

        # 1. Event store (no dependencies)
        if self._backend == "memory":
            self._event_store = InMemoryEventStore()
        else:
            self._event_store = SqliteEventStore(self._db_path)
        await self._event_store.init()
        logger.info("Event store initialized (%s)", self._backend)

        # 2. EventBus (depends on the store for persistence)
        self._event_bus = EventBus(
            self._event_store, self._bus_config or EventBusConfig.from_env()
        )
        await self._event_bus.start()

        # 3. AgentEventManager (depends on EventBus)
        interval = stats_interval() if self._stats_interval is None else self._stats_interval
        self._manager = AgentEventManager(self._event_bus, stats_interval=interval)
        await self._manager.start()
        if self._default_agents:
            await self._manager.register_agent(EchoAgent("echo_agent"))

        # 4. SwarmCoordinator (depends on EventBus)
        self._coordinator = SwarmCoordinator(self._event_bus)

        await self._event_bus.publish(
            EventFactory.system_event(
                AgentEventType.SYSTEM_STARTUP,
                {"component": SOURCE, "level": "info", "message": "Application started"},
                SOURCE,
            )
        )
        logger.info("All components initialized successfully")

    async def stop(self) -> None:
        """Shutdown in reverse order."""
        if self._manager:
            await self._manager.stop()
        if self._event_bus:
            await self._event_bus.publish(
                EventFactory.system_event(
                    AgentEventType.SYSTEM_SHUTDOWN,
                    {"component": SOURCE, "level": "info", "message": "Application stopping"},
                    SOURCE,
                )
            )
            await self._event_bus.stop()
        if self._event_store:
            await self._event_store.close()
            logger.info("Event store closed")

    async def reset(self) -> None:
        """Reset data between test runs. Registered agents are kept."""
        # 1. Drop tasks and in-flight agent work
        if self._manager:
            await self._manager.reset()
        if self._coordinator:
            self._coordinator.reset()

        # 2. Deliver what is buffered, then clear the log
        if self._event_bus:
            await self._event_bus.flush()
        if self._event_store:
            await self._event_store.clear()
            logger.info("Event store cleared")
        logger.info("Reset complete")

    @property
    def event_store(self) -> IEventStore:
        """Get event store instance."""
        if not self._event_store:
            raise RuntimeError("Application not started")
        return self._event_store

    @property
    def event_bus(self) -> EventBus:
        """Get event bus instance."""
        if not self._event_bus:
            raise RuntimeError("Application not started")
        return self._event_bus

    @property
    def manager(self) -> AgentEventManager:
        """Get agent event manager instance."""
        if not self._manager:
            raise RuntimeError("Application not started")
        return self._manager

    @property
    def coordinator(self) -> SwarmCoordinator:
        """Get swarm coordinator instance."""
        if not self._coordinator:
            raise RuntimeError("Application not started")
        return self._coordinator
