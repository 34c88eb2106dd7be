"""Pytest configuration and fixtures."""

import sys
from pathlib import Path

import pytest
import pytest_asyncio

# Add parent directory to path
sys.path.insert(0, str(Path(__file__).parent.parent))

from swarmcore.config import EventBusConfig  # noqa: E402


@pytest_asyncio.fixture
async def sqlite_store():
    """Create in-memory SQLite event store for testing."""
    from swarmcore.event_store import SqliteEventStore

    st = SqliteEventStore(":memory:")
    await st.init()
    yield st
    await st.close()


@pytest_asyncio.fixture
async def memory_store():
    """Create process-memory event store for testing."""
    from swarmcore.event_store import InMemoryEventStore

    st = InMemoryEventStore()
    await st.init()
    yield st
    await st.close()


@pytest_asyncio.fixture(params=["memory", "sqlite"])
async def event_store(request):
    """Every event store implementation."""
    from swarmcore.event_store import InMemoryEventStore, SqliteEventStore

    st = InMemoryEventStore() if request.param == "memory" else SqliteEventStore(":memory:")
    await st.init()
    yield st
    await st.close()


@pytest.fixture
def bus_config():
    """Immediate delivery, no backoff delay."""
    return EventBusConfig(max_retries=3, retry_delay=0, batch_size=1, flush_interval=0)


@pytest_asyncio.fixture
async def event_bus(sqlite_store, bus_config):
    """Create EventBus with SQLite persistence."""
    from swarmcore.event_bus import EventBus

    eb = EventBus(sqlite_store, bus_config)
    await eb.start()
    yield eb
    await eb.stop()


@pytest_asyncio.fixture
async def manager(event_bus):
    """Create AgentEventManager without the stats timer."""
    from swarmcore.manager import AgentEventManager

    mgr = AgentEventManager(event_bus)
    await mgr.start()
    yield mgr
    await mgr.stop()


@pytest.fixture
def coordinator(event_bus):
    """Create SwarmCoordinator publishing to the bus."""
    from swarmcore.swarm import SwarmCoordinator

    return SwarmCoordinator(event_bus)


@pytest.fixture
def recorder(event_bus):
    """Subscribe a recording handler to the given event types."""
    from swarmcore.models import AgentEventType

    def subscribe(*event_types):
        seen = []
        for event_type in event_types or list(AgentEventType):
            event_bus.subscribe(event_type, seen.append)
        return seen

    return subscribe
