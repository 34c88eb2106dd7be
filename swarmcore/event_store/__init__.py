"""EventStore module."""

from .event_store import EventStream, IEventStore, InMemoryEventStore
from .sqlite_store import SqliteEventStore

__all__ = ["EventStream", "IEventStore", "InMemoryEventStore", "SqliteEventStore"]
