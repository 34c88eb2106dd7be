"""Event store interface and in-memory implementation."""

import copy
from collections.abc import AsyncIterator, Callable, Iterable
from datetime import datetime
from typing import Any, Protocol

from ..errors import StoreError
from ..logging_config import get_logger
from ..models import AgentEventType, Event, EventFilter, as_utc

logger = get_logger(__name__)


class EventStream:
    """Lazy, finite, restartable sequence of events.

    Every ``async for`` re-runs the underlying query from the start.
    """

    def __init__(self, source: Callable[[], AsyncIterator[Event]]):
        self._source = source

    def __aiter__(self) -> AsyncIterator[Event]:
        return self._source()

    async def to_list(self) -> list[Event]:
        """Materialize the whole sequence."""
        return [event async for event in self]


class IEventStore(Protocol):
    """Append-only durable log of events."""

    async def init(self) -> None:
        """Prepare the backing medium."""
        ...

    async def close(self) -> None:
        """Release the backing medium."""
        ...

    async def append(self, event: Event) -> None:
        """Persist one event. Raises StoreError if the write is rejected."""
        ...

    def get_events(self, event_filter: EventFilter | None = None) -> EventStream:
        """Events matching the filter, timestamp ascending, ties by insertion order."""
        ...

    async def get_event_by_id(self, event_id: str) -> Event | None:
        """Get an event by id, or None."""
        ...

    async def get_events_by_correlation_id(self, correlation_id: str) -> list[Event]:
        """All causally related events in timestamp order."""
        ...

    async def delete_events(self, older_than: datetime) -> int:
        """Remove events strictly before the cutoff; return how many."""
        ...

    async def get_stats(self) -> dict[str, Any]:
        """Totals by type and source, oldest and newest timestamps."""
        ...

    async def clear(self) -> None:
        """Remove all events."""
        ...


class InMemoryEventStore:
    """Event store kept in process memory, indexed by type/source/target/correlation.

    Events are copied on the way in and on the way out, so neither the
    publisher nor a reader can alter stored history.
    """

    def __init__(self) -> None:
        self._events: dict[str, Event] = {}
        self._seq: dict[str, int] = {}
        self._next_seq = 0
        self._by_type: dict[AgentEventType, set[str]] = {}
        self._by_source: dict[str, set[str]] = {}
        self._by_target: dict[str, set[str]] = {}
        self._by_correlation: dict[str, set[str]] = {}

    async def init(self) -> None:
        return

    async def close(self) -> None:
        return

    async def append(self, event: Event) -> None:
        if not isinstance(event, Event):
            raise StoreError(f"Cannot store {type(event).__name__}, expected Event")
        if event.id in self._events:
            raise StoreError(f"Event {event.id} already stored")

        event = copy.deepcopy(event)
        self._events[event.id] = event
        self._seq[event.id] = self._next_seq
        self._next_seq += 1
        self._index(event)
        logger.debug("Event stored: %s %s", event.type.value, event.id)

    def get_events(self, event_filter: EventFilter | None = None) -> EventStream:
        event_filter = event_filter or EventFilter()

        async def iterate() -> AsyncIterator[Event]:
            matched = [
                self._events[event_id]
                for event_id in self._candidates(event_filter)
                if event_filter.matches(self._events[event_id])
            ]
            matched.sort(key=self._order_key)
            end = None if event_filter.limit is None else event_filter.offset + event_filter.limit
            for event in matched[event_filter.offset:end]:
                yield copy.deepcopy(event)

        return EventStream(iterate)

    async def get_event_by_id(self, event_id: str) -> Event | None:
        event = self._events.get(event_id)
        return copy.deepcopy(event) if event is not None else None

    async def get_events_by_correlation_id(self, correlation_id: str) -> list[Event]:
        ids = self._by_correlation.get(correlation_id, set())
        events = sorted((self._events[event_id] for event_id in ids), key=self._order_key)
        return copy.deepcopy(events)

    async def delete_events(self, older_than: datetime) -> int:
        older_than = as_utc(older_than)
        expired = [event for event in self._events.values() if event.timestamp < older_than]
        for event in expired:
            self._unindex(event)
            del self._events[event.id]
            del self._seq[event.id]

        logger.info("Deleted %s events older than %s", len(expired), older_than.isoformat())
        return len(expired)

    async def get_stats(self) -> dict[str, Any]:
        events_by_type: dict[str, int] = {}
        events_by_source: dict[str, int] = {}
        for event in self._events.values():
            events_by_type[event.type.value] = events_by_type.get(event.type.value, 0) + 1
            events_by_source[event.source] = events_by_source.get(event.source, 0) + 1

        timestamps = [event.timestamp for event in self._events.values()]
        return {
            "total_events": len(self._events),
            "events_by_type": events_by_type,
            "events_by_source": events_by_source,
            "oldest_event": min(timestamps) if timestamps else None,
            "newest_event": max(timestamps) if timestamps else None,
        }

    async def clear(self) -> None:
        self._events.clear()
        self._seq.clear()
        for index in (self._by_type, self._by_source, self._by_target, self._by_correlation):
            index.clear()
        logger.info("Event store cleared")

    def _order_key(self, event: Event) -> tuple[datetime, int]:
        return event.timestamp, self._seq[event.id]

    def _candidates(self, event_filter: EventFilter) -> Iterable[str]:
        """Narrow the scan using the most selective available index."""
        if event_filter.correlation_id is not None:
            return set(self._by_correlation.get(event_filter.correlation_id, ()))
        if event_filter.event_types:
            ids: set[str] = set()
            for event_type in event_filter.event_types:
                ids |= self._by_type.get(event_type, set())
            return ids
        if event_filter.source is not None:
            return set(self._by_source.get(event_filter.source, ()))
        if event_filter.target is not None:
            return set(self._by_target.get(event_filter.target, ()))
        return list(self._events)

    def _index(self, event: Event) -> None:
        self._by_type.setdefault(event.type, set()).add(event.id)
        self._by_source.setdefault(event.source, set()).add(event.id)
        if event.target is not None:
            self._by_target.setdefault(event.target, set()).add(event.id)
        self._by_correlation.setdefault(event.correlation_id, set()).add(event.id)

    def _unindex(self, event: Event) -> None:
        for index, key in (
            (self._by_type, event.type),
            (self._by_source, event.source),
            (self._by_target, event.target),
            (self._by_correlation, event.correlation_id),
        ):
            ids = index.get(key)
            if ids is None:
                continue
            ids.discard(event.id)
            if not ids:
                del index[key]
