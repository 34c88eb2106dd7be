"""SQLite event store implementation."""

import json
from collections.abc import AsyncIterator
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Any

import aiosqlite

from ..config import resolve_db_path
from ..errors import StoreError
from ..logging_config import get_logger
from ..models import AgentEventType, Event, EventFilter, as_utc, payload_schema
from .event_store import EventStream

logger = get_logger(__name__)

_EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)
_COLUMNS = "id, type, source, target, ts_us, correlation_id, version, payload, metadata"


def _to_micros(ts: datetime) -> int:
    return (as_utc(ts) - _EPOCH) // timedelta(microseconds=1)


def _from_micros(value: int) -> datetime:
    return _EPOCH + timedelta(microseconds=value)


def _row_to_event(row: tuple) -> Event:
    """Rebuild an Event; unreadable rows raise StoreError."""
    try:
        event_type = AgentEventType(row[1])
        payload = payload_schema(event_type).model_validate(json.loads(row[7]))
        return Event(
            id=row[0],
            type=event_type,
            source=row[2],
            target=row[3],
            timestamp=_from_micros(row[4]),
            correlation_id=row[5],
            version=row[6],
            payload=payload,
            metadata=json.loads(row[8]) if row[8] is not None else None,
        )
    except (ValueError, TypeError, KeyError) as e:
        raise StoreError(f"Corrupted event row {row[0]!r}: {e}") from e


class SqliteEventStore:
    """Durable event log on SQLite."""

    def __init__(self, db_path: str | Path | None = None):
        if db_path is None:
            self._db_path = resolve_db_path()
        else:
            self._db_path = resolve_db_path(db_path)
        self._conn: aiosqlite.Connection | None = None

    async def init(self) -> None:
        """Open the database and create tables."""
        if self._db_path != ":memory:":
            Path(self._db_path).parent.mkdir(parents=True, exist_ok=True)

        try:
            self._conn = await aiosqlite.connect(self._db_path)
            schema_path = Path(__file__).parent / "schema.sql"
            with open(schema_path, "r", encoding="utf-8") as f:
                schema_sql = f.read()
            await self._conn.executescript(schema_sql)
            await self._conn.commit()
        except aiosqlite.Error as e:
            raise StoreError(f"Cannot open event store at {self._db_path}: {e}") from e
        logger.info("SQLite event store opened at %s", self._db_path)

    async def close(self) -> None:
        """Close database connection."""
        if self._conn:
            await self._conn.close()
            self._conn = None

    def _connection(self) -> aiosqlite.Connection:
        if not self._conn:
            raise StoreError("Event store not initialized")
        return self._conn

    async def append(self, event: Event) -> None:
        """Persist one event."""
        conn = self._connection()
        try:
            await conn.execute(
                f"INSERT INTO events ({_COLUMNS}) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)",
                (
                    event.id,
                    event.type.value,
                    event.source,
                    event.target,
                    _to_micros(event.timestamp),
                    event.correlation_id,
                    event.version,
                    json.dumps(event.payload.model_dump(mode="json")),
                    json.dumps(event.metadata) if event.metadata is not None else None,
                ),
            )
            await conn.commit()
        except (aiosqlite.Error, TypeError, ValueError) as e:
            raise StoreError(f"Failed to append event {event.id}: {e}") from e

    def get_events(self, event_filter: EventFilter | None = None) -> EventStream:
        """Events matching the filter, oldest first."""
        event_filter = event_filter or EventFilter()

        conditions = []
        params: list[Any] = []

        if event_filter.event_types:
            placeholders = ",".join("?" * len(event_filter.event_types))
            conditions.append(f"type IN ({placeholders})")
            params.extend(t.value for t in event_filter.event_types)
        if event_filter.source is not None:
            conditions.append("source = ?")
            params.append(event_filter.source)
        if event_filter.target is not None:
            conditions.append("target = ?")
            params.append(event_filter.target)
        if event_filter.correlation_id is not None:
            conditions.append("correlation_id = ?")
            params.append(event_filter.correlation_id)
        if event_filter.from_timestamp is not None:
            conditions.append("ts_us >= ?")
            params.append(_to_micros(event_filter.from_timestamp))
        if event_filter.to_timestamp is not None:
            conditions.append("ts_us <= ?")
            params.append(_to_micros(event_filter.to_timestamp))

        where_clause = f"WHERE {' AND '.join(conditions)}" if conditions else ""
        query = f"""
            SELECT {_COLUMNS}
            FROM events
            {where_clause}
            ORDER BY ts_us ASC, seq ASC
            LIMIT ? OFFSET ?
        """
        limit = -1 if event_filter.limit is None else event_filter.limit
        params.extend([limit, event_filter.offset])

        async def iterate() -> AsyncIterator[Event]:
            conn = self._connection()
            try:
                async with conn.execute(query, params) as cursor:
                    async for row in cursor:
                        yield _row_to_event(row)
            except aiosqlite.Error as e:
                raise StoreError(f"Failed to read events: {e}") from e

        return EventStream(iterate)

    async def get_event_by_id(self, event_id: str) -> Event | None:
        """Get an event by id."""
        conn = self._connection()
        try:
            cursor = await conn.execute(
                f"SELECT {_COLUMNS} FROM events WHERE id = ?", (event_id,)
            )
            row = await cursor.fetchone()
        except aiosqlite.Error as e:
            raise StoreError(f"Failed to read event {event_id}: {e}") from e

        if not row:
            return None
        return _row_to_event(row)

    async def get_events_by_correlation_id(self, correlation_id: str) -> list[Event]:
        """Causal chain for one correlation id, oldest first."""
        conn = self._connection()
        try:
            cursor = await conn.execute(
                f"""
                SELECT {_COLUMNS}
                FROM events
                WHERE correlation_id = ?
                ORDER BY ts_us ASC, seq ASC
                """,
                (correlation_id,),
            )
            rows = await cursor.fetchall()
        except aiosqlite.Error as e:
            raise StoreError(f"Failed to read correlation {correlation_id}: {e}") from e

        return [_row_to_event(row) for row in rows]

    async def delete_events(self, older_than: datetime) -> int:
        """Delete events with timestamp strictly before the cutoff."""
        conn = self._connection()
        try:
            cursor = await conn.execute(
                "DELETE FROM events WHERE ts_us < ?", (_to_micros(older_than),)
            )
            await conn.commit()
        except aiosqlite.Error as e:
            raise StoreError(f"Failed to delete events: {e}") from e

        deleted = cursor.rowcount
        logger.info("Deleted %s events older than %s", deleted, older_than.isoformat())
        return deleted

    async def get_stats(self) -> dict[str, Any]:
        """Totals by type and source, oldest and newest timestamps."""
        conn = self._connection()
        try:
            cursor = await conn.execute("SELECT type, COUNT(*) FROM events GROUP BY type")
            by_type = {row[0]: row[1] for row in await cursor.fetchall()}
            cursor = await conn.execute("SELECT source, COUNT(*) FROM events GROUP BY source")
            by_source = {row[0]: row[1] for row in await cursor.fetchall()}
            cursor = await conn.execute("SELECT COUNT(*), MIN(ts_us), MAX(ts_us) FROM events")
            total, oldest, newest = await cursor.fetchone()
        except aiosqlite.Error as e:
            raise StoreError(f"Failed to compute store stats: {e}") from e

        return {
            "total_events": total,
            "events_by_type": by_type,
            "events_by_source": by_source,
            "oldest_event": _from_micros(oldest) if oldest is not None else None,
            "newest_event": _from_micros(newest) if newest is not None else None,
        }

    async def clear(self) -> None:
        """Clear all events."""
        conn = self._connection()
        await conn.execute("DELETE FROM events")
        await conn.commit()
