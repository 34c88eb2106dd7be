"""Observability API routes."""

from datetime import datetime
from typing import Any

from fastapi import APIRouter, HTTPException, Query
from pydantic import BaseModel

from ...app import Application
from ...models import AgentEventType, Event, EventFilter, as_utc


class EventResponse(BaseModel):
    """Response model for a stored event."""

    id: str
    type: str
    source: str
    target: str | None
    timestamp: datetime
    correlation_id: str
    version: int
    payload: dict[str, Any]
    metadata: dict[str, Any] | None


def _event_response(event: Event) -> dict:
    return {
        "id": event.id,
        "type": event.type.value,
        "source": event.source,
        "target": event.target,
        "timestamp": event.timestamp,
        "correlation_id": event.correlation_id,
        "version": event.version,
        "payload": event.payload.model_dump(mode="json"),
        "metadata": event.metadata,
    }


def _parse_timestamp(value: str | None, name: str) -> datetime | None:
    if not value:
        return None
    try:
        parsed = datetime.fromisoformat(value)
    except ValueError:
        raise HTTPException(status_code=400, detail=f"Invalid {name} timestamp format")
    return as_utc(parsed)


def create_observability_router(app: Application) -> APIRouter:
    """Create observability router."""
    router = APIRouter(prefix="/api", tags=["observability"])

    @router.get("/events", response_model=list[EventResponse])
    async def get_events(
        event_type: list[str] | None = Query(None, description="Filter by event type"),
        source: str | None = Query(None, description="Filter by source"),
        target: str | None = Query(None, description="Filter by target"),
        correlation_id: str | None = Query(None, description="Filter by correlation id"),
        after: str | None = Query(None, description="ISO timestamp, inclusive"),
        before: str | None = Query(None, description="ISO timestamp, inclusive"),
        limit: int = Query(100, ge=1, le=1000),
        offset: int = Query(0, ge=0),
    ) -> list[dict]:
        """Get stored events, oldest first."""
        try:
            try:
                event_types = [AgentEventType(t) for t in event_type] if event_type else None
            except ValueError as e:
                raise HTTPException(status_code=400, detail=str(e))

            events = await app.event_bus.get_events(
                EventFilter(
                    event_types=event_types,
                    source=source,
                    target=target,
                    correlation_id=correlation_id,
                    from_timestamp=_parse_timestamp(after, "after"),
                    to_timestamp=_parse_timestamp(before, "before"),
                    limit=limit,
                    offset=offset,
                )
            )
            return [_event_response(e) for e in events]

        except HTTPException:
            raise
        except Exception as e:
            raise HTTPException(status_code=500, detail=str(e))

    @router.get("/events/{event_id}", response_model=EventResponse)
    async def get_event(event_id: str) -> dict:
        """Get one event by id."""
        try:
            event = await app.event_bus.get_event_by_id(event_id)
        except Exception as e:
            raise HTTPException(status_code=500, detail=str(e))
        if event is None:
            raise HTTPException(status_code=404, detail="Event not found")
        return _event_response(event)

    @router.get("/correlations/{correlation_id}/events", response_model=list[EventResponse])
    async def get_correlation_events(correlation_id: str) -> list[dict]:
        """Causal chain for one correlation id."""
        try:
            events = await app.event_bus.get_events_by_correlation_id(correlation_id)
            return [_event_response(e) for e in events]
        except Exception as e:
            raise HTTPException(status_code=500, detail=str(e))

    @router.get("/stats")
    async def get_stats() -> dict:
        """System, event store and swarm statistics."""
        try:
            store_stats = await app.event_store.get_stats()
            return {
                "system": app.manager.get_system_stats().to_dict(),
                "event_store": {
                    **store_stats,
                    "oldest_event": (
                        store_stats["oldest_event"].isoformat()
                        if store_stats["oldest_event"]
                        else None
                    ),
                    "newest_event": (
                        store_stats["newest_event"].isoformat()
                        if store_stats["newest_event"]
                        else None
                    ),
                },
                "swarm": vars(app.coordinator.get_metrics()),
            }
        except Exception as e:
            raise HTTPException(status_code=500, detail=str(e))

    return router
