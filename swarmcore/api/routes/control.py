"""Control API routes."""

from datetime import datetime
from typing import Any

from fastapi import APIRouter, HTTPException
from pydantic import BaseModel

from ...app import Application
from ...errors import ValidationError
from ...models import AgentEventType


class StatusResponse(BaseModel):
    """Response model for status."""

    status: str


class ReplayRequest(BaseModel):
    """Request model for starting a replay."""

    from_timestamp: datetime
    to_timestamp: datetime
    event_types: list[AgentEventType] | None = None


class ReplayResponse(BaseModel):
    """Response model for a replay job."""

    replay_id: str
    from_timestamp: datetime
    to_timestamp: datetime
    event_types: list[str] | None
    status: str
    progress: float
    total_events: int
    processed_events: int
    errors: list[str]


def create_control_router(app: Application) -> APIRouter:
    """Create control router."""
    router = APIRouter(prefix="/api/control", tags=["control"])

    @router.post("/reset", response_model=StatusResponse)
    async def reset_system() -> dict:
        """Reset system data between test runs."""
        try:
            await app.reset()
            return {"status": "ok"}
        except Exception as e:
            raise HTTPException(status_code=500, detail=str(e))

    @router.post("/replay", response_model=ReplayResponse, status_code=202)
    async def start_replay(request: ReplayRequest) -> dict[str, Any]:
        """Re-deliver a stored time slice to current subscribers."""
        try:
            job = app.event_bus.replay(
                request.from_timestamp, request.to_timestamp, request.event_types
            )
            return job.to_dict()
        except ValidationError as e:
            raise HTTPException(status_code=400, detail=str(e))
        except Exception as e:
            raise HTTPException(status_code=500, detail=str(e))

    @router.get("/replay/{replay_id}", response_model=ReplayResponse)
    async def get_replay(replay_id: str) -> dict[str, Any]:
        """Replay job status and progress."""
        job = app.event_bus.get_replay(replay_id)
        if job is None:
            raise HTTPException(status_code=404, detail="Replay not found")
        return job.to_dict()

    return router
