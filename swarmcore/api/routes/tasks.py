"""Task API routes."""

import uuid
from datetime import datetime

from fastapi import APIRouter, HTTPException
from pydantic import BaseModel, Field

from ...app import Application
from ...errors import ValidationError
from ...models import Task, TaskMetadata, TaskPriority, TaskStatus


class TaskCreateRequest(BaseModel):
    """Request model for submitting a task."""

    title: str
    description: str = ""
    id: str | None = None
    priority: TaskPriority = TaskPriority.MEDIUM
    complexity: int = 1
    dependencies: list[str] = Field(default_factory=list)
    requirements: list[str] = Field(default_factory=list)
    constraints: list[str] = Field(default_factory=list)
    estimated_duration: float | None = None


class TaskResponse(BaseModel):
    """Response model for a task."""

    id: str
    title: str
    description: str
    status: TaskStatus
    priority: TaskPriority
    complexity: int
    dependencies: list[str]
    requirements: list[str]
    assigned_agent: str | None
    correlation_id: str | None
    created_at: datetime
    updated_at: datetime
    completed_at: datetime | None


class CancelResponse(BaseModel):
    """Response model for cancellation."""

    task_id: str
    cancelled: bool


def _task_response(app: Application, task: Task) -> dict:
    return {
        "id": task.id,
        "title": task.title,
        "description": task.description,
        "status": task.status,
        "priority": task.priority,
        "complexity": task.complexity,
        "dependencies": task.dependencies,
        "requirements": task.metadata.requirements,
        "assigned_agent": task.assigned_agent,
        "correlation_id": app.manager.get_correlation_id(task.id),
        "created_at": task.created_at,
        "updated_at": task.updated_at,
        "completed_at": task.completed_at,
    }


def create_tasks_router(app: Application) -> APIRouter:
    """Create tasks router."""
    router = APIRouter(prefix="/api/tasks", tags=["tasks"])

    @router.post("", response_model=TaskResponse, status_code=201)
    async def submit_task(request: TaskCreateRequest) -> dict:
        """Submit a task to the agent manager."""
        task = Task(
            id=request.id or f"task_{uuid.uuid4().hex[:12]}",
            title=request.title,
            description=request.description,
            priority=request.priority,
            complexity=request.complexity,
            dependencies=request.dependencies,
            metadata=TaskMetadata(
                requirements=request.requirements,
                constraints=request.constraints,
                estimated_duration=request.estimated_duration,
            ),
        )
        try:
            task_id = await app.manager.submit_task(task)
            return _task_response(app, app.manager.get_task(task_id))
        except ValidationError as e:
            raise HTTPException(status_code=400, detail={"message": str(e), "errors": e.errors})
        except Exception as e:
            raise HTTPException(status_code=500, detail=str(e))

    @router.get("", response_model=list[TaskResponse])
    async def list_tasks(status: TaskStatus | None = None) -> list[dict]:
        """List submitted tasks, optionally by status."""
        return [_task_response(app, task) for task in app.manager.get_tasks(status)]

    @router.get("/{task_id}", response_model=TaskResponse)
    async def get_task(task_id: str) -> dict:
        """Get one task by id."""
        task = app.manager.get_task(task_id)
        if task is None:
            raise HTTPException(status_code=404, detail="Task not found")
        return _task_response(app, task)

    @router.post("/{task_id}/cancel", response_model=CancelResponse)
    async def cancel_task(task_id: str) -> dict:
        """Cancel a task that has not finished."""
        try:
            cancelled = await app.manager.cancel_task(task_id)
            return {"task_id": task_id, "cancelled": cancelled}
        except KeyError:
            raise HTTPException(status_code=404, detail="Task not found")
        except Exception as e:
            raise HTTPException(status_code=500, detail=str(e))

    return router
