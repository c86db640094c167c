"""
Tasks API Routes.

Task-scoped breakdowns: generate draft steps for a stored task, approve
them, and deep-dive into one composite step. Breakdowns are persisted as
drafts and announced to websocket subscribers.
"""

from __future__ import annotations

import asyncio
from datetime import datetime

from fastapi import APIRouter, Depends, HTTPException
from loguru import logger
from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from stepwise.api.deps import get_notifier, get_pipeline, get_store
from stepwise.api.store import StoredTask, TaskStore
from stepwise.api.websocket import ConnectionManager
from stepwise.core.pipeline import BreakdownPipeline
from stepwise.decomposition.models import RefinementMode, Step

router = APIRouter()

# Fire-and-forget notifications; references kept until they finish.
_background_tasks: set[asyncio.Task] = set()


# ============================================================================
# Request / Response Models
# ============================================================================


class _CamelModel(BaseModel):
    model_config = ConfigDict(populate_by_name=True, alias_generator=to_camel)


class TaskCreate(_CamelModel):
    """Body of ``POST /api/tasks``."""

    title: str = Field(..., min_length=1, max_length=500)
    description: str | None = Field(default=None, max_length=5000)


class TaskBreakdownRequest(_CamelModel):
    """Body of ``POST /api/tasks/{task_id}/breakdown``."""

    mode: RefinementMode = RefinementMode.EAGER


class TaskResponse(_CamelModel):
    """Task response model."""

    id: str
    title: str
    description: str | None
    steps: list[Step]
    created_at: datetime
    updated_at: datetime

    @classmethod
    def from_task(cls, task: StoredTask) -> "TaskResponse":
        return cls(
            id=task.id,
            title=task.title,
            description=task.description,
            steps=task.steps,
            created_at=task.created_at,
            updated_at=task.updated_at,
        )


class TaskBreakdownResponse(_CamelModel):
    """Draft steps added to a task."""

    task_id: str
    size: str
    total_minutes: int
    learning_mode: bool
    used_fallback: bool
    steps: list[Step]


# ============================================================================
# Routes
# ============================================================================


@router.post("/", response_model=TaskResponse, response_model_by_alias=True, status_code=201)
async def create_task(
    body: TaskCreate,
    store: TaskStore = Depends(get_store),
) -> TaskResponse:
    """Create an empty task."""
    task = await store.create(body.title, body.description)
    logger.info(f"Created task {task.id}")
    return TaskResponse.from_task(task)


@router.get("/{task_id}", response_model=TaskResponse, response_model_by_alias=True)
async def get_task(
    task_id: str,
    store: TaskStore = Depends(get_store),
) -> TaskResponse:
    """
    Get single task by ID.

    Raises:
        HTTPException: 404 if the task does not exist.
    """
    return TaskResponse.from_task(await _require_task(store, task_id))


@router.post(
    "/{task_id}/breakdown",
    response_model=TaskBreakdownResponse,
    response_model_by_alias=True,
)
async def breakdown_task(
    task_id: str,
    body: TaskBreakdownRequest | None = None,
    store: TaskStore = Depends(get_store),
    pipeline: BreakdownPipeline = Depends(get_pipeline),
    notifier: ConnectionManager = Depends(get_notifier),
) -> TaskBreakdownResponse:
    """
    Break a stored task down and save the result as draft steps.

    Existing step titles are passed along so the new steps do not repeat
    them. Subscribers of the task are told once the drafts are saved.
    """
    task = await _require_task(store, task_id)
    mode = body.mode if body else RefinementMode.EAGER

    result = await pipeline.breakdown(
        task.title,
        description=task.description,
        existing_steps=task.step_titles() or None,
        mode=mode,
    )
    await store.save_steps(task_id, result.steps)

    _fire_and_forget(notifier.notify_breakdown_ready(task_id, len(result.steps), mode.value))

    return TaskBreakdownResponse(
        task_id=task_id,
        size=result.complexity.size.value,
        total_minutes=result.complexity.total_minutes,
        learning_mode=result.learning_mode,
        used_fallback=result.used_fallback,
        steps=result.steps,
    )


@router.post(
    "/{task_id}/approve-breakdown",
    response_model=TaskResponse,
    response_model_by_alias=True,
)
async def approve_breakdown(
    task_id: str,
    store: TaskStore = Depends(get_store),
    notifier: ConnectionManager = Depends(get_notifier),
) -> TaskResponse:
    """Turn every draft step of the task active."""
    task = await store.approve(task_id)
    if task is None:
        raise HTTPException(status_code=404, detail="Task not found")

    _fire_and_forget(notifier.notify_breakdown_approved(task_id))
    return TaskResponse.from_task(task)


@router.post(
    "/{task_id}/steps/{step_id}/deep-dive",
    response_model=Step,
    response_model_by_alias=True,
)
async def deep_dive(
    task_id: str,
    step_id: str,
    store: TaskStore = Depends(get_store),
    pipeline: BreakdownPipeline = Depends(get_pipeline),
) -> Step:
    """
    Expand one step of a task into children, on demand.

    Raises:
        HTTPException: 404 for an unknown task or step, 409 when the step
            already has children.
    """
    task = await _require_task(store, task_id)
    step = task.find_step(step_id)
    if step is None:
        raise HTTPException(status_code=404, detail="Step not found")
    if step.children:
        raise HTTPException(status_code=409, detail="Step already refined")

    refined = await pipeline.refine_step(step, task.title)
    await store.replace_step(task_id, refined)
    return refined


# ============================================================================
# Helpers
# ============================================================================


async def _require_task(store: TaskStore, task_id: str) -> StoredTask:
    task = await store.get(task_id)
    if task is None:
        raise HTTPException(status_code=404, detail="Task not found")
    return task


def _fire_and_forget(coro) -> None:
    task = asyncio.create_task(coro)
    _background_tasks.add(task)
    task.add_done_callback(_on_notification_done)


def _on_notification_done(task: asyncio.Task) -> None:
    _background_tasks.discard(task)
    if not task.cancelled() and task.exception() is not None:
        logger.error(f"Breakdown notification failed: {task.exception()}")
