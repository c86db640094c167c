"""
Breakdown API Routes.

Stateless endpoints: classify a task, break it down (whole or streamed
as server-sent events) and write encouragement messages. Nothing here
touches the task store.
"""

from __future__ import annotations

import json
from collections.abc import AsyncIterator

from fastapi import APIRouter, Depends, Query
from fastapi.responses import StreamingResponse
from loguru import logger
from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from stepwise.api.deps import get_encouragement_writer, get_pipeline
from stepwise.coach.encouragement import EncouragementWriter, Progress, StepRef
from stepwise.core.pipeline import BreakdownPipeline
from stepwise.decomposition.models import RefinementMode, StreamEvent

router = APIRouter()


# ============================================================================
# Request / Response Models
# ============================================================================


class _CamelModel(BaseModel):
    model_config = ConfigDict(populate_by_name=True, alias_generator=to_camel)


class BreakdownRequest(_CamelModel):
    """Body of ``POST /api/breakdown``."""

    title: str = Field(..., min_length=1, max_length=500)
    description: str | None = Field(default=None, max_length=5000)
    existing_steps: list[str] = Field(default_factory=list)
    mode: RefinementMode = RefinementMode.EAGER


class ClassifyRequest(_CamelModel):
    """Body of ``POST /api/classify``."""

    title: str = Field(..., min_length=1, max_length=500)
    description: str | None = Field(default=None, max_length=5000)


class EncourageRequest(_CamelModel):
    """Body of ``POST /api/encourage``."""

    completed_step: StepRef
    next_step: StepRef | None = None
    completed_count: int = Field(..., ge=0)
    total_count: int = Field(..., ge=0)


class EncourageResponse(BaseModel):
    message: str


# ============================================================================
# Routes
# ============================================================================


@router.post("/breakdown")
async def create_breakdown(
    body: BreakdownRequest,
    pipeline: BreakdownPipeline = Depends(get_pipeline),
) -> dict:
    """
    Break a task down into a draft step tree.

    Args:
        body: Task title, description, existing step titles and mode.

    Returns:
        The breakdown result with camelCase keys.
    """
    result = await pipeline.breakdown(
        body.title,
        description=body.description,
        existing_steps=body.existing_steps or None,
        mode=body.mode,
    )
    return result.to_dict()


@router.get("/breakdown/stream")
async def stream_breakdown(
    title: str = Query(..., min_length=1, max_length=500),
    description: str | None = Query(None, max_length=5000),
    mode: RefinementMode = Query(RefinementMode.EAGER),
    pipeline: BreakdownPipeline = Depends(get_pipeline),
) -> StreamingResponse:
    """
    Stream a breakdown as server-sent events.

    Each event is ``data: {json}`` where the JSON carries a ``type`` of
    ``chunk``, ``subtask``, ``complete`` or ``error``.
    """

    async def event_generator() -> AsyncIterator[str]:
        try:
            async for event in pipeline.stream_breakdown(title, description=description, mode=mode):
                yield _sse(event)
        except Exception as e:
            logger.exception(f"Breakdown stream crashed: {e}")
            yield _sse(StreamEvent.error("Breakdown stream failed"))

    return StreamingResponse(
        event_generator(),
        media_type="text/event-stream",
        headers={
            "Cache-Control": "no-cache",
            "X-Accel-Buffering": "no",
        },
    )


@router.post("/classify")
async def classify_task(
    body: ClassifyRequest,
    pipeline: BreakdownPipeline = Depends(get_pipeline),
) -> dict:
    """Estimate the size of a task without breaking it down."""
    estimate = await pipeline.classify(body.title, body.description)
    return estimate.model_dump(mode="json", by_alias=True)


@router.post("/encourage", response_model=EncourageResponse)
async def encourage(
    body: EncourageRequest,
    writer: EncouragementWriter = Depends(get_encouragement_writer),
) -> EncourageResponse:
    """Write a short message for the step that was just completed."""
    message = await writer.encourage(
        body.completed_step,
        body.next_step,
        Progress(completed=body.completed_count, total=body.total_count),
    )
    return EncourageResponse(message=message)


def _sse(event: StreamEvent) -> str:
    return f"data: {json.dumps(event.to_message(), ensure_ascii=False)}\n\n"
