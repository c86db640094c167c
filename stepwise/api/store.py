"""
Task store collaborator.

The pipeline never persists anything; the HTTP layer hands accepted
breakdowns to a ``TaskStore`` after the pipeline returns. The in-memory
implementation backs the API and tests.
"""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Protocol
from uuid import uuid4

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from stepwise.decomposition.models import Step, approve_steps


class StoredTask(BaseModel):
    """A task with its persisted step tree."""

    model_config = ConfigDict(populate_by_name=True, alias_generator=to_camel)

    id: str = Field(default_factory=lambda: str(uuid4()))
    title: str = Field(..., min_length=1)
    description: str | None = None
    steps: list[Step] = Field(default_factory=list)
    created_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    updated_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))

    def find_step(self, step_id: str) -> Step | None:
        for root in self.steps:
            for node in root.iter_tree():
                if node.id == step_id:
                    return node
        return None

    def step_titles(self) -> list[str]:
        return [s.title for s in self.steps]


class TaskStore(Protocol):
    """Persistence contract consumed by the HTTP layer."""

    async def create(self, title: str, description: str | None = None) -> StoredTask: ...

    async def get(self, task_id: str) -> StoredTask | None: ...

    async def save_steps(self, task_id: str, steps: list[Step]) -> StoredTask | None: ...

    async def approve(self, task_id: str) -> StoredTask | None: ...

    async def replace_step(self, task_id: str, step: Step) -> StoredTask | None: ...


class InMemoryTaskStore:
    """Dictionary-backed ``TaskStore``."""

    def __init__(self) -> None:
        self._tasks: dict[str, StoredTask] = {}

    async def create(self, title: str, description: str | None = None) -> StoredTask:
        task = StoredTask(title=title, description=description)
        self._tasks[task.id] = task
        return task

    async def get(self, task_id: str) -> StoredTask | None:
        return self._tasks.get(task_id)

    async def save_steps(self, task_id: str, steps: list[Step]) -> StoredTask | None:
        """Append draft steps after the existing ones, continuing the order."""
        task = self._tasks.get(task_id)
        if task is None:
            return None
        offset = len(task.steps)
        for position, step in enumerate(steps):
            step.order = offset + position
        task.steps.extend(steps)
        task.updated_at = datetime.now(timezone.utc)
        return task

    async def approve(self, task_id: str) -> StoredTask | None:
        task = self._tasks.get(task_id)
        if task is None:
            return None
        task.steps = approve_steps(task.steps)
        task.updated_at = datetime.now(timezone.utc)
        return task

    async def replace_step(self, task_id: str, step: Step) -> StoredTask | None:
        """Swap the node with ``step.id`` anywhere in the tree."""
        task = self._tasks.get(task_id)
        if task is None:
            return None
        if not _replace(task.steps, step):
            return None
        task.updated_at = datetime.now(timezone.utc)
        return task


def _replace(steps: list[Step], replacement: Step) -> bool:
    for index, step in enumerate(steps):
        if step.id == replacement.id:
            steps[index] = replacement
            return True
        if _replace(step.children, replacement):
            return True
    return False
