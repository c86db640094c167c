"""
Shared FastAPI dependencies.

Routes receive the pipeline, the task store and the notifier through
``Depends`` so tests can swap them with ``app.dependency_overrides``.
"""

from __future__ import annotations

from functools import lru_cache

from stepwise.api.store import InMemoryTaskStore, TaskStore
from stepwise.api.websocket import ConnectionManager, ws_manager
from stepwise.coach.encouragement import EncouragementWriter
from stepwise.core.pipeline import BreakdownPipeline


@lru_cache
def get_pipeline() -> BreakdownPipeline:
    """Process-wide pipeline built from the cached settings."""
    return BreakdownPipeline()


def get_encouragement_writer() -> EncouragementWriter:
    pipeline = get_pipeline()
    return EncouragementWriter(pipeline.client, pipeline.settings)


_store = InMemoryTaskStore()


def get_store() -> TaskStore:
    return _store


def get_notifier() -> ConnectionManager:
    return ws_manager
