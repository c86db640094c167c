"""
Stepwise API.

FastAPI backend exposing the breakdown pipeline over HTTP, server-sent
events and a websocket for breakdown notifications.
"""

from __future__ import annotations

from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from fastapi import FastAPI, WebSocket, WebSocketDisconnect
from fastapi.middleware.cors import CORSMiddleware
from loguru import logger

from stepwise import __version__
from stepwise.api.websocket import ws_manager
from stepwise.core.config import get_settings
from stepwise.core.logging import configure_logging


@asynccontextmanager
async def lifespan(_app: FastAPI) -> AsyncIterator[None]:
    """
    Startup and shutdown events.

    Yields:
        None during application runtime.
    """
    settings = get_settings()
    configure_logging(settings)
    logger.info("Starting Stepwise API...")
    if not settings.model_configured:
        logger.warning("ANTHROPIC_API_KEY not set; serving template breakdowns only")
    yield
    logger.info("Shutting down Stepwise API...")


app = FastAPI(
    title="Stepwise API",
    description="ADHD-friendly task breakdown API",
    version=__version__,
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# Import and include routers
from stepwise.api.routes import breakdown, tasks  # noqa: E402

app.include_router(breakdown.router, prefix="/api", tags=["breakdown"])
app.include_router(tasks.router, prefix="/api/tasks", tags=["tasks"])


@app.websocket("/ws")
async def websocket_endpoint(websocket: WebSocket) -> None:
    """
    WebSocket endpoint for breakdown notifications.

    Clients subscribe to a task by sending:
    {"action": "subscribe", "task_id": "<id>"}

    Args:
        websocket: The WebSocket connection.
    """
    await ws_manager.connect(websocket)
    try:
        while True:
            data = await websocket.receive_text()
            await ws_manager.handle_message(websocket, data)
    except WebSocketDisconnect:
        ws_manager.disconnect(websocket)


@app.get("/health")
async def health_check() -> dict[str, str | bool]:
    """
    Health check endpoint.

    Returns:
        Health status, version and whether a model is configured.
    """
    return {
        "status": "healthy",
        "version": __version__,
        "modelConfigured": get_settings().model_configured,
    }


@app.get("/api/ws-status")
async def ws_status() -> dict[str, int]:
    """Number of active websocket connections."""
    return {"active_connections": ws_manager.connection_count}
