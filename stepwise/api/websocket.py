"""
WebSocket Connection Manager.

Pushes "breakdown ready" and approval notifications to clients that
subscribed to a task. Notifications are fire-and-forget: a failing
client is dropped, and nothing is reported back to the caller.

Client messages are small JSON objects:

    {"action": "subscribe", "task_id": "..."}
    {"action": "unsubscribe", "task_id": "..."}
    {"action": "ping"}
"""

from __future__ import annotations

import json
from typing import Any, Literal

from fastapi import WebSocket
from loguru import logger
from pydantic import AliasChoices, BaseModel, Field, ValidationError


class ClientMessage(BaseModel):
    """A message sent by a connected client."""

    action: Literal["subscribe", "unsubscribe", "ping"]
    task_id: str | None = Field(
        default=None,
        validation_alias=AliasChoices("task_id", "taskId"),
    )


class ConnectionManager:
    """
    Tracks connected clients and the tasks each one follows.

    ``subscriptions`` maps every open connection to its task ids; a
    connection with no subscriptions is still counted.
    """

    def __init__(self) -> None:
        self.subscriptions: dict[WebSocket, set[str]] = {}

    async def connect(self, websocket: WebSocket) -> None:
        """Accept a connection with no subscriptions yet."""
        await websocket.accept()
        self.subscriptions[websocket] = set()
        logger.info(f"Client connected. Total: {self.connection_count}")

    def disconnect(self, websocket: WebSocket) -> None:
        """Forget a connection and its subscriptions (idempotent)."""
        if self.subscriptions.pop(websocket, None) is not None:
            logger.info(f"Client disconnected. Total: {self.connection_count}")

    async def handle_message(self, websocket: WebSocket, data: str) -> None:
        """
        Apply one client message.

        Unparseable or unknown messages are logged and ignored.

        Args:
            websocket: The WebSocket that sent the message.
            data: The raw message text.
        """
        try:
            message = ClientMessage.model_validate_json(data)
        except ValidationError:
            logger.warning(f"Ignoring WebSocket message: {data[:200]}")
            return

        if message.action == "ping":
            await websocket.send_text(json.dumps({"type": "pong"}))
            return

        task_ids = self.subscriptions.get(websocket)
        if task_ids is None or not message.task_id:
            return

        if message.action == "subscribe":
            task_ids.add(message.task_id)
            logger.debug(f"Client subscribed to task {message.task_id}")
            await websocket.send_text(
                json.dumps({"type": "subscription_confirmed", "task_id": message.task_id})
            )
        else:
            task_ids.discard(message.task_id)
            logger.debug(f"Client unsubscribed from task {message.task_id}")

    async def send_to_task_subscribers(self, task_id: str, message: dict[str, Any]) -> None:
        """
        Send a message to every client following ``task_id``.

        Clients may connect or leave while sends are awaited, so the
        recipients are fixed before the first send.
        """
        data = json.dumps(message)
        recipients = [ws for ws, task_ids in list(self.subscriptions.items()) if task_id in task_ids]

        for websocket in recipients:
            try:
                await websocket.send_text(data)
            except Exception as e:
                logger.error(f"Send error, dropping client: {e}")
                self.disconnect(websocket)

    async def notify_breakdown_ready(
        self,
        task_id: str,
        step_count: int,
        mode: str,
    ) -> None:
        """
        Notify subscribers that a draft breakdown is ready for review.

        Args:
            task_id: The task ID.
            step_count: Number of top-level steps.
            mode: Refinement mode used ("eager" or "deferred").
        """
        await self.send_to_task_subscribers(
            task_id,
            {
                "type": "breakdown_ready",
                "task_id": task_id,
                "step_count": step_count,
                "mode": mode,
            },
        )

    async def notify_breakdown_approved(self, task_id: str) -> None:
        """Notify subscribers that a breakdown became active."""
        await self.send_to_task_subscribers(
            task_id,
            {"type": "breakdown_approved", "task_id": task_id},
        )

    @property
    def connection_count(self) -> int:
        """Number of open connections."""
        return len(self.subscriptions)


# Global instance
ws_manager = ConnectionManager()
