"""
Real-time Delivery

Connection registries push JSON payloads to users who are connected right
now. The notification dispatcher receives one as a collaborator, so delivery
can be swapped (in-process WebSockets, Redis pub/sub, or a test double).

send() never raises for delivery problems: it returns False when the user
is not reachable or the push failed.
"""

import asyncio
import contextlib
import json
import logging
from typing import Any, Protocol

from fastapi import WebSocket, WebSocketDisconnect
from redis.asyncio import Redis

logger = logging.getLogger(__name__)


class ConnectionRegistry(Protocol):
    async def send(self, user_id: int, payload: dict[str, Any]) -> bool: ...

    async def serve(self, user_id: int, websocket: WebSocket) -> None: ...


class InMemoryConnectionRegistry:
    """Tracks open WebSocket connections for this process, one per user."""

    def __init__(self):
        self.active_connections: dict[int, WebSocket] = {}

    async def connect(self, user_id: int, websocket: WebSocket) -> None:
        await websocket.accept()
        previous = self.active_connections.get(user_id)
        if previous is not None and previous is not websocket:
            logger.info(f"Replacing existing connection for user {user_id}")
        self.active_connections[user_id] = websocket
        logger.info(f"User {user_id} connected ({len(self.active_connections)} online)")

    def disconnect(self, user_id: int) -> None:
        if self.active_connections.pop(user_id, None) is not None:
            logger.info(f"User {user_id} disconnected")

    def is_connected(self, user_id: int) -> bool:
        return user_id in self.active_connections

    async def serve(self, user_id: int, websocket: WebSocket) -> None:
        """Hold the connection open until the client goes away."""
        await self.connect(user_id, websocket)
        try:
            while True:
                await websocket.receive_text()
        except WebSocketDisconnect:
            pass
        finally:
            if self.active_connections.get(user_id) is websocket:
                self.disconnect(user_id)

    async def send(self, user_id: int, payload: dict[str, Any]) -> bool:
        websocket = self.active_connections.get(user_id)
        if websocket is None:
            return False

        try:
            await websocket.send_text(json.dumps(payload, default=str))
            return True
        except Exception as e:
            logger.error(f"Error sending message to user {user_id}: {e}")
            self.disconnect(user_id)
            return False


class RedisConnectionRegistry:
    """
    Publishes payloads on ``notifications:{user_id}``.

    Any API instance holding the user's socket subscribes to that channel.
    A send counts as delivered when at least one subscriber received it.
    """

    CHANNEL_PREFIX = "notifications"

    def __init__(self, client: Redis):
        self.client = client

    def channel_for(self, user_id: int) -> str:
        return f"{self.CHANNEL_PREFIX}:{user_id}"

    async def send(self, user_id: int, payload: dict[str, Any]) -> bool:
        try:
            receivers = await self.client.publish(
                self.channel_for(user_id), json.dumps(payload, default=str)
            )
            return receivers > 0
        except Exception as e:
            logger.error(f"Redis publish failed for user {user_id}: {e}")
            return False

    async def serve(self, user_id: int, websocket: WebSocket) -> None:
        """Relay messages published for the user to their socket until it closes."""
        await websocket.accept()
        pubsub = self.client.pubsub()
        await pubsub.subscribe(self.channel_for(user_id))

        async def _relay() -> None:
            async for message in pubsub.listen():
                if message.get("type") == "message":
                    await websocket.send_text(message["data"])

        relay_task = asyncio.create_task(_relay())
        try:
            while True:
                await websocket.receive_text()
        except WebSocketDisconnect:
            pass
        finally:
            relay_task.cancel()
            with contextlib.suppress(asyncio.CancelledError, RuntimeError, WebSocketDisconnect):
                await relay_task
            await pubsub.unsubscribe(self.channel_for(user_id))
            await pubsub.aclose()


def build_connection_registry(backend: str, client: Redis | None) -> ConnectionRegistry:
    """Registry for the configured backend; Redis falls back to in-memory when not connected."""
    if backend.lower() == "redis":
        if client is not None:
            return RedisConnectionRegistry(client)
        logger.warning("REALTIME_BACKEND=redis but Redis is not connected, using in-memory delivery")
    return InMemoryConnectionRegistry()
