"""
Tests for real-time connection registries.
"""

import json
from unittest.mock import AsyncMock, MagicMock

import pytest

from registrar.core.realtime import (
    InMemoryConnectionRegistry,
    RedisConnectionRegistry,
    build_connection_registry,
)


class TestInMemoryConnectionRegistry:
    @pytest.mark.asyncio
    async def test_send_to_disconnected_user(self):
        assert await InMemoryConnectionRegistry().send(1, {"event": "x"}) is False

    @pytest.mark.asyncio
    async def test_send_to_connected_user(self):
        registry = InMemoryConnectionRegistry()
        websocket = AsyncMock()
        await registry.connect(5, websocket)

        delivered = await registry.send(5, {"event": "newNotification", "id": 1})

        assert delivered is True
        websocket.accept.assert_awaited_once()
        sent = json.loads(websocket.send_text.await_args.args[0])
        assert sent == {"event": "newNotification", "id": 1}

    @pytest.mark.asyncio
    async def test_failed_send_drops_connection(self):
        registry = InMemoryConnectionRegistry()
        websocket = AsyncMock()
        websocket.send_text.side_effect = RuntimeError("closed")
        await registry.connect(5, websocket)

        assert await registry.send(5, {"event": "x"}) is False
        assert not registry.is_connected(5)


class TestRedisConnectionRegistry:
    @pytest.mark.asyncio
    async def test_delivered_when_someone_subscribed(self):
        client = MagicMock()
        client.publish = AsyncMock(return_value=1)

        registry = RedisConnectionRegistry(client)

        assert await registry.send(9, {"event": "x"}) is True
        channel, _ = client.publish.await_args.args
        assert channel == "notifications:9"

    @pytest.mark.asyncio
    async def test_publish_failure(self):
        client = MagicMock()
        client.publish = AsyncMock(side_effect=ConnectionError("redis down"))

        assert await RedisConnectionRegistry(client).send(9, {"event": "x"}) is False


class TestBuildConnectionRegistry:
    def test_memory_backend(self):
        assert isinstance(build_connection_registry("memory", None), InMemoryConnectionRegistry)

    def test_redis_backend(self):
        assert isinstance(build_connection_registry("redis", MagicMock()), RedisConnectionRegistry)

    def test_redis_backend_without_client_falls_back(self):
        assert isinstance(build_connection_registry("Redis", None), InMemoryConnectionRegistry)
