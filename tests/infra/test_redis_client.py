# tests/infra/test_redis_client.py
"""
Тесты для клиента Redis и real-time рассылки.
"""

from __future__ import annotations

import json
from unittest.mock import AsyncMock, MagicMock

import pytest

from dispatch_engine.core.notifications.models import DeliveryTakenEvent
from dispatch_engine.infra.redis_client import RedisBroadcaster, RedisClient


@pytest.fixture
def redis_client() -> RedisClient:
    """Экземпляр клиента мимо синглтона."""
    client = object.__new__(RedisClient)
    client._initialized = True
    client._namespace = "dispatch_test"
    client._client = MagicMock()
    client._client.publish = AsyncMock(return_value=2)
    client._client.ping = AsyncMock(return_value=True)
    return client


class TestRedisClient:
    """Тесты для RedisClient."""

    def test_client_not_initialized(self) -> None:
        client = object.__new__(RedisClient)
        client._client = None

        with pytest.raises(RuntimeError):
            _ = client.client

    @pytest.mark.asyncio
    async def test_publish_adds_namespace(self, redis_client: RedisClient) -> None:
        receivers = await redis_client.publish("driver:drv-1", "{}")

        assert receivers == 2
        redis_client._client.publish.assert_awaited_once_with("dispatch_test:driver:drv-1", "{}")

    @pytest.mark.asyncio
    async def test_health_check(self, redis_client: RedisClient) -> None:
        assert await redis_client.health_check() is True

    @pytest.mark.asyncio
    async def test_health_check_failure(self, redis_client: RedisClient) -> None:
        redis_client._client.ping = AsyncMock(side_effect=ConnectionError("down"))

        assert await redis_client.health_check() is False


class TestRedisBroadcaster:
    """Тесты для RedisBroadcaster."""

    @pytest.mark.asyncio
    async def test_publishes_model_as_json(self) -> None:
        redis_client = MagicMock()
        redis_client.publish = AsyncMock(return_value=1)
        broadcaster = RedisBroadcaster(redis_client)

        await broadcaster.publish("broadcast", DeliveryTakenEvent(request_id="req-1", driver_id="drv-1"))

        topic, message = redis_client.publish.call_args.args
        assert topic == "broadcast"
        assert json.loads(message) == {
            "type": "delivery-taken",
            "version": 1,
            "request_id": "req-1",
            "driver_id": "drv-1",
        }

    @pytest.mark.asyncio
    async def test_publishes_dict(self) -> None:
        redis_client = MagicMock()
        redis_client.publish = AsyncMock(return_value=1)

        await RedisBroadcaster(redis_client).publish("company:c-1", {"type": "ping"})

        assert json.loads(redis_client.publish.call_args.args[1]) == {"type": "ping"}

    @pytest.mark.asyncio
    async def test_transport_errors_are_swallowed(self) -> None:
        """Сбой Redis не прерывает диспетчеризацию."""
        redis_client = MagicMock()
        redis_client.publish = AsyncMock(side_effect=ConnectionError("down"))

        await RedisBroadcaster(redis_client).publish("broadcast", {"type": "ping"})

        redis_client.publish.assert_awaited_once()
