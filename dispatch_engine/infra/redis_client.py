# dispatch_engine/infra/redis_client.py
"""
Клиент Redis для real-time рассылки.

Клиенты водителей и компаний подписаны (через WS-шлюз) на каналы
Redis Pub/Sub:
- driver:{driver_id} — события конкретного водителя
- company:{company_id} — события компании
- broadcast — глобальные события для всех подключённых водителей
"""

from __future__ import annotations

import json
from typing import Any

import redis.asyncio as redis
from pydantic import BaseModel

from dispatch_engine.common.logger import get_logger, log_error, log_info
from dispatch_engine.common.constants import TypeMsg

logger = get_logger("redis")


class RedisClient:
    """
    Асинхронный клиент Redis (Singleton).
    Используется как транспорт для публикации событий по топикам.
    """

    _instance: RedisClient | None = None
    _client: redis.Redis | None = None

    def __new__(cls) -> RedisClient:
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __init__(self) -> None:
        if hasattr(self, "_initialized"):
            return
        self._initialized = True
        self._client = None
        self._namespace = "dispatch"

    @property
    def client(self) -> redis.Redis:
        """Возвращает клиент Redis."""
        if self._client is None:
            raise RuntimeError("Redis клиент не инициализирован. Вызовите connect() сначала.")
        return self._client

    def _make_key(self, key: str) -> str:
        """Добавляет namespace к ключу/каналу."""
        return f"{self._namespace}:{key}"

    async def connect(
        self,
        url: str,
        max_connections: int = 50,
        namespace: str | None = None,
    ) -> None:
        """
        Подключается к Redis.

        Args:
            url: URL Redis
            max_connections: Максимальное количество соединений
            namespace: Префикс каналов
        """
        if self._client is not None:
            return

        if namespace:
            self._namespace = namespace

        await log_info("Подключение к Redis...", type_msg=TypeMsg.INFO)

        self._client = redis.from_url(
            url,
            max_connections=max_connections,
            decode_responses=True,
        )
        await self._client.ping()

        await log_info("Подключение к Redis установлено", type_msg=TypeMsg.INFO)

    async def disconnect(self) -> None:
        """Закрывает соединение с Redis."""
        if self._client is not None:
            await self._client.aclose()
            self._client = None
            await log_info("Соединение с Redis закрыто", type_msg=TypeMsg.INFO)

    async def publish(self, channel: str, message: str) -> int:
        """
        Публикует сообщение в канал Pub/Sub.

        Returns:
            Количество получивших подписчиков
        """
        return await self.client.publish(self._make_key(channel), message)

    async def health_check(self) -> bool:
        """Проверяет здоровье подключения к Redis."""
        try:
            return await self.client.ping()
        except Exception as e:
            await log_error(f"Health check Redis failed: {e}")
            return False


class RedisBroadcaster:
    """
    Реализация канала real-time рассылки поверх Redis Pub/Sub.
    Ошибки транспорта логируются и не пробрасываются.
    """

    def __init__(self, redis_client: RedisClient) -> None:
        self._redis = redis_client

    async def publish(self, topic: str, event: BaseModel | dict[str, Any]) -> None:
        """
        Публикует событие в топик.

        Args:
            topic: Топик (driver:{id}, company:{id}, broadcast)
            event: Pydantic модель события или словарь
        """
        if isinstance(event, BaseModel):
            message = event.model_dump_json()
        else:
            message = json.dumps(event, ensure_ascii=False, default=str)

        try:
            await self._redis.publish(topic, message)
        except Exception as e:
            await log_error(f"Ошибка публикации в топик {topic}: {e}")


def get_redis() -> RedisClient:
    """Возвращает глобальный экземпляр RedisClient."""
    return RedisClient()


async def init_redis() -> None:
    """Инициализирует подключение к Redis по настройкам из конфигурации."""
    from dispatch_engine.config import settings

    redis_client = get_redis()
    await redis_client.connect(
        url=settings.redis.url,
        max_connections=settings.redis.REDIS_MAX_CONNECTIONS,
        namespace=settings.redis.REDIS_NAMESPACE,
    )
    await log_info(
        f"Redis подключён: {settings.redis.REDIS_HOST}:{settings.redis.REDIS_PORT}/{settings.redis.REDIS_DB}",
        type_msg=TypeMsg.INFO,
    )


async def close_redis() -> None:
    """Закрывает подключение к Redis."""
    await get_redis().disconnect()
    await log_info("Redis отключён", type_msg=TypeMsg.INFO)
