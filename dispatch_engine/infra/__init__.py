# dispatch_engine/infra/__init__.py
"""
Инфраструктурный слой.
Работа с внешними сервисами: PostgreSQL, Redis, RabbitMQ.
"""

from dispatch_engine.infra.database import DatabaseManager, get_db
from dispatch_engine.infra.redis_client import RedisBroadcaster, RedisClient, get_redis
from dispatch_engine.infra.event_bus import DomainEvent, EventBus, EventTypes, get_event_bus

__all__ = [
    "DatabaseManager",
    "get_db",
    "RedisClient",
    "RedisBroadcaster",
    "get_redis",
    "DomainEvent",
    "EventBus",
    "EventTypes",
    "get_event_bus",
]
