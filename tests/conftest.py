# tests/conftest.py
"""
Общие фикстуры и настройки для тестов.
"""

from __future__ import annotations

import json
import os
from pathlib import Path
from typing import Any
from unittest.mock import AsyncMock, MagicMock

import pytest

# Устанавливаем переменные окружения перед импортом модулей
os.environ.setdefault("DB_PASSWORD", "test_password")
os.environ.setdefault("REDIS_PASSWORD", "")

from dispatch_engine.config.loader import DispatchDefaults
from dispatch_engine.core.requests.models import DeliveryRequestCreateDTO

from dispatch_fakes import NOW, Engine, FakeClock, build_engine, make_create_dto


# =============================================================================
# ФИКСТУРЫ КОНФИГУРАЦИИ
# =============================================================================

@pytest.fixture(scope="session")
def project_root() -> Path:
    """Корневая директория проекта."""
    return Path(__file__).parent.parent


@pytest.fixture(scope="session")
def config_path(project_root: Path) -> Path:
    """Путь к файлу конфигурации."""
    return project_root / "config" / "config.json"


@pytest.fixture
def mock_config() -> dict[str, Any]:
    """Мок конфигурации для тестов."""
    return {
        "_comment_system": "Тестовая конфигурация",
        "PROJECT_NAME": "dispatch_engine_test",
        "VERSION": "1.0.0-test",
        "DEBUG": True,
        "ENVIRONMENT": "test",
        "COMPONENT_MODE": "api",
        "LOG_LEVEL": "DEBUG",
        "LOG_FORMAT": "colored",
        "LOG_TO_FILE": False,
        "LOG_FILE_PATH": "logs/test.log",
        "DB_HOST": "localhost",
        "DB_PORT": 5432,
        "DB_NAME": "dispatch_test",
        "DB_USER": "postgres",
        "DB_MIN_POOL_SIZE": 2,
        "DB_MAX_POOL_SIZE": 5,
        "REDIS_HOST": "localhost",
        "REDIS_PORT": 6379,
        "REDIS_DB": 1,
        "REDIS_NAMESPACE": "dispatch_test",
        "RABBITMQ_HOST": "localhost",
        "RABBITMQ_PORT": 5672,
        "RABBITMQ_EXCHANGE": "dispatch.test",
        "API_PORT": 9000,
        "SEARCH_RADIUS_KM": 5.0,
        "ACCEPTANCE_TIMEOUT_SECONDS": 45,
        "MIN_TIME_TO_FIND_DRIVER_SECONDS": 90,
        "AUTO_CANCEL_TIMEOUT_MINUTES": 20,
        "HEARTBEAT_TIMEOUT_SECONDS": 90,
        "SETTINGS_CACHE_TTL_SECONDS": 5.0,
        "AUTO_CANCEL_INTERVAL_SECONDS": 30,
        "LIVENESS_INTERVAL_SECONDS": 15,
        "SCHEDULED_DISPATCH_INTERVAL_SECONDS": 20,
        "MONITOR_BATCH_SIZE": 50,
    }


@pytest.fixture
def temp_config_file(tmp_path: Path, mock_config: dict[str, Any]) -> Path:
    """Создаёт временный файл конфигурации."""
    config_file = tmp_path / "config.json"
    config_file.write_text(json.dumps(mock_config, ensure_ascii=False, indent=2))
    return config_file


# =============================================================================
# ФИКСТУРЫ ИНФРАСТРУКТУРЫ (МОКИ)
# =============================================================================

@pytest.fixture
def mock_db() -> AsyncMock:
    """Мок менеджера базы данных."""
    db = AsyncMock()
    db.fetchrow = AsyncMock(return_value=None)
    db.fetch = AsyncMock(return_value=[])
    db.execute = AsyncMock(return_value="UPDATE 1")
    db.fetchval = AsyncMock(return_value=None)

    conn = AsyncMock()
    conn.fetchrow = AsyncMock(return_value=None)
    conn.fetch = AsyncMock(return_value=[])
    conn.execute = AsyncMock(return_value="UPDATE 1")
    conn.executemany = AsyncMock(return_value=None)

    transaction = MagicMock()
    transaction.__aenter__ = AsyncMock(return_value=conn)
    transaction.__aexit__ = AsyncMock(return_value=False)
    db.transaction = MagicMock(return_value=transaction)
    db.conn = conn
    return db


@pytest.fixture
def mock_redis() -> AsyncMock:
    """Мок клиента Redis."""
    redis = AsyncMock()
    redis.publish = AsyncMock(return_value=1)
    redis.health_check = AsyncMock(return_value=True)
    return redis


@pytest.fixture
def mock_event_bus() -> AsyncMock:
    """Мок шины событий."""
    event_bus = AsyncMock()
    event_bus.publish = AsyncMock(return_value=True)
    event_bus.is_connected = True
    return event_bus




@pytest.fixture
def clock() -> FakeClock:
    """Управляемые часы, стартуют в NOW."""
    return FakeClock(NOW)


# =============================================================================
# ДВИЖОК НА ХРАНИЛИЩЕ В ПАМЯТИ
# =============================================================================

@pytest.fixture
def dispatch_defaults() -> DispatchDefaults:
    return DispatchDefaults(
        SEARCH_RADIUS_KM=10.0,
        ACCEPTANCE_TIMEOUT_SECONDS=30,
        MIN_TIME_TO_FIND_DRIVER_SECONDS=120,
        AUTO_CANCEL_TIMEOUT_MINUTES=30,
        HEARTBEAT_TIMEOUT_SECONDS=60,
        SETTINGS_CACHE_TTL_SECONDS=0,
    )


@pytest.fixture
def engine(clock: FakeClock, mock_event_bus: AsyncMock, dispatch_defaults: DispatchDefaults) -> Engine:
    """Полный граф сервисов над хранилищем в памяти."""
    return build_engine(clock, mock_event_bus, dispatch_defaults, liveness_interval_seconds=30)


# =============================================================================
# ФИКСТУРЫ МОДЕЛЕЙ
# =============================================================================

@pytest.fixture
def sample_request_dto() -> DeliveryRequestCreateDTO:
    """Одноточечная заявка без обратного рейса."""
    return make_create_dto()
