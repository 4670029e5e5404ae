# dispatch_engine/config/loader.py
"""
Загрузчик конфигурации проекта.
Единственный источник истины — config/config.json.
Адреса сервисов и секреты переопределяются из переменных окружения.
"""

from __future__ import annotations

import json
import os
from functools import lru_cache
from pathlib import Path
from typing import Any

from pydantic import BaseModel, Field, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


# =============================================================================
# ОПРЕДЕЛЕНИЕ ПУТЕЙ
# =============================================================================

def get_project_root() -> Path:
    """Возвращает корневую директорию проекта."""
    return Path(__file__).parent.parent.parent


def get_config_path() -> Path:
    """Возвращает путь к файлу конфигурации (можно переопределить DISPATCH_CONFIG_PATH)."""
    override = os.getenv("DISPATCH_CONFIG_PATH")
    if override:
        return Path(override)
    return get_project_root() / "config" / "config.json"


def load_config_json(path: Path | None = None) -> dict[str, Any]:
    """Загружает config.json и возвращает словарь без ключей-комментариев."""
    config_path = path or get_config_path()
    if not config_path.exists():
        raise FileNotFoundError(f"Файл конфигурации не найден: {config_path}")

    with open(config_path, "r", encoding="utf-8") as f:
        data = json.load(f)

    return {k: v for k, v in data.items() if not k.startswith("_comment_")}


# =============================================================================
# PYDANTIC МОДЕЛИ КОНФИГУРАЦИИ
# =============================================================================

class SystemSettings(BaseModel):
    """Системные настройки."""
    PROJECT_NAME: str = "dispatch_engine"
    VERSION: str = "1.0.0"
    DEBUG: bool = False
    ENVIRONMENT: str = "development"
    COMPONENT_MODE: str = "all"


class LoggingSettings(BaseModel):
    """Настройки логирования."""
    LOG_LEVEL: str = "INFO"
    LOG_FORMAT: str = "colored"
    LOG_TO_FILE: bool = False
    LOG_FILE_PATH: str = "logs/dispatch.log"
    LOG_MAX_BYTES: int = 10485760


class DatabaseSettings(BaseModel):
    """Настройки PostgreSQL."""
    DB_HOST: str = "localhost"
    DB_PORT: int = 5432
    DB_NAME: str = "dispatch"
    DB_USER: str = "postgres"
    DB_PASSWORD: str = ""
    DB_MIN_POOL_SIZE: int = 5
    DB_MAX_POOL_SIZE: int = 20
    DB_COMMAND_TIMEOUT: int = 60
    DB_RETRY_ATTEMPTS: int = 3
    DB_RETRY_DELAY: float = 1.0

    @field_validator("DB_PASSWORD", mode="before")
    @classmethod
    def get_from_env(cls, v: str) -> str:
        """Получает пароль из переменных окружения."""
        if not v:
            return os.getenv("DB_PASSWORD", "")
        return v

    @property
    def dsn(self) -> str:
        """Возвращает DSN для подключения к PostgreSQL."""
        return (
            f"postgresql://{self.DB_USER}:{self.DB_PASSWORD}"
            f"@{self.DB_HOST}:{self.DB_PORT}/{self.DB_NAME}"
        )


class RedisSettings(BaseModel):
    """Настройки Redis (канал real-time рассылки)."""
    REDIS_HOST: str = "localhost"
    REDIS_PORT: int = 6379
    REDIS_DB: int = 0
    REDIS_PASSWORD: str = ""
    REDIS_NAMESPACE: str = "dispatch"
    REDIS_MAX_CONNECTIONS: int = 50

    @field_validator("REDIS_PASSWORD", mode="before")
    @classmethod
    def get_from_env(cls, v: str) -> str:
        """Получает пароль из переменных окружения."""
        if not v:
            return os.getenv("REDIS_PASSWORD", "")
        return v

    @property
    def url(self) -> str:
        """Возвращает URL для подключения к Redis."""
        auth = f":{self.REDIS_PASSWORD}@" if self.REDIS_PASSWORD else ""
        return f"redis://{auth}{self.REDIS_HOST}:{self.REDIS_PORT}/{self.REDIS_DB}"


class RabbitMQSettings(BaseModel):
    """Настройки RabbitMQ (push-уведомления и доменные события)."""
    RABBITMQ_HOST: str = "localhost"
    RABBITMQ_PORT: int = 5672
    RABBITMQ_USER: str = "guest"
    RABBITMQ_PASSWORD: str = "guest"
    RABBITMQ_VHOST: str = "/"
    RABBITMQ_EXCHANGE: str = "dispatch.events"
    RABBITMQ_PREFETCH_COUNT: int = 10

    @property
    def url(self) -> str:
        """Возвращает URL для подключения к RabbitMQ."""
        return (
            f"amqp://{self.RABBITMQ_USER}:{self.RABBITMQ_PASSWORD}"
            f"@{self.RABBITMQ_HOST}:{self.RABBITMQ_PORT}{self.RABBITMQ_VHOST}"
        )


class ApiSettings(BaseModel):
    """Настройки HTTP API."""
    API_HOST: str = "0.0.0.0"
    API_PORT: int = 8085
    API_PREFIX: str = "/api/v1"


class DispatchDefaults(BaseModel):
    """
    Значения настроек диспетчеризации по умолчанию.
    Рабочие значения хранятся в таблице dispatch_settings и перезагружаются
    без рестарта; эти используются, если строки нет.
    """
    SEARCH_RADIUS_KM: float = Field(10.0, gt=0)
    ACCEPTANCE_TIMEOUT_SECONDS: int = Field(30, gt=0)
    MIN_TIME_TO_FIND_DRIVER_SECONDS: int = Field(120, gt=0)
    AUTO_CANCEL_TIMEOUT_MINUTES: int = Field(30, gt=0)
    HEARTBEAT_TIMEOUT_SECONDS: int = Field(60, gt=0)
    SETTINGS_CACHE_TTL_SECONDS: float = Field(10.0, ge=0)


class MonitorSettings(BaseModel):
    """Интервалы фоновых мониторов."""
    AUTO_CANCEL_INTERVAL_SECONDS: float = Field(60.0, gt=0)
    LIVENESS_INTERVAL_SECONDS: float = Field(30.0, gt=0)
    SCHEDULED_DISPATCH_INTERVAL_SECONDS: float = Field(30.0, gt=0)
    MONITOR_BATCH_SIZE: int = Field(200, gt=0)


# =============================================================================
# ГЛАВНЫЙ КЛАСС НАСТРОЕК
# =============================================================================

class Settings(BaseSettings):
    """
    Главный класс настроек приложения.
    Агрегирует все секции конфигурации.
    """
    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8", extra="ignore")

    system: SystemSettings = Field(default_factory=SystemSettings)
    logging: LoggingSettings = Field(default_factory=LoggingSettings)
    database: DatabaseSettings = Field(default_factory=DatabaseSettings)
    redis: RedisSettings = Field(default_factory=RedisSettings)
    rabbitmq: RabbitMQSettings = Field(default_factory=RabbitMQSettings)
    api: ApiSettings = Field(default_factory=ApiSettings)
    dispatch: DispatchDefaults = Field(default_factory=DispatchDefaults)
    monitors: MonitorSettings = Field(default_factory=MonitorSettings)

    @model_validator(mode="after")
    def check_liveness_interval(self) -> "Settings":
        """Монитор живости должен срабатывать чаще, чем истекает окно heartbeat."""
        if self.monitors.LIVENESS_INTERVAL_SECONDS >= self.dispatch.HEARTBEAT_TIMEOUT_SECONDS:
            raise ValueError(
                "LIVENESS_INTERVAL_SECONDS должен быть меньше HEARTBEAT_TIMEOUT_SECONDS"
            )
        return self

    @classmethod
    def from_config_json(cls, path: Path | None = None) -> "Settings":
        """
        Создаёт объект Settings из config.json.
        Адреса и секреты переопределяются из переменных окружения.
        """
        data = load_config_json(path)

        def pick(model: type[BaseModel], env_keys: tuple[str, ...] = ()) -> dict[str, Any]:
            """Берёт из плоского JSON только поля секции, env имеет приоритет."""
            values = {name: data[name] for name in model.model_fields if name in data}
            for key in env_keys:
                env_value = os.getenv(key)
                if env_value:
                    values[key] = env_value
            return values

        return cls(
            system=SystemSettings(**pick(SystemSettings, ("ENVIRONMENT", "COMPONENT_MODE"))),
            logging=LoggingSettings(**pick(LoggingSettings, ("LOG_LEVEL",))),
            database=DatabaseSettings(**pick(
                DatabaseSettings,
                ("DB_HOST", "DB_PORT", "DB_NAME", "DB_USER", "DB_PASSWORD"),
            )),
            redis=RedisSettings(**pick(RedisSettings, ("REDIS_HOST", "REDIS_PORT", "REDIS_PASSWORD"))),
            rabbitmq=RabbitMQSettings(**pick(
                RabbitMQSettings,
                ("RABBITMQ_HOST", "RABBITMQ_PORT", "RABBITMQ_USER", "RABBITMQ_PASSWORD"),
            )),
            api=ApiSettings(**pick(ApiSettings, ("API_HOST", "API_PORT"))),
            dispatch=DispatchDefaults(**pick(DispatchDefaults)),
            monitors=MonitorSettings(**pick(MonitorSettings)),
        )


@lru_cache()
def get_settings() -> Settings:
    """
    Возвращает синглтон настроек приложения.
    Перед чтением конфига подгружает .env из корня проекта.
    """
    from dotenv import load_dotenv

    env_path = get_project_root() / ".env"
    if env_path.exists():
        load_dotenv(env_path)

    return Settings.from_config_json()


# Экспорт синглтона для удобного импорта
settings = get_settings()
