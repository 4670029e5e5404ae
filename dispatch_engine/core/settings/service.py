# dispatch_engine/core/settings/service.py
"""
Провайдер настроек диспетчеризации.

Значения из таблицы dispatch_settings накладываются на значения по
умолчанию из config.json и кэшируются в процессе на короткое время:
изменение настроек подхватывается всеми компонентами без рестарта.
"""

from __future__ import annotations

import asyncio
import time
from typing import Callable, Optional

from dispatch_engine.common.logger import log_info
from dispatch_engine.common.constants import TypeMsg
from dispatch_engine.common.errors import InvalidSettings
from dispatch_engine.config.loader import DispatchDefaults
from dispatch_engine.core.settings.models import DispatchSettings, DispatchSettingsUpdateDTO
from dispatch_engine.core.settings.repository import DispatchSettingsRepository


class DispatchSettingsProvider:
    """Источник актуальных настроек с TTL-кэшем."""

    def __init__(
        self,
        repository: DispatchSettingsRepository,
        defaults: DispatchDefaults,
        cache_ttl_seconds: Optional[float] = None,
        monotonic: Callable[[], float] = time.monotonic,
        liveness_interval_seconds: Optional[float] = None,
    ) -> None:
        """
        Args:
            repository: Хранилище настроек
            defaults: Значения по умолчанию из config.json
            cache_ttl_seconds: Время жизни кэша (по умолчанию из defaults)
            monotonic: Источник монотонного времени (для тестов)
            liveness_interval_seconds: Интервал монитора живости; heartbeat timeout
                                       должен быть больше него
        """
        self._repository = repository
        self._defaults = DispatchSettings.from_defaults(defaults)
        self._ttl = defaults.SETTINGS_CACHE_TTL_SECONDS if cache_ttl_seconds is None else cache_ttl_seconds
        self._monotonic = monotonic
        self._liveness_interval = liveness_interval_seconds
        self._cached: Optional[DispatchSettings] = None
        self._loaded_at: float = 0.0
        self._lock = asyncio.Lock()

    def invalidate(self) -> None:
        """Сбрасывает кэш: следующий get() перечитает БД."""
        self._cached = None

    def _is_fresh(self) -> bool:
        return self._cached is not None and (self._monotonic() - self._loaded_at) < self._ttl

    async def get(self) -> DispatchSettings:
        """Возвращает актуальные настройки."""
        if self._is_fresh():
            return self._cached  # type: ignore[return-value]

        async with self._lock:
            if self._is_fresh():
                return self._cached  # type: ignore[return-value]

            stored = await self._repository.load() or {}
            self._cached = self._defaults.model_copy(update=stored)
            self._loaded_at = self._monotonic()
            return self._cached

    async def update(self, changes: DispatchSettingsUpdateDTO) -> DispatchSettings:
        """
        Сохраняет изменённые поля и сбрасывает кэш.

        Returns:
            Новые действующие настройки
        """
        values = changes.model_dump(exclude_none=True)
        if values:
            current = await self.get()
            # Итоговый набор должен оставаться валидным
            merged = DispatchSettings(**{**current.model_dump(), **values})
            if (
                self._liveness_interval is not None
                and merged.heartbeat_timeout_seconds <= self._liveness_interval
            ):
                raise InvalidSettings(
                    "heartbeat timeout must exceed the liveness monitor interval",
                    heartbeat_timeout_seconds=merged.heartbeat_timeout_seconds,
                    liveness_interval_seconds=self._liveness_interval,
                )
            await self._repository.save(values)
            await log_info(
                "Настройки диспетчеризации обновлены",
                type_msg=TypeMsg.INFO,
                extra={"changes": values},
            )
        self.invalidate()
        return await self.get()
