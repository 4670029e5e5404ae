# dispatch_engine/core/settings/models.py
"""
Рабочие настройки диспетчеризации.
"""

from __future__ import annotations

from typing import Optional

from pydantic import BaseModel, Field

from dispatch_engine.config.loader import DispatchDefaults


class DispatchSettings(BaseModel):
    """Настройки, перезагружаемые без рестарта процесса."""

    search_radius_km: float = Field(..., gt=0)
    acceptance_timeout_seconds: int = Field(..., gt=0)
    min_time_to_find_driver_seconds: int = Field(..., gt=0)
    auto_cancel_timeout_minutes: int = Field(..., gt=0)
    heartbeat_timeout_seconds: int = Field(..., gt=0)

    @classmethod
    def from_defaults(cls, defaults: DispatchDefaults) -> "DispatchSettings":
        return cls(
            search_radius_km=defaults.SEARCH_RADIUS_KM,
            acceptance_timeout_seconds=defaults.ACCEPTANCE_TIMEOUT_SECONDS,
            min_time_to_find_driver_seconds=defaults.MIN_TIME_TO_FIND_DRIVER_SECONDS,
            auto_cancel_timeout_minutes=defaults.AUTO_CANCEL_TIMEOUT_MINUTES,
            heartbeat_timeout_seconds=defaults.HEARTBEAT_TIMEOUT_SECONDS,
        )


class DispatchSettingsUpdateDTO(BaseModel):
    """Частичное обновление настроек (только переданные поля)."""

    search_radius_km: Optional[float] = Field(None, gt=0)
    acceptance_timeout_seconds: Optional[int] = Field(None, gt=0)
    min_time_to_find_driver_seconds: Optional[int] = Field(None, gt=0)
    auto_cancel_timeout_minutes: Optional[int] = Field(None, gt=0)
    heartbeat_timeout_seconds: Optional[int] = Field(None, gt=0)
