# dispatch_engine/core/drivers/models.py
"""
Модель водителя (курьера).
"""

from __future__ import annotations

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, ConfigDict


class Driver(BaseModel):
    """
    Водитель.

    Профиль ведёт отдельный сервис; движок меняет только флаги
    available / on_delivery, позицию и время последнего присутствия.
    """

    model_config = ConfigDict(from_attributes=True)

    id: str
    full_name: str = ""
    vehicle_category: Optional[str] = None
    push_token: Optional[str] = None

    latitude: Optional[float] = None
    longitude: Optional[float] = None
    location_updated_at: Optional[datetime] = None

    available: bool = False
    on_delivery: bool = False
    last_presence_at: Optional[datetime] = None
    completed_deliveries: int = 0

    @property
    def has_position(self) -> bool:
        return self.latitude is not None and self.longitude is not None

    @property
    def is_reachable(self) -> bool:
        """Зарегистрирован ли push-токен."""
        return bool(self.push_token)
