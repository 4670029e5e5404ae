# dispatch_engine/api/schemas.py
"""
Тела запросов HTTP API.
Ответы используют доменные модели напрямую.
"""

from __future__ import annotations

from pydantic import BaseModel, Field, field_validator

from dispatch_engine.common.constants import CancelActor, LifecycleTransition, OfferAction


class RespondRequest(BaseModel):
    """Ответ водителя на предложение."""
    action: OfferAction


class LifecycleRequest(BaseModel):
    """Переход жизненного цикла от имени водителя."""
    driver_id: str = Field(..., min_length=1)
    transition: LifecycleTransition


class CancelRequest(BaseModel):
    """Отмена заявки компанией или администратором (system зарезервирован за автоотменой)."""
    actor: CancelActor = CancelActor.COMPANY
    reason: str = Field(..., min_length=1, max_length=500)

    @field_validator("actor")
    @classmethod
    def reject_system_actor(cls, v: CancelActor) -> CancelActor:
        """Через API отменяют только company или admin."""
        if v == CancelActor.SYSTEM:
            raise ValueError("actor must be company or admin")
        return v


class PresenceRequest(BaseModel):
    """Сигнал присутствия с текущей позицией водителя."""
    latitude: float = Field(..., ge=-90, le=90)
    longitude: float = Field(..., ge=-180, le=180)


class AvailabilityRequest(BaseModel):
    available: bool


class HealthResponse(BaseModel):
    status: str
    service: str
    version: str
    checks: dict[str, bool] = Field(default_factory=dict)
