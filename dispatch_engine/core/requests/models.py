# dispatch_engine/core/requests/models.py
"""
Модели заявок на доставку и точек доставки.
"""

from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from typing import Optional
from uuid import uuid4

from pydantic import AwareDatetime, BaseModel, ConfigDict, Field, computed_field

from dispatch_engine.common.constants import RequestState, StopStatus


def _new_id() -> str:
    return str(uuid4())


def _new_request_number() -> str:
    return f"DR-{uuid4().hex[:8].upper()}"


class DeliveryStop(BaseModel):
    """Точка доставки (ранг 1..N внутри заявки)."""

    model_config = ConfigDict(from_attributes=True)

    id: str = Field(default_factory=_new_id)
    request_id: str
    rank: int = Field(..., ge=1)
    address: str
    latitude: Optional[float] = None
    longitude: Optional[float] = None
    contact_name: Optional[str] = None
    contact_phone: Optional[str] = None
    notes: Optional[str] = None
    status: StopStatus = StopStatus.PENDING
    arrived_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None

    @property
    def is_completed(self) -> bool:
        return self.status == StopStatus.COMPLETED


class DeliveryRequest(BaseModel):
    """
    Заявка на доставку.

    Состояние не хранится отдельным полем, а выводится из временных меток:
    каждая метка ставится ровно одним условным UPDATE.
    """

    model_config = ConfigDict(from_attributes=True)

    id: str = Field(default_factory=_new_id)
    request_number: str = Field(default_factory=_new_request_number)
    company_id: Optional[str] = None
    customer_name: Optional[str] = None
    customer_phone: Optional[str] = None

    # Откуда
    pickup_address: str
    pickup_latitude: float = Field(..., ge=-90, le=90)
    pickup_longitude: float = Field(..., ge=-180, le=180)

    # Условия (сумма водителю приходит от сервиса тарификации)
    vehicle_category: Optional[str] = None
    total_amount: Optional[Decimal] = None
    driver_amount: Optional[Decimal] = None
    distance_km: Optional[float] = None
    estimated_minutes: Optional[int] = None
    needs_return: bool = False
    notes: Optional[str] = None
    scheduled_at: Optional[datetime] = None

    driver_id: Optional[str] = None

    # Временные метки жизненного цикла
    created_at: datetime
    dispatched_at: Optional[datetime] = None
    accepted_at: Optional[datetime] = None
    arrived_at: Optional[datetime] = None
    trip_started_at: Optional[datetime] = None
    delivered_at: Optional[datetime] = None
    return_started_at: Optional[datetime] = None
    returned_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    cancelled_at: Optional[datetime] = None

    is_completed: bool = False
    is_cancelled: bool = False
    cancel_reason: Optional[str] = None
    cancel_method: Optional[str] = None

    stops: list[DeliveryStop] = Field(default_factory=list)

    @computed_field
    @property
    def state(self) -> RequestState:
        """Текущее состояние жизненного цикла."""
        if self.is_cancelled:
            return RequestState.CANCELLED
        if self.is_completed:
            return RequestState.COMPLETED
        if self.return_started_at is not None:
            return RequestState.RETURN_STARTED
        if self.delivered_at is not None:
            return RequestState.DELIVERED_AWAITING_RETURN
        if self.trip_started_at is not None:
            return RequestState.PICKED_UP
        if self.arrived_at is not None:
            return RequestState.ARRIVED_PICKUP
        if self.driver_id is not None:
            return RequestState.ACCEPTED
        if self.dispatched_at is not None:
            return RequestState.NOTIFYING
        return RequestState.PENDING

    @property
    def is_terminal(self) -> bool:
        return self.is_completed or self.is_cancelled

    @property
    def next_stop(self) -> Optional[DeliveryStop]:
        """Первая по рангу незавершённая точка."""
        for stop in sorted(self.stops, key=lambda s: s.rank):
            if stop.status in (StopStatus.PENDING, StopStatus.ARRIVED):
                return stop
        return None


# =============================================================================
# DTO
# =============================================================================

class StopCreateDTO(BaseModel):
    """Точка доставки во входящей заявке (ранг — порядок в списке)."""

    address: str = Field(..., min_length=1)
    latitude: Optional[float] = Field(None, ge=-90, le=90)
    longitude: Optional[float] = Field(None, ge=-180, le=180)
    contact_name: Optional[str] = None
    contact_phone: Optional[str] = None
    notes: Optional[str] = None


class DeliveryRequestCreateDTO(BaseModel):
    """DTO для создания заявки сервисом приёма заказов."""

    company_id: Optional[str] = None
    customer_name: Optional[str] = None
    customer_phone: Optional[str] = None

    pickup_address: str = Field(..., min_length=1)
    pickup_latitude: float = Field(..., ge=-90, le=90)
    pickup_longitude: float = Field(..., ge=-180, le=180)

    stops: list[StopCreateDTO] = Field(..., min_length=1)

    vehicle_category: Optional[str] = None
    total_amount: Optional[Decimal] = Field(None, ge=0)
    driver_amount: Optional[Decimal] = Field(None, ge=0)
    distance_km: Optional[float] = Field(None, ge=0)
    estimated_minutes: Optional[int] = Field(None, ge=0)
    needs_return: bool = False
    notes: Optional[str] = None
    scheduled_at: Optional[AwareDatetime] = None

    def to_request(self, now: datetime) -> DeliveryRequest:
        """Собирает доменную заявку с ранжированными точками."""
        request = DeliveryRequest(
            **self.model_dump(exclude={"stops"}),
            created_at=now,
        )
        request.stops = [
            DeliveryStop(request_id=request.id, rank=rank, **stop.model_dump())
            for rank, stop in enumerate(self.stops, start=1)
        ]
        return request


class LifecycleResult(BaseModel):
    """Результат перехода жизненного цикла."""

    request_id: str
    state: RequestState
    completed_stop: Optional[DeliveryStop] = None
    next_stop: Optional[DeliveryStop] = None
    remaining_stops: int = 0
