# dispatch_engine/core/notifications/models.py
"""
Типизированные уведомления.

Push-уведомления водителям и события real-time канала — закрытый
набор версионируемых моделей: у каждого вида свои явные поля.
"""

from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from typing import ClassVar, Literal, Optional

from pydantic import BaseModel


# =============================================================================
# PUSH-УВЕДОМЛЕНИЯ
# =============================================================================

class PushNotification(BaseModel):
    """Базовая модель push-уведомления."""

    kind: str
    version: int = 1

    title: ClassVar[str] = ""

    def body(self) -> str:
        return ""


class OfferNotification(PushNotification):
    """Новое предложение заявки."""

    kind: Literal["delivery.offer"] = "delivery.offer"
    title: ClassVar[str] = "New delivery request"

    request_id: str
    request_number: str
    pickup_address: str
    stops_count: int
    vehicle_category: Optional[str] = None
    driver_amount: Optional[Decimal] = None
    distance_km: float
    needs_return: bool = False
    expires_at: datetime
    search_timeout_seconds: int

    def body(self) -> str:
        amount = f", {self.driver_amount}" if self.driver_amount is not None else ""
        return f"{self.pickup_address} ({self.distance_km:.1f} km){amount}"


class TakenNotification(PushNotification):
    """Заявку взял другой водитель."""

    kind: Literal["delivery.taken"] = "delivery.taken"
    title: ClassVar[str] = "Request taken"

    request_id: str
    request_number: str

    def body(self) -> str:
        return f"Request {self.request_number} was accepted by another driver"


class CancelledNotification(PushNotification):
    """Заявка отменена."""

    kind: Literal["delivery.cancelled"] = "delivery.cancelled"
    title: ClassVar[str] = "Request cancelled"

    request_id: str
    request_number: str
    reason: str
    cancelled_by: str

    def body(self) -> str:
        return f"Request {self.request_number} was cancelled: {self.reason}"


class StopCompletedNotification(PushNotification):
    """Точка доставки завершена (водителю — следующая точка)."""

    kind: Literal["delivery.stop_completed"] = "delivery.stop_completed"
    title: ClassVar[str] = "Stop completed"

    request_id: str
    request_number: str
    stop_id: str
    rank: int
    remaining_stops: int
    next_stop_id: Optional[str] = None
    next_stop_address: Optional[str] = None

    def body(self) -> str:
        if self.next_stop_address:
            return f"Next stop: {self.next_stop_address}"
        return f"Stop {self.rank} completed"


# =============================================================================
# REAL-TIME СОБЫТИЯ
# =============================================================================

class RealtimeEvent(BaseModel):
    """Базовая модель события real-time канала."""

    type: str
    version: int = 1


class DeliveryTakenEvent(RealtimeEvent):
    """Всем подключённым водителям: убрать заявку из локального списка."""

    type: Literal["delivery-taken"] = "delivery-taken"
    request_id: str
    driver_id: str


class RequestStatusChangedEvent(RealtimeEvent):
    """Изменилось состояние заявки."""

    type: Literal["request-status-changed"] = "request-status-changed"
    request_id: str
    state: str
    driver_id: Optional[str] = None
    reason: Optional[str] = None


class StopCompletedEvent(RealtimeEvent):
    """Завершена точка многоточечной доставки."""

    type: Literal["stop-completed"] = "stop-completed"
    request_id: str
    stop_id: str
    rank: int
    remaining_stops: int


class DriverStatusChangedEvent(RealtimeEvent):
    """Изменилась доступность водителя."""

    type: Literal["driver-status-changed"] = "driver-status-changed"
    driver_id: str
    available: bool
    reason: str
