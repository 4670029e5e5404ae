# dispatch_engine/common/constants.py
"""
Общие константы и перечисления.
"""

from enum import Enum


class TypeMsg(str, Enum):
    """Типы сообщений для логирования."""
    DEBUG = "debug"
    INFO = "info"
    WARNING = "warning"
    ERROR = "error"
    CRITICAL = "critical"


class RequestState(str, Enum):
    """Состояния заявки на доставку (вычисляются по временным меткам)."""
    PENDING = "pending"
    NOTIFYING = "notifying"
    ACCEPTED = "accepted"
    ARRIVED_PICKUP = "arrived_pickup"
    PICKED_UP = "picked_up"
    DELIVERED_AWAITING_RETURN = "delivered_awaiting_return"
    RETURN_STARTED = "return_started"
    COMPLETED = "completed"
    CANCELLED = "cancelled"


class StopStatus(str, Enum):
    """Статусы точки доставки."""
    PENDING = "pending"
    ARRIVED = "arrived"
    COMPLETED = "completed"


class OfferStatus(str, Enum):
    """Статусы предложения водителю."""
    NOTIFIED = "notified"
    ACCEPTED = "accepted"
    REJECTED = "rejected"
    EXPIRED = "expired"
    CANCELLED = "cancelled"


class LifecycleTransition(str, Enum):
    """Переходы жизненного цикла, инициируемые водителем."""
    ARRIVED_PICKUP = "arrived-pickup"
    PICKED_UP = "picked-up"
    DELIVERED = "delivered"
    START_RETURN = "start-return"
    COMPLETE_RETURN = "complete-return"


class OfferAction(str, Enum):
    """Ответ водителя на предложение."""
    ACCEPT = "accept"
    REJECT = "reject"


class CancelActor(str, Enum):
    """Инициатор отмены заявки."""
    COMPANY = "company"
    ADMIN = "admin"
    SYSTEM = "system"


class VehicleCategory(str, Enum):
    """Категории транспорта."""
    BIKE = "bike"
    CAR = "car"
    VAN = "van"
    TRUCK = "truck"


# Причина автоматической отмены
AUTO_CANCEL_REASON = "no driver found in time"

# Радиус Земли в км (для формулы Haversine)
EARTH_RADIUS_KM = 6371.0
