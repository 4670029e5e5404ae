# dispatch_engine/core/requests/__init__.py
"""
Домен заявок на доставку.
"""

from dispatch_engine.core.requests.models import (
    DeliveryRequest,
    DeliveryRequestCreateDTO,
    DeliveryStop,
    LifecycleResult,
    StopCreateDTO,
)
from dispatch_engine.core.requests.repository import DeliveryRequestRepository

__all__ = [
    "DeliveryRequest",
    "DeliveryRequestCreateDTO",
    "DeliveryStop",
    "LifecycleResult",
    "StopCreateDTO",
    "DeliveryRequestRepository",
]
