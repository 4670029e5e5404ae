# dispatch_engine/core/offers/models.py
"""
Модели предложений водителям.
"""

from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from typing import Optional
from uuid import uuid4

from pydantic import BaseModel, ConfigDict, Field

from dispatch_engine.common.constants import OfferStatus


class DriverOffer(BaseModel):
    """Предложение заявки конкретному водителю (одно на пару заявка × водитель)."""

    model_config = ConfigDict(from_attributes=True)

    id: str = Field(default_factory=lambda: str(uuid4()))
    request_id: str
    driver_id: str
    status: OfferStatus = OfferStatus.NOTIFIED
    distance_km: Optional[float] = None
    created_at: datetime
    expires_at: datetime
    responded_at: Optional[datetime] = None

    def is_expired_at(self, now: datetime) -> bool:
        """Предложение просрочено строго после expires_at."""
        return now > self.expires_at


class PendingOffer(BaseModel):
    """Ожидающее ответа предложение с краткими данными заявки."""

    offer_id: str
    request_id: str
    request_number: str
    pickup_address: str
    pickup_latitude: float
    pickup_longitude: float
    stops_count: int
    vehicle_category: Optional[str] = None
    driver_amount: Optional[Decimal] = None
    distance_km: Optional[float] = None
    needs_return: bool = False
    created_at: datetime
    expires_at: datetime
