# dispatch_engine/core/dispatch/models.py
"""
Результаты цикла диспетчеризации.
"""

from __future__ import annotations

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, Field

from dispatch_engine.core.requests.models import DeliveryRequest


class DispatchOutcome(BaseModel):
    """Итог создания/рассылки заявки."""

    request: DeliveryRequest
    scheduled: bool = False
    offers_created: int = 0
    notified_driver_ids: list[str] = Field(default_factory=list)
    expires_at: Optional[datetime] = None
