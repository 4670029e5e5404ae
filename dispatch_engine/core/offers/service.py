# dispatch_engine/core/offers/service.py
"""
Рассылка предложений водителям.
Создаёт предложения с общим сроком ответа и уведомляет каждого нового кандидата.
"""

from __future__ import annotations

from datetime import datetime, timedelta
from typing import Sequence

from dispatch_engine.common.constants import TypeMsg
from dispatch_engine.common.logger import log_info
from dispatch_engine.core.matching.service import DriverCandidate
from dispatch_engine.core.notifications.models import OfferNotification
from dispatch_engine.core.notifications.service import NotificationService
from dispatch_engine.core.offers.models import DriverOffer
from dispatch_engine.core.offers.repository import OfferRepository
from dispatch_engine.core.requests.models import DeliveryRequest
from dispatch_engine.core.requests.repository import DeliveryRequestRepository
from dispatch_engine.core.settings.models import DispatchSettings
from dispatch_engine.infra.event_bus import EventTypes


class OfferFanout:
    """Рассылка предложений по списку кандидатов."""

    def __init__(
        self,
        offers: OfferRepository,
        requests: DeliveryRequestRepository,
        notifications: NotificationService,
    ) -> None:
        self._offers = offers
        self._requests = requests
        self._notifications = notifications

    async def fan_out(
        self,
        request: DeliveryRequest,
        candidates: Sequence[DriverCandidate],
        dispatch_settings: DispatchSettings,
        now: datetime,
    ) -> list[DriverOffer]:
        """
        Создаёт предложения и отправляет push каждому новому кандидату.

        Водители, которым эта заявка уже предлагалась, повторно не уведомляются.
        Сбой уведомления одного водителя не влияет на остальных.

        Returns:
            Созданные этим вызовом предложения
        """
        expires_at = now + timedelta(seconds=dispatch_settings.acceptance_timeout_seconds)
        created = await self._offers.create_many(
            request.id,
            [(candidate.driver_id, candidate.distance_km) for candidate in candidates],
            now,
            expires_at,
        )
        await self._requests.mark_dispatched(request.id, now)

        by_driver = {candidate.driver_id: candidate for candidate in candidates}
        pushed = 0
        for offer in created:
            candidate = by_driver[offer.driver_id]
            notification = OfferNotification(
                request_id=request.id,
                request_number=request.request_number,
                pickup_address=request.pickup_address,
                stops_count=max(len(request.stops), 1),
                vehicle_category=request.vehicle_category,
                driver_amount=request.driver_amount,
                distance_km=round(candidate.distance_km, 2),
                needs_return=request.needs_return,
                expires_at=offer.expires_at,
                search_timeout_seconds=dispatch_settings.min_time_to_find_driver_seconds,
            )
            if await self._notifications.push(candidate.driver, notification):
                pushed += 1

        await log_info(
            f"Заявка {request.request_number}: создано предложений {len(created)} "
            f"из {len(candidates)} кандидатов, push отправлено {pushed}",
            type_msg=TypeMsg.INFO,
            extra={"request_id": request.id},
        )
        if created:
            await self._notifications.publish_fact(
                EventTypes.DELIVERY_DISPATCHED,
                {
                    "request_id": request.id,
                    "request_number": request.request_number,
                    "company_id": request.company_id,
                    "offers": len(created),
                },
            )
        return created
