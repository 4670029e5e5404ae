# dispatch_engine/core/claims/service.py
"""
Claim Resolver: ответ водителя на предложение.

Из всех одновременных accept по одной заявке побеждает ровно один.
Проигравший получает AlreadyClaimed ("offer taken by another driver"),
а не общий сбой.
"""

from __future__ import annotations

from datetime import datetime
from typing import NoReturn

from dispatch_engine.common.clock import Clock, utcnow
from dispatch_engine.common.constants import OfferAction, OfferStatus, RequestState, TypeMsg
from dispatch_engine.common.errors import (
    AlreadyClaimed,
    AlreadyResponded,
    AlreadyTerminal,
    DriverBusy,
    InvalidTransition,
    OfferExpired,
    OfferNotFound,
    RequestNotFound,
)
from dispatch_engine.common.logger import log_info
from dispatch_engine.core.claims.repository import ClaimRepository
from dispatch_engine.core.drivers.repository import DriverRepository
from dispatch_engine.core.notifications.models import (
    DeliveryTakenEvent,
    RequestStatusChangedEvent,
    TakenNotification,
)
from dispatch_engine.core.notifications.service import (
    BROADCAST_TOPIC,
    NotificationService,
    company_topic,
)
from dispatch_engine.core.offers.models import DriverOffer
from dispatch_engine.core.offers.repository import OfferRepository
from dispatch_engine.core.requests.models import DeliveryRequest
from dispatch_engine.core.requests.repository import DeliveryRequestRepository
from dispatch_engine.infra.event_bus import EventTypes


class ClaimResolver:
    """Принятие и отклонение предложений."""

    def __init__(
        self,
        requests: DeliveryRequestRepository,
        offers: OfferRepository,
        drivers: DriverRepository,
        claims: ClaimRepository,
        notifications: NotificationService,
        clock: Clock = utcnow,
    ) -> None:
        self._requests = requests
        self._offers = offers
        self._drivers = drivers
        self._claims = claims
        self._notifications = notifications
        self._clock = clock

    async def respond(self, request_id: str, driver_id: str, action: OfferAction) -> DeliveryRequest:
        """Единая точка входа для ответа водителя."""
        if action == OfferAction.ACCEPT:
            return await self.accept(request_id, driver_id)
        if action == OfferAction.REJECT:
            return await self.reject(request_id, driver_id)
        raise InvalidTransition(f"unknown action: {action}")

    # =========================================================================
    # ПРИНЯТИЕ
    # =========================================================================

    async def accept(self, request_id: str, driver_id: str) -> DeliveryRequest:
        """
        Закрепляет заявку за водителем.

        Проверки идут в порядке: заявка существует, не взята, не завершена;
        предложение существует, ещё notified и не просрочено; у водителя нет
        незабранной заявки. Затем одна транзакция фиксирует захват. Если за
        время проверок условие стало ложным, причина определяется повторным
        чтением.

        Raises:
            RequestNotFound, AlreadyClaimed, AlreadyTerminal, OfferNotFound,
            AlreadyResponded, OfferExpired, DriverBusy
        """
        now = self._clock()

        request = await self._requests.get_by_id(request_id)
        if request is None:
            raise RequestNotFound(request_id=request_id)
        offer = await self._check_claimable(request, driver_id, now)

        expired_holders = await self._claims.commit_claim(request_id, driver_id, now)
        if expired_holders is None:
            await self._raise_lost_claim(request_id, driver_id)

        await log_info(
            f"Заявка {request.request_number} принята водителем {driver_id}",
            type_msg=TypeMsg.INFO,
            extra={"request_id": request_id, "offer_id": offer.id, "expired": len(expired_holders or [])},
        )

        claimed = await self._requests.get_by_id(request_id)
        if claimed is None:
            raise RequestNotFound(request_id=request_id)

        await self._notify_claimed(claimed, driver_id, expired_holders or [])
        return claimed

    async def _check_claimable(
        self,
        request: DeliveryRequest,
        driver_id: str,
        now: datetime,
    ) -> DriverOffer:
        if request.driver_id is not None:
            if request.driver_id == driver_id:
                raise AlreadyResponded("offer already accepted", request_id=request.id)
            raise AlreadyClaimed(request_id=request.id)
        if request.is_terminal:
            raise AlreadyTerminal(request_id=request.id)

        offer = await self._offers.get(request.id, driver_id)
        if offer is None:
            raise OfferNotFound(request_id=request.id)
        if offer.status != OfferStatus.NOTIFIED:
            raise AlreadyResponded(f"offer already {offer.status.value}", request_id=request.id)
        if offer.is_expired_at(now):
            await self._offers.expire_if_stale(offer.id, now)
            raise OfferExpired(request_id=request.id)

        if await self._requests.has_unpicked_for_driver(driver_id):
            raise DriverBusy(request_id=request.id)
        return offer

    async def _raise_lost_claim(self, request_id: str, driver_id: str) -> NoReturn:
        """Захват не состоялся: повторно читает состояние и поднимает точную ошибку."""
        request = await self._requests.get_by_id(request_id)
        if request is None:
            raise RequestNotFound(request_id=request_id)
        await self._check_claimable(request, driver_id, self._clock())
        # Все условия снова выполнены: захват проиграл гонку, которая уже разрешилась
        raise AlreadyClaimed(request_id=request_id)

    async def _notify_claimed(
        self,
        request: DeliveryRequest,
        driver_id: str,
        expired_holders: list[str],
    ) -> None:
        """Уведомления после фиксации захвата (best-effort)."""
        losers = await self._drivers.get_many([d for d in expired_holders if d != driver_id])
        await self._notifications.push_many(
            losers,
            TakenNotification(request_id=request.id, request_number=request.request_number),
        )

        await self._notifications.broadcast(
            BROADCAST_TOPIC,
            DeliveryTakenEvent(request_id=request.id, driver_id=driver_id),
        )
        if request.company_id:
            await self._notifications.broadcast(
                company_topic(request.company_id),
                RequestStatusChangedEvent(
                    request_id=request.id,
                    state=RequestState.ACCEPTED.value,
                    driver_id=driver_id,
                ),
            )
        await self._notifications.publish_fact(
            EventTypes.DELIVERY_ACCEPTED,
            {
                "request_id": request.id,
                "request_number": request.request_number,
                "driver_id": driver_id,
                "company_id": request.company_id,
            },
        )

    # =========================================================================
    # ОТКЛОНЕНИЕ
    # =========================================================================

    async def reject(self, request_id: str, driver_id: str) -> DeliveryRequest:
        """
        Отклоняет предложение. Заявка не меняется.

        Raises:
            RequestNotFound, OfferNotFound, AlreadyResponded
        """
        request = await self._requests.get_by_id(request_id)
        if request is None:
            raise RequestNotFound(request_id=request_id)

        offer = await self._offers.get(request_id, driver_id)
        if offer is None:
            raise OfferNotFound(request_id=request_id)
        if offer.status != OfferStatus.NOTIFIED:
            raise AlreadyResponded(f"offer already {offer.status.value}", request_id=request_id)

        if not await self._offers.reject(request_id, driver_id, self._clock()):
            raise AlreadyResponded(request_id=request_id)

        await log_info(
            f"Водитель {driver_id} отклонил заявку {request.request_number}",
            type_msg=TypeMsg.INFO,
            extra={"request_id": request_id},
        )
        return request
