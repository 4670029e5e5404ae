# dispatch_engine/core/dispatch/service.py
"""
Сервис диспетчеризации.

Единая точка входа для внешних операций: создание и рассылка заявки,
ответ водителя, переходы жизненного цикла, отмена и чтение состояния.
Собирает Geo Matcher, Offer Fan-out, Claim Resolver и машину состояний.
"""

from __future__ import annotations

from datetime import datetime
from typing import Optional

from dispatch_engine.common.clock import Clock, utcnow
from dispatch_engine.common.constants import (
    AUTO_CANCEL_REASON,
    CancelActor,
    LifecycleTransition,
    OfferAction,
    TypeMsg,
)
from dispatch_engine.common.errors import (
    AlreadyClaimed,
    AlreadyTerminal,
    DriverNotFound,
    NoDriversAvailable,
    RequestNotFound,
)
from dispatch_engine.common.logger import log_info, log_warning
from dispatch_engine.core.claims.service import ClaimResolver
from dispatch_engine.core.dispatch.models import DispatchOutcome
from dispatch_engine.core.drivers.repository import DriverRepository
from dispatch_engine.core.lifecycle.service import LifecycleService
from dispatch_engine.core.matching.service import GeoMatcher
from dispatch_engine.core.offers.models import PendingOffer
from dispatch_engine.core.offers.repository import OfferRepository
from dispatch_engine.core.offers.service import OfferFanout
from dispatch_engine.core.requests.models import (
    DeliveryRequest,
    DeliveryRequestCreateDTO,
    LifecycleResult,
)
from dispatch_engine.core.requests.repository import DeliveryRequestRepository
from dispatch_engine.core.settings.service import DispatchSettingsProvider


class DispatchService:
    """Фасад диспетчерского движка."""

    def __init__(
        self,
        requests: DeliveryRequestRepository,
        offers: OfferRepository,
        drivers: DriverRepository,
        matcher: GeoMatcher,
        fanout: OfferFanout,
        claims: ClaimResolver,
        lifecycle: LifecycleService,
        settings_provider: DispatchSettingsProvider,
        clock: Clock = utcnow,
    ) -> None:
        self._requests = requests
        self._offers = offers
        self._drivers = drivers
        self._matcher = matcher
        self._fanout = fanout
        self._claims = claims
        self._lifecycle = lifecycle
        self._settings = settings_provider
        self._clock = clock

    # =========================================================================
    # ЧТЕНИЕ
    # =========================================================================

    async def get_request(self, request_id: str) -> DeliveryRequest:
        request = await self._requests.get_by_id(request_id)
        if request is None:
            raise RequestNotFound(request_id=request_id)
        return request

    async def list_pending_offers(self, driver_id: str) -> list[PendingOffer]:
        """Непросроченные предложения водителя по ещё не взятым заявкам."""
        await self._require_driver(driver_id)
        return await self._offers.list_pending_for_driver(driver_id, self._clock())

    async def get_active_request(self, driver_id: str) -> Optional[DeliveryRequest]:
        """Текущая незавершённая заявка водителя или None."""
        await self._require_driver(driver_id)
        return await self._requests.find_active_by_driver(driver_id)

    async def _require_driver(self, driver_id: str) -> None:
        if await self._drivers.get_by_id(driver_id) is None:
            raise DriverNotFound(driver_id=driver_id)

    # =========================================================================
    # ДИСПЕТЧЕРИЗАЦИЯ
    # =========================================================================

    async def create_and_dispatch(self, dto: DeliveryRequestCreateDTO) -> DispatchOutcome:
        """
        Сохраняет заявку и сразу запускает рассылку.

        Отложенная заявка (scheduled_at в будущем) только сохраняется:
        рассылку запустит монитор отложенных заявок.

        Raises:
            NoDriversAvailable: в радиусе нет подходящих водителей;
                                заявка остаётся сохранённой в состоянии pending
        """
        now = self._clock()
        request = await self._requests.create(dto.to_request(now))

        await log_info(
            f"Создана заявка {request.request_number} ({len(request.stops)} точек)",
            type_msg=TypeMsg.INFO,
            extra={"request_id": request.id, "company_id": request.company_id},
        )

        if request.scheduled_at is not None and request.scheduled_at > now:
            return DispatchOutcome(request=request, scheduled=True)

        return await self._dispatch(request, now)

    async def dispatch(self, request_id: str) -> DispatchOutcome:
        """
        Запускает (повторную) рассылку существующей заявки.
        Водители, уже получившие предложение, пропускаются.
        """
        request = await self.get_request(request_id)
        return await self._dispatch(request, self._clock())

    async def _dispatch(self, request: DeliveryRequest, now: datetime) -> DispatchOutcome:
        if request.is_terminal:
            raise AlreadyTerminal(request_id=request.id)
        if request.driver_id is not None:
            raise AlreadyClaimed("request already has a driver", request_id=request.id)

        dispatch_settings = await self._settings.get()
        candidates = await self._matcher.find_candidates(
            request.pickup_latitude,
            request.pickup_longitude,
            dispatch_settings.search_radius_km,
            dispatch_settings.heartbeat_timeout_seconds,
            now,
            vehicle_category=request.vehicle_category,
        )
        if not candidates:
            await log_warning(
                f"Заявка {request.request_number}: нет доступных водителей в радиусе "
                f"{dispatch_settings.search_radius_km} км",
                extra={"request_id": request.id},
            )
            raise NoDriversAvailable(request_id=request.id)

        offers = await self._fanout.fan_out(request, candidates, dispatch_settings, now)
        dispatched = await self._requests.get_by_id(request.id) or request

        return DispatchOutcome(
            request=dispatched,
            offers_created=len(offers),
            notified_driver_ids=[offer.driver_id for offer in offers],
            expires_at=offers[0].expires_at if offers else None,
        )

    # =========================================================================
    # ОТВЕТ ВОДИТЕЛЯ И ЖИЗНЕННЫЙ ЦИКЛ
    # =========================================================================

    async def respond(self, request_id: str, driver_id: str, action: OfferAction) -> DeliveryRequest:
        """Принятие или отклонение предложения водителем."""
        return await self._claims.respond(request_id, driver_id, action)

    async def advance(
        self,
        request_id: str,
        driver_id: str,
        transition: LifecycleTransition,
    ) -> LifecycleResult:
        return await self._lifecycle.advance(request_id, driver_id, transition)

    async def cancel(self, request_id: str, actor: CancelActor, reason: str) -> DeliveryRequest:
        return await self._lifecycle.cancel(request_id, actor, reason)

    async def auto_cancel(self, request_id: str) -> DeliveryRequest:
        """Системная отмена невзятой заявки (вызывает монитор автоотмены)."""
        return await self._lifecycle.cancel(
            request_id,
            CancelActor.SYSTEM,
            AUTO_CANCEL_REASON,
            only_unclaimed=True,
        )
