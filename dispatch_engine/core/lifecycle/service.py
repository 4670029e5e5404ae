# dispatch_engine/core/lifecycle/service.py
"""
Машина состояний заявки.

Переходы инициирует назначенный водитель:
    accepted -> arrived-pickup -> picked-up -> delivered (по точкам)
    [-> start-return -> complete-return]
Отмену инициирует компания, администратор или система.

Каждый переход — условная запись. Повтор уже применённого перехода
возвращает текущее состояние без побочных эффектов; переход из
завершённого состояния отклоняется с AlreadyTerminal.
"""

from __future__ import annotations

from typing import Optional

from dispatch_engine.common.clock import Clock, utcnow
from dispatch_engine.common.constants import (
    CancelActor,
    LifecycleTransition,
    RequestState,
    StopStatus,
    TypeMsg,
)
from dispatch_engine.common.errors import (
    AlreadyClaimed,
    AlreadyTerminal,
    InvalidTransition,
    NotAssignedDriver,
    RequestNotFound,
)
from dispatch_engine.common.logger import log_info
from dispatch_engine.core.drivers.repository import DriverRepository
from dispatch_engine.core.notifications.models import (
    CancelledNotification,
    RequestStatusChangedEvent,
    StopCompletedEvent,
    StopCompletedNotification,
)
from dispatch_engine.core.notifications.service import (
    BROADCAST_TOPIC,
    NotificationService,
    company_topic,
    driver_topic,
)
from dispatch_engine.core.offers.repository import OfferRepository
from dispatch_engine.core.requests.models import DeliveryRequest, DeliveryStop, LifecycleResult
from dispatch_engine.core.requests.repository import DeliveryRequestRepository
from dispatch_engine.infra.event_bus import EventTypes


def _result(request: DeliveryRequest, completed_stop: Optional[DeliveryStop] = None) -> LifecycleResult:
    remaining = [stop for stop in request.stops if stop.status != StopStatus.COMPLETED]
    return LifecycleResult(
        request_id=request.id,
        state=request.state,
        completed_stop=completed_stop,
        next_stop=request.next_stop,
        remaining_stops=len(remaining),
    )


class LifecycleService:
    """Переходы жизненного цикла и отмена заявок."""

    def __init__(
        self,
        requests: DeliveryRequestRepository,
        offers: OfferRepository,
        drivers: DriverRepository,
        notifications: NotificationService,
        clock: Clock = utcnow,
    ) -> None:
        self._requests = requests
        self._offers = offers
        self._drivers = drivers
        self._notifications = notifications
        self._clock = clock

    async def _load(self, request_id: str) -> DeliveryRequest:
        request = await self._requests.get_by_id(request_id)
        if request is None:
            raise RequestNotFound(request_id=request_id)
        return request

    # =========================================================================
    # ПЕРЕХОДЫ ВОДИТЕЛЯ
    # =========================================================================

    async def advance(
        self,
        request_id: str,
        driver_id: str,
        transition: LifecycleTransition,
    ) -> LifecycleResult:
        """
        Применяет переход от имени водителя.

        Raises:
            RequestNotFound: заявки нет
            NotAssignedDriver: водитель не назначен на заявку
            AlreadyTerminal: заявка уже завершена или отменена
            InvalidTransition: не выполнено предусловие перехода
        """
        request = await self._load(request_id)
        if request.driver_id != driver_id:
            if request.driver_id is None and not request.is_terminal:
                raise InvalidTransition("request is not accepted yet", request_id=request_id)
            raise NotAssignedDriver(request_id=request_id)

        if transition == LifecycleTransition.DELIVERED:
            return await self._deliver(request, driver_id)

        if self._already_applied(request, transition):
            return _result(request)
        self._check_allowed(request, transition)

        if await self._write(request, driver_id, transition):
            updated = await self._load(request_id)
            await self._after_transition(updated, driver_id, transition)
            return _result(updated)

        # Условная запись не прошла: состояние изменилось параллельно
        current = await self._load(request_id)
        if self._already_applied(current, transition):
            return _result(current)
        self._check_allowed(current, transition)
        raise InvalidTransition(request_id=request_id)

    @staticmethod
    def _already_applied(request: DeliveryRequest, transition: LifecycleTransition) -> bool:
        if transition == LifecycleTransition.ARRIVED_PICKUP:
            return request.arrived_at is not None and not request.is_terminal
        if transition == LifecycleTransition.PICKED_UP:
            return request.trip_started_at is not None and not request.is_terminal
        if transition == LifecycleTransition.START_RETURN:
            return request.return_started_at is not None and not request.is_terminal
        if transition == LifecycleTransition.COMPLETE_RETURN:
            # Повтор завершающего перехода допустим и после завершения
            return request.returned_at is not None and request.is_completed
        return False

    @staticmethod
    def _check_allowed(request: DeliveryRequest, transition: LifecycleTransition) -> None:
        if request.is_cancelled:
            raise AlreadyTerminal("request is cancelled", request_id=request.id)
        if request.is_completed:
            raise AlreadyTerminal("request is already completed", request_id=request.id)

        if transition == LifecycleTransition.ARRIVED_PICKUP:
            return
        if transition == LifecycleTransition.PICKED_UP:
            if request.arrived_at is None:
                raise InvalidTransition("arrival at pickup not confirmed", request_id=request.id)
            return

        if not request.needs_return:
            raise InvalidTransition("request has no return leg", request_id=request.id)
        if request.delivered_at is None:
            raise InvalidTransition("delivery not confirmed", request_id=request.id)
        if transition == LifecycleTransition.COMPLETE_RETURN and request.return_started_at is None:
            raise InvalidTransition("return not started", request_id=request.id)

    async def _write(
        self,
        request: DeliveryRequest,
        driver_id: str,
        transition: LifecycleTransition,
    ) -> bool:
        now = self._clock()
        if transition == LifecycleTransition.ARRIVED_PICKUP:
            return await self._requests.mark_arrived(request.id, driver_id, now)
        if transition == LifecycleTransition.PICKED_UP:
            return await self._requests.mark_picked_up(request.id, driver_id, now)
        if transition == LifecycleTransition.START_RETURN:
            return await self._requests.mark_return_started(request.id, driver_id, now)
        return await self._requests.mark_returned(request.id, driver_id, now)

    async def _deliver(self, request: DeliveryRequest, driver_id: str) -> LifecycleResult:
        """
        Подтверждение доставки: завершает первую по рангу незавершённую точку.
        Когда точек не осталось, заявка становится доставленной
        (и завершённой, если обратный рейс не нужен).
        """
        if request.is_cancelled:
            raise AlreadyTerminal("request is cancelled", request_id=request.id)
        if request.is_completed:
            if not request.needs_return:
                return _result(request)
            raise AlreadyTerminal("request is already completed", request_id=request.id)
        if request.delivered_at is not None:
            return _result(request)
        if request.trip_started_at is None:
            raise InvalidTransition("pickup not confirmed", request_id=request.id)

        now = self._clock()
        stop = request.next_stop
        if stop is not None:
            if not await self._requests.complete_stop(request.id, driver_id, stop.id, now):
                # Точку завершил параллельный вызов
                current = await self._load(request.id)
                if current.is_cancelled:
                    raise AlreadyTerminal("request is cancelled", request_id=request.id)
                return _result(current)

            request = await self._load(request.id)
            completed = next(s for s in request.stops if s.id == stop.id)
            if request.next_stop is not None:
                await self._notify_stop_completed(request, driver_id, completed)
                return _result(request, completed_stop=completed)
        else:
            completed = None

        complete = not request.needs_return
        if not await self._requests.mark_delivered(request.id, driver_id, now, complete=complete):
            current = await self._load(request.id)
            if current.is_cancelled:
                raise AlreadyTerminal("request is cancelled", request_id=request.id)
            if current.delivered_at is None:
                raise InvalidTransition("undelivered stops remain", request_id=request.id)
            return _result(current, completed_stop=completed)

        updated = await self._load(request.id)
        await self._after_transition(updated, driver_id, LifecycleTransition.DELIVERED)
        return _result(updated, completed_stop=completed)

    # =========================================================================
    # УВЕДОМЛЕНИЯ ПО ПЕРЕХОДАМ
    # =========================================================================

    async def _after_transition(
        self,
        request: DeliveryRequest,
        driver_id: str,
        transition: LifecycleTransition,
    ) -> None:
        await log_info(
            f"Заявка {request.request_number}: {transition.value} -> {request.state.value}",
            type_msg=TypeMsg.INFO,
            extra={"request_id": request.id, "driver_id": driver_id},
        )
        if request.company_id:
            await self._notifications.broadcast(
                company_topic(request.company_id),
                RequestStatusChangedEvent(
                    request_id=request.id,
                    state=request.state.value,
                    driver_id=driver_id,
                ),
            )
        if request.is_completed:
            await self._notifications.publish_fact(
                EventTypes.DELIVERY_COMPLETED,
                {
                    "request_id": request.id,
                    "request_number": request.request_number,
                    "driver_id": driver_id,
                    "company_id": request.company_id,
                    "needs_return": request.needs_return,
                },
            )

    async def _notify_stop_completed(
        self,
        request: DeliveryRequest,
        driver_id: str,
        stop: DeliveryStop,
    ) -> None:
        next_stop = request.next_stop
        remaining = len([s for s in request.stops if s.status != StopStatus.COMPLETED])

        await log_info(
            f"Заявка {request.request_number}: точка {stop.rank} завершена, осталось {remaining}",
            type_msg=TypeMsg.INFO,
            extra={"request_id": request.id, "stop_id": stop.id},
        )

        driver = await self._drivers.get_by_id(driver_id)
        if driver is not None:
            await self._notifications.push(
                driver,
                StopCompletedNotification(
                    request_id=request.id,
                    request_number=request.request_number,
                    stop_id=stop.id,
                    rank=stop.rank,
                    remaining_stops=remaining,
                    next_stop_id=next_stop.id if next_stop else None,
                    next_stop_address=next_stop.address if next_stop else None,
                ),
            )
        if request.company_id:
            await self._notifications.broadcast(
                company_topic(request.company_id),
                StopCompletedEvent(
                    request_id=request.id,
                    stop_id=stop.id,
                    rank=stop.rank,
                    remaining_stops=remaining,
                ),
            )

    # =========================================================================
    # ОТМЕНА
    # =========================================================================

    async def cancel(
        self,
        request_id: str,
        actor: CancelActor,
        reason: str,
        only_unclaimed: bool = False,
    ) -> DeliveryRequest:
        """
        Отменяет незавершённую заявку.

        Назначенный водитель освобождается и получает уведомление. Если
        водителя нет, уведомляются все держатели ожидающих предложений,
        а их предложения отменяются.

        Args:
            only_unclaimed: Отменить только невзятую заявку (автоотмена)

        Raises:
            RequestNotFound, AlreadyTerminal, AlreadyClaimed (при only_unclaimed)
        """
        request = await self._load(request_id)
        self._check_cancellable(request, only_unclaimed)

        now = self._clock()
        cancelled, driver_id = await self._requests.cancel(
            request_id,
            reason,
            actor.value,
            now,
            only_unclaimed=only_unclaimed,
        )
        if not cancelled:
            current = await self._load(request_id)
            self._check_cancellable(current, only_unclaimed)
            raise AlreadyTerminal(request_id=request_id)

        updated = await self._load(request_id)
        await log_info(
            f"Заявка {updated.request_number} отменена ({actor.value}): {reason}",
            type_msg=TypeMsg.INFO,
            extra={"request_id": request_id, "driver_id": driver_id},
        )

        notification = CancelledNotification(
            request_id=updated.id,
            request_number=updated.request_number,
            reason=reason,
            cancelled_by=actor.value,
        )
        event = RequestStatusChangedEvent(
            request_id=updated.id,
            state=RequestState.CANCELLED.value,
            driver_id=driver_id,
            reason=reason,
        )

        if driver_id is not None:
            driver = await self._drivers.get_by_id(driver_id)
            if driver is not None:
                await self._notifications.push(driver, notification)
            await self._notifications.broadcast(driver_topic(driver_id), event)
        else:
            holders = await self._offers.cancel_notified(request_id, now)
            drivers = await self._drivers.get_many(holders)
            await self._notifications.push_many(drivers, notification)
            await self._notifications.broadcast(BROADCAST_TOPIC, event)

        if updated.company_id:
            await self._notifications.broadcast(company_topic(updated.company_id), event)
        await self._notifications.publish_fact(
            EventTypes.DELIVERY_CANCELLED,
            {
                "request_id": updated.id,
                "request_number": updated.request_number,
                "driver_id": driver_id,
                "company_id": updated.company_id,
                "reason": reason,
                "cancelled_by": actor.value,
            },
        )
        return updated

    @staticmethod
    def _check_cancellable(request: DeliveryRequest, only_unclaimed: bool) -> None:
        if request.is_completed:
            raise AlreadyTerminal("cannot cancel — already completed", request_id=request.id)
        if request.is_cancelled:
            raise AlreadyTerminal("already cancelled", request_id=request.id)
        if only_unclaimed and request.driver_id is not None:
            raise AlreadyClaimed("request was claimed before cancellation", request_id=request.id)
