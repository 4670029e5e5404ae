# dispatch_engine/core/drivers/service.py
"""
Сервис присутствия водителей.

Водитель периодически сообщает позицию (heartbeat) и переключает
доступность. Монитор живости переводит в недоступные тех, кто молчит
дольше heartbeat_timeout.
"""

from __future__ import annotations

from datetime import datetime, timedelta

from dispatch_engine.common.clock import Clock, utcnow
from dispatch_engine.common.constants import TypeMsg
from dispatch_engine.common.errors import DriverNotFound
from dispatch_engine.common.logger import log_info
from dispatch_engine.core.drivers.models import Driver
from dispatch_engine.core.drivers.repository import DriverRepository
from dispatch_engine.core.notifications.models import DriverStatusChangedEvent
from dispatch_engine.core.notifications.service import NotificationService, driver_topic
from dispatch_engine.infra.event_bus import EventTypes


class DriverPresenceService:
    """Позиция, доступность и живость водителей."""

    def __init__(
        self,
        drivers: DriverRepository,
        notifications: NotificationService,
        clock: Clock = utcnow,
    ) -> None:
        self._drivers = drivers
        self._notifications = notifications
        self._clock = clock

    async def record_presence(self, driver_id: str, latitude: float, longitude: float) -> Driver:
        """
        Сохраняет позицию водителя и время сигнала присутствия.

        Raises:
            DriverNotFound: водитель не зарегистрирован
        """
        if not await self._drivers.record_presence(driver_id, latitude, longitude, self._clock()):
            raise DriverNotFound(driver_id=driver_id)
        driver = await self._drivers.get_by_id(driver_id)
        if driver is None:
            raise DriverNotFound(driver_id=driver_id)
        return driver

    async def set_availability(self, driver_id: str, available: bool) -> Driver:
        """
        Переключает доступность водителя.
        Событие рассылается только при реальном изменении.
        """
        driver = await self._drivers.get_by_id(driver_id)
        if driver is None:
            raise DriverNotFound(driver_id=driver_id)

        changed = await self._drivers.set_availability(driver_id, available, self._clock())
        if changed:
            await self._announce(driver_id, available, reason="driver")

        updated = await self._drivers.get_by_id(driver_id)
        return updated or driver

    async def expire_stale(self, driver: Driver, now: datetime, heartbeat_timeout_seconds: int) -> bool:
        """
        Переводит молчащего водителя в недоступные.

        Returns:
            True если водитель переведён именно этим вызовом
        """
        cutoff = now - timedelta(seconds=heartbeat_timeout_seconds)
        if not await self._drivers.mark_offline_if_stale(driver.id, cutoff, now):
            return False

        await log_info(
            f"Водитель {driver.id} переведён в недоступные: нет сигнала с {driver.last_presence_at}",
            type_msg=TypeMsg.INFO,
            extra={"driver_id": driver.id},
        )
        await self._announce(driver.id, False, reason="heartbeat_timeout")
        return True

    async def _announce(self, driver_id: str, available: bool, reason: str) -> None:
        await self._notifications.broadcast(
            driver_topic(driver_id),
            DriverStatusChangedEvent(driver_id=driver_id, available=available, reason=reason),
        )
        await self._notifications.publish_fact(
            EventTypes.DRIVER_ONLINE if available else EventTypes.DRIVER_OFFLINE,
            {"driver_id": driver_id, "reason": reason},
        )
