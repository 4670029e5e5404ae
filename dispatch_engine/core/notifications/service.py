# dispatch_engine/core/notifications/service.py
"""
Сервис уведомлений.

Push-уведомления публикуются в шину событий (push.send) — фактическую
доставку выполняет внешний сервис. Real-time события уходят через
внедрённый Broadcaster. Ни один сбой транспорта не пробрасывается:
уведомления — best-effort и не влияют на исход диспетчеризации.
"""

from __future__ import annotations

from typing import Any, Iterable, Protocol

from pydantic import BaseModel

from dispatch_engine.common.constants import TypeMsg
from dispatch_engine.common.logger import log_error, log_info
from dispatch_engine.core.drivers.models import Driver
from dispatch_engine.core.notifications.models import PushNotification, RealtimeEvent
from dispatch_engine.infra.event_bus import DomainEvent, EventBus, EventTypes

BROADCAST_TOPIC = "broadcast"


def driver_topic(driver_id: str) -> str:
    return f"driver:{driver_id}"


def company_topic(company_id: str) -> str:
    return f"company:{company_id}"


class Broadcaster(Protocol):
    """Канал real-time рассылки по топикам."""

    async def publish(self, topic: str, event: BaseModel | dict[str, Any]) -> None:
        ...


class NotificationService:
    """Отправка push-уведомлений, real-time событий и доменных фактов."""

    def __init__(self, event_bus: EventBus, broadcaster: Broadcaster) -> None:
        """
        Args:
            event_bus: Шина событий (push и доменные события)
            broadcaster: Канал real-time рассылки
        """
        self._event_bus = event_bus
        self._broadcaster = broadcaster

    async def push(self, driver: Driver, notification: PushNotification) -> bool:
        """
        Ставит push-уведомление водителю в очередь доставки.

        Returns:
            True если запрос на отправку опубликован
        """
        if not driver.push_token:
            await log_info(
                f"У водителя {driver.id} нет push-токена, уведомление {notification.kind} пропущено",
                type_msg=TypeMsg.DEBUG,
            )
            return False

        try:
            published = await self._event_bus.publish(DomainEvent(
                event_type=EventTypes.PUSH_SEND,
                payload={
                    "driver_id": driver.id,
                    "token": driver.push_token,
                    "title": notification.title,
                    "body": notification.body(),
                    "data": notification.model_dump(mode="json"),
                },
            ))
        except Exception as e:
            await log_error(
                f"Ошибка отправки push {notification.kind} водителю {driver.id}: {e}",
                extra={"driver_id": driver.id},
            )
            return False

        return published is not False

    async def push_many(self, drivers: Iterable[Driver], notification: PushNotification) -> int:
        """Отправляет одно уведомление нескольким водителям; сбой одного не мешает остальным."""
        sent = 0
        for driver in drivers:
            if await self.push(driver, notification):
                sent += 1
        return sent

    async def broadcast(self, topic: str, event: RealtimeEvent) -> None:
        """Публикует real-time событие в топик."""
        try:
            await self._broadcaster.publish(topic, event)
        except Exception as e:
            await log_error(f"Ошибка real-time рассылки {event.type} в {topic}: {e}")

    async def publish_fact(self, event_type: str, payload: dict[str, Any]) -> None:
        """Публикует доменный факт для внешних потребителей."""
        try:
            await self._event_bus.publish(DomainEvent(event_type=event_type, payload=payload))
        except Exception as e:
            await log_error(f"Ошибка публикации события {event_type}: {e}")
