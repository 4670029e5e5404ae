# dispatch_engine/core/factory.py
"""
Сборка сервисов движка из инфраструктурных клиентов.
Используется API и мониторами: один набор сервисов на процесс.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

from dispatch_engine.common.clock import Clock, utcnow
from dispatch_engine.config.loader import DispatchDefaults
from dispatch_engine.core.claims.repository import ClaimRepository
from dispatch_engine.core.claims.service import ClaimResolver
from dispatch_engine.core.dispatch.service import DispatchService
from dispatch_engine.core.drivers.repository import DriverRepository
from dispatch_engine.core.drivers.service import DriverPresenceService
from dispatch_engine.core.lifecycle.service import LifecycleService
from dispatch_engine.core.matching.service import GeoMatcher
from dispatch_engine.core.notifications.service import Broadcaster, NotificationService
from dispatch_engine.core.offers.repository import OfferRepository
from dispatch_engine.core.offers.service import OfferFanout
from dispatch_engine.core.requests.repository import DeliveryRequestRepository
from dispatch_engine.core.settings.repository import DispatchSettingsRepository
from dispatch_engine.core.settings.service import DispatchSettingsProvider
from dispatch_engine.infra.database import DatabaseManager
from dispatch_engine.infra.event_bus import EventBus


@dataclass
class Services:
    """Сервисы движка, собранные над общими репозиториями."""
    requests: DeliveryRequestRepository
    drivers: DriverRepository
    dispatch: DispatchService
    presence: DriverPresenceService
    settings_provider: DispatchSettingsProvider


def build_services(
    db: DatabaseManager,
    event_bus: EventBus,
    broadcaster: Broadcaster,
    defaults: Optional[DispatchDefaults] = None,
    clock: Clock = utcnow,
    liveness_interval_seconds: Optional[float] = None,
) -> Services:
    """
    Собирает граф сервисов.

    Args:
        db: Менеджер БД
        event_bus: Шина событий (push и доменные факты)
        broadcaster: Канал real-time рассылки
        defaults: Значения настроек по умолчанию (по умолчанию из config.json)
        clock: Источник времени
        liveness_interval_seconds: Интервал монитора живости (по умолчанию из config.json)
    """
    if defaults is None or liveness_interval_seconds is None:
        from dispatch_engine.config import settings
        if defaults is None:
            defaults = settings.dispatch
        if liveness_interval_seconds is None:
            liveness_interval_seconds = settings.monitors.LIVENESS_INTERVAL_SECONDS

    requests = DeliveryRequestRepository(db)
    drivers = DriverRepository(db)
    offers = OfferRepository(db)
    notifications = NotificationService(event_bus, broadcaster)
    settings_provider = DispatchSettingsProvider(
        DispatchSettingsRepository(db),
        defaults,
        liveness_interval_seconds=liveness_interval_seconds,
    )

    lifecycle = LifecycleService(requests, offers, drivers, notifications, clock=clock)
    dispatch = DispatchService(
        requests=requests,
        offers=offers,
        drivers=drivers,
        matcher=GeoMatcher(drivers),
        fanout=OfferFanout(offers, requests, notifications),
        claims=ClaimResolver(
            requests, offers, drivers, ClaimRepository(db), notifications, clock=clock,
        ),
        lifecycle=lifecycle,
        settings_provider=settings_provider,
        clock=clock,
    )
    return Services(
        requests=requests,
        drivers=drivers,
        dispatch=dispatch,
        presence=DriverPresenceService(drivers, notifications, clock=clock),
        settings_provider=settings_provider,
    )
