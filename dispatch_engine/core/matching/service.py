# dispatch_engine/core/matching/service.py
"""
Geo Matcher: отбор водителей для рассылки предложения.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Optional

from dispatch_engine.common.constants import TypeMsg
from dispatch_engine.common.logger import log_info
from dispatch_engine.core.drivers.models import Driver
from dispatch_engine.core.drivers.repository import DriverRepository
from dispatch_engine.core.matching.geo import haversine_km


@dataclass
class DriverCandidate:
    """Кандидат для заявки."""
    driver: Driver
    distance_km: float

    @property
    def driver_id(self) -> str:
        return self.driver.id


class GeoMatcher:
    """
    Отбирает водителей в радиусе от точки подачи.

    Кандидат проходит, если он доступен, достижим по push, его позиция
    известна и свежая, и у него нет взятой, но не забранной заявки
    (фильтры применяет SQL). Единственный пространственный критерий —
    расстояние ≤ радиуса. Сортировка: по расстоянию, затем по ID.
    """

    def __init__(self, drivers: DriverRepository) -> None:
        self._drivers = drivers

    async def find_candidates(
        self,
        latitude: float,
        longitude: float,
        radius_km: float,
        heartbeat_timeout_seconds: int,
        now: datetime,
        vehicle_category: Optional[str] = None,
    ) -> list[DriverCandidate]:
        """
        Args:
            latitude: Широта точки подачи
            longitude: Долгота точки подачи
            radius_km: Радиус поиска
            heartbeat_timeout_seconds: Окно свежести присутствия
            now: Текущее время
            vehicle_category: Запрошенная категория (передаётся в предложение,
                              не фильтрует кандидатов)

        Returns:
            Кандидаты по возрастанию расстояния
        """
        fresh_since = now - timedelta(seconds=heartbeat_timeout_seconds)
        drivers = await self._drivers.find_dispatch_candidates(fresh_since)

        candidates: list[DriverCandidate] = []
        for driver in drivers:
            if not (driver.available and driver.is_reachable and driver.has_position):
                continue
            distance = haversine_km(latitude, longitude, driver.latitude, driver.longitude)  # type: ignore[arg-type]
            if distance <= radius_km:
                candidates.append(DriverCandidate(driver=driver, distance_km=distance))

        candidates.sort(key=lambda c: (c.distance_km, c.driver_id))

        await log_info(
            f"Найдено {len(candidates)} водителей в радиусе {radius_km} км",
            type_msg=TypeMsg.DEBUG,
            extra={"vehicle_category": vehicle_category, "prefiltered": len(drivers)},
        )
        return candidates
