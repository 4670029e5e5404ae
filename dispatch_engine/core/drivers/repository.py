# dispatch_engine/core/drivers/repository.py
"""
Репозиторий водителей.

Флаги available / on_delivery меняются только узкими условными
UPDATE по одному полю: тумблер водителя, захват заявки и монитор
живости не должны затирать записи друг друга.
"""

from __future__ import annotations

from datetime import datetime
from typing import Any, Optional

from asyncpg import Record

from dispatch_engine.core.drivers.models import Driver
from dispatch_engine.core.requests.repository import UNPICKED_FOR_DRIVER_SQL
from dispatch_engine.infra.database import DatabaseManager, affected_rows


DRIVER_COLUMNS = """
    id, full_name, vehicle_category, push_token,
    latitude, longitude, location_updated_at,
    available, on_delivery, last_presence_at, completed_deliveries
"""


class DriverRepository:
    """Репозиторий водителей."""

    def __init__(self, db: DatabaseManager) -> None:
        self._db = db

    async def get_by_id(self, driver_id: str) -> Optional[Driver]:
        row = await self._db.fetchrow(
            f"SELECT {DRIVER_COLUMNS} FROM drivers WHERE id = $1",
            driver_id,
        )
        return self._row_to_driver(row) if row else None

    async def get_many(self, driver_ids: list[str]) -> list[Driver]:
        """Водители по списку ID (порядок не гарантируется)."""
        if not driver_ids:
            return []
        rows = await self._db.fetch(
            f"SELECT {DRIVER_COLUMNS} FROM drivers WHERE id = ANY($1::text[])",
            driver_ids,
        )
        return [self._row_to_driver(row) for row in rows]

    async def find_dispatch_candidates(self, fresh_since: datetime) -> list[Driver]:
        """
        Предварительный отбор кандидатов для Geo Matcher.

        Доступен, есть push-токен, есть позиция, присутствие не старше
        fresh_since и нет взятой, но ещё не забранной заявки.
        Расстояние считается в Python.
        """
        busy = UNPICKED_FOR_DRIVER_SQL.replace("$1", "d.id")
        rows = await self._db.fetch(
            f"""
            SELECT {DRIVER_COLUMNS}
            FROM drivers d
            WHERE d.available = TRUE
              AND d.push_token IS NOT NULL
              AND d.push_token <> ''
              AND d.latitude IS NOT NULL
              AND d.longitude IS NOT NULL
              AND d.last_presence_at IS NOT NULL
              AND d.last_presence_at >= $1
              AND NOT EXISTS ({busy})
            """,
            fresh_since,
        )
        return [self._row_to_driver(row) for row in rows]

    async def find_stale_available(self, cutoff: datetime, limit: int) -> list[Driver]:
        """Доступные водители без сигнала присутствия с момента cutoff."""
        rows = await self._db.fetch(
            f"""
            SELECT {DRIVER_COLUMNS}
            FROM drivers
            WHERE available = TRUE
              AND (last_presence_at IS NULL OR last_presence_at < $1)
            ORDER BY last_presence_at NULLS FIRST
            LIMIT $2
            """,
            cutoff,
            limit,
        )
        return [self._row_to_driver(row) for row in rows]

    async def mark_offline_if_stale(self, driver_id: str, cutoff: datetime, now: datetime) -> bool:
        """
        Переводит водителя в недоступные, если он всё ещё доступен и молчит.
        Повторный или параллельный тик монитора строку уже не затронет.
        """
        status = await self._db.execute(
            """
            UPDATE drivers
            SET available = FALSE, updated_at = $3
            WHERE id = $1
              AND available = TRUE
              AND (last_presence_at IS NULL OR last_presence_at < $2)
            """,
            driver_id,
            cutoff,
            now,
        )
        return affected_rows(status) == 1

    async def record_presence(
        self,
        driver_id: str,
        latitude: float,
        longitude: float,
        now: datetime,
    ) -> bool:
        """Обновляет позицию и время последнего присутствия."""
        status = await self._db.execute(
            """
            UPDATE drivers
            SET latitude = $2, longitude = $3,
                location_updated_at = $4, last_presence_at = $4
            WHERE id = $1
            """,
            driver_id,
            latitude,
            longitude,
            now,
        )
        return affected_rows(status) == 1

    async def set_availability(self, driver_id: str, available: bool, now: datetime) -> bool:
        """
        Тумблер водителя: меняет только available (и освежает присутствие при выходе на линию).

        Returns:
            True если значение изменилось
        """
        status = await self._db.execute(
            """
            UPDATE drivers
            SET available = $2,
                last_presence_at = CASE WHEN $2 THEN $3 ELSE last_presence_at END,
                updated_at = $3
            WHERE id = $1
              AND available IS DISTINCT FROM $2
            """,
            driver_id,
            available,
            now,
        )
        return affected_rows(status) == 1

    @staticmethod
    def _row_to_driver(row: Record | dict[str, Any]) -> Driver:
        return Driver(**dict(row))
