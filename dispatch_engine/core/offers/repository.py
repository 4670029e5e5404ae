# dispatch_engine/core/offers/repository.py
"""
Репозиторий предложений водителям.
Строки никогда не удаляются — это журнал рассылок и ответов.
"""

from __future__ import annotations

from datetime import datetime
from typing import Any, Optional
from uuid import uuid4

from asyncpg import Record

from dispatch_engine.common.constants import OfferStatus
from dispatch_engine.core.offers.models import DriverOffer, PendingOffer
from dispatch_engine.infra.database import DatabaseManager, affected_rows


OFFER_COLUMNS = "id, request_id, driver_id, status, distance_km, created_at, expires_at, responded_at"


class OfferRepository:
    """Репозиторий предложений."""

    def __init__(self, db: DatabaseManager) -> None:
        self._db = db

    async def create_many(
        self,
        request_id: str,
        candidates: list[tuple[str, float]],
        now: datetime,
        expires_at: datetime,
    ) -> list[DriverOffer]:
        """
        Создаёт предложения для кандидатов одним INSERT.
        Существующие пары (заявка, водитель) пропускаются.

        Args:
            candidates: Пары (driver_id, distance_km)

        Returns:
            Только реально созданные предложения
        """
        if not candidates:
            return []

        rows = await self._db.fetch(
            f"""
            INSERT INTO driver_offers (id, request_id, driver_id, status, distance_km, created_at, expires_at)
            SELECT c.offer_id, $1, c.driver_id, $5, c.distance_km, $6, $7
            FROM unnest($2::text[], $3::text[], $4::float8[]) AS c(offer_id, driver_id, distance_km)
            ON CONFLICT (request_id, driver_id) DO NOTHING
            RETURNING {OFFER_COLUMNS}
            """,
            request_id,
            [str(uuid4()) for _ in candidates],
            [driver_id for driver_id, _ in candidates],
            [distance for _, distance in candidates],
            OfferStatus.NOTIFIED.value,
            now,
            expires_at,
        )
        return [self._row_to_offer(row) for row in rows]

    async def get(self, request_id: str, driver_id: str) -> Optional[DriverOffer]:
        row = await self._db.fetchrow(
            f"SELECT {OFFER_COLUMNS} FROM driver_offers WHERE request_id = $1 AND driver_id = $2",
            request_id,
            driver_id,
        )
        return self._row_to_offer(row) if row else None

    async def expire_if_stale(self, offer_id: str, now: datetime) -> bool:
        """Ленивая просрочка: переводит notified-предложение в expired после expires_at."""
        status = await self._db.execute(
            """
            UPDATE driver_offers
            SET status = $3, responded_at = $2
            WHERE id = $1 AND status = $4 AND expires_at < $2
            """,
            offer_id,
            now,
            OfferStatus.EXPIRED.value,
            OfferStatus.NOTIFIED.value,
        )
        return affected_rows(status) == 1

    async def reject(self, request_id: str, driver_id: str, now: datetime) -> bool:
        status = await self._db.execute(
            """
            UPDATE driver_offers
            SET status = $4, responded_at = $3
            WHERE request_id = $1 AND driver_id = $2 AND status = $5
            """,
            request_id,
            driver_id,
            now,
            OfferStatus.REJECTED.value,
            OfferStatus.NOTIFIED.value,
        )
        return affected_rows(status) == 1

    async def cancel_notified(self, request_id: str, now: datetime) -> list[str]:
        """Отменяет все ожидающие предложения заявки, возвращает ID их водителей."""
        rows = await self._db.fetch(
            """
            UPDATE driver_offers
            SET status = $3, responded_at = $2
            WHERE request_id = $1 AND status = $4
            RETURNING driver_id
            """,
            request_id,
            now,
            OfferStatus.CANCELLED.value,
            OfferStatus.NOTIFIED.value,
        )
        return [row["driver_id"] for row in rows]

    async def list_pending_for_driver(self, driver_id: str, now: datetime) -> list[PendingOffer]:
        """Непросроченные предложения водителя по невзятым активным заявкам."""
        rows = await self._db.fetch(
            """
            SELECT o.id AS offer_id, o.request_id, o.distance_km, o.created_at, o.expires_at,
                   r.request_number, r.pickup_address, r.pickup_latitude, r.pickup_longitude,
                   r.vehicle_category, r.driver_amount, r.needs_return,
                   (SELECT COUNT(*) FROM delivery_stops s WHERE s.request_id = r.id) AS stops_count
            FROM driver_offers o
            JOIN delivery_requests r ON r.id = o.request_id
            WHERE o.driver_id = $1
              AND o.status = $3
              AND o.expires_at >= $2
              AND r.driver_id IS NULL
              AND r.is_cancelled = FALSE
              AND r.is_completed = FALSE
            ORDER BY o.created_at DESC
            """,
            driver_id,
            now,
            OfferStatus.NOTIFIED.value,
        )
        return [PendingOffer(**dict(row)) for row in rows]

    @staticmethod
    def _row_to_offer(row: Record | dict[str, Any]) -> DriverOffer:
        return DriverOffer(**dict(row))
