# dispatch_engine/core/requests/repository.py
"""
Репозиторий заявок на доставку.

Каждый переход жизненного цикла — один условный UPDATE: предусловие
перехода записано в WHERE, а результат (затронута строка или нет)
говорит, применён ли переход именно этим вызовом.
"""

from __future__ import annotations

from datetime import datetime
from typing import Any, Optional

from asyncpg import Connection, Record

from dispatch_engine.common.constants import StopStatus
from dispatch_engine.core.requests.models import DeliveryRequest, DeliveryStop
from dispatch_engine.infra.database import DatabaseManager, affected_rows


REQUEST_COLUMNS = """
    id, request_number, company_id, customer_name, customer_phone,
    pickup_address, pickup_latitude, pickup_longitude,
    vehicle_category, total_amount, driver_amount, distance_km, estimated_minutes,
    needs_return, notes, scheduled_at, driver_id,
    created_at, dispatched_at, accepted_at, arrived_at, trip_started_at,
    delivered_at, return_started_at, returned_at, completed_at, cancelled_at,
    is_completed, is_cancelled, cancel_reason, cancel_method
"""

STOP_COLUMNS = """
    id, request_id, rank, address, latitude, longitude,
    contact_name, contact_phone, notes, status, arrived_at, completed_at
"""

# Заявка водителя, которую он ещё не забрал (водитель "занят")
UNPICKED_FOR_DRIVER_SQL = """
    SELECT 1 FROM delivery_requests busy
    WHERE busy.driver_id = $1
      AND busy.is_completed = FALSE
      AND busy.is_cancelled = FALSE
      AND busy.trip_started_at IS NULL
"""


async def release_driver(
    conn: Connection,
    driver_id: str,
    request_id: str,
    count_delivery: bool,
) -> None:
    """
    Освобождает водителя после завершения/отмены заявки.

    on_delivery остаётся TRUE, если у водителя есть другая активная заявка
    (после забора груза он может взять следующую). Строка водителя
    блокируется заранее, чтобы подзапрос видел уже зафиксированный захват.
    """
    await conn.execute("SELECT id FROM drivers WHERE id = $1 FOR UPDATE", driver_id)
    await conn.execute(
        """
        UPDATE drivers
        SET on_delivery = EXISTS (
                SELECT 1 FROM delivery_requests other
                WHERE other.driver_id = $1
                  AND other.id <> $2
                  AND other.is_completed = FALSE
                  AND other.is_cancelled = FALSE
            ),
            completed_deliveries = completed_deliveries + $3,
            updated_at = NOW()
        WHERE id = $1
        """,
        driver_id,
        request_id,
        1 if count_delivery else 0,
    )


class DeliveryRequestRepository:
    """Репозиторий заявок."""

    def __init__(self, db: DatabaseManager) -> None:
        """
        Args:
            db: Менеджер базы данных (Dependency Injection)
        """
        self._db = db

    # =========================================================================
    # ЧТЕНИЕ
    # =========================================================================

    async def get_by_id(self, request_id: str) -> Optional[DeliveryRequest]:
        """Возвращает заявку вместе с точками доставки или None."""
        row = await self._db.fetchrow(
            f"SELECT {REQUEST_COLUMNS} FROM delivery_requests WHERE id = $1",
            request_id,
        )
        if row is None:
            return None

        stop_rows = await self._db.fetch(
            f"SELECT {STOP_COLUMNS} FROM delivery_stops WHERE request_id = $1 ORDER BY rank",
            request_id,
        )
        return self._row_to_request(row, stop_rows)

    async def find_active_by_driver(self, driver_id: str) -> Optional[DeliveryRequest]:
        """Незавершённая заявка водителя (самая ранняя по времени принятия)."""
        request_id = await self._db.fetchval(
            """
            SELECT id FROM delivery_requests
            WHERE driver_id = $1
              AND is_completed = FALSE
              AND is_cancelled = FALSE
            ORDER BY accepted_at ASC NULLS LAST, created_at ASC
            LIMIT 1
            """,
            driver_id,
        )
        if request_id is None:
            return None
        return await self.get_by_id(request_id)

    async def has_unpicked_for_driver(self, driver_id: str) -> bool:
        """Есть ли у водителя принятая, но ещё не забранная заявка."""
        value = await self._db.fetchval(
            f"SELECT EXISTS ({UNPICKED_FOR_DRIVER_SQL})",
            driver_id,
        )
        return bool(value)

    async def find_unclaimed_older_than(self, cutoff: datetime, limit: int) -> list[str]:
        """
        ID невзятых незавершённых заявок старше cutoff.
        Возраст отложенной заявки считается от scheduled_at.
        """
        rows = await self._db.fetch(
            """
            SELECT id FROM delivery_requests
            WHERE driver_id IS NULL
              AND is_cancelled = FALSE
              AND is_completed = FALSE
              AND COALESCE(scheduled_at, created_at) < $1
            ORDER BY created_at
            LIMIT $2
            """,
            cutoff,
            limit,
        )
        return [row["id"] for row in rows]

    async def find_due_scheduled(self, now: datetime, limit: int) -> list[str]:
        """ID отложенных заявок, время которых наступило, а рассылки ещё не было."""
        rows = await self._db.fetch(
            """
            SELECT id FROM delivery_requests
            WHERE scheduled_at IS NOT NULL
              AND scheduled_at <= $1
              AND dispatched_at IS NULL
              AND driver_id IS NULL
              AND is_cancelled = FALSE
              AND is_completed = FALSE
            ORDER BY scheduled_at
            LIMIT $2
            """,
            now,
            limit,
        )
        return [row["id"] for row in rows]

    # =========================================================================
    # СОЗДАНИЕ
    # =========================================================================

    async def create(self, request: DeliveryRequest) -> DeliveryRequest:
        """Сохраняет заявку и её точки одной транзакцией."""
        async with self._db.transaction() as conn:
            await conn.execute(
                """
                INSERT INTO delivery_requests (
                    id, request_number, company_id, customer_name, customer_phone,
                    pickup_address, pickup_latitude, pickup_longitude,
                    vehicle_category, total_amount, driver_amount, distance_km,
                    estimated_minutes, needs_return, notes, scheduled_at, created_at
                )
                VALUES ($1, $2, $3, $4, $5, $6, $7, $8, $9, $10, $11, $12, $13, $14, $15, $16, $17)
                """,
                request.id,
                request.request_number,
                request.company_id,
                request.customer_name,
                request.customer_phone,
                request.pickup_address,
                request.pickup_latitude,
                request.pickup_longitude,
                request.vehicle_category,
                request.total_amount,
                request.driver_amount,
                request.distance_km,
                request.estimated_minutes,
                request.needs_return,
                request.notes,
                request.scheduled_at,
                request.created_at,
            )
            await conn.executemany(
                """
                INSERT INTO delivery_stops (
                    id, request_id, rank, address, latitude, longitude,
                    contact_name, contact_phone, notes, status
                )
                VALUES ($1, $2, $3, $4, $5, $6, $7, $8, $9, $10)
                """,
                [
                    (
                        stop.id, request.id, stop.rank, stop.address, stop.latitude,
                        stop.longitude, stop.contact_name, stop.contact_phone,
                        stop.notes, stop.status.value,
                    )
                    for stop in request.stops
                ],
            )
        return request

    # =========================================================================
    # УСЛОВНЫЕ ПЕРЕХОДЫ
    # =========================================================================

    async def mark_dispatched(self, request_id: str, now: datetime) -> bool:
        """Отмечает, что рассылка предложений выполнена."""
        status = await self._db.execute(
            """
            UPDATE delivery_requests
            SET dispatched_at = $2, updated_at = $2
            WHERE id = $1
              AND dispatched_at IS NULL
              AND driver_id IS NULL
              AND is_cancelled = FALSE
              AND is_completed = FALSE
            """,
            request_id,
            now,
        )
        return affected_rows(status) == 1

    async def mark_arrived(self, request_id: str, driver_id: str, now: datetime) -> bool:
        status = await self._db.execute(
            """
            UPDATE delivery_requests
            SET arrived_at = $3, updated_at = $3
            WHERE id = $1
              AND driver_id = $2
              AND arrived_at IS NULL
              AND is_cancelled = FALSE
              AND is_completed = FALSE
            """,
            request_id,
            driver_id,
            now,
        )
        return affected_rows(status) == 1

    async def mark_picked_up(self, request_id: str, driver_id: str, now: datetime) -> bool:
        status = await self._db.execute(
            """
            UPDATE delivery_requests
            SET trip_started_at = $3, updated_at = $3
            WHERE id = $1
              AND driver_id = $2
              AND arrived_at IS NOT NULL
              AND trip_started_at IS NULL
              AND is_cancelled = FALSE
              AND is_completed = FALSE
            """,
            request_id,
            driver_id,
            now,
        )
        return affected_rows(status) == 1

    async def complete_stop(
        self,
        request_id: str,
        driver_id: str,
        stop_id: str,
        now: datetime,
    ) -> bool:
        """Завершает точку доставки, если заявка в пути и точка ещё не завершена."""
        status = await self._db.execute(
            """
            UPDATE delivery_stops s
            SET status = $5, completed_at = $4
            FROM delivery_requests r
            WHERE s.id = $3
              AND s.request_id = $1
              AND s.status <> $5
              AND r.id = s.request_id
              AND r.driver_id = $2
              AND r.trip_started_at IS NOT NULL
              AND r.is_cancelled = FALSE
              AND r.is_completed = FALSE
            """,
            request_id,
            driver_id,
            stop_id,
            now,
            StopStatus.COMPLETED.value,
        )
        return affected_rows(status) == 1

    async def mark_delivered(
        self,
        request_id: str,
        driver_id: str,
        now: datetime,
        complete: bool,
    ) -> bool:
        """
        Отмечает доставку после завершения всех точек.

        Args:
            complete: Без обратного рейса — сразу завершить заявку
                      и освободить водителя (счётчик доставок +1)
        """
        completion = ", is_completed = TRUE, completed_at = $3" if complete else ""
        async with self._db.transaction() as conn:
            row = await conn.fetchrow(
                f"""
                UPDATE delivery_requests
                SET delivered_at = $3, updated_at = $3{completion}
                WHERE id = $1
                  AND driver_id = $2
                  AND trip_started_at IS NOT NULL
                  AND delivered_at IS NULL
                  AND is_cancelled = FALSE
                  AND is_completed = FALSE
                  AND NOT EXISTS (
                      SELECT 1 FROM delivery_stops
                      WHERE request_id = $1 AND status <> $4
                  )
                RETURNING id
                """,
                request_id,
                driver_id,
                now,
                StopStatus.COMPLETED.value,
            )
            if row is None:
                return False
            if complete:
                await release_driver(conn, driver_id, request_id, count_delivery=True)
        return True

    async def mark_return_started(self, request_id: str, driver_id: str, now: datetime) -> bool:
        status = await self._db.execute(
            """
            UPDATE delivery_requests
            SET return_started_at = $3, updated_at = $3
            WHERE id = $1
              AND driver_id = $2
              AND needs_return = TRUE
              AND delivered_at IS NOT NULL
              AND return_started_at IS NULL
              AND is_cancelled = FALSE
              AND is_completed = FALSE
            """,
            request_id,
            driver_id,
            now,
        )
        return affected_rows(status) == 1

    async def mark_returned(self, request_id: str, driver_id: str, now: datetime) -> bool:
        """Завершает обратный рейс: заявка завершена, водитель свободен."""
        async with self._db.transaction() as conn:
            row = await conn.fetchrow(
                """
                UPDATE delivery_requests
                SET returned_at = $3, is_completed = TRUE, completed_at = $3, updated_at = $3
                WHERE id = $1
                  AND driver_id = $2
                  AND return_started_at IS NOT NULL
                  AND is_cancelled = FALSE
                  AND is_completed = FALSE
                RETURNING id
                """,
                request_id,
                driver_id,
                now,
            )
            if row is None:
                return False
            await release_driver(conn, driver_id, request_id, count_delivery=True)
        return True

    async def cancel(
        self,
        request_id: str,
        reason: str,
        method: str,
        now: datetime,
        only_unclaimed: bool = False,
    ) -> tuple[bool, Optional[str]]:
        """
        Отменяет незавершённую заявку.

        Args:
            only_unclaimed: Отменять только если водитель не назначен
                            (автоотмена не должна отменить только что взятую заявку)

        Returns:
            (отменена ли этим вызовом, назначенный водитель на момент отмены)
        """
        unclaimed = " AND driver_id IS NULL" if only_unclaimed else ""
        async with self._db.transaction() as conn:
            row = await conn.fetchrow(
                f"""
                UPDATE delivery_requests
                SET is_cancelled = TRUE, cancelled_at = $4,
                    cancel_reason = $2, cancel_method = $3, updated_at = $4
                WHERE id = $1
                  AND is_cancelled = FALSE
                  AND is_completed = FALSE{unclaimed}
                RETURNING driver_id
                """,
                request_id,
                reason,
                method,
                now,
            )
            if row is None:
                return False, None

            driver_id = row["driver_id"]
            if driver_id is not None:
                await release_driver(conn, driver_id, request_id, count_delivery=False)
        return True, driver_id

    # =========================================================================
    # МАППИНГ
    # =========================================================================

    @staticmethod
    def _row_to_stop(row: Record | dict[str, Any]) -> DeliveryStop:
        return DeliveryStop(**dict(row))

    def _row_to_request(
        self,
        row: Record | dict[str, Any],
        stop_rows: list[Record] | list[dict[str, Any]],
    ) -> DeliveryRequest:
        """Преобразует строки БД в модель заявки."""
        return DeliveryRequest(
            **dict(row),
            stops=[self._row_to_stop(stop_row) for stop_row in stop_rows],
        )
