# dispatch_engine/core/claims/repository.py
"""
Атомарная фиксация захвата заявки водителем.

Захват — одна транзакция:
1. блокировка строки водителя (два accept одного водителя идут по очереди);
2. условное назначение: driver_id IS NULL, заявка не завершена,
   у водителя нет другой незабранной заявки;
3. своё предложение -> accepted (только из notified и до expires_at);
4. все остальные notified-предложения заявки -> expired;
5. drivers.on_delivery = TRUE.
Если любое условие не выполнено — откат, заявка не меняется.
"""

from __future__ import annotations

from datetime import datetime
from typing import Optional

from dispatch_engine.common.constants import OfferStatus
from dispatch_engine.core.requests.repository import UNPICKED_FOR_DRIVER_SQL
from dispatch_engine.infra.database import DatabaseManager


class _ClaimRejected(Exception):
    """Внутренний сигнал для отката транзакции захвата."""


class ClaimRepository:
    """Репозиторий захвата заявок."""

    def __init__(self, db: DatabaseManager) -> None:
        self._db = db

    async def commit_claim(
        self,
        request_id: str,
        driver_id: str,
        now: datetime,
    ) -> Optional[list[str]]:
        """
        Пытается закрепить заявку за водителем.

        Returns:
            Список водителей, чьи предложения истекли из-за захвата,
            или None, если захват не состоялся (условие уже ложно)
        """
        try:
            async with self._db.transaction() as conn:
                await conn.execute("SELECT id FROM drivers WHERE id = $1 FOR UPDATE", driver_id)

                claimed = await conn.fetchrow(
                    f"""
                    UPDATE delivery_requests
                    SET driver_id = $2, accepted_at = $3, updated_at = $3
                    WHERE id = $1
                      AND driver_id IS NULL
                      AND is_cancelled = FALSE
                      AND is_completed = FALSE
                      AND NOT EXISTS ({UNPICKED_FOR_DRIVER_SQL.replace("$1", "$2")})
                    RETURNING id
                    """,
                    request_id,
                    driver_id,
                    now,
                )
                if claimed is None:
                    raise _ClaimRejected()

                accepted = await conn.fetchrow(
                    """
                    UPDATE driver_offers
                    SET status = $4, responded_at = $3
                    WHERE request_id = $1
                      AND driver_id = $2
                      AND status = $5
                      AND expires_at >= $3
                    RETURNING id
                    """,
                    request_id,
                    driver_id,
                    now,
                    OfferStatus.ACCEPTED.value,
                    OfferStatus.NOTIFIED.value,
                )
                if accepted is None:
                    raise _ClaimRejected()

                expired_rows = await conn.fetch(
                    """
                    UPDATE driver_offers
                    SET status = $3, responded_at = $2
                    WHERE request_id = $1 AND status = $4
                    RETURNING driver_id
                    """,
                    request_id,
                    now,
                    OfferStatus.EXPIRED.value,
                    OfferStatus.NOTIFIED.value,
                )

                await conn.execute(
                    "UPDATE drivers SET on_delivery = TRUE, updated_at = $2 WHERE id = $1",
                    driver_id,
                    now,
                )
        except _ClaimRejected:
            return None

        return [row["driver_id"] for row in expired_rows]
