# dispatch_engine/core/settings/repository.py
"""
Хранилище рабочих настроек диспетчеризации (одна строка с id = 1).
"""

from __future__ import annotations

from typing import Any, Optional

from dispatch_engine.infra.database import DatabaseManager

SETTINGS_FIELDS = (
    "search_radius_km",
    "acceptance_timeout_seconds",
    "min_time_to_find_driver_seconds",
    "auto_cancel_timeout_minutes",
    "heartbeat_timeout_seconds",
)


class DispatchSettingsRepository:
    """Репозиторий настроек."""

    def __init__(self, db: DatabaseManager) -> None:
        self._db = db

    async def load(self) -> Optional[dict[str, Any]]:
        """Заданные в БД значения (None-колонки отброшены) или None, если строки нет."""
        row = await self._db.fetchrow(
            f"SELECT {', '.join(SETTINGS_FIELDS)} FROM dispatch_settings WHERE id = 1"
        )
        if row is None:
            return None
        return {key: value for key, value in dict(row).items() if value is not None}

    async def save(self, values: dict[str, Any]) -> None:
        """Upsert переданных полей."""
        fields = [name for name in SETTINGS_FIELDS if name in values]
        if not fields:
            return

        columns = ", ".join(fields)
        placeholders = ", ".join(f"${i}" for i in range(1, len(fields) + 1))
        updates = ", ".join(f"{name} = EXCLUDED.{name}" for name in fields)

        await self._db.execute(
            f"""
            INSERT INTO dispatch_settings (id, {columns}, updated_at)
            VALUES (1, {placeholders}, NOW())
            ON CONFLICT (id) DO UPDATE SET {updates}, updated_at = NOW()
            """,
            *[values[name] for name in fields],
        )
