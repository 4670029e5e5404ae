# dispatch_engine/worker/auto_cancel.py
"""
Монитор автоотмены.
Отменяет заявки, которые никто не взял за auto_cancel_timeout_minutes.
"""

from __future__ import annotations

from datetime import timedelta

from dispatch_engine.worker.base import PeriodicWorker


class AutoCancelMonitor(PeriodicWorker):
    """Системная отмена невзятых заявок."""

    @property
    def name(self) -> str:
        return "auto_cancel"

    async def run_once(self) -> int:
        dispatch_settings = await self.services.settings_provider.get()
        now = self._clock()
        cutoff = now - timedelta(minutes=dispatch_settings.auto_cancel_timeout_minutes)

        request_ids = await self.services.requests.find_unclaimed_older_than(cutoff, self.batch_size)

        cancelled = 0
        for request_id in request_ids:
            # Запись условна по driver_id IS NULL: взятая между выборкой и отменой заявка пропускается
            if await self.process_item(
                request_id,
                lambda request_id=request_id: self.services.dispatch.auto_cancel(request_id),
            ) is not None:
                cancelled += 1
        return cancelled
