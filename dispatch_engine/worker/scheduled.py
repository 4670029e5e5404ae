# dispatch_engine/worker/scheduled.py
"""
Монитор отложенных заявок.
Запускает рассылку, когда наступает scheduled_at.
"""

from __future__ import annotations

from dispatch_engine.worker.base import PeriodicWorker


class ScheduledDispatchMonitor(PeriodicWorker):
    """
    Рассылка отложенных заявок.
    Если водителей нет, заявка остаётся pending и повторяется на
    следующих тиках, пока её не отменит автоотмена.
    """

    @property
    def name(self) -> str:
        return "scheduled_dispatch"

    async def run_once(self) -> int:
        request_ids = await self.services.requests.find_due_scheduled(self._clock(), self.batch_size)

        dispatched = 0
        for request_id in request_ids:
            if await self.process_item(
                request_id,
                lambda request_id=request_id: self.services.dispatch.dispatch(request_id),
            ) is not None:
                dispatched += 1
        return dispatched
