# dispatch_engine/worker/liveness.py
"""
Монитор живости водителей.
"""

from __future__ import annotations

from datetime import timedelta

from dispatch_engine.worker.base import PeriodicWorker


class DriverLivenessMonitor(PeriodicWorker):
    """
    Переводит в недоступные водителей без сигнала присутствия дольше
    heartbeat_timeout_seconds. Уведомление уходит только если запись
    сработала именно в этом тике.
    """

    @property
    def name(self) -> str:
        return "liveness"

    async def run_once(self) -> int:
        dispatch_settings = await self.services.settings_provider.get()
        now = self._clock()
        timeout = dispatch_settings.heartbeat_timeout_seconds
        cutoff = now - timedelta(seconds=timeout)

        stale = await self.services.drivers.find_stale_available(cutoff, self.batch_size)

        expired = 0
        for driver in stale:
            if await self.process_item(
                driver.id,
                lambda driver=driver: self.services.presence.expire_stale(driver, now, timeout),
            ):
                expired += 1
        return expired
