# dispatch_engine/worker/runner.py
"""
Запускалка всех мониторов.
"""

from __future__ import annotations

import asyncio
from typing import List

from dispatch_engine.common.constants import TypeMsg
from dispatch_engine.common.logger import log_error, log_info
from dispatch_engine.core.factory import Services, build_services
from dispatch_engine.infra.database import close_db, get_db, init_db
from dispatch_engine.infra.event_bus import close_event_bus, get_event_bus, init_event_bus
from dispatch_engine.infra.redis_client import RedisBroadcaster, close_redis, get_redis, init_redis
from dispatch_engine.worker.auto_cancel import AutoCancelMonitor
from dispatch_engine.worker.base import PeriodicWorker
from dispatch_engine.worker.liveness import DriverLivenessMonitor
from dispatch_engine.worker.scheduled import ScheduledDispatchMonitor


def build_monitors(services: Services) -> List[PeriodicWorker]:
    """Создаёт мониторы с интервалами из конфигурации."""
    from dispatch_engine.config import settings

    monitors = settings.monitors
    return [
        AutoCancelMonitor(
            services,
            interval_seconds=monitors.AUTO_CANCEL_INTERVAL_SECONDS,
            batch_size=monitors.MONITOR_BATCH_SIZE,
        ),
        DriverLivenessMonitor(
            services,
            interval_seconds=monitors.LIVENESS_INTERVAL_SECONDS,
            batch_size=monitors.MONITOR_BATCH_SIZE,
        ),
        ScheduledDispatchMonitor(
            services,
            interval_seconds=monitors.SCHEDULED_DISPATCH_INTERVAL_SECONDS,
            batch_size=monitors.MONITOR_BATCH_SIZE,
        ),
    ]


async def run_monitors(init_infra: bool = True) -> None:
    """
    Запускает мониторы автоотмены, живости и отложенных заявок.

    Args:
        init_infra: Если True, инициализирует инфраструктуру (БД, Redis, RabbitMQ).
                    В режиме all инфраструктура уже поднята процессом API.
    """
    await log_info("Запуск мониторов...", type_msg=TypeMsg.INFO)

    if init_infra:
        await log_info("Инициализация инфраструктуры для мониторов...", type_msg=TypeMsg.DEBUG)
        await init_db()
        await init_redis()
        await init_event_bus()

    services = build_services(get_db(), get_event_bus(), RedisBroadcaster(get_redis()))
    monitors = build_monitors(services)

    try:
        for monitor in monitors:
            await monitor.start()

        await log_info(f"Запущено {len(monitors)} мониторов", type_msg=TypeMsg.INFO)

        # Ждём завершения (Ctrl+C)
        while True:
            await asyncio.sleep(1)

    except asyncio.CancelledError:
        await log_info("Получен сигнал остановки", type_msg=TypeMsg.INFO)
    except Exception as e:
        await log_error(f"Критическая ошибка: {e}", exc_info=True)
        raise
    finally:
        for monitor in monitors:
            await monitor.stop()

        if init_infra:
            await close_event_bus()
            await close_redis()
            await close_db()

        await log_info("Мониторы остановлены", type_msg=TypeMsg.INFO)


def main() -> None:
    """Точка входа."""
    try:
        asyncio.run(run_monitors())
    except KeyboardInterrupt:
        pass


if __name__ == "__main__":
    main()
