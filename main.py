#!/usr/bin/env python3
# main.py
"""
Главная точка входа диспетчерского движка.
Запускает HTTP API, мониторы или всё вместе в зависимости от аргументов.
"""

from __future__ import annotations

import asyncio
import signal
import sys

from dispatch_engine.config import settings
from dispatch_engine.common.logger import setup_logging, log_info, log_error
from dispatch_engine.common.constants import TypeMsg
from dispatch_engine.infra.database import init_db, close_db
from dispatch_engine.infra.redis_client import init_redis, close_redis
from dispatch_engine.infra.event_bus import init_event_bus, close_event_bus

VALID_MODES = ("api", "monitors", "all")

# Глобальный флаг для graceful shutdown
_shutdown_event: asyncio.Event | None = None
_running_tasks: list[asyncio.Task] = []


def setup_signal_handlers() -> None:
    """Настраивает обработчики сигналов для graceful shutdown."""
    global _shutdown_event
    _shutdown_event = asyncio.Event()

    def signal_handler(sig: int) -> None:
        """Обработчик сигналов SIGINT и SIGTERM."""
        if _shutdown_event and not _shutdown_event.is_set():
            print(f"\nПолучен сигнал остановки (sig={sig}), завершаем работу...")
            _shutdown_event.set()
            for task in _running_tasks:
                if not task.done():
                    task.cancel()

    try:
        loop = asyncio.get_running_loop()
        for sig in (signal.SIGINT, signal.SIGTERM):
            loop.add_signal_handler(sig, lambda s=sig: signal_handler(s))
    except NotImplementedError:
        # Windows не поддерживает add_signal_handler
        signal.signal(signal.SIGINT, lambda s, f: signal_handler(s))
        signal.signal(signal.SIGTERM, lambda s, f: signal_handler(s))


async def init_infrastructure() -> None:
    """Инициализирует все подключения к инфраструктуре."""
    await log_info("Инициализация инфраструктуры...", type_msg=TypeMsg.INFO)

    await init_db()
    await init_redis()
    await init_event_bus()

    await log_info("Инфраструктура инициализирована", type_msg=TypeMsg.INFO)


async def close_infrastructure() -> None:
    """Закрывает все подключения."""
    await log_info("Закрытие подключений...", type_msg=TypeMsg.INFO)

    await close_event_bus()
    await close_redis()
    await close_db()

    await log_info("Подключения закрыты", type_msg=TypeMsg.INFO)


async def run_api() -> None:
    """Запускает HTTP API (инфраструктура уже инициализирована)."""
    import uvicorn
    from dispatch_engine.api.app import create_app

    await log_info(
        f"Запуск HTTP API на {settings.api.API_HOST}:{settings.api.API_PORT}",
        type_msg=TypeMsg.INFO,
    )

    config = uvicorn.Config(
        create_app(init_infra=False),
        host=settings.api.API_HOST,
        port=settings.api.API_PORT,
        log_level="debug" if settings.system.DEBUG else "info",
    )
    server = uvicorn.Server(config)
    # Сигналы обрабатывает main.py
    server.install_signal_handlers = lambda: None  # type: ignore[method-assign]
    await server.serve()


async def run_monitors() -> None:
    """Запускает мониторы (инфраструктура уже инициализирована)."""
    from dispatch_engine.worker.runner import run_monitors as run_monitors_loop

    await run_monitors_loop(init_infra=False)


async def main(mode: str | None = None) -> None:
    """
    Главная функция запуска.

    Args:
        mode: Режим запуска (api, monitors, all).
              Если None, берётся из COMPONENT_MODE.
    """
    global _running_tasks

    setup_logging()
    setup_signal_handlers()

    if mode is None:
        mode = settings.system.COMPONENT_MODE if settings.system.COMPONENT_MODE in VALID_MODES else "all"

    await log_info(
        f"Dispatch Engine v{settings.system.VERSION}: запуск в режиме '{mode}'",
        type_msg=TypeMsg.INFO,
    )

    try:
        await init_infrastructure()

        if mode == "api":
            _running_tasks = [asyncio.create_task(run_api())]
        elif mode == "monitors":
            _running_tasks = [asyncio.create_task(run_monitors())]
        elif mode == "all":
            _running_tasks = [
                asyncio.create_task(run_api()),
                asyncio.create_task(run_monitors()),
            ]
        else:
            await log_error(f"Неизвестный режим: {mode}")
            return

        try:
            await asyncio.gather(*_running_tasks)
        except asyncio.CancelledError:
            await log_info("Отмена всех задач...", type_msg=TypeMsg.INFO)
            for task in _running_tasks:
                if not task.done():
                    task.cancel()
            await asyncio.gather(*_running_tasks, return_exceptions=True)
            raise

    except KeyboardInterrupt:
        await log_info("Получен сигнал остановки (Ctrl+C)", type_msg=TypeMsg.INFO)
    except asyncio.CancelledError:
        await log_info("Задача отменена, выполняется graceful shutdown", type_msg=TypeMsg.INFO)
    except Exception as e:
        await log_error(f"Критическая ошибка: {e}", exc_info=True)
        raise
    finally:
        if _running_tasks:
            for task in _running_tasks:
                if not task.done():
                    task.cancel()
            await asyncio.gather(*_running_tasks, return_exceptions=True)
            _running_tasks.clear()

        await log_info("Завершение работы, закрытие подключений...", type_msg=TypeMsg.INFO)
        try:
            await close_infrastructure()
        except Exception as e:
            await log_error(f"Ошибка при закрытии подключений: {e}")
        await log_info("Приложение остановлено", type_msg=TypeMsg.INFO)


def print_usage() -> None:
    """Выводит справку по использованию."""
    print("""
Dispatch Engine — диспетчеризация и жизненный цикл доставок

Использование:
    python main.py [mode]

Режимы:
    api          — HTTP API (:8085)
    monitors     — автоотмена, живость водителей, отложенные заявки
    all          — API и мониторы в одном процессе (по умолчанию)

Без аргумента режим берётся из COMPONENT_MODE.
    """)


if __name__ == "__main__":
    mode = None

    if len(sys.argv) > 1:
        arg = sys.argv[1].lower()
        if arg in ("--help", "-h"):
            print_usage()
            sys.exit(0)
        elif arg in VALID_MODES:
            mode = arg
        else:
            print(f"Ошибка: неизвестный режим '{arg}'")
            print_usage()
            sys.exit(1)

    try:
        asyncio.run(main(mode))
    except KeyboardInterrupt:
        pass
