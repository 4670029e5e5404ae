#!/usr/bin/env python3
# entrypoint_api.py
"""
Точка входа для HTTP API.
Порт: 8085
"""

import asyncio
import sys
from pathlib import Path

# Добавляем корневую директорию проекта в путь
project_root = Path(__file__).parent.parent.resolve()
sys.path.insert(0, str(project_root))

import uvicorn

from dispatch_engine.config import settings
from dispatch_engine.common.logger import setup_logging, log_info
from dispatch_engine.common.constants import TypeMsg


async def main() -> None:
    """Запуск HTTP API (подключения поднимает lifespan приложения)."""
    setup_logging()
    await log_info(
        f"Запуск HTTP API на порту {settings.api.API_PORT}",
        type_msg=TypeMsg.INFO,
    )

    config = uvicorn.Config(
        "dispatch_engine.api.app:app",
        host=settings.api.API_HOST,
        port=settings.api.API_PORT,
        reload=settings.system.DEBUG,
        log_level="debug" if settings.system.DEBUG else "info",
    )

    server = uvicorn.Server(config)
    await server.serve()


if __name__ == "__main__":
    asyncio.run(main())
