#!/usr/bin/env python3
# entrypoint_monitors.py
"""
Точка входа для запуска мониторов в Docker контейнере.
Несколько экземпляров безопасны: все записи мониторов условные.
"""

from __future__ import annotations

import asyncio
import os
import sys
from pathlib import Path

# Добавляем корневую директорию проекта в путь
project_root = Path(__file__).parent.parent.resolve()
sys.path.insert(0, str(project_root))

from main import main


if __name__ == "__main__":
    instance_id = os.getenv("MONITOR_INSTANCE_ID", "0")
    print(f"Запуск мониторов, экземпляр #{instance_id}")

    try:
        asyncio.run(main(mode="monitors"))
    except KeyboardInterrupt:
        pass
