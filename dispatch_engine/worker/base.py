# dispatch_engine/worker/base.py
"""
Базовый класс для периодических мониторов.
"""

from __future__ import annotations

import asyncio
from abc import ABC, abstractmethod
from typing import Awaitable, Callable, List, Optional, TypeVar

from dispatch_engine.common.clock import Clock, utcnow
from dispatch_engine.common.constants import TypeMsg
from dispatch_engine.common.errors import DispatchError
from dispatch_engine.common.logger import log_debug, log_error, log_info, log_warning
from dispatch_engine.core.factory import Services
from dispatch_engine.infra.database import CONNECTION_ERRORS

T = TypeVar("T")


class PeriodicWorker(ABC):
    """
    Базовый класс для всех мониторов.

    Каждый тик выбирает пачку строк и обрабатывает их по одной.
    Ошибка одной строки логируется и не прерывает тик; потеря
    соединения с БД прерывает тик, следующий начнётся по расписанию.
    Одновременные тики (несколько процессов) безопасны: все записи условные.
    """

    def __init__(
        self,
        services: Services,
        interval_seconds: float,
        batch_size: int,
        clock: Clock = utcnow,
    ) -> None:
        """
        Args:
            services: Сервисы движка
            interval_seconds: Интервал между тиками
            batch_size: Максимум строк за тик
            clock: Источник времени
        """
        self.services = services
        self.interval_seconds = interval_seconds
        self.batch_size = batch_size
        self._clock = clock
        self._running = False
        self._tasks: List[asyncio.Task] = []

    @property
    @abstractmethod
    def name(self) -> str:
        """Имя монитора."""

    @abstractmethod
    async def run_once(self) -> int:
        """
        Один проход монитора.

        Returns:
            Количество строк, изменённых этим проходом
        """

    async def start(self) -> None:
        """Запускает цикл монитора."""
        if self._running:
            return

        self._running = True
        self._tasks.append(asyncio.create_task(self._loop(), name=self.name))
        await log_info(
            f"Монитор {self.name} запущен (интервал {self.interval_seconds} с)",
            type_msg=TypeMsg.INFO,
        )

    async def stop(self) -> None:
        """Останавливает монитор."""
        if not self._running:
            return

        self._running = False

        for task in self._tasks:
            task.cancel()

        if self._tasks:
            await asyncio.gather(*self._tasks, return_exceptions=True)

        self._tasks.clear()
        await log_info(f"Монитор {self.name} остановлен", type_msg=TypeMsg.INFO)

    async def _loop(self) -> None:
        while self._running:
            await self.tick()
            await asyncio.sleep(self.interval_seconds)

    async def tick(self) -> int:
        """Один тик с обработкой сбоев инфраструктуры."""
        try:
            processed = await self.run_once()
        except CONNECTION_ERRORS as e:
            await log_warning(f"Монитор {self.name}: потеряно соединение, тик прерван: {e}")
            return 0
        except Exception as e:
            await log_error(f"Ошибка в мониторе {self.name}: {e}", exc_info=True)
            return 0

        if processed:
            await log_info(
                f"Монитор {self.name}: обработано {processed}",
                type_msg=TypeMsg.INFO,
            )
        return processed

    async def process_item(
        self,
        item_id: str,
        action: Callable[[], Awaitable[T]],
    ) -> Optional[T]:
        """
        Обрабатывает одну строку пачки.

        Ожидаемые ошибки движка (строку уже изменил кто-то другой) и
        непредвиденные сбои одной строки не прерывают тик.
        Потеря соединения пробрасывается.

        Returns:
            Результат действия или None, если строка пропущена
        """
        try:
            return await action()
        except DispatchError as e:
            await log_debug(
                f"Монитор {self.name}: {item_id} пропущен ({e.code}: {e.message})",
                extra={"item_id": item_id},
            )
            return None
        except CONNECTION_ERRORS:
            raise
        except Exception as e:
            await log_error(
                f"Монитор {self.name}: ошибка обработки {item_id}: {e}",
                extra={"item_id": item_id},
                exc_info=True,
            )
            return None
