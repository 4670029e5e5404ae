# dispatch_engine/common/clock.py
"""
Источник текущего времени.
Сервисы принимают clock в конструкторе, чтобы тесты могли задать время.
"""

from datetime import datetime, timezone
from typing import Callable

Clock = Callable[[], datetime]


def utcnow() -> datetime:
    """Текущее время в UTC (timezone-aware)."""
    return datetime.now(timezone.utc)
