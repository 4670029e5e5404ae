# dispatch_engine/common/__init__.py
"""
Общие утилиты, константы, ошибки и логгер.
"""

from dispatch_engine.common.logger import get_logger, log_info, log_error, log_warning, log_debug
from dispatch_engine.common.constants import TypeMsg

__all__ = [
    "get_logger",
    "log_info",
    "log_error",
    "log_warning",
    "log_debug",
    "TypeMsg",
]
