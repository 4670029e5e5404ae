# dispatch_engine/core/drivers/__init__.py
"""
Домен водителей: позиция, доступность, присутствие.
"""

from dispatch_engine.core.drivers.models import Driver
from dispatch_engine.core.drivers.repository import DriverRepository

__all__ = ["Driver", "DriverRepository"]
