# dispatch_engine/core/settings/__init__.py
"""
Настройки диспетчеризации, изменяемые без рестарта.
"""

from dispatch_engine.core.settings.models import DispatchSettings, DispatchSettingsUpdateDTO
from dispatch_engine.core.settings.repository import DispatchSettingsRepository
from dispatch_engine.core.settings.service import DispatchSettingsProvider

__all__ = [
    "DispatchSettings",
    "DispatchSettingsUpdateDTO",
    "DispatchSettingsRepository",
    "DispatchSettingsProvider",
]
