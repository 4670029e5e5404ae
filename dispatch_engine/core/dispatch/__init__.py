# dispatch_engine/core/dispatch/__init__.py
"""
Фасад диспетчерского движка.
"""

from dispatch_engine.core.dispatch.models import DispatchOutcome
from dispatch_engine.core.dispatch.service import DispatchService

__all__ = ["DispatchOutcome", "DispatchService"]
