# dispatch_engine/core/lifecycle/__init__.py
from dispatch_engine.core.lifecycle.service import LifecycleService

__all__ = ["LifecycleService"]
