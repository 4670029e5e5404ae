# dispatch_engine/worker/__init__.py
"""
Фоновые мониторы: автоотмена, живость водителей, отложенные заявки.
"""

from dispatch_engine.worker.auto_cancel import AutoCancelMonitor
from dispatch_engine.worker.base import PeriodicWorker
from dispatch_engine.worker.liveness import DriverLivenessMonitor
from dispatch_engine.worker.scheduled import ScheduledDispatchMonitor

__all__ = [
    "AutoCancelMonitor",
    "DriverLivenessMonitor",
    "PeriodicWorker",
    "ScheduledDispatchMonitor",
]
