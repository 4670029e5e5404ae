# dispatch_engine/core/notifications/__init__.py
"""
Уведомления: push водителям, real-time события, доменные факты.
"""

from dispatch_engine.core.notifications.service import (
    BROADCAST_TOPIC,
    Broadcaster,
    NotificationService,
    company_topic,
    driver_topic,
)

__all__ = [
    "BROADCAST_TOPIC",
    "Broadcaster",
    "NotificationService",
    "company_topic",
    "driver_topic",
]
