# dispatch_engine/core/matching/__init__.py
"""
Домен поиска водителей.
Отбор кандидатов по расстоянию до точки подачи.
"""

from dispatch_engine.core.matching.service import DriverCandidate, GeoMatcher

__all__ = [
    "DriverCandidate",
    "GeoMatcher",
]
