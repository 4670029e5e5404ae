# dispatch_engine/core/offers/__init__.py
"""
Домен предложений водителям и их рассылки.
"""

from dispatch_engine.core.offers.models import DriverOffer, PendingOffer
from dispatch_engine.core.offers.repository import OfferRepository
from dispatch_engine.core.offers.service import OfferFanout

__all__ = ["DriverOffer", "PendingOffer", "OfferRepository", "OfferFanout"]
