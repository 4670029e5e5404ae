# dispatch_engine/core/claims/__init__.py
"""
Захват заявки водителем.
"""

from dispatch_engine.core.claims.repository import ClaimRepository
from dispatch_engine.core.claims.service import ClaimResolver

__all__ = ["ClaimRepository", "ClaimResolver"]
