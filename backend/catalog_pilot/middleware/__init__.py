"""Middleware modules for Catalog Pilot."""

from catalog_pilot.middleware.auth import get_current_user, require_team_manager
from catalog_pilot.middleware.rate_limit import RateLimitMiddleware

__all__ = ["get_current_user", "require_team_manager", "RateLimitMiddleware"]
