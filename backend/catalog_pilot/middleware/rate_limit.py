"""
Redis-backed rate limiting middleware for the Catalog Pilot API.
"""

import hashlib
import logging
import time
from collections import defaultdict
from typing import Callable

from fastapi import Request, Response
from starlette.middleware.base import BaseHTTPMiddleware

from catalog_pilot.utils.redis_client import get_redis

logger = logging.getLogger(__name__)

WINDOW_SECONDS = 60

# Fallback in-memory store (only used if Redis unavailable)
_fallback_requests: dict = defaultdict(list)

EXEMPT_PATHS = ("/api/health", "/api/subscription/webhook")


class RateLimitMiddleware(BaseHTTPMiddleware):
    """
    Per-caller fixed window rate limiting for /api routes.

    Callers are keyed by their credentials when present, otherwise by IP.
    Falls back to in-memory counting if Redis is unavailable.
    """

    def __init__(self, app, requests_per_minute: int = 120):
        super().__init__(app)
        self.requests_per_minute = requests_per_minute

    def _get_client_ip(self, request: Request) -> str:
        """Extract client IP from request."""
        forwarded = request.headers.get("X-Forwarded-For")
        if forwarded:
            return forwarded.split(",")[0].strip()
        return request.client.host if request.client else "unknown"

    def _get_caller_key(self, request: Request) -> str:
        credential = request.headers.get("Authorization") or request.headers.get("x-user-id")
        if credential:
            return "cred:" + hashlib.sha256(credential.encode("utf-8")).hexdigest()[:32]
        return "ip:" + self._get_client_ip(request)

    async def _check_redis_limit(self, caller: str) -> tuple[bool, int]:
        """Check rate limit using Redis INCR + EXPIRE."""
        redis = await get_redis()
        if not redis:
            return self._check_memory_limit(caller)

        try:
            key = f"rate_limit:api:{caller}"
            current = await redis.incr(key)
            if current == 1:
                await redis.expire(key, WINDOW_SECONDS)
            remaining = max(0, self.requests_per_minute - current)
            return current > self.requests_per_minute, remaining
        except Exception as e:
            logger.warning(f"Redis rate limit error: {e}")
            return self._check_memory_limit(caller)

    def _check_memory_limit(self, caller: str) -> tuple[bool, int]:
        """Fallback in-memory rate limit check."""
        now = time.time()
        window_start = now - WINDOW_SECONDS
        _fallback_requests[caller] = [t for t in _fallback_requests[caller] if t > window_start]
        if len(_fallback_requests[caller]) >= self.requests_per_minute:
            return True, 0
        _fallback_requests[caller].append(now)
        return False, self.requests_per_minute - len(_fallback_requests[caller])

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        """Process request with rate limiting."""
        path = request.url.path
        if not path.startswith("/api") or path in EXEMPT_PATHS:
            return await call_next(request)

        is_limited, remaining = await self._check_redis_limit(self._get_caller_key(request))

        if is_limited:
            return Response(
                content='{"detail": "Rate limit exceeded"}',
                status_code=429,
                media_type="application/json",
                headers={
                    "Retry-After": str(WINDOW_SECONDS),
                    "X-RateLimit-Limit": str(self.requests_per_minute),
                    "X-RateLimit-Remaining": "0",
                },
            )

        response = await call_next(request)
        response.headers["X-RateLimit-Limit"] = str(self.requests_per_minute)
        response.headers["X-RateLimit-Remaining"] = str(max(0, remaining))
        return response
