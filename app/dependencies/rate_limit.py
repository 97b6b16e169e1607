"""Per-IP rate limiting for the auth and api endpoint groups."""
import logging
import math
import time
from collections import deque
from typing import Deque, Dict, Optional, Tuple

from fastapi import Depends, Request, Response
from sqlalchemy.orm import Session

from app.cache.cache_service import redis_cache
from app.core.config import settings
from app.core.constants import SecurityEventType, Severity
from app.core.database import get_db
from app.schemas.security import SecurityEvent
from app.services.security_monitor import SecurityMonitor
from app.utils.errors import RateLimitExceededError
from app.utils.helpers import get_client_ip, get_user_agent

logger = logging.getLogger(__name__)

SWEEP_INTERVAL_SECONDS = 60

# In-memory sliding window buckets: key -> deque[expiry timestamps]
_buckets: Dict[str, Deque[float]] = {}
_last_sweep = 0.0


def reset_buckets() -> None:
    global _last_sweep
    _buckets.clear()
    _last_sweep = 0.0


def _sweep(now: float) -> None:
    """Drop keys whose every entry has expired."""
    stale = [key for key, bucket in _buckets.items() if not bucket or bucket[-1] <= now]
    for key in stale:
        del _buckets[key]


def _memory_hit(key: str, limit: int, window: int, now: float) -> Tuple[bool, int, int]:
    """Record a hit; returns (allowed, remaining, seconds until the oldest entry expires)."""
    global _last_sweep
    if now - _last_sweep >= SWEEP_INTERVAL_SECONDS:
        _sweep(now)
        _last_sweep = now

    bucket = _buckets.setdefault(key, deque())
    while bucket and bucket[0] <= now:
        bucket.popleft()

    if len(bucket) >= limit:
        reset_after = max(math.ceil(bucket[0] - now), 1) if bucket else window
        return False, 0, reset_after

    bucket.append(now + window)
    return True, limit - len(bucket), max(math.ceil(bucket[0] - now), 1)


class RateLimiter:
    """FastAPI dependency enforcing ``limit`` requests per ``window`` seconds per client IP."""

    def __init__(self, scope: str, limit: Optional[int] = None, window: Optional[int] = None):
        self.scope = scope
        self._limit = limit
        self._window = window

    @property
    def limit(self) -> int:
        if self._limit is not None:
            return self._limit
        return settings.AUTH_RATE_LIMIT_REQUESTS if self.scope == "auth" else settings.API_RATE_LIMIT_REQUESTS

    @property
    def window(self) -> int:
        if self._window is not None:
            return self._window
        if self.scope == "auth":
            return settings.AUTH_RATE_LIMIT_PERIOD_SECONDS
        return settings.API_RATE_LIMIT_PERIOD_SECONDS

    async def __call__(self, request: Request, response: Response, db: Session = Depends(get_db)) -> bool:
        if not settings.RATE_LIMIT_ENABLED:
            return True

        client_ip = get_client_ip(request)
        key = f"ratelimit:{self.scope}:{client_ip}"
        allowed, remaining, reset_after = await self._hit(key)
        headers = {
            "X-RateLimit-Limit": str(self.limit),
            "X-RateLimit-Remaining": str(remaining),
            "X-RateLimit-Reset": str(reset_after),
        }
        if allowed:
            response.headers.update(headers)
            return True

        logger.warning(f"Rate limit exceeded for {client_ip} on {request.url.path}")
        SecurityMonitor.log_security_event(db, SecurityEvent(
            event=SecurityEventType.RATE_LIMIT_EXCEEDED,
            severity=Severity.MEDIUM,
            ip_address=client_ip,
            user_agent=get_user_agent(request),
            details={"scope": self.scope, "path": request.url.path, "limit": self.limit},
        ))
        raise RateLimitExceededError(retry_after=reset_after, headers=headers)

    async def _hit(self, key: str) -> Tuple[bool, int, int]:
        if settings.RATE_LIMIT_BACKEND == "redis":
            result = await redis_cache.hit(key, self.window)
            if result is not None:
                count, reset_after = result
                return count <= self.limit, max(self.limit - count, 0), reset_after
            # Redis unavailable: fall through to the process-local window
        return _memory_hit(key, self.limit, self.window, time.time())


auth_rate_limit = RateLimiter("auth")
api_rate_limit = RateLimiter("api")
