"""Request/response logging middleware."""
import logging
import time
from starlette.requests import Request
from starlette.middleware.base import BaseHTTPMiddleware

logger = logging.getLogger("app.middleware.logging")


class RequestLoggerMiddleware(BaseHTTPMiddleware):
    async def dispatch(self, request: Request, call_next):
        started = time.perf_counter()
        response = await call_next(request)
        duration_ms = (time.perf_counter() - started) * 1000
        # Query strings are left out; they may carry tokens
        logger.info(f"{request.method} {request.url.path} {response.status_code} {duration_ms:.1f}ms")
        return response
