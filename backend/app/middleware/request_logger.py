import logging
import time
from typing import Callable

from fastapi import Request
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.responses import Response

logger = logging.getLogger("app.requests")

SLOW_REQUEST_MS = 1000


class RequestLoggerMiddleware(BaseHTTPMiddleware):
    """Log one line per request with method, path, status and duration."""

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        start = time.perf_counter()
        response = await call_next(request)
        duration_ms = (time.perf_counter() - start) * 1000

        level = logging.WARNING if duration_ms > SLOW_REQUEST_MS else logging.INFO
        logger.log(
            level,
            "%s %s %d %.1fms",
            request.method, request.url.path, response.status_code, duration_ms,
        )
        response.headers["X-Response-Time"] = f"{duration_ms:.1f}ms"
        return response
