"""
API Middleware

- Request logging with a request id bound into the log context
- Request metrics
- Security headers
"""

import time
from typing import Callable

from fastapi import Request, Response
from prometheus_client import Counter, Histogram
from starlette.middleware.base import BaseHTTPMiddleware
import structlog

logger = structlog.get_logger(__name__)


# =============================================================================
# METRICS
# =============================================================================

REQUESTS_TOTAL = Counter(
    "funnel_api_requests_total",
    "Total number of API requests",
    ["method", "path", "status"],
)

REQUEST_LATENCY = Histogram(
    "funnel_api_request_seconds",
    "Time spent serving API requests",
    ["method", "path"],
)


class RequestLoggingMiddleware(BaseHTTPMiddleware):
    """Log all requests with timing information"""

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        start_time = time.perf_counter()
        request_id = request.headers.get("X-Request-ID", str(time.time_ns()))

        structlog.contextvars.clear_contextvars()
        structlog.contextvars.bind_contextvars(request_id=request_id)

        logger.info(
            "Request started",
            method=request.method,
            path=request.url.path,
            query=str(request.url.query) or None,
            client=request.client.host if request.client else None,
        )

        response = await call_next(request)
        duration = time.perf_counter() - start_time

        REQUESTS_TOTAL.labels(
            method=request.method, path=request.url.path, status=str(response.status_code)
        ).inc()
        REQUEST_LATENCY.labels(method=request.method, path=request.url.path).observe(duration)

        logger.info(
            "Request completed",
            status_code=response.status_code,
            duration_ms=round(duration * 1000, 2),
        )

        response.headers["X-Response-Time"] = f"{duration * 1000:.2f}ms"
        response.headers["X-Request-ID"] = request_id
        return response


class SecurityHeadersMiddleware(BaseHTTPMiddleware):
    """Add security headers to all responses"""

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        response = await call_next(request)

        response.headers["X-Content-Type-Options"] = "nosniff"
        response.headers["X-Frame-Options"] = "DENY"
        response.headers["Referrer-Policy"] = "strict-origin-when-cross-origin"

        return response
