"""
HTTP middleware: security headers, request metrics and the general API
rate limit.
"""

import logging
import time

from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from fastapi.responses import JSONResponse

from storefront.dependencies import client_ip
from storefront.errors import RateLimited, error_body
from storefront.observability import http_request_duration_seconds, http_requests_total

logger = logging.getLogger("storefront.http")

SLOW_REQUEST_SECONDS = 1.0

SECURITY_HEADERS = {
    "Content-Security-Policy": (
        "default-src 'self'; "
        "script-src 'self'; "
        "style-src 'self' 'unsafe-inline'; "
        "img-src 'self' data: https:; "
        "font-src 'self' data:; "
        "connect-src 'self' https:; "
        "frame-ancestors 'none'; "
        "form-action 'self'; "
        "base-uri 'self'"
    ),
    "X-Frame-Options": "DENY",
    "X-Content-Type-Options": "nosniff",
    "Strict-Transport-Security": "max-age=31536000; includeSubDomains",
    "Referrer-Policy": "strict-origin-when-cross-origin",
    "Permissions-Policy": (
        "accelerometer=(), camera=(), geolocation=(), gyroscope=(), "
        "magnetometer=(), microphone=(), payment=(), usb=()"
    ),
}


class SecurityHeadersMiddleware(BaseHTTPMiddleware):
    async def dispatch(self, request: Request, call_next):
        response = await call_next(request)
        for name, value in SECURITY_HEADERS.items():
            response.headers.setdefault(name, value)
        return response


class RequestMetricsMiddleware(BaseHTTPMiddleware):
    """
    Records http_requests_total / http_request_duration_seconds for every
    request. The endpoint label is the route template ("/api/orders/{order_id}")
    rather than the raw path, so ids do not blow up label cardinality.
    """

    async def dispatch(self, request: Request, call_next):
        start_time = time.perf_counter()
        status = 500
        try:
            response = await call_next(request)
            status = response.status_code
            return response
        finally:
            duration = time.perf_counter() - start_time
            route = request.scope.get("route")
            endpoint = getattr(route, "path", None) or "unmatched"

            http_requests_total.labels(method=request.method, endpoint=endpoint, status=str(status)).inc()
            http_request_duration_seconds.labels(method=request.method, endpoint=endpoint).observe(duration)

            if duration > SLOW_REQUEST_SECONDS:
                logger.warning("Slow request: %s %s %d (%.0fms)", request.method, request.url.path, status, duration * 1000)


class ApiRateLimitMiddleware(BaseHTTPMiddleware):
    """Applies the general `api` limiter to /api/*. Webhooks are exempt."""

    def __init__(self, app, prefix: str = "/api/", exempt=("/api/webhooks/",)):
        super().__init__(app)
        self.prefix = prefix
        self.exempt = tuple(exempt)

    async def dispatch(self, request: Request, call_next):
        path = request.url.path
        if not path.startswith(self.prefix) or path.startswith(self.exempt):
            return await call_next(request)

        limiter = request.app.state.rate_limiters["api"]
        try:
            limiter.check(client_ip(request))
        except RateLimited as exc:
            # raised outside the router, so the app's exception handlers never see it
            return JSONResponse(
                status_code=exc.status_code,
                content=error_body(exc.code, exc.message, retry_after=exc.retry_after),
                headers={"Retry-After": str(exc.retry_after)},
            )
        return await call_next(request)
