"""
Logging, Prometheus metrics and OpenTelemetry tracer shared by the app.
"""

import logging
import sys

from opentelemetry import trace
from prometheus_client import Counter, Histogram

tracer = trace.get_tracer("storefront")

# Payment confirmations ("[AUDIT] ...") and security rejections get their own
# loggers so they can be routed separately from ordinary errors.
audit_logger = logging.getLogger("storefront.audit")
security_logger = logging.getLogger("storefront.security")

# Prometheus metrics
http_requests_total = Counter('http_requests_total', 'Total HTTP requests', ['method', 'endpoint', 'status'])
http_request_duration_seconds = Histogram('http_request_duration_seconds', 'HTTP request duration', ['method', 'endpoint'])
orders_total = Counter('orders_total', 'Orders by lifecycle event', ['status'])
revenue_total = Counter('revenue_total_usd', 'Total confirmed revenue in USD')
webhook_events_total = Counter('webhook_events_total', 'Payment webhook events received', ['type', 'outcome'])
rate_limit_rejections_total = Counter('rate_limit_rejections_total', 'Requests rejected by a rate limiter', ['limiter'])
cache_events_total = Counter('cache_events_total', 'Response cache events', ['event'])

LOG_FORMAT = "%(asctime)s %(levelname)s [%(name)s] %(message)s"


def configure_logging(level: str = "INFO") -> None:
    """Attach one stream handler to the `storefront` logger (idempotent)."""
    root = logging.getLogger("storefront")
    root.setLevel(level.upper())
    if not any(getattr(h, "_storefront", False) for h in root.handlers):
        handler = logging.StreamHandler(sys.stdout)
        handler.setFormatter(logging.Formatter(LOG_FORMAT))
        handler._storefront = True
        root.addHandler(handler)
