"""
Luxury jewelry storefront backend with OpenTelemetry instrumentation
"""

import asyncio
import contextlib
import logging
from typing import Optional

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import Response
from opentelemetry.instrumentation.fastapi import FastAPIInstrumentor
from prometheus_client import CONTENT_TYPE_LATEST, generate_latest

from storefront import database, maintenance, seed
from storefront.cache import ResponseCache, ResponseCacheMiddleware
from storefront.config import Settings, get_settings
from storefront.errors import register_error_handlers
from storefront.middleware import ApiRateLimitMiddleware, RequestMetricsMiddleware, SecurityHeadersMiddleware
from storefront.observability import configure_logging
from storefront.payments import build_gateway
from storefront.rate_limit import RateLimiterRegistry
from storefront.routers import auth, cart, catalog, checkout, orders, webhooks, wishlist
from storefront.search import SearchEngine

logger = logging.getLogger("storefront")


def create_app(settings: Optional[Settings] = None, session_factory=None) -> FastAPI:
    """
    Build the application. Tests pass their own Settings and a session
    factory bound to a throwaway database.
    """
    settings = settings or get_settings()
    session_factory = session_factory or database.SessionLocal
    configure_logging(settings.log_level)

    @contextlib.asynccontextmanager
    async def lifespan(app: FastAPI):
        db = session_factory()
        try:
            database.Base.metadata.create_all(bind=db.get_bind())
            if settings.seed_catalog:
                seed.seed_catalog(db)
        finally:
            db.close()

        task = None
        if settings.maintenance_interval_seconds > 0:
            task = asyncio.create_task(maintenance.maintenance_loop(
                session_factory,
                settings.maintenance_interval_seconds,
                settings.pending_order_ttl_hours,
            ))

        logger.info("Storefront backend started")
        logger.info("Prometheus metrics at /metrics")
        if not settings.payments_enabled:
            logger.warning("Checkout disabled: STRIPE_SECRET_KEY is not set")
        if not settings.webhooks_enabled:
            logger.warning("Webhooks disabled: STRIPE_WEBHOOK_SECRET is not set")

        yield

        if task is not None:
            task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await task

    app = FastAPI(
        title="Storefront API",
        description="Luxury jewelry storefront backend with observability features",
        version="1.0.0",
        lifespan=lifespan,
    )

    app.state.settings = settings
    app.state.response_cache = ResponseCache(default_ttl=settings.cache_default_ttl)
    app.state.rate_limiters = RateLimiterRegistry(settings.rate_limits)
    app.state.search_engine = SearchEngine()
    app.state.payment_gateway = build_gateway(settings)

    register_error_handlers(app)

    def cache_ttl(path: str) -> int:
        if path.startswith("/api/categories"):
            return settings.cache_categories_ttl
        return settings.cache_default_ttl

    # last added runs first
    app.add_middleware(ResponseCacheMiddleware, ttl_for=cache_ttl, session_cookie_name=settings.session_cookie_name)
    app.add_middleware(ApiRateLimitMiddleware)
    app.add_middleware(SecurityHeadersMiddleware)
    app.add_middleware(RequestMetricsMiddleware)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.get("/health")
    async def health_check():
        return {"status": "healthy", "service": "storefront-backend"}

    @app.get("/metrics")
    async def metrics():
        return Response(generate_latest(), media_type=CONTENT_TYPE_LATEST)

    for module in (auth, catalog, cart, wishlist, checkout, orders, webhooks):
        app.include_router(module.router)

    FastAPIInstrumentor.instrument_app(app)
    return app


app = create_app()
