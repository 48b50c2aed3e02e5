"""
FastAPI dependencies for the process-wide services.

Each service is built once in create_app() and stored on app.state; routes
receive it through these functions, so a test (or a multi-process
deployment with a shared store) can swap the implementation without
touching call sites.
"""

from fastapi import Request

from storefront.config import Settings


def get_settings_dep(request: Request) -> Settings:
    return request.app.state.settings


def get_response_cache(request: Request):
    return request.app.state.response_cache


def get_rate_limiters(request: Request):
    return request.app.state.rate_limiters


def get_search_engine(request: Request):
    return request.app.state.search_engine


def get_payment_gateway(request: Request):
    """The configured gateway, or None when STRIPE_SECRET_KEY is unset."""
    return request.app.state.payment_gateway


def client_ip(request: Request) -> str:
    """
    Address the rate limiters key on: the socket peer, unless the app sits
    behind TRUSTED_PROXY_COUNT proxies that each append to X-Forwarded-For.
    Entries left of the trusted hops are client-controlled and never used.
    """
    trusted = request.app.state.settings.trusted_proxy_count
    forwarded = request.headers.get("x-forwarded-for")
    if trusted > 0 and forwarded:
        hops = [hop.strip() for hop in forwarded.split(",") if hop.strip()]
        if len(hops) >= trusted:
            return hops[-trusted]
    if request.client is not None:
        return request.client.host
    return "unknown"
