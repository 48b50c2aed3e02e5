"""
In-memory TTL cache for anonymous GET responses.

Only requests without a session cookie are served from or stored in the
cache, so a cached body can never be user-specific. Invalidation is a fixed
list of derived keys per write prefix: a new derived read view has to be
added to INVALIDATION_RULES by hand.
"""

import logging
import threading
import time
from typing import Any, Callable, Dict, Optional, Tuple
from urllib.parse import urlencode

from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import Response

from storefront.observability import cache_events_total

logger = logging.getLogger("storefront.cache")

MUTATING_METHODS = {"POST", "PUT", "PATCH", "DELETE"}

# write prefix -> (exact keys, key prefixes) to drop
INVALIDATION_RULES = {
    "/api/products": (
        ("/api/products/featured", "/api/products/new-arrivals", "/api/products"),
        ("/api/products?", "/api/products/"),
    ),
    "/api/categories": (
        ("/api/categories",),
        ("/api/categories/",),
    ),
}


class ResponseCache:
    def __init__(self, default_ttl: float = 300, clock: Callable[[], float] = time.monotonic):
        self.default_ttl = default_ttl
        self._clock = clock
        self._entries: Dict[str, Tuple[Any, float]] = {}
        self._lock = threading.Lock()
        self.stats = {"hits": 0, "misses": 0, "sets": 0, "deletes": 0}

    def get(self, key: str) -> Optional[Any]:
        now = self._clock()
        with self._lock:
            entry = self._entries.get(key)
            if entry is None or now >= entry[1]:
                if entry is not None:
                    del self._entries[key]
                self.stats["misses"] += 1
                return None
            self.stats["hits"] += 1
            return entry[0]

    def set(self, key: str, value: Any, ttl: Optional[float] = None) -> None:
        expires_at = self._clock() + (self.default_ttl if ttl is None else ttl)
        with self._lock:
            self._entries[key] = (value, expires_at)
            self.stats["sets"] += 1

    def delete(self, key: str) -> bool:
        with self._lock:
            if self._entries.pop(key, None) is None:
                return False
            self.stats["deletes"] += 1
            return True

    def delete_prefix(self, prefix: str) -> int:
        with self._lock:
            keys = [key for key in self._entries if key.startswith(prefix)]
            for key in keys:
                del self._entries[key]
            self.stats["deletes"] += len(keys)
            return len(keys)

    def clear(self) -> int:
        with self._lock:
            size = len(self._entries)
            self._entries.clear()
        logger.info("[CACHE] Cleared %d entries", size)
        return size

    def __len__(self) -> int:
        return len(self._entries)

    def snapshot(self) -> Dict[str, Any]:
        total = self.stats["hits"] + self.stats["misses"]
        hit_rate = (self.stats["hits"] / total * 100) if total else 0.0
        return {**self.stats, "size": len(self), "hit_rate": f"{hit_rate:.2f}%"}


def cache_key(path: str, query_items) -> str:
    query = urlencode(sorted(query_items))
    return f"{path}?{query}" if query else path


def invalidate_for_write(cache: ResponseCache, path: str) -> None:
    for prefix, (keys, key_prefixes) in INVALIDATION_RULES.items():
        if path.startswith(prefix):
            for key in keys:
                cache.delete(key)
            for key_prefix in key_prefixes:
                cache.delete_prefix(key_prefix)
            cache_events_total.labels(event="invalidate").inc()
            logger.info("[CACHE] Invalidated: %s", prefix)


class ResponseCacheMiddleware(BaseHTTPMiddleware):
    def __init__(
        self,
        app,
        ttl_for: Callable[[str], Optional[float]],
        session_cookie_name: str,
        cacheable_prefixes=("/api/products", "/api/categories"),
        # search is rate limited and recorded per request
        excluded_prefixes=("/api/products/search",),
    ):
        super().__init__(app)
        self.ttl_for = ttl_for
        self.session_cookie_name = session_cookie_name
        self.cacheable_prefixes = tuple(cacheable_prefixes)
        self.excluded_prefixes = tuple(excluded_prefixes)

    async def dispatch(self, request: Request, call_next):
        cache: ResponseCache = request.app.state.response_cache
        path = request.url.path

        if request.method in MUTATING_METHODS:
            response = await call_next(request)
            if response.status_code < 400:
                invalidate_for_write(cache, path)
            return response

        if (
            request.method != "GET"
            or not path.startswith(self.cacheable_prefixes)
            or path.startswith(self.excluded_prefixes)
            or request.cookies.get(self.session_cookie_name)
        ):
            return await call_next(request)

        key = cache_key(path, request.query_params.multi_items())
        cached = cache.get(key)
        if cached is not None:
            cache_events_total.labels(event="hit").inc()
            body, media_type = cached
            return Response(content=body, media_type=media_type, headers={"X-Cache": "HIT"})
        cache_events_total.labels(event="miss").inc()

        response = await call_next(request)
        media_type = response.headers.get("content-type", "")
        if response.status_code != 200 or not media_type.startswith("application/json"):
            return response

        body = b"".join([chunk async for chunk in response.body_iterator])
        cache.set(key, (body, media_type), self.ttl_for(path))
        headers = {k: v for k, v in response.headers.items() if k.lower() != "content-length"}
        headers["X-Cache"] = "MISS"
        return Response(content=body, status_code=response.status_code, headers=headers)
