"""
Redis sliding-window rate limiter (per client IP, per minute).

Fails open: when Redis is unreachable requests pass through, and the
limiter waits RETRY_BACKOFF seconds before trying to reconnect.
"""

import logging
import time

import redis.asyncio as aioredis
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import JSONResponse

logger = logging.getLogger(__name__)

EXEMPT_PATHS = frozenset({"/api/health", "/metrics"})
EXEMPT_PREFIXES = ("/screenshots/",)
KEY_PREFIX = "qa:ratelimit:"
RETRY_BACKOFF = 30.0  # seconds


class RateLimitMiddleware(BaseHTTPMiddleware):
    def __init__(self, app, redis_url: str, limit: int, window: int = 60):
        super().__init__(app)
        self.redis_url = redis_url
        self.limit = limit
        self.window = window
        self._redis: aioredis.Redis | None = None
        self._retry_at = 0.0

    async def _get_redis(self) -> aioredis.Redis | None:
        if self._redis is not None or time.monotonic() < self._retry_at:
            return self._redis
        client = aioredis.from_url(self.redis_url, decode_responses=True)
        try:
            await client.ping()
        except Exception as exc:
            logger.warning("Rate limiter: Redis unavailable (%s), passing through", exc)
            self._retry_at = time.monotonic() + RETRY_BACKOFF
            await client.aclose()
            return None
        self._redis = client
        return client

    def _exempt(self, path: str) -> bool:
        return self.limit <= 0 or path in EXEMPT_PATHS or path.startswith(EXEMPT_PREFIXES)

    async def dispatch(self, request: Request, call_next):
        if self._exempt(request.url.path):
            return await call_next(request)

        r = await self._get_redis()
        if r is None:
            return await call_next(request)

        client_ip = request.client.host if request.client else "unknown"
        now = time.time()
        key = f"{KEY_PREFIX}{client_ip}"

        try:
            pipe = r.pipeline()
            pipe.zremrangebyscore(key, 0, now - self.window)
            pipe.zadd(key, {str(now): now})
            pipe.zcard(key)
            pipe.expire(key, self.window)
            request_count = (await pipe.execute())[2]
        except Exception as exc:
            logger.warning("Rate limiter Redis error: %s", exc)
            self._redis = None
            self._retry_at = time.monotonic() + RETRY_BACKOFF
            return await call_next(request)

        if request_count > self.limit:
            return JSONResponse(
                status_code=429,
                content={"detail": "Too many requests. Please try again later."},
                headers={"Retry-After": str(self.window)},
            )

        response = await call_next(request)
        response.headers["X-RateLimit-Limit"] = str(self.limit)
        response.headers["X-RateLimit-Remaining"] = str(max(0, self.limit - request_count))
        return response
