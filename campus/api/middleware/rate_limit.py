"""Rate limiting middleware for FastAPI.

Provides per-account and per-IP rate limiting using Redis as a backend,
with a sliding window kept in a sorted set per identifier.

Features:
- Per-account limits for requests carrying a valid bearer token
- Per-IP limits for anonymous requests
- Stricter per-IP limits on login, registration and password reset
- HTTP 429 responses with Retry-After and X-RateLimit-* headers
- Fails open when Redis is unavailable
"""

import hashlib
import logging
import time
from typing import Optional, Tuple

import redis.asyncio as redis
from fastapi import Request, Response, status
from fastapi.responses import JSONResponse
from redis.exceptions import RedisError
from starlette.middleware.base import BaseHTTPMiddleware

from campus.api.schemas.common import ErrorResponse
from campus.core.config import get_settings
from campus.core.errors import CampusError
from campus.core.security import ACCESS, decode_token

logger = logging.getLogger(__name__)

# Paths excluded from rate limiting
EXCLUDED_PATHS = {
    "/health",
    "/health/live",
    "/health/ready",
}

STRICT_SUFFIXES = (
    "/auth/login",
    "/auth/register",
    "/auth/forgot-password",
    "/auth/reset-password",
)


class RateLimiter:
    """
    Sliding window rate limiter using Redis.

    Falls back to allowing requests if Redis is unavailable.
    """

    def __init__(self, redis_url: Optional[str] = None):
        self.settings = get_settings()
        self.redis_url = redis_url or self.settings.redis_url
        self._redis: Optional[redis.Redis] = None

        self.default_limit = self.settings.rate_limit_default
        self.default_window = self.settings.rate_limit_window
        self.auth_limit = self.settings.rate_limit_auth
        self.login_limit = self.settings.rate_limit_login

    async def get_redis(self) -> Optional[redis.Redis]:
        """Get or create Redis connection."""
        if self._redis is None:
            client = redis.from_url(
                self.redis_url,
                encoding="utf-8",
                decode_responses=True,
                socket_connect_timeout=2,
                socket_timeout=2,
            )
            try:
                await client.ping()
            except (RedisError, OSError) as exc:
                logger.warning("Rate limiter disabled, Redis unreachable: %s", exc)
                return None
            self._redis = client
        return self._redis

    def _get_key(self, identifier: str, endpoint: str = "default") -> str:
        hashed = hashlib.sha256(identifier.encode()).hexdigest()[:16]
        return f"ratelimit:{endpoint}:{hashed}"

    async def is_allowed(
        self,
        identifier: str,
        endpoint: str = "default",
        limit: Optional[int] = None,
        window: Optional[int] = None,
    ) -> Tuple[bool, int, int, int]:
        """
        Check if request is allowed under rate limit.

        Returns:
            Tuple of (allowed, remaining, limit, reset_time)
        """
        limit = limit or self.default_limit
        window = window or self.default_window

        r = await self.get_redis()
        if r is None:
            return True, limit, limit, 0

        key = self._get_key(identifier, endpoint)
        now = time.time()

        try:
            async with r.pipeline(transaction=True) as pipe:
                pipe.zremrangebyscore(key, 0, now - window)
                pipe.zcard(key)
                pipe.zadd(key, {f"{now}:{id(pipe)}": now})
                pipe.expire(key, window)
                results = await pipe.execute()
        except (RedisError, OSError) as exc:
            logger.warning("Rate limit check failed, allowing request: %s", exc)
            return True, limit, limit, 0

        current_count = results[1]
        reset_time = int(now) + window

        if current_count >= limit:
            return False, 0, limit, reset_time
        return True, max(0, limit - current_count - 1), limit, reset_time

    async def close(self):
        """Close Redis connection."""
        if self._redis:
            await self._redis.close()


class RateLimitMiddleware(BaseHTTPMiddleware):
    """
    FastAPI middleware for rate limiting.

    Applies different rate limits based on:
    - Authentication status (account id vs IP)
    - Endpoint (stricter limits for login and registration)
    """

    def __init__(self, app, limiter: Optional[RateLimiter] = None):
        super().__init__(app)
        self.limiter = limiter or RateLimiter()

    async def dispatch(self, request: Request, call_next) -> Response:
        if not self.limiter.settings.rate_limit_enabled or request.url.path in EXCLUDED_PATHS:
            return await call_next(request)

        identifier, limit, endpoint = self._get_rate_params(request)

        allowed, remaining, total, reset_time = await self.limiter.is_allowed(
            identifier=identifier,
            endpoint=endpoint,
            limit=limit,
        )

        if not allowed:
            retry_after = reset_time - int(time.time())
            body = ErrorResponse(
                error="Rate limit exceeded. Please try again later.",
                code="rate_limited",
            )
            # Raising here would bypass the exception handlers
            return JSONResponse(
                status_code=status.HTTP_429_TOO_MANY_REQUESTS,
                content=body.model_dump(),
                headers={
                    "Retry-After": str(max(1, retry_after)),
                    "X-RateLimit-Limit": str(total),
                    "X-RateLimit-Remaining": "0",
                    "X-RateLimit-Reset": str(reset_time),
                },
            )

        response = await call_next(request)

        response.headers["X-RateLimit-Limit"] = str(total)
        response.headers["X-RateLimit-Remaining"] = str(remaining)
        if reset_time:
            response.headers["X-RateLimit-Reset"] = str(reset_time)

        return response

    def _get_rate_params(self, request: Request) -> Tuple[str, int, str]:
        """
        Returns:
            Tuple of (identifier, limit, endpoint_category)
        """
        path = request.url.path

        if path.endswith(STRICT_SUFFIXES):
            return self._get_client_ip(request), self.limiter.login_limit, "login"

        account_id = self._get_account_id(request)
        if account_id:
            return account_id, self.limiter.auth_limit, "auth"

        return self._get_client_ip(request), self.limiter.default_limit, "default"

    def _get_account_id(self, request: Request) -> Optional[str]:
        """Account id from a well-formed bearer token. Session state is checked later by the route."""
        header = request.headers.get("authorization", "")
        scheme, _, token = header.partition(" ")
        if scheme.lower() != "bearer" or not token:
            return None
        try:
            return decode_token(token, ACCESS)["sub"]
        except CampusError:
            return None

    def _get_client_ip(self, request: Request) -> str:
        """Extract client IP from request, handling proxies."""
        forwarded = request.headers.get("x-forwarded-for")
        if forwarded:
            return forwarded.split(",")[0].strip()

        real_ip = request.headers.get("x-real-ip")
        if real_ip:
            return real_ip

        if request.client:
            return request.client.host

        return "unknown"
