"""Redis-based sliding window rate limiting middleware."""

import time

from fastapi import Request, Response
from fastapi.responses import JSONResponse
from starlette.middleware.base import BaseHTTPMiddleware

from moltflow.auth import (
    API_KEY_LOOKUP_LENGTH,
    API_KEY_PREFIX,
    access_token_subject,
    extract_bearer_token,
    key_lookup_prefix,
)
from moltflow.logging_config import get_logger

logger = get_logger(__name__)

SKIP_PATHS = {"/health", "/docs", "/redoc", "/openapi.json"}

DEFAULT_WINDOW = 60  # seconds


def rate_limit_identifier(request: Request) -> str:
    """
    Bucket key for a request.

    Agents are bucketed by API key lookup prefix and experts by the subject
    of a verified access token. Anything else falls back to the client IP.
    """
    token = extract_bearer_token(request.headers.get("Authorization"))
    if token is not None:
        if token.startswith(API_KEY_PREFIX) and len(token) > API_KEY_LOOKUP_LENGTH:
            return f"agent:{key_lookup_prefix(token)}"
        subject = access_token_subject(token)
        if subject is not None:
            return f"expert:{subject}"
    return f"ip:{request.client.host if request.client else 'unknown'}"


class RateLimitMiddleware(BaseHTTPMiddleware):
    """Redis sliding window rate limiter (ZADD + ZREMRANGEBYSCORE).

    Fails open: when Redis is unavailable every request is let through.
    """

    def __init__(self, app, redis_getter, limit: int = 60, window: int = DEFAULT_WINDOW):
        super().__init__(app)
        self._redis_getter = redis_getter
        self._limit = limit
        self._window = window

    async def dispatch(self, request: Request, call_next) -> Response:
        if request.url.path in SKIP_PATHS or request.method == "OPTIONS":
            return await call_next(request)

        identifier = rate_limit_identifier(request)
        key = f"ratelimit:{identifier}"

        try:
            redis = self._redis_getter()
            now = time.time()

            pipe = redis.pipeline()
            pipe.zremrangebyscore(key, 0, now - self._window)
            pipe.zadd(key, {f"{now}:{id(request)}": now})
            pipe.zcard(key)
            pipe.expire(key, self._window + 1)
            results = await pipe.execute()
            request_count = results[2]
        except Exception as e:
            logger.warning("rate_limit_redis_error", error=str(e))
            return await call_next(request)

        if request_count > self._limit:
            logger.warning(
                "rate_limit_exceeded",
                identifier=identifier,
                path=request.url.path,
                count=request_count,
                limit=self._limit,
            )
            return JSONResponse(
                status_code=429,
                content={"error": f"Rate limit exceeded: {self._limit} requests per {self._window}s"},
                headers={"Retry-After": str(self._window)},
            )

        response = await call_next(request)
        response.headers["X-RateLimit-Limit"] = str(self._limit)
        response.headers["X-RateLimit-Remaining"] = str(max(0, self._limit - request_count))
        return response
