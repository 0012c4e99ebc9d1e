"""The shared redis.asyncio client used for refresh tokens, rate limits and pub/sub."""

import redis.asyncio as aioredis

_client: aioredis.Redis | None = None


def get_redis_optional() -> aioredis.Redis | None:
    """The client, or None before startup. Publishers treat None as "skip"."""
    return _client


def get_redis() -> aioredis.Redis:
    if _client is None:
        raise RuntimeError("Redis is not connected; the app lifespan has not started")
    return _client


async def init_redis(url: str) -> aioredis.Redis:
    global _client
    _client = aioredis.from_url(url, decode_responses=True)
    await _client.ping()
    return _client


async def close_redis() -> None:
    global _client
    if _client is not None:
        await _client.aclose()
        _client = None
