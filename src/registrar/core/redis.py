"""
Redis Connection

One shared async client, used for admin rate limits and, with
REALTIME_BACKEND=redis, for fanning notifications out to every API instance.

Redis is optional: when it cannot be reached the app keeps running and the
callers fall back to in-process state.
"""

import logging

from redis.asyncio import Redis, from_url
from redis.exceptions import RedisError

from registrar.core.config import settings

logger = logging.getLogger(__name__)

CONNECT_TIMEOUT_SECONDS = 5

redis_client: Redis | None = None


async def init_redis(url: str | None = None) -> Redis:
    """
    Connect and ping Redis on application startup.

    Raises:
        RedisError, OSError: If Redis cannot be reached (no client is kept)
    """
    global redis_client
    client = from_url(
        url or settings.redis_url,
        encoding="utf-8",
        decode_responses=True,
        socket_connect_timeout=CONNECT_TIMEOUT_SECONDS,
    )
    try:
        await client.ping()
    except (RedisError, OSError):
        await client.aclose()
        raise

    redis_client = client
    return redis_client


async def get_redis() -> Redis | None:
    """The shared client, or None when Redis is not connected."""
    return redis_client


async def redis_status() -> dict[str, str]:
    """Connection state reported by the debug endpoint."""
    if redis_client is None:
        return {"redis": "not initialized"}
    try:
        await redis_client.ping()
    except (RedisError, OSError) as e:
        logger.warning(f"Redis ping failed: {e}")
        return {"redis": "error", "message": str(e)}
    return {"redis": "connected"}


async def close_redis() -> None:
    global redis_client
    if redis_client is not None:
        await redis_client.aclose()
        redis_client = None
