"""
Shared Redis connection.

Holds in-flight trip workflows and carries the `fleet:<collection>` change
channels. Requests reach it through `get_redis`; the change feed reads the
module attribute so tests can swap the client.
"""

import logging

import redis.asyncio as redis
from redis.exceptions import RedisError

from fleet_dashboard.app.core.config import settings

logger = logging.getLogger(__name__)

redis_client = redis.from_url(
    settings.redis_url,
    decode_responses=settings.redis_decode_responses,
)


async def get_redis():
    return redis_client


async def ping_redis() -> bool:
    """Report whether Redis answers; used by /health."""
    try:
        return bool(await redis_client.ping())
    except (RedisError, OSError) as e:
        logger.warning("Redis ping failed", extra={"error": str(e)})
        return False


async def close_redis() -> None:
    await redis_client.aclose()
