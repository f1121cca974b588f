"""Async Redis connection factory.

Redis is optional. It backs the rate-limit buckets and is reported by the
health check; the factory returns None when it is not configured or
unreachable, and the limiter then keeps its buckets in process memory.
"""

from typing import Optional

import redis.asyncio as aioredis
from redis.exceptions import RedisError

from shared.logging import get_logger

log = get_logger(__name__)


def mask_redis_uri(redis_uri: str) -> str:
    return redis_uri.split("@")[-1]


async def create_redis_client(redis_uri: Optional[str]) -> Optional[aioredis.Redis]:
    """Connect to Redis and return a client, or None when unset or unreachable."""
    if not redis_uri:
        log.info("redis_not_configured")
        return None
    client: aioredis.Redis = aioredis.from_url(
        redis_uri,
        decode_responses=True,
        socket_timeout=2.0,
        socket_connect_timeout=2.0,
    )
    try:
        await client.ping()
    except (RedisError, OSError) as e:
        log.warning(
            "redis_connection_failed",
            uri=mask_redis_uri(redis_uri),
            error=str(e),
            error_type=type(e).__name__,
        )
        await client.aclose()
        return None
    log.info("redis_connected", uri=mask_redis_uri(redis_uri))
    return client
