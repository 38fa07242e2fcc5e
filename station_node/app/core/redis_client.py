"""
Redis client initialization and connection management.

Redis backs the route price cache and carries change events to the
station dashboards.
"""

import redis.asyncio as redis
from station_node.app.core.config import settings


# Create async Redis client
redis_client = redis.from_url(
    settings.redis_url,
    decode_responses=settings.redis_decode_responses,
)


async def ping_redis(client=None) -> bool:
    """
    Test Redis connection.

    Returns:
        True if connection successful, False otherwise
    """
    try:
        return bool(await (client or redis_client).ping())
    except Exception:
        return False
