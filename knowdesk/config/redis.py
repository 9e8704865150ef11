"""Redis connection checks for the Celery broker."""

import redis.asyncio as redis
from redis.exceptions import RedisError

from knowdesk.settings import settings
from knowdesk.utils.logging_config import logger


async def check_redis_connection():
    """
    Checks the connection to the Redis broker used by the ingestion worker.
    Raises an exception if the connection fails.
    """
    try:
        async with redis.from_url(
            str(settings.REDIS_URL), encoding="utf-8", decode_responses=True
        ) as redis_client:
            if not await redis_client.ping():
                raise ConnectionError(
                    "Redis connection failed: PING command returned False"
                )
            logger.info("Redis connection successful")
    except (RedisError, ConnectionError) as e:
        logger.error(f"Redis connection error: {e}")
        raise
