import logging
from typing import Optional

import redis

from app.core.setting import config

logger = logging.getLogger(__name__)

# We use a simple module-level client, created on first use.
_redis_client: Optional[redis.Redis] = None


def get_redis_client() -> Optional[redis.Redis]:
    """
    Returns the Redis client instance, or None when caching is disabled.
    Initializes it only once.
    """
    global _redis_client

    if not config.CACHE_ENABLED:
        return None

    if _redis_client is None:
        _redis_client = redis.Redis(
            host=config.REDIS_HOST,
            port=config.REDIS_PORT,
            decode_responses=True,
            socket_timeout=5,
            socket_connect_timeout=5
        )
    return _redis_client
