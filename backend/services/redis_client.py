"""Redis client for timeline storage."""

from functools import lru_cache

import redis

from config import get_settings


@lru_cache
def get_redis() -> redis.Redis:
    """Get Redis client singleton.

    Used for:
    - Timeline documents keyed by A-roll
    - Celery task broker and result backend (configured separately in worker)
    """
    settings = get_settings()
    return redis.from_url(settings.redis_url, decode_responses=True)
