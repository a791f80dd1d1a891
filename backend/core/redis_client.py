# backend/core/redis_client.py

import logging
from typing import Optional

import redis

from .config import Settings, get_settings

logger = logging.getLogger(__name__)


def get_redis_client(settings: Optional[Settings] = None) -> redis.Redis:
    """
    Build a Redis client from settings

    The client is created once at application startup and passed to the
    services that need it; close it with client.close() on shutdown.
    """
    settings = settings or get_settings()
    timeout = settings.cache_socket_timeout_seconds

    if settings.redis_url:
        client = redis.Redis.from_url(
            settings.redis_url,
            decode_responses=True,
            socket_timeout=timeout,
            socket_connect_timeout=timeout,
        )
    else:
        client = redis.Redis(
            host=settings.REDIS_HOST,
            port=settings.REDIS_PORT,
            db=settings.REDIS_DB,
            password=settings.REDIS_PASSWORD,
            decode_responses=True,
            socket_timeout=timeout,
            socket_connect_timeout=timeout,
        )

    logger.info(f"Redis client configured for {settings.redis_url or settings.REDIS_HOST}")
    return client
