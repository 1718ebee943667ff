"""Redis client backing the VC read cache.

Usage:
    from provenance_escrow.infrastructure.redis_client import init_redis, get_redis

    init_redis()
    redis = get_redis()
    redis.set("vc:Qm...", payload, ex=3600)
"""

from __future__ import annotations

import redis

from provenance_escrow.config import get_settings
from provenance_escrow.logging_config import get_logger

logger = get_logger(__name__)

_redis_client: redis.Redis | None = None


def init_redis(url: str | None = None) -> redis.Redis:
    """Initialize and return the Redis client. Called during app startup."""
    global _redis_client
    settings = get_settings()
    target = url or settings.redis_url
    _redis_client = redis.Redis.from_url(target)
    _redis_client.ping()
    logger.info("redis.connected", url=target)
    return _redis_client


def get_redis() -> redis.Redis:
    """Return the Redis client singleton. Must call init_redis() first."""
    if _redis_client is None:
        raise RuntimeError("Redis not initialized. Call init_redis() first.")
    return _redis_client


def close_redis() -> None:
    """Close the Redis connection. Called during app shutdown."""
    global _redis_client
    if _redis_client is not None:
        _redis_client.close()
        logger.info("redis.disconnected")
        _redis_client = None
