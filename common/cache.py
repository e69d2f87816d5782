# common/cache.py
import json
import os
from typing import Any, Optional

import redis
from redis.exceptions import RedisError

from common.logging_config import get_logger

logger = get_logger()

AVAILABILITY_PREFIX = "bookings:availability:"

_redis_client: Optional[redis.Redis] = None


def get_redis_client() -> Optional[redis.Redis]:
    """
    Return a Redis client if REDIS_URL is configured, otherwise None.
    Fails gracefully (no caching) if Redis is not reachable.
    """
    global _redis_client

    if _redis_client is not None:
        return _redis_client

    redis_url = os.getenv("REDIS_URL")
    if not redis_url:
        return None

    try:
        client = redis.from_url(
            redis_url,
            decode_responses=True,
            socket_connect_timeout=2,
            socket_timeout=2,
        )
        # Lightweight health check
        client.ping()
    except RedisError as exc:
        logger.warning(f"Redis unavailable, caching disabled: {exc}")
        _redis_client = None
        return None

    _redis_client = client
    return _redis_client


def get_cached_json(key: str) -> Optional[Any]:
    client = get_redis_client()
    if client is None:
        return None

    try:
        raw = client.get(key)
    except RedisError as exc:
        logger.warning(f"Redis read failed for {key}: {exc}")
        return None
    if raw is None:
        return None
    return json.loads(raw)


def set_cached_json(key: str, value: Any, ttl_seconds: int = 60) -> None:
    client = get_redis_client()
    if client is None:
        return

    try:
        client.setex(key, ttl_seconds, json.dumps(value, default=str))
    except RedisError as exc:
        logger.warning(f"Redis write failed for {key}: {exc}")


def delete_prefix(prefix: str) -> None:
    """
    Delete all keys starting with prefix.
    Example: prefix='bookings:availability:'.
    """
    client = get_redis_client()
    if client is None:
        return

    pattern = prefix + "*"
    try:
        for k in client.scan_iter(pattern):
            client.delete(k)
    except RedisError as exc:
        logger.warning(f"Redis invalidation failed for {prefix}: {exc}")


def invalidate_availability() -> None:
    delete_prefix(AVAILABILITY_PREFIX)
