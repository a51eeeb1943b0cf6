"""
Redis rate limiting for booking endpoints.
Fixed window counter per user; fails open when Redis is unreachable.
"""

import logging
import os
from typing import Optional

import redis
from fastapi import Depends, HTTPException, status

from .auth import CurrentUser, get_current_user
from .config import BOOKING_RATE_LIMIT_PER_MINUTE, RATE_LIMIT_ENABLED

logger = logging.getLogger(__name__)

redis_client: Optional[redis.Redis] = None


def get_redis_client() -> redis.Redis:
    """Get or create the Redis client (REDIS_URL or individual settings)"""
    global redis_client

    if redis_client is None:
        redis_url = os.getenv("REDIS_URL")
        if redis_url:
            client = redis.from_url(
                redis_url,
                decode_responses=True,
                socket_connect_timeout=5,
                socket_timeout=5,
                retry_on_timeout=True,
            )
        else:
            client = redis.Redis(
                host=os.getenv("REDIS_HOST", "localhost"),
                port=int(os.getenv("REDIS_PORT", "6379")),
                password=os.getenv("REDIS_PASSWORD"),
                db=int(os.getenv("REDIS_DB", "0")),
                ssl=os.getenv("REDIS_SSL", "false").lower() == "true",
                decode_responses=True,
                socket_connect_timeout=5,
                socket_timeout=5,
                retry_on_timeout=True,
            )
        client.ping()
        redis_client = client
        logger.info("Redis connected for rate limiting")

    return redis_client


def check_rate_limit(client: redis.Redis, key: str, limit: int, window_seconds: int) -> tuple[bool, int]:
    """Returns (is_allowed, ttl_seconds)"""
    pipe = client.pipeline()
    pipe.incr(key)
    pipe.ttl(key)
    count, ttl = pipe.execute()
    if ttl is None or ttl < 0:
        client.expire(key, window_seconds)
        ttl = window_seconds
    return int(count) <= limit, int(ttl)


async def booking_rate_limit(current_user: CurrentUser = Depends(get_current_user)) -> None:
    """Dependency limiting booking attempts per user per minute"""
    if not RATE_LIMIT_ENABLED:
        return

    try:
        client = get_redis_client()
        allowed, ttl = check_rate_limit(
            client, f"rate_limit:booking:{current_user.id}", BOOKING_RATE_LIMIT_PER_MINUTE, 60
        )
    except redis.RedisError as e:
        logger.warning(f"⚠️ Rate limiting unavailable, allowing request: {e}")
        return

    if not allowed:
        logger.warning(f"🚫 Booking rate limit exceeded for user {current_user.id}")
        raise HTTPException(
            status_code=status.HTTP_429_TOO_MANY_REQUESTS,
            detail="Too many booking attempts. Please try again shortly.",
            headers={"Retry-After": str(ttl)},
        )
