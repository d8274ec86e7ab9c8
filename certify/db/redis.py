"""Redis connection management.

Mirrors engine.py: the client is created by the application lifespan from
REDIS_URL and injected where needed (currently the auto-issue guard).  No
REDIS_URL means the in-memory guard is used instead.
"""

from __future__ import annotations

import logging
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

import redis.asyncio as aioredis
from redis.exceptions import RedisError

logger = logging.getLogger(__name__)


def create_redis(redis_url: str) -> aioredis.Redis:  # type: ignore[type-arg]
    return aioredis.from_url(
        redis_url,
        decode_responses=True,
        max_connections=20,
    )


@asynccontextmanager
async def lifespan_redis(
    redis_url: str | None,
) -> AsyncGenerator[aioredis.Redis | None, None]:  # type: ignore[type-arg]
    """Startup/shutdown hook for Redis.

    A failed ping at startup is logged and the service continues with
    in-memory fallbacks; the guard is an optimization, not a correctness
    mechanism, so losing it must not stop issuance.
    """
    if not redis_url:
        logger.info("No REDIS_URL configured; issuance guard is per-process")
        yield None
        return

    client = create_redis(redis_url)
    try:
        await client.ping()  # type: ignore[misc]
        logger.info("Redis connected: %s", redis_url)
    except (RedisError, OSError):
        logger.exception("Redis connection failed on startup")
        await client.aclose()
        yield None
        return

    try:
        yield client
    finally:
        await client.aclose()
        logger.info("Redis connection pool closed")
