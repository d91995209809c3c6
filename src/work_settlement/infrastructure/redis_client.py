"""Redis client for cross-process locks.

The expiry sweeper runs in every API process; a short-lived Redis lock makes
sure only one of them sweeps at a time. Redis is optional: when it is not
reachable the sweep still runs, relying on row versions to settle races.

Usage:
    from work_settlement.infrastructure.redis_client import distributed_lock

    async with distributed_lock("settlement:expiry-sweep") as acquired:
        if acquired:
            ...
"""

from __future__ import annotations

from contextlib import asynccontextmanager
from typing import TYPE_CHECKING

import redis.asyncio as aioredis
from redis.exceptions import LockError, RedisError

from work_settlement.config import get_settings
from work_settlement.logging_config import get_logger

if TYPE_CHECKING:
    from collections.abc import AsyncIterator

logger = get_logger(__name__)

_redis_client: aioredis.Redis | None = None


async def init_redis() -> aioredis.Redis | None:
    """Initialize the Redis client. Returns None when Redis is unreachable."""
    global _redis_client
    settings = get_settings()
    client = aioredis.from_url(settings.redis_url, decode_responses=True)
    try:
        await client.ping()
    except (RedisError, OSError) as err:
        logger.warning("redis.unavailable", url=settings.redis_url, error=str(err))
        await client.aclose()
        return None
    _redis_client = client
    logger.info("redis.connected", url=settings.redis_url)
    return _redis_client


def get_redis() -> aioredis.Redis | None:
    """Return the Redis client singleton, or None if it was never connected."""
    return _redis_client


async def close_redis() -> None:
    """Close the Redis connection. Called during app shutdown."""
    global _redis_client
    if _redis_client is not None:
        await _redis_client.aclose()
        logger.info("redis.disconnected")
        _redis_client = None


# --- Lock Helpers ---


@asynccontextmanager
async def distributed_lock(
    name: str,
    client: aioredis.Redis | None = None,
) -> AsyncIterator[bool]:
    """Try to take a non-blocking Redis lock; yield whether this process owns it.

    Without a Redis client the lock is considered acquired.
    """
    client = client if client is not None else get_redis()
    if client is None:
        yield True
        return

    settings = get_settings()
    lock = client.lock(
        f"lock:{name}",
        timeout=settings.redis_lock_timeout_seconds,
        blocking=False,
    )
    try:
        acquired = await lock.acquire()
    except RedisError as err:
        logger.warning("redis.lock_failed", lock=name, error=str(err))
        yield True
        return

    try:
        yield bool(acquired)
    finally:
        if acquired:
            try:
                await lock.release()
            except LockError:
                # the lock timed out and may already belong to another process
                logger.warning("redis.lock_lost", lock=name)
