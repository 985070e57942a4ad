"""Shared FastAPI dependencies."""

from collections.abc import AsyncGenerator

from redis.asyncio import Redis

from bagelfunds.redis_client import get_redis


async def get_redis_dep() -> AsyncGenerator[Redis, None]:
    """Yield the Redis client as a FastAPI dependency.

    Overridden in tests with an in-memory double.
    """
    yield get_redis()
