"""Redis connection pool and the key names the app stores in it.

Redis holds two kinds of short-lived counters: per-IP request counts for the
rate limiter and per-user failed login counts for the account lockout.
"""

import redis.asyncio as redis

_pool: redis.Redis | None = None

KEY_PREFIX = "bagelfunds"


def rate_limit_key(client_ip: str, window: int) -> str:
    """Counter for one client in one fixed rate-limit window."""
    return f"{KEY_PREFIX}:ratelimit:{client_ip}:{window}"


def login_attempts_key(user_id: int) -> str:
    """Failed login counter for one user."""
    return f"{KEY_PREFIX}:login_attempts:{user_id}"


async def init_redis(url: str) -> None:
    """Create the process-wide Redis pool."""
    global _pool  # noqa: PLW0603
    _pool = redis.from_url(  # type: ignore[no-untyped-call]
        url,
        encoding="utf-8",
        decode_responses=True,
        max_connections=20,
    )


async def close_redis() -> None:
    """Close the Redis pool on shutdown."""
    global _pool  # noqa: PLW0603
    if _pool:
        await _pool.aclose()
        _pool = None


def get_redis() -> redis.Redis:
    """Return the Redis client, raising RuntimeError before ``init_redis``."""
    if _pool is None:
        msg = "Redis not initialized. Call init_redis() first."
        raise RuntimeError(msg)
    return _pool
