"""
Authentication business logic.

Handles user lookups, signup, password login and the failed-login lockout.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

import structlog
from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError

from bagelfunds.auth.password import check_needs_rehash, hash_password, verify_password
from bagelfunds.config import get_settings
from bagelfunds.db.models import User
from bagelfunds.flash import RuleViolation
from bagelfunds.redis_client import login_attempts_key

if TYPE_CHECKING:
    from redis.asyncio import Redis
    from sqlalchemy.ext.asyncio import AsyncSession

logger = structlog.get_logger()


# ---------------------------------------------------------------------------
# User queries
# ---------------------------------------------------------------------------


async def get_user_by_id(db: AsyncSession, user_id: int) -> User | None:
    """Fetch a user by ID."""
    result = await db.execute(select(User).where(User.id == user_id))
    return result.scalar_one_or_none()


async def get_user_by_username(db: AsyncSession, username: str) -> User | None:
    """Fetch a user by exact username."""
    result = await db.execute(select(User).where(User.username == username))
    return result.scalar_one_or_none()


async def get_user_by_email(db: AsyncSession, email: str) -> User | None:
    """Fetch a user by email (case-insensitive)."""
    result = await db.execute(select(User).where(func.lower(User.email) == email.lower()))
    return result.scalar_one_or_none()


async def create_user(db: AsyncSession, username: str, email: str, password_hash: str) -> User:
    """Insert a user row. Callers check uniqueness first."""
    user = User(
        username=username,
        email=email.lower().strip(),
        password=password_hash,
        image=None,
        phone=None,
        twitter=None,
    )
    db.add(user)
    await db.flush()
    return user


# ---------------------------------------------------------------------------
# Signup
# ---------------------------------------------------------------------------


async def register_user(db: AsyncSession, username: str, email: str, password: str) -> User:
    """
    Register a new user.

    Raises:
        RuleViolation: ``username_taken`` or ``email_taken``. A concurrent
            signup that slips past the lookups is caught by the unique
            constraints and reported the same way.
    """
    if await get_user_by_username(db, username) is not None:
        raise RuleViolation("username_taken", "Username is already taken")
    if await get_user_by_email(db, email) is not None:
        raise RuleViolation("email_taken", "Email is already in use")

    try:
        user = await create_user(db, username, email, hash_password(password))
    except IntegrityError as e:
        await db.rollback()
        if await get_user_by_username(db, username) is not None:
            raise RuleViolation("username_taken", "Username is already taken") from e
        raise RuleViolation("email_taken", "Email is already in use") from e

    logger.info("user_created", user_id=user.id, username=username)
    return user


# ---------------------------------------------------------------------------
# Login
# ---------------------------------------------------------------------------


async def authenticate_user(
    db: AsyncSession,
    redis: Redis,
    username: str,
    password: str,
) -> User:
    """
    Authenticate a user with username + password.

    Raises:
        RuleViolation: ``user_not_found``, ``account_locked`` or ``wrong_password``.
    """
    user = await get_user_by_username(db, username)
    if user is None:
        raise RuleViolation("user_not_found", "No user found")

    if await check_account_lockout(redis, user.id):
        raise RuleViolation("account_locked", "Account temporarily locked. Try again later.")

    if not verify_password(password, user.password):
        attempts = await increment_failed_login(redis, user.id)
        logger.info("login_failed", user_id=user.id, attempts=attempts)
        raise RuleViolation("wrong_password", "Wrong password")

    await clear_failed_login(redis, user.id)

    if check_needs_rehash(user.password):
        user.password = hash_password(password)
        await db.flush()
        logger.info("password_rehashed", user_id=user.id)

    return user


# ---------------------------------------------------------------------------
# Account lockout
# ---------------------------------------------------------------------------


async def check_account_lockout(redis: Redis, user_id: int) -> bool:
    """Check if the account is locked due to too many failed login attempts."""
    settings = get_settings()
    count_str = await redis.get(login_attempts_key(user_id))
    if count_str is None:
        return False
    return int(count_str) >= settings.account_lockout_threshold


async def increment_failed_login(redis: Redis, user_id: int) -> int:
    """Increment the failed login counter. Returns the new count."""
    settings = get_settings()
    key = login_attempts_key(user_id)
    count = await redis.incr(key)
    if count == 1:
        await redis.expire(key, settings.account_lockout_duration_minutes * 60)
    return int(count)


async def clear_failed_login(redis: Redis, user_id: int) -> None:
    """Clear the failed login counter after a successful login."""
    await redis.delete(login_attempts_key(user_id))
