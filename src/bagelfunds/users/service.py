"""User profile business logic."""

from __future__ import annotations

from typing import TYPE_CHECKING

import structlog

from bagelfunds.db.models import User

if TYPE_CHECKING:
    from sqlalchemy.ext.asyncio import AsyncSession

logger = structlog.get_logger()


async def update_profile(
    db: AsyncSession,
    user: User,
    phone: str | None = None,
    twitter: str | None = None,
    image: str | None = None,
) -> User:
    """Update the contact fields of a profile. ``None`` leaves a field as is."""
    if phone is not None:
        user.phone = phone
    if twitter is not None:
        user.twitter = twitter.lstrip("@")
    if image is not None:
        user.image = image

    await db.flush()
    logger.info("profile_updated", user_id=user.id)
    return user
