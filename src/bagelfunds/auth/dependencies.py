"""FastAPI authentication and authorization dependencies.

Gates are chained: ``get_current_user`` → ``get_cycle_membership`` →
``get_hosted_cycle``. A failing gate raises ``FlashRedirect`` so the handler
never runs.
"""

from __future__ import annotations

import jwt
import structlog
from fastapi import Depends, Request
from sqlalchemy.ext.asyncio import AsyncSession

from bagelfunds.auth.jwt import verify_session_token
from bagelfunds.auth.service import get_user_by_id
from bagelfunds.config import get_settings
from bagelfunds.cycles.service import get_cycle, get_membership
from bagelfunds.database import get_session
from bagelfunds.db.models import Cycle, User, UserCycle
from bagelfunds.flash import FlashRedirect

logger = structlog.get_logger()


async def _user_from_cookie(request: Request, db: AsyncSession) -> User | None:
    token = request.cookies.get(get_settings().session_cookie_name)
    if not token:
        return None
    try:
        user_id = verify_session_token(token)
    except jwt.InvalidTokenError as e:
        logger.info("session_rejected", reason=str(e))
        return None
    return await get_user_by_id(db, user_id)


async def get_optional_user(
    request: Request,
    db: AsyncSession = Depends(get_session),
) -> User | None:
    """Return the signed-in user, or None for anonymous visitors."""
    return await _user_from_cookie(request, db)


async def get_current_user(
    request: Request,
    db: AsyncSession = Depends(get_session),
) -> User:
    """
    Require a signed-in user.

    A missing, tampered or expired session cookie, or one naming a user that
    no longer exists, redirects to ``/?e=login_required`` and clears the cookie.
    """
    user = await _user_from_cookie(request, db)
    if user is None:
        raise FlashRedirect("/", error="login_required", clear_session=True)
    return user


async def get_cycle_membership(
    cycle_id: int,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_session),
) -> UserCycle:
    """Require the caller to be a member of the cycle in the path."""
    membership = await get_membership(db, user.id, cycle_id)
    if membership is None:
        logger.info("membership_denied", user_id=user.id, cycle_id=cycle_id)
        raise FlashRedirect("/", error="not_member")
    return membership


async def get_hosted_cycle(
    cycle_id: int,
    membership: UserCycle = Depends(get_cycle_membership),
    db: AsyncSession = Depends(get_session),
) -> Cycle:
    """Require the caller to host the cycle in the path. Returns the cycle."""
    cycle = await get_cycle(db, cycle_id)
    if cycle is None:
        raise FlashRedirect("/", error="cycle_not_found")
    if cycle.host_id != membership.user_id:
        logger.info("host_denied", user_id=membership.user_id, cycle_id=cycle_id)
        raise FlashRedirect(f"/overview/{cycle_id}", error="not_host")
    return cycle
