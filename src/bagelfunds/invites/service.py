"""Invite business logic.

Rules:
- Any member invites others by username
- Nobody can invite themselves, an existing member, or someone already invited
- Membership is frozen once the cycle has started: no new invites, no accepts
- Accepting turns the invite into a membership; declining just drops it
"""

from __future__ import annotations

import structlog
from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import aliased

from bagelfunds.auth.service import get_user_by_username
from bagelfunds.cycles.service import get_membership
from bagelfunds.db.models import Cycle, Invite, User, UserCycle
from bagelfunds.flash import RuleViolation

logger = structlog.get_logger()


async def get_invite(db: AsyncSession, invite_id: int) -> Invite | None:
    """Get an invite by ID."""
    result = await db.execute(select(Invite).where(Invite.id == invite_id))
    return result.scalar_one_or_none()


async def get_pending_invite(db: AsyncSession, cycle_id: int, user_id: int) -> Invite | None:
    """The open invite for a user to a cycle, if there is one."""
    result = await db.execute(
        select(Invite).where(Invite.cycle_id == cycle_id, Invite.user_id == user_id)
    )
    return result.scalar_one_or_none()


async def list_user_invites(db: AsyncSession, user_id: int) -> list[tuple[Invite, Cycle, User | None]]:
    """Invites addressed to a user with their cycle and inviter, newest first."""
    inviter = aliased(User)
    result = await db.execute(
        select(Invite, Cycle, inviter)
        .join(Cycle, Cycle.id == Invite.cycle_id)
        .outerjoin(inviter, inviter.id == Invite.inviter_id)
        .where(Invite.user_id == user_id)
        .order_by(Invite.id.desc())
    )
    return [(row[0], row[1], row[2]) for row in result.all()]


async def list_cycle_invites(db: AsyncSession, cycle_id: int) -> list[tuple[Invite, User]]:
    """Open invites of a cycle with the invited users."""
    result = await db.execute(
        select(Invite, User)
        .join(User, User.id == Invite.user_id)
        .where(Invite.cycle_id == cycle_id)
        .order_by(Invite.id)
    )
    return [(row[0], row[1]) for row in result.all()]


async def invite_user(db: AsyncSession, cycle: Cycle, inviter: User, username: str) -> Invite:
    """
    Invite a user to a cycle by username.

    Raises:
        RuleViolation: ``user_not_found``, ``self_invite``, ``already_in_cycle``,
            ``already_invited`` or ``cycle_started``.
    """
    invitee = await get_user_by_username(db, username)
    if invitee is None:
        raise RuleViolation("user_not_found", "No user with that username")
    if invitee.id == inviter.id:
        raise RuleViolation("self_invite", "You cannot invite yourself")
    if await get_membership(db, invitee.id, cycle.id) is not None:
        raise RuleViolation("already_in_cycle", "User is already a member")
    if await get_pending_invite(db, cycle.id, invitee.id) is not None:
        raise RuleViolation("already_invited", "User has already been invited")
    if cycle.has_started:
        raise RuleViolation("cycle_started", "Cycle has already started")

    invite = Invite(cycle_id=cycle.id, user_id=invitee.id, inviter_id=inviter.id)
    db.add(invite)
    try:
        await db.flush()
    except IntegrityError as e:
        raise RuleViolation("already_invited", "User has already been invited") from e

    logger.info("invite_sent", invite_id=invite.id, cycle_id=cycle.id, user_id=invitee.id)
    return invite


async def _own_invite(db: AsyncSession, invite_id: int, user_id: int) -> Invite:
    invite = await get_invite(db, invite_id)
    if invite is None:
        raise RuleViolation("invite_not_found", "Invite not found")
    if invite.user_id != user_id:
        raise RuleViolation("not_your_invite", "This invite belongs to someone else")
    return invite


async def accept_invite(db: AsyncSession, invite_id: int, user_id: int) -> UserCycle:
    """
    Accept an invite: remove it and add the membership.

    The cycle row is locked like in ``start_cycle``, so an accept and a
    start on the same cycle serialize.

    Raises:
        RuleViolation: ``invite_not_found``, ``not_your_invite``,
            ``cycle_not_found`` or ``cycle_started``.
    """
    invite = await _own_invite(db, invite_id, user_id)
    result = await db.execute(
        select(Cycle)
        .where(Cycle.id == invite.cycle_id)
        .with_for_update()
        .execution_options(populate_existing=True)
    )
    cycle = result.scalar_one_or_none()
    if cycle is None:
        raise RuleViolation("cycle_not_found", "Cycle not found")
    if cycle.has_started:
        raise RuleViolation("cycle_started", "Cycle has already started")

    membership = await get_membership(db, user_id, cycle.id)
    await db.delete(invite)
    if membership is None:
        membership = UserCycle(user_id=user_id, cycle_id=cycle.id, has_received=False)
        db.add(membership)
    await db.flush()

    logger.info("invite_accepted", invite_id=invite_id, cycle_id=cycle.id, user_id=user_id)
    return membership


async def decline_invite(db: AsyncSession, invite_id: int, user_id: int) -> int:
    """
    Decline an invite. Returns the cycle ID it pointed at.

    Raises:
        RuleViolation: ``invite_not_found`` or ``not_your_invite``.
    """
    invite = await _own_invite(db, invite_id, user_id)
    cycle_id = invite.cycle_id
    await db.delete(invite)
    await db.flush()

    logger.info("invite_declined", invite_id=invite_id, cycle_id=cycle_id, user_id=user_id)
    return cycle_id
