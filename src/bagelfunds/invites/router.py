"""Invite router: send, list, accept and decline invites."""

from __future__ import annotations

from fastapi import APIRouter, Depends
from fastapi.responses import RedirectResponse
from sqlalchemy.ext.asyncio import AsyncSession

from bagelfunds.auth.dependencies import get_current_user, get_cycle_membership
from bagelfunds.cycles.service import get_cycle
from bagelfunds.database import get_session
from bagelfunds.db.models import User, UserCycle
from bagelfunds.flash import RuleViolation, flash_redirect
from bagelfunds.invites.schemas import InviteRequest, NotificationsResponse, PendingInviteResponse
from bagelfunds.invites.service import accept_invite, decline_invite, invite_user, list_user_invites

router = APIRouter(tags=["Invites"])


@router.get("/notifications", response_model=NotificationsResponse)
async def notifications(
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_session),
) -> NotificationsResponse:
    """The caller's pending invites."""
    rows = await list_user_invites(db, user.id)
    return NotificationsResponse(
        invites=[
            PendingInviteResponse(
                id=invite.id,
                cycle_id=cycle.id,
                cycle_name=cycle.name,
                payment=cycle.payment,
                frequency_days=cycle.frequency_days,
                inviter_username=inviter.username if inviter is not None else None,
                created_at=invite.created_at,
            )
            for invite, cycle, inviter in rows
        ]
    )


@router.post("/invite/{cycle_id}")
async def invite(
    cycle_id: int,
    body: InviteRequest,
    membership: UserCycle = Depends(get_cycle_membership),
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_session),
) -> RedirectResponse:
    """Invite a user into a cycle the caller belongs to."""
    location = f"/overview/{cycle_id}"
    cycle = await get_cycle(db, membership.cycle_id)
    if cycle is None:
        return flash_redirect("/", error="cycle_not_found")
    try:
        await invite_user(db, cycle, user, body.username)
        await db.commit()
    except RuleViolation as e:
        return flash_redirect(location, error=e.code)
    return flash_redirect(location, success="invite_sent")


@router.post("/handle/{invite_id}")
async def accept(
    invite_id: int,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_session),
) -> RedirectResponse:
    """Join the cycle an invite points at."""
    try:
        membership = await accept_invite(db, invite_id, user.id)
        await db.commit()
    except RuleViolation as e:
        return flash_redirect("/notifications", error=e.code)
    return flash_redirect(f"/overview/{membership.cycle_id}", success="joined")


@router.delete("/handle/{invite_id}")
async def decline(
    invite_id: int,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_session),
) -> RedirectResponse:
    """Turn an invite down."""
    try:
        await decline_invite(db, invite_id, user.id)
        await db.commit()
    except RuleViolation as e:
        return flash_redirect("/notifications", error=e.code)
    return flash_redirect("/notifications", success="invite_declined")
