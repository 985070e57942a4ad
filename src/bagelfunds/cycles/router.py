"""Cycle router: dashboard, creation, overview, start and cancel."""

from __future__ import annotations

from collections import defaultdict
from datetime import date

import structlog
from fastapi import APIRouter, Depends
from fastapi.responses import RedirectResponse
from sqlalchemy.ext.asyncio import AsyncSession

from bagelfunds.auth.dependencies import (
    get_current_user,
    get_cycle_membership,
    get_hosted_cycle,
    get_optional_user,
)
from bagelfunds.auth.schemas import PageResponse, UserResponse
from bagelfunds.config import get_settings
from bagelfunds.cycles.schemas import (
    CreateCycleRequest,
    CreatePageResponse,
    CycleInviteResponse,
    CycleSummary,
    DashboardResponse,
    MemberResponse,
    OverviewResponse,
    PaymentResponse,
    SessionResponse,
)
from bagelfunds.cycles.service import (
    cancel_cycle,
    count_members,
    create_cycle,
    get_cycle,
    get_cycle_payments,
    get_cycle_sessions,
    get_member_users,
    list_user_cycles,
    start_cycle,
)
from bagelfunds.database import get_session
from bagelfunds.db.models import Cycle, User, UserCycle
from bagelfunds.flash import FlashRedirect, RuleViolation, flash_redirect
from bagelfunds.invites.service import list_cycle_invites, list_user_invites

logger = structlog.get_logger()

router = APIRouter(tags=["Cycles"])


def _summary(cycle: Cycle, user_id: int, member_count: int) -> CycleSummary:
    return CycleSummary(
        id=cycle.id,
        name=cycle.name,
        host_id=cycle.host_id,
        is_host=cycle.host_id == user_id,
        member_count=member_count,
        frequency_days=cycle.frequency_days,
        payment=cycle.payment,
        start_date=cycle.start_date,
        has_started=cycle.has_started,
        has_ended=cycle.has_ended,
    )


# ---------------------------------------------------------------------------
# Landing / dashboard
# ---------------------------------------------------------------------------


@router.get("/", response_model=None)
async def landing(
    user: User | None = Depends(get_optional_user),
    db: AsyncSession = Depends(get_session),
) -> PageResponse | DashboardResponse:
    """Landing page for visitors, dashboard for signed-in users."""
    if user is None:
        return PageResponse(page="landing")

    cycles = await list_user_cycles(db, user.id)
    summaries = [_summary(cycle, user.id, await count_members(db, cycle.id)) for cycle in cycles]
    invites = await list_user_invites(db, user.id)
    return DashboardResponse(
        user=UserResponse.model_validate(user),
        cycles=summaries,
        pending_invites=len(invites),
    )


# ---------------------------------------------------------------------------
# Create
# ---------------------------------------------------------------------------


@router.get("/create", response_model=CreatePageResponse)
async def create_page(
    user: User = Depends(get_current_user),
) -> CreatePageResponse:
    """The create-cycle form."""
    return CreatePageResponse(
        username=user.username,
        default_start_date=date.today(),
        min_members=get_settings().min_cycle_members,
    )


@router.post("/create")
async def create(
    body: CreateCycleRequest,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_session),
) -> RedirectResponse:
    """Create a cycle hosted by the caller."""
    cycle = await create_cycle(
        db,
        name=body.name,
        host_id=user.id,
        start_date=body.start_date,
        frequency_days=body.frequency_days,
        payment=body.payment,
    )
    await db.commit()
    return flash_redirect(f"/overview/{cycle.id}", success="cycle_created")


# ---------------------------------------------------------------------------
# Overview
# ---------------------------------------------------------------------------


@router.get("/overview/{cycle_id}", response_model=OverviewResponse)
async def overview(
    cycle_id: int,
    membership: UserCycle = Depends(get_cycle_membership),
    db: AsyncSession = Depends(get_session),
) -> OverviewResponse:
    """Everything a member sees about a cycle."""
    cycle = await get_cycle(db, cycle_id)
    if cycle is None:
        raise FlashRedirect("/", error="cycle_not_found")

    member_rows = await get_member_users(db, cycle_id)
    usernames = {m.id: u.username for m, u in member_rows}
    members = [
        MemberResponse(
            membership_id=m.id,
            user_id=u.id,
            username=u.username,
            image=u.image,
            is_host=u.id == cycle.host_id,
            has_received=m.has_received,
        )
        for m, u in member_rows
    ]

    payments_by_session: dict[int, list[PaymentResponse]] = defaultdict(list)
    for payment in await get_cycle_payments(db, cycle_id):
        payments_by_session[payment.session_id].append(
            PaymentResponse(
                id=payment.id,
                membership_id=payment.user_cycle_id,
                username=usernames.get(payment.user_cycle_id, ""),
                has_paid=payment.has_paid,
            )
        )

    sessions = [
        SessionResponse(
            id=s.id,
            due_date=s.due_date,
            all_paid=s.all_paid,
            winner_membership_id=s.winner_id,
            winner_username=usernames.get(s.winner_id) if s.winner_id is not None else None,
            payments=payments_by_session.get(s.id, []),
        )
        for s in await get_cycle_sessions(db, cycle_id)
    ]

    invites = [
        CycleInviteResponse(id=invite.id, user_id=invitee.id, username=invitee.username)
        for invite, invitee in await list_cycle_invites(db, cycle_id)
    ]

    is_host = cycle.host_id == membership.user_id
    return OverviewResponse(
        cycle=_summary(cycle, membership.user_id, len(members)),
        is_host=is_host,
        pot=cycle.payment * len(members),
        members=members,
        sessions=sessions,
        invites=invites,
    )


# ---------------------------------------------------------------------------
# Host actions
# ---------------------------------------------------------------------------


@router.put("/start/{cycle_id}")
async def start(
    cycle_id: int,
    cycle: Cycle = Depends(get_hosted_cycle),
    db: AsyncSession = Depends(get_session),
) -> RedirectResponse:
    """Start the cycle: freeze membership, schedule sessions and payments."""
    try:
        await start_cycle(db, cycle.id)
        await db.commit()
    except RuleViolation as e:
        logger.info("cycle_start_rejected", cycle_id=cycle_id, code=e.code)
        return flash_redirect(f"/overview/{cycle_id}", error=e.code)
    return flash_redirect(f"/overview/{cycle_id}", success="cycle_started")


@router.delete("/cancel/{cycle_id}")
async def cancel(
    cycle_id: int,
    cycle: Cycle = Depends(get_hosted_cycle),
    db: AsyncSession = Depends(get_session),
) -> RedirectResponse:
    """Delete the cycle and everything attached to it."""
    await cancel_cycle(db, cycle.id)
    await db.commit()
    return flash_redirect("/", success="cycle_cancelled")
