"""Payout router: host-only payment verification and winner draws."""

from __future__ import annotations

from fastapi import APIRouter, Depends
from fastapi.responses import RedirectResponse
from sqlalchemy.ext.asyncio import AsyncSession

from bagelfunds.auth.dependencies import get_hosted_cycle
from bagelfunds.database import get_session
from bagelfunds.db.models import Cycle
from bagelfunds.flash import RuleViolation, flash_redirect
from bagelfunds.payouts.service import randomize_winner, verify_payment

router = APIRouter(tags=["Payouts"])


@router.put("/pay/{cycle_id}/{session_id}/{payment_id}")
async def pay(
    cycle_id: int,
    session_id: int,
    payment_id: int,
    cycle: Cycle = Depends(get_hosted_cycle),
    db: AsyncSession = Depends(get_session),
) -> RedirectResponse:
    """Confirm that a member has paid into a session."""
    location = f"/overview/{cycle_id}"
    try:
        await verify_payment(db, cycle, session_id, payment_id)
        await db.commit()
    except RuleViolation as e:
        return flash_redirect(location, error=e.code)
    return flash_redirect(location, success="payment_verified")


@router.put("/randomize/{cycle_id}/{session_id}")
async def randomize(
    cycle_id: int,
    session_id: int,
    cycle: Cycle = Depends(get_hosted_cycle),
    db: AsyncSession = Depends(get_session),
) -> RedirectResponse:
    """Draw the winner of a session."""
    location = f"/overview/{cycle_id}"
    try:
        await randomize_winner(db, cycle, session_id)
        await db.commit()
    except RuleViolation as e:
        return flash_redirect(location, error=e.code)
    return flash_redirect(location, success="winner_drawn")
