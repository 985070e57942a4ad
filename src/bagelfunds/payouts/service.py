"""Payout business logic: payment verification and winner draws.

Rules:
- A session is settled once none of its payments is left unpaid
- Each member wins exactly one session; prior winners are never drawn again
- A session keeps its winner once drawn
- The cycle ends when every session is settled and has a winner
"""

from __future__ import annotations

import random
from collections.abc import Sequence

import structlog
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from bagelfunds.cycles.service import get_cycle_memberships, get_cycle_sessions
from bagelfunds.db.models import Cycle, CycleSession, Payment, UserCycle
from bagelfunds.flash import RuleViolation

logger = structlog.get_logger()

_system_rng = random.SystemRandom()


# ---------------------------------------------------------------------------
# Queries
# ---------------------------------------------------------------------------


async def get_session(db: AsyncSession, cycle_id: int, session_id: int) -> CycleSession | None:
    """Get a session, provided it belongs to the cycle."""
    result = await db.execute(
        select(CycleSession).where(CycleSession.id == session_id, CycleSession.cycle_id == cycle_id)
    )
    return result.scalar_one_or_none()


async def get_payment(db: AsyncSession, session_id: int, payment_id: int) -> Payment | None:
    """Get a payment, provided it belongs to the session."""
    result = await db.execute(
        select(Payment).where(Payment.id == payment_id, Payment.session_id == session_id)
    )
    return result.scalar_one_or_none()


async def count_unpaid_payments(db: AsyncSession, session_id: int) -> int:
    """Number of payments of a session still waiting for verification."""
    result = await db.execute(
        select(func.count())
        .select_from(Payment)
        .where(Payment.session_id == session_id, Payment.has_paid.is_(False))
    )
    return result.scalar_one()


# ---------------------------------------------------------------------------
# Payments
# ---------------------------------------------------------------------------


async def mark_payment_paid(db: AsyncSession, payment: Payment) -> None:
    payment.has_paid = True
    await db.flush()


async def mark_session_settled(db: AsyncSession, session: CycleSession) -> bool:
    """Flag the session as fully paid if no payment is outstanding."""
    if await count_unpaid_payments(db, session.id) > 0:
        return False
    session.all_paid = True
    await db.flush()
    return True


async def verify_payment(db: AsyncSession, cycle: Cycle, session_id: int, payment_id: int) -> Payment:
    """
    Record a member's payment for a session, as confirmed by the host.

    Settles the session when this was its last unpaid payment and closes
    the cycle when that completes it.

    Raises:
        RuleViolation: ``session_not_found`` or ``payment_not_found``.
    """
    session = await get_session(db, cycle.id, session_id)
    if session is None:
        raise RuleViolation("session_not_found", "Session not found in this cycle")
    payment = await get_payment(db, session.id, payment_id)
    if payment is None:
        raise RuleViolation("payment_not_found", "Payment not found in this session")

    await mark_payment_paid(db, payment)
    settled = await mark_session_settled(db, session)

    logger.info(
        "payment_verified",
        cycle_id=cycle.id,
        session_id=session.id,
        payment_id=payment.id,
        session_settled=settled,
    )
    if settled:
        await close_cycle_if_complete(db, cycle)
    return payment


# ---------------------------------------------------------------------------
# Winner draw
# ---------------------------------------------------------------------------


def pick_winner(
    memberships: Sequence[UserCycle],
    sessions: Sequence[CycleSession],
    rng: random.Random | None = None,
) -> UserCycle:
    """
    Choose a winner uniformly among members who have not won a session yet.

    Raises:
        RuleViolation: ``no_eligible_members`` when everyone has already won.
    """
    prior_winners = {s.winner_id for s in sessions if s.winner_id is not None}
    eligible = [m for m in memberships if m.id not in prior_winners]
    if not eligible:
        raise RuleViolation("no_eligible_members", "Every member has already won")
    return (rng or _system_rng).choice(eligible)


async def randomize_winner(
    db: AsyncSession,
    cycle: Cycle,
    session_id: int,
    rng: random.Random | None = None,
) -> UserCycle:
    """
    Draw the winner of a session.

    Raises:
        RuleViolation: ``cycle_not_started``, ``session_not_found``,
            ``winner_already_drawn`` or ``no_eligible_members``.
    """
    if not cycle.has_started:
        raise RuleViolation("cycle_not_started", "Cycle has not started")
    session = await get_session(db, cycle.id, session_id)
    if session is None:
        raise RuleViolation("session_not_found", "Session not found in this cycle")
    if session.winner_id is not None:
        raise RuleViolation("winner_already_drawn", "This session already has a winner")

    memberships = await get_cycle_memberships(db, cycle.id)
    sessions = await get_cycle_sessions(db, cycle.id)
    winner = pick_winner(memberships, sessions, rng)

    session.winner_id = winner.id
    winner.has_received = True
    await db.flush()

    logger.info("winner_drawn", cycle_id=cycle.id, session_id=session.id, membership_id=winner.id)
    await close_cycle_if_complete(db, cycle)
    return winner


# ---------------------------------------------------------------------------
# Completion
# ---------------------------------------------------------------------------


async def close_cycle_if_complete(db: AsyncSession, cycle: Cycle) -> bool:
    """Mark the cycle ended once every session is settled and has a winner."""
    if cycle.has_ended or not cycle.has_started:
        return cycle.has_ended
    sessions = await get_cycle_sessions(db, cycle.id)
    if not sessions or not all(s.all_paid and s.winner_id is not None for s in sessions):
        return False

    cycle.has_ended = True
    await db.flush()
    logger.info("cycle_ended", cycle_id=cycle.id, sessions=len(sessions))
    return True
