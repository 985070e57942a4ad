"""Cycle business logic.

Rules:
- The creator hosts the cycle and is its first member
- A cycle needs at least ``min_cycle_members`` members to start
- Starting freezes membership: one session per member, due dates chained by
  the cycle frequency, and one unpaid payment per (session, member)
- Cancelling removes the cycle with all of its sessions, payments, invites
  and memberships, whatever state it is in

Helpers only ``flush()``. The calling handler commits, so every composite
operation lands in the database as one transaction or not at all.
"""

from __future__ import annotations

from datetime import date, timedelta
from decimal import Decimal

import structlog
from sqlalchemy import delete, func, select
from sqlalchemy.ext.asyncio import AsyncSession

from bagelfunds.config import get_settings
from bagelfunds.db.models import Cycle, CycleSession, Invite, Payment, User, UserCycle
from bagelfunds.flash import RuleViolation

logger = structlog.get_logger()


# ---------------------------------------------------------------------------
# Queries
# ---------------------------------------------------------------------------


async def get_cycle(db: AsyncSession, cycle_id: int) -> Cycle | None:
    """Get a cycle by ID."""
    result = await db.execute(select(Cycle).where(Cycle.id == cycle_id))
    return result.scalar_one_or_none()


async def get_membership(db: AsyncSession, user_id: int, cycle_id: int) -> UserCycle | None:
    """Get the membership linking a user to a cycle, if any."""
    result = await db.execute(
        select(UserCycle).where(UserCycle.user_id == user_id, UserCycle.cycle_id == cycle_id)
    )
    return result.scalar_one_or_none()


async def get_cycle_memberships(db: AsyncSession, cycle_id: int) -> list[UserCycle]:
    """All memberships of a cycle, oldest first."""
    result = await db.execute(
        select(UserCycle).where(UserCycle.cycle_id == cycle_id).order_by(UserCycle.id)
    )
    return list(result.scalars().all())


async def count_members(db: AsyncSession, cycle_id: int) -> int:
    """Number of members in a cycle."""
    result = await db.execute(
        select(func.count()).select_from(UserCycle).where(UserCycle.cycle_id == cycle_id)
    )
    return result.scalar_one()


async def get_member_users(db: AsyncSession, cycle_id: int) -> list[tuple[UserCycle, User]]:
    """Memberships of a cycle joined with their users, oldest first."""
    result = await db.execute(
        select(UserCycle, User)
        .join(User, User.id == UserCycle.user_id)
        .where(UserCycle.cycle_id == cycle_id)
        .order_by(UserCycle.id)
    )
    return [(row[0], row[1]) for row in result.all()]


async def list_user_cycles(db: AsyncSession, user_id: int) -> list[Cycle]:
    """Cycles the user belongs to (hosted or joined), newest first."""
    result = await db.execute(
        select(Cycle)
        .join(UserCycle, UserCycle.cycle_id == Cycle.id)
        .where(UserCycle.user_id == user_id)
        .order_by(Cycle.id.desc())
    )
    return list(result.scalars().all())


async def get_cycle_sessions(db: AsyncSession, cycle_id: int) -> list[CycleSession]:
    """Sessions of a cycle in due-date order."""
    result = await db.execute(
        select(CycleSession)
        .where(CycleSession.cycle_id == cycle_id)
        .order_by(CycleSession.due_date, CycleSession.id)
    )
    return list(result.scalars().all())


async def get_session_payments(db: AsyncSession, session_id: int) -> list[Payment]:
    """Payments of one session, in membership order."""
    result = await db.execute(
        select(Payment).where(Payment.session_id == session_id).order_by(Payment.user_cycle_id)
    )
    return list(result.scalars().all())


async def get_cycle_payments(db: AsyncSession, cycle_id: int) -> list[Payment]:
    """Every payment row of every session of a cycle."""
    result = await db.execute(
        select(Payment)
        .join(CycleSession, CycleSession.id == Payment.session_id)
        .where(CycleSession.cycle_id == cycle_id)
        .order_by(Payment.session_id, Payment.user_cycle_id)
    )
    return list(result.scalars().all())


# ---------------------------------------------------------------------------
# Create
# ---------------------------------------------------------------------------


async def create_cycle(
    db: AsyncSession,
    name: str,
    host_id: int,
    start_date: date | None,
    frequency_days: int,
    payment: Decimal,
) -> Cycle:
    """Create a cycle and add its host as the first member."""
    cycle = Cycle(
        name=name,
        host_id=host_id,
        start_date=start_date,
        frequency_days=frequency_days,
        payment=payment,
        has_started=False,
        has_ended=False,
    )
    db.add(cycle)
    await db.flush()

    db.add(UserCycle(user_id=host_id, cycle_id=cycle.id, has_received=False))
    await db.flush()

    logger.info("cycle_created", cycle_id=cycle.id, host_id=host_id, name=name)
    return cycle


# ---------------------------------------------------------------------------
# Start
# ---------------------------------------------------------------------------


def session_due_dates(start: date, frequency_days: int, count: int) -> list[date]:
    """Due dates for ``count`` sessions: start + f, start + 2f, ..."""
    step = timedelta(days=frequency_days)
    due_dates = []
    due = start
    for _ in range(count):
        due = due + step
        due_dates.append(due)
    return due_dates


async def start_cycle(db: AsyncSession, cycle_id: int, today: date | None = None) -> list[CycleSession]:
    """
    Start a cycle: freeze membership and lay out every session and payment.

    The cycle row is locked and reloaded first so two concurrent starts
    serialize and the second one sees ``has_started``.

    Raises:
        RuleViolation: ``cycle_not_found``, ``already_started`` or
            ``not_enough_members``.
    """
    result = await db.execute(
        select(Cycle)
        .where(Cycle.id == cycle_id)
        .with_for_update()
        .execution_options(populate_existing=True)
    )
    cycle = result.scalar_one_or_none()
    if cycle is None:
        raise RuleViolation("cycle_not_found", "Cycle not found")
    if cycle.has_started:
        raise RuleViolation("already_started", "Cycle has already started")

    memberships = await get_cycle_memberships(db, cycle_id)
    min_members = get_settings().min_cycle_members
    if len(memberships) < min_members:
        raise RuleViolation(
            "not_enough_members",
            f"A cycle needs at least {min_members} members to start",
        )

    start = today or date.today()
    cycle.has_started = True
    cycle.start_date = start

    sessions = [
        CycleSession(cycle_id=cycle.id, due_date=due, winner_id=None, all_paid=False)
        for due in session_due_dates(start, cycle.frequency_days, len(memberships))
    ]
    db.add_all(sessions)
    await db.flush()

    db.add_all(
        Payment(user_cycle_id=membership.id, session_id=session.id, has_paid=False)
        for session in sessions
        for membership in memberships
    )
    await db.flush()

    logger.info(
        "cycle_started",
        cycle_id=cycle.id,
        members=len(memberships),
        sessions=len(sessions),
        payments=len(sessions) * len(memberships),
    )
    return sessions


# ---------------------------------------------------------------------------
# Cancel
# ---------------------------------------------------------------------------


async def cancel_cycle(db: AsyncSession, cycle_id: int) -> None:
    """Delete a cycle and everything that hangs off it, children first."""
    session_ids = select(CycleSession.id).where(CycleSession.cycle_id == cycle_id)
    statements = [
        delete(Payment).where(Payment.session_id.in_(session_ids)),
        delete(CycleSession).where(CycleSession.cycle_id == cycle_id),
        delete(Invite).where(Invite.cycle_id == cycle_id),
        delete(UserCycle).where(UserCycle.cycle_id == cycle_id),
        delete(Cycle).where(Cycle.id == cycle_id),
    ]
    for statement in statements:
        await db.execute(statement.execution_options(synchronize_session=False))
    await db.flush()

    logger.info("cycle_cancelled", cycle_id=cycle_id)
