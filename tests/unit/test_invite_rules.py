"""Unit tests for invite rules."""

from __future__ import annotations

from datetime import date
from decimal import Decimal

import pytest
import pytest_asyncio
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from bagelfunds.cycles.service import create_cycle, get_cycle, get_membership, start_cycle
from bagelfunds.db.models import Cycle, Invite, User
from bagelfunds.flash import RuleViolation
from bagelfunds.invites.service import (
    accept_invite,
    decline_invite,
    get_invite,
    invite_user,
    list_cycle_invites,
    list_user_invites,
)


async def _create_user(db: AsyncSession, username: str) -> User:
    user = User(username=username, email=f"{username}@example.com", password="x")
    db.add(user)
    await db.flush()
    return user


@pytest_asyncio.fixture
async def circle(db_session: AsyncSession) -> tuple[Cycle, User, User]:
    """A fresh cycle, its host and one user who is not in it yet."""
    host = await _create_user(db_session, "host")
    guest = await _create_user(db_session, "guest")
    cycle = await create_cycle(db_session, "Lunch Club", host.id, None, 7, Decimal("25.00"))
    return cycle, host, guest


async def _code(coro) -> str:
    with pytest.raises(RuleViolation) as exc_info:
        await coro
    return exc_info.value.code


class TestInviteUser:
    @pytest.mark.asyncio
    async def test_invite_by_username(self, db_session: AsyncSession, circle):
        cycle, host, guest = circle
        invite = await invite_user(db_session, cycle, host, "guest")

        assert invite.cycle_id == cycle.id
        assert invite.user_id == guest.id
        assert invite.inviter_id == host.id
        rows = await list_cycle_invites(db_session, cycle.id)
        assert [(i.id, u.username) for i, u in rows] == [(invite.id, "guest")]

    @pytest.mark.asyncio
    async def test_unknown_username(self, db_session: AsyncSession, circle):
        cycle, host, _ = circle
        assert await _code(invite_user(db_session, cycle, host, "nobody")) == "user_not_found"

    @pytest.mark.asyncio
    async def test_self_invite(self, db_session: AsyncSession, circle):
        cycle, host, _ = circle
        assert await _code(invite_user(db_session, cycle, host, "host")) == "self_invite"

    @pytest.mark.asyncio
    async def test_second_invite_rejected(self, db_session: AsyncSession, circle):
        cycle, host, _ = circle
        await invite_user(db_session, cycle, host, "guest")
        assert await _code(invite_user(db_session, cycle, host, "guest")) == "already_invited"

        count = (await db_session.execute(select(func.count()).select_from(Invite))).scalar_one()
        assert count == 1

    @pytest.mark.asyncio
    async def test_member_cannot_be_invited(self, db_session: AsyncSession, circle):
        cycle, host, guest = circle
        invite = await invite_user(db_session, cycle, host, "guest")
        await accept_invite(db_session, invite.id, guest.id)

        assert await _code(invite_user(db_session, cycle, host, "guest")) == "already_in_cycle"

    @pytest.mark.asyncio
    async def test_started_cycle_is_closed(self, db_session: AsyncSession, circle):
        cycle, host, guest = circle
        invite = await invite_user(db_session, cycle, host, "guest")
        await accept_invite(db_session, invite.id, guest.id)
        await start_cycle(db_session, cycle.id, today=date(2024, 3, 4))
        await _create_user(db_session, "late")

        assert await _code(invite_user(db_session, cycle, host, "late")) == "cycle_started"

    @pytest.mark.asyncio
    async def test_member_of_started_cycle_is_already_in(self, db_session: AsyncSession, circle):
        cycle, host, guest = circle
        invite = await invite_user(db_session, cycle, host, "guest")
        await accept_invite(db_session, invite.id, guest.id)
        await start_cycle(db_session, cycle.id, today=date(2024, 3, 4))

        assert await _code(invite_user(db_session, cycle, host, "guest")) == "already_in_cycle"

    @pytest.mark.asyncio
    async def test_any_member_can_invite(self, db_session: AsyncSession, circle):
        cycle, host, guest = circle
        invite = await invite_user(db_session, cycle, host, "guest")
        await accept_invite(db_session, invite.id, guest.id)
        await _create_user(db_session, "friend")

        friend_invite = await invite_user(db_session, cycle, guest, "friend")
        assert friend_invite.inviter_id == guest.id


class TestHandleInvite:
    @pytest.mark.asyncio
    async def test_accept_turns_invite_into_membership(self, db_session: AsyncSession, circle):
        cycle, host, guest = circle
        invite = await invite_user(db_session, cycle, host, "guest")
        invite_id = invite.id

        membership = await accept_invite(db_session, invite_id, guest.id)

        assert membership.cycle_id == cycle.id
        assert membership.user_id == guest.id
        assert await get_membership(db_session, guest.id, cycle.id) is not None
        assert await get_invite(db_session, invite_id) is None

    @pytest.mark.asyncio
    async def test_accept_someone_elses_invite(self, db_session: AsyncSession, circle):
        cycle, host, _ = circle
        invite = await invite_user(db_session, cycle, host, "guest")
        stranger = await _create_user(db_session, "stranger")

        assert await _code(accept_invite(db_session, invite.id, stranger.id)) == "not_your_invite"
        assert await get_membership(db_session, stranger.id, cycle.id) is None

    @pytest.mark.asyncio
    async def test_accept_missing_invite(self, db_session: AsyncSession, circle):
        _, _, guest = circle
        assert await _code(accept_invite(db_session, 999, guest.id)) == "invite_not_found"

    @pytest.mark.asyncio
    async def test_accept_after_start(self, db_session: AsyncSession, circle):
        cycle, host, guest = circle
        second = await _create_user(db_session, "second")
        first_invite = await invite_user(db_session, cycle, host, "second")
        await accept_invite(db_session, first_invite.id, second.id)
        invite = await invite_user(db_session, cycle, host, "guest")
        await start_cycle(db_session, cycle.id, today=date(2024, 3, 4))

        assert await _code(accept_invite(db_session, invite.id, guest.id)) == "cycle_started"
        assert await get_membership(db_session, guest.id, cycle.id) is None

    @pytest.mark.asyncio
    async def test_accept_sees_start_from_another_session(self, session_scope):
        """A cycle loaded before someone else started it is re-read on accept."""
        async with session_scope() as db:
            host = await _create_user(db, "host")
            second = await _create_user(db, "second")
            guest = await _create_user(db, "guest")
            cycle = await create_cycle(db, "Lunch Club", host.id, None, 7, Decimal("25.00"))
            first_invite = await invite_user(db, cycle, host, "second")
            await accept_invite(db, first_invite.id, second.id)
            invite = await invite_user(db, cycle, host, "guest")
            cycle_id, invite_id, guest_id = cycle.id, invite.id, guest.id
            await db.commit()

        async with session_scope() as db:
            stale = await get_cycle(db, cycle_id)
            assert stale.has_started is False
            await db.commit()

            async with session_scope() as other:
                await start_cycle(other, cycle_id, today=date(2024, 3, 4))
                await other.commit()

            assert await _code(accept_invite(db, invite_id, guest_id)) == "cycle_started"
            assert await get_membership(db, guest_id, cycle_id) is None

    @pytest.mark.asyncio
    async def test_decline_removes_invite_only(self, db_session: AsyncSession, circle):
        cycle, host, guest = circle
        invite = await invite_user(db_session, cycle, host, "guest")
        invite_id = invite.id

        assert await decline_invite(db_session, invite_id, guest.id) == cycle.id
        assert await get_invite(db_session, invite_id) is None
        assert await get_membership(db_session, guest.id, cycle.id) is None

    @pytest.mark.asyncio
    async def test_decline_someone_elses_invite(self, db_session: AsyncSession, circle):
        cycle, host, _ = circle
        invite = await invite_user(db_session, cycle, host, "guest")
        assert await _code(decline_invite(db_session, invite.id, host.id)) == "not_your_invite"

    @pytest.mark.asyncio
    async def test_list_user_invites(self, db_session: AsyncSession, circle):
        cycle, host, guest = circle
        await invite_user(db_session, cycle, host, "guest")

        rows = await list_user_invites(db_session, guest.id)
        assert len(rows) == 1
        invite, invited_to, inviter = rows[0]
        assert invited_to.name == "Lunch Club"
        assert inviter.username == "host"
        assert await list_user_invites(db_session, host.id) == []
