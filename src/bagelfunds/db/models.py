"""ORM models for the savings-circle schema.

Six tables: users, cycle, user_cycle, invites, sessions, payments.
The table names are the ones created by the initial Alembic migration.
"""

from __future__ import annotations

from datetime import date, datetime, timezone
from decimal import Decimal

from sqlalchemy import (
    Boolean,
    Date,
    DateTime,
    ForeignKey,
    Integer,
    Numeric,
    String,
    Text,
    UniqueConstraint,
    func,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from bagelfunds.db.base import Base


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


# ---------------------------------------------------------------------------
# Users
# ---------------------------------------------------------------------------


class User(Base):
    """A person who can host or join cycles."""

    __tablename__ = "users"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    username: Mapped[str] = mapped_column(String(64), unique=True, nullable=False)
    email: Mapped[str] = mapped_column(String(320), unique=True, nullable=False)
    password: Mapped[str] = mapped_column(String(256), nullable=False)
    image: Mapped[str | None] = mapped_column(Text, nullable=True)
    phone: Mapped[str | None] = mapped_column(String(32), nullable=True)
    twitter: Mapped[str | None] = mapped_column(String(64), nullable=True)
    created_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), default=_utcnow, server_default=func.now()
    )

    memberships: Mapped[list[UserCycle]] = relationship("UserCycle", back_populates="user")


# ---------------------------------------------------------------------------
# Cycles
# ---------------------------------------------------------------------------


class Cycle(Base):
    """A rotating savings circle run by its host."""

    __tablename__ = "cycle"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    name: Mapped[str] = mapped_column(String(128), nullable=False)
    host_id: Mapped[int] = mapped_column(Integer, ForeignKey("users.id"), nullable=False)
    frequency_days: Mapped[int] = mapped_column(Integer, nullable=False)
    payment: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False)
    start_date: Mapped[date | None] = mapped_column(Date, nullable=True)
    has_started: Mapped[bool] = mapped_column(Boolean, default=False, server_default="false")
    has_ended: Mapped[bool] = mapped_column(Boolean, default=False, server_default="false")
    created_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), default=_utcnow, server_default=func.now()
    )

    host: Mapped[User] = relationship("User")


class UserCycle(Base):
    """Membership of a user in a cycle. Session winners point at this row."""

    __tablename__ = "user_cycle"
    __table_args__ = (UniqueConstraint("user_id", "cycle_id", name="uq_user_cycle_user_id_cycle_id"),)

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    user_id: Mapped[int] = mapped_column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    cycle_id: Mapped[int] = mapped_column(Integer, ForeignKey("cycle.id"), nullable=False, index=True)
    has_received: Mapped[bool] = mapped_column(Boolean, default=False, server_default="false")

    user: Mapped[User] = relationship("User", back_populates="memberships")


class Invite(Base):
    """A pending offer for a user to join a cycle."""

    __tablename__ = "invites"
    __table_args__ = (UniqueConstraint("cycle_id", "user_id", name="uq_invites_cycle_id_user_id"),)

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    cycle_id: Mapped[int] = mapped_column(Integer, ForeignKey("cycle.id"), nullable=False, index=True)
    user_id: Mapped[int] = mapped_column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    inviter_id: Mapped[int | None] = mapped_column(Integer, ForeignKey("users.id"), nullable=True)
    created_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), default=_utcnow, server_default=func.now()
    )


# ---------------------------------------------------------------------------
# Sessions & payments
# ---------------------------------------------------------------------------


class CycleSession(Base):
    """One payout round of a cycle (the ``sessions`` table)."""

    __tablename__ = "sessions"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    cycle_id: Mapped[int] = mapped_column(Integer, ForeignKey("cycle.id"), nullable=False, index=True)
    due_date: Mapped[date] = mapped_column(Date, nullable=False)
    winner_id: Mapped[int | None] = mapped_column(Integer, ForeignKey("user_cycle.id"), nullable=True)
    all_paid: Mapped[bool] = mapped_column(Boolean, default=False, server_default="false")


class Payment(Base):
    """A member's contribution to one session's pool."""

    __tablename__ = "payments"
    __table_args__ = (UniqueConstraint("user_cycle_id", "session_id", name="uq_payments_user_cycle_id_session_id"),)

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    user_cycle_id: Mapped[int] = mapped_column(Integer, ForeignKey("user_cycle.id"), nullable=False)
    session_id: Mapped[int] = mapped_column(Integer, ForeignKey("sessions.id"), nullable=False, index=True)
    has_paid: Mapped[bool] = mapped_column(Boolean, default=False, server_default="false")
