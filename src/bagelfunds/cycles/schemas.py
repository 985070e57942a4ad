"""Request/response schemas for cycle pages and workflows."""

from __future__ import annotations

from datetime import date
from decimal import Decimal

from pydantic import BaseModel, Field

from bagelfunds.auth.schemas import UserResponse


class CreateCycleRequest(BaseModel):
    """Create a cycle. The caller becomes its host."""

    name: str = Field(..., min_length=1, max_length=128)
    start_date: date | None = None
    frequency_days: int = Field(..., ge=1, le=365)
    payment: Decimal = Field(..., gt=0, max_digits=12, decimal_places=2)


class CycleSummary(BaseModel):
    id: int
    name: str
    host_id: int
    is_host: bool
    member_count: int
    frequency_days: int
    payment: Decimal
    start_date: date | None = None
    has_started: bool
    has_ended: bool


class MemberResponse(BaseModel):
    membership_id: int
    user_id: int
    username: str
    image: str | None = None
    is_host: bool
    has_received: bool


class PaymentResponse(BaseModel):
    id: int
    membership_id: int
    username: str
    has_paid: bool


class SessionResponse(BaseModel):
    """One payout round with its winner and payments."""

    id: int
    due_date: date
    all_paid: bool
    winner_membership_id: int | None = None
    winner_username: str | None = None
    payments: list[PaymentResponse] = []


class CycleInviteResponse(BaseModel):
    id: int
    user_id: int
    username: str


class OverviewResponse(BaseModel):
    """View context for the cycle overview page."""

    page: str = "overview"
    cycle: CycleSummary
    is_host: bool
    pot: Decimal
    members: list[MemberResponse]
    sessions: list[SessionResponse]
    invites: list[CycleInviteResponse]


class DashboardResponse(BaseModel):
    """View context for the signed-in landing page."""

    page: str = "dashboard"
    user: UserResponse
    cycles: list[CycleSummary]
    pending_invites: int


class CreatePageResponse(BaseModel):
    page: str = "create"
    username: str
    default_start_date: date
    min_members: int
