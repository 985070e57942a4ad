"""Request/response schemas for invite endpoints."""

from __future__ import annotations

from datetime import datetime
from decimal import Decimal

from pydantic import BaseModel, Field


class InviteRequest(BaseModel):
    """Invite a user to a cycle by username."""

    username: str = Field(..., min_length=1, max_length=64)


class PendingInviteResponse(BaseModel):
    """An invite addressed to the caller."""

    id: int
    cycle_id: int
    cycle_name: str
    payment: Decimal
    frequency_days: int
    inviter_username: str | None = None
    created_at: datetime | None = None


class NotificationsResponse(BaseModel):
    page: str = "notifications"
    invites: list[PendingInviteResponse]
