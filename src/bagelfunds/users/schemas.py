"""Request/response schemas for profile endpoints.

``UserResponse`` is re-exported from the auth schemas.
"""

from __future__ import annotations

from pydantic import BaseModel, Field

from bagelfunds.auth.schemas import UserResponse


class ProfileUpdateRequest(BaseModel):
    """Editable profile fields."""

    phone: str | None = Field(None, max_length=32)
    twitter: str | None = Field(None, max_length=64)
    image: str | None = Field(None, max_length=2048)


class ProfilePageResponse(BaseModel):
    """View context for the profile page."""

    page: str = "profile"
    user: UserResponse


__all__ = [
    "ProfilePageResponse",
    "ProfileUpdateRequest",
    "UserResponse",
]
