"""Request/response schemas for authentication endpoints."""

from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel, ConfigDict, EmailStr, Field, field_validator

from bagelfunds.auth.password import MAX_PASSWORD_LENGTH, MIN_PASSWORD_LENGTH


class SignupRequest(BaseModel):
    """Create an account."""

    username: str = Field(..., min_length=3, max_length=64, pattern=r"^[A-Za-z0-9_.-]+$")
    email: EmailStr
    password: str = Field(..., min_length=MIN_PASSWORD_LENGTH, max_length=MAX_PASSWORD_LENGTH)

    @field_validator("email")
    @classmethod
    def normalize_email(cls, v: str) -> str:
        """Normalize email to lowercase."""
        return v.lower().strip()


class LoginRequest(BaseModel):
    """Login with username + password."""

    username: str = Field(..., min_length=1, max_length=64)
    password: str = Field(..., min_length=1, max_length=MAX_PASSWORD_LENGTH)


class UserResponse(BaseModel):
    """A user's own profile."""

    model_config = ConfigDict(from_attributes=True)

    id: int
    username: str
    email: str
    image: str | None = None
    phone: str | None = None
    twitter: str | None = None
    created_at: datetime | None = None


class SignupResponse(BaseModel):
    """Returned after a successful signup."""

    message: str
    user: UserResponse


class PageResponse(BaseModel):
    """A page with no data beyond its name."""

    page: str
